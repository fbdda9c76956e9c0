"""
JSON envelope decoder for the ticker channel.
"""

from typing import Union

from pydantic import ValidationError

from tickerfeed.errors import DecodeError
from tickerfeed.schemas.market import Envelope

# Frames are echoed into error details, keep them bounded
MAX_FRAME_PREVIEW = 256


class JsonEnvelopeDecoder:
    """Decodes JSON text frames into Envelope models."""

    def decode(self, frame: Union[str, bytes]) -> Envelope:
        try:
            return Envelope.model_validate_json(frame)
        except ValidationError as e:
            preview = frame[:MAX_FRAME_PREVIEW]
            if isinstance(preview, bytes):
                preview = preview.decode("utf-8", errors="replace")
            raise DecodeError(
                f"Failed to parse message: {e.error_count()} validation error(s)",
                details={
                    "frame": preview,
                    "errors": [
                        {"loc": list(err["loc"]), "msg": err["msg"]}
                        for err in e.errors(include_url=False)
                    ],
                },
            ) from e
