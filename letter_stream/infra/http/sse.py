"""
Server-sent events framing and frame parsing.
"""

import json
from typing import List, Optional

from pydantic import ValidationError

from letter_stream.domain.entities.generation import StreamFrame


class SSEDecoder:
    """Line-fed decoder that yields the ``data`` payload of each event."""

    def __init__(self):
        self._data: List[str] = []

    def feed(self, line: str) -> Optional[str]:
        """
        Feed one line (without its terminator).

        Returns:
            The joined data payload when ``line`` ends an event, else None
        """
        line = line.rstrip("\r")
        if not line:
            return self.flush()
        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            self._data.append(value)
        return None

    def flush(self) -> Optional[str]:
        """Dispatch whatever is buffered (end of event or end of stream)."""
        if not self._data:
            return None
        payload = "\n".join(self._data)
        self._data = []
        return payload


def parse_frame(data: str) -> Optional[StreamFrame]:
    """
    Parse an event payload.

    Anything that isn't a JSON object is a keep-alive and yields None. A JSON
    object always yields a frame; one without a truthy ``success`` reports a
    backend failure.
    """
    if not data.strip():
        return None
    try:
        decoded = json.loads(data)
    except ValueError:
        return None
    if not isinstance(decoded, dict):
        return None
    try:
        return StreamFrame.model_validate(decoded)
    except ValidationError:
        return StreamFrame(success=False, error="Malformed stream frame")
