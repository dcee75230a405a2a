"""
Event-stream decoding for the conversation endpoint.

The conversation endpoint answers with an event stream. Each line starting
with "data:" carries one frame; "data: [DONE]" ends the stream; every other
line is ignored. A data payload is a JSON record:

    {
        "message": {
            "id": "<message id>",
            "content": {"content_type": "text", "parts": ["<text so far>"]}
        },
        "conversation_id": "<conversation id>"
    }

The parts carry the whole answer generated so far, so the cumulative text of
a frame is its parts joined, not an append onto the previous frame.

Key components:
- StreamFrame: One decoded frame
- decode_line(): Decode a single line (None for non-frame lines)
- StreamDecoder: Tolerant, stateful decoder with end-of-stream validation

Example:
    >>> decoder = StreamDecoder()
    >>> async for frame in decoder.frames(response.iter_lines()):
    ...     print(frame.partial_text)
"""

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

from webchat_bridge.config.constants import DATA_PREFIX, TERMINAL_SENTINEL
from webchat_bridge.exceptions import ProtocolError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamFrame:
    """
    One decoded unit of a streamed answer.

    Attributes:
        message_id: Id of the assistant message being generated
        conversation_id: Id of the conversation the message belongs to
        partial_text: Cumulative answer text carried by this frame
        is_terminal: True only for the end-of-stream sentinel
    """

    message_id: str | None
    conversation_id: str | None
    partial_text: str
    is_terminal: bool = False


TERMINAL_FRAME = StreamFrame(
    message_id=None, conversation_id=None, partial_text="", is_terminal=True
)


def decode_line(line: str) -> StreamFrame | None:
    """
    Decode one line of the event stream.

    Args:
        line: Raw line without its trailing newline

    Returns:
        StreamFrame | None: The frame, TERMINAL_FRAME for the sentinel, or None
        for lines that are not data lines

    Raises:
        ValueError: If the line is a data line whose payload is not a valid record
    """
    line = line.strip()
    if not line.startswith(DATA_PREFIX):
        return None

    payload = line[len(DATA_PREFIX) :].strip()
    if payload == TERMINAL_SENTINEL:
        return TERMINAL_FRAME

    record = json.loads(payload)
    if not isinstance(record, dict):
        raise ValueError("frame payload is not an object")

    message = record.get("message")
    if not isinstance(message, dict):
        raise ValueError("frame has no message")

    content = message.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        raise ValueError("frame message has no content parts")

    return StreamFrame(
        message_id=message.get("id"),
        conversation_id=record.get("conversation_id"),
        partial_text="".join(part for part in parts if isinstance(part, str)),
    )


class StreamDecoder:
    """
    Tolerant decoder for one streamed response.

    Malformed data lines are skipped. The stream as a whole is rejected with
    ProtocolError when it ends (by sentinel or by running out of lines)
    without a single valid frame, or when it runs out of lines right after a
    malformed data line, i.e. its terminal frame was corrupted.

    Attributes:
        valid_frames: Number of non-terminal frames decoded so far
        malformed_lines: Number of data lines skipped as malformed
    """

    def __init__(self) -> None:
        self.valid_frames = 0
        self.malformed_lines = 0
        self._last_data_line_malformed = False

    def feed(self, line: str) -> StreamFrame | None:
        """Decode one line, returning None for ignored or malformed lines."""
        try:
            frame = decode_line(line)
        except ValueError as e:
            # json.JSONDecodeError is a ValueError too
            self.malformed_lines += 1
            self._last_data_line_malformed = True
            logger.debug(f"Skipping malformed stream frame: {e}")
            return None

        if frame is None:
            return None

        self._last_data_line_malformed = False
        if not frame.is_terminal:
            self.valid_frames += 1
        return frame

    def finish(self, saw_terminal: bool) -> None:
        """
        Validate the stream once it is over.

        Raises:
            ProtocolError: If no valid frame was produced, or the stream ended
                without the sentinel right after a malformed data line
        """
        if self.valid_frames == 0:
            raise ProtocolError(
                f"conversation stream produced no valid frames "
                f"({self.malformed_lines} malformed)"
            )
        if not saw_terminal and self._last_data_line_malformed:
            raise ProtocolError("conversation stream ended on a corrupted terminal frame")

    async def frames(self, lines: AsyncIterable[str]) -> AsyncIterator[StreamFrame]:
        """
        Yield frames in arrival order, ending with TERMINAL_FRAME if the sentinel arrives.

        Raises:
            ProtocolError: See finish()
        """
        async for line in lines:
            frame = self.feed(line)
            if frame is None:
                continue
            if frame.is_terminal:
                self.finish(saw_terminal=True)
                yield frame
                return
            yield frame

        self.finish(saw_terminal=False)
