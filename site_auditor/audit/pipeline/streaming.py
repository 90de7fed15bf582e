"""Line-delimited progress stream for audit sections.

Producers write frames as sections progress; one consumer drains them as
NDJSON lines. A failed section yields a single error frame and never
stops sibling sections from writing their own frames.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from ..models.report import (
    CompleteFrame,
    DataFrame,
    ErrorFrame,
    ExpertKey,
    StatusFrame,
    StreamFrame,
)
from ..queue.semaphore import BoundedSemaphore

logger = logging.getLogger(__name__)


def encode_frame(frame: StreamFrame) -> str:
    """One frame as a newline-terminated JSON line."""
    return json.dumps(frame.model_dump(exclude_none=True)) + "\n"


class FrameStream:
    """Queue-backed frame stream with a recorded history."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self.history: List[StreamFrame] = []

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, frame: StreamFrame) -> None:
        if self._closed:
            raise RuntimeError("Stream is closed")
        self.history.append(frame)
        self._queue.put_nowait(frame)

    def status(self, message: str, key: Optional[str] = None) -> None:
        self.emit(StatusFrame(message=message, key=key))

    def data(self, key: str, payload: Any) -> None:
        self.emit(DataFrame(key=key, payload=payload))

    def error(self, message: str, key: Optional[str] = None) -> None:
        self.emit(ErrorFrame(key=key, message=message))

    def complete(self, payload: Dict[str, Any]) -> None:
        self.emit(CompleteFrame(payload=payload))

    def close(self) -> None:
        """Stop accepting frames; consumers finish after draining."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def frames(self) -> AsyncIterator[StreamFrame]:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame

    async def ndjson(self) -> AsyncIterator[str]:
        async for frame in self.frames():
            yield encode_frame(frame)

    def frames_of(self, frame_type: str) -> List[StreamFrame]:
        return [frame for frame in self.history if frame.type == frame_type]


def error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


async def run_section(
    stream: FrameStream,
    key: ExpertKey,
    operation: Callable[[], Awaitable[Any]],
    limiter: Optional[BoundedSemaphore] = None
) -> Optional[Any]:
    """Run one section and write its frames.

    Healthy sections write status(running), data, status(complete); a
    failing one writes a single error frame. Never raises except on
    cancellation.

    Returns:
        The section result, or None if it failed
    """
    key = ExpertKey(key)
    name = key.label.replace(' expert', '')

    ticket = await limiter.acquire() if limiter is not None else None
    try:
        stream.status(f"Running {name} analysis...", key=key.value)
        try:
            result = await operation()
            if not result:
                raise ValueError("The AI model returned an empty or invalid response for this audit section.")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Analysis failed for {key.label}: {e}")
            stream.error(f"Error in {key.label}: {error_message(e)}", key=key.value)
            return None

        stream.data(key.value, result)
        stream.status(f"{name} analysis complete.", key=key.value)
        return result
    finally:
        if ticket is not None:
            limiter.release(ticket)
