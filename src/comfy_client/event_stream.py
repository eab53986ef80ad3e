"""WebSocket event stream for prompt progress.

Primary job monitoring mechanism. One connection per client id is read by a
reader task which hands raw frames to a dispatcher task through a bounded
queue. The dispatcher decodes each frame and routes it by prompt_id to the
registered ``ProgressTracker`` instances, and to generic subscribers.

A full queue blocks the reader, so frames are never dropped. There is no
reconnection: when the connection ends, every tracker still waiting is failed
with ``StreamClosedError``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import websockets

from .config import ComfyClientConfig
from .exceptions import MessageDecodeError, StreamClosedError
from .messages import MessageType, parse_message
from .tracker import ProgressTracker

if TYPE_CHECKING:
    from .messages import EventMessage
    from .tracker import ProgressState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _StreamEnd:
    reason: str


type EventCallback = Callable[[EventMessage], None]
type ErrorCallback = Callable[[Exception], None]


class EventStream:
    """Event stream connection with prompt_id routing."""

    def __init__(
        self,
        base_url: str | None = None,
        client_id: str | None = None,
        queue_size: int | None = None,
    ) -> None:
        """Initialize event stream (not connected yet).

        Args:
            base_url: Server HTTP base URL (default from config)
            client_id: Subscriber id; the server only sends prompt events to the
                client id that submitted the prompt (default: random uuid4)
            queue_size: Bound of the reader -> dispatcher queue (default from config)
        """
        self.base_url: str = base_url or ComfyClientConfig.DEFAULT_BASE_URL
        self.client_id: str = client_id or str(uuid.uuid4())
        self.url: str = ComfyClientConfig.get_ws_url(self.base_url, self.client_id)

        self._queue: asyncio.Queue[str | bytes | _StreamEnd] = asyncio.Queue(
            maxsize=queue_size or ComfyClientConfig.EVENT_QUEUE_SIZE
        )

        # Routing table: prompt_id -> trackers
        self._trackers: dict[str, list[ProgressTracker]] = {}

        # Generic subscriptions: subscription_id -> (on_event, on_error)
        self._subscriptions: dict[str, tuple[EventCallback | None, ErrorCallback | None]] = {}

        self._ws: websockets.ClientConnection | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._dispatcher_task: asyncio.Task[None] | None = None
        self._closed: bool = False
        self._shutdown: bool = False

        # Session info learned from the stream
        self.sid: str | None = None
        self.queue_remaining: int | None = None
        self._executing_prompt_id: str | None = None

    # ============================================================================
    # Connection lifecycle
    # ============================================================================

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    async def connect(self) -> None:
        """Open the WebSocket and start the reader and dispatcher tasks.

        Raises:
            StreamClosedError: If this stream was already closed
            OSError / websockets.exceptions.InvalidHandshake: If connecting fails
        """
        if self._closed:
            msg = "Event stream already closed"
            raise StreamClosedError(msg)
        if self._ws is not None:
            return

        try:
            self._ws = await websockets.connect(
                self.url,
                open_timeout=ComfyClientConfig.WS_CONNECT_TIMEOUT,
                close_timeout=ComfyClientConfig.WS_CLOSE_TIMEOUT,
                max_size=ComfyClientConfig.WS_MAX_MESSAGE_SIZE,
            )
        except Exception as e:
            logger.error(f"Failed to connect event stream {self.url}: {e}")
            raise

        logger.info(f"Event stream connected (client_id: {self.client_id})")
        self._reader_task = asyncio.create_task(self._read_loop())
        self._dispatcher_task = asyncio.create_task(self._dispatch_loop())

    async def close(self) -> None:
        """Stop reading, close the connection and fail trackers still waiting."""
        if self._shutdown:
            return
        self._shutdown = True
        already_ended = self._closed
        self._closed = True

        tasks = [task for task in (self._reader_task, self._dispatcher_task) if task is not None]
        for task in tasks:
            _ = task.cancel()
        _ = await asyncio.gather(*tasks, return_exceptions=True)

        if self._ws is not None:
            await self._ws.close()

        if not already_ended:
            self._fail_trackers("Event stream closed by client")
        logger.info("Event stream closed")

    async def __aenter__(self) -> EventStream:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    async def _read_loop(self) -> None:
        """Move raw frames from the socket to the dispatch queue."""
        assert self._ws is not None
        reason = "Event stream closed by server"
        try:
            async for frame in self._ws:
                # Blocks when the dispatcher falls behind
                await self._queue.put(frame)
        except websockets.exceptions.ConnectionClosed as e:
            reason = f"Event stream connection lost: {e}"
            logger.warning(reason)
        except Exception as e:
            reason = f"Event stream read failed: {e}"
            logger.error(reason, exc_info=True)
        finally:
            # close() cancels this task and fails the trackers itself
            if not self._shutdown:
                await self._queue.put(_StreamEnd(reason))

    async def _dispatch_loop(self) -> None:
        while True:
            frame = await self._queue.get()
            if isinstance(frame, _StreamEnd):
                self._closed = True
                self._fail_trackers(frame.reason)
                return

            try:
                self.feed(frame)
            except Exception as e:
                logger.error(f"Error dispatching event frame: {e}", exc_info=True)

    # ============================================================================
    # Dispatch
    # ============================================================================

    def feed(self, frame: str | bytes) -> None:
        """Decode one raw frame and dispatch it.

        Undecodable frames are reported to subscribers and active trackers.
        """
        try:
            message = parse_message(frame)
        except MessageDecodeError as e:
            self._report_error(e)
            return

        self.dispatch(message)

    def dispatch(self, message: EventMessage) -> None:
        """Route one decoded message to subscribers and matching trackers."""
        self._update_session(message)

        for _sub_id, (on_event, _on_error) in list(self._subscriptions.items()):
            if on_event is None:
                continue
            try:
                on_event(message)
            except Exception as e:
                logger.error(f"Error in event callback: {e}", exc_info=True)

        for tracker in self._targets(message):
            try:
                _ = tracker.handle(message)
            except MessageDecodeError as e:
                tracker.record_decode_error(e)
                self._notify_error(e)

    def _targets(self, message: EventMessage) -> list[ProgressTracker]:
        prompt_id = message.prompt_id
        if prompt_id is not None:
            return list(self._trackers.get(prompt_id, ()))

        if message.message_type is MessageType.PROGRESS:
            # Progress without prompt_id belongs to whatever is executing now
            if self._executing_prompt_id is not None:
                return list(self._trackers.get(self._executing_prompt_id, ()))
            return [t for trackers in self._trackers.values() for t in trackers if not t.is_terminal]

        return []

    def _update_session(self, message: EventMessage) -> None:
        message_type = message.message_type
        if message_type is MessageType.STATUS:
            status = message.status_data()
            self.queue_remaining = status.queue_remaining
            if status.sid:
                self.sid = status.sid
        elif message_type is MessageType.EXECUTING and message.prompt_id is not None:
            node = message.data.get("node")
            if node:
                self._executing_prompt_id = message.prompt_id
            elif self._executing_prompt_id == message.prompt_id:
                self._executing_prompt_id = None

    def _report_error(self, error: MessageDecodeError) -> None:
        logger.warning(f"Undecodable event frame: {error}")
        for trackers in self._trackers.values():
            for tracker in trackers:
                if not tracker.is_terminal:
                    tracker.record_decode_error(error)
        self._notify_error(error)

    def _notify_error(self, error: Exception) -> None:
        for _sub_id, (_on_event, on_error) in list(self._subscriptions.items()):
            if on_error is None:
                continue
            try:
                on_error(error)
            except Exception as e:
                logger.error(f"Error in error callback: {e}", exc_info=True)

    def _fail_trackers(self, reason: str) -> None:
        error = StreamClosedError(reason)
        waiting = 0
        for trackers in self._trackers.values():
            for tracker in trackers:
                if not tracker.is_done:
                    waiting += 1
                tracker.mark_stream_closed(error)
        if waiting:
            logger.warning(f"{reason}; failing {waiting} waiting tracker(s)")
        self._notify_error(error)

    # ============================================================================
    # Tracking and subscriptions
    # ============================================================================

    def track(
        self,
        prompt_id: str,
        on_update: Callable[[ProgressState], None] | None = None,
    ) -> ProgressTracker:
        """Register a tracker for a prompt.

        Args:
            prompt_id: Prompt to track
            on_update: Called with a state snapshot after every state change

        Returns:
            Tracker receiving this prompt's events until untracked

        Raises:
            StreamClosedError: If the stream is closed
        """
        if self._closed:
            msg = f"Cannot track prompt {prompt_id}: event stream closed"
            raise StreamClosedError(msg)

        tracker = ProgressTracker(prompt_id, on_update=on_update)
        self._trackers.setdefault(prompt_id, []).append(tracker)
        logger.debug(f"Tracking prompt {prompt_id}")
        return tracker

    def untrack(self, tracker: ProgressTracker) -> None:
        trackers = self._trackers.get(tracker.prompt_id)
        if not trackers or tracker not in trackers:
            return
        trackers.remove(tracker)
        if not trackers:
            del self._trackers[tracker.prompt_id]
        logger.debug(f"Stopped tracking prompt {tracker.prompt_id}")

    def trackers(self, prompt_id: str) -> list[ProgressTracker]:
        return list(self._trackers.get(prompt_id, ()))

    def subscribe(
        self,
        on_event: EventCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> str:
        """Subscribe to every decoded message and to stream errors.

        Args:
            on_event: Called for every decoded message, all prompts included
            on_error: Called for undecodable frames and for stream closure

        Returns:
            Unique subscription ID for unsubscribing later
        """
        subscription_id = str(uuid.uuid4())
        self._subscriptions[subscription_id] = (on_event, on_error)
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> None:
        if subscription_id not in self._subscriptions:
            logger.warning(f"Subscription not found: {subscription_id}")
            return
        del self._subscriptions[subscription_id]
