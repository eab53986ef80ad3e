"""Per-prompt execution progress tracking.

A ``ProgressTracker`` is a small state machine fed with decoded event
messages for one prompt:

    IDLE -> RUNNING -> COMPLETED
                    -> FAILED

COMPLETED and FAILED are terminal; events arriving afterwards are ignored.
Events for other prompts are ignored as well, since the event stream is
shared by every prompt submitted with the same client id.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from .exceptions import ExecutionError, StreamClosedError, WaitCancelledError, WaitTimeoutError
from .messages import ExecutionErrorData, MessageType, progress_percentage

if TYPE_CHECKING:
    from .exceptions import MessageDecodeError
    from .messages import EventMessage
    from .models import HistoryItem
    from .types import JSONObject

logger = logging.getLogger(__name__)


class TrackerStatus(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ProgressState:
    """Client-local progress view of one prompt."""

    prompt_id: str
    status: TrackerStatus = TrackerStatus.IDLE
    current_node: str | None = None
    completed_nodes: int = 0
    cached_nodes: list[str] = field(default_factory=list)
    current_step: int = 0
    total_steps: int = 0
    start_time: float = 0.0
    end_time: float | None = None
    error: ExecutionErrorData | None = None
    outputs: dict[str, JSONObject] = field(default_factory=dict)
    decode_errors: list[MessageDecodeError] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in (TrackerStatus.COMPLETED, TrackerStatus.FAILED)

    @property
    def percentage(self) -> float:
        return progress_percentage(self.current_step, self.total_steps)

    def elapsed(self, now: float | None = None) -> float:
        """Seconds since start, frozen at end_time once the prompt finished."""
        end = self.end_time if self.end_time is not None else (now if now is not None else time.time())
        return max(end - self.start_time, 0.0)

    def eta(self, now: float | None = None) -> float | None:
        """Estimated seconds remaining for the current node; None until progress is reported."""
        percentage = self.percentage
        if percentage <= 0:
            return None
        elapsed = self.elapsed(now)
        return elapsed / (percentage / 100) - elapsed


def history_error(prompt_id: str, item: HistoryItem) -> ExecutionErrorData | None:
    """Failure recorded in a history entry, or None if the entry is not failed."""
    error = item.status.execution_error()
    if error is not None:
        return error
    if item.status.status_str == "error":
        return ExecutionErrorData(
            prompt_id=prompt_id,
            exception_message="Execution failed (no error details recorded in history)",
        )
    return None


class ProgressTracker:
    """State machine aggregating event stream messages for one prompt."""

    def __init__(
        self,
        prompt_id: str,
        on_update: Callable[[ProgressState], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize tracker.

        Args:
            prompt_id: Prompt to track
            on_update: Called with a state snapshot after every state change
            clock: Wall-clock source (seconds)
        """
        self.prompt_id: str = prompt_id
        self._on_update = on_update
        self._clock = clock
        self._state = ProgressState(prompt_id=prompt_id, start_time=clock())
        self._done = asyncio.Event()
        self._stream_error: StreamClosedError | None = None

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def state(self) -> ProgressState:
        """Snapshot of the current state."""
        return dataclasses.replace(
            self._state,
            cached_nodes=list(self._state.cached_nodes),
            outputs=dict(self._state.outputs),
            decode_errors=list(self._state.decode_errors),
        )

    @property
    def status(self) -> TrackerStatus:
        return self._state.status

    @property
    def current_node(self) -> str | None:
        return self._state.current_node

    @property
    def percentage(self) -> float:
        return self._state.percentage

    @property
    def elapsed(self) -> float:
        return self._state.elapsed(self._clock())

    @property
    def eta(self) -> float | None:
        return self._state.eta(self._clock())

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal

    @property
    def is_done(self) -> bool:
        """True once terminal or once the stream feeding this tracker closed."""
        return self._done.is_set()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def handle(self, message: EventMessage) -> bool:
        """Apply one event.

        Returns:
            True if the state changed

        Raises:
            MessageDecodeError: If the payload of a relevant message is malformed
        """
        if self._state.is_terminal:
            return False

        prompt_id = message.prompt_id
        if prompt_id is not None and prompt_id != self.prompt_id:
            return False

        state = self._state
        message_type = message.message_type

        if message_type is MessageType.PROGRESS:
            # Older servers omit prompt_id on progress; routing decides who gets it
            progress = message.progress_data()
            state.current_step = progress.value
            state.total_steps = progress.max

        elif prompt_id is None:
            return False

        elif message_type is MessageType.EXECUTING:
            executing = message.executing_data()
            if executing.is_finished:
                self._finish(TrackerStatus.COMPLETED)
            else:
                state.current_node = executing.node
                if state.status is TrackerStatus.IDLE:
                    state.status = TrackerStatus.RUNNING

        elif message_type is MessageType.EXECUTED:
            executed = message.executed_data()
            state.completed_nodes += 1
            state.outputs[executed.node] = executed.output

        elif message_type is MessageType.EXECUTION_CACHED:
            cached = message.execution_cached_data()
            state.cached_nodes.extend(cached.nodes)

        elif message_type is MessageType.EXECUTION_ERROR:
            state.error = message.execution_error_data()
            self._finish(TrackerStatus.FAILED)

        else:
            return False

        self._notify()
        return True

    def apply_history(self, item: HistoryItem) -> bool:
        """Settle the tracker from a history entry (prompt finished before tracking began).

        Returns:
            True if the entry moved the tracker to a terminal state
        """
        if self._state.is_terminal:
            return False

        error = history_error(self.prompt_id, item)
        if error is not None:
            self._state.error = error
            self._finish(TrackerStatus.FAILED)
        elif item.status.completed:
            self._state.completed_nodes = max(self._state.completed_nodes, len(item.outputs))
            self._finish(TrackerStatus.COMPLETED)
        else:
            return False

        self._notify()
        return True

    def record_decode_error(self, error: MessageDecodeError) -> None:
        self._state.decode_errors.append(error)

    def mark_stream_closed(self, error: StreamClosedError) -> None:
        """Fail pending waits because no further events can arrive."""
        if self._state.is_terminal or self._done.is_set():
            return
        self._stream_error = error
        self._state.end_time = self._clock()
        self._done.set()

    def _finish(self, status: TrackerStatus) -> None:
        self._state.status = status
        self._state.end_time = self._clock()
        self._done.set()

    def _notify(self) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(self.state)
        except Exception as e:
            logger.error(f"Error in progress callback for prompt {self.prompt_id}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Waiting
    # ------------------------------------------------------------------

    def _result(self) -> ProgressState:
        if self._state.status is TrackerStatus.FAILED and self._state.error is not None:
            raise ExecutionError(self._state.error)
        if self._state.status is TrackerStatus.COMPLETED:
            return self.state
        if self._stream_error is not None:
            raise self._stream_error
        msg = f"Tracker for prompt {self.prompt_id} finished without a terminal state"
        raise StreamClosedError(msg)

    async def wait(
        self,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ProgressState:
        """Wait until the prompt completes or fails.

        Args:
            timeout: Max wait time in seconds (None = no timeout)
            cancel: Event that aborts the wait when set

        Returns:
            Final state snapshot (status COMPLETED)

        Raises:
            ExecutionError: If a node failed
            StreamClosedError: If the event stream ended first
            WaitCancelledError: If cancel was set first
            WaitTimeoutError: If timeout expired first
        """
        if self._done.is_set():
            return self._result()

        done_task = asyncio.ensure_future(self._done.wait())
        waiters: set[asyncio.Future[bool]] = {done_task}
        cancel_task: asyncio.Future[bool] | None = None
        if cancel is not None:
            cancel_task = asyncio.ensure_future(cancel.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in waiters:
                if not task.done():
                    _ = task.cancel()

        if done_task in done:
            return self._result()
        if cancel_task is not None and cancel_task in done:
            raise WaitCancelledError(self.prompt_id)
        raise WaitTimeoutError(self.prompt_id, timeout or 0.0, self.state)
