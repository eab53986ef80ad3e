"""Tests for tracker.py"""

import asyncio

import pytest
from comfy_client.exceptions import (
    ExecutionError,
    MessageDecodeError,
    StreamClosedError,
    WaitCancelledError,
    WaitTimeoutError,
)
from comfy_client.messages import EventMessage
from comfy_client.records import decode_history
from comfy_client.tracker import ProgressState, ProgressTracker, TrackerStatus


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def msg(message_type: str, **data) -> EventMessage:
    return EventMessage(type=message_type, data=data)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker(clock: FakeClock) -> ProgressTracker:
    return ProgressTracker("abc", clock=clock)


def test_initial_state(tracker: ProgressTracker):
    assert tracker.status is TrackerStatus.IDLE
    assert tracker.percentage == 0.0
    assert tracker.eta is None
    assert not tracker.is_terminal
    assert not tracker.is_done


def test_progress_then_finished(tracker: ProgressTracker):
    """Test progress without prompt_id, then executing(node=None), completes at 50%."""
    assert tracker.handle(msg("progress", value=10, max=20))
    assert tracker.handle(msg("executing", prompt_id="abc", node=None))

    assert tracker.status is TrackerStatus.COMPLETED
    assert tracker.percentage == 50.0
    assert tracker.is_done


def test_full_sequence(tracker: ProgressTracker):
    tracker.handle(msg("execution_cached", prompt_id="abc", nodes=["4"]))
    tracker.handle(msg("executing", prompt_id="abc", node="6"))
    assert tracker.status is TrackerStatus.RUNNING
    assert tracker.current_node == "6"

    tracker.handle(msg("executed", prompt_id="abc", node="6", output={}))
    tracker.handle(msg("executing", prompt_id="abc", node="3"))
    tracker.handle(msg("progress", prompt_id="abc", node="3", value=20, max=20))
    tracker.handle(msg("executed", prompt_id="abc", node="3", output={"images": []}))
    tracker.handle(msg("executing", prompt_id="abc", node=None))

    state = tracker.state
    assert state.status is TrackerStatus.COMPLETED
    assert state.completed_nodes == 2
    assert state.cached_nodes == ["4"]
    assert set(state.outputs) == {"6", "3"}
    assert state.percentage == 100.0


def test_other_prompts_ignored(tracker: ProgressTracker):
    """Test interleaved events for another prompt never affect this tracker."""
    assert not tracker.handle(msg("executing", prompt_id="other", node="1"))
    assert not tracker.handle(msg("progress", prompt_id="other", value=5, max=10))
    assert not tracker.handle(msg("executing", prompt_id="other", node=None))
    assert not tracker.handle(
        msg("execution_error", prompt_id="other", node_id="1", exception_message="boom")
    )

    assert tracker.status is TrackerStatus.IDLE
    assert tracker.percentage == 0.0


def test_non_progress_without_prompt_id_ignored(tracker: ProgressTracker):
    assert not tracker.handle(msg("executing", node="3"))
    assert tracker.status is TrackerStatus.IDLE


def test_unknown_and_status_messages_ignored(tracker: ProgressTracker):
    assert not tracker.handle(msg("status", status={"exec_info": {"queue_remaining": 1}}))
    assert not tracker.handle(msg("execution_start", prompt_id="abc"))
    assert not tracker.handle(msg("crystools.monitor", cpu=1))


def test_execution_error(tracker: ProgressTracker):
    tracker.handle(msg("executing", prompt_id="abc", node="3"))
    tracker.handle(
        msg(
            "execution_error",
            prompt_id="abc",
            node_id="3",
            node_type="KSampler",
            exception_type="RuntimeError",
            exception_message="boom",
            traceback=[],
        )
    )

    state = tracker.state
    assert state.status is TrackerStatus.FAILED
    assert state.error is not None
    assert state.error.exception_message == "boom"


def test_terminal_state_is_final(tracker: ProgressTracker):
    """Test events after a terminal state are ignored."""
    tracker.handle(msg("executing", prompt_id="abc", node=None))

    assert not tracker.handle(msg("executing", prompt_id="abc", node="3"))
    assert not tracker.handle(msg("progress", value=1, max=2))
    assert not tracker.handle(msg("execution_error", prompt_id="abc", exception_message="late"))

    assert tracker.status is TrackerStatus.COMPLETED
    assert tracker.state.error is None


def test_duplicate_terminal_events_leave_state_unchanged(tracker: ProgressTracker, clock: FakeClock):
    """Test repeating the terminal event is idempotent for both outcomes."""
    tracker.handle(msg("executing", prompt_id="abc", node="3"))
    tracker.handle(msg("executing", prompt_id="abc", node=None))
    completed = tracker.state

    clock.now += 5
    assert not tracker.handle(msg("executing", prompt_id="abc", node=None))
    assert tracker.state == completed

    failed_tracker = ProgressTracker("def", clock=clock)
    error_message = msg(
        "execution_error",
        prompt_id="def",
        node_id="3",
        node_type="KSampler",
        exception_type="RuntimeError",
        exception_message="boom",
        traceback=["line 1"],
    )
    failed_tracker.handle(error_message)
    failed = failed_tracker.state

    clock.now += 5
    assert not failed_tracker.handle(error_message)
    assert failed_tracker.state == failed


def test_malformed_payload_raises(tracker: ProgressTracker):
    with pytest.raises(MessageDecodeError):
        tracker.handle(msg("progress", prompt_id="abc", value=1))


def test_on_update_receives_snapshots(clock: FakeClock):
    updates: list[ProgressState] = []
    tracker = ProgressTracker("abc", on_update=updates.append, clock=clock)

    tracker.handle(msg("executing", prompt_id="abc", node="3"))
    tracker.handle(msg("progress", prompt_id="abc", value=5, max=10))

    assert [u.status for u in updates] == [TrackerStatus.RUNNING, TrackerStatus.RUNNING]
    assert updates[1].current_step == 5

    # Snapshots are independent of later changes
    tracker.handle(msg("execution_cached", prompt_id="abc", nodes=["1"]))
    assert updates[1].cached_nodes == []


def test_on_update_errors_do_not_break_tracking(clock: FakeClock):
    def broken(_state: ProgressState) -> None:
        raise RuntimeError("callback failed")

    tracker = ProgressTracker("abc", on_update=broken, clock=clock)
    tracker.handle(msg("executing", prompt_id="abc", node=None))

    assert tracker.status is TrackerStatus.COMPLETED


def test_elapsed_and_eta(tracker: ProgressTracker, clock: FakeClock):
    tracker.handle(msg("executing", prompt_id="abc", node="3"))
    clock.now += 10
    tracker.handle(msg("progress", prompt_id="abc", value=5, max=20))

    assert tracker.elapsed == 10.0
    assert tracker.eta == pytest.approx(30.0)


def test_elapsed_frozen_after_completion(tracker: ProgressTracker, clock: FakeClock):
    clock.now += 4
    tracker.handle(msg("executing", prompt_id="abc", node=None))
    clock.now += 100

    assert tracker.elapsed == 4.0


def test_apply_history_completed(tracker: ProgressTracker):
    item = decode_history(
        {
            "abc": {
                "prompt": [1, "abc", {}],
                "outputs": {"9": {"images": []}},
                "status": {"status_str": "success", "completed": True, "messages": []},
            }
        }
    )["abc"]

    assert tracker.apply_history(item)
    assert tracker.status is TrackerStatus.COMPLETED
    assert tracker.state.completed_nodes == 1


def test_apply_history_error(tracker: ProgressTracker):
    item = decode_history(
        {
            "abc": {
                "prompt": [1, "abc", {}],
                "status": {
                    "status_str": "error",
                    "completed": False,
                    "messages": [["execution_error", {"prompt_id": "abc", "exception_message": "boom"}]],
                },
            }
        }
    )["abc"]

    assert tracker.apply_history(item)
    assert tracker.status is TrackerStatus.FAILED


def test_apply_history_unfinished(tracker: ProgressTracker):
    item = decode_history({"abc": {"prompt": [1, "abc", {}]}})["abc"]

    assert not tracker.apply_history(item)
    assert tracker.status is TrackerStatus.IDLE


class TestWait:
    """Tests for ProgressTracker.wait."""

    @pytest.mark.asyncio
    async def test_wait_completed(self, tracker: ProgressTracker):
        async def finish():
            await asyncio.sleep(0.01)
            tracker.handle(msg("executing", prompt_id="abc", node=None))

        task = asyncio.create_task(finish())
        state = await tracker.wait(timeout=1.0)
        await task

        assert state.status is TrackerStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_wait_already_done(self, tracker: ProgressTracker):
        tracker.handle(msg("executing", prompt_id="abc", node=None))
        state = await tracker.wait()
        assert state.status is TrackerStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_wait_failed(self, tracker: ProgressTracker):
        tracker.handle(
            msg("execution_error", prompt_id="abc", node_id="3", node_type="KSampler", exception_message="boom")
        )

        with pytest.raises(ExecutionError) as exc_info:
            await tracker.wait()

        assert exc_info.value.error.node_type == "KSampler"

    @pytest.mark.asyncio
    async def test_wait_timeout(self, tracker: ProgressTracker):
        tracker.record_decode_error(MessageDecodeError("bad frame"))

        with pytest.raises(WaitTimeoutError) as exc_info:
            await tracker.wait(timeout=0.05)

        assert exc_info.value.prompt_id == "abc"
        assert "1 undecodable" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_wait_cancelled(self, tracker: ProgressTracker):
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, cancel.set)

        with pytest.raises(WaitCancelledError):
            await tracker.wait(timeout=1.0, cancel=cancel)

    @pytest.mark.asyncio
    async def test_wait_stream_closed(self, tracker: ProgressTracker):
        asyncio.get_running_loop().call_later(
            0.01, tracker.mark_stream_closed, StreamClosedError("connection lost")
        )

        with pytest.raises(StreamClosedError) as exc_info:
            await tracker.wait(timeout=1.0)

        assert "connection lost" in str(exc_info.value)
        assert tracker.status is TrackerStatus.IDLE

    @pytest.mark.asyncio
    async def test_stream_closed_after_completion_is_ignored(self, tracker: ProgressTracker):
        tracker.handle(msg("executing", prompt_id="abc", node=None))
        tracker.mark_stream_closed(StreamClosedError("late"))

        state = await tracker.wait()
        assert state.status is TrackerStatus.COMPLETED


def test_last_node_and_progress_win_despite_interleaving(tracker: ProgressTracker):
    """Test executing(X) -> progress -> executing(Y) leaves node Y and the last step counters."""
    events = [
        msg("executing", prompt_id="abc", node="3"),
        msg("executing", prompt_id="other", node="8"),
        msg("progress", prompt_id="abc", value=7, max=25),
        msg("progress", prompt_id="other", value=1, max=2),
        msg("executing", prompt_id="abc", node="8"),
        msg("executed", prompt_id="other", node="8", output={}),
    ]
    for event in events:
        tracker.handle(event)

    state = tracker.state
    assert state.current_node == "8"
    assert (state.current_step, state.total_steps) == (7, 25)
    assert state.completed_nodes == 0
    assert state.status is TrackerStatus.RUNNING
