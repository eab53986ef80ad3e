"""Tests for exceptions.py"""

from comfy_client.exceptions import (
    ComfyClientError,
    EmptyWorkflowError,
    ExecutionError,
    InputNotFoundError,
    MalformedRecordError,
    MissingNodeTypeError,
    NodeNotFoundError,
    RemoteRejectionError,
    WaitCancelledError,
    WaitTimeoutError,
    WorkflowValidationError,
    WrongMessageTypeError,
)
from comfy_client.exceptions import MessageDecodeError
from comfy_client.messages import ExecutionErrorData
from comfy_client.tracker import ProgressState, TrackerStatus


def test_comfy_client_error():
    """Test base ComfyClientError."""
    error = ComfyClientError("Test error")
    assert str(error) == "Test error"
    assert isinstance(error, Exception)


def test_node_not_found_error():
    error = NodeNotFoundError("42")
    assert "42" in str(error)
    assert error.node_id == "42"
    assert isinstance(error, ComfyClientError)


def test_input_not_found_error():
    error = InputNotFoundError("6", "text")
    assert "text" in str(error)
    assert "6" in str(error)
    assert error.input_name == "text"


def test_validation_errors_share_base():
    """Test workflow validation errors are catchable together."""
    assert isinstance(EmptyWorkflowError(), WorkflowValidationError)
    error = MissingNodeTypeError("3")
    assert isinstance(error, WorkflowValidationError)
    assert error.node_id == "3"


def test_malformed_record_error_location():
    """Test MalformedRecordError names where the record came from."""
    error = MalformedRecordError("expected at least 3 elements, got 2", location="queue_pending[3]")
    assert "queue_pending[3]" in str(error)
    assert error.location == "queue_pending[3]"
    assert not isinstance(error, ValueError)


def test_message_decode_error_keeps_raw():
    error = MessageDecodeError("bad frame", raw=b"\xff")
    assert error.raw == b"\xff"


def test_wrong_message_type_error():
    error = WrongMessageTypeError("progress", "executing")
    assert error.expected == "progress"
    assert error.actual == "executing"
    assert "progress" in str(error)


def test_remote_rejection_error():
    """Test RemoteRejectionError carries node errors."""
    node_errors = {"6": {"errors": [{"type": "required_input_missing"}]}}
    error = RemoteRejectionError(node_errors, error={"type": "prompt_outputs_failed_validation"})
    assert error.node_errors == node_errors
    assert "1 node(s)" in str(error)
    assert "prompt_outputs_failed_validation" in str(error)


def test_execution_error():
    """Test ExecutionError exposes the failing node and traceback."""
    data = ExecutionErrorData(
        prompt_id="abc",
        node_id="3",
        node_type="KSampler",
        exception_type="RuntimeError",
        exception_message="boom",
        traceback=["line 1", "line 2"],
    )
    error = ExecutionError(data)
    assert "abc" in str(error)
    assert "KSampler" in str(error)
    assert "boom" in str(error)
    assert error.traceback == ["line 1", "line 2"]


def test_wait_cancelled_error():
    error = WaitCancelledError("abc")
    assert error.prompt_id == "abc"
    assert "cancelled" in str(error)


def test_wait_timeout_error():
    """Test WaitTimeoutError is a TimeoutError and reports status."""
    state = ProgressState(prompt_id="abc", status=TrackerStatus.RUNNING)
    state.decode_errors.append(MessageDecodeError("bad"))

    error = WaitTimeoutError("abc", 5.0, state)

    assert isinstance(error, TimeoutError)
    assert isinstance(error, ComfyClientError)
    assert "timeout" in str(error).lower()
    assert "running" in str(error)
    assert "1 undecodable" in str(error)
    assert error.state is state
