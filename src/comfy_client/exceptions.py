"""Custom exceptions for the ComfyUI client."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .messages import ExecutionErrorData
    from .tracker import ProgressState
    from .types import JSONObject


class ComfyClientError(Exception):
    """Base exception for ComfyUI client errors."""

    pass


# ============================================================================
# Workflow model errors
# ============================================================================


class NodeNotFoundError(ComfyClientError):
    """Node id not present in the workflow."""

    def __init__(self, node_id: str) -> None:
        """Initialize NodeNotFoundError.

        Args:
            node_id: Node id that was not found
        """
        super().__init__(f"Node not found: {node_id}")
        self.node_id: str = node_id


class InputNotFoundError(ComfyClientError):
    """Named input not set on a node."""

    def __init__(self, node_id: str, input_name: str) -> None:
        super().__init__(f"Input {input_name!r} not found in node {node_id}")
        self.node_id: str = node_id
        self.input_name: str = input_name


class WorkflowValidationError(ComfyClientError):
    """Workflow failed client-side validation."""

    pass


class EmptyWorkflowError(WorkflowValidationError):
    """Workflow has no nodes."""

    def __init__(self) -> None:
        super().__init__("Workflow is empty")


class MissingNodeTypeError(WorkflowValidationError):
    """A node has an empty class_type."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node {node_id} has no class_type")
        self.node_id: str = node_id


# ============================================================================
# Wire decoding errors
# ============================================================================


class MalformedRecordError(ComfyClientError):
    """Positional record from the server violates the expected tuple shape.

    Not a ValueError subclass: pydantic validators re-raise it unwrapped.
    """

    def __init__(self, message: str, location: str | None = None) -> None:
        """Initialize MalformedRecordError.

        Args:
            message: What was wrong with the record
            location: Where the record came from (e.g. "queue_pending[3]")
        """
        full = f"Malformed record at {location}: {message}" if location else f"Malformed record: {message}"
        super().__init__(full)
        self.location: str | None = location


class MessageDecodeError(ComfyClientError):
    """Event stream frame could not be decoded."""

    def __init__(self, message: str, raw: str | bytes | None = None) -> None:
        super().__init__(message)
        self.raw: str | bytes | None = raw


class WrongMessageTypeError(ComfyClientError):
    """Typed payload requested for a message of a different type."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(f"Expected {expected} message, got {actual}")
        self.expected: str = expected
        self.actual: str = actual


# ============================================================================
# Submission and execution errors
# ============================================================================


class RemoteRejectionError(ComfyClientError):
    """Server rejected a submitted workflow with node errors."""

    def __init__(self, node_errors: JSONObject, error: object | None = None) -> None:
        """Initialize RemoteRejectionError.

        Args:
            node_errors: Raw node error map returned by the server
            error: Top-level error object, if the server sent one
        """
        msg = f"Workflow rejected by server: {len(node_errors)} node(s) with errors"
        if error:
            msg = f"{msg} ({error})"
        super().__init__(msg)
        self.node_errors: JSONObject = node_errors
        self.error: object | None = error


class ExecutionError(ComfyClientError):
    """A node raised an error while the workflow was running."""

    def __init__(self, error: ExecutionErrorData) -> None:
        msg = (
            f"Prompt {error.prompt_id} failed in node {error.node_id} ({error.node_type}): "
            f"{error.exception_type}: {error.exception_message}"
        )
        super().__init__(msg)
        self.error: ExecutionErrorData = error

    @property
    def traceback(self) -> list[str]:
        return self.error.traceback


class StreamClosedError(ComfyClientError):
    """Event stream ended while trackers were still waiting."""

    pass


class WaitCancelledError(ComfyClientError):
    """Wait for a prompt was cancelled by the caller."""

    def __init__(self, prompt_id: str) -> None:
        super().__init__(f"Wait for prompt {prompt_id} cancelled")
        self.prompt_id: str = prompt_id


class WaitTimeoutError(ComfyClientError, TimeoutError):
    """Prompt did not reach a terminal state before the deadline."""

    def __init__(self, prompt_id: str, timeout: float, state: ProgressState | None = None) -> None:
        """Initialize WaitTimeoutError.

        Args:
            prompt_id: Prompt that was being waited on
            timeout: Timeout in seconds
            state: Last progress snapshot, if available
        """
        msg = f"Prompt {prompt_id} timeout after {timeout}s"
        if state is not None:
            msg = f"{msg} (status: {state.status.value}"
            if state.decode_errors:
                msg = f"{msg}, {len(state.decode_errors)} undecodable message(s)"
            msg = f"{msg})"
        super().__init__(msg)
        self.prompt_id: str = prompt_id
        self.timeout: float = timeout
        self.state: ProgressState | None = state
