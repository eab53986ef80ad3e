"""Python client library for the ComfyUI server.

Public API exports for client library usage.
"""

from .comfy_client import ComfyClient
from .config import ComfyClientConfig
from .event_stream import EventStream
from .exceptions import (
    ComfyClientError,
    EmptyWorkflowError,
    ExecutionError,
    InputNotFoundError,
    MalformedRecordError,
    MessageDecodeError,
    MissingNodeTypeError,
    NodeNotFoundError,
    RemoteRejectionError,
    StreamClosedError,
    WaitCancelledError,
    WaitTimeoutError,
    WorkflowValidationError,
    WrongMessageTypeError,
)
from .messages import (
    EventMessage,
    ExecutedData,
    ExecutingData,
    ExecutionCachedData,
    ExecutionErrorData,
    MessageType,
    ProgressData,
    StatusData,
    parse_message,
)
from .models import (
    ExecutionResult,
    HistoryItem,
    HistoryStatus,
    ImageInfo,
    NodeClassInfo,
    NodeOutput,
    PromptHeader,
    QueueItem,
    QueuePromptResponse,
    QueueStatus,
    SystemStats,
    UploadImageResponse,
)
from .records import decode_history, decode_prompt_array, decode_queue_item, decode_queue_status
from .server_config import ServerConfig
from .tracker import ProgressState, ProgressTracker, TrackerStatus
from .workflow import Node, Workflow, WorkflowBuilder, is_link, load_workflow, make_link, save_workflow

__all__ = [
    # Client
    "ComfyClient",
    "EventStream",
    # Configuration
    "ComfyClientConfig",
    "ServerConfig",
    # Workflow
    "Node",
    "Workflow",
    "WorkflowBuilder",
    "load_workflow",
    "save_workflow",
    "make_link",
    "is_link",
    # Models
    "ImageInfo",
    "NodeOutput",
    "HistoryStatus",
    "HistoryItem",
    "PromptHeader",
    "QueueItem",
    "QueueStatus",
    "QueuePromptResponse",
    "UploadImageResponse",
    "SystemStats",
    "NodeClassInfo",
    "ExecutionResult",
    # Records
    "decode_prompt_array",
    "decode_queue_item",
    "decode_queue_status",
    "decode_history",
    # Messages
    "MessageType",
    "EventMessage",
    "StatusData",
    "ExecutingData",
    "ProgressData",
    "ExecutedData",
    "ExecutionCachedData",
    "ExecutionErrorData",
    "parse_message",
    # Progress
    "TrackerStatus",
    "ProgressState",
    "ProgressTracker",
    # Exceptions
    "ComfyClientError",
    "NodeNotFoundError",
    "InputNotFoundError",
    "WorkflowValidationError",
    "EmptyWorkflowError",
    "MissingNodeTypeError",
    "MalformedRecordError",
    "MessageDecodeError",
    "WrongMessageTypeError",
    "RemoteRejectionError",
    "ExecutionError",
    "StreamClosedError",
    "WaitCancelledError",
    "WaitTimeoutError",
]
