"""Event stream message decoding.

Each WebSocket text frame is a JSON object ``{"type": ..., "data": {...}}``.
``parse_message`` classifies a frame into an ``EventMessage``; the typed
accessors project the untyped ``data`` map into a payload model per type.
Unknown types are kept with their raw data.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import cast

from pydantic import BaseModel, Field, ValidationError

from .exceptions import MessageDecodeError, WrongMessageTypeError
from .models import ImageInfo
from .types import JSONObject, JSONValue


class MessageType(StrEnum):
    """Known event types."""

    STATUS = "status"
    EXECUTING = "executing"
    PROGRESS = "progress"
    EXECUTED = "executed"
    EXECUTION_CACHED = "execution_cached"
    EXECUTION_ERROR = "execution_error"


# ============================================================================
# Payload models
# ============================================================================


class StatusData(BaseModel):
    """Global queue depth broadcast."""

    queue_remaining: int = Field(0, description="Prompts left in the queue")
    sid: str | None = Field(None, description="Session id assigned by the server")


class ExecutingData(BaseModel):
    """A node started; an empty node means the whole prompt finished."""

    prompt_id: str | None = Field(None, description="Prompt identifier")
    node: str | None = Field(None, description="Node id now executing")

    @property
    def is_finished(self) -> bool:
        return not self.node


class ProgressData(BaseModel):
    """Step counters for the node currently running (e.g. a sampler loop)."""

    value: int = Field(..., description="Current step")
    max: int = Field(..., description="Total steps")
    prompt_id: str | None = Field(None, description="Prompt identifier (newer servers)")
    node: str | None = Field(None, description="Node id (newer servers)")

    @property
    def percentage(self) -> float:
        return progress_percentage(self.value, self.max)


class ExecutedData(BaseModel):
    """A node finished and produced outputs."""

    prompt_id: str = Field(..., description="Prompt identifier")
    node: str = Field(..., description="Node id")
    output: JSONObject = Field(default_factory=dict, description="Free-form output map")

    @property
    def images(self) -> list[ImageInfo]:
        """Images listed in the output.

        Raises:
            MessageDecodeError: If an image entry lacks required fields
        """
        images_raw = self.output.get("images")
        if not isinstance(images_raw, list):
            return []
        try:
            return [ImageInfo.model_validate(item) for item in images_raw if isinstance(item, dict)]
        except ValidationError as e:
            msg = f"Invalid image entry in output of node {self.node}: {e}"
            raise MessageDecodeError(msg) from e


class ExecutionCachedData(BaseModel):
    """Nodes skipped because their results were cached."""

    nodes: list[str] = Field(default_factory=list, description="Cached node ids")
    prompt_id: str | None = Field(None, description="Prompt identifier")


class ExecutionErrorData(BaseModel):
    """A node raised an exception."""

    prompt_id: str = Field(..., description="Prompt identifier")
    node_id: str = Field("", description="Failing node id")
    node_type: str = Field("", description="Failing node class_type")
    exception_type: str = Field("", description="Exception class name")
    exception_message: str = Field("", description="Exception message")
    traceback: list[str] = Field(default_factory=list, description="Formatted traceback lines")


_PAYLOAD_MODELS: dict[MessageType, type[BaseModel]] = {
    MessageType.EXECUTING: ExecutingData,
    MessageType.PROGRESS: ProgressData,
    MessageType.EXECUTED: ExecutedData,
    MessageType.EXECUTION_CACHED: ExecutionCachedData,
    MessageType.EXECUTION_ERROR: ExecutionErrorData,
}


def progress_percentage(value: int, maximum: int) -> float:
    """Percentage of value/maximum, clamped to [0, 100]; 0 when maximum is 0."""
    if maximum <= 0:
        return 0.0
    return min(max(value / maximum * 100, 0.0), 100.0)


# ============================================================================
# Event message
# ============================================================================


class EventMessage(BaseModel):
    """One decoded event stream frame."""

    type: str = Field(..., description="Event type discriminator")
    data: JSONObject = Field(default_factory=dict, description="Type-specific payload")

    @property
    def message_type(self) -> MessageType | None:
        """Known type, or None for types this client does not recognize."""
        try:
            return MessageType(self.type)
        except ValueError:
            return None

    @property
    def is_known(self) -> bool:
        return self.message_type is not None

    @property
    def prompt_id(self) -> str | None:
        value = self.data.get("prompt_id")
        return value if isinstance(value, str) and value else None

    def _project[T: BaseModel](self, expected: MessageType, model: type[T]) -> T:
        if self.type != expected:
            raise WrongMessageTypeError(expected.value, self.type)
        try:
            return model.model_validate(self.data)
        except ValidationError as e:
            msg = f"Invalid {self.type} payload: {e}"
            raise MessageDecodeError(msg) from e

    def executing_data(self) -> ExecutingData:
        return self._project(MessageType.EXECUTING, ExecutingData)

    def progress_data(self) -> ProgressData:
        return self._project(MessageType.PROGRESS, ProgressData)

    def executed_data(self) -> ExecutedData:
        return self._project(MessageType.EXECUTED, ExecutedData)

    def execution_cached_data(self) -> ExecutionCachedData:
        return self._project(MessageType.EXECUTION_CACHED, ExecutionCachedData)

    def execution_error_data(self) -> ExecutionErrorData:
        return self._project(MessageType.EXECUTION_ERROR, ExecutionErrorData)

    def status_data(self) -> StatusData:
        if self.type != MessageType.STATUS:
            raise WrongMessageTypeError(MessageType.STATUS.value, self.type)

        # {"status": {"exec_info": {"queue_remaining": n}}, "sid": "..."}
        status = self.data.get("status")
        exec_info = status.get("exec_info") if isinstance(status, dict) else None
        remaining = exec_info.get("queue_remaining") if isinstance(exec_info, dict) else 0
        sid = self.data.get("sid")
        return StatusData(
            queue_remaining=remaining if isinstance(remaining, int) and not isinstance(remaining, bool) else 0,
            sid=sid if isinstance(sid, str) else None,
        )

    def payload(self) -> BaseModel | JSONObject:
        """Typed payload for known types, raw data for unknown ones.

        Raises:
            MessageDecodeError: If a known type's payload is missing required fields
        """
        message_type = self.message_type
        if message_type is None:
            return self.data
        if message_type is MessageType.STATUS:
            return self.status_data()
        return self._project(message_type, _PAYLOAD_MODELS[message_type])


def parse_message(raw: str | bytes) -> EventMessage:
    """Decode one raw frame.

    Args:
        raw: Text frame, or a binary frame holding UTF-8 JSON

    Returns:
        EventMessage (unknown types included)

    Raises:
        MessageDecodeError: If the frame is not a JSON object with a string "type"
    """
    try:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        # json.loads returns Any, which we validate immediately
        parsed: object = json.loads(text)  # type: ignore[misc]
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        msg = f"Undecodable event frame: {e}"
        raise MessageDecodeError(msg, raw) from e

    if not isinstance(parsed, dict):
        msg = f"Invalid event frame: expected object, got {type(parsed).__name__}"
        raise MessageDecodeError(msg, raw)

    frame = cast(dict[str, JSONValue], parsed)
    message_type = frame.get("type")
    if not isinstance(message_type, str):
        msg = "Invalid event frame: missing string 'type'"
        raise MessageDecodeError(msg, raw)

    data = frame.get("data")
    return EventMessage(type=message_type, data=data if isinstance(data, dict) else {})
