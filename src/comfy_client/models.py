"""Pydantic models for the ComfyUI client.

Mirrors server response shapes. History and queue responses carry positional
arrays; those fields are decoded by ``comfy_client.records`` from within the
models' own validation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .types import JSONObject, JSONValue
from .workflow import Workflow

if TYPE_CHECKING:
    from .messages import ExecutionErrorData


class ImageInfo(BaseModel):
    """Reference to an image stored on the server."""

    filename: str = Field(..., description="File name")
    subfolder: str = Field("", description="Subfolder within the storage directory")
    type: str = Field("output", description="Storage class (input, output, temp)")


class NodeOutput(BaseModel):
    """Artifacts produced by one node."""

    # Custom nodes emit other output kinds (gifs, audio, ...); keep them.
    model_config = ConfigDict(extra="allow")

    images: list[ImageInfo] = Field(default_factory=list, description="Produced images")
    text: list[str] = Field(default_factory=list, description="Produced text outputs")


class HistoryStatus(BaseModel):
    """Execution status recorded in history."""

    status_str: str = Field("", description="Human readable status (success, error)")
    completed: bool = Field(False, description="Whether the prompt finished")
    messages: list[JSONValue] = Field(default_factory=list, description="[event_type, data] pairs")

    def execution_error(self) -> ExecutionErrorData | None:
        """Return the recorded execution_error message, if any."""
        from .messages import ExecutionErrorData, MessageType

        for message in self.messages:
            if (
                isinstance(message, list)
                and len(message) == 2
                and message[0] == MessageType.EXECUTION_ERROR
                and isinstance(message[1], dict)
            ):
                return ExecutionErrorData.model_validate(message[1])
        return None


class PromptHeader(BaseModel):
    """Decoded ``[number, prompt_id, prompt, extra_data, outputs_to_execute]`` tuple."""

    number: int | float = Field(..., description="Queue order number")
    prompt_id: str = Field(..., description="Prompt identifier")
    workflow: Workflow = Field(default_factory=Workflow, description="Submitted workflow")
    extra_data: JSONObject | None = Field(None, description="Caller metadata echoed back")
    outputs_to_execute: list[str] | None = Field(None, description="Requested output node ids")

    def to_array(self) -> list[JSONValue]:
        """Re-encode into the positional wire form."""
        arr: list[JSONValue] = [self.number, self.prompt_id, self.workflow.to_dict()]
        if self.extra_data is not None or self.outputs_to_execute is not None:
            arr.append(self.extra_data if self.extra_data is not None else {})
        if self.outputs_to_execute is not None:
            arr.append(list(self.outputs_to_execute))
        return arr


class QueueItem(PromptHeader):
    """One running or pending queue slot."""

    pass


class HistoryItem(BaseModel):
    """History entry for one prompt."""

    prompt: PromptHeader = Field(..., description="Decoded prompt tuple")
    outputs: dict[str, NodeOutput] = Field(default_factory=dict, description="Node id to outputs")
    status: HistoryStatus = Field(default_factory=HistoryStatus, description="Execution status")

    @field_validator("prompt", mode="before")
    @classmethod
    def _decode_prompt(cls, value: object) -> object:
        if isinstance(value, PromptHeader):
            return value

        from .records import decode_prompt_array

        return decode_prompt_array(value, location="history.prompt")

    @property
    def images(self) -> list[ImageInfo]:
        """All images across all nodes."""
        return [image for output in self.outputs.values() for image in output.images]


class QueueStatus(BaseModel):
    """Running and pending queue listing."""

    queue_running: list[QueueItem] = Field(default_factory=list, description="Currently executing")
    queue_pending: list[QueueItem] = Field(default_factory=list, description="Waiting to execute")

    @field_validator("queue_running", "queue_pending", mode="before")
    @classmethod
    def _decode_slots(cls, value: object, info: ValidationInfo) -> object:
        from .records import decode_queue_items

        list_name = "running" if info.field_name == "queue_running" else "pending"
        return decode_queue_items(value, list_name)

    @property
    def running(self) -> list[QueueItem]:
        return self.queue_running

    @property
    def pending(self) -> list[QueueItem]:
        return self.queue_pending


class QueuePromptResponse(BaseModel):
    """Response from submitting a prompt."""

    prompt_id: str = Field(..., description="Prompt identifier")
    number: int = Field(0, description="Queue order number")
    node_errors: JSONObject = Field(default_factory=dict, description="Per-node validation errors")


class UploadImageResponse(BaseModel):
    """Response from uploading an image."""

    name: str = Field(..., description="Stored file name (may differ from the uploaded name)")
    subfolder: str = Field("", description="Subfolder the file was stored in")
    type: str = Field("input", description="Storage class")

    def as_image_info(self) -> ImageInfo:
        return ImageInfo(filename=self.name, subfolder=self.subfolder, type=self.type)


# ============================================================================
# Server info
# ============================================================================


class SystemInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    os: str = ""
    python_version: str = ""
    embedded_python: bool = False


class DeviceInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = ""
    type: str = ""
    index: int | None = None
    vram_total: int = 0
    vram_free: int = 0
    torch_vram_total: int = 0
    torch_vram_free: int = 0


class SystemStats(BaseModel):
    """Response schema for /system_stats."""

    system: SystemInfo = Field(default_factory=SystemInfo)
    devices: list[DeviceInfo] = Field(default_factory=list)


class NodeInputInfo(BaseModel):
    required: JSONObject = Field(default_factory=dict)
    optional: JSONObject = Field(default_factory=dict)
    hidden: JSONObject = Field(default_factory=dict)


class NodeClassInfo(BaseModel):
    """Node class description from /object_info."""

    model_config = ConfigDict(extra="allow")

    input: NodeInputInfo = Field(default_factory=NodeInputInfo)
    output: list[JSONValue] = Field(default_factory=list)
    output_name: list[str] = Field(default_factory=list)
    name: str = ""
    display_name: str = ""
    description: str = ""
    category: str = ""
    output_node: bool = False


# ============================================================================
# Execution result
# ============================================================================


class ExecutionResult(BaseModel):
    """Final result of a completed prompt, assembled from events and history."""

    prompt_id: str
    images: list[ImageInfo] = Field(default_factory=list)
    outputs: dict[str, NodeOutput] = Field(default_factory=dict)
    status: HistoryStatus = Field(default_factory=HistoryStatus)
    start_time: float = Field(..., description="Wall-clock start (seconds since epoch)")
    end_time: float = Field(..., description="Wall-clock end (seconds since epoch)")

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time
