"""Decoding of the server's positional (tuple-encoded) records.

The server stores each queued prompt as the tuple
``(number, prompt_id, prompt, extra_data, outputs_to_execute)`` and serializes
it as a JSON array in two places:

- history responses, under ``{prompt_id: {"prompt": [...]}}``
- queue responses, as elements of ``queue_running`` / ``queue_pending``

Both are decoded here by index, never by field name.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

from pydantic import TypeAdapter

from .exceptions import MalformedRecordError
from .models import HistoryItem, PromptHeader, QueueItem, QueueStatus
from .workflow import Node, Workflow

if TYPE_CHECKING:
    from .types import JSONObject, JSONValue

logger = logging.getLogger(__name__)

# Tuple positions
NUMBER_INDEX = 0
PROMPT_ID_INDEX = 1
WORKFLOW_INDEX = 2
EXTRA_DATA_INDEX = 3
OUTPUTS_INDEX = 4

MIN_RECORD_LENGTH = 3

_HISTORY_ADAPTER: TypeAdapter[dict[str, HistoryItem]] = TypeAdapter(dict[str, HistoryItem])


def decode_workflow(data: object) -> Workflow:
    """Best-effort decode of a ``{node_id: {"class_type", "inputs"}}`` object.

    Entries that are not objects are skipped; a missing class_type becomes ""
    and missing or non-object inputs become an empty map.
    """
    workflow = Workflow()
    if not isinstance(data, dict):
        if data is not None:
            logger.warning(f"Expected workflow object, got {type(data).__name__}; using empty workflow")
        return workflow

    nodes = cast(dict[str, object], data)
    for node_id, node_raw in nodes.items():
        if not isinstance(node_raw, dict):
            logger.debug(f"Skipping non-object node {node_id!r} in workflow")
            continue

        node_data = cast(dict[str, object], node_raw)
        class_type = node_data.get("class_type")
        inputs = node_data.get("inputs")
        extra = {k: v for k, v in node_data.items() if k not in ("class_type", "inputs")}

        workflow.root[str(node_id)] = Node(
            class_type=class_type if isinstance(class_type, str) else "",
            inputs=cast("dict[str, JSONValue]", inputs) if isinstance(inputs, dict) else {},
            **extra,
        )

    return workflow


def _decode_tuple[T: PromptHeader](raw: object, location: str, model: type[T]) -> T:
    if not isinstance(raw, list):
        msg = f"expected array, got {type(raw).__name__}"
        raise MalformedRecordError(msg, location)

    arr = cast(list[object], raw)
    if len(arr) < MIN_RECORD_LENGTH:
        msg = f"expected at least {MIN_RECORD_LENGTH} elements, got {len(arr)}"
        raise MalformedRecordError(msg, location)

    number = arr[NUMBER_INDEX]
    if isinstance(number, bool) or not isinstance(number, int | float):
        msg = f"position {NUMBER_INDEX} (number) must be numeric, got {type(number).__name__}"
        raise MalformedRecordError(msg, location)

    prompt_id = arr[PROMPT_ID_INDEX]
    if not isinstance(prompt_id, str):
        msg = f"position {PROMPT_ID_INDEX} (prompt_id) must be a string, got {type(prompt_id).__name__}"
        raise MalformedRecordError(msg, location)

    extra_data: JSONObject | None = None
    if len(arr) > EXTRA_DATA_INDEX:
        extra_raw = arr[EXTRA_DATA_INDEX]
        extra_data = cast("JSONObject", extra_raw) if isinstance(extra_raw, dict) else {}

    outputs_to_execute: list[str] | None = None
    if len(arr) > OUTPUTS_INDEX:
        outputs_raw = arr[OUTPUTS_INDEX]
        outputs_list = cast(list[object], outputs_raw) if isinstance(outputs_raw, list) else []
        outputs_to_execute = [item for item in outputs_list if isinstance(item, str)]

    return model(
        number=number,
        prompt_id=prompt_id,
        workflow=decode_workflow(arr[WORKFLOW_INDEX]),
        extra_data=extra_data,
        outputs_to_execute=outputs_to_execute,
    )


def decode_prompt_array(raw: object, location: str = "prompt") -> PromptHeader:
    """Decode a history entry's ``prompt`` array.

    Args:
        raw: JSON array of length >= 3
        location: Description of where the array came from, used in errors

    Returns:
        PromptHeader with extra_data / outputs_to_execute set only when present

    Raises:
        MalformedRecordError: If the array is too short or positions 0/1 are mistyped
    """
    return _decode_tuple(raw, location, PromptHeader)


def decode_queue_item(raw: object, list_name: str, index: int) -> QueueItem:
    """Decode one queue slot; errors name the list and index."""
    return _decode_tuple(raw, f"queue_{list_name}[{index}]", QueueItem)


def decode_queue_items(raw: object, list_name: str) -> list[QueueItem]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        msg = f"expected array of slots, got {type(raw).__name__}"
        raise MalformedRecordError(msg, f"queue_{list_name}")

    items = cast(list[object], raw)
    return [decode_queue_item(item, list_name, index) for index, item in enumerate(items)]


def decode_queue_status(data: object) -> QueueStatus:
    """Decode a /queue response.

    Raises:
        ValueError: If the response is not an object
        MalformedRecordError: If any slot is malformed
    """
    if not isinstance(data, dict):
        msg = f"Invalid response format: expected dict, got {type(data)}"
        raise ValueError(msg)
    return QueueStatus.model_validate(data)


def decode_history(data: object) -> dict[str, HistoryItem]:
    """Decode a /history response into prompt_id -> HistoryItem.

    Raises:
        ValueError: If the response is not an object
        MalformedRecordError: If any entry's prompt array is malformed
    """
    if not isinstance(data, dict):
        msg = f"Invalid response format: expected dict, got {type(data)}"
        raise ValueError(msg)
    return _HISTORY_ADAPTER.validate_python(data)
