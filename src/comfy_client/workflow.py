"""Workflow (prompt) graph model and builder.

A workflow maps caller-chosen node ids to nodes. Each node names a server-side
``class_type`` and a map of inputs; an input is either a literal or a link
``[producer_node_id, output_slot]`` to another node's output.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, RootModel

from .exceptions import (
    EmptyWorkflowError,
    InputNotFoundError,
    MissingNodeTypeError,
    NodeNotFoundError,
)
from .types import JSONObject, JSONValue


def _normalize(value: object) -> JSONValue:
    """Convert tuples (e.g. link references) to lists so values match their JSON form."""
    if isinstance(value, tuple | list):
        return [_normalize(item) for item in value]
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    return value  # type: ignore[return-value]


def make_link(source_id: str, source_output: int) -> list[JSONValue]:
    """Build a link reference to output slot ``source_output`` of ``source_id``."""
    return [source_id, source_output]


def is_link(value: object) -> bool:
    """Return True if an input value is a ``[node_id, slot]`` link reference."""
    return (
        isinstance(value, list | tuple)
        and len(value) == 2
        and isinstance(value[0], str)
        and isinstance(value[1], int)
        and not isinstance(value[1], bool)
    )


class Node(BaseModel):
    """A single node in a workflow."""

    # UI exports carry extra keys such as "_meta"; keep them for round-trips.
    model_config = ConfigDict(extra="allow")

    class_type: str = Field("", description="Server-side node class name")
    inputs: dict[str, JSONValue] = Field(default_factory=dict, description="Input name to literal or link")


class Workflow(RootModel[dict[str, Node]]):
    """Mutable node graph submitted to the server as a prompt."""

    root: dict[str, Node] = Field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.root)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.root

    # ------------------------------------------------------------------
    # Node operations
    # ------------------------------------------------------------------

    def add_node(self, node_id: str, class_type: str, inputs: dict[str, object] | None = None) -> None:
        """Add a node, replacing any node already using ``node_id``."""
        self.root[node_id] = Node(
            class_type=class_type,
            inputs={name: _normalize(value) for name, value in (inputs or {}).items()},
        )

    def remove_node(self, node_id: str) -> None:
        """Remove a node. Removing an unknown id is a no-op."""
        _ = self.root.pop(node_id, None)

    def get_node(self, node_id: str) -> Node | None:
        return self.root.get(node_id)

    def set_node_input(self, node_id: str, input_name: str, value: object) -> None:
        """Set one input of a node.

        Raises:
            NodeNotFoundError: If node_id is not in the workflow
        """
        node = self.root.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        node.inputs[input_name] = _normalize(value)

    def get_node_input(self, node_id: str, input_name: str) -> JSONValue:
        """Get one input of a node.

        Raises:
            NodeNotFoundError: If node_id is not in the workflow
            InputNotFoundError: If the node has no such input
        """
        node = self.root.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        if input_name not in node.inputs:
            raise InputNotFoundError(node_id, input_name)
        return node.inputs[input_name]

    def node_ids(self) -> list[str]:
        return list(self.root)

    def nodes_by_class(self, class_type: str) -> dict[str, Node]:
        return {node_id: node for node_id, node in self.root.items() if node.class_type == class_type}

    def clone(self) -> Workflow:
        """Return a structurally independent deep copy."""
        return self.model_copy(deep=True)

    def validate_workflow(self) -> None:
        """Shallow validation before submission.

        Link references are not checked; the server validates those.

        Raises:
            EmptyWorkflowError: If the workflow has no nodes
            MissingNodeTypeError: If a node has an empty class_type
        """
        if not self.root:
            raise EmptyWorkflowError()

        for node_id, node in self.root.items():
            if not node.class_type:
                raise MissingNodeTypeError(node_id)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> JSONObject:
        """Return the wire form (a fresh copy, safe to send while mutating self)."""
        return self.model_dump(mode="json")  # type: ignore[return-value]

    @classmethod
    def from_file(cls, path: Path | str) -> Workflow:
        """Load a workflow saved in API format.

        Raises:
            FileNotFoundError: If the file does not exist
            pydantic.ValidationError: If the file is not a valid workflow
        """
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))

    def save(self, path: Path | str) -> None:
        """Write the workflow as indented JSON."""
        _ = Path(path).write_text(self.model_dump_json(indent=2), encoding="utf-8")


def load_workflow(path: Path | str) -> Workflow:
    return Workflow.from_file(path)


def save_workflow(workflow: Workflow, path: Path | str) -> None:
    workflow.save(path)


class WorkflowBuilder:
    """Builds workflows programmatically with automatic node ids.

    Example:
        builder = WorkflowBuilder()
        ckpt = builder.add_node("CheckpointLoaderSimple", {"ckpt_name": "sd15.safetensors"})
        text = builder.add_node("CLIPTextEncode", {"text": "a red fox"})
        builder.connect(ckpt, 1, text, "clip")
        workflow = builder.build()
    """

    def __init__(self, start_id: int = 1) -> None:
        self._workflow: Workflow = Workflow()
        self._next_id: int = start_id

    def _allocate_id(self) -> str:
        # Skip ids taken through add_node_with_id
        while str(self._next_id) in self._workflow:
            self._next_id += 1
        node_id = str(self._next_id)
        self._next_id += 1
        return node_id

    def add_node(self, class_type: str, inputs: dict[str, object] | None = None) -> str:
        """Add a node with the next sequential id and return that id."""
        node_id = self._allocate_id()
        self._workflow.add_node(node_id, class_type, inputs)
        return node_id

    def add_node_with_id(self, node_id: str, class_type: str, inputs: dict[str, object] | None = None) -> str:
        self._workflow.add_node(node_id, class_type, inputs)
        return node_id

    def connect(self, source_id: str, source_output: int, target_id: str, target_input: str) -> None:
        """Feed output slot ``source_output`` of ``source_id`` into ``target_input`` of ``target_id``.

        Raises:
            NodeNotFoundError: If the target node does not exist
        """
        self._workflow.set_node_input(target_id, target_input, make_link(source_id, source_output))

    def build(self) -> Workflow:
        """Return the workflow being built (not a copy)."""
        return self._workflow
