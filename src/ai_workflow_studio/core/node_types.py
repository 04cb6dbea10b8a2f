"""
Node Type System - Definitions and registry for node kinds.

This module defines how node kinds are specified:
- InputDefinition: Describes a target handle
- OutputDefinition: Describes a source handle
- ParameterDefinition: Describes a user-editable data field
- NodeType: Complete definition of a node kind
- NodeRegistry: Registry of available node kinds
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from ai_workflow_studio.core.data_types import DataType, DataValue, NodeKind

if TYPE_CHECKING:
    from ai_workflow_studio.core.graph import Size2D


class ParameterType(Enum):
    """Types of node parameters (determines UI widget)."""
    TEXT = "text"
    TEXT_MULTILINE = "text_multiline"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    ENUM = "enum"
    IMAGE = "image"             # Uploaded image (data URL)
    MODEL = "model"             # Provider/model selector
    OBJECT = "object"           # Structured value edited by a dedicated widget


class NodeCategory(Enum):
    """Categories for organizing nodes in the library."""
    INPUT = "input"
    OUTPUT = "output"
    GENERATION = "generation"
    FILTER = "filter"
    UTILITY = "utility"


@dataclass
class InputDefinition:
    """
    Definition of a target handle on a node.

    Attributes:
        name: Handle identifier
        label: Display label in UI
        data_type: Type of data accepted
        required: If True, the node cannot execute without this input
        fallback_field: Data field read when no edge targets this handle
    """
    name: str
    label: str
    data_type: DataType
    required: bool = False
    fallback_field: str | None = None
    description: str = ""


@dataclass
class OutputDefinition:
    """
    Definition of a source handle on a node.

    Attributes:
        name: Handle identifier, or prefix when indexed
        label: Display label in UI
        data_type: Type of data produced
        source_field: Data field holding the handle's value
        indexed: Handles are named "<name>-<i>" and read source_field[i]
        count_fields: Data fields whose product is the number of indexed handles
    """
    name: str
    label: str
    data_type: DataType
    source_field: str
    indexed: bool = False
    count_fields: tuple[str, ...] = ()
    description: str = ""

    def matches(self, handle: str) -> bool:
        if not self.indexed:
            return handle == self.name
        return self.index_of(handle) is not None

    def index_of(self, handle: str) -> int | None:
        """Return the cell index encoded in an indexed handle name."""
        prefix = f"{self.name}-"
        if not handle.startswith(prefix):
            return None
        suffix = handle[len(prefix):]
        return int(suffix) if suffix.isdigit() else None

    def handle_count(self, data: dict[str, Any]) -> int | None:
        """
        Number of indexed handles a node currently exposes.

        Cells already produced stay addressable until the next run, so
        the count never drops below the length of source_field. None
        means unbounded.
        """
        if not self.indexed or not self.count_fields:
            return None
        count = 1
        for name in self.count_fields:
            try:
                count *= max(int(data.get(name) or 0), 0)
            except (TypeError, ValueError):
                count = 0
        produced = data.get(self.source_field)
        if isinstance(produced, list):
            count = max(count, len(produced))
        return count


@dataclass
class EnumOption:
    """A single option in an enum parameter."""
    value: str
    label: str


@dataclass
class ParameterDefinition:
    """
    Definition of a user-editable field in a node's data.

    Parameters are read fresh at run time; editing them never changes
    execution state.
    """
    name: str
    label: str
    param_type: ParameterType
    default: DataValue = None
    min_value: float | None = None
    max_value: float | None = None
    options: list[EnumOption] = field(default_factory=list)
    description: str = ""

    @classmethod
    def text(
        cls,
        name: str,
        label: str,
        default: str = "",
        multiline: bool = False,
        description: str = "",
    ) -> ParameterDefinition:
        """Factory for text parameter."""
        return cls(
            name=name,
            label=label,
            param_type=ParameterType.TEXT_MULTILINE if multiline else ParameterType.TEXT,
            default=default,
            description=description,
        )

    @classmethod
    def integer(
        cls,
        name: str,
        label: str,
        default: int = 0,
        min_value: int | None = None,
        max_value: int | None = None,
        description: str = "",
    ) -> ParameterDefinition:
        """Factory for integer parameter."""
        return cls(
            name=name,
            label=label,
            param_type=ParameterType.INTEGER,
            default=default,
            min_value=min_value,
            max_value=max_value,
            description=description,
        )

    @classmethod
    def float_param(
        cls,
        name: str,
        label: str,
        default: float = 0.0,
        min_value: float | None = None,
        max_value: float | None = None,
        description: str = "",
    ) -> ParameterDefinition:
        """Factory for float parameter."""
        return cls(
            name=name,
            label=label,
            param_type=ParameterType.FLOAT,
            default=default,
            min_value=min_value,
            max_value=max_value,
            description=description,
        )

    @classmethod
    def boolean(
        cls,
        name: str,
        label: str,
        default: bool = False,
        description: str = "",
    ) -> ParameterDefinition:
        """Factory for boolean parameter."""
        return cls(
            name=name,
            label=label,
            param_type=ParameterType.BOOLEAN,
            default=default,
            description=description,
        )

    @classmethod
    def enum(
        cls,
        name: str,
        label: str,
        options: list[tuple[str, str]],  # [(value, label), ...]
        default: str | None = None,
        description: str = "",
    ) -> ParameterDefinition:
        """Factory for enum parameter."""
        enum_options = [EnumOption(v, l) for v, l in options]
        return cls(
            name=name,
            label=label,
            param_type=ParameterType.ENUM,
            default=default or (options[0][0] if options else None),
            options=enum_options,
            description=description,
        )

    @classmethod
    def obj(
        cls,
        name: str,
        label: str,
        default: DataValue = None,
        description: str = "",
    ) -> ParameterDefinition:
        """Factory for structured (dict/list) parameter."""
        return cls(
            name=name,
            label=label,
            param_type=ParameterType.OBJECT,
            default=default,
            description=description,
        )


@runtime_checkable
class NodeExecutor(Protocol):
    """Protocol for node execution functions."""

    async def __call__(
        self,
        inputs: dict[str, Any],
        data: dict[str, Any],
        context: Any,
    ) -> dict[str, Any]:
        """
        Execute the node.

        Args:
            inputs: Gathered input values by handle name (absent = missing)
            data: Snapshot of the node's data payload
            context: NodeContext with access to providers and cancellation

        Returns:
            Data fields to merge into the node's payload
        """
        ...


@dataclass
class NodeType:
    """
    Complete definition of a node kind.

    Nodes in a graph reference a NodeType by its kind. The type declares
    the handles used for connection validation, the data fields with their
    defaults, and the executor run by the WorkflowExecutor.
    """
    kind: NodeKind
    name: str
    category: NodeCategory
    description: str = ""

    inputs: list[InputDefinition] = field(default_factory=list)
    outputs: list[OutputDefinition] = field(default_factory=list)
    parameters: list[ParameterDefinition] = field(default_factory=list)

    # Runtime data fields and their initial values
    state_defaults: dict[str, DataValue] = field(default_factory=dict)

    # Data field recorded in history on every successful run
    history_field: str | None = None

    executor: NodeExecutor | None = None

    # UI hints
    default_width: float = 300.0
    default_height: float = 300.0

    def get_input(self, name: str) -> InputDefinition | None:
        """Get an input definition by handle name."""
        for inp in self.inputs:
            if inp.name == name:
                return inp
        return None

    def get_output(self, handle: str) -> OutputDefinition | None:
        """Get the output definition serving a handle name."""
        for out in self.outputs:
            if out.matches(handle):
                return out
        return None

    def get_parameter(self, name: str) -> ParameterDefinition | None:
        """Get a parameter definition by name."""
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def create_default_data(self) -> dict[str, DataValue]:
        """Build a fresh data payload with every field at its default."""
        data = {p.name: p.default for p in self.parameters}
        data.update(self.state_defaults)
        return copy.deepcopy(data)

    def default_size(self) -> Size2D:
        from ai_workflow_studio.core.graph import Size2D
        return Size2D(self.default_width, self.default_height)


class NodeRegistry:
    """
    Registry of available node kinds.

    Built-in kinds are registered by ai_workflow_studio.nodes; tests and
    hosts may build their own registry.
    """

    def __init__(self) -> None:
        self._types: dict[NodeKind, NodeType] = {}

    def register(self, node_type: NodeType) -> None:
        """Register a node type."""
        self._types[node_type.kind] = node_type

    def unregister(self, kind: NodeKind) -> NodeType | None:
        """Unregister a node type."""
        return self._types.pop(kind, None)

    def get(self, kind: NodeKind) -> NodeType | None:
        """Get a node type by kind."""
        return self._types.get(kind)

    def get_all(self) -> list[NodeType]:
        """Get all registered node types."""
        return list(self._types.values())

    def list_by_category(self, category: NodeCategory) -> list[NodeType]:
        """Get all node types in a category."""
        return [t for t in self._types.values() if t.category == category]

    def clear(self) -> None:
        """Remove all registered types (for testing)."""
        self._types.clear()

    def __len__(self) -> int:
        return len(self._types)

    def __contains__(self, kind: NodeKind) -> bool:
        return kind in self._types


