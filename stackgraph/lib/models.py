import json
import re
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Attribute name used for a resource's own identity
REF_ATTRIBUTE = "Ref"

LOGICAL_ID_PATTERN = re.compile(r"^[A-Za-z0-9]+$")


class StackState(str, Enum):
    """Enumeration of stack lifecycle states"""
    BUILDING = "BUILDING"
    SYNTHESIZING = "SYNTHESIZING"
    SYNTHESIZED = "SYNTHESIZED"
    EXPORTED = "EXPORTED"
    FAILED = "FAILED"


class Literal(BaseModel):
    """Explicitly tagged literal value"""
    model_config = ConfigDict(frozen=True)

    value: Any


class Reference(BaseModel):
    """Pointer to the identity or an attribute of another resource"""
    model_config = ConfigDict(frozen=True)

    target_id: str
    attribute: str = REF_ATTRIBUTE
    stack_name: Optional[str] = None

    @property
    def is_identity(self) -> bool:
        return self.attribute == REF_ATTRIBUTE

    def marker(self) -> str:
        """Late-binding marker understood by the applier"""
        if self.is_identity:
            return f"${{Ref:{self.target_id}}}"
        return f"${{GetAtt:{self.target_id}.{self.attribute}}}"


class ExportHandle(BaseModel):
    """Import of a named output published by another stack"""
    model_config = ConfigDict(frozen=True)

    source_stack: str
    output_name: str

    def marker(self) -> str:
        return f"${{ImportValue:{self.source_stack}:{self.output_name}}}"


class DeferredToken(BaseModel):
    """Placeholder for a value whose source has not been synthesized yet"""
    model_config = ConfigDict(frozen=True)

    source: Union[Reference, ExportHandle]

    def marker(self) -> str:
        return self.source.marker()


class Join(BaseModel):
    """String assembled from literal and token parts"""
    parts: List[Any]
    delimiter: str = ""


Value = Union[Literal, Reference, DeferredToken, ExportHandle, Join]

TOKEN_TYPES = (Reference, DeferredToken, ExportHandle)


def iter_tokens(value: Any) -> Iterator[Union[Reference, DeferredToken, ExportHandle]]:
    """
    Yield every token embedded in a property value

    Args:
        value: Literal, token, or any nesting of lists, mappings and joins

    Returns:
        Iterator over tokens in document order
    """
    if isinstance(value, TOKEN_TYPES):
        yield value
    elif isinstance(value, Join):
        for part in value.parts:
            yield from iter_tokens(part)
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_tokens(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_tokens(item)


def transform_value(
    value: Any,
    on_token: Callable[[Any], Any],
    on_join: Optional[Callable[[Join], Any]] = None
) -> Any:
    """
    Rebuild a property value with every token replaced

    Args:
        value: Value to rebuild
        on_token: Called with each Reference, DeferredToken or ExportHandle
        on_join: Called with each Join after its parts were rebuilt

    Returns:
        New value; the input is left untouched
    """
    if isinstance(value, TOKEN_TYPES):
        return on_token(value)
    if isinstance(value, Literal):
        return value.value
    if isinstance(value, Join):
        join = Join(
            parts=[transform_value(part, on_token, on_join) for part in value.parts],
            delimiter=value.delimiter
        )
        return on_join(join) if on_join else join
    if isinstance(value, dict):
        return {key: transform_value(item, on_token, on_join) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [transform_value(item, on_token, on_join) for item in value]
    return value


class ResourceNode(BaseModel):
    """Model representing one declared infrastructure resource"""
    logical_id: str
    kind: str
    properties: Dict[str, Any] = Field(default_factory=dict)
    explicit_depends_on: List[str] = Field(default_factory=list)
    stack_name: Optional[str] = None
    insertion_index: int = 0

    @field_validator("logical_id")
    @classmethod
    def logical_id_must_be_alphanumeric(cls, v):
        if not LOGICAL_ID_PATTERN.match(v):
            raise ValueError(f"Logical id must be alphanumeric: {v!r}")
        return v

    @field_validator("kind")
    @classmethod
    def kind_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError("Resource kind must not be empty")
        return v

    @property
    def ref(self) -> Reference:
        """Reference to this resource's identity"""
        return Reference(target_id=self.logical_id, stack_name=self.stack_name)

    def get_att(self, attribute: str) -> Reference:
        """Reference to a provider-computed attribute of this resource"""
        return Reference(
            target_id=self.logical_id,
            attribute=attribute,
            stack_name=self.stack_name
        )

    def references(self) -> List[Reference]:
        """References embedded in the property bag, first occurrence order"""
        seen = []
        for token in iter_tokens(self.properties):
            if isinstance(token, DeferredToken):
                token = token.source
            if isinstance(token, Reference) and token not in seen:
                seen.append(token)
        return seen

    def export_handles(self) -> List[ExportHandle]:
        """Cross-stack imports embedded in the property bag"""
        seen = []
        for token in iter_tokens(self.properties):
            if isinstance(token, DeferredToken):
                token = token.source
            if isinstance(token, ExportHandle) and token not in seen:
                seen.append(token)
        return seen

    def dependency_ids(self) -> List[str]:
        """Implied and explicit dependencies merged without duplicates"""
        merged = []
        for logical_id in [ref.target_id for ref in self.references()] + self.explicit_depends_on:
            if logical_id not in merged:
                merged.append(logical_id)
        return merged


class StackOutput(BaseModel):
    """Named value published by a stack"""
    name: str
    value: Any
    description: Optional[str] = None
    export_name: Optional[str] = None


class CrossStackExport(BaseModel):
    """Entry of the export table shared between stacks"""
    source_stack: str
    output_name: str
    value: Any

    @property
    def is_resolved(self) -> bool:
        return not isinstance(self.value, DeferredToken)


class ManifestEntry(BaseModel):
    """Resource description emitted by synthesis"""
    logical_id: str
    kind: str
    properties: Dict[str, Any] = Field(default_factory=dict)
    depends_on: List[str] = Field(default_factory=list)


class OutputEntry(BaseModel):
    """Output description emitted by synthesis"""
    value: Any
    description: Optional[str] = None
    export_name: Optional[str] = None
    resolved: bool = True


class SynthesizedManifest(BaseModel):
    """Ordered, resolved description of one stack"""
    stack_name: str
    resources: List[ManifestEntry] = Field(default_factory=list)
    outputs: Dict[str, OutputEntry] = Field(default_factory=dict)
    imports: List[str] = Field(default_factory=list)

    def logical_ids(self) -> List[str]:
        return [entry.logical_id for entry in self.resources]

    def resource(self, logical_id: str) -> ManifestEntry:
        for entry in self.resources:
            if entry.logical_id == logical_id:
                return entry
        raise KeyError(logical_id)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()

    def to_json(self) -> str:
        """Canonical JSON rendering; identical manifests give identical bytes"""
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SynthesizedManifest':
        return cls(**data)


class MaterializedState(BaseModel):
    """Attribute values reported by the applier, keyed by stack and logical id"""
    stacks: Dict[str, Dict[str, Dict[str, Any]]] = Field(default_factory=dict)

    def for_stack(self, stack_name: str) -> Dict[str, Dict[str, Any]]:
        return self.stacks.get(stack_name, {})

    @classmethod
    def from_file(cls, path: str) -> 'MaterializedState':
        """Load state written by the applier as {"stacks": {...}}"""
        with open(path, "r", encoding="utf-8") as f:
            return cls(**json.load(f))
