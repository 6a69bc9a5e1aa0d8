from __future__ import annotations
from dataclasses import dataclass, field as dc_field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .metadata import MISSING, AnnotationKind, AnnotationRecord
from .types import TypeNode

ResolveFn = Callable[[Any, Dict[str, Any], Any, Any], Awaitable[Any]]

ROOT_TYPE = 'root'


@dataclass
class SchemaArgument:
    name: str
    node: TypeNode
    description: Optional[str] = None
    default: Any = MISSING


@dataclass
class SchemaField:
    """One field of the finished graph: external name, resolved type and bound resolver.

    ``attr`` is the Python attribute used on the runtime class. ``origins`` are the
    annotation records that declared or implement the field; the authorization tree
    is joined against them.
    """

    name: str
    attr: str
    node: TypeNode
    resolver: Optional[ResolveFn] = None
    args: List[SchemaArgument] = dc_field(default_factory=list)
    description: Optional[str] = None
    deprecation_reason: Optional[str] = None
    complexity: Optional[int] = None
    origins: Tuple[AnnotationRecord, ...] = ()
    is_subscription: bool = False
    # input fields only
    default: Any = MISSING


@dataclass
class SchemaType:
    name: str
    kind: Any  # AnnotationKind or ROOT_TYPE
    cls: Optional[type]
    runtime: Any = None
    description: Optional[str] = None
    fields: List[SchemaField] = dc_field(default_factory=list)
    interfaces: List[type] = dc_field(default_factory=list)

    def field(self, name: str) -> Optional[SchemaField]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def is_output(self) -> bool:
        return self.kind in (AnnotationKind.OBJECT_TYPE, AnnotationKind.INTERFACE_TYPE, ROOT_TYPE)


@dataclass
class TypeGraph:
    """The finished type graph, in build order. Root types are keyed by their names."""

    types: Dict[str, SchemaType] = dc_field(default_factory=dict)
    query: Optional[SchemaType] = None
    mutation: Optional[SchemaType] = None
    subscription: Optional[SchemaType] = None

    def add(self, stype: SchemaType) -> SchemaType:
        self.types[stype.name] = stype
        return stype

    def get(self, name: str) -> Optional[SchemaType]:
        return self.types.get(name)

    def by_class(self, cls: type) -> Optional[SchemaType]:
        for t in self.types.values():
            if t.cls is cls:
                return t
        return None

    def roots(self) -> List[SchemaType]:
        return [t for t in (self.query, self.mutation, self.subscription) if t is not None]

    def describe(self, type_name: Callable[[TypeNode], str]) -> Dict[str, List[Tuple[str, str, Tuple[str, ...]]]]:
        """Structural summary (type -> [(field, type, arg names)]) used to compare builds."""
        out: Dict[str, List[Tuple[str, str, Tuple[str, ...]]]] = {}
        for t in self.types.values():
            out[t.name] = [(f.name, type_name(f.node), tuple(a.name for a in f.args)) for f in t.fields]
        return out
