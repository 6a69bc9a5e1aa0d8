from __future__ import annotations
from dataclasses import dataclass, field as dc_field
from enum import Enum
from typing import Any, Callable, Optional, Tuple


class AnnotationKind(str, Enum):
    """Kinds of declarative facts the registry accumulates."""

    OBJECT_TYPE = 'object_type'
    INTERFACE_TYPE = 'interface_type'
    INPUT_TYPE = 'input_type'
    ENUM_TYPE = 'enum_type'
    RESOLVER_CLASS = 'resolver_class'
    FIELD = 'field'
    QUERY = 'query'
    MUTATION = 'mutation'
    SUBSCRIPTION = 'subscription'
    FIELD_RESOLVER = 'field_resolver'
    PARAM = 'param'
    MIDDLEWARE = 'middleware'
    AUTHORIZED = 'authorized'


TYPE_KINDS = (
    AnnotationKind.OBJECT_TYPE,
    AnnotationKind.INTERFACE_TYPE,
    AnnotationKind.INPUT_TYPE,
    AnnotationKind.ENUM_TYPE,
)

ROOT_KINDS = (
    AnnotationKind.QUERY,
    AnnotationKind.MUTATION,
    AnnotationKind.SUBSCRIPTION,
)


class ParamSource(str, Enum):
    ARG = 'arg'
    ARGS = 'args'
    CONTEXT = 'context'
    ROOT = 'root'
    INFO = 'info'
    CUSTOM = 'custom'


@dataclass(frozen=True)
class TypeOptions:
    """Nullability/list wrapping declared next to a type thunk.

    Attributes:
        nullable: ``None`` means "not declared" (non-null unless inferred from an
            ``Optional[...]`` annotation).
        list: Wrap the resolved type in a list.
        nullable_items: List elements may be null.
        default: Default value for arguments and input fields (``MISSING`` when absent).
    """

    nullable: Optional[bool] = None
    list: bool = False
    nullable_items: bool = False
    default: Any = dc_field(default_factory=lambda: MISSING)

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING


class _Missing:
    def __repr__(self):  # pragma: no cover - debug helper
        return 'MISSING'

    def __bool__(self):
        return False


MISSING: Any = _Missing()


@dataclass(frozen=True)
class TypeDefinition:
    """Payload of OBJECT_TYPE / INTERFACE_TYPE / INPUT_TYPE / ENUM_TYPE records."""

    name: str
    description: Optional[str] = None
    implements: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class FieldDefinition:
    """Payload of FIELD records (declared on object, interface or input classes).

    ``has_method`` marks a field declared by decorating a method of the type class,
    i.e. an internal field resolver computed from the parent object.
    """

    schema_name: Optional[str] = None
    type_fn: Optional[Callable[[], Any]] = None
    options: TypeOptions = TypeOptions()
    description: Optional[str] = None
    deprecation_reason: Optional[str] = None
    complexity: Optional[int] = None
    has_method: bool = False


@dataclass(frozen=True)
class ResolverDefinition:
    """Payload of QUERY / MUTATION / SUBSCRIPTION / FIELD_RESOLVER records."""

    schema_name: Optional[str] = None
    type_fn: Optional[Callable[[], Any]] = None
    options: TypeOptions = TypeOptions()
    description: Optional[str] = None
    deprecation_reason: Optional[str] = None
    complexity: Optional[int] = None


@dataclass(frozen=True)
class ResolverClassDefinition:
    """Payload of RESOLVER_CLASS records. ``of`` names the object type extended by field resolvers."""

    of: Optional[Callable[[], Any]] = None


@dataclass(frozen=True)
class ParamDefinition:
    index: int
    param_name: str
    source: ParamSource
    name: Optional[str] = None
    type_fn: Optional[Callable[[], Any]] = None
    options: TypeOptions = TypeOptions()
    description: Optional[str] = None
    extract: Optional[Callable[[Any], Any]] = None
    validators: Tuple[Callable[..., Any], ...] = ()


@dataclass(frozen=True)
class MiddlewareDefinition:
    middlewares: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class AuthorizedDefinition:
    rule: Any


@dataclass(frozen=True)
class AnnotationRecord:
    """One captured fact about a class or one of its members. Immutable once recorded.

    ``member`` is ``None`` for class-level facts (type declarations, class-wide
    middlewares and class-wide authorization defaults).
    """

    kind: AnnotationKind
    target: type
    member: Optional[str]
    payload: Any

    @property
    def discriminator(self) -> Any:
        if self.kind is AnnotationKind.PARAM:
            return self.payload.index
        return None

    @property
    def key(self) -> Tuple[Any, ...]:
        return (self.target, self.member, self.discriminator)

    @property
    def owner_name(self) -> str:
        return getattr(self.target, '__qualname__', None) or getattr(self.target, '__name__', repr(self.target))
