from __future__ import annotations
import collections.abc
import types as _pytypes
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Annotated, Any, Callable, List, Mapping, Optional, Tuple, Union, get_args, get_origin
from uuid import UUID

import strawberry

from ..errors import UnresolvedTypeError
from .metadata import MISSING, AnnotationKind, TypeOptions

__all__ = ['TypeNode', 'TypeEntry', 'TypeResolver', 'unwrap_annotation', 'is_scalar', 'BUILTIN_SCALARS']

BUILTIN_SCALARS = (str, int, float, bool, strawberry.ID, datetime, date, time, Decimal, UUID)

_LIST_ORIGINS = (list, List, collections.abc.Sequence, collections.abc.Iterable, tuple)


def is_scalar(raw: Any) -> bool:
    if raw in BUILTIN_SCALARS:
        return True
    # strawberry.scalar(...) wrappers and NewType scalars (JSON, Base64...)
    return getattr(raw, '_scalar_definition', None) is not None


@dataclass(frozen=True)
class TypeNode:
    """A resolved field/argument type: target reference plus wrapping.

    ``target`` is either a built-in/strawberry scalar or a registered class (object,
    interface, input or enum); the runtime engine type is looked up by identity.
    """

    target: Any
    nullable: bool = False
    is_list: bool = False
    nullable_items: bool = False

    def wrap(self, runtime: Any) -> Any:
        inner = runtime
        if self.is_list:
            inner = List[Optional[runtime]] if self.nullable_items else List[runtime]
        return Optional[inner] if self.nullable else inner

    def describe(self, name: str) -> str:
        inner = name
        if self.is_list:
            inner = f"[{name}{'' if self.nullable_items else '!'}]"
        return inner if self.nullable else f"{inner}!"


@dataclass
class TypeEntry:
    """Arena slot for a registered class: its kind and its (not yet decorated) runtime class."""

    kind: AnnotationKind
    name: str
    runtime: Any


def _strip_annotated(ann: Any) -> Any:
    while get_origin(ann) is Annotated:
        ann = get_args(ann)[0]
    return ann


def _split_optional(ann: Any) -> Tuple[Any, bool]:
    origin = get_origin(ann)
    if origin is Union or origin is getattr(_pytypes, 'UnionType', None):
        members = [a for a in get_args(ann) if a is not type(None)]
        if len(members) != len(get_args(ann)) and len(members) == 1:
            return members[0], True
    return ann, False


def unwrap_annotation(ann: Any) -> Tuple[Any, bool, bool, bool]:
    """Split a Python annotation into (raw type, nullable, is_list, nullable_items)."""
    ann, nullable = _split_optional(_strip_annotated(ann))
    origin = get_origin(ann)
    if origin in _LIST_ORIGINS:
        item_args = get_args(ann)
        item = _strip_annotated(item_args[0]) if item_args else Any
        item, item_nullable = _split_optional(item)
        return item, nullable, True, item_nullable
    return ann, nullable, False, False


class TypeResolver:
    """Resolve type thunks (or annotations) into :class:`TypeNode` against the type arena.

    Thunks are only invoked here, after every class has been registered, which is what
    makes forward and circular references between classes work.
    """

    def __init__(self, arena: Mapping[Any, TypeEntry]):
        self._arena = arena

    def resolve(
        self,
        type_fn: Optional[Callable[[], Any]],
        options: TypeOptions,
        *,
        owner: str,
        member: Optional[str],
        annotation_fn: Optional[Callable[[], Any]] = None,
    ) -> TypeNode:
        if type_fn is not None:
            try:
                raw = type_fn()
            except Exception as exc:
                raise UnresolvedTypeError(owner, member, f"type thunk raised {exc!r}") from exc
            if isinstance(raw, (list, tuple)):
                raise UnresolvedTypeError(
                    owner, member, "thunk returned a list shape; declare list=True and return the item type"
                )
            nullable = bool(options.nullable)
            is_list, nullable_items = options.list, options.nullable_items
        elif annotation_fn is not None:
            try:
                ann = annotation_fn()
            except Exception as exc:
                raise UnresolvedTypeError(owner, member, f"annotation could not be evaluated: {exc!r}") from exc
            if ann is MISSING or ann is None:
                raise UnresolvedTypeError(owner, member, "no type thunk and no type annotation")
            raw, inferred_nullable, is_list, nullable_items = unwrap_annotation(ann)
            nullable = inferred_nullable if options.nullable is None else bool(options.nullable)
            is_list = is_list or options.list
            nullable_items = nullable_items or options.nullable_items
        else:
            raise UnresolvedTypeError(owner, member, "no type declared")
        if not self._known(raw):
            raise UnresolvedTypeError(owner, member, f"{raw!r} is not a registered type or a known scalar")
        return TypeNode(target=raw, nullable=nullable, is_list=is_list, nullable_items=nullable_items)

    def entry(self, node: TypeNode) -> Optional[TypeEntry]:
        return self._arena.get(node.target)

    def kind_of(self, node: TypeNode) -> Optional[AnnotationKind]:
        entry = self._arena.get(node.target)
        return entry.kind if entry is not None else None

    def runtime(self, node: TypeNode) -> Any:
        entry = self._arena.get(node.target)
        return entry.runtime if entry is not None else node.target

    def annotation(self, node: TypeNode) -> Any:
        return node.wrap(self.runtime(node))

    def type_name(self, node: TypeNode) -> str:
        entry = self._arena.get(node.target)
        if entry is not None:
            return entry.name
        name = getattr(node.target, '__name__', None) or str(node.target)
        return {'str': 'String', 'int': 'Int', 'float': 'Float', 'bool': 'Boolean'}.get(name, name)

    def describe(self, node: TypeNode) -> str:
        return node.describe(self.type_name(node))

    def _known(self, raw: Any) -> bool:
        try:
            return raw in self._arena or is_scalar(raw)
        except TypeError:  # unhashable thunk result
            return False
