"""Parameter binding for resolver methods.

Each declared parameter is extracted from the resolver data according to its
source, validated when it carries validators (or a global validator is
configured), and appended to the positional argument list in declaration order.

Input objects arrive from the engine as instances of the generated input class;
:class:`InputConverter` turns them into instances of the user's registered class,
recursively, so resolver methods never see engine-generated types.
"""
from __future__ import annotations
import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from strawberry import UNSET

from ..errors import ValidationError
from .metadata import MISSING, AnnotationKind, ParamDefinition, ParamSource
from .types import TypeNode, TypeResolver

__all__ = ['BoundParam', 'InputConverter', 'bind_params', 'GlobalValidator']

# (value, bound_param) -> value; raise to reject
GlobalValidator = Callable[[Any, 'BoundParam'], Any]


@dataclass
class BoundParam:
    """A parameter declaration joined with its resolved argument type (ARG params only)."""

    definition: ParamDefinition
    node: Optional[TypeNode] = None

    @property
    def source(self) -> ParamSource:
        return self.definition.source

    @property
    def name(self) -> str:
        return self.definition.name or self.definition.param_name


class InputConverter:
    """Convert engine input values into registered user classes, following type nodes."""

    def __init__(self, type_resolver: TypeResolver):
        self._types = type_resolver
        self._input_fields: Dict[type, List[Tuple[str, TypeNode]]] = {}

    def register(self, cls: type, fields: Sequence[Tuple[str, TypeNode]]) -> None:
        self._input_fields[cls] = list(fields)

    def convert(self, node: Optional[TypeNode], value: Any) -> Any:
        if value is None or value is UNSET or node is None:
            return None if value is UNSET else value
        if node.is_list:
            item = TypeNode(node.target, nullable=node.nullable_items)
            return [self.convert(item, v) for v in value]
        if self._types.kind_of(node) is not AnnotationKind.INPUT_TYPE:
            return value
        cls = node.target
        if isinstance(value, cls):
            return value
        obj = cls.__new__(cls)
        for attr, field_node in self._input_fields.get(cls, ()):
            raw = value.get(attr, None) if isinstance(value, Mapping) else getattr(value, attr, None)
            setattr(obj, attr, self.convert(field_node, raw))
        return obj

    def convert_args(self, nodes: Mapping[str, TypeNode], raw_args: Mapping[str, Any]) -> Dict[str, Any]:
        return {name: self.convert(nodes.get(name), value) for name, value in raw_args.items()}


def _read(source: Any, key: str) -> Any:
    if isinstance(source, Mapping):
        return source.get(key)
    return getattr(source, key, None)


async def _extract(param: BoundParam, data: Any) -> Any:
    d = param.definition
    if d.source is ParamSource.ARG:
        value = data.args.get(param.name, MISSING)
        if value is MISSING:
            return d.options.default if d.options.has_default else None
        return value
    if d.source is ParamSource.ARGS:
        return dict(data.args)
    if d.source is ParamSource.CONTEXT:
        return data.context if d.name is None else _read(data.context, d.name)
    if d.source is ParamSource.ROOT:
        return data.parent
    if d.source is ParamSource.INFO:
        return data.info
    value = d.extract(data)
    if inspect.isawaitable(value):
        value = await value
    return value


async def _validate(param: BoundParam, value: Any, global_validator: Optional[GlobalValidator]) -> Any:
    validators = list(param.definition.validators)
    if global_validator is not None and param.source in (ParamSource.ARG, ParamSource.ARGS):
        validators.append(lambda v: global_validator(v, param))
    for validator in validators:
        try:
            result = validator(value)
            if inspect.isawaitable(result):
                result = await result
        except ValidationError:
            raise
        except Exception as exc:
            raise ValidationError(f"Argument '{param.name}' is invalid: {exc}", param=param.name, cause=exc) from exc
        # validators may return a transformed value; None keeps the input
        if result is not None:
            value = result
    return value


async def bind_params(params: Sequence[BoundParam], data: Any,
                      global_validator: Optional[GlobalValidator] = None) -> List[Any]:
    """Build the positional argument list for a resolver method."""
    values: List[Any] = []
    for param in params:
        value = await _extract(param, data)
        value = await _validate(param, value, global_validator)
        values.append(value)
    return values
