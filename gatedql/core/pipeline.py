"""Per-field resolver composition.

Every schema field gets one ``async resolve(parent, args, context, info)``
function. Handler resolvers (queries, mutations, subscriptions and external field
resolvers) obtain the resolver class instance from the container, run the
middleware chain, bind parameters and call the method. Internal field resolvers
call a method of the object class on the parent value; simple fields read the
parent's attribute. Authorization is not part of these functions: the gate wraps
the guarded ones afterwards (see :mod:`gatedql.auth.tree`), which keeps it the
outermost step.
"""
from __future__ import annotations
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from ..errors import MiddlewareError
from .container import Container, get_instance
from .graph import ResolveFn
from .params import BoundParam, GlobalValidator, bind_params

__all__ = [
    'ResolverData', 'Middleware', 'NextFn', 'apply_middlewares', 'convert_to_type', 'ResolverFactory',
]

_logger = logging.getLogger("gatedql")

NextFn = Callable[[], Awaitable[Any]]
# ``(data, next)`` callable, or a class / instance exposing ``use(data, next)``
Middleware = Any


@dataclass
class ResolverData:
    """The opaque bundle handed to containers, middlewares, custom params and rules."""

    parent: Any
    args: Mapping[str, Any]
    context: Any
    info: Any


async def _resolve_value(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def _middleware_handler(container: Container, middleware: Middleware, data: ResolverData):
    if inspect.isclass(middleware):
        instance = await get_instance(container, middleware, data)
        return instance.use
    use = getattr(middleware, 'use', None)
    if use is not None and callable(use):
        return use
    if callable(middleware):
        return middleware
    raise MiddlewareError(f"{middleware!r} is neither a (data, next) callable nor has a use(data, next) method")


async def apply_middlewares(container: Container, data: ResolverData, middlewares: Sequence[Middleware],
                            final: Callable[[], Awaitable[Any]]) -> Any:
    """Run ``final`` through ``middlewares`` in declared order.

    A middleware that does not call ``next()`` short-circuits the chain with its own
    return value; calling ``next()`` twice raises :class:`MiddlewareError`.
    """
    if not middlewares:
        return await final()

    async def dispatch(index: int) -> Any:
        if index == len(middlewares):
            return await final()
        called = False

        async def next_() -> Any:
            nonlocal called
            if called:
                raise MiddlewareError(f"next() called multiple times by middleware {middlewares[index]!r}")
            called = True
            return await dispatch(index + 1)

        handler = await _middleware_handler(container, middlewares[index], data)
        return await _resolve_value(handler(data, next_))

    return await dispatch(0)


def convert_to_type(cls: type, value: Any) -> Any:
    """View ``value`` as an instance of ``cls`` so internal field methods can run on it.

    Instances of ``cls`` (or subclasses) pass through unchanged. Mappings and other
    objects are copied attribute by attribute into a new instance created without
    calling ``__init__``.
    """
    if value is None or isinstance(value, cls):
        return value
    obj = cls.__new__(cls)
    if isinstance(value, Mapping):
        source = dict(value)
    else:
        source = dict(getattr(value, '__dict__', {}))
    for key, item in source.items():
        try:
            setattr(obj, key, item)
        except AttributeError:  # read-only property on cls
            continue
    return obj


class ResolverFactory:
    """Build pipeline functions for one schema build.

    Args:
        container: Supplies resolver and middleware class instances.
        global_middlewares: Applied before class- and field-level middlewares of every
            field that has a pipeline.
        validate: Optional global validator for argument parameters.
    """

    def __init__(self, container: Container, global_middlewares: Sequence[Middleware] = (),
                 validate: Optional[GlobalValidator] = None):
        self.container = container
        self.global_middlewares = tuple(global_middlewares)
        self.validate = validate

    def _chain(self, middlewares: Sequence[Middleware]) -> tuple:
        return self.global_middlewares + tuple(middlewares)

    def create_handler_resolver(self, target_cls: type, member: str, params: Sequence[BoundParam],
                                middlewares: Sequence[Middleware] = ()) -> ResolveFn:
        """Resolver calling ``member`` on a container-provided instance of ``target_cls``."""
        chain = self._chain(middlewares)
        params = tuple(params)

        async def resolve(parent: Any, args: Mapping[str, Any], context: Any, info: Any) -> Any:
            data = ResolverData(parent, args, context, info)
            instance = await get_instance(self.container, target_cls, data)

            async def call() -> Any:
                values = await bind_params(params, data, self.validate)
                return await _resolve_value(getattr(instance, member)(*values))

            return await apply_middlewares(self.container, data, chain, call)

        resolve.__qualname__ = f"{target_cls.__qualname__}.{member}"
        return resolve

    def create_subscription_resolver(self, target_cls: type, member: str, params: Sequence[BoundParam],
                                     middlewares: Sequence[Middleware] = ()) -> ResolveFn:
        """Resolver returning the async iterator produced by a subscription method.

        Middlewares run once, around obtaining the iterator (at subscribe time).
        """
        handler = self.create_handler_resolver(target_cls, member, params, middlewares)

        async def resolve(parent: Any, args: Mapping[str, Any], context: Any, info: Any) -> Any:
            source = await handler(parent, args, context, info)
            if hasattr(source, '__aiter__'):
                return source
            if hasattr(source, '__iter__'):
                async def _gen():
                    for item in source:
                        yield item
                return _gen()
            raise TypeError(f"subscription {target_cls.__qualname__}.{member} must return an (async) iterable")

        return resolve

    def create_advanced_field_resolver(self, object_cls: type, member: str, params: Sequence[BoundParam],
                                       middlewares: Sequence[Middleware] = ()) -> ResolveFn:
        """Resolver calling a method (or property) of the object class on the parent value."""
        chain = self._chain(middlewares)
        params = tuple(params)

        async def resolve(parent: Any, args: Mapping[str, Any], context: Any, info: Any) -> Any:
            data = ResolverData(parent, args, context, info)

            async def call() -> Any:
                target = convert_to_type(object_cls, parent)
                value = getattr(target, member)
                if callable(value):
                    values = await bind_params(params, data, self.validate)
                    value = value(*values)
                return await _resolve_value(value)

            return await apply_middlewares(self.container, data, chain, call)

        resolve.__qualname__ = f"{object_cls.__qualname__}.{member}"
        return resolve

    def create_simple_field_resolver(self, member: str, middlewares: Sequence[Middleware] = ()) -> ResolveFn:
        """Resolver reading ``member`` from the parent (mapping key or attribute)."""
        chain = self._chain(middlewares)

        async def resolve(parent: Any, args: Mapping[str, Any], context: Any, info: Any) -> Any:
            async def read() -> Any:
                if isinstance(parent, Mapping):
                    value = parent.get(member)
                else:
                    value = getattr(parent, member, None)
                return await _resolve_value(value)

            if not chain:
                return await read()
            return await apply_middlewares(self.container, ResolverData(parent, args, context, info), chain, read)

        return resolve
