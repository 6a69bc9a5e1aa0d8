from __future__ import annotations
import inspect
from typing import Any, Callable, Dict, Protocol, runtime_checkable

__all__ = ['Container', 'DefaultContainer', 'FactoryContainer', 'as_container', 'get_instance']


@runtime_checkable
class Container(Protocol):
    """Supplies resolver (and middleware) class instances.

    ``get_instance`` may return the instance or an awaitable of it. Instances may be
    fresh per call or shared; the pipeline does not assume either.
    """

    def get_instance(self, target_cls: type, resolver_data: Any) -> Any:
        ...


class DefaultContainer:
    """One lazily created instance per class, built with a no-argument constructor."""

    def __init__(self):
        self._instances: Dict[type, Any] = {}

    def get_instance(self, target_cls: type, resolver_data: Any) -> Any:
        instance = self._instances.get(target_cls)
        if instance is None:
            instance = target_cls()
            self._instances[target_cls] = instance
        return instance


class FactoryContainer:
    """Adapt a plain ``factory(target_cls, resolver_data)`` callable to the container interface."""

    def __init__(self, factory: Callable[[type, Any], Any]):
        self._factory = factory

    def get_instance(self, target_cls: type, resolver_data: Any) -> Any:
        return self._factory(target_cls, resolver_data)


def as_container(obj: Any) -> Container:
    if obj is None:
        return DefaultContainer()
    if hasattr(obj, 'get_instance'):
        return obj
    if callable(obj):
        return FactoryContainer(obj)
    raise TypeError(f"{obj!r} is not a container: expected get_instance() or a factory callable")


async def get_instance(container: Container, target_cls: type, resolver_data: Any) -> Any:
    instance = container.get_instance(target_cls, resolver_data)
    if inspect.isawaitable(instance):
        instance = await instance
    return instance
