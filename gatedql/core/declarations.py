"""Declaration helpers: the explicit registration API used in class bodies.

Every helper ends up calling :meth:`MetadataRegistry.record` with the owning class
and member name. Class decorators record immediately. Member helpers (``field()``,
``@query()``, ``@arg(...)``, ``@authorized()`` ...) collect pending facts on a
:class:`MemberDeclaration` which records them from ``__set_name__`` once the owning
class exists, then puts the plain function (or the field default) back on the class.

Example:
    @object_type()
    class Recipe:
        title = field(lambda: str)
        secret = authorized()(field(lambda: str, nullable=True))

    @resolver(of=lambda: Recipe)
    class RecipeResolver:
        @query(lambda: Recipe, list=True)
        def recipes(self):
            ...

        @authorized(in_role_of('admin'))
        @mutation(lambda: bool)
        @arg('title', lambda: str)
        def delete_recipe(self, title):
            ...
"""
from __future__ import annotations
import inspect
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Type

from ..auth.rules import RuleExpression, default_auth_rule
from ..naming import camel_to_snake
from ..registry import MetadataRegistry, get_metadata_storage
from .metadata import (
    MISSING,
    AnnotationKind,
    AuthorizedDefinition,
    FieldDefinition,
    MiddlewareDefinition,
    ParamDefinition,
    ParamSource,
    ResolverClassDefinition,
    ResolverDefinition,
    TypeDefinition,
    TypeOptions,
)

__all__ = [
    'MemberDeclaration',
    'object_type', 'interface_type', 'input_type', 'enum_type', 'resolver',
    'field', 'query', 'mutation', 'subscription', 'field_resolver',
    'arg', 'args', 'ctx', 'root', 'info', 'create_param_decorator',
    'use_middleware', 'authorized',
]


def _reg(registry: Optional[MetadataRegistry]) -> MetadataRegistry:
    return registry if registry is not None else get_metadata_storage()


def _class_doc(cls: type) -> Optional[str]:
    doc = cls.__dict__.get('__doc__')
    return inspect.cleandoc(doc) if isinstance(doc, str) and doc.strip() else None


def _is_method(obj: Any) -> bool:
    """Tell a decorated method apart from a zero-argument type thunk."""
    if isinstance(obj, MemberDeclaration):
        return True
    if isinstance(obj, (staticmethod, classmethod, property)):
        return True
    if not inspect.isfunction(obj):
        return False
    return len(inspect.signature(obj).parameters) > 0


def _defined_in_class(fn: Any) -> bool:
    parts = fn.__qualname__.split('.')
    return len(parts) > 1 and parts[-2] != '<locals>'


@dataclass
class _Pending:
    registry: MetadataRegistry
    kind: AnnotationKind
    payload: Any


class MemberDeclaration:
    """Pending facts about one class member, recorded when the owning class is created."""

    def __init__(self, fn: Any = None, *, default: Any = None):
        self.fn = fn
        self.default = default
        self.pending: List[_Pending] = []

    def add(self, registry: MetadataRegistry, kind: AnnotationKind, payload: Any) -> 'MemberDeclaration':
        self.pending.append(_Pending(registry, kind, payload))
        return self

    def __call__(self, fn: Any) -> 'MemberDeclaration':
        # ``@field()`` used on a method: attach the function and mark the field computed
        if isinstance(fn, MemberDeclaration):
            self.pending = fn.pending + self.pending
            fn = fn.fn
        if self.fn is not None:
            raise TypeError("member declaration already wraps a function")
        self.fn = fn
        for p in self.pending:
            if p.kind is AnnotationKind.FIELD and not p.payload.has_method:
                p.payload = replace(p.payload, has_method=True)
        return self

    def __set_name__(self, owner: type, name: str) -> None:
        for p in self.pending:
            p.registry.record(p.kind, owner, name, p.payload)
        setattr(owner, name, self.fn if self.fn is not None else self.default)


def _declare(target: Any, registry: MetadataRegistry, kind: AnnotationKind, payload: Any) -> MemberDeclaration:
    decl = target if isinstance(target, MemberDeclaration) else MemberDeclaration(target)
    return decl.add(registry, kind, payload)


def _options(nullable, list_, nullable_items, default=MISSING) -> TypeOptions:
    return TypeOptions(nullable=nullable, list=list_, nullable_items=nullable_items, default=default)


# --- class level ------------------------------------------------------------

def _type_decorator(kind: AnnotationKind):
    def factory(name: Any = None, *, description: Optional[str] = None,
                implements: Sequence[Any] = (), registry: Optional[MetadataRegistry] = None):
        def deco(cls: type) -> type:
            type_name = name if isinstance(name, str) else cls.__name__
            impl = tuple(implements) if isinstance(implements, (list, tuple)) else (implements,)
            _reg(registry).record(
                kind, cls, None,
                TypeDefinition(name=type_name, description=description or _class_doc(cls), implements=impl),
            )
            return cls
        # bare usage: @object_type
        if inspect.isclass(name):
            return deco(name)
        return deco
    return factory


object_type = _type_decorator(AnnotationKind.OBJECT_TYPE)
object_type.__doc__ = "Register a class as a GraphQL object type (``@object_type()`` or ``@object_type('Name')``)."
interface_type = _type_decorator(AnnotationKind.INTERFACE_TYPE)
interface_type.__doc__ = "Register a class as a GraphQL interface; object types opt in with ``implements=``."
input_type = _type_decorator(AnnotationKind.INPUT_TYPE)
input_type.__doc__ = "Register a class as a GraphQL input type. Arguments typed with it receive instances of the class."


def enum_type(enum_cls: Optional[Type[Enum]] = None, name: Optional[str] = None, *,
              description: Optional[str] = None, registry: Optional[MetadataRegistry] = None):
    """Register a Python ``Enum``. Usable as ``enum_type(Color)`` or as a class decorator."""
    def deco(cls: Type[Enum]) -> Type[Enum]:
        _reg(registry).record(
            AnnotationKind.ENUM_TYPE, cls, None,
            TypeDefinition(name=name or cls.__name__, description=description or _class_doc(cls)),
        )
        return cls
    return deco(enum_cls) if enum_cls is not None else deco


def resolver(of: Any = None, *, registry: Optional[MetadataRegistry] = None):
    """Mark a resolver class: ``@resolver()`` or ``@resolver(of=lambda: Recipe)``.

    ``of`` names the object type (thunk or class) that the class's ``field_resolver``
    methods extend.
    """
    def deco(cls: type) -> type:
        _reg(registry).record(AnnotationKind.RESOLVER_CLASS, cls, None, ResolverClassDefinition(of=of))
        return cls
    return deco


# --- fields and resolvers -------------------------------------------------

def field(type_fn: Optional[Callable[[], Any]] = None, *, name: Optional[str] = None,
          nullable: Optional[bool] = None, list: bool = False, nullable_items: bool = False,
          description: Optional[str] = None, deprecation_reason: Optional[str] = None,
          complexity: Optional[int] = None, default: Any = MISSING,
          authorized: Optional[RuleExpression] = None, middlewares: Sequence[Any] = (),
          registry: Optional[MetadataRegistry] = None) -> MemberDeclaration:
    """Declare a field on an object, interface or input class.

    As a class attribute the field reads the same-named attribute of the parent object
    (the attribute is reset to ``default``, or ``None``). As a method decorator
    (``@field()``) the method computes the value from the parent object.

    ``authorized=`` and ``middlewares=`` are shorthands for wrapping the declaration
    with :func:`authorized` / :func:`use_middleware`.
    """
    # bare usage on a method: @field
    if type_fn is not None and _is_method(type_fn):
        return field(name=name, nullable=nullable, list=list, nullable_items=nullable_items,
                     description=description, deprecation_reason=deprecation_reason, complexity=complexity,
                     authorized=authorized, middlewares=middlewares, registry=registry)(type_fn)
    reg = _reg(registry)
    decl = MemberDeclaration(default=None if default is MISSING else default)
    decl.add(reg, AnnotationKind.FIELD, FieldDefinition(
        schema_name=name,
        type_fn=type_fn,
        options=_options(nullable, list, nullable_items, default),
        description=description,
        deprecation_reason=deprecation_reason,
        complexity=complexity,
    ))
    if authorized is not None:
        decl.add(reg, AnnotationKind.AUTHORIZED, AuthorizedDefinition(rule=authorized))
    if middlewares:
        decl.add(reg, AnnotationKind.MIDDLEWARE, MiddlewareDefinition(middlewares=tuple(middlewares)))
    return decl


def _resolver_decorator(kind: AnnotationKind):
    def factory(type_fn: Any = None, *, name: Optional[str] = None, nullable: Optional[bool] = None,
                list: bool = False, nullable_items: bool = False, description: Optional[str] = None,
                deprecation_reason: Optional[str] = None, complexity: Optional[int] = None,
                registry: Optional[MetadataRegistry] = None):
        def make(fn: Any, thunk: Optional[Callable[[], Any]]) -> MemberDeclaration:
            payload = ResolverDefinition(
                schema_name=name,
                type_fn=thunk,
                options=_options(nullable, list, nullable_items),
                description=description,
                deprecation_reason=deprecation_reason,
                complexity=complexity,
            )
            return _declare(fn, _reg(registry), kind, payload)
        # bare usage: @query
        if type_fn is not None and _is_method(type_fn):
            return make(type_fn, None)
        return lambda fn: make(fn, type_fn)
    return factory


query = _resolver_decorator(AnnotationKind.QUERY)
mutation = _resolver_decorator(AnnotationKind.MUTATION)
subscription = _resolver_decorator(AnnotationKind.SUBSCRIPTION)
field_resolver = _resolver_decorator(AnnotationKind.FIELD_RESOLVER)


# --- parameters -------------------------------------------------------------

def unwrap_function(obj: Any) -> Any:
    """Plain function behind a member (declaration, static/class method or property getter)."""
    fn = obj.fn if isinstance(obj, MemberDeclaration) else obj
    if isinstance(fn, (staticmethod, classmethod)):
        fn = fn.__func__
    elif isinstance(fn, property):
        fn = fn.fget
    return fn


def positional_params(fn: Any) -> List[inspect.Parameter]:
    """Positional parameters of ``fn`` that resolver calls fill, ``self``/``cls`` excluded."""
    params = [p for p in inspect.signature(fn).parameters.values()
              if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)]
    if params and params[0].name in ('self', 'cls'):
        params = params[1:]
    return params


def _param_index(target: Any, param_name: str) -> int:
    fn = unwrap_function(target)
    params = [p.name for p in positional_params(fn)]
    if param_name not in params:
        raise TypeError(f"{getattr(fn, '__qualname__', fn)!r} has no parameter named '{param_name}'")
    return params.index(param_name)


def _param_decorator(source: ParamSource, param_name: str, *, name: Optional[str] = None,
                     type_fn: Optional[Callable[[], Any]] = None, options: TypeOptions = TypeOptions(),
                     description: Optional[str] = None, extract: Optional[Callable[[Any], Any]] = None,
                     validate: Any = None, registry: Optional[MetadataRegistry] = None):
    if validate is None:
        validators: tuple = ()
    elif callable(validate):
        validators = (validate,)
    else:
        validators = tuple(validate)

    def deco(target: Any) -> MemberDeclaration:
        payload = ParamDefinition(
            index=_param_index(target, param_name),
            param_name=param_name,
            source=source,
            name=name,
            type_fn=type_fn,
            options=options,
            description=description,
            extract=extract,
            validators=validators,
        )
        return _declare(target, _reg(registry), AnnotationKind.PARAM, payload)
    return deco


def arg(name: str, type_fn: Optional[Callable[[], Any]] = None, *, param: Optional[str] = None,
        nullable: Optional[bool] = None, list: bool = False, nullable_items: bool = False,
        default: Any = MISSING, description: Optional[str] = None, validate: Any = None,
        registry: Optional[MetadataRegistry] = None):
    """Expose a GraphQL argument ``name`` and bind it to a method parameter.

    The parameter defaults to the snake_case form of ``name``. Without ``type_fn`` the
    parameter annotation is used. ``validate`` is a callable (or a list of callables)
    receiving the value and returning it, possibly transformed; raising rejects it.
    """
    return _param_decorator(
        ParamSource.ARG, param or camel_to_snake(name), name=name, type_fn=type_fn,
        options=_options(nullable, list, nullable_items, default), description=description,
        validate=validate, registry=registry,
    )


def args(param: str = 'args', *, validate: Any = None, registry: Optional[MetadataRegistry] = None):
    """Bind the whole arguments mapping of the field to a parameter."""
    return _param_decorator(ParamSource.ARGS, param, validate=validate, registry=registry)


def ctx(param: str = 'ctx', *, key: Optional[str] = None, registry: Optional[MetadataRegistry] = None):
    """Bind the request context (or ``context[key]``) to a parameter."""
    return _param_decorator(ParamSource.CONTEXT, param, name=key, registry=registry)


def root(param: str = 'root', *, registry: Optional[MetadataRegistry] = None):
    """Bind the parent object of the field to a parameter."""
    return _param_decorator(ParamSource.ROOT, param, registry=registry)


def info(param: str = 'info', *, registry: Optional[MetadataRegistry] = None):
    """Bind the engine's resolve info to a parameter."""
    return _param_decorator(ParamSource.INFO, param, registry=registry)


def create_param_decorator(extract: Callable[[Any], Any]):
    """Build a custom parameter decorator from an extraction function ``(resolver_data) -> value``.

    Example:
        current_user = create_param_decorator(lambda data: data.context['user'])

        @query(lambda: str)
        @current_user('user')
        def me(self, user): ...
    """
    def factory(param: str, *, registry: Optional[MetadataRegistry] = None):
        return _param_decorator(ParamSource.CUSTOM, param, extract=extract, registry=registry)
    return factory


# --- cross-cutting ----------------------------------------------------------

def use_middleware(*middlewares: Any, registry: Optional[MetadataRegistry] = None):
    """Attach middlewares to a member, or to every field of a class when used on a class."""
    payload = MiddlewareDefinition(middlewares=tuple(middlewares))

    def deco(target: Any) -> Any:
        if inspect.isclass(target):
            _reg(registry).record(AnnotationKind.MIDDLEWARE, target, None, payload)
            return target
        return _declare(target, _reg(registry), AnnotationKind.MIDDLEWARE, payload)
    return deco


def authorized(rule: Any = None, *, registry: Optional[MetadataRegistry] = None):
    """Guard a member (field-level rule) or every field of a class (class-level default).

    Without a rule the default identity-presence rule applies. Usable bare
    (``@authorized``) or with a rule (``@authorized(in_role_of('admin'))``).
    """
    if rule is not None and not isinstance(rule, RuleExpression):
        if inspect.isfunction(rule) and not _defined_in_class(rule):
            raise TypeError(
                f"authorized() expects a rule expression, got function {rule.__qualname__!r}; "
                "wrap predicates with rule(...)"
            )
        # bare usage on a class, method or pending declaration
        return authorized(registry=registry)(rule)
    payload = AuthorizedDefinition(rule=rule if rule is not None else default_auth_rule)

    def deco(target: Any) -> Any:
        if inspect.isclass(target):
            _reg(registry).record(AnnotationKind.AUTHORIZED, target, None, payload)
            return target
        return _declare(target, _reg(registry), AnnotationKind.AUTHORIZED, payload)
    return deco
