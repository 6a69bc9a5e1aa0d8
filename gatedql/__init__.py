"""gatedql public API and lazy exports.

Declarations, rules and errors import eagerly (they are light and are used in
class bodies). The schema assembler pulls in strawberry's schema machinery and
is resolved lazily on first attribute access.

Exposes:
- Declarations: object_type, interface_type, input_type, enum_type, resolver, field,
  query, mutation, subscription, field_resolver, arg, args, ctx, root, info,
  create_param_decorator, use_middleware, authorized
- Rules: rule, and_, or_, not_, allow, deny, authenticated, default_auth_rule, in_role_of, CacheMode
- Lazy: build_schema, BuildSchemaOptions, GatedSchema, SchemaAssembler, ResolverData,
  Container, DefaultContainer
"""
from __future__ import annotations

from .auth.rules import (
    CacheMode,
    allow,
    and_,
    authenticated,
    default_auth_rule,
    deny,
    in_role_of,
    not_,
    or_,
    rule,
)
from .core.declarations import (
    arg,
    args,
    authorized,
    create_param_decorator,
    ctx,
    enum_type,
    field,
    field_resolver,
    info,
    input_type,
    interface_type,
    mutation,
    object_type,
    query,
    resolver,
    root,
    subscription,
    use_middleware,
)
from .errors import (
    AuthorizationError,
    ForbiddenError,
    GatedQLError,
    OrphanedRuleError,
    SchemaValidationError,
    UnauthenticatedError,
    UnresolvedTypeError,
    ValidationError,
)
from .registry import MetadataRegistry, get_metadata_storage

_LAZY = {
    'build_schema': '.schema',
    'GatedSchema': '.schema',
    'SchemaAssembler': '.schema',
    'BuildSchemaOptions': '.config',
    'ResolverData': '.core.pipeline',
    'Container': '.core.container',
    'DefaultContainer': '.core.container',
}


def __getattr__(name: str):  # PEP 562 lazy exports
    import importlib as _importlib
    if name in {'schema', 'config'}:
        return _importlib.import_module(__name__ + '.' + name)
    module = _LAZY.get(name)
    if module is None:
        raise AttributeError(name)
    return getattr(_importlib.import_module(module, __name__), name)


__all__ = [
    'object_type', 'interface_type', 'input_type', 'enum_type', 'resolver',
    'field', 'query', 'mutation', 'subscription', 'field_resolver',
    'arg', 'args', 'ctx', 'root', 'info', 'create_param_decorator',
    'use_middleware', 'authorized',
    'rule', 'and_', 'or_', 'not_', 'allow', 'deny', 'authenticated', 'default_auth_rule', 'in_role_of',
    'CacheMode',
    'GatedQLError', 'AuthorizationError', 'UnauthenticatedError', 'ForbiddenError', 'ValidationError',
    'UnresolvedTypeError', 'OrphanedRuleError', 'SchemaValidationError',
    'MetadataRegistry', 'get_metadata_storage',
    'build_schema', 'GatedSchema', 'SchemaAssembler', 'BuildSchemaOptions', 'ResolverData',
    'Container', 'DefaultContainer',
]
