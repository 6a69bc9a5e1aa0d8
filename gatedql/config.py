from __future__ import annotations
from dataclasses import dataclass, field, fields
from typing import Any, Optional, Sequence

from strawberry.schema.config import StrawberryConfig

from .errors import UnauthenticatedError
from .registry import MetadataRegistry, get_metadata_storage

__all__ = ['BuildSchemaOptions']


@dataclass
class BuildSchemaOptions:
    """Options for :func:`gatedql.build_schema`.

    Attributes:
        registry: Registry to read declarations from (process-wide one by default).
        resolvers: Resolver classes whose root fields and field resolvers are included.
            ``None`` includes every recorded resolver method.
        container: Object with ``get_instance(cls, resolver_data)``, or a factory
            callable with the same signature. Defaults to one instance per class.
        global_middlewares: Middlewares run before class and field middlewares of every
            resolver-backed field.
        validate: Global argument validator ``(value, bound_param) -> value``.
        skip_check: Log build validation problems and orphaned rules instead of raising.
        auto_camel_case: Camel-case external names derived from member names.
        fallback_error: Error (class or instance) reported when a rule denies without
            a reason of its own.
        strawberry_config: Passed through to ``strawberry.Schema``. Every generated
            field and argument carries an explicit name, so its ``auto_camel_case``
            does not rename them; use ``auto_camel_case`` above instead.
        extensions: Strawberry schema extensions.
    """

    registry: Optional[MetadataRegistry] = None
    resolvers: Optional[Sequence[type]] = None
    container: Any = None
    global_middlewares: Sequence[Any] = ()
    validate: Any = None
    skip_check: bool = False
    auto_camel_case: bool = False
    fallback_error: Any = UnauthenticatedError
    strawberry_config: Optional[StrawberryConfig] = None
    extensions: Sequence[Any] = field(default_factory=tuple)

    def __post_init__(self):
        if self.registry is None:
            self.registry = get_metadata_storage()

    @classmethod
    def from_kwargs(cls, options: Optional['BuildSchemaOptions'] = None, **kwargs: Any) -> 'BuildSchemaOptions':
        known = {f.name for f in fields(cls)}
        unknown = set(kwargs) - known
        if unknown:
            raise TypeError(f"Unknown build option(s): {', '.join(sorted(unknown))}")
        if options is None:
            return cls(**kwargs)
        merged = {f.name: getattr(options, f.name) for f in fields(cls)}
        merged.update(kwargs)
        return cls(**merged)
