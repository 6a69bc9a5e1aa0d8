"""Schema assembly: registry records -> type graph -> strawberry schema.

The build runs in fixed steps against a frozen registry:

1. Arena: one plain runtime class per registered type (enums reuse the user's
   ``Enum``). Type thunks are not called yet, so declarations may reference each
   other in any order.
2. Type graph: fields of every type and root, with thunks resolved against the
   arena and a pipeline resolver bound to each output field.
3. Consistency checks (duplicate names, dangling field resolvers, empty types,
   undeclared method parameters...). Problems raise :class:`SchemaValidationError`
   unless ``skip_check`` is set.
4. Authorization tree from ``@authorized`` facts; guarded resolvers get wrapped.
5. Materialization: generated resolver functions and annotations are attached to
   the runtime classes, which are then decorated with strawberry and handed to
   :class:`GatedSchema`.

Example:
    schema = build_schema(resolvers=[RecipeResolver])
    result = await schema.execute("{ recipes { title } }", context_value={"user": user})
"""
from __future__ import annotations
import copy
import inspect
import logging
from dataclasses import dataclass
from typing import (
    Annotated, Any, AsyncGenerator, Dict, List, Mapping, Optional, Sequence, Set, Tuple, get_type_hints,
)

import strawberry
from strawberry.schema.config import StrawberryConfig
from strawberry.types import Info as StrawberryInfo

from .auth.tree import RuleTree, Shield, build_rule_tree
from .config import BuildSchemaOptions
from .core.container import as_container
from .core.declarations import positional_params, unwrap_function
from .core.graph import ROOT_TYPE, SchemaArgument, SchemaField, SchemaType, TypeGraph
from .core.metadata import (
    MISSING,
    ROOT_KINDS,
    AnnotationKind,
    AnnotationRecord,
    ParamDefinition,
    ParamSource,
    TypeDefinition,
)
from .core.params import BoundParam, InputConverter
from .core.pipeline import ResolverFactory
from .core.types import TypeEntry, TypeNode, TypeResolver
from .errors import SchemaValidationError, UnresolvedTypeError
from .naming import external_name
from .registry import MetadataRegistry

__all__ = ['GatedSchema', 'SchemaAssembler', 'build_schema']

_logger = logging.getLogger("gatedql")

_ROOT_NAMES = {
    AnnotationKind.QUERY: 'Query',
    AnnotationKind.MUTATION: 'Mutation',
    AnnotationKind.SUBSCRIPTION: 'Subscription',
}

# arena / decoration order: interfaces must be decorated before their implementors
_BUILD_ORDER = (
    AnnotationKind.ENUM_TYPE,
    AnnotationKind.INPUT_TYPE,
    AnnotationKind.INTERFACE_TYPE,
    AnnotationKind.OBJECT_TYPE,
)

_OUTPUT_KINDS = (AnnotationKind.OBJECT_TYPE, AnnotationKind.INTERFACE_TYPE)


class GatedSchema(strawberry.Schema):
    """A ``strawberry.Schema`` that keeps the type graph and rule tree it was built from."""

    def __init__(self, *args: Any, type_graph: TypeGraph, rule_tree: RuleTree,
                 registry: MetadataRegistry, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.type_graph = type_graph
        self.rule_tree = rule_tree
        self._registry = registry
        self.registry_generation = registry.generation

    @property
    def is_stale(self) -> bool:
        """True once the source registry was cleared after this schema was built."""
        return self._registry.generation != self.registry_generation


@dataclass
class _FieldPlan:
    member: str
    name: str
    declared: Optional[AnnotationRecord] = None
    impl: Optional[AnnotationRecord] = None
    impl_cls: Optional[type] = None
    external: bool = False

    @property
    def origins(self) -> Tuple[AnnotationRecord, ...]:
        return tuple(r for r in (self.declared, self.impl) if r is not None)


def _member_function(target: type, member: str) -> Any:
    attr = inspect.getattr_static(target, member, None)
    fn = unwrap_function(attr)
    return fn if inspect.isfunction(fn) else None


def _is_type_of(stype: SchemaType):
    runtime, user_cls, name = stype.runtime, stype.cls, stype.name

    def is_type_of(cls, obj: Any, info: Any) -> bool:
        if isinstance(obj, Mapping):
            return obj.get('__typename', name) == name
        return isinstance(obj, (runtime, user_cls))

    return classmethod(is_type_of)


class SchemaAssembler:
    """Builds a :class:`GatedSchema` from the records of one registry."""

    def __init__(self, options: Optional[BuildSchemaOptions] = None):
        self.options = options or BuildSchemaOptions()
        self.registry: MetadataRegistry = self.options.registry
        self.problems: List[str] = []

    # --- entry point ---------------------------------------------------------
    def generate(self, resolvers: Optional[Sequence[type]] = None) -> GatedSchema:
        if resolvers is None:
            resolvers = self.options.resolvers
        with self.registry.building():
            return self._generate(tuple(resolvers) if resolvers is not None else None)

    def _generate(self, resolvers: Optional[Tuple[type, ...]]) -> GatedSchema:
        opts = self.options
        self.problems = []
        self._resolver_filter = resolvers
        self._participants: Set[type] = set()
        self._type_defs: Dict[type, TypeDefinition] = {}
        self._interfaces: Dict[type, List[type]] = {}

        self.arena = self._build_arena()
        self.types = TypeResolver(self.arena)
        self.converter = InputConverter(self.types)
        self.factory = ResolverFactory(as_container(opts.container), opts.global_middlewares, opts.validate)
        self._external = self._external_field_resolvers()

        graph = self._build_graph()
        self._check()

        tree = build_rule_tree(
            graph, self.registry.query_by_kind(AnnotationKind.AUTHORIZED),
            participants=self._participants, skip_check=opts.skip_check,
        )
        if tree:
            Shield(tree, opts.fallback_error).install(graph)
        schema = self._materialize(graph, tree)
        _logger.debug(
            "gatedql: schema built with %d type(s) (registry generation %d)", len(graph.types), self.registry.generation
        )
        return schema

    def _problem(self, message: str) -> None:
        self.problems.append(message)

    def _check(self) -> None:
        if not self.problems:
            return
        if self.options.skip_check:
            for p in self.problems:
                _logger.warning("gatedql: schema check skipped: %s", p)
            return
        raise SchemaValidationError(self.problems)

    # --- arena ---------------------------------------------------------------
    def _deref(self, ref: Any, owner: str, member: Optional[str]) -> Any:
        if inspect.isclass(ref):
            return ref
        try:
            return ref()
        except Exception as exc:
            raise UnresolvedTypeError(owner, member, f"type thunk raised {exc!r}") from exc

    def _build_arena(self) -> Dict[Any, TypeEntry]:
        arena: Dict[Any, TypeEntry] = {}
        names: Dict[str, type] = {}
        for kind in _BUILD_ORDER:
            for rec in self.registry.query_by_kind(kind):
                cls, name = rec.target, rec.payload.name
                if cls in arena:
                    self._problem(f"{rec.owner_name} is registered both as {arena[cls].kind.value} and {kind.value}")
                    continue
                if name in names or name in _ROOT_NAMES.values():
                    self._problem(f"duplicate type name '{name}' ({rec.owner_name})")
                    continue
                names[name] = cls
                self._type_defs[cls] = rec.payload
                arena[cls] = TypeEntry(kind=kind, name=name, runtime=self._runtime_class(kind, rec, arena))
                self._participants.add(cls)
        return arena

    def _runtime_class(self, kind: AnnotationKind, rec: AnnotationRecord, arena: Dict[Any, TypeEntry]) -> Any:
        if kind is AnnotationKind.ENUM_TYPE:
            return rec.target
        bases: Tuple[type, ...] = ()
        if kind is AnnotationKind.OBJECT_TYPE:
            interfaces = self._resolve_interfaces(rec.target, arena)
            self._interfaces[rec.target] = interfaces
            bases = tuple(arena[i].runtime for i in interfaces)
        name = rec.payload.name
        return type(name, bases, {'__module__': __name__, '__qualname__': name, '__doc__': rec.payload.description})

    def _resolve_interfaces(self, cls: type, arena: Dict[Any, TypeEntry]) -> List[type]:
        out: List[type] = []
        for klass in cls.__mro__:
            tdef = self._type_defs.get(klass)
            if tdef is None:
                continue
            for ref in tdef.implements:
                iface = self._deref(ref, klass.__qualname__, None)
                entry = arena.get(iface)
                if entry is None or entry.kind is not AnnotationKind.INTERFACE_TYPE:
                    self._problem(f"{cls.__qualname__} implements {iface!r}, which is not a registered interface")
                    continue
                if iface not in out:
                    out.append(iface)
        return out

    # --- resolver classes --------------------------------------------------------
    def _included(self, target: type) -> Optional[type]:
        """Concrete resolver class for records declared on ``target`` (honours ``resolvers=``)."""
        if self._resolver_filter is None:
            return target
        for cls in self._resolver_filter:
            if issubclass(cls, target):
                return cls
        return None

    def _resolver_of(self, resolver_cls: type) -> Optional[Any]:
        for klass in resolver_cls.__mro__:
            rec = self.registry.find(AnnotationKind.RESOLVER_CLASS, klass)
            if rec is not None and rec.payload.of is not None:
                return self._deref(rec.payload.of, rec.owner_name, None)
        return None

    def _external_field_resolvers(self) -> Dict[type, List[Tuple[AnnotationRecord, type]]]:
        out: Dict[type, List[Tuple[AnnotationRecord, type]]] = {}
        for rec in self.registry.query_by_kind(AnnotationKind.FIELD_RESOLVER):
            if rec.target in self.arena:
                continue  # internal: collected with the type's own fields
            impl_cls = self._included(rec.target)
            if impl_cls is None:
                continue
            of = self._resolver_of(impl_cls)
            if of is None:
                self._problem(
                    f"field resolver {rec.owner_name}.{rec.member} has no object type; use @resolver(of=...)"
                )
                continue
            entry = self.arena.get(of)
            if entry is None or entry.kind not in _OUTPUT_KINDS:
                self._problem(f"field resolver {rec.owner_name}.{rec.member} targets {of!r}, which is not a registered object type")
                continue
            self._participants.add(impl_cls)
            out.setdefault(of, []).append((rec, impl_cls))
        return out

    # --- type graph --------------------------------------------------------------
    def _name(self, rec: AnnotationRecord) -> str:
        return external_name(rec.member, rec.payload.schema_name, self.options.auto_camel_case)

    def _build_graph(self) -> TypeGraph:
        graph = TypeGraph()
        for cls, entry in self.arena.items():
            stype = SchemaType(
                name=entry.name, kind=entry.kind, cls=cls, runtime=entry.runtime,
                description=self._type_defs[cls].description,
            )
            if entry.kind is AnnotationKind.INPUT_TYPE:
                stype.fields = self._input_fields(cls)
            elif entry.kind in _OUTPUT_KINDS:
                stype.interfaces = list(self._interfaces.get(cls, ()))
                stype.fields = self._output_fields(cls)
            if entry.kind is not AnnotationKind.ENUM_TYPE and not stype.fields:
                self._problem(f"type '{entry.name}' ({cls.__qualname__}) declares no fields")
            graph.add(stype)
        for kind in ROOT_KINDS:
            root = self._root_type(kind)
            if root is not None:
                graph.add(root)
                setattr(graph, kind.value, root)
        if graph.query is None:
            self._problem("no query is declared; the Query root type would be empty")
        return graph

    def _resolve_node(self, rec: AnnotationRecord) -> TypeNode:
        payload = rec.payload

        def annotation():
            if rec.kind is AnnotationKind.FIELD and not payload.has_method:
                return get_type_hints(rec.target).get(rec.member, MISSING)
            fn = _member_function(rec.target, rec.member)
            return get_type_hints(fn).get('return', MISSING) if fn is not None else MISSING

        return self.types.resolve(
            payload.type_fn, payload.options, owner=rec.owner_name, member=rec.member, annotation_fn=annotation,
        )

    def _check_output(self, node: TypeNode, where: str) -> None:
        if self.types.kind_of(node) is AnnotationKind.INPUT_TYPE:
            self._problem(f"{where} returns input type '{self.types.type_name(node)}'")

    def _collect_declared(self, source: type, owner: type, plans: Dict[str, _FieldPlan]) -> None:
        for klass in reversed(source.__mro__):
            if klass is object:
                continue
            impl_cls = owner if issubclass(owner, klass) else klass
            for rec in self.registry.for_target(AnnotationKind.FIELD, klass):
                name = self._name(rec)
                plans[name] = _FieldPlan(member=rec.member, name=name, declared=rec, impl_cls=impl_cls)
            for rec in self.registry.for_target(AnnotationKind.FIELD_RESOLVER, klass):
                name = self._name(rec)
                plan = plans.get(name)
                if plan is None:
                    plans[name] = _FieldPlan(member=rec.member, name=name, impl=rec, impl_cls=impl_cls)
                else:
                    plan.impl, plan.impl_cls, plan.external = rec, impl_cls, False

    def _output_fields(self, cls: type) -> List[SchemaField]:
        plans: Dict[str, _FieldPlan] = {}
        interfaces = self._interfaces.get(cls, [])
        for iface in interfaces:
            self._collect_declared(iface, cls, plans)
        self._collect_declared(cls, cls, plans)
        for klass in list(interfaces) + list(reversed(cls.__mro__)):
            for rec, impl_cls in self._external.get(klass, ()):
                name = self._name(rec)
                plan = plans.get(name)
                if plan is None:
                    plans[name] = _FieldPlan(member=rec.member, name=name, impl=rec, impl_cls=impl_cls, external=True)
                else:
                    plan.impl, plan.impl_cls, plan.external = rec, impl_cls, True
        return [self._output_field(cls, plan) for plan in plans.values()]

    def _output_field(self, cls: type, plan: _FieldPlan) -> SchemaField:
        impl, declared = plan.impl, plan.declared
        # a resolver method without its own type falls back to the declared field's type
        type_rec = impl if impl is not None and (impl.payload.type_fn is not None or declared is None) else declared
        node = self._resolve_node(type_rec)
        self._check_output(node, f"{type_rec.owner_name}.{type_rec.member}")

        method_rec = impl if impl is not None else declared
        computed = impl is not None or declared.payload.has_method
        params: List[BoundParam] = []
        arguments: List[SchemaArgument] = []
        if computed:
            params, arguments = self._bind(method_rec)
        middlewares = self._middlewares(cls, plan.impl_cls, plan.origins)
        if plan.external:
            resolver = self.factory.create_handler_resolver(plan.impl_cls, method_rec.member, params, middlewares)
        elif computed:
            resolver = self.factory.create_advanced_field_resolver(plan.impl_cls, method_rec.member, params, middlewares)
        else:
            resolver = self.factory.create_simple_field_resolver(declared.member, middlewares)

        def pick(attr: str) -> Any:
            for rec in (impl, declared):
                if rec is not None and getattr(rec.payload, attr) is not None:
                    return getattr(rec.payload, attr)
            return None

        return SchemaField(
            name=plan.name,
            attr=(declared or impl).member,
            node=node,
            resolver=resolver,
            args=arguments,
            description=pick('description'),
            deprecation_reason=pick('deprecation_reason'),
            complexity=pick('complexity'),
            origins=plan.origins,
        )

    def _input_fields(self, cls: type) -> List[SchemaField]:
        fields: Dict[str, SchemaField] = {}
        for klass in reversed(cls.__mro__):
            for rec in self.registry.for_target(AnnotationKind.FIELD, klass):
                name = self._name(rec)
                node = self._resolve_node(rec)
                if self.types.kind_of(node) in _OUTPUT_KINDS:
                    self._problem(f"input field {rec.owner_name}.{rec.member} uses output type '{self.types.type_name(node)}'")
                fields[name] = SchemaField(
                    name=name, attr=rec.member, node=node,
                    description=rec.payload.description,
                    deprecation_reason=rec.payload.deprecation_reason,
                    origins=(rec,),
                    default=rec.payload.options.default,
                )
        out = list(fields.values())
        self.converter.register(cls, [(f.attr, f.node) for f in out])
        return out

    def _root_type(self, kind: AnnotationKind) -> Optional[SchemaType]:
        stype = SchemaType(name=_ROOT_NAMES[kind], kind=ROOT_TYPE, cls=None)
        for rec in self.registry.query_by_kind(kind):
            impl_cls = self._included(rec.target)
            if impl_cls is None:
                continue
            self._participants.add(impl_cls)
            name = self._name(rec)
            if stype.field(name) is not None:
                self._problem(f"duplicate {kind.value} field '{name}' ({rec.owner_name}.{rec.member})")
                continue
            node = self._resolve_node(rec)
            self._check_output(node, f"{rec.owner_name}.{rec.member}")
            params, arguments = self._bind(rec)
            middlewares = self._middlewares(None, impl_cls, (rec,))
            if kind is AnnotationKind.SUBSCRIPTION:
                resolver = self.factory.create_subscription_resolver(impl_cls, rec.member, params, middlewares)
            else:
                resolver = self.factory.create_handler_resolver(impl_cls, rec.member, params, middlewares)
            stype.fields.append(SchemaField(
                name=name,
                attr=rec.member,
                node=node,
                resolver=resolver,
                args=arguments,
                description=rec.payload.description,
                deprecation_reason=rec.payload.deprecation_reason,
                complexity=rec.payload.complexity,
                origins=(rec,),
                is_subscription=kind is AnnotationKind.SUBSCRIPTION,
            ))
        return stype if stype.fields else None

    # --- parameters and middlewares ---------------------------------------------
    def _bind(self, rec: AnnotationRecord) -> Tuple[List[BoundParam], List[SchemaArgument]]:
        fn = _member_function(rec.target, rec.member)
        if fn is None:
            return [], []
        where = f"{rec.owner_name}.{rec.member}"
        declared = {r.payload.index: r.payload for r in self.registry.params_for(rec.target, rec.member)}
        signature = positional_params(fn)
        last = max(declared) if declared else -1
        params: List[BoundParam] = []
        arguments: List[SchemaArgument] = []
        for index, parameter in enumerate(signature):
            definition = declared.get(index)
            if definition is None:
                if parameter.default is inspect.Parameter.empty:
                    self._problem(f"parameter '{parameter.name}' of {where} has no declaration and no default")
                    continue
                if index > last:
                    break
                # keep positions aligned for declared parameters that follow
                definition = ParamDefinition(
                    index=index, param_name=parameter.name, source=ParamSource.CUSTOM,
                    extract=lambda data, value=parameter.default: value,
                )
                params.append(BoundParam(definition))
                continue
            node = None
            if definition.source is ParamSource.ARG:
                node = self.types.resolve(
                    definition.type_fn, definition.options, owner=rec.owner_name,
                    member=f"{rec.member}({definition.param_name})",
                    annotation_fn=lambda d=definition: get_type_hints(fn).get(d.param_name, MISSING),
                )
                if self.types.kind_of(node) in _OUTPUT_KINDS:
                    self._problem(f"argument '{definition.name}' of {where} uses output type '{self.types.type_name(node)}'")
                if any(a.name == definition.name for a in arguments):
                    self._problem(f"duplicate argument '{definition.name}' on {where}")
                arguments.append(SchemaArgument(
                    name=definition.name, node=node, description=definition.description,
                    default=definition.options.default,
                ))
            params.append(BoundParam(definition, node))
        return params, arguments

    def _middlewares(self, type_cls: Optional[type], impl_cls: type, origins: Sequence[AnnotationRecord]) -> List[Any]:
        """Class-level middlewares (type, declaring and implementing classes), then member-level ones."""
        owners: List[type] = []
        for owner in [type_cls, *(r.target for r in origins), impl_cls]:
            if owner is not None and owner not in owners:
                owners.append(owner)
        out: List[Any] = []
        for owner in owners:
            rec = self.registry.find(AnnotationKind.MIDDLEWARE, owner)
            if rec is not None:
                out.extend(rec.payload.middlewares)
        for origin in origins:
            rec = self.registry.find(AnnotationKind.MIDDLEWARE, origin.target, origin.member)
            if rec is not None:
                out.extend(rec.payload.middlewares)
        return out

    # --- materialization ---------------------------------------------------------
    def _materialize(self, graph: TypeGraph, tree: RuleTree) -> GatedSchema:
        for kind in _BUILD_ORDER:
            for stype in graph.types.values():
                if stype.kind is kind:
                    self._decorate(stype)
        roots: Dict[str, Any] = {}
        for stype in graph.roots():
            stype.runtime = type(stype.name, (), {'__module__': __name__, '__qualname__': stype.name})
            self._attach_output_fields(stype)
            roots[stype.name] = strawberry.type(stype.runtime, name=stype.name)
        extra_types = [t.runtime for t in graph.types.values() if t.kind in _OUTPUT_KINDS]
        return GatedSchema(
            query=roots.get('Query'),
            mutation=roots.get('Mutation'),
            subscription=roots.get('Subscription'),
            types=extra_types,
            extensions=list(self.options.extensions),
            config=self.options.strawberry_config or StrawberryConfig(auto_camel_case=False),
            type_graph=graph,
            rule_tree=tree,
            registry=self.registry,
        )

    def _decorate(self, stype: SchemaType) -> None:
        if stype.kind is AnnotationKind.ENUM_TYPE:
            stype.runtime = strawberry.enum(stype.cls, name=stype.name, description=stype.description)
            return
        if stype.kind is AnnotationKind.INPUT_TYPE:
            self._attach_input_fields(stype)
            stype.runtime = strawberry.input(stype.runtime, name=stype.name, description=stype.description)
            return
        self._attach_output_fields(stype)
        if stype.kind is AnnotationKind.INTERFACE_TYPE:
            stype.runtime = strawberry.interface(stype.runtime, name=stype.name, description=stype.description)
            return
        if stype.interfaces:
            stype.runtime.is_type_of = _is_type_of(stype)
        stype.runtime = strawberry.type(stype.runtime, name=stype.name, description=stype.description)

    def _attach_input_fields(self, stype: SchemaType) -> None:
        required: Dict[str, Any] = {}
        optional: Dict[str, Any] = {}
        for sf in stype.fields:
            ann = self.types.annotation(sf.node)
            if sf.default is not MISSING:
                if isinstance(sf.default, (list, dict, set)):
                    value = strawberry.field(name=sf.name, description=sf.description,
                                             default_factory=lambda d=sf.default: copy.copy(d))
                else:
                    value = strawberry.field(name=sf.name, description=sf.description, default=sf.default)
                optional[sf.attr] = ann
            elif sf.node.nullable:
                value = strawberry.field(name=sf.name, description=sf.description, default=None)
                optional[sf.attr] = ann
            else:
                value = strawberry.field(name=sf.name, description=sf.description)
                required[sf.attr] = ann
            setattr(stype.runtime, sf.attr, value)
        # required fields first so the generated dataclass accepts the ordering
        stype.runtime.__annotations__ = {**required, **optional}

    def _attach_output_fields(self, stype: SchemaType) -> None:
        annotations: Dict[str, Any] = {}
        used: Set[str] = set()
        for sf in stype.fields:
            attr = sf.attr
            n = 2
            while attr in used or attr in ('is_type_of', 'resolve_type'):
                attr = f"{sf.attr}_{n}"
                n += 1
            used.add(attr)
            ann = self.types.annotation(sf.node)
            fn = self._entry_function(stype, sf, attr, ann)
            metadata = {'complexity': sf.complexity} if sf.complexity is not None else None
            if sf.is_subscription:
                setattr(stype.runtime, attr, strawberry.subscription(
                    resolver=fn, name=sf.name, description=sf.description,
                    deprecation_reason=sf.deprecation_reason,
                ))
                continue
            annotations[attr] = ann
            setattr(stype.runtime, attr, strawberry.field(
                resolver=fn, name=sf.name, description=sf.description,
                deprecation_reason=sf.deprecation_reason, metadata=metadata,
            ))
        stype.runtime.__annotations__ = annotations

    def _entry_function(self, stype: SchemaType, sf: SchemaField, attr: str, ann: Any):
        """Generate the strawberry-facing resolver for one field.

        The generated signature exposes the field arguments (required ones first) and
        forwards to the pipeline resolver as ``(parent, args, context, info)``.
        Subscription entries are coroutines returning the event iterator.
        """
        args = sorted(sf.args, key=lambda a: a.default is not MISSING or a.node.nullable)
        nodes = {a.name: a.node for a in args}
        converter = self.converter
        env: Dict[str, Any] = {
            '_impl': sf.resolver,
            '_prepare': lambda raw: converter.convert_args(nodes, raw),
        }
        params = ['self', 'info']
        anns: Dict[str, Any] = {'info': StrawberryInfo}
        items = []
        for i, a in enumerate(args):
            pname = f"a{i}"
            if a.default is not MISSING:
                env[f"_d{i}"] = a.default
                params.append(f"{pname}=_d{i}")
            elif a.node.nullable:
                params.append(f"{pname}=None")
            else:
                params.append(pname)
            anns[pname] = Annotated[
                self.types.annotation(a.node), strawberry.argument(name=a.name, description=a.description)
            ]
            items.append(f"{a.name!r}: {pname}")
        fname = f"_{stype.name}_{attr}"
        src = f"async def {fname}({', '.join(params)}):\n"
        src += f"    _args = _prepare({{{', '.join(items)}}})\n"
        # subscriptions return the event iterator, so guards and middlewares run at subscribe time
        src += "    return await _impl(self, _args, info.context, info)\n"
        anns['return'] = AsyncGenerator[ann, None] if sf.is_subscription else ann
        exec(src, env)
        fn = env[fname]
        if not getattr(fn, '__module__', None):  # strawberry resolves names against the module
            fn.__module__ = __name__
        fn.__annotations__ = anns
        return fn


def build_schema(options: Optional[BuildSchemaOptions] = None, **kwargs: Any) -> GatedSchema:
    """Build a schema from the registry's current records.

    Keyword arguments override fields of ``options`` (see :class:`BuildSchemaOptions`).
    """
    return SchemaAssembler(BuildSchemaOptions.from_kwargs(options, **kwargs)).generate()
