"""Rule expressions gating field access.

A rule expression is an immutable tree of leaves (:class:`Rule`, wrapping a predicate
``(parent, args, context, info) -> bool``) and combinators (:class:`And`, :class:`Or`,
:class:`Not`). Every node carries a cache mode and a ``name``. Inside one request the
node instance itself is the cache identity; the name only labels log lines.

Evaluation returns a :class:`Decision`. A denial carries the error to report, or
``None`` when the schema-wide fallback error applies (a predicate that returned
``False`` on a rule without its own ``error``).

Example:
    @rule(cache='contextual')
    async def is_editor(parent, args, ctx, info):
        return 'editor' in ctx['user'].roles

    guarded = and_(default_auth_rule, or_(is_editor, in_role_of('admin')))
"""
from __future__ import annotations
import inspect
import json
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Hashable, Mapping, Optional, Tuple, Union

from ..errors import ForbiddenError, UnauthenticatedError
from .cache import RuleCache

__all__ = [
    'CacheMode', 'Decision', 'RuleExpression', 'Rule', 'And', 'Or', 'Not', 'fresh_error',
    'rule', 'and_', 'or_', 'not_', 'allow', 'deny',
    'get_identity', 'get_roles', 'authenticated', 'default_auth_rule', 'in_role_of',
]

_logger = logging.getLogger("gatedql")

ErrorLike = Union[BaseException, type, None]


class CacheMode(str, Enum):
    NO_CACHE = 'no_cache'
    CONTEXTUAL = 'contextual'
    STRICT = 'strict'


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[BaseException] = None


ALLOWED = Decision(True)


def _unique_name(prefix: str) -> str:
    return f"{prefix}#{uuid.uuid4().hex[:12]}"


def _as_error(err: ErrorLike) -> Optional[BaseException]:
    if err is None:
        return None
    if isinstance(err, type):
        return err()
    return err


def fresh_error(err: BaseException) -> BaseException:
    """Copy ``err`` without calling its ``__init__``.

    Raising a shared instance again chains new frames onto its ``__traceback__``;
    the copy starts from the traceback ``err`` holds now and leaves ``err`` untouched.
    """
    cls = type(err)
    dup = cls.__new__(cls, *err.args)
    dup.__dict__.update(vars(err))
    dup.__cause__ = err.__cause__
    return dup.with_traceback(err.__traceback__)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if hasattr(value, '__dict__') and not isinstance(value, type):
        # input objects: compare by field values, not by instance
        return {'__type__': type(value).__qualname__, **{k: _plain(v) for k, v in vars(value).items()}}
    return value


def _args_key(args: Any) -> str:
    try:
        return json.dumps(_plain(args or {}), sort_keys=True, default=repr)
    except (TypeError, ValueError):
        return repr(args)


@dataclass(frozen=True, eq=False)
class RuleExpression:
    """Base node. The node itself is its cache identity; ``name`` only labels logs."""

    name: str
    cache: CacheMode

    def cache_key(self, parent: Any, args: Any) -> Hashable:
        if self.cache is CacheMode.STRICT:
            return (self, id(parent), _args_key(args))
        return (self,)

    async def evaluate(self, parent: Any, args: Any, context: Any, info: Any, cache: Optional[RuleCache] = None) -> Decision:
        if cache is None or self.cache is CacheMode.NO_CACHE:
            return await self._evaluate(parent, args, context, info, cache)
        return await cache.get_or_compute(
            self.cache_key(parent, args),
            lambda: self._evaluate(parent, args, context, info, cache),
            pin=parent if self.cache is CacheMode.STRICT else None,
        )

    async def _evaluate(self, parent, args, context, info, cache) -> Decision:  # pragma: no cover - abstract
        raise NotImplementedError


@dataclass(frozen=True, eq=False)
class Rule(RuleExpression):
    """Leaf predicate.

    The predicate may be sync or async. Returning ``True`` allows. Returning an
    exception instance denies with it. Raising denies with the raised error preserved.
    Anything else denies with ``error`` (or the schema fallback when ``error`` is None).
    """

    predicate: Callable[..., Any] = None  # type: ignore[assignment]
    error: ErrorLike = None

    async def _evaluate(self, parent, args, context, info, cache) -> Decision:
        try:
            result = self.predicate(parent, args, context, info)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            _logger.debug("gatedql: rule %s raised %r", self.name, exc)
            reason = fresh_error(exc)
            # predicates may raise one module-level instance on every request
            exc.__traceback__ = None
            return Decision(False, reason)
        if result is True:
            return ALLOWED
        if isinstance(result, BaseException):
            return Decision(False, result)
        return Decision(False, _as_error(self.error))


@dataclass(frozen=True, eq=False)
class And(RuleExpression):
    rules: Tuple[RuleExpression, ...] = ()

    async def _evaluate(self, parent, args, context, info, cache) -> Decision:
        for sub in self.rules:
            decision = await sub.evaluate(parent, args, context, info, cache)
            if not decision.allowed:
                return decision
        return ALLOWED


@dataclass(frozen=True, eq=False)
class Or(RuleExpression):
    """Allows on the first allowing sub-rule; on full denial reports the last sub-rule's reason."""

    rules: Tuple[RuleExpression, ...] = ()

    async def _evaluate(self, parent, args, context, info, cache) -> Decision:
        last = Decision(False, None)
        for sub in self.rules:
            decision = await sub.evaluate(parent, args, context, info, cache)
            if decision.allowed:
                return ALLOWED
            last = decision
        return last


@dataclass(frozen=True, eq=False)
class Not(RuleExpression):
    """Inverts one sub-rule. Cached as a node of its own, independently of the sub-rule."""

    rule: RuleExpression = None  # type: ignore[assignment]
    error: ErrorLike = None

    async def _evaluate(self, parent, args, context, info, cache) -> Decision:
        decision = await self.rule.evaluate(parent, args, context, info, cache)
        if decision.allowed:
            return Decision(False, _as_error(self.error))
        return ALLOWED


def rule(fn: Optional[Callable[..., Any]] = None, *, name: Optional[str] = None,
         cache: Union[CacheMode, str] = CacheMode.CONTEXTUAL, error: ErrorLike = None):
    """Turn a predicate into a :class:`Rule`. Usable bare (``@rule``) or configured (``@rule(cache='strict')``)."""
    def wrap(f: Callable[..., Any]) -> Rule:
        return Rule(
            name=name or _unique_name(getattr(f, '__name__', 'rule')),
            cache=CacheMode(cache),
            predicate=f,
            error=error,
        )
    return wrap(fn) if fn is not None else wrap


def and_(*rules: RuleExpression, cache: Union[CacheMode, str] = CacheMode.NO_CACHE, name: Optional[str] = None) -> And:
    return And(name=name or _unique_name('and'), cache=CacheMode(cache), rules=tuple(rules))


def or_(*rules: RuleExpression, cache: Union[CacheMode, str] = CacheMode.NO_CACHE, name: Optional[str] = None) -> Or:
    return Or(name=name or _unique_name('or'), cache=CacheMode(cache), rules=tuple(rules))


def not_(sub: RuleExpression, *, error: ErrorLike = None, cache: Union[CacheMode, str] = CacheMode.NO_CACHE,
         name: Optional[str] = None) -> Not:
    return Not(name=name or _unique_name('not'), cache=CacheMode(cache), rule=sub, error=error)


allow = Rule(name='allow', cache=CacheMode.CONTEXTUAL, predicate=lambda parent, args, ctx, info: True)
deny = Rule(name='deny', cache=CacheMode.CONTEXTUAL, predicate=lambda parent, args, ctx, info: False)


# --- identity based rules ---------------------------------------------------

def get_identity(context: Any, key: str = 'user') -> Any:
    if context is None:
        return None
    if isinstance(context, dict):
        return context.get(key)
    return getattr(context, key, None)


def get_roles(identity: Any) -> Tuple[str, ...]:
    if identity is None:
        return ()
    roles = identity.get('roles') if isinstance(identity, dict) else getattr(identity, 'roles', None)
    if not roles:
        return ()
    if isinstance(roles, str):
        return (roles,)
    return tuple(roles)


def authenticated(key: str = 'user', *, name: Optional[str] = None) -> Rule:
    """Rule allowing requests whose context carries an identity under ``key``.

    Denials always report :class:`~gatedql.errors.UnauthenticatedError`, whatever the
    schema fallback is.
    """
    def _has_identity(parent, args, ctx, info):
        return get_identity(ctx, key) is not None
    return Rule(name=name or _unique_name('authenticated'), cache=CacheMode.CONTEXTUAL, predicate=_has_identity,
                error=UnauthenticatedError)


default_auth_rule = authenticated(name='authenticated')


def in_role_of(*roles: str, key: str = 'user') -> Rule:
    """Rule allowing identities holding any of ``roles``.

    No identity denies with the fallback (unauthenticated). An identity without the
    role raises :class:`~gatedql.errors.ForbiddenError`. Without roles any identity
    is allowed.
    """
    wanted = frozenset(roles)

    def _has_role(parent, args, ctx, info):
        identity = get_identity(ctx, key)
        if identity is None:
            return False
        if not wanted or wanted.intersection(get_roles(identity)):
            return True
        raise ForbiddenError()

    return Rule(name=_unique_name(f"in_role_of({','.join(sorted(wanted))})"), cache=CacheMode.CONTEXTUAL, predicate=_has_role)
