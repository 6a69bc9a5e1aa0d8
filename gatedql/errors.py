"""Exception hierarchy for gatedql.

Build-time errors (raised while assembling a schema) abort the build. Request-time
errors (authorization, validation) are raised from inside field resolvers; the
GraphQL engine reports them per field path and applies null propagation.
"""
from __future__ import annotations

from typing import Any, Optional

__all__ = [
    'GatedQLError',
    'UnsupportedKeyError',
    'UnresolvedTypeError',
    'OrphanedRuleError',
    'SchemaValidationError',
    'ConcurrentBuildError',
    'MiddlewareError',
    'AuthorizationError',
    'UnauthenticatedError',
    'ForbiddenError',
    'ValidationError',
]


class GatedQLError(Exception):
    """Base class for every error raised by gatedql."""


# --- Build time -------------------------------------------------------------

class UnsupportedKeyError(GatedQLError):
    """An annotation was recorded under a member key that is not a plain string."""

    def __init__(self, key: Any):
        self.key = key
        super().__init__(
            f"Member key {key!r} ({type(key).__name__}) is not supported; annotations must use string member names"
        )


class UnresolvedTypeError(GatedQLError):
    """A type thunk raised, or returned something that is not a registered or scalar type."""

    def __init__(self, owner: str, member: Optional[str], detail: str):
        self.owner = owner
        self.member = member
        where = f"{owner}.{member}" if member else owner
        super().__init__(f"Unable to resolve type of '{where}': {detail}")


class OrphanedRuleError(GatedQLError):
    """An authorization rule was declared for a member that is not exposed as a field."""

    def __init__(self, owner: str, member: Optional[str]):
        self.owner = owner
        self.member = member
        where = f"{owner}.{member}" if member else f"class {owner}"
        super().__init__(f"Authorization rule on '{where}' does not match any schema field")


class SchemaValidationError(GatedQLError):
    """The assembled type graph is inconsistent (duplicate root fields, dangling references...)."""

    def __init__(self, problems):
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        super().__init__('; '.join(self.problems))


class ConcurrentBuildError(GatedQLError):
    """A schema build was started while another build on the same registry was running."""


class MiddlewareError(GatedQLError):
    """A middleware violated the onward-chain contract."""


# --- Request time -----------------------------------------------------------

class AuthorizationError(GatedQLError):
    """Base for authorization denials surfaced at a field path."""

    default_message = "Access denied"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class UnauthenticatedError(AuthorizationError):
    """No identity is present in the request context."""

    default_message = "Access denied! You need to be authenticated to perform this action!"


class ForbiddenError(AuthorizationError):
    """An identity is present but lacks the privileges the rule requires."""

    default_message = "Access denied! You don't have permission for this action!"


class ValidationError(GatedQLError):
    """A resolver parameter failed validation while binding arguments."""

    def __init__(self, message: str, *, param: Optional[str] = None, cause: Optional[BaseException] = None):
        self.param = param
        self.cause = cause
        super().__init__(message)
