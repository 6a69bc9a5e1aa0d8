"""Shared declarations for gatedql tests.

Declarations record into the process-wide registry, which the autouse
``clean_registry`` fixture empties around every test, so the ``declare_*``
helpers must be called from inside a test.
"""

from gatedql import (
    and_,
    authorized,
    ctx,
    default_auth_rule,
    field,
    field_resolver,
    object_type,
    or_,
    query,
    resolver,
    rule,
)
from gatedql.auth.rules import get_identity, get_roles
from gatedql.errors import ForbiddenError


def user(*roles, name="alice"):
    return {"name": name, "roles": list(roles)}


def error_types(result):
    return [type(e.original_error) for e in (result.errors or [])]


def role_rule(role):
    @rule(name=f"has-role-{role}")
    async def has_role(parent, args, context, info):
        if role in get_roles(get_identity(context)):
            return True
        raise ForbiddenError()
    return has_role


def declare_sample():
    """Object type with guarded fields plus a resolver with guarded queries.

    Returns (SampleObject, SampleResolver, rules) where rules holds the admin and
    regular expressions used by the guards.
    """
    admin = and_(default_auth_rule, role_rule("admin"))
    regular = and_(default_auth_rule, role_rule("regular"))

    @object_type()
    class SampleObject:
        normal_field = field(lambda: str)
        authed_field = authorized()(field(lambda: str))
        nullable_authed_field = field(lambda: str, nullable=True, authorized=default_auth_rule)
        admin_field = field(lambda: str, authorized=admin)
        normal_resolved_field = field(lambda: str)
        authed_resolved_field = field(lambda: str)
        inline_authed_resolved_field = authorized()(field(lambda: str))

    @resolver(of=lambda: SampleObject)
    class SampleResolver:
        @query(lambda: bool)
        def normal_query(self):
            return True

        @query(lambda: SampleObject)
        def normal_object_query(self):
            return {
                "normal_field": "normalField",
                "authed_field": "authedField",
                "nullable_authed_field": "nullableAuthedField",
                "admin_field": "adminField",
            }

        @authorized
        @query(lambda: bool)
        @ctx("context")
        def authed_query(self, context):
            return get_identity(context) is not None

        @authorized
        @query(lambda: bool, nullable=True)
        def nullable_authed_query(self):
            return True

        @authorized(admin)
        @query(lambda: bool)
        def admin_query(self):
            return True

        @authorized(or_(admin, regular))
        @query(lambda: bool)
        def admin_or_regular_query(self):
            return True

        @field_resolver()
        def normal_resolved_field(self):
            return "normalResolvedField"

        @authorized
        @field_resolver()
        def authed_resolved_field(self):
            return "authedResolvedField"

        @field_resolver()
        def inline_authed_resolved_field(self):
            return "inlineAuthedResolvedField"

    return SampleObject, SampleResolver, {"admin": admin, "regular": regular}
