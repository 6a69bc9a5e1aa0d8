import pytest

from gatedql import build_schema, default_auth_rule
from gatedql.auth.rules import And, Or
from gatedql.errors import ForbiddenError, UnauthenticatedError
from tests.fixtures import declare_sample, error_types, user


def _schema():
    _, sample_resolver, rules = declare_sample()
    return build_schema(resolvers=[sample_resolver], auto_camel_case=True), rules


def test_rule_tree_guards_only_annotated_fields():
    schema, rules = _schema()
    tree = schema.rule_tree
    assert tree.rule_for("Query", "normalQuery") is None
    assert tree.rule_for("Query", "authedQuery") is default_auth_rule
    assert tree.rule_for("Query", "adminQuery") is rules["admin"]
    assert isinstance(tree.rule_for("Query", "adminOrRegularQuery"), Or)
    assert tree.rule_for("SampleObject", "normalField") is None
    assert tree.rule_for("SampleObject", "authedField") is default_auth_rule
    assert tree.rule_for("SampleObject", "adminField") is rules["admin"]
    # declared on the type, implemented by the resolver
    assert tree.rule_for("SampleObject", "inlineAuthedResolvedField") is default_auth_rule
    assert tree.rule_for("SampleObject", "authedResolvedField") is default_auth_rule
    assert tree.rule_for("SampleObject", "normalResolvedField") is None


@pytest.mark.asyncio
async def test_unguarded_query_resolves():
    schema, _ = _schema()
    res = await schema.execute("query { normalQuery }")
    assert res.errors is None, res.errors
    assert res.data == {"normalQuery": True}


@pytest.mark.asyncio
async def test_unguarded_object_fields_resolve():
    schema, _ = _schema()
    res = await schema.execute("query { normalObjectQuery { normalField normalResolvedField } }")
    assert res.errors is None, res.errors
    assert res.data["normalObjectQuery"] == {
        "normalField": "normalField",
        "normalResolvedField": "normalResolvedField",
    }


@pytest.mark.asyncio
async def test_guest_gets_unauthenticated_error_on_authed_query():
    schema, _ = _schema()
    res = await schema.execute("query { normalQuery authedQuery }", context_value={})
    # non-null field: the denial nulls the whole (non-null) root
    assert res.data is None
    assert error_types(res) == [UnauthenticatedError]
    assert res.errors[0].path == ["authedQuery"]


@pytest.mark.asyncio
async def test_nullable_guarded_query_resolves_to_null_with_path_error():
    schema, _ = _schema()
    res = await schema.execute("query { normalQuery nullableAuthedQuery }", context_value={})
    assert res.data == {"normalQuery": True, "nullableAuthedQuery": None}
    assert error_types(res) == [UnauthenticatedError]
    assert res.errors[0].path == ["nullableAuthedQuery"]


@pytest.mark.asyncio
async def test_authenticated_user_reads_authed_query():
    schema, _ = _schema()
    res = await schema.execute("query { authedQuery }", context_value={"user": user()})
    assert res.errors is None, res.errors
    assert res.data == {"authedQuery": True}


@pytest.mark.asyncio
async def test_admin_rule_by_role():
    schema, _ = _schema()
    ok = await schema.execute("query { adminQuery }", context_value={"user": user("admin")})
    assert ok.errors is None, ok.errors
    assert ok.data == {"adminQuery": True}

    denied = await schema.execute("query { adminQuery }", context_value={"user": user("regular")})
    assert denied.data is None
    assert error_types(denied) == [ForbiddenError]
    assert "adminQuery" in denied.errors[0].path


@pytest.mark.asyncio
async def test_identity_without_roles_is_forbidden_not_unauthenticated():
    schema, _ = _schema()
    res = await schema.execute("query { adminQuery }", context_value={"user": {}})
    assert error_types(res) == [ForbiddenError]


@pytest.mark.asyncio
async def test_or_rule_allows_either_role():
    schema, _ = _schema()
    for roles in (("admin",), ("regular",)):
        res = await schema.execute("query { adminOrRegularQuery }", context_value={"user": user(*roles)})
        assert res.errors is None, res.errors
        assert res.data == {"adminOrRegularQuery": True}
    res = await schema.execute("query { adminOrRegularQuery }", context_value={"user": user("guest")})
    assert error_types(res) == [ForbiddenError]


@pytest.mark.asyncio
async def test_guarded_object_field_propagates_null_to_nearest_nullable_ancestor():
    schema, _ = _schema()
    res = await schema.execute("query { normalObjectQuery { authedField } }")
    assert res.data is None
    assert error_types(res) == [UnauthenticatedError]
    assert res.errors[0].path == ["normalObjectQuery", "authedField"]


@pytest.mark.asyncio
async def test_nullable_guarded_object_field_is_null_for_guests():
    schema, _ = _schema()
    res = await schema.execute("query { normalObjectQuery { normalField nullableAuthedField } }")
    assert res.data == {"normalObjectQuery": {"normalField": "normalField", "nullableAuthedField": None}}
    assert error_types(res) == [UnauthenticatedError]
    assert res.errors[0].path == ["normalObjectQuery", "nullableAuthedField"]


@pytest.mark.asyncio
async def test_object_field_with_role_rule_is_forbidden_for_plain_users():
    schema, _ = _schema()
    res = await schema.execute("query { normalObjectQuery { adminField } }", context_value={"user": {}})
    assert res.data is None
    assert error_types(res) == [ForbiddenError]
    assert "adminField" in res.errors[0].path


@pytest.mark.asyncio
async def test_resolver_method_rules_guard_object_fields():
    schema, _ = _schema()
    for name in ("authedResolvedField", "inlineAuthedResolvedField"):
        res = await schema.execute(f"query {{ normalObjectQuery {{ {name} }} }}")
        assert res.data is None
        assert error_types(res) == [UnauthenticatedError]


@pytest.mark.asyncio
async def test_resolver_method_field_allowed_with_identity():
    schema, _ = _schema()
    res = await schema.execute(
        "query { normalObjectQuery { inlineAuthedResolvedField authedResolvedField } }",
        context_value={"user": {}},
    )
    assert res.errors is None, res.errors
    assert res.data["normalObjectQuery"] == {
        "inlineAuthedResolvedField": "inlineAuthedResolvedField",
        "authedResolvedField": "authedResolvedField",
    }


@pytest.mark.asyncio
async def test_context_object_with_attributes():
    class Context:
        def __init__(self, user=None):
            self.user = user

    schema, _ = _schema()
    res = await schema.execute("query { authedQuery }", context_value=Context(user("admin")))
    assert res.errors is None, res.errors
    denied = await schema.execute("query { nullableAuthedQuery }", context_value=Context())
    assert error_types(denied) == [UnauthenticatedError]


def test_admin_expression_is_an_and_of_identity_and_role():
    _, rules = _schema()
    assert isinstance(rules["admin"], And)
    assert rules["admin"].rules[0] is default_auth_rule
