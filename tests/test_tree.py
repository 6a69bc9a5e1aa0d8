import asyncio
import logging
import traceback

import pytest

from gatedql import (
    allow,
    arg,
    authorized,
    build_schema,
    default_auth_rule,
    deny,
    field,
    field_resolver,
    input_type,
    object_type,
    query,
    resolver,
    rule,
)
from gatedql.auth.rules import And
from gatedql.errors import ForbiddenError, OrphanedRuleError, UnauthenticatedError
from tests.fixtures import error_types


def flag(name):
    @rule(name=f"flag-{name}")
    def check(parent, args, context, info):
        return bool(context.get(name))
    return check


def test_schema_without_rules_has_empty_tree():
    @resolver()
    class R:
        @query(lambda: str)
        def hello(self):
            return "hi"

    tree = build_schema().rule_tree
    assert not tree
    assert len(tree) == 0


def test_orphaned_rule_is_rejected():
    @resolver()
    class R:
        @query(lambda: str)
        def hello(self):
            return "hi"

        @authorized
        def helper(self):
            return None

    with pytest.raises(OrphanedRuleError) as exc:
        build_schema()
    assert exc.value.member == "helper"


def test_orphaned_rule_is_logged_with_skip_check(caplog):
    @resolver()
    class R:
        @query(lambda: str)
        def hello(self):
            return "hi"

        @authorized
        def helper(self):
            return None

    with caplog.at_level(logging.WARNING, logger="gatedql"):
        schema = build_schema(skip_check=True)
    assert not schema.rule_tree
    assert any("orphaned authorization rule" in r.getMessage() for r in caplog.records)


def test_rules_of_classes_left_out_of_the_build_are_ignored():
    @resolver()
    class Public:
        @query(lambda: str)
        def hello(self):
            return "hi"

    @resolver()
    class Admin:
        @authorized
        @query(lambda: str)
        def secret(self):
            return "s"

    schema = build_schema(resolvers=[Public])
    assert not schema.rule_tree


@pytest.mark.asyncio
async def test_class_default_applies_unless_the_member_has_its_own_rule():
    @authorized
    @resolver()
    class R:
        @query(lambda: str, nullable=True)
        def guarded(self):
            return "guarded"

        @authorized(allow)
        @query(lambda: str)
        def open(self):
            return "open"

    schema = build_schema()
    assert schema.rule_tree.rule_for("Query", "guarded") is default_auth_rule
    assert schema.rule_tree.rule_for("Query", "open") is allow

    res = await schema.execute("{ guarded open }", context_value={})
    assert res.data == {"guarded": None, "open": "open"}
    assert error_types(res) == [UnauthenticatedError]


@pytest.mark.asyncio
async def test_class_default_on_object_type_guards_its_fields():
    @authorized
    @object_type()
    class Vault:
        content = field(lambda: str, nullable=True)
        label = field(lambda: str, authorized=allow)

    @resolver()
    class R:
        @query(lambda: Vault)
        def vault(self):
            return {"content": "gold", "label": "main"}

    schema = build_schema()
    assert schema.rule_tree.rule_for("Vault", "content") is default_auth_rule
    res = await schema.execute("{ vault { content label } }", context_value={})
    assert res.data == {"vault": {"content": None, "label": "main"}}
    ok = await schema.execute("{ vault { content } }", context_value={"user": {}})
    assert ok.data == {"vault": {"content": "gold"}}


@pytest.mark.asyncio
async def test_declared_and_resolver_rules_are_both_required():
    needs_a, needs_b = flag("a"), flag("b")

    @object_type()
    class Doc:
        body = field(lambda: str, nullable=True, authorized=needs_a)

    @resolver(of=lambda: Doc)
    class DocResolver:
        @query(lambda: Doc)
        def doc(self):
            return {}

        @authorized(needs_b)
        @field_resolver()
        def body(self):
            return "text"

    schema = build_schema()
    combined = schema.rule_tree.rule_for("Doc", "body")
    assert isinstance(combined, And)
    assert list(combined.rules) == [needs_a, needs_b]

    for context in ({"a": True}, {"b": True}):
        res = await schema.execute("{ doc { body } }", context_value=context)
        assert res.data == {"doc": {"body": None}}
        assert error_types(res) == [UnauthenticatedError]
    res = await schema.execute("{ doc { body } }", context_value={"a": True, "b": True})
    assert res.errors is None, res.errors
    assert res.data == {"doc": {"body": "text"}}


@pytest.mark.asyncio
async def test_contextual_rule_runs_once_per_request_across_sibling_fields():
    calls = []

    @rule(cache="contextual")
    async def expensive(parent, args, context, info):
        calls.append(1)
        await asyncio.sleep(0.01)
        return True

    @object_type()
    class Item:
        a = field(lambda: int, authorized=expensive)
        b = field(lambda: int, authorized=expensive)
        c = field(lambda: int, authorized=expensive)

    @resolver()
    class R:
        @authorized(expensive)
        @query(lambda: Item, list=True)
        def items(self):
            return [{"a": 1, "b": 2, "c": 3}, {"a": 4, "b": 5, "c": 6}]

    schema = build_schema()
    res = await schema.execute("{ items { a b c } }", context_value={})
    assert res.errors is None, res.errors
    assert res.data == {"items": [{"a": 1, "b": 2, "c": 3}, {"a": 4, "b": 5, "c": 6}]}
    assert len(calls) == 1

    await schema.execute("{ items { a } }", context_value={})
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_strict_rule_runs_per_parent():
    seen = []

    @rule(cache="strict")
    def per_owner(parent, args, context, info):
        seen.append(parent["owner"])
        return parent["owner"] == context["user"]["name"]

    @object_type()
    class Note:
        owner = field(lambda: str)
        text = field(lambda: str, nullable=True, authorized=per_owner)
        title = field(lambda: str, nullable=True, authorized=per_owner)

    @resolver()
    class R:
        @query(lambda: Note, list=True)
        def notes(self):
            return [{"owner": "alice", "text": "a1", "title": "t1"}, {"owner": "bob", "text": "b1", "title": "t2"}]

    res = await build_schema().execute("{ notes { text title } }", context_value={"user": {"name": "alice"}})
    assert res.data == {"notes": [{"text": "a1", "title": "t1"}, {"text": None, "title": None}]}
    assert sorted(seen) == ["alice", "bob"]


@pytest.mark.asyncio
async def test_fallback_error_is_configurable():
    @resolver()
    class R:
        @authorized(deny)
        @query(lambda: str, nullable=True)
        def secret(self):
            return "s"

        @authorized
        @query(lambda: str, nullable=True)
        def mine(self):
            return "m"

    res = await build_schema(fallback_error=ForbiddenError).execute("{ secret mine }", context_value={})
    # the identity rule reports its own error
    assert {e.path[0]: type(e.original_error) for e in res.errors} == {
        "secret": ForbiddenError, "mine": UnauthenticatedError,
    }
    custom = ForbiddenError("members only")
    res = await build_schema(fallback_error=custom).execute("{ secret }", context_value={})
    assert res.errors[0].message == "members only"


@pytest.mark.asyncio
async def test_context_without_cache_slot_still_evaluates():
    calls = []

    @rule
    def counted(parent, args, context, info):
        calls.append(1)
        return True

    @resolver()
    class R:
        @authorized(counted)
        @query(lambda: str)
        def a(self):
            return "a"

        @authorized(counted)
        @query(lambda: str)
        def b(self):
            return "b"

    res = await build_schema().execute("{ a b }", context_value=None)
    assert res.data == {"a": "a", "b": "b"}
    # no place to keep the per-request cache
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_repeated_denials_do_not_grow_tracebacks():
    shared = ForbiddenError("shared")

    @rule(cache="no_cache")
    def raises_shared(parent, args, context, info):
        raise shared

    @resolver()
    class R:
        @authorized(deny)
        @query(lambda: str, nullable=True)
        def secret(self):
            return "s"

        @authorized(raises_shared)
        @query(lambda: str, nullable=True)
        def hidden(self):
            return "h"

    custom = ForbiddenError("members only")
    schema = build_schema(fallback_error=custom)
    depths = {"secret": set(), "hidden": set()}
    for _ in range(3):
        res = await schema.execute("{ secret hidden }", context_value={})
        assert res.data == {"secret": None, "hidden": None}
        for err in res.errors:
            depths[err.path[0]].add(len(traceback.extract_tb(err.original_error.__traceback__)))
            assert err.original_error is not custom and err.original_error is not shared
    assert all(len(seen) == 1 for seen in depths.values()), depths
    assert custom.__traceback__ is None
    assert shared.__traceback__ is None
    assert {e.message for e in res.errors} == {"members only", "shared"}


@pytest.mark.asyncio
async def test_strict_rule_dedups_equal_input_arguments():
    calls = []

    @rule(cache="strict")
    def by_filter(parent, args, context, info):
        calls.append(1)
        return True

    @input_type()
    class SearchFilter:
        q = field(lambda: str)

    @resolver()
    class R:
        @authorized(by_filter)
        @query(lambda: str)
        @arg("f", lambda: SearchFilter)
        def search(self, f):
            return f.q

    res = await build_schema().execute(
        '{ a: search(f: {q: "x"}) b: search(f: {q: "x"}) c: search(f: {q: "y"}) }', context_value={}
    )
    assert res.errors is None, res.errors
    assert res.data == {"a": "x", "b": "x", "c": "y"}
    assert len(calls) == 2


def test_authorized_rejects_plain_predicates():
    def is_owner(parent, args, context, info):
        return True

    with pytest.raises(TypeError, match="rule"):
        authorized(is_owner)
    with pytest.raises(TypeError):
        authorized(lambda parent, args, context, info: True)
