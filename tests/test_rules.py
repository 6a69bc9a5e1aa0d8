import asyncio

import pytest

from gatedql import allow, and_, deny, in_role_of, not_, or_, rule
from gatedql.auth.cache import RuleCache, get_rule_cache
from gatedql.auth.rules import CacheMode, authenticated, default_auth_rule, fresh_error
from gatedql.errors import ForbiddenError, UnauthenticatedError, ValidationError


class DenyA(Exception):
    pass


class DenyB(Exception):
    pass


def raising(exc_type):
    @rule(cache="no_cache")
    def _raise(parent, args, ctx, info):
        raise exc_type()
    return _raise


async def evaluate(expr, context=None, parent=None, args=None, cache=None):
    return await expr.evaluate(parent, args or {}, context, None, cache)


@pytest.mark.asyncio
async def test_predicate_outcomes():
    returned = ForbiddenError("nope")

    @rule
    def returns_error(parent, args, ctx, info):
        return returned

    @rule(error=ForbiddenError)
    def returns_false(parent, args, ctx, info):
        return False

    @rule
    def returns_none(parent, args, ctx, info):
        return None

    assert (await evaluate(allow)).allowed
    assert (await evaluate(returns_error)).reason is returned
    assert isinstance((await evaluate(returns_false)).reason, ForbiddenError)
    decision = await evaluate(returns_none)
    assert not decision.allowed and decision.reason is None
    raised = await evaluate(raising(DenyA))
    assert not raised.allowed and isinstance(raised.reason, DenyA)


@pytest.mark.asyncio
async def test_truthy_non_true_result_denies():
    @rule
    def returns_one(parent, args, ctx, info):
        return 1

    assert not (await evaluate(returns_one)).allowed


@pytest.mark.asyncio
async def test_async_predicate():
    @rule
    async def later(parent, args, ctx, info):
        await asyncio.sleep(0)
        return ctx["ok"]

    assert (await evaluate(later, {"ok": True})).allowed


@pytest.mark.asyncio
async def test_and_short_circuits_on_first_deny():
    calls = []

    @rule(cache="no_cache")
    def second(parent, args, ctx, info):
        calls.append("second")
        return True

    decision = await evaluate(and_(raising(DenyA), second))
    assert isinstance(decision.reason, DenyA)
    assert calls == []
    assert (await evaluate(and_(allow, second))).allowed
    assert calls == ["second"]


@pytest.mark.asyncio
async def test_or_reports_last_denial_reason():
    decision = await evaluate(or_(raising(DenyA), raising(DenyB)))
    assert not decision.allowed
    assert isinstance(decision.reason, DenyB)


@pytest.mark.asyncio
async def test_or_short_circuits_on_first_allow():
    calls = []

    @rule(cache="no_cache")
    def tracked(parent, args, ctx, info):
        calls.append(1)
        return False

    assert (await evaluate(or_(allow, tracked))).allowed
    assert calls == []


@pytest.mark.asyncio
async def test_not_inverts():
    assert not (await evaluate(not_(allow))).allowed
    assert (await evaluate(not_(deny))).allowed
    # an error from the inner rule is a denial, so NOT allows
    assert (await evaluate(not_(raising(DenyA)))).allowed
    decision = await evaluate(not_(allow, error=ForbiddenError))
    assert isinstance(decision.reason, ForbiddenError)
    assert (await evaluate(not_(allow))).reason is None


@pytest.mark.asyncio
async def test_not_is_cached_independently_of_its_leaf():
    calls = []

    @rule(name="leaf")
    def leaf(parent, args, ctx, info):
        calls.append(1)
        return True

    negated = not_(leaf, cache="contextual")
    cache = RuleCache()
    assert (await evaluate(leaf, cache=cache)).allowed
    assert not (await evaluate(negated, cache=cache)).allowed
    assert (leaf,) in cache
    assert (negated,) in cache
    assert calls == [1]


@pytest.mark.asyncio
async def test_contextual_rule_runs_once_under_concurrency():
    calls = []

    @rule(cache="contextual")
    async def slow(parent, args, ctx, info):
        calls.append(1)
        await asyncio.sleep(0.01)
        return True

    cache = RuleCache()
    decisions = await asyncio.gather(*[
        slow.evaluate(object(), {"i": i}, {}, None, cache) for i in range(5)
    ])
    assert all(d.allowed for d in decisions)
    assert calls == [1]


@pytest.mark.asyncio
async def test_strict_rule_keys_on_parent_and_args():
    calls = []

    @rule(cache="strict")
    async def strict(parent, args, ctx, info):
        calls.append((parent["id"], args.get("x")))
        await asyncio.sleep(0)
        return True

    cache = RuleCache()
    p1, p2 = {"id": 1}, {"id": 2}
    await asyncio.gather(
        strict.evaluate(p1, {"x": 1}, {}, None, cache),
        strict.evaluate(p1, {"x": 1}, {}, None, cache),
        strict.evaluate(p1, {"x": 2}, {}, None, cache),
        strict.evaluate(p2, {"x": 1}, {}, None, cache),
    )
    assert sorted(calls) == [(1, 1), (1, 2), (2, 1)]


@pytest.mark.asyncio
async def test_strict_rule_compares_input_objects_by_value():
    calls = []

    class Filter:
        def __init__(self, q):
            self.q = q

    @rule(cache="strict")
    def strict(parent, args, ctx, info):
        calls.append(args["f"].q)
        return True

    cache = RuleCache()
    parent = {}
    for f in (Filter("x"), Filter("x"), Filter("y")):
        await strict.evaluate(parent, {"f": f}, {}, None, cache)
    assert calls == ["x", "y"]


@pytest.mark.asyncio
async def test_rules_sharing_a_name_keep_separate_cache_slots():
    yes = rule(name="owner")(lambda p, a, c, i: True)
    no = rule(name="owner")(lambda p, a, c, i: False)

    cache = RuleCache()
    assert (await evaluate(yes, cache=cache)).allowed
    assert not (await evaluate(no, cache=cache)).allowed
    assert len(cache) == 2


@pytest.mark.asyncio
async def test_no_cache_rule_always_runs():
    calls = []

    @rule(cache=CacheMode.NO_CACHE)
    def fresh(parent, args, ctx, info):
        calls.append(1)
        return True

    cache = RuleCache()
    await evaluate(fresh, cache=cache)
    await evaluate(fresh, cache=cache)
    assert len(calls) == 2
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_cached_raise_is_shared():
    calls = []

    @rule(cache="contextual")
    def boom(parent, args, ctx, info):
        calls.append(1)
        raise DenyA()

    cache = RuleCache()
    first = await evaluate(boom, cache=cache)
    second = await evaluate(boom, cache=cache)
    assert first.reason is second.reason
    assert calls == [1]


def test_rule_names_are_unique_per_instance():
    assert authenticated().name != authenticated().name
    assert default_auth_rule.name == "authenticated"
    assert rule(name="fixed")(lambda p, a, c, i: True).name == "fixed"


@pytest.mark.asyncio
async def test_in_role_of():
    admin = in_role_of("admin", "owner")
    assert (await evaluate(admin, {"user": {"roles": ["owner"]}})).allowed
    no_identity = await evaluate(admin, {})
    assert not no_identity.allowed and no_identity.reason is None
    wrong_role = await evaluate(admin, {"user": {"roles": "viewer"}})
    assert isinstance(wrong_role.reason, ForbiddenError)


@pytest.mark.asyncio
async def test_in_role_of_without_roles_only_needs_an_identity():
    anyone = in_role_of()
    assert (await evaluate(anyone, {"user": {"roles": []}})).allowed
    no_identity = await evaluate(anyone, {})
    assert not no_identity.allowed and no_identity.reason is None


SHARED = DenyB("shared")


@pytest.mark.asyncio
async def test_raised_shared_instance_does_not_collect_frames():
    @rule(cache="no_cache")
    def raises_shared(parent, args, ctx, info):
        raise SHARED

    for _ in range(3):
        decision = await evaluate(raises_shared)
        assert type(decision.reason) is DenyB
        assert decision.reason is not SHARED
        assert SHARED.__traceback__ is None


def test_fresh_error_copies_without_init():
    original = ValidationError("amount must be positive", param="amount", cause=ValueError("neg"))
    copy = fresh_error(original)
    assert copy is not original
    assert type(copy) is ValidationError
    assert str(copy) == "amount must be positive"
    assert copy.param == "amount" and copy.cause is original.cause


@pytest.mark.asyncio
async def test_authenticated_with_custom_key():
    logged_in = authenticated("account")
    assert (await evaluate(logged_in, {"account": object()})).allowed
    assert not (await evaluate(logged_in, {"user": object()})).allowed


def test_rule_cache_lives_on_the_context():
    ctx = {}
    cache = get_rule_cache(ctx)
    assert cache is get_rule_cache(ctx)
    assert get_rule_cache({}) is not cache
    assert get_rule_cache(None) is None

    class Frozen:
        __slots__ = ()

    assert get_rule_cache(Frozen()) is None


def test_fallback_default_is_unauthenticated():
    assert UnauthenticatedError().args[0].startswith("Access denied")
