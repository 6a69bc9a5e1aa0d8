"""Authorization tree construction and the field gate.

:func:`build_rule_tree` joins the recorded authorization facts with the fields of
the finished type graph by (owning class, member name). For a field, the candidate
facts come from every record that declared or implements it:

* member-level facts win over class-level defaults;
* a field declared on a type and implemented by a resolver method, with member
  rules on both, requires both (combined with AND);
* without member-level facts the first class-level default found on the
  implementing class, the declaring class or the object type itself applies.

A fact that matches no field is orphaned and rejected at build time.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field as dc_field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ..core.graph import ResolveFn, SchemaField, SchemaType, TypeGraph
from ..core.metadata import AnnotationKind, AnnotationRecord
from ..errors import OrphanedRuleError
from .cache import get_rule_cache
from .rules import RuleExpression, and_, fresh_error

__all__ = ['RuleTree', 'build_rule_tree', 'Shield', 'FieldGuard']

_logger = logging.getLogger("gatedql")


@dataclass
class RuleTree:
    """type name -> {field external name -> rule expression}, guarded fields only."""

    types: Dict[str, Dict[str, RuleExpression]] = dc_field(default_factory=dict)

    def rule_for(self, type_name: str, field_name: str) -> Optional[RuleExpression]:
        return self.types.get(type_name, {}).get(field_name)

    def __bool__(self) -> bool:
        return bool(self.types)

    def __len__(self) -> int:
        return sum(len(v) for v in self.types.values())


def _class_candidates(stype: SchemaType, sfield: SchemaField) -> List[type]:
    out: List[type] = []
    # implementing record first (resolver class), then declaring classes, then the type
    for origin in reversed(sfield.origins):
        if origin.target not in out:
            out.append(origin.target)
    if stype.cls is not None and stype.cls not in out:
        out.append(stype.cls)
    return out


def build_rule_tree(graph: TypeGraph, facts: Iterable[AnnotationRecord], *,
                    participants: Optional[Set[type]] = None, skip_check: bool = False) -> RuleTree:
    """Join authorization facts with the graph's output fields.

    Args:
        graph: The finished type graph.
        facts: ``AUTHORIZED`` records.
        participants: Classes that took part in the build; facts on classes a build
            deliberately left out (``resolvers=`` filter) are ignored instead of orphaned.
        skip_check: Log orphaned facts instead of raising :class:`OrphanedRuleError`.
    """
    facts = [f for f in facts if f.kind is AnnotationKind.AUTHORIZED]
    member_facts: Dict[Tuple[type, str], AnnotationRecord] = {}
    class_facts: Dict[type, AnnotationRecord] = {}
    for f in facts:
        if f.member is None:
            class_facts[f.target] = f
        else:
            member_facts[(f.target, f.member)] = f

    used: Set[Tuple[type, Optional[str]]] = set()
    tree = RuleTree()
    for stype in graph.types.values():
        if not stype.is_output:
            continue
        guarded: Dict[str, RuleExpression] = {}
        for sfield in stype.fields:
            rules: List[RuleExpression] = []
            for origin in sfield.origins:
                fact = member_facts.get((origin.target, origin.member))
                if fact is not None and fact.payload.rule not in rules:
                    rules.append(fact.payload.rule)
                    used.add((origin.target, origin.member))
            candidates = _class_candidates(stype, sfield)
            # a class default matches as soon as its class contributes a field
            used.update((owner, None) for owner in candidates if owner in class_facts)
            if not rules:
                for owner in candidates:
                    fact = class_facts.get(owner)
                    if fact is not None:
                        rules.append(fact.payload.rule)
                        break
            if rules:
                guarded[sfield.name] = rules[0] if len(rules) == 1 else and_(*rules)
        if guarded:
            tree.types[stype.name] = guarded

    for f in facts:
        if (f.target, f.member) in used:
            continue
        if participants is not None and f.target not in participants:
            _logger.debug("gatedql: ignoring rule on %s.%s (class not part of this build)", f.owner_name, f.member)
            continue
        if skip_check:
            _logger.warning("gatedql: orphaned authorization rule on %s.%s skipped", f.owner_name, f.member)
            continue
        raise OrphanedRuleError(f.owner_name, f.member)
    _logger.debug("gatedql: authorization tree guards %d field(s) on %d type(s)", len(tree), len(tree.types))
    return tree


class FieldGuard:
    """Evaluates one field's rule before the field's pipeline runs."""

    def __init__(self, rule: RuleExpression, shield: 'Shield', type_name: str, field_name: str):
        self.rule = rule
        self.shield = shield
        self.type_name = type_name
        self.field_name = field_name

    async def check(self, parent: Any, args: Any, context: Any, info: Any) -> None:
        decision = await self.rule.evaluate(parent, args, context, info, get_rule_cache(context))
        if decision.allowed:
            return
        error = decision.reason if decision.reason is not None else self.shield.fallback_error()
        _logger.debug("gatedql: access to %s.%s denied: %r", self.type_name, self.field_name, error)
        # configured and cached errors are shared between denials
        raise fresh_error(error)

    def wrap(self, resolve: ResolveFn) -> ResolveFn:
        async def guarded(parent: Any, args: Any, context: Any, info: Any) -> Any:
            await self.check(parent, args, context, info)
            return await resolve(parent, args, context, info)
        guarded.__qualname__ = getattr(resolve, '__qualname__', 'guarded')
        return guarded


class Shield:
    """Schema-wide policy gate: wraps guarded field resolvers with their rule.

    Unguarded fields are left untouched, so a schema without authorization facts
    pays nothing at request time.
    """

    def __init__(self, tree: RuleTree, fallback_error: Any):
        self.tree = tree
        self._fallback = fallback_error

    def fallback_error(self) -> BaseException:
        err = self._fallback
        return err() if isinstance(err, type) else err

    def install(self, graph: TypeGraph) -> int:
        installed = 0
        for type_name, rules in self.tree.types.items():
            stype = graph.get(type_name)
            if stype is None:
                continue
            for sfield in stype.fields:
                rule = rules.get(sfield.name)
                if rule is None or sfield.resolver is None:
                    continue
                sfield.resolver = FieldGuard(rule, self, type_name, sfield.name).wrap(sfield.resolver)
                installed += 1
        return installed
