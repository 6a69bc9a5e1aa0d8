from __future__ import annotations
import asyncio
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional

_CACHE_KEY = '_gatedql_rule_cache'


class RuleCache:
    """Request-scoped map of cache key -> single shared evaluation.

    The first caller for a key schedules the evaluation; concurrent callers with the
    same key await that same pending task, so a predicate runs at most once per key
    and request. Must never be shared across requests.
    """

    def __init__(self):
        self._entries: Dict[Hashable, 'asyncio.Future[Any]'] = {}
        # objects whose id() participates in a key stay alive for the request
        self._pinned: List[Any] = []

    async def get_or_compute(self, key: Hashable, compute: Callable[[], Awaitable[Any]], *, pin: Any = None) -> Any:
        fut = self._entries.get(key)
        if fut is None:
            fut = asyncio.ensure_future(compute())
            self._entries[key] = fut
            if pin is not None:
                self._pinned.append(pin)
        # a cancelled waiter must not cancel the evaluation other waiters share
        return await asyncio.shield(fut)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def get_rule_cache(context: Any) -> Optional[RuleCache]:
    """Return the RuleCache owned by ``context``, creating it on first use.

    Dict contexts hold it under a private key, other objects as an attribute. Returns
    ``None`` when the context cannot hold state (``None``, immutable objects); callers
    then evaluate without caching.
    """
    if context is None:
        return None
    if isinstance(context, dict):
        cache = context.get(_CACHE_KEY)
        if cache is None:
            cache = RuleCache()
            context[_CACHE_KEY] = cache
        return cache
    cache = getattr(context, _CACHE_KEY, None)
    if cache is None:
        cache = RuleCache()
        try:
            setattr(context, _CACHE_KEY, cache)
        except (AttributeError, TypeError):
            return None
    return cache
