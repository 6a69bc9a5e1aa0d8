"""Process-wide metadata registry.

Declarations (``@object_type``, ``field()``, ``@query``, ``@authorized`` ...) call
:meth:`MetadataRegistry.record` while class bodies execute. The schema assembler
later reads the accumulated records with :meth:`MetadataRegistry.query_by_kind`.

Lifecycle:
  - created empty at import time (:func:`get_metadata_storage`), or explicitly by
    callers that want an isolated registry;
  - populated as annotated classes are defined;
  - frozen when a schema build starts reading it;
  - reset by :meth:`MetadataRegistry.clear`, which also invalidates every schema
    built from it before (see ``GatedSchema.is_stale``).

Concurrent schema builds against one registry are not supported: a build is a
one-shot serialized operation and a second build started while one is running
raises :class:`~gatedql.errors.ConcurrentBuildError`.
"""
from __future__ import annotations
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .core.metadata import AnnotationKind, AnnotationRecord
from .errors import ConcurrentBuildError, UnsupportedKeyError

__all__ = ['MetadataRegistry', 'get_metadata_storage']

_logger = logging.getLogger("gatedql")


class MetadataRegistry:
    """Ordered store of :class:`AnnotationRecord` per :class:`AnnotationKind`."""

    def __init__(self):
        self._records: Dict[AnnotationKind, Dict[Tuple[Any, ...], AnnotationRecord]] = {
            kind: {} for kind in AnnotationKind
        }
        self._frozen = False
        self._building = False
        self.generation = 0

    # --- recording ---------------------------------------------------------
    def record(self, kind: AnnotationKind, target: type, member: Optional[str], payload: Any) -> AnnotationRecord:
        """Append a record. A record with the same (target, member) key of the same kind is replaced."""
        if member is not None and not isinstance(member, str):
            raise UnsupportedKeyError(member)
        kind = AnnotationKind(kind)
        rec = AnnotationRecord(kind=kind, target=target, member=member, payload=payload)
        bucket = self._records[kind]
        if rec.key in bucket:
            _logger.debug("gatedql: replacing %s record for %s.%s", kind.value, rec.owner_name, member)
            # last write wins and moves to the end
            del bucket[rec.key]
        bucket[rec.key] = rec
        if self._frozen:
            _logger.warning(
                "gatedql: %s record for %s.%s added after a schema was built from this registry; "
                "it only affects schemas built from now on",
                kind.value, rec.owner_name, member,
            )
        return rec

    # --- reading -----------------------------------------------------------
    def query_by_kind(self, kind: AnnotationKind) -> Tuple[AnnotationRecord, ...]:
        return tuple(self._records[AnnotationKind(kind)].values())

    def find(self, kind: AnnotationKind, target: type, member: Optional[str] = None) -> Optional[AnnotationRecord]:
        return self._records[AnnotationKind(kind)].get((target, member, None))

    def for_target(self, kind: AnnotationKind, target: type) -> List[AnnotationRecord]:
        return [r for r in self._records[AnnotationKind(kind)].values() if r.target is target]

    def params_for(self, target: type, member: str) -> List[AnnotationRecord]:
        recs = [r for r in self._records[AnnotationKind.PARAM].values() if r.target is target and r.member == member]
        return sorted(recs, key=lambda r: r.payload.index)

    def __len__(self) -> int:
        return sum(len(b) for b in self._records.values())

    # --- lifecycle ---------------------------------------------------------
    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    @contextmanager
    def building(self) -> Iterator['MetadataRegistry']:
        """Guard a schema build: freezes the registry and rejects overlapping builds."""
        if self._building:
            raise ConcurrentBuildError("A schema build is already running against this registry")
        self._building = True
        self.freeze()
        try:
            yield self
        finally:
            self._building = False

    def clear(self) -> None:
        """Drop every record. Schemas built before this call must not be relied upon."""
        for bucket in self._records.values():
            bucket.clear()
        self._frozen = False
        self.generation += 1
        _logger.debug("gatedql: metadata registry cleared (generation %d)", self.generation)


_DEFAULT_REGISTRY = MetadataRegistry()


def get_metadata_storage() -> MetadataRegistry:
    """Return the process-wide registry used when declarations do not pass ``registry=``."""
    return _DEFAULT_REGISTRY
