# lock_verify/registry.py
"""
lock_verify.registry
====================

The lock registry and the "locked-before" order graph built on top of it.

The order graph is a directed graph where:

- **Nodes** are :class:`LockRecord` objects, one per lock instance created
  during the traced run, keyed by :class:`LockId`.
- **Edges** are :class:`LockRef` objects stored in the *later* lock's
  ``smaller`` table; an edge means the referenced lock was already held
  when the owning lock was taken.  Each edge carries the witness site where
  that ordering was observed.

Both the registry and every ``smaller`` table are :class:`OrderedTable`
instances: unique-key insert that reports duplicates, exact lookup, and
iteration in key order.  Iteration order is what makes detection output
reproducible between runs.

Typical usage::

    reg = LockRegistry()
    a = reg.create_lock(LockId(0, 0), "db.c", 10)
    b = reg.create_lock(LockId(0, 1), "db.c", 11)
    reg.add_order(a.id, b.id, "query.c", 40)     # a locked before b
    print(reg.to_dot())
"""

from __future__ import annotations

import logging
from typing import (
    Any,
    Dict,
    Generic,
    Hashable,
    Iterator,
    List,
    NamedTuple,
    Optional,
    Tuple,
    TypeVar,
)

from lock_verify.errors import DuplicateLockError, UnknownLockError

_log = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


# ---------------------------------------------------------------------------
# OrderedTable
# ---------------------------------------------------------------------------

class OrderedTable(Generic[K, V]):
    """Associative table with unique keys and key-ordered iteration.

    Keys must be mutually comparable.  Storage is a plain dict; the sorted
    key sequence is computed on first iteration after a change and cached.
    """

    __slots__ = ("_items", "_sorted")

    def __init__(self) -> None:
        self._items: Dict[K, V] = {}
        self._sorted: Optional[List[K]] = None

    def insert(self, key: K, value: V) -> bool:
        """Insert *value* under *key*.

        Returns ``False`` and leaves the table unchanged when *key* is
        already present.
        """
        if key in self._items:
            return False
        self._items[key] = value
        self._sorted = None
        return True

    def get(self, key: K) -> Optional[V]:
        return self._items.get(key)

    def keys(self) -> List[K]:
        if self._sorted is None:
            self._sorted = sorted(self._items)
        return list(self._sorted)

    def values(self) -> Iterator[V]:
        for key in self.keys():
            yield self._items[key]

    def items(self) -> Iterator[Tuple[K, V]]:
        for key in self.keys():
            yield key, self._items[key]

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[K]:
        return iter(self.keys())

    def __repr__(self) -> str:
        return f"OrderedTable({len(self._items)} entries)"


# ---------------------------------------------------------------------------
# Locks and edges
# ---------------------------------------------------------------------------

class LockId(NamedTuple):
    """``(thread_id, instance)``: names one lock instance for the whole run."""

    thread_id: int
    instance: int

    def __str__(self) -> str:
        return f"{self.thread_id} {self.instance}"


class LockRecord:
    """A created lock and the set of locks observed taken before it.

    Attributes
    ----------
    id : LockId
        Identity of the lock.
    creation_file, creation_line :
        Where the lock was created.
    smaller : OrderedTable[LockId, LockRef]
        Locks that were held when this one was taken, keyed by their id.
    """

    __slots__ = ("id", "creation_file", "creation_line", "smaller")

    def __init__(self, lock_id: LockId, creation_file: str, creation_line: int) -> None:
        self.id: LockId = lock_id
        self.creation_file: str = creation_file
        self.creation_line: int = creation_line
        self.smaller: OrderedTable[LockId, LockRef] = OrderedTable()

    @property
    def creation_site(self) -> str:
        return f"{self.creation_file} {self.creation_line}"

    def add_smaller(self, ref: "LockRef") -> bool:
        """Add an edge; the first witness for a given lock wins."""
        return self.smaller.insert(ref.lock.id, ref)

    def __repr__(self) -> str:
        return (
            f"LockRecord({self.id.thread_id}, {self.id.instance}, "
            f"{self.creation_file}:{self.creation_line})"
        )

    def __hash__(self) -> int:
        return hash(self.id)

    def __eq__(self, other) -> bool:
        if isinstance(other, LockRecord):
            return self.id == other.id
        return NotImplemented


class LockRef:
    """An edge: ``lock`` was held when the owning lock was taken.

    ``lock`` is a non-owning reference to the smaller lock; the witness
    fields record where the ordering was observed.
    """

    __slots__ = ("lock", "witness_file", "witness_line")

    def __init__(self, lock: LockRecord, witness_file: str, witness_line: int) -> None:
        self.lock = lock
        self.witness_file = witness_file
        self.witness_line = witness_line

    @property
    def witness_site(self) -> str:
        return f"{self.witness_file} {self.witness_line}"

    def __repr__(self) -> str:
        return f"LockRef({self.lock.id} @ {self.witness_file}:{self.witness_line})"


# ---------------------------------------------------------------------------
# LockRegistry
# ---------------------------------------------------------------------------

class LockRegistry:
    """All locks of one verification run, in :class:`LockId` order."""

    def __init__(self) -> None:
        self._locks: OrderedTable[LockId, LockRecord] = OrderedTable()
        self.edge_count = 0
        self.duplicate_edges = 0

    # ----- construction -----------------------------------------------------

    def create_lock(self, lock_id: LockId, creation_file: str, creation_line: int) -> LockRecord:
        """Register a newly created lock.

        Raises :class:`DuplicateLockError` if *lock_id* already exists.
        """
        record = LockRecord(lock_id, creation_file, creation_line)
        if not self._locks.insert(lock_id, record):
            existing = self._locks.get(lock_id)
            raise DuplicateLockError(
                f"lock {lock_id} created twice "
                f"(at {existing.creation_file} {existing.creation_line} "
                f"and {creation_file} {creation_line})"
            )
        return record

    def add_order(
        self,
        prev_id: LockId,
        now_id: LockId,
        witness_file: str,
        witness_line: int,
    ) -> bool:
        """Record that *prev_id* was held when *now_id* was taken.

        Both locks must already exist (:class:`UnknownLockError` otherwise).
        Returns ``False`` when the edge was already known and has been
        dropped.
        """
        prev = self._locks.get(prev_id)
        now = self._locks.get(now_id)
        if prev is None or now is None:
            missing = [str(i) for i, r in ((prev_id, prev), (now_id, now)) if r is None]
            raise UnknownLockError(
                f"could not find locks involved: {', '.join(missing)} "
                f"(ordering at {witness_file} {witness_line})"
            )
        if now.add_smaller(LockRef(prev, witness_file, witness_line)):
            self.edge_count += 1
            return True
        self.duplicate_edges += 1
        _log.debug("dropping repeated edge %s -> %s at %s %d",
                   prev_id, now_id, witness_file, witness_line)
        return False

    # ----- lookups ----------------------------------------------------------

    def get(self, lock_id: LockId) -> Optional[LockRecord]:
        return self._locks.get(lock_id)

    def __contains__(self, lock_id: object) -> bool:
        return lock_id in self._locks

    def __len__(self) -> int:
        return len(self._locks)

    def __iter__(self) -> Iterator[LockRecord]:
        return self._locks.values()

    def ids(self) -> List[LockId]:
        return self._locks.keys()

    # ----- whole-graph queries ----------------------------------------------

    def statistics(self) -> Dict[str, Any]:
        threads = {lock_id.thread_id for lock_id in self._locks.keys()}
        isolated = sum(1 for rec in self if len(rec.smaller) == 0)
        return {
            "locks": len(self._locks),
            "edges": self.edge_count,
            "duplicate_edges": self.duplicate_edges,
            "threads": len(threads),
            "locks_without_predecessors": isolated,
        }

    def to_dot(self, title: Optional[str] = None) -> str:
        """Render the order graph in Graphviz DOT format.

        Edges point from the lock taken first to the lock taken after it.
        """
        lines: List[str] = []
        name = title or "lock_order"
        lines.append(f'digraph "{name}" {{')
        lines.append("  rankdir=LR;")
        lines.append('  node [shape=box, fontname="monospace"];')
        for rec in self:
            label = f"{rec.id.thread_id}.{rec.id.instance}\\n{rec.creation_file}:{rec.creation_line}"
            lines.append(f'  "{_dot_id(rec.id)}" [label="{_dot_escape(label)}"];')
        for rec in self:
            for ref in rec.smaller.values():
                wlabel = f"{ref.witness_file}:{ref.witness_line}"
                lines.append(
                    f'  "{_dot_id(ref.lock.id)}" -> "{_dot_id(rec.id)}" '
                    f'[label="{_dot_escape(wlabel)}"];'
                )
        lines.append("}")
        return "\n".join(lines) + "\n"

    def __repr__(self) -> str:
        return f"LockRegistry({len(self._locks)} locks, {self.edge_count} edges)"


def _dot_id(lock_id: LockId) -> str:
    return f"L{lock_id.thread_id}_{lock_id.instance}"


def _dot_escape(text: str) -> str:
    return text.replace('"', '\\"')


__all__ = [
    "OrderedTable",
    "LockId",
    "LockRecord",
    "LockRef",
    "LockRegistry",
]
