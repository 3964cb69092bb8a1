# lock_verify/detector.py
"""
lock_verify.detector
====================

Finds cycles in the lock order graph.

A cycle means a lock is transitively "smaller" than itself: along some
execution paths the locks of the cycle were taken in mutually inconsistent
orders, so threads running those paths concurrently can deadlock.

Algorithm
---------
Locks are taken as roots in registry (``LockId``) order; roots already
visited by an earlier run are skipped.  From each root a depth-first walk
follows the ``smaller`` edges, keeping

``level``
    the depth below the root (root = 0), and
``probe``
    the stack position of the most recent lock on the current path that
    was not yet visited when it was entered.

Before following an edge the target is looked up on the current stack.  If
it sits at or above the probe position the edge closes a cycle, which is
reported; the edge is not followed.  A lock whose edges are exhausted is
marked visited.  Locks visited in an earlier run are still walked through
so their subgraph can close cycles with the current path, but they do not
move the probe: cycles consisting only of such locks were reported when
they were first explored.

All traversal state lives in a :class:`TraversalContext` owned by one
sweep; the registry itself is never modified.  The walk uses an explicit
stack, so deep ordering chains cannot exhaust the interpreter stack.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

from lock_verify.registry import LockId, LockRecord, LockRef, LockRegistry

_log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Traversal state
# ---------------------------------------------------------------------------

@dataclass
class TraversalState:
    """Per-lock state of one detection sweep."""

    visited: bool = False
    stack_parent: Optional[LockId] = None
    entered_via: Optional[LockRef] = None


class TraversalContext:
    """Mapping ``LockId -> TraversalState`` for one sweep."""

    def __init__(self) -> None:
        self._states: Dict[LockId, TraversalState] = {}

    def state(self, lock_id: LockId) -> TraversalState:
        st = self._states.get(lock_id)
        if st is None:
            st = self._states[lock_id] = TraversalState()
        return st

    def is_visited(self, lock_id: LockId) -> bool:
        st = self._states.get(lock_id)
        return st is not None and st.visited

    def mark_visited(self, lock_id: LockId) -> None:
        self.state(lock_id).visited = True

    @property
    def visited_count(self) -> int:
        return sum(1 for st in self._states.values() if st.visited)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CycleStep:
    """One edge of a reported cycle: taken at the witness site, before
    ``lock``."""

    witness_file: str
    witness_line: int
    lock: LockRecord


@dataclass
class OrderCycle:
    """An inconsistent lock order.

    ``head`` is the lock that closes the cycle.  ``steps`` walks the cycle
    backwards from the closing edge: each step names the lock that was
    taken after the previous one, the last step returns to ``head``.
    """

    head: LockRecord
    steps: List[CycleStep] = field(default_factory=list)
    level: int = 0

    @property
    def length(self) -> int:
        return len(self.steps)

    @property
    def locks(self) -> List[LockRecord]:
        return [step.lock for step in self.steps]

    def lock_ids(self) -> List[LockId]:
        return [step.lock.id for step in self.steps]


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------

class _Frame:
    __slots__ = ("lock", "level", "probe", "edges")

    def __init__(self, lock: LockRecord, level: int, probe: int,
                 edges: Iterator[LockRef]) -> None:
        self.lock = lock
        self.level = level
        self.probe = probe
        self.edges = edges


class CycleDetector:
    """Sweep a registry for lock order cycles.

    Parameters
    ----------
    registry : LockRegistry
        The fully built order graph.
    on_cycle : callable, optional
        Called with every :class:`OrderCycle` as soon as it is found.
    """

    def __init__(
        self,
        registry: LockRegistry,
        on_cycle: Optional[Callable[[OrderCycle], None]] = None,
    ) -> None:
        self.registry = registry
        self._on_cycle = on_cycle
        self.context = TraversalContext()
        self.cycles: List[OrderCycle] = []

    def run(self) -> List[OrderCycle]:
        """Check every lock; returns the cycles in detection order."""
        self.context = TraversalContext()
        self.cycles = []
        total = len(self.registry)
        for i, lock in enumerate(self.registry):
            _log.debug("[%d/%d] Checking lock %s %s %d",
                       i, total, lock.id, lock.creation_file, lock.creation_line)
            if self.context.is_visited(lock.id):
                continue
            self._search(lock)
        return self.cycles

    # ----- depth-first search -----------------------------------------------

    def _search(self, root: LockRecord) -> None:
        ctx = self.context
        root_state = ctx.state(root.id)
        root_state.stack_parent = None
        root_state.entered_via = LockRef(root, root.creation_file, root.creation_line)

        path: List[_Frame] = []
        on_path: Dict[LockId, int] = {}

        def push(lock: LockRecord, level: int, parent_probe: int) -> None:
            idx = len(path)
            probe = parent_probe if ctx.is_visited(lock.id) else idx
            path.append(_Frame(lock, level, probe, iter(list(lock.smaller.values()))))
            on_path[lock.id] = idx

        push(root, 0, 0)
        while path:
            frame = path[-1]
            ref = next(frame.edges, None)
            if ref is None:
                path.pop()
                del on_path[frame.lock.id]
                ctx.mark_visited(frame.lock.id)
                continue

            target = ref.lock
            pos = on_path.get(target.id)
            if pos is not None:
                if pos <= frame.probe:
                    self._found(target, ref, frame, len(path))
                # otherwise the cycle runs through visited locks only and
                # was reported by the run that first explored them
                continue

            st = ctx.state(target.id)
            st.stack_parent = frame.lock.id
            st.entered_via = ref
            push(target, frame.level + 1, frame.probe)

    def _found(self, head: LockRecord, closing: LockRef, frame: _Frame, depth: int) -> None:
        steps = [CycleStep(closing.witness_file, closing.witness_line, frame.lock)]
        current = frame.lock
        # the chain is bounded by the stack depth
        for _ in range(depth):
            if current.id == head.id:
                break
            st = self.context.state(current.id)
            parent = None
            if st.stack_parent is not None:
                parent = self.registry.get(st.stack_parent)
            if parent is None or st.entered_via is None:
                _log.error("broken traversal chain at lock %s", current.id)
                break
            steps.append(CycleStep(st.entered_via.witness_file,
                                   st.entered_via.witness_line, parent))
            current = parent

        cycle = OrderCycle(head=head, steps=steps, level=frame.level + 1)
        self.cycles.append(cycle)
        _log.debug("cycle of length %d at lock %s", cycle.length, head.id)
        if self._on_cycle is not None:
            self._on_cycle(cycle)


def find_cycles(registry: LockRegistry) -> List[OrderCycle]:
    """Convenience wrapper: run a fresh :class:`CycleDetector`."""
    return CycleDetector(registry).run()


__all__ = [
    "TraversalState",
    "TraversalContext",
    "CycleStep",
    "OrderCycle",
    "CycleDetector",
    "find_cycles",
]
