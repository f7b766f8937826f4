# src/epke_engine/hierarchy.py
"""Arena of coarse and fine solvers for parallel-in-time decomposition.

Solvers are stored in a flat arena and addressed by integer handles. Each
node keeps the handles of the fine solvers created from it; children never
reference their parent, so the hierarchy has no ownership cycles and is
walked iteratively.

Concurrency model:
    - The step loop inside one Solver is sequential.
    - Sibling fine solvers share no mutable state: parameters and seeds are
      copied by value when a child is created. ``solve_children`` therefore
      forks one thread per child without locking and joins them all before
      returning.
    - A failing child only stops its own step loop. Siblings still run to
      completion, and the failures are reported together afterwards.
    - Assembly refuses to read any solver that is not DONE.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from .assembly import assemble_global_output
from .errors import ErrorCode, IncompleteSolveError
from .solver import RunConfig, Solver, SolverState

if TYPE_CHECKING:
    from numpy.typing import ArrayLike

    from .history import EPKEOutput
    from .parameters import EPKEParameters


logger = logging.getLogger(__name__)

ROOT: Final[int] = 0

_UNKNOWN_HANDLE_MSG: Final[str] = "Unknown solver handle: {handle}"
_CHILD_NOT_DONE_MSG: Final[str] = (
    "Cannot assemble: solver {handle} is in state {state}, expected done"
)
_CHILDREN_FAILED_MSG: Final[str] = "{n_failed} of {n_total} fine solver(s) failed"


@dataclass(slots=True)
class SolverNode:
    """One arena entry.

    Attributes:
        solver: The solver itself.
        coarse_index: Index on the parent's grid where this solver starts,
            or None for the root.
        children: Handles of fine solvers created from this node.
    """

    solver: Solver
    coarse_index: int | None = None
    children: list[int] = field(default_factory=list)


class SolverTree:
    """Flat arena holding a coarse root solver and its fine descendants."""

    def __init__(
        self,
        params: EPKEParameters,
        seed: EPKEOutput,
        *,
        config: RunConfig | None = None,
    ) -> None:
        """
        Initialize SolverTree with a root solver.

        Args:
            params: Parameter set of the root (coarse) solver.
            seed: Seed histories of the root solver.
            config: Optional run configuration shared by every node.
        """
        self.config = config or RunConfig()
        self._nodes: list[SolverNode] = [
            SolverNode(solver=Solver(params, seed, config=self.config))
        ]

    # ------------------------------------------------------------------
    # Arena access
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        """Number of solvers in the arena."""
        return len(self._nodes)

    def __getitem__(self, handle: int) -> Solver:
        """Return the solver behind a handle."""
        return self.node(handle).solver

    def node(self, handle: int) -> SolverNode:
        """
        Return the arena node behind a handle.

        Args:
            handle: Solver handle.

        Raises:
            KeyError: If handle is unknown.

        Returns:
            The SolverNode.
        """
        if not (0 <= handle < len(self._nodes)):
            raise KeyError(_UNKNOWN_HANDLE_MSG.format(handle=handle))
        return self._nodes[handle]

    @property
    def root(self) -> Solver:
        """The coarse root solver."""
        return self._nodes[ROOT].solver

    def children(self, handle: int = ROOT) -> tuple[int, ...]:
        """Handles of the fine solvers created from a node."""
        return tuple(self.node(handle).children)

    def walk(self, handle: int = ROOT) -> Iterator[int]:
        """
        Yield handles of a subtree in pre-order, without recursion.

        Args:
            handle: Subtree root.

        Yields:
            Solver handles, parents before children.
        """
        stack = [handle]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self.node(current).children))

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def create_fine_solver(
        self,
        fine_grid: ArrayLike,
        coarse_index: int,
        *,
        parent: int = ROOT,
    ) -> int:
        """
        Create and register a fine solver over a refined sub-interval.

        The child is seeded from the parent's history up to coarse_index and
        parameterized by the parent's parameters interpolated onto its grid.
        It is not run.

        Args:
            fine_grid: Refined grid starting at the parent's time[coarse_index].
            coarse_index: Parent grid index where the sub-interval starts.
            parent: Handle of the parent solver.

        Returns:
            Handle of the new child.
        """
        parent_node = self.node(parent)
        child = parent_node.solver.spawn_fine_solver(fine_grid, coarse_index)

        handle = len(self._nodes)
        self._nodes.append(SolverNode(solver=child, coarse_index=coarse_index))
        parent_node.children.append(handle)

        logger.info(
            "Registered fine solver %d under %d at coarse index %d",
            handle,
            parent,
            coarse_index,
        )
        return handle

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def solve(self, handle: int = ROOT) -> EPKEOutput:
        """Run one solver's step loop and return its result."""
        return self[handle].solve()

    def solve_children(
        self,
        parent: int = ROOT,
        *,
        max_workers: int | None = None,
    ) -> dict[int, EPKEOutput]:
        """
        Run every child of a node concurrently and join before returning.

        Args:
            parent: Handle whose children are run.
            max_workers: Thread count; defaults to config.max_workers.

        Raises:
            ExceptionGroup: If one or more children failed. Every sibling has
                still run to completion or failure.

        Returns:
            Mapping from child handle to its completed output.
        """
        handles = self.children(parent)
        if not handles:
            return {}

        workers = max_workers if max_workers is not None else self.config.max_workers
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {h: pool.submit(self[h].solve) for h in handles}

        results: dict[int, EPKEOutput] = {}
        errors: list[Exception] = []
        for h, future in futures.items():
            exc = future.exception()
            if exc is None:
                results[h] = future.result()
            elif isinstance(exc, Exception):
                errors.append(exc)
            else:
                raise exc

        if errors:
            raise ExceptionGroup(
                _CHILDREN_FAILED_MSG.format(
                    n_failed=len(errors), n_total=len(handles)
                ),
                errors,
            )
        return results

    def solve_all(self, handle: int = ROOT, *, max_workers: int | None = None) -> None:
        """
        Run a node, then each generation of its descendants.

        Every node is solved before its children are run, so children created
        from an unsolved parent index are rejected at creation, not here.

        Args:
            handle: Subtree root.
            max_workers: Thread count for sibling runs.
        """
        self.solve(handle)
        frontier = [handle]
        while frontier:
            nxt: list[int] = []
            for h in frontier:
                self.solve_children(h, max_workers=max_workers)
                nxt.extend(self.children(h))
            frontier = nxt

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _require_done(self, handle: int) -> Solver:
        solver = self[handle]
        if solver.state is not SolverState.DONE:
            msg = _CHILD_NOT_DONE_MSG.format(handle=handle, state=solver.state.value)
            raise IncompleteSolveError(
                msg, code=ErrorCode.INCOMPLETE_SOLVE
            ) from solver.error
        return solver

    def assemble_global_output(self, handle: int = ROOT) -> EPKEOutput:
        """
        Combine a node's histories with those of its descendants.

        Descendants are assembled bottom-up, so a grandchild's values flow
        into its parent before that parent is stitched onto the node.

        Args:
            handle: Node whose global output is built.

        Raises:
            IncompleteSolveError: If any solver in the subtree is not DONE.

        Returns:
            EPKEOutput on the node's own grid.
        """
        order = list(self.walk(handle))
        for h in order:
            self._require_done(h)

        assembled: dict[int, EPKEOutput] = {}
        for h in reversed(order):
            node = self.node(h)
            fine: list[tuple[int, EPKEOutput]] = []
            for c in node.children:
                coarse_index = self.node(c).coarse_index
                if coarse_index is None:
                    continue
                fine.append((coarse_index, assembled[c]))
            assembled[h] = assemble_global_output(
                node.solver.result,
                fine,
                atol=self.config.grid_atol,
            )
        return assembled[handle]

