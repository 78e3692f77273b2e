"""Formula field dependency tracking.

Used to find which formulas of a table must be re-evaluated when a field
changes, in what order, and to reject definitions that would form a cycle.
"""

from collections import defaultdict, deque
from collections.abc import Iterable, Mapping


class FormulaDependencyGraph:
    """
    Dependency graph between formula fields of one table.

    ``dependents[x]`` holds the formulas that read field ``x``;
    ``requires[f]`` holds the fields formula ``f`` reads.
    """

    def __init__(self) -> None:
        self.dependents: dict[str, set[str]] = defaultdict(set)
        self.requires: dict[str, set[str]] = {}

    @classmethod
    def from_formulas(cls, formulas: Mapping[str, Iterable[str]]) -> "FormulaDependencyGraph":
        """
        Build a graph from ``{formula_field_id: dependency_ids}``.

        Cycles already present in the stored definitions are kept; callers
        see them through :meth:`get_evaluation_order` and :meth:`cyclic_fields`.
        """
        graph = cls()
        for field_id, depends_on in formulas.items():
            graph._link(field_id, set(depends_on))
        return graph

    def _link(self, field_id: str, depends_on: set[str]) -> None:
        for previous in self.requires.get(field_id, set()):
            self.dependents[previous].discard(field_id)
        self.requires[field_id] = set(depends_on)
        for dependency in depends_on:
            self.dependents[dependency].add(field_id)

    def add_formula_field(self, field_id: str, depends_on: set[str]) -> tuple[bool, str | None]:
        """
        Register or replace a formula's dependencies.

        Returns:
            ``(True, None)`` on success, ``(False, message)`` if the new
            dependencies would create a cycle (the graph is left unchanged)
        """
        if self.detect_circular_reference(field_id, depends_on):
            return False, "Circular reference detected in formula dependencies"
        self._link(field_id, depends_on)
        return True, None

    def remove_formula_field(self, field_id: str) -> None:
        for dependency in self.requires.pop(field_id, set()):
            self.dependents[dependency].discard(field_id)
        self.dependents.pop(field_id, None)

    def get_affected_fields(self, changed_field_ids: Iterable[str]) -> list[str]:
        """
        Formulas that transitively read any of the changed fields.

        Breadth-first, so direct dependents come before indirect ones.
        """
        queue = deque(changed_field_ids)
        seen = set(queue)
        affected: list[str] = []
        while queue:
            current = queue.popleft()
            for dependent in sorted(self.dependents.get(current, ())):
                if dependent not in seen:
                    seen.add(dependent)
                    affected.append(dependent)
                    queue.append(dependent)
        return affected

    def get_evaluation_order(self, field_ids: Iterable[str]) -> tuple[list[str], set[str]]:
        """
        Order formulas so every formula comes after the formulas it reads.

        Kahn's algorithm restricted to ``field_ids``.

        Returns:
            ``(ordered, cyclic)``: the evaluable fields in order, and the
            fields that sit on (or behind) a cycle and cannot be ordered
        """
        wanted = list(dict.fromkeys(field_ids))
        members = set(wanted)
        in_degree = {
            fid: len([dep for dep in self.requires.get(fid, ()) if dep in members])
            for fid in wanted
        }

        queue = deque(fid for fid in wanted if in_degree[fid] == 0)
        ordered: list[str] = []
        while queue:
            current = queue.popleft()
            ordered.append(current)
            for dependent in sorted(self.dependents.get(current, ())):
                if dependent in in_degree:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        queue.append(dependent)

        cyclic = members - set(ordered)
        return ordered, cyclic

    def detect_circular_reference(self, field_id: str, depends_on: Iterable[str]) -> bool:
        """Whether making ``field_id`` read ``depends_on`` would close a cycle."""
        stack = list(depends_on)
        visited: set[str] = set()
        while stack:
            current = stack.pop()
            if current == field_id:
                return True
            if current in visited:
                continue
            visited.add(current)
            stack.extend(self.requires.get(current, ()))
        return False

    def cyclic_fields(self) -> set[str]:
        """All formulas that cannot be evaluated because of a cycle."""
        return self.get_evaluation_order(self.requires.keys())[1]

    def get_dependencies(self, field_id: str) -> set[str]:
        return set(self.requires.get(field_id, set()))

    def get_dependents(self, field_id: str) -> set[str]:
        return set(self.dependents.get(field_id, set()))

    def __repr__(self) -> str:
        edges = sum(len(deps) for deps in self.requires.values())
        return f"FormulaDependencyGraph(formulas={len(self.requires)}, edges={edges})"
