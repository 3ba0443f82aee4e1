"""
Dependency graph utilities for dependent form fields.
"""

from __future__ import annotations

from typing import Iterable, Mapping


def _as_graph(nodes: Iterable[str] | Mapping[str, Iterable[str]]) -> dict[str, list[str]]:
    if isinstance(nodes, Mapping):
        return {str(node): [str(dep) for dep in deps or []] for node, deps in nodes.items()}
    return {str(node): [] for node in nodes}


def find_cycle(nodes: Iterable[str] | Mapping[str, Iterable[str]]) -> list[str] | None:
    """Return one dependency cycle as a path of field names, or ``None``."""
    graph = _as_graph(nodes)
    visiting: list[str] = []
    visited: set[str] = set()

    def _dfs(node: str) -> list[str] | None:
        if node in visited:
            return None
        if node in visiting:
            return visiting[visiting.index(node):] + [node]

        visiting.append(node)
        for dep in graph.get(node, []):
            cycle = _dfs(dep)
            if cycle:
                return cycle
        visiting.pop()
        visited.add(node)
        return None

    for node in graph:
        cycle = _dfs(node)
        if cycle:
            return cycle
    return None

