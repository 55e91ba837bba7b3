"""
Graph substitution, used to compare the output of PREC with expected graphs.

A pattern graph is substituable to another graph if its blank nodes can be
replaced with terms of the other graph so that both graphs become equal. The
search is a plain backtracking exploration, only meant for test fixtures.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from prec.storage.dataset import Dataset
from prec.terms import (
    BlankNode, Quad, Term, eventually_rebuild_quad, find_blank_nodes,
    has_blank_node,
)

__all__ = [
    "BlankNodeExplorer",
    "are_isomorphic",
    "find_blank_nodes",
    "is_substituable_graph",
    "rebuild_blank_nodes",
]


def rebuild_blank_nodes(quads: Sequence[Quad], next_id: int = 1) -> tuple[list[Quad], int]:
    """
    Rename the blank nodes of `quads` to `next_id`, `next_id + 1`, ...

    Blank nodes are numbered in order of first appearance.

    Returns:
        The renamed quads and the next number that would have been given
    """
    renaming: dict[str, BlankNode] = {}

    for quad in quads:
        for label in sorted(find_blank_nodes(quad)):
            if label not in renaming:
                renaming[label] = BlankNode(str(next_id))
                next_id += 1

    def rename(term: Term) -> Term:
        return renaming[term.label] if isinstance(term, BlankNode) else term

    return [eventually_rebuild_quad(quad, rename) for quad in quads], next_id


# =============================================================================
# Blank node exploration
# =============================================================================

def _without_blank_node(term: Term) -> Optional[Term]:
    return None if has_blank_node(term) else term


def _walk(term: Term, path: Sequence[int]) -> Optional[Term]:
    for position in path:
        if not isinstance(term, Quad):
            return None
        term = term.components()[position]
    return term


@dataclass(frozen=True)
class _Detail:
    """
    Where a blank node appears in the pattern.

    Attributes:
        search: Components to look for in the actual graph, None for any
        path: Positions to follow from a found quad to reach the candidate
        checks: (path, term) pairs that a found quad must satisfy
    """
    search: tuple[Optional[Term], ...]
    path: tuple[int, ...]
    checks: tuple[tuple[tuple[int, ...], Term], ...]

    def candidates(self, actual: Dataset) -> list[Term]:
        found = []
        for quad in actual.get_quads(*self.search):
            if not all(_walk(quad, path) == expected for path, expected in self.checks):
                continue
            candidate = _walk(quad, self.path)
            if candidate is not None:
                found.append(candidate)
        return found


def _merge_into_details(
    details: dict[str, _Detail],
    term: Term,
    search: tuple[Optional[Term], ...],
    path: tuple[int, ...],
    checks: tuple[tuple[tuple[int, ...], Term], ...],
) -> None:
    if isinstance(term, BlankNode):
        details.setdefault(term.label, _Detail(search, path, checks))
    elif isinstance(term, Quad):
        components = term.components()
        for position, inner in enumerate(components):
            extra = tuple(
                (path + (other,), component)
                for other, component in enumerate(components)
                if other != position and _without_blank_node(component) is not None
            )
            _merge_into_details(details, inner, search, path + (position,), checks + extra)


def _make_details(quads: Iterable[Quad]) -> dict[str, _Detail]:
    details: dict[str, _Detail] = {}

    for quad in quads:
        components = quad.components()
        for position, component in enumerate(components):
            search = tuple(
                None if other == position else _without_blank_node(c)
                for other, c in enumerate(components)
            )

            if isinstance(component, BlankNode):
                details[component.label] = _Detail(search, (position,), ())
            elif isinstance(component, Quad):
                _merge_into_details(details, component, search, (position,), ())

    return details


class BlankNodeExplorer:
    """
    The blank nodes of a pattern, in the order they are substituted.

    Blank nodes that appear the most often are tried first.
    """

    def __init__(self, pattern: Sequence[Quad], blank_node_range: tuple[int, int]):
        self.index = 0
        store = Dataset(pattern)

        scores = {}
        for number in range(*blank_node_range):
            blank_node = BlankNode(str(number))
            scores[blank_node] = sum(
                len(store.get_quads(*[blank_node if i == position else None for i in range(4)]))
                for position in range(4)
            )

        self.blank_nodes: list[BlankNode] = sorted(scores, key=lambda b: -scores[b])
        self.details = _make_details(store)

    def has_non_blank_quad(self, pattern: Dataset) -> bool:
        """True if there is nothing left to substitute or a quad has no blank node."""
        if self.index == len(self.blank_nodes):
            return True
        return not all(has_blank_node(quad) for quad in pattern)

    def next_list_of_substitution(self, actual: Dataset) -> tuple[BlankNode, list[Term]]:
        blank_node = self.blank_nodes[self.index]
        return blank_node, self.details[blank_node.label].candidates(actual)

    def for_each_possible_substitution(
        self,
        actual: Dataset,
        checker: Callable[[BlankNode, Term], bool],
    ) -> bool:
        """Return True as soon as `checker` accepts a candidate for the next blank node."""
        blank_node, substitutions = self.next_list_of_substitution(actual)

        self.index += 1
        try:
            return any(checker(blank_node, substitution) for substitution in substitutions)
        finally:
            self.index -= 1


# =============================================================================
# Substitution
# =============================================================================

def deep_substitute(quads: Iterable[Quad], source: Term, destination: Term) -> list[Quad]:
    """Replace `source` with `destination` everywhere in `quads`."""
    def substitute(term: Term) -> Term:
        return destination if term == source else term

    return [eventually_rebuild_quad(quad, substitute) for quad in quads]


def _is_substituable_graph(
    actual_quads: Iterable[Quad],
    pattern_quads: Iterable[Quad],
    explorer: BlankNodeExplorer,
) -> bool:
    actual = Dataset(actual_quads)
    pattern = Dataset(pattern_quads)

    if len(actual) != len(pattern):
        return False

    for quad in actual:
        if pattern.has(quad):
            actual.delete(quad)
            pattern.delete(quad)

    if len(actual) == 0 and len(pattern) == 0:
        return True

    if explorer.has_non_blank_quad(pattern):
        return False

    return explorer.for_each_possible_substitution(
        actual,
        lambda blank_node, substitution: _is_substituable_graph(
            list(actual),
            deep_substitute(pattern, blank_node, substitution),
            explorer,
        ),
    )


def is_substituable_graph(actual: Sequence[Quad], pattern: Sequence[Quad]) -> bool:
    """
    Return True if the blank nodes of `pattern` can be mapped to terms of
    `actual` so that both graphs are equal.
    """
    rebuilt_actual, end = rebuild_blank_nodes(actual, 0)
    rebuilt_pattern, true_end = rebuild_blank_nodes(pattern, end)

    explorer = BlankNodeExplorer(rebuilt_pattern, (end, true_end))
    return _is_substituable_graph(rebuilt_actual, rebuilt_pattern, explorer)


def are_isomorphic(a: Iterable[Quad], b: Iterable[Quad]) -> bool:
    """Return True if both graphs are equal up to blank node renaming."""
    a, b = list(dict.fromkeys(a)), list(dict.fromkeys(b))
    return (
        len(a) == len(b)
        and is_substituable_graph(a, b)
        and is_substituable_graph(b, a)
    )
