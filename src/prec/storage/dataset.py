"""
In-memory RDF-star dataset with pattern matching.

Quads are interned through a `TermDict` and stored as tuples of TermIds, in
insertion order, with one index per quad position. On top of the usual
add/delete/get_quads operations, the dataset can:

- match a list of quad patterns containing variables (`match_and_bind`),
  variables being allowed at any depth of nested quads;
- replace the quads matched by a pattern with the quads of another pattern
  (`find_filter_replace`), which is how the rule engine tags entities.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Mapping, Optional, Sequence, Union

import polars as pl

from prec.storage.term_dict import TermDict, TermId, is_quoted_triple
from prec.terms import (
    DEFAULT_GRAPH, Quad, QuadPattern, Term, Variable,
    contains_term, eventually_rebuild_quad, has_variable, matches,
    term_to_string,
)

logger = logging.getLogger(__name__)

QuadIds = tuple[TermId, TermId, TermId, TermId]
NestedQuads = Union[Quad, Sequence["NestedQuads"]]


# =============================================================================
# Bindings
# =============================================================================

class Binding(dict):
    """
    The result of matching a pattern: variable name -> bound term.

    Unbound variables are absent keys. `quads` lists the dataset quads that
    were matched to produce this binding, in pattern order.
    """

    __slots__ = ("quads",)

    def __init__(self, *args, quads: Optional[Iterable[Quad]] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.quads: list[Quad] = list(quads) if quads is not None else []

    def copy(self) -> "Binding":
        return Binding(self, quads=self.quads)

    def term(self, name: str) -> Optional[Term]:
        """Return the term bound to `name`, or None if unbound."""
        return self.get(name)

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={term_to_string(v)}" for k, v in self.items())
        return f"Binding({inner}; {len(self.quads)} quads)"


def bind_variables(bindings: Mapping[str, Term], quad: NestedQuads) -> NestedQuads:
    """
    Replace the variables of `quad` with their value in `bindings`.

    - Variables without a value are kept as is.
    - If `quad` is a list, a new list is built by calling this function on
      every member, recursively.
    """
    if isinstance(quad, (list, tuple)):
        return [bind_variables(bindings, q) for q in quad]

    def bind(term: Term) -> Term:
        if not isinstance(term, Variable):
            return term
        value = bindings.get(term.name)
        return value if value is not None else term

    return eventually_rebuild_quad(quad, bind)


def _unify(pattern: Term, actual: Term, out: dict) -> bool:
    """Match `actual` against `pattern`, recording variable values in `out`."""
    if isinstance(pattern, Variable):
        known = out.get(pattern.name)
        if known is not None:
            return known == actual
        out[pattern.name] = actual
        return True

    if isinstance(pattern, Quad):
        if not isinstance(actual, Quad):
            return False
        return (
            _unify(pattern.subject, actual.subject, out)
            and _unify(pattern.predicate, actual.predicate, out)
            and _unify(pattern.object, actual.object, out)
            and _unify(pattern.graph, actual.graph, out)
        )

    return pattern == actual


# =============================================================================
# Dataset
# =============================================================================

class Dataset:
    """
    A set of quads that may contain quoted quads.

    Example:
        dataset = Dataset(quads)
        for binding in dataset.match_and_bind([
            Quad(Variable("edge"), RDF.type, PGO.Edge),
            Quad(Variable("edge"), RDF.subject, Variable("source")),
        ]):
            print(binding["edge"], binding["source"])
    """

    def __init__(self, quads: Optional[Iterable[Quad]] = None):
        self._terms = TermDict()
        self._quads: dict[QuadIds, Quad] = {}
        # One index per position: TermId -> quads having it at this position
        self._indexes: tuple[dict[TermId, dict[QuadIds, None]], ...] = (
            {}, {}, {}, {}
        )

        if quads is not None:
            self.add_all(quads)

    # =========================================================================
    # Core dataset operations
    # =========================================================================

    @property
    def size(self) -> int:
        """Number of quads in the dataset."""
        return len(self._quads)

    def __len__(self) -> int:
        return len(self._quads)

    def __iter__(self) -> Iterator[Quad]:
        return iter(list(self._quads.values()))

    def __contains__(self, quad: Quad) -> bool:
        return self.has(quad)

    def __repr__(self) -> str:
        return f"Dataset({len(self)} quads)"

    def _ids_of(self, quad: Quad) -> Optional[QuadIds]:
        ids = tuple(self._terms.get_id(c) for c in quad.components())
        if any(i is None for i in ids):
            return None
        return ids

    def add(self, quad: Quad) -> "Dataset":
        """Add the quad to the dataset. Adding an existing quad does nothing."""
        if not isinstance(quad, Quad):
            raise TypeError(f"Only quads can be added to a dataset, got {quad!r}")

        ids = tuple(self._terms.get_or_create(c) for c in quad.components())
        if ids in self._quads:
            return self

        self._quads[ids] = quad
        for index, term_id in zip(self._indexes, ids):
            index.setdefault(term_id, {})[ids] = None
        return self

    def add_all(self, quads: Iterable[Quad]) -> "Dataset":
        for quad in quads:
            self.add(quad)
        return self

    def delete(self, quad: Quad) -> "Dataset":
        """Remove the quad from the dataset, if present."""
        ids = self._ids_of(quad)
        if ids is None or ids not in self._quads:
            return self

        del self._quads[ids]
        for index, term_id in zip(self._indexes, ids):
            bucket = index[term_id]
            del bucket[ids]
            if not bucket:
                del index[term_id]
        return self

    def remove_quads(self, quads: Iterable[Quad]) -> None:
        for quad in list(quads):
            self.delete(quad)

    def delete_matches(
        self,
        subject: Optional[Term] = None,
        predicate: Optional[Term] = None,
        object: Optional[Term] = None,
        graph: Optional[Term] = None,
    ) -> "Dataset":
        """Delete every quad that matches the given filter."""
        self.remove_quads(self.get_quads(subject, predicate, object, graph))
        return self

    def has(self, quad: Quad) -> bool:
        ids = self._ids_of(quad)
        return ids is not None and ids in self._quads

    def copy(self) -> "Dataset":
        return Dataset(self)

    # =========================================================================
    # Filtering
    # =========================================================================

    def get_quads(
        self,
        subject: Optional[Term] = None,
        predicate: Optional[Term] = None,
        object: Optional[Term] = None,
        graph: Optional[Term] = None,
    ) -> list[Quad]:
        """
        Return the quads that match the given filter. `None` is a wildcard.

        The filter terms are compared as is: a `Variable` only matches a
        stored variable. Use `match_pattern` to bind variables.
        """
        wanted = []
        for position, term in enumerate((subject, predicate, object, graph)):
            if term is None:
                continue
            term_id = self._terms.get_id(term)
            if term_id is None:
                return []
            bucket = self._indexes[position].get(term_id)
            if bucket is None:
                return []
            wanted.append((position, term_id, bucket))

        if not wanted:
            return list(self._quads.values())

        wanted.sort(key=lambda w: len(w[2]))
        _, _, smallest = wanted[0]
        others = wanted[1:]

        return [
            self._quads[ids]
            for ids in smallest
            if all(ids[position] == term_id for position, term_id, _ in others)
        ]

    def match(
        self,
        subject: Optional[Term] = None,
        predicate: Optional[Term] = None,
        object: Optional[Term] = None,
        graph: Optional[Term] = None,
    ) -> "Dataset":
        """Return a new dataset with the quads that match the given filter."""
        return Dataset(self.get_quads(subject, predicate, object, graph))

    def get_rdf_star_quads(self) -> list[Quad]:
        """Return every quad whose subject or object is a quoted quad."""
        return [
            quad for ids, quad in self._quads.items()
            if is_quoted_triple(ids[0]) or is_quoted_triple(ids[2])
        ]

    def find_all_occurrences_as_subject(
        self, terms: Iterable[Term], graph: Optional[Term] = DEFAULT_GRAPH
    ) -> list[Quad]:
        """Return the quads, in `graph` (None for any), whose subject is one of `terms`."""
        result = []
        for term in terms:
            result.extend(self.get_quads(term, None, None, graph))
        return result

    def all_usage_of_are(
        self, term: Term, authorized_patterns: Sequence[Union[Quad, QuadPattern]]
    ) -> Optional[list[Quad]]:
        """
        Return every quad that uses `term`, at any depth.

        Returns None as soon as one of these quads matches none of the
        authorized patterns.
        """
        found = []
        for quad in self._quads.values():
            if not contains_term(quad, term):
                continue
            if not any(matches(quad, pattern) for pattern in authorized_patterns):
                return None
            found.append(quad)
        return found

    # =========================================================================
    # Match and replace with bindings
    # =========================================================================

    def match_pattern(self, pattern: Quad) -> list[Binding]:
        """
        Return every instantiation of the variables of one quad pattern.

        If the dataset contains `:a :b :c .` and `:a :b "d" .`, matching
        `?s :b ?o` gives `{s: :a, o: :c}` and `{s: :a, o: "d"}`, each binding
        holding the matched quad in `quads`.
        """
        search = [
            None if has_variable(component) else component
            for component in pattern.components()
        ]
        variable_positions = [
            component for component in pattern.components() if has_variable(component)
        ]

        results = []
        for quad in self.get_quads(*search):
            values: dict[str, Term] = {}
            if not variable_positions or _unify(pattern, quad, values):
                results.append(Binding(values, quads=[quad]))
        return results

    def match_and_bind(self, patterns: Sequence[Quad]) -> list[Binding]:
        """
        Search the conjunction of quad patterns in the dataset.

        The patterns are matched in order; variables bound by a pattern are
        substituted into the following ones. A partial result that can not be
        extended by a pattern is dropped.

        Args:
            patterns: A list of quads that may contain variables

        Returns:
            One `Binding` per solution, with the matched quads in `quads`
        """
        results = [Binding()]

        for pattern in patterns:
            extended = []
            for known in results:
                bound_pattern = bind_variables(known, pattern)
                for found in self.match_pattern(bound_pattern):
                    binding = Binding(known, quads=known.quads + found.quads)
                    binding.update(found)
                    extended.append(binding)
            results = extended
            if not results:
                break

        return results

    def find_filter_replace(
        self,
        source: Sequence[Quad],
        conditions: Sequence[Sequence[Quad]],
        destination: Sequence[Quad],
    ) -> list[Binding]:
        """
        Replace the quads that match `source` with `destination`.

        Every binding of `source` is kept only if each block of `conditions`,
        with the variables of the binding substituted, matches at least once
        in the whole dataset. Blocks are independent: a variable that is not
        bound by `source` may take different values in different blocks.

        For each kept binding, the quads matched by `source` are deleted and
        `destination`, with the variables substituted, is added.

        Returns:
            The kept bindings
        """
        bindings = self.match_and_bind(source)

        kept = [
            binding for binding in bindings
            if all(
                self.match_and_bind(bind_variables(binding, condition))
                for condition in conditions
            )
        ]

        for binding in kept:
            self.replace_one_binding(binding, destination)

        logger.debug(
            f"find_filter_replace: {len(kept)}/{len(bindings)} binding(s) replaced"
        )
        return kept

    def replace_one_binding(self, binding: Binding, destination: Sequence[Quad]) -> None:
        """Delete the quads of `binding` then add `destination` bound with it."""
        for quad in binding.quads:
            self.delete(quad)

        for pattern in destination:
            self.add(bind_variables(binding, pattern))

    # =========================================================================
    # Export
    # =========================================================================

    def to_dataframe(self) -> pl.DataFrame:
        """Export the quads as a DataFrame of N-Triples-star strings."""
        quads = list(self._quads.values())
        return pl.DataFrame(
            {
                "subject": [term_to_string(q.subject) for q in quads],
                "predicate": [term_to_string(q.predicate) for q in quads],
                "object": [term_to_string(q.object) for q in quads],
                "graph": [term_to_string(q.graph) for q in quads],
            },
            schema={
                "subject": pl.Utf8,
                "predicate": pl.Utf8,
                "object": pl.Utf8,
                "graph": pl.Utf8,
            },
        )

    @property
    def terms(self) -> TermDict:
        """The term dictionary of this dataset."""
        return self._terms


def bindings_to_frame(bindings: Sequence[Binding]) -> pl.DataFrame:
    """One row per binding, one column per variable (sorted), null if unbound."""
    names = sorted({name for binding in bindings for name in binding})
    return pl.DataFrame(
        {
            name: [
                term_to_string(b[name]) if name in b else None
                for b in bindings
            ]
            for name in names
        },
        schema={name: pl.Utf8 for name in names},
    )
