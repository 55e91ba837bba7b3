"""
Term dictionary with integer ID encoding.

Every term stored in a `Dataset` is interned once and referred to by an
integer TermId. The high bits of a TermId encode the kind of the term, so
the kind of a stored term is known without looking it up.
"""

from enum import IntEnum
from typing import Optional

import polars as pl

from prec.terms import (
    IRI, BlankNode, Literal, Variable, DefaultGraph, Quad, Term,
    term_to_string,
)


# =============================================================================
# Term Identity and Encoding
# =============================================================================

class TermKind(IntEnum):
    """
    RDF term kind enumeration.

    Encoded in the high 3 bits of TermId.
    """
    IRI = 0
    LITERAL = 1
    BNODE = 2
    QUOTED_TRIPLE = 3
    VARIABLE = 4
    DEFAULT_GRAPH = 5


TermId = int

KIND_SHIFT = 60
KIND_MASK = 0x7
PAYLOAD_MASK = (1 << KIND_SHIFT) - 1


def make_term_id(kind: TermKind, payload: int) -> TermId:
    """Create a TermId from kind and payload."""
    return (kind << KIND_SHIFT) | (payload & PAYLOAD_MASK)


def get_term_kind(term_id: TermId) -> TermKind:
    """Extract the term kind from a TermId."""
    return TermKind((term_id >> KIND_SHIFT) & KIND_MASK)


def is_quoted_triple(term_id: TermId) -> bool:
    """Check if a TermId refers to a quoted triple."""
    return get_term_kind(term_id) == TermKind.QUOTED_TRIPLE


def kind_of(term: Term) -> TermKind:
    """Return the kind of a term object."""
    if isinstance(term, IRI):
        return TermKind.IRI
    if isinstance(term, Literal):
        return TermKind.LITERAL
    if isinstance(term, BlankNode):
        return TermKind.BNODE
    if isinstance(term, Quad):
        return TermKind.QUOTED_TRIPLE
    if isinstance(term, Variable):
        return TermKind.VARIABLE
    if isinstance(term, DefaultGraph):
        return TermKind.DEFAULT_GRAPH
    raise TypeError(f"Not an RDF term: {term!r}")


# =============================================================================
# Term Dictionary
# =============================================================================

class TermDict:
    """
    Dictionary-encoded term catalog.

    Maps terms to TermIds and back. Ids are never reused, even after the
    quads that used a term are deleted.
    """

    def __init__(self):
        # Start at 1 to reserve payload 0
        self._next_payload: dict[TermKind, int] = {kind: 1 for kind in TermKind}

        self._term_to_id: dict[Term, TermId] = {}
        self._id_to_term: dict[TermId, Term] = {}

    def _allocate_id(self, kind: TermKind) -> TermId:
        """Allocate the next TermId for a given kind."""
        payload = self._next_payload[kind]
        self._next_payload[kind] = payload + 1
        return make_term_id(kind, payload)

    def get_or_create(self, term: Term) -> TermId:
        """
        Intern a term, returning its TermId.

        If the term already exists, returns the existing ID.
        Otherwise, allocates a new ID and stores the term.
        """
        existing = self._term_to_id.get(term)
        if existing is not None:
            return existing

        term_id = self._allocate_id(kind_of(term))
        self._term_to_id[term] = term_id
        self._id_to_term[term_id] = term
        return term_id

    def get_id(self, term: Term) -> Optional[TermId]:
        """Return the TermId of an already interned term, None otherwise."""
        return self._term_to_id.get(term)

    def __len__(self) -> int:
        return len(self._id_to_term)

    def to_dataframe(self) -> pl.DataFrame:
        """Export the catalog as a DataFrame (term_id, kind, lex)."""
        ids = list(self._id_to_term.keys())
        return pl.DataFrame({
            "term_id": pl.Series(ids, dtype=pl.UInt64),
            "kind": [get_term_kind(i).name for i in ids],
            "lex": [term_to_string(self._id_to_term[i]) for i in ids],
        })
