"""
RDF-star term model.

Terms are immutable values compared by structure. A `Quad` is itself a term,
so quoted triples can be nested to any depth:

    Quad(Quad(IRI(":s"), IRI(":p"), IRI(":o")), IRI(":saidBy"), IRI(":bob"))

The helpers at the bottom of this module walk such nested terms. Helpers that
rebuild terms return the very same object when nothing changed, so callers
can use `is` to detect a modification.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple, Union


XSD_NS = "http://www.w3.org/2001/XMLSchema#"
XSD_STRING = XSD_NS + "string"
XSD_INTEGER = XSD_NS + "integer"
XSD_DECIMAL = XSD_NS + "decimal"
XSD_DOUBLE = XSD_NS + "double"
XSD_BOOLEAN = XSD_NS + "boolean"


# =============================================================================
# Term Types
# =============================================================================

@dataclass(frozen=True)
class IRI:
    """A named node."""
    value: str

    def __str__(self) -> str:
        return f"<{self.value}>"


@dataclass(frozen=True)
class BlankNode:
    """A blank node, identified by its label within one dataset."""
    label: str

    def __str__(self) -> str:
        return f"_:{self.label}"


@dataclass(frozen=True)
class Literal:
    """
    An RDF literal.

    `datatype` is the datatype IRI as a string. Simple literals are stored
    with `datatype=None`, so `Literal("a")` and
    `Literal("a", datatype=XSD_STRING)` are the same term.
    """
    value: str
    language: Optional[str] = None
    datatype: Optional[str] = None

    def __post_init__(self):
        if self.datatype == XSD_STRING:
            object.__setattr__(self, "datatype", None)
        if self.language is not None:
            object.__setattr__(self, "language", self.language.lower())

    def __str__(self) -> str:
        base = '"' + _escape(self.value) + '"'
        if self.language:
            return f"{base}@{self.language}"
        if self.datatype:
            return f"{base}^^<{self.datatype}>"
        return base


@dataclass(frozen=True)
class Variable:
    """A pattern placeholder, bound while matching a dataset."""
    name: str

    def __str__(self) -> str:
        return f"?{self.name}"


@dataclass(frozen=True)
class DefaultGraph:
    """The default graph. Use the `DEFAULT_GRAPH` instance."""

    def __str__(self) -> str:
        return ""


DEFAULT_GRAPH = DefaultGraph()


@dataclass(frozen=True)
class Quad:
    """
    A quad, usable as a term in another quad (RDF-star).

    Nested quads are compared structurally, recursively.
    """
    subject: "Term"
    predicate: "Term"
    object: "Term"
    graph: "Term" = DEFAULT_GRAPH

    def __str__(self) -> str:
        return term_to_string(self)

    def components(self) -> Tuple["Term", "Term", "Term", "Term"]:
        return (self.subject, self.predicate, self.object, self.graph)


Term = Union[IRI, BlankNode, Literal, Variable, DefaultGraph, Quad]

POSITIONS = ("subject", "predicate", "object", "graph")


# =============================================================================
# Rendering
# =============================================================================

def _escape(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


def term_to_string(term: Term) -> str:
    """Render a term in N-Triples-star syntax."""
    if isinstance(term, Quad):
        inner = " ".join(
            term_to_string(t) for t in (term.subject, term.predicate, term.object)
        )
        if term.graph != DEFAULT_GRAPH:
            inner += " " + term_to_string(term.graph)
        return f"<< {inner} >>"
    return str(term)


# =============================================================================
# Nested-term utilities
# =============================================================================

def contains_term(term: Term, searched: Term) -> bool:
    """Return True if `term` is `searched` or contains it at any depth."""
    if term == searched:
        return True
    if not isinstance(term, Quad):
        return False
    return (
        contains_term(term.subject, searched)
        or contains_term(term.predicate, searched)
        or contains_term(term.object, searched)
        or contains_term(term.graph, searched)
    )


def contains_one_of_terms(term: Term, *searched: Term) -> bool:
    """Return True if `term` contains at least one of the searched terms."""
    return any(contains_term(term, s) for s in searched)


def contains_all_terms(term: Term, *searched: Term) -> bool:
    """Return True if `term` contains every searched term."""
    return all(contains_term(term, s) for s in searched)


def eventually_rebuild_quad(quad: Quad, fn: Callable[[Term], Term]) -> Quad:
    """
    Apply `fn` to every leaf term of `quad`, recursing into nested quads.

    The quad is only rebuilt if one of its components changed; otherwise the
    very same object is returned.
    """
    elements = quad.components()
    converted = tuple(
        eventually_rebuild_quad(e, fn) if isinstance(e, Quad) else fn(e)
        for e in elements
    )

    for before, after in zip(elements, converted):
        if before is not after:
            return Quad(*converted)

    return quad


def remap_pattern_with_variables(
    term: Term, mapping: Sequence[Tuple[Term, Term]]
) -> Term:
    """
    Replace every sub-term equal to a `from` term with its `to` term.

    Args:
        term: The term to remap, usually a template quad
        mapping: A list of (to, from) pairs

    Returns:
        The remapped term, or `term` itself if nothing was replaced
    """
    def remap(t: Term) -> Term:
        for to, from_ in mapping:
            if from_ == t:
                return to

        if not isinstance(t, Quad):
            return t

        return eventually_rebuild_quad_shallow(t, remap)

    return remap(term)


def eventually_rebuild_quad_shallow(quad: Quad, fn: Callable[[Term], Term]) -> Quad:
    """Like `eventually_rebuild_quad` but `fn` also receives nested quads."""
    elements = quad.components()
    converted = tuple(fn(e) for e in elements)

    for before, after in zip(elements, converted):
        if before is not after:
            return Quad(*converted)

    return quad


def matches(real_quad: Quad, pattern_quad: "QuadPattern") -> bool:
    """
    Check if `real_quad` matches `pattern_quad`.

    `None` components of the pattern are wildcards. Nested quads of the
    pattern are matched recursively.
    """
    for position in POSITIONS:
        right = getattr(pattern_quad, position)
        if right is None:
            continue

        left = getattr(real_quad, position)
        if isinstance(right, QuadPattern) or isinstance(right, Quad):
            if not isinstance(left, Quad) or not matches(left, right):
                return False
        elif left != right:
            return False

    return True


@dataclass(frozen=True)
class QuadPattern:
    """A quad whose components may be `None` (wildcard). Used by `matches`."""
    subject: Optional[Union[Term, "QuadPattern"]] = None
    predicate: Optional[Union[Term, "QuadPattern"]] = None
    object: Optional[Union[Term, "QuadPattern"]] = None
    graph: Optional[Union[Term, "QuadPattern"]] = None


def find_blank_nodes(term: Term) -> set[str]:
    """Return the labels of the blank nodes found in the term."""
    found: set[str] = set()

    def read(t: Term) -> None:
        if isinstance(t, Quad):
            for component in t.components():
                read(component)
        elif isinstance(t, BlankNode):
            found.add(t.label)

    read(term)
    return found


def has_blank_node(term: Term) -> bool:
    if isinstance(term, BlankNode):
        return True
    if not isinstance(term, Quad):
        return False
    return any(has_blank_node(t) for t in term.components())


def has_variable(term: Term) -> bool:
    if isinstance(term, Variable):
        return True
    if not isinstance(term, Quad):
        return False
    return any(has_variable(t) for t in term.components())


# =============================================================================
# Literal conversion
# =============================================================================

def literal_to_value(term: Term) -> Union[str, int, float, None]:
    """
    Convert a literal to a Python value.

    xsd:integer gives an int, xsd:double a float, anything else the lexical
    form. Returns None if the term is not a literal.
    """
    if not isinstance(term, Literal):
        return None

    if term.datatype == XSD_INTEGER:
        return int(term.value)
    if term.datatype == XSD_DOUBLE:
        return float(term.value)
    return term.value


def xsd_bool_to_bool(term: Term) -> Optional[bool]:
    """Convert an xsd:boolean literal. Returns None if it is not a valid one."""
    if not isinstance(term, Literal) or term.datatype != XSD_BOOLEAN:
        return None

    if term.value == "true":
        return True
    if term.value == "false":
        return False
    return None
