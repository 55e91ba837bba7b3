"""
Vocabulary used by PREC contexts and PREC-0 graphs.

Namespaces are immutable: `PREC.EdgeRule` and `PREC["EdgeRule"]` both build
`IRI("http://bruy.at/prec#EdgeRule")`.
"""

from dataclasses import dataclass

from prec.terms import IRI


class Namespace:
    """An IRI prefix that builds IRIs on attribute or item access."""

    __slots__ = ("_base",)

    def __init__(self, base: str):
        object.__setattr__(self, "_base", base)

    def __setattr__(self, name, value):
        raise AttributeError("Namespace objects are immutable")

    def __getattr__(self, name: str) -> IRI:
        if name.startswith("__"):
            raise AttributeError(name)
        return IRI(self._base + name)

    def __getitem__(self, name: str) -> IRI:
        return IRI(self._base + name)

    def __contains__(self, term) -> bool:
        return isinstance(term, IRI) and term.value.startswith(self._base)

    def __str__(self) -> str:
        return self._base

    def __repr__(self) -> str:
        return f"Namespace({self._base!r})"

    @property
    def base(self) -> str:
        return self._base


RDF = Namespace("http://www.w3.org/1999/02/22-rdf-syntax-ns#")
RDFS = Namespace("http://www.w3.org/2000/01/rdf-schema#")
XSD = Namespace("http://www.w3.org/2001/XMLSchema#")
PREC = Namespace("http://bruy.at/prec#")
PVAR = Namespace("http://bruy.at/prec-trans#")
PGO = Namespace("http://ii.uwb.edu.pl/pgo#")


@dataclass(frozen=True)
class Vocabulary:
    """The namespaces known by PREC, bundled in one value."""
    rdf: Namespace = RDF
    rdfs: Namespace = RDFS
    xsd: Namespace = XSD
    prec: Namespace = PREC
    pvar: Namespace = PVAR
    pgo: Namespace = PGO

    def prefixes(self) -> dict[str, str]:
        """Prefix declarations usable by the Turtle parser."""
        return {
            "rdf": self.rdf.base,
            "rdfs": self.rdfs.base,
            "xsd": self.xsd.base,
            "prec": self.prec.base,
            "pvar": self.pvar.base,
            "pgo": self.pgo.base,
        }

    def expand(self, curie: str) -> str:
        """Expand `prefix:local` with the known prefixes. Full IRIs pass through."""
        if curie.startswith("<") and curie.endswith(">"):
            return curie[1:-1]

        prefix, sep, local = curie.partition(":")
        known = self.prefixes()
        if sep and prefix in known:
            return known[prefix] + local
        return curie


VOCABULARY = Vocabulary()

# Frequently used terms
RDF_TYPE = RDF.type
RDF_FIRST = RDF.first
RDF_REST = RDF.rest
RDF_NIL = RDF.nil
RDFS_LABEL = RDFS.label
