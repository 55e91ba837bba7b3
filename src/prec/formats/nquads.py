"""
N-Quads-star Serializer.

Each line contains: subject predicate object [graph] .
Quoted triples are written `<< s p o >>`, nested as deep as needed.

Lines are sorted so that serializing the same dataset twice gives the same
text.

Reference: https://www.w3.org/TR/n-quads/
"""

from pathlib import Path
from typing import Iterable, Union

from prec.terms import DEFAULT_GRAPH, Quad, term_to_string


class NQuadsSerializer:
    """Serializer for N-Quads-star."""

    def serialize_quad(self, quad: Quad) -> str:
        parts = [
            term_to_string(quad.subject),
            term_to_string(quad.predicate),
            term_to_string(quad.object),
        ]
        if quad.graph != DEFAULT_GRAPH:
            parts.append(term_to_string(quad.graph))
        return " ".join(parts) + " ."

    def serialize(self, quads: Iterable[Quad]) -> str:
        """
        Serialize quads to N-Quads-star.

        Args:
            quads: The quads, in any order

        Returns:
            The sorted lines, newline terminated (empty string if no quad)
        """
        lines = sorted(self.serialize_quad(quad) for quad in quads)
        if not lines:
            return ""
        return "\n".join(lines) + "\n"


def serialize_nquads(quads: Iterable[Quad]) -> str:
    """Serialize quads to a sorted N-Quads-star document."""
    return NQuadsSerializer().serialize(quads)


def write_nquads(quads: Iterable[Quad], path: Union[str, Path]) -> None:
    """Write quads to an N-Quads-star file."""
    Path(path).write_text(serialize_nquads(quads), encoding="utf-8")
