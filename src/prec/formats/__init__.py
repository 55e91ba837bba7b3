"""
RDF-star readers and writers used by PREC.

Supports:
- Turtle-star (.ttl) and TriG-star (.trig) parsing
- N-Quads-star (.nq) serialization
"""

from prec.formats.turtle import TurtleStarParser, parse_turtle
from prec.formats.nquads import NQuadsSerializer, serialize_nquads, write_nquads

__all__ = [
    # Turtle
    "TurtleStarParser",
    "parse_turtle",
    # N-Quads
    "NQuadsSerializer",
    "serialize_nquads",
    "write_nquads",
]
