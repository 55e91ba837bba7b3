"""
PREC: turns property graphs converted to RDF into idiomatic RDF-star.

A property graph is first written as a generic "PREC-0" RDF graph. A context,
written in Turtle-star, then describes with rules and templates which RDF is
produced for each edge, property and node label. A PRSC context instead gives
one template per property graph type.
"""

__version__ = "0.1.0"

from prec.terms import IRI, BlankNode, Literal, Variable, Quad, DEFAULT_GRAPH
from prec.namespaces import PGO, PREC, PVAR, RDF, RDFS, XSD, VOCABULARY
from prec.errors import (
    PrecError,
    ConfigError,
    InputGraphError,
    LogicError,
    ParseError,
    ConfigValidationError,
)
from prec.config import PrecConfig, ConfigValidator, configure_logging
from prec.storage import Binding, Dataset
from prec.formats import parse_turtle, serialize_nquads
from prec.rules import (
    Context, PrscContext, apply_context, apply_context_to_turtle, apply_prsc,
    well_behaved_check,
)
from prec.graph_substitution import are_isomorphic, is_substituable_graph

__all__ = [
    # Terms
    "IRI",
    "BlankNode",
    "Literal",
    "Variable",
    "Quad",
    "DEFAULT_GRAPH",
    # Vocabulary
    "PGO",
    "PREC",
    "PVAR",
    "RDF",
    "RDFS",
    "XSD",
    "VOCABULARY",
    # Errors
    "PrecError",
    "ConfigError",
    "InputGraphError",
    "LogicError",
    "ParseError",
    "ConfigValidationError",
    # Configuration
    "PrecConfig",
    "ConfigValidator",
    "configure_logging",
    # Storage and formats
    "Binding",
    "Dataset",
    "parse_turtle",
    "serialize_nquads",
    # Rule engine
    "Context",
    "apply_context",
    "apply_context_to_turtle",
    "PrscContext",
    "apply_prsc",
    "well_behaved_check",
    # Graph comparison
    "are_isomorphic",
    "is_substituable_graph",
]
