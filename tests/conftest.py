"""Shared fixtures for the PREC test suite."""
import pytest

from prec.formats import parse_turtle, serialize_nquads
from prec.graph_substitution import are_isomorphic
from prec.namespaces import VOCABULARY
from prec.rules import apply_context_to_turtle

EX = "http://example.org/"


def turtle(text):
    """Parse a Turtle-star snippet with the PREC prefixes and `:` bound to EX."""
    prefixes = dict(VOCABULARY.prefixes(), **{"": EX, "ex": EX})
    return parse_turtle(text, prefixes=prefixes)


@pytest.fixture
def parse():
    return turtle


@pytest.fixture
def check_output():
    """Apply a context to a graph and compare the result with the expected graph."""
    def check(graph, context, expected, config=None):
        dataset = apply_context_to_turtle(
            _with_prefixes(graph), _with_prefixes(context), config
        )
        expected_quads = turtle(expected)
        actual = list(dataset)
        assert are_isomorphic(actual, expected_quads), (
            "Output:\n" + serialize_nquads(actual)
            + "\nExpected:\n" + serialize_nquads(expected_quads)
        )
        return dataset

    return check


def _with_prefixes(text):
    return f"@prefix : <{EX}> .\n@prefix ex: <{EX}> .\n" + text
