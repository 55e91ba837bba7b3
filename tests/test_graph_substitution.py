"""
Tests for graph substitution, the comparison used by the other test suites.
"""
import pytest

from prec.graph_substitution import (
    BlankNodeExplorer, are_isomorphic, deep_substitute, is_substituable_graph,
    rebuild_blank_nodes,
)
from prec.storage.dataset import Dataset
from prec.terms import IRI, BlankNode, Literal, Quad

EX = "http://example.org/"


@pytest.fixture
def graph(parse):
    """Parse Turtle-star with the example prefix."""
    return lambda text: parse("@prefix : <http://example.org/> .\n" + text)


class TestRebuildBlankNodes:

    def test_numbering(self, graph):
        quads, next_id = rebuild_blank_nodes(graph("_:x :p _:y . _:y :p _:x ."), 5)
        assert quads[0] == Quad(BlankNode("5"), IRI(EX + "p"), BlankNode("6"))
        assert quads[1] == Quad(BlankNode("6"), IRI(EX + "p"), BlankNode("5"))
        assert next_id == 7

    def test_nested(self, graph):
        quads, next_id = rebuild_blank_nodes(graph("<< _:x :p :o >> :q _:x ."))
        assert quads[0].subject.subject == BlankNode("1")
        assert quads[0].object == BlankNode("1")
        assert next_id == 2


class TestSubstitution:

    def test_deep_substitute(self):
        quads = [Quad(Quad(BlankNode("1"), IRI(EX + "p"), Literal("x")), IRI(EX + "q"), BlankNode("1"))]
        assert deep_substitute(quads, BlankNode("1"), IRI(EX + "a")) == [
            Quad(Quad(IRI(EX + "a"), IRI(EX + "p"), Literal("x")), IRI(EX + "q"), IRI(EX + "a"))
        ]

    def test_explorer_order(self, graph):
        """The blank node used the most is substituted first."""
        pattern, end = rebuild_blank_nodes(graph("_:a :p _:b . _:b :p _:c . _:b :q :d ."), 0)
        explorer = BlankNodeExplorer(pattern, (0, end))
        assert explorer.blank_nodes[0] == BlankNode("1")

    def test_explorer_candidates(self, graph):
        pattern, end = rebuild_blank_nodes(graph("_:a :p :o ."), 0)
        explorer = BlankNodeExplorer(pattern, (0, end))
        actual = Dataset(graph(":s1 :p :o . :s2 :p :o . :s3 :q :o ."))

        blank_node, candidates = explorer.next_list_of_substitution(actual)

        assert blank_node == BlankNode("0")
        assert set(candidates) == {IRI(EX + "s1"), IRI(EX + "s2")}


class TestIsSubstituable:

    def test_same_graph(self, graph):
        quads = graph(":a :p :b .")
        assert is_substituable_graph(quads, quads)

    def test_blank_node_matches_iri(self, graph):
        assert is_substituable_graph(graph(":a :p :b ."), graph("_:x :p :b ."))
        assert not is_substituable_graph(graph("_:x :p :b ."), graph(":a :p :b ."))

    def test_different_sizes(self, graph):
        assert not is_substituable_graph(graph(":a :p :b . :a :p :c ."), graph("_:x :p :b ."))

    def test_blank_node_is_used_consistently(self, graph):
        assert not is_substituable_graph(
            graph(":a :p :b . :c :q :d ."),
            graph("_:x :p :b . _:x :q :d ."),
        )

    def test_nested_blank_nodes(self, graph):
        assert is_substituable_graph(
            graph(":a :p :b . << :a :p :b >> :since 2020 ."),
            graph("_:x :p :b . << _:x :p :b >> :since 2020 ."),
        )


class TestIsomorphism:

    def test_renamed_blank_nodes(self, graph):
        assert are_isomorphic(
            graph('_:a :p _:b . _:b :value "v" .'),
            graph('_:x :p _:y . _:y :value "v" .'),
        )

    def test_blank_node_and_iri_are_not_isomorphic(self, graph):
        assert not are_isomorphic(graph(":a :p :b ."), graph("_:x :p :b ."))

    def test_two_similar_structures(self, graph):
        assert are_isomorphic(
            graph('_:a :p _:b . _:b :v "1" . _:a :p _:c . _:c :v "2" .'),
            graph('_:x :p _:y . _:y :v "2" . _:x :p _:z . _:z :v "1" .'),
        )

    def test_cross_paired_values(self, graph):
        assert not are_isomorphic(
            graph('_:a :v "1" . _:a :w "A" . _:b :v "2" . _:b :w "B" .'),
            graph('_:x :v "1" . _:x :w "B" . _:y :v "2" . _:y :w "A" .'),
        )

    def test_duplicates_are_ignored(self, graph):
        quads = graph(":a :p :b .")
        assert are_isomorphic(quads + quads, quads)

    def test_empty_graphs(self):
        assert are_isomorphic([], [])
