"""
Tests for the term dictionary and the pattern matching dataset.
"""
import polars as pl
import pytest

from prec.namespaces import PGO, PREC, RDF, RDF_TYPE
from prec.storage import (
    Binding, Dataset, TermDict, TermKind, bind_variables, bindings_to_frame,
    get_term_kind, is_quoted_triple,
)
from prec.terms import IRI, DEFAULT_GRAPH, BlankNode, Literal, Quad, QuadPattern, Variable

EX = "http://example.org/"
A, B, C, D = (IRI(EX + name) for name in "abcd")


@pytest.fixture
def edges():
    """Two edges, the first one with a quoted annotation."""
    return Dataset([
        Quad(IRI(EX + "e1"), RDF_TYPE, PGO.Edge),
        Quad(IRI(EX + "e1"), RDF.subject, A),
        Quad(IRI(EX + "e1"), RDF.object, B),
        Quad(IRI(EX + "e2"), RDF_TYPE, PGO.Edge),
        Quad(IRI(EX + "e2"), RDF.subject, B),
        Quad(IRI(EX + "e2"), RDF.object, C),
        Quad(Quad(A, IRI(EX + "knows"), B), IRI(EX + "since"), Literal("2020")),
    ])


# =============================================================================
# Term dictionary
# =============================================================================

class TestTermDict:

    def test_interning(self):
        terms = TermDict()
        first = terms.get_or_create(A)
        assert terms.get_or_create(IRI(EX + "a")) == first
        assert terms.get_id(A) == first
        assert len(terms) == 1

    @pytest.mark.parametrize("term,kind", [
        (A, TermKind.IRI),
        (Literal("x"), TermKind.LITERAL),
        (BlankNode("b"), TermKind.BNODE),
        (Quad(A, B, C), TermKind.QUOTED_TRIPLE),
        (Variable("v"), TermKind.VARIABLE),
        (DEFAULT_GRAPH, TermKind.DEFAULT_GRAPH),
    ])
    def test_kind_is_encoded_in_the_id(self, term, kind):
        term_id = TermDict().get_or_create(term)
        assert get_term_kind(term_id) == kind
        assert is_quoted_triple(term_id) == (kind == TermKind.QUOTED_TRIPLE)

    def test_unknown_term(self):
        assert TermDict().get_id(A) is None

    def test_dataset_terms_to_dataframe(self):
        dataset = Dataset([Quad(A, B, Literal("x"))])
        frame = dataset.terms.to_dataframe()
        assert isinstance(frame, pl.DataFrame)
        assert sorted(frame["kind"].to_list()) == ["DEFAULT_GRAPH", "IRI", "IRI", "LITERAL"]


# =============================================================================
# Basic operations
# =============================================================================

class TestDatasetBasics:

    def test_add_is_idempotent(self):
        dataset = Dataset()
        dataset.add(Quad(A, B, C)).add(Quad(A, B, C))
        assert len(dataset) == 1
        assert dataset.size == 1

    def test_only_quads_can_be_added(self):
        with pytest.raises(TypeError):
            Dataset().add(A)

    def test_delete(self, edges):
        edges.delete(Quad(IRI(EX + "e1"), RDF.subject, A))
        edges.delete(Quad(D, D, D))
        assert len(edges) == 6
        assert Quad(IRI(EX + "e1"), RDF.subject, A) not in edges

    def test_iteration_allows_deletion(self, edges):
        for quad in edges:
            edges.delete(quad)
        assert len(edges) == 0

    def test_delete_matches(self, edges):
        edges.delete_matches(None, RDF_TYPE, PGO.Edge)
        assert len(edges) == 5

    def test_get_quads(self, edges):
        assert len(edges.get_quads(None, RDF.subject)) == 2
        assert edges.get_quads(IRI(EX + "e2"), RDF.subject, None, DEFAULT_GRAPH) == [
            Quad(IRI(EX + "e2"), RDF.subject, B)
        ]
        assert edges.get_quads(D) == []

    def test_quoted_quads_are_terms(self, edges):
        quoted = Quad(A, IRI(EX + "knows"), B)
        assert len(edges.get_quads(quoted)) == 1
        assert len(edges.get_rdf_star_quads()) == 1

    def test_match_gives_a_dataset(self, edges):
        matched = edges.match(None, RDF.object)
        assert isinstance(matched, Dataset)
        assert len(matched) == 2

    def test_copy_is_independent(self, edges):
        copy = edges.copy()
        copy.delete_matches()
        assert len(edges) == 7

    def test_find_all_occurrences_as_subject(self, edges):
        quads = edges.find_all_occurrences_as_subject([IRI(EX + "e1"), IRI(EX + "e2")])
        assert len(quads) == 6

    def test_all_usage_of_are(self, edges):
        allowed = [QuadPattern(predicate=RDF.subject), QuadPattern(predicate=RDF.object)]
        assert edges.all_usage_of_are(C, allowed) == [Quad(IRI(EX + "e2"), RDF.object, C)]
        assert edges.all_usage_of_are(A, allowed) is None

    def test_to_dataframe(self, edges):
        frame = edges.to_dataframe()
        assert frame.columns == ["subject", "predicate", "object", "graph"]
        assert frame.filter(pl.col("object") == f"<{EX}c>").height == 1


# =============================================================================
# Pattern matching
# =============================================================================

class TestMatchAndBind:

    def test_one_pattern(self, edges):
        bindings = edges.match_pattern(Quad(Variable("edge"), RDF.subject, Variable("source")))
        assert {(b["edge"], b["source"]) for b in bindings} == {
            (IRI(EX + "e1"), A), (IRI(EX + "e2"), B),
        }
        assert all(len(b.quads) == 1 for b in bindings)

    def test_join(self, edges):
        bindings = edges.match_and_bind([
            Quad(Variable("edge"), RDF_TYPE, PGO.Edge),
            Quad(Variable("edge"), RDF.subject, Variable("source")),
            Quad(Variable("edge"), RDF.object, Variable("destination")),
        ])
        assert len(bindings) == 2
        assert bindings[0].quads[0].predicate == RDF_TYPE
        assert len(bindings[0].quads) == 3

    def test_chain(self, edges):
        """?x is the destination of an edge and the source of another."""
        bindings = edges.match_and_bind([
            Quad(Variable("first"), RDF.object, Variable("x")),
            Quad(Variable("second"), RDF.subject, Variable("x")),
        ])
        assert len(bindings) == 1
        assert bindings[0]["x"] == B

    def test_variables_in_quoted_quads(self, edges):
        bindings = edges.match_pattern(
            Quad(Quad(Variable("s"), Variable("p"), Variable("o")), IRI(EX + "since"), Variable("year"))
        )
        assert len(bindings) == 1
        assert bindings[0]["p"] == IRI(EX + "knows")
        assert bindings[0]["year"] == Literal("2020")

    def test_repeated_variable(self):
        dataset = Dataset([Quad(A, B, A), Quad(A, B, C)])
        bindings = dataset.match_pattern(Quad(Variable("x"), B, Variable("x")))
        assert len(bindings) == 1

    def test_no_solution(self, edges):
        assert edges.match_and_bind([
            Quad(Variable("edge"), RDF_TYPE, PGO.Edge),
            Quad(Variable("edge"), RDF.predicate, Variable("p")),
        ]) == []

    def test_bindings_to_frame(self, edges):
        bindings = edges.match_pattern(Quad(Variable("edge"), RDF.subject, Variable("source")))
        frame = bindings_to_frame(bindings)
        assert frame.columns == ["edge", "source"]
        assert frame.height == 2


class TestBindings:

    def test_unbound_variables_are_kept(self):
        binding = Binding(s=A)
        assert bind_variables(binding, Quad(Variable("s"), B, Variable("o"))) == (
            Quad(A, B, Variable("o"))
        )

    def test_nested_lists(self):
        binding = Binding(s=A)
        result = bind_variables(binding, [Quad(Variable("s"), B, C), [Quad(C, B, Variable("s"))]])
        assert result == [Quad(A, B, C), [Quad(C, B, A)]]

    def test_copy_keeps_quads(self):
        binding = Binding(s=A, quads=[Quad(A, B, C)])
        copy = binding.copy()
        assert copy == binding
        assert copy.quads == [Quad(A, B, C)]
        assert copy.term("missing") is None


class TestFindFilterReplace:

    def test_retag(self, edges):
        """Edges are marked, then retagged when the source is :a."""
        mark = PREC["__appliedEdgeRule"]
        edges.add_all([Quad(IRI(EX + "e1"), mark, PREC.Edges), Quad(IRI(EX + "e2"), mark, PREC.Edges)])

        kept = edges.find_filter_replace(
            [Quad(Variable("edge"), mark, PREC.Edges)],
            [[Quad(Variable("edge"), RDF.subject, A)]],
            [Quad(Variable("edge"), mark, IRI(EX + "rule"))],
        )

        assert len(kept) == 1
        assert Quad(IRI(EX + "e1"), mark, IRI(EX + "rule")) in edges
        assert Quad(IRI(EX + "e1"), mark, PREC.Edges) not in edges
        assert Quad(IRI(EX + "e2"), mark, PREC.Edges) in edges

    def test_condition_blocks_are_independent(self):
        """?y takes a different value in each block."""
        dataset = Dataset([
            Quad(A, RDF_TYPE, PGO.Node),
            Quad(A, B, C),
            Quad(A, B, D),
            Quad(C, RDF_TYPE, IRI(EX + "Red")),
            Quad(D, RDF_TYPE, IRI(EX + "Blue")),
        ])

        kept = dataset.find_filter_replace(
            [Quad(Variable("x"), RDF_TYPE, PGO.Node)],
            [
                [Quad(Variable("x"), B, Variable("y")), Quad(Variable("y"), RDF_TYPE, IRI(EX + "Red"))],
                [Quad(Variable("x"), B, Variable("y")), Quad(Variable("y"), RDF_TYPE, IRI(EX + "Blue"))],
            ],
            [Quad(Variable("x"), RDF_TYPE, IRI(EX + "Colorful"))],
        )

        assert len(kept) == 1
        assert Quad(A, RDF_TYPE, IRI(EX + "Colorful")) in dataset
        assert Quad(A, RDF_TYPE, PGO.Node) not in dataset

    def test_replace_one_binding(self):
        dataset = Dataset([Quad(A, B, C)])
        binding = dataset.match_pattern(Quad(Variable("s"), B, Variable("o")))[0]

        dataset.replace_one_binding(binding, [Quad(Variable("o"), B, Variable("s"))])

        assert list(dataset) == [Quad(C, B, A)]
