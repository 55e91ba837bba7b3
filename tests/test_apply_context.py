"""
End to end tests of apply_context: scenarios, flags, blank node mapping,
configuration overrides and malformed input graphs.
"""
import logging

import pytest

from prec.config import PrecConfig
from prec.errors import InputGraphError
from prec.graph_substitution import are_isomorphic
from prec.namespaces import PGO, RDF_TYPE
from prec.rules import Context, apply_context, apply_context_to_turtle
from prec.storage.dataset import Dataset
from prec.terms import IRI

EX = "http://example.org/"


PERSON_KNOWS_PERSON = """
    :A a pgo:Node .
    :B a pgo:Node .
    :edge a pgo:Edge ; rdf:subject :A ; rdf:predicate :T ; rdf:object :B ;
        :since [ a prec:PropertyKeyValue ; rdf:value "2020" ] .
    :T rdfs:label "T" .
    :since a prec:PropertyKey ; rdfs:label "since" .
"""

RDF_STAR_EDGES = """
    prec:Edges prec:templatedBy prec:RdfStarUnique .
    :rel prec:IRIOfEdgeLabel "T" .
"""


# ========== Scenario Tests ==========

class TestScenarios:

    def test_simple_property_rename(self, check_output):
        check_output(
            """
            :node a pgo:Node ; :p [ a prec:PropertyKeyValue ; rdf:value "v1" ] .
            :p a prec:PropertyKey ; rdfs:label "P1" .
            """,
            ':knows prec:IRIOfProperty "P1" .',
            ':node a pgo:Node ; :knows [ a prec:PropertyKeyValue ; rdf:value "v1" ] .'
        )

    def test_edge_rule_with_rdf_star_unique(self, check_output):
        """The edge becomes a single triple, without a reification node."""
        check_output(
            """
            :A a pgo:Node .
            :B a pgo:Node .
            :edge a pgo:Edge ; rdf:subject :A ; rdf:predicate :T ; rdf:object :B .
            :T rdfs:label "T" .
            """,
            RDF_STAR_EDGES + "prec:KeepProvenance prec:flagState false .",
            ":A :rel :B ."
        )

    @pytest.mark.parametrize("context", [
        """
        [] a prec:PropertyRule ; prec:propertyKey "P1" ; prec:propertyIRI :winner ; prec:priority 5 .
        [] a prec:PropertyRule ; prec:propertyKey "P1" ; prec:propertyIRI :loser .
        """,
        """
        [] a prec:PropertyRule ; prec:propertyKey "P1" ; prec:propertyIRI :loser .
        [] a prec:PropertyRule ; prec:propertyKey "P1" ; prec:propertyIRI :winner ; prec:priority 5 .
        """,
    ], ids=["explicit_first", "explicit_last"])
    def test_conflicting_priorities(self, check_output, context):
        """The rule with an explicit priority wins whatever the declaration order."""
        check_output(
            """
            :node a pgo:Node ; :p [ a prec:PropertyKeyValue ; rdf:value "v1" ] .
            :p a prec:PropertyKey ; rdfs:label "P1" .
            """,
            "prec:Properties prec:templatedBy prec:DirectTriples .\n" + context,
            ':node a pgo:Node ; :winner "v1" .'
        )

    def test_identity_resolution(self, check_output):
        """The property of a remapped edge is attached to the quoted triple."""
        check_output(PERSON_KNOWS_PERSON, RDF_STAR_EDGES, """
            :A a pgo:Node .
            :B a pgo:Node .
            :A :rel :B .
            << :A :rel :B >> a pgo:Edge .
            << :A :rel :B >> :since [ a prec:PropertyKeyValue ; rdf:value "2020" ] .
            :since a prec:PropertyKey ; rdfs:label "since" .
        """)

    def test_property_on_every_identity(self, check_output):
        """An edge template with two identities gives the property to both."""
        check_output(
            PERSON_KNOWS_PERSON,
            """
            prec:Edges prec:templatedBy :Both .
            prec:Properties prec:templatedBy prec:DirectTriples .
            prec:KeepProvenance prec:flagState false .

            :Both a prec:EdgeTemplate ;
                prec:composedOf
                    << pvar:source pvar:edgeIRI pvar:destination >> ,
                    << pvar:edge :occurrenceOf << pvar:source pvar:edgeIRI pvar:destination >> >> ;
                prec:edgeIs pvar:edge, << pvar:source pvar:edgeIRI pvar:destination >> .
            """,
            """
            :A :T :B .
            :edge :occurrenceOf << :A :T :B >> .
            :edge :since "2020" .
            << :A :T :B >> :since "2020" .
            :T rdfs:label "T" .
            :since rdfs:label "since" .
            """
        )

    def test_determinism(self, parse):
        context = parse(RDF_STAR_EDGES)
        outputs = [
            list(apply_context(Dataset(parse(PERSON_KNOWS_PERSON)), context))
            for _ in range(3)
        ]

        assert are_isomorphic(outputs[0], outputs[1])
        assert are_isomorphic(outputs[0], outputs[2])

    def test_loaded_context_is_reusable(self, parse):
        context = Context(parse(RDF_STAR_EDGES))

        first = apply_context(Dataset(parse(PERSON_KNOWS_PERSON)), context)
        second = apply_context(Dataset(parse(PERSON_KNOWS_PERSON)), context)

        assert are_isomorphic(list(first), list(second))

    def test_dataset_is_transformed_in_place(self, parse):
        dataset = Dataset(parse(":n a pgo:Node ; :p :v . :v a prec:PropertyKeyValue ; rdf:value 1 ."))
        result = apply_context(dataset, [])
        assert result is dataset


# ========== Flag Tests ==========

class TestProvenance:

    GRAPH = """
        :node a pgo:Node ; :p [ a prec:PropertyKeyValue ; rdf:value "v" ] .
        :p a prec:PropertyKey ; rdfs:label "P" .
    """

    def test_kept_by_default(self, check_output):
        check_output(self.GRAPH, "", self.GRAPH)

    def test_removed_by_the_context(self, check_output):
        check_output(
            self.GRAPH,
            "prec:KeepProvenance prec:flagState false .",
            ':node :p [ rdf:value "v" ] . :p rdfs:label "P" .'
        )

    def test_configuration_overrides_the_context(self, check_output):
        check_output(
            self.GRAPH,
            "prec:KeepProvenance prec:flagState true .",
            ':node :p [ rdf:value "v" ] . :p rdfs:label "P" .',
            config=PrecConfig(keep_provenance=False),
        )

    def test_context_flag_when_configuration_is_silent(self, parse):
        context = Context(parse("prec:KeepProvenance prec:flagState false ."), PrecConfig())
        assert context.keep_provenance is False


# ========== Blank Node Mapping Tests ==========

class TestBlankNodeMapping:

    def test_nodes_mapped_by_the_context(self):
        dataset = apply_context_to_turtle(
            "_:toto a pgo:Node .",
            "pgo:Node prec:mapBlankNodesToPrefix <http://totoland/> .",
        )

        quads = list(dataset)
        assert len(quads) == 1
        assert isinstance(quads[0].subject, IRI)
        assert quads[0].subject.value.startswith("http://totoland/")
        assert quads[0].object == PGO.Node

    def test_mapped_nodes_in_edges(self):
        dataset = apply_context_to_turtle(
            """
            _:a a pgo:Node .
            _:b a pgo:Node .
            _:e a pgo:Edge ; rdf:subject _:a ; rdf:predicate <http://example.org/p> ; rdf:object _:b .
            """,
            """
            prec:Edges prec:templatedBy prec:RdfStarUnique .
            prec:KeepProvenance prec:flagState false .
            """,
            PrecConfig(blank_node_mapping={"pgo:Node": "http://nodes/"}),
        )

        quads = list(dataset)
        assert len(quads) == 1
        assert quads[0].subject.value.startswith("http://nodes/")
        assert quads[0].object.value.startswith("http://nodes/")

    def test_configuration_merged_over_the_context(self, parse):
        context = Context(
            parse("""
                pgo:Node prec:mapBlankNodesToPrefix <http://from-context/nodes/> .
                pgo:Edge prec:mapBlankNodesToPrefix <http://from-context/edges/> .
            """),
            PrecConfig(blank_node_mapping={"pgo:Node": "http://from-config/"}),
        )

        assert context.blank_node_mapping == {
            PGO.Node.value: "http://from-config/",
            PGO.Edge.value: "http://from-context/edges/",
        }

    def test_other_blank_nodes_are_untouched(self):
        dataset = apply_context_to_turtle(
            """
            <http://example.org/n> a pgo:Node ; <http://example.org/p> [
                a prec:PropertyKeyValue ; rdf:value "v"
            ] .
            <http://example.org/p> a prec:PropertyKey ; rdfs:label "P" .
            """,
            "pgo:Node prec:mapBlankNodesToPrefix <http://totoland/> .",
        )

        values = dataset.get_quads(None, RDF_TYPE, IRI("http://bruy.at/prec#PropertyKeyValue"))
        assert len(values) == 1
        assert not isinstance(values[0].subject, IRI)


# ========== Blank Nodes Of The Context ==========

class TestContextBlankNodes:
    """Blank nodes of the context never meet the blank nodes of the graph."""

    def test_anonymous_rule_and_anonymous_property(self, check_output):
        check_output(
            """
            :node a pgo:Node ; :p [ a prec:PropertyKeyValue ; rdf:value "v1" ] .
            :p a prec:PropertyKey ; rdfs:label "P1" .
            """,
            "[] a prec:PropertyRule ; prec:propertyKey \"P1\" ; prec:propertyIRI :knows .",
            ':node a pgo:Node ; :knows [ a prec:PropertyKeyValue ; rdf:value "v1" ] .'
        )

    def test_same_user_label_in_both_documents(self, check_output):
        check_output(
            """
            :node a pgo:Node ; :p _:v .
            _:v a prec:PropertyKeyValue ; rdf:value "v1" .
            :p a prec:PropertyKey ; rdfs:label "P1" .
            """,
            "_:v a prec:PropertyRule ; prec:propertyKey \"P1\" ; prec:propertyIRI :knows .",
            ':node a pgo:Node ; :knows [ a prec:PropertyKeyValue ; rdf:value "v1" ] .'
        )

    def test_same_user_label_for_an_edge_and_an_edge_rule(self, check_output):
        check_output(
            """
            :A a pgo:Node .
            :B a pgo:Node .
            _:v a pgo:Edge ; rdf:subject :A ; rdf:predicate :T ; rdf:object :B .
            :T rdfs:label "T" .
            """,
            """
            _:v a prec:EdgeRule ; prec:edgeLabel "T" ; prec:edgeIRI :rel ;
                prec:templatedBy prec:RdfStarUnique .
            prec:KeepProvenance prec:flagState false .
            """,
            ":A :rel :B ."
        )


# ========== Error Tests ==========

class TestMalformedGraphs:

    def test_edge_with_two_subjects(self, check_output):
        with pytest.raises(InputGraphError, match="exactly one"):
            check_output(
                ":e a pgo:Edge ; rdf:subject :a, :b ; rdf:predicate :p ; rdf:object :c .",
                "",
                "",
            )

    def test_property_without_value(self, check_output):
        with pytest.raises(InputGraphError, match="rdf:value"):
            check_output(
                """
                :n a pgo:Node ; :k :pv .
                :pv a prec:PropertyKeyValue .
                :k a prec:PropertyKey ; rdfs:label "k" .
                """,
                "",
                "",
            )


# ========== Logging Tests ==========

class TestLogging:

    def test_summary_is_logged(self, parse, caplog):
        with caplog.at_level(logging.INFO, logger="prec"):
            apply_context(Dataset(parse(PERSON_KNOWS_PERSON)), parse(RDF_STAR_EDGES))

        assert "Context applied" in caplog.text

    def test_marks_are_logged_at_debug_level(self, parse, caplog):
        with caplog.at_level(logging.DEBUG, logger="prec"):
            apply_context(Dataset(parse(PERSON_KNOWS_PERSON)), parse(RDF_STAR_EDGES))

        assert "edges: applying 1 mark(s)" in caplog.text
