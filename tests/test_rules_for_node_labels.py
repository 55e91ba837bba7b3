"""
Tests for the node label rules.
"""
import pytest

from prec.errors import ConfigError


ALICE = """
    :alice a pgo:Node, :Person .
    :Person rdfs:label "Person" .
"""

ALICE_AND_BOB = """
    :alice a pgo:Node, :Person, :Developer .
    :bob   a pgo:Node, :Person .
    :Person    rdfs:label "Person" .
    :Developer rdfs:label "Developer" .
"""


# ========== Default Template Tests ==========

class TestDefaultTemplate:

    @pytest.mark.parametrize("graph", [ALICE, ALICE_AND_BOB], ids=["one_label", "two_labels"])
    def test_idempotency(self, check_output, graph):
        """Node labels are kept as types when no rule applies."""
        check_output(graph, "", graph)

    def test_node_without_label(self, check_output):
        check_output(":alice a pgo:Node .", "", ":alice a pgo:Node .")

    def test_without_provenance(self, check_output):
        check_output(
            ALICE,
            "prec:KeepProvenance prec:flagState false .",
            ':alice a :Person . :Person rdfs:label "Person" .'
        )


# ========== Rule Tests ==========

class TestNodeLabelRules:

    def test_shortcut(self, check_output):
        """prec:IRIOfNodeLabel replaces the label IRI."""
        check_output(ALICE, ':Human prec:IRIOfNodeLabel "Person" .', ":alice a pgo:Node, :Human .")

    def test_full_rule(self, check_output):
        check_output(
            ALICE,
            """
            [] a prec:NodeLabelRule ;
                prec:nodeLabel "Person" ;
                prec:nodeLabelIRI :Human .
            """,
            ":alice a pgo:Node, :Human ."
        )

    def test_label_alias(self, check_output):
        """prec:label can be used instead of prec:nodeLabel."""
        check_output(
            ALICE,
            '[] a prec:NodeLabelRule ; prec:label "Person" ; prec:nodeLabelIRI :Human .',
            ":alice a pgo:Node, :Human ."
        )

    def test_rule_on_one_of_two_labels(self, check_output):
        check_output(ALICE_AND_BOB, ':Dev prec:IRIOfNodeLabel "Developer" .', """
            :alice a pgo:Node, :Person, :Dev .
            :bob   a pgo:Node, :Person .
            :Person rdfs:label "Person" .
        """)

    def test_explicit_priority(self, check_output):
        check_output(
            ALICE,
            """
            [] a prec:NodeLabelRule ; prec:nodeLabel "Person" ; prec:nodeLabelIRI :Low .
            [] a prec:NodeLabelRule ; prec:nodeLabel "Person" ; prec:nodeLabelIRI :High ;
                prec:priority 3 .
            """,
            ":alice a pgo:Node, :High ."
        )


# ========== Template Tests ==========

class TestNodeLabelTemplates:

    def test_label_as_literal(self, check_output):
        """pvar:label is the label of the label IRI."""
        check_output(
            ALICE_AND_BOB,
            """
            prec:NodeLabels prec:templatedBy [
                prec:composedOf << pvar:node :hasLabel pvar:label >>
            ] .
            """,
            """
            :alice a pgo:Node ; :hasLabel "Person", "Developer" .
            :bob   a pgo:Node ; :hasLabel "Person" .
            """
        )

    def test_template_of_a_rule(self, check_output):
        """A rule template only applies to the labels of the rule."""
        check_output(
            ALICE_AND_BOB,
            """
            :LabelAsLiteral a prec:NodeLabelTemplate ;
                prec:composedOf << pvar:node :hasLabel pvar:label >> .

            [] a prec:NodeLabelRule ;
                prec:nodeLabel "Developer" ;
                prec:templatedBy :LabelAsLiteral .
            """,
            """
            :alice a pgo:Node, :Person ; :hasLabel "Developer" .
            :bob   a pgo:Node, :Person .
            :Person rdfs:label "Person" .
            """
        )


# ========== Error Tests ==========

class TestNodeLabelErrors:

    def test_same_target(self, check_output):
        with pytest.raises(ConfigError, match="exact same target"):
            check_output(
                ALICE,
                """
                :A prec:IRIOfNodeLabel "Person" .
                :B prec:IRIOfNodeLabel "Person" .
                """,
                ALICE,
            )

    def test_unknown_condition(self, check_output):
        with pytest.raises(ConfigError, match="Unknown predicate"):
            check_output(
                ALICE,
                '[] a prec:NodeLabelRule ; prec:nodeLabel "Person" ; prec:sourceLabel "Person" .',
                ALICE,
            )

    def test_rule_without_label(self, check_output):
        with pytest.raises(ConfigError, match="should have a value"):
            check_output(ALICE, "[] a prec:NodeLabelRule ; prec:nodeLabelIRI :Human .", ALICE)
