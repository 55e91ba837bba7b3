"""
Rules for node labels.

The PREC-0 graph types every node with the IRIs of its labels:
`:node a pgo:Node, :labelIRI . :labelIRI rdfs:label "Person"`. Each
`:node a :labelIRI` quad is marked as a whole, as a quoted triple, so every
label of a node can follow a different rule.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prec.errors import LogicError
from prec.namespaces import PGO, PREC, PVAR, RDF_TYPE, RDFS_LABEL
from prec.rules.domain import RuleDomain, RuleFilter, SplitConditions
from prec.storage.dataset import Binding, Dataset
from prec.terms import (
    DEFAULT_GRAPH, Quad, Term, Variable, contains_term,
    remap_pattern_with_variables, term_to_string,
)

if TYPE_CHECKING:
    from prec.rules.context import Context

MARK = PREC["__appliedNodeRule"]

NODE_LABEL_REMAPPING = (
    (Variable("node"), PVAR.node),
    (Variable("labelIRI"), PVAR.nodeLabelIRI),
    (Variable("label"), PVAR.label),
)


def make_filters(conditions: SplitConditions, rule_node: Term) -> list[RuleFilter]:
    """Build the filter that retags the node labels matching the rule."""
    node, node_label = Variable("node"), Variable("nodeLabel")
    typed = Quad(node, RDF_TYPE, node_label)

    blocks = []
    if conditions.label is not None:
        blocks.append((typed, Quad(node_label, RDFS_LABEL, conditions.label)))

    if conditions.other:
        raise LogicError(
            f"Node label rule {term_to_string(rule_node)} has conditions "
            "that should already have been filtered out"
        )

    return [
        RuleFilter(
            source=(Quad(typed, MARK, PREC.NodeLabels),),
            conditions=tuple(blocks),
            destination=(Quad(typed, MARK, rule_node),),
            rule_node=rule_node,
            priority=conditions.priority,
        )
    ]


def add_initial_marks(dataset: Dataset) -> None:
    """Mark every `?node a ?labelIRI` quad of a labelled node with `prec:NodeLabels`."""
    bindings = dataset.match_and_bind([
        Quad(Variable("node"), RDF_TYPE, PGO.Node),
        Quad(Variable("node"), RDF_TYPE, Variable("labelIRI")),
        Quad(Variable("labelIRI"), RDFS_LABEL, Variable("trueLabel")),
    ])

    dataset.add_all([
        Quad(Quad(binding["node"], RDF_TYPE, binding["labelIRI"]), MARK, PREC.NodeLabels)
        for binding in bindings
    ])


def apply_mark(destination: Dataset, mark: Quad, input_dataset: Dataset, context: "Context") -> list[Term]:
    """
    Produce the quads of one marked node label into `destination`.

    Returns:
        The label IRI if the produced quads still use it
    """
    marked = mark.subject
    label_iri = marked.object

    binding = Binding(node=marked.subject, labelIRI=label_iri, ruleNode=mark.object)
    labels = input_dataset.get_quads(label_iri, RDFS_LABEL, None, DEFAULT_GRAPH)
    if labels:
        binding["label"] = labels[0].object

    template = context.find_node_label_template(mark.object)
    pattern = [
        remap_pattern_with_variables(quad, NODE_LABEL_REMAPPING)
        for quad in template.quads
    ]

    destination.replace_one_binding(binding, pattern)

    if any(
        contains_term(quad, Variable("labelIRI")) or contains_term(quad, label_iri)
        for quad in pattern
    ):
        return [label_iri]
    return []


NODE_LABEL_DOMAIN = RuleDomain(
    name="node labels",
    rule_type=PREC.NodeLabelRule,
    default_template=PREC.NodeLabelsTypeOfLabelIRI,
    main_label=PREC.nodeLabel,
    label_aliases=(PREC.label,),
    possible_conditions=(),
    template_bases=((PREC.NodeLabels, ()),),
    shortcut_iri=PREC.IRIOfNodeLabel,
    substitution_term=PREC.nodeLabelIRI,
    property_holder_substitution_term=None,
    entity_is_heuristic=None,
    subject_star_placeholders=(),
    mark=MARK,
    make_filters=make_filters,
    add_initial_marks=add_initial_marks,
    apply_mark=apply_mark,
)
