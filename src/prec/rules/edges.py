"""
Rules for edges.

Every `pgo:Edge` of the PREC-0 graph is marked with
`?edge prec:__appliedEdgeRule prec:Edges`, then retagged with the edge rule
it matches, if any. Edge rules can filter on the edge label, and on the
labels of the source and destination nodes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prec.errors import InputGraphError, LogicError
from prec.namespaces import PGO, PREC, PVAR, RDF, RDF_TYPE, RDFS_LABEL
from prec.rules.domain import RuleDomain, RuleFilter, SplitConditions
from prec.storage.dataset import Binding, Dataset
from prec.terms import (
    DEFAULT_GRAPH, Quad, Term, Variable, contains_term,
    remap_pattern_with_variables, term_to_string,
)

if TYPE_CHECKING:
    from prec.rules.context import Context

MARK = PREC["__appliedEdgeRule"]

# Placeholders of edge templates -> variables bound by `bind_edge`
EDGE_REMAPPING = (
    (Variable("edge"), PVAR.self),
    (Variable("edge"), PVAR.edge),
    (Variable("subject"), PVAR.source),
    (Variable("predicate"), PVAR.edgeIRI),
    (Variable("label"), PVAR.label),
    (Variable("object"), PVAR.destination),
)


def make_filters(conditions: SplitConditions, rule_node: Term) -> list[RuleFilter]:
    """Build the filter that retags the edges matching the rule."""
    edge = Variable("edge")
    blocks = []

    if conditions.label is not None:
        blocks.append((
            Quad(edge, RDF.predicate, Variable("edgeLabel")),
            Quad(Variable("edgeLabel"), RDFS_LABEL, conditions.label),
        ))

    for key, value in conditions.other:
        if key == PREC.sourceLabel:
            predicate = RDF.subject
        elif key == PREC.destinationLabel:
            predicate = RDF.object
        else:
            raise LogicError(
                f"Found a condition of type {term_to_string(key)} "
                "but it should already have been filtered out"
            )

        blocks.append((
            Quad(edge, predicate, Variable("node")),
            Quad(Variable("node"), RDF_TYPE, Variable("label")),
            Quad(Variable("label"), RDFS_LABEL, value),
        ))

    return [
        RuleFilter(
            source=(Quad(edge, MARK, PREC.Edges),),
            conditions=tuple(blocks),
            destination=(Quad(edge, MARK, rule_node),),
            rule_node=rule_node,
            priority=conditions.priority,
        )
    ]


def add_initial_marks(dataset: Dataset) -> None:
    """Mark every edge with `prec:Edges`."""
    dataset.add_all([
        Quad(quad.subject, MARK, PREC.Edges)
        for quad in dataset.get_quads(None, RDF_TYPE, PGO.Edge)
    ])


def bind_edge(input_dataset: Dataset, edge: Term) -> Binding:
    """
    Read the structure of an edge.

    Returns:
        A binding with `edge`, `subject`, `predicate`, `object` and, if the
        predicate has one, `label`

    Raises:
        InputGraphError: If the edge does not have exactly one subject,
            predicate and object
    """
    bindings = input_dataset.match_and_bind([
        Quad(edge, RDF_TYPE, PGO.Edge),
        Quad(edge, RDF.subject, Variable("subject")),
        Quad(edge, RDF.predicate, Variable("predicate")),
        Quad(edge, RDF.object, Variable("object")),
    ])

    if len(bindings) != 1:
        raise InputGraphError(
            f"Edge {term_to_string(edge)} should have exactly one rdf:subject, "
            f"rdf:predicate and rdf:object, found {len(bindings)} combinations"
        )

    binding = Binding(bindings[0])
    binding["edge"] = edge

    labels = input_dataset.get_quads(binding["predicate"], RDFS_LABEL, None, DEFAULT_GRAPH)
    if labels:
        binding["label"] = labels[0].object

    return binding


def apply_mark(destination: Dataset, mark: Quad, input_dataset: Dataset, context: "Context") -> list[Term]:
    """
    Produce the quads of one marked edge into `destination`.

    Returns:
        The edge predicate if the produced quads still use it, so its
        description is kept
    """
    binding = bind_edge(input_dataset, mark.subject)
    binding["ruleNode"] = mark.object

    template = context.find_edge_template(mark.object)
    pattern = [
        remap_pattern_with_variables(quad, EDGE_REMAPPING)
        for quad in template.quads
    ]

    destination.replace_one_binding(binding, pattern)

    predicate = binding["predicate"]
    if any(
        contains_term(quad, Variable("predicate")) or contains_term(quad, predicate)
        for quad in pattern
    ):
        return [predicate]
    return []


EDGE_DOMAIN = RuleDomain(
    name="edges",
    rule_type=PREC.EdgeRule,
    default_template=PREC.RDFReification,
    main_label=PREC.edgeLabel,
    label_aliases=(PREC.label,),
    possible_conditions=(PREC.sourceLabel, PREC.destinationLabel),
    template_bases=((PREC.Edges, ()),),
    shortcut_iri=PREC.IRIOfEdgeLabel,
    substitution_term=PREC.edgeIRI,
    property_holder_substitution_term=PREC.edgeIs,
    entity_is_heuristic=(
        (PVAR.edge,),
        (PVAR.self,),
        (PVAR.source, PVAR.edgeIRI, PVAR.destination),
    ),
    subject_star_placeholders=(),
    mark=MARK,
    make_filters=make_filters,
    add_initial_marks=add_initial_marks,
    apply_mark=apply_mark,
)
