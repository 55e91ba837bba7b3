"""
Rules for properties.

A PREC-0 property is written

    ?entity ?propertyKey ?property .
    ?property a prec:PropertyKeyValue ;
        rdf:value ?propertyValue ;
        prec:hasMetaProperties ?metaPropertyNode .   # optional

where `?propertyKey a prec:PropertyKey ; rdfs:label "key"`. The entity is a
node, an edge or a meta property node. Every property node is first marked
with `prec:_NoPropertyRuleFound`, then retagged by the property rules.

When the produced quads are written, the entity is replaced with what the
rules of the entity turned it into (`deep_resolve`): a node stays itself, an
edge becomes the `prec:edgeIs` part of its template, and a meta property node
becomes the `prec:entityIs` part of the property that holds it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from prec.errors import ConfigError, InputGraphError, LogicError
from prec.namespaces import (
    PGO, PREC, PVAR, RDF, RDF_FIRST, RDF_NIL, RDF_REST, RDF_TYPE, RDFS_LABEL,
)
from prec.rules import edges
from prec.rules.domain import RuleDomain, RuleFilter, SplitConditions
from prec.storage.dataset import Binding, Dataset, bind_variables
from prec.terms import (
    DEFAULT_GRAPH, Literal, Quad, Term, Variable, contains_term,
    remap_pattern_with_variables, term_to_string,
)

if TYPE_CHECKING:
    from prec.rules.context import Context

logger = logging.getLogger(__name__)

MARK = PREC["__appliedPropertyRule"]
NO_RULE_FOUND = PREC._NoPropertyRuleFound

_ENTITY = Variable("entity")
_PROPERTY_KEY = Variable("propertyKey")
_PROPERTY = Variable("property")
_PROPERTY_VALUE = Variable("propertyValue")
_INDIVIDUAL_VALUE = Variable("individualValue")
_META_PROPERTY_NODE = Variable("metaPropertyNode")

PROPERTY_REMAPPING = (
    (_ENTITY, PVAR.entity),
    (_PROPERTY_KEY, PVAR.propertyKey),
    (Variable("label"), PVAR.label),
    (_PROPERTY, PVAR.propertyNode),
    (_PROPERTY_VALUE, PVAR.propertyValue),
    (_INDIVIDUAL_VALUE, PVAR.individualValue),
    (_META_PROPERTY_NODE, PVAR.metaPropertyNode),
)


# =============================================================================
# Filters and marks
# =============================================================================

def make_filters(conditions: SplitConditions, rule_node: Term) -> list[RuleFilter]:
    """
    Build the filters that retag the property nodes matching the rule.

    The rule applies to the properties of nodes (`?entity rdf:type ?label`
    for a `prec:label` condition). With `prec:onKind prec:Edge`, it applies
    to the properties of edges instead (`?entity rdf:predicate ?label`), or
    to both if `prec:onKind prec:Node` is also given.

    Raises:
        ConfigError: If `prec:label` is not a literal or `prec:onKind` is
            neither `prec:Node` nor `prec:Edge`
    """
    base: list[tuple[Quad, ...]] = [(Quad(_PROPERTY_KEY, RDF_TYPE, PREC.PropertyKey),)]
    if conditions.label is not None:
        base.append((Quad(_PROPERTY_KEY, RDFS_LABEL, conditions.label),))

    on_nodes: Optional[list] = list(base)
    on_edges: Optional[list] = list(base)
    kinds = []

    for key, value in conditions.other:
        if key == PREC.label:
            if not isinstance(value, Literal):
                raise ConfigError(
                    f"Error for the property rule {term_to_string(rule_node)}: "
                    f"prec:label must be a literal, found {term_to_string(value)}"
                )

            on_nodes.append((
                Quad(_ENTITY, RDF_TYPE, Variable("label")),
                Quad(Variable("label"), RDFS_LABEL, value),
            ))
            on_edges.append((
                Quad(_ENTITY, RDF.predicate, Variable("label")),
                Quad(Variable("label"), RDFS_LABEL, value),
            ))
        elif key == PREC.onKind:
            if value not in (PREC.Node, PREC.Edge):
                raise ConfigError(
                    f"Error for the property rule {term_to_string(rule_node)}: "
                    f"prec:onKind must be prec:Node or prec:Edge, found {term_to_string(value)}"
                )
            kinds.append(value)
        else:
            raise LogicError(
                f"Found a condition of type {term_to_string(key)} "
                "but it should already have been filtered out"
            )

    if PREC.Node in kinds:
        on_nodes.append((Quad(_ENTITY, RDF_TYPE, PGO.Node),))
    elif PREC.Edge in kinds:
        on_nodes = None

    if PREC.Edge in kinds:
        on_edges.append((Quad(_ENTITY, RDF_TYPE, PGO.Edge),))
    else:
        on_edges = None

    source = (
        Quad(_PROPERTY, MARK, NO_RULE_FOUND),
        Quad(_ENTITY, _PROPERTY_KEY, _PROPERTY),
    )
    destination = (
        Quad(_PROPERTY, MARK, rule_node),
        Quad(_ENTITY, _PROPERTY_KEY, _PROPERTY),
    )

    return [
        RuleFilter(
            source=source,
            conditions=tuple(blocks),
            destination=destination,
            rule_node=rule_node,
            priority=conditions.priority,
        )
        for blocks in (on_nodes, on_edges)
        if blocks is not None
    ]


def add_initial_marks(dataset: Dataset) -> None:
    """Mark every property node with `prec:_NoPropertyRuleFound`."""
    marks = []
    for key_quad in dataset.get_quads(None, RDF_TYPE, PREC.PropertyKey, DEFAULT_GRAPH):
        for quad in dataset.get_quads(None, key_quad.subject, None, DEFAULT_GRAPH):
            marks.append(Quad(quad.object, MARK, NO_RULE_FOUND))
    dataset.add_all(marks)


def find_type_of_entity(dataset: Dataset, entity: Term) -> Term:
    """
    Return the template base for the properties of `entity`.

    `prec:NodeProperties` for a `pgo:Node`, `prec:EdgeProperties` for a
    `pgo:Edge` and `prec:MetaProperties` for anything else.
    """
    if dataset.has(Quad(entity, RDF_TYPE, PGO.Node)):
        return PREC.NodeProperties
    if dataset.has(Quad(entity, RDF_TYPE, PGO.Edge)):
        return PREC.EdgeProperties
    return PREC.MetaProperties


# =============================================================================
# Property instantiation
# =============================================================================

@dataclass
class InstantiatedProperty:
    """The quads produced for a property, and what they still need from the input."""
    produced: list[Quad] = field(default_factory=list)
    used_properties: list[Term] = field(default_factory=list)
    lists_to_keep: list[Term] = field(default_factory=list)


def bind_property(input_dataset: Dataset, property_node: Term) -> Binding:
    """
    Read the PREC-0 structure of a property node.

    Raises:
        InputGraphError: If the property node does not have exactly one
            holder and one value
    """
    bindings = input_dataset.match_and_bind([
        Quad(_ENTITY, _PROPERTY_KEY, property_node),
        Quad(property_node, RDF.value, _PROPERTY_VALUE),
        Quad(property_node, RDF_TYPE, PREC.PropertyKeyValue),
    ])

    if len(bindings) != 1:
        raise InputGraphError(
            f"Property node {term_to_string(property_node)} should have exactly "
            f"one holder and one rdf:value, found {len(bindings)} combinations"
        )

    binding = Binding(bindings[0])
    binding["property"] = property_node
    return binding


def extract_individual_values(dataset: Dataset, value: Term, ignore: bool) -> list[Term]:
    """
    Split a property value into its individual values.

    A literal is its own individual value. Anything else must be the head of
    an RDF list, whose members are returned.

    Raises:
        InputGraphError: If the list is malformed
    """
    if ignore:
        return []

    if isinstance(value, Literal):
        return [value]

    values = []
    current = value
    while current != RDF_NIL:
        firsts = dataset.get_quads(current, RDF_FIRST, None, DEFAULT_GRAPH)
        rests = dataset.get_quads(current, RDF_REST, None, DEFAULT_GRAPH)

        if len(firsts) != 1 or len(rests) != 1:
            raise InputGraphError(
                f"Malformed list {term_to_string(current)}: "
                f"{len(firsts)} values for rdf:first and {len(rests)} values for rdf:rest"
            )

        values.append(firsts[0].object)
        current = rests[0].object

    return values


def instantiate_property(
    input_dataset: Dataset,
    property_node: Term,
    template: list[Quad],
    context: "Context",
) -> InstantiatedProperty:
    """
    Instantiate a property template for one property node.

    The template quads are split in four groups, depending on whether they
    use `pvar:metaPropertyNode` (only produced if the property has meta
    properties) and `pvar:individualValue` (produced once per individual
    value). Every quad is produced once per resolved identity of the entity.
    """
    binding = bind_property(input_dataset, property_node)

    labels = input_dataset.get_quads(binding["propertyKey"], RDFS_LABEL, None, DEFAULT_GRAPH)
    if labels:
        binding["label"] = labels[0].object

    entities = deep_resolve(binding["entity"], input_dataset, context)

    pattern = [remap_pattern_with_variables(quad, PROPERTY_REMAPPING) for quad in template]

    mandatory, optional = [], []
    mandatory_individual, optional_individual = [], []
    for quad in pattern:
        with_meta = contains_term(quad, _META_PROPERTY_NODE)
        individual = contains_term(quad, _INDIVIDUAL_VALUE)
        if with_meta:
            (optional_individual if individual else optional).append(quad)
        else:
            (mandatory_individual if individual else mandatory).append(quad)

    individual_values = extract_individual_values(
        input_dataset,
        binding["propertyValue"],
        ignore=not (mandatory_individual or optional_individual),
    )

    meta_quads = input_dataset.get_quads(property_node, PREC.hasMetaProperties, None, DEFAULT_GRAPH)
    meta_node = meta_quads[0].object if meta_quads else None

    def per_value(quads: list[Quad]) -> list[Quad]:
        return [
            q
            for value in individual_values
            for q in bind_variables({"individualValue": value}, quads)
        ]

    result = InstantiatedProperty()

    for entity in entities:
        binding["entity"] = entity

        result.produced.extend(bind_variables(binding, mandatory))
        result.produced.extend(per_value(bind_variables(binding, mandatory_individual)))

        if meta_node is not None:
            meta = {"metaPropertyNode": meta_node}
            result.produced.extend(bind_variables(meta, bind_variables(binding, optional)))
            result.produced.extend(
                per_value(bind_variables(meta, bind_variables(binding, optional_individual)))
            )

    value = binding["propertyValue"]
    if any(contains_term(q, _PROPERTY_VALUE) for q in pattern):
        if input_dataset.get_quads(value, RDF_FIRST, None, DEFAULT_GRAPH):
            result.lists_to_keep.append(value)

    key = binding["propertyKey"]
    if any(contains_term(q, _PROPERTY_KEY) or contains_term(q, key) for q in pattern):
        result.used_properties.append(key)

    return result


def deep_resolve(entity: Term, input_dataset: Dataset, context: "Context") -> list[Term]:
    """
    Return the terms that `entity` is turned into by its own rule.

    Raises:
        ConfigError: If the template of the entity does not tell which of
            its terms is the entity
        LogicError: If the entity is neither a node, an edge nor a meta
            property node
    """
    kind = find_type_of_entity(input_dataset, entity)

    if kind == PREC.NodeProperties:
        return [entity]

    if kind == PREC.EdgeProperties:
        edge_binding = edges.bind_edge(input_dataset, entity)
        marks = input_dataset.get_quads(entity, edges.MARK, None, DEFAULT_GRAPH)
        if len(marks) != 1:
            raise LogicError(
                f"Edge {term_to_string(entity)} should have exactly one applied rule, "
                f"found {len(marks)}"
            )

        template = context.find_edge_template(marks[0].object)
        if template.entity_is is None:
            raise ConfigError(
                f"The template of the edge rule {term_to_string(marks[0].object)} "
                "does not tell which term is the edge, use prec:edgeIs"
            )

        return [_bind_edge_term(edge_binding, term) for term in template.entity_is]

    bindings = input_dataset.match_and_bind([
        Quad(_PROPERTY, PREC.hasMetaProperties, entity),
        Quad(_PROPERTY, MARK, Variable("ruleNode")),
        Quad(_ENTITY, Variable("whatever"), _PROPERTY),
    ])

    if not bindings:
        raise LogicError(f"Unknown type of entity for {term_to_string(entity)}")

    binding = bindings[0]
    holder_kind = find_type_of_entity(input_dataset, binding["entity"])
    template = context.find_property_template(binding["ruleNode"], holder_kind)
    if template.entity_is is None:
        raise ConfigError(
            f"The template of the property rule {term_to_string(binding['ruleNode'])} "
            "does not tell which term holds the meta properties, use prec:entityIs"
        )

    resolved = []
    for term in template.entity_is:
        instantiated = instantiate_property(
            input_dataset, binding["property"], [Quad(term, PREC._, PREC._)], context
        )
        resolved.extend(quad.subject for quad in instantiated.produced)
    return resolved


def _bind_edge_term(binding: Binding, term: Term) -> Term:
    remapped = remap_pattern_with_variables(term, edges.EDGE_REMAPPING)
    if isinstance(remapped, Quad):
        return bind_variables(binding, remapped)
    if isinstance(remapped, Variable) and remapped.name in binding:
        return binding[remapped.name]
    return remapped


# =============================================================================
# Application
# =============================================================================

def apply_mark(destination: Dataset, mark: Quad, input_dataset: Dataset, context: "Context") -> list[Term]:
    """
    Produce the quads of one marked property node into `destination`.

    Returns:
        The property key if the produced quads still use it
    """
    property_node = mark.subject
    binding = bind_property(input_dataset, property_node)
    kind = find_type_of_entity(input_dataset, binding["entity"])

    template = context.find_property_template(mark.object, kind)
    result = instantiate_property(input_dataset, property_node, list(template.quads), context)

    destination.add_all(result.produced)

    if result.lists_to_keep:
        logger.debug(
            f"Keeping {len(result.lists_to_keep)} list(s) used by {term_to_string(property_node)}"
        )

    for head in result.lists_to_keep:
        current = head
        while current != RDF_NIL:
            destination.add_all(input_dataset.get_quads(current, None, None, DEFAULT_GRAPH))
            rests = input_dataset.get_quads(current, RDF_REST, None, DEFAULT_GRAPH)
            if len(rests) != 1:
                raise InputGraphError(
                    f"Malformed list {term_to_string(current)}: {len(rests)} values for rdf:rest"
                )
            current = rests[0].object

    return result.used_properties


PROPERTY_DOMAIN = RuleDomain(
    name="properties",
    rule_type=PREC.PropertyRule,
    default_template=PREC.Prec0Property,
    main_label=PREC.propertyKey,
    label_aliases=(),
    possible_conditions=(PREC.label, PREC.onKind),
    template_bases=(
        (PREC.NodeProperties, ()),
        (PREC.EdgeProperties, ()),
        (PREC.MetaProperties, (PREC.label, PREC.onKind)),
    ),
    shortcut_iri=PREC.IRIOfProperty,
    substitution_term=PREC.propertyIRI,
    property_holder_substitution_term=PREC.entityIs,
    entity_is_heuristic=(
        (PVAR.metaPropertyNode,),
        (PVAR.propertyNode,),
        (PVAR.entity, PVAR.propertyKey, PVAR.propertyValue),
        (PVAR.entity, PVAR.propertyKey, PVAR.individualValue),
    ),
    subject_star_placeholders=(PVAR.entity,),
    mark=MARK,
    make_filters=make_filters,
    add_initial_marks=add_initial_marks,
    apply_mark=apply_mark,
)
