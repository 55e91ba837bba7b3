"""
Context loading.

Turns the quads of a context into rules and templates:

- the built-in rules are merged into the context, synonyms are normalized and
  `:iri prec:IRIOfX "label"` shortcuts are expanded into full rules;
- every rule node is split into conditions and materialization
  (`split_definition`);
- templates are composed from the rule materialization, the base
  materialization and the substitutions (`build_template`), then checked;
- an `EntitiesManager` per rule domain keeps the filters sorted by priority
  and the templates of each (rule, base) pair.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

import polars as pl

from prec.config import BUILTIN_RULES_PATH
from prec.errors import ConfigError, LogicError
from prec.formats.turtle import parse_turtle
from prec.namespaces import PGO, PREC, PVAR, RDF_TYPE, VOCABULARY
from prec.rules.domain import (
    RuleDomain, RuleFilter, SplitConditions, SplitDefinition,
    SplitMaterialization, Template,
)
from prec.storage.dataset import Dataset
from prec.terms import (
    DEFAULT_GRAPH, IRI, BlankNode, Literal, Quad, Term, Variable,
    XSD_INTEGER, contains_term, eventually_rebuild_quad, term_to_string,
    xsd_bool_to_bool,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Context preprocessing
# =============================================================================

def isolate_blank_nodes(quads: Iterable[Quad]) -> list[Quad]:
    """
    Rename every blank node of the context quads to `_:Context[label]`.

    Rule nodes are written in the transformed graph as the object of marks,
    so they must never share a label with a blank node of the graph. The
    brackets are not allowed in Turtle labels.
    """
    def rename(term: Term) -> Term:
        return BlankNode(f"Context[{term.label}]") if isinstance(term, BlankNode) else term

    return [eventually_rebuild_quad(quad, rename) for quad in quads]


def add_builtin(dataset: Dataset, path: Optional[Union[str, Path]] = None) -> None:
    """Add the quads of the built-in rules file to the context dataset."""
    path = BUILTIN_RULES_PATH if path is None else Path(path)
    quads = parse_turtle(path, prefixes=VOCABULARY.prefixes())
    dataset.add_all(quads)
    logger.debug(f"Loaded {len(quads)} built-in quads from {path}")


SYNONYMS: dict[Term, Term] = {
    PREC.RelationshipRule: PREC.EdgeRule,
    PREC.RelationshipTemplate: PREC.EdgeTemplate,
    PREC.relationshipLabel: PREC.edgeLabel,
    PREC.Relationships: PREC.Edges,
    PREC.RelationshipProperties: PREC.EdgeProperties,
    PREC.IRIOfRelationshipLabel: PREC.IRIOfEdgeLabel,
    PREC.relationshipIRI: PREC.edgeIRI,
    PVAR.relationshipIRI: PVAR.edgeIRI,
    PVAR.relationship: PVAR.edge,
    PREC.produces: PREC.composedOf,
}


def replace_synonyms(dataset: Dataset) -> None:
    """Replace every synonym, at any depth, with its canonical term."""
    to_delete = []
    to_add = []

    for quad in dataset:
        new_quad = eventually_rebuild_quad(quad, lambda term: SYNONYMS.get(term, term))
        if new_quad is not quad:
            to_delete.append(quad)
            to_add.append(new_quad)

    dataset.remove_quads(to_delete)
    dataset.add_all(to_add)


class SubstitutionTerms:
    """The `?term prec:substitutionTarget ?target` declarations of a context."""

    def __init__(self, dataset: Dataset):
        self._data: tuple[tuple[Term, Term], ...] = tuple(
            (quad.subject, quad.object)
            for quad in dataset.get_quads(None, PREC.substitutionTarget, None, DEFAULT_GRAPH)
        )

    def keys(self) -> list[Term]:
        return [term for term, _ in self._data]

    def get(self, term: Term) -> Optional[Term]:
        """Return the term targeted by the given substitution term."""
        for key, target in self._data:
            if key == term:
                return target
        return None

    def __contains__(self, term: Term) -> bool:
        return self.get(term) is not None

    def __len__(self) -> int:
        return len(self._data)


def remove_sugar_for_rules(dataset: Dataset, domain: RuleDomain) -> None:
    """
    Replace the `:iri <shortcut> "label" .` quads with full rules.

    The full rule is
    `_:b a <rule type> ; <main label> "label" ; <substitution term> :iri .`
    """
    sugared = dataset.get_quads(None, domain.shortcut_iri, None, DEFAULT_GRAPH)

    for quad in sugared:
        iri = quad.subject
        label = quad.object

        if not isinstance(label, Literal):
            raise ConfigError(
                f"{domain.shortcut_iri.value} only accepts literal in object position - "
                f"found {term_to_string(label)} for {term_to_string(iri)}"
            )

        rule_node = BlankNode(f"SugarRule[{label.value}=>{_plain_value(iri)}]")
        dataset.add(Quad(rule_node, RDF_TYPE, domain.rule_type))
        dataset.add(Quad(rule_node, domain.main_label, label))
        dataset.add(Quad(rule_node, domain.substitution_term, iri))

    dataset.remove_quads(sugared)


def copy_properties_values_to_specific_properties(dataset: Dataset) -> None:
    """Copy every `prec:Properties ?p ?o` quad to the node, edge and meta properties bases."""
    p, o, g = Variable("p"), Variable("o"), Variable("g")
    dataset.find_filter_replace(
        [Quad(PREC.Properties, p, o, g)],
        [],
        [
            Quad(PREC.NodeProperties, p, o, g),
            Quad(PREC.EdgeProperties, p, o, g),
            Quad(PREC.MetaProperties, p, o, g),
        ],
    )


def _plain_value(term: Term) -> str:
    if isinstance(term, IRI):
        return term.value
    if isinstance(term, BlankNode):
        return term.label
    return term_to_string(term)


# =============================================================================
# Rule splitting
# =============================================================================

def split_definition(
    dataset: Dataset,
    rule_node: Term,
    domain: RuleDomain,
    substitution_terms: SubstitutionTerms,
) -> SplitDefinition:
    """
    Read every quad about a rule node and classify it by predicate.

    Raises:
        ConfigError: If a predicate is unknown, or a value is repeated or
            has the wrong kind
    """
    def malformed(message: str) -> ConfigError:
        return ConfigError(f"Rule {term_to_string(rule_node)} is malformed - {message}")

    def literal_or_raise(term: Term, predicate: Term) -> Literal:
        if not isinstance(term, Literal):
            raise malformed(
                f"{term_to_string(predicate)} value ({term_to_string(term)}) is not a literal."
            )
        return term

    rule_type = None
    label = None
    explicit_priority = None
    other = []
    templated_by = None
    substitutions = []

    for quad in dataset.get_quads(rule_node, None, None, DEFAULT_GRAPH):
        predicate = quad.predicate

        if predicate == RDF_TYPE:
            rule_type = quad.object
        elif domain.is_main_label(predicate):
            if label is not None:
                raise malformed(f"{term_to_string(predicate)} should appear only once.")
            label = literal_or_raise(quad.object, predicate)
        elif predicate == PREC.priority:
            if explicit_priority is not None:
                raise malformed("prec:priority should have at most one value.")
            value = literal_or_raise(quad.object, predicate)
            if value.datatype != XSD_INTEGER:
                raise malformed("prec:priority object should be of type xsd:integer")
            try:
                explicit_priority = int(value.value)
            except ValueError as e:
                raise malformed(f"prec:priority value {value.value} is not an integer") from e
        elif predicate in domain.possible_conditions:
            other.append((predicate, quad.object))
        elif predicate == PREC.templatedBy:
            if templated_by is not None:
                raise malformed("prec:templatedBy should have at most one value.")
            templated_by = quad.object
        elif predicate in substitution_terms:
            substitutions.append((substitution_terms.get(predicate), quad.object))
        else:
            raise malformed(f"Unknown predicate {term_to_string(predicate)}")

    other.sort(key=lambda pair: json.dumps([term_to_string(pair[0]), term_to_string(pair[1])]))

    return SplitDefinition(
        type=rule_type,
        conditions=SplitConditions(label, explicit_priority, tuple(other)),
        materialization=SplitMaterialization(templated_by, tuple(substitutions)),
    )


def throw_if_not_materialization_only(split: SplitDefinition, rule_node: Term) -> None:
    """Raise if the node has anything else than a template and substitutions."""
    conditions = split.conditions
    if (
        split.type is not None
        or conditions.label is not None
        or conditions.explicit_priority is not None
        or conditions.other
    ):
        raise ConfigError(
            f"Rule {term_to_string(rule_node)} is malformed: It should not have "
            "any condition and should not be typed."
        )


def throw_if_have_no_condition(split: SplitDefinition, rule_node: Term, domain: RuleDomain) -> None:
    """Raise if the rule is not typed or has no main label."""
    if split.type is None:
        raise ConfigError(f"Rule {term_to_string(rule_node)} is malformed: Unknown type")

    if split.conditions.label is None:
        raise ConfigError(
            f"Rule {term_to_string(rule_node)} is malformed: "
            f"It should have a value for {term_to_string(domain.main_label)}"
        )


# =============================================================================
# Templates
# =============================================================================

PAIR_PLACEHOLDERS = (
    (PVAR.propertyPredicate, PVAR.propertyObject),
    (PVAR.metaPropertyPredicate, PVAR.metaPropertyObject),
)

_PLACEHOLDERS_IN_PAIRS = tuple(term for pair in PAIR_PLACEHOLDERS for term in pair)


@dataclass
class RawTemplate:
    """The quads of a template node, before any substitution."""
    composed_of: list[Quad]
    entity_is: Optional[list[Term]]


def _is_pair_quad(quad: Quad) -> bool:
    return any(
        quad.predicate == predicate and quad.object == obj
        for predicate, obj in PAIR_PLACEHOLDERS
    )


def read_raw_template(dataset: Dataset, template: Term, domain: RuleDomain) -> RawTemplate:
    """
    Read the `prec:composedOf` quads of a template and find its entity part.

    The entity part is, in this order of preference:
    - the subjects of the `<< ?x pvar:propertyPredicate pvar:propertyObject >>`
      like quads, which are removed from the template;
    - the values of the domain property holder predicate;
    - the terms found by the domain heuristic.

    Raises:
        ConfigError: If a composedOf value is not a quad or a pair
            placeholder is used out of its pair
    """
    composed_of = []
    for quad in dataset.get_quads(template, PREC.composedOf, None, DEFAULT_GRAPH):
        if not isinstance(quad.object, Quad):
            raise ConfigError(
                f"Template {term_to_string(template)}: object of prec:composedOf "
                f"must be a quad, found {term_to_string(quad.object)}"
            )
        composed_of.append(quad.object)

    check_template(domain, template, composed_of)

    pair_quads = [quad for quad in composed_of if _is_pair_quad(quad)]
    composed_of = [quad for quad in composed_of if not _is_pair_quad(quad)]

    entity_is: Optional[list[Term]] = [quad.subject for quad in pair_quads]

    if domain.property_holder_substitution_term is not None:
        entity_is.extend(
            quad.object
            for quad in dataset.get_quads(
                template, domain.property_holder_substitution_term, None, DEFAULT_GRAPH
            )
        )

        if not entity_is:
            entity_is = find_implicit_entity(domain.entity_is_heuristic or (), composed_of)

    return RawTemplate(composed_of, entity_is)


def _is_a_main_component_of(term: Term, quad: Quad) -> bool:
    return term in quad.components()


def find_implicit_entity(
    heuristic: Sequence[Sequence[Term]], quads: Sequence[Quad]
) -> Optional[list[Term]]:
    """
    Guess which part of a template is the entity.

    The groups of the heuristic are tried in order. A group is found in the
    quads that have every term of the group as a direct component. A group
    of one term gives this term. A bigger group gives the quad that holds
    it, if there is exactly one.
    """
    for searched_terms in heuristic:
        candidates = [
            quad for quad in quads
            if all(_is_a_main_component_of(term, quad) for term in searched_terms)
        ]

        if not candidates:
            continue
        if len(searched_terms) == 1:
            return list(searched_terms)

        unique = list(dict.fromkeys(candidates))
        if len(unique) != 1:
            return None
        return unique

    return None


def _forbidden_subject_star_position(quad: Quad, placeholder: Term) -> bool:
    if any(contains_term(t, placeholder) for t in (quad.predicate, quad.object, quad.graph)):
        return True
    if isinstance(quad.subject, Quad):
        return _forbidden_subject_star_position(quad.subject, placeholder)
    return False


def _misused_pair_placeholder(quad: Quad) -> Optional[Term]:
    if _is_pair_quad(quad):
        others = (quad.subject, quad.graph)
    else:
        others = quad.components()

    for term in others:
        for placeholder in _PLACEHOLDERS_IN_PAIRS:
            if contains_term(term, placeholder):
                return placeholder
    return None


def check_template(domain: RuleDomain, template_name: Term, quads: Sequence[Quad]) -> None:
    """
    Raise a `ConfigError` if the template quads are not valid.

    - The subject-star placeholders of the domain can only be a subject, or
      the subject of a quoted subject.
    - `pvar:(meta)propertyPredicate` and `pvar:(meta)propertyObject` are
      only used together, as the predicate and object of the same quad.
    - A quoted quad used as a subject is also produced by the template.
      Quoted quads in object position are exempt: they refer to a triple
      without asserting it, as `prec:RdfStarOccurrence` does with
      `pvar:edge prec:occurrenceOf << ... >>`.
    """
    name = term_to_string(template_name)

    for quad in quads:
        for placeholder in domain.subject_star_placeholders:
            if _forbidden_subject_star_position(quad, placeholder):
                raise ConfigError(
                    f"Invalid template {name}: {term_to_string(placeholder)} can only be "
                    f"used in subject position, found in {term_to_string(quad)}"
                )

        misused = _misused_pair_placeholder(quad)
        if misused is not None:
            raise ConfigError(
                f"Invalid template {name}: {term_to_string(misused)} must be used "
                f"with its pair as the predicate and object of a quad, "
                f"found in {term_to_string(quad)}"
            )

    asserted = set(quads)
    for quad in quads:
        if _is_pair_quad(quad) or not isinstance(quad.subject, Quad):
            continue
        if quad.subject not in asserted:
            raise ConfigError(
                f"Invalid template {name}: {term_to_string(quad.subject)} is "
                f"annotated but not produced by the template"
            )


def build_template(
    dataset: Dataset,
    materializations: Sequence[SplitMaterialization],
    domain: RuleDomain,
) -> Template:
    """
    Compose the template from a list of materializations, most specific first.

    The first materialization with a `prec:templatedBy` value decides the
    template and ends the walk. The substitutions of every visited
    materialization are collected; the first one for a given term wins.
    """
    template_name = domain.default_template
    substitutions: dict[Term, Term] = {}

    for materialization in materializations:
        for term, replacement in materialization.substitutions:
            substitutions.setdefault(term, replacement)

        if materialization.templated_by is not None:
            template_name = materialization.templated_by
            break

    raw = read_raw_template(dataset, template_name, domain)

    def substitute(term: Term) -> Term:
        return substitutions.get(term, term)

    def remap(term: Term) -> Term:
        if isinstance(term, Quad):
            return eventually_rebuild_quad(term, substitute)
        return substitute(term)

    return Template(
        quads=tuple(remap(quad) for quad in raw.composed_of),
        entity_is=None if raw.entity_is is None else tuple(remap(t) for t in raw.entity_is),
    )


# =============================================================================
# Entities manager
# =============================================================================

class EntitiesManager:
    """
    Every rule of one domain.

    Holds the rule filters, sorted by priority, and the templates to use
    for each (rule node, template base) pair.
    """

    def __init__(self, dataset: Dataset, substitution_terms: SubstitutionTerms, domain: RuleDomain):
        self.domain = domain
        self.filters: list[RuleFilter] = []
        self.templates: dict[Term, dict[Term, Template]] = {}

        base_materializations: dict[Term, SplitMaterialization] = {}

        for base in domain.base_names:
            split = split_definition(dataset, base, domain, substitution_terms)
            throw_if_not_materialization_only(split, base)

            base_materializations[base] = split.materialization
            self.templates[base] = {
                base: build_template(dataset, [split.materialization], domain)
            }

        existing_nodes: dict[str, Term] = {}

        for quad in dataset.get_quads(None, RDF_TYPE, domain.rule_type, DEFAULT_GRAPH):
            rule_node = quad.subject
            split = split_definition(dataset, rule_node, domain, substitution_terms)
            throw_if_have_no_condition(split, rule_node, domain)

            key = split.conditions.key
            if key in existing_nodes:
                raise ConfigError(
                    f"Invalid context: nodes {term_to_string(existing_nodes[key])} "
                    f"and {term_to_string(rule_node)} have the exact same target"
                )
            existing_nodes[key] = rule_node

            self.filters.extend(domain.make_filters(split.conditions, rule_node))

            for base, forbidden_predicates in domain.template_bases:
                if any(predicate in forbidden_predicates for predicate, _ in split.conditions.other):
                    continue

                self.templates[base][rule_node] = build_template(
                    dataset,
                    [split.materialization, base_materializations[base]],
                    domain,
                )

        self.filters.sort(key=lambda rule_filter: rule_filter.priority.sort_key())
        logger.debug(
            f"{domain.name}: {len(existing_nodes)} rule(s), "
            f"{len(self.filters)} filter(s) in application order"
        )

    def get_template_for(self, rule_node: Term, base: Term) -> Template:
        """
        Return the template for the rule applied on the given base.

        Falls back to the template of the base itself for the sentinel and
        for rules that are not compatible with the base.
        """
        templates_of_base = self.templates.get(base)
        if templates_of_base is None:
            raise LogicError(f"{term_to_string(base)} is not a template base of {self.domain.name}")

        template = templates_of_base.get(rule_node)
        if template is None:
            template = templates_of_base[base]
        return template

    def refine_rules(self, dataset: Dataset) -> None:
        """Retag the marked entities with the rules they match, in priority order."""
        for rule_filter in self.filters:
            dataset.find_filter_replace(
                rule_filter.source, rule_filter.conditions, rule_filter.destination
            )

    def rules_frame(self) -> pl.DataFrame:
        """One row per filter, in application order."""
        return pl.DataFrame(
            {
                "rank": list(range(len(self.filters))),
                "rule_node": [term_to_string(f.rule_node) for f in self.filters],
                "explicit_priority": [f.priority.explicit for f in self.filters],
                "condition_count": [f.priority.condition_count for f in self.filters],
                "key": [f.priority.key for f in self.filters],
            },
            schema={
                "rank": pl.Int64,
                "rule_node": pl.Utf8,
                "explicit_priority": pl.Int64,
                "condition_count": pl.Int64,
                "key": pl.Utf8,
            },
        )


# =============================================================================
# Flags
# =============================================================================

def keep_provenance(dataset: Dataset) -> Optional[bool]:
    """
    Read `prec:KeepProvenance prec:flagState ?b`.

    Returns None if the flag is absent or not a valid xsd:boolean.
    """
    quads = dataset.get_quads(PREC.KeepProvenance, PREC.flagState, None, DEFAULT_GRAPH)
    if not quads:
        return None
    return xsd_bool_to_bool(quads[0].object)


MAPPABLE_TYPES = (PGO.Node, PGO.Edge, PREC.PropertyKey)


def read_blank_node_mapping(dataset: Dataset) -> dict[str, str]:
    """
    Read the `(pgo:Node | pgo:Edge | prec:PropertyKey) prec:mapBlankNodesToPrefix ?prefix`
    quads.

    Returns:
        The mapping from the IRI of the type to the prefix IRI. Invalid
        entries are logged and skipped.
    """
    mapping: dict[str, str] = {}

    for quad in dataset.get_quads(None, PREC.mapBlankNodesToPrefix, None, DEFAULT_GRAPH):
        target = quad.subject

        if target not in MAPPABLE_TYPES:
            logger.warning(f"Unknown subject of mapBlankNodesToPrefix {term_to_string(target)}")
            continue

        if not isinstance(quad.object, IRI):
            logger.warning(
                f"Object of mapBlankNodesToPrefix must be an IRI, found {term_to_string(quad.object)}"
            )
            continue

        mapping[target.value] = quad.object.value

    return mapping
