"""
PRSC contexts: one rule per property graph type.

A PRSC rule describes a type, i.e. a kind (node or edge), a set of labels and
a set of property keys, and the template graph each element of this type is
turned into:

    :PersonRule a prec:PRSCNodeRule ;
        prec:label "Person" ;
        prec:propertyKey "name" ;
        prec:produces << pvar:self :name "name"^^prec:_valueOf >> .

Unlike PREC-C contexts, the output graph is built from scratch: it only
contains the instantiated templates.

The well-behaved check tells whether the output graph of a context can be
converted back to the property graph: every element is identifiable, no
value is lost and every rule has a signature triple.

Example:
    context = PrscContext.from_quads(parse_turtle(context_text))
    output = context.apply(Dataset(parse_turtle(graph_text)))
    violations = well_behaved_check(context)
"""

from __future__ import annotations

import enum
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Sequence, Union

from prec.errors import ConfigError, InputGraphError
from prec.namespaces import PGO, PREC, PVAR, RDF, RDF_TYPE, RDFS_LABEL
from prec.storage.dataset import Dataset
from prec.terms import (
    DEFAULT_GRAPH, IRI, BlankNode, Literal, Quad, Term, Variable,
    contains_all_terms, contains_one_of_terms, contains_term,
    eventually_rebuild_quad, find_blank_nodes, term_to_string,
)

logger = logging.getLogger(__name__)

__all__ = [
    "PrscRule",
    "PrscContext",
    "RuleViolation",
    "WellBehavedViolation",
    "ElementIdentification",
    "build_rule",
    "read_template",
    "characterize_triple",
    "element_identification",
    "no_value_loss",
    "signature_triple",
    "well_behaved_check",
    "apply_prsc",
]

VALUE_OF = PREC["_valueOf"]
PLACEHOLDER = PREC["_placeholder"]

RULE_TYPES = {PREC.PRSCNodeRule: "node", PREC.PRSCEdgeRule: "edge"}

PRSC_DECLARATION = Quad(PREC.this_is, RDF_TYPE, PREC.prscContext)

KAPPA_LITERAL = Literal("Literal", datatype=VALUE_OF.value)
KAPPA_BLANK_NODE = Literal("BlankNode", datatype=PLACEHOLDER.value)


# =============================================================================
# Rules
# =============================================================================

@dataclass(frozen=True)
class PrscRule:
    """
    A property graph type and the template of its elements.

    Attributes:
        identity: The rule node in the context
        kind: "node" or "edge"
        labels: The labels of the type
        properties: The property keys of the type
        template: The template graph
    """
    identity: Term
    kind: str
    labels: frozenset[str]
    properties: frozenset[str]
    template: tuple[Quad, ...]


@dataclass(frozen=True)
class RuleViolation:
    """A reason why a rule of the context can not be loaded."""
    identity: Term
    message: str

    def __str__(self) -> str:
        return f"{term_to_string(self.identity)} {self.message}"


def follow_all(dataset: Dataset, subject: Term, predicate: Term) -> list[Term]:
    return [quad.object for quad in dataset.get_quads(subject, predicate, None, DEFAULT_GRAPH)]


def follow_through(dataset: Dataset, subject: Term, predicate: Term) -> Optional[Term]:
    """Return the only object of `subject predicate ?o`, None if there are zero or several."""
    objects = follow_all(dataset, subject, predicate)
    return objects[0] if len(objects) == 1 else None


def _xsd_strings(context: Dataset, identity: Term, predicate: IRI) -> frozenset[str]:
    values = []
    for value in follow_all(context, identity, predicate):
        if not isinstance(value, Literal) or value.datatype or value.language:
            raise ConfigError(
                f"{term_to_string(identity)} {term_to_string(predicate)} "
                f"objects must be xsd:string literals, found {term_to_string(value)}"
            )
        values.append(value.value)
    return frozenset(values)


def read_template(context: Dataset, identity: Term) -> list[Quad]:
    """
    Read the template graph of the rule `identity`.

    A quad is in the template graph if:
    - it is a quoted triple in object position of `identity prec:produces ?o`;
    - it is in the named graph `?o` of `identity prec:produces ?o`;
    - its subject is a blank node of a quad already in the template graph.

    Raises:
        ConfigError: If `prec:produces` names an empty graph or has a literal
            object
    """
    template: list[Quad] = []
    seen: set[Quad] = set()

    for produced in follow_all(context, identity, PREC.produces):
        if isinstance(produced, Quad):
            if produced in seen:
                continue

            seen.add(produced)
            template.append(produced)

            to_explore = [produced]
            while to_explore:
                quad = to_explore.pop()
                blank_nodes = [BlankNode(label) for label in sorted(find_blank_nodes(quad))]
                for found in context.find_all_occurrences_as_subject(blank_nodes):
                    if found not in seen:
                        seen.add(found)
                        template.append(found)
                        to_explore.append(found)
        elif isinstance(produced, (IRI, BlankNode)):
            graph_content = context.get_quads(None, None, None, produced)
            if not graph_content:
                raise ConfigError(
                    f"{term_to_string(identity)} prec:produces {term_to_string(produced)} "
                    f"but the graph {term_to_string(produced)} is empty"
                )
            for quad in graph_content:
                template.append(Quad(quad.subject, quad.predicate, quad.object))
        else:
            raise ConfigError(
                f"Invalid object for prec:produces in rule {term_to_string(identity)}: "
                f"{term_to_string(produced)}"
            )

    return template


def _property_names(term: Term) -> list[str]:
    if isinstance(term, Quad):
        return [name for component in term.components() for name in _property_names(component)]
    if isinstance(term, Literal) and term.datatype == VALUE_OF.value:
        return [term.value]
    return []


def build_rule(context: Dataset, identity: Term) -> tuple[Optional[PrscRule], list[RuleViolation]]:
    """
    Read the rule `identity` of the context.

    Returns:
        The rule and an empty list, or None and the reasons why the rule is
        invalid

    Raises:
        ConfigError: If a label or a property key is not an xsd:string, or if
            the template can not be read
    """
    violations = []
    kind = None

    rule_type = follow_through(context, identity, RDF_TYPE)
    if rule_type is None:
        violations.append(RuleViolation(identity, "does not have exactly one type"))
    elif rule_type in RULE_TYPES:
        kind = RULE_TYPES[rule_type]
    else:
        violations.append(RuleViolation(
            identity,
            f"has the type {term_to_string(rule_type)} which is different from "
            f"the expected types prec:PRSCNodeRule and prec:PRSCEdgeRule",
        ))

    labels = _xsd_strings(context, identity, PREC.label)
    properties = _xsd_strings(context, identity, PREC.propertyKey)
    template = read_template(context, identity)

    invalid_names = {
        name for quad in template for name in _property_names(quad)
        if name not in properties
    }
    for name in sorted(invalid_names):
        violations.append(RuleViolation(
            identity,
            f"uses the property name {name} in its template but it is not "
            f"a property of the described type",
        ))

    if kind == "node" and any(
        contains_one_of_terms(quad, PVAR.source, PVAR.destination) for quad in template
    ):
        violations.append(RuleViolation(
            identity, "is a node rule but its template uses pvar:source or pvar:destination"
        ))

    if violations:
        return None, violations

    return PrscRule(identity, kind, labels, properties, tuple(template)), []


# =============================================================================
# Context
# =============================================================================

def _fresh_blank_nodes(used_labels: set[str]) -> Iterator[BlankNode]:
    for number in itertools.count(1):
        label = f"prsc{number}"
        if label not in used_labels:
            yield BlankNode(label)


class PrscContext:
    """The rules of a PRSC context."""

    def __init__(self, rules: Sequence[PrscRule]):
        self.rules = list(rules)

    @classmethod
    def from_quads(cls, context_quads: Iterable[Quad]) -> "PrscContext":
        """
        Load the rules typed prec:PRSCNodeRule or prec:PRSCEdgeRule.

        Raises:
            ConfigError: If one of the rules is invalid. Every violation is
                listed in the message.
        """
        dataset = Dataset(context_quads)
        rules = []
        violations = []
        seen: set[Term] = set()

        for rule_type in RULE_TYPES:
            for quad in dataset.get_quads(None, RDF_TYPE, rule_type, DEFAULT_GRAPH):
                if quad.subject in seen:
                    continue
                seen.add(quad.subject)

                rule, found = build_rule(dataset, quad.subject)
                violations.extend(found)
                if rule is not None:
                    rules.append(rule)

        if violations:
            raise ConfigError(
                "The PRSC context is invalid: " + " ; ".join(str(v) for v in violations)
            )

        logger.debug(f"Loaded {len(rules)} PRSC rule(s)")
        return cls(rules)

    def __len__(self) -> int:
        return len(self.rules)

    def find_rule(self, kind: str, labels: frozenset[str], properties: frozenset[str]) -> Optional[PrscRule]:
        """Return the first rule for this type, if any."""
        for rule in self.rules:
            if rule.kind == kind and rule.labels == labels and rule.properties == properties:
                return rule
        return None

    def apply(self, dataset: Dataset) -> Dataset:
        """
        Build the output graph of the PREC-0 graph `dataset`.

        Nodes are converted first, then edges. `dataset` is not modified.

        Raises:
            InputGraphError: If an element matches no rule, has several values
                for one property, or is an edge without exactly one source and
                one destination
        """
        result = Dataset()
        used_labels = {label for quad in dataset for label in find_blank_nodes(quad)}
        fresh = _fresh_blank_nodes(used_labels)

        for kind, type_iri in (("node", PGO.Node), ("edge", PGO.Edge)):
            for quad in dataset.get_quads(None, RDF_TYPE, type_iri, DEFAULT_GRAPH):
                self._produce(dataset, quad.subject, kind, result, fresh)

        return result

    def _produce(
        self, dataset: Dataset, element: Term, kind: str, result: Dataset, fresh: Iterator[BlankNode]
    ) -> None:
        labels, properties = describe_element(dataset, element, kind)

        rule = self.find_rule(kind, labels, frozenset(properties))
        if rule is None:
            raise InputGraphError(
                f"No rule matches the PG {kind} mapped to {term_to_string(element)}"
            )

        source = destination = None
        if kind == "edge":
            source = follow_through(dataset, element, RDF.subject)
            destination = follow_through(dataset, element, RDF.object)
            if source is None or destination is None:
                raise InputGraphError(
                    f"Edge {term_to_string(element)} should have exactly one "
                    f"rdf:subject and one rdf:object"
                )

        result.add_all(instantiate(rule.template, element, properties, source, destination, fresh))


def describe_element(dataset: Dataset, element: Term, kind: str) -> tuple[frozenset[str], dict[str, Term]]:
    """
    Read the labels and the properties of a PG element.

    Returns:
        The labels and a mapping from property keys to values

    Raises:
        InputGraphError: If a property has several values
    """
    to_label = RDF_TYPE if kind == "node" else RDF.predicate

    labels = frozenset(
        binding["label"].value
        for binding in dataset.match_and_bind([
            Quad(element, to_label, Variable("labelIRI")),
            Quad(Variable("labelIRI"), RDFS_LABEL, Variable("label")),
        ])
    )

    properties: dict[str, Term] = {}
    for binding in dataset.match_and_bind([
        Quad(element, Variable("key"), Variable("node")),
        Quad(Variable("key"), RDFS_LABEL, Variable("name")),
        Quad(Variable("node"), RDF.value, Variable("value")),
    ]):
        name = binding["name"].value
        if name in properties:
            raise InputGraphError(
                f"Multiple value for property {name} of {term_to_string(element)}"
            )
        properties[name] = binding["value"]

    return labels, properties


def instantiate(
    template: Sequence[Quad],
    element: Term,
    properties: dict[str, Term],
    source: Optional[Term],
    destination: Optional[Term],
    fresh: Iterator[BlankNode],
) -> list[Quad]:
    """
    Replace the placeholders of the template with the values of one element.

    Each blank node of the template becomes a new blank node, shared by the
    quads of this instantiation only.
    """
    instances: dict[BlankNode, BlankNode] = {}

    def replace(term: Term) -> Term:
        if term in (PVAR.node, PVAR.edge, PVAR.self):
            return element
        if term == PVAR.source:
            return source
        if term == PVAR.destination:
            return destination
        if isinstance(term, Literal) and term.datatype == VALUE_OF.value:
            return properties[term.value]
        if isinstance(term, BlankNode):
            if term not in instances:
                instances[term] = next(fresh)
            return instances[term]
        return term

    return [eventually_rebuild_quad(quad, replace) for quad in template]


def apply_prsc(dataset: Dataset, context: Union[PrscContext, Iterable[Quad]]) -> Dataset:
    """Return the output graph of the PREC-0 graph `dataset` with a PRSC context."""
    start_time = time.time()
    if not isinstance(context, PrscContext):
        context = PrscContext.from_quads(context)

    result = context.apply(dataset)

    elapsed_ms = (time.time() - start_time) * 1000
    logger.info(f"PRSC context applied: {len(dataset)} -> {len(result)} quads in {elapsed_ms:.1f}ms")
    return result


# =============================================================================
# Well-behaved check
# =============================================================================

def characterize_triple(quad: Quad) -> Quad:
    """
    Return the kappa value of a quad, at any depth.

    Literals become `"Literal"^^prec:_valueOf`, blank nodes and pvar terms
    become `"BlankNode"^^prec:_placeholder`, other IRIs are kept.
    """
    def kappa(term: Term) -> Term:
        if isinstance(term, Literal):
            return KAPPA_LITERAL
        if isinstance(term, BlankNode) or term in PVAR:
            return KAPPA_BLANK_NODE
        return term

    return eventually_rebuild_quad(quad, kappa)


class ElementIdentification(enum.Enum):
    FULLY_IDENTIFIABLE = "fully identifiable"
    MONOEDGE = "monoedge"
    NO = "no"


def element_identification(rule: PrscRule) -> ElementIdentification:
    """
    Tell how the elements produced by the rule can be found in the output graph.

    A template with a blank node is never identifiable. Otherwise, either
    every triple contains the element, or the rule describes a monoedge: an
    edge whose triples all contain its source and its destination.
    """
    if any(find_blank_nodes(quad) for quad in rule.template):
        return ElementIdentification.NO

    own = PVAR.node if rule.kind == "node" else PVAR.edge
    if all(contains_one_of_terms(quad, PVAR.self, own) for quad in rule.template):
        return ElementIdentification.FULLY_IDENTIFIABLE

    if rule.kind == "edge" and all(
        contains_all_terms(quad, PVAR.source, PVAR.destination) for quad in rule.template
    ):
        return ElementIdentification.MONOEDGE

    return ElementIdentification.NO


def _arguments(term: Term) -> list[Union[str, Term]]:
    if isinstance(term, Quad):
        return [arg for component in term.components() for arg in _arguments(component)]
    if term in (PVAR.source, PVAR.destination):
        return [term]
    if isinstance(term, Literal) and term.datatype == VALUE_OF.value:
        return [term.value]
    return []


def no_value_loss(rule: PrscRule) -> bool:
    """
    Return True if every value of an element can be read back from the output.

    Only the template triples with a kappa value that no other triple of the
    template shares are trusted to carry the source, the destination and the
    property values.
    """
    by_kappa: dict[Quad, Optional[list]] = {}
    for quad in rule.template:
        arguments = _arguments(quad)
        if not arguments:
            continue

        kappa = characterize_triple(quad)
        by_kappa[kappa] = arguments if kappa not in by_kappa else None

    found = {arg for arguments in by_kappa.values() if arguments is not None for arg in arguments}
    found_source = PVAR.source in found
    found_destination = PVAR.destination in found

    if found_source != found_destination:
        return False
    if found_source != (rule.kind == "edge"):
        return False
    return {arg for arg in found if isinstance(arg, str)} == rule.properties


def is_monoedge_template(template: Sequence[Quad]) -> bool:
    return all(
        not contains_term(quad, PVAR.self)
        and contains_all_terms(quad, PVAR.source, PVAR.destination)
        for quad in template
    )


def _same_source_destination_positions(lhs: Term, rhs: Term) -> bool:
    if type(lhs) is not type(rhs):
        return False
    if isinstance(lhs, Quad):
        return all(
            _same_source_destination_positions(left, right)
            for left, right in zip(lhs.components(), rhs.components())
        )
    if lhs in (PVAR.source, PVAR.destination) or rhs in (PVAR.source, PVAR.destination):
        return lhs == rhs
    return True


def signature_triple(rules: Sequence[PrscRule]) -> list[PrscRule]:
    """
    Return the rules without a signature triple.

    A signature triple is a template triple whose kappa value is produced by
    no other rule. All the triples of a monoedge must be signatures, and one
    of them must tell the source from the destination.
    """
    owner: dict[Quad, Optional[PrscRule]] = {}
    for rule in rules:
        for quad in rule.template:
            kappa = characterize_triple(quad)
            if kappa not in owner:
                owner[kappa] = rule
            elif owner[kappa] is not None and owner[kappa] != rule:
                owner[kappa] = None

    for rule in rules:
        if not is_monoedge_template(rule.template):
            continue

        kappas = [characterize_triple(quad) for quad in rule.template]
        if any(owner.get(kappa) != rule for kappa in kappas):
            for kappa in kappas:
                owner[kappa] = None

        has_oriented_signature = any(
            all(
                _same_source_destination_positions(rule.template[i], rule.template[j])
                for j in range(len(kappas))
                if i != j and kappas[i] == kappas[j]
            )
            for i in range(len(kappas))
        )
        if not has_oriented_signature:
            for kappa in kappas:
                owner[kappa] = None

    with_signature = {rule.identity for rule in owner.values() if rule is not None}
    return [rule for rule in rules if rule.identity not in with_signature]


class MonoedgeClashes:
    """
    Collect the rules whose templates can produce the triples of a monoedge.

    Every template triple of a monoedge is used as a signature, so it must
    not be shared with another monoedge or another rule.
    """

    def __init__(self):
        self._monoedges_of: dict[Quad, list[PrscRule]] = {}
        self._clashes: dict[Term, tuple[PrscRule, list[PrscRule]]] = {}

    def _add_clash(self, monoedge: PrscRule, other: PrscRule) -> None:
        _, others = self._clashes.setdefault(monoedge.identity, (monoedge, []))
        if other not in others:
            others.append(other)

    def add_monoedge(self, monoedge: PrscRule) -> None:
        already_clashing: set[Term] = set()

        for quad in monoedge.template:
            kappa = characterize_triple(quad)
            monoedges = self._monoedges_of.get(kappa)
            if monoedges is None:
                self._monoedges_of[kappa] = [monoedge]
            elif monoedge not in monoedges:
                for other in monoedges:
                    if other.identity not in already_clashing:
                        already_clashing.add(other.identity)
                        self._add_clash(monoedge, other)
                        self._add_clash(other, monoedge)
                monoedges.append(monoedge)

    def add_other_rule(self, rule: PrscRule) -> None:
        already_clashing: set[Term] = set()

        for quad in rule.template:
            for monoedge in self._monoedges_of.get(characterize_triple(quad), []):
                if monoedge.identity not in already_clashing:
                    already_clashing.add(monoedge.identity)
                    self._add_clash(monoedge, rule)

    @property
    def clashes(self) -> list[tuple[PrscRule, list[PrscRule]]]:
        return list(self._clashes.values())


@dataclass
class WellBehavedViolation:
    """A rule and the reasons why it breaks the well-behaved check."""
    rule: PrscRule
    reason: str

    def __str__(self) -> str:
        return f"{term_to_string(self.rule.identity)}: {self.reason}"


def well_behaved_check(context: PrscContext) -> list[WellBehavedViolation]:
    """
    Check if the context is well behaved, i.e. if its output graphs can be
    converted back to the original property graphs.

    Returns:
        The violations, one per faulty rule with its reasons separated by
        " / ". An empty list means the context is well behaved.
    """
    violations: dict[Term, WellBehavedViolation] = {}

    def add_violation(rule: PrscRule, reason: str) -> None:
        if rule.identity in violations:
            violations[rule.identity].reason += " / " + reason
        else:
            violations[rule.identity] = WellBehavedViolation(rule, reason)

    monoedges = []
    for rule in context.rules:
        identification = element_identification(rule)
        if identification == ElementIdentification.NO:
            add_violation(rule, "pvar:self is not in all triples")
        elif identification == ElementIdentification.MONOEDGE:
            monoedges.append(rule)

        if not no_value_loss(rule):
            add_violation(rule, "Some data from the Property Graph is lost")

    for rule in signature_triple(context.rules):
        add_violation(rule, "No signature")

    if monoedges:
        clashes = MonoedgeClashes()
        for monoedge in monoedges:
            clashes.add_monoedge(monoedge)
        for rule in context.rules:
            if rule not in monoedges:
                clashes.add_other_rule(rule)

        for monoedge, others in clashes.clashes:
            add_violation(
                monoedge,
                "is a monoedge but its triples clashes with "
                + " and ".join(term_to_string(other.identity) for other in others),
            )

    result = list(violations.values())
    if result:
        logger.debug(f"PRSC context is not well behaved: {len(result)} faulty rule(s)")
    return result
