"""
Application of a context to a PREC-0 graph.

Example:
    dataset = Dataset(parse_turtle(graph_text))
    apply_context(dataset, parse_turtle(context_text))
    print(serialize_nquads(dataset))
"""

from __future__ import annotations

import enum
import logging
import time
from typing import Iterable, Optional, Sequence, Union

from prec.config import PrecConfig
from prec.errors import ConfigError
from prec.formats.turtle import parse_turtle
from prec.namespaces import PGO, PREC, RDF_TYPE, VOCABULARY
from prec.rules.context import Context
from prec.rules.edges import EDGE_DOMAIN
from prec.rules.node_labels import NODE_LABEL_DOMAIN
from prec.rules.properties import PROPERTY_DOMAIN
from prec.rules.prsc import PRSC_DECLARATION, RULE_TYPES as PRSC_RULE_TYPES, apply_prsc
from prec.storage.dataset import Dataset
from prec.terms import IRI, DEFAULT_GRAPH, BlankNode, Quad, Term, eventually_rebuild_quad

logger = logging.getLogger(__name__)

_DOMAINS = (EDGE_DOMAIN, PROPERTY_DOMAIN, NODE_LABEL_DOMAIN)

PREC_C_TYPES = {domain.rule_type for domain in _DOMAINS}
PREC_C_PREDICATES = {
    PREC.templatedBy, PREC.composedOf, PREC.mapBlankNodesToPrefix, PREC.flagState,
    *(domain.shortcut_iri for domain in _DOMAINS),
    *(domain.substitution_term for domain in _DOMAINS),
}
PREC_C_SUBJECTS = {
    PREC.KeepProvenance,
    *(base for domain in _DOMAINS for base in domain.base_names),
}


class ContextType(enum.Enum):
    EMPTY = "empty"
    PREC_C = "PREC-C"
    PRSC = "PRSC"


def get_context_type(context_quads: Sequence[Quad]) -> ContextType:
    """
    Tell whether the context is made of PREC-C rules or of PRSC rules.

    Raises:
        ConfigError: If the context mixes both
    """
    is_prec_c = False
    is_prsc = False

    for quad in context_quads:
        if quad == PRSC_DECLARATION:
            is_prsc = True
        if quad.subject in PREC_C_SUBJECTS or quad.predicate in PREC_C_PREDICATES:
            is_prec_c = True
        if quad.predicate == RDF_TYPE:
            if quad.object in PREC_C_TYPES:
                is_prec_c = True
            if quad.object in PRSC_RULE_TYPES:
                is_prsc = True

    if is_prec_c and is_prsc:
        raise ConfigError("The given context mixes PREC-C and PRSC directives")
    if is_prsc:
        return ContextType.PRSC
    if is_prec_c:
        return ContextType.PREC_C
    return ContextType.EMPTY


def map_blank_nodes(dataset: Dataset, type_iri: Term, prefix: str) -> int:
    """
    Replace the blank nodes typed with `type_iri` with IRIs.

    `_:label a type_iri` gives `<prefix + label>`, everywhere in the dataset,
    including inside quoted quads.

    Returns:
        The number of mapped blank nodes
    """
    remapping = {
        quad.subject: IRI(prefix + quad.subject.label)
        for quad in dataset.get_quads(None, RDF_TYPE, type_iri, DEFAULT_GRAPH)
        if isinstance(quad.subject, BlankNode)
    }

    if not remapping:
        return 0

    def rename(term: Term) -> Term:
        return remapping.get(term, term) if isinstance(term, BlankNode) else term

    to_delete = []
    to_add = []
    for quad in dataset:
        renamed = eventually_rebuild_quad(quad, rename)
        if renamed is not quad:
            to_delete.append(quad)
            to_add.append(renamed)

    dataset.remove_quads(to_delete)
    dataset.add_all(to_add)
    return len(remapping)


def rule_based_production(dataset: Dataset, context: Context) -> Dataset:
    """
    Build the output graph of `dataset`.

    The marks are added to `dataset`, which is read but whose PREC-0 quads
    are left untouched.
    """
    context.produce_marks(dataset)

    destination = Dataset()
    preserved: dict[Term, None] = {}

    for manager in context.entity_managers:
        domain = manager.domain
        marks = dataset.get_quads(None, domain.mark, None, DEFAULT_GRAPH)
        logger.debug(f"{domain.name}: applying {len(marks)} mark(s)")

        for mark in marks:
            for term in domain.apply_mark(destination, mark, dataset, context):
                preserved[term] = None

    for term in preserved:
        destination.add_all(dataset.get_quads(term, None, None, DEFAULT_GRAPH))

    destination.add_all(dataset.get_quads(None, RDF_TYPE, PGO.Node, DEFAULT_GRAPH))
    return destination


def remove_pgo(dataset: Dataset) -> None:
    """Remove the typing quads of the PREC-0 structure."""
    for type_iri in (PGO.Edge, PGO.Node, PREC.PropertyKey, PREC.PropertyKeyValue):
        dataset.delete_matches(None, RDF_TYPE, type_iri, DEFAULT_GRAPH)


def apply_context(
    dataset: Dataset,
    context: Union[Context, Iterable[Quad]],
    config: Optional[PrecConfig] = None,
) -> Dataset:
    """
    Transform a PREC-0 graph with the rules of a context, in place.

    Contexts made of prec:PRSCNodeRule and prec:PRSCEdgeRule rules are
    applied by `apply_prsc`.

    Args:
        dataset: The PREC-0 graph, replaced by the output graph
        context: A loaded `Context` or the quads of a context
        config: Run configuration, used when `context` is not loaded yet

    Returns:
        `dataset`

    Raises:
        ConfigError: If the context is malformed
        InputGraphError: If the graph is not a valid PREC-0 graph
    """
    start_time = time.time()
    if not isinstance(context, Context):
        context_quads = list(context)
        if get_context_type(context_quads) == ContextType.PRSC:
            output = apply_prsc(dataset, context_quads)
            dataset.delete_matches()
            dataset.add_all(output)
            return dataset
        context = Context(context_quads, config)

    input_size = len(dataset)

    for type_iri, prefix in context.blank_node_mapping.items():
        mapped = map_blank_nodes(dataset, IRI(type_iri), prefix)
        if mapped:
            logger.debug(f"Mapped {mapped} blank node(s) of type {type_iri} to {prefix}")

    output = rule_based_production(dataset, context)

    dataset.delete_matches()
    dataset.add_all(output)

    if not context.keep_provenance:
        remove_pgo(dataset)

    elapsed_ms = (time.time() - start_time) * 1000
    logger.info(f"Context applied: {input_size} -> {len(dataset)} quads in {elapsed_ms:.1f}ms")
    return dataset


def apply_context_to_turtle(
    graph_text: str,
    context_text: str,
    config: Optional[PrecConfig] = None,
) -> Dataset:
    """Parse a PREC-0 graph and a context written in Turtle-star, and apply the context."""
    prefixes = VOCABULARY.prefixes()
    dataset = Dataset(parse_turtle(graph_text, prefixes=prefixes))
    context_quads = parse_turtle(context_text, prefixes=prefixes)
    return apply_context(dataset, context_quads, config)
