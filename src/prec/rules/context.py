"""
A loaded context.

Example:
    context = Context(parse_turtle(context_text))
    context.produce_marks(dataset)
    template = context.find_edge_template(rule_node)
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from prec.config import PrecConfig
from prec.rules.context_loader import (
    EntitiesManager, SubstitutionTerms, add_builtin,
    copy_properties_values_to_specific_properties, keep_provenance,
    isolate_blank_nodes, read_blank_node_mapping, remove_sugar_for_rules,
    replace_synonyms,
)
from prec.rules.domain import Template
from prec.rules.edges import EDGE_DOMAIN
from prec.rules.node_labels import NODE_LABEL_DOMAIN
from prec.rules.properties import PROPERTY_DOMAIN
from prec.storage.dataset import Dataset
from prec.terms import Quad, Term

logger = logging.getLogger(__name__)


class Context:
    """
    The rules, templates and flags of a context, merged with the built-in rules.

    Attributes:
        edges: Rules for edges
        properties: Rules for properties
        node_labels: Rules for node labels
        keep_provenance: False to remove the PGO typing from the output
        blank_node_mapping: Type IRI -> prefix of the IRIs that replace the
            blank nodes of this type
    """

    def __init__(self, context_quads: Iterable[Quad], config: Optional[PrecConfig] = None):
        self.config = config or PrecConfig()

        dataset = Dataset(isolate_blank_nodes(context_quads))
        add_builtin(dataset, self.config.builtin_rules_path)
        replace_synonyms(dataset)

        substitution_terms = SubstitutionTerms(dataset)

        remove_sugar_for_rules(dataset, EDGE_DOMAIN)
        self.edges = EntitiesManager(dataset, substitution_terms, EDGE_DOMAIN)

        remove_sugar_for_rules(dataset, PROPERTY_DOMAIN)
        copy_properties_values_to_specific_properties(dataset)
        self.properties = EntitiesManager(dataset, substitution_terms, PROPERTY_DOMAIN)

        remove_sugar_for_rules(dataset, NODE_LABEL_DOMAIN)
        self.node_labels = EntitiesManager(dataset, substitution_terms, NODE_LABEL_DOMAIN)

        flag = keep_provenance(dataset)
        if self.config.keep_provenance is not None:
            flag = self.config.keep_provenance
        self.keep_provenance: bool = True if flag is None else flag

        self.blank_node_mapping = read_blank_node_mapping(dataset)
        self.blank_node_mapping.update(self.config.expanded_blank_node_mapping())

        logger.debug(
            f"Context loaded: {len(self.edges.filters)} edge filter(s), "
            f"{len(self.properties.filters)} property filter(s), "
            f"{len(self.node_labels.filters)} node label filter(s), "
            f"keep_provenance={self.keep_provenance}"
        )

    @property
    def entity_managers(self) -> tuple[EntitiesManager, ...]:
        """The managers, in the order their marks are produced and applied."""
        return (self.edges, self.properties, self.node_labels)

    def produce_marks(self, dataset: Dataset) -> None:
        """Mark every entity of `dataset` with the rule that applies to it."""
        for manager in self.entity_managers:
            manager.domain.add_initial_marks(dataset)
            manager.refine_rules(dataset)

    def find_edge_template(self, rule_node: Term) -> Template:
        return self.edges.get_template_for(rule_node, EDGE_DOMAIN.base_names[0])

    def find_property_template(self, rule_node: Term, type_of_holder: Term) -> Template:
        return self.properties.get_template_for(rule_node, type_of_holder)

    def find_node_label_template(self, rule_node: Term) -> Template:
        return self.node_labels.get_template_for(rule_node, NODE_LABEL_DOMAIN.base_names[0])
