"""
Rule domains.

Edge rules, property rules and node label rules work the same way and only
differ by the IRIs they use and by a few functions. A `RuleDomain` bundles
this data; the three instances live in `prec.rules.edges`,
`prec.rules.properties` and `prec.rules.node_labels`.

This module also holds the values produced while reading a rule from the
context: its conditions, its materialization (template and substitutions),
its priority and the filters it is applied with.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Optional

from prec.terms import Literal, Quad, Term, term_to_string

if TYPE_CHECKING:
    from prec.rules.context import Context
    from prec.storage.dataset import Dataset


# =============================================================================
# Reading rules
# =============================================================================

@dataclass(frozen=True)
class SplitConditions:
    """The part of a rule that decides which entities it applies to."""
    label: Optional[Literal] = None
    explicit_priority: Optional[int] = None
    other: tuple[tuple[Term, Term], ...] = ()

    @property
    def key(self) -> str:
        """
        Canonical serialization of the conditions.

        Two rules with the same key target exactly the same entities.
        """
        return json.dumps(
            {
                "label": None if self.label is None else term_to_string(self.label),
                "explicitPriority": self.explicit_priority,
                "other": [[term_to_string(k), term_to_string(v)] for k, v in self.other],
            },
            sort_keys=True,
        )

    @property
    def condition_count(self) -> int:
        return len(self.other) + (0 if self.label is None else 1)

    @property
    def priority(self) -> "Priority":
        return Priority(self.explicit_priority, self.condition_count, self.key)


@dataclass(frozen=True)
class SplitMaterialization:
    """The part of a rule that decides what is produced."""
    templated_by: Optional[Term] = None
    substitutions: tuple[tuple[Term, Term], ...] = ()


@dataclass(frozen=True)
class SplitDefinition:
    """All the quads about a rule node, classified by predicate."""
    type: Optional[Term] = None
    conditions: SplitConditions = field(default_factory=SplitConditions)
    materialization: SplitMaterialization = field(default_factory=SplitMaterialization)


@dataclass(frozen=True)
class Template:
    """
    A template ready to be instantiated.

    `entity_is` lists the terms of the template that stand for the entity
    itself. It is None if they could not be found.
    """
    quads: tuple[Quad, ...]
    entity_is: Optional[tuple[Term, ...]] = None


# =============================================================================
# Priorities and filters
# =============================================================================

@dataclass(frozen=True)
class Priority:
    """
    Total order between the rules of a domain.

    Smaller means applied first:
    - rules with an explicit priority come before the ones without,
      higher explicit priorities first;
    - then the rules with the most conditions;
    - then the canonical key of the conditions, which is unique per rule.
    """
    explicit: Optional[int]
    condition_count: int
    key: str

    def sort_key(self) -> tuple:
        return (
            self.explicit is None,
            -(self.explicit or 0),
            -self.condition_count,
            self.key,
        )

    def __lt__(self, other: "Priority") -> bool:
        return self.sort_key() < other.sort_key()


@dataclass(frozen=True)
class RuleFilter:
    """Arguments of `Dataset.find_filter_replace` that tag the entities of a rule."""
    source: tuple[Quad, ...]
    conditions: tuple[tuple[Quad, ...], ...]
    destination: tuple[Quad, ...]
    rule_node: Term
    priority: Priority


# =============================================================================
# Rule domain
# =============================================================================

MakeFilters = Callable[[SplitConditions, Term], list[RuleFilter]]
AddInitialMarks = Callable[["Dataset"], None]
ApplyMark = Callable[["Dataset", Quad, "Dataset", "Context"], list[Term]]


@dataclass(frozen=True)
class RuleDomain:
    """
    Everything that distinguishes one kind of rule from another.

    Attributes:
        name: Human readable name, used in logs
        rule_type: Type of the rule nodes in the context
        default_template: Template used when nothing else is specified
        main_label: Predicate of the label targeted by a rule
        label_aliases: Other predicates accepted as the main label
        possible_conditions: Predicates of the other conditions
        template_bases: (base node, forbidden condition predicates) pairs
        shortcut_iri: Predicate of the `:iri prec:IRIOfX "label"` shortcut
        substitution_term: Substitution term the shortcut maps the IRI to
        property_holder_substitution_term: Predicate declaring the entity
            part of a template, None if the domain does not need it
        entity_is_heuristic: Placeholder groups used to find the entity
            part of a template that does not declare it
        subject_star_placeholders: Placeholders that can only be used as a
            subject, or as the subject of a subject
        mark: Predicate of the mark quads
    """
    name: str
    rule_type: Term
    default_template: Term
    main_label: Term
    label_aliases: tuple[Term, ...]
    possible_conditions: tuple[Term, ...]
    template_bases: tuple[tuple[Term, tuple[Term, ...]], ...]
    shortcut_iri: Term
    substitution_term: Term
    property_holder_substitution_term: Optional[Term]
    entity_is_heuristic: Optional[tuple[tuple[Term, ...], ...]]
    subject_star_placeholders: tuple[Term, ...]
    mark: Term

    make_filters: MakeFilters = field(compare=False, repr=False)
    add_initial_marks: AddInitialMarks = field(compare=False, repr=False)
    apply_mark: ApplyMark = field(compare=False, repr=False)

    def is_main_label(self, predicate: Term) -> bool:
        return predicate == self.main_label or predicate in self.label_aliases

    @property
    def base_names(self) -> tuple[Term, ...]:
        return tuple(base for base, _ in self.template_bases)
