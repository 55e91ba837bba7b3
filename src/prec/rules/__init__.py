"""
The PREC rule engine.

- `Context`: rules and templates of a context, merged with the built-in ones
- `apply_context`: transformation of a PREC-0 graph with a context
- `EDGE_DOMAIN`, `PROPERTY_DOMAIN`, `NODE_LABEL_DOMAIN`: the rule domains
- `PrscContext`, `apply_prsc`, `well_behaved_check`: PRSC contexts, one rule
  per property graph type
"""

from prec.rules.domain import Priority, RuleDomain, RuleFilter, Template
from prec.rules.edges import EDGE_DOMAIN
from prec.rules.properties import PROPERTY_DOMAIN
from prec.rules.node_labels import NODE_LABEL_DOMAIN
from prec.rules.context import Context
from prec.rules.prsc import PrscContext, PrscRule, apply_prsc, well_behaved_check
from prec.rules.apply import (
    ContextType, apply_context, apply_context_to_turtle, get_context_type,
)

__all__ = [
    "Priority",
    "RuleDomain",
    "RuleFilter",
    "Template",
    "EDGE_DOMAIN",
    "PROPERTY_DOMAIN",
    "NODE_LABEL_DOMAIN",
    "Context",
    "PrscContext",
    "PrscRule",
    "apply_prsc",
    "well_behaved_check",
    "ContextType",
    "apply_context",
    "apply_context_to_turtle",
    "get_context_type",
]
