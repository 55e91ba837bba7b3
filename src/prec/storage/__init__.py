"""
Quad storage for PREC.

- `TermDict`: interning of terms into kind-tagged integer ids
- `Dataset`: indexed quad set with pattern matching and replacement
"""

from prec.storage.term_dict import (
    TermDict,
    TermId,
    TermKind,
    get_term_kind,
    is_quoted_triple,
)
from prec.storage.dataset import (
    Binding,
    Dataset,
    bind_variables,
    bindings_to_frame,
)

__all__ = [
    "TermDict",
    "TermId",
    "TermKind",
    "get_term_kind",
    "is_quoted_triple",
    "Binding",
    "Dataset",
    "bind_variables",
    "bindings_to_frame",
]
