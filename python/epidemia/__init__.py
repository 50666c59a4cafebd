"""Formula front-end for Bayesian epidemiological models."""

from __future__ import annotations

from .formula import (
    Formula,
    Term,
    TermKind,
    ModelSpecificationError,
    InvalidFormulaError,
    UnknownColumnError,
    RowCountMismatchError,
)

from .autocor import (
    DEFAULT_DATE_COLUMN,
    RandomWalkTerm,
    ParsedTerm,
    AggregatedTerms,
    rw,
    terms_rw,
    parse_term,
    parse_all_terms,
    random_walk_design,
)

__all__ = [
    "__version__",
    "Formula",
    "Term",
    "TermKind",
    "ModelSpecificationError",
    "InvalidFormulaError",
    "UnknownColumnError",
    "RowCountMismatchError",
    "DEFAULT_DATE_COLUMN",
    "RandomWalkTerm",
    "ParsedTerm",
    "AggregatedTerms",
    "rw",
    "terms_rw",
    "parse_term",
    "parse_all_terms",
    "random_walk_design",
]

__version__ = "0.0.0.dev0"
