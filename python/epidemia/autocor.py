"""Random walk terms for the time-varying reproduction number.

A call to :func:`rw` inside the right hand side of a formula such as
``R(country, date) ~ 1 + rw(gr=country) + lockdown`` adds random walks to the
parameterisation of the reproduction number. The call is never evaluated
against data when the formula is written; it only records which columns hold
the walk's time periods and groups. Those names are resolved by
:func:`parse_term` when the data for a fit is available, producing the period
counts and the sparse design matrix the sampler needs.
"""

from __future__ import annotations

import ast
import logging
from dataclasses import dataclass, field
from keyword import iskeyword
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from scipy import sparse

from .formula import (
    RANDOM_WALK_FUNCTION,
    Formula,
    InvalidFormulaError,
    ModelSpecificationError,
    RowCountMismatchError,
    TermKind,
    UnknownColumnError,
)

__all__ = [
    "DEFAULT_DATE_COLUMN",
    "DEFAULT_GROUP_LABEL",
    "RandomWalkTerm",
    "ParsedTerm",
    "AggregatedTerms",
    "rw",
    "terms_rw",
    "parse_term",
    "parse_all_terms",
    "random_walk_design",
]

logger = logging.getLogger(__name__)

DEFAULT_DATE_COLUMN = "date"
DEFAULT_GROUP_LABEL = "all"

_ARGUMENTS = ("time", "gr")
_MISSING_NAMES = {"NA", "None"}


@dataclass(frozen=True)
class RandomWalkTerm:
    """Unevaluated description of one ``rw()`` term.

    Attributes
    ----------
    time_column:
        Column defining the walk's time periods, or ``None`` for the data's
        date column.
    group_column:
        Column defining the groups that get a separate walk each, or ``None``
        for a single walk shared by all rows.
    label:
        Canonical call text, e.g. ``rw(gr=country)``.
    """

    time_column: Optional[str] = None
    group_column: Optional[str] = None
    label: str = ""

    def __post_init__(self) -> None:
        if not self.label:
            object.__setattr__(self, "label", _deparse(self.time_column, self.group_column))

    @classmethod
    def from_label(cls, label: str) -> "RandomWalkTerm":
        """Rebuild a term from the label a :class:`~epidemia.Formula` produced."""
        try:
            node = ast.parse(label.strip(), mode="eval").body
        except SyntaxError as exc:
            raise InvalidFormulaError(f"Could not parse random walk term '{label}'") from exc
        if not (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id == RANDOM_WALK_FUNCTION
        ):
            raise InvalidFormulaError(f"'{label}' is not a call to {RANDOM_WALK_FUNCTION}()")
        if len(node.args) > len(_ARGUMENTS):
            raise InvalidFormulaError(
                f"Random walk term '{label}' takes at most {len(_ARGUMENTS)} arguments"
            )

        values: Dict[str, ast.expr] = dict(zip(_ARGUMENTS, node.args))
        for keyword in node.keywords:
            if keyword.arg not in _ARGUMENTS:
                raise InvalidFormulaError(
                    f"Random walk term '{label}' has unknown argument '{keyword.arg}'"
                )
            if keyword.arg in values:
                raise InvalidFormulaError(
                    f"Random walk term '{label}' sets '{keyword.arg}' more than once"
                )
            values[keyword.arg] = keyword.value

        columns = {name: _column_reference(label, name, value) for name, value in values.items()}
        return cls(
            time_column=columns.get("time"),
            group_column=columns.get("gr"),
            label=ast.unparse(node),
        )


@dataclass(frozen=True)
class ParsedTerm:
    """A random walk term resolved against one dataset.

    ``design_matrix`` has a row per observation and a column per
    (period, group) coefficient, with a single 1 in each row.
    """

    label: str
    num_processes: int
    periods_per_process: np.ndarray
    design_matrix: sparse.csr_matrix

    @property
    def num_columns(self) -> int:
        return self.design_matrix.shape[1]


@dataclass(frozen=True)
class AggregatedTerms:
    """All random walk terms of a formula, concatenated in formula order."""

    num_processes: np.ndarray
    periods_per_process: np.ndarray
    design_matrix: sparse.csr_matrix
    terms: Tuple[ParsedTerm, ...] = field(default_factory=tuple)

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(term.label for term in self.terms)

    @property
    def num_columns(self) -> int:
        return self.design_matrix.shape[1]

    def to_stan_data(self) -> Dict[str, Any]:
        """Export the walks in the layout of the sampler's data block.

        The design matrix is given in compressed sparse row form with 1-based
        indices: ``ac_w`` holds the values, ``ac_v`` the column index of each
        value and ``ac_u`` the offset of each row's first value.
        """
        Z = self.design_matrix.tocsr()
        return {
            "ac_nterms": int(len(self.num_processes)),
            "ac_nproc": int(self.num_processes.sum()),
            "ac_ntime": self.periods_per_process.astype(np.int64),
            "ac_q": int(Z.shape[1]),
            "ac_nnz": int(Z.nnz),
            "ac_w": Z.data.astype(float),
            "ac_v": Z.indices.astype(np.int64) + 1,
            "ac_u": Z.indptr.astype(np.int64) + 1,
        }


def rw(time: Optional[str] = None, gr: Optional[str] = None) -> RandomWalkTerm:
    """Add random walks to the reproduction number.

    Nothing is evaluated: the arguments are column names which are looked up
    only once data is supplied to :func:`parse_term`.

    Parameters
    ----------
    time:
        Optional column defining the random walk time periods for each date
        and group. Defaults to the date column of the data.
    gr:
        Optional column defining the grouping. A separate walk is defined for
        each group. Defaults to a common walk for all groups.

    Examples
    --------
    >>> rw(gr="country").label
    'rw(gr=country)'
    """
    return RandomWalkTerm(time_column=time, group_column=gr)


def terms_rw(formula: Formula) -> List[str]:
    """Return the labels of the random walk terms in ``formula``.

    Interactions with random walks and random walks inside a random effect
    term (``(rw() | g)``) are not included.
    """
    if not isinstance(formula, Formula):
        raise InvalidFormulaError(
            f"'formula' must be a Formula object, got {type(formula).__name__}"
        )
    return [
        term.label
        for term in formula.terms
        if term.kind is TermKind.RANDOM_WALK and "|" not in term.label
    ]


def parse_term(
    term: Union[RandomWalkTerm, str],
    data: pd.DataFrame,
    date_column: str = DEFAULT_DATE_COLUMN,
) -> ParsedTerm:
    """Resolve a random walk term against ``data``.

    Parameters
    ----------
    term:
        A :class:`RandomWalkTerm` or a label such as ``"rw(gr=country)"``.
    data:
        The model data, already checked and ordered by group and date.
    date_column:
        Column used for the time periods when the term does not name one.

    Returns
    -------
    ParsedTerm
        Number of processes (groups), the number of distinct periods in each
        group (in group level order) and the sparse design matrix, whose
        columns follow the order in which each (period, group) pair first
        appears in ``data``.
    """
    if isinstance(term, str):
        term = RandomWalkTerm.from_label(term)

    time_column = date_column if term.time_column is None else term.time_column
    time = _lookup(data, time_column, term, "time")
    if time.isna().any():
        raise ModelSpecificationError(
            f"Column '{time_column}' used as 'time' in random walk term '{term.label}' "
            "contains missing values"
        )
    if term.group_column is None:
        group = pd.Categorical(np.repeat(DEFAULT_GROUP_LABEL, len(data)))
    else:
        group = pd.Categorical(_lookup(data, term.group_column, term, "gr"))
        group = group.remove_unused_categories()
        if (group.codes == -1).any():
            raise ModelSpecificationError(
                f"Column '{term.group_column}' used as 'gr' in random walk term "
                f"'{term.label}' contains missing values"
            )

    frame = pd.DataFrame({"time": time.to_numpy(), "group": group})
    ntime = frame.groupby("group", observed=True, sort=True)["time"].nunique()
    periods = ntime.to_numpy(dtype=np.int64)

    time_codes, _ = pd.factorize(frame["time"], sort=False)
    pairs = time_codes.astype(np.int64) * max(len(group.categories), 1) + group.codes
    codes, uniques = pd.factorize(pairs, sort=False)
    n = len(frame)
    Z = sparse.csr_matrix(
        (np.ones(n), (np.arange(n), codes)),
        shape=(n, len(uniques)),
    )

    logger.debug(
        "Parsed %s: %d process(es), %d column(s)", term.label, len(periods), Z.shape[1]
    )
    return ParsedTerm(
        label=term.label,
        num_processes=len(periods),
        periods_per_process=periods,
        design_matrix=Z,
    )


def parse_all_terms(
    labels: Iterable[Union[RandomWalkTerm, str]],
    data: pd.DataFrame,
    date_column: str = DEFAULT_DATE_COLUMN,
) -> AggregatedTerms:
    """Parse a sequence of random walk terms and concatenate the results.

    Process counts and period counts are concatenated in the order of
    ``labels``; design matrices are joined side by side.
    """
    parsed = tuple(parse_term(label, data, date_column=date_column) for label in labels)

    n = len(data)
    for term in parsed:
        if term.design_matrix.shape[0] != n:
            raise RowCountMismatchError(
                f"Design matrix for '{term.label}' has {term.design_matrix.shape[0]} "
                f"rows but the data has {n}"
            )

    if parsed:
        Z = sparse.hstack([term.design_matrix for term in parsed], format="csr")
        ntime = np.concatenate([term.periods_per_process for term in parsed])
    else:
        Z = sparse.csr_matrix((n, 0))
        ntime = np.zeros(0, dtype=np.int64)
    nproc = np.array([term.num_processes for term in parsed], dtype=np.int64)

    logger.debug("Parsed %d random walk term(s) into %d column(s)", len(parsed), Z.shape[1])
    return AggregatedTerms(
        num_processes=nproc,
        periods_per_process=ntime,
        design_matrix=Z,
        terms=parsed,
    )


def random_walk_design(formula: Formula, data: pd.DataFrame) -> AggregatedTerms:
    """Parse every random walk term of ``formula`` against ``data``.

    Terms without an explicit ``time`` use the date column named on the
    formula's left hand side.
    """
    return parse_all_terms(terms_rw(formula), data, date_column=formula.time_column)


def _deparse(time: Optional[str], gr: Optional[str]) -> str:
    keywords = [
        ast.keyword(arg=name, value=_column_node(value))
        for name, value in zip(_ARGUMENTS, (time, gr))
        if value is not None
    ]
    call = ast.Call(
        func=ast.Name(id=RANDOM_WALK_FUNCTION, ctx=ast.Load()),
        args=[],
        keywords=keywords,
    )
    return ast.unparse(call)


def _column_node(name: str) -> ast.expr:
    if name.isidentifier() and not iskeyword(name) and name not in _MISSING_NAMES:
        return ast.Name(id=name, ctx=ast.Load())
    return ast.Constant(value=name)


def _column_reference(label: str, argument: str, node: ast.expr) -> Optional[str]:
    if isinstance(node, ast.Name):
        return None if node.id in _MISSING_NAMES else node.id
    if isinstance(node, ast.Constant) and (node.value is None or isinstance(node.value, str)):
        return node.value
    raise InvalidFormulaError(
        f"Argument '{argument}' of random walk term '{label}' must be a column name, "
        f"got '{ast.unparse(node)}'"
    )


def _lookup(data: pd.DataFrame, column: str, term: RandomWalkTerm, argument: str) -> pd.Series:
    if column not in data.columns:
        raise UnknownColumnError(
            f"Column '{column}' used as '{argument}' in random walk term "
            f"'{term.label}' not found in data"
        )
    return data[column]
