"""R-style model formulas for the epidemia front-end.

A :class:`Formula` is parsed from text such as::

    R(country, date) ~ 1 + rw(gr=country) + lockdown

The left hand side names the modelled quantity together with the group and
date columns of the data. The right hand side is split into additive terms,
each reduced to a canonical label and tagged with a :class:`TermKind` so that
downstream parsers (random walks, random effects) can pick out the terms they
own without pattern-matching raw text.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

__all__ = [
    "Formula",
    "Term",
    "TermKind",
    "ModelSpecificationError",
    "InvalidFormulaError",
    "UnknownColumnError",
    "RowCountMismatchError",
]

RANDOM_WALK_FUNCTION = "rw"


class ModelSpecificationError(ValueError):
    """Raised when formulas or data are inconsistent."""


class InvalidFormulaError(ModelSpecificationError):
    """Raised when a formula (or one of its terms) cannot be interpreted."""


class UnknownColumnError(ModelSpecificationError):
    """Raised when a term refers to a column that is absent from the data."""


class RowCountMismatchError(ModelSpecificationError):
    """Raised when design matrices that must be joined disagree on row count."""


class TermKind(Enum):
    FIXED = "fixed"
    RANDOM_WALK = "random_walk"
    RANDOM_EFFECT = "random_effect"
    INTERACTION = "interaction"


@dataclass(frozen=True)
class Term:
    """One additive component of a formula's right hand side."""

    label: str
    kind: TermKind


class Formula:
    """Parse a two-sided formula of the form ``name(group, time) ~ terms``.

    Parameters
    ----------
    text:
        The formula string. The left hand side must be a call with two bare
        column names, the first giving the grouping column and the second the
        date column of the data.

    Attributes
    ----------
    response:
        Name of the left hand side call (e.g. ``R`` or ``deaths``).
    group_column, time_column:
        Column names taken from the left hand side arguments.
    has_intercept:
        ``False`` when the right hand side contains ``0`` or ``- 1``.
    terms:
        Ordered, de-duplicated right hand side terms (intercept excluded).
    """

    def __init__(self, text: str) -> None:
        if not isinstance(text, str):
            raise InvalidFormulaError(
                f"'formula' must be a string, got {type(text).__name__}"
            )
        if "~" not in text:
            raise InvalidFormulaError(f"Formula '{text}' has no '~' separator")
        lhs, rhs = text.split("~", 1)
        if not lhs.strip():
            raise InvalidFormulaError(
                f"Formula '{text}' has an empty left hand side; expected name(group, time)"
            )
        if not rhs.strip():
            raise InvalidFormulaError(f"Formula '{text}' has an empty right hand side")

        self.response, self.group_column, self.time_column = self._parse_lhs(lhs.strip())
        self.has_intercept, self.terms = self._parse_rhs(rhs)

    def __repr__(self) -> str:
        return f"Formula({str(self)!r})"

    def __str__(self) -> str:
        pieces = ["1" if self.has_intercept else "0"]
        pieces.extend(term.label for term in self.terms)
        lhs = f"{self.response}({self.group_column}, {self.time_column})"
        return f"{lhs} ~ {' + '.join(pieces)}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Formula):
            return NotImplemented
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(str(self))

    @property
    def term_labels(self) -> Tuple[str, ...]:
        return tuple(term.label for term in self.terms)

    @property
    def fixed_terms(self) -> Tuple[Term, ...]:
        return tuple(term for term in self.terms if term.kind is TermKind.FIXED)

    @property
    def random_effect_terms(self) -> Tuple[Term, ...]:
        return tuple(term for term in self.terms if term.kind is TermKind.RANDOM_EFFECT)

    # ------------------------------------------------------------------
    # Parsing helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _parse_lhs(lhs: str) -> Tuple[str, str, str]:
        message = (
            f"The left hand side of the formula ('{lhs}') must be a call of "
            "the form name(group, time)"
        )
        try:
            node = ast.parse(lhs, mode="eval").body
        except SyntaxError as exc:
            raise InvalidFormulaError(message) from exc
        if not (isinstance(node, ast.Call) and isinstance(node.func, ast.Name)):
            raise InvalidFormulaError(message)
        if node.keywords or len(node.args) != 2:
            raise InvalidFormulaError(message)
        if not all(isinstance(arg, ast.Name) for arg in node.args):
            raise InvalidFormulaError(message)
        group, time = (arg.id for arg in node.args)
        return node.func.id, group, time

    @classmethod
    def _parse_rhs(cls, rhs: str) -> Tuple[bool, Tuple[Term, ...]]:
        has_intercept = True
        kept: List[str] = []
        removed = set()
        for sign, text in cls._split_terms(rhs):
            if text in ("0", "1"):
                has_intercept = (text == "1") == (sign > 0)
                continue
            label = _canonical_label(text)
            if sign < 0:
                removed.add(label)
            elif label not in kept:
                kept.append(label)
        terms = tuple(
            Term(label, _classify(label)) for label in kept if label not in removed
        )
        return has_intercept, terms

    @staticmethod
    def _split_terms(rhs: str) -> List[Tuple[int, str]]:
        terms = []
        current: List[str] = []
        sign = 1
        depth = 0
        for char in rhs:
            if char in "([":
                depth += 1
            elif char in ")]":
                depth -= 1
                if depth < 0:
                    raise InvalidFormulaError(f"Unbalanced parentheses in '{rhs.strip()}'")

            if char in "+-" and depth == 0:
                text = "".join(current).strip()
                if text:
                    terms.append((sign, text))
                sign = 1 if char == "+" else -1
                current = []
            else:
                current.append(char)
        if depth != 0:
            raise InvalidFormulaError(f"Unbalanced parentheses in '{rhs.strip()}'")
        text = "".join(current).strip()
        if text:
            terms.append((sign, text))
        return terms


def _split_top_level(text: str, separator: str) -> List[str]:
    parts = []
    current: List[str] = []
    depth = 0
    for char in text:
        if char in "([":
            depth += 1
        elif char in ")]":
            depth -= 1
        if char == separator and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return parts


def _canonical_expression(text: str) -> str:
    stripped = text.strip()
    try:
        node = ast.parse(stripped, mode="eval")
    except SyntaxError as exc:
        raise InvalidFormulaError(f"Could not parse formula term '{stripped}'") from exc
    return ast.unparse(node.body)


def _canonical_label(text: str) -> str:
    factors = _split_top_level(text, ":")
    return ":".join(_canonical_expression(factor) for factor in factors)


def _classify(label: str) -> TermKind:
    # Random walks nested inside a random effect belong to the random effect.
    if "|" in label:
        return TermKind.RANDOM_EFFECT
    if len(_split_top_level(label, ":")) > 1:
        return TermKind.INTERACTION
    node = ast.parse(label, mode="eval").body
    if (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id == RANDOM_WALK_FUNCTION
    ):
        return TermKind.RANDOM_WALK
    return TermKind.FIXED
