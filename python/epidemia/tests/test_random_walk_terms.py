"""Tests for building and detecting random walk terms."""

import pytest

from epidemia import Formula, InvalidFormulaError, RandomWalkTerm, rw, terms_rw


def test_rw_defaults():
    term = rw()
    assert term.time_column is None
    assert term.group_column is None
    assert term.label == "rw()"


def test_rw_records_column_names_without_data():
    assert rw(gr="country").label == "rw(gr=country)"
    assert rw("week", "country").label == "rw(time=week, gr=country)"
    assert rw(time="week").group_column is None
    assert rw(gr="my country").label == "rw(gr='my country')"


@pytest.mark.parametrize(
    "term", [rw(), rw(gr="country"), rw("week", "country"), rw(gr="my country")]
)
def test_from_label_rebuilds_builder_terms(term):
    assert RandomWalkTerm.from_label(term.label) == term


def test_from_label_reads_positional_and_missing_arguments():
    term = RandomWalkTerm.from_label("rw(week, country)")
    assert (term.time_column, term.group_column) == ("week", "country")
    assert term.label == "rw(week, country)"

    term = RandomWalkTerm.from_label("rw(NA, country)")
    assert (term.time_column, term.group_column) == (None, "country")

    term = RandomWalkTerm.from_label("rw(gr=None)")
    assert (term.time_column, term.group_column) == (None, None)

    term = RandomWalkTerm.from_label("rw('week')")
    assert term.time_column == "week"


@pytest.mark.parametrize(
    "label, message",
    [
        ("lockdown", "not a call to rw"),
        ("rw(week, country, region)", "at most 2 arguments"),
        ("rw(delta=2)", "unknown argument 'delta'"),
        ("rw(week, time=day)", "'time' more than once"),
        ("rw(gr=1)", "must be a column name"),
        ("rw(gr=", "Could not parse"),
    ],
)
def test_from_label_rejects_malformed_terms(label, message):
    with pytest.raises(InvalidFormulaError, match=message):
        RandomWalkTerm.from_label(label)


def test_terms_rw_finds_random_walks_in_order():
    formula = Formula("R(country, date) ~ 1 + rw(gr=country) + lockdown + rw()")
    assert terms_rw(formula) == ["rw(gr=country)", "rw()"]


def test_terms_rw_ignores_interactions_and_random_effects():
    formula = Formula(
        "R(country, date) ~ rw(gr=country):lockdown + lockdown:rw() + (rw() | country) + rw(time=week)"
    )
    labels = terms_rw(formula)

    assert labels == ["rw(time=week)"]
    assert all("|" not in label and ":" not in label for label in labels)


def test_terms_rw_without_random_walks():
    assert terms_rw(Formula("R(country, date) ~ 1 + lockdown")) == []


def test_terms_rw_matches_builder_labels():
    formula = Formula("R(country, date) ~ rw( gr = country )")
    assert rw(gr="country").label in terms_rw(formula)


def test_terms_rw_requires_formula():
    with pytest.raises(InvalidFormulaError, match="must be a Formula object"):
        terms_rw("R(country, date) ~ rw()")


@pytest.mark.parametrize("column", ["NA", "None", "class", "lambda"])
def test_reserved_column_names_round_trip(column):
    term = rw(gr=column)

    assert term.label == f"rw(gr='{column}')"
    assert RandomWalkTerm.from_label(term.label) == term
    assert RandomWalkTerm.from_label(term.label).group_column == column
