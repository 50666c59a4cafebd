"""Tests for the epidemia.Formula front-end."""

import pytest

from epidemia import Formula, InvalidFormulaError, TermKind


def test_formula_reads_left_hand_side():
    formula = Formula("R(country, date) ~ 1 + rw(gr=country) + lockdown")

    assert formula.response == "R"
    assert formula.group_column == "country"
    assert formula.time_column == "date"
    assert formula.has_intercept
    assert formula.term_labels == ("rw(gr=country)", "lockdown")


def test_term_labels_are_canonical():
    formula = Formula("R(country, date) ~ rw( gr = country ) + ( 1 | country )")
    assert formula.term_labels == ("rw(gr=country)", "1 | country")


def test_terms_are_classified_structurally():
    formula = Formula(
        "R(country, date) ~ rw() + lockdown + log(cases) + rw(gr=country):lockdown + (rw() | country)"
    )
    kinds = {term.label: term.kind for term in formula.terms}

    assert kinds == {
        "rw()": TermKind.RANDOM_WALK,
        "lockdown": TermKind.FIXED,
        "log(cases)": TermKind.FIXED,
        "rw(gr=country):lockdown": TermKind.INTERACTION,
        "rw() | country": TermKind.RANDOM_EFFECT,
    }
    assert [t.label for t in formula.fixed_terms] == ["lockdown", "log(cases)"]
    assert [t.label for t in formula.random_effect_terms] == ["rw() | country"]


def test_calls_to_other_functions_named_like_rw_are_fixed():
    formula = Formula("R(country, date) ~ rws(x) + np.rw(x)")
    assert all(term.kind is TermKind.FIXED for term in formula.terms)


def test_intercept_handling():
    assert Formula("R(country, date) ~ lockdown").has_intercept
    assert not Formula("R(country, date) ~ 0 + lockdown").has_intercept
    assert not Formula("R(country, date) ~ lockdown - 1").has_intercept
    assert Formula("R(country, date) ~ 1").term_labels == ()


def test_duplicate_and_removed_terms():
    formula = Formula("R(country, date) ~ lockdown + rw() + lockdown + schools - rw()")
    assert formula.term_labels == ("lockdown", "schools")


def test_minus_inside_call_is_not_a_removal():
    formula = Formula("R(country, date) ~ rw(gr='north-east')")
    assert formula.term_labels == ("rw(gr='north-east')",)


def test_formula_string_round_trip():
    formula = Formula("R(country, date) ~ rw( gr = country ) + lockdown")

    assert str(formula) == "R(country, date) ~ 1 + rw(gr=country) + lockdown"
    assert Formula(str(formula)) == formula
    assert "rw(gr=country)" in repr(formula)


def test_formula_must_be_a_string():
    with pytest.raises(InvalidFormulaError, match="must be a string"):
        Formula(42)


@pytest.mark.parametrize("text", ["dummy ~ 1", "dummy(country) ~ 1", "R(country, 1) ~ 1"])
def test_left_hand_side_must_name_group_and_time(text):
    with pytest.raises(InvalidFormulaError, match="left hand side"):
        Formula(text)


def test_formula_requires_both_sides():
    with pytest.raises(InvalidFormulaError, match="'~'"):
        Formula("R(country, date)")
    with pytest.raises(InvalidFormulaError, match="empty right hand side"):
        Formula("R(country, date) ~   ")
    with pytest.raises(InvalidFormulaError, match="empty left hand side"):
        Formula(" ~ rw()")


def test_unbalanced_and_unparseable_terms():
    with pytest.raises(InvalidFormulaError, match="Unbalanced"):
        Formula("R(country, date) ~ rw(gr=country")
    with pytest.raises(InvalidFormulaError, match="Could not parse formula term 'lock down'"):
        Formula("R(country, date) ~ lock down")
