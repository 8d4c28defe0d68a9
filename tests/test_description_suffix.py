import pytest

from utils.description_suffix import (
    attach_suffix,
    current_suffix,
    parse_suffix,
    reattach_suffix,
    strip_suffix,
)


def test_parse_installment_suffix():
    suffix = parse_suffix("TV (2/10)")
    assert suffix.number == 2
    assert suffix.total == 10
    assert suffix.text == " (2/10)"
    assert not suffix.is_legacy


def test_parse_legacy_suffix():
    suffix = parse_suffix("Geladeira (Parcela 4)")
    assert suffix.number == 4
    assert suffix.total is None
    assert suffix.is_legacy
    assert suffix.render() == " (Parcela 4)"


@pytest.mark.parametrize("description", ["TV", "", "TV (2/10) extra", "(1/2)", "TV (Parcela x)"])
def test_no_suffix(description):
    assert parse_suffix(description) is None
    assert current_suffix(description) == ""


def test_suffix_must_be_at_the_end():
    assert strip_suffix("Plano (1/2) anual") == "Plano (1/2) anual"


def test_strip_suffix():
    assert strip_suffix("TV (1/3)") == "TV"
    assert strip_suffix("Geladeira (Parcela 2)") == "Geladeira"
    assert strip_suffix("  Aluguel  ") == "Aluguel"


def test_only_trailing_suffix_is_stripped():
    assert strip_suffix("Curso (Parcela 1) (2/3)") == "Curso (Parcela 1)"


@pytest.mark.parametrize("description", ["TV (1/3)", "Geladeira (Parcela 12)", "Aluguel"])
def test_strip_then_reattach_is_identity(description):
    assert attach_suffix(strip_suffix(description), current_suffix(description)) == description


def test_reattach_keeps_existing_suffix():
    assert reattach_suffix("Televisão", "TV (2/3)") == "Televisão (2/3)"
    assert reattach_suffix("Televisão", "TV (Parcela 2)") == "Televisão (Parcela 2)"
    assert reattach_suffix("Televisão", "TV") == "Televisão"
