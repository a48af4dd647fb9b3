"""Tests for language display names."""

import pytest

from aisubs.core.languages import (
    LANGUAGE_NAMES,
    is_known_language,
    language_name,
    normalize_code,
    validate_language,
)


def test_known_names():
    assert language_name("el") == "Greek"
    assert language_name("ar") == "Arabic"


def test_unknown_code_falls_back_to_code():
    assert language_name("xx") == "XX"


def test_normalize_code():
    assert normalize_code(" PT_BR ") == "pt-br"
    assert language_name("pt_BR") == "Portuguese (Brazil)"


def test_is_known_language():
    assert is_known_language("EL")
    assert not is_known_language("zz")


def test_validate_accepts_unknown_well_formed_code():
    assert validate_language("haw") == "haw"


@pytest.mark.parametrize("code", ["", "e", "el/../x", "toolongcode", "e1"])
def test_validate_rejects_malformed(code):
    with pytest.raises(ValueError):
        validate_language(code)


def test_table_codes_are_normalized():
    assert all(code == normalize_code(code) for code in LANGUAGE_NAMES)
