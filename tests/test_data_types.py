import pytest

from knxbridge.core.data_types import (
    EIS_PROPERTIES,
    EisType,
    candidates_for_length,
    parse_action,
    parse_eis,
)


def test_keyword_table():
    assert parse_action("BYTE") is EisType.SWITCHING
    assert parse_action("INT") is EisType.COUNTER16
    assert parse_action("INT32") is EisType.COUNTER32
    assert parse_action("FLOAT") is EisType.FLOAT32
    assert parse_action("CHAR") is EisType.CHAR
    assert parse_action("STRING") is EisType.STRING


def test_keywords_are_case_sensitive():
    with pytest.raises(ValueError):
        parse_action("float")
    with pytest.raises(ValueError):
        parse_action("")


def test_parse_eis_accepts_several_forms():
    assert parse_eis("float") is EisType.FLOAT32
    assert parse_eis("percent") is EisType.PERCENT
    assert parse_eis("5") is EisType.FLOAT16
    with pytest.raises(ValueError):
        parse_eis("99")


def test_candidates_cover_every_type_once():
    seen = []
    for length in range(0, 18):
        for eis in candidates_for_length(length):
            if eis not in seen:
                seen.append(eis)
    assert sorted(seen) == list(EisType)


def test_value_widths():
    assert EIS_PROPERTIES[EisType.FLOAT16].value_width == 2
    assert EIS_PROPERTIES[EisType.STRING].value_width is None
    assert not EIS_PROPERTIES[EisType.ACCESS].encodable
