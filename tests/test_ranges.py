import json

import pytest

from tavi_registry.ranges import (
    CV_RISK_FACTORS,
    FILTER_PERIODS,
    RANGES,
    RANGES_FILE_ENV,
    FieldRange,
    FilterPeriod,
    ValveType,
    configuration_tables,
    default_range_table,
    get_field_range,
    load_range_table,
    parse_valve_type,
)


def test_record_field_names_resolve_to_range_keys():
    """Fields stored under a different name than their range key still find their bounds."""
    assert get_field_range("anulus_aortico") == RANGES["anulus"]
    assert get_field_range("dimensione_valvola") == RANGES["dimensioneValvola"]
    assert get_field_range("fe") == FieldRange(0, 100, "%", "FE")


def test_unknown_field_is_unconstrained():
    assert get_field_range("colesterolo") is None


@pytest.mark.parametrize(
    "label, expected",
    [
        ("Balloon Expandable", ValveType.BALLOON),
        ("Balloon-Expandable", ValveType.BALLOON),
        ("  balloon   expandable ", ValveType.BALLOON),
        ("Self-Expandable", ValveType.SELF),
        ("self_expandable", ValveType.SELF),
    ],
)
def test_valve_type_from_label(label, expected):
    assert ValveType.from_label(label) is expected


def test_valve_type_invalid_label_raises():
    """Unknown labels must trigger a ValueError."""
    with pytest.raises(ValueError):
        ValveType.from_label("Mechanical")


def test_parse_valve_type_returns_none_for_unknown_values():
    assert parse_valve_type("balloon") is ValveType.BALLOON
    assert parse_valve_type("Mechanical") is None
    assert parse_valve_type("") is None
    assert parse_valve_type(None) is None
    assert parse_valve_type(float("nan")) is None


def test_configuration_tables():
    tables = configuration_tables()
    assert tables["cv_risk_factors"] == CV_RISK_FACTORS
    assert tables["ranges"]["gmax"] == {"min": 0, "max": 200, "unit": "mmHg", "label": RANGES["gmax"].label}
    assert "Portico" in tables["valve_models"]["Self Expandable"]
    assert list(tables["filter_periods"]) == FILTER_PERIODS


def test_filter_period_sentinels():
    assert FILTER_PERIODS == ["all", "1m", "3m", "6m", "1y"]
    assert FilterPeriod.from_sentinel("6m").months == 6
    assert FilterPeriod.from_sentinel("1y").months == 12
    with pytest.raises(ValueError):
        FilterPeriod.from_sentinel("2w")


def test_load_range_table_overrides_and_extends(tmp_path):
    path = tmp_path / "ranges.json"
    path.write_text(json.dumps({
        "fe": {"min": 10, "max": 80, "unit": "%"},
        "creatinina": {"min": 0.1, "max": 15, "unit": "mg/dL", "label": "Creatinina"},
    }), encoding="utf-8")

    table = load_range_table(path)

    assert table["fe"] == FieldRange(10.0, 80.0, "%", "fe")
    assert table["creatinina"].label == "Creatinina"
    # untouched defaults survive
    assert table["peso"] == RANGES["peso"]
    # the module table is not mutated
    assert RANGES["fe"].min == 0


@pytest.mark.parametrize(
    "payload",
    [
        "[1, 2, 3]",
        '{"fe": {"min": 5}}',
        '{"fe": {"min": "low", "max": 10}}',
        '{"fe": {"min": 50, "max": 10}}',
        '{"fe": 3}',
        "not json",
    ],
)
def test_load_range_table_rejects_malformed_files(tmp_path, payload):
    path = tmp_path / "ranges.json"
    path.write_text(payload, encoding="utf-8")
    with pytest.raises(ValueError):
        load_range_table(path)


def test_default_range_table_honors_environment(tmp_path, monkeypatch):
    path = tmp_path / "ranges.json"
    path.write_text('{"peso": {"min": 40, "max": 180, "unit": "kg"}}', encoding="utf-8")

    monkeypatch.setenv(RANGES_FILE_ENV, str(path))
    assert default_range_table()["peso"].max == 180

    monkeypatch.delenv(RANGES_FILE_ENV)
    assert default_range_table() == RANGES
