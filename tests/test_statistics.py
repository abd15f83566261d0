import pytest

from tavi_registry.procedure import ProcedureRecord
from tavi_registry.statistics import (
    Statistics,
    calculate_average,
    calculate_boolean_percentage,
    calculate_field_average,
    compute_statistics,
    count_occurrences,
    get_top_n,
    group_by,
    prepare_bar_chart_data,
    prepare_pie_chart_data,
    round_to,
)


def models(*names):
    return [ProcedureRecord(modello_valvola=name) for name in names]


def test_average_skips_missing_values():
    """Absent values are excluded from both the sum and the count."""
    records = [ProcedureRecord(fe=50), ProcedureRecord(fe=None), ProcedureRecord(fe=70)]
    assert calculate_field_average(records, "fe") == 60


def test_average_skips_nan_and_malformed_strings():
    assert calculate_average([10, float("nan"), "abc", "20", None, True]) == 15
    assert calculate_average([]) is None
    assert calculate_average([None, "n/a"]) is None


def test_average_of_zeros_is_zero_not_absent():
    assert calculate_average([0, 0]) == 0


def test_boolean_percentage():
    records = [ProcedureRecord(pre_dilatazione=True), ProcedureRecord(pre_dilatazione=False),
               ProcedureRecord(pre_dilatazione=True), ProcedureRecord(pre_dilatazione=False)]
    assert calculate_boolean_percentage(records, "pre_dilatazione") == 50
    assert calculate_boolean_percentage([], "pre_dilatazione") == 0


def test_top_n_ranks_by_count():
    assert get_top_n(models("A", "A", "B"), "modello_valvola", 1) == [("A", 2)]
    assert get_top_n(models("B", "A", "A", "C", "C", "C"), "modello_valvola") == [("C", 3), ("A", 2), ("B", 1)]


def test_top_n_ties_keep_encounter_order():
    assert get_top_n(models("A", "B"), "modello_valvola", 1) == [("A", 1)]
    assert get_top_n(models("B", "A"), "modello_valvola", 1) == [("B", 1)]
    assert get_top_n(models("C", "B", "A", "B", "C"), "modello_valvola", 3) == [("C", 2), ("B", 2), ("A", 1)]


def test_top_n_skips_blank_models():
    assert get_top_n(models(None, "", "A"), "modello_valvola") == [("A", 1)]
    assert get_top_n([], "modello_valvola") == []
    assert get_top_n(models("A"), "modello_valvola", 0) == []


def test_count_occurrences_and_charts():
    records = models("B", "A", "B")
    assert count_occurrences(records, "modello_valvola") == {"B": 2, "A": 1}
    assert prepare_pie_chart_data(records, "modello_valvola") == [
        {"name": "B", "value": 2},
        {"name": "A", "value": 1},
    ]
    assert prepare_bar_chart_data(records, "modello_valvola", 1) == {"labels": ["B"], "values": [2]}


def test_group_by_preserves_order(registry):
    groups = group_by(registry, "tipo_valvola")
    assert list(groups) == ["Balloon Expandable", "Self Expandable"]
    assert [r.id for r in groups["Self Expandable"]] == [2, 4]


def test_round_to():
    assert round_to(63.756, 1) == 63.8
    assert round_to(None) is None
    assert round_to(float("nan")) is None


def test_compute_statistics(registry):
    stats = compute_statistics(registry)

    assert stats.total_procedures == 4
    assert stats.average_duration_minutes == pytest.approx(63.75)
    assert stats.pre_dilatazione_percentage == 50
    assert stats.post_dilatazione_percentage == 25
    assert stats.balloon_expandable_count == 2
    assert stats.self_expandable_count == 2
    assert stats.average_fe == pytest.approx(60)
    assert stats.average_vmax == pytest.approx(4.2)
    assert stats.top_valve_models == (
        ("Edwards SAPIEN 3", 2),
        ("Medtronic CoreValve Evolut PRO", 1),
        ("Portico", 1),
    )


def test_compute_statistics_empty_collection():
    """No records: percentages are zero, averages signal 'no data'."""
    stats = compute_statistics([])
    assert stats.total_procedures == 0
    assert stats.pre_dilatazione_percentage == 0
    assert stats.post_dilatazione_percentage == 0
    assert stats.average_duration_minutes is None
    assert not stats.has_duration_data
    assert stats.average_fe is None
    assert stats.top_valve_models == ()


def test_duration_average_only_counts_records_with_both_times(make_procedure):
    records = [
        make_procedure(ora_inizio="09:00", ora_fine="09:30"),
        make_procedure(ora_inizio="09:00", ora_fine=None),
        make_procedure(ora_inizio="bad", ora_fine="10:00"),
        make_procedure(ora_inizio="10:00", ora_fine="11:00"),
    ]
    assert compute_statistics(records).average_duration_minutes == 45


def test_valve_type_counts_match_canonical_labels_only(make_procedure):
    records = [
        make_procedure(tipo_valvola="Balloon-Expandable"),
        make_procedure(tipo_valvola="Balloon Expandable"),
        make_procedure(tipo_valvola="Self Expandable"),
        make_procedure(tipo_valvola=None),
    ]
    stats = compute_statistics(records)
    assert (stats.balloon_expandable_count, stats.self_expandable_count) == (1, 1)


def test_top_n_parameter(registry):
    assert compute_statistics(registry, top_n=1).top_valve_models == (("Edwards SAPIEN 3", 2),)


def test_statistics_to_dict(registry):
    payload = compute_statistics(registry).to_dict()
    assert payload["total_procedures"] == 4
    assert payload["top_valve_models"][0] == ["Edwards SAPIEN 3", 2]
    assert isinstance(compute_statistics(registry), Statistics)
