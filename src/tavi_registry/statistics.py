"""
Aggregate statistics over procedure records.

All means skip missing values: None, NaN and strings that do not parse as
numbers are left out of both the sum and the count. Persisted records are
never rejected here, malformed values simply count as absent.
"""

import logging
import math
import typing

from dataclasses import asdict, dataclass

import pandas as pd

from .procedure import ProcedureRecord, is_blank, to_bool
from .ranges import HEMODYNAMIC_FIELDS, ValveType

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 5


def _numeric(values: typing.Iterable[typing.Any]) -> pd.Series:
    """Coerce to floats; anything unreadable becomes NaN."""
    series = pd.Series(list(values), dtype=object)
    series = series.map(lambda v: None if isinstance(v, bool) else v)
    return pd.to_numeric(series, errors="coerce").astype(float)


def _field_values(records: typing.Iterable[ProcedureRecord], field_name: str) -> list:
    return [getattr(record, field_name, None) for record in records]


def round_to(number: typing.Optional[float], decimals: int = 1) -> typing.Optional[float]:
    if number is None or (isinstance(number, float) and math.isnan(number)):
        return None
    return round(number, decimals)


def calculate_average(numbers: typing.Iterable[typing.Any]) -> typing.Optional[float]:
    """Mean of the readable numbers, or None when there are none."""
    series = _numeric(numbers).dropna()
    if series.empty:
        return None
    return float(series.mean())


def calculate_field_average(records: typing.Sequence[ProcedureRecord], field_name: str) -> typing.Optional[float]:
    return calculate_average(_field_values(records, field_name))


def count_occurrences(records: typing.Sequence[ProcedureRecord], field_name: str) -> dict[typing.Any, int]:
    """Count of each non-blank value of `field_name`, in order of first appearance."""
    series = pd.Series(_field_values(records, field_name), dtype=object)
    series = series[~series.map(is_blank)] if not series.empty else series
    if series.empty:
        return {}
    counts = series.groupby(series, sort=False).size()
    return {value: int(count) for value, count in counts.items()}


def get_top_n(
        records: typing.Sequence[ProcedureRecord], field_name: str, n: int = DEFAULT_TOP_N
) -> list[tuple[typing.Any, int]]:
    """
    The `n` most frequent values with their counts, most frequent first.
    Ties keep the order in which the values were first encountered.
    """
    counts = count_occurrences(records, field_name)
    if not counts or n <= 0:
        return []
    # sorted() is stable, counts are already in encounter order
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return ranked[:n]


def calculate_boolean_percentage(records: typing.Sequence[ProcedureRecord], field_name: str) -> float:
    """Share of records with the flag set, as a percentage; 0 for an empty collection."""
    if len(records) == 0:
        return 0.0
    true_count = sum(1 for value in _field_values(records, field_name) if to_bool(value))
    return true_count / len(records) * 100


def group_by(records: typing.Sequence[ProcedureRecord], field_name: str) -> dict[typing.Any, list[ProcedureRecord]]:
    groups: dict[typing.Any, list[ProcedureRecord]] = {}
    for record in records:
        groups.setdefault(getattr(record, field_name, None), []).append(record)
    return groups


def prepare_pie_chart_data(records: typing.Sequence[ProcedureRecord], field_name: str) -> list[dict[str, typing.Any]]:
    return [{"name": name, "value": value} for name, value in count_occurrences(records, field_name).items()]


def prepare_bar_chart_data(
        records: typing.Sequence[ProcedureRecord], field_name: str, top_n: int = DEFAULT_TOP_N
) -> dict[str, list]:
    top_items = get_top_n(records, field_name, top_n)
    return {
        "labels": [name for name, _ in top_items],
        "values": [count for _, count in top_items],
    }


@dataclass(frozen=True)
class Statistics:
    """
    Snapshot of aggregate figures over a record collection.

    `average_duration_minutes` and the `average_<param>` fields are None when
    no record carries the value, which is distinct from an average of zero.
    """
    total_procedures: int
    average_duration_minutes: typing.Optional[float]
    pre_dilatazione_percentage: float
    post_dilatazione_percentage: float
    balloon_expandable_count: int
    self_expandable_count: int
    average_fe: typing.Optional[float]
    average_vmax: typing.Optional[float]
    average_gmax: typing.Optional[float]
    average_gmed: typing.Optional[float]
    average_ava: typing.Optional[float]
    top_valve_models: tuple[tuple[str, int], ...]

    @property
    def has_duration_data(self) -> bool:
        return self.average_duration_minutes is not None

    def to_dict(self) -> dict[str, typing.Any]:
        payload = asdict(self)
        payload["top_valve_models"] = [list(pair) for pair in self.top_valve_models]
        return payload


def compute_statistics(records: typing.Sequence[ProcedureRecord], top_n: int = DEFAULT_TOP_N) -> Statistics:
    """Compute every aggregate from the same snapshot of `records`."""
    records = list(records)

    durations = [record.duration_minutes for record in records]
    valve_counts = count_occurrences(records, "tipo_valvola")
    averages = {
        f"average_{field_name}": calculate_field_average(records, field_name)
        for field_name in HEMODYNAMIC_FIELDS
    }

    statistics = Statistics(
        total_procedures=len(records),
        average_duration_minutes=calculate_average(durations),
        pre_dilatazione_percentage=calculate_boolean_percentage(records, "pre_dilatazione"),
        post_dilatazione_percentage=calculate_boolean_percentage(records, "post_dilatazione"),
        balloon_expandable_count=valve_counts.get(ValveType.BALLOON.value, 0),
        self_expandable_count=valve_counts.get(ValveType.SELF.value, 0),
        top_valve_models=tuple(get_top_n(records, "modello_valvola", top_n)),
        **averages,
    )
    logger.debug(f"Computed statistics over {statistics.total_procedures} records")
    return statistics
