"""
Filter pipeline over procedure records.

Stages run in a fixed order (text search, valve type, period). Each stage
only removes records, so the output keeps the input order, and a blank or
'all' value turns a stage into the identity.
"""

import dataclasses
import datetime
import typing

from dataclasses import dataclass

from .procedure import ProcedureRecord, is_blank, parse_date
from .ranges import ALL, FilterPeriod


@dataclass(frozen=True)
class FilterState:
    """
    Active filter configuration.

    Attributes:
        search_query: Case-insensitive text matched against name, surname and valve model.
        tipo_valvola: Valve type to keep, or 'all'.
        period: One of 'all', '1m', '3m', '6m', '1y'.
    """
    search_query: str = ""
    tipo_valvola: str = ALL
    period: str = ALL

    @classmethod
    def from_mapping(cls, mapping: typing.Mapping[str, typing.Any]) -> "FilterState":
        return cls(
            search_query=mapping.get("search_query") or "",
            tipo_valvola=mapping.get("tipo_valvola") or ALL,
            period=mapping.get("period") or ALL,
        )


def update_filters(state: FilterState, **changes: typing.Any) -> FilterState:
    """Return a copy of `state` with the given fields replaced."""
    return dataclasses.replace(state, **changes)


def reset_filters() -> FilterState:
    return FilterState()


def subtract_months(moment: datetime.datetime, months: int) -> datetime.datetime:
    """
    Move `moment` back by calendar months, keeping the time of day.
    A day-of-month missing from the target month rolls over into the next
    month: March 31 minus one month gives March 3 (March 2 in leap years),
    February 29 minus twelve months gives March 1.
    """
    year, month_index = divmod(moment.year * 12 + moment.month - 1 - months, 12)
    first_of_month = moment.replace(year=year, month=month_index + 1, day=1)
    return first_of_month + datetime.timedelta(days=moment.day - 1)


def period_cutoff(period: str, now: typing.Optional[datetime.datetime] = None) -> typing.Optional[datetime.datetime]:
    """
    Earliest instant kept by the period filter, or None when the stage is disabled
    ('all', blank or unknown sentinel).
    """
    if is_blank(period):
        return None
    try:
        window = FilterPeriod.from_sentinel(period)
    except ValueError:
        return None
    if window is FilterPeriod.ALL:
        return None
    return subtract_months(now or datetime.datetime.now(), window.months)


def filter_by_search_query(records: typing.Sequence[ProcedureRecord], query: typing.Optional[str]) -> list[ProcedureRecord]:
    if query is None or not query.strip():
        return list(records)

    lower_query = query.lower()

    def matches(record: ProcedureRecord) -> bool:
        return any(
            lower_query in ("" if is_blank(value) else str(value)).lower()
            for value in (record.nome, record.cognome, record.modello_valvola)
        )

    return [record for record in records if matches(record)]


def filter_by_valve_type(records: typing.Sequence[ProcedureRecord], valve_type: typing.Optional[str]) -> list[ProcedureRecord]:
    """Exact match on `tipo_valvola`; loaders store canonical labels."""
    if is_blank(valve_type) or valve_type == ALL:
        return list(records)
    return [record for record in records if record.tipo_valvola == valve_type]


def filter_by_period(
        records: typing.Sequence[ProcedureRecord],
        period: typing.Optional[str],
        now: typing.Optional[datetime.datetime] = None,
) -> list[ProcedureRecord]:
    """
    Keep records whose procedure date (taken at midnight) is not earlier than
    the period cutoff. Records without a readable date are dropped.
    """
    cutoff = period_cutoff(period, now)
    if cutoff is None:
        return list(records)

    kept: list[ProcedureRecord] = []
    for record in records:
        procedure_date = parse_date(record.data_procedura)
        if procedure_date is None:
            continue
        start_of_day = datetime.datetime.combine(procedure_date, datetime.time(), tzinfo=cutoff.tzinfo)
        if start_of_day >= cutoff:
            kept.append(record)
    return kept


def apply_filters(
        records: typing.Sequence[ProcedureRecord],
        state: typing.Optional[FilterState] = None,
        now: typing.Optional[datetime.datetime] = None,
) -> list[ProcedureRecord]:
    """Run the text, valve type and period stages in order."""
    state = state or FilterState()
    filtered = filter_by_search_query(records, state.search_query)
    filtered = filter_by_valve_type(filtered, state.tipo_valvola)
    return filter_by_period(filtered, state.period, now)
