"""
Field and record validators for procedure records.

Each field rule returns a FieldError or None. `validate_procedure` runs every
rule against its field and collects at most one error per field; it never
raises for a well-formed ProcedureRecord.
"""

import datetime
import logging
import typing

from dataclasses import dataclass, field
from stairval.notepad import Notepad

from .errors import (
    EndBeforeStart,
    ErrorMap,
    FieldError,
    FutureDate,
    InvalidChoice,
    InvalidDate,
    InvalidTime,
    MissingField,
    NotANumber,
    OutOfRange,
)
from .procedure import ProcedureRecord, is_blank, parse_date, parse_number, parse_time_minutes
from .ranges import RANGED_FIELDS, VALVE_MODELS, FieldRange, ValveType, get_field_range, parse_valve_type

logger = logging.getLogger(__name__)

VALVE_TYPE_CHOICES = tuple(valve_type.value for valve_type in ValveType)


# Field rules

def validate_required(value: typing.Any) -> typing.Optional[FieldError]:
    if is_blank(value):
        return MissingField()
    return None


def validate_number(
        value: typing.Any,
        min_value: typing.Optional[float] = None,
        max_value: typing.Optional[float] = None,
        unit: str = "",
) -> typing.Optional[FieldError]:
    """
    Optional numeric value within inclusive bounds.
    Blank values are valid: absence is not the same as zero.
    """
    if is_blank(value):
        return None
    number = parse_number(value)
    if number is None:
        return NotANumber()
    if min_value is not None and number < min_value:
        return OutOfRange(min_value, max_value if max_value is not None else float("inf"), unit)
    if max_value is not None and number > max_value:
        return OutOfRange(min_value if min_value is not None else float("-inf"), max_value, unit)
    return None


def validate_range(
        field_name: str,
        value: typing.Any,
        ranges: typing.Optional[typing.Mapping[str, FieldRange]] = None,
) -> typing.Optional[FieldError]:
    """Numeric check against the range registered for `field_name`; unknown fields always pass."""
    bounds = get_field_range(field_name, ranges)
    if bounds is None:
        return None
    return validate_number(value, bounds.min, bounds.max, bounds.unit)


def validate_date(
        value: typing.Any,
        allow_future: bool = False,
        today: typing.Optional[datetime.date] = None,
) -> typing.Optional[FieldError]:
    """Required calendar date; unless `allow_future`, it may not be after today."""
    if is_blank(value):
        return MissingField()
    parsed = parse_date(value)
    if parsed is None:
        return InvalidDate()
    if not allow_future and parsed > (today or datetime.date.today()):
        return FutureDate()
    return None


def validate_time(value: typing.Any) -> typing.Optional[FieldError]:
    if is_blank(value):
        return MissingField()
    if parse_time_minutes(value) is None:
        return InvalidTime()
    return None


def validate_time_range(start: typing.Any, end: typing.Any) -> typing.Optional[FieldError]:
    """The end time must be strictly later than the start time on the same day."""
    start_minutes = parse_time_minutes(start)
    end_minutes = parse_time_minutes(end)
    # absent or malformed sides are reported by validate_time
    if start_minutes is None or end_minutes is None:
        return None
    if end_minutes <= start_minutes:
        return EndBeforeStart()
    return None


def validate_choice(value: typing.Any, choices: typing.Sequence[str] = VALVE_TYPE_CHOICES) -> typing.Optional[FieldError]:
    """
    Only the canonical labels are accepted, the same strings the valve-type
    filter and the statistics compare against.
    """
    if is_blank(value):
        return MissingField()
    if value in choices:
        return None
    return InvalidChoice(tuple(choices))


# Record rules

def validate_procedure(
        record: ProcedureRecord,
        today: typing.Optional[datetime.date] = None,
        ranges: typing.Optional[typing.Mapping[str, FieldRange]] = None,
) -> typing.Optional[ErrorMap]:
    """
    Validate every field of a procedure record.
    Returns None when the record is valid, otherwise a field -> FieldError map.
    """
    today = today or datetime.date.today()
    errors: ErrorMap = {}

    def check(field_name: str, error: typing.Optional[FieldError]) -> None:
        # first failing rule for a field wins
        if error is not None and field_name not in errors:
            errors[field_name] = error

    # Patient
    check("nome", validate_required(record.nome))
    check("cognome", validate_required(record.cognome))
    check("data_nascita", validate_date(record.data_nascita, allow_future=False, today=today))

    # Anthropometric, pre-procedural and valve size
    for field_name in RANGED_FIELDS:
        check(field_name, validate_range(field_name, getattr(record, field_name), ranges))

    # A prosthetic valve needs its model and size
    if record.valvola_protesica:
        check("protesica_modello", validate_required(record.protesica_modello))
        check("protesica_dimensione", validate_required(record.protesica_dimensione))

    # Procedure
    check("data_procedura", validate_date(record.data_procedura, allow_future=False, today=today))
    check("ora_inizio", validate_time(record.ora_inizio))
    check("ora_fine", validate_time(record.ora_fine))
    check("ora_fine", validate_time_range(record.ora_inizio, record.ora_fine))
    check("tipo_valvola", validate_choice(record.tipo_valvola))
    check("modello_valvola", validate_required(record.modello_valvola))

    return errors or None


def audit_procedures(
        records: typing.Iterable[ProcedureRecord],
        notepad: Notepad,
        today: typing.Optional[datetime.date] = None,
        ranges: typing.Optional[typing.Mapping[str, FieldRange]] = None,
) -> list[ProcedureRecord]:
    """
    Validate a batch of records, writing each field error onto the notepad.
    Valve models outside the known list for their valve type are reported as
    warnings only. Returns the records that passed validation, in input order.
    """
    valid: list[ProcedureRecord] = []
    total = 0
    for index, record in enumerate(records):
        total += 1
        label = f"Record {index} ({record.full_name or 'unnamed'})"
        errors = validate_procedure(record, today=today, ranges=ranges)
        if errors:
            for field_name, error in errors.items():
                notepad.add_error(f"{label}: {field_name}: {error.message}")
        else:
            valid.append(record)
        _check_valve_model(record, label, notepad)

    logger.debug(f"{len(valid)} of {total} records passed validation")
    return valid


def _check_valve_model(record: ProcedureRecord, label: str, notepad: Notepad) -> None:
    valve_type = parse_valve_type(record.tipo_valvola)
    if valve_type is None or is_blank(record.modello_valvola):
        return
    if record.modello_valvola not in VALVE_MODELS[valve_type]:
        notepad.add_warning(
            f"{label}: valve model {record.modello_valvola!r} is not a known {valve_type.value} model"
        )


@dataclass
class SaveResult:
    """
    Outcome of a validate-then-persist cycle.

    Attributes:
        record: The record as persisted (carrying its id), or the rejected input.
        errors: Field errors that blocked persistence; None when saved.
    """
    record: ProcedureRecord
    errors: typing.Optional[ErrorMap] = field(default=None)

    @property
    def saved(self) -> bool:
        return self.errors is None


def validate_and_save(
        record: ProcedureRecord,
        save: typing.Callable[[ProcedureRecord], typing.Any],
        today: typing.Optional[datetime.date] = None,
        ranges: typing.Optional[typing.Mapping[str, FieldRange]] = None,
) -> SaveResult:
    """
    Hand `record` to the persistence callable only if it validates.
    `save` returns the record id; drafts receive it, existing records keep theirs.
    Exceptions raised by `save` propagate to the caller.
    """
    errors = validate_procedure(record, today=today, ranges=ranges)
    if errors:
        logger.info(f"Rejected record {record.full_name!r}: {sorted(errors)}")
        return SaveResult(record=record, errors=errors)

    record_id = save(record)
    saved = record.with_id(record_id if record_id is not None else record.id)
    logger.info(f"Saved record {saved.id!r}")
    return SaveResult(record=saved)
