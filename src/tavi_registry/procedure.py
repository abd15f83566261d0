"""
Procedure domain model.

Defines the ProcedureRecord class describing one patient and the cardiac
valve implantation performed on them, plus the value parsers shared by the
validators, filters and statistics.

Values are stored as supplied: a record built from a form may carry strings
such as "55.5" or "09:30", while a record loaded from a table carries floats
and dates. Parsing happens at use time, so malformed values stay visible to
the validators instead of being silently dropped at construction.
"""

import dataclasses
import datetime
import math
import re
import typing

from dataclasses import dataclass

import pandas as pd

# 24-hour clock, hour may be written with one digit ("9:05")
_TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")

_TRUE_STRINGS = {"1", "true", "t", "yes", "y", "si", "sì"}


def is_blank(value: typing.Any) -> bool:
    """True for None, NaN/NaT/pd.NA and empty or whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def parse_number(value: typing.Any) -> typing.Optional[float]:
    """
    Parse a finite float out of a number or numeric string.
    Returns None when the value is blank or cannot be read as a number.
    """
    if is_blank(value) or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_date(value: typing.Any) -> typing.Optional[datetime.date]:
    """
    Read a calendar date from a date/datetime/Timestamp or an ISO string
    ('2024-03-15' or '2024-03-15T10:00:00'). Returns None when unreadable.
    """
    if is_blank(value):
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return datetime.date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.datetime.fromisoformat(text).date()
    except ValueError:
        return None


def parse_time_minutes(value: typing.Any) -> typing.Optional[int]:
    """
    Convert an 'HH:MM' string (or a datetime.time) to minutes since midnight.
    Returns None when the value is blank or not a valid 24-hour time.
    """
    if is_blank(value):
        return None
    if isinstance(value, datetime.time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        return None
    m = _TIME_PATTERN.match(value.strip())
    if not m:
        return None
    return int(m.group(1)) * 60 + int(m.group(2))


def to_bool(value: typing.Any) -> bool:
    """
    Boolean parsing for table cells:
    - True for: 1, '1', 'true', 't', 'yes', 'y', 'si', 'sì' (case-insensitive)
    - False for everything else, including blanks
    """
    if isinstance(value, bool):
        return value
    if is_blank(value):
        return False
    return str(value).strip().lower() in _TRUE_STRINGS or value == 1


def categorize_bmi(bmi: typing.Optional[float]) -> str:
    """Textual BMI class; '-' when the BMI is unknown."""
    if bmi is None or (isinstance(bmi, float) and math.isnan(bmi)):
        return "-"
    if bmi < 18.5:
        return "Underweight"
    if bmi < 25:
        return "Normal weight"
    if bmi < 30:
        return "Overweight"
    if bmi < 35:
        return "Obese class I"
    if bmi < 40:
        return "Obese class II"
    return "Obese class III"


@dataclass
class ProcedureRecord:
    """
    Represents a single valve implantation procedure for a patient.

    Attributes:
        nome, cognome: Patient first and last name.
        data_nascita: Birth date (ISO string or date).
        altezza, peso: Height in cm, weight in kg.
        fe, vmax, gmax, gmed, ava, anulus_aortico: Pre-procedural hemodynamics.
        valvola_protesica: True if the patient already carries a prosthetic valve,
            in which case protesica_modello and protesica_dimensione are required.
        data_procedura: Procedure date.
        ora_inizio, ora_fine: Start and end time, 'HH:MM'.
        tipo_valvola: 'Balloon Expandable' or 'Self Expandable'.
        modello_valvola: Implanted valve model.
        dimensione_valvola: Valve size in mm.
        pre_dilatazione, post_dilatazione: Balloon dilatation before/after implant.
        id: Assigned by the store on first save; None for drafts.
    """

    nome: typing.Optional[str] = None
    cognome: typing.Optional[str] = None
    data_nascita: typing.Any = None
    altezza: typing.Any = None
    peso: typing.Any = None

    fe: typing.Any = None
    vmax: typing.Any = None
    gmax: typing.Any = None
    gmed: typing.Any = None
    ava: typing.Any = None
    anulus_aortico: typing.Any = None
    valvola_protesica: bool = False
    protesica_modello: typing.Optional[str] = None
    protesica_dimensione: typing.Optional[str] = None

    data_procedura: typing.Any = None
    ora_inizio: typing.Any = None
    ora_fine: typing.Any = None
    tipo_valvola: typing.Optional[str] = None
    modello_valvola: typing.Optional[str] = None
    dimensione_valvola: typing.Any = None
    pre_dilatazione: bool = False
    post_dilatazione: bool = False

    id: typing.Optional[typing.Any] = None
    created_at: typing.Optional[str] = None
    updated_at: typing.Optional[str] = None

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in dataclasses.fields(cls))

    @classmethod
    def from_mapping(cls, mapping: typing.Mapping[str, typing.Any]) -> "ProcedureRecord":
        """
        Build a record from a dict or table row. Unknown keys are ignored,
        blank cells become None and the boolean flags go through to_bool.
        """
        known = set(cls.field_names())
        values: dict[str, typing.Any] = {}
        for key, value in mapping.items():
            if key not in known:
                continue
            if key in ("valvola_protesica", "pre_dilatazione", "post_dilatazione"):
                values[key] = to_bool(value)
            else:
                values[key] = None if is_blank(value) else value
        return cls(**values)

    def to_dict(self) -> dict[str, typing.Any]:
        return dataclasses.asdict(self)

    def with_id(self, record_id: typing.Any) -> "ProcedureRecord":
        return dataclasses.replace(self, id=record_id)

    @property
    def is_draft(self) -> bool:
        return self.id is None

    @property
    def full_name(self) -> str:
        return f"{self.nome or ''} {self.cognome or ''}".strip()

    @property
    def duration_minutes(self) -> typing.Optional[int]:
        """Minutes between ora_inizio and ora_fine; None if either is missing or malformed."""
        start = parse_time_minutes(self.ora_inizio)
        end = parse_time_minutes(self.ora_fine)
        if start is None or end is None:
            return None
        return end - start

    def age(self, today: typing.Optional[datetime.date] = None) -> typing.Optional[int]:
        """Age in completed years at `today` (defaults to the current date)."""
        birth = parse_date(self.data_nascita)
        if birth is None:
            return None
        today = today or datetime.date.today()
        years = today.year - birth.year
        if (today.month, today.day) < (birth.month, birth.day):
            years -= 1
        return years

    @property
    def bmi(self) -> typing.Optional[float]:
        weight = parse_number(self.peso)
        height = parse_number(self.altezza)
        if not weight or not height or height <= 0:
            return None
        height_m = height / 100
        return round(weight / (height_m * height_m), 1)

    @property
    def bsa(self) -> typing.Optional[float]:
        """Body surface area in m², Mosteller formula."""
        weight = parse_number(self.peso)
        height = parse_number(self.altezza)
        if not weight or not height or height <= 0:
            return None
        return round(math.sqrt(height * weight / 3600), 2)
