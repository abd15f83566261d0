"""
Range table and enumerations.

Defines the numeric bounds used to validate the hemodynamic, anthropometric
and procedural fields of a procedure record, along with the valve type and
filter period enumerations.
"""

import json
import os
import pathlib
import typing

from dataclasses import dataclass
from enum import Enum

ALL = "all"

# Environment flag pointing to a JSON file that overrides/extends RANGES
RANGES_FILE_ENV = "TAVI_RANGES_FILE"


@dataclass(frozen=True)
class FieldRange:
    """
    Inclusive numeric bounds for a field.

    Attributes:
        min: Lowest accepted value.
        max: Highest accepted value.
        unit: Unit label shown in error messages (e.g. 'mmHg').
        label: Human-readable field name.
    """

    min: float
    max: float
    unit: str
    label: str = ""

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


RANGES: dict[str, FieldRange] = {
    "fe": FieldRange(0, 100, "%", "FE"),
    "vmax": FieldRange(0, 10, "m/s", "Vmax"),
    "gmax": FieldRange(0, 200, "mmHg", "Gmax"),
    "gmed": FieldRange(0, 150, "mmHg", "Gmed"),
    "ava": FieldRange(0, 5, "cm²", "AVA"),
    "anulus": FieldRange(15, 35, "mm", "Anulus Aortico"),
    "altezza": FieldRange(100, 250, "cm", "Altezza"),
    "peso": FieldRange(30, 200, "kg", "Peso"),
    "dimensioneValvola": FieldRange(15, 35, "mm", "Dimensione Valvola"),
}

# Record field names whose range key differs from the field name
RECORD_FIELD_RANGES = {
    "anulus_aortico": "anulus",
    "dimensione_valvola": "dimensioneValvola",
}

# Numeric record fields checked against RANGES, in form order
RANGED_FIELDS = (
    "altezza",
    "peso",
    "fe",
    "vmax",
    "gmax",
    "gmed",
    "ava",
    "anulus_aortico",
    "dimensione_valvola",
)

# Pre-procedural parameters averaged by the statistics engine
HEMODYNAMIC_FIELDS = ("fe", "vmax", "gmax", "gmed", "ava")


def get_field_range(
        name: str, table: typing.Optional[typing.Mapping[str, FieldRange]] = None
) -> typing.Optional[FieldRange]:
    """
    Look up bounds by record field name or by range key.
    Unknown names return None, i.e. the field is unconstrained.
    """
    table = RANGES if table is None else table
    return table.get(RECORD_FIELD_RANGES.get(name, name))


def load_range_table(path: typing.Union[str, pathlib.Path]) -> dict[str, FieldRange]:
    """
    Read a JSON object of `{key: {"min": .., "max": .., "unit": .., "label": ..}}`
    and merge it over the default RANGES.
    """
    with open(path, encoding="utf-8") as fh:
        try:
            payload = json.load(fh)
        except json.JSONDecodeError as e:
            raise ValueError(f"Range file {str(path)!r} is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ValueError(f"Range file {str(path)!r} must contain a JSON object")

    table = dict(RANGES)
    for key, spec in payload.items():
        if not isinstance(spec, dict):
            raise ValueError(f"Range {key!r} must be an object, got {type(spec).__name__}")
        try:
            low = float(spec["min"])
            high = float(spec["max"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Range {key!r} needs numeric 'min' and 'max'") from e
        if low > high:
            raise ValueError(f"Range {key!r}: min {low} is greater than max {high}")
        table[key] = FieldRange(low, high, str(spec.get("unit", "")), str(spec.get("label", key)))
    return table


def default_range_table() -> dict[str, FieldRange]:
    """Default RANGES, or the file named by TAVI_RANGES_FILE when set."""
    override = os.getenv(RANGES_FILE_ENV, "").strip()
    if override:
        return load_range_table(override)
    return dict(RANGES)


class ValveType(Enum):
    """
    Transcatheter valve deployment mechanism.
    """
    BALLOON = "Balloon Expandable"
    SELF = "Self Expandable"

    @classmethod
    def from_label(cls, label: str) -> "ValveType":
        """
        Convert a label into the corresponding enum.
        Hyphens, underscores, spacing and casing are normalized, so
        'Balloon-Expandable' and 'balloon expandable' are both accepted.
        """
        key = str(label).strip().lower().replace("-", " ").replace("_", " ")
        key = " ".join(key.split())
        mapping = {
            "balloon expandable": cls.BALLOON,
            "balloon": cls.BALLOON,
            "self expandable": cls.SELF,
            "self": cls.SELF,
        }
        try:
            return mapping[key]
        except KeyError:
            raise ValueError(f"Unknown valve type label: {label!r}")


def parse_valve_type(value: typing.Any) -> typing.Optional[ValveType]:
    """ValveType for any accepted label, None for blank or unknown values."""
    if value is None:
        return None
    try:
        return ValveType.from_label(value)
    except ValueError:
        return None


class FilterPeriod(Enum):
    """
    Time windows for the procedure date filter.
    Each member carries its sentinel value, month offset and label.
    """
    ALL = ("all", 0, "Whole period")
    LAST_MONTH = ("1m", 1, "Last month")
    LAST_3_MONTHS = ("3m", 3, "Last 3 months")
    LAST_6_MONTHS = ("6m", 6, "Last 6 months")
    LAST_YEAR = ("1y", 12, "Last year")

    def __init__(self, sentinel: str, months: int, label: str):
        self.sentinel = sentinel
        self.months = months
        self.label = label

    @classmethod
    def from_sentinel(cls, sentinel: str) -> "FilterPeriod":
        for period in cls:
            if period.sentinel == sentinel:
                return period
        raise ValueError(f"Unknown filter period: {sentinel!r}")


BALLOON_EXPANDABLE_MODELS = [
    "Edwards SAPIEN 3",
    "Edwards SAPIEN 3 Ultra",
    "Myval",
    "Allegra",
]

SELF_EXPANDABLE_MODELS = [
    "Medtronic CoreValve Evolut R",
    "Medtronic CoreValve Evolut PRO",
    "Medtronic CoreValve Evolut PRO+",
    "Boston Scientific ACURATE neo",
    "Portico",
]

VALVE_MODELS = {
    ValveType.BALLOON: BALLOON_EXPANDABLE_MODELS,
    ValveType.SELF: SELF_EXPANDABLE_MODELS,
}

CV_RISK_FACTORS = [
    "Ipertensione arteriosa",
    "Diabete mellito",
    "Dislipidemia",
    "Fumo di sigaretta",
    "Obesità",
    "Familiarità per cardiopatia",
]

VALVE_TYPE_FILTERS = [ALL] + [valve_type.value for valve_type in ValveType]
FILTER_PERIODS = [period.sentinel for period in FilterPeriod]


def configuration_tables(
        table: typing.Optional[typing.Mapping[str, FieldRange]] = None,
) -> dict[str, typing.Any]:
    """
    Read-only lookup tables offered to data-entry front ends: numeric ranges,
    valve types and their known models, CV risk factors and filter periods.
    """
    table = RANGES if table is None else table
    return {
        "ranges": {
            key: {"min": bounds.min, "max": bounds.max, "unit": bounds.unit, "label": bounds.label}
            for key, bounds in table.items()
        },
        "valve_types": [valve_type.value for valve_type in ValveType],
        "valve_models": {valve_type.value: list(models) for valve_type, models in VALVE_MODELS.items()},
        "cv_risk_factors": list(CV_RISK_FACTORS),
        "filter_periods": {period.sentinel: period.label for period in FilterPeriod},
    }
