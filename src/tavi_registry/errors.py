"""
Validation error taxonomy.

Every failure produced by the field and record validators is one of these
values. They are returned inside an ErrorMap (field name -> error), never
raised, so callers can surface field-level messages to the end user.

Besides the missing, numeric, range, date and time failures, InvalidChoice
reports a valve type that names neither deployment mechanism; the record
validator uses it for `tipo_valvola` on top of the required-field check.
"""

import abc
import typing

from dataclasses import dataclass


def _format_bound(value: typing.Any) -> str:
    # 0.0 -> '0', 2.5 -> '2.5'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class FieldError(metaclass=abc.ABCMeta):
    """Base class for field-level validation failures."""

    @property
    @abc.abstractmethod
    def message(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class MissingField(FieldError):
    @property
    def message(self) -> str:
        return "This field is required"


@dataclass(frozen=True)
class NotANumber(FieldError):
    @property
    def message(self) -> str:
        return "Enter a valid number"


@dataclass(frozen=True)
class OutOfRange(FieldError):
    """
    Value outside the inclusive bounds of its range.

    Attributes:
        min: Lower bound of the range.
        max: Upper bound of the range.
        unit: Unit of the range (may be empty).
    """

    min: float
    max: float
    unit: str = ""

    @property
    def message(self) -> str:
        text = f"Value must be between {_format_bound(self.min)} and {_format_bound(self.max)}"
        return f"{text} {self.unit}" if self.unit else text


@dataclass(frozen=True)
class InvalidDate(FieldError):
    @property
    def message(self) -> str:
        return "Invalid date"


@dataclass(frozen=True)
class FutureDate(FieldError):
    @property
    def message(self) -> str:
        return "The date cannot be in the future"


@dataclass(frozen=True)
class InvalidTime(FieldError):
    @property
    def message(self) -> str:
        return "Invalid time (expected HH:MM)"


@dataclass(frozen=True)
class EndBeforeStart(FieldError):
    @property
    def message(self) -> str:
        return "The end time must be later than the start time"


@dataclass(frozen=True)
class InvalidChoice(FieldError):
    choices: tuple[str, ...] = ()

    @property
    def message(self) -> str:
        return f"Value must be one of: {', '.join(self.choices)}"


# field name -> first failing rule; InvalidChoice only ever appears under tipo_valvola
ErrorMap = dict[str, FieldError]


def error_messages(errors: typing.Optional[ErrorMap]) -> dict[str, str]:
    """Flatten an ErrorMap into field -> message strings."""
    if not errors:
        return {}
    return {field: error.message for field, error in errors.items()}
