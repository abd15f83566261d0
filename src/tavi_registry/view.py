"""
Derived view over the registry.

The filtered list, the counts and the statistics are pure functions of a
RegistryState (records + filters + top-N). `recompute` derives a ViewSnapshot
from one state; `DerivedView` is a holder the host can keep to track the
current (state, snapshot) pair, replacing both together on every change so a
reader never sees new records next to old filters or the reverse.
"""

import dataclasses
import datetime
import logging
import typing

from dataclasses import dataclass, field

from .filters import FilterState, apply_filters, update_filters
from .procedure import ProcedureRecord
from .ranges import FieldRange, default_range_table
from .statistics import DEFAULT_TOP_N, Statistics, compute_statistics
from .validators import SaveResult, validate_and_save

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryState:
    """
    Inputs of the derived view.

    Attributes:
        records: Source collection, in store order.
        filters: Active filter configuration.
        top_n: Number of valve models kept in the statistics ranking.
    """
    records: tuple[ProcedureRecord, ...] = ()
    filters: FilterState = field(default_factory=FilterState)
    top_n: int = DEFAULT_TOP_N


@dataclass(frozen=True)
class ViewSnapshot:
    """Outputs derived from a single RegistryState."""
    state: RegistryState
    filtered: tuple[ProcedureRecord, ...]
    statistics: Statistics

    @property
    def procedure_count(self) -> int:
        return len(self.state.records)

    @property
    def filtered_count(self) -> int:
        return len(self.filtered)


def recompute(state: RegistryState, now: typing.Optional[datetime.datetime] = None) -> ViewSnapshot:
    """
    Derive the filtered list and its statistics from `state`.
    Statistics describe the filtered records.
    """
    filtered = tuple(apply_filters(state.records, state.filters, now))
    return ViewSnapshot(state=state, filtered=filtered, statistics=compute_statistics(filtered, state.top_n))


class DerivedView:
    """
    Host-owned cache of the current state and its snapshot.

    Every mutator builds the next RegistryState, recomputes it, and publishes
    the pair with a single attribute assignment.
    """

    def __init__(
            self,
            records: typing.Iterable[ProcedureRecord] = (),
            filters: typing.Optional[FilterState] = None,
            top_n: int = DEFAULT_TOP_N,
            clock: typing.Optional[typing.Callable[[], datetime.datetime]] = None,
            ranges: typing.Optional[typing.Mapping[str, FieldRange]] = None,
    ):
        self._clock = clock or datetime.datetime.now
        # saves validate against this table, TAVI_RANGES_FILE applies when none is given
        self._ranges = default_range_table() if ranges is None else dict(ranges)
        self._current = recompute(
            RegistryState(tuple(records), filters or FilterState(), top_n), self._clock()
        )

    @property
    def snapshot(self) -> ViewSnapshot:
        return self._current

    @property
    def state(self) -> RegistryState:
        return self._current.state

    def _publish(self, state: RegistryState) -> ViewSnapshot:
        snapshot = recompute(state, self._clock())
        self._current = snapshot
        logger.debug(
            f"Recomputed view: {snapshot.filtered_count} of {snapshot.procedure_count} records shown"
        )
        return snapshot

    def refresh(self) -> ViewSnapshot:
        """Recompute the current state, e.g. after the clock moved past a period boundary."""
        return self._publish(self.state)

    def set_records(self, records: typing.Iterable[ProcedureRecord]) -> ViewSnapshot:
        return self._publish(dataclasses.replace(self.state, records=tuple(records)))

    def set_filters(self, filters: FilterState) -> ViewSnapshot:
        return self._publish(dataclasses.replace(self.state, filters=filters))

    def update_filters(self, **changes: typing.Any) -> ViewSnapshot:
        return self.set_filters(update_filters(self.state.filters, **changes))

    def reset_filters(self) -> ViewSnapshot:
        return self.set_filters(FilterState())

    def set_top_n(self, top_n: int) -> ViewSnapshot:
        return self._publish(dataclasses.replace(self.state, top_n=top_n))

    def save(
            self,
            record: ProcedureRecord,
            persist: typing.Callable[[ProcedureRecord], typing.Any],
            today: typing.Optional[datetime.date] = None,
            ranges: typing.Optional[typing.Mapping[str, FieldRange]] = None,
    ) -> SaveResult:
        """
        Validate and persist `record`, then place it in the collection:
        records with a known id are replaced in place, new ones are appended.
        The view is left untouched when validation fails. `ranges` overrides
        the table the view was built with.
        """
        ranges = self._ranges if ranges is None else ranges
        result = validate_and_save(record, persist, today=today, ranges=ranges)
        if not result.saved:
            return result

        saved = result.record
        records = list(self.state.records)
        for index, existing in enumerate(records):
            if existing.id is not None and existing.id == saved.id:
                records[index] = saved
                break
        else:
            records.append(saved)
        self.set_records(records)
        return result

    def remove(self, record_id: typing.Any) -> ViewSnapshot:
        """Drop a record from the collection after the store deleted it."""
        return self.set_records(record for record in self.state.records if record.id != record_id)
