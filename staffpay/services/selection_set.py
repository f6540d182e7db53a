"""
SelectionSet - the working set of days an operator is about to pay.

Selection is by whole calendar day: toggling a day takes or drops every
pending entry of that day, so a payment never splits a day. Paid entries
are dropped on construction and can never be selected.
"""

from datetime import date, tzinfo
from typing import Dict, Iterable, List, Set

from staffpay.models.entry import LedgerEntry
from staffpay.schemas.aggregate import DayTotal, GlobalTotal
from staffpay.services.ledger_aggregator import LedgerAggregator
from staffpay.utils.date_bucketing import bucket_by_day, get_zone


class SelectionSet:

    def __init__(self, entries: Iterable[LedgerEntry], tz: tzinfo | None = None):
        self.tz = tz or get_zone()
        self.aggregator = LedgerAggregator(self.tz)
        pending = sorted(LedgerAggregator.pending_only(entries), key=lambda e: e.date)
        self._by_day: Dict[date, List[LedgerEntry]] = bucket_by_day(pending, self.tz)
        self._selected: Set[date] = set()

    @property
    def available_days(self) -> List[date]:
        return sorted(self._by_day)

    @property
    def selected_days(self) -> List[date]:
        return sorted(self._selected)

    def is_selected(self, day: date) -> bool:
        return day in self._selected

    def toggle_day(self, day: date) -> bool:
        """Select every pending entry of the day, or drop them all if already selected.

        Days without pending entries are ignored. Returns whether the day is
        selected afterwards.
        """
        if day not in self._by_day:
            return False
        if day in self._selected:
            self._selected.discard(day)
            return False
        self._selected.add(day)
        return True

    def toggle_month(self, year: int, month: int) -> None:
        """Clear the month if any of its days is selected, otherwise select all of them."""
        days = [d for d in self._by_day if d.year == year and d.month == month]
        if any(d in self._selected for d in days):
            self._selected.difference_update(days)
        else:
            self._selected.update(days)

    def select_all(self) -> None:
        self._selected = set(self._by_day)

    def clear_all(self) -> None:
        self._selected.clear()

    def selected_entries(self) -> List[LedgerEntry]:
        entries: List[LedgerEntry] = []
        for day in self.selected_days:
            entries.extend(self._by_day[day])
        return entries

    def selected_entry_ids(self) -> List[str]:
        return [str(e.id) for e in self.selected_entries()]

    def preview_total(self) -> GlobalTotal:
        return self.aggregator.aggregate_total(self.selected_entries())

    def preview_by_day(self) -> List[DayTotal]:
        return list(self.aggregator.aggregate_by_day(self.selected_entries()).values())
