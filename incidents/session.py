"""Single-user dashboard store.

The Streamlit app keeps one `DashboardSession` in `st.session_state`. It owns
the loaded rows, the current filters, the pending (debounced) search text
and a load generation counter so a superseded load never overwrites a newer
one.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Mapping, Optional, TypeVar

import pandas as pd

from incidents.data import (
    DashboardView,
    DatasetLoadError,
    build_view,
    empty_incidents,
    filter_options,
    load_incidents,
)
from incidents.filters import (
    IncidentFilters,
    default_filters,
    merge_filters,
    reset_dimension,
    toggle_filter,
)

logger = logging.getLogger(__name__)

SEARCH_DELAY_SECONDS = 0.25

T = TypeVar("T")


@dataclass
class SearchDebouncer(Generic[T]):
    """Coalesce rapid changes: commit a value only after `delay` seconds without a newer one."""

    delay: float = SEARCH_DELAY_SECONDS
    clock: Callable[[], float] = time.monotonic
    _pending: Optional[T] = field(default=None, init=False)
    _has_pending: bool = field(default=False, init=False)
    _deadline: float = field(default=0.0, init=False)

    @property
    def pending(self) -> bool:
        return self._has_pending

    def submit(self, value: T, now: Optional[float] = None) -> None:
        now = self.clock() if now is None else now
        self._pending = value
        self._has_pending = True
        self._deadline = now + self.delay

    def remaining(self, now: Optional[float] = None) -> float:
        if not self._has_pending:
            return 0.0
        now = self.clock() if now is None else now
        return max(0.0, self._deadline - now)

    def poll(self, now: Optional[float] = None) -> Optional[T]:
        """Return the pending value once the quiet window has passed, else None."""
        if not self._has_pending:
            return None
        now = self.clock() if now is None else now
        if now < self._deadline:
            return None
        value = self._pending
        self.cancel()
        return value

    def cancel(self) -> None:
        self._pending = None
        self._has_pending = False
        self._deadline = 0.0


@dataclass
class DashboardSession:
    rows: pd.DataFrame = field(default_factory=empty_incidents)
    filters: IncidentFilters = field(default_factory=default_filters)
    error: Optional[str] = None
    loading: bool = False
    search: SearchDebouncer[str] = field(default_factory=SearchDebouncer)
    _generation: int = field(default=0, init=False)

    # ---------------- Loading ----------------
    def begin_load(self) -> int:
        self._generation += 1
        self.loading = True
        return self._generation

    def is_current(self, token: int) -> bool:
        return token == self._generation

    def finish_load(self, token: int, rows: pd.DataFrame) -> bool:
        if not self.is_current(token):
            logger.debug("discarding stale load result (token %d, current %d)", token, self._generation)
            return False
        self.rows = rows
        self.error = None
        self.loading = False
        return True

    def fail_load(self, token: int, message: str) -> bool:
        if not self.is_current(token):
            logger.debug("discarding stale load failure (token %d, current %d)", token, self._generation)
            return False
        self.rows = empty_incidents()
        self.error = message
        self.loading = False
        return True

    def load(self, source: Any, loader: Callable[[Any], pd.DataFrame] = load_incidents) -> bool:
        token = self.begin_load()
        try:
            rows = loader(source)
        except DatasetLoadError as exc:
            logger.warning("dataset load failed: %s", exc.message)
            return self.fail_load(token, exc.message)
        return self.finish_load(token, rows)

    # ---------------- Filters ----------------
    def update(self, partial: Mapping[str, Any]) -> IncidentFilters:
        self.filters = merge_filters(self.filters, partial)
        return self.filters

    def toggle(self, key: str, value: object) -> IncidentFilters:
        self.filters = toggle_filter(self.filters, key, value)
        return self.filters

    def clear(self, key: str) -> IncidentFilters:
        if key == "search":
            self.search.cancel()
        self.filters = reset_dimension(self.filters, key)
        return self.filters

    def reset(self) -> IncidentFilters:
        self.search.cancel()
        self.filters = default_filters()
        return self.filters

    def type_search(self, text: str, now: Optional[float] = None) -> None:
        self.search.submit(text, now)

    def tick(self, now: Optional[float] = None) -> bool:
        """Commit the debounced search text if its quiet window elapsed."""
        value = self.search.poll(now)
        if value is None:
            return False
        committed = (value or "").strip()
        if committed == self.filters.search:
            return False
        self.update({"search": committed})
        return True

    # ---------------- Views ----------------
    def view(self) -> DashboardView:
        return build_view(self.rows, self.filters)

    def options(self) -> dict:
        return filter_options(self.rows)
