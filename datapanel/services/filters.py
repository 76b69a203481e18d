from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import String, and_, cast
from sqlalchemy.sql.elements import ClauseElement, ColumnElement

logger = logging.getLogger(__name__)

FILTER_TYPES = {"select", "search", "date_range"}
ALL_TOKEN = "all"
RANGE_SEPARATOR = ","

FilterExpressionBuilder = Callable[[str], ClauseElement]


class FilterValidationError(ValueError):
    """Raised when a filter control value cannot be turned into a predicate."""


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def contains_pattern(term: str) -> str:
    return f"%{escape_like(term)}%"


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except (TypeError, ValueError) as exc:
        raise FilterValidationError("Expected an ISO date value (YYYY-MM-DD)") from exc


@dataclass(frozen=True)
class FilterControl:
    """A filter control rendered above the grid and applied as a base predicate.

    ``expression`` is the column the value is compared against. ``builder``
    overrides the comparison entirely and receives the raw value.
    """

    key: str
    type: str = "select"
    label: str = ""
    options: dict[str, str] = field(default_factory=dict)
    default: str | None = None
    placeholder: str = ""
    expression: ColumnElement | None = None
    builder: FilterExpressionBuilder | None = None

    def __post_init__(self) -> None:
        if not self.key:
            raise ValueError("filter key is required")
        if self.type not in FILTER_TYPES:
            raise ValueError(f"Unsupported filter type: {self.type}")

    @property
    def element_id(self) -> str:
        return f"{self.key}-filter"

    @property
    def param_name(self) -> str:
        return f"{self.key}_filter"

    def effective_value(self, values: Mapping[str, str]) -> str | None:
        value = values.get(self.key)
        if value is None or value == "":
            return self.default
        return value

    def predicate(self, value: str | None) -> ClauseElement | None:
        if value is None or value == "" or value == ALL_TOKEN:
            return None
        if self.builder is not None:
            return self.builder(value)
        if self.expression is None:
            logger.warning("filter_without_expression key=%s", self.key)
            return None

        if self.type == "select":
            if self.options and value not in self.options:
                raise FilterValidationError(f"Invalid option for {self.key}: {value}")
            return self.expression == value
        if self.type == "search":
            term = value.strip()
            if not term:
                return None
            return cast(self.expression, String).ilike(contains_pattern(term), escape="\\")
        return self._date_range_predicate(value)

    def _date_range_predicate(self, value: str) -> ClauseElement | None:
        start_raw, _, end_raw = value.partition(RANGE_SEPARATOR)
        clauses = []
        if start_raw.strip():
            clauses.append(self.expression >= _parse_date(start_raw))
        if end_raw.strip():
            clauses.append(self.expression <= _parse_date(end_raw))
        if not clauses:
            return None
        return and_(*clauses)


def build_filter_predicates(
    controls: Iterable[FilterControl], values: Mapping[str, str]
) -> list[ClauseElement]:
    predicates: list[ClauseElement] = []
    for control in controls:
        predicate = control.predicate(control.effective_value(values))
        if predicate is not None:
            predicates.append(predicate)
    return predicates


def filter_values_from_params(
    controls: Iterable[FilterControl], params: Mapping[str, Any]
) -> dict[str, str]:
    """Read ``<key>_filter`` query parameters for the declared controls."""
    values: dict[str, str] = {}
    for control in controls:
        raw = params.get(control.param_name)
        if raw not in (None, ""):
            values[control.key] = str(raw)
    return values
