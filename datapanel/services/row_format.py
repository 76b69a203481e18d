from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from markupsafe import Markup, escape

from datapanel.schemas.datatable import RowIdentity

logger = logging.getLogger(__name__)

ACTIVE_ALIASES = {"aktif"}
COLUMN_OPTION_KEYS = ("width", "className")
COLUMN_FLAG_KEYS = ("orderable", "searchable")


def row_value(row: Any, key: str, default: Any = None) -> Any:
    """Read ``key`` from a mapping, a SQLAlchemy ``Row`` or a plain object."""
    if isinstance(row, Mapping):
        return row.get(key, default)
    mapping = getattr(row, "_mapping", None)
    if mapping is not None:
        return mapping.get(key, default)
    return getattr(row, key, default)


def esc_output(value: Any, fallback: str = "-") -> Markup:
    if value is None or (not value and value != 0 and value != "0"):
        return escape(fallback)
    if isinstance(value, bool):
        value = "1" if value else "0"
    return escape(value)


def panel_row_data(row: Any, entity: str, **extra: Any) -> RowIdentity | None:
    row_id = row_value(row, "id")
    if not entity:
        logger.error("row_identity_missing_entity id=%s", row_id)
        return None
    if not row_id:
        logger.error("row_identity_missing_id entity=%s", entity)
        return None
    return RowIdentity(id=int(row_id), entity=entity, extra=extra)


def status_badge(
    status: str | None,
    active_value: str = "active",
    *,
    active_label: str = "Active",
    inactive_label: str = "Inactive",
    custom_class: str = "",
) -> Markup:
    normalized = (status or "").lower()
    is_active = normalized == active_value.lower() or normalized in ACTIVE_ALIASES
    badge = "success" if is_active else "error"
    label = active_label if is_active else inactive_label
    return Markup('<span class="dp-badge dp-badge-{} {}">{}</span>').format(
        badge, custom_class, label
    )


_BUTTON = Markup(
    '<button type="button" class="button button-small {css}" '
    'data-id="{id}" data-entity="{entity}" title="{title}">'
    '<span class="icon icon-{icon}"></span></button>'
)


def action_buttons(
    row: Any,
    entity: str,
    *,
    can_edit: bool = False,
    can_delete: bool = False,
    show_view: bool = False,
    custom_buttons: Iterable[str] | None = None,
) -> Markup:
    """View, edit and delete buttons addressed by ``data-id``/``data-entity``.

    Returns ``"-"`` when the row cannot be addressed or no button applies.
    Custom buttons are trusted markup and appended as-is.
    """
    if not entity:
        logger.error("action_buttons_missing_entity")
        return Markup("-")
    row_id = row_value(row, "id")
    if not row_id:
        logger.error("action_buttons_missing_id entity=%s", entity)
        return Markup("-")

    buttons: list[Markup] = []
    if show_view:
        buttons.append(
            _BUTTON.format(
                css="dp-panel-trigger", id=row_id, entity=entity, title="View Details", icon="view"
            )
        )
    if can_edit:
        buttons.append(
            _BUTTON.format(
                css=f"{entity}-edit-btn", id=row_id, entity=entity, title="Edit", icon="edit"
            )
        )
    if can_delete:
        buttons.append(
            _BUTTON.format(
                css=f"{entity}-delete-btn", id=row_id, entity=entity, title="Delete", icon="trash"
            )
        )
    for custom in custom_buttons or ():
        buttons.append(Markup(custom))
    if not buttons:
        return Markup("-")
    return Markup(" ").join(buttons)


def columns_config(columns: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    config: list[dict[str, Any]] = []
    for column in columns:
        item: dict[str, Any] = {
            "data": column.get("data", ""),
            "title": column.get("title", ""),
        }
        for key in COLUMN_OPTION_KEYS:
            if key in column:
                item[key] = column[key]
        for key in COLUMN_FLAG_KEYS:
            if key in column:
                item[key] = bool(column[key])
        config.append(item)
    return config
