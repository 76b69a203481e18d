from fastapi import Request

from datapanel.db import get_db
from datapanel.services.layout import LayoutHooks, get_layout_hooks
from datapanel.services.registry import DataTableRegistry, get_registry


def get_current_user(request: Request) -> dict:
    """Identity of the caller as seen by ``DataTable.can_access``.

    Hosts override this dependency with their own authentication. The default
    reads the ``X-User-Id`` and ``X-User-Roles`` headers set by an upstream
    proxy.
    """
    roles = request.headers.get("X-User-Roles", "")
    return {
        "user_id": request.headers.get("X-User-Id"),
        "roles": [role.strip() for role in roles.split(",") if role.strip()],
    }


def get_table_registry() -> DataTableRegistry:
    return get_registry()


def get_hooks() -> LayoutHooks:
    return get_layout_hooks()


__all__ = [
    "get_db",
    "get_current_user",
    "get_hooks",
    "get_table_registry",
]
