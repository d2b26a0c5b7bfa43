from __future__ import annotations

from typing import Iterable, Optional, Protocol


class PermissionChecker(Protocol):
    def is_authorized(self, identity: str, action: str, resource: str) -> bool: ...


class AllowListPermissionChecker:
    """
    Grants every admin action to identities on a configured allow-list, or to
    the distinguished super-admin. Comparison is case-insensitive.
    """

    def __init__(self, allowed: Iterable[str], super_admin: Optional[str] = None) -> None:
        self._allowed = {a.strip().lower() for a in allowed if a and a.strip()}
        self._super = (super_admin or "").strip().lower() or None

    def is_authorized(self, identity: str, action: str, resource: str) -> bool:
        who = (identity or "").strip().lower()
        if not who or who == "unknown":
            return False
        return who == self._super or who in self._allowed
