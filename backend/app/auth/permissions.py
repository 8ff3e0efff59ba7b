"""Rights this service checks itself.

Right naming: `<RESOURCE>_<ACTION>`, upper case. Every other right in
the catalog belongs to the services that ask about it; only the names
below are enforced here.
"""

from __future__ import annotations

from app.models.right import RightType


USERS_MANAGE = "USERS_MANAGE"
RIGHTS_VIEW = "RIGHTS_VIEW"


# ── Admin rights seeded on a fresh install ─────────────────

ADMIN_RIGHTS: dict[str, RightType] = {
    USERS_MANAGE: RightType.GENERAL_ADMIN,
    RIGHTS_VIEW: RightType.GENERAL_ADMIN,
}

# Managing users implies seeing which rights exist
ADMIN_ATTACHMENTS: dict[str, list[str]] = {
    USERS_MANAGE: [RIGHTS_VIEW],
}
