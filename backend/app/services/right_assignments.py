"""Right assignment index: the flattened (user, right, facility, program) rows.

Role assignments are the source of truth. This module recomputes a
user's rows from scratch every time those change, inside the caller's
transaction, so readers never see a half-built index.

Rows per grant kind (r ranges over the role's expanded rights):
  direct                    (r, None, None)
  supervision with node     (r, f, program) for each facility f the node
                            subtree supervises, or (r, None, program)
                            when it supervises none
  supervision without node  (r, home facility, program), or
                            (r, None, program) without a home facility
  fulfillment               (r, warehouse, None), ORDER_FULFILLMENT only
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.hierarchy import SupervisoryHierarchy
from app.auth.resolver import UserAccessView
from app.auth.rights import RightCatalog
from app.models.right import RightType
from app.models.right_assignment import RightAssignment
from app.models.role_assignment import AssignmentType
from app.models.user import User
from app.services.access import get_user, load_access_view, load_catalog, load_hierarchy

logger = logging.getLogger(__name__)


class RightAssignmentKey(NamedTuple):
    right_name: str
    facility_id: str | None
    program_id: str | None


def flatten(
    view: UserAccessView,
    catalog: RightCatalog,
    hierarchy: SupervisoryHierarchy,
) -> set[RightAssignmentKey]:
    keys: set[RightAssignmentKey] = set()

    for grant in view.grants:
        names = catalog.expand_role(grant.role)

        if grant.kind is AssignmentType.DIRECT:
            keys.update(RightAssignmentKey(name, None, None) for name in names)

        elif grant.kind is AssignmentType.SUPERVISION:
            if grant.supervisory_node_id is not None:
                facilities = hierarchy.supervised_facilities(
                    grant.supervisory_node_id, grant.program_id
                ) or {None}
            else:
                facilities = {view.home_facility_id}
            keys.update(
                RightAssignmentKey(name, facility_id, grant.program_id)
                for name in names
                for facility_id in facilities
            )

        elif grant.kind is AssignmentType.FULFILLMENT:
            for name in names:
                right = catalog.get(name)
                if right is not None and right.type == RightType.ORDER_FULFILLMENT:
                    keys.add(RightAssignmentKey(name, grant.warehouse_id, None))

        else:
            raise ValueError(f"Unknown assignment type: {grant.kind!r}")

    return keys


async def rebuild_for(
    db: AsyncSession,
    user_id: str,
    *,
    catalog: RightCatalog | None = None,
    hierarchy: SupervisoryHierarchy | None = None,
) -> set[RightAssignmentKey]:
    """Replace the user's right assignments with a fresh computation.

    Runs in a SAVEPOINT: a failure discards every row change of this
    rebuild and re-raises, leaving the previous index in place.
    """
    view = await load_access_view(db, user_id)
    if catalog is None:
        catalog = await load_catalog(db)
    if hierarchy is None:
        hierarchy = await load_hierarchy(db)

    keys = flatten(view, catalog, hierarchy)

    try:
        async with db.begin_nested():
            await db.execute(
                delete(RightAssignment).where(RightAssignment.user_id == user_id)
            )
            db.add_all(
                RightAssignment(
                    user_id=user_id,
                    right_name=key.right_name,
                    facility_id=key.facility_id,
                    program_id=key.program_id,
                )
                for key in sorted(keys, key=_sort_key)
            )
    except Exception:
        logger.error("Rebuilding right assignments failed for user %s", user_id)
        raise

    logger.info("Rebuilt %d right assignment(s) for user %s", len(keys), user_id)
    return keys


async def rebuild_many(db: AsyncSession, user_ids) -> int:
    """Rebuild several users against one catalog and hierarchy snapshot."""
    user_ids = sorted(set(user_ids))
    if not user_ids:
        return 0

    catalog = await load_catalog(db)
    hierarchy = await load_hierarchy(db)
    for user_id in user_ids:
        await rebuild_for(db, user_id, catalog=catalog, hierarchy=hierarchy)
    return len(user_ids)


async def rebuild_all(db: AsyncSession) -> int:
    user_ids = (await db.execute(select(User.id))).scalars().all()
    count = await rebuild_many(db, user_ids)
    logger.info("Rebuilt right assignments for %d user(s)", count)
    return count


async def permission_strings(db: AsyncSession, user_id: str) -> set[str]:
    """Distinct right names in the user's index."""
    await get_user(db, user_id)
    result = await db.execute(
        select(RightAssignment.right_name)
        .where(RightAssignment.user_id == user_id)
        .distinct()
    )
    return set(result.scalars())


def _sort_key(key: RightAssignmentKey) -> tuple[str, str, str]:
    return (key.right_name, key.facility_id or "", key.program_id or "")
