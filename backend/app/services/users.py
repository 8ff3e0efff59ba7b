"""User role assignments and the questions asked about them.

Mutations lock the user row first, change the assignment set, then
rebuild the user's right assignments before returning. Everything
happens in the caller's transaction.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.hierarchy import SupervisoryHierarchy
from app.auth.query import RightQuery
from app.auth.resolver import AuthorizationResolver, Grant, check_role_accepted
from app.middleware.exceptions import ResourceNotFoundError, ValidationMessageError
from app.models.facility import Facility
from app.models.program import Program
from app.models.right import RightType
from app.models.role_assignment import AssignmentType, RoleAssignment
from app.models.supervisory_node import SupervisoryNode
from app.models.user import User
from app.schemas.users import RoleAssignmentIn
from app.services.access import (
    build_right_query,
    ensure_exists,
    get_right,
    get_user,
    has_supervision_grants,
    load_access_view,
    load_catalog,
    load_hierarchy,
    load_right_def,
    load_role_defs,
)
from app.services.right_assignments import rebuild_for

logger = logging.getLogger(__name__)


# ── Assignment mutation ─────────────────────────────────────

def _assignment_key(a) -> tuple:
    return (
        a.role_id,
        a.assignment_type,
        a.program_id,
        a.supervisory_node_id,
        a.warehouse_id,
    )


async def _build_assignment(
    db: AsyncSession, user: User, body: RoleAssignmentIn
) -> RoleAssignment:
    roles = await load_role_defs(db, {body.role_id})
    if body.role_id not in roles:
        raise ResourceNotFoundError("Role", body.role_id)

    grant = Grant(
        kind=body.type,
        role=roles[body.role_id],
        program_id=body.program_id,
        supervisory_node_id=body.supervisory_node_id,
        warehouse_id=body.warehouse_id,
    )
    check_role_accepted(grant.kind, grant.role)

    await ensure_exists(db, Program, body.program_id, "Program")
    await ensure_exists(db, SupervisoryNode, body.supervisory_node_id, "SupervisoryNode")
    await ensure_exists(db, Facility, body.warehouse_id, "Warehouse")

    return RoleAssignment(
        user_id=user.id,
        role_id=body.role_id,
        assignment_type=body.type,
        program_id=body.program_id,
        supervisory_node_id=body.supervisory_node_id,
        warehouse_id=body.warehouse_id,
    )


async def replace_role_assignments(
    db: AsyncSession,
    user_id: str,
    assignments: list[RoleAssignmentIn],
) -> list[RoleAssignment]:
    """Swap the user's whole assignment set; duplicates collapse to one."""
    user = await get_user(db, user_id, lock=True)

    built: dict[tuple, RoleAssignment] = {}
    for body in assignments:
        assignment = await _build_assignment(db, user, body)
        built.setdefault(_assignment_key(assignment), assignment)

    user.role_assignments.clear()
    await db.flush()
    user.role_assignments.extend(built.values())
    await db.flush()
    logger.info("Replaced role assignments of user %s (%d)", user_id, len(built))

    await rebuild_for(db, user_id)
    return list(built.values())


async def add_role_assignment(
    db: AsyncSession, user_id: str, body: RoleAssignmentIn
) -> RoleAssignment:
    """Add one assignment; adding one the user already holds is a no-op."""
    user = await get_user(db, user_id, lock=True)
    assignment = await _build_assignment(db, user, body)

    key = _assignment_key(assignment)
    for existing in user.role_assignments:
        if _assignment_key(existing) == key:
            return existing

    user.role_assignments.append(assignment)
    await db.flush()
    logger.info(
        "Added %s assignment of role %s to user %s",
        assignment.assignment_type.value, assignment.role_id, user_id,
    )

    await rebuild_for(db, user_id)
    return assignment


async def remove_role_assignment(db: AsyncSession, user_id: str, assignment_id: str) -> None:
    user = await get_user(db, user_id, lock=True)

    for assignment in user.role_assignments:
        if assignment.id == assignment_id:
            break
    else:
        raise ResourceNotFoundError("RoleAssignment", assignment_id)

    user.role_assignments.remove(assignment)
    await db.flush()
    logger.info("Removed role assignment %s from user %s", assignment_id, user_id)

    await rebuild_for(db, user_id)


async def delete_user(db: AsyncSession, user_id: str) -> None:
    """Delete the user with its role and right assignments."""
    user = await get_user(db, user_id, lock=True)
    await db.delete(user)
    await db.flush()
    logger.info("Deleted user %s", user_id)


# ── Right checks ────────────────────────────────────────────

async def _resolver_for(db: AsyncSession, view, right_type: RightType) -> AuthorizationResolver:
    """Only supervision checks walk the hierarchy; skip loading it otherwise."""
    catalog = await load_catalog(db)
    if right_type == RightType.SUPERVISION and has_supervision_grants(view):
        return AuthorizationResolver(catalog, await load_hierarchy(db))
    return AuthorizationResolver(catalog, SupervisoryHierarchy())


async def has_right(
    db: AsyncSession,
    user_id: str,
    right_id: str,
    program_id: str | None = None,
    facility_id: str | None = None,
    warehouse_id: str | None = None,
    supervisory_node_id: str | None = None,
) -> bool:
    view = await load_access_view(db, user_id)
    query = await build_right_query(
        db,
        right_id,
        program_id=program_id,
        facility_id=facility_id,
        warehouse_id=warehouse_id,
        supervisory_node_id=supervisory_node_id,
    )
    resolver = await _resolver_for(db, view, query.right.type)
    result = resolver.has_right(view, query)
    logger.info(
        "hasRight user=%s right=%s program=%s facility=%s node=%s -> %s",
        user_id, query.right.name, query.program_id, query.facility_id,
        query.supervisory_node_id, result,
    )
    return result


async def check_admin_right(db: AsyncSession, user_id: str, right_name: str) -> bool:
    """Unscoped check of a general admin right, by name."""
    view = await load_access_view(db, user_id)
    catalog = await load_catalog(db)
    right = catalog.get(right_name)
    if right is None:
        return False
    return AuthorizationResolver(catalog).has_right(view, RightQuery(right))


async def supervised_facilities(
    db: AsyncSession, user_id: str, right_id: str, program_id: str
) -> list[Facility]:
    right = await load_right_def(db, await get_right(db, right_id))
    if right.type != RightType.SUPERVISION:
        raise ValidationMessageError(
            f"Right {right.name} is not a supervision right",
            error_code="RIGHT_NOT_SUPERVISION",
        )
    await ensure_exists(db, Program, program_id, "Program")

    view = await load_access_view(db, user_id)
    resolver = AuthorizationResolver(await load_catalog(db), await load_hierarchy(db))
    return await _facilities(db, resolver.supervised_facilities(view, right, program_id))


async def fulfillment_facilities(db: AsyncSession, user_id: str, right_id: str) -> list[Facility]:
    right = await load_right_def(db, await get_right(db, right_id))
    if right.type != RightType.ORDER_FULFILLMENT:
        raise ValidationMessageError(
            f"Right {right.name} is not an order fulfillment right",
            error_code="RIGHT_NOT_FULFILLMENT",
        )

    view = await load_access_view(db, user_id)
    resolver = AuthorizationResolver(await load_catalog(db))
    return await _facilities(db, resolver.fulfillment_facilities(view, right))


async def _facilities(db: AsyncSession, facility_ids) -> list[Facility]:
    if not facility_ids:
        return []
    result = await db.execute(
        select(Facility).where(Facility.id.in_(facility_ids)).order_by(Facility.code)
    )
    return list(result.scalars())


# ── Who holds a right ───────────────────────────────────────

async def right_search(
    db: AsyncSession,
    right_id: str,
    program_id: str | None = None,
    supervisory_node_id: str | None = None,
    warehouse_id: str | None = None,
) -> list[User]:
    """Users holding the right.

    ORDER_FULFILLMENT rights need a warehouse and SUPERVISION rights need a
    program (a node narrows it further). Any other type looks at direct
    assignments only.
    """
    right = await load_right_def(db, await get_right(db, right_id))

    candidates = select(RoleAssignment.user_id).distinct()
    if right.type == RightType.ORDER_FULFILLMENT:
        if warehouse_id is None:
            raise ValidationMessageError(
                "A warehouse is required to search an order fulfillment right",
                error_code="RIGHT_SEARCH_WAREHOUSE_REQUIRED",
            )
        await ensure_exists(db, Facility, warehouse_id, "Warehouse")
        kind = AssignmentType.FULFILLMENT
        candidates = candidates.where(RoleAssignment.warehouse_id == warehouse_id)
    elif right.type == RightType.SUPERVISION:
        if program_id is None:
            raise ValidationMessageError(
                "A program is required to search a supervision right",
                error_code="RIGHT_SEARCH_PROGRAM_REQUIRED",
            )
        await ensure_exists(db, Program, program_id, "Program")
        await ensure_exists(db, SupervisoryNode, supervisory_node_id, "SupervisoryNode")
        kind = AssignmentType.SUPERVISION
        candidates = candidates.where(RoleAssignment.program_id == program_id)
        if supervisory_node_id is not None:
            candidates = candidates.where(
                RoleAssignment.supervisory_node_id == supervisory_node_id
            )
    else:
        kind = AssignmentType.DIRECT
    candidates = candidates.where(RoleAssignment.assignment_type == kind)

    resolver = AuthorizationResolver(await load_catalog(db))
    holders: list[str] = []
    for user_id in (await db.execute(candidates)).scalars().all():
        view = await load_access_view(db, user_id)
        if kind is AssignmentType.SUPERVISION and supervisory_node_id is not None:
            query = RightQuery(
                right, program_id=program_id, supervisory_node_id=supervisory_node_id
            )
            held = resolver.has_right(view, query)
        elif kind is AssignmentType.SUPERVISION:
            held = any(
                resolver.grant_contains(g, right.name)
                for g in view.grants_of(kind)
                if g.program_id == program_id
            )
        elif kind is AssignmentType.FULFILLMENT:
            held = resolver.has_right(view, RightQuery.for_warehouse(right, warehouse_id))
        else:
            held = resolver.has_right(view, RightQuery(right))
        if held:
            holders.append(user_id)

    if not holders:
        return []
    result = await db.execute(
        select(User).where(User.id.in_(holders)).order_by(User.username)
    )
    return list(result.scalars())
