"""Load authorization snapshots from the database.

The resolver works on frozen values. Everything here reads rows and turns
them into those values:
  load_catalog       → RightCatalog of every right with its attachments
  load_hierarchy     → SupervisoryHierarchy of nodes and requisition groups
  load_access_view   → UserAccessView of one user's grants
  build_right_query  → RightQuery from request ids, checking they exist

Association tables are read with plain selects instead of walking ORM
collections, so nothing lazy-loads under the async session.
"""

from __future__ import annotations

from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.hierarchy import GroupRecord, NodeRecord, SupervisoryHierarchy
from app.auth.query import RightQuery
from app.auth.resolver import Grant, UserAccessView
from app.auth.rights import RightCatalog, RightDef, RoleDef
from app.middleware.exceptions import ResourceNotFoundError, ValidationMessageError
from app.models.facility import Facility
from app.models.program import Program
from app.models.requisition_group import (
    RequisitionGroup,
    requisition_group_members,
    requisition_group_programs,
)
from app.models.right import Right, right_attachments
from app.models.role import Role, role_rights
from app.models.role_assignment import AssignmentType, RoleAssignment
from app.models.supervisory_node import SupervisoryNode
from app.models.user import User


async def load_catalog(db: AsyncSession) -> RightCatalog:
    rights = (await db.execute(select(Right.id, Right.name, Right.type))).all()
    names_by_id = {row.id: row.name for row in rights}

    attached: dict[str, set[str]] = defaultdict(set)
    links = await db.execute(
        select(right_attachments.c.right_id, right_attachments.c.attachment_id)
    )
    for right_id, attachment_id in links:
        if attachment_id in names_by_id:
            attached[right_id].add(names_by_id[attachment_id])

    return RightCatalog(
        RightDef(row.name, row.type, frozenset(attached[row.id])) for row in rights
    )


async def load_hierarchy(db: AsyncSession) -> SupervisoryHierarchy:
    nodes = (
        await db.execute(
            select(
                SupervisoryNode.id,
                SupervisoryNode.code,
                SupervisoryNode.parent_id,
                SupervisoryNode.facility_id,
            )
        )
    ).all()

    members: dict[str, set[str]] = defaultdict(set)
    for group_id, facility_id in await db.execute(
        select(
            requisition_group_members.c.requisition_group_id,
            requisition_group_members.c.facility_id,
        )
    ):
        members[group_id].add(facility_id)

    programs: dict[str, set[str]] = defaultdict(set)
    for group_id, program_id in await db.execute(
        select(
            requisition_group_programs.c.requisition_group_id,
            requisition_group_programs.c.program_id,
        )
    ):
        programs[group_id].add(program_id)

    groups = (
        await db.execute(select(RequisitionGroup.id, RequisitionGroup.supervisory_node_id))
    ).all()

    return SupervisoryHierarchy(
        nodes=[NodeRecord(n.id, n.code, n.parent_id, n.facility_id) for n in nodes],
        groups=[
            GroupRecord(
                id=g.id,
                node_id=g.supervisory_node_id,
                member_ids=frozenset(members[g.id]),
                program_ids=frozenset(programs[g.id]),
            )
            for g in groups
        ],
    )


async def load_role_defs(db: AsyncSession, role_ids: set[str]) -> dict[str, RoleDef]:
    """RoleDefs keyed by role id, with each right's attachments filled in."""
    if not role_ids:
        return {}

    rows = (
        await db.execute(
            select(role_rights.c.role_id, Right.id, Right.name, Right.type)
            .join(Right, Right.id == role_rights.c.right_id)
            .where(role_rights.c.role_id.in_(role_ids))
        )
    ).all()

    right_ids = {row.id for row in rows}
    attached: dict[str, set[str]] = defaultdict(set)
    if right_ids:
        links = await db.execute(
            select(right_attachments.c.right_id, Right.name)
            .join(Right, Right.id == right_attachments.c.attachment_id)
            .where(right_attachments.c.right_id.in_(right_ids))
        )
        for right_id, name in links:
            attached[right_id].add(name)

    rights_by_role: dict[str, set[RightDef]] = defaultdict(set)
    for row in rows:
        rights_by_role[row.role_id].add(
            RightDef(row.name, row.type, frozenset(attached[row.id]))
        )

    names = dict(
        (await db.execute(select(Role.id, Role.name).where(Role.id.in_(role_ids)))).all()
    )
    return {
        role_id: RoleDef(names[role_id], frozenset(rights_by_role[role_id]))
        for role_id in role_ids
        if role_id in names
    }


def grant_for(assignment: RoleAssignment, role: RoleDef) -> Grant:
    return Grant(
        kind=assignment.assignment_type,
        role=role,
        program_id=assignment.program_id,
        supervisory_node_id=assignment.supervisory_node_id,
        warehouse_id=assignment.warehouse_id,
    )


async def get_user(db: AsyncSession, user_id: str, *, lock: bool = False) -> User:
    """Load a user, optionally locking the row for the rest of the transaction.

    The lock serializes assignment changes per user: two requests editing
    the same user queue up on this row, other users are unaffected.
    """
    stmt = (
        select(User)
        .where(User.id == user_id)
        .options(selectinload(User.role_assignments))
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update()
    user = (await db.execute(stmt)).scalar_one_or_none()
    if user is None:
        raise ResourceNotFoundError("User", user_id)
    return user


async def load_access_view(db: AsyncSession, user_id: str) -> UserAccessView:
    user = await get_user(db, user_id)
    assignments = list(user.role_assignments)
    roles = await load_role_defs(db, {a.role_id for a in assignments})
    return UserAccessView(
        user_id=user.id,
        home_facility_id=user.home_facility_id,
        grants=tuple(grant_for(a, roles[a.role_id]) for a in assignments),
    )


async def get_right(db: AsyncSession, right_id: str) -> Right:
    right = await db.get(Right, right_id)
    if right is None:
        raise ResourceNotFoundError("Right", right_id)
    return right


async def load_right_def(db: AsyncSession, right: Right) -> RightDef:
    attachments = await db.execute(
        select(Right.name)
        .join(right_attachments, right_attachments.c.attachment_id == Right.id)
        .where(right_attachments.c.right_id == right.id)
    )
    return RightDef(right.name, right.type, frozenset(attachments.scalars()))


async def ensure_exists(db: AsyncSession, model, identifier: str | None, label: str) -> None:
    if identifier is None:
        return
    if await db.get(model, identifier) is None:
        raise ResourceNotFoundError(label, identifier)


async def build_right_query(
    db: AsyncSession,
    right_id: str,
    program_id: str | None = None,
    facility_id: str | None = None,
    warehouse_id: str | None = None,
    supervisory_node_id: str | None = None,
) -> RightQuery:
    """Resolve request ids into a RightQuery.

    A warehouse stands alone: it is the facility of a fulfillment query and
    cannot be mixed with a program, facility or supervisory node.
    """
    right = await load_right_def(db, await get_right(db, right_id))

    await ensure_exists(db, Program, program_id, "Program")
    await ensure_exists(db, Facility, facility_id, "Facility")
    await ensure_exists(db, Facility, warehouse_id, "Warehouse")
    await ensure_exists(db, SupervisoryNode, supervisory_node_id, "SupervisoryNode")

    if warehouse_id is not None:
        if any(i is not None for i in (program_id, facility_id, supervisory_node_id)):
            raise ValidationMessageError(
                "A warehouse cannot be combined with a program, facility or supervisory node",
                error_code="RIGHT_QUERY_WAREHOUSE_COMBINED",
            )
        return RightQuery.for_warehouse(right, warehouse_id)

    return RightQuery(
        right,
        program_id=program_id,
        facility_id=facility_id,
        supervisory_node_id=supervisory_node_id,
    )


def has_supervision_grants(view: UserAccessView) -> bool:
    return any(g.kind is AssignmentType.SUPERVISION for g in view.grants)
