"""Role maintenance.

A role is a non-empty set of rights of one type. Changing a role's rights
changes what every holder expands to, so update_role rebuilds their
right assignments in the same transaction.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.resolver import check_role_accepted
from app.auth.rights import RoleDef
from app.middleware.exceptions import (
    ReferentialIntegrityError,
    ResourceNotFoundError,
    ValidationMessageError,
)
from app.models.right import Right
from app.models.role import Role
from app.models.role_assignment import RoleAssignment
from app.schemas.rights import RoleIn
from app.services.access import load_right_def
from app.services.right_assignments import rebuild_many

logger = logging.getLogger(__name__)


async def _load_rights(db: AsyncSession, right_ids: list[str]) -> list[Right]:
    rights = []
    for right_id in dict.fromkeys(right_ids):
        right = await db.get(Right, right_id)
        if right is None:
            raise ResourceNotFoundError("Right", right_id)
        rights.append(right)
    return rights


async def _role_def(db: AsyncSession, name: str, rights: list[Right]) -> RoleDef:
    return RoleDef(name, frozenset([await load_right_def(db, r) for r in rights]))


async def get_role(db: AsyncSession, role_id: str) -> Role:
    role = await db.get(Role, role_id)
    if role is None:
        raise ResourceNotFoundError("Role", role_id)
    return role


async def _ensure_name_free(db: AsyncSession, name: str, role_id: str | None = None) -> None:
    stmt = select(Role.id).where(Role.name == name)
    if role_id is not None:
        stmt = stmt.where(Role.id != role_id)
    if (await db.execute(stmt)).first() is not None:
        raise ValidationMessageError(
            f"A role named {name} already exists", error_code="ROLE_NAME_TAKEN"
        )


async def create_role(db: AsyncSession, body: RoleIn) -> Role:
    rights = await _load_rights(db, body.right_ids)
    await _role_def(db, body.name, rights)
    await _ensure_name_free(db, body.name)

    role = Role(name=body.name, description=body.description, rights=rights)
    db.add(role)
    await db.flush()
    logger.info("Created role %s with %d right(s)", role.name, len(rights))
    return role


async def update_role(db: AsyncSession, role_id: str, body: RoleIn) -> Role:
    role = await get_role(db, role_id)
    rights = await _load_rights(db, body.right_ids)
    role_def = await _role_def(db, body.name, rights)
    await _ensure_name_free(db, body.name, role_id=role.id)

    assignments = list(
        (
            await db.execute(select(RoleAssignment).where(RoleAssignment.role_id == role.id))
        ).scalars()
    )
    # The new right type must still fit every existing assignment of the role
    for kind in {a.assignment_type for a in assignments}:
        check_role_accepted(kind, role_def)

    role.name = body.name
    role.description = body.description
    role.rights = rights
    await db.flush()
    logger.info("Updated role %s", role.name)

    await rebuild_many(db, {a.user_id for a in assignments})
    return role


async def delete_role(db: AsyncSession, role_id: str) -> None:
    role = await get_role(db, role_id)

    holders = (
        await db.execute(
            select(func.count(RoleAssignment.id)).where(RoleAssignment.role_id == role.id)
        )
    ).scalar_one()
    if holders:
        raise ReferentialIntegrityError("Role", role.name, "role assignments", holders)

    await db.delete(role)
    await db.flush()
    logger.info("Deleted role %s", role.name)
