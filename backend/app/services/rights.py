"""Right catalog maintenance: save by name, delete, search."""

from __future__ import annotations

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.rights import validate_right
from app.middleware.exceptions import (
    ReferentialIntegrityError,
    ResourceNotFoundError,
    ValidationMessageError,
)
from app.models.right import Right, RightType, right_attachments
from app.models.role import role_rights
from app.models.role_assignment import RoleAssignment
from app.schemas.rights import RightIn
from app.services.access import get_right, load_catalog, load_right_def
from app.services.right_assignments import rebuild_many

logger = logging.getLogger(__name__)


async def _users_holding_right(db: AsyncSession, right_name: str) -> set[str]:
    """Users whose roles contain the right or a right that attaches it."""
    catalog = await load_catalog(db)
    names = catalog.implied_by(right_name) | {right_name}
    result = await db.execute(
        select(RoleAssignment.user_id)
        .join(role_rights, role_rights.c.role_id == RoleAssignment.role_id)
        .join(Right, Right.id == role_rights.c.right_id)
        .where(Right.name.in_(names))
        .distinct()
    )
    return set(result.scalars())


async def _ensure_type_unlocked(db: AsyncSession, right: Right) -> None:
    """A right's type is fixed while roles hold it or other rights attach it."""
    roles_holding = (
        await db.execute(
            select(func.count()).select_from(role_rights).where(
                role_rights.c.right_id == right.id
            )
        )
    ).scalar_one()
    if roles_holding:
        raise ValidationMessageError(
            f"Right {right.name} is held by {roles_holding} role(s); "
            f"its type cannot change",
            error_code="RIGHT_TYPE_LOCKED",
        )

    attached_by = list(
        (
            await db.execute(
                select(Right.name)
                .join(right_attachments, right_attachments.c.right_id == Right.id)
                .where(
                    right_attachments.c.attachment_id == right.id,
                    Right.id != right.id,
                )
                .order_by(Right.name)
            )
        ).scalars()
    )
    if attached_by:
        raise ValidationMessageError(
            f"Right {right.name} is attached to {', '.join(attached_by)}; "
            f"its type cannot change",
            error_code="RIGHT_TYPE_LOCKED",
            details={"attached_by": attached_by},
        )


async def save_right(db: AsyncSession, body: RightIn) -> Right:
    """Create the right, or update the one with the same name in place."""
    if not body.name or not body.name.strip():
        raise ValidationMessageError(
            "Right name must not be blank", error_code="RIGHT_NAME_REQUIRED"
        )

    attachments: list[Right] = []
    for name in dict.fromkeys(body.attachments):
        if name == body.name:
            continue
        attached = (
            await db.execute(select(Right).where(Right.name == name))
        ).scalar_one_or_none()
        if attached is None:
            raise ResourceNotFoundError("Right", name)
        attachments.append(attached)

    validate_right(
        body.name, body.type, [await load_right_def(db, a) for a in attachments]
    )

    right = (
        await db.execute(
            select(Right)
            .where(Right.name == body.name)
            .options(selectinload(Right.attachments))
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()

    if right is None:
        right = Right(
            name=body.name,
            type=body.type,
            description=body.description,
            attachments=attachments,
        )
        db.add(right)
        await db.flush()
        logger.info("Created right %s (%s)", right.name, right.type.value)
        return right

    if right.type != body.type:
        await _ensure_type_unlocked(db, right)

    right.type = body.type
    right.description = body.description
    right.attachments = attachments
    await db.flush()
    logger.info("Updated right %s (%s)", right.name, right.type.value)

    # Attachments changed what holders of this right (and of rights
    # attaching it) expand to
    await rebuild_many(db, await _users_holding_right(db, right.name))
    return right


async def delete_right(db: AsyncSession, right_id: str) -> None:
    right = await get_right(db, right_id)

    roles_holding = (
        await db.execute(
            select(func.count()).select_from(role_rights).where(
                role_rights.c.right_id == right.id
            )
        )
    ).scalar_one()
    if roles_holding:
        raise ReferentialIntegrityError("Right", right.name, "roles", roles_holding)

    affected = await _users_holding_right(db, right.name)

    # Links from other rights; the right's own attachments go with it
    await db.execute(
        delete(right_attachments).where(
            right_attachments.c.attachment_id == right.id,
            right_attachments.c.right_id != right.id,
        )
    )
    await db.delete(right)
    await db.flush()
    logger.info("Deleted right %s", right.name)

    await rebuild_many(db, affected)


async def search_rights(
    db: AsyncSession,
    name: str | None = None,
    type: str | None = None,
) -> list[Right]:
    stmt = select(Right).order_by(Right.name)
    if name is not None:
        stmt = stmt.where(Right.name == name)
    if type is not None:
        try:
            right_type = RightType(type)
        except ValueError:
            valid = ", ".join(t.value for t in RightType)
            raise ValidationMessageError(
                f"Unknown right type {type!r}; expected one of: {valid}",
                error_code="RIGHT_TYPE_UNKNOWN",
            ) from None
        stmt = stmt.where(Right.type == right_type)
    return list((await db.execute(stmt)).scalars())
