"""Right checks for a user: hasRight and permissionStrings."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import Caller, require_self_or_right
from app.auth.permissions import USERS_MANAGE
from app.database import get_db
from app.schemas.users import ResultOut
from app.services.right_assignments import permission_strings
from app.services.users import has_right

router = APIRouter()


@router.get("/{user_id}/hasRight", response_model=ResultOut)
async def check_user_has_right(
    user_id: str,
    right_id: str = Query(..., alias="rightId"),
    program_id: str | None = Query(None, alias="programId"),
    facility_id: str | None = Query(None, alias="facilityId"),
    warehouse_id: str | None = Query(None, alias="warehouseId"),
    supervisory_node_id: str | None = Query(None, alias="supervisoryNodeId"),
    db: AsyncSession = Depends(get_db),
    _caller: Caller = Depends(require_self_or_right(USERS_MANAGE)),
):
    result = await has_right(
        db,
        user_id,
        right_id,
        program_id=program_id,
        facility_id=facility_id,
        warehouse_id=warehouse_id,
        supervisory_node_id=supervisory_node_id,
    )
    return ResultOut(result=result)


@router.get("/{user_id}/permissionStrings", response_model=list[str])
async def get_user_permission_strings(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    _caller: Caller = Depends(require_self_or_right(USERS_MANAGE)),
):
    return sorted(await permission_strings(db, user_id))
