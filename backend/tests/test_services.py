"""Tests for the right, role and user services against the database."""

import pytest
from sqlalchemy import func, select

from app.middleware.exceptions import (
    ReferentialIntegrityError,
    ResourceNotFoundError,
    ValidationMessageError,
)
from app.models import AssignmentType, RightAssignment, RightType, Role, RoleAssignment
from app.schemas.rights import RightIn, RoleIn
from app.schemas.users import RoleAssignmentIn
from app.services.right_assignments import permission_strings
from app.services.rights import delete_right, save_right, search_rights
from app.services.roles import create_role, delete_role, update_role
from app.services.users import (
    add_role_assignment,
    delete_user,
    fulfillment_facilities,
    has_right,
    remove_role_assignment,
    replace_role_assignments,
    right_search,
    supervised_facilities,
)


def direct(role) -> RoleAssignmentIn:
    return RoleAssignmentIn(role_id=role.id, type=AssignmentType.DIRECT)


@pytest.mark.db
@pytest.mark.asyncio
class TestRights:
    async def test_save_is_upsert_by_name(self, db_session, build):
        first = await build.right("USERS_MANAGE")
        second = await save_right(
            db_session,
            RightIn(name="USERS_MANAGE", type=RightType.GENERAL_ADMIN, description="Manage users"),
        )
        assert second.id == first.id
        assert second.description == "Manage users"

    async def test_blank_name_rejected(self, db_session):
        with pytest.raises(ValidationMessageError):
            await save_right(db_session, RightIn(name=" ", type=RightType.GENERAL_ADMIN))

    async def test_unknown_attachment(self, db_session):
        with pytest.raises(ResourceNotFoundError):
            await save_right(
                db_session,
                RightIn(name="A", type=RightType.GENERAL_ADMIN, attachments=["MISSING"]),
            )

    async def test_attachment_type_mismatch(self, db_session, build):
        await build.right("REQUISITION_VIEW", RightType.SUPERVISION)
        with pytest.raises(ValidationMessageError) as exc:
            await build.right("USERS_MANAGE", attachments=["REQUISITION_VIEW"])
        assert exc.value.error_code == "RIGHT_ATTACHMENT_TYPE_MISMATCH"

    async def test_type_locked_while_in_a_role(self, db_session, build):
        right = await build.right("REPORTS_VIEW", RightType.REPORTING)
        await build.role("reports", [right])
        with pytest.raises(ValidationMessageError) as exc:
            await save_right(db_session, RightIn(name="REPORTS_VIEW", type=RightType.GENERAL_ADMIN))
        assert exc.value.error_code == "RIGHT_TYPE_LOCKED"

    async def test_type_locked_while_attached_by_another_right(self, db_session, build):
        await build.right("REQUISITION_VIEW", RightType.SUPERVISION)
        await build.right("REQUISITION_APPROVE", RightType.SUPERVISION, attachments=["REQUISITION_VIEW"])
        with pytest.raises(ValidationMessageError) as exc:
            await save_right(
                db_session, RightIn(name="REQUISITION_VIEW", type=RightType.GENERAL_ADMIN)
            )
        assert exc.value.error_code == "RIGHT_TYPE_LOCKED"
        assert exc.value.details == {"attached_by": ["REQUISITION_APPROVE"]}

    async def test_type_change_allowed_when_unreferenced(self, db_session, build):
        await build.right("REPORTS_VIEW", RightType.REPORTING)
        saved = await save_right(
            db_session, RightIn(name="REPORTS_VIEW", type=RightType.GENERAL_ADMIN)
        )
        assert saved.type == RightType.GENERAL_ADMIN

    async def test_resave_right_not_held_in_session(self, db_session):
        await save_right(db_session, RightIn(name="RIGHTS_VIEW", type=RightType.GENERAL_ADMIN))
        await save_right(db_session, RightIn(name="USERS_MANAGE", type=RightType.GENERAL_ADMIN))
        db_session.expunge_all()

        saved = await save_right(
            db_session,
            RightIn(
                name="USERS_MANAGE",
                type=RightType.GENERAL_ADMIN,
                description="Manage users",
                attachments=["RIGHTS_VIEW"],
            ),
        )
        assert saved.description == "Manage users"
        assert [a.name for a in saved.attachments] == ["RIGHTS_VIEW"]

    async def test_new_attachment_reaches_holders(self, db_session, build):
        await build.right("RIGHTS_VIEW")
        manage = await build.right("USERS_MANAGE")
        role = await build.role("admin", [manage])
        user = await build.user()
        await add_role_assignment(db_session, user.id, direct(role))
        assert await permission_strings(db_session, user.id) == {"USERS_MANAGE"}

        await build.right("USERS_MANAGE", attachments=["RIGHTS_VIEW"])
        assert await permission_strings(db_session, user.id) == {"USERS_MANAGE", "RIGHTS_VIEW"}

    async def test_delete_blocked_while_in_a_role(self, db_session, build):
        right = await build.right("USERS_MANAGE")
        await build.role("admin", [right])
        with pytest.raises(ReferentialIntegrityError) as exc:
            await delete_right(db_session, right.id)
        assert exc.value.status_code == 409

    async def test_delete_removes_attachment_links(self, db_session, build):
        view = await build.right("RIGHTS_VIEW")
        manage = await build.right("USERS_MANAGE", attachments=["RIGHTS_VIEW"])
        role = await build.role("admin", [manage])
        user = await build.user()
        await add_role_assignment(db_session, user.id, direct(role))
        assert "RIGHTS_VIEW" in await permission_strings(db_session, user.id)

        await delete_right(db_session, view.id)

        assert await search_rights(db_session, name="RIGHTS_VIEW") == []
        assert await permission_strings(db_session, user.id) == {"USERS_MANAGE"}

    async def test_delete_unknown(self, db_session):
        with pytest.raises(ResourceNotFoundError):
            await delete_right(db_session, "missing")

    async def test_search_by_type(self, db_session, build):
        await build.right("USERS_MANAGE")
        await build.right("REQUISITION_VIEW", RightType.SUPERVISION)
        found = await search_rights(db_session, type="SUPERVISION")
        assert [r.name for r in found] == ["REQUISITION_VIEW"]

    async def test_search_unknown_type(self, db_session):
        with pytest.raises(ValidationMessageError) as exc:
            await search_rights(db_session, type="NOPE")
        assert "GENERAL_ADMIN" in exc.value.message


@pytest.mark.db
@pytest.mark.asyncio
class TestRoles:
    async def test_empty_role_rejected(self, db_session):
        with pytest.raises(ValidationMessageError) as exc:
            await create_role(db_session, RoleIn(name="empty"))
        assert exc.value.error_code == "ROLE_RIGHTS_REQUIRED"
        count = (await db_session.execute(select(func.count(Role.id)))).scalar_one()
        assert count == 0

    async def test_mixed_types_rejected(self, db_session, build):
        admin = await build.right("USERS_MANAGE")
        approve = await build.right("REQUISITION_APPROVE", RightType.SUPERVISION)
        with pytest.raises(ValidationMessageError):
            await build.role("mixed", [admin, approve])

    async def test_unknown_right(self, db_session):
        with pytest.raises(ResourceNotFoundError):
            await create_role(db_session, RoleIn(name="r", right_ids=["missing"]))

    async def test_duplicate_name(self, db_session, build):
        right = await build.right("USERS_MANAGE")
        await build.role("admin", [right])
        with pytest.raises(ValidationMessageError) as exc:
            await build.role("admin", [right])
        assert exc.value.error_code == "ROLE_NAME_TAKEN"

    async def test_delete_role_while_assigned(self, db_session, build):
        right = await build.right("SYSTEM_SETTINGS_MANAGE")
        role = await build.role("admin", [right])
        user = await build.user()
        await add_role_assignment(db_session, user.id, direct(role))

        with pytest.raises(ReferentialIntegrityError) as exc:
            await delete_role(db_session, role.id)
        assert exc.value.error_code == "REFERENTIAL_INTEGRITY"

        still_there = (
            await db_session.execute(select(Role).where(Role.name == "admin"))
        ).scalar_one()
        assert still_there.id == role.id

    async def test_delete_unassigned_role(self, db_session, build):
        right = await build.right("USERS_MANAGE")
        role = await build.role("admin", [right])
        await delete_role(db_session, role.id)
        assert (await db_session.execute(select(Role))).first() is None

    async def test_update_rebuilds_holders(self, db_session, build):
        manage = await build.right("USERS_MANAGE")
        settings_right = await build.right("SYSTEM_SETTINGS_MANAGE")
        role = await build.role("admin", [manage])
        user = await build.user()
        await add_role_assignment(db_session, user.id, direct(role))

        await update_role(
            db_session, role.id, RoleIn(name="admin", right_ids=[manage.id, settings_right.id])
        )
        assert await permission_strings(db_session, user.id) == {
            "USERS_MANAGE", "SYSTEM_SETTINGS_MANAGE",
        }

    async def test_update_cannot_break_assignments(self, db_session, build):
        manage = await build.right("USERS_MANAGE")
        approve = await build.right("REQUISITION_APPROVE", RightType.SUPERVISION)
        role = await build.role("admin", [manage])
        user = await build.user()
        await add_role_assignment(db_session, user.id, direct(role))

        with pytest.raises(ValidationMessageError) as exc:
            await update_role(db_session, role.id, RoleIn(name="admin", right_ids=[approve.id]))
        assert exc.value.error_code == "ROLE_TYPE_NOT_ACCEPTED"


@pytest.mark.db
@pytest.mark.asyncio
class TestAssignments:
    async def test_direct_with_supervision_role_rejected(self, db_session, build):
        approve = await build.right("REQUISITION_APPROVE", RightType.SUPERVISION)
        role = await build.role("approver", [approve])
        user = await build.user()
        with pytest.raises(ValidationMessageError):
            await add_role_assignment(db_session, user.id, direct(role))

    async def test_supervision_needs_program(self, db_session, build):
        approve = await build.right("REQUISITION_APPROVE", RightType.SUPERVISION)
        role = await build.role("approver", [approve])
        user = await build.user()
        with pytest.raises(ValidationMessageError):
            await add_role_assignment(
                db_session,
                user.id,
                RoleAssignmentIn(role_id=role.id, type=AssignmentType.SUPERVISION),
            )

    async def test_unknown_references(self, db_session, build):
        approve = await build.right("REQUISITION_APPROVE", RightType.SUPERVISION)
        role = await build.role("approver", [approve])
        user = await build.user()
        with pytest.raises(ResourceNotFoundError):
            await add_role_assignment(
                db_session,
                user.id,
                RoleAssignmentIn(
                    role_id=role.id, type=AssignmentType.SUPERVISION, program_id="missing"
                ),
            )
        with pytest.raises(ResourceNotFoundError):
            await add_role_assignment(db_session, user.id, RoleAssignmentIn(
                role_id="missing", type=AssignmentType.DIRECT,
            ))
        with pytest.raises(ResourceNotFoundError):
            await add_role_assignment(db_session, "missing", direct(role))

    async def test_add_is_idempotent(self, db_session, build):
        right = await build.right("USERS_MANAGE")
        role = await build.role("admin", [right])
        user = await build.user()
        first = await add_role_assignment(db_session, user.id, direct(role))
        second = await add_role_assignment(db_session, user.id, direct(role))
        assert first.id == second.id

    async def test_replace_deduplicates_and_rebuilds(self, db_session, build):
        manage = await build.right("USERS_MANAGE")
        reports = await build.right("REPORTS_VIEW", RightType.REPORTING)
        admin = await build.role("admin", [manage])
        reporter = await build.role("reporter", [reports])
        user = await build.user()
        await add_role_assignment(db_session, user.id, direct(admin))

        result = await replace_role_assignments(
            db_session, user.id, [direct(reporter), direct(reporter)]
        )

        assert len(result) == 1
        assert await permission_strings(db_session, user.id) == {"REPORTS_VIEW"}

    async def test_remove(self, db_session, build):
        right = await build.right("USERS_MANAGE")
        role = await build.role("admin", [right])
        user = await build.user()
        assignment = await add_role_assignment(db_session, user.id, direct(role))

        await remove_role_assignment(db_session, user.id, assignment.id)

        assert await permission_strings(db_session, user.id) == set()
        with pytest.raises(ResourceNotFoundError):
            await remove_role_assignment(db_session, user.id, assignment.id)

    async def test_delete_user_cascades(self, db_session, build):
        right = await build.right("USERS_MANAGE")
        role = await build.role("admin", [right])
        user = await build.user()
        await add_role_assignment(db_session, user.id, direct(role))

        await delete_user(db_session, user.id)

        for model in (RoleAssignment, RightAssignment):
            count = (await db_session.execute(select(func.count(model.id)))).scalar_one()
            assert count == 0


@pytest.mark.db
@pytest.mark.asyncio
class TestChecks:
    async def test_scenario_c_through_the_database(self, db_session, build):
        program = await build.program("P")
        facility = await build.facility("F")
        n1 = await build.node("N1")
        n2 = await build.node("N2", parent=n1)
        await build.group("RG2", n2, [facility])
        approve = await build.right("REQUISITION_APPROVE", RightType.SUPERVISION)
        role = await build.role("approver", [approve])
        user = await build.user()
        await add_role_assignment(
            db_session,
            user.id,
            RoleAssignmentIn(
                role_id=role.id,
                type=AssignmentType.SUPERVISION,
                program_id=program.id,
                supervisory_node_id=n1.id,
            ),
        )

        assert await has_right(
            db_session, user.id, approve.id, program_id=program.id, facility_id=facility.id
        )
        facilities = await supervised_facilities(db_session, user.id, approve.id, program.id)
        assert [f.code for f in facilities] == ["F"]

    async def test_unknown_ids_are_not_found(self, db_session, build):
        right = await build.right("USERS_MANAGE")
        user = await build.user()
        with pytest.raises(ResourceNotFoundError):
            await has_right(db_session, user.id, "missing")
        with pytest.raises(ResourceNotFoundError):
            await has_right(db_session, user.id, right.id, facility_id="missing")
        with pytest.raises(ResourceNotFoundError):
            await has_right(db_session, "missing", right.id)

    async def test_warehouse_with_program_rejected(self, db_session, build):
        orders = await build.right("ORDERS_EDIT", RightType.ORDER_FULFILLMENT)
        program = await build.program()
        warehouse = await build.facility("W")
        user = await build.user()
        with pytest.raises(ValidationMessageError):
            await has_right(
                db_session, user.id, orders.id, program_id=program.id, warehouse_id=warehouse.id
            )

    async def test_warehouse_with_node_rejected(self, db_session, build):
        orders = await build.right("ORDERS_EDIT", RightType.ORDER_FULFILLMENT)
        node = await build.node("N1")
        warehouse = await build.facility("W")
        user = await build.user()
        with pytest.raises(ValidationMessageError) as exc:
            await has_right(
                db_session,
                user.id,
                orders.id,
                warehouse_id=warehouse.id,
                supervisory_node_id=node.id,
            )
        assert exc.value.error_code == "RIGHT_QUERY_WAREHOUSE_COMBINED"

    async def test_direct_grant_ignores_node_scope(self, db_session, build):
        settings = await build.right("SYSTEM_SETTINGS_MANAGE")
        role = await build.role("admin", [settings])
        program = await build.program()
        node = await build.node("N1")
        user = await build.user()
        await add_role_assignment(db_session, user.id, direct(role))

        assert await has_right(
            db_session,
            user.id,
            settings.id,
            program_id=program.id,
            supervisory_node_id=node.id,
        )

    async def test_fulfillment(self, db_session, build):
        orders = await build.right("ORDERS_EDIT", RightType.ORDER_FULFILLMENT)
        role = await build.role("warehouse", [orders])
        w1, w2 = await build.facility("W1"), await build.facility("W2")
        user = await build.user()
        await add_role_assignment(
            db_session,
            user.id,
            RoleAssignmentIn(role_id=role.id, type=AssignmentType.FULFILLMENT, warehouse_id=w1.id),
        )

        assert await has_right(db_session, user.id, orders.id, warehouse_id=w1.id)
        assert not await has_right(db_session, user.id, orders.id, warehouse_id=w2.id)
        facilities = await fulfillment_facilities(db_session, user.id, orders.id)
        assert [f.code for f in facilities] == ["W1"]

    async def test_right_search(self, db_session, build):
        program = await build.program()
        n1 = await build.node("N1")
        n2 = await build.node("N2")
        approve = await build.right("REQUISITION_APPROVE", RightType.SUPERVISION)
        role = await build.role("approver", [approve])
        alice, bob = await build.user("alice"), await build.user("bob")
        for user, node in ((alice, n1), (bob, n2)):
            await add_role_assignment(
                db_session,
                user.id,
                RoleAssignmentIn(
                    role_id=role.id,
                    type=AssignmentType.SUPERVISION,
                    program_id=program.id,
                    supervisory_node_id=node.id,
                ),
            )

        everyone = await right_search(db_session, approve.id, program_id=program.id)
        assert [u.username for u in everyone] == ["alice", "bob"]

        at_n1 = await right_search(
            db_session, approve.id, program_id=program.id, supervisory_node_id=n1.id
        )
        assert [u.username for u in at_n1] == ["alice"]

        with pytest.raises(ValidationMessageError):
            await right_search(db_session, approve.id)

    async def test_right_search_direct(self, db_session, build):
        manage = await build.right("USERS_MANAGE")
        role = await build.role("admin", [manage])
        admin, other = await build.user("admin"), await build.user("other")
        await add_role_assignment(db_session, admin.id, direct(role))

        found = await right_search(db_session, manage.id)
        assert [u.id for u in found] == [admin.id]
        assert other.id not in [u.id for u in found]
