"""Tests for RightQuery construction rules."""

import dataclasses

import pytest

from app.auth.query import RightQuery
from app.auth.rights import RightDef
from app.middleware.exceptions import ValidationMessageError
from app.models.right import RightType

SUPERVISE = RightDef("REQUISITION_APPROVE", RightType.SUPERVISION)
FULFILL = RightDef("ORDERS_EDIT", RightType.ORDER_FULFILLMENT)
ADMIN = RightDef("USERS_MANAGE", RightType.GENERAL_ADMIN)


@pytest.mark.unit
class TestRightQuery:
    def test_right_only(self):
        query = RightQuery(ADMIN)
        assert not query.is_scoped

    def test_right_is_required(self):
        with pytest.raises(ValidationMessageError):
            RightQuery(None)

    def test_supervision_with_program_and_facility(self):
        query = RightQuery(SUPERVISE, program_id="p", facility_id="f")
        assert query.is_scoped

    @pytest.mark.parametrize("program_id,facility_id", [("p", None), (None, "f")])
    def test_supervision_program_and_facility_go_together(self, program_id, facility_id):
        with pytest.raises(ValidationMessageError) as exc:
            RightQuery(SUPERVISE, program_id=program_id, facility_id=facility_id)
        assert exc.value.error_code == "RIGHT_QUERY_PROGRAM_FACILITY_PAIR"

    def test_admin_right_takes_any_scope(self):
        RightQuery(ADMIN, program_id="p")
        RightQuery(ADMIN, facility_id="f")

    def test_node_with_program(self):
        query = RightQuery(SUPERVISE, program_id="p", supervisory_node_id="n")
        assert query.supervisory_node_id == "n"

    def test_node_requires_program(self):
        with pytest.raises(ValidationMessageError) as exc:
            RightQuery(SUPERVISE, supervisory_node_id="n")
        assert exc.value.error_code == "RIGHT_QUERY_PROGRAM_REQUIRED"

    def test_admin_right_accepts_a_node(self):
        query = RightQuery(ADMIN, program_id="p", supervisory_node_id="n")
        assert query.supervisory_node_id == "n"

    def test_node_and_facility_rejected(self):
        with pytest.raises(ValidationMessageError):
            RightQuery(SUPERVISE, program_id="p", facility_id="f", supervisory_node_id="n")

    def test_for_warehouse_puts_warehouse_in_facility(self):
        query = RightQuery.for_warehouse(FULFILL, "w")
        assert query.facility_id == "w"
        assert query.program_id is None

    def test_immutable(self):
        query = RightQuery(ADMIN)
        with pytest.raises(dataclasses.FrozenInstanceError):
            query.program_id = "p"
