"""The question asked of the resolver: does a user hold this right here?"""

from __future__ import annotations

from dataclasses import dataclass

from app.auth.rights import RightDef
from app.middleware.exceptions import ValidationMessageError
from app.models.right import RightType


@dataclass(frozen=True)
class RightQuery:
    """A right plus the scope it is asked about.

    Valid shapes:
      (right)                              direct grants only
      (right, program, facility)           supervision of a facility
      (right, program, supervisory node)   supervision by a known node
      (right, facility)                    fulfillment at a warehouse

    Only supervision rights constrain the shape; other rights accept any
    scope and match direct grants regardless of it.
    """
    right: RightDef
    program_id: str | None = None
    facility_id: str | None = None
    supervisory_node_id: str | None = None

    def __post_init__(self):
        if self.right is None:
            raise ValidationMessageError(
                "A right is required", error_code="RIGHT_QUERY_RIGHT_REQUIRED"
            )

        # Direct grants ignore scope, so only supervision queries have a shape
        if self.right.type != RightType.SUPERVISION:
            return

        if self.supervisory_node_id is not None:
            if self.program_id is None:
                raise ValidationMessageError(
                    "A program is required when checking a supervisory node",
                    error_code="RIGHT_QUERY_PROGRAM_REQUIRED",
                )
            if self.facility_id is not None:
                raise ValidationMessageError(
                    "Give either a facility or a supervisory node, not both",
                    error_code="RIGHT_QUERY_NODE_AND_FACILITY",
                )
        elif (self.program_id is None) != (self.facility_id is None):
            raise ValidationMessageError(
                "Program and facility must be given together for a supervision right",
                error_code="RIGHT_QUERY_PROGRAM_FACILITY_PAIR",
            )

    @classmethod
    def for_warehouse(cls, right: RightDef, warehouse_id: str) -> "RightQuery":
        """Fulfillment queries carry the warehouse in the facility slot."""
        return cls(right=right, facility_id=warehouse_id)

    @property
    def is_scoped(self) -> bool:
        return (
            self.program_id is not None
            or self.facility_id is not None
            or self.supervisory_node_id is not None
        )
