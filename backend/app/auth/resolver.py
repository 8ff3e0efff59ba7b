"""Authorization resolver.

Answers "does this user hold right X in this scope?" from an immutable
snapshot of the user's role assignments, the right catalog and the
supervisory hierarchy. No I/O happens here; services in
app.services.access load the snapshot and hand it over.

Matching, per grant:
  direct       right is in the role's expanded set; scope is ignored
  supervision  program must match, then either node equality (query names
               a node), hierarchy walk (grant names a node) or the user's
               home facility (grant names no node)
  fulfillment  ORDER_FULFILLMENT right at exactly the grant's warehouse
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from app.auth.hierarchy import SupervisoryHierarchy
from app.auth.query import RightQuery
from app.auth.rights import RightCatalog, RightDef, RoleDef
from app.middleware.exceptions import ValidationMessageError
from app.models.right import RightType
from app.models.role_assignment import AssignmentType

logger = logging.getLogger(__name__)


# Role types each assignment variant can carry
ACCEPTED_ROLE_TYPES: dict[AssignmentType, frozenset[RightType]] = {
    AssignmentType.DIRECT: frozenset({RightType.GENERAL_ADMIN, RightType.REPORTING}),
    AssignmentType.SUPERVISION: frozenset({RightType.SUPERVISION}),
    AssignmentType.FULFILLMENT: frozenset({RightType.ORDER_FULFILLMENT}),
}


def check_role_accepted(kind: AssignmentType, role: RoleDef) -> None:
    accepted = ACCEPTED_ROLE_TYPES[kind]
    if role.right_type not in accepted:
        raise ValidationMessageError(
            f"A {kind.value} assignment cannot carry role {role.name} "
            f"of type {role.right_type.value}",
            error_code="ROLE_TYPE_NOT_ACCEPTED",
            details={
                "assignment_type": kind.value,
                "role_type": role.right_type.value,
                "accepted": sorted(t.value for t in accepted),
            },
        )


@dataclass(frozen=True)
class Grant:
    """One role assignment: a role plus the scope fields its kind uses."""
    kind: AssignmentType
    role: RoleDef
    program_id: str | None = None
    supervisory_node_id: str | None = None
    warehouse_id: str | None = None

    def __post_init__(self):
        if self.kind is AssignmentType.DIRECT:
            if self.program_id or self.supervisory_node_id or self.warehouse_id:
                raise ValidationMessageError(
                    "Direct assignments take no program, node or warehouse",
                    error_code="DIRECT_ASSIGNMENT_SCOPED",
                )
        elif self.kind is AssignmentType.SUPERVISION:
            if self.program_id is None:
                raise ValidationMessageError(
                    "Supervision assignments require a program",
                    error_code="SUPERVISION_PROGRAM_REQUIRED",
                )
            if self.warehouse_id is not None:
                raise ValidationMessageError(
                    "Supervision assignments take no warehouse",
                    error_code="SUPERVISION_WAREHOUSE_GIVEN",
                )
        elif self.kind is AssignmentType.FULFILLMENT:
            if self.warehouse_id is None:
                raise ValidationMessageError(
                    "Fulfillment assignments require a warehouse",
                    error_code="FULFILLMENT_WAREHOUSE_REQUIRED",
                )
            if self.program_id is not None or self.supervisory_node_id is not None:
                raise ValidationMessageError(
                    "Fulfillment assignments take no program or node",
                    error_code="FULFILLMENT_SCOPE_GIVEN",
                )

    @classmethod
    def direct(cls, role: RoleDef) -> "Grant":
        return cls(AssignmentType.DIRECT, role)

    @classmethod
    def supervision(
        cls, role: RoleDef, program_id: str, supervisory_node_id: str | None = None
    ) -> "Grant":
        return cls(
            AssignmentType.SUPERVISION,
            role,
            program_id=program_id,
            supervisory_node_id=supervisory_node_id,
        )

    @classmethod
    def fulfillment(cls, role: RoleDef, warehouse_id: str) -> "Grant":
        return cls(AssignmentType.FULFILLMENT, role, warehouse_id=warehouse_id)

    @property
    def is_home_facility(self) -> bool:
        return self.kind is AssignmentType.SUPERVISION and self.supervisory_node_id is None


@dataclass(frozen=True)
class UserAccessView:
    """Everything about a user the resolver looks at."""
    user_id: str
    home_facility_id: str | None
    grants: tuple[Grant, ...] = ()

    def grants_of(self, kind: AssignmentType) -> Iterable[Grant]:
        return (g for g in self.grants if g.kind is kind)


class AuthorizationResolver:
    def __init__(
        self,
        catalog: RightCatalog,
        hierarchy: SupervisoryHierarchy | None = None,
    ):
        self.catalog = catalog
        self.hierarchy = hierarchy or SupervisoryHierarchy()

    def grant_contains(self, grant: Grant, right_name: str) -> bool:
        return right_name in self.catalog.expand_role(grant.role)

    def has_right(self, view: UserAccessView, query: RightQuery) -> bool:
        right = query.right

        # No role of the right's type at all
        if not any(g.role.right_type == right.type for g in view.grants):
            return False

        for grant in view.grants:
            if not self.grant_contains(grant, right.name):
                continue
            if self._scope_matches(view, grant, query):
                logger.debug(
                    "User %s holds %s through %s grant of role %s",
                    view.user_id, right.name, grant.kind.value, grant.role.name,
                )
                return True
        return False

    def _scope_matches(self, view: UserAccessView, grant: Grant, query: RightQuery) -> bool:
        if grant.kind is AssignmentType.DIRECT:
            return True
        if grant.kind is AssignmentType.SUPERVISION:
            return self._supervision_matches(view, grant, query)
        if grant.kind is AssignmentType.FULFILLMENT:
            return (
                query.right.type == RightType.ORDER_FULFILLMENT
                and query.facility_id is not None
                and query.facility_id == grant.warehouse_id
            )
        raise ValueError(f"Unknown assignment type: {grant.kind!r}")

    def _supervision_matches(
        self, view: UserAccessView, grant: Grant, query: RightQuery
    ) -> bool:
        if query.program_id is None or query.program_id != grant.program_id:
            return False

        if query.supervisory_node_id is not None:
            return grant.supervisory_node_id == query.supervisory_node_id

        if query.facility_id is None:
            return False

        if grant.supervisory_node_id is None:
            return (
                view.home_facility_id is not None
                and query.facility_id == view.home_facility_id
            )

        return self.hierarchy.supervises(
            grant.supervisory_node_id, query.facility_id, query.program_id
        )

    def supervised_facilities(
        self, view: UserAccessView, right: RightDef, program_id: str
    ) -> frozenset[str]:
        """Facilities where the user can exercise `right` for the program
        through node-scoped supervision grants."""
        facilities: set[str] = set()
        for grant in view.grants_of(AssignmentType.SUPERVISION):
            if grant.supervisory_node_id is None or grant.program_id != program_id:
                continue
            for facility_id in self.hierarchy.supervised_facilities(
                grant.supervisory_node_id, program_id
            ):
                if facility_id in facilities:
                    continue
                query = RightQuery(right, program_id=program_id, facility_id=facility_id)
                if self.has_right(view, query):
                    facilities.add(facility_id)
        return frozenset(facilities)

    def fulfillment_facilities(self, view: UserAccessView, right: RightDef) -> frozenset[str]:
        """Warehouses where the user holds the fulfillment right."""
        return frozenset(
            grant.warehouse_id
            for grant in view.grants_of(AssignmentType.FULFILLMENT)
            if self.has_right(view, RightQuery.for_warehouse(right, grant.warehouse_id))
        )
