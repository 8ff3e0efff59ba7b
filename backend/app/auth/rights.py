"""Rights, attachment expansion and role definitions.

The resolver never touches ORM objects. Services load rights and roles
into these frozen values first, so one authorization check always sees a
single consistent snapshot.

Attachments:
  A right may attach other rights of the same type; holding the right
  implies holding everything it attaches. Expansion follows attachments
  transitively with a visited set, so self-attachment and attachment
  loops are harmless.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from app.middleware.exceptions import ValidationMessageError
from app.models.right import RightType


@dataclass(frozen=True)
class RightDef:
    """A right identified by its (case-sensitive) name."""
    name: str
    type: RightType = field(compare=False)
    attachments: frozenset[str] = field(default=frozenset(), compare=False)


@dataclass(frozen=True)
class RoleDef:
    """A named, non-empty bundle of rights sharing one type."""
    name: str
    rights: frozenset[RightDef] = field(compare=False)

    def __post_init__(self):
        validate_role(self.name, self.rights)

    @property
    def right_type(self) -> RightType:
        return next(iter(self.rights)).type

    @property
    def right_names(self) -> frozenset[str]:
        return frozenset(r.name for r in self.rights)


def validate_right(name: str, type: RightType, attachments: Iterable[RightDef]) -> None:
    """Reject blank names and attachments of a different type."""
    if not name or not name.strip():
        raise ValidationMessageError(
            "Right name must not be blank", error_code="RIGHT_NAME_REQUIRED"
        )

    mismatched = sorted(a.name for a in attachments if a.type != type)
    if mismatched:
        raise ValidationMessageError(
            f"Attached rights must be of type {type.value}: {', '.join(mismatched)}",
            error_code="RIGHT_ATTACHMENT_TYPE_MISMATCH",
            details={"attachments": mismatched},
        )


def validate_role(name: str, rights: Iterable[RightDef]) -> None:
    """A role needs a name and at least one right, all of the same type."""
    rights = list(rights)
    if not name or not name.strip():
        raise ValidationMessageError(
            "Role name must not be blank", error_code="ROLE_NAME_REQUIRED"
        )
    if not rights:
        raise ValidationMessageError(
            "A role must have at least one right", error_code="ROLE_RIGHTS_REQUIRED"
        )

    types = sorted({r.type.value for r in rights})
    if len(types) > 1:
        raise ValidationMessageError(
            f"Rights in a role must share one type, got: {', '.join(types)}",
            error_code="ROLE_RIGHT_TYPES_DIFFER",
        )


class RightCatalog:
    """Every known right by name, with memoized attachment expansion."""

    def __init__(self, rights: Iterable[RightDef] = ()):
        self._rights: dict[str, RightDef] = {r.name: r for r in rights}
        self._expanded: dict[str, frozenset[str]] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._rights

    def __len__(self) -> int:
        return len(self._rights)

    def get(self, name: str) -> RightDef | None:
        return self._rights.get(name)

    def names(self) -> frozenset[str]:
        return frozenset(self._rights)

    def expand(self, name: str) -> frozenset[str]:
        """Return `name` plus every right reachable through attachments."""
        cached = self._expanded.get(name)
        if cached is not None:
            return cached

        seen: set[str] = set()
        stack = [name]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            right = self._rights.get(current)
            if right is not None:
                stack.extend(right.attachments - seen)

        result = frozenset(seen)
        self._expanded[name] = result
        return result

    def expand_role(self, role: RoleDef) -> frozenset[str]:
        """Union of the expansions of every right in the role."""
        names: set[str] = set()
        for right in role.rights:
            names |= self.expand(right.name)
        return frozenset(names)

    def implied_by(self, name: str) -> frozenset[str]:
        """Names of every right whose expansion contains `name`."""
        return frozenset(r for r in self._rights if name in self.expand(r))
