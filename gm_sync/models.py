"""
Pydantic models for directory state, desired memberships, and planned operations.

Covers: directory payloads (members, orgs, roles, pending invites and
provisions), the desired membership file, diff results, and the operation
plan that crosses the network boundary.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Directory state
# ---------------------------------------------------------------------------

class OrgMembership(BaseModel):
    """One `(organization, role)` pair held by a member."""

    name: str
    role: str


class Member(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    username: Optional[str] = None
    group_role: Optional[str] = Field(default=None, alias="groupRole")
    orgs: list[OrgMembership] = Field(default_factory=list)

    @property
    def is_group_admin(self) -> bool:
        return self.group_role == "admin"


class Organization(BaseModel):
    id: str
    name: str


class Role(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    public_id: str = Field(alias="publicId")
    name: str


class PendingInvite(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    org_id: str = Field(alias="orgId")
    email: str
    role: Optional[str] = None


class PendingProvision(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    org_id: str = Field(alias="orgId")
    email: str
    role_public_id: Optional[str] = Field(default=None, alias="rolePublicId")


# ---------------------------------------------------------------------------
# Desired state
# ---------------------------------------------------------------------------

class DesiredMembership(BaseModel):
    """A single row of the membership file."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_email: str = Field(alias="userEmail")
    org: str
    role: str
    group: str = ""


class MembershipFile(BaseModel):
    group: Optional[str] = None
    members: list[DesiredMembership] = Field(default_factory=list)

    @property
    def group_label(self) -> str:
        if self.group:
            return self.group
        for row in self.members:
            if row.group:
                return row.group
        return ""

    def unique_orgs(self) -> list[str]:
        """Org names referenced by the file, in first-seen order."""
        seen: list[str] = []
        for row in self.members:
            if row.org not in seen:
                seen.append(row.org)
        return seen


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------

class PendingAddition(DesiredMembership):
    user_exists_in_org: bool = False


class PendingRemoval(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_email: str
    role: str
    org: str


class MembershipDiff(BaseModel):
    model_config = ConfigDict(frozen=True)

    additions: tuple[PendingAddition, ...] = ()
    removals: tuple[PendingRemoval, ...] = ()

    @property
    def summary(self) -> dict[str, int]:
        return {"additions": len(self.additions), "removals": len(self.removals)}

    @property
    def is_empty(self) -> bool:
        return not self.additions and not self.removals


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------

class OperationKind(str, Enum):
    UPDATE_ROLE = "update_role"
    ADD_MEMBER = "add_member"
    PROVISION = "provision"
    INVITE = "invite"
    REMOVE_MEMBER = "remove_member"


class PlannedOperation(BaseModel):
    """An HTTP-shaped request against the directory, optionally gated on a prior op."""

    model_config = ConfigDict(frozen=True)

    op_id: str
    kind: OperationKind
    verb: str
    url: str
    body: Optional[dict[str, Any]] = None
    use_rest_api: bool = False
    depends_on: Optional[str] = None


class PlanNote(BaseModel):
    """A row the planner skipped or rejected, with the reason."""

    model_config = ConfigDict(frozen=True)

    user_email: str
    org: str
    reason: str


class OperationPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    independent: tuple[PlannedOperation, ...] = ()
    dependent: tuple[PlannedOperation, ...] = ()
    skipped: tuple[PlanNote, ...] = ()
    rejected: tuple[PlanNote, ...] = ()

    @property
    def total(self) -> int:
        return len(self.independent) + len(self.dependent)
