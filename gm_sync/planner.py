"""
Turns a membership diff into directory operations.

Produces two queues:
- independent: role updates, org adds, provisions, invites, removals
- dependent: role updates that must follow a same-run org add, since the
  add-member endpoint can only add as collaborator

Rows that fail validation or reference an unknown org are rejected one by
one; the rest of the batch is still planned.
"""

from __future__ import annotations

import itertools
import re
from typing import Optional

import structlog

from .errors import InvalidEmail, SyncError
from .models import (
    MembershipDiff,
    OperationKind,
    OperationPlan,
    PendingAddition,
    PendingInvite,
    PendingRemoval,
    PlannedOperation,
    PlanNote,
)
from .roles import RoleResolver
from .snapshot import GroupDirectorySnapshot, PendingRequests

log = structlog.get_logger()

EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")
INVITE_API_VERSION = "2022-10-06"


class OperationPlanner:
    """
    Plans one run's operations.

    `pending` is mutated: every invite planned is recorded so later rows in
    the same pass are deduplicated against it.
    """

    def __init__(
        self,
        snapshot: GroupDirectorySnapshot,
        resolver: RoleResolver,
        pending: PendingRequests,
        auto_provision: bool = False,
        invite_to_all_orgs: bool = False,
    ):
        self._snapshot = snapshot
        self._resolver = resolver
        self._pending = pending
        self._auto_provision = auto_provision
        self._invite_to_all_orgs = invite_to_all_orgs
        self._ids = itertools.count(1)

        self._independent: list[PlannedOperation] = []
        self._dependent: list[PlannedOperation] = []
        self._skipped: list[PlanNote] = []
        self._rejected: list[PlanNote] = []
        # (email, org) pairs whose existing membership gets a role update
        self._role_updates: set[tuple[str, str]] = set()

    def plan(self, diff: MembershipDiff) -> OperationPlan:
        for addition in diff.additions:
            try:
                self._plan_addition(addition)
            except SyncError as exc:
                self._reject(addition.user_email, addition.org, exc)

        for removal in diff.removals:
            if (removal.user_email.lower(), removal.org) in self._role_updates:
                self._skip(removal.user_email, removal.org, "superseded by role update")
                continue
            try:
                self._plan_removal(removal)
            except SyncError as exc:
                self._reject(removal.user_email, removal.org, exc)

        plan = OperationPlan(
            independent=tuple(self._independent),
            dependent=tuple(self._dependent),
            skipped=tuple(self._skipped),
            rejected=tuple(self._rejected),
        )
        log.info(
            "planner.planned",
            independent=len(plan.independent),
            dependent=len(plan.dependent),
            skipped=len(plan.skipped),
            rejected=len(plan.rejected),
        )
        return plan

    def validate(self, row: PendingAddition) -> None:
        self._resolver.resolve(row.role)
        if not EMAIL_PATTERN.search(row.user_email):
            raise InvalidEmail(
                f"Invalid email address format: {row.user_email!r}. Please verify"
            )

    # --- Additions ---

    def _plan_addition(self, row: PendingAddition) -> None:
        self.validate(row)
        email = row.user_email
        user_exists = self._snapshot.user_exists(email)

        if (
            self._pending.invite_exists_in_group(email)
            and not self._auto_provision
            and not user_exists
            and not self._invite_to_all_orgs
        ):
            self._skip(email, row.org, "invitation pending")
            log.info("planner.invite_suppressed", email=email, org=row.org)
            return

        org_id = self._snapshot.resolve_org_id(row.org)
        role_id = self._resolver.resolve(row.role)

        if user_exists:
            self._plan_existing_user(row, org_id, role_id)
        elif self._auto_provision:
            self._plan_provision(row, org_id, role_id)
        else:
            self._plan_invite(row, org_id, role_id)

    def _plan_existing_user(self, row: PendingAddition, org_id: str, role_id: str) -> None:
        user_id = self._snapshot.resolve_user_id(row.user_email)

        if row.user_exists_in_org:
            log.debug("planner.update_role", email=row.user_email, org=row.org)
            self._independent.append(self._update_role(org_id, user_id, role_id))
            self._role_updates.add((row.user_email.lower(), row.org))
            return

        if self._snapshot.is_group_admin(row.user_email):
            self._skip(row.user_email, row.org, "already a group admin")
            log.info("planner.group_admin_skipped", email=row.user_email, org=row.org)
            return

        add = self._op(
            OperationKind.ADD_MEMBER,
            "POST",
            f"/group/{self._snapshot.group_id}/org/{org_id}/members",
            {"userId": user_id, "role": "collaborator"},
        )
        self._independent.append(add)
        self._dependent.append(
            self._update_role(org_id, user_id, role_id, depends_on=add.op_id)
        )

    def _plan_provision(self, row: PendingAddition, org_id: str, role_id: str) -> None:
        if self._pending.provision_exists(row.user_email, org_id):
            self._skip(row.user_email, row.org, "already provisioned")
            log.info(
                "planner.already_provisioned",
                email=row.user_email, org=row.org, org_id=org_id,
            )
            return

        log.info("planner.provision", email=row.user_email, org=row.org, org_id=org_id)
        self._independent.append(self._op(
            OperationKind.PROVISION,
            "POST",
            f"/org/{org_id}/provision",
            {"email": row.user_email, "rolePublicId": role_id},
        ))

    def _plan_invite(self, row: PendingAddition, org_id: str, role_id: str) -> None:
        log.info("planner.invite", email=row.user_email, org=row.org, org_id=org_id)
        self._independent.append(self._op(
            OperationKind.INVITE,
            "POST",
            f"/orgs/{org_id}/invites?version={INVITE_API_VERSION}",
            {"email": row.user_email, "role": role_id},
            use_rest_api=True,
        ))
        self._pending.record_invite(
            PendingInvite(org_id=org_id, email=row.user_email, role=row.role)
        )

    # --- Removals ---

    def _plan_removal(self, row: PendingRemoval) -> None:
        org_id = self._snapshot.resolve_org_id(row.org)
        user_id = self._snapshot.resolve_user_id(row.user_email)
        self._independent.append(self._op(
            OperationKind.REMOVE_MEMBER,
            "DELETE",
            f"/org/{org_id}/members/{user_id}",
        ))

    # --- Helpers ---

    def _update_role(
        self, org_id: str, user_id: str, role_id: str, depends_on: Optional[str] = None
    ) -> PlannedOperation:
        return self._op(
            OperationKind.UPDATE_ROLE,
            "PUT",
            f"/org/{org_id}/members/update/{user_id}",
            {"rolePublicId": role_id},
            depends_on=depends_on,
        )

    def _op(
        self,
        kind: OperationKind,
        verb: str,
        url: str,
        body: Optional[dict] = None,
        use_rest_api: bool = False,
        depends_on: Optional[str] = None,
    ) -> PlannedOperation:
        return PlannedOperation(
            op_id=f"{next(self._ids):04d}-{kind.value}",
            kind=kind,
            verb=verb,
            url=url,
            body=body,
            use_rest_api=use_rest_api,
            depends_on=depends_on,
        )

    def _skip(self, email: str, org: str, reason: str) -> None:
        self._skipped.append(PlanNote(user_email=email, org=org, reason=reason))

    def _reject(self, email: str, org: str, exc: SyncError) -> None:
        log.error(
            "planner.row_rejected",
            email=email, org=org, error=type(exc).__name__, detail=str(exc),
        )
        self._rejected.append(PlanNote(user_email=email, org=org, reason=str(exc)))


def plan_operations(
    snapshot: GroupDirectorySnapshot,
    resolver: RoleResolver,
    diff: MembershipDiff,
    auto_provision: bool = False,
    invite_to_all_orgs: bool = False,
) -> OperationPlan:
    """Plan a diff against a fresh copy of the snapshot's pending requests."""
    planner = OperationPlanner(
        snapshot,
        resolver,
        snapshot.pending_requests(),
        auto_provision=auto_provision,
        invite_to_all_orgs=invite_to_all_orgs,
    )
    return planner.plan(diff)
