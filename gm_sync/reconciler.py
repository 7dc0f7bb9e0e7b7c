"""
Desired-vs-current membership diff.

Additions compare roles with custom-role shadowing applied: a literal match on
"admin"/"collaborator" is not a match when the group defines a custom role of
that name, because the member holds the built-in role and the file means the
custom one. Removals compare roles literally. Group admins are never touched.
"""

from __future__ import annotations

from typing import Sequence

import structlog

from .models import DesiredMembership, MembershipDiff, PendingAddition, PendingRemoval
from .roles import RoleResolver
from .snapshot import GroupDirectorySnapshot

log = structlog.get_logger()


def _same_email(a: str, b: str) -> bool:
    return a.upper() == b.upper()


def find_additions(
    snapshot: GroupDirectorySnapshot,
    resolver: RoleResolver,
    desired: Sequence[DesiredMembership],
) -> list[PendingAddition]:
    additions: list[PendingAddition] = []

    for row in desired:
        org_match = False
        role_match = False

        for member in snapshot.members:
            if member.is_group_admin or not _same_email(member.email, row.user_email):
                continue
            for held in member.orgs:
                if held.name != row.org:
                    continue
                org_match = True
                if held.role.upper() == row.role.upper() and not resolver.shadows(row.role):
                    role_match = True
                    break
            if role_match:
                break

        if not role_match:
            additions.append(
                PendingAddition(**row.model_dump(), user_exists_in_org=org_match)
            )

    log.debug("reconciler.additions", count=len(additions))
    return additions


def find_removals(
    snapshot: GroupDirectorySnapshot,
    desired: Sequence[DesiredMembership],
) -> list[PendingRemoval]:
    removals: list[PendingRemoval] = []

    for member in snapshot.members:
        if member.is_group_admin:
            continue
        for held in member.orgs:
            role_match = any(
                _same_email(row.user_email, member.email)
                and row.org == held.name
                and row.role.upper() == held.role.upper()
                for row in desired
            )
            if not role_match:
                removals.append(
                    PendingRemoval(user_email=member.email, role=held.role, org=held.name)
                )

    log.debug("reconciler.removals", count=len(removals))
    return removals


def reconcile(
    snapshot: GroupDirectorySnapshot,
    resolver: RoleResolver,
    desired: Sequence[DesiredMembership],
) -> MembershipDiff:
    """Compute the memberships to add or update and the ones to remove."""
    return MembershipDiff(
        additions=tuple(find_additions(snapshot, resolver, desired)),
        removals=tuple(find_removals(snapshot, desired)),
    )
