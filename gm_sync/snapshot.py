"""
In-memory snapshot of a group's directory state.

Built once per run from the directory: members, organizations, roles, and
either pending invitations or pending auto-provision requests for the orgs
named in the membership file. Fetch failures are logged and leave that
category empty, so a run can proceed on partial data.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Protocol

import structlog
from pydantic import ValidationError

from .errors import DirectoryRequestError, OrgIdNotFound
from .models import (
    Member,
    MembershipFile,
    Organization,
    PendingInvite,
    PendingProvision,
    Role,
)

log = structlog.get_logger()

INVITES_API_VERSION = "2022-11-14"


class Requester(Protocol):
    async def request(
        self,
        verb: str,
        url: str,
        body: Optional[dict[str, Any]] = None,
        use_rest_api: bool = False,
    ) -> Any: ...


class PendingRequests:
    """
    Invitations and provisions already in flight.

    The planner appends to this as it issues invites, so later rows in the
    same pass see them. One instance per run.
    """

    def __init__(
        self,
        invites: Iterable[PendingInvite] = (),
        provisions: Iterable[PendingProvision] = (),
    ) -> None:
        self._invites: list[PendingInvite] = list(invites)
        self._provisions: list[PendingProvision] = list(provisions)

    @property
    def invites(self) -> tuple[PendingInvite, ...]:
        return tuple(self._invites)

    @property
    def provisions(self) -> tuple[PendingProvision, ...]:
        return tuple(self._provisions)

    def invite_exists_in_group(self, email: str) -> bool:
        email = email.lower()
        return any(i.email.lower() == email for i in self._invites)

    def provision_exists(self, email: str, org_id: str) -> bool:
        email = email.lower()
        return any(
            p.email.lower() == email and p.org_id == org_id for p in self._provisions
        )

    def record_invite(self, invite: PendingInvite) -> None:
        self._invites.append(invite)

    def copy(self) -> PendingRequests:
        return PendingRequests(self._invites, self._provisions)


class GroupDirectorySnapshot:
    """Read-only view of the group's members, orgs, and roles for one run."""

    def __init__(
        self,
        group_id: str,
        members: Iterable[Member] = (),
        organizations: Iterable[Organization] = (),
        roles: Iterable[Role] = (),
        pending: Optional[PendingRequests] = None,
    ) -> None:
        self.group_id = group_id
        self._members = tuple(m for m in members if m.email is not None)
        self._organizations = tuple(organizations)
        self._roles = tuple(roles)
        self._pending = pending or PendingRequests()

        self._by_email: dict[str, Member] = {}
        for member in self._members:
            self._by_email.setdefault(member.email.lower(), member)

    @property
    def members(self) -> tuple[Member, ...]:
        return self._members

    @property
    def organizations(self) -> tuple[Organization, ...]:
        return self._organizations

    @property
    def roles(self) -> tuple[Role, ...]:
        return self._roles

    def pending_requests(self) -> PendingRequests:
        """A fresh copy of the in-flight requests, for one planning pass."""
        return self._pending.copy()

    def resolve_org_id(self, name: str) -> str:
        # Org names are not guaranteed unique; the first match wins.
        for org in self._organizations:
            if org.name == name:
                return org.id
        raise OrgIdNotFound(
            f'Org ID not found for Org Name "{name}" - check the name is correct'
        )

    def resolve_user_id(self, email: str) -> str:
        member = self._by_email.get(email.lower())
        return member.id if member else ""

    def user_exists(self, email: str) -> bool:
        return email.lower() in self._by_email

    def is_group_admin(self, email: str) -> bool:
        member = self._by_email.get(email.lower())
        return bool(member and member.is_group_admin)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

async def _fetch(client: Requester, what: str, url: str, use_rest_api: bool = False) -> Any:
    try:
        return await client.request("GET", url, use_rest_api=use_rest_api)
    except DirectoryRequestError as exc:
        log.error(f"snapshot.{what}_fetch_failed", url=url, error=exc.data.message)
        return None


def _parse(model: type, items: Any, what: str) -> list:
    parsed = []
    for item in items or []:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as exc:
            log.warning(f"snapshot.{what}_invalid", error=str(exc))
    return parsed


async def _fetch_pending_invites(
    client: Requester, org_ids: list[str]
) -> list[PendingInvite]:
    invites: list[PendingInvite] = []
    for org_id in org_ids:
        payload = await _fetch(
            client,
            "invites",
            f"/orgs/{org_id}/invites?version={INVITES_API_VERSION}",
            use_rest_api=True,
        )
        if not isinstance(payload, dict):
            continue
        for invite in payload.get("data") or []:
            if not isinstance(invite, dict):
                log.warning("snapshot.invite_invalid", org_id=org_id)
                continue
            attributes = invite.get("attributes") or {}
            relationship = (invite.get("relationships") or {}).get("org") or {}
            email = attributes.get("email")
            if not email:
                continue
            invites.append(PendingInvite(
                org_id=(relationship.get("data") or {}).get("id", org_id),
                email=email,
                role=attributes.get("role"),
            ))
    return invites


async def _fetch_pending_provisions(
    client: Requester, org_ids: list[str]
) -> list[PendingProvision]:
    provisions: list[PendingProvision] = []
    for org_id in org_ids:
        payload = await _fetch(client, "provisions", f"/org/{org_id}/provision")
        if not isinstance(payload, list):
            continue
        stamped = [{**item, "orgId": org_id} for item in payload if isinstance(item, dict)]
        provisions.extend(_parse(PendingProvision, stamped, "provision"))
    return provisions


async def build_snapshot(
    client: Requester,
    group_id: str,
    source: MembershipFile,
    auto_provision: bool = False,
) -> GroupDirectorySnapshot:
    """Populate a snapshot from the directory; every fetch is best effort."""
    members_payload = await _fetch(client, "members", f"/group/{group_id}/members")
    members = _parse(Member, members_payload if isinstance(members_payload, list) else [], "member")

    orgs_payload = await _fetch(client, "orgs", "/orgs")
    orgs = _parse(
        Organization,
        orgs_payload.get("orgs", []) if isinstance(orgs_payload, dict) else [],
        "org",
    )

    roles_payload = await _fetch(client, "roles", f"/group/{group_id}/roles")
    roles = _parse(Role, roles_payload if isinstance(roles_payload, list) else [], "role")

    # Only orgs that exist in the group can carry pending requests
    org_ids = []
    for name in source.unique_orgs():
        match = next((o for o in orgs if o.name == name), None)
        if match is None:
            log.warning("snapshot.unknown_org", org=name)
            continue
        org_ids.append(match.id)

    if auto_provision:
        log.info("snapshot.fetching_pending_provisions", orgs=len(org_ids))
        pending = PendingRequests(provisions=await _fetch_pending_provisions(client, org_ids))
    else:
        log.info("snapshot.fetching_pending_invites", orgs=len(org_ids))
        pending = PendingRequests(invites=await _fetch_pending_invites(client, org_ids))

    snapshot = GroupDirectorySnapshot(group_id, members, orgs, roles, pending)
    log.info(
        "snapshot.built",
        members=len(snapshot.members),
        orgs=len(snapshot.organizations),
        roles=len(snapshot.roles),
        pending_invites=len(pending.invites),
        pending_provisions=len(pending.provisions),
    )
    return snapshot
