"""
Role label resolution.

Maps the role labels used in the membership file ("admin", "collaborator",
or any custom role name) to the group's role public ids. A group may define
custom roles literally named "Admin" or "Collaborator"; those shadow the
built-in "Org Admin" / "Org Collaborator" roles.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping

import structlog

from .errors import InvalidRole
from .models import Role

log = structlog.get_logger()


class RoleLabel(str, Enum):
    ADMIN = "ADMIN"
    COLLABORATOR = "COLLABORATOR"


# Label -> name of the directory's built-in role it falls back to
DEFAULT_ROLE_ALIASES: Mapping[RoleLabel, str] = MappingProxyType({
    RoleLabel.ADMIN: "ORG ADMIN",
    RoleLabel.COLLABORATOR: "ORG COLLABORATOR",
})


class RoleResolver:
    """Upper-cased role label → role public id, with default-role aliasing."""

    def __init__(self, roles: Iterable[Role]):
        role_ids: dict[str, str] = {}
        for role in roles:
            role_ids[role.name.upper()] = role.public_id

        custom: set[RoleLabel] = set()
        for label, default_name in DEFAULT_ROLE_ALIASES.items():
            if label.value in role_ids:
                custom.add(label)
            elif default_name in role_ids:
                role_ids[label.value] = role_ids[default_name]
            else:
                log.warning("roles.default_missing", label=label.value, default=default_name)

        self._role_ids = MappingProxyType(role_ids)
        self._custom = frozenset(custom)

    @property
    def role_ids(self) -> Mapping[str, str]:
        return self._role_ids

    @property
    def custom_admin_exists(self) -> bool:
        return RoleLabel.ADMIN in self._custom

    @property
    def custom_collaborator_exists(self) -> bool:
        return RoleLabel.COLLABORATOR in self._custom

    def resolve(self, label: str) -> str:
        try:
            return self._role_ids[label.upper()]
        except KeyError:
            raise InvalidRole(f"Invalid value for role: {label!r}") from None

    def shadows(self, label: str) -> bool:
        """True when a custom role replaces the built-in role for this label."""
        return any(label.upper() == custom.value for custom in self._custom)
