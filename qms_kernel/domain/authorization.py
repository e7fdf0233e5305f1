"""
Authorization gate (``qms_kernel.domain.authorization``).

Responsibility
--------------
The single predicate the engine consults before any decision:
"does this actor hold this role in this company?"  Role directories
(LDAP, a users table, a static map) plug in behind the protocol.

Architecture position
---------------------
**Kernel domain layer** -- protocol plus an in-memory implementation.
ZERO I/O.

Invariants enforced
-------------------
* AZ-1: The engine never trusts a caller-supplied role; it asks the gate.
* AZ-2: Override roles (e.g. ``admin``) satisfy every role check in the
  company where the actor holds them.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Protocol, runtime_checkable
from uuid import UUID


@runtime_checkable
class AuthorizationGate(Protocol):
    """Role membership lookup used by the engine and the inbox selector."""

    def has_role(self, actor_id: UUID, role_id: str, company_id: UUID) -> bool:
        ...

    def get_actor_roles(self, actor_id: UUID, company_id: UUID) -> tuple[str, ...]:
        ...

    def is_override(self, actor_id: UUID, company_id: UUID) -> bool:
        ...


class StaticRoleGate:
    """AuthorizationGate backed by a simple dict.

    ``role_map`` maps an actor to the roles it holds.  When
    ``memberships`` is given, an actor only holds roles inside the
    company it is mapped to; otherwise roles apply to every company.
    """

    def __init__(
        self,
        role_map: Mapping[UUID, Iterable[str]] | None = None,
        memberships: Mapping[UUID, UUID] | None = None,
        override_roles: Iterable[str] = ("admin",),
    ) -> None:
        self._role_map: dict[UUID, tuple[str, ...]] = {
            actor: tuple(roles) for actor, roles in (role_map or {}).items()
        }
        self._memberships: dict[UUID, UUID] | None = (
            dict(memberships) if memberships is not None else None
        )
        self._override_roles = frozenset(override_roles)

    def grant(self, actor_id: UUID, *roles: str) -> None:
        existing = self._role_map.get(actor_id, ())
        self._role_map[actor_id] = tuple(dict.fromkeys(existing + roles))

    def revoke(self, actor_id: UUID, role_id: str) -> None:
        self._role_map[actor_id] = tuple(
            r for r in self._role_map.get(actor_id, ()) if r != role_id
        )

    def get_actor_roles(self, actor_id: UUID, company_id: UUID) -> tuple[str, ...]:
        if self._memberships is not None:
            if self._memberships.get(actor_id) != company_id:
                return ()
        return self._role_map.get(actor_id, ())

    def is_override(self, actor_id: UUID, company_id: UUID) -> bool:
        roles = self.get_actor_roles(actor_id, company_id)
        return any(r in self._override_roles for r in roles)

    def has_role(self, actor_id: UUID, role_id: str, company_id: UUID) -> bool:
        roles = self.get_actor_roles(actor_id, company_id)
        if role_id in roles:
            return True
        return any(r in self._override_roles for r in roles)
