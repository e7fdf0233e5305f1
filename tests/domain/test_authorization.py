"""Tests for StaticRoleGate."""

from uuid import uuid4

from qms_kernel.domain.authorization import AuthorizationGate, StaticRoleGate


class TestStaticRoleGate:

    def test_satisfies_protocol(self):
        assert isinstance(StaticRoleGate(), AuthorizationGate)

    def test_has_role(self):
        actor, company = uuid4(), uuid4()
        gate = StaticRoleGate({actor: ("role_qa",)})

        assert gate.has_role(actor, "role_qa", company)
        assert not gate.has_role(actor, "role_mgr", company)
        assert not gate.has_role(uuid4(), "role_qa", company)

    def test_override_role_satisfies_any_role(self):
        admin, company = uuid4(), uuid4()
        gate = StaticRoleGate({admin: ("admin",)}, override_roles=("admin",))

        assert gate.is_override(admin, company)
        assert gate.has_role(admin, "role_mgr", company)

    def test_memberships_scope_roles_to_company(self):
        actor, home, other = uuid4(), uuid4(), uuid4()
        gate = StaticRoleGate({actor: ("role_qa",)}, memberships={actor: home})

        assert gate.has_role(actor, "role_qa", home)
        assert not gate.has_role(actor, "role_qa", other)
        assert gate.get_actor_roles(actor, other) == ()

    def test_grant_and_revoke(self):
        actor, company = uuid4(), uuid4()
        gate = StaticRoleGate()

        gate.grant(actor, "role_qa", "role_mgr", "role_qa")
        assert gate.get_actor_roles(actor, company) == ("role_qa", "role_mgr")

        gate.revoke(actor, "role_qa")
        assert not gate.has_role(actor, "role_qa", company)

    def test_grant_collapses_repeated_roles(self):
        actor, company = uuid4(), uuid4()
        gate = StaticRoleGate()

        gate.grant(actor, "role_qa", "role_qa")
        gate.grant(actor, "role_mgr", "role_qa")

        assert gate.get_actor_roles(actor, company) == ("role_qa", "role_mgr")
