"""
Name: Module Routes Tests

Responsibilities:
  - Validate module isolation between WFP and DUBE
  - Validate per-endpoint role lists (viewers read, officers/agents write)
  - Validate cycle and region assignment guards over HTTP
  - Ensure super_admin and the global admin reach every module
"""

import pytest

from ledger_auth.identity.roles import ModuleScope, UserRole

pytestmark = pytest.mark.unit

WFP = "/api/v1/wfp"
DUBE = "/api/v1/dube"


def test_viewer_is_confined_to_its_module(client, seed_user, auth_headers):
    headers = auth_headers(seed_user(UserRole.WFP_VIEWER))

    ok = client.get(f"{WFP}/getcategories.php", headers=headers)
    assert ok.status_code == 200
    assert ok.json()["module"] == "wfp"
    assert ok.json()["operation"] == "list_categories"

    denied = client.get(f"{DUBE}/international/getmerchantlist.php", headers=headers)
    assert denied.status_code == 403
    assert denied.json()["code"] == "MODULE_NOT_ACCESSIBLE"


def test_user_without_modules_is_denied_everywhere(client, seed_user, auth_headers):
    headers = auth_headers(seed_user(UserRole.USER))

    for url in (f"{WFP}/getcategories.php", f"{DUBE}/international/getmerchantlist.php"):
        response = client.get(url, headers=headers)
        assert response.status_code == 403
        assert response.json()["code"] == "MODULE_NOT_ACCESSIBLE"


def test_missing_token_is_401(client):
    response = client.get(f"{WFP}/getcategories.php")
    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHENTICATED"


class TestRoleLists:
    def test_health_officer_cannot_list_categories(self, client, seed_user, auth_headers):
        response = client.get(
            f"{WFP}/getcategories.php",
            headers=auth_headers(seed_user(UserRole.WFP_HEALTH_OFFICER)),
        )
        assert response.status_code == 403
        assert response.json()["code"] == "INSUFFICIENT_PRIVILEGE"

    def test_health_officer_registers_beneficiary(self, client, seed_user, auth_headers):
        user = seed_user(UserRole.WFP_HEALTH_OFFICER)

        response = client.post(
            f"{WFP}/registerbeneficiary.php", headers=auth_headers(user), json={}
        )

        assert response.status_code == 200
        assert response.json() == {
            "module": "wfp",
            "operation": "register_beneficiary",
            "role": "wfp_health_officer",
            "user_id": str(user.id),
        }

    def test_viewer_passes_where_a_lower_rank_is_listed(
        self, client, seed_user, auth_headers
    ):
        """Rank threshold: the lowest listed role (health officer, 60) admits viewers (70)."""
        viewer = seed_user(UserRole.WFP_VIEWER)

        response = client.post(
            f"{WFP}/registerbeneficiary.php", headers=auth_headers(viewer), json={}
        )

        assert response.status_code == 200
        assert response.json()["role"] == "wfp_viewer"

    def test_out_of_module_role_never_widens(self, client, seed_user, auth_headers):
        response = client.post(
            f"{WFP}/registerbeneficiary.php",
            headers=auth_headers(seed_user(UserRole.DUBE_VIEWER)),
            json={},
        )
        assert response.status_code == 403
        assert response.json()["code"] == "MODULE_NOT_ACCESSIBLE"

    def test_viewer_cannot_write(self, client, seed_user, auth_headers):
        response = client.post(
            f"{WFP}/registercategory.php",
            headers=auth_headers(seed_user(UserRole.WFP_VIEWER)),
            json={},
        )
        assert response.status_code == 403
        assert response.json()["code"] == "INSUFFICIENT_PRIVILEGE"

    def test_field_agent_self_registration(self, client, seed_user, auth_headers):
        headers = auth_headers(seed_user(UserRole.DUBE_FIELD_AGENT))

        created = client.post(
            f"{DUBE}/international/customerselfregistration.php", headers=headers, json={}
        )
        assert created.status_code == 200

        listing = client.get(f"{DUBE}/international/getmerchantlist.php", headers=headers)
        assert listing.status_code == 403

    def test_module_role_without_module_assignment(self, client, seed_user, auth_headers):
        user = seed_user(UserRole.DUBE_VIEWER, modules=[])
        response = client.get(
            f"{DUBE}/international/getmerchantlist.php", headers=auth_headers(user)
        )
        assert response.status_code == 403
        assert response.json()["code"] == "MODULE_NOT_ACCESSIBLE"

    def test_module_admin_is_not_bound_by_module_list(
        self, client, seed_user, auth_headers
    ):
        user = seed_user(UserRole.DUBE_ADMIN, modules=[])
        response = client.get(
            f"{DUBE}/international/getmerchantlist.php", headers=auth_headers(user)
        )
        assert response.status_code == 200

    @pytest.mark.parametrize("role", [UserRole.SUPER_ADMIN, UserRole.ADMIN])
    def test_global_roles_reach_both_modules(self, client, seed_user, auth_headers, role):
        headers = auth_headers(seed_user(role))

        assert client.get(f"{WFP}/getcategories.php", headers=headers).status_code == 200
        assert client.post(
            f"{DUBE}/international/registersupplier.php", headers=headers, json={}
        ).status_code == 200


class TestCycleGuard:
    def _officer(self, seed_user, cycles):
        return seed_user(
            UserRole.WFP_HEALTH_OFFICER,
            modules=[ModuleScope.WFP],
            resource_assignments={"cycle": frozenset(cycles)},
        )

    def test_assigned_cycle(self, client, seed_user, auth_headers):
        headers = auth_headers(self._officer(seed_user, {"c-1"}))

        assert client.get(f"{WFP}/cycles/c-1", headers=headers).status_code == 200
        enrolled = client.post(
            f"{WFP}/cycles/c-1/beneficiaries", headers=headers, json={"name": "x"}
        )
        assert enrolled.status_code == 200

    def test_unassigned_cycle(self, client, seed_user, auth_headers):
        headers = auth_headers(self._officer(seed_user, {"c-1"}))

        response = client.get(f"{WFP}/cycles/c-2", headers=headers)

        assert response.status_code == 403
        assert response.json()["code"] == "RESOURCE_NOT_ASSIGNED"

    def test_module_admin_bypasses_assignments(self, client, seed_user, auth_headers):
        headers = auth_headers(seed_user(UserRole.WFP_ADMIN))
        assert client.get(f"{WFP}/cycles/any-cycle", headers=headers).status_code == 200


class TestRegionGuard:
    def test_region_match_is_case_insensitive(self, client, seed_user, auth_headers):
        user = seed_user(
            UserRole.WFP_VIEWER, resource_assignments={"region": frozenset({"Nakuru"})}
        )
        headers = auth_headers(user)

        ok = client.get(f"{WFP}/regions/report", headers=headers, params={"region": "NAKURU"})
        assert ok.status_code == 200

        denied = client.get(
            f"{WFP}/regions/report", headers=headers, params={"region": "Kisumu"}
        )
        assert denied.status_code == 403
        assert denied.json()["code"] == "RESOURCE_NOT_ASSIGNED"

    def test_no_assigned_regions_is_denied(self, client, seed_user, auth_headers):
        headers = auth_headers(seed_user(UserRole.WFP_VIEWER))
        response = client.get(
            f"{WFP}/regions/report", headers=headers, params={"region": "Nakuru"}
        )
        assert response.status_code == 403
