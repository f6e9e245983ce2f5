# tests/test_admin_api.py
"""HTTP tests for the admin JSON API."""
from datetime import date

import pytest
from fastapi.testclient import TestClient

from tierquota.main import app

from conftest import FREE_MODEL, PREMIUM_MODEL


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def admin_headers(make_user, auth_header):
    admin = make_user(tier="admin", is_premium=True, is_admin=True)
    return auth_header(admin.id)


class TestAdminAuth:
    def test_non_admin_forbidden(self, client, make_user, auth_header):
        user = make_user()
        response = client.get("/admin/api/tiers", headers=auth_header(user.id))
        assert response.status_code == 403

    def test_configured_admin_email_allowed(self, client, make_user, auth_header):
        owner = make_user(email="owner@example.com")
        response = client.get("/admin/api/tiers", headers=auth_header(owner.id))
        assert response.status_code == 200

    def test_missing_token(self, client):
        response = client.get("/admin/api/tiers")
        assert response.status_code == 422


class TestTierAdmin:
    def test_create_and_list(self, client, admin_headers):
        response = client.post("/admin/api/tiers", json={"name": "trial", "display_name": "Trial"},
                               headers=admin_headers)
        assert response.status_code == 201

        names = [t["name"] for t in client.get("/admin/api/tiers", headers=admin_headers).json()]
        assert names == ["trial"]

    def test_duplicate_is_409(self, client, catalog, admin_headers):
        response = client.post("/admin/api/tiers", json={"name": "free", "display_name": "Free"},
                               headers=admin_headers)
        assert response.status_code == 409
        assert response.json()["code"] == "conflict"

    def test_blank_name_is_400(self, client, admin_headers):
        response = client.post("/admin/api/tiers", json={"name": "  ", "display_name": "Blank"},
                               headers=admin_headers)
        assert response.status_code == 400

    def test_update_missing_is_404(self, client, admin_headers):
        response = client.patch("/admin/api/tiers/ghost", json={"display_name": "Ghost"}, headers=admin_headers)
        assert response.status_code == 404

    def test_delete_referenced_is_409(self, client, catalog, admin_headers):
        response = client.delete("/admin/api/tiers/premium", headers=admin_headers)
        assert response.status_code == 409


class TestModelAdmin:
    def test_create_and_deactivate(self, client, admin_headers):
        response = client.post("/admin/api/models",
                               json={"model_id": "fal-ai/recraft-v3", "display_name": "Recraft V3"},
                               headers=admin_headers)
        assert response.status_code == 201
        assert response.json()["provider"] == "fal-ai"

        response = client.patch("/admin/api/models/fal-ai/recraft-v3", json={"is_active": False},
                                headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["is_active"] is False

    def test_invalid_model_id_is_400(self, client, admin_headers):
        response = client.post("/admin/api/models",
                               json={"model_id": "fal-ai/Custom-Model", "display_name": "Custom"},
                               headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "invalid"


class TestMatrixAdmin:
    def test_enabling_access_takes_effect(self, client, catalog, make_user, auth_header, admin_headers):
        user = make_user()
        before = client.get(f"/v1/quota/{PREMIUM_MODEL}", headers=auth_header(user.id)).json()
        assert before["access"]["allowed"] is False

        response = client.put("/admin/api/access",
                              json={"tier": "free", "model_id": PREMIUM_MODEL, "is_enabled": True},
                              headers=admin_headers)
        assert response.status_code == 200

        after = client.get(f"/v1/quota/{PREMIUM_MODEL}", headers=auth_header(user.id)).json()
        assert after["access"]["allowed"] is True

    def test_list_access(self, client, catalog, admin_headers):
        rules = client.get("/admin/api/access", headers=admin_headers).json()
        assert {"tier": "free", "model_id": PREMIUM_MODEL, "is_enabled": False} in rules

    def test_set_quota(self, client, catalog, admin_headers):
        response = client.put("/admin/api/quotas",
                              json={"tier": "free", "model_id": FREE_MODEL,
                                    "hourly_limit": 2, "daily_limit": 6, "monthly_limit": 120},
                              headers=admin_headers)
        assert response.status_code == 200

        quotas = client.get("/admin/api/quotas", headers=admin_headers).json()
        assert {"tier": "free", "model_id": FREE_MODEL,
                "hourly_limit": 2, "daily_limit": 6, "monthly_limit": 120} in quotas

    def test_negative_quota_rejected(self, client, catalog, admin_headers):
        response = client.put("/admin/api/quotas",
                              json={"tier": "free", "model_id": FREE_MODEL,
                                    "hourly_limit": -1, "daily_limit": 6, "monthly_limit": 120},
                              headers=admin_headers)
        assert response.status_code == 422

    def test_quota_for_unknown_tier_is_404(self, client, catalog, admin_headers):
        response = client.put("/admin/api/quotas",
                              json={"tier": "ghost", "model_id": FREE_MODEL,
                                    "hourly_limit": 1, "daily_limit": 1, "monthly_limit": 1},
                              headers=admin_headers)
        assert response.status_code == 404


class TestUserAdmin:
    def test_change_tier(self, client, catalog, make_user, admin_headers):
        user = make_user()

        response = client.put(f"/admin/api/users/{user.id}/tier", json={"tier": "premium"}, headers=admin_headers)

        assert response.json() == {"user_id": user.id, "tier": "premium", "is_premium": True}
        status = client.get(f"/admin/api/users/{user.id}/quota", headers=admin_headers).json()
        assert set(status["models"]) == {FREE_MODEL, PREMIUM_MODEL}

    def test_usage_rows(self, client, catalog, make_user, add_usage, admin_headers):
        user = make_user(email="heavy@example.com")
        add_usage(user.id, catalog["sdxl"].id, date(2026, 3, 15), 14, 2)

        rows = client.get("/admin/api/usage", params={"user_id": user.id}, headers=admin_headers).json()

        assert rows == [{
            "user_id": user.id,
            "email": "heavy@example.com",
            "model_id": FREE_MODEL,
            "date": "2026-03-15",
            "hour": 14,
            "images_generated": 2,
        }]
