"""Integration tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from entityforge.api.app import create_app

TENANT = {"X-Tenant-ID": "org_acme"}
OTHER_TENANT = {"X-Tenant-ID": "org_globex"}

CUSTOMERS = {
    "name": "customers",
    "label": "Customer",
    "fields": [
        {"name": "name", "type": "text", "required": True},
        {"name": "email", "type": "email", "required": True, "unique": True},
        {"name": "vip", "type": "boolean"},
    ],
}


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Test client on a fresh per-test SQLite database."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'api.db'}")
    monkeypatch.delenv("ENTITYFORGE_STATEMENT_TIMEOUT", raising=False)
    with TestClient(create_app()) as client:
        yield client


@pytest.fixture
def customers(client):
    response = client.post("/api/v1/entities", json=CUSTOMERS, headers=TENANT)
    assert response.status_code == 201
    return response.json()["data"]


def create_customer(client, name="Ana", email="ana@x.com", **extra):
    response = client.post(
        "/api/v1/data/customers", json={"name": name, "email": email, **extra}, headers=TENANT
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestTenantResolution:
    def test_missing_header(self, client):
        response = client.get("/api/v1/entities")
        assert response.status_code == 401

    def test_tenants_isolated(self, client, customers):
        assert client.get("/api/v1/entities", headers=OTHER_TENANT).json()["data"] == []
        response = client.get("/api/v1/entities/customers", headers=OTHER_TENANT)
        assert response.status_code == 404

    def test_custom_resolver(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'custom.db'}")

        async def resolver(request):
            tenant = await request.app.state.tenants.get_or_create("fixed")
            return tenant.id

        with TestClient(create_app(tenant_resolver=resolver)) as client:
            assert client.get("/api/v1/entities").status_code == 200


class TestEntityRoutes:
    def test_create_and_get(self, client, customers):
        assert customers["name"] == "customers"
        assert customers["timestamps"] is True
        assert [f["name"] for f in customers["fields"]] == ["name", "email", "vip"]

        response = client.get("/api/v1/entities/customers", headers=TENANT)
        assert response.status_code == 200
        assert response.json()["data"]["id"] == customers["id"]

    def test_list(self, client, customers):
        response = client.get("/api/v1/entities", headers=TENANT)
        assert [e["name"] for e in response.json()["data"]] == ["customers"]

    def test_duplicate(self, client, customers):
        response = client.post("/api/v1/entities", json=CUSTOMERS, headers=TENANT)
        assert response.status_code == 409

    def test_invalid(self, client):
        response = client.post(
            "/api/v1/entities", json={"name": "Bad", "label": "x", "fields": []}, headers=TENANT
        )
        assert response.status_code == 422
        assert response.json()["errors"]

    def test_missing(self, client):
        assert client.get("/api/v1/entities/ghosts", headers=TENANT).status_code == 404
        assert client.delete("/api/v1/entities/ghosts", headers=TENANT).status_code == 404

    def test_missing_relation_target(self, client):
        response = client.post(
            "/api/v1/entities",
            json={
                "name": "orders",
                "label": "Order",
                "fields": [
                    {
                        "name": "customer",
                        "type": "relation",
                        "entity": "customers",
                        "relationType": "one-to-many",
                    }
                ],
            },
            headers=TENANT,
        )
        assert response.status_code == 500
        assert "customers" in response.json()["error"]

    def test_delete(self, client, customers):
        create_customer(client)
        response = client.delete("/api/v1/entities/customers", headers=TENANT)
        assert response.json() == {"success": True}
        assert client.get("/api/v1/entities/customers", headers=TENANT).status_code == 404
        assert client.get("/api/v1/data/customers", headers=TENANT).status_code == 404


class TestRelationshipRoutes:
    def test_define_and_list(self, client, customers):
        response = client.post(
            "/api/v1/relationships",
            json={
                "name": "referrals",
                "type": "many-to-many",
                "fromEntity": "customers",
                "toEntity": "customers",
                "throughTable": "customer_referrals",
            },
            headers=TENANT,
        )
        assert response.status_code == 201
        listed = client.get("/api/v1/relationships", headers=TENANT).json()["data"]
        assert listed[0]["throughTable"] == "customer_referrals"

    def test_unknown_endpoint_entity(self, client, customers):
        response = client.post(
            "/api/v1/relationships",
            json={"name": "r", "type": "one-to-one", "fromEntity": "customers", "toEntity": "x"},
            headers=TENANT,
        )
        assert response.status_code == 404


class TestDataRoutes:
    def test_create_and_get(self, client, customers):
        record = create_customer(client)
        assert record["name"] == "Ana"

        response = client.get(f"/api/v1/data/customers/{record['id']}", headers=TENANT)
        assert response.status_code == 200
        assert response.json()["data"]["email"] == "ana@x.com"

    def test_list_with_meta(self, client, customers):
        create_customer(client, "Ana", "ana@x.com")
        create_customer(client, "Bo", "bo@x.com")
        create_customer(client, "Cy", "cy@x.com")

        body = client.get("/api/v1/data/customers?limit=2", headers=TENANT).json()
        assert [r["name"] for r in body["data"]] == ["Cy", "Bo"]
        assert body["meta"] == {"total": 3, "limit": 2, "offset": 0}

    def test_list_filters_and_order(self, client, customers):
        create_customer(client, "Ana", "ana@x.com", vip=True)
        create_customer(client, "Bo", "bo@x.com", vip=False)
        create_customer(client, "Cy", "cy@x.com", vip=True)

        body = client.get(
            "/api/v1/data/customers?vip=true&orderBy=name", headers=TENANT
        ).json()
        assert [r["name"] for r in body["data"]] == ["Ana", "Cy"]
        assert body["meta"]["total"] == 2

    def test_bad_filter(self, client, customers):
        response = client.get("/api/v1/data/customers?nope=1", headers=TENANT)
        assert response.status_code == 422

    def test_missing_required(self, client, customers):
        response = client.post("/api/v1/data/customers", json={"name": "Ana"}, headers=TENANT)
        assert response.status_code == 422
        assert response.json()["error"] == 'Field "email" is required'

    def test_unique_violation(self, client, customers):
        create_customer(client)
        response = client.post(
            "/api/v1/data/customers", json={"name": "Again", "email": "ana@x.com"}, headers=TENANT
        )
        assert response.status_code == 503

    def test_update(self, client, customers):
        record = create_customer(client)
        response = client.patch(
            f"/api/v1/data/customers/{record['id']}", json={"name": "Ana B"}, headers=TENANT
        )
        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Ana B"

    def test_update_missing(self, client, customers):
        response = client.patch(
            "/api/v1/data/customers/00000000-0000-0000-0000-000000000000",
            json={"name": "x"},
            headers=TENANT,
        )
        assert response.status_code == 404

    def test_delete(self, client, customers):
        record = create_customer(client)
        url = f"/api/v1/data/customers/{record['id']}"
        assert client.delete(url, headers=TENANT).json() == {"success": True}
        assert client.get(url, headers=TENANT).status_code == 404
        # Deleting again is not an error
        assert client.delete(url, headers=TENANT).status_code == 200

    def test_unknown_entity(self, client):
        assert client.get("/api/v1/data/ghosts", headers=TENANT).status_code == 404
        assert client.post("/api/v1/data/ghosts", json={}, headers=TENANT).status_code == 404
