"""
Collection Service API Tests
============================

Routes of the FastAPI application, run in-process with TestClient.
"""

import pytest
from fastapi.testclient import TestClient

from kablan.service.app import create_app
from kablan.service.context import ServerContext


@pytest.fixture
def server(data_dirs):
    context = ServerContext.build(data_dirs)
    with TestClient(create_app(context=context)) as client:
        client.context = context
        yield client


class TestServiceInfo:
    """Root and health endpoints"""

    def test_root(self, server):
        response = server.get("/")
        assert response.status_code == 200
        assert "projects" in response.json()["collections"]

    def test_health_reports_directories(self, server, data_dirs):
        data = server.get("/health").json()
        assert data["status"] == "ok"
        assert data["canonical_dir"] == str(data_dirs[0])
        assert data["candidates"] == [str(path) for path in data_dirs]
        assert data["replication_failures"] == {}


class TestDefaults:
    """First-run seeding"""

    def test_default_data_seeded(self, server):
        categories = server.get("/api/categories").json()
        assert [category["id"] for category in categories] == ["1", "2", "3"]
        users = server.get("/api/users").json()
        assert users[0]["username"] == "admin"
        assert server.get("/api/projects").json() == []
        assert server.get("/api/settings").json()["vatRate"] == 18

    def test_existing_files_not_reseeded(self, data_dirs):
        data_dirs[0].mkdir(parents=True)
        (data_dirs[0] / "categories.json").write_text("[]", encoding="utf-8")
        with TestClient(create_app(context=ServerContext.build(data_dirs))) as client:
            assert client.get("/api/categories").json() == []


class TestProjects:
    """CRUD on projects and their nested records"""

    def test_create_update_delete(self, server):
        created = server.post("/api/projects", json={"name": "Villa", "contractAmount": 1000}).json()
        assert created["id"].startswith("id_")
        assert created["isArchived"] is False

        response = server.put(f"/api/projects/{created['id']}", json={"isArchived": True})
        assert response.status_code == 200
        assert response.json()["isArchived"] is True

        assert server.delete(f"/api/projects/{created['id']}").json() == {"success": True}
        assert server.get("/api/projects").json() == []

    def test_client_id_is_ignored(self, server):
        created = server.post("/api/suppliers", json={"id": "mine", "name": "Acme"}).json()
        assert created["id"] != "mine"

    def test_nested_records(self, server):
        project = server.post("/api/projects", json={"name": "Tower", "contractAmount": 2000}).json()
        base = f"/api/projects/{project['id']}"

        income = server.post(f"{base}/incomes", json={"amount": 500, "date": "2024-01-10"}).json()
        assert income["paymentDate"] == "2024-01-10"
        milestone = server.post(f"{base}/milestones", json={"name": "Floor 1", "amount": 500}).json()
        assert milestone["percentage"] == 25.0

        updated = server.put(f"{base}/incomes/{income['id']}", json={"status": "pending"}).json()
        assert updated["status"] == "pending"
        assert server.delete(f"{base}/milestones/{milestone['id']}").json() == {"success": True}

        stored = server.get("/api/projects").json()[0]
        assert stored["incomes"][0]["status"] == "pending"
        assert stored["milestones"] == []

    def test_delete_all(self, server):
        for name in ("a", "b"):
            server.post("/api/projects", json={"name": name})
        assert server.delete("/api/projects").json() == {"success": True, "deleted": 2}
        assert server.get("/api/projects").json() == []

    def test_subcategories(self, server):
        response = server.post("/api/categories/1/subcategories", json={"name": "Cement"})
        assert response.status_code == 200
        category = server.get("/api/categories").json()[0]
        assert category["subcategories"][0]["name"] == "Cement"

    def test_changes_are_replicated(self, server, data_dirs):
        server.post("/api/projects", json={"name": "Villa"})
        assert server.context.replicator.flush(timeout=10)
        canonical = (data_dirs[0] / "projects.json").read_bytes()
        assert (data_dirs[2] / "projects.json").read_bytes() == canonical


class TestErrors:
    """Error mapping"""

    def test_missing_record(self, server):
        response = server.put("/api/projects/nope", json={"name": "x"})
        assert response.status_code == 404
        assert "nope" in response.json()["detail"]

    def test_unknown_collection(self, server):
        assert server.get("/api/invoices").status_code == 404
        assert server.post("/api/suppliers/1/incomes", json={}).status_code == 404

    def test_invalid_record(self, server):
        response = server.post("/api/users", json={"role": "user"})
        assert response.status_code == 422


class TestSettings:
    """Settings object"""

    def test_update_settings(self, server):
        response = server.put("/api/settings", params={"updated_by": "dana"}, json={"vatRate": 17})
        assert response.status_code == 200
        data = response.json()
        assert data["vatRate"] == 17
        assert data["updatedBy"] == "dana"
        assert server.get("/api/settings").json()["vatRate"] == 17

    def test_invalid_settings(self, server):
        response = server.put("/api/settings", json={"vatRate": 500})
        assert response.status_code == 422
        assert server.get("/api/settings").json()["vatRate"] == 18
