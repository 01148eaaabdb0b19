from mealstock.settings import settings


def test_list_workspaces(client, workspace):
    resp = client.get("/api/workspaces/")
    assert resp.status_code == 200
    assert [ws["slug"] for ws in resp.json()] == ["test"]


def test_create_workspace(client):
    resp = client.post("/api/workspaces/", json={"name": "Test Workspace"})
    assert resp.status_code == 201
    data = resp.json()
    assert data["name"] == "Test Workspace"
    assert data["slug"] == "test-workspace"
    assert "id" in data


def test_create_workspace_duplicate_slug(client):
    client.post("/api/workspaces/", json={"name": "Collision Test"})

    resp = client.post("/api/workspaces/", json={"name": "Collision Test"})
    assert resp.status_code == 201
    assert resp.json()["slug"] == "collision-test-1"


def test_slug_falls_back_for_symbols_only(client):
    resp = client.post("/api/workspaces/", json={"name": "€€€"})
    assert resp.json()["slug"] == "workspace"


def test_workspace_resolution_header_uuid(client, workspace):
    resp = client.get("/api/recipes", headers={"X-Workspace-Id": workspace.id})
    assert resp.status_code == 200


def test_workspace_resolution_header_slug(client, workspace):
    resp = client.get("/api/recipes", headers={"X-Workspace-Id": workspace.slug})
    assert resp.status_code == 200


def test_workspace_resolution_invalid_header(client, workspace):
    resp = client.get("/api/recipes", headers={"X-Workspace-Id": "invalid-slug-12345"})
    assert resp.status_code == 404


def test_default_workspace_used_without_header(client, monkeypatch):
    monkeypatch.setattr(settings, "default_workspace_slug", "maison")
    assert client.get("/api/recipes").status_code == 401

    client.post("/api/workspaces/", json={"name": "Maison"})
    assert client.get("/api/recipes").status_code == 200
