import uuid
from datetime import date, timedelta

from mealstock.models import Workspace
from mealstock.services import inventory_ledger


def add_item(client, headers, **payload):
    resp = client.post("/api/inventory/", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_add_merge_and_remove_below_zero(client, headers):
    created = add_item(client, headers, name="Riz", quantity=500, unit="g", min_quantity=100)
    item_id = created["item"]["id"]
    assert created["item"]["quantity"] == 500
    assert created["transaction"]["type"] == "add"

    merged = add_item(client, headers, name="riz", quantity=200, unit="g")
    assert merged["item"]["id"] == item_id
    assert merged["item"]["quantity"] == 700

    resp = client.post(f"/api/inventory/{item_id}/remove", json={"quantity": 1000}, headers=headers)
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["item"]["quantity"] == 0
    assert data["item"]["is_low_stock"] is True
    assert data["transaction"]["quantity"] == -1000
    assert data["transaction"]["clamped"] is True

    txns = client.get(f"/api/inventory/{item_id}/transactions", headers=headers).json()
    assert [t["type"] for t in txns] == ["remove", "add", "add"]
    assert txns[0]["quantity_after"] == data["item"]["quantity"]


def test_stock_changes_keep_ledger_in_step(client, headers):
    item_id = add_item(client, headers, name="Lait", quantity=2, unit="l")["item"]["id"]

    steps = [
        ("add", {"quantity": 1.5}),
        ("remove", {"quantity": 0.5}),
        ("adjust", {"quantity": 4}),
        ("expire", {"quantity": 1}),
    ]
    for action, body in steps:
        resp = client.post(f"/api/inventory/{item_id}/{action}", json=body, headers=headers)
        assert resp.status_code == 200, resp.text
        txn, item = resp.json()["transaction"], resp.json()["item"]
        assert txn["quantity_after"] - txn["quantity_before"] == txn["quantity"]
        assert item["quantity"] == txn["quantity_after"]

    item = client.get(f"/api/inventory/{item_id}", headers=headers).json()
    assert item["quantity"] == 3
    assert item["version"] == 5


def test_patch_quantity_is_logged_as_adjustment(client, headers):
    item_id = add_item(client, headers, name="Farine", quantity=1000, unit="g")["item"]["id"]

    resp = client.patch(
        f"/api/inventory/{item_id}",
        json={"quantity": 250, "min_quantity": 500, "location": "placard"},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["quantity"] == 250
    assert resp.json()["is_low_stock"] is True

    txns = client.get(f"/api/inventory/{item_id}/transactions", headers=headers).json()
    assert txns[0]["type"] == "adjust"
    assert txns[0]["quantity"] == -750


def test_low_stock_and_expiring_lists(client, headers):
    soon = (date.today() + timedelta(days=2)).isoformat()
    later = (date.today() + timedelta(days=30)).isoformat()
    add_item(client, headers, name="Sel", quantity=1, unit="kg", min_quantity=1)
    add_item(client, headers, name="Crème", quantity=1, unit="pot", expiry_date=soon)
    add_item(client, headers, name="Miel", quantity=1, unit="pot", expiry_date=later)

    low = client.get("/api/inventory/low-stock", headers=headers).json()
    assert [i["name"] for i in low] == ["Sel"]

    expiring = client.get("/api/inventory/expiring", headers=headers).json()
    assert [i["name"] for i in expiring] == ["Crème"]

    everything = client.get("/api/inventory/", params={"q": "mi"}, headers=headers).json()
    assert [i["name"] for i in everything] == ["Miel"]


def test_delete_item(client, headers):
    item_id = add_item(client, headers, name="Thé", quantity=20, unit="sachet")["item"]["id"]

    assert client.delete(f"/api/inventory/{item_id}", headers=headers).status_code == 204
    resp = client.get(f"/api/inventory/{item_id}", headers=headers)
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


def test_validation_errors(client, headers):
    resp = client.post("/api/inventory/", json={"name": "Riz", "quantity": 0}, headers=headers)
    assert resp.status_code == 422

    item_id = add_item(client, headers, name="Riz", quantity=1, unit="kg")["item"]["id"]
    resp = client.post(f"/api/inventory/{item_id}/remove", json={"quantity": -1}, headers=headers)
    assert resp.status_code == 422


def test_rename_onto_existing_key_conflicts(client, headers):
    add_item(client, headers, name="Riz", quantity=1, unit="kg")
    other_id = add_item(client, headers, name="Riz basmati", quantity=1, unit="kg")["item"]["id"]

    resp = client.patch(f"/api/inventory/{other_id}", json={"name": "RIZ"}, headers=headers)
    assert resp.status_code == 409
    assert resp.json()["code"] == "conflict"


def test_concurrent_add_without_unit_conflicts(client, headers, monkeypatch):
    add_item(client, headers, name="Oeufs", quantity=6)
    # a racing request that has not seen the first row yet
    monkeypatch.setattr(inventory_ledger, "find_matching_item", lambda *args, **kwargs: None)

    resp = client.post("/api/inventory/", json={"name": "oeufs", "quantity": 2}, headers=headers)
    assert resp.status_code == 409
    assert resp.json()["code"] == "conflict"

    monkeypatch.undo()
    stock = client.get("/api/inventory/", headers=headers).json()
    assert [(i["name"], i["quantity"]) for i in stock] == [("Oeufs", 6)]


# --- Tenancy ---

def test_missing_workspace_is_unauthenticated(client):
    resp = client.get("/api/inventory/")
    assert resp.status_code == 401
    assert resp.json()["code"] == "not_authenticated"


def test_unknown_workspace_header_is_404(client):
    resp = client.get("/api/inventory/", headers={"X-Workspace-Id": str(uuid.uuid4())})
    assert resp.status_code == 404


def test_workspace_resolves_by_slug(client, workspace):
    add_item(client, {"X-Workspace-Id": "test"}, name="Riz", quantity=1, unit="kg")
    assert len(client.get("/api/inventory/", headers={"X-Workspace-Id": workspace.id}).json()) == 1


def test_items_are_isolated_between_workspaces(client, headers, db_session):
    other = Workspace(slug="voisins", name="Voisins")
    db_session.add(other)
    db_session.commit()
    other_headers = {"X-Workspace-Id": other.id}

    item_id = add_item(client, headers, name="Riz", quantity=1, unit="kg")["item"]["id"]

    assert client.get("/api/inventory/", headers=other_headers).json() == []
    assert client.get(f"/api/inventory/{item_id}", headers=other_headers).status_code == 404
    resp = client.post(f"/api/inventory/{item_id}/add", json={"quantity": 1}, headers=other_headers)
    assert resp.status_code == 404


# --- Meal consumption ---

def test_consume_planned_meal_is_idempotent(client, headers, make_recipe, plan_meal, make_item):
    recipe = make_recipe("Pasta", [("Pâtes", 400, "g"), ("Parmesan", 40, "g")])
    meal = plan_meal(recipe, date(2024, 1, 3), servings=2)
    make_item("pâtes", 500, "g")
    meal_id = meal.id

    key_headers = {**headers, "Idempotency-Key": str(uuid.uuid4())}
    first = client.post(f"/api/inventory/consume/{meal_id}", headers=key_headers)
    assert first.status_code == 200, first.text
    second = client.post(f"/api/inventory/consume/{meal_id}", headers=key_headers)
    assert second.status_code == 200
    assert second.json() == first.json()

    body = first.json()
    assert body["deducted"] == [
        {"ingredient": "Pâtes", "inventory_id": body["deducted"][0]["inventory_id"], "deducted": 200.0, "remaining": 300.0}
    ]
    assert body["skipped"] == [{"ingredient": "Parmesan", "reason": "no_match"}]

    stock = client.get("/api/inventory/", headers=headers).json()
    assert stock[0]["quantity"] == 300


def test_consume_requires_idempotency_key(client, headers):
    resp = client.post(f"/api/inventory/consume/{uuid.uuid4()}", headers=headers)
    assert resp.status_code == 400


def test_consume_unknown_meal_releases_key(client, headers):
    key_headers = {**headers, "Idempotency-Key": "retry-me"}
    resp = client.post("/api/inventory/consume/missing", headers=key_headers)
    assert resp.status_code == 404

    # the key was released, so a retry is processed again instead of replayed or locked
    resp = client.post("/api/inventory/consume/missing", headers=key_headers)
    assert resp.status_code == 404
