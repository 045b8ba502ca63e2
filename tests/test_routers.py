"""
Integration tests for the recipe, meal and menu API routers.
"""
import pytest
from decimal import Decimal


@pytest.fixture
def flour(make_item):
    return make_item(unit_cost="2.00", calories_per_unit="100", current_stock="10", name="Flour")


def create_recipe(client, item_id, code="BREAD", quantity="3"):
    return client.post("/api/recipes", json={
        "recipe_code": code,
        "name_ar": "خبز",
        "name_en": "Bread",
        "preparation_time_minutes": 30,
        "lines": [{"item_id": item_id, "quantity": quantity}],
    })


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_api_health_reports_memory_cache(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["services"]["cache"]["backend"] == "memory"


class TestRecipeEndpoints:
    def test_create_and_fetch(self, client, flour):
        response = create_recipe(client, flour.id)
        assert response.status_code == 201
        body = response.json()
        assert Decimal(body["total_cost"]) == Decimal("6.00")
        assert Decimal(body["selling_price"]) == Decimal("18.00")
        assert body["can_prepare"] is True

        fetched = client.get(f"/api/recipes/{body['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["recipe_code"] == "BREAD"

    def test_duplicate_code_is_409(self, client, flour):
        create_recipe(client, flour.id)
        response = create_recipe(client, flour.id)
        assert response.status_code == 409
        assert response.json()["error"] == "CONFLICT"

    def test_unknown_item_is_422(self, client):
        response = create_recipe(client, 9999)
        assert response.status_code == 422
        assert response.json()["error"] == "INVALID_REFERENCE"

    def test_validation_error_is_400(self, client, flour):
        response = create_recipe(client, flour.id, quantity="0")
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_patch_replaces_lines(self, client, flour):
        recipe_id = create_recipe(client, flour.id).json()["id"]
        response = client.patch(
            f"/api/recipes/{recipe_id}",
            json={"lines": [{"item_id": flour.id, "quantity": "5"}]},
            headers={"X-Actor-Id": "chef-42"},
        )
        assert response.status_code == 200
        assert Decimal(response.json()["total_cost"]) == Decimal("10.00")

    def test_delete_then_404(self, client, flour):
        recipe_id = create_recipe(client, flour.id).json()["id"]
        assert client.delete(f"/api/recipes/{recipe_id}").status_code == 204
        assert client.get(f"/api/recipes/{recipe_id}").status_code == 404

    def test_list_and_stats(self, client, flour):
        create_recipe(client, flour.id)
        listing = client.get("/api/recipes", params={"search": "Bread"}).json()
        assert listing["total"] == 1

        stats = client.get("/api/recipes/stats").json()
        assert stats["total_recipes"] == 1


class TestMealEndpoints:
    def test_create_meal_and_dependency_conflict(self, client, flour):
        recipe_id = create_recipe(client, flour.id).json()["id"]
        response = client.post("/api/meals", json={
            "meal_code": "BREAKFAST",
            "name_ar": "فطور",
            "name_en": "Breakfast",
            "components": [
                {"recipe_id": recipe_id, "quantity": "1"},
                {"item_id": flour.id, "quantity": "0.5"},
            ],
        })
        assert response.status_code == 201
        meal = response.json()
        assert Decimal(meal["total_cost"]) == Decimal("7.00")
        assert meal["preparation_time_minutes"] == 30

        blocked = client.delete(f"/api/recipes/{recipe_id}")
        assert blocked.status_code == 409
        assert blocked.json()["error"] == "DEPENDENCY_CONFLICT"

    def test_two_references_is_400(self, client, flour):
        response = client.post("/api/meals", json={
            "meal_code": "BAD",
            "name_ar": "x",
            "name_en": "Bad",
            "components": [{"recipe_id": 1, "item_id": flour.id, "quantity": "1"}],
        })
        assert response.status_code == 400


class TestMenuEndpoints:
    def test_menu_flow(self, client, flour):
        recipe_id = create_recipe(client, flour.id).json()["id"]
        menu = client.post("/api/menus", json={"name_ar": "غداء", "name_en": "Lunch"}).json()

        entry = client.post(f"/api/menus/{menu['id']}/items", json={"recipe_id": recipe_id})
        assert entry.status_code == 201

        duplicate = client.post(f"/api/menus/{menu['id']}/items", json={"recipe_id": recipe_id})
        assert duplicate.status_code == 409

        detail = client.get(f"/api/menus/{menu['id']}").json()
        assert detail["item_count"] == 1
        assert detail["status"] == "ACTIVE"
        assert Decimal(detail["items"][0]["effective_price"]) == Decimal("18.00")

        active = client.get("/api/menus/active").json()
        assert [m["id"] for m in active] == [menu["id"]]

    def test_list_menus(self, client):
        client.post("/api/menus", json={"name_ar": "a", "name_en": "Lunch"})
        client.post("/api/menus", json={"name_ar": "b", "name_en": "Dinner", "is_active": False})

        body = client.get("/api/menus", params={"is_active": True}).json()
        assert body["total"] == 1
        assert body["items"][0]["name_en"] == "Lunch"
        assert body["items"][0]["status"] == "ACTIVE"

    def test_reorder_foreign_item_is_400(self, client, make_item):
        lunch = client.post("/api/menus", json={"name_ar": "a", "name_en": "Lunch"}).json()
        dinner = client.post("/api/menus", json={"name_ar": "b", "name_en": "Dinner"}).json()
        mine = client.post(f"/api/menus/{lunch['id']}/items", json={"item_id": make_item().id}).json()
        theirs = client.post(f"/api/menus/{dinner['id']}/items", json={"item_id": make_item().id}).json()

        response = client.put(f"/api/menus/{lunch['id']}/items/reorder", json={"items": [
            {"menu_item_id": mine["id"], "display_order": 3},
            {"menu_item_id": theirs["id"], "display_order": 4},
        ]})
        assert response.status_code == 400

    def test_bulk_update_reports_failures(self, client, make_item):
        menu = client.post("/api/menus", json={"name_ar": "a", "name_en": "Lunch"}).json()
        entry = client.post(f"/api/menus/{menu['id']}/items", json={"item_id": make_item().id}).json()

        response = client.patch("/api/menus/items/bulk", json={
            "menu_item_ids": [entry["id"], 404],
            "updates": {"is_recommended": True},
        })
        assert response.status_code == 200
        body = response.json()
        assert [row["id"] for row in body["updated"]] == [entry["id"]]
        assert [row["id"] for row in body["failed"]] == [404]

    def test_invalid_window_is_400(self, client):
        response = client.post("/api/menus", json={
            "name_ar": "x", "name_en": "Bad Window",
            "start_date": "2026-05-01T00:00:00", "end_date": "2026-04-01T00:00:00",
        })
        assert response.status_code == 400

    def test_stats_and_recommendations(self, client):
        client.post("/api/menus", json={"name_ar": "a", "name_en": "Lunch"})
        assert client.get("/api/menus/stats").json()["total_menus"] == 1
        types = {r["type"] for r in client.get("/api/menus/recommendations").json()}
        assert "INCREASE_VARIETY" in types
