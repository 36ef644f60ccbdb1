"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from erd_backend.diagram_manager import diagram_manager
from erd_backend.main import app


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        test_client.post("/api/diagram/new", params={"name": "API Test"})
        yield test_client
    diagram_manager.set_validation_enabled(False)


def _entity(client, **body):
    response = client.post("/api/entities", json=body)
    assert response.status_code == 200
    return response.json()["entity"]


def _relationship(client, **body):
    response = client.post("/api/relationships", json=body)
    assert response.status_code == 200
    return response.json()["relationship"]


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_state(client):
    state = client.get("/api/diagram").json()
    assert state["diagram"]["name"] == "API Test"
    assert state["can_undo"] is False


def test_rename_diagram(client):
    response = client.patch("/api/diagram", json={"name": "Library"})
    assert response.json()["diagram"]["name"] == "Library"


class TestEntityRoutes:
    """Entity CRUD over HTTP."""

    def test_create_uses_camel_case(self, client):
        entity = _entity(client, position={"x": 10, "y": 20}, isWeak=True)
        assert entity["name"] == "Entity 1"
        assert entity["isWeak"] is True
        assert entity["position"] == {"x": 10, "y": 20}

    def test_get_update_delete(self, client):
        entity = _entity(client, name="Book")

        response = client.patch(f"/api/entities/{entity['id']}", json={"name": "Volume"})
        assert response.json()["entity"]["name"] == "Volume"

        response = client.get(f"/api/entities/{entity['id']}")
        assert response.json()["entity"]["name"] == "Volume"

        assert client.delete(f"/api/entities/{entity['id']}").status_code == 200
        assert client.get(f"/api/entities/{entity['id']}").status_code == 404

    def test_missing_entity(self, client):
        assert client.patch("/api/entities/nope", json={"name": "X"}).status_code == 404
        assert client.delete("/api/entities/nope").status_code == 404

    def test_duplicate_name(self, client):
        _entity(client, name="Book")
        response = client.post("/api/entities", json={"name": "book"})
        assert response.status_code == 400


class TestConnectionRoutes:
    """Connections, waypoints and routing over HTTP."""

    def test_connect_and_route(self, client):
        entity = _entity(client, position={"x": 0, "y": 0})
        relationship = _relationship(client, position={"x": 300, "y": 200})

        response = client.post("/api/connections", json={
            "fromId": entity["id"],
            "toId": relationship["id"],
            "style": "orthogonal",
        })
        assert response.status_code == 200
        connection = response.json()["connection"]
        assert connection["points"][:2] == [150, 40]

        route = client.get(f"/api/connections/{connection['id']}/route").json()
        points = route["points"]
        assert points[:2] == connection["points"][:2]
        assert points[-2:] == connection["points"][-2:]

        state = client.get(f"/api/relationships/{relationship['id']}").json()
        assert state["relationship"]["entityIds"] == [entity["id"]]

    def test_unknown_endpoint(self, client):
        entity = _entity(client)
        response = client.post("/api/connections", json={"fromId": entity["id"], "toId": "ghost"})
        assert response.status_code == 400

    def test_waypoint_routes(self, client):
        entity = _entity(client)
        relationship = _relationship(client, position={"x": 300, "y": 0})
        connection = client.post("/api/connections", json={
            "fromId": entity["id"], "toId": relationship["id"]
        }).json()["connection"]

        url = f"/api/connections/{connection['id']}/waypoints"
        response = client.post(url, json={"position": {"x": 200, "y": 100}})
        assert response.json()["connection"]["waypoints"] == [{"x": 200, "y": 100}]

        response = client.patch(f"{url}/0", json={"position": {"x": 210, "y": 90}})
        assert response.json()["connection"]["points"][2:4] == [210, 90]

        assert client.delete(f"{url}/3").status_code == 404
        assert client.delete(f"{url}/0").json()["connection"]["waypoints"] == []


class TestAttributeRoutes:
    """Attributes with tagged owners over HTTP."""

    def test_add_and_update(self, client):
        entity = _entity(client)
        response = client.post("/api/attributes", json={
            "owner": {"kind": "entity", "id": entity["id"]},
            "name": "isbn",
            "isKey": True,
        })
        assert response.status_code == 200
        attribute = response.json()["attribute"]
        assert attribute["entityId"] == entity["id"]

        client.patch(f"/api/attributes/{attribute['id']}", json={"name": "ISBN-13"})
        owner = client.get(f"/api/entities/{entity['id']}").json()["entity"]
        assert owner["attributes"][0]["name"] == "ISBN-13"

    def test_unknown_owner(self, client):
        response = client.post("/api/attributes", json={
            "owner": {"kind": "relationship", "id": "ghost"},
            "name": "since",
        })
        assert response.status_code == 400

    def test_bad_owner_kind(self, client):
        response = client.post("/api/attributes", json={
            "owner": {"kind": "table", "id": "x"},
            "name": "since",
        })
        assert response.status_code == 422


class TestGeneralizationRoutes:
    """ISA hierarchies over HTTP."""

    def test_parent_as_child_rejected(self, client):
        parent = _entity(client)
        response = client.post("/api/generalizations", json={
            "parentId": parent["id"], "childIds": [parent["id"]]
        })
        assert response.status_code == 400

    def test_create_and_remove_child(self, client):
        parent = _entity(client)
        child = _entity(client)
        generalization = client.post("/api/generalizations", json={
            "parentId": parent["id"], "childIds": [child["id"]]
        }).json()["generalization"]

        url = f"/api/generalizations/{generalization['id']}/children/{child['id']}"
        assert client.delete(url).status_code == 200
        assert client.get(f"/api/generalizations/{generalization['id']}").status_code == 404


class TestValidationRoutes:
    """Validation, summary and history over HTTP."""

    def test_validate(self, client):
        entity = _entity(client)
        body = client.get("/api/diagram/validate").json()
        assert body["issues"][0]["elementId"] == entity["id"]
        assert body["summary"]["valid"] is False

    def test_toggle_inline_validation(self, client):
        entity = _entity(client)
        client.put("/api/validation", json={"enabled": True})
        body = client.get(f"/api/entities/{entity['id']}").json()
        assert body["entity"]["hasWarning"] is True

    def test_summary(self, client):
        _entity(client)
        summary = client.get("/api/diagram/summary").json()["summary"]
        assert summary["entities"]["total"] == 1

    def test_undo_redo(self, client):
        _entity(client)
        assert client.post("/api/undo").json()["diagram"]["entities"] == []
        assert len(client.post("/api/redo").json()["diagram"]["entities"]) == 1
        assert client.post("/api/redo").json()["success"] is False

    def test_load_merge(self, client):
        _entity(client, name="Existing")
        pasted = {"entities": [{"id": "e1", "name": "Pasted"}]}
        response = client.post("/api/diagram/load", json={
            "diagram": pasted, "replace": False, "offset": {"x": 50, "y": 0}
        })
        entities = response.json()["diagram"]["entities"]
        assert [e["name"] for e in entities] == ["Existing", "Pasted"]
        assert entities[1]["id"] != "e1"


class TestGeometryRoutes:
    """Pure geometry queries."""

    def test_closest_edge(self, client):
        response = client.post("/api/geometry/closest-edge", json={
            "point": {"x": 110, "y": 50},
            "position": {"x": 0, "y": 0},
            "size": {"width": 100, "height": 100},
        })
        assert response.json()["edge"] == "right"

    def test_orthogonal_path(self, client):
        response = client.post("/api/geometry/orthogonal-path", json={"points": [0, 0, 100, 50]})
        assert response.json()["points"] == [0, 0, 50, 0, 50, 50, 100, 50]

    def test_orthogonal_path_odd_length(self, client):
        response = client.post("/api/geometry/orthogonal-path", json={"points": [0, 0, 100]})
        assert response.status_code == 400
