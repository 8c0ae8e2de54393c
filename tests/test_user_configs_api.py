"""Tests for user configuration routes."""
import pytest


def _config(client, headers, **fields):
    payload = {"name": "daily_goal", "label": "Daily goal", "value_type": "number", "value": 20}
    payload.update(fields)
    return client.post("/api/user-configs", headers=headers, json=payload)


def test_create_and_parse_values(client, auth_headers):
    number = _config(client, auth_headers).json()["config"]
    assert number["value"] == "20"
    assert number["parsed_value"] == 20

    flag = _config(client, auth_headers, name="dark_mode", label="Dark mode", value_type="boolean", value=True)
    assert flag.status_code == 201
    assert flag.json()["config"]["value"] == "true"
    assert flag.json()["config"]["parsed_value"] is True

    data = _config(client, auth_headers, name="voices", label="Voices", value_type="json", value={"de": "Anna"})
    assert data.json()["config"]["parsed_value"] == {"de": "Anna"}

    text = _config(client, auth_headers, name="greeting", label="Greeting", value_type=None, value="Hallo")
    assert text.json()["config"]["value_type"] == "string"
    assert text.json()["config"]["parsed_value"] == "Hallo"


@pytest.mark.parametrize("fields", [
    {"name": ""},
    {"label": "  "},
    {"value_type": "date"},
    {"value_type": "number", "value": "twenty"},
    {"value_type": "boolean", "value": "maybe"},
    {"value_type": "json", "value": "{not json"},
])
def test_create_validation(client, auth_headers, fields):
    assert _config(client, auth_headers, **fields).status_code == 400


def test_get_by_name_and_id(client, auth_headers, other_headers):
    first = _config(client, auth_headers).json()["config"]
    _config(client, auth_headers, label="Weekend goal", value=5)

    by_name = client.get("/api/user-configs/name/daily_goal", headers=auth_headers).json()["configs"]
    assert [c["parsed_value"] for c in by_name] == [20, 5]
    assert client.get("/api/user-configs/name/missing", headers=auth_headers).status_code == 404
    assert client.get("/api/user-configs/name/daily_goal", headers=other_headers).status_code == 404

    assert client.get(f"/api/user-configs/{first['id']}", headers=auth_headers).json()["config"]["id"] == first["id"]
    assert client.get(f"/api/user-configs/{first['id']}", headers=other_headers).status_code == 404
    assert len(client.get("/api/user-configs", headers=auth_headers).json()["configs"]) == 2


def test_update_config(client, auth_headers):
    config_id = _config(client, auth_headers).json()["config"]["id"]

    resp = client.put(f"/api/user-configs/{config_id}", headers=auth_headers, json={"value": 30})
    assert resp.status_code == 200
    assert resp.json()["config"]["parsed_value"] == 30
    assert resp.json()["config"]["label"] == "Daily goal"

    assert client.put(f"/api/user-configs/{config_id}", headers=auth_headers,
                      json={"value_type": "boolean"}).status_code == 400
    assert client.put(f"/api/user-configs/{config_id}", headers=auth_headers,
                      json={"value_type": "string"}).json()["config"]["parsed_value"] == "30"


def test_delete_by_name_and_id(client, auth_headers):
    config_id = _config(client, auth_headers).json()["config"]["id"]
    _config(client, auth_headers, name="theme", label="Theme", value_type="string", value="dark")
    _config(client, auth_headers, name="theme", label="Theme backup", value_type="string", value="light")

    assert client.delete("/api/user-configs/name/theme", headers=auth_headers).json() == {"ok": True, "deleted": 2}
    assert client.delete("/api/user-configs/name/theme", headers=auth_headers).status_code == 404
    assert client.delete(f"/api/user-configs/{config_id}", headers=auth_headers).json() == {"ok": True}
    assert client.delete(f"/api/user-configs/{config_id}", headers=auth_headers).status_code == 404
    assert client.get("/api/user-configs", headers=auth_headers).json()["configs"] == []
