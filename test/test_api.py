"""
HTTP API against a throwaway SQLite database, with scripted dice injected through
the get_dice dependency.
"""

import uuid

import pytest
from fastapi.testclient import TestClient

from kingmaker.api.main import app, get_dice


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def use_dice(scripted_dice):
    """Route every roll of the next requests through scripted totals."""
    def _use(*totals):
        dice = scripted_dice(*totals)
        app.dependency_overrides[get_dice] = lambda: dice
        return dice
    return _use


def _register(client):
    name = f"p_{uuid.uuid4().hex[:10]}"
    r = client.post("/auth/register", json={"email": f"{name}@example.com", "username": name, "password": "secret"})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def _campaign(client, headers, kingdom=None):
    r = client.post("/campaigns", json={"name": "Stolen Lands", "kingdom_name": "Tatzlford", "kingdom": kingdom},
                    headers=headers)
    assert r.status_code == 200, r.text
    return r.json()["campaign_id"]


def _settlement(client, headers, campaign_id, **body):
    r = client.post(f"/campaigns/{campaign_id}/settlements", json=body, headers=headers)
    assert r.status_code == 200, r.text
    return r.json()["settlement"]


def test_register_login_me(client):
    r = client.post("/auth/register", json={"email": "bad@example.com", "username": "no spaces", "password": "x"})
    assert r.status_code == 400

    email = f"{uuid.uuid4().hex[:8]}@example.com"
    username = f"u_{uuid.uuid4().hex[:8]}"
    client.post("/auth/register", json={"email": email, "username": username, "password": "pw"})
    assert client.post("/auth/login", json={"email": email, "password": "wrong"}).status_code == 401
    token = client.post("/auth/login", json={"email": email, "password": "pw"}).json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["username"] == username
    assert client.get("/auth/me").status_code == 401


def test_create_and_read_campaign(client):
    headers = _register(client)
    campaign_id = _campaign(client, headers, {"level": 2, "size": 10})

    r = client.get(f"/campaigns/{campaign_id}", headers=headers)
    body = r.json()
    assert body["can_act"] is True
    assert body["kingdom"]["name"] == "Tatzlford"
    assert body["kingdom"]["stats"]["resource_die"] == "d6"
    assert body["kingdom"]["stats"]["resource_dice_count"] == 14

    assert client.get(f"/campaigns/{campaign_id}").json()["can_act"] is False
    listed = client.get("/campaigns", headers=headers).json()["campaigns"]
    assert [c["campaign_id"] for c in listed] == [campaign_id]


def test_turn_actions_persist(client, use_dice):
    headers = _register(client)
    campaign_id = _campaign(client, headers, {
        "size": 10,
        "resource_dice": {"now": 2, "next": 0},
        "consumption": {"now": 1, "next": 0, "armies": 0},
        "commodities": {"now": {"food": 5}, "next": {}},
    })
    _settlement(client, headers, campaign_id, name="Capital", settlement_type="Capital",
                structures=[{"ref": "Granary"}])
    dice = use_dice(20)

    r = client.post(f"/campaigns/{campaign_id}/collect-resources", headers=headers)
    assert r.status_code == 200, r.text
    assert dice.formulas == ["16d6"]
    assert r.json()["kingdom"]["resource_points"]["now"] == 20
    assert r.json()["events"][0]["type"] == "resources_collected"

    r = client.post(f"/campaigns/{campaign_id}/pay-consumption", headers=headers)
    assert r.json()["kingdom"]["commodities"]["now"]["food"] == 3

    kingdom = client.get(f"/campaigns/{campaign_id}").json()["kingdom"]
    assert kingdom["resource_points"]["now"] == 20
    assert kingdom["resource_dice"]["now"] == 0
    assert kingdom["commodities"]["now"]["food"] == 3


def test_food_shortage_follow_up(client, use_dice):
    headers = _register(client)
    campaign_id = _campaign(client, headers, {
        "consumption": {"now": 3, "next": 0, "armies": 0},
        "commodities": {"now": {"food": 1}, "next": {}},
        "resource_points": {"now": 4, "next": 0},
    })
    use_dice()

    events = client.post(f"/campaigns/{campaign_id}/pay-consumption", headers=headers).json()["events"]
    shortage = next(e for e in events if e["type"] == "food_shortage")
    assert shortage["payload"] == {"missing": 2, "rp_price": 10, "unrest_formula": "1d4"}

    r = client.post(f"/campaigns/{campaign_id}/shortage/pay-rp", json={"missing": 2}, headers=headers)
    assert r.status_code == 400

    use_dice(3)
    r = client.post(f"/campaigns/{campaign_id}/shortage/gain-unrest", headers=headers)
    assert r.json()["kingdom"]["unrest"] == 3


def test_only_bookkeeper_can_act(client, use_dice):
    owner = _register(client)
    other = _register(client)
    campaign_id = _campaign(client, owner)
    use_dice(10)

    assert client.post(f"/campaigns/{campaign_id}/check-for-event", headers=other).status_code == 403
    assert client.post(f"/campaigns/{campaign_id}/check-for-event").status_code == 401
    assert client.delete(f"/campaigns/{campaign_id}", headers=other).status_code == 403
    assert client.post(f"/campaigns/{campaign_id}/check-for-event", headers=owner).status_code == 200


def test_unaffordable_structure_is_a_conflict(client, use_dice):
    headers = _register(client)
    campaign_id = _campaign(client, headers, {"resource_points": {"now": 1, "next": 0}})
    use_dice()

    r = client.post(f"/campaigns/{campaign_id}/structures/pay", json={"name": "Houses"}, headers=headers)
    assert r.status_code == 409
    assert r.json()["detail"]["missing"] == {"rp": 2, "lumber": 1}
    assert client.get(f"/campaigns/{campaign_id}").json()["kingdom"]["resource_points"]["now"] == 1


def test_resource_update_and_validation(client, use_dice):
    headers = _register(client)
    campaign_id = _campaign(client, headers)
    use_dice()

    r = client.post(f"/campaigns/{campaign_id}/resources",
                    json={"resource": "lumber", "value": "2", "turn": "next"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["events"][0]["type"] == "resource_changed"

    r = client.post(f"/campaigns/{campaign_id}/resources", json={"resource": "gold", "value": "2"}, headers=headers)
    assert r.status_code == 400


def test_settlements_and_aggregate(client):
    headers = _register(client)
    campaign_id = _campaign(client, headers)
    first = _settlement(client, headers, campaign_id, name="Old", settlement_type="Capital",
                        structures=[{"ref": "Barracks"}])
    capital = _settlement(client, headers, campaign_id, name="New", settlement_type="Capital",
                          structures=[{"ref": "Shrine"}])
    town = _settlement(client, headers, campaign_id, name="Town", level=3)

    settlements = client.get(f"/campaigns/{campaign_id}/settlements").json()["settlements"]
    types = {s["id"]: s["settlement_type"] for s in settlements}
    assert types == {first["id"]: "Settlement", capital["id"]: "Capital", town["id"]: "Settlement"}

    r = client.post(f"/campaigns/{campaign_id}/settlements/{town['id']}/structures",
                    json={"structure": {"ref": "Granary"}}, headers=headers)
    assert r.status_code == 200
    r = client.post(f"/campaigns/{campaign_id}/settlements/{town['id']}/structures",
                    json={"structure": {"ref": "Wizard Tower"}}, headers=headers)
    assert r.status_code == 400

    view = client.get(f"/campaigns/{campaign_id}/settlements/{town['id']}/aggregate").json()
    assert view["aggregate"]["storage"]["food"] == 1
    assert view["aggregate"]["consumption"] == 2
    assert "celebrate-holiday" in view["aggregate"]["unlocked_activities"]

    r = client.patch(f"/campaigns/{campaign_id}/settlements/{town['id']}",
                     json={"overcrowded": True}, headers=headers)
    assert r.json()["settlement"]["overcrowded"] is True

    r = client.delete(f"/campaigns/{campaign_id}/settlements/{town['id']}/structures/0", headers=headers)
    assert r.json()["settlement"]["structures"] == []

    assert client.get(f"/campaigns/{campaign_id}/settlements/nope/aggregate").status_code == 404


def test_patch_kingdom(client):
    headers = _register(client)
    campaign_id = _campaign(client, headers)

    r = client.patch(f"/campaigns/{campaign_id}/kingdom",
                     json={"kingdom": {"skill_ranks": {"trade": 2}, "at_war": True}}, headers=headers)
    assert r.status_code == 200
    assert r.json()["kingdom"]["skill_ranks"]["trade"] == 2
    assert r.json()["kingdom"]["at_war"] is True

    r = client.patch(f"/campaigns/{campaign_id}/kingdom", json={"kingdom": {"gold": 5}}, headers=headers)
    assert r.status_code == 400


def test_browse_structures(client):
    headers = _register(client)
    campaign_id = _campaign(client, headers)

    r = client.get(f"/campaigns/{campaign_id}/structures", params={
        "ignore_proficiency_requirements": True,
        "ignore_structure_cost": True,
        "level": 20,
        "activities": ["garrison-army"],
    })
    assert [s["name"] for s in r.json()["structures"]] == ["Barracks", "Castle"]


def test_delete_campaign(client):
    headers = _register(client)
    campaign_id = _campaign(client, headers)
    _settlement(client, headers, campaign_id, name="Gone")

    assert client.delete(f"/campaigns/{campaign_id}", headers=headers).status_code == 200
    assert client.get(f"/campaigns/{campaign_id}").status_code == 404
