from fastapi.testclient import TestClient

from gymscore.main import create_app
from gymscore.state.store import StateStore

CSV = "h,h,h,h,h,h,h,h\n上級,1,,A,9,9,9,9\n"


def test_audit_lists_changes_newest_first(offline_bridge):
    with TestClient(create_app(store=StateStore(persist=True), bridge=offline_bridge)) as client:
        client.post("/api/cmd", json={"division": "women", "type": "IMPORT_CSV", "csvText": CSV})
        client.post(
            "/api/cmd",
            json={"division": "women", "type": "UPDATE_SCORE", "competitorId": "w-0", "event": "beam", "value": 9.7},
        )
        client.post("/api/cmd", json={"division": "men", "type": "SET_COMPETITION_NAME", "competitionName": "県大会"})

        events = client.get("/api/audit/events").json()
        assert [(ev["division"], ev["action"], ev["version"]) for ev in events] == [
            ("men", "SET_COMPETITION_NAME", 1),
            ("women", "UPDATE_SCORE", 2),
            ("women", "IMPORT_CSV", 1),
        ]
        assert events[0]["payload"] is None

        women = client.get("/api/audit/events", params={"division": "women", "includePayload": "true"}).json()
        assert [ev["action"] for ev in women] == ["UPDATE_SCORE", "IMPORT_CSV"]
        assert women[0]["payload"] == {"competitorId": "w-0", "event": "beam", "value": 9.7}
        assert women[1]["competitors"] == 1


def test_audit_limit_and_bad_division(offline_bridge):
    with TestClient(create_app(store=StateStore(persist=True), bridge=offline_bridge)) as client:
        for name in ("a", "b", "c"):
            client.post("/api/cmd", json={"division": "men", "type": "SET_COMPETITION_NAME", "competitionName": name})

        limited = client.get("/api/audit/events", params={"limit": 2}).json()
        assert [ev["version"] for ev in limited] == [3, 2]
        assert client.get("/api/audit/events", params={"division": "kids"}).status_code == 400


def test_audit_is_empty_without_snapshots(offline_bridge):
    with TestClient(create_app(store=StateStore(), bridge=offline_bridge)) as client:
        client.post("/api/cmd", json={"division": "men", "type": "SET_COMPETITION_NAME", "competitionName": "x"})
        assert client.get("/api/audit/events").json() == []
