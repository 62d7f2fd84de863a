import sys
from pathlib import Path

# Add project root to sys.path so we can import schoolmap.* packages
sys.path.append(str(Path(__file__).resolve().parents[1]))

from fastapi.testclient import TestClient
from schoolmap.api.main import app
from schoolmap.config import DEFAULT_CENTER
from schoolmap.map.capability import PlaceResult


class FakeSearch:
    def __init__(self, answers):
        self.answers = answers
        self.queries = []

    async def search(self, query, *, city, city_limit=True, page_size=1):
        self.queries.append(query)
        coord = self.answers.get(query)
        return PlaceResult(found=coord is not None, coordinate=coord)


def test_health_schools_and_markers():
    c = TestClient(app)
    r = c.get("/health")
    assert r.status_code == 200
    assert r.json().get("ok") is True

    schools = c.get("/schools").json()["schools"]
    assert len(schools) == 10
    assert "acceptanceRate2025" in schools[0]

    body = c.get("/markers").json()
    assert body["count"] == 10
    assert body["skipped"] == 0
    assert body["state"] == "ready"
    first = body["markers"][0]
    assert set(["name", "tier", "color", "coordinate", "rate_label", "badge", "popup", "z_index"]) <= set(first)
    assert first["rate_label"] == "7.0"
    assert first["color"] == "#FF0000"
    assert first["badge"].startswith("data:image/png;base64,")
    assert [m["z_index"] for m in body["markers"]] == list(range(100, 110))


def test_markers_post_skips_bad_coordinates_and_defaults_unset():
    c = TestClient(app)
    payload = {
        "schools": [
            {"name": "甲校", "tier": "第一梯队", "location": [116.3, 39.9], "acceptanceRate2025": "100.00"},
            {"name": "坏坐标", "tier": "第二梯队", "location": [190, 95]},
            {"name": "无坐标", "tier": "第八梯队", "location": [0, 0]},
        ]
    }
    body = c.post("/markers", json=payload).json()
    assert body["count"] == 2
    assert body["skipped"] == 1
    assert body["markers"][0]["rate_label"] == "100"
    assert body["markers"][1]["coordinate"] == list(DEFAULT_CENTER)


def test_markers_with_locate_uses_place_search(monkeypatch):
    fake = FakeSearch({"地址": (116.2, 40.1)})
    monkeypatch.setattr("schoolmap.api.main._place_search", lambda: fake)
    c = TestClient(app)
    payload = {"schools": [{"name": "无坐标", "tier": "第三梯队", "address": "地址"}], "locate": True}
    body = c.post("/markers", json=payload).json()
    assert body["markers"][0]["coordinate"] == [116.2, 40.1]
    assert fake.queries == ["无坐标", "地址"]


def test_badge_png():
    c = TestClient(app)
    r = c.get("/badge.png", params={"tier": "第二梯队", "rate": "58.5%"})
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/png"
    assert r.content.startswith(b"\x89PNG")


def test_locate_reports_source_and_not_found(monkeypatch):
    fake = FakeSearch({"玉泉路66号": (116.255328, 39.902167)})
    monkeypatch.setattr("schoolmap.api.main._place_search", lambda: fake)
    c = TestClient(app)

    r = c.post("/locate", json={"name": "北京市十一学校", "address": "玉泉路66号"})
    assert r.status_code == 200
    assert r.json() == {"found": True, "coordinate": [116.255328, 39.902167], "source": "address"}

    r = c.post("/locate", json={"name": "nowhere"})
    assert r.json() == {"found": False, "coordinate": None, "source": "not_found"}
