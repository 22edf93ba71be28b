from healthtrack.api import deps
from healthtrack.core.exceptions import StorageFailure
from healthtrack.crud.memory import InMemoryActivityStore
from healthtrack.main import app
from healthtrack.services.activity_service import ActivityService

API = "/api/v1"

JAN_FIRST = {"badMeals": 1, "alcohol": 0, "snacks": 0, "exercise": True, "greens": False}


class UnavailableStore(InMemoryActivityStore):
    def get_daily(self, user_id, day):
        raise StorageFailure("connection reset by peer at 10.0.0.5")


def test_health_needs_no_auth(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_missing_or_bad_token_is_401(client):
    response = client.get(f"{API}/activities")
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"

    response = client.get(f"{API}/activities", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_create_update_delete_over_http(client, headers):
    response = client.post(f"{API}/activities", json={"date": "2025-01-01", "score": JAN_FIRST}, headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["activity"]["totalScore"] == 4
    assert body["activity"]["userId"] == "user-alice"
    assert body["activity"]["score"]["badMeals"] == 1
    assert body["rollupStatus"] == "applied"
    assert body["rollup"]["totalPoints"] == 4
    assert body["rollup"]["exerciseDays"] == 1

    response = client.put(f"{API}/activities/2025-01-01", json={"score": {"exercise": False}}, headers=headers)
    assert response.status_code == 200
    assert response.json()["activity"]["totalScore"] == 3
    assert response.json()["rollup"]["totalPoints"] == 3

    response = client.get(f"{API}/rollups/2025-01/me", headers=headers)
    assert response.status_code == 200
    assert response.json()["totalDays"] == 1

    response = client.delete(f"{API}/activities/2025-01-01", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"success": True, "rollup": None, "rollupStatus": "applied"}

    response = client.get(f"{API}/rollups/2025-01/me", headers=headers)
    assert response.status_code == 404


def test_read_one_day_or_all(client, headers):
    assert client.get(f"{API}/activities", params={"date": "2025-01-01"}, headers=headers).json() is None

    for day in ("2025-01-01", "2025-01-03"):
        client.post(f"{API}/activities", json={"date": day, "score": JAN_FIRST}, headers=headers)

    one = client.get(f"{API}/activities", params={"date": "2025-01-03"}, headers=headers).json()
    assert one["date"] == "2025-01-03"
    listed = client.get(f"{API}/activities", headers=headers).json()
    assert [a["date"] for a in listed] == ["2025-01-03", "2025-01-01"]


def test_invalid_input_is_400(client, headers):
    response = client.post(f"{API}/activities", json={"score": JAN_FIRST}, headers=headers)
    assert response.status_code == 400
    assert "Date" in response.json()["detail"]

    response = client.post(
        f"{API}/activities",
        json={"date": "2025-01-01", "score": {**JAN_FIRST, "snacks": -2}},
        headers=headers,
    )
    assert response.status_code == 400

    response = client.get(f"{API}/rollups/2025-1", headers=headers)
    assert response.status_code == 400


def test_update_or_delete_missing_day_is_404(client, headers):
    assert client.put(f"{API}/activities/2025-01-01", json={"score": {"greens": True}}, headers=headers).status_code == 404
    assert client.delete(f"{API}/activities/2025-01-01", headers=headers).status_code == 404


def test_users_only_see_their_own_days(client, headers, other_headers):
    client.post(f"{API}/activities", json={"date": "2025-01-01", "score": JAN_FIRST}, headers=headers)
    assert client.get(f"{API}/activities", headers=other_headers).json() == []
    assert client.delete(f"{API}/activities/2025-01-01", headers=other_headers).status_code == 404


def test_leaderboard_and_stats(client, headers, other_headers):
    perfect = {"badMeals": 0, "alcohol": 0, "snacks": 0, "exercise": True, "greens": True}
    client.post(f"{API}/activities", json={"date": "2025-01-01", "score": JAN_FIRST}, headers=headers)
    client.post(f"{API}/activities", json={"date": "2025-01-01", "score": perfect}, headers=other_headers)

    board = client.get(f"{API}/rollups/2025-01", headers=headers).json()
    assert board["month"] == "2025-01"
    assert [r["userId"] for r in board["rollups"]] == ["user-bob", "user-alice"]

    stats = client.get(f"{API}/stats/me", headers=other_headers).json()
    assert stats == {"userId": "user-bob", "allTimeScore": 6, "perfectDays": 1, "trackedDays": 1}


def test_recompute_endpoint(client, headers):
    client.post(f"{API}/activities", json={"date": "2025-01-01", "score": JAN_FIRST}, headers=headers)
    response = client.post(f"{API}/rollups/2025-01/me/recompute", headers=headers)
    assert response.status_code == 200
    assert response.json()["totalPoints"] == 4

    assert client.post(f"{API}/rollups/2025-02/me/recompute", headers=headers).status_code == 404


def test_storage_failure_is_503_without_detail(client, headers):
    app.dependency_overrides[deps.get_activity_service] = lambda: ActivityService(UnavailableStore())
    response = client.get(f"{API}/activities", params={"date": "2025-01-01"}, headers=headers)
    assert response.status_code == 503
    assert "10.0.0.5" not in response.text
