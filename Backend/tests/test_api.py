import google_oauth
import pokemon_service
from conftest import FakeResponse, bearer


def guest(client, username="red"):
    resp = client.post("/api/auth/guest", json={"username": username})
    assert resp.status_code == 200
    data = resp.json()["data"]
    return {"Authorization": f"Bearer {data['token']}"}, data


# ── Envelope ─────────────────────────────────────────────────────

def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert "timestamp" in body
    assert "version" in body


def test_success_envelope_is_camel_case(client):
    body = client.post("/api/auth/guest", json={}).json()
    assert body["success"] is True
    assert body["message"] == "Guest session created"
    assert body["timestamp"]
    assert {"token", "refreshToken", "expiresIn", "user"} <= set(body["data"])
    assert body["data"]["user"]["isGuest"] is True


def test_missing_token_is_a_uniform_401(client):
    body = client.get("/api/auth/me").json()
    assert body == {**body, "success": False, "error": "Unauthorized", "code": 401,
                    "message": "Valid authentication token required"}


def test_refresh_token_cannot_be_used_as_bearer(client):
    _, data = guest(client)
    resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['refreshToken']}"})
    assert resp.status_code == 401


def test_validation_errors_use_the_envelope(client, auth_headers):
    resp = client.post("/api/game/start", json={"difficulty": "impossible"}, headers=auth_headers)
    body = resp.json()
    assert resp.status_code == 422
    assert body["success"] is False
    assert body["error"] == "Validation failed"
    assert body["data"]


# ── Auth ─────────────────────────────────────────────────────────

def test_register_conflict_and_login(client):
    payload = {"username": "misty", "email": "misty@cerulean.com", "password": "starmie!"}
    assert client.post("/api/auth/register", json=payload).status_code == 201

    resp = client.post("/api/auth/register", json={**payload, "username": "misty2"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "User already exists"

    resp = client.post("/api/auth/login", json={"email": "misty@cerulean.com", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid credentials"

    resp = client.post("/api/auth/login", json={"email": "misty@cerulean.com", "password": "starmie!"})
    assert resp.json()["data"]["user"]["username"] == "misty"


def test_refresh_and_logout(client):
    _, data = guest(client)
    resp = client.post("/api/auth/refresh", json={"refreshToken": data["refreshToken"]})
    assert resp.status_code == 200
    assert client.post("/api/auth/refresh", json={"refreshToken": data["token"]}).status_code == 401
    assert client.post("/api/auth/logout").json()["success"] is True


def test_me_and_profile(client):
    headers, _ = guest(client, "blue")
    assert client.get("/api/auth/me", headers=headers).json()["data"]["username"] == "blue"

    resp = client.patch("/api/auth/profile", json={"avatarUrl": "https://img/blue.png"}, headers=headers)
    assert resp.json()["data"]["avatarUrl"] == "https://img/blue.png"

    assert client.patch("/api/auth/profile", json={}, headers=headers).status_code == 400


def test_google_flow(client, monkeypatch):
    url = client.get("/api/auth/google/url").json()["data"]["authUrl"]
    assert url.startswith(google_oauth.AUTH_URL)

    monkeypatch.setattr(google_oauth.requests, "post",
                        lambda *a, **kw: FakeResponse({"access_token": "ya29.token"}))
    monkeypatch.setattr(google_oauth.requests, "get",
                        lambda *a, **kw: FakeResponse({"sub": "g-1", "email": "red@kanto.org", "name": "Red"}))
    resp = client.post("/api/auth/google/callback", json={"code": "4/abc"})
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["username"] == "Red"


def test_google_callback_with_used_code(client, monkeypatch):
    monkeypatch.setattr(google_oauth.requests, "post",
                        lambda *a, **kw: FakeResponse({"error": "invalid_grant"}, 400))
    resp = client.post("/api/auth/google/callback", json={"code": "4/used"})
    assert resp.status_code == 400
    assert resp.json()["success"] is False


# ── Pokémon ──────────────────────────────────────────────────────

def test_pokemon_catalog(client, pokedex):
    body = client.get("/api/pokemon", params={"limit": 2}).json()["data"]
    assert [p["name"] for p in body["pokemon"]] == ["bulbasaur", "charmander"]
    assert body["pagination"]["totalPages"] == 5

    assert client.get("/api/pokemon/25").json()["data"]["spriteUrl"].endswith("/25.png")
    assert client.get("/api/pokemon/name/Pikachu").json()["data"]["id"] == 25
    assert [p["name"] for p in client.get("/api/pokemon/search", params={"q": "char"}).json()["data"]] == ["charmander"]

    types = client.get("/api/pokemon/types").json()["data"]
    assert {"name": "fire", "color": "#F08030"} in types


def test_random_pokemon_endpoint(client, pokedex):
    data = client.get("/api/pokemon/random", params={"difficulty": "easy"}).json()["data"]
    assert data["correctAnswer"] in data["choices"]
    assert data["pokemon"]["isLegendary"] is False


def test_unknown_pokemon_is_404(client, monkeypatch):
    monkeypatch.setattr(pokemon_service.requests, "get", lambda *a, **kw: FakeResponse({}, 404))
    resp = client.get("/api/pokemon/name/missingno")
    assert resp.status_code == 404
    assert resp.json()["error"] == "Pokemon not found"


# ── Game ─────────────────────────────────────────────────────────

def test_full_game(client, pokedex):
    headers, _ = guest(client)

    first = client.post("/api/game/start", json={"gameMode": "classic", "difficulty": "easy"}, headers=headers)
    assert first.status_code == 200
    first = first.json()["data"]
    assert first["timeLimit"] == 30

    hint = client.post("/api/game/hint", json={"sessionId": first["sessionId"]}, headers=headers).json()["data"]
    assert hint["hintsUsed"] == 1

    guess = client.post("/api/game/guess", headers=headers, json={
        "sessionId": first["sessionId"], "guess": first["correctAnswer"].upper(), "timeTaken": 5,
    }).json()["data"]
    assert guess == {**guess, "correct": True, "score": 80, "streak": 1, "isGameOver": True}

    again = client.post("/api/game/guess", headers=headers, json={
        "sessionId": first["sessionId"], "guess": "x", "timeTaken": 1,
    })
    assert again.status_code == 404
    assert again.json()["error"] == "Game session not found"

    second = client.post("/api/game/next", json={"sessionId": first["sessionId"]}, headers=headers).json()["data"]
    assert second["gameId"] == first["gameId"]
    client.post("/api/game/guess", headers=headers, json={
        "sessionId": second["sessionId"], "guess": second["correctAnswer"], "timeTaken": 0,
    })

    end = client.post("/api/game/end", headers=headers, json={
        "sessionId": second["sessionId"], "finalScore": 185, "correctGuesses": 2, "totalGuesses": 2,
    }).json()["data"]
    assert end["finalScore"] == 185
    assert end["correctGuesses"] == 2
    assert end["rank"] == 1
    assert "best_score" in end["newRecords"]

    assert client.post("/api/game/end", json={"sessionId": second["sessionId"]}, headers=headers).status_code == 404

    history = client.get("/api/game/history", headers=headers).json()["data"]
    assert len(history) == 2
    stats = client.get("/api/game/stats", headers=headers).json()["data"]
    assert stats["accuracy"] == 100.0
    assert stats["bestStreak"] == 2
    unlocked = [a["id"] for a in client.get("/api/game/achievements", headers=headers).json()["data"]
                if a["isUnlocked"]]
    assert "first-correct" in unlocked

    board = client.get("/api/game/leaderboard", params={"period": "daily"}).json()["data"]
    assert board[0]["username"] == "red"
    assert board[0]["totalScore"] == 185
    assert board[0]["rank"] == 1


def test_game_routes_require_auth(client, pokedex):
    resp = client.post("/api/game/start", json={})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Valid authentication token required"


def test_cannot_touch_another_players_session(client, pokedex, rival):
    headers, _ = guest(client)
    data = client.post("/api/game/start", json={"difficulty": "easy"}, headers=headers).json()["data"]
    resp = client.post("/api/game/guess", headers=bearer(rival.id), json={
        "sessionId": data["sessionId"], "guess": data["correctAnswer"], "timeTaken": 1,
    })
    assert resp.status_code == 404


def test_leaderboard_rejects_unknown_period(client):
    assert client.get("/api/game/leaderboard", params={"period": "yearly"}).status_code == 422
