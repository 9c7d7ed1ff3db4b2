"""
Load simulation script for the Who's That Pokémon? API.

Each cycle signs in a fresh guest, plays a short game (guessing right about
half the time), ends it and reads the leaderboard, to simulate real players.

Usage:
    python simulate_load.py
"""

import random
import time

import requests

API_BASE_URL = "http://localhost:8000/api"
ROUNDS_PER_GAME = 3


def _data(resp):
    return (resp.json() or {}).get("data") or {}


def new_guest() -> dict:
    """POST /auth/guest and return bearer headers."""
    resp = requests.post(f"{API_BASE_URL}/auth/guest", json={}, timeout=10)
    token = _data(resp).get("token")
    print(f"  ↑ guest   status={resp.status_code}")
    return {"Authorization": f"Bearer {token}"}


def play_game(headers: dict):
    """Play ROUNDS_PER_GAME rounds in one game, then end it."""
    resp = requests.post(
        f"{API_BASE_URL}/game/start",
        json={"gameMode": random.choice(["classic", "speed"]), "difficulty": random.choice(["easy", "medium"])},
        headers=headers,
        timeout=10,
    )
    round_data = _data(resp)
    if resp.status_code != 200:
        print(f"  ✗ start failed: {resp.status_code} {resp.text[:120]}")
        return

    for round_number in range(ROUNDS_PER_GAME):
        if round_number:
            resp = requests.post(f"{API_BASE_URL}/game/next", json={"sessionId": round_data["sessionId"]},
                                 headers=headers, timeout=10)
            round_data = _data(resp)
        guess = round_data["correctAnswer"] if random.random() < 0.5 else random.choice(round_data["choices"])
        resp = requests.post(
            f"{API_BASE_URL}/game/guess",
            json={"sessionId": round_data["sessionId"], "guess": guess, "timeTaken": round(random.uniform(1, 20), 2)},
            headers=headers,
            timeout=10,
        )
        result = _data(resp)
        print(f"  ↑ guess   correct={result.get('correct')}  score={result.get('score')}")

    resp = requests.post(f"{API_BASE_URL}/game/end", json={"sessionId": round_data["sessionId"]},
                         headers=headers, timeout=10)
    summary = _data(resp)
    print(f"  ↑ end     final={summary.get('finalScore')}  rank={summary.get('rank')}")


def get_leaderboard():
    """GET the daily leaderboard."""
    try:
        resp = requests.get(f"{API_BASE_URL}/game/leaderboard", params={"period": "daily"}, timeout=10)
        print(f"  ↓ board   entries={len(resp.json().get('data') or [])}")
    except requests.RequestException as e:
        print(f"  ✗ leaderboard failed: {e}")


if __name__ == "__main__":
    print("🚀 Load simulation started — press Ctrl+C to stop\n")
    cycle = 0
    try:
        while True:
            cycle += 1
            print(f"── Cycle {cycle} ──")
            try:
                play_game(new_guest())
            except requests.RequestException as e:
                print(f"  ✗ game failed: {e}")
            get_leaderboard()
            time.sleep(random.uniform(0.5, 2))
    except KeyboardInterrupt:
        print("\n⏹ Simulation stopped")
