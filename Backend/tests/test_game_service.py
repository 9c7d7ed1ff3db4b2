import pytest
from sqlalchemy import update

import config
import game_service
from errors import BadRequestError, NotFoundError
from leaderboard_service import get_entry
from models import GameSession, User, utcnow


def start(db, user, **kwargs):
    kwargs.setdefault("difficulty", "easy")
    return game_service.start_session(db, user.id, **kwargs)


def answer(db, user, round_data, correct=True, time_taken=5):
    guess = round_data["correct_answer"] if correct else "missingno"
    return game_service.submit_guess(db, user.id, round_data["session_id"], guess, time_taken)


# ── Start ────────────────────────────────────────────────────────

def test_start_session_persists_an_open_round(db, pokedex, player):
    data = start(db, player, game_mode="speed")
    session = db.get(GameSession, data["session_id"])
    assert session.is_completed is False
    assert session.game_id == data["session_id"]
    assert data["time_limit"] == 15
    assert data["config"] == {"difficulty": "easy", "game_mode": "speed", "generation": None}


def test_start_session_requires_a_known_user(db, pokedex):
    with pytest.raises(NotFoundError):
        game_service.start_session(db, "no-such-user")


# ── Guess ────────────────────────────────────────────────────────

def test_guess_is_case_and_whitespace_insensitive(db, pokedex, player):
    data = start(db, player)
    name = data["correct_answer"]
    result = game_service.submit_guess(db, player.id, data["session_id"], f"  {name.upper()} ", 0)
    assert result["correct"] is True
    assert result["score"] == 100
    assert result["is_game_over"] is True


def test_wrong_guess_scores_zero_and_resets_streak(db, pokedex, player):
    answer(db, player, start(db, player))
    result = answer(db, player, start(db, player), correct=False)
    assert result["correct"] is False
    assert result["score"] == 0
    assert result["streak"] == 0
    assert db.get(User, player.id).current_streak == 0
    assert db.get(User, player.id).best_streak == 1


def test_second_guess_is_rejected_and_outcome_kept(db, pokedex, player):
    data = start(db, player)
    first = answer(db, player, data, time_taken=2)

    with pytest.raises(NotFoundError, match="Game session not found"):
        answer(db, player, data, correct=False, time_taken=20)

    session = db.get(GameSession, data["session_id"])
    assert session.correct_guess is True
    assert session.score == first["score"]
    assert session.time_taken == 2
    assert db.get(User, player.id).current_streak == 1


def test_guess_that_loses_the_race_is_not_recorded(db, pokedex, player, monkeypatch):
    data = start(db, player)
    original = game_service._open_session

    def answered_concurrently(db_, user_id, session_id):
        row = original(db_, user_id, session_id)
        db_.execute(
            update(GameSession)
            .where(GameSession.id == session_id)
            .values(is_completed=True, correct_guess=False, selected_answer="missingno",
                    time_taken=9, score=0, completed_at=utcnow())
        )
        db_.commit()
        return row

    monkeypatch.setattr(game_service, "_open_session", answered_concurrently)
    with pytest.raises(NotFoundError, match="Game session not found"):
        answer(db, player, data, time_taken=1)

    session = db.get(GameSession, data["session_id"])
    assert session.correct_guess is False
    assert session.selected_answer == "missingno"
    assert session.time_taken == 9
    assert db.get(User, player.id).current_streak == 0
    assert db.get(User, player.id).best_streak == 0


def test_guess_on_someone_elses_session_is_not_found(db, pokedex, player, rival):
    data = start(db, player)
    with pytest.raises(NotFoundError):
        answer(db, rival, data)


def test_streak_bonus_uses_streak_before_the_guess(db, pokedex, player):
    scores = [answer(db, player, start(db, player), time_taken=0)["score"] for _ in range(3)]
    assert scores == [100, 105, 110]
    user = db.get(User, player.id)
    assert user.current_streak == 3
    assert user.best_streak == 3


def test_first_correct_guess_unlocks_achievement_once(db, pokedex, player):
    first = answer(db, player, start(db, player))
    second = answer(db, player, start(db, player))
    assert "first-correct" in [a["id"] for a in first["achievements"]]
    assert "first-correct" not in [a["id"] for a in second["achievements"]]


def test_fast_guess_unlocks_speed_demon(db, pokedex, player):
    result = answer(db, player, start(db, player), time_taken=1.5)
    assert "speed-demon" in [a["id"] for a in result["achievements"]]


# ── Hints ────────────────────────────────────────────────────────

def test_hints_are_revealed_one_at_a_time(db, pokedex, player):
    data = start(db, player)
    first = game_service.request_hint(db, player.id, data["session_id"])
    second = game_service.request_hint(db, player.id, data["session_id"])

    assert first["hint"]["type"] == data["hints"][0]["type"]
    assert second["hint"]["type"] == data["hints"][1]["type"]
    assert first["hint"]["cost"] == 10
    assert second["hints_used"] == 2
    assert second["hints_remaining"] == len(data["hints"]) - 2


def test_hints_reduce_the_score(db, pokedex, player):
    data = start(db, player)
    game_service.request_hint(db, player.id, data["session_id"])
    assert answer(db, player, data, time_taken=0)["score"] == 90


def test_advertised_hint_cost_is_what_the_score_loses(db, pokedex, player, monkeypatch):
    monkeypatch.setattr(config, "HINT_COST", 30)
    data = start(db, player)
    hint = game_service.request_hint(db, player.id, data["session_id"])
    assert hint["hint"]["cost"] == 30
    assert answer(db, player, data, time_taken=0)["score"] == 100 - 30


def test_running_out_of_hints(db, pokedex, player):
    data = start(db, player)
    for _ in data["hints"]:
        game_service.request_hint(db, player.id, data["session_id"])
    with pytest.raises(BadRequestError, match="No more hints"):
        game_service.request_hint(db, player.id, data["session_id"])


def test_no_hints_after_the_guess(db, pokedex, player):
    data = start(db, player)
    answer(db, player, data)
    with pytest.raises(NotFoundError):
        game_service.request_hint(db, player.id, data["session_id"])


# ── Next round ───────────────────────────────────────────────────

def test_next_round_shares_game_and_config(db, pokedex, player):
    first = start(db, player, game_mode="streak", generation=1)
    answer(db, player, first)
    second = game_service.next_round(db, player.id, first["session_id"])
    assert second["game_id"] == first["game_id"]
    assert second["session_id"] != first["session_id"]
    assert second["time_limit"] == 45
    assert second["pokemon"]["generation"] == 1


def test_next_round_requires_an_answered_round(db, pokedex, player):
    first = start(db, player)
    with pytest.raises(BadRequestError):
        game_service.next_round(db, player.id, first["session_id"])


# ── End ──────────────────────────────────────────────────────────

def test_end_session_recomputes_totals_server_side(db, pokedex, player):
    first = start(db, player)
    answer(db, player, first, time_taken=0)
    second = game_service.next_round(db, player.id, first["session_id"])
    answer(db, player, second, correct=False, time_taken=4)
    third = game_service.next_round(db, player.id, second["session_id"])

    result = game_service.end_session(db, player.id, third["session_id"],
                                      {"final_score": 99999, "correct_guesses": 3})

    assert result["final_score"] == 100
    assert result["correct_guesses"] == 1
    assert result["total_guesses"] == 3
    assert result["total_time"] == 4
    assert result["rank"] == 1
    assert set(result["new_records"]) == {"best_score", "best_streak"}

    unanswered = db.get(GameSession, third["session_id"])
    assert unanswered.is_completed is True
    assert unanswered.correct_guess is False
    assert unanswered.score == 0

    entry = get_entry(db, player.id, "daily")
    assert entry["score"] == 100
    assert entry["total_games"] == 3


def test_game_can_only_be_ended_once(db, pokedex, player):
    data = start(db, player)
    answer(db, player, data)
    game_service.end_session(db, player.id, data["session_id"])
    with pytest.raises(NotFoundError):
        game_service.end_session(db, player.id, data["session_id"])
    assert get_entry(db, player.id, "daily")["score"] == 100 - 10


def test_end_that_loses_the_race_credits_nothing(db, pokedex, player, monkeypatch):
    data = start(db, player)
    answer(db, player, data)
    real_utcnow = game_service.utcnow

    def ended_concurrently():
        now = real_utcnow()
        db.execute(
            update(GameSession).where(GameSession.game_id == data["game_id"]).values(ended_at=now)
        )
        db.commit()
        return now

    monkeypatch.setattr(game_service, "utcnow", ended_concurrently)
    with pytest.raises(NotFoundError, match="Game session not found"):
        game_service.end_session(db, player.id, data["session_id"])

    assert get_entry(db, player.id, "daily") is None


def test_ended_game_has_no_next_round(db, pokedex, player):
    data = start(db, player)
    answer(db, player, data)
    game_service.end_session(db, player.id, data["session_id"])
    with pytest.raises(NotFoundError):
        game_service.next_round(db, player.id, data["session_id"])


def test_lower_score_is_not_a_new_record(db, pokedex, player):
    good = start(db, player)
    answer(db, player, good, time_taken=0)
    game_service.end_session(db, player.id, good["session_id"])

    poor = start(db, player)
    answer(db, player, poor, correct=False)
    result = game_service.end_session(db, player.id, poor["session_id"])
    assert result["new_records"] == []


def test_rank_reflects_other_players(db, pokedex, player, rival):
    strong = start(db, rival)
    answer(db, rival, strong, time_taken=0)
    game_service.end_session(db, rival.id, strong["session_id"])

    weak = start(db, player)
    answer(db, player, weak, time_taken=20)
    assert game_service.end_session(db, player.id, weak["session_id"])["rank"] == 2


# ── Reads ────────────────────────────────────────────────────────

def test_history_and_stats(db, pokedex, player):
    answer(db, player, start(db, player), time_taken=2)
    answer(db, player, start(db, player), correct=False, time_taken=4)
    start(db, player)

    history = game_service.get_history(db, player.id)
    assert len(history) == 2
    assert {h["pokemon_name"] for h in history} <= set(pokedex)

    stats = game_service.get_stats(db, player.id)
    assert stats["total_games"] == 2
    assert stats["correct_guesses"] == 1
    assert stats["accuracy"] == 50.0
    assert stats["average_time"] == 3.0
    assert stats["best_streak"] == 1


def test_stats_for_a_new_player(db, player):
    stats = game_service.get_stats(db, player.id)
    assert stats["total_games"] == 0
    assert stats["accuracy"] == 0
    assert stats["average_time"] == 0


def test_achievement_catalog_with_progress(db, pokedex, player):
    answer(db, player, start(db, player))
    catalog = {a["id"]: a for a in game_service.get_achievements(db, player.id)}
    assert set(catalog) == {"first-correct", "streak-5", "streak-10", "speed-demon", "high-score"}
    assert catalog["first-correct"]["is_unlocked"]
    assert not catalog["streak-5"]["is_unlocked"]
