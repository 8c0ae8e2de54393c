"""Tests for the FSRS scheduler."""
from datetime import datetime, timedelta, timezone

import pytest

import scheduler
from scheduler import Rating, State

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _new_card():
    return {"state": 0, "due": NOW, "stability": 0, "difficulty": 0, "reps": 0, "lapses": 0, "last_review": None}


def _review_card(stability=10.0, difficulty=5.0, days_ago=10):
    last = NOW - timedelta(days=days_ago)
    return {
        "state": int(State.REVIEW), "due": last + timedelta(days=days_ago), "stability": stability,
        "difficulty": difficulty, "reps": 5, "lapses": 1, "last_review": last.isoformat(),
    }


@pytest.mark.parametrize("rating,minutes", [(Rating.AGAIN, 1), (Rating.HARD, 5), (Rating.GOOD, 10)])
def test_new_card_enters_learning(rating, minutes):
    result = scheduler.schedule(_new_card(), rating, NOW)
    assert result["state"] == State.LEARNING
    assert result["due"] == NOW + timedelta(minutes=minutes)
    assert result["reps"] == 1
    assert result["scheduled_days"] == 0
    assert result["last_review"] == NOW


def test_new_card_easy_graduates():
    result = scheduler.schedule(_new_card(), Rating.EASY, NOW)
    assert result["state"] == State.REVIEW
    assert result["scheduled_days"] >= 1
    assert result["due"] == NOW + timedelta(days=result["scheduled_days"])


def test_initial_difficulty_decreases_with_rating():
    difficulties = [scheduler.init_difficulty(r) for r in Rating]
    assert difficulties == sorted(difficulties, reverse=True)
    assert all(1 <= d <= 10 for d in difficulties)


def test_learning_steps_advance_then_graduate():
    card = scheduler.schedule(_new_card(), Rating.AGAIN, NOW)
    card["reps"] = 1
    now = NOW + timedelta(minutes=1)

    second = scheduler.schedule(card, Rating.GOOD, now)
    assert second["state"] == State.LEARNING
    assert second["due"] == now + timedelta(minutes=5)

    later = now + timedelta(minutes=5)
    third = scheduler.schedule(second, Rating.GOOD, later)
    assert third["due"] == later + timedelta(minutes=10)

    last = later + timedelta(minutes=10)
    graduated = scheduler.schedule(third, Rating.GOOD, last)
    assert graduated["state"] == State.REVIEW
    assert graduated["scheduled_days"] >= 1


def test_learning_hard_repeats_step_and_again_restarts():
    card = scheduler.schedule(_new_card(), Rating.HARD, NOW)
    now = NOW + timedelta(minutes=5)
    hard = scheduler.schedule(card, Rating.HARD, now)
    assert hard["due"] == now + timedelta(minutes=5)
    again = scheduler.schedule(card, Rating.AGAIN, now)
    assert again["due"] == now + timedelta(minutes=1)
    assert again["lapses"] == 0


def test_review_again_lapses_into_relearning():
    result = scheduler.schedule(_review_card(), Rating.AGAIN, NOW)
    assert result["state"] == State.RELEARNING
    assert result["lapses"] == 2
    assert result["reps"] == 6
    assert result["due"] == NOW + timedelta(minutes=10)
    assert result["stability"] <= 10.0


def test_relearning_good_returns_to_review():
    lapsed = scheduler.schedule(_review_card(), Rating.AGAIN, NOW)
    later = NOW + timedelta(minutes=10)
    result = scheduler.schedule(lapsed, Rating.GOOD, later)
    assert result["state"] == State.REVIEW
    assert result["lapses"] == 2


def test_review_intervals_are_ordered():
    outcomes = scheduler.preview(_review_card(), NOW)
    hard, good, easy = (outcomes[k]["scheduled_days"] for k in ("hard", "good", "easy"))
    assert hard <= good < easy
    assert outcomes["good"]["stability"] > 10.0
    assert outcomes["again"]["state"] == State.RELEARNING


def test_review_tolerates_missing_memory_state():
    result = scheduler.schedule(_review_card(stability=0, difficulty=0), Rating.GOOD, NOW)
    assert result["state"] == State.REVIEW
    assert result["scheduled_days"] >= 1


def test_retrievability():
    assert scheduler.retrievability(0, 5) == pytest.approx(1.0)
    assert scheduler.retrievability(5, 5) == pytest.approx(0.9, abs=1e-6)
    assert scheduler.retrievability(20, 5) < scheduler.retrievability(10, 5)
    assert scheduler.retrievability(3, 0) == 0.0


def test_next_interval_bounds():
    assert scheduler.next_interval(0.01) == 1
    assert scheduler.next_interval(10) == 10
    assert scheduler.next_interval(1e9) == scheduler.MAXIMUM_INTERVAL


@pytest.mark.parametrize("value", [0, 5, -1, "good", None, True, 2.5, [3]])
def test_parse_rating_rejects(value):
    with pytest.raises(ValueError):
        scheduler.parse_rating(value)


@pytest.mark.parametrize("value,expected", [(1, Rating.AGAIN), ("2", Rating.HARD), (3.0, Rating.GOOD), (4, Rating.EASY)])
def test_parse_rating_accepts(value, expected):
    assert scheduler.parse_rating(value) == expected


def test_accepts_iso_strings():
    card = _new_card()
    card["due"] = NOW.isoformat()
    result = scheduler.schedule(card, 3, NOW.isoformat())
    assert result["last_review"] == NOW
