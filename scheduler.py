"""
FSRS (Free Spaced Repetition Scheduler) for review cards.

Card states: New -> Learning -> Review
                                -> Relearning (on lapse) -> Review

Ratings: Again (1), Hard (2), Good (3), Easy (4)

Memory model: retrievability R = (1 + FACTOR * t / S) ^ DECAY, where t is the
number of days since the last review and S the stability in days. The
interval for a card is the number of days until R drops to the requested
retention. `schedule()` is a pure function over a card dict; persisting the
result is the caller's job.
"""

import math
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Optional


class State(IntEnum):
    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


class Rating(IntEnum):
    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


# Published default weights
WEIGHTS = (
    0.4072, 1.1829, 3.1262, 15.4722, 7.2102, 0.5316, 1.0651, 0.0234, 1.616,
    0.1544, 1.0824, 1.9813, 0.0953, 0.2975, 2.2042, 0.2407, 2.9466, 0.5034,
    0.6567,
)
DECAY = -0.5
FACTOR = 19 / 81
REQUEST_RETENTION = 0.9
MAXIMUM_INTERVAL = 36500

# Learning steps in minutes
LEARNING_STEPS = (1, 5, 10)
RELEARNING_STEPS = (10,)

MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0
MIN_STABILITY = 0.1


def parse_rating(value) -> Rating:
    """Coerce a request value into a Rating; raises ValueError otherwise."""
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(f"Invalid rating: {value!r}")
    try:
        return Rating(int(value))
    except (TypeError, ValueError):
        raise ValueError(f"Invalid rating: {value!r}") from None


def _clamp(value, low, high):
    return min(max(value, low), high)


def _as_datetime(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# --- Memory model ---

def retrievability(elapsed_days: float, stability: float) -> float:
    if stability <= 0:
        return 0.0
    return math.pow(1 + FACTOR * elapsed_days / stability, DECAY)


def next_interval(stability: float) -> int:
    """Whole days until recall probability falls to REQUEST_RETENTION."""
    interval = stability / FACTOR * (math.pow(REQUEST_RETENTION, 1 / DECAY) - 1)
    return int(_clamp(round(interval), 1, MAXIMUM_INTERVAL))


def init_stability(rating: Rating) -> float:
    return max(WEIGHTS[rating - 1], MIN_STABILITY)


def init_difficulty(rating: Rating) -> float:
    return _clamp(WEIGHTS[4] - (rating - 3) * WEIGHTS[5], MIN_DIFFICULTY, MAX_DIFFICULTY)


def next_difficulty(difficulty: float, rating: Rating) -> float:
    # Mean reversion towards the initial difficulty of a Good rating
    updated = difficulty - WEIGHTS[6] * (rating - 3)
    reverted = WEIGHTS[7] * init_difficulty(Rating.GOOD) + (1 - WEIGHTS[7]) * updated
    return _clamp(reverted, MIN_DIFFICULTY, MAX_DIFFICULTY)


def recall_stability(difficulty: float, stability: float, r: float, rating: Rating) -> float:
    hard_penalty = WEIGHTS[15] if rating == Rating.HARD else 1.0
    easy_bonus = WEIGHTS[16] if rating == Rating.EASY else 1.0
    growth = (
        math.exp(WEIGHTS[8])
        * (11 - difficulty)
        * math.pow(stability, -WEIGHTS[9])
        * (math.exp(WEIGHTS[10] * (1 - r)) - 1)
        * hard_penalty
        * easy_bonus
    )
    return stability * (1 + growth)


def forget_stability(difficulty: float, stability: float, r: float) -> float:
    value = (
        WEIGHTS[11]
        * math.pow(difficulty, -WEIGHTS[12])
        * (math.pow(stability + 1, WEIGHTS[13]) - 1)
        * math.exp(WEIGHTS[14] * (1 - r))
    )
    return max(min(value, stability), MIN_STABILITY)


def short_term_stability(stability: float, rating: Rating) -> float:
    return max(stability * math.exp(WEIGHTS[17] * (rating - 3 + WEIGHTS[18])), MIN_STABILITY)


# --- Scheduling ---

def _current_step(steps, due: Optional[datetime], last_review: Optional[datetime]) -> int:
    """Index of the step the card is waiting on, inferred from its last gap."""
    if due is None or last_review is None:
        return 0
    minutes = round((due - last_review).total_seconds() / 60)
    if minutes in steps:
        return steps.index(minutes)
    return 0


def _result(state, due, stability, difficulty, elapsed_days, scheduled_days, reps, lapses, now):
    return {
        "state": int(state),
        "due": due,
        "stability": round(stability, 6),
        "difficulty": round(difficulty, 6),
        "elapsed_days": elapsed_days,
        "scheduled_days": scheduled_days,
        "reps": reps,
        "lapses": lapses,
        "last_review": now,
    }


def schedule(card: dict, rating, now: Optional[datetime] = None) -> dict:
    """
    Given a card dict (from the DB) and a rating (1-4), return the updated
    scheduling fields.

    Returns dict with: state, due, stability, difficulty, elapsed_days,
    scheduled_days, reps, lapses, last_review. `due` and `last_review` are
    timezone-aware datetimes.
    """
    rating = parse_rating(rating)
    now = _as_datetime(now) or datetime.now(timezone.utc)

    state = State(int(card.get("state") or 0))
    stability = float(card.get("stability") or 0)
    difficulty = float(card.get("difficulty") or 0)
    reps = int(card.get("reps") or 0) + 1
    lapses = int(card.get("lapses") or 0)
    last_review = _as_datetime(card.get("last_review"))
    due = _as_datetime(card.get("due"))

    elapsed_days = 0
    if state != State.NEW and last_review is not None:
        elapsed_days = max(0, (now - last_review).days)

    if state == State.NEW:
        stability = init_stability(rating)
        difficulty = init_difficulty(rating)
        if rating == Rating.EASY:
            days = next_interval(stability)
            return _result(State.REVIEW, now + timedelta(days=days), stability, difficulty,
                           elapsed_days, days, reps, lapses, now)
        step = LEARNING_STEPS[rating - 1]
        return _result(State.LEARNING, now + timedelta(minutes=step), stability, difficulty,
                       elapsed_days, 0, reps, lapses, now)

    if state in (State.LEARNING, State.RELEARNING):
        steps = LEARNING_STEPS if state == State.LEARNING else RELEARNING_STEPS
        stability = short_term_stability(stability or init_stability(rating), rating)
        difficulty = next_difficulty(difficulty or init_difficulty(rating), rating)
        current = _current_step(steps, due, last_review)

        if rating == Rating.AGAIN:
            next_step = 0
        elif rating == Rating.HARD:
            next_step = current
        elif rating == Rating.GOOD:
            next_step = current + 1
        else:
            next_step = len(steps)

        if next_step < len(steps):
            return _result(state, now + timedelta(minutes=steps[next_step]), stability, difficulty,
                           elapsed_days, 0, reps, lapses, now)
        days = next_interval(stability)
        return _result(State.REVIEW, now + timedelta(days=days), stability, difficulty,
                       elapsed_days, days, reps, lapses, now)

    # Review
    stability = max(stability, MIN_STABILITY)
    difficulty = _clamp(difficulty or init_difficulty(Rating.GOOD), MIN_DIFFICULTY, MAX_DIFFICULTY)
    r = retrievability(elapsed_days, stability)
    if rating == Rating.AGAIN:
        new_stability = forget_stability(difficulty, stability, r)
        new_difficulty = next_difficulty(difficulty, rating)
        return _result(State.RELEARNING, now + timedelta(minutes=RELEARNING_STEPS[0]), new_stability,
                       new_difficulty, elapsed_days, 0, reps, lapses + 1, now)

    hard_interval = next_interval(recall_stability(difficulty, stability, r, Rating.HARD))
    good_interval = next_interval(recall_stability(difficulty, stability, r, Rating.GOOD))
    easy_interval = next_interval(recall_stability(difficulty, stability, r, Rating.EASY))
    hard_interval = min(hard_interval, good_interval)
    good_interval = max(good_interval, hard_interval + 1)
    easy_interval = max(easy_interval, good_interval + 1)
    days = {Rating.HARD: hard_interval, Rating.GOOD: good_interval, Rating.EASY: easy_interval}[rating]

    return _result(State.REVIEW, now + timedelta(days=days),
                   recall_stability(difficulty, stability, r, rating),
                   next_difficulty(difficulty, rating), elapsed_days, days, reps, lapses, now)


def preview(card: dict, now: Optional[datetime] = None) -> dict:
    """Outcome of every rating for a card, keyed by rating name."""
    return {rating.name.lower(): schedule(card, rating, now) for rating in Rating}
