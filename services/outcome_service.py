"""
Outcome service: who wins a round of rock-paper-scissors

Pure calculation, no database access and no state changes.
"""
from enum import Enum
from typing import Optional

from models import Choice


class Outcome(str, Enum):
    A = "A"
    B = "B"
    DRAW = "DRAW"
    UNDETERMINED = "UNDETERMINED"


# key beats value
BEATS = {
    Choice.ROCK: Choice.SCISSORS,
    Choice.SCISSORS: Choice.PAPER,
    Choice.PAPER: Choice.ROCK,
}

RESULT_TAGS = {
    Outcome.A: "A wins",
    Outcome.B: "B wins",
    Outcome.DRAW: "draw",
}


def resolve(choice_a: Optional[Choice], choice_b: Optional[Choice]) -> Outcome:
    """
    Decide a round from both slots' choices.

    ┌──────────┬──────────┬──────────┬──────────┐
    │ A \\ B    │ ROCK     │ PAPER    │ SCISSORS │
    ├──────────┼──────────┼──────────┼──────────┤
    │ ROCK     │ DRAW     │ B        │ A        │
    │ PAPER    │ A        │ DRAW     │ B        │
    │ SCISSORS │ B        │ A        │ DRAW     │
    └──────────┴──────────┴──────────┴──────────┘

    Returns UNDETERMINED while either side has not chosen yet.
    """
    if choice_a is None or choice_b is None:
        return Outcome.UNDETERMINED
    if choice_a == choice_b:
        return Outcome.DRAW
    if BEATS[choice_a] == choice_b:
        return Outcome.A
    return Outcome.B


def result_tag(outcome: Outcome) -> Optional[str]:
    """Human-readable last_result for a finished round, None while undetermined."""
    return RESULT_TAGS.get(outcome)
