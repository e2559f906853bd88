import re
from collections import Counter
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .errors import InvalidGuess
from .models import GameOutcome


WORD_LENGTH = 5
MAX_GUESSES = 6

_GUESS_RE = re.compile(r'^[A-Z]{5}$')


class TileState(str, Enum):
    CORRECT = 'correct'
    PRESENT = 'present'
    ABSENT = 'absent'


_RANK = {TileState.ABSENT: 0, TileState.PRESENT: 1, TileState.CORRECT: 2}


def normalize_guess(text: str) -> str:
    guess = (text or '').strip().upper()
    if not _GUESS_RE.match(guess):
        raise InvalidGuess(f"Guess must be exactly {WORD_LENGTH} letters A-Z")
    return guess


def evaluate(guess: str, solution: str) -> List[TileState]:
    g = guess.upper()
    s = solution.upper()
    result = [TileState.ABSENT] * len(g)
    remaining = Counter()

    # exact positions first; whatever is left can be claimed by misplaced letters
    for i, (gc, sc) in enumerate(zip(g, s)):
        if gc == sc:
            result[i] = TileState.CORRECT
        else:
            remaining[sc] += 1

    for i, gc in enumerate(g):
        if result[i] is TileState.CORRECT:
            continue
        if remaining[gc] > 0:
            result[i] = TileState.PRESENT
            remaining[gc] -= 1
    return result


def keyboard_states(guesses: Sequence[str], solution: str) -> Dict[str, TileState]:
    """Best state seen for each guessed letter (correct > present > absent)."""
    states: Dict[str, TileState] = {}
    for guess in guesses:
        for letter, state in zip(guess.upper(), evaluate(guess, solution)):
            current = states.get(letter)
            if current is None or _RANK[state] > _RANK[current]:
                states[letter] = state
    return states


def outcome_for_guesses(guesses: Sequence[str], solution: str) -> Optional[GameOutcome]:
    """Win/lose for a finished board, None while the game is still going."""
    if len(guesses) > MAX_GUESSES:
        raise InvalidGuess(f"At most {MAX_GUESSES} guesses are allowed")
    target = solution.upper()
    for i, guess in enumerate(guesses):
        if guess.upper() == target:
            if i != len(guesses) - 1:
                raise InvalidGuess("No guesses are allowed after the puzzle is solved")
            return GameOutcome.WIN
    if len(guesses) == MAX_GUESSES:
        return GameOutcome.LOSE
    return None
