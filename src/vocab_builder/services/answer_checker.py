"""Checking typed answers and building hints for a card."""
import re
from typing import List

from vocab_builder.models.word_models import Rating, TrainingMode, WordProgress

MAX_HINT_LEVEL = 4
HINT_RATING_CAP_LEVEL = 2  # from this hint level on, the best rating is hard

_WHITESPACE = re.compile(r"[\s\u00a0]+")
_PUNCTUATION = re.compile(r"[.,!?;:()\[\]\"“”'’]")
_NON_SPACE = re.compile(r"\S")


def normalize_input(value: str) -> str:
    """Lowercase, collapse whitespace and drop punctuation."""
    value = _WHITESPACE.sub(" ", value.lower())
    return _PUNCTUATION.sub("", value).strip()


def mask_word(value: str) -> str:
    """Replace every character with an underscore, keeping word breaks."""
    letters = _WHITESPACE.sub(" ", value).strip()
    return " ".join(_NON_SPACE.sub("_", chunk) for chunk in letters.split(" "))


def make_blank(sentence: str, target: str) -> str:
    """Blank out the first case-insensitive occurrence of ``target`` in ``sentence``."""
    if not sentence:
        return ""
    return re.sub(re.escape(target), "____", sentence, count=1, flags=re.IGNORECASE)


def is_lenient_match(answer: str, target: str) -> bool:
    """Accept answers containing any significant word of the target."""
    if not answer or not target:
        return False
    if answer == target:
        return True
    tokens = [token for token in target.split(" ") if len(token) > 2]
    return any(token in answer for token in tokens)


def build_hints(word: WordProgress) -> List[str]:
    """Hints in the order they are revealed."""
    first_letter = word.word_or_phrase.strip()[:1]
    return [
        f"Transcription: {word.transcription or '—'}",
        f"First letter: {first_letter or '—'}",
        f"Mask: {mask_word(word.word_or_phrase)}",
        f"Ukrainian: {word.translation_uk or '—'}",
    ]


def cap_rating(rating: Rating, hint_level: int) -> Rating:
    """Downgrade good and easy to hard once too many hints were shown."""
    if hint_level >= HINT_RATING_CAP_LEVEL and rating in (Rating.GOOD, Rating.EASY):
        return Rating.HARD
    return rating


def is_typed_mode(mode: TrainingMode) -> bool:
    """Modes where the learner types the word and the answer is checked."""
    return mode in (TrainingMode.FILL_BLANK, TrainingMode.SPELLING)


def grade_answer(word: WordProgress, answer: str, hint_level: int = 0, lenient: bool = False) -> Rating:
    """Rating earned by a typed answer.

    Wrong answers rate ``again``; right ones rate ``good``, or ``hard`` when
    the learner needed two or more hints.
    """
    normalized_answer = normalize_input(answer)
    normalized_word = normalize_input(word.word_or_phrase)
    is_correct = normalized_answer == normalized_word or (
        lenient and is_lenient_match(normalized_answer, normalized_word)
    )
    if not is_correct:
        return Rating.AGAIN
    return cap_rating(Rating.GOOD, hint_level)
