"""
Answer comparison per question type.

Stored payload shapes (shared by given answers and correct-answer specs):
  single_choice  {"id": "a"}
  multi_choice   ["a", "c"]
  free_text      {"text": "..."} or null
"""
import enum
from dataclasses import dataclass
from typing import Any, Union

from .errors import ValidationError
from .models import QuestionType


class Verdict(str, enum.Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    NEEDS_REVIEW = "needs_review"

    @property
    def is_correct(self) -> bool | None:
        # maps onto the nullable user_answers.is_correct column
        if self is Verdict.NEEDS_REVIEW:
            return None
        return self is Verdict.CORRECT


@dataclass(frozen=True)
class SingleChoice:
    id: str | None


@dataclass(frozen=True)
class MultiChoice:
    ids: frozenset[str]


@dataclass(frozen=True)
class FreeText:
    text: str | None


AnswerShape = Union[SingleChoice, MultiChoice, FreeText]


def question_type_of(value: Any) -> QuestionType:
    try:
        return QuestionType(value)
    except ValueError:
        raise ValidationError(f"Unrecognized question type: {value!r}")


def _parse_single(payload: Any) -> SingleChoice:
    if payload is None:
        return SingleChoice(None)
    if isinstance(payload, dict):
        payload = payload.get("id")
        if payload is None:
            return SingleChoice(None)
    if isinstance(payload, str):
        return SingleChoice(payload or None)
    raise ValidationError(f"single_choice answer must look like {{\"id\": \"<choice>\"}}, got {payload!r}")


def _parse_multi(payload: Any) -> MultiChoice:
    if payload is None:
        return MultiChoice(frozenset())
    if not isinstance(payload, (list, tuple)):
        raise ValidationError(f"multi_choice answer must be a list of choice ids, got {payload!r}")
    for item in payload:
        if not isinstance(item, str):
            raise ValidationError(f"multi_choice choice ids must be strings, got {item!r}")
    return MultiChoice(frozenset(payload))


def _parse_free_text(payload: Any) -> FreeText:
    if isinstance(payload, dict):
        payload = payload.get("text")
    if payload is None or isinstance(payload, str):
        return FreeText(payload)
    raise ValidationError(f"free_text answer must look like {{\"text\": \"...\"}}, got {payload!r}")


_PARSERS = {
    QuestionType.SINGLE_CHOICE: _parse_single,
    QuestionType.MULTI_CHOICE: _parse_multi,
    QuestionType.FREE_TEXT: _parse_free_text,
}


def parse_given(question_type: Any, payload: Any) -> AnswerShape:
    """Parse a learner's answer. Absent answers parse to an empty shape, never an error."""
    return _PARSERS[question_type_of(question_type)](payload)


def parse_correct(question_type: Any, spec: Any) -> AnswerShape:
    """Parse a correct-answer spec. Choice questions must name their correct option(s)."""
    qt = question_type_of(question_type)
    if spec is None and qt is not QuestionType.FREE_TEXT:
        raise ValidationError(f"{qt.value} question has no correct answer")
    parsed = _PARSERS[qt](spec)
    if isinstance(parsed, SingleChoice) and parsed.id is None:
        raise ValidationError("single_choice question has no correct option id")
    return parsed


def _normalize_text(value: str | None) -> str:
    return (value or "").strip().casefold()


def _verdict(ok: bool) -> Verdict:
    return Verdict.CORRECT if ok else Verdict.INCORRECT


def compare(question_type: Any, correct_spec: Any, given: Any) -> Verdict:
    qt = question_type_of(question_type)
    expected = parse_correct(qt, correct_spec)
    answer = parse_given(qt, given)

    if qt is QuestionType.SINGLE_CHOICE:
        return _verdict(answer.id is not None and answer.id == expected.id)

    if qt is QuestionType.MULTI_CHOICE:
        return _verdict(answer.ids == expected.ids)

    if qt is QuestionType.FREE_TEXT:
        expected_text = _normalize_text(expected.text)
        if not expected_text:
            return Verdict.NEEDS_REVIEW
        return _verdict(_normalize_text(answer.text) == expected_text)

    raise ValidationError(f"Unrecognized question type: {qt!r}")
