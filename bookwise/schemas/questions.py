# bookwise/schemas/questions.py
"""
Custom booking questions: a closed set of question kinds, each knowing how to
validate its own answer.
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from bookwise.core.errors import ValidationError

Answer = Union[str, list[str]]


class _QuestionBase(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    question: str = Field(..., min_length=1, max_length=500)
    required: bool = False

    def coerce(self, value: Any) -> Answer | None:
        raise NotImplementedError


class TextQuestion(_QuestionBase):
    type: Literal["text"] = "text"
    max_length: int = 500

    def coerce(self, value: Any) -> str | None:
        if not isinstance(value, str):
            raise ValidationError(f"Answer to '{self.question}' must be text", question_id=self.id)
        value = value.strip()
        if not value:
            return None
        if len(value) > self.max_length:
            raise ValidationError(
                f"Answer to '{self.question}' exceeds {self.max_length} characters", question_id=self.id
            )
        return value


class TextareaQuestion(TextQuestion):
    type: Literal["textarea"] = "textarea"
    max_length: int = 5000


class _ChoiceQuestion(_QuestionBase):
    options: list[str] = Field(..., min_length=1)

    @field_validator("options")
    @classmethod
    def _unique_options(cls, v: list[str]) -> list[str]:
        cleaned = [o.strip() for o in v]
        if any(not o for o in cleaned):
            raise ValueError("options cannot be empty strings")
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("options must be unique")
        return cleaned

    def _check_option(self, value: str) -> str:
        if value not in self.options:
            raise ValidationError(
                f"'{value}' is not an option for '{self.question}'", question_id=self.id
            )
        return value


class SelectQuestion(_ChoiceQuestion):
    type: Literal["select"] = "select"

    def coerce(self, value: Any) -> str | None:
        if value is None or value == "":
            return None
        if not isinstance(value, str):
            raise ValidationError(f"Answer to '{self.question}' must be one option", question_id=self.id)
        return self._check_option(value)


class RadioQuestion(SelectQuestion):
    type: Literal["radio"] = "radio"


class CheckboxQuestion(_ChoiceQuestion):
    type: Literal["checkbox"] = "checkbox"

    def coerce(self, value: Any) -> list[str] | None:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValidationError(f"Answer to '{self.question}' must be a list of options", question_id=self.id)
        picked = []
        for v in value:
            self._check_option(v)
            if v not in picked:
                picked.append(v)
        return picked or None


CustomQuestion = Annotated[
    Union[TextQuestion, TextareaQuestion, SelectQuestion, RadioQuestion, CheckboxQuestion],
    Field(discriminator="type"),
]

_questions_adapter = TypeAdapter(list[CustomQuestion])


def parse_questions(raw: list[Mapping[str, Any]] | None) -> list[CustomQuestion]:
    """Parse stored question JSON into typed questions; ids must be unique."""
    try:
        questions = _questions_adapter.validate_python(raw or [])
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid custom questions: {e.errors()[0]['msg']}")
    ids = [q.id for q in questions]
    if len(set(ids)) != len(ids):
        raise ValidationError("Custom question ids must be unique")
    return questions


def validate_responses(questions: list[CustomQuestion], raw: Mapping[str, Any] | None) -> dict[str, Answer]:
    """
    Check guest answers against the event type's questions.

    Returns answers keyed by question id, typed per question kind. Unknown
    ids, unknown options, wrong shapes and missing required answers raise
    ValidationError.
    """
    raw = dict(raw or {})
    by_id = {q.id: q for q in questions}

    unknown = sorted(set(raw) - set(by_id))
    if unknown:
        raise ValidationError(f"Unknown question id(s): {', '.join(unknown)}")

    answers: dict[str, Answer] = {}
    for question in questions:
        value = question.coerce(raw[question.id]) if question.id in raw and raw[question.id] is not None else None
        if value is None:
            if question.required:
                raise ValidationError(f"'{question.question}' is required", question_id=question.id)
            continue
        answers[question.id] = value
    return answers
