"""Question models for the four supported kinds."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class QuestionKind(str, Enum):
    """Question kinds as they appear in route paths."""

    SINGLE_CHOICE = "single-choice"
    MULTIPLE_CHOICE = "multiple-choice"
    JUDGEMENT = "judgement"
    ESSAY = "essay"

    @property
    def table(self) -> str:
        return self.value.replace("-", "_")


class AnswerOption(BaseModel):
    """One selectable answer, e.g. ``{"answerMark": "A", "answerText": "42"}``."""

    model_config = ConfigDict(populate_by_name=True)

    answer_mark: str = Field(..., alias="answerMark", min_length=1)
    answer_text: str = Field(..., alias="answerText")


class SingleChoiceQuestion(BaseModel):
    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    answers: list[AnswerOption] = Field(..., min_length=1)
    standard_answer: AnswerOption


class MultipleChoiceQuestion(BaseModel):
    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    answers: list[AnswerOption] = Field(..., min_length=1)
    standard_answers: list[AnswerOption] = Field(..., min_length=1)


class JudgementQuestion(BaseModel):
    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    answer: bool = False
    standard_answer: bool


class EssayQuestion(BaseModel):
    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    answer: str = ""
    standard_answer: str


Question = SingleChoiceQuestion | MultipleChoiceQuestion | JudgementQuestion | EssayQuestion

QUESTION_MODELS: dict[QuestionKind, type[BaseModel]] = {
    QuestionKind.SINGLE_CHOICE: SingleChoiceQuestion,
    QuestionKind.MULTIPLE_CHOICE: MultipleChoiceQuestion,
    QuestionKind.JUDGEMENT: JudgementQuestion,
    QuestionKind.ESSAY: EssayQuestion,
}


def infer_kind(body: dict[str, Any]) -> QuestionKind | None:
    """Guess the question kind from the keys of a request body."""
    if "standard_answers" in body:
        return QuestionKind.MULTIPLE_CHOICE
    if "answers" in body:
        return QuestionKind.SINGLE_CHOICE
    standard = body.get("standard_answer")
    if isinstance(standard, bool):
        return QuestionKind.JUDGEMENT
    if isinstance(standard, str):
        return QuestionKind.ESSAY
    return None


# Field names holding the answer(s) and the expected answer(s); the
# table columns carry the same names
QUESTION_FIELDS: dict[QuestionKind, tuple[str, str]] = {
    QuestionKind.SINGLE_CHOICE: ("answers", "standard_answer"),
    QuestionKind.MULTIPLE_CHOICE: ("answers", "standard_answers"),
    QuestionKind.JUDGEMENT: ("answer", "standard_answer"),
    QuestionKind.ESSAY: ("answer", "standard_answer"),
}


@dataclass
class QuestionRow:
    """Row of one of the question tables.

    Answer values are stored as JSON text so a single row shape serves
    all four kinds.
    """

    kind: QuestionKind
    id: str
    title: str
    answer: str
    standard_answer: str

    def persistable_fields(self) -> list[tuple[str, Any]]:
        answer_column, standard_column = QUESTION_FIELDS[self.kind]
        return [
            ("id", self.id),
            ("title", self.title),
            (answer_column, self.answer),
            (standard_column, self.standard_answer),
        ]

    @classmethod
    def from_model(cls, kind: QuestionKind, question: BaseModel) -> QuestionRow:
        data = question.model_dump(by_alias=True)
        answer_field, standard_field = QUESTION_FIELDS[kind]
        return cls(
            kind=kind,
            id=data["id"],
            title=data["title"],
            answer=json.dumps(data[answer_field]),
            standard_answer=json.dumps(data[standard_field]),
        )

    def to_model(self) -> BaseModel:
        answer_field, standard_field = QUESTION_FIELDS[self.kind]
        return QUESTION_MODELS[self.kind].model_validate({
            "id": self.id,
            "title": self.title,
            answer_field: json.loads(self.answer),
            standard_field: json.loads(self.standard_answer),
        })
