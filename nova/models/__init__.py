"""Domain models for Nova users and questions."""

from nova.models.question import (
    QUESTION_FIELDS,
    QUESTION_MODELS,
    AnswerOption,
    EssayQuestion,
    JudgementQuestion,
    MultipleChoiceQuestion,
    Question,
    QuestionKind,
    QuestionRow,
    SingleChoiceQuestion,
    infer_kind,
)
from nova.models.user import User, UserPatch, UserRow

__all__ = [
    "User",
    "UserPatch",
    "UserRow",
    "QuestionKind",
    "AnswerOption",
    "SingleChoiceQuestion",
    "MultipleChoiceQuestion",
    "JudgementQuestion",
    "EssayQuestion",
    "Question",
    "QuestionRow",
    "QUESTION_MODELS",
    "QUESTION_FIELDS",
    "infer_kind",
]
