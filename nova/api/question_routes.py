"""API Route Definitions for Nova questions.

Questions come in four kinds. Kind-specific routes carry the kind in the
path; the generic routes infer it from the body or look the id up across
every kind.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Response, status
from pydantic import BaseModel, ValidationError

from nova.api.dependencies import QuestionServiceDep
from nova.api.models import PROBLEM_RESPONSES, ProblemError
from nova.api.routes import API_PREFIX, require_id, require_matching_id
from nova.models import QUESTION_MODELS, QuestionKind, infer_kind
from nova.utils import new_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_PREFIX}/question", tags=["question"])

QuestionBody = Body(..., description="Question document; keys depend on the kind")


def _body_id(body: dict[str, Any]) -> str | None:
    value = body.get("id")
    return None if value is None else str(value)


def _parse(kind: QuestionKind, question_id: str, body: dict[str, Any]) -> BaseModel:
    require_matching_id(question_id, _body_id(body), label="id")
    try:
        return QUESTION_MODELS[kind].model_validate({**body, "id": question_id})
    except ValidationError as e:
        raise ProblemError(status.HTTP_400_BAD_REQUEST, f"invalid {kind.value} question: {e}") from e


def _dump(question: BaseModel) -> dict[str, Any]:
    return question.model_dump(by_alias=True)


# =============================================================================
# Generic Endpoints
# =============================================================================


@router.post(
    "/Id",
    response_model=str,
    status_code=status.HTTP_201_CREATED,
    summary="Generate a question id",
)
async def create_question_id() -> str:
    question_id = new_id()
    logger.info(f"Generated question id {question_id}")
    return question_id


@router.post(
    "/{question_id}",
    response_model=None,
    status_code=status.HTTP_201_CREATED,
    summary="Create question, inferring its kind from the body",
    responses=PROBLEM_RESPONSES,
)
async def create_question(
    question_id: str,
    questions: QuestionServiceDep,
    body: dict[str, Any] = QuestionBody,
) -> dict[str, Any]:
    question_id = require_id(question_id, label="id")
    kind = infer_kind(body)
    if kind is None:
        raise ProblemError(status.HTTP_400_BAD_REQUEST, "cannot determine question kind from body")
    question = _parse(kind, question_id, body)
    return _dump(await questions.create(kind, question))


@router.get(
    "/{question_id}",
    response_model=None,
    summary="Get question of any kind",
    responses=PROBLEM_RESPONSES,
)
async def find_question(question_id: str, questions: QuestionServiceDep) -> dict[str, Any]:
    _, question = await questions.find(require_id(question_id, label="id"))
    return _dump(question)


@router.delete(
    "/{question_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete question of any kind",
    responses=PROBLEM_RESPONSES,
)
async def delete_any_question(question_id: str, questions: QuestionServiceDep) -> Response:
    await questions.delete(None, require_id(question_id, label="id"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Kind-specific Endpoints
# =============================================================================


@router.post(
    "/{kind}/{question_id}",
    response_model=None,
    status_code=status.HTTP_201_CREATED,
    summary="Create question",
    responses=PROBLEM_RESPONSES,
)
async def create_kind_question(
    kind: QuestionKind,
    question_id: str,
    questions: QuestionServiceDep,
    body: dict[str, Any] = QuestionBody,
) -> dict[str, Any]:
    question = _parse(kind, require_id(question_id, label="id"), body)
    return _dump(await questions.create(kind, question))


@router.put(
    "/{kind}/{question_id}",
    response_model=None,
    summary="Replace question",
    responses=PROBLEM_RESPONSES,
)
async def replace_question(
    kind: QuestionKind,
    question_id: str,
    questions: QuestionServiceDep,
    body: dict[str, Any] = QuestionBody,
) -> dict[str, Any]:
    question = _parse(kind, require_id(question_id, label="id"), body)
    return _dump(await questions.replace(kind, question))


@router.patch(
    "/{kind}/{question_id}",
    response_model=None,
    summary="Modify question",
    responses=PROBLEM_RESPONSES,
)
async def modify_question(
    kind: QuestionKind,
    question_id: str,
    questions: QuestionServiceDep,
    body: dict[str, Any] = QuestionBody,
) -> dict[str, Any]:
    question_id = require_id(question_id, label="id")
    require_matching_id(question_id, _body_id(body), label="id")
    return _dump(await questions.patch(kind, question_id, body))


@router.get(
    "/{kind}/{question_id}",
    response_model=None,
    summary="Get question",
    responses=PROBLEM_RESPONSES,
)
async def get_question(
    kind: QuestionKind, question_id: str, questions: QuestionServiceDep
) -> dict[str, Any]:
    return _dump(await questions.get(kind, require_id(question_id, label="id")))


@router.delete(
    "/{kind}/{question_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete question",
    responses=PROBLEM_RESPONSES,
)
async def delete_question(
    kind: QuestionKind, question_id: str, questions: QuestionServiceDep
) -> Response:
    await questions.delete(kind, require_id(question_id, label="id"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
