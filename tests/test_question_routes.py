"""
Nova Question API Tests.

Covers the four question kinds through the kind-specific routes and the
generic routes that infer the kind or search every kind by id.
"""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

pytestmark = pytest.mark.integration

BASE = "/nova/v1/question"


def new_question_id(client: TestClient) -> str:
    response = client.post(f"{BASE}/Id")
    assert response.status_code == 201
    return response.json()


def options(*marks: str) -> list[dict[str, str]]:
    return [{"answerMark": m, "answerText": f"option {m}"} for m in marks]


def single_choice(question_id: str) -> dict[str, Any]:
    return {
        "id": question_id,
        "title": "Pick one",
        "answers": options("A", "B", "C"),
        "standard_answer": options("B")[0],
    }


def multiple_choice(question_id: str) -> dict[str, Any]:
    return {
        "id": question_id,
        "title": "Pick several",
        "answers": options("A", "B", "C", "D"),
        "standard_answers": options("A", "C"),
    }


def judgement(question_id: str) -> dict[str, Any]:
    return {"id": question_id, "title": "The sky is blue", "answer": False, "standard_answer": True}


def essay(question_id: str) -> dict[str, Any]:
    return {
        "id": question_id,
        "title": "Describe SQLite",
        "answer": "",
        "standard_answer": "An embedded database",
    }


KINDS = [
    ("single-choice", single_choice),
    ("multiple-choice", multiple_choice),
    ("judgement", judgement),
    ("essay", essay),
]


class TestKindRoutes:
    @pytest.mark.parametrize(("kind", "factory"), KINDS)
    def test_create_get_delete(self, client: TestClient, kind: str, factory) -> None:
        question_id = new_question_id(client)
        body = factory(question_id)

        created = client.post(f"{BASE}/{kind}/{question_id}", json=body)
        assert created.status_code == 201, created.text
        assert created.json() == body

        fetched = client.get(f"{BASE}/{kind}/{question_id}")
        assert fetched.status_code == 200
        assert fetched.json() == body

        assert client.delete(f"{BASE}/{kind}/{question_id}").status_code == 204
        assert client.get(f"{BASE}/{kind}/{question_id}").status_code == 404

    def test_replace(self, client: TestClient) -> None:
        question_id = new_question_id(client)
        client.post(f"{BASE}/essay/{question_id}", json=essay(question_id))

        replacement = {**essay(question_id), "title": "Describe aiosqlite"}
        response = client.put(f"{BASE}/essay/{question_id}", json=replacement)
        assert response.status_code == 200
        assert client.get(f"{BASE}/essay/{question_id}").json()["title"] == "Describe aiosqlite"

    def test_replace_unknown(self, client: TestClient) -> None:
        question_id = new_question_id(client)
        response = client.put(f"{BASE}/essay/{question_id}", json=essay(question_id))
        assert response.status_code == 404

    def test_patch(self, client: TestClient) -> None:
        question_id = new_question_id(client)
        client.post(f"{BASE}/multiple-choice/{question_id}", json=multiple_choice(question_id))

        response = client.patch(
            f"{BASE}/multiple-choice/{question_id}",
            json={"standard_answers": options("D")},
        )
        assert response.status_code == 200
        assert response.json()["standard_answers"] == options("D")
        assert response.json()["answers"] == options("A", "B", "C", "D")

    def test_patch_with_invalid_value(self, client: TestClient) -> None:
        question_id = new_question_id(client)
        client.post(f"{BASE}/judgement/{question_id}", json=judgement(question_id))

        response = client.patch(
            f"{BASE}/judgement/{question_id}", json={"standard_answer": "maybe"}
        )
        assert response.status_code == 400

    def test_wrong_kind_not_found(self, client: TestClient) -> None:
        question_id = new_question_id(client)
        client.post(f"{BASE}/essay/{question_id}", json=essay(question_id))
        assert client.get(f"{BASE}/judgement/{question_id}").status_code == 404

    def test_unknown_kind_rejected(self, client: TestClient) -> None:
        question_id = new_question_id(client)
        response = client.get(f"{BASE}/riddle/{question_id}")
        assert response.status_code == 400
        assert response.headers["content-type"].startswith("application/problem+json")

    def test_body_for_wrong_kind_rejected(self, client: TestClient) -> None:
        question_id = new_question_id(client)
        response = client.post(f"{BASE}/judgement/{question_id}", json=essay(question_id))
        assert response.status_code == 400

    def test_id_unique_across_kinds(self, client: TestClient) -> None:
        question_id = new_question_id(client)
        assert client.post(f"{BASE}/essay/{question_id}", json=essay(question_id)).status_code == 201

        response = client.post(f"{BASE}/judgement/{question_id}", json=judgement(question_id))
        assert response.status_code == 409
        assert response.json()["title"] == "Conflict"


class TestGenericRoutes:
    @pytest.mark.parametrize(("kind", "factory"), KINDS)
    def test_kind_inferred_from_body(self, client: TestClient, kind: str, factory) -> None:
        question_id = new_question_id(client)
        body = factory(question_id)

        created = client.post(f"{BASE}/{question_id}", json=body)
        assert created.status_code == 201, created.text

        assert client.get(f"{BASE}/{kind}/{question_id}").json() == body
        assert client.get(f"{BASE}/{question_id}").json() == body

    def test_uninferable_body(self, client: TestClient) -> None:
        question_id = new_question_id(client)
        response = client.post(f"{BASE}/{question_id}", json={"id": question_id, "title": "?"})
        assert response.status_code == 400
        assert "kind" in response.json()["cause"]

    def test_delete_any_kind(self, client: TestClient) -> None:
        question_id = new_question_id(client)
        client.post(f"{BASE}/{question_id}", json=judgement(question_id))

        assert client.delete(f"{BASE}/{question_id}").status_code == 204
        assert client.get(f"{BASE}/{question_id}").status_code == 404
        assert client.delete(f"{BASE}/{question_id}").status_code == 404

    def test_malformed_id(self, client: TestClient) -> None:
        response = client.get(f"{BASE}/definitely-not-an-id")
        assert response.status_code == 400
        assert response.json()["cause"].startswith("id format incorrect")

    def test_body_id_mismatch(self, client: TestClient) -> None:
        question_id = new_question_id(client)
        other_id = new_question_id(client)
        response = client.post(f"{BASE}/{question_id}", json=essay(other_id))
        assert response.status_code == 400

    def test_body_id_optional(self, client: TestClient) -> None:
        question_id = new_question_id(client)
        body = essay(question_id)
        del body["id"]
        response = client.post(f"{BASE}/{question_id}", json=body)
        assert response.status_code == 201
        assert response.json()["id"] == question_id
