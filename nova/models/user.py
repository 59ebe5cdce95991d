"""User models: the API representation and its table row."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from nova.db import column


class User(BaseModel):
    """A user as exchanged over the API."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "userId": "3c9f1a8e-6d1b-4b4e-9f0e-2a7b5c1d8e90",
                "username": "Alice",
                "password": "p4ssw0rd",
                "phone_number": "12345678901",
                "email": "alice@gmail.com",
                "address": "No.5, Wall Street, New York, USA",
                "company": "Apple Inc.",
            }
        },
    )

    user_id: str = Field(..., alias="userId", min_length=1)
    username: str = Field(..., min_length=1, max_length=128)
    password: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=1, max_length=32)
    email: str = ""
    address: str = ""
    company: str = ""


class UserPatch(BaseModel):
    """Partial update; only the fields present in the body are applied."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = Field(default=None, alias="userId")
    username: str | None = Field(default=None, min_length=1, max_length=128)
    password: str | None = Field(default=None, min_length=1)
    phone_number: str | None = Field(default=None, min_length=1, max_length=32)
    email: str | None = None
    address: str | None = None
    company: str | None = None


@dataclass
class UserRow:
    """Row of the ``users`` table."""

    user_id: str = column("user_id")
    username: str = column("username")
    password: str = column("password")
    phone_number: str = column("phone_number")
    email: str = column("email", default="")
    address: str = column("address", default="")
    company: str = column("company", default="")

    @classmethod
    def from_model(cls, user: User) -> UserRow:
        return cls(**user.model_dump())

    def to_model(self) -> User:
        return User(
            user_id=self.user_id,
            username=self.username,
            password=self.password,
            phone_number=self.phone_number,
            email=self.email or "",
            address=self.address or "",
            company=self.company or "",
        )
