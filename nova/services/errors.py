"""Domain-level exceptions raised by the Nova services."""

from __future__ import annotations


class ServiceError(Exception):
    """Base exception for service operations."""

    pass


class NotFoundError(ServiceError):
    """The requested entity does not exist."""

    pass


class AlreadyExistsError(ServiceError):
    """An entity with the same identifier or unique key exists."""

    pass


class InvalidRequestError(ServiceError):
    """The request is well-formed JSON but semantically invalid."""

    pass
