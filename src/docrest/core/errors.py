"""Error taxonomy shared by the route handlers and the store adapters."""

from __future__ import annotations

from typing import Any


class SchemaError(ValueError):
    """Programmer error detected while building routes (raised at setup time)."""


class PersistenceError(RuntimeError):
    """Unexpected failure of the underlying document store."""


class RestError(Exception):
    """A domain error that the handlers turn into a ``{status, message}`` body."""

    status_code = 400
    status = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_body(self) -> dict[str, Any]:
        return {"status": self.status, "message": self.message}


class NotFound(RestError):
    status_code = 404
    status = "missing"

    def __init__(self, collection: str, key: str) -> None:
        super().__init__(f"Could not find {collection} with {key}")
        self.collection = collection
        self.key = key


class VersionConflict(RestError):
    status_code = 409
    status = "conflict"

    def __init__(self, collection: str, key: str, submitted: int, stored: int) -> None:
        super().__init__(f"Stale update of {collection} {key}: version {submitted} is older than {stored}")
        self.submitted = submitted
        self.stored = stored


class InvalidQuery(RestError):
    status = "invalid"


class InvalidPayload(RestError):
    """Raised by the store's update handler when a payload fails validation."""

    status = "invalid"

    def __init__(self, message: str, errors: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or {}

    def to_body(self) -> dict[str, Any]:
        body = super().to_body()
        if self.errors:
            body["errors"] = self.errors
        return body
