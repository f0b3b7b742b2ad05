from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"


class ReadinessResponse(BaseModel):
    status: str = "ok"
    database: str = "up"
    store: str
    collections: list[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    status: str
    message: str
