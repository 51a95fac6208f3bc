"""Pydantic models for service-level endpoints."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "healthy"
    environment: str
    database: str = "connected"
