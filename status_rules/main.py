"""
FastAPI application entrypoint.

Run locally:  uvicorn status_rules.main:app --reload
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from status_rules.api.routes import router
from status_rules.config import settings
from status_rules.errors import RuleEngineError
from status_rules.models import audit, catalog, rules  # noqa: F401  (register tables)
from status_rules.models.database import Base, engine

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    "NOT_FOUND": 404,
    "INVALID_ARGUMENT": 400,
    "INVALID_REFERENCE": 422,
    "CONFLICT": 409,
    "AMBIGUOUS": 409,
}

app = FastAPI(
    title="Jurisdiction Status Rules API",
    description=(
        "Maps test results and symptom reports to jurisdiction statuses, "
        "decides building access per status, and distributes versioned "
        "rule documents to clients."
    ),
    version="1.0.0",
)

app.include_router(router, prefix="/api/v1")


@app.exception_handler(RuleEngineError)
async def rule_engine_error_handler(request: Request, exc: RuleEngineError):
    status_code = ERROR_STATUS_CODES.get(exc.code, 500)
    logger.info("%s %s -> %s %s", request.method, request.url.path, status_code, exc.code)
    return JSONResponse(status_code=status_code, content=exc.to_response().model_dump(mode="json"))


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
