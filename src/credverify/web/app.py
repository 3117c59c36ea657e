from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from credverify.application.services.project_service import ProjectService
from credverify.application.services.verification_engine import build_engine
from credverify.core.config import AppConfig
from credverify.core.errors import InvalidRequestError, StorageError

logger = logging.getLogger(__name__)

INVALID_REQUEST_MESSAGE = "Invalid credential format. Must include an id."


class VerifyRequest(BaseModel):
    # Fields other than ``id`` are passed through untouched.
    model_config = ConfigDict(extra="allow")

    id: str | None = None


def create_app(config: AppConfig) -> FastAPI:
    app = FastAPI(title="credverify", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    ProjectService(config).init_project()
    engine = build_engine(config)

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": INVALID_REQUEST_MESSAGE})

    @app.get("/health")
    def api_health() -> dict[str, Any]:
        return {"status": "ok", "worker": config.worker_id}

    @app.post("/verify")
    def api_verify(req: VerifyRequest) -> JSONResponse:
        try:
            decision = engine.verify(req.id)
        except InvalidRequestError as exc:
            return JSONResponse(status_code=400, content={"error": str(exc)})
        except StorageError:
            logger.exception("[%s] Error verifying credential %s", config.worker_id, req.id)
            return JSONResponse(status_code=500, content={"error": "Failed to verify credential"})

        if decision.is_not_found:
            return JSONResponse(
                status_code=404,
                content={
                    "valid": False,
                    "message": decision.reason,
                    "worker": decision.verified_by,
                },
            )

        payload: dict[str, Any] = {
            "valid": decision.is_valid,
            "worker": decision.verified_by,
            "timestamp": decision.verified_at,
            "status": decision.status,
            "issuer": decision.issuer,
        }
        if not decision.is_valid:
            payload["message"] = decision.reason
        return JSONResponse(status_code=200, content=payload)

    return app
