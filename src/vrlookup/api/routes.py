"""API routes for vrlookup."""

from __future__ import annotations

import base64
import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from vrlookup.exceptions import ConcurrentLimitError, LookupValidationError
from vrlookup.models.lookup import LookupRequest, LookupResult, LookupStatus

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class VehicleLookupBody(BaseModel):
    """Parameters for a ``POST /api/vehicle-lookup`` request.

    Both query fields are optional at the schema level so that a missing
    field produces the endpoint's own 400 response rather than a 422.
    """

    model_config = ConfigDict(populate_by_name=True)

    license_plate: str | None = Field(None, alias="licensePlate", description="Registration plate, e.g. 29A-12345.")
    sticker_number: str | None = Field(None, alias="stickerNumber", description="Inspection sticker number.")
    return_base64: bool = Field(True, alias="returnBase64", description="Inline the screenshot as base64.")


def error_response(status_code: int, error: str, details: str = "", **extra: Any) -> JSONResponse:
    """Well-formed JSON error body; never carries a traceback."""
    return JSONResponse(status_code=status_code, content={"error": error, "details": details, **extra})


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/api/vehicle-lookup")
def vehicle_lookup(body: VehicleLookupBody, request: Request) -> JSONResponse:
    """Run one lookup synchronously and return the extracted record."""
    try:
        lookup_request = LookupRequest.create(body.license_plate, body.sticker_number)
    except LookupValidationError as exc:
        return error_response(400, "licensePlate and stickerNumber are required", str(exc))

    slots = request.app.state.lookup_slots
    if not slots.acquire(blocking=False):
        limit = request.app.state.settings.api.max_concurrent_lookups
        return error_response(429, "Server is busy", str(ConcurrentLimitError(limit)))

    try:
        result: LookupResult = request.app.state.workflow.run(lookup_request)
    finally:
        slots.release()

    if not result.success:
        error = "Vehicle not found" if result.status == LookupStatus.NOT_FOUND else "Lookup failed"
        return error_response(
            500,
            error,
            result.error,
            terminal=result.status == LookupStatus.NOT_FOUND,
            attempts=result.attempts,
            requestId=result.request_id,
        )

    return _success_response(result, inline=body.return_base64)


def _success_response(result: LookupResult, *, inline: bool) -> JSONResponse:
    artifact = result.artifact
    payload: dict[str, Any] = {
        "success": True,
        "data": result.data,
        "attempts": result.attempts,
        "requestId": result.request_id,
        "screenshotUrl": artifact.url_path if artifact else None,
    }

    if artifact is None:
        payload["screenshot"] = None
    elif inline:
        try:
            encoded = base64.b64encode(artifact.read_bytes()).decode("ascii")
        except OSError as exc:
            logger.error("Failed to read screenshot %s: %s", artifact.path, exc)
            return error_response(500, "Failed to process screenshot", str(exc.strerror or exc))
        payload["screenshot"] = {
            "filename": artifact.filename,
            "mimeType": artifact.mime_type,
            "data": encoded,
        }
    else:
        payload["screenshot"] = artifact.to_dict()

    return JSONResponse(content=payload)
