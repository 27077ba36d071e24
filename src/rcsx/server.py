"""HTTP surface for the emulator core."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from loguru import logger

from rcsx.config import Settings, get_settings
from rcsx.errors import AdaptationFailed, FieldValidationError, UnsupportedMessageType
from rcsx.messages.validator import ValidationResult, present_errors
from rcsx.rbm.callback import CallbackResponse
from rcsx.rbm.runtime import RbmRuntime


def _to_response(result: CallbackResponse) -> Response:
    if result.media_type == "text/plain":
        return PlainTextResponse(str(result.body), status_code=result.status_code)
    return JSONResponse(result.body, status_code=result.status_code)


def _validation_body(result: ValidationResult) -> dict[str, Any]:
    return {
        "valid": result.valid,
        "format": result.format.value if result.format else None,
        "hasExplicitIds": result.has_explicit_ids,
        "errors": [error.as_dict() for error in present_errors(result)],
    }


async def _json_body(request: Request) -> tuple[Any, bool]:
    raw = await request.body()
    if not raw.strip():
        return None, True
    try:
        return await request.json(), True
    except ValueError:
        return None, False


def create_app(runtime: RbmRuntime | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI app; the runtime's sweep scheduler runs for the app's lifespan."""
    runtime = runtime or RbmRuntime(settings or get_settings())

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        with runtime:
            yield
            await runtime.service.drain()

    app = FastAPI(title="rcsx", lifespan=lifespan)
    app.state.runtime = runtime

    @app.post("/api/rbm/callback")
    async def rbm_callback(request: Request) -> Response:
        body, parsed = await _json_body(request)
        if not parsed:
            logger.warning("rbm.callback.bad_json")
            return JSONResponse({"success": False, "error": "Request body must be valid JSON"}, status_code=400)
        # Runs on the event loop, which forwarding tasks need. Blocks only while a sweep holds the lock.
        return _to_response(runtime.handle_callback(body))

    @app.get("/api/rbm/callback")
    async def rbm_validation(request: Request) -> Response:
        return _to_response(runtime.service.validation_challenge(request.query_params))

    @app.get("/api/rbm/status")
    async def rbm_status() -> dict[str, Any]:
        return await run_in_threadpool(runtime.status)

    @app.post("/api/rcs/messages/validate")
    async def validate_message(request: Request) -> Response:
        body, parsed = await _json_body(request)
        if not parsed:
            return JSONResponse({"valid": False, "errors": ["Request body must be valid JSON"]}, status_code=400)
        return JSONResponse(_validation_body(runtime.pipeline.validate(body)))

    @app.post("/api/rcs/messages/normalize")
    async def normalize_message(request: Request) -> Response:
        body, parsed = await _json_body(request)
        if not parsed:
            return JSONResponse({"success": False, "error": "Request body must be valid JSON"}, status_code=400)
        try:
            normalized = runtime.pipeline.normalize(body)
        except FieldValidationError:
            result = runtime.pipeline.validate(body)
            return JSONResponse(
                {"success": False, "error": "Invalid message format", **_validation_body(result)},
                status_code=400,
            )
        except (UnsupportedMessageType, AdaptationFailed) as exc:
            logger.warning("messages.normalize.failed error={}", exc)
            return JSONResponse({"success": False, "error": str(exc)}, status_code=422)

        adapter = runtime.pipeline.adapter
        return JSONResponse(
            {
                "success": True,
                "format": normalized.format.value,
                "idsGenerated": normalized.ids_generated,
                "envelope": normalized.envelope.to_dict(),
                "wire": adapter.to_wire(normalized.envelope),
                "display": adapter.to_display(normalized.envelope),
            }
        )

    return app
