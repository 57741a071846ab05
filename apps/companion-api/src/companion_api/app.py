from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from offline_sync import ConfigurationError, EventKind, StorageError
from safety_devkit.config import load_settings
from safety_devkit.observability import configure_logging, configure_otel
from safety_score import LocationSample

from companion_api.response import error_response, success_response
from companion_api.runtime import SafetyCompanion
from companion_api.schemas import (
    ConfigurationPatchRequest,
    ConnectivityRequest,
    EnqueueEventRequest,
    InteractionRequest,
    LocationRequest,
    PanicPressRequest,
    ScoreRequest,
)

SERVICE_NAME = "companion-api"

CompanionFactory = Callable[[], Awaitable[SafetyCompanion]]


async def _default_companion() -> SafetyCompanion:
    settings = load_settings(SERVICE_NAME)
    configure_logging(settings.SERVICE_NAME, settings.LOG_LEVEL)
    return await SafetyCompanion.create(settings)


def create_app(companion_factory: CompanionFactory | None = None) -> FastAPI:
    factory = companion_factory or _default_companion

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.companion = await factory()
        yield
        await app.state.companion.shutdown()

    app = FastAPI(title="Safety Companion API", version="0.1.0", lifespan=lifespan)
    configure_otel(service_name=SERVICE_NAME)

    def companion() -> SafetyCompanion:
        current = getattr(app.state, "companion", None)
        if current is None:
            raise HTTPException(status_code=503, detail={"code": "NOT_READY", "message": "companion is starting"})
        return current

    def to_sample(body: LocationRequest) -> LocationSample:
        return LocationSample(
            latitude=body.latitude,
            longitude=body.longitude,
            accuracy_meters=body.accuracy_meters,
            timestamp=body.timestamp or companion().now(),
        )

    @app.exception_handler(HTTPException)
    async def handle_http_exception(_: Request, exc: HTTPException) -> JSONResponse:
        if isinstance(exc.detail, dict):
            payload = {"success": False, "error": exc.detail}
        else:
            payload = error_response("HTTP_ERROR", str(exc.detail))
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        details = [{"loc": list(item["loc"]), "msg": item["msg"]} for item in exc.errors()]
        return JSONResponse(
            status_code=422,
            content=error_response("VALIDATION_ERROR", "request validation failed", details),
        )

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(_: Request, exc: ConfigurationError) -> JSONResponse:
        return JSONResponse(status_code=422, content=error_response("INVALID_CONFIGURATION", str(exc)))

    @app.exception_handler(StorageError)
    async def handle_storage_error(_: Request, exc: StorageError) -> JSONResponse:
        return JSONResponse(status_code=503, content=error_response("STORAGE_UNAVAILABLE", str(exc)))

    @app.get("/healthz")
    async def healthz() -> dict[str, object]:
        return success_response({"status": "ok"}, meta={})

    @app.get("/readyz")
    async def readyz() -> dict[str, object]:
        companion()
        return success_response({"status": "ready"}, meta={})

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(content=companion().render_metrics(), media_type="text/plain; version=0.0.4")

    @app.post("/v1/score")
    async def compute_score(body: ScoreRequest) -> dict[str, object]:
        location = to_sample(body.location) if body.location is not None else None
        try:
            score = companion().compute_score(location, at=body.at)
        except ValueError as exc:
            raise HTTPException(status_code=409, detail={"code": "NO_LOCATION", "message": str(exc)}) from exc
        return success_response(score.to_dict(), meta={})

    @app.get("/v1/score/current")
    async def current_score() -> dict[str, object]:
        score = companion().get_current_score()
        if score is None:
            raise HTTPException(status_code=404, detail={"code": "NOT_FOUND", "message": "no score computed yet"})
        return success_response(score.to_dict(), meta={})

    @app.post("/v1/behavior/locations")
    async def record_location(body: LocationRequest) -> dict[str, object]:
        current = companion()
        current.record_location(to_sample(body))
        snapshot = current.behavior_snapshot()
        return success_response(
            {"movement": snapshot.movement.value, "sample_count": snapshot.sample_count},
            meta={},
        )

    @app.post("/v1/behavior/panic")
    async def record_panic_press(body: PanicPressRequest) -> dict[str, object]:
        event_id = await companion().record_panic_press(at=body.at, payload=body.payload)
        return success_response({"event_id": event_id, "queued": bool(event_id)}, meta={})

    @app.post("/v1/behavior/interactions")
    async def record_interaction(body: InteractionRequest) -> dict[str, object]:
        companion().record_interaction(at=body.at)
        return success_response({"recorded": True}, meta={})

    @app.get("/v1/behavior/snapshot")
    async def behavior_snapshot() -> dict[str, object]:
        return success_response(asdict(companion().behavior_snapshot()), meta={})

    @app.get("/v1/behavior/stats")
    async def tracking_stats() -> dict[str, object]:
        return success_response(asdict(companion().tracking_stats()), meta={})

    @app.post("/v1/events")
    async def enqueue_event(body: EnqueueEventRequest) -> dict[str, object]:
        event_id = await companion().enqueue_event(body.kind, body.payload, body.priority, body.max_retries)
        return success_response({"event_id": event_id, "queued": bool(event_id)}, meta={})

    @app.get("/v1/events")
    async def list_events(kind: EventKind = Query(...)) -> dict[str, object]:
        rows = [event.to_dict() for event in companion().list_events_by_kind(kind)]
        return success_response(rows, meta={"count": len(rows)})

    @app.get("/v1/events/failed")
    async def list_failed_events() -> dict[str, object]:
        rows = [event.to_dict() for event in companion().list_failed_events()]
        return success_response(rows, meta={"count": len(rows)})

    @app.delete("/v1/events")
    async def clear_events() -> dict[str, object]:
        removed = await companion().clear_events()
        return success_response({"removed": removed}, meta={})

    @app.post("/v1/sync")
    async def force_sync() -> dict[str, object]:
        result = await companion().force_sync()
        if result is None:
            return success_response({"started": False}, meta={})
        return success_response({"started": True, **asdict(result)}, meta={})

    @app.post("/v1/sync/retry-failed")
    async def retry_failed_items() -> dict[str, object]:
        reset = await companion().retry_failed_items()
        return success_response({"reset": reset}, meta={})

    @app.post("/v1/sync/connectivity")
    async def report_connectivity(body: ConnectivityRequest) -> dict[str, object]:
        result = await companion().report_connectivity(body.online)
        return success_response(
            {"online": body.online, "sync": asdict(result) if result is not None else None},
            meta={},
        )

    @app.get("/v1/sync/status")
    async def sync_status() -> dict[str, object]:
        return success_response(asdict(companion().get_sync_status()), meta={})

    @app.get("/v1/network")
    async def network_status() -> dict[str, object]:
        return success_response({"online": await companion().check_network_status()}, meta={})

    @app.get("/v1/storage")
    async def storage_usage() -> dict[str, object]:
        return success_response(asdict(companion().get_storage_usage()), meta={})

    @app.get("/v1/config")
    async def get_configuration() -> dict[str, object]:
        return success_response(companion().configuration.to_dict(), meta={})

    @app.patch("/v1/config")
    async def update_configuration(body: ConfigurationPatchRequest) -> dict[str, object]:
        changes = body.model_dump(exclude_none=True)
        if not changes:
            raise HTTPException(
                status_code=422,
                detail={"code": "VALIDATION_ERROR", "message": "no configuration field provided"},
            )
        updated = await companion().update_configuration(**changes)
        return success_response(updated.to_dict(), meta={})

    return app


app = create_app()
