# src/main.py

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from api.routes import router
from engine.errors import (
    InvalidStateError,
    NotFoundError,
    SignalDeliveryError,
    SupervisorError,
    UnsupportedOperationError,
    ValidationError,
)
from engine.scan_service import ScanService
from engine.settings import Settings, load_settings
import logging
import uuid

# most specific first
ERROR_STATUS_CODES = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (SignalDeliveryError, 500),
    (UnsupportedOperationError, 500),
)


def configure_logging(settings: Settings):
    # Configure structured logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s %(message)s'
    )


def create_app(settings: Settings = None, service: ScanService = None) -> FastAPI:
    settings = settings or (service.settings if service else load_settings())
    configure_logging(settings)
    service = service or ScanService(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.info(f"Scan supervisor started. output_dir={settings.resolved_output_dir} "
                     f"container={settings.scanner_container}")
        yield
        await app.state.scan_service.shutdown()

    app = FastAPI(title="Scan Supervisor", lifespan=lifespan)
    app.state.scan_service = service

    @app.middleware("http")
    async def add_trace_id_and_log(request: Request, call_next):
        trace_id = str(uuid.uuid4())
        request.state.trace_id = trace_id
        logging.info(f"[trace_id={trace_id}] Incoming request: {request.method} {request.url}")
        try:
            response = await call_next(request)
        except Exception as exc:
            logging.error(f"[trace_id={trace_id}] Unhandled error: {exc}")
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": "Internal server error", "trace_id": trace_id}
            )
        response.headers["X-Trace-Id"] = trace_id
        return response

    @app.exception_handler(SupervisorError)
    async def supervisor_exception_handler(request: Request, exc: SupervisorError):
        trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))
        status_code = next((code for cls, code in ERROR_STATUS_CODES if isinstance(exc, cls)), 500)
        if status_code >= 500:
            logging.error(f"[trace_id={trace_id}] {type(exc).__name__}: {exc}")
        else:
            logging.info(f"[trace_id={trace_id}] Rejected request: {exc}")
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": str(exc), "trace_id": trace_id}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))
        logging.error(f"[trace_id={trace_id}] Exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": str(exc), "trace_id": trace_id}
        )

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=app.state.scan_service.settings.port)
