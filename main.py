from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from exceptions import MagnifyError
from middleware import RequestContextMiddleware
from routers import health, upscale
from utils.logging import get_logger, setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: configure logging, verify codecs."""
    # --- Startup ---
    setup_logging()
    logger = get_logger("main")

    codecs = health.check_codecs()
    missing = [name for name, available in codecs.items() if not available]
    if missing:
        logger.warning(
            f"Missing codecs: {missing}",
            extra={"context": {"missing_codecs": missing}},
        )

    yield

    # --- Shutdown ---
    # Uvicorn's --timeout-graceful-shutdown handles connection draining.
    logger.info("Magnify shutting down")


app = FastAPI(
    title="Magnify",
    description="Pixel-art animation upscaler",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
origins = [o.strip() for o in settings.allowed_origins.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["POST", "OPTIONS", "GET"],
    allow_headers=["Content-Type"],
    expose_headers=[
        "Content-Disposition",
        "X-Original-Size",
        "X-Output-Size",
        "X-Original-Format",
        "X-Output-Format",
        "X-Frame-Count",
        "X-Scale",
        "X-Outcome",
        "X-Request-ID",
    ],
)


# RequestContextMiddleware handles: request ID, MagnifyError responses
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(MagnifyError)
async def magnify_error_handler(request: Request, exc: MagnifyError):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.error_code,
            "message": exc.message,
            **exc.details,
        },
    )


# Routers
app.include_router(health.router)
app.include_router(upscale.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.port,
        workers=settings.workers,
        timeout_graceful_shutdown=settings.graceful_shutdown_timeout,
    )
