import logging
import os
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from ethree.api.routes.routes import router
from ethree.config import Settings, load_settings
from ethree.domain.exceptions import EthreeError
from ethree.infrastructure.db.session import engine
from ethree.infrastructure.db.models import Base
from ethree.infrastructure.gateway.easebuzz import EasebuzzClient

logger = logging.getLogger(__name__)


def _wait_for_db() -> None:
    # Handles the common case where API starts before Postgres is ready.
    max_retries = int(os.getenv("DB_CONNECT_MAX_RETRIES", "30"))
    retry_delay_seconds = float(os.getenv("DB_CONNECT_RETRY_DELAY", "1.5"))

    for attempt in range(1, max_retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database is reachable.")
            return
        except OperationalError:
            if attempt == max_retries:
                logger.exception(
                    "Database not reachable after %s attempts. Check DATABASE_URL and Postgres status.",
                    max_retries,
                )
                raise
            logger.warning(
                "Database not ready (attempt %s/%s). Retrying in %.1f seconds...",
                attempt,
                max_retries,
                retry_delay_seconds,
            )
            time.sleep(retry_delay_seconds)


async def domain_error_handler(request: Request, exc: EthreeError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s: %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
    else:
        logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)

    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    logger.warning("Validation error on %s: %s", request.url.path, message)

    return JSONResponse(
        status_code=400,
        content={"success": False, "message": message},
    )


def create_app(
    settings: Settings | None = None,
    gateway: EasebuzzClient | None = None,
) -> FastAPI:
    settings = settings or load_settings()

    app = FastAPI(title="Ethree Order Engine")
    app.state.settings = settings
    app.state.gateway = gateway or EasebuzzClient(settings)

    app.include_router(router)
    app.add_exception_handler(EthreeError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    @app.on_event("startup")
    def on_startup() -> None:
        _wait_for_db()
        Base.metadata.create_all(bind=engine)
        logger.info(
            "Ethree order engine started. gateway_env=%s mode=%s",
            settings.gateway_env,
            settings.checkout_mode,
        )

    @app.on_event("shutdown")
    def on_shutdown() -> None:
        app.state.gateway.close()

    return app


_settings = load_settings()

logging.basicConfig(
    level=getattr(logging, _settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = create_app(_settings)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ethree.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "5001")),
        log_level=_settings.log_level.lower(),
    )
