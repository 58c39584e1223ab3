import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

# Load env from sentient/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

# Import after dotenv is loaded
from sentient.core.config import settings, validate_config  # noqa: E402
from sentient.core.logging import configure_logging, log_event  # noqa: E402
from sentient.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from sentient.core.errors import (  # noqa: E402
    AdminRedirect,
    AppError,
    admin_redirect_handler,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from sentient.api import admin, auth, dashboard, health, payments  # noqa: E402
from sentient.features.identity.provider import AuthEvent, AuthSession, auth_events  # noqa: E402

configure_logging(settings.ENV)
validate_config(strict=settings.CONFIG_STRICT)


def log_auth_event(event: AuthEvent, session: Optional[AuthSession]) -> None:
    log_event(
        "info",
        "auth.state_change",
        user_id=session.user_id if session else None,
        event_type=event.value,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("sentient")
    logger.info("Starting Sentient Markets backend...")
    app.state.startup_time = time.time()
    unsubscribe = auth_events.subscribe(log_auth_event)
    try:
        yield
    finally:
        unsubscribe()
        logging.getLogger("sentient").info("Stopping Sentient Markets backend...")


app = FastAPI(title="Sentient Markets - Backend", lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware, max_body_bytes=settings.MAX_REQUEST_BYTES)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(AdminRedirect, admin_redirect_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.root_router)
app.include_router(auth.router)
app.include_router(dashboard.router)
app.include_router(payments.router)
app.include_router(admin.router)
