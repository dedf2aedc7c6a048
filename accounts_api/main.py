import asyncio
import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from accounts_api.api.exception_handlers import register_exception_handlers
from accounts_api.api.v1.router import api_router
from accounts_api.core.config import settings
from accounts_api.db import SessionLocal
from accounts_api.services.bootstrap import ensure_super_admin
from accounts_api.services.events import EventNotifier

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Attach the event notifier to the running loop and provision the super admin."""
    notifier = EventNotifier.from_settings(settings)
    notifier.attach(asyncio.get_running_loop())
    app.state.notifier = notifier

    db = SessionLocal()
    try:
        ensure_super_admin(db, notifier)
    finally:
        db.close()

    logger.info("Accounts service started")
    try:
        yield
    finally:
        await notifier.close()
        logger.info("Accounts service stopped")


app = FastAPI(title="accounts-api", lifespan=lifespan)

if settings.frontend_url:
    parsed = urlparse(settings.frontend_url)
    origin = f"{parsed.scheme}://{parsed.netloc}"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

register_exception_handlers(app)
app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
def health():
    return {"status": "ok"}
