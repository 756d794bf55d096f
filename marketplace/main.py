"""Marketplace identity API: registration, sessions, password recovery and administrator access."""
# Load .env before any app code that might read config
from dotenv import load_dotenv
from pathlib import Path
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marketplace.config import get_settings
from marketplace.database import Base, engine
from marketplace.error_handling import register_exception_handlers
# Import models so Base.metadata has all tables before create_all (schema source of truth)
from marketplace.models import (  # noqa: F401
    Account, ProviderProfile, Administrator, RefreshToken, PendingRegistration, AuditLog,
)
from marketplace.routers import admin, auth, providers

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("marketplace")

app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth.router)
app.include_router(providers.router)
app.include_router(admin.router)

_scheduler = None


@app.on_event("startup")
def startup():
    global _scheduler
    settings.check_required()
    if settings.mailgun_api_key and settings.mailgun_domain:
        from_addr = settings.mailgun_from_email or ""
        from_domain = from_addr.split("@")[-1].lower() if "@" in from_addr else ""
        if from_domain and from_domain != settings.mailgun_domain.lower():
            logger.warning(
                "MAILGUN_FROM_EMAIL=%s does not match MAILGUN_DOMAIN=%s; sending as noreply@%s",
                from_addr, settings.mailgun_domain, settings.mailgun_domain,
            )
    elif not settings.sendgrid_api_key:
        logger.warning("No email provider configured; email OTP delivery will fail until MAILGUN_* or SENDGRID_API_KEY is set")

    Base.metadata.create_all(bind=engine)

    if settings.cleanup_job_enabled:
        from apscheduler.schedulers.background import BackgroundScheduler
        from marketplace.services.maintenance import run_cleanup_job

        _scheduler = BackgroundScheduler()
        _scheduler.add_job(run_cleanup_job, "interval", hours=settings.cleanup_interval_hours, id="cleanup")
        _scheduler.start()
        logger.info("Cleanup job scheduled every %d hour(s)", settings.cleanup_interval_hours)


@app.on_event("shutdown")
def shutdown():
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)


@app.get("/")
def root():
    return {"app": settings.app_name, "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
