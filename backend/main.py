import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from subscription_engine.api.endpoints import admin, catalog, claims, entitlements, upgrades
from subscription_engine.core.auth import enforce_basic_auth_for_request
from subscription_engine.core.database import Base, SessionLocal, engine
from subscription_engine.core.settings import settings
from subscription_engine.jobs.scheduler import shutdown_scheduler, start_scheduler
from subscription_engine.services.catalog import seed_default_catalog

# Registers every table on Base.metadata before create_all.
from subscription_engine.models import payment_claim, profile, reminder_log, subscription, tier_package  # noqa: F401


logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Listing Subscription Engine API")

# Configure CORS
origins = settings.resolved_cors_origins()
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.on_event("startup")
def startup() -> None:
    if settings.basic_auth_enabled and (settings.basic_auth_username is None or settings.basic_auth_password is None):
        raise RuntimeError("Basic Auth is enabled but BASIC_AUTH_USERNAME/BASIC_AUTH_PASSWORD are not set")
    if settings.db_auto_create:
        Base.metadata.create_all(bind=engine)

    if settings.catalog_seed_defaults:
        db = SessionLocal()
        try:
            added = seed_default_catalog(db)
            if added:
                logger.info("startup.catalog_seeded rows=%s", added)
        finally:
            db.close()

    start_scheduler()


@app.on_event("shutdown")
def shutdown() -> None:
    shutdown_scheduler()


@app.middleware("http")
async def basic_auth_middleware(request: Request, call_next):
    if request.url.path == "/health":
        return await call_next(request)

    if request.method == "OPTIONS":
        return await call_next(request)

    try:
        enforce_basic_auth_for_request(request)
    except HTTPException as exc:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=exc.headers,
        )

    return await call_next(request)


# API Routes
app.include_router(catalog.router, prefix="/api", tags=["catalog"])
app.include_router(claims.router, prefix="/api", tags=["claims"])
app.include_router(entitlements.router, prefix="/api", tags=["entitlements"])
app.include_router(upgrades.router, prefix="/api", tags=["upgrades"])
app.include_router(admin.router, prefix="/api", tags=["admin"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
