import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.errors import AppError
from app.api import auth, companies, brokers, policies, commissions, renewals
from app.api import sub_agents as sub_agents_api
from app.api import clients as clients_api
from app.api import commission_rules as commission_rules_api
from app.api import dashboard, khata

logger = logging.getLogger(__name__)


def init_database():
    """Create tables and seed the admin account on startup."""
    from app.core.database import engine, Base, SessionLocal
    from app.core.security import get_password_hash
    from app.models.user import User, UserRole
    from app import models  # noqa: F401  register every table

    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        if not db.query(User).filter(User.role == UserRole.ADMIN.value).first():
            admin = User(
                email="admin@insurancebook.app",
                username="admin",
                full_name="Administrator",
                hashed_password=get_password_hash("admin123"),
                role=UserRole.ADMIN.value,
                is_active=True,
            )
            db.add(admin)
            db.commit()
            logger.info("Seeded default admin user")
    except Exception as e:
        logger.error(f"Error seeding data: {e}")
        db.rollback()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run database init on startup and start the renewal scheduler."""
    from app.core.database import SessionLocal
    from app.services.notifications import build_notifier
    from app.tasks.renewal_jobs import start_renewal_scheduler

    init_database()

    app.state.notifier = build_notifier(settings, session_factory=SessionLocal)
    if settings.ENABLE_RENEWAL_SCHEDULER:
        start_renewal_scheduler(SessionLocal, app.state.notifier, settings)

    yield


# Disable API docs in production
docs_url = "/docs" if settings.ENVIRONMENT != "production" else None
redoc_url = "/redoc" if settings.ENVIRONMENT != "production" else None

app = FastAPI(
    title=settings.APP_NAME,
    description="Insurance Book - Policy, Commission & Renewal API",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=docs_url,
    redoc_url=redoc_url,
)


@app.exception_handler(AppError)
async def app_error_handler(request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# Global exception handler - always return JSON (never plain text)
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# CORS - frontend URL + local dev
allowed_origins = ["http://localhost:3000"]
if settings.FRONTEND_URL and settings.FRONTEND_URL not in allowed_origins:
    allowed_origins.append(settings.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "insurance-book-api", "version": "1.0.0"}


@app.get("/")
def root():
    return {"message": "Insurance Book API", "version": "1.0.0", "docs": "/docs"}


# Include routers
app.include_router(auth.router)
app.include_router(companies.router)
app.include_router(brokers.router)
app.include_router(sub_agents_api.router)
app.include_router(clients_api.router)
app.include_router(policies.router)
app.include_router(commissions.router)
app.include_router(commission_rules_api.router)
app.include_router(renewals.router)
app.include_router(khata.router)
app.include_router(dashboard.router)
