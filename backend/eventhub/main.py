"""FastAPI application entry point."""
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, OperationalError

from eventhub.config import settings
from eventhub.database import Base, engine
from eventhub.errors import DomainError
from eventhub.services.lifecycle import get_lifecycle, shutdown_lifecycle

# Import routers
from eventhub.routers import audit, event_requests, events, notifications, users

# Import all models so Base.metadata knows about them
from eventhub.models.user import User                       # noqa: F401
from eventhub.models.facility import Facility, Location     # noqa: F401
from eventhub.models.event import Event                     # noqa: F401
from eventhub.models.event_request import EventRequest, EventRequestResponse  # noqa: F401
from eventhub.models.attendance import EventAttendance      # noqa: F401
from eventhub.models.notification import Notification, NotificationPreference  # noqa: F401
from eventhub.models.audit_log import AuditLog              # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="EventHub",
    description="Facility event requests, capacity-safe attendance and notification fan-out",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(OperationalError)
@app.exception_handler(DBAPIError)
def storage_error_handler(request: Request, exc: Exception):
    logger.exception("Storage failure on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable. Please try again.", "code": "unavailable"},
    )


# Register routers
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(users.facilities_router, prefix="/api/facilities", tags=["Facilities"])
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(event_requests.router, prefix="/api/event-requests", tags=["EventRequests"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])
app.include_router(audit.router, prefix="/api/audit-logs", tags=["Audit"])


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode) and wire notifications."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    get_lifecycle()


@app.on_event("shutdown")
def on_shutdown():
    shutdown_lifecycle()


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
