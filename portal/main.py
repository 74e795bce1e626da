from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
from portal.core.config import settings
from portal.core.database import engine, Base, SessionLocal
from portal.core.events import event_bus
from portal.core.error_handlers import register_error_handlers
from portal.core.logging_config import setup_logging
from portal.core.middleware import add_middleware
from portal.core.redis_service import RedisNotificationService
from portal.core.schemas import ok
from portal.attendance.routes import router as time_entries_router
from portal.leave.routes import router as leave_router
from portal.leave.service import seed_leave_types
from portal.payrolls.routes import router as payroll_router

# Imported for their table definitions
from portal.attendance import models as attendance_models  # noqa: F401
from portal.leave import models as leave_models  # noqa: F401
from portal.payrolls import models as payroll_models  # noqa: F401

setup_logging(log_level=settings.log_level, log_file=settings.log_file)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Time entries, leave ledger and payroll arithmetic for the employee portal",
    version="1.0.0",
    debug=settings.debug
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register error handlers
register_error_handlers(app)

# Add middleware
add_middleware(app)

# Include routers
app.include_router(time_entries_router, prefix="/api/v1")
app.include_router(leave_router, prefix="/api/v1")
app.include_router(payroll_router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    """Create tables, seed leave types and hook up Redis fan-out."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")

    if settings.seed_leave_types:
        db = SessionLocal()
        try:
            seed_leave_types(db)
        finally:
            db.close()

    if settings.enable_change_notifications:
        notifier = RedisNotificationService()
        if notifier.is_available():
            notifier.attach(event_bus)
            logger.info(f"Change notifications published to {notifier.channel}")
        else:
            logger.warning("Redis not available, change notifications stay in-process")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    event_bus.clear()
    logger.info("Application shutting down...")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return ok({
        "message": settings.app_name,
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "time_entries": "/api/v1/time-entries",
            "leave": "/api/v1/leave",
            "payroll": "/api/v1/payroll",
        }
    })


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return ok({"status": "healthy"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "portal.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
