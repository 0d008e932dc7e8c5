from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docsync.config.logger import app_logger, log_request_start, log_request_end, log_request_error
from docsync.config.settings import settings
from docsync.db.db import close_db, init_db, ping_database
from docsync.services.container import shutdown_services
from docsync.api.admin.router import router as admin_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the state database on startup; close clients on shutdown."""
    app_logger.info(f"{settings.APP_NAME} API starting up")
    app_logger.info(f"Vector store backend: {settings.VECTOR_STORE_BACKEND}")

    try:
        await init_db()
    except Exception as e:
        app_logger.warning(f"State database initialization failed: {e}")
        app_logger.info("Check DATABASE_URL; admin endpoints will retry on first use")

    app_logger.info("Application initialized successfully")

    yield

    app_logger.info(f"{settings.APP_NAME} API shutting down")
    await shutdown_services()
    await close_db()
    app_logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    servers=[
        {
            "url": "http://localhost:8000",
            "description": "Development server",
        },
    ],
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests with timing information using Loguru."""
    start_time = datetime.now()

    log_request_start(request)

    try:
        response = await call_next(request)
        process_time = (datetime.now() - start_time).total_seconds()
        log_request_end(request, response.status_code, process_time)
        return response

    except Exception as e:
        process_time = (datetime.now() - start_time).total_seconds()
        log_request_error(request, e, process_time)
        raise


@app.get("/", tags=["health"])
async def root():
    """Root endpoint with basic API information."""
    app_logger.info("Root endpoint accessed")
    return {
        "message": f"Welcome to {settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "status": "operational",
        "vector_store": settings.VECTOR_STORE_BACKEND,
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health", tags=["health"])
async def health():
    """Liveness check."""
    return {"status": "ok"}


@app.get("/health/db", tags=["health"])
async def health_db():
    """Database health endpoint: checks the sync state database."""
    is_ok, message = await ping_database()
    if not is_ok:
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "db": "unavailable", "message": message}
        )
    return {"status": "ok", "db": "available", "message": message}


app.include_router(admin_router)


if __name__ == "__main__":
    import uvicorn

    app_logger.info(f"Starting {settings.APP_NAME} API server")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_config=None  # Use our custom logger
    )
