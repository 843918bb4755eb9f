# main.py
# FastAPI app for the form builder: form management, public embeds and submissions
# Install deps: pip install -e .
# Development: uvicorn main:app --reload
# Production: uvicorn main:app --host 0.0.0.0 --port $PORT

import os
import logging

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from database import AsyncSessionLocal, close_db, init_db, redis_manager
from routes import auth, forms, submissions
from services.auth_service import auth_service

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Form Builder API",
    description="Form builder with public embeds, file uploads and email notifications",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS configuration
allowed_origins = settings.ALLOWED_ORIGINS.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS", "PUT", "DELETE"],
    allow_headers=["*"],
    expose_headers=["ETag"],
)

# Errors are always {"error": "<message>"}
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})

# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    """Create tables if asked to, then connect to Redis; the app keeps working without Redis (no cache, no token revocation)"""
    if settings.AUTO_CREATE_TABLES:
        await init_db()
        logger.info("Database tables created")

    try:
        await redis_manager.init_redis()
        await redis_manager.redis.ping()
        auth_service.redis_client = redis_manager.redis
        logger.info("Redis connected")
    except Exception as e:
        logger.error(f"Redis unavailable, continuing without cache: {str(e)}")
        await redis_manager.close_redis()

    logger.info("Application startup completed successfully")

@app.on_event("shutdown")
async def shutdown_event():
    """Close database and Redis connections"""
    try:
        await close_db()
        logger.info("Application shutdown completed successfully")
    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}")

app.include_router(auth.router)
app.include_router(forms.router)
app.include_router(submissions.router)

@app.get("/")
async def root():
    """
    Root endpoint to check if the API is running
    """
    return {
        "status": "ok",
        "message": "Form Builder API is running",
        "version": "1.0.0",
        "documentation": "/docs",
    }

@app.get("/health")
async def health_check():
    """
    Detailed health check endpoint
    """
    health_status = {
        "status": "healthy",
        "services": {
            "database": "unknown",
            "redis": "unavailable",
            "storage": "configured" if settings.S3_BUCKET_NAME else "not configured",
            "gmail": "unknown",
            "resend": "unknown",
        },
    }

    try:
        from services.email_service import email_service
        provider_health = await email_service.get_provider_health()
        health_status["services"]["gmail"] = "available" if provider_health["gmail"]["available"] else "unavailable"
        health_status["services"]["resend"] = "available" if provider_health["resend"]["available"] else "unavailable"
    except Exception as e:
        logger.warning(f"Email service health check failed: {str(e)}")

    if redis_manager.redis:
        try:
            await redis_manager.redis.ping()
            health_status["services"]["redis"] = "available"
        except Exception:
            health_status["services"]["redis"] = "unavailable"

    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
            health_status["services"]["database"] = "available"
    except Exception as e:
        logger.warning(f"Database health check failed: {str(e)}")
        health_status["services"]["database"] = "unavailable"
        health_status["status"] = "degraded"

    return health_status

@app.get("/favicon.ico", include_in_schema=False)
async def favicon():
    """
    Handle favicon.ico requests to prevent 404 errors
    """
    return Response(status_code=204)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=True if os.getenv("ENVIRONMENT") == "development" else False
    )
