from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from app.config import get_settings
from app.database import init_db
from app.middleware.correlation import CorrelationMiddleware
from app.middleware.error_handler import register_exception_handlers
from app.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from app.routes import auth, users, careers, learning, roadmaps, progress, contact
from app.utils.logger import logger

settings = get_settings()

app = FastAPI(title=settings.app_name, version=settings.app_version)

# Rate limiting (global default limit + per-route limits on auth)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

register_exception_handlers(app)

# CORS - Explicit origins for security
allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,  # Explicit origins from config
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-ID"],
    expose_headers=["X-Correlation-ID"],
)

# Request logging + correlation IDs (outermost)
app.add_middleware(CorrelationMiddleware)


# Startup: Initialize database
@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.app_name} API ({settings.environment})...")
    await init_db()
    logger.info(f"Backend ready at http://{settings.backend_host}:{settings.backend_port}")


@app.get("/api/health")
@limiter.exempt
async def health_check(request: Request):
    return {
        "success": True,
        "message": "SkillSync API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
    }


# Register routes
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(careers.router, prefix="/api/careers", tags=["Careers"])
app.include_router(learning.router, prefix="/api/learning", tags=["Learning"])
app.include_router(contact.router, prefix="/api/contact", tags=["Contact"])
app.include_router(roadmaps.router, prefix="/api/roadmaps", tags=["Roadmaps"])
app.include_router(progress.router, prefix="/api/progress", tags=["Progress"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        reload=settings.debug
    )
