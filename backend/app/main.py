import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import announcements, auth, health, scheduler, users
from app.core.config import get_settings
from app.core.exceptions import AppError

settings = get_settings()
logger = logging.getLogger(__name__)


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(auth.router, prefix=f"{settings.api_prefix}/auth", tags=["auth"])
app.include_router(announcements.router, prefix=settings.api_prefix, tags=["announcements"])
app.include_router(scheduler.router, prefix=settings.api_prefix, tags=["scheduler"])
app.include_router(users.router, prefix=settings.api_prefix, tags=["users"])
