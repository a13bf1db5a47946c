import logging
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded

from expense_ai import __version__
from expense_ai.auth import auth_router, users_router
from expense_ai.config import get_settings
from expense_ai.database import init_db
from expense_ai.errors import RateLimitError, error_body, register_exception_handlers
from expense_ai.limiter import limiter
from expense_ai.logging_config import configure_logging
from expense_ai.responses import ok
from expense_ai.routers import categories, expenses, notifications, preferences, screens, subscriptions
from expense_ai.services.scheduler import NotificationScheduler
from expense_ai.timeutils import utcnow

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    scheduler = None
    if settings.scheduler_enabled:
        scheduler = NotificationScheduler()
        scheduler.start()
    app.state.scheduler = scheduler
    logger.info(f"ExpenseAI API started ({settings.environment})")

    yield

    if scheduler is not None:
        scheduler.stop()
    logger.info("ExpenseAI API stopped")


app = FastAPI(
    title="ExpenseAI API",
    description="Expense tracking with budget progress and push notifications",
    version=__version__,
    debug=settings.debug,
    lifespan=lifespan,
)

app.state.limiter = limiter


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(f"Rate limit exceeded for {request.client.host if request.client else 'unknown'} on {request.url.path}")
    return JSONResponse(
        status_code=RateLimitError.status_code,
        content=error_body("Too many requests, please try again later.", RateLimitError.code),
    )


app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    response = await call_next(request)
    logger.info(f"{request.method} {request.url.path} -> {response.status_code}")
    return response


prefix = settings.api_prefix
app.include_router(auth_router, prefix=f"{prefix}/auth", tags=["authentication"])
app.include_router(users_router, prefix=f"{prefix}/users", tags=["users"])
app.include_router(expenses.router, prefix=f"{prefix}/expenses", tags=["expenses"])
app.include_router(categories.router, prefix=f"{prefix}/categories", tags=["categories"])
app.include_router(preferences.router, prefix=f"{prefix}/preferences", tags=["preferences"])
app.include_router(screens.router, prefix=f"{prefix}/screens", tags=["screens"])
app.include_router(notifications.router, prefix=f"{prefix}/notifications", tags=["notifications"])
app.include_router(subscriptions.router, prefix=f"{prefix}/revenuecat", tags=["subscriptions"])

app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")


@app.get("/health")
def health():
    return ok(
        "Server is healthy",
        {"timestamp": utcnow().isoformat(), "environment": settings.environment, "version": __version__},
    )


@app.get("/")
def home():
    return ok("Welcome to ExpenseAI API", {"version": __version__, "docs": "/docs"})


if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port)
