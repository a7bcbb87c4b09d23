from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from devhance.api import health, case_studies, payments, webhooks, vc_reports
from devhance.core.config import settings
from devhance.core.errors import AppError
from devhance.services.github_service import get_github_service
import logging

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info(f"{settings.PROJECT_NAME} starting up ({settings.ENVIRONMENT})...")
    yield
    logger.info(f"{settings.PROJECT_NAME} shutting down, closing upstream clients...")
    await get_github_service().close()

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Repository analysis, case study generation and paid VC reports",
    version="0.1.0",
    lifespan=lifespan
)

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    # Opaque errors (upstream, generation, configuration) keep their detail in the logs
    if not exc.expose_message:
        logger.error(f"[{exc.code}] on {request.method} {request.url.path}: {exc.message}", exc_info=exc)
    else:
        logger.info(f"[{exc.code}] on {request.method} {request.url.path}: {exc.message}")
    include_message = exc.expose_message or not settings.is_production
    headers = None
    if exc.status_code == 401:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(include_message=include_message),
        headers=headers,
    )

# Add validation error handler to log 422 errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"[VALIDATION ERROR] on {request.url}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(exc)},
    )

def jsonable_errors(exc: RequestValidationError):
    # ctx may hold exception instances that are not JSON serializable
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]

origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if settings.PUBLIC_URL:
    origins.append(settings.PUBLIC_URL.rstrip("/"))

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=f"{settings.API_V1_STR}/health", tags=["health"])
app.include_router(case_studies.router, prefix=f"{settings.API_V1_STR}/case-studies", tags=["case-studies"])
app.include_router(payments.router, prefix=f"{settings.API_V1_STR}/payments", tags=["payments"])
app.include_router(webhooks.router, prefix=f"{settings.API_V1_STR}/webhooks", tags=["webhooks"])
app.include_router(vc_reports.router, prefix=f"{settings.API_V1_STR}/vc-reports", tags=["vc-reports"])
