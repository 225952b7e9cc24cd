from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.v1.api import api_router
from core.config import get_settings
from core.error_handler import (
    ExceptionNormalizationMiddleware,
    global_exception_handler,
    setup_logging,
)
from core.middleware import CorrelationIdMiddleware
from services.ai.exceptions import PlannerError


setup_logging()
settings = get_settings()

app = FastAPI(
    title="OnboardingPlanner API",
    description="Generates, refines and applies step-by-step onboarding plans",
    version="0.1.0",
    docs_url=None,  # Mounted under /api/v1/docs
    redoc_url=None,
)

# Starlette runs the last-added middleware first: correlation ids are set
# before anything can fail.
app.add_middleware(ExceptionNormalizationMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID", "X-Build-Marker"],
)
app.add_middleware(CorrelationIdMiddleware)

app.add_exception_handler(StarletteHTTPException, global_exception_handler)
app.add_exception_handler(RequestValidationError, global_exception_handler)
app.add_exception_handler(PlannerError, global_exception_handler)

app.include_router(api_router, prefix="/api/v1")


@app.get("/api/v1/docs", include_in_schema=False)
def custom_swagger_ui_html():
    return get_swagger_ui_html(
        openapi_url="/openapi.json", title="OnboardingPlanner API Docs"
    )


@app.get("/api/v1/redoc", include_in_schema=False)
def redoc_html():
    return get_redoc_html(
        openapi_url="/openapi.json", title="OnboardingPlanner API Redoc"
    )


@app.get("/")
def read_root() -> dict[str, str]:
    return {"message": "OnboardingPlanner API"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
