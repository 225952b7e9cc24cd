from fastapi import APIRouter

from core.config import get_settings
from schemas.api import ApiResponse


router = APIRouter()


@router.get("/health", response_model=ApiResponse[dict[str, str]])
def health_check() -> ApiResponse[dict[str, str]]:
    """Liveness probe; also reports which planner build is deployed."""
    return ApiResponse(
        success=True,
        data={
            "status": "healthy",
            "message": "OnboardingPlanner API is running",
            "build_marker": get_settings().BUILD_MARKER,
        },
        message="Health check successful",
    )
