from fastapi import APIRouter

from src.radorder.config import settings

router = APIRouter(prefix="", tags=["system"])


@router.get("/health")
async def health_check_v1() -> dict:
    """API v1 health endpoint."""
    return {"status": "ok", "version": "v1"}


@router.get("/system/validation/health")
async def validation_health_v1() -> dict:
    """Report which validation path new dictations will take.

    - ``llm`` when an API key for the configured provider is present.
    - ``fallback`` when it is not; results come from the rule table.

    The code reference database is reported as present or missing; no
    query is run against it.
    """

    return {
        "provider": settings.llm_provider,
        "mode": "llm" if settings.llm_api_key else "fallback",
        "fallback_on_error": settings.validation_fallback_on_error,
        "code_database": "present" if settings.code_database_path.exists() else "missing",
    }
