from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.radorder.api.v1.routes_auth import router as auth_router_v1
from src.radorder.api.v1.routes_medical_codes import router as medical_codes_router_v1
from src.radorder.api.v1.routes_orders import router as orders_router_v1
from src.radorder.api.v1.routes_organizations import router as organizations_router_v1
from src.radorder.api.v1.routes_patients import router as patients_router_v1
from src.radorder.api.v1.routes_system import router as system_router_v1
from src.radorder.api.v1.routes_users import invitations_router as invitations_router_v1
from src.radorder.api.v1.routes_users import router as users_router_v1
from src.radorder.api.v1.routes_validation import router as validation_router_v1
from src.radorder.config import settings
from src.radorder.errors import register_exception_handlers
from src.radorder.infra.db.bootstrap import init_sql_repositories

app = FastAPI(title="RadOrder API")
register_exception_handlers(app)


@app.on_event("startup")
async def on_startup() -> None:
    """Application startup hook.

    When USE_SQL_REPOS is enabled and a DATABASE_URL is configured, orders
    are persisted through SQLAlchemy. Otherwise (tests, local dev without a
    database) this is a no-op and the in-memory order repository stays active.
    """

    init_sql_repositories()

# CORS configuration – permissive by default for development. Tighten via
# CORS_ALLOW_ORIGINS in production deployments.
allow_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    """Basic liveness probe for the API root."""
    return {"status": "ok"}


# Versioned API routers
app.include_router(system_router_v1, prefix="/api/v1")
app.include_router(auth_router_v1, prefix="/api/v1")
app.include_router(organizations_router_v1, prefix="/api/v1")
app.include_router(users_router_v1, prefix="/api/v1")
app.include_router(invitations_router_v1, prefix="/api/v1")
app.include_router(patients_router_v1, prefix="/api/v1")
app.include_router(orders_router_v1, prefix="/api/v1")
app.include_router(validation_router_v1, prefix="/api/v1")
app.include_router(medical_codes_router_v1, prefix="/api/v1")
