# backend/fortifymis/main.py
import logging
import os
from typing import List

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .database import database_ready, get_read_db
from .errors import register_exception_handlers
from .middleware import RoleRouteMiddleware

from .apps.accounts.router_public import router as auth_router
from .apps.accounts.router_admin import mills_router, users_router
from .apps.alerts.router import router as alerts_router
from .apps.audit.router import router as audit_router
from .apps.compliance.router import router as compliance_router
from .apps.dashboards.router import router as dashboards_router
from .apps.iot.router import router as iot_router
from .apps.logistics.router import router as logistics_router
from .apps.maintenance.router import router as maintenance_router
from .apps.notifications.router import router as notifications_router
from .apps.procurement.router import router as procurement_router
from .apps.training.router import public_router as certificates_router
from .apps.training.router import router as training_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:3000",
        "http://localhost:3000",
        "http://localhost:5173",
    ]


app = FastAPI(title="FortifyMIS API", version="1.0.0")
cors_origins = _allowed_origins()
allow_credentials = "*" not in cors_origins

register_exception_handlers(app)

# Added last so CORS wraps the role gate and preflights get their headers.
app.add_middleware(RoleRouteMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


@app.get("/api/health", tags=["health"])
def api_health(db: Session = Depends(get_read_db)):
    if not database_ready(db):
        return JSONResponse(status_code=503, content={"status": "degraded", "database": "unreachable"})
    return {"status": "ok", "database": "ok"}


app.include_router(auth_router)
app.include_router(users_router)
app.include_router(mills_router)
app.include_router(alerts_router)
app.include_router(audit_router)
app.include_router(notifications_router)
app.include_router(compliance_router)
app.include_router(maintenance_router)
app.include_router(iot_router)
app.include_router(training_router)
app.include_router(certificates_router)
app.include_router(procurement_router)
app.include_router(logistics_router)
app.include_router(dashboards_router)
