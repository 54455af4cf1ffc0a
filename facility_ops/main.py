import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from facility_ops.api.v1.notifications import router as notifications_router
from facility_ops.api.v1.proposals import router as proposals_router
from facility_ops.api.v1.reports import router as reports_router
from facility_ops.api.v1.third_party_companies import router as third_party_companies_router
from facility_ops.api.v1.third_party_portal import router as third_party_portal_router
from facility_ops.api.v1.work_orders import router as work_orders_router
from facility_ops.core.config import settings
from facility_ops.core.errors import IsolationError, isolation_error_handler
from facility_ops.db import models
from facility_ops.db.session import engine

if not logging.getLogger().handlers:
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO))

logger = logging.getLogger("facility_ops")

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Facility Ops - Terceiros, SLA e Auditoria de Ordens de Servico",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(IsolationError, isolation_error_handler)


@app.on_event("startup")
def on_startup() -> None:
    models.Base.metadata.create_all(bind=engine)
    if settings.ENV.lower() == "production":
        if settings.SECRET_KEY == "dev-secret-change-me":
            logger.warning("SECRET_KEY esta usando valor padrao em producao.")
        if settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
            logger.warning("SQLALCHEMY_DATABASE_URI aponta para SQLite em producao.")
        if not settings.PUSH_ENABLED:
            logger.warning("Envio de push desabilitado em producao.")


app.include_router(third_party_companies_router, prefix="/api")
app.include_router(third_party_portal_router, prefix="/api")
app.include_router(work_orders_router, prefix="/api")
app.include_router(proposals_router, prefix="/api")
app.include_router(reports_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


@app.get("/api/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
