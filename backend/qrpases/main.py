"""
Point d'entrée principal de l'API QRPases.
Démarrage : uvicorn qrpases.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import qrpases.models  # noqa: F401  (enregistre les modèles dans Base.metadata)
from qrpases.config import settings
from qrpases.exceptions import AttendanceError, NetworkFailure
from qrpases.routers import dashboard, justifications, scans, students
from qrpases.scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Cycle de vie de l'application : démarre et arrête le scheduler APScheduler."""
    start_scheduler()
    yield
    stop_scheduler()


app = FastAPI(
    title="QRPases API",
    description="API de contrôle d'assistance scolaire par QR (atrasos, inasistencias, justifications)",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS : autorise les ports localhost en développement (app Expo + dashboard Next.js).
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


app.include_router(scans.router)
app.include_router(justifications.router)
app.include_router(students.router)
app.include_router(dashboard.router)


@app.exception_handler(AttendanceError)
async def attendance_error_handler(request: Request, exc: AttendanceError) -> JSONResponse:
    """Erreurs métier : message affiché tel quel par l'app, sans relance."""
    if isinstance(exc, NetworkFailure):
        logger.error("Échec backend sur %s : %s", request.url.path, exc.message)
    else:
        logger.warning("Requête refusée sur %s : %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées pour garantir que la réponse 500
    passe bien par CORSMiddleware (qui injecte les headers CORS).
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": "QRPases API", "version": "0.1.0", "record_store": settings.RECORD_STORE}
