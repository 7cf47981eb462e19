from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy.orm import Session
from sqlalchemy import inspect
from datetime import datetime
import asyncio, logging

# Import our modules
from odflow.core.config import CORS_ORIGINS, ESCALATION_ENABLED, ESCALATION_INTERVAL_SEC
from odflow.core.database import get_db, engine, Base, SessionLocal
from odflow.core.errors import ODFlowError
from odflow.core.logging import configure_logging
from odflow.models.od_request import ODRequest
from odflow.metrics import init_metrics_zero
from odflow.services.escalation import escalation_tick
from odflow.utils.audit_sink import AUDIT_DIR
from odflow.utils.policy import get_policy, POLICY_PATH
from odflow.api import actions, admin, auth, limits, notifications, practice, requests as od_requests

configure_logging()
logger = logging.getLogger("odflow")

_escalation_task = None  # asyncio.Task

app = FastAPI(
    title="OD Flow API",
    description="On-Duty leave requests: submission, approval chain, limits and escalation",
    version="0.3.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS, allow_credentials=True,
    allow_methods=["*"], allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(od_requests.router)
app.include_router(actions.router)
app.include_router(practice.router)
app.include_router(limits.router)
app.include_router(notifications.router)
app.include_router(admin.router)

init_metrics_zero()

@app.on_event("startup")
async def on_startup():
    logger.info("Creating tables on startup (engine=%s)", engine.url.render_as_string(hide_password=True))
    Base.metadata.create_all(bind=engine)
    logger.info("Tables now: %s", inspect(engine).get_table_names())
    logger.info("Policy file: %s; audit dir: %s", POLICY_PATH, AUDIT_DIR)
    get_policy()

    global _escalation_task
    if ESCALATION_ENABLED:
        logger.info("[escalation] enabled; interval=%ss", ESCALATION_INTERVAL_SEC)
        _escalation_task = asyncio.get_running_loop().create_task(_escalation_loop())
    else:
        logger.info("[escalation] disabled by ESCALATION_ENABLED=0")

@app.on_event("shutdown")
async def on_shutdown():
    global _escalation_task
    if _escalation_task:
        _escalation_task.cancel()
        _escalation_task = None

@app.exception_handler(ODFlowError)
async def odflow_error_handler(request: Request, exc: ODFlowError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})

@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    try:
        requests_count = db.query(ODRequest).count()
        tables = inspect(db.get_bind()).get_table_names()
        return {
            "status": "healthy",
            "database": "connected",
            "requests_count": requests_count,
            "tables": tables,
            "timestamp": datetime.now()
        }
    except Exception as e:
        logger.exception("health check failed")
        return {
            "status": "unhealthy",
            "database": "disconnected",
            "error": str(e),
            "timestamp": datetime.now()
        }

@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

# SCHEDULED ESCALATION
def _escalation_once():
    db = SessionLocal()
    try:
        return escalation_tick(db)
    finally:
        db.close()

async def _escalation_loop():
    while True:
        try:
            await asyncio.to_thread(_escalation_once)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[escalation] pass error")
        await asyncio.sleep(ESCALATION_INTERVAL_SEC)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
