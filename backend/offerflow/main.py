import logging
import sqlite3
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from offerflow.config import settings
from offerflow.dependencies import get_workflow_service
from offerflow.errors import ErrorCode, WorkflowError
from offerflow.routers import workflows
from offerflow.schemas.integrations import IntegrationHealth
from offerflow.services.workflow_service import OfferWorkflowService

logger = logging.getLogger("offerflow")

ERROR_STATUS = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.PRECONDITION_FAILED: 409,
    ErrorCode.ADAPTER_ERROR: 502,
    ErrorCode.CONCURRENCY_CONFLICT: 409,
    ErrorCode.NOT_FOUND: 404,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create/migrate and integrity-check the workflow database
    try:
        from offerflow.database import init_db
        init_db(settings.db_path)
        conn = sqlite3.connect(str(settings.db_path))
        result = conn.execute("PRAGMA integrity_check").fetchone()
        conn.close()
        if result and result[0] == "ok":
            logger.info("Database integrity check passed.")
        else:
            logger.error("DATABASE INTEGRITY CHECK FAILED: %s", result)
    except (OSError, sqlite3.Error) as exc:
        logger.error("Could not run startup migration/integrity check: %s", exc)
    yield


app = FastAPI(
    title="OfferFlow",
    description="Offer workflow orchestrator: background check, offer generation, approval, delivery and response tracking",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    return JSONResponse(status_code=ERROR_STATUS.get(exc.code, 500), content={"detail": exc.to_dict()})


app.include_router(workflows.router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}


@app.get("/health/integrations", response_model=list[IntegrationHealth])
async def integrations_health(service: OfferWorkflowService = Depends(get_workflow_service)):
    return await service.check_integrations()


def run():
    """Console entry point: configure logging and serve the API with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(app, host=settings.host, port=settings.port)
