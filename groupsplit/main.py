import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from groupsplit.core.logging_config import configure_logging
from groupsplit.core.exceptions import ValidationError, StorageError, ArithmeticInvariantViolation
import groupsplit.db.base  # noqa: F401
from groupsplit.api.v1.routes.user import router as user_router
from groupsplit.api.v1.routes.group import router as group_router
from groupsplit.api.v1.routes.expense import router as expense_router
from groupsplit.api.v1.routes.settlement import router as settlement_router

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="groupsplit")

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})

@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage error", extra={"group_id": exc.group_id, "path": request.url.path})
    return JSONResponse(status_code=503, content={"detail": "Settlements could not be updated, try again"})

@app.exception_handler(ArithmeticInvariantViolation)
async def invariant_error_handler(request: Request, exc: ArithmeticInvariantViolation):
    logger.error("Ledger invariant violated: %s", exc, extra={"path": request.url.path})
    return JSONResponse(status_code=500, content={"detail": "Group ledger is inconsistent"})

@app.get("/")
async def root():
    return {"message": "groupsplit is live"}

app.include_router(user_router, prefix="/api/v1/users")
app.include_router(group_router, prefix="/api/v1/groups")
app.include_router(expense_router, prefix="/api/v1/expense")
app.include_router(settlement_router, prefix="/api/v1/settlements")
