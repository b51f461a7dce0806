import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from consult_payments.database import init_db
from consult_payments.errors import AppError, ValidationError
from consult_payments.logging_config import setup_logging
from consult_payments.routes import router as payments_router
from consult_payments.webhooks import router as webhooks_router

setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(title="Legal Consultation Payments")

app.include_router(payments_router)
app.include_router(webhooks_router)

init_db()


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message, kind=exc.kind.label)
    else:
        logger.warning("request_rejected", path=request.url.path, error=exc.message, kind=exc.kind.label)

    content = {"success": False, "error": exc.message}
    if isinstance(exc, ValidationError) and exc.fields:
        content["fields"] = exc.fields
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = {
        ".".join(str(part) for part in error["loc"] if part != "body"): error["msg"]
        for error in exc.errors()
    }
    return await app_error_handler(request, ValidationError("Invalid request data", fields))
