from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from .middleware import EmptyPreflightCORSMiddleware
from .routes import upload
from .config import settings
from .core.exceptions import UploadError
from .models import ErrorResponse
from .services.error_classifier import classify_failure
import logging

logger = logging.getLogger(__name__)

app = FastAPI(title="Asset Upload API")


@app.on_event("startup")
async def startup_event():
    logger.info("Application starting up...")
    if not settings.web3storage_token:
        logger.warning("WEB3STORAGE_TOKEN is not set; uploads will fail until it is")
    logger.info(f"Upload size limit: {settings.max_upload_bytes} bytes")


@app.exception_handler(UploadError)
async def upload_error_handler(request: Request, exc: UploadError) -> JSONResponse:
    outcome = classify_failure(exc)
    message = f"{request.method} {request.url.path} failed [{outcome.kind}/{outcome.stage}]: {outcome.message}"
    if outcome.is_client_error:
        logger.warning(message)
    else:
        logger.error(message)
    body = ErrorResponse(
        error=outcome.message, kind=outcome.kind, stage=outcome.stage
    )
    return JSONResponse(status_code=outcome.status_code, content=body.model_dump())


@app.get("/health")
async def health():
    return {"status": "ok"}


# Configure CORS
app.add_middleware(
    EmptyPreflightCORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(upload.router, prefix="/api")
