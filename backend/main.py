import logging
import math
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, DEFAULT_ADMIN_PASSWORD
from db import Base, make_engine, make_session_factory
from errors import AppError, AuthError, NotFoundError, RateLimitError
from export import to_csv
from logging_config import setup_logging
from ratelimit import FixedWindowLimiter
from schemas import LoginIn, LoginOut, MessageOut, Pagination, SubmitOut
from security import AdminAuth, ConfiguredSecret, HashedStoreCredential, verify_admin
from store import (
    DEFAULT_PAGE,
    DEFAULT_PAGE_SIZE,
    MULTI_SELECT_COLUMN,
    SUBMISSION_COLUMNS,
    SubmissionStore,
    multi_select_json,
    normalize_page,
)
from submissions import IncomingFile, SubmissionService, UploadStorage

logger = logging.getLogger(__name__)

UPLOAD_FIELD = "upload"


def _client_host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _serialize(record: dict) -> dict:
    out = dict(record)
    if MULTI_SELECT_COLUMN in out:
        out[MULTI_SELECT_COLUMN] = multi_select_json(out[MULTI_SELECT_COLUMN])
    created = out.get("created_at")
    if isinstance(created, datetime):
        out["created_at"] = created.isoformat()
    return out


def _error_body(message: str, errors: Optional[list] = None) -> dict:
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


# ------------------------
# Dependencies
# ------------------------
def get_store(request: Request) -> SubmissionStore:
    return request.app.state.store


def get_service(request: Request) -> SubmissionService:
    return request.app.state.service


def throttle_login(request: Request) -> None:
    """Per-client cap on login attempts, counted before the password is checked."""
    if not request.app.state.login_limiter.hit(_client_host(request)):
        logger.warning("Login throttled for %s", _client_host(request))
        raise RateLimitError("Too many login attempts, please try again later.")


def throttle_api(request: Request) -> None:
    if not request.app.state.api_limiter.hit(_client_host(request)):
        raise RateLimitError("Too many requests from this IP, please try again later.")


# ------------------------
# Public: submissions
# ------------------------
public = APIRouter()


@public.post("/submit", response_model=SubmitOut, dependencies=[Depends(throttle_api)])
async def submit_form(request: Request, service: SubmissionService = Depends(get_service)):
    """Accept a multipart (or urlencoded) form with an optional ``upload`` file part.

    Returns:
        SubmitOut: {"success": True, "message": ..., "id": <new_id>}

    Raises:
        FileUploadError: 400 on disallowed type or size.
        ValidationError: 400 with per-field errors.
    """
    max_size = service.max_file_size
    form = await request.form()
    try:
        fields = {}
        incoming = None
        for key in form.keys():
            values = form.getlist(key)
            if key == UPLOAD_FIELD:
                upload = next((v for v in values if isinstance(v, UploadFile)), None)
                if upload is not None and upload.filename:
                    # read one byte past the limit so oversize is detectable
                    data = await upload.read(max_size + 1)
                    incoming = IncomingFile(
                        filename=upload.filename,
                        content_type=upload.content_type or "",
                        data=data,
                    )
                continue
            fields[key] = [v for v in values if isinstance(v, str)]
    finally:
        await form.close()

    new_id = await run_in_threadpool(service.submit, fields, incoming)
    logger.info("Form submission successful id=%s ip=%s", new_id, _client_host(request))
    return {"success": True, "message": "Form submitted successfully!", "id": new_id}


# ------------------------
# Admin
# ------------------------
admin = APIRouter()


@admin.post("/login", response_model=LoginOut, dependencies=[Depends(throttle_login)])
def login(body: LoginIn, request: Request):
    """Exchange the admin password for a bearer token.

    Raises:
        AuthError: 401 on a wrong password.
        RateLimitError: 429 once the per-client attempt limit is reached.
    """
    token = request.app.state.auth.login(body.password, body.username, origin=_client_host(request))
    return {"success": True, "token": token}


@admin.get("/submissions", dependencies=[Depends(verify_admin)])
def list_submissions(page: Optional[str] = None, limit: Optional[str] = None,
                     store: SubmissionStore = Depends(get_store)):
    """Paginated submissions, newest first.

    Args:
        page (str|None): 1-based page; non-positive or non-numeric means 1.
        limit (str|None): Page size; non-positive or non-numeric means 10.

    Returns:
        dict: {"success", "submissions": [...], "pagination": {total, page, limit, pages}}
    """
    page_no = normalize_page(page, DEFAULT_PAGE)
    page_size = normalize_page(limit, DEFAULT_PAGE_SIZE)
    items, total = store.list(page_no, page_size)
    pagination = Pagination(total=total, page=page_no, limit=page_size,
                            pages=math.ceil(total / page_size))
    return {
        "success": True,
        "submissions": [_serialize(r) for r in items],
        "pagination": pagination.model_dump(),
    }


@admin.get("/submissions/{submission_id}", dependencies=[Depends(verify_admin)])
def get_submission(submission_id: int, store: SubmissionStore = Depends(get_store)):
    record = store.get(submission_id)
    if not record:
        raise NotFoundError("Submission not found")
    return {"success": True, "submission": _serialize(record)}


@admin.delete("/submissions/{submission_id}", response_model=MessageOut)
def delete_submission(submission_id: int, background_tasks: BackgroundTasks,
                      claims: dict = Depends(verify_admin),
                      service: SubmissionService = Depends(get_service)):
    """Delete a submission; its attachment is removed afterwards in the background.

    Raises:
        NotFoundError: 404 if no such submission.
    """
    service.delete(submission_id, schedule=background_tasks.add_task)
    logger.info("Submission %s deleted by %s", submission_id, claims.get("sub"))
    return {"success": True, "message": "Submission deleted successfully"}


@admin.get("/export-csv")
def export_csv(claims: dict = Depends(verify_admin), store: SubmissionStore = Depends(get_store)):
    """Export every submission as CSV.

    Returns:
        Response: text/csv attachment ``submissions_<YYYY-MM-DD>.csv``.
    """
    records = store.export_all()
    content = to_csv(records, base_columns=SUBMISSION_COLUMNS)
    logger.info("CSV export completed by %s rows=%s", claims.get("sub"), len(records))
    filename = f"submissions_{datetime.now(timezone.utc).strftime('%Y-%m-%d')}.csv"
    return Response(content=content.encode("utf-8"), media_type="text/csv",
                    headers={"Content-Disposition": f"attachment; filename={filename}"})


# ------------------------
# App factory
# ------------------------
def _build_verifier(settings: Settings, session_factory):
    if settings.admin_password == DEFAULT_ADMIN_PASSWORD:
        logger.warning("ADMIN_PASSWORD is the default value; change it before deploying")
    if settings.admin_auth_mode == "configured":
        return ConfiguredSecret(settings.admin_password)
    verifier = HashedStoreCredential(session_factory, default_username=settings.admin_username)
    verifier.ensure_admin(settings.admin_username, settings.admin_password)
    return verifier


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level, settings.log_file)
    if settings.generated_jwt_secret:
        logger.warning("JWT_SECRET not set; using a random secret, tokens will not survive a restart")

    engine = make_engine(settings.database_url)
    Base.metadata.create_all(bind=engine)
    logger.info("Submissions table created or already exists")
    session_factory = make_session_factory(engine)

    store = SubmissionStore(session_factory)
    uploads = UploadStorage(settings.upload_dir)

    app = FastAPI(title="Form Submission API")
    app.state.settings = settings
    app.state.engine = engine
    app.state.store = store
    app.state.uploads = uploads
    app.state.service = SubmissionService(store, uploads, settings.max_file_size)
    app.state.auth = AdminAuth(
        _build_verifier(settings, session_factory),
        settings.jwt_secret,
        token_ttl=timedelta(minutes=settings.jwt_expire_minutes),
    )
    app.state.login_limiter = FixedWindowLimiter(settings.login_rate_limit, settings.login_rate_window_seconds)
    app.state.api_limiter = FixedWindowLimiter(settings.api_rate_limit, settings.api_rate_window_seconds)
    app.state.started = time.monotonic()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        errors = getattr(exc, "errors", None)
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, errors),
                            headers=headers)

    @app.exception_handler(RequestValidationError)
    async def _request_invalid(request: Request, exc: RequestValidationError):
        errors = []
        for err in exc.errors():
            loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
            error = err.get("ctx", {}).get("error")
            errors.append({"field": ".".join(loc) or "request",
                           "message": str(error) if error is not None else err.get("msg", "")})
        return JSONResponse(status_code=400, content=_error_body("Validation failed", errors))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        if exc.status_code == 404 and message == "Not Found":
            message = f"Cannot find {request.url.path} on this server"
        return JSONResponse(status_code=exc.status_code, content=_error_body(message))

    @app.get("/health")
    def health():
        """Readiness probe."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": time.monotonic() - app.state.started,
            "environment": settings.app_env,
        }

    @app.get("/uploads/{reference}")
    def uploaded_file(reference: str):
        """Serve a stored attachment by its opaque reference."""
        path = uploads.path_for(reference)
        if path is None or not path.is_file():
            raise NotFoundError("File not found")
        return FileResponse(path)

    app.include_router(public, prefix="/api/v1/submissions", tags=["submissions"])
    app.include_router(admin, prefix="/api/v1/admin", tags=["admin"])

    # routes kept for older clients
    app.add_api_route("/submit-form", submit_form, methods=["POST"], response_model=SubmitOut,
                      dependencies=[Depends(throttle_api)], include_in_schema=False)
    app.include_router(admin, prefix="/admin", include_in_schema=False)

    return app


app = create_app()
