# services/web_app/app/main.py
from fastapi import FastAPI, Request, Depends, status
from fastapi.responses import JSONResponse, RedirectResponse
from contextlib import asynccontextmanager
from typing import Optional
import asyncio

from core.config import settings, logger as core_logger
from core.exceptions import NotFoundError, RemoteFailure
from core.models import ApiResponse
from services.account_service.app import crud as account_crud
from services.file_service.app import crud as file_crud
from .dependencies import SignInRequired, session_token

# Use logger configured in core.config
logger = core_logger.getChild("WebApp")


# --- Background Reconciliation ---
async def reconcile_uploads_periodically(interval_seconds: int):
    """Runs the upload-intent sweep forever; one failed sweep never stops the next."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await file_crud.reconcile_pending_uploads()
        except Exception as e:
            logger.error(f"Upload reconciliation sweep failed: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: start the reconciliation sweep if enabled
    app.state.reconcile_task = None
    if settings.RECONCILE_INTERVAL_SECONDS > 0:
        app.state.reconcile_task = asyncio.create_task(reconcile_uploads_periodically(settings.RECONCILE_INTERVAL_SECONDS))
        logger.info(f"Upload reconciliation scheduled every {settings.RECONCILE_INTERVAL_SECONDS}s.")
    else:
        logger.info("Upload reconciliation disabled (RECONCILE_INTERVAL_SECONDS=0).")

    yield # Application runs here

    # Shutdown: stop the sweep
    task = getattr(app.state, "reconcile_task", None)
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Upload reconciliation task stopped.")


# --- FastAPI App ---
app = FastAPI(
    title="StoreIt",
    description="File storage with passcode sign-in, sharing and quota tracking on Supabase",
    version="1.0.0",
    lifespan=lifespan
)


# --- Exception Handlers ---
@app.exception_handler(SignInRequired)
async def sign_in_required_handler(request: Request, exc: SignInRequired):
    return RedirectResponse(settings.SIGN_IN_PATH, status_code=status.HTTP_303_SEE_OTHER)

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=ApiResponse(status="error", message=str(exc)).model_dump())

@app.exception_handler(RemoteFailure)
async def remote_failure_handler(request: Request, exc: RemoteFailure):
    logger.error(f"Remote failure while handling {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=ApiResponse(status="error", message=str(exc)).model_dump())


# --- Health Check ---
@app.get("/health", response_model=ApiResponse, tags=["Meta"])
async def health_check(request: Request):
    task = getattr(request.app.state, "reconcile_task", None)
    sweep_status = "running" if task and not task.done() else "not running"
    return ApiResponse(status="success", message=f"StoreIt is running (upload reconciliation: {sweep_status})")


@app.get("/", tags=["Meta"])
async def root(token: Optional[str] = Depends(session_token)):
    """Signed-in users land on the dashboard, everyone else on sign-in."""
    user = await account_crud.get_current_user(token)
    target = "/ui" if user else settings.SIGN_IN_PATH
    return RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)


# --- Routing ---
# Import routers AFTER app is defined
from .routers import auth, files

app.include_router(auth.router, tags=["Auth"])
app.include_router(files.router, prefix="/api", tags=["Files"])

# --- Mount Gradio dashboard ---
from services.ui_service.app.main import mount_ui

app = mount_ui(app, path="/ui")
