"""Main entrypoint for the Drive Handover FastAPI application.

An external scheduler calls ``POST /jobs/{job_name}/tick`` on a fixed
interval; every call runs one bounded tick of the job and returns its
outcome. The OAuth endpoints are used once to obtain a refresh token with the
Drive scope.
"""

import os
import secrets
from typing import Optional
from urllib.parse import urlencode

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi import Request
from fastapi import status
from fastapi.responses import JSONResponse
from fastapi.responses import HTMLResponse
from fastapi.responses import RedirectResponse

from drive_handover.config.settings import JobSettings
from drive_handover.controllers.jobs import JOB_RUNNERS
from drive_handover.controllers.jobs import describe_checkpoint
from drive_handover.controllers.jobs import run_job
from drive_handover.core.errors import ConfigurationError
from drive_handover.presenters.run_status_presenter import present_run_outcome
from drive_handover.services.google_oauth import DRIVE_SCOPE
from drive_handover.services.google_oauth import OAuthClient
from drive_handover.services.google_oauth import exchange_authorization_code
from drive_handover.utils.logger import generate_run_id
from drive_handover.utils.logger import log_error
from drive_handover.utils.logger import log_info


load_dotenv()

app = FastAPI(title="Drive Handover", version="0.1.0")

_OAUTH_STATE_CACHE: set[str] = set()


def _require_setup_token(request: Request) -> bool:
    required = os.getenv("OAUTH_SETUP_TOKEN")
    if not required:
        return True
    provided = request.query_params.get("setup_token")
    return bool(provided) and secrets.compare_digest(provided, required)


def _require_trigger_token(request: Request) -> bool:
    required = os.getenv("JOB_TRIGGER_TOKEN")
    if not required:
        return True
    provided: Optional[str] = request.headers.get("X-Job-Token") or request.query_params.get("token")
    return bool(provided) and secrets.compare_digest(provided, required)


def _get_redirect_uri(request: Request) -> str:
    explicit = os.getenv("GOOGLE_OAUTH_REDIRECT_URI")
    if explicit:
        return explicit
    base = str(request.base_url).rstrip("/")
    return f"{base}/oauth2/callback"


@app.get("/oauth/start", status_code=status.HTTP_307_TEMPORARY_REDIRECT)
async def google_oauth_start(request: Request) -> RedirectResponse:
    if not _require_setup_token(request):
        return RedirectResponse(url="/health", status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    client_id = os.getenv("GOOGLE_CLIENT_ID")
    if not client_id:
        return RedirectResponse(url="/health", status_code=status.HTTP_307_TEMPORARY_REDIRECT)

    state = secrets.token_urlsafe(24)
    _OAUTH_STATE_CACHE.add(state)

    params = {
        "client_id": client_id,
        "redirect_uri": _get_redirect_uri(request),
        "response_type": "code",
        "scope": DRIVE_SCOPE,
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }

    if request.query_params.get("setup_token"):
        params["state"] = f"{state}:{request.query_params.get('setup_token')}"

    url = "https://accounts.google.com/o/oauth2/v2/auth?" + urlencode(params)
    return RedirectResponse(url=url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@app.get("/oauth2/callback")
async def google_oauth_callback(request: Request) -> HTMLResponse:
    error = request.query_params.get("error")
    if error:
        return HTMLResponse(f"OAuth error: {error}", status_code=status.HTTP_400_BAD_REQUEST)

    code = request.query_params.get("code")
    if not code:
        return HTMLResponse("Missing authorization code", status_code=status.HTTP_400_BAD_REQUEST)

    raw_state = request.query_params.get("state") or ""
    state = raw_state.split(":", 1)[0]
    setup_token = raw_state.split(":", 1)[1] if ":" in raw_state else request.query_params.get("setup_token")

    required = os.getenv("OAUTH_SETUP_TOKEN")
    if required and (not setup_token or not secrets.compare_digest(setup_token, required)):
        return HTMLResponse("Forbidden", status_code=status.HTTP_403_FORBIDDEN)

    if not state or state not in _OAUTH_STATE_CACHE:
        return HTMLResponse("Invalid state", status_code=status.HTTP_400_BAD_REQUEST)
    _OAUTH_STATE_CACHE.discard(state)

    oauth_client = OAuthClient.from_env()
    if oauth_client is None:
        return HTMLResponse(
            "Missing GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET on server",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    payload = await exchange_authorization_code(oauth_client, code, _get_redirect_uri(request))
    if payload is None:
        return HTMLResponse("Token exchange failed; see the server log.", status_code=status.HTTP_400_BAD_REQUEST)

    refresh_token = payload.get("refresh_token")
    if not refresh_token:
        return HTMLResponse(
            "No refresh_token returned. Revoke access and re-run /oauth/start.",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    html = "<h2>Google OAuth success</h2>"
    html += "<p>Set this as <b>GOOGLE_REFRESH_TOKEN</b> in the job's .env:</p>"
    html += f"<pre>{refresh_token}</pre>"
    scope = payload.get("scope")
    if isinstance(scope, str) and DRIVE_SCOPE not in scope.split():
        html += f"<p><b>Warning:</b> the Drive scope was not granted ({scope}).</p>"
    return HTMLResponse(html)


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> dict:
    """Health check endpoint to verify that the service is running."""

    return {"status": "ok", "jobs": sorted(JOB_RUNNERS)}


@app.post("/jobs/{job_name}/tick")
async def run_job_tick(job_name: str, request: Request) -> JSONResponse:
    """Run one tick of a job and report how it ended.

    A suspended tick is a normal outcome and answers 200; the scheduler
    simply calls again on its next interval.
    """

    if not _require_trigger_token(request):
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": "Forbidden"})
    if job_name not in JOB_RUNNERS:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": f"Unknown job: {job_name}"})

    request.state.run_id = generate_run_id()
    log_info("Tick requested", job=job_name, run_id=request.state.run_id)

    outcome = await run_job(job_name)
    content = outcome.to_dict()
    content["summary"] = present_run_outcome(outcome)
    return JSONResponse(status_code=status.HTTP_200_OK, content=content)


@app.get("/jobs/{job_name}/checkpoint")
async def get_job_checkpoint(job_name: str, request: Request) -> JSONResponse:
    if not _require_trigger_token(request):
        return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": "Forbidden"})
    if job_name not in JOB_RUNNERS:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": f"Unknown job: {job_name}"})

    try:
        settings = JobSettings.from_env()
    except ConfigurationError as exc:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    return JSONResponse(status_code=status.HTTP_200_OK, content=describe_checkpoint(job_name, settings))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for uncaught exceptions.

    Ensures the service returns a 500 JSON error rather than crashing, and
    logs the error together with the run_id of the tick, if any.
    """

    run_id = getattr(request.state, "run_id", None)
    log_error("Unhandled exception", run_id=run_id, path=request.url.path, error=str(exc))

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )
