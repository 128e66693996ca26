"""
Relay routes.

Two endpoints exist on every domain of the ring:

- GET /relay/start
    Entry point after a local login. Plans the first hop and redirects the
    browser to the relay URL of the next domain.
- GET /relay/{referrer}/{account_id}/{timestamp}/{token}/{langcode}
    One hop. Validates the token, logs the account in on this domain, then
    redirects to the next domain or, once the ring has closed, to the
    success destination on the domain the flow started from.

Both answer 303 and forbid caching: a relay URL is only valid for a moment.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from ..config import Settings, is_valid_langcode
from ..errors import DomainNotInRing, IdentityServiceError
from ..models import Account, FlowState
from .handler import LoginRelayHandler
from .planner import HopPlanner, UrlAlter, request_time
from .ring import DomainAlter, DomainRing, DomainsAlter
from .session import RelaySession
from .token import TokenCodec

logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

relay_router = APIRouter(
    prefix="/relay",
    tags=["relay"],
)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


@dataclass
class RelayHooks:
    """
    Strategy functions that let the host application rewrite relay decisions.

    Attributes:
        url_alter: (url, target_domain) -> url, applied to every planned URL
        domain_alter: (domain, domains) -> domain, applied to the resolved current domain
        domains_alter: (domains) -> domains, applied to the configured ring
    """
    url_alter: Optional[UrlAlter] = None
    domain_alter: Optional[DomainAlter] = None
    domains_alter: Optional[DomainsAlter] = None


# =============================================================================
# Dependencies
# =============================================================================

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_account_directory(request: Request):
    """
    Dependency returning the account directory from app state.

    Raises:
        HTTPException: 503 if no directory was configured
    """
    directory = getattr(request.app.state, "account_directory", None)
    if directory is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Account directory not configured",
        )
    return directory


def get_clock(request: Request) -> Callable[[], int]:
    return getattr(request.app.state, "clock", None) or request_time


def get_planner(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    clock: Callable[[], int] = Depends(get_clock),
) -> HopPlanner:
    hooks: RelayHooks = getattr(request.app.state, "relay_hooks", None) or RelayHooks()
    ring = DomainRing(
        settings.domains_list,
        domains_alter=hooks.domains_alter,
        domain_alter=hooks.domain_alter,
    )
    return HopPlanner(
        ring=ring,
        codec=TokenCodec(settings.RELAY_HASH_SALT),
        settings=settings,
        url_path_for=request.app.url_path_for,
        url_alter=hooks.url_alter,
        clock=clock,
    )


def get_handler(
    settings: Settings = Depends(get_app_settings),
    directory=Depends(get_account_directory),
    clock: Callable[[], int] = Depends(get_clock),
) -> LoginRelayHandler:
    return LoginRelayHandler(
        settings=settings,
        directory=directory,
        codec=TokenCodec(settings.RELAY_HASH_SALT),
        clock=clock,
    )


# =============================================================================
# Helpers
# =============================================================================

def _resolve_langcode(langcode: Optional[str], settings: Settings) -> str:
    if langcode and is_valid_langcode(langcode):
        return langcode
    return settings.DEFAULT_LANGUAGE


async def _session_account(session: RelaySession, directory) -> Optional[Account]:
    """Account logged in on this domain, or None for an anonymous session."""
    if session.is_anonymous:
        return None
    account_id = session.account_id

    try:
        account = await directory.get_account(account_id)
    except IdentityServiceError as e:
        logger.error(f"Session account lookup failed: {e}", extra={"account_id": account_id})
        return None

    if account is None or not account.active:
        return None
    return account


def _no_cache(response: Response) -> Response:
    response.headers.update(NO_CACHE_HEADERS)
    return response


def _redirect(url: str) -> Response:
    return _no_cache(RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER))


def _error_response(
    request: Request,
    planner: HopPlanner,
    langcode: str,
    title: str,
    message: str,
) -> Response:
    url = planner.error_url(str(request.base_url), langcode)
    if url:
        return _redirect(url)
    return _no_cache(_render_error_page(title=title, message=message))


async def relay_validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
    """
    Answer malformed relay URLs with the error destination instead of a 422.

    Registered on the application for RequestValidationError; requests
    outside the relay router keep FastAPI's default handler.
    """
    if not request.url.path.startswith(relay_router.prefix + "/"):
        return await request_validation_exception_handler(request, exc)

    settings = get_app_settings(request)
    planner = get_planner(request, settings, get_clock(request))
    logger.warning(
        "Malformed relay URL",
        extra={"domain": request.url.hostname, "path": request.url.path},
    )
    return _error_response(
        request,
        planner,
        settings.DEFAULT_LANGUAGE,
        title="Invalid Login Link",
        message="This login link is malformed. Log in again to synchronize your session.",
    )


# =============================================================================
# Entry Endpoint
# =============================================================================

@relay_router.get("/start", name="relay_start", response_class=RedirectResponse)
async def relay_start(
    request: Request,
    langcode: Optional[str] = Query(None, description="Language of the final destination"),
    settings: Settings = Depends(get_app_settings),
    directory=Depends(get_account_directory),
    planner: HopPlanner = Depends(get_planner),
):
    """
    Start the relay for the account logged in on this domain.

    The domain the flow starts from is fingerprinted into every relay URL so
    the last hop can recognize that the ring has closed.

    Returns:
        303 to the next domain's relay URL, or to the error destination when
        there is no local session or this host is not part of the ring
    """
    langcode = _resolve_langcode(langcode, settings)
    request_url = str(request.url)
    account = await _session_account(RelaySession(request, settings), directory)

    if account is None:
        logger.warning(
            "Relay start without an authenticated session",
            extra={"domain": request.url.hostname},
        )
        return _error_response(
            request,
            planner,
            langcode,
            title="Not Logged In",
            message="Log in before synchronizing your session with the other sites.",
        )

    try:
        referrer = planner.referrer_for(request_url)
        url = planner.plan_url(request_url, referrer, langcode, True, account)
    except DomainNotInRing as e:
        logger.warning(
            "Relay start on a domain outside the ring",
            extra={"domain": e.domain},
        )
        return _error_response(
            request,
            planner,
            langcode,
            title="Unknown Domain",
            message="This site is not configured to share logins.",
        )

    logger.info(
        "Relay started",
        extra={"domain": request.url.hostname, "account_id": account.id},
    )
    return _redirect(url)


# =============================================================================
# Hop Endpoint
# =============================================================================

@relay_router.get(
    "/{referrer}/{account_id}/{timestamp}/{token}/{langcode}",
    name="relay_login",
    response_class=RedirectResponse,
)
async def relay_login(
    request: Request,
    referrer: int = Path(..., ge=0, description="Fingerprint of the origin domain"),
    account_id: int = Path(..., ge=0, description="Account being relayed"),
    timestamp: int = Path(..., ge=0, description="Token issuance time"),
    token: str = Path(..., min_length=1, max_length=128, description="Relay token"),
    langcode: str = Path(..., max_length=12, description="Language of the final destination"),
    settings: Settings = Depends(get_app_settings),
    directory=Depends(get_account_directory),
    planner: HopPlanner = Depends(get_planner),
    handler: LoginRelayHandler = Depends(get_handler),
):
    """
    Log the relayed account in on this domain and continue the ring.

    The hop outcome never changes where the browser goes next; it is logged
    and exposed in the X-Relay-Status header (200 or 403). A referrer that
    names no ring domain could never close the ring, so it goes to the error
    destination instead.
    """
    flow = FlowState(
        referrer=referrer,
        account_id=account_id,
        timestamp=timestamp,
        token=token,
        langcode=_resolve_langcode(langcode, settings),
    )
    session = RelaySession(request, settings)
    host = request.url.hostname or ""

    # Closure is detected by reaching the origin; an origin outside the ring is never reached
    origin = planner.ring.by_fingerprint(flow.referrer)
    if origin is None:
        logger.warning(
            "Relay hop from an origin outside the ring",
            extra={"domain": host, "referrer": flow.referrer},
        )
        return _error_response(
            request,
            planner,
            flow.langcode,
            title="Unknown Origin",
            message="This login link was not started from a site that shares logins.",
        )

    result = await handler.handle(flow, session, host)
    log = logger.info if result.authorized else logger.warning
    log(
        f"Relay hop {result.outcome.value}",
        extra={
            "domain": host,
            "origin": origin.url,
            "status_code": result.status_code,
        },
    )
    account = await _session_account(session, directory)

    try:
        url = planner.plan_url(str(request.url), flow.referrer, flow.langcode, False, account)
    except DomainNotInRing as e:
        logger.warning(
            "Relay hop on a domain outside the ring",
            extra={"domain": e.domain},
        )
        return _error_response(
            request,
            planner,
            flow.langcode,
            title="Unknown Domain",
            message="This site is not configured to share logins.",
        )

    response = _redirect(url)
    response.headers["X-Relay-Status"] = str(result.status_code)
    return response


# =============================================================================
# HTML Response Templates
# =============================================================================

def _render_error_page(
    title: str,
    message: str,
    status_code: int = 400,
) -> HTMLResponse:
    """
    Render error page for relay failures.

    Args:
        title: Error title
        message: Error message (no PII)
        status_code: HTTP status code

    Returns:
        HTMLResponse with error information
    """
    html_content = f"""
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>{title}</title>
        <style>
            * {{ margin: 0; padding: 0; box-sizing: border-box; }}
            body {{
                font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;
                background: #f3f4f6;
                min-height: 100vh;
                display: flex;
                align-items: center;
                justify-content: center;
                padding: 20px;
            }}
            .container {{
                background: white;
                border-radius: 12px;
                padding: 40px;
                max-width: 500px;
                width: 100%;
                box-shadow: 0 10px 40px rgba(0,0,0,0.1);
                text-align: center;
            }}
            h1 {{
                color: #1f2937;
                font-size: 24px;
                margin-bottom: 16px;
            }}
            .message {{
                color: #6b7280;
                font-size: 16px;
                line-height: 1.6;
            }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1>{title}</h1>
            <p class="message">{message}</p>
        </div>
    </body>
    </html>
    """

    return HTMLResponse(content=html_content, status_code=status_code)
