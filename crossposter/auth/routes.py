"""FastAPI routes for connecting, checking and disconnecting platforms.

Every platform is served by the same handlers:

- ``GET    /auth/{provider}``           start (302 to the consent screen)
- ``GET    /auth/{provider}/callback``  provider redirect target
- ``POST   /auth/{provider}/exchange``  callback parameters relayed by the frontend
- ``POST   /auth/{provider}/refresh``   refresh the stored credential
- ``GET    /{provider}/status``         connection status
- ``GET    /{provider}/profile``        account behind the credential
- ``DELETE /{provider}/disconnect``     forget the platform
- ``GET    /connections``               status of every platform
"""

# pylint: disable=logging-too-many-args,too-many-statements

from __future__ import annotations

import logging

from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode, urlparse

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from ..exceptions import AuthenticationError, InvalidRequest
from ..state.auth import new_session_id, sign_session_id, unsign_session_id


if TYPE_CHECKING:
    from ..config import CrossPosterSettings
    from ..state.base import SessionStore
    from .connections import ConnectionManager


logger = logging.getLogger("crossposter.auth")


# ── CSRF Origin Verification ────────────────────────────────────────


def _verify_csrf_origin(request: Request, *, trusted_origins: list[str] | None = None) -> bool:
    """Verify that state-changing requests originate from a trusted origin.

    Checks the ``Origin`` header first, then falls back to ``Referer``.
    Returns ``True`` if the origin is trusted, ``False`` otherwise.

    Parameters
    ----------
    request : Request
        The incoming request.
    trusted_origins : list[str] | None
        Allowed origins (e.g. ``["https://app.example.com"]``).
        If ``None`` or empty, allows same-origin requests only.
    """
    origin = request.headers.get("origin")
    referer = request.headers.get("referer")

    source_origin: str | None = None
    if origin and origin != "null":
        source_origin = origin.rstrip("/")
    elif referer:
        parsed = urlparse(referer)
        if parsed.scheme and parsed.netloc:
            source_origin = f"{parsed.scheme}://{parsed.netloc}"

    if source_origin is None:
        # Fail closed when the browser sent neither header
        return False

    if trusted_origins:
        return source_origin in [o.rstrip("/") for o in trusted_origins]

    request_origin = f"{request.url.scheme}://{request.url.netloc}".rstrip("/")
    return source_origin == request_origin


def _error_response(exc: AuthenticationError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content={"error": exc.code, "message": exc.message},
    )


def _internal_error() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "An internal error occurred"},
    )


def create_auth_router(  # noqa: C901, PLR0915
    connections: ConnectionManager,
    session_store: SessionStore,
    settings: CrossPosterSettings,
) -> APIRouter:
    """Create a FastAPI router with the platform connection routes.

    Parameters
    ----------
    connections : ConnectionManager
        Flows for every enabled platform.
    session_store : SessionStore
        Server-side session store (shared with ``connections``).
    settings : CrossPosterSettings
        Application settings (session cookie, frontend URL, origins).

    Returns
    -------
    APIRouter
        Router with the ``/auth/*`` and per-platform routes.
    """
    router = APIRouter(tags=["connections"])
    session_settings = settings.session
    server_settings = settings.server
    trusted_origins = server_settings.allowed_origins

    async def _resolve_session(request: Request) -> tuple[str, bool]:
        """Return ``(session_id, created)``, starting a session when needed."""
        raw = request.cookies.get(session_settings.cookie_name)
        if raw:
            session_id = unsign_session_id(raw, session_settings.secret)
            if session_id and await session_store.get_session(session_id) is not None:
                return session_id, False
        session_id = new_session_id()
        await session_store.create_session(session_id, ttl=session_settings.ttl)
        return session_id, True

    def _attach_session(
        request: Request,
        response: Response,
        session_id: str,
        created: bool,
    ) -> Response:
        if not created:
            return response
        request_is_https = request.url.scheme == "https"
        response.set_cookie(
            key=session_settings.cookie_name,
            value=sign_session_id(session_id, session_settings.secret),
            httponly=True,
            secure=session_settings.force_https or request_is_https,
            samesite=session_settings.same_site,
            max_age=session_settings.ttl,
        )
        return response

    def _csrf_rejected() -> JSONResponse:
        return JSONResponse(
            status_code=403,
            content={"error": "csrf_failed", "message": "Origin verification failed"},
        )

    # ── Connection flow ─────────────────────────────────────────────

    @router.get("/auth/{provider}")
    async def auth_start(request: Request, provider: str, format: str | None = None) -> Response:  # noqa: A002
        """Start connecting a platform.

        Redirects to the platform's consent screen, or returns
        ``{"authUrl", "state"}`` when called with ``?format=json``.
        """
        session_id, created = await _resolve_session(request)
        try:
            flow = connections.get_flow(provider)
            auth_request = await flow.start(session_id)
        except AuthenticationError as exc:
            logger.warning("Could not start %s flow: %s", provider, exc)
            response: Response = _error_response(exc)
        except Exception:
            logger.exception("Starting %s flow failed", provider)
            response = _internal_error()
        else:
            if format == "json":
                response = JSONResponse(
                    content={
                        "authUrl": auth_request.authorize_url,
                        "state": auth_request.pending.state,
                    }
                )
            else:
                response = RedirectResponse(url=auth_request.authorize_url, status_code=302)
        return _attach_session(request, response, session_id, created)

    @router.get("/auth/{provider}/callback")
    async def auth_callback(request: Request, provider: str) -> Response:
        """Handle the platform's redirect and send the browser to the frontend.

        The frontend receives ``success=true`` with the account id and name,
        or ``error=<code>&message=<text>``. Tokens never appear in the URL.
        """
        session_id, created = await _resolve_session(request)
        target = server_settings.frontend_callback_url(provider)
        query: dict[str, str]
        try:
            flow = connections.get_flow(provider)
            params = flow.provider.parse_callback(dict(request.query_params))
            result = await flow.callback(session_id, params, new_session=created)
        except AuthenticationError as exc:
            query = {"error": exc.code, "message": exc.message}
        except Exception:
            logger.exception("%s callback failed", provider)
            query = {"error": "internal_error", "message": "An internal error occurred"}
        else:
            credential = result.credential
            query = {"success": "true", "provider": provider}
            if credential is not None and credential.user_id:
                query["user_id"] = credential.user_id
            if credential is not None and credential.username:
                query["username"] = credential.username

        response = RedirectResponse(url=f"{target}?{urlencode(query)}", status_code=302)
        return _attach_session(request, response, session_id, created)

    @router.post("/auth/{provider}/exchange")
    async def auth_exchange(request: Request, provider: str) -> Response:
        """Complete a flow from callback parameters posted by the frontend."""
        if not _verify_csrf_origin(request, trusted_origins=trusted_origins):
            return _csrf_rejected()

        session_id, created = await _resolve_session(request)
        try:
            flow = connections.get_flow(provider)
            try:
                body: Any = await request.json()
            except ValueError as exc:
                msg = "Request body must be a JSON object"
                raise InvalidRequest(msg, provider=provider) from exc
            if not isinstance(body, dict):
                msg = "Request body must be a JSON object"
                raise InvalidRequest(msg, provider=provider)
            fields = {str(k): str(v) for k, v in body.items() if v is not None}
            result = await flow.callback(
                session_id, flow.provider.parse_callback(fields), new_session=created
            )
        except AuthenticationError as exc:
            response: Response = _error_response(exc)
        except Exception:
            logger.exception("%s exchange failed", provider)
            response = _internal_error()
        else:
            credential = result.credential
            content: dict[str, Any] = {"success": result.success, "provider": provider}
            if credential is not None:
                content.update(
                    accessToken=credential.access_token,
                    expiresIn=credential.expires_in,
                    userId=credential.user_id,
                    username=credential.username,
                )
            response = JSONResponse(content=content)
        return _attach_session(request, response, session_id, created)

    @router.post("/auth/{provider}/refresh")
    async def auth_refresh(request: Request, provider: str) -> Response:
        """Refresh the stored credential."""
        if not _verify_csrf_origin(request, trusted_origins=trusted_origins):
            return _csrf_rejected()

        session_id, created = await _resolve_session(request)
        try:
            credential = await connections.get_flow(provider).refresh(session_id)
        except AuthenticationError as exc:
            response: Response = _error_response(exc)
        except Exception:
            logger.exception("%s refresh failed", provider)
            response = _internal_error()
        else:
            response = JSONResponse(
                content={
                    "success": True,
                    "accessToken": credential.access_token,
                    "expiresIn": credential.expires_in,
                }
            )
        return _attach_session(request, response, session_id, created)

    # ── Connection status ───────────────────────────────────────────

    @router.get("/connections")
    async def all_connections(request: Request) -> Response:
        """Stored-credential status of every platform."""
        session_id, created = await _resolve_session(request)
        statuses = await connections.statuses(session_id)
        response = JSONResponse(content={name: s.to_dict() for name, s in statuses.items()})
        return _attach_session(request, response, session_id, created)

    @router.get("/{provider}/status")
    async def provider_status(request: Request, provider: str, live: bool = False) -> Response:
        """Whether the platform is connected; ``?live=true`` asks the platform."""
        session_id, created = await _resolve_session(request)
        try:
            status = await connections.status(session_id, provider, live=live)
        except AuthenticationError as exc:
            response: Response = _error_response(exc)
        except Exception:
            logger.exception("%s status check failed", provider)
            response = _internal_error()
        else:
            response = JSONResponse(content=status.to_dict())
        return _attach_session(request, response, session_id, created)

    @router.get("/{provider}/profile")
    async def provider_profile(request: Request, provider: str) -> Response:
        """The account behind the stored credential (strict)."""
        session_id, created = await _resolve_session(request)
        try:
            identity = await connections.whoami(session_id, provider)
        except AuthenticationError as exc:
            response: Response = _error_response(exc)
        except Exception:
            logger.exception("%s profile lookup failed", provider)
            response = _internal_error()
        else:
            response = JSONResponse(content={"connected": True, "user": identity.to_dict()})
        return _attach_session(request, response, session_id, created)

    @router.delete("/{provider}/disconnect")
    async def provider_disconnect(request: Request, provider: str) -> Response:
        """Forget the platform's credential and any flow in progress."""
        if not _verify_csrf_origin(request, trusted_origins=trusted_origins):
            return _csrf_rejected()

        session_id, created = await _resolve_session(request)
        try:
            await connections.get_flow(provider).disconnect(session_id)
        except AuthenticationError as exc:
            response: Response = _error_response(exc)
        except Exception:
            logger.exception("%s disconnect failed", provider)
            response = _internal_error()
        else:
            response = JSONResponse(content={"success": True})
        return _attach_session(request, response, session_id, created)

    return router
