"""Interactive OAuth2 authorization-code flow with PKCE and a local redirect listener"""

import asyncio
import contextlib
import html
import logging
import socket
import webbrowser
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import uvicorn
from fastapi import BackgroundTasks, FastAPI
from fastapi.responses import HTMLResponse

from stretchtime.core.calendar.errors import (
    AuthenticationError,
    AuthenticationTimeoutError,
    AuthorizationDeniedError,
    ConfigurationError,
)
from stretchtime.core.calendar.pkce import CHALLENGE_METHOD, generate_pkce
from stretchtime.core.calendar.providers import ProviderDescriptor
from stretchtime.core.calendar.tokens import TokenManager
from stretchtime.core.settings_store import SettingsStore

logger = logging.getLogger(__name__)

LISTEN_HOST = "127.0.0.1"


def _page(title: str, message: str) -> str:
    return f"<html><body><h2>{title}</h2><p>{html.escape(message)}</p></body></html>"


SUCCESS_PAGE = _page("Authentication successful!", "You can close this window.")


def _settle(outcome: asyncio.Future, error: Optional[BaseException] = None):
    """Resolve the flow unless another outcome got there first."""
    if outcome.done():
        return
    if error is None:
        outcome.set_result(None)
    else:
        outcome.set_exception(error)


def _bind_socket(port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((LISTEN_HOST, port))
    except OSError:
        sock.close()
        raise
    return sock


class _CallbackServer(uvicorn.Server):
    """uvicorn server that leaves process signal handling to the host app"""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self):
        pass


class _Listener:
    def __init__(self, server: uvicorn.Server, task: asyncio.Task):
        self.server = server
        self.task = task

    async def close(self):
        self.server.should_exit = True
        try:
            await self.task
        except Exception as e:
            logger.warning(f"OAuth redirect listener exited with error: {e}")


class PKCEAuthenticator:
    """
    Runs one browser round-trip for a provider and stores the resulting tokens.

    ``authenticate()`` may be called again after a failed attempt; a listener
    left over from an earlier attempt is closed first. Concurrent calls for
    the same provider are not supported and must be prevented by the caller.

    Tokens are only stored if the flow is still unsettled when the code
    exchange returns. An exchange that finishes after the timeout has fired
    is discarded, so a timed-out flow never leaves the provider connected.
    """

    def __init__(
        self,
        provider: ProviderDescriptor,
        store: SettingsStore,
        tokens: TokenManager,
        open_browser: Callable[[str], Any] = webbrowser.open,
        timeout_seconds: float = 120.0,
    ):
        self.provider = provider
        self._store = store
        self._tokens = tokens
        self._open_browser = open_browser
        self.timeout_seconds = timeout_seconds
        self._listener: Optional[_Listener] = None

    @property
    def is_listening(self) -> bool:
        return self._listener is not None

    def build_authorization_url(self, code_challenge: str) -> str:
        """Build the provider authorization URL for a PKCE challenge"""
        provider_settings = self._store.get().provider(self.provider.name)
        params = {
            "client_id": provider_settings.client_id,
            "redirect_uri": self.provider.redirect_uri,
            "response_type": "code",
            "scope": self.provider.scope,
            **self.provider.extra_auth_params,
            "code_challenge": code_challenge,
            "code_challenge_method": CHALLENGE_METHOD,
        }
        return f"{self.provider.authorize_endpoint(provider_settings)}?{urlencode(params)}"

    async def authenticate(self):
        """Run the authorization flow.

        Raises:
            ConfigurationError: no client ID is configured.
            AuthorizationDeniedError: the provider redirected with an error.
            AuthenticationTimeoutError: no redirect arrived in time.
            AuthenticationError: the listener could not bind, or the code
                exchange failed.
        """
        display_name = self.provider.display_name
        if not self._store.get().provider(self.provider.name).client_id:
            raise ConfigurationError(f"{display_name} Client ID not configured. Set it in Settings.")

        pkce = generate_pkce()
        auth_url = self.build_authorization_url(pkce.challenge)

        # Kill any leftover listener from a previous failed attempt
        await self._close_listener()

        outcome = asyncio.get_running_loop().create_future()
        try:
            sock = _bind_socket(self.provider.redirect_port)
        except OSError as e:
            raise AuthenticationError(
                f"Could not listen for the {display_name} redirect on port "
                f"{self.provider.redirect_port}: {e}"
            ) from e

        config = uvicorn.Config(
            self._callback_app(pkce.verifier, outcome),
            log_config=None,
            log_level="warning",
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=5,
        )
        server = _CallbackServer(config)
        self._listener = _Listener(server, asyncio.create_task(server.serve(sockets=[sock])))

        try:
            await self._wait_until_listening()
            logger.info(f"Waiting for {display_name} authorization on {self.provider.redirect_uri}")
            self._open_browser(auth_url)
            await asyncio.wait_for(outcome, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            raise AuthenticationTimeoutError("Authentication timed out") from None
        finally:
            await self._close_listener()

    async def _wait_until_listening(self):
        listener = self._listener
        while not listener.server.started:
            if listener.task.done():
                raise AuthenticationError("OAuth redirect listener failed to start")
            await asyncio.sleep(0.01)

    async def _close_listener(self):
        listener, self._listener = self._listener, None
        if listener is not None:
            await listener.close()

    def _callback_app(self, code_verifier: str, outcome: asyncio.Future) -> FastAPI:
        app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
        handled = False

        @app.get(self.provider.redirect_path, response_class=HTMLResponse)
        async def oauth_callback(
            background_tasks: BackgroundTasks,
            code: Optional[str] = None,
            error: Optional[str] = None,
            error_description: Optional[str] = None,
        ):
            nonlocal handled
            if handled:
                return HTMLResponse(
                    _page("Authentication already handled", "You can close this window."),
                    status_code=409,
                )

            if code:
                handled = True
                background_tasks.add_task(self._complete_exchange, code, code_verifier, outcome)
                return HTMLResponse(SUCCESS_PAGE)

            if error:
                handled = True
                logger.warning(f"{self.provider.display_name} authorization denied: {error}")
                _settle(outcome, AuthorizationDeniedError(error, error_description))
                return HTMLResponse(
                    _page("Authentication failed", error_description or error),
                    status_code=400,
                )

            return HTMLResponse(
                _page("Authentication failed", "The redirect carried no authorization code."),
                status_code=400,
            )

        return app

    async def _complete_exchange(self, code: str, code_verifier: str, outcome: asyncio.Future):
        display_name = self.provider.display_name
        try:
            payload = await self._tokens.request_code_tokens(code, code_verifier)
        except Exception as e:
            logger.error(f"{display_name} token exchange failed: {e}")
            _settle(outcome, e)
            return

        if outcome.done():
            logger.warning(f"{display_name} token exchange finished after the flow ended; discarding tokens")
            return

        self._tokens.store_token_response(payload)
        logger.info(f"{display_name} calendar connected")
        _settle(outcome)
