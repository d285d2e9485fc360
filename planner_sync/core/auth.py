"""OAuth 2.0 implicit-grant authentication for the storage providers."""

import logging
import secrets
import string
import webbrowser
from dataclasses import dataclass
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

from ..models.config import Provider, ProviderConfig, SyncConfig
from ..models.records import Credential
from .errors import InvalidProviderError
from .tokens import TokenStore

logger = logging.getLogger(__name__)


class AuthState:
    """States of the redirect protocol."""

    IDLE = "idle"
    AWAITING_REDIRECT = "awaiting_redirect"


class AuthOutcome:
    """Result kinds of complete_authentication."""

    TOKEN_OBTAINED = "token_obtained"
    NO_CALLBACK = "no_callback"
    FAILED = "failed"


@dataclass
class AuthResult:
    """Outcome of inspecting a page load for an OAuth callback."""

    outcome: str
    provider: str | None = None
    credential: Credential | None = None
    error: str | None = None
    error_description: str | None = None
    clean_url: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome == AuthOutcome.TOKEN_OBTAINED


class BrowserNavigator:
    """Stand-in for the browser location: opens redirects in the system browser.

    ``current_url`` is the URL the application was (re)loaded with; after a
    callback it is replaced with a copy that no longer carries the token.
    """

    def __init__(self, current_url: str = "") -> None:
        self.current_url = current_url

    def redirect(self, url: str) -> None:
        """Navigate away to the authorization endpoint."""
        webbrowser.open(url)

    def replace_url(self, url: str) -> None:
        """Replace the visible URL without navigating."""
        self.current_url = url


def strip_fragment(url: str) -> str:
    """Return the URL without its fragment."""
    return urlunsplit(urlsplit(url)._replace(fragment=""))


class AuthFlow:
    """Two-phase implicit-grant flow.

    begin_authentication ends the current session by redirecting away;
    complete_authentication runs at the start of every later session and
    picks up the token from the callback fragment, if there is one.
    """

    def __init__(
        self,
        config: SyncConfig,
        token_store: TokenStore,
        navigator: BrowserNavigator | None = None,
    ) -> None:
        """Initialize authentication flow.

        Args:
            config: Sync configuration holding per-provider OAuth clients
            token_store: Receives the token on callback
            navigator: Browser location (opens the system browser by default)
        """
        self.config = config
        self.token_store = token_store
        self.navigator = navigator or BrowserNavigator()
        self.state = AuthState.IDLE

    def _generate_state(self, length: int = 25) -> str:
        """Generate a random anti-forgery value for the redirect."""
        chars = string.ascii_lowercase + string.digits
        return "".join(secrets.choice(chars) for _ in range(length))

    def _provider_config(self, provider: str) -> ProviderConfig:
        """Look up a usable provider configuration.

        Raises:
            InvalidProviderError: Unknown provider or missing client id
        """
        provider_config = self.config.get_provider(provider) if provider in Provider.ALL else None
        if provider_config is None:
            raise InvalidProviderError(provider)
        if not provider_config.is_configured():
            raise InvalidProviderError(provider, "client id or redirect URI not configured")
        return provider_config

    def build_authorization_url(self, provider: str, state: str | None = None) -> str:
        """Build the implicit-grant authorization URL.

        Args:
            provider: Provider identifier
            state: Optional anti-forgery value echoed back by the provider

        Returns:
            Full authorization URL
        """
        provider_config = self._provider_config(provider)
        params = {
            "client_id": provider_config.client_id,
            "response_type": "token",
            "redirect_uri": provider_config.redirect_uri,
            "scope": provider_config.scope,
        }
        if state:
            params["state"] = state
        return f"{provider_config.auth_url}?{urlencode(params)}"

    def begin_authentication(self, provider: str) -> str:
        """Send the user to the provider's authorization page.

        Records the pending provider so the callback can be matched in a
        later session, then redirects away.

        Returns:
            The authorization URL that was opened
        """
        state = self._generate_state()
        url = self.build_authorization_url(provider, state=state)
        self.token_store.save_pending_auth(provider, state)
        self.state = AuthState.AWAITING_REDIRECT

        logger.info("Redirecting to %s authorization page", provider)
        self.navigator.redirect(url)
        return url

    def complete_authentication(self, provider: str | None = None) -> AuthResult:
        """Inspect the current URL for an OAuth callback.

        A URL without a callback fragment is the normal case and yields
        NO_CALLBACK. A provider-reported ``error`` yields FAILED.

        Args:
            provider: Provider the callback belongs to (defaults to the pending one)

        Returns:
            AuthResult

        Raises:
            InvalidProviderError: A token arrived but no provider can be attributed
        """
        url = self.navigator.current_url or ""
        params = {k: v[0] for k, v in parse_qs(urlsplit(url).fragment).items()}

        if "access_token" not in params and "error" not in params:
            return AuthResult(outcome=AuthOutcome.NO_CALLBACK)

        # The fragment is consumed either way; keep the token out of history
        clean_url = strip_fragment(url)
        self.navigator.replace_url(clean_url)
        self.state = AuthState.IDLE

        pending = self.token_store.pop_pending_auth() or {}
        provider = provider or pending.get("provider")

        if "error" in params:
            logger.warning("Authorization with %s failed: %s", provider or "provider", params["error"])
            return AuthResult(
                outcome=AuthOutcome.FAILED,
                provider=provider,
                error=params["error"],
                error_description=params.get("error_description"),
                clean_url=clean_url,
            )

        expected_state = pending.get("state")
        returned_state = params.get("state")
        # A pending redirect sent a state, so its callback must echo it
        if expected_state and returned_state != expected_state:
            logger.warning("Discarding callback with mismatched state")
            return AuthResult(
                outcome=AuthOutcome.FAILED,
                provider=provider,
                error="state_mismatch",
                error_description="Callback state does not match the pending request",
                clean_url=clean_url,
            )

        if provider is None:
            raise InvalidProviderError(None, "callback received with no pending authentication")
        if provider not in Provider.ALL:
            raise InvalidProviderError(provider)

        credential = self.token_store.save(
            provider,
            params["access_token"],
            expires_in=self._parse_expires_in(params.get("expires_in")),
        )
        return AuthResult(
            outcome=AuthOutcome.TOKEN_OBTAINED,
            provider=provider,
            credential=credential,
            clean_url=clean_url,
        )

    @staticmethod
    def _parse_expires_in(value: str | None) -> int | None:
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            logger.debug("Ignoring unparseable expires_in %r", value)
            return None
