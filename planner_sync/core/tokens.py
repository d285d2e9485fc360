"""Credential and folder-id persistence per provider."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from ..models.records import Credential
from .storage import LocalStorage

logger = logging.getLogger(__name__)


class TokenStore:
    """Persists and validates the bearer token of each provider.

    Also owns the cached application-folder id per provider and the record
    of an authentication redirect that is still awaiting its callback.
    At most one credential and one folder id exist per provider.
    """

    PENDING_AUTH_KEY = "pending_auth"

    def __init__(
        self,
        storage: LocalStorage,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize token store.

        Args:
            storage: Backing key/value storage
            clock: Returns the current UTC time (defaults to datetime.now)
        """
        self.storage = storage
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @staticmethod
    def _token_key(provider: str) -> str:
        return f"{provider}_access_token"

    @staticmethod
    def _folder_key(provider: str) -> str:
        return f"{provider}_folder_id"

    def now(self) -> datetime:
        """Get the current time from the configured clock."""
        return self._clock()

    def _read(self, key: str) -> Any:
        """Read a stored value; an unreadable file is discarded and treated as absent."""
        try:
            return self.storage.get_item(key)
        except ValueError as e:
            logger.warning("Discarding unreadable %s: %s", key, e)
            self.storage.remove_item(key)
            return None

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------

    def load(self, provider: str) -> Credential | None:
        """Read the stored credential for a provider.

        An expired credential is treated as absent and purged.

        Args:
            provider: Provider identifier

        Returns:
            Credential, or None when not authenticated
        """
        data = self._read(self._token_key(provider))
        if not isinstance(data, dict) or not data.get("token"):
            return None

        try:
            credential = Credential.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning("Discarding malformed %s credential: %s", provider, e)
            self.clear(provider)
            return None
        credential.provider = provider
        if credential.is_expired(self.now()):
            logger.warning("Stored %s token expired at %s, discarding it", provider, credential.expires_at)
            self.clear(provider)
            return None
        return credential

    def save(self, provider: str, token: str, expires_in: int | None = None) -> Credential:
        """Persist a credential, replacing any previous one.

        Args:
            provider: Provider identifier
            token: Opaque bearer token
            expires_in: Optional lifetime in seconds, stored as an absolute instant

        Returns:
            The stored credential
        """
        expires_at = None
        if expires_in is not None:
            expires_at = self.now() + timedelta(seconds=expires_in)

        credential = Credential(provider=provider, token=token, expires_at=expires_at)
        self.storage.set_item(self._token_key(provider), credential.to_dict())
        logger.info("Saved %s credential%s", provider, f" (expires {expires_at.isoformat()})" if expires_at else "")
        return credential

    def clear(self, provider: str) -> None:
        """Purge the credential and cached folder id of a provider."""
        self.storage.remove_item(self._token_key(provider))
        self.forget_folder_id(provider)
        logger.info("Cleared stored %s credential", provider)

    def has_credential(self, provider: str) -> bool:
        return self.load(provider) is not None

    # -------------------------------------------------------------------------
    # Folder cache
    # -------------------------------------------------------------------------

    def load_folder_id(self, provider: str) -> str | None:
        """Get the cached application folder id, if any."""
        folder_id = self._read(self._folder_key(provider))
        return folder_id if isinstance(folder_id, str) and folder_id else None

    def save_folder_id(self, provider: str, folder_id: str) -> None:
        self.storage.set_item(self._folder_key(provider), folder_id)

    def forget_folder_id(self, provider: str) -> None:
        self.storage.remove_item(self._folder_key(provider))

    # -------------------------------------------------------------------------
    # Pending authentication
    # -------------------------------------------------------------------------

    def save_pending_auth(self, provider: str, state: str) -> None:
        """Remember which provider an outstanding redirect belongs to.

        Args:
            provider: Provider the user was sent to
            state: Anti-forgery value expected back in the callback
        """
        self.storage.set_item(
            self.PENDING_AUTH_KEY,
            {"provider": provider, "state": state, "started_at": self.now().isoformat()},
        )

    def pop_pending_auth(self) -> dict[str, Any] | None:
        """Return and remove the outstanding redirect record."""
        pending = self._read(self.PENDING_AUTH_KEY)
        self.storage.remove_item(self.PENDING_AUTH_KEY)
        return pending if isinstance(pending, dict) else None
