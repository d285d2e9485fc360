"""Records exchanged between the token store, adapters and sync engine."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class Credential:
    """Bearer token for one provider, with an optional absolute expiry."""

    provider: str
    token: str
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """Check whether the expiry instant has passed."""
        return self.expires_at is not None and self.expires_at <= now

    def to_dict(self) -> dict[str, str | None]:
        """Convert to dictionary."""
        return {
            "provider": self.provider,
            "token": self.token,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Credential":
        """Create from dictionary."""
        expires_at = data.get("expires_at")
        return cls(
            provider=data.get("provider", ""),
            token=data.get("token", ""),
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
        )


@dataclass(frozen=True)
class RemoteFolder:
    """The application folder on a provider."""

    id: str
    name: str


@dataclass(frozen=True)
class RemoteFile:
    """A logical file located inside the application folder."""

    id: str
    name: str
    folder_id: str


@dataclass
class SyncSnapshot:
    """Local and remote state gathered at the start of one sync cycle."""

    local_document: dict[str, Any]
    local_settings: dict[str, Any]
    remote_document: dict[str, Any] | None = None
    remote_settings: dict[str, Any] | None = None


class ErrorKind:
    """Failure categories reported by a sync result."""

    NONE = "none"
    NOT_AUTHENTICATED = "not_authenticated"
    AUTHENTICATION_EXPIRED = "authentication_expired"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    INVALID_PROVIDER = "invalid_provider"
    SYNC_ABORTED = "sync_aborted"


@dataclass
class SyncResult:
    """Result of a sync cycle."""

    success: bool
    provider: str | None = None
    document: dict[str, Any] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)
    error: str = ""
    error_kind: str = ErrorKind.NONE
    remote_document_found: bool = False
    remote_settings_found: bool = False

    @property
    def needs_reauth(self) -> bool:
        """True when the caller should prompt the user to sign in again."""
        return self.error_kind in (ErrorKind.AUTHENTICATION_EXPIRED, ErrorKind.NOT_AUTHENTICATED)

    @property
    def first_sync(self) -> bool:
        """True when the cycle succeeded and nothing existed remotely yet."""
        return self.success and not (self.remote_document_found or self.remote_settings_found)

    def summary(self) -> str:
        if not self.success:
            return f"Sync failed ({self.error_kind}): {self.error}"
        if self.first_sync:
            return f"Sync ok: uploaded local data to {self.provider} (no remote copy yet)"
        return f"Sync ok: merged {len(self.document)} document keys with {self.provider}"
