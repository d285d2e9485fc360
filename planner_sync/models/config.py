"""Configuration models for the planner sync system."""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv


class Provider:
    """Identifiers of the supported storage providers."""

    BOX = "box"
    ONEDRIVE = "onedrive"
    GDRIVE = "gdrive"

    ALL = (BOX, ONEDRIVE, GDRIVE)


DEFAULT_REDIRECT_URI = "http://localhost:8080/"

# Authorization endpoint and scope per provider, fixed at configuration time
DEFAULT_PROVIDERS: dict[str, dict[str, str]] = {
    Provider.BOX: {
        "auth_url": "https://account.box.com/api/oauth2/authorize",
        "scope": "root_readwrite",
    },
    Provider.ONEDRIVE: {
        "auth_url": "https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
        "scope": "files.readwrite offline_access",
    },
    Provider.GDRIVE: {
        "auth_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "scope": "https://www.googleapis.com/auth/drive.file",
    },
}

CLIENT_ID_ENV = {
    Provider.BOX: "BOX_CLIENT_ID",
    Provider.ONEDRIVE: "ONEDRIVE_CLIENT_ID",
    Provider.GDRIVE: "GDRIVE_CLIENT_ID",
}


def sanitize_key(name: str) -> str:
    """Sanitize a storage key for use as a file name.

    Replaces invalid characters with underscores and handles edge cases.
    """
    sanitized = re.sub(r'[<>:"/\\|?*\s]', '_', name)
    sanitized = sanitized.strip('_. ')
    return sanitized or "unnamed"


@dataclass
class ProviderConfig:
    """OAuth client configuration for one storage provider."""

    name: str
    client_id: str
    auth_url: str
    scope: str
    redirect_uri: str = DEFAULT_REDIRECT_URI

    def is_configured(self) -> bool:
        """Check that every value needed to start an OAuth redirect is set."""
        return bool(self.client_id and self.auth_url and self.redirect_uri)

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for YAML serialization."""
        return {
            "client_id": self.client_id,
            "auth_url": self.auth_url,
            "scope": self.scope,
            "redirect_uri": self.redirect_uri,
        }

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "ProviderConfig":
        """Create from dictionary, falling back to the built-in endpoints."""
        defaults = DEFAULT_PROVIDERS.get(name, {})
        return cls(
            name=name,
            client_id=data.get("client_id") or "",
            auth_url=data.get("auth_url") or defaults.get("auth_url", ""),
            scope=data.get("scope") or defaults.get("scope", ""),
            redirect_uri=data.get("redirect_uri") or DEFAULT_REDIRECT_URI,
        )


@dataclass
class SyncSettings:
    """Sync operation settings."""

    # Application folder holding both logical files on the remote side
    folder_name: str = "Planner"
    document_file_name: str = "planner-data.json"
    settings_file_name: str = "planner-settings.json"
    # Local storage keys for the two documents
    document_key: str = "advanced-planner-data-v4"
    settings_key: str = "planner-settings"
    state_dir: str = "./.planner-sync"
    request_timeout: float = 30.0
    verbose: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        return {
            "folder_name": self.folder_name,
            "document_file_name": self.document_file_name,
            "settings_file_name": self.settings_file_name,
            "document_key": self.document_key,
            "settings_key": self.settings_key,
            "state_dir": self.state_dir,
            "request_timeout": self.request_timeout,
            "verbose": self.verbose,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncSettings":
        """Create from dictionary."""
        defaults = cls()
        return cls(
            folder_name=data.get("folder_name", defaults.folder_name),
            document_file_name=data.get("document_file_name", defaults.document_file_name),
            settings_file_name=data.get("settings_file_name", defaults.settings_file_name),
            document_key=data.get("document_key", defaults.document_key),
            settings_key=data.get("settings_key", defaults.settings_key),
            state_dir=data.get("state_dir", defaults.state_dir),
            request_timeout=float(data.get("request_timeout", defaults.request_timeout)),
            verbose=data.get("verbose", defaults.verbose),
        )


@dataclass
class SyncConfig:
    """Main configuration for the sync system."""

    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    settings: SyncSettings = field(default_factory=SyncSettings)

    def get_provider(self, name: str) -> ProviderConfig | None:
        """Look up a provider configuration by identifier."""
        return self.providers.get(name)

    @classmethod
    def default(cls) -> "SyncConfig":
        """Build a configuration with every supported provider and no client ids."""
        providers = {name: ProviderConfig.from_dict(name, {}) for name in Provider.ALL}
        config = cls(providers=providers)
        config.apply_env()
        return config

    @classmethod
    def load(cls, config_path: Path) -> "SyncConfig":
        """Load configuration from YAML file.

        Providers missing from the file still get their built-in endpoints,
        and environment variables (or a .env file) override client ids.
        """
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        providers_data = data.get("providers") or {}
        providers = {}
        for name in Provider.ALL:
            providers[name] = ProviderConfig.from_dict(name, providers_data.get(name) or {})

        config = cls(
            providers=providers,
            settings=SyncSettings.from_dict(data.get("settings") or {}),
        )
        config.apply_env()
        return config

    def apply_env(self) -> None:
        """Apply environment overrides for client ids, redirect URI and state dir."""
        load_dotenv()

        for name, env_var in CLIENT_ID_ENV.items():
            client_id = os.getenv(env_var)
            if client_id and name in self.providers:
                self.providers[name].client_id = client_id

        redirect_uri = os.getenv("PLANNER_SYNC_REDIRECT_URI")
        if redirect_uri:
            for provider in self.providers.values():
                provider.redirect_uri = redirect_uri

        state_dir = os.getenv("PLANNER_SYNC_STATE_DIR")
        if state_dir:
            self.settings.state_dir = state_dir

    def save(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        data: dict[str, Any] = {
            "providers": {name: p.to_dict() for name, p in self.providers.items()},
            "settings": self.settings.to_dict(),
        }

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
