"""TOML configuration loader."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]


@dataclass
class StorageConfig:
    cache_dir: str = "~/.config/smartreceipts"


@dataclass
class RemoteConfig:
    credentials_path: str = ""
    collection: str = "users"
    # Mirror file for the local-only store; empty keeps it in memory.
    local_path: str = "~/.config/smartreceipts/remote.json"

    @property
    def uses_cloud(self) -> bool:
        return bool(self.credentials_path)


@dataclass
class SyncConfig:
    debounce_seconds: float = 5.0


@dataclass
class GeminiVisionConfig:
    api_key: str = ""
    model: str = "gemini-2.0-flash"


@dataclass
class ClaudeVisionConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class VisionConfig:
    backend: str = "gemini"
    gemini: GeminiVisionConfig = field(default_factory=GeminiVisionConfig)
    claude: ClaudeVisionConfig = field(default_factory=ClaudeVisionConfig)


@dataclass
class CoachConfig:
    model: str = "gemini-2.0-flash"


@dataclass
class AdminConfig:
    emails: list[str] = field(default_factory=list)


@dataclass
class AppConfig:
    storage: StorageConfig = field(default_factory=StorageConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    vision: VisionConfig = field(default_factory=VisionConfig)
    coach: CoachConfig = field(default_factory=CoachConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    API keys and the Firebase credentials path can be supplied via
    environment variables when the file leaves them empty.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    sto = raw.get("storage", {})
    rem = raw.get("remote", {})
    syn = raw.get("sync", {})
    vis = raw.get("vision", {})
    cch = raw.get("coach", {})
    adm = raw.get("admin", {})

    gemini_cfg = vis.get("gemini", {})
    claude_cfg = vis.get("claude", {})

    # Resolve secrets: config file → environment variable
    gemini_api_key = gemini_cfg.get("api_key", "") or os.environ.get(
        "GEMINI_API_KEY", ""
    )
    claude_api_key = claude_cfg.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )
    credentials_path = rem.get("credentials_path", "") or os.environ.get(
        "FIREBASE_SERVICE_ACCOUNT_PATH", ""
    )

    return AppConfig(
        storage=StorageConfig(
            cache_dir=sto.get("cache_dir", "~/.config/smartreceipts"),
        ),
        remote=RemoteConfig(
            credentials_path=credentials_path,
            collection=rem.get("collection", "users"),
            local_path=rem.get(
                "local_path", "~/.config/smartreceipts/remote.json"
            ),
        ),
        sync=SyncConfig(
            debounce_seconds=float(syn.get("debounce_seconds", 5.0)),
        ),
        vision=VisionConfig(
            backend=vis.get("backend", "gemini"),
            gemini=GeminiVisionConfig(
                api_key=gemini_api_key,
                model=gemini_cfg.get("model", "gemini-2.0-flash"),
            ),
            claude=ClaudeVisionConfig(
                api_key=claude_api_key,
                model=claude_cfg.get("model", "claude-sonnet-4-5-20250929"),
            ),
        ),
        coach=CoachConfig(
            model=cch.get("model", "gemini-2.0-flash"),
        ),
        admin=AdminConfig(
            emails=list(adm.get("emails", [])),
        ),
    )
