"""Configuration management for cvparse.

Supports:
- Local config file (~/.cvparse/config.json)
- Environment variables (CVPARSE_*)
- CLI overrides

Secrets (API keys, signing secrets) can be provided via:
1. Environment variables (recommended for CI/scripts)
2. Config file with underscore prefix (e.g., "_api_key" - not committed)
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".cvparse" / "config.json"


@dataclass
class StorageConfig:
    """Blob storage configuration."""

    backend: str = "local"  # local, supabase
    canonical_bucket: str = "cvs"
    upload_bucket: str = "user-files"
    signed_url_ttl: int = 3600

    # Local backend
    local_root: Path | None = None
    signing_secret: str | None = None

    # Supabase backend
    supabase_url: str | None = None
    supabase_key: str | None = None


@dataclass
class ExtractionConfig:
    """Structured extraction endpoint and retry policy."""

    endpoint_url: str = "http://127.0.0.1:3001/api/parse-cv"
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 5.0
    timeout: float = 60.0


@dataclass
class AIConfig:
    """LLM used by the extraction endpoint."""

    provider: str = "openai"  # openai, anthropic, ollama
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    api_key: str | None = None
    temperature: float = 0.1
    max_tokens: int = 4096


@dataclass
class TextConfig:
    """Text extraction tuning."""

    line_threshold: float = 5.0
    max_upload_mb: int = 5


@dataclass
class DatabaseConfig:
    url: str | None = None  # defaults to sqlite in data_dir


@dataclass
class ServerConfig:
    """Server configuration."""

    host: str = "127.0.0.1"
    port: int = 3001
    public_url: str | None = None  # base URL used in storage links

    @property
    def base_url(self) -> str:
        return (self.public_url or f"http://{self.host}:{self.port}").rstrip("/")


@dataclass
class CVParseConfig:
    """Main configuration container."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    text: TextConfig = field(default_factory=TextConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    # Data directory
    data_dir: Path = field(default_factory=lambda: Path.home() / ".cvparse")

    @property
    def database_url(self) -> str:
        return self.database.url or f"sqlite:///{self.data_dir / 'data.db'}"

    @property
    def storage_root(self) -> Path:
        return self.storage.local_root or self.data_dir / "storage"


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = "CVPARSE_",
) -> CVParseConfig:
    """Load configuration from file and environment.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file
    3. Defaults
    """
    config = CVParseConfig()

    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
            config = _merge_config(config, data)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to load config from %s: %s", path, e)

    config = _apply_env_overrides(config, env_prefix)

    config.data_dir.mkdir(parents=True, exist_ok=True)

    return config


def _number(group: dict[str, Any], section: str, key: str, cast: type, default: Any) -> Any:
    raw = group.get(key, default)
    try:
        return cast(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(
            f"Invalid value for {section}.{key}: {raw!r}", {"setting": f"{section}.{key}"}
        ) from e


def _merge_config(config: CVParseConfig, data: dict[str, Any]) -> CVParseConfig:
    """Merge loaded data into config object."""

    if "data_dir" in data:
        config.data_dir = Path(data["data_dir"]).expanduser()

    if "storage" in data:
        st = data["storage"]
        config.storage.backend = st.get("backend", config.storage.backend)
        config.storage.canonical_bucket = st.get("canonical_bucket", config.storage.canonical_bucket)
        config.storage.upload_bucket = st.get("upload_bucket", config.storage.upload_bucket)
        config.storage.signed_url_ttl = _number(st, "storage", "signed_url_ttl", int, config.storage.signed_url_ttl)
        if st.get("local_root"):
            config.storage.local_root = Path(st["local_root"]).expanduser()
        config.storage.signing_secret = st.get("signing_secret") or st.get("_signing_secret")
        config.storage.supabase_url = st.get("supabase_url")
        config.storage.supabase_key = st.get("supabase_key") or st.get("_supabase_key")

    if "extraction" in data:
        ex = data["extraction"]
        config.extraction.endpoint_url = ex.get("endpoint_url", config.extraction.endpoint_url)
        config.extraction.max_attempts = _number(ex, "extraction", "max_attempts", int, config.extraction.max_attempts)
        config.extraction.base_delay = _number(ex, "extraction", "base_delay", float, config.extraction.base_delay)
        config.extraction.max_delay = _number(ex, "extraction", "max_delay", float, config.extraction.max_delay)
        config.extraction.timeout = _number(ex, "extraction", "timeout", float, config.extraction.timeout)

    if "ai" in data:
        ai = data["ai"]
        config.ai.provider = ai.get("provider", config.ai.provider)
        config.ai.model = ai.get("model", config.ai.model)
        config.ai.base_url = ai.get("base_url")
        config.ai.api_key = ai.get("api_key") or ai.get("_api_key")
        config.ai.temperature = _number(ai, "ai", "temperature", float, config.ai.temperature)
        config.ai.max_tokens = _number(ai, "ai", "max_tokens", int, config.ai.max_tokens)

    if "text" in data:
        tx = data["text"]
        config.text.line_threshold = _number(tx, "text", "line_threshold", float, config.text.line_threshold)
        config.text.max_upload_mb = _number(tx, "text", "max_upload_mb", int, config.text.max_upload_mb)

    if "database" in data:
        config.database.url = data["database"].get("url")

    if "server" in data:
        srv = data["server"]
        config.server.host = srv.get("host", config.server.host)
        config.server.port = _number(srv, "server", "port", int, config.server.port)
        config.server.public_url = srv.get("public_url")

    return config


def _env_number(name: str, cast: type) -> Any:
    raw = os.environ.get(name)
    if raw is None:
        return None
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid value for {name}: {raw!r}", {"variable": name}) from e


def _apply_env_overrides(config: CVParseConfig, prefix: str) -> CVParseConfig:
    """Apply environment variable overrides."""

    if v := os.environ.get(f"{prefix}DATA_DIR"):
        config.data_dir = Path(v).expanduser()
    if v := os.environ.get(f"{prefix}DATABASE_URL"):
        config.database.url = v

    # Storage
    if v := os.environ.get(f"{prefix}STORAGE_BACKEND"):
        config.storage.backend = v
    if v := os.environ.get(f"{prefix}SIGNING_SECRET"):
        config.storage.signing_secret = v
    if v := os.environ.get(f"{prefix}SUPABASE_URL"):
        config.storage.backend = "supabase"
        config.storage.supabase_url = v
    if v := os.environ.get(f"{prefix}SUPABASE_KEY"):
        config.storage.supabase_key = v

    # Extraction
    if v := os.environ.get(f"{prefix}EXTRACTION_URL"):
        config.extraction.endpoint_url = v
    if (n := _env_number(f"{prefix}EXTRACTION_MAX_ATTEMPTS", int)) is not None:
        config.extraction.max_attempts = n
    if (n := _env_number(f"{prefix}EXTRACTION_TIMEOUT", float)) is not None:
        config.extraction.timeout = n

    # AI
    if v := os.environ.get(f"{prefix}AI_PROVIDER"):
        config.ai.provider = v
    if v := os.environ.get(f"{prefix}AI_MODEL"):
        config.ai.model = v
    if v := os.environ.get(f"{prefix}AI_API_KEY"):
        config.ai.api_key = v
    if v := os.environ.get(f"{prefix}AI_BASE_URL"):
        config.ai.base_url = v

    # Specific providers
    if v := os.environ.get(f"{prefix}ANTHROPIC_API_KEY"):
        config.ai.provider = "anthropic"
        config.ai.api_key = v
    if v := os.environ.get(f"{prefix}OPENAI_API_KEY"):
        config.ai.provider = "openai"
        config.ai.api_key = v
    if v := os.environ.get(f"{prefix}OLLAMA_BASE_URL"):
        config.ai.provider = "ollama"
        config.ai.base_url = v

    # Server
    if v := os.environ.get(f"{prefix}PUBLIC_URL"):
        config.server.public_url = v
    if (n := _env_number(f"{prefix}PORT", int)) is not None:
        config.server.port = n

    return config


def save_config(config: CVParseConfig, config_path: Path | str | None = None) -> None:
    """Save configuration to file (excludes secrets)."""
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "data_dir": str(config.data_dir),
        "storage": {
            "backend": config.storage.backend,
            "canonical_bucket": config.storage.canonical_bucket,
            "upload_bucket": config.storage.upload_bucket,
            "signed_url_ttl": config.storage.signed_url_ttl,
            "supabase_url": config.storage.supabase_url,
        },
        "extraction": {
            "endpoint_url": config.extraction.endpoint_url,
            "max_attempts": config.extraction.max_attempts,
            "base_delay": config.extraction.base_delay,
            "max_delay": config.extraction.max_delay,
            "timeout": config.extraction.timeout,
        },
        "ai": {
            "provider": config.ai.provider,
            "model": config.ai.model,
            "base_url": config.ai.base_url,
        },
        "text": {
            "line_threshold": config.text.line_threshold,
            "max_upload_mb": config.text.max_upload_mb,
        },
        "server": {
            "host": config.server.host,
            "port": config.server.port,
            "public_url": config.server.public_url,
        },
    }

    with open(path, "w") as f:
        json.dump(data, f, indent=2)
