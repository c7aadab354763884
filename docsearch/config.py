from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

load_dotenv(override=True)

CONFIG_FILE_PATH = Path(__file__).parent / "config.yaml"


def load_config(config_path: Path | str) -> Dict[str, Any]:
    """Load configuration from a given YAML file path.

    Args:
        config_path: Explicit path to the configuration file.

    Returns:
        Parsed configuration dictionary.

    Raises:
        FileNotFoundError: If the configuration file is not found.
        ValueError: If there is an error parsing the YAML file.
    """
    path = Path(config_path)

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise FileNotFoundError(f"Configuration file not found: {path}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML file '{path}': {e}") from e

    return data or {}


# Settings field -> environment variable
ENV_VARS: Dict[str, str] = {
    "api_key": "DOCSEARCH_API_KEY",
    "milvus_uri": "MILVUS_URI",
    "milvus_token": "MILVUS_TOKEN",
    "collection_name": "DOCSEARCH_COLLECTION",
    "embedding_url": "EMBEDDING_URL",
    "embedding_api_key": "EMBEDDING_API_KEY",
    "embedding_dim": "EMBEDDING_DIM",
    "embedding_timeout": "EMBEDDING_TIMEOUT",
    "minio_endpoint": "MINIO_ENDPOINT",
    "minio_access_key": "MINIO_ACCESS_KEY",
    "minio_secret_key": "MINIO_SECRET_KEY",
    "minio_bucket": "MINIO_BUCKET",
    "minio_secure": "MINIO_SECURE",
    "staged_url_ttl": "STAGED_URL_TTL",
    "max_image_bytes": "MAX_IMAGE_BYTES",
    "allowed_image_types": "ALLOWED_IMAGE_TYPES",
    "max_image_dimension": "MAX_IMAGE_DIMENSION",
    "download_timeout": "DOWNLOAD_TIMEOUT",
    "ingest_concurrency": "INGEST_CONCURRENCY",
    "cors_allow_origins": "CORS_ALLOW_ORIGINS",
    "api_base_path": "API_BASE_PATH",
    "log_level": "LOG_LEVEL",
}


@dataclass(frozen=True)
class Settings:
    api_key: Optional[str] = None

    milvus_uri: str = "http://localhost:19530"
    milvus_token: str = "root:Milvus"
    collection_name: str = "documents"

    embedding_url: str = "http://localhost:8080/embed"
    embedding_api_key: Optional[str] = None
    embedding_dim: int = 1024
    embedding_timeout: float = 30.0

    minio_endpoint: str = "localhost:9000"
    minio_access_key: Optional[str] = None
    minio_secret_key: Optional[str] = None
    minio_bucket: str = "staged-images"
    minio_secure: bool = False
    staged_url_ttl: int = 600

    max_image_bytes: int = 5 * 1024 * 1024
    allowed_image_types: List[str] = field(
        default_factory=lambda: ["image/jpeg", "image/png"]
    )
    max_image_dimension: int = 2048
    download_timeout: float = 15.0

    ingest_concurrency: int = 8

    cors_allow_origins: List[str] = field(default_factory=lambda: ["*"])
    api_base_path: str = ""
    log_level: str = "INFO"

    @classmethod
    def load(
        cls,
        config_path: Path | str | None = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> "Settings":
        """Build settings from the YAML defaults overlaid with environment values."""
        try:
            cfg = load_config(config_path or CONFIG_FILE_PATH)
        except FileNotFoundError:
            if config_path is not None:
                raise
            cfg = {}

        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(ENV_VARS[f.name])
            if raw is None or raw == "":
                raw = cfg.get(f.name)
            if raw is None:
                continue
            values[f.name] = _coerce(f.name, raw, f.default)
        return cls(**values)


def _coerce(name: str, raw: Any, default: Any) -> Any:
    if name in ("allowed_image_types", "cors_allow_origins"):
        if isinstance(raw, str):
            return [item.strip() for item in raw.split(",") if item.strip()]
        return [str(item) for item in raw]
    if isinstance(default, bool):
        if isinstance(raw, str):
            return raw.strip().lower() in ("1", "true", "yes", "on")
        return bool(raw)
    if isinstance(default, int):
        try:
            return int(raw)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid integer for '{name}': {raw!r}") from e
    if isinstance(default, float):
        try:
            return float(raw)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid number for '{name}': {raw!r}") from e
    return str(raw)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.load()
