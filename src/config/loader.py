"""YAML configuration loader with environment variable overrides.

Configuration is layered, later layers winning:

    1. config/config.yaml  -- defaults checked into the repo
    2. .env file           -- local overrides (not committed)
    3. environment vars    -- set at deploy time

:func:`load_config` reads the YAML file and deep-merges the resolved
:class:`Settings` values on top, so a key set in both places takes the
environment's value.  :func:`settings_from_config` goes the other way for
callers that want a ``Settings`` object seeded from the YAML defaults.
"""

import os
from pathlib import Path
from typing import Any

import yaml

from src.config.settings import Settings

DEFAULT_CONFIG_PATH = "config/config.yaml"


def read_yaml(path: str = DEFAULT_CONFIG_PATH) -> dict[str, Any]:
    """Return the parsed YAML file at *path*, or ``{}`` when it does not exist."""
    config_path = Path(path)
    if not config_path.exists():
        return {}
    with open(config_path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_config(path: str = DEFAULT_CONFIG_PATH, settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Already-resolved settings; built from the environment when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    yaml_config = read_yaml(path)
    settings = settings or Settings()

    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "models": {
            "ollama_base_url": settings.ollama_base_url,
            "embedding_model": settings.embedding_model,
            "chat_model": settings.chat_model,
            "openai_enabled": settings.uses_openai(),
        },
        "vector_store": {
            "host": settings.chromadb_host,
            "port": settings.chromadb_port,
            "persist_dir": settings.chromadb_persist_dir,
        },
        "ingestion": {
            "chunk_size": settings.chunk_size,
            "chunk_overlap": settings.chunk_overlap,
            "min_chunk_chars": settings.min_chunk_chars,
            "embedding_max_batch": settings.embedding_max_batch,
            "store_max_batch": settings.store_max_batch,
        },
        "retrieval": {
            "top_k": settings.retrieval_top_k,
            "rewrite_queries": settings.rewrite_queries,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def settings_from_config(path: str = DEFAULT_CONFIG_PATH, **overrides: Any) -> Settings:
    """Build :class:`Settings` using the YAML ``ingestion``/``retrieval`` sections as defaults.

    Explicit *overrides* win over everything; YAML values win only over
    the built-in defaults.
    """
    yaml_config = read_yaml(path)
    seeded: dict[str, Any] = {}
    ingestion = yaml_config.get("ingestion", {}) or {}
    for key in ("chunk_size", "chunk_overlap", "min_chunk_chars", "embedding_max_batch", "store_max_batch"):
        if key in ingestion:
            seeded[key] = ingestion[key]
    retrieval = yaml_config.get("retrieval", {}) or {}
    if "top_k" in retrieval:
        seeded["retrieval_top_k"] = retrieval["top_k"]
    if "rewrite_queries" in retrieval:
        seeded["rewrite_queries"] = retrieval["rewrite_queries"]

    # Init kwargs outrank environment variables in pydantic-settings.
    seeded = {k: v for k, v in seeded.items() if k.upper() not in os.environ}
    seeded.update(overrides)
    return Settings(**seeded)


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
