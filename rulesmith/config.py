"""
Configuration - Settings groups for every collaborator the pipeline builds.

Defaults work out of the box against a local OpenAI-compatible endpoint.
load_config() overlays RULESMITH_* environment variables, e.g.
RULESMITH_ORACLE__MODEL_NAME or RULESMITH_MONITOR__WINDOW_SECONDS.
"""

from __future__ import annotations
from typing import Any, Mapping
import os

from pydantic import BaseModel, Field

ENV_PREFIX = "RULESMITH_"


class OracleSettings(BaseModel):
    base_url: str = "http://localhost:1234/v1"
    api_key: str = ""
    model_name: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_retries: int = 5


class RetrievalSettings(BaseModel):
    max_examples: int = 5
    min_relevance: float = 0.2
    index_path: str | None = None  # JSON export of the reference compendium


class MonitorSettings(BaseModel):
    window_seconds: float = 1.0  # heuristic, not a guarantee
    host_logger: str = "host.validation"
    markers: list[str] = Field(default_factory=lambda: [
        "validation", "invalid", "must be", "is required", "missing",
        "unrecognized", "not a valid", "rule element",
    ])


class StoreSettings(BaseModel):
    data_dir: str | None = None  # None keeps documents in memory


class AppConfig(BaseModel):
    oracle: OracleSettings = Field(default_factory=OracleSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    corpus_path: str | None = None
    env: str = "development"


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Turn RULESMITH_GROUP__FIELD=value pairs into a nested dict."""
    overrides: dict[str, Any] = {}
    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        path = name[len(ENV_PREFIX):].lower().split("__")
        target = overrides
        for part in path[:-1]:
            target = target.setdefault(part, {})
        if path[-1] == "markers":
            target[path[-1]] = [m.strip() for m in value.split(",") if m.strip()]
        else:
            target[path[-1]] = value
    return overrides


def load_config(environ: Mapping[str, str] | None = None, **overrides: Any) -> AppConfig:
    """
    Build the configuration from defaults, environment and explicit overrides.

    Explicit keyword overrides win over the environment.
    """
    data = _env_overrides(os.environ if environ is None else environ)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key].update(value)
        else:
            data[key] = value
    return AppConfig.model_validate(data)
