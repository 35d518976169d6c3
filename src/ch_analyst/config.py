"""Application configuration loaded from config.yaml and the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from ch_analyst.errors import ConfigurationError

REGISTRY_API_KEY_ENV = "COMPANIES_HOUSE_API_KEY"
MODEL_API_KEY_ENV = "OPENAI_API_KEY"


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if not low <= value <= high:
        raise ValueError(f"{name} must be between {low} and {high}, got {value}")


@dataclass(frozen=True)
class RegistryConfig:
    base_url: str = "https://api.company-information.service.gov.uk"
    document_base_url: str = "https://document-api.company-information.service.gov.uk"
    items_per_page: int = 100
    search_limit: int = 5
    timeout: float = 30.0

    def __post_init__(self) -> None:
        _check_range("items_per_page", self.items_per_page, 1, 100)
        _check_range("search_limit", self.search_limit, 1, 100)
        _check_range("timeout", self.timeout, 1, 600)


@dataclass(frozen=True)
class LLMConfig:
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    timeout: float = 120.0

    def __post_init__(self) -> None:
        _check_range("temperature", self.temperature, 0, 2)
        _check_range("timeout", self.timeout, 1, 600)


@dataclass(frozen=True)
class AnalysisConfig:
    max_iterations: int = 8
    include_documents: bool = True
    max_documents: int = 5
    max_document_chars: int = 20000

    def __post_init__(self) -> None:
        _check_range("max_iterations", self.max_iterations, 1, 50)
        _check_range("max_documents", self.max_documents, 0, 100)
        _check_range("max_document_chars", self.max_document_chars, 100, 1_000_000)


@dataclass(frozen=True)
class SessionConfig:
    max_sessions: int = 256
    max_history_messages: int = 40

    def __post_init__(self) -> None:
        _check_range("max_sessions", self.max_sessions, 1, 100_000)
        _check_range("max_history_messages", self.max_history_messages, 2, 1000)


@dataclass(frozen=True)
class AppConfig:
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)


@dataclass(frozen=True)
class Credentials:
    registry_api_key: str
    model_api_key: str

    def __repr__(self) -> str:
        return "Credentials(registry_api_key='***', model_api_key='***')"


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load config from YAML file, falling back to defaults."""
    if path is None:
        # Look for config.yaml relative to the project root
        candidates = [
            Path.cwd() / "config.yaml",
            Path(__file__).resolve().parent.parent.parent / "config.yaml",
        ]
        for c in candidates:
            if c.exists():
                path = c
                break

    raw: dict = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text()) or {}

    return AppConfig(
        registry=RegistryConfig(**raw.get("registry", {})),
        llm=LLMConfig(**raw.get("llm", {})),
        analysis=AnalysisConfig(**raw.get("analysis", {})),
        sessions=SessionConfig(**raw.get("sessions", {})),
    )


def load_credentials(environ: dict[str, str] | None = None) -> Credentials:
    """Read both API keys from the environment, failing fast if either is absent."""
    env = os.environ if environ is None else environ
    registry_key = (env.get(REGISTRY_API_KEY_ENV) or "").strip()
    model_key = (env.get(MODEL_API_KEY_ENV) or "").strip()

    missing = [
        name
        for name, value in ((REGISTRY_API_KEY_ENV, registry_key), (MODEL_API_KEY_ENV, model_key))
        if not value
    ]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variable(s): {', '.join(missing)}. "
            "Set them in the environment or a .env file."
        )
    return Credentials(registry_api_key=registry_key, model_api_key=model_key)
