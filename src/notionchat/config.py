"""Settings for the chat client and the tool server.

Settings come from an optional YAML file (``${VAR}`` references are expanded
from the environment before parsing) and are then overridden by a handful of
well-known environment variables, so a bare environment with
``NOTION_TOKEN`` and ``OPENAI_API_KEY`` is enough to run.

Example YAML::

    model:
      model: openai/o3-mini
    notion:
      token: ${NOTION_TOKEN}
    rpc:
      request_timeout: 20
    chat:
      preview_length: 200
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from notionchat.core.interface.config import ModelConfig
from notionchat.protocols.mcp.transport import DEFAULT_READY_MARKER

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

DEFAULT_MODEL = "openai/o3-mini"

ENV_CONFIG = "NOTIONCHAT_CONFIG"
ENV_NOTION_TOKEN = "NOTION_TOKEN"
ENV_OPENAI_API_KEY = "OPENAI_API_KEY"
ENV_MODEL = "NOTIONCHAT_MODEL"
ENV_REQUEST_TIMEOUT = "NOTIONCHAT_REQUEST_TIMEOUT"
ENV_LOG_LEVEL = "NOTIONCHAT_LOG_LEVEL"


class ConfigError(Exception):
    """Raised when the settings file or environment cannot be loaded."""


class NotionSettings(BaseModel):
    """Access to the Notion REST API."""

    token: str | None = None
    api_version: str = "2022-06-28"
    base_url: str = "https://api.notion.com/v1"
    http_timeout: float = 30.0
    max_page_size: int = Field(default=100, ge=1)


class RPCSettings(BaseModel):
    """Client-side protocol knobs."""

    request_timeout: float = Field(default=20.0, gt=0)
    server_command: list[str] | None = None
    ready_marker: str = DEFAULT_READY_MARKER
    shutdown_grace: float = 5.0


class ChatSettings(BaseModel):
    """Answer composition knobs for the conversation orchestrator."""

    preview_length: int = Field(default=200, ge=0)
    context_length: int = Field(default=300, ge=0)
    context_items: int = Field(default=3, ge=1)
    summary_keywords: list[str] = [
        "summary",
        "summarize",
        "summarise",
        "content",
        "body",
        "본문",
        "요약",
        "내용",
    ]
    title_keywords: list[str] = ["titles only", "title only", "제목만"]


class Settings(BaseModel):
    """Top-level settings shared by ``notionchat chat`` and ``notionchat serve``."""

    notion: NotionSettings = Field(default_factory=NotionSettings)
    model: ModelConfig = Field(default_factory=lambda: ModelConfig(model=DEFAULT_MODEL))
    rpc: RPCSettings = Field(default_factory=RPCSettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)
    log_level: LogLevel = "WARNING"


def load_settings(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Read *path* (if given), apply environment overrides and validate.

    Raises:
        ConfigError: On unreadable files, YAML errors or validation failures.
    """
    environ = os.environ if env is None else env
    data: dict[str, Any] = _read_yaml(path) if path is not None else {}
    _apply_env_overrides(data, environ)

    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc

    expanded = os.path.expandvars(raw)

    try:
        data: Any = yaml.safe_load(expanded)
    except yaml.YAMLError as exc:
        raise ConfigError(f"YAML parse error: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Settings YAML must be a mapping")
    return data


def _apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> None:
    def section(name: str) -> dict[str, Any]:
        value = data.get(name)
        if not isinstance(value, dict):
            value = {}
            data[name] = value
        return value

    if token := environ.get(ENV_NOTION_TOKEN):
        section("notion")["token"] = token
    if model := environ.get(ENV_MODEL):
        section("model")["model"] = model
    if "model" in data and "model" not in data["model"]:
        data["model"]["model"] = DEFAULT_MODEL
    # Other providers' keys are read from the environment by LiteLLM itself.
    if api_key := environ.get(ENV_OPENAI_API_KEY):
        model_section = section("model")
        model_section.setdefault("model", DEFAULT_MODEL)
        if ModelConfig(model=str(model_section["model"])).provider == "openai":
            model_section.setdefault("api_key", api_key)
    if timeout := environ.get(ENV_REQUEST_TIMEOUT):
        section("rpc")["request_timeout"] = timeout
    if level := environ.get(ENV_LOG_LEVEL):
        data["log_level"] = level.upper()
