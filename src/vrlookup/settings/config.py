"""Configuration loader for vrlookup using Pydantic settings.

Config precedence (highest wins):
  1. CLI flags (where applicable)
  2. Environment variables (VRL_* with __ for nesting)
  3. settings.local.toml
  4. settings.<env>.toml
  5. settings.default.toml
"""

from __future__ import annotations

import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

_THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = Path(os.getenv("VRL_PROJECT_ROOT", _THIS_DIR.parents[2]))
CONFIG_DIR = PROJECT_ROOT / "config"

ENV_VAR_NAME = "VRL_ENV"
DEFAULT_ENV = "local"

# Credential variable the Google SDKs read when no key is configured.
GOOGLE_API_KEY_ENV = "GOOGLE_API_KEY"


def _resolve_env() -> str:
    return (os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()


def _load_toml(path: Path) -> dict[str, Any]:
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class LLMSettings(BaseSettings):
    """Recognition model configuration."""

    model_config = SettingsConfigDict(env_prefix="VRL_LLM__")

    provider: str = "gemini"  # gemini | ollama
    model: str = "gemini-2.0-flash"
    gemini_backend: str = "genai"  # genai (API key) | vertex
    api_key: str = ""
    gcp_project: str = ""
    gcp_location: str = "us-central1"
    ollama_base_url: str = "http://localhost:11434"
    temperature: float = 0.0
    max_tokens: int = 64
    timeout_sec: float = 30.0
    max_retries: int = 2


class BrowserSettings(BaseSettings):
    """Playwright browser settings."""

    model_config = SettingsConfigDict(env_prefix="VRL_BROWSER__")

    headless: bool = True
    sandbox: bool = False
    navigation_timeout_ms: int = 30_000
    element_timeout_ms: int = 5_000
    user_agent: str = ""
    proxy: str = ""
    locale: str = "vi-VN"
    viewport_width: int = 1366
    viewport_height: int = 900


class TargetSettings(BaseSettings):
    """Element identifiers and wording of the lookup portal."""

    model_config = SettingsConfigDict(env_prefix="VRL_TARGET__")

    url: str = "http://app.vr.org.vn/ptpublic/thongtinptpublic.aspx"
    form: str = "#Form1"
    plate_input: str = "#txtBienDK"
    sticker_input: str = "#TxtSoTem"
    captcha_image: str = "#captchaImage"
    captcha_input: str = "#txtCaptcha"
    submit_button: str = "#btnTraCuu"
    error_message: str = "#lblErrMsg"
    # Literal portal wording; a change on the portal side silently turns a
    # terminal answer into a retryable one, so this list is configuration.
    not_found_messages: list[str] = Field(
        default_factory=lambda: ["Không tìm thấy thông tin phương tiện này."]
    )
    result_fields: dict[str, str] = Field(
        default_factory=lambda: {
            "nhanHieu": "#LblNhanHieu",
            "loaiPhuongTien": "#LblLoaiPhuongTien",
            "soKhung": "#LblSoKhung",
            "soMay": "#LblSoMay",
            "ngayKiemDinh": "#LblNgayKiemDinh",
            "hanKiemDinh": "#LblHanKiemDinh",
            "donViKiemDinh": "#LblDonViKiemDinh",
            "soPhieuThu": "#LblSoPhieuThu",
        }
    )


class CaptchaSettings(BaseSettings):
    """Captcha recognition configuration."""

    model_config = SettingsConfigDict(env_prefix="VRL_CAPTCHA__")

    max_tries: int = 3
    prompt: str = (
        "Read the characters in this captcha image. "
        "Return only those characters, with no explanation."
    )
    mime_type: str = "image/png"
    reload_timeout_ms: int = 15_000


class LookupSettings(BaseSettings):
    """Outer retry policy of the submission workflow."""

    model_config = SettingsConfigDict(env_prefix="VRL_LOOKUP__")

    max_attempts: int = 3
    retry_delay_sec: float = 2.0
    settle_delay_sec: float = 3.0
    submit_navigation_timeout_ms: int = 10_000


class ArtifactSettings(BaseSettings):
    """Screenshot artifact storage."""

    model_config = SettingsConfigDict(env_prefix="VRL_ARTIFACTS__")

    output_dir: str = "data/screenshots"
    ttl_sec: float = 120.0
    url_prefix: str = "/screenshots"


class APISettings(BaseSettings):
    """API server configuration."""

    model_config = SettingsConfigDict(env_prefix="VRL_API__")

    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = ["*"]
    max_concurrent_lookups: int = 2


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="VRL_LOGGING__")

    level: str = "INFO"
    json_format: bool = False


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root vrlookup settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="VRL_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    env: str = Field(default_factory=_resolve_env)
    project_root: Path = Field(default=PROJECT_ROOT)
    debug: bool = False

    llm: LLMSettings = Field(default_factory=LLMSettings)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    target: TargetSettings = Field(default_factory=TargetSettings)
    captcha: CaptchaSettings = Field(default_factory=CaptchaSettings)
    lookup: LookupSettings = Field(default_factory=LookupSettings)
    artifacts: ArtifactSettings = Field(default_factory=ArtifactSettings)
    api: APISettings = Field(default_factory=APISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_toml_files(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Layer TOML config files before env var overrides."""
        defaults = _load_toml(CONFIG_DIR / "settings.default.toml")
        env_name = (values.get("env") or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV).strip()
        env_overrides = _load_toml(CONFIG_DIR / f"settings.{env_name}.toml")
        local_overrides = _load_toml(CONFIG_DIR / "settings.local.toml")

        # Merge: defaults < env-specific < local < explicit values
        merged: dict[str, Any] = {}
        for layer in (defaults, env_overrides, local_overrides, values):
            for key, val in layer.items():
                if isinstance(val, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **val}
                else:
                    merged[key] = val
        return merged

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Normalize relative paths and pick up the legacy API key variable."""
        root = self.project_root
        if not Path(self.artifacts.output_dir).is_absolute():
            self.artifacts.output_dir = str(root / self.artifacts.output_dir)
        if not self.llm.api_key:
            self.llm.api_key = os.getenv(GOOGLE_API_KEY_ENV, "")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
