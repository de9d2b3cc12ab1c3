"""Application configuration loaded from config.yaml + environment variables.

Priority, highest first: explicit keyword overrides, ``WIFI_*`` environment
variables, ``.env``, then config.yaml, then the field defaults.
"""

from __future__ import annotations

import yaml
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


def _load_yaml() -> dict:
    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            return yaml.safe_load(f) or {}
    return {}


_yaml = _load_yaml()


class ReportConfig(BaseSettings):
    problem_types: list[str] = Field(default_factory=lambda: [
        "WiFi 신호 약함",
        "WiFi 연결 끊김",
        "인터넷 속도 느림",
        "특정 사이트 접속 불가",
        "기타",
    ])
    other_problem_type: str = "기타"
    password_pattern: str = r"^\d{4}$"
    page_size: int = 20
    max_page_size: int = 100


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Maps the sectioned config.yaml onto the flat Settings fields."""

    def __init__(self, settings_cls: type[BaseSettings], data: dict | None = None):
        super().__init__(settings_cls)
        self.data = _yaml if data is None else data

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        # Values are produced in bulk by __call__
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        db = self.data.get("database") or {}
        auth = self.data.get("auth") or {}
        values: dict[str, Any] = {}
        if "url" in db:
            values["database_url"] = db["url"]
        if "counter_mode" in db:
            values["counter_mode"] = db["counter_mode"]
        if "busy_timeout" in db:
            values["sqlite_busy_timeout"] = db["busy_timeout"]
        if "bcrypt_rounds" in auth:
            values["bcrypt_rounds"] = auth["bcrypt_rounds"]
        if "report" in self.data:
            values["report"] = self.data["report"] or {}
        return values


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///data/database.sqlite"
    # "trigger" | "recompute"; empty means the backend's native mode
    counter_mode: str = ""
    sqlite_busy_timeout: float = 5.0
    bcrypt_rounds: int = 10
    echo_sql: bool = False
    report: ReportConfig = Field(default_factory=ReportConfig)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "WIFI_"}

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


def get_settings(**overrides) -> Settings:
    """Build Settings; keyword overrides beat env, env beats config.yaml."""
    return Settings(**overrides)
