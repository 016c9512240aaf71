from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource, YamlConfigSettingsSource

from domain.models import VIEWPORTS

DEFAULT_CONFIG_PATH = Path("config/editor/app.yaml")

StorageKind = Literal["filesystem", "s3", "http"]


class S3Settings(BaseModel):
    bucket: str = ""
    prefix: str = ""
    region: str | None = None
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    session_token: str | None = None
    use_path_style: bool = False


class HttpStoreSettings(BaseModel):
    base_url: str = ""
    timeout_seconds: float = Field(default=10.0, gt=0)
    token: str | None = None


class EditorSettings(BaseModel):
    title: str = "Slot Layout Editor"
    storage: StorageKind = "filesystem"
    data_dir: Path = Path("data/layouts")
    s3: S3Settings = S3Settings()
    http: HttpStoreSettings = HttpStoreSettings()
    save_debounce_ms: int = Field(default=500, ge=0)
    column_sensitivity_px: float = Field(default=20.0, gt=0)
    height_divisor: float = Field(default=2.0, gt=0)
    min_height_px: int = Field(default=20, ge=1)
    direction_ratio: float = Field(default=0.8, gt=0)
    default_viewport: str = "desktop"
    viewport_widths: dict[str, int | None] = Field(
        default_factory=lambda: {"mobile": 375, "tablet": 768, "desktop": None}
    )
    seed_missing_layouts: bool = True

    @field_validator("storage", "default_viewport", mode="before")
    @classmethod
    def normalize_case(cls, value: object) -> str:
        return str(value or "").strip().lower()

    @field_validator("default_viewport")
    @classmethod
    def known_viewport(cls, value: str) -> str:
        if value not in VIEWPORTS:
            msg = f"editor.default_viewport must be one of {', '.join(VIEWPORTS)}"
            raise ValueError(msg)
        return value

    @field_validator("viewport_widths", mode="before")
    @classmethod
    def normalize_viewport_widths(cls, value: object) -> dict[str, int | None]:
        widths: dict[str, int | None] = {"mobile": 375, "tablet": 768, "desktop": None}
        if value is None or value == "":
            return widths
        if not isinstance(value, dict):
            msg = "editor.viewport_widths must be a mapping"
            raise ValueError(msg)
        for raw_name, raw_width in value.items():
            name = str(raw_name).strip().lower()
            if name not in VIEWPORTS:
                msg = f"Unknown viewport in editor.viewport_widths: {raw_name}"
                raise ValueError(msg)
            widths[name] = None if raw_width in (None, "", "auto") else int(raw_width)
        return widths

    @property
    def save_delay_seconds(self) -> float:
        return self.save_debounce_ms / 1000.0


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SLOTS_", env_nested_delimiter="__")

    editor: EditorSettings = EditorSettings()

    _yaml_path: ClassVar[Path | None] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        ]
        if cls._yaml_path:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=cls._yaml_path))
        return tuple(sources)


def load_settings(config_path: Path | None = None) -> AppSettings:
    env_path = os.getenv("SLOTS_CONFIG_PATH")
    resolved_path: Path | None = None

    if config_path is not None:
        resolved_path = config_path
    elif env_path:
        resolved_path = Path(env_path)
    elif DEFAULT_CONFIG_PATH.exists():
        resolved_path = DEFAULT_CONFIG_PATH

    previous = AppSettings._yaml_path
    try:
        if resolved_path is not None:
            if not resolved_path.exists():
                msg = f"Config file not found: {resolved_path}"
                raise FileNotFoundError(msg)
            AppSettings._yaml_path = resolved_path
        return AppSettings()
    finally:
        AppSettings._yaml_path = previous
