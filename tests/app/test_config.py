from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from adapters.filesystem.layout_repository import FileSystemLayoutRepository
from adapters.http.layout_repository import HttpLayoutRepository
from adapters.s3.layout_repository import S3LayoutRepository
from app.config import AppSettings, EditorSettings, load_settings
from app.wiring import build_layout_repository, build_resize_config


def _write_config(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "app.yaml"
    path.write_text(body, encoding="utf-8")
    return path


def test_yaml_values_are_loaded(tmp_path: Path) -> None:
    path = _write_config(
        tmp_path,
        """
editor:
  title: Shop layouts
  storage: S3
  default_viewport: Tablet
  save_debounce_ms: 750
  viewport_widths:
    mobile: 360
    desktop: auto
  s3:
    bucket: layouts
""",
    )

    settings = load_settings(path)

    assert settings.editor.title == "Shop layouts"
    assert settings.editor.storage == "s3"
    assert settings.editor.default_viewport == "tablet"
    assert settings.editor.save_delay_seconds == 0.75
    assert settings.editor.viewport_widths == {"mobile": 360, "tablet": 768, "desktop": None}
    assert settings.editor.s3.bucket == "layouts"


def test_environment_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write_config(tmp_path, "editor:\n  save_debounce_ms: 750\n")
    monkeypatch.setenv("SLOTS_EDITOR__SAVE_DEBOUNCE_MS", "250")

    assert load_settings(path).editor.save_debounce_ms == 250


def test_config_path_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = _write_config(tmp_path, "editor:\n  min_height_px: 32\n")
    monkeypatch.setenv("SLOTS_CONFIG_PATH", str(path))

    assert load_settings().editor.min_height_px == 32


def test_missing_config_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match="Config file not found"):
        load_settings(tmp_path / "missing.yaml")


@pytest.mark.parametrize(
    "overrides",
    [
        {"default_viewport": "watch"},
        {"viewport_widths": {"watch": 200}},
        {"storage": "ftp"},
        {"save_debounce_ms": -1},
    ],
)
def test_invalid_editor_settings_are_rejected(overrides: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        EditorSettings.model_validate(overrides)


def test_repository_follows_storage_setting(tmp_path: Path, app_settings: AppSettings) -> None:
    assert isinstance(build_layout_repository(app_settings), FileSystemLayoutRepository)

    s3 = app_settings.model_copy(update={"editor": app_settings.editor.model_copy(update={"storage": "s3"})})
    assert isinstance(build_layout_repository(s3), S3LayoutRepository)

    http_editor = EditorSettings(storage="http", http={"base_url": "https://layouts.test"})
    http = AppSettings(editor=http_editor)
    repository = build_layout_repository(http)
    assert isinstance(repository, HttpLayoutRepository)
    repository.close()


@pytest.mark.parametrize("storage", ["s3", "http"])
def test_remote_storage_requires_location(storage: str) -> None:
    settings = AppSettings(editor=EditorSettings(storage=storage))

    with pytest.raises(ValueError, match="required"):
        build_layout_repository(settings)


def test_resize_config_from_settings() -> None:
    config = build_resize_config(EditorSettings(column_sensitivity_px=40, min_height_px=32))

    assert config.column_sensitivity_px == 40
    assert config.min_height_px == 32
    assert config.height_divisor == 2
