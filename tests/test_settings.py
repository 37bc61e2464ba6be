from pathlib import Path

import pytest

from visualdiff.settings import DiffSettings
from visualdiff.utils.normalize import DEFAULT_WATERMARK_PATTERNS


def test_defaults_from_empty_environment():
    settings = DiffSettings.from_env({})

    assert settings.base_dir == "visual-diffs"
    assert settings.file_prefix == "diff-v"
    assert settings.generation_timeout_ms == 300_000
    assert settings.generation_timeout_s == 300.0
    assert settings.max_retry_attempts == 3
    assert settings.render_mode == "burned_in"
    assert settings.database_path == Path(".") / "visual_diffs.sqlite3"
    assert settings.watermark_patterns == DEFAULT_WATERMARK_PATTERNS


def test_values_are_read_from_prefixed_variables(tmp_path):
    env = {
        "VISUAL_DIFF_STORAGE_ROOT": str(tmp_path),
        "VISUAL_DIFF_BASE_DIR": "diffs",
        "VISUAL_DIFF_FILE_PREFIX": "cmp-v",
        "VISUAL_DIFF_GENERATION_TIMEOUT_MS": "1500",
        "VISUAL_DIFF_MAX_RETRY_ATTEMPTS": "5",
        "VISUAL_DIFF_RENDER_MODE": "overlay",
        "VISUAL_DIFF_FETCH_TIMEOUT_S": "2.5",
        "VISUAL_DIFF_WATERMARK_PATTERNS": "CONFIDENTIAL | Printed on",
        "VISUAL_DIFF_LOG_LEVEL": "debug",
    }

    settings = DiffSettings.from_env(env)

    assert settings.storage_root == tmp_path
    assert settings.base_dir == "diffs"
    assert settings.file_prefix == "cmp-v"
    assert settings.generation_timeout_s == 1.5
    assert settings.max_retry_attempts == 5
    assert settings.render_mode == "overlay"
    assert settings.fetch_timeout_s == 2.5
    assert settings.watermark_patterns == ("CONFIDENTIAL", "Printed on")
    assert settings.log_level == "DEBUG"
    assert settings.database_path == tmp_path / "visual_diffs.sqlite3"


def test_invalid_number_names_the_variable():
    with pytest.raises(ValueError, match="VISUAL_DIFF_MAX_RETRY_ATTEMPTS"):
        DiffSettings.from_env({"VISUAL_DIFF_MAX_RETRY_ATTEMPTS": "three"})


@pytest.mark.parametrize(
    "env",
    [
        {"VISUAL_DIFF_MAX_RETRY_ATTEMPTS": "0"},
        {"VISUAL_DIFF_GENERATION_TIMEOUT_MS": "-1"},
        {"VISUAL_DIFF_RENDER_MODE": "svg"},
    ],
)
def test_out_of_range_values_are_rejected(env):
    with pytest.raises(ValueError):
        DiffSettings.from_env(env)


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    # setenv first so monkeypatch removes whatever load_dotenv sets afterwards.
    monkeypatch.setenv("VISUAL_DIFF_FILE_PREFIX", "unused")
    monkeypatch.delenv("VISUAL_DIFF_FILE_PREFIX")
    env_file = tmp_path / ".env"
    env_file.write_text("VISUAL_DIFF_FILE_PREFIX=from-dotenv-\n")

    settings = DiffSettings.from_env(dotenv_path=env_file)

    assert settings.file_prefix == "from-dotenv-"
