from __future__ import annotations

from pathlib import Path

import pytest

from editcrate.config import (
    BACKEND_BLOOM,
    BACKEND_GPT3,
    Config,
    Fileset,
    apply_env,
    load_config,
)
from editcrate.errors import ConfigError


def test_config_defaults() -> None:
    """Test that Config has correct default values."""
    cfg = Config()
    assert cfg.backend == BACKEND_GPT3
    assert cfg.output_format == "raw"
    assert cfg.encoding_errors == "replace"
    assert cfg.respect_gitignore is True
    assert cfg.filesets == []
    assert cfg.gpt3.model == "code-davinci-002"
    assert cfg.gpt3.edit_model == "code-davinci-edit-001"
    assert cfg.gpt3.max_tokens == 256
    assert cfg.gpt3.stop == ["EOF"]
    assert cfg.gpt3.n == 1


def test_load_config_missing_file(tmp_path: Path) -> None:
    """Test loading config when file doesn't exist."""
    cfg = load_config(tmp_path, env={})
    assert cfg == Config()


def test_load_config_empty_file(tmp_path: Path) -> None:
    """Test loading config from empty file."""
    (tmp_path / ".editcrate.toml").write_text("", encoding="utf-8")
    assert load_config(tmp_path, env={}) == Config()


def test_load_config_custom_values(tmp_path: Path) -> None:
    """Test loading config with custom values."""
    (tmp_path / ".editcrate.toml").write_text(
        """[editcrate]
backend = "bloom"
output_format = "markdown"
encoding_errors = "strict"
timeout = 5

[[editcrate.filesets]]
name = "docs"
files = ["README.md", "docs/*.md"]

[editcrate.gpt3]
model = "gpt-3.5-turbo-instruct"
max_tokens = 1024
stop = ["EOF", "END"]
""",
        encoding="utf-8",
    )
    cfg = load_config(tmp_path, env={})
    assert cfg.backend == BACKEND_BLOOM
    assert cfg.output_format == "markdown"
    assert cfg.encoding_errors == "strict"
    assert cfg.timeout == 5.0
    assert cfg.filesets == [Fileset(name="docs", files=("README.md", "docs/*.md"))]
    assert cfg.gpt3.model == "gpt-3.5-turbo-instruct"
    assert cfg.gpt3.max_tokens == 1024
    assert cfg.gpt3.stop == ["EOF", "END"]


def test_filesets_mapping_form(tmp_path: Path) -> None:
    (tmp_path / "editcrate.toml").write_text(
        '[editcrate.filesets]\nweb = ["index.html", "app.js"]\nreadme = "README.md"\n',
        encoding="utf-8",
    )
    cfg = load_config(tmp_path, env={})
    assert cfg.find_fileset("web") == Fileset("web", ("index.html", "app.js"))
    assert cfg.find_fileset("readme") == Fileset("readme", ("README.md",))


def test_find_fileset_is_exact() -> None:
    cfg = Config(filesets=[Fileset(name="docs", files=("README.md",))])
    assert cfg.find_fileset("docs") is not None
    assert cfg.find_fileset("Docs") is None
    assert cfg.find_fileset("doc") is None


def test_invalid_values_fall_back_to_defaults(tmp_path: Path) -> None:
    (tmp_path / ".editcrate.toml").write_text(
        """[editcrate]
backend = "gpt-9"
output_format = "yaml"

[editcrate.gpt3]
max_tokens = "lots"
""",
        encoding="utf-8",
    )
    cfg = load_config(tmp_path, env={})
    assert cfg.backend == BACKEND_GPT3
    assert cfg.output_format == "raw"
    assert cfg.gpt3.max_tokens == 256


def test_invalid_toml_raises_config_error(tmp_path: Path) -> None:
    (tmp_path / ".editcrate.toml").write_text("[editcrate\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid TOML"):
        load_config(tmp_path, env={})


def test_pyproject_tool_section(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        '[tool.editcrate]\noutput_format = "json"\n', encoding="utf-8"
    )
    assert load_config(tmp_path, env={}).output_format == "json"


def test_editcrate_toml_has_priority_over_pyproject(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        '[tool.editcrate]\noutput_format = "json"\n', encoding="utf-8"
    )
    (tmp_path / ".editcrate.toml").write_text(
        '[editcrate]\noutput_format = "markdown"\n', encoding="utf-8"
    )
    assert load_config(tmp_path, env={}).output_format == "markdown"


def test_local_file_is_merged_on_top(tmp_path: Path) -> None:
    (tmp_path / ".editcrate.toml").write_text(
        """[editcrate]
output_format = "json"

[editcrate.gpt3]
model = "shared-model"
max_tokens = 100
""",
        encoding="utf-8",
    )
    (tmp_path / ".editcrate.local.toml").write_text(
        """[editcrate.gpt3]
api_key = "sk-local"
max_tokens = 300
""",
        encoding="utf-8",
    )
    cfg = load_config(tmp_path, env={})
    assert cfg.output_format == "json"
    assert cfg.gpt3.model == "shared-model"
    assert cfg.gpt3.max_tokens == 300
    assert cfg.gpt3.api_key == "sk-local"


def test_environment_overrides_files(tmp_path: Path) -> None:
    (tmp_path / ".editcrate.toml").write_text(
        '[editcrate.gpt3]\napi_key = "from-file"\n', encoding="utf-8"
    )
    cfg = load_config(
        tmp_path,
        env={
            "EDITCRATE_GPT3_APIKEY": "from-env",
            "EDITCRATE_GPT3_ORGID": "org-1",
            "EDITCRATE_GPT3_URL": "http://localhost:8000/v1",
            "EDITCRATE_BACKEND": "gpt-j",
        },
    )
    assert cfg.gpt3.api_key == "from-env"
    assert cfg.gpt3.org_id == "org-1"
    assert cfg.gpt3.url == "http://localhost:8000/v1"
    assert cfg.backend == "gpt-j"


def test_empty_env_values_are_ignored() -> None:
    cfg = apply_env(Config(), {"EDITCRATE_GPT3_APIKEY": "", "EDITCRATE_BACKEND": ""})
    assert cfg.gpt3.api_key == ""
    assert cfg.backend == BACKEND_GPT3


def test_as_dict_masks_secrets() -> None:
    cfg = Config()
    cfg.gpt3.api_key = "sk-secret"
    assert cfg.as_dict()["gpt3"]["api_key"] == "***"
    assert cfg.as_dict(mask_secrets=False)["gpt3"]["api_key"] == "sk-secret"
    assert cfg.as_dict()["bloom"]["api_key"] == ""


def test_undecodable_config_raises_config_error(tmp_path: Path) -> None:
    (tmp_path / ".editcrate.toml").write_bytes(b"[editcrate]\nbackend = \"\xff\"\n")
    with pytest.raises(ConfigError, match="cannot read config"):
        load_config(tmp_path, env={})
