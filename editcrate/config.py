from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Literal

from .errors import ConfigError
from .formats import DEFAULT_OUTPUT_FORMAT, OUTPUT_FORMATS

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # pyright: ignore[reportMissingImports]

CONFIG_FILENAMES: tuple[str, ...] = (".editcrate.toml", "editcrate.toml")
LOCAL_CONFIG_FILENAME = ".editcrate.local.toml"
PYPROJECT_FILENAME = "pyproject.toml"
ENV_PREFIX = "EDITCRATE"

BACKEND_GPT3 = "gpt-3"
BACKEND_GPTJ = "gpt-j"
BACKEND_BLOOM = "bloom"
BACKENDS: tuple[str, ...] = (BACKEND_GPT3, BACKEND_GPTJ, BACKEND_BLOOM)

OPENAI_URL = "https://api.openai.com/v1"
GPTJ_URL = "https://api.vicgalle.net:5000/generate"
BLOOM_URL = "https://api-inference.huggingface.co/models/bigscience/bloom"

# Stop word the completion prompt asks the model to finish with.
END_OF_SEQUENCE = "EOF"


@dataclass(frozen=True)
class Fileset:
    name: str
    files: tuple[str, ...]


@dataclass
class GPT3Config:
    api_key: str = ""
    org_id: str = ""
    url: str = OPENAI_URL
    model: str = "code-davinci-002"
    edit_model: str = "code-davinci-edit-001"
    max_tokens: int = 256
    temperature: float = 0.0
    top_p: float | None = None
    n: int = 1
    stop: list[str] = field(default_factory=lambda: [END_OF_SEQUENCE])
    user: str = "editcrate"


@dataclass
class GPTJConfig:
    url: str = GPTJ_URL
    response_length: int = 64
    temperature: float = 0.0
    top_p: float = 1.0


@dataclass
class BloomConfig:
    url: str = BLOOM_URL
    api_key: str = ""
    max_new_tokens: int = 64
    temperature: float = 0.0


@dataclass
class Config:
    backend: Literal["gpt-3", "gpt-j", "bloom"] = BACKEND_GPT3
    # Rendering used when printing results instead of writing them.
    output_format: Literal["raw", "json", "markdown"] = DEFAULT_OUTPUT_FORMAT
    # - "replace": replace invalid UTF-8 bytes when loading files (default)
    # - "strict": fail the load on invalid bytes
    encoding_errors: Literal["replace", "strict"] = "replace"
    # Applies to glob patterns inside filesets only.
    respect_gitignore: bool = True
    # Seconds to wait for the backend.
    timeout: float = 120.0
    filesets: list[Fileset] = field(default_factory=list)
    gpt3: GPT3Config = field(default_factory=GPT3Config)
    gptj: GPTJConfig = field(default_factory=GPTJConfig)
    bloom: BloomConfig = field(default_factory=BloomConfig)

    def find_fileset(self, name: str) -> Fileset | None:
        """Exact, case-sensitive lookup."""
        for fs in self.filesets:
            if fs.name == name:
                return fs
        return None

    def as_dict(self, *, mask_secrets: bool = True) -> dict[str, Any]:
        data = asdict(self)
        if mask_secrets:
            for section in ("gpt3", "bloom"):
                if data[section].get("api_key"):
                    data[section]["api_key"] = "***"
        return data


def _find_config_path(root: Path) -> Path | None:
    root = root.resolve()
    for name in CONFIG_FILENAMES:
        p = root / name
        if p.exists():
            return p
    pyproject = root / PYPROJECT_FILENAME
    if pyproject.exists():
        return pyproject
    return None


def _extract_section(data: Any, *, from_pyproject: bool) -> dict[str, Any]:
    section: dict[str, Any] = {}
    if not isinstance(data, dict):
        return section

    if not from_pyproject:
        ec = data.get("editcrate")
        if isinstance(ec, dict):
            return ec

    tool = data.get("tool")
    if isinstance(tool, dict):
        ec2 = tool.get("editcrate")
        if isinstance(ec2, dict):
            return ec2

    return section


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"{path}: cannot read config: {e}") from e
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{path}: invalid TOML: {e}") from e


def _merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_str(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _choice(value: Any, choices: tuple[str, ...], default: str) -> str:
    if isinstance(value, str):
        value = value.strip().lower()
        if value in choices:
            return value
    return default


def _parse_filesets(raw: Any) -> list[Fileset]:
    # Accept both [[filesets]] tables and a {name = [files]} mapping.
    out: list[Fileset] = []
    if isinstance(raw, dict):
        raw = [{"name": k, "files": v} for k, v in raw.items()]
    if not isinstance(raw, list):
        return out
    for item in raw:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        files = item.get("files")
        if not isinstance(name, str) or not name:
            continue
        if isinstance(files, str):
            files = [files]
        if not isinstance(files, list):
            continue
        out.append(Fileset(name=name, files=tuple(str(f) for f in files)))
    return out


def _parse_gpt3(section: Any) -> GPT3Config:
    cfg = GPT3Config()
    if not isinstance(section, dict):
        return cfg
    cfg.api_key = _as_str(section.get("api_key"), cfg.api_key)
    cfg.org_id = _as_str(section.get("org_id"), cfg.org_id)
    cfg.url = _as_str(section.get("url"), cfg.url)
    cfg.model = _as_str(section.get("model"), cfg.model)
    cfg.edit_model = _as_str(section.get("edit_model"), cfg.edit_model)
    cfg.max_tokens = _as_int(section.get("max_tokens"), cfg.max_tokens)
    cfg.temperature = _as_float(section.get("temperature"), cfg.temperature)
    if section.get("top_p") is not None:
        cfg.top_p = _as_float(section.get("top_p"), 1.0)
    cfg.n = _as_int(section.get("n"), cfg.n)
    stop = section.get("stop")
    if isinstance(stop, list):
        cfg.stop = [str(s) for s in stop]
    elif isinstance(stop, str):
        cfg.stop = [stop]
    cfg.user = _as_str(section.get("user"), cfg.user)
    return cfg


def _parse_gptj(section: Any) -> GPTJConfig:
    cfg = GPTJConfig()
    if not isinstance(section, dict):
        return cfg
    cfg.url = _as_str(section.get("url"), cfg.url)
    cfg.response_length = _as_int(
        section.get("response_length"), cfg.response_length
    )
    cfg.temperature = _as_float(section.get("temperature"), cfg.temperature)
    cfg.top_p = _as_float(section.get("top_p"), cfg.top_p)
    return cfg


def _parse_bloom(section: Any) -> BloomConfig:
    cfg = BloomConfig()
    if not isinstance(section, dict):
        return cfg
    cfg.url = _as_str(section.get("url"), cfg.url)
    cfg.api_key = _as_str(section.get("api_key"), cfg.api_key)
    cfg.max_new_tokens = _as_int(section.get("max_new_tokens"), cfg.max_new_tokens)
    cfg.temperature = _as_float(section.get("temperature"), cfg.temperature)
    return cfg


def config_from_section(section: Mapping[str, Any]) -> Config:
    cfg = Config()
    cfg.backend = _choice(  # type: ignore[assignment]
        section.get("backend"), BACKENDS, cfg.backend
    )
    cfg.output_format = _choice(  # type: ignore[assignment]
        section.get("output_format"), OUTPUT_FORMATS, cfg.output_format
    )
    cfg.encoding_errors = _choice(  # type: ignore[assignment]
        section.get("encoding_errors"), ("replace", "strict"), cfg.encoding_errors
    )
    cfg.respect_gitignore = bool(
        section.get("respect_gitignore", cfg.respect_gitignore)
    )
    cfg.timeout = _as_float(section.get("timeout"), cfg.timeout)
    cfg.filesets = _parse_filesets(section.get("filesets"))
    cfg.gpt3 = _parse_gpt3(section.get("gpt3"))
    cfg.gptj = _parse_gptj(section.get("gptj"))
    cfg.bloom = _parse_bloom(section.get("bloom"))
    return cfg


def apply_env(cfg: Config, env: Mapping[str, str]) -> Config:
    """Override config values from ``EDITCRATE_*`` environment variables."""
    backend = env.get(f"{ENV_PREFIX}_BACKEND")
    if backend:
        cfg.backend = _choice(  # type: ignore[assignment]
            backend, BACKENDS, cfg.backend
        )
    api_key = env.get(f"{ENV_PREFIX}_GPT3_APIKEY")
    if api_key:
        cfg.gpt3.api_key = api_key
    org_id = env.get(f"{ENV_PREFIX}_GPT3_ORGID")
    if org_id:
        cfg.gpt3.org_id = org_id
    url = env.get(f"{ENV_PREFIX}_GPT3_URL")
    if url:
        cfg.gpt3.url = url
    bloom_key = env.get(f"{ENV_PREFIX}_BLOOM_APIKEY")
    if bloom_key:
        cfg.bloom.api_key = bloom_key
    return cfg


def load_config(root: Path, env: Mapping[str, str] | None = None) -> Config:
    """Load config from ``root``, merge the local override file, then the env.

    A missing config file yields defaults; a file that is not valid TOML
    raises ConfigError.
    """
    root = root.resolve()
    section: dict[str, Any] = {}
    cfg_path = _find_config_path(root)
    if cfg_path is not None:
        data = _read_toml(cfg_path)
        section = _extract_section(
            data, from_pyproject=cfg_path.name == PYPROJECT_FILENAME
        )

    local_path = root / LOCAL_CONFIG_FILENAME
    if local_path.exists():
        local = _extract_section(_read_toml(local_path), from_pyproject=False)
        section = _merge(section, local)

    cfg = config_from_section(section)
    return apply_env(cfg, os.environ if env is None else env)
