from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import requests

from .config import (
    BACKEND_BLOOM,
    BACKEND_GPT3,
    BACKEND_GPTJ,
    BloomConfig,
    Config,
    GPT3Config,
    GPTJConfig,
)
from .errors import BackendError


class GenerateClient(Protocol):
    def generate(self, prompt: str) -> list[str]: ...


class EditClient(Protocol):
    def edit(self, input_text: str, instruction: str) -> list[str]: ...


def _post_json(
    url: str, payload: dict[str, Any], headers: dict[str, str], timeout: float
) -> Any:
    try:
        resp = requests.post(url, headers=headers, json=payload, timeout=timeout)
    except requests.exceptions.Timeout as e:
        raise BackendError(f"request to {url} timed out after {timeout}s") from e
    except requests.exceptions.RequestException as e:
        raise BackendError(f"request to {url} failed: {e}") from e
    try:
        resp.raise_for_status()
    except requests.HTTPError as e:
        body = getattr(resp, "text", "")
        raise BackendError(f"{url} returned HTTP {resp.status_code}: {body}") from e
    try:
        return resp.json()
    except ValueError as e:
        raise BackendError(f"{url} returned a non-JSON response") from e


def _choice_texts(data: Any, url: str) -> list[str]:
    choices = data.get("choices") if isinstance(data, dict) else None
    if not isinstance(choices, list):
        raise BackendError(f"{url} response has no 'choices'")
    return [str(c.get("text", "")) for c in choices if isinstance(c, dict)]


@dataclass(frozen=True)
class GPT3Client:
    """OpenAI-compatible completions and edits endpoints."""

    config: GPT3Config
    timeout: float = 120.0

    def _headers(self) -> dict[str, str]:
        if not self.config.api_key:
            raise BackendError(
                "No API key for gpt-3; set EDITCRATE_GPT3_APIKEY or gpt3.api_key"
            )
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        if self.config.org_id:
            headers["OpenAI-Organization"] = self.config.org_id
        return headers

    def _endpoint(self, name: str) -> str:
        return self.config.url.rstrip("/") + "/" + name

    def generate(self, prompt: str) -> list[str]:
        headers = self._headers()
        url = self._endpoint("completions")
        payload: dict[str, Any] = {
            "model": self.config.model,
            "prompt": prompt,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "n": self.config.n,
            "stream": False,
            "echo": False,
            "stop": self.config.stop,
            "user": self.config.user,
        }
        if self.config.top_p is not None:
            payload["top_p"] = self.config.top_p
        return _choice_texts(_post_json(url, payload, headers, self.timeout), url)

    def edit(self, input_text: str, instruction: str) -> list[str]:
        headers = self._headers()
        url = self._endpoint("edits")
        payload: dict[str, Any] = {
            "model": self.config.edit_model,
            "input": input_text,
            "instruction": instruction,
            "n": self.config.n,
            "temperature": self.config.temperature,
        }
        if self.config.top_p is not None:
            payload["top_p"] = self.config.top_p
        return _choice_texts(_post_json(url, payload, headers, self.timeout), url)


@dataclass(frozen=True)
class GPTJClient:
    config: GPTJConfig
    timeout: float = 120.0

    def generate(self, prompt: str) -> list[str]:
        payload = {
            "context": prompt,
            "token_max_length": self.config.response_length,
            "temperature": self.config.temperature,
            "top_p": self.config.top_p,
        }
        data = _post_json(self.config.url, payload, {}, self.timeout)
        if not isinstance(data, dict) or "text" not in data:
            raise BackendError(f"{self.config.url} response has no 'text'")
        return [str(data["text"])]


@dataclass(frozen=True)
class BloomClient:
    config: BloomConfig
    timeout: float = 120.0

    def generate(self, prompt: str) -> list[str]:
        headers = {}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        payload = {
            "inputs": prompt,
            "parameters": {
                "max_new_tokens": self.config.max_new_tokens,
                "temperature": self.config.temperature or None,
                "return_full_text": False,
            },
        }
        data = _post_json(self.config.url, payload, headers, self.timeout)
        items = data if isinstance(data, list) else [data]
        texts = [
            str(item["generated_text"])
            for item in items
            if isinstance(item, dict) and "generated_text" in item
        ]
        if not texts:
            raise BackendError(f"{self.config.url} response has no 'generated_text'")
        return texts


def create_generate_client(config: Config) -> GenerateClient:
    if config.backend == BACKEND_GPT3:
        return GPT3Client(config.gpt3, timeout=config.timeout)
    if config.backend == BACKEND_GPTJ:
        return GPTJClient(config.gptj, timeout=config.timeout)
    if config.backend == BACKEND_BLOOM:
        return BloomClient(config.bloom, timeout=config.timeout)
    raise BackendError(f"unknown backend: {config.backend!r}")


def create_edit_client(config: Config) -> EditClient:
    if config.backend == BACKEND_GPT3:
        return GPT3Client(config.gpt3, timeout=config.timeout)
    raise BackendError(f"backend {config.backend!r} does not support edits")
