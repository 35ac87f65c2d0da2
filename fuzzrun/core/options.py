# fuzzrun/core/options.py
"""
The runner's configuration record and the helpers that load it from disk.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from fuzzrun import config
from fuzzrun.core.context import CancelContext
from fuzzrun.core.parser import RequestParser


class RunnerConfig(BaseModel):
    """
    Request template and transport policy for a Runner.

    url, method, data and opaque are templates: fuzzing keywords and the
    {HOST}, {HOSTPORT} and {PORT} placeholders are substituted per request.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)

    url: str = ""
    method: str = "GET"
    data: str = ""
    opaque: str = ""
    headers: Dict[str, str] = Field(default_factory=dict)

    timeout: int = Field(default=config.DEFAULT_TIMEOUT, ge=1)
    proxy_url: str = ""
    replay_proxy_url: str = ""
    sni: str = ""
    follow_redirects: bool = config.FOLLOW_REDIRECTS
    ignore_body: bool = False
    output_directory: str = ""

    context: CancelContext = Field(default_factory=CancelContext, exclude=True)

    @field_validator("headers", mode="before")
    @classmethod
    def _headers_from_list(cls, value):
        # "Name: value" lines are accepted as well as a mapping
        if isinstance(value, (list, tuple)):
            headers = {}
            for line in value:
                name, sep, val = str(line).partition(":")
                if not sep:
                    raise ValueError(f"header {line!r} is not in 'Name: value' form")
                headers[name.strip()] = val.strip()
            return headers
        return value

    @property
    def capture_raw(self) -> bool:
        """Raw wire capture is enabled by setting an output directory."""
        return len(self.output_directory) > 0

    @classmethod
    def from_raw_request(cls, raw_request: str, target: Optional[str] = None, **overrides) -> "RunnerConfig":
        """
        Builds a config whose template is taken from a raw HTTP request.

        Args:
            raw_request: The request text (request line, headers, body).
            target: Scheme and authority to send it to, e.g. "https://example.com".
            **overrides: Any other RunnerConfig fields.
        """
        parsed = RequestParser(raw_request, target).parse()
        headers = dict(parsed["headers"])
        headers.update(overrides.pop("headers", {}) or {})
        return cls(
            url=parsed["url"],
            method=parsed["method"],
            data=parsed["data"],
            headers=headers,
            **overrides,
        )


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merges two dictionaries, with override values taking precedence.

    Args:
        base: Base dictionary
        override: Override dictionary

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_config_data(config_path: Path) -> Dict[str, Any]:
    """
    Loads a YAML or JSON config file, following its 'extends' chain.

    A relative 'extends' path is resolved from the directory of the file
    that names it. Keys in the extending file override the base file.

    Raises:
        FileNotFoundError: If the file or one of its bases does not exist.
    """
    config_path = Path(config_path)
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open('r', encoding='utf-8') as f:
        if config_path.suffix.lower() in ('.yaml', '.yml'):
            config_data = yaml.safe_load(f) or {}
        else:
            config_data = json.load(f)

    extends_path = config_data.pop('extends', None)
    if not extends_path:
        return config_data

    base_path = Path(extends_path)
    if not base_path.is_absolute():
        base_path = config_path.parent / base_path
    if not base_path.exists():
        raise FileNotFoundError(f"Base configuration file not found: {base_path}")

    return deep_merge(load_config_data(base_path), config_data)


def load_config(config_path, **overrides) -> RunnerConfig:
    """Loads a RunnerConfig from a YAML or JSON file. Keyword overrides win over the file."""
    data = load_config_data(Path(config_path))
    data.update({k: v for k, v in overrides.items() if v is not None})
    return RunnerConfig(**data)
