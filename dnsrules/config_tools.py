"""Generate a template configuration file and convert between config formats."""

from __future__ import annotations

import json
import tomllib
from collections.abc import Callable
from os import PathLike
from pathlib import Path
from typing import Any

import tomli_w
import yaml


class UnsupportedConfigError(ValueError):
    """The file extension names no supported configuration format."""


def _load_json(text: str) -> Any:
    return json.loads(text) if text.strip() else {}


def _dump_json(data: dict[str, Any]) -> str:
    return json.dumps(data, indent=2, sort_keys=True) + "\n"


def _load_yaml(text: str) -> Any:
    loaded = yaml.safe_load(text)
    return {} if loaded is None else loaded


def _dump_yaml(data: dict[str, Any]) -> str:
    return yaml.safe_dump(data, sort_keys=True, allow_unicode=True)


def _dump_toml(data: dict[str, Any]) -> str:
    return tomli_w.dumps(data)


_FORMATS: dict[str, tuple[Callable[[str], Any], Callable[[dict[str, Any]], str]]] = {
    "json": (_load_json, _dump_json),
    "toml": (tomllib.loads, _dump_toml),
    "yaml": (_load_yaml, _dump_yaml),
    "yml": (_load_yaml, _dump_yaml),
}

_TEMPLATE: dict[str, Any] = {
    "log": {"level": "info"},
    "plugins": [
        {
            "tag": "forward_google",
            "type": "forward",
            "args": {"upstreams": [{"addr": "https://8.8.8.8/dns-query"}]},
        },
        {
            "tag": "udp_server",
            "type": "udp_server",
            "args": {"entry": "forward_google", "listen": "127.0.0.1:53"},
        },
        {
            "tag": "tcp_server",
            "type": "tcp_server",
            "args": {"entry": "forward_google", "listen": "127.0.0.1:53"},
        },
    ],
}


def supported_extensions() -> list[str]:
    """Return the file extensions that name a supported format."""
    return list(_FORMATS)


def _format_of(path: Path) -> tuple[Callable[[str], Any], Callable[[dict[str, Any]], str]]:
    ext = path.suffix[1:]
    try:
        return _FORMATS[ext]
    except KeyError:
        raise UnsupportedConfigError(
            f"unsupported config type {ext!r} of {path}, "
            f"supported: {', '.join(_FORMATS)}"
        ) from None


def _read(path: Path) -> dict[str, Any]:
    load, _ = _format_of(path)
    text = path.read_text(encoding="utf-8")
    try:
        data = load(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise ValueError(f"failed to parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level of a config must be a mapping")
    return data


def _serialize(path: Path, data: dict[str, Any]) -> str:
    _, dump = _format_of(path)
    try:
        return dump(data)
    except TypeError as exc:
        raise ValueError(f"cannot write config as {path.suffix[1:]}: {exc}") from exc


def convert_config(src: str | PathLike[str], dst: str | PathLike[str]) -> None:
    """Read ``src`` and write it to ``dst`` in the format its extension names.

    ``dst`` must not exist yet.
    """
    src_path, dst_path = Path(src), Path(dst)
    data = _read(src_path)
    text = _serialize(dst_path, data)
    with open(dst_path, "x", encoding="utf-8") as fh:
        fh.write(text)


def generate_config(dst: str | PathLike[str]) -> None:
    """Write a template config to ``dst``, replacing any existing file."""
    dst_path = Path(dst)
    dst_path.write_text(_serialize(dst_path, _TEMPLATE), encoding="utf-8")