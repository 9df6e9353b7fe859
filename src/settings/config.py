from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Any

import orjson
import tomllib
from pydantic import BaseModel, ConfigDict, Field, field_validator

from contract.markers import LOCK_FILENAME

CONFIG_FILENAME = "logref.toml"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class MacroSpec(BaseModel):
    """A logging macro recognised by the scanner."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    module: str = Field(description="Module path of the macro (e.g., 'log')")
    name: str = Field(description="Macro name without the trailing '!'")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not _IDENTIFIER.match(v):
            msg = f"Invalid macro name '{v}': must be an identifier"
            raise ValueError(msg)
        return v

    @field_validator("module")
    @classmethod
    def validate_module(cls, v: str) -> str:
        segments = v.split("::")
        if not v or not all(_IDENTIFIER.match(segment) for segment in segments):
            msg = f"Invalid macro module '{v}': must be a '::'-separated path"
            raise ValueError(msg)
        return v

    @property
    def module_path(self) -> tuple[str, ...]:
        return tuple(self.module.split("::"))

    @property
    def qualified_path(self) -> tuple[str, ...]:
        return (*self.module_path, self.name)


class RustConfig(BaseModel):
    """Rust-specific scanning options."""

    model_config = ConfigDict(extra="forbid")

    extensions: list[str] = Field(
        default_factory=lambda: ["rs"],
        description="File extensions to scan (without the leading dot)",
    )
    log_macros: list[MacroSpec] = Field(
        description="Logging macros whose invocations carry references",
    )

    @field_validator("extensions", mode="before")
    @classmethod
    def normalize_extensions(cls, v: Any) -> Any:
        """Strip a leading dot from each configured extension.

        Note: this runs in `mode="before"` so that a clear error is reported
        for the raw TOML value.
        """

        if not isinstance(v, list):
            msg = "extensions must be a list of strings"
            raise ValueError(msg)

        normalized: list[str] = []
        for ext in v:
            if not isinstance(ext, str):
                msg = "extensions must be a list of strings"
                raise ValueError(msg)
            ext = ext.strip().lstrip(".")
            if not ext:
                msg = "extensions must not contain empty values"
                raise ValueError(msg)
            normalized.append(ext)

        if not normalized:
            msg = "at least one extension must be configured"
            raise ValueError(msg)

        return normalized

    @field_validator("log_macros")
    @classmethod
    def validate_log_macros(cls, v: list[MacroSpec]) -> list[MacroSpec]:
        if not v:
            msg = "at least one log macro must be configured"
            raise ValueError(msg)
        return v


class LogRefConfig(BaseModel):
    """Configuration for a logref run."""

    model_config = ConfigDict(extra="forbid")

    source_dir: str = Field(description="Root directory to scan")
    structured: bool = Field(
        default=False,
        description="Place references as key-value arguments instead of text",
    )
    use_cache: bool = Field(
        default=True,
        description="Skip re-scanning files unchanged since the last run",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="Glob patterns (relative to source_dir) for files to skip",
    )
    respect_gitignore: bool = Field(
        default=True,
        description="Skip files matched by the source root .gitignore",
    )
    rust: RustConfig = Field(description="Rust scanning options")

    # Directory holding the config file; set by load_config.
    config_dir: Path = Field(default_factory=Path.cwd, exclude=True)

    @property
    def macros(self) -> list[MacroSpec]:
        return self.rust.log_macros

    @property
    def extensions(self) -> list[str]:
        return self.rust.extensions

    @property
    def lock_path(self) -> Path:
        return self.config_dir / LOCK_FILENAME

    @property
    def extraction_digest(self) -> str:
        """Digest of the settings that decide whether a reference is present.

        Cached lock entries are only valid for the digest they were recorded
        under.
        """
        payload = {
            "structured": self.structured,
            "macros": sorted([macro.module, macro.name] for macro in self.macros),
        }
        data = orjson.dumps(payload, option=orjson.OPT_SORT_KEYS)
        return hashlib.sha256(data).hexdigest()

    def resolve_source_dir(self) -> Path:
        """Resolve source_dir against the directory containing the config."""
        source_path = Path(self.source_dir).expanduser()
        if not source_path.is_absolute():
            source_path = self.config_dir / source_path
        return source_path.resolve()


class ConfigError(Exception):
    """Raised when the config file is missing or cannot be parsed."""


def load_config(config_path: Path) -> LogRefConfig:
    """Load and validate configuration from a TOML file."""
    config_path = Path(config_path)

    if not config_path.is_file():
        msg = f"Config file not found: {config_path}"
        raise ConfigError(msg)

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {config_path}: {e}"
        raise ConfigError(msg) from e
    except OSError as e:
        msg = f"Failed to read {config_path}: {e}"
        raise ConfigError(msg) from e

    if "config_dir" in data:
        msg = f"Invalid config in {config_path}: 'config_dir' is not a config key"
        raise ConfigError(msg)

    try:
        config = LogRefConfig.model_validate(data)
    except Exception as e:
        msg = f"Invalid config in {config_path}: {e}"
        raise ConfigError(msg) from e

    config.config_dir = config_path.resolve().parent
    return config
