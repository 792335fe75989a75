"""Configuration management using Pydantic.

Provides:
- Typed configuration models with validation
- YAML file loading with defaults
- Environment variable overrides
- Configuration initialization and display
"""

import codecs
import os
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from winfw.core.exceptions import ConfigurationError


# Default configuration paths
PROGRAM_DATA_DIR = Path(os.environ.get("PROGRAMDATA", r"C:\ProgramData")) / "winfw"
DEFAULT_CONFIG_PATH = PROGRAM_DATA_DIR / "config.yaml"
DEFAULT_AUDIT_LOG_PATH = PROGRAM_DATA_DIR / "audit.log"

# Console code page used by netsh and powershell.exe on zh-CN hosts
DEFAULT_ENCODING = "gbk"
DEFAULT_TIMEOUT_SECONDS = 120.0


class BackendChoice(str, Enum):
    """Which backend the factory should build."""
    AUTO = "auto"
    NETSH = "netsh"
    POWERSHELL = "powershell"


def check_encoding(v: Optional[str]) -> Optional[str]:
    """Reject code page names Python cannot decode with."""
    if v is None:
        return v
    try:
        codecs.lookup(v)
    except LookupError as e:
        raise ValueError(f"Unknown encoding: {v}") from e
    return v


class ExecutionConfig(BaseModel):
    """External command execution settings."""

    encoding: str = DEFAULT_ENCODING
    timeout: Optional[float] = DEFAULT_TIMEOUT_SECONDS

    @field_validator("encoding")
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        return check_encoding(v)

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("timeout must be positive (or null to disable)")
        return v


class NetshConfig(BaseModel):
    """netsh backend settings."""

    path: str = "netsh"


class PowerShellConfig(BaseModel):
    """PowerShell backend settings."""

    path: str = "powershell.exe"


class AuditConfig(BaseModel):
    """Audit log settings."""

    enabled: bool = True
    log_path: Path = DEFAULT_AUDIT_LOG_PATH


class FirewallConfig(BaseModel):
    """Root configuration model.

    Loaded from %ProgramData%\\winfw\\config.yaml; defaults apply when the
    file does not exist.
    """

    backend: BackendChoice = BackendChoice.AUTO
    min_powershell_version: str = "10.0"

    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    netsh: NetshConfig = Field(default_factory=NetshConfig)
    powershell: PowerShellConfig = Field(default_factory=PowerShellConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    @field_validator("min_powershell_version")
    @classmethod
    def validate_min_version(cls, v: str) -> str:
        parts = v.split(".")
        if not parts or not all(p.isdigit() for p in parts):
            raise ValueError("min_powershell_version must look like '10.0'")
        return v

    @classmethod
    def load(cls, path: Path) -> "FirewallConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to configuration file

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                hint="Create it with: winfw config init",
            )

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {path}",
                details=[str(e)],
            ) from e
        except PermissionError:
            raise ConfigurationError(
                f"Cannot read configuration file: {path}",
                hint="Check file permissions or run from an elevated prompt",
            )

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration must be a mapping: {path}",
            )

        try:
            return cls(**data)
        except Exception as e:
            raise ConfigurationError(
                f"Invalid configuration: {e}",
                details=[str(e)],
            ) from e

    @classmethod
    def load_or_default(cls, path: Optional[Path] = None) -> "FirewallConfig":
        """Load configuration, falling back to defaults if file doesn't exist."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if path.exists():
            return cls.load(path)
        return cls()

    def to_yaml(self) -> str:
        """Convert configuration to YAML string."""
        data = self.model_dump(mode="json", exclude_none=False)
        return yaml.dump(data, default_flow_style=False, sort_keys=False)


class EnvironmentOverrides(BaseSettings):
    """Overrides read from WINFW_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="WINFW_", extra="ignore")

    backend: Optional[BackendChoice] = None
    encoding: Optional[str] = None
    timeout: Optional[float] = None

    @field_validator("encoding")
    @classmethod
    def validate_encoding(cls, v: Optional[str]) -> Optional[str]:
        return check_encoding(v)

    @classmethod
    def from_environment(cls) -> "EnvironmentOverrides":
        """Read the WINFW_* variables.

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        try:
            return cls()
        except ValidationError as e:
            raise ConfigurationError(
                "Invalid WINFW_* environment variable",
                details=[
                    f"WINFW_{str(error['loc'][0]).upper()}: {error['msg']}"
                    for error in e.errors()
                ],
                hint="Fix or unset the variable and try again",
            ) from e


class AppConfig:
    """Application configuration combining config file and environment.

    This is the main interface for accessing configuration throughout the app.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[FirewallConfig] = None,
        overrides: Optional[EnvironmentOverrides] = None,
    ) -> None:
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = config or FirewallConfig.load_or_default(self.config_path)
        self._overrides = overrides if overrides is not None else EnvironmentOverrides.from_environment()

    @property
    def config(self) -> FirewallConfig:
        """Get the file-backed configuration."""
        return self._config

    @property
    def overrides(self) -> EnvironmentOverrides:
        """Get the environment overrides."""
        return self._overrides

    @property
    def backend(self) -> BackendChoice:
        return self._overrides.backend or self._config.backend

    @property
    def encoding(self) -> str:
        return self._overrides.encoding or self._config.execution.encoding

    @property
    def timeout(self) -> Optional[float]:
        if self._overrides.timeout is not None:
            return self._overrides.timeout if self._overrides.timeout > 0 else None
        return self._config.execution.timeout

    @property
    def min_powershell_version(self) -> tuple[int, ...]:
        return tuple(int(p) for p in self._config.min_powershell_version.split("."))

    @property
    def netsh_path(self) -> str:
        return self._config.netsh.path

    @property
    def powershell_path(self) -> str:
        return self._config.powershell.path

    @property
    def audit(self) -> AuditConfig:
        return self._config.audit


def get_example_config() -> str:
    """Generate example configuration file content."""
    return f"""# winfw configuration
# Environment overrides: WINFW_BACKEND, WINFW_ENCODING, WINFW_TIMEOUT

# Backend selection: auto, netsh, powershell
# auto picks PowerShell when the OS version is >= min_powershell_version, netsh otherwise
backend: auto
min_powershell_version: "10.0"

execution:
  encoding: {DEFAULT_ENCODING}   # console code page of netsh/powershell output
  timeout: {int(DEFAULT_TIMEOUT_SECONDS)}      # seconds; null waits forever

netsh:
  path: netsh

powershell:
  path: powershell.exe

audit:
  enabled: true
  log_path: {DEFAULT_AUDIT_LOG_PATH}
"""


def init_config(path: Path, force: bool = False) -> None:
    """Initialize a new configuration file.

    Raises:
        ConfigurationError: If file exists and force is False
    """
    if path.exists() and not force:
        raise ConfigurationError(
            f"Configuration file already exists: {path}",
            hint="Use --force to overwrite",
        )

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(get_example_config(), encoding="utf-8")
