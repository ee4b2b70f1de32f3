"""Configuration loader with type-safe dataclasses."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


DEFAULT_USER_AGENT = "LinkHealth-Monitor/1.0"

# Throttling strategies understood by the batch scheduler.
STRATEGIES = ("batch", "pool")


@dataclass(frozen=True)
class CheckerConfig:
    """Configuration for the checking engine."""

    max_concurrent_checks: int = 10  # batch width
    request_timeout_ms: int = 30000  # per HTTP request / tool invocation
    retry_attempts: int = 1  # attempts per URL, including the first
    batch_delay_seconds: float = 1.0  # pause between batches
    strategy: str = "batch"
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        if self.max_concurrent_checks <= 0:
            raise ConfigError(
                f"max_concurrent_checks must be a positive number (got {self.max_concurrent_checks})"
            )
        if self.request_timeout_ms <= 0:
            raise ConfigError(f"request_timeout_ms must be a positive number (got {self.request_timeout_ms})")
        if self.retry_attempts < 1:
            raise ConfigError(f"retry_attempts must be at least 1 (got {self.retry_attempts})")
        if self.batch_delay_seconds < 0:
            raise ConfigError(f"batch_delay_seconds must be non-negative (got {self.batch_delay_seconds})")
        if self.strategy not in STRATEGIES:
            raise ConfigError(f"Invalid strategy '{self.strategy}'. Must be one of: {STRATEGIES}")
        if not self.user_agent:
            raise ConfigError("User-Agent cannot be empty")

    @property
    def request_timeout_seconds(self) -> float:
        return self.request_timeout_ms / 1000


@dataclass(frozen=True)
class AuthConfig:
    """Configuration for managed-store authentication.

    With auto auth enabled the credential is fetched from the credential tool
    and refreshed on authentication failures. Otherwise the static cookie
    string is passed to the download tool as-is.
    """

    use_auto_auth: bool = True
    cookies: str = ""
    credential_tool: str = "absctl"
    download_tool: str = "absctl"

    def __post_init__(self) -> None:
        if not self.credential_tool:
            raise ConfigError("credential_tool cannot be empty")
        if not self.download_tool:
            raise ConfigError("download_tool cannot be empty")


@dataclass(frozen=True)
class SourceConfig:
    """Configuration for the record source."""

    path: str = "records.yaml"

    def __post_init__(self) -> None:
        if not self.path:
            raise ConfigError("Record source path cannot be empty")


@dataclass(frozen=True)
class OutputConfig:
    """Configuration for report output."""

    json: bool = True
    csv: bool = True
    directory: str = "."


@dataclass(frozen=True)
class Config:
    """Main configuration container."""

    checker: CheckerConfig = field(default_factory=CheckerConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def _as_int(value: object, name: str) -> int:
    try:
        return int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}")


def _as_float(value: object, name: str) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}")


def _as_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _section(data: dict, name: str) -> dict:
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' section must be a dictionary")
    return section


def _parse_checker_config(data: dict) -> CheckerConfig:
    """Parse checker configuration section."""
    return CheckerConfig(
        max_concurrent_checks=_as_int(data.get("max_concurrent_checks", 10), "max_concurrent_checks"),
        request_timeout_ms=_as_int(data.get("request_timeout_ms", 30000), "request_timeout_ms"),
        retry_attempts=_as_int(data.get("retry_attempts", 1), "retry_attempts"),
        batch_delay_seconds=_as_float(data.get("batch_delay_seconds", 1.0), "batch_delay_seconds"),
        strategy=str(data.get("strategy", "batch")),
        user_agent=str(data.get("user_agent", DEFAULT_USER_AGENT)),
    )


def _parse_auth_config(data: dict) -> AuthConfig:
    """Parse auth configuration section."""
    cookies = data.get("cookies")
    return AuthConfig(
        use_auto_auth=_as_bool(data.get("use_auto_auth", True)),
        cookies=str(cookies) if cookies is not None else "",
        credential_tool=str(data.get("credential_tool", "absctl")),
        download_tool=str(data.get("download_tool", "absctl")),
    )


def _parse_source_config(data: dict) -> SourceConfig:
    """Parse record source configuration section."""
    return SourceConfig(path=str(data.get("path", "records.yaml")))


def _parse_output_config(data: dict) -> OutputConfig:
    """Parse output configuration section."""
    return OutputConfig(
        json=_as_bool(data.get("json", True)),
        csv=_as_bool(data.get("csv", True)),
        directory=str(data.get("directory", ".")),
    )


# (environment variable, section, key, converter, expected value)
_ENV_OVERRIDES = (
    ("LINKHEALTH_MAX_CONCURRENT_CHECKS", "checker", "max_concurrent_checks", int, "an integer"),
    ("LINKHEALTH_REQUEST_TIMEOUT_MS", "checker", "request_timeout_ms", int, "an integer"),
    ("LINKHEALTH_RETRY_ATTEMPTS", "checker", "retry_attempts", int, "an integer"),
    ("LINKHEALTH_BATCH_DELAY_SECONDS", "checker", "batch_delay_seconds", float, "a number"),
    ("LINKHEALTH_USE_AUTO_AUTH", "auth", "use_auto_auth", _as_bool, "a boolean"),
    ("LINKHEALTH_DATA_STORE_COOKIES", "auth", "cookies", str, "a string"),
    ("LINKHEALTH_RECORDS_PATH", "source", "path", str, "a string"),
    ("LINKHEALTH_OUTPUT_DIR", "output", "directory", str, "a string"),
    ("LINKHEALTH_GENERATE_JSON", "output", "json", _as_bool, "a boolean"),
    ("LINKHEALTH_GENERATE_CSV", "output", "csv", _as_bool, "a boolean"),
)


def _apply_env_overrides(config_data: dict) -> dict:
    """Apply environment variable overrides to configuration.

    Supported overrides:
    - LINKHEALTH_MAX_CONCURRENT_CHECKS: Override checker.max_concurrent_checks
    - LINKHEALTH_REQUEST_TIMEOUT_MS: Override checker.request_timeout_ms
    - LINKHEALTH_RETRY_ATTEMPTS: Override checker.retry_attempts
    - LINKHEALTH_BATCH_DELAY_SECONDS: Override checker.batch_delay_seconds
    - LINKHEALTH_USE_AUTO_AUTH: Override auth.use_auto_auth (true/false)
    - LINKHEALTH_DATA_STORE_COOKIES: Override auth.cookies
    - LINKHEALTH_RECORDS_PATH: Override source.path
    - LINKHEALTH_OUTPUT_DIR: Override output.directory
    - LINKHEALTH_GENERATE_JSON / LINKHEALTH_GENERATE_CSV: Override output.json / output.csv
    """
    for env_name, section, key, convert, expected in _ENV_OVERRIDES:
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        if not isinstance(config_data.get(section), dict):
            config_data[section] = {}
        try:
            config_data[section][key] = convert(raw)
        except ValueError:
            raise ConfigError(f"{env_name} must be {expected}, got {raw!r}")

    return config_data


def load_config(config_path: str | None = None) -> Config:
    """Load and validate configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file, or None to use
            defaults plus environment overrides.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid.
    """
    data: dict = {}

    if config_path is not None:
        path = Path(config_path)

        if not path.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")

        try:
            with open(path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML configuration: {e}")
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file: {e}")

        if loaded is not None:
            if not isinstance(loaded, dict):
                raise ConfigError("Configuration must be a YAML dictionary")
            data = loaded

    data = _apply_env_overrides(data)

    return Config(
        checker=_parse_checker_config(_section(data, "checker")),
        auth=_parse_auth_config(_section(data, "auth")),
        source=_parse_source_config(_section(data, "source")),
        output=_parse_output_config(_section(data, "output")),
    )
