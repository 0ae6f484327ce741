import logging
import os
import re
from argparse import ArgumentDefaultsHelpFormatter, ArgumentParser
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator
from yaml import safe_load

DEFAULT_API_URL = "https://api.scaleway.com"
DEFAULT_TIMEOUT = 20
DEFAULT_RETENTION_DAYS = 30
LOG_FORMAT = "[%(asctime)s] [%(levelname)-8s] |> %(message)s"

# latest, latest-<anything>, or a SemVer 2.0.0 version
DEFAULT_TAG_PATTERN = (
    r"^latest(-.+)?$"
    r"|^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)

# Numeric levels follow the -4/0/4/8 scheme used by the deployment env
LOG_LEVELS = {
    -4: logging.DEBUG,
    0: logging.INFO,
    4: logging.WARNING,
    8: logging.ERROR,
}

ENV_FIELDS = {
    "REGISTRY_ACCESS_KEY": "access_key",
    "REGISTRY_SECRET_KEY": "secret_key",
    "REGISTRY_REGION": "region",
    "REGISTRY_PROJECT_ID": "project_id",
    "REGISTRY_NAMESPACE": "namespace",
    "REGISTRY_API_URL": "api_url",
    "REGISTRY_TIMEOUT": "timeout",
    "LOG_LEVEL": "log_level",
}

REQUIRED_FIELDS = {
    "REGISTRY_ACCESS_KEY": "Scaleway access key is required",
    "REGISTRY_SECRET_KEY": "Scaleway secret key is required",
    "REGISTRY_REGION": "Region is required",
    "REGISTRY_PROJECT_ID": "Scaleway project ID is required",
    "REGISTRY_NAMESPACE": "Registry namespace is required",
}

RETENTION_ENV_FIELDS = {
    "RETENTION_DAYS": "retention_days",
    "DRY_RUN": "dry_run",
    "PRESERVE_TAG_PATTERNS": "preserve_pattern",
}

TRUE_VALUES = {"1", "t", "true", "y", "yes", "on"}
FALSE_VALUES = {"0", "f", "false", "n", "no", "off"}


class ConfigError(Exception):
    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class RetentionConfig(BaseModel):
    """Purge policy for a run.

    Never raises on bad input: an unusable retention window forces dry-run
    with the default window, an unusable pattern falls back to the default
    one.
    """

    model_config = ConfigDict(frozen=True)

    retention_days: int = DEFAULT_RETENTION_DAYS
    dry_run: bool = True
    preserve_pattern: re.Pattern = re.compile(DEFAULT_TAG_PATTERN)

    @model_validator(mode="before")
    @classmethod
    def enforce_safe_retention(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        dry_run = parse_bool(data.get("dry_run"))
        if dry_run is None:
            logging.warning("Failed to parse DRY_RUN. Enforcing Dry Run mode")
            dry_run = True
        data["dry_run"] = dry_run

        try:
            days = int(data.get("retention_days"))
        except (TypeError, ValueError):
            days = 0
        if days < 1:
            logging.warning(
                f"Failed to parse RETENTION_DAYS. Enforcing Dry Run mode with a "
                f"{DEFAULT_RETENTION_DAYS} days retention period"
            )
            data["dry_run"] = True
            days = DEFAULT_RETENTION_DAYS
        data["retention_days"] = days
        return data

    @field_validator("preserve_pattern", mode="before")
    @classmethod
    def compile_preserve_pattern(cls, value: Any) -> re.Pattern:
        if isinstance(value, re.Pattern):
            return value
        if not value:
            logging.info("No PRESERVE_TAG_PATTERNS given. Preserving SemVer 2.0.0 and latest tags")
            return re.compile(DEFAULT_TAG_PATTERN)
        try:
            return re.compile(value)
        except (re.error, TypeError) as err:
            logging.warning(
                f"Failed to parse PRESERVE_TAG_PATTERNS: {err}. Enforcing SemVer 2.0.0 tags"
            )
            return re.compile(DEFAULT_TAG_PATTERN)


class Settings(BaseModel):
    access_key: str
    secret_key: str
    region: str
    project_id: str
    namespace: str
    api_url: str = DEFAULT_API_URL
    timeout: int = DEFAULT_TIMEOUT
    log_level: int = logging.INFO
    retention: RetentionConfig

    @model_validator(mode="before")
    @classmethod
    def check_required(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        for env_name, message in REQUIRED_FIELDS.items():
            if not str(data.get(ENV_FIELDS[env_name]) or "").strip():
                logging.critical(message)
                raise ConfigError(env_name, message)
        return data

    @field_validator("access_key", "secret_key", "region", "project_id", "namespace")
    @classmethod
    def strip_value(cls, value: str) -> str:
        return value.strip()

    @field_validator("api_url")
    @classmethod
    def strip_api_url(cls, value: str) -> str:
        return value.strip().rstrip("/") or DEFAULT_API_URL

    @field_validator("timeout", mode="before")
    @classmethod
    def set_timeout(cls, value: Any) -> int:
        try:
            value = int(value)
        except (TypeError, ValueError):
            value = 0
        if not 0 < value <= 120:
            logging.error(f"Timeout must be in range 1-120. Set {DEFAULT_TIMEOUT}")
            return DEFAULT_TIMEOUT
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def set_log_level(cls, value: Any) -> int:
        if value in (None, ""):
            return logging.INFO
        if isinstance(value, str) and value.strip().upper() in logging.getLevelNamesMapping():
            return logging.getLevelNamesMapping()[value.strip().upper()]
        try:
            return LOG_LEVELS[int(value)]
        except (KeyError, TypeError, ValueError):
            logging.warning("Invalid log level. Enforcing level to Info")
            return logging.INFO

    @property
    def region_url(self) -> str:
        return f"{self.api_url}/registry/v1/regions/{self.region}"


class Args(BaseModel):
    config: Path | None = None
    dry_run: bool = False
    deadline: float | None = None
    report: Path | None = None
    log_file: Path | None = None
    http_logs: bool = False

    @classmethod
    def from_args(cls, argv: list[str] | None = None) -> "Args":
        parser = ArgumentParser(
            description="Purge container registry tags older than the retention window",
            formatter_class=ArgumentDefaultsHelpFormatter,
        )
        parser.add_argument(
            "--config",
            help="YAML file with settings. Environment variables take precedence",
            required=False,
            default=None,
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report what would be deleted without deleting anything",
            required=False,
            default=False,
        )
        parser.add_argument(
            "--deadline",
            help="Abort the run after this many seconds",
            required=False,
            default=None,
            type=float,
        )
        parser.add_argument(
            "--report",
            help="Write the JSON run report to this file",
            required=False,
            default=None,
        )
        parser.add_argument(
            "--log-file",
            help="Also write logs to this file",
            required=False,
            default=None,
        )
        parser.add_argument(
            "--http-logs",
            action="store_true",
            help="Enable http logs for every request",
            required=False,
            default=False,
        )
        args = parser.parse_args(argv)
        if args.deadline is not None and args.deadline <= 0:
            parser.error("--deadline must be greater than 0")

        return cls(
            config=args.config,
            dry_run=args.dry_run,
            deadline=args.deadline,
            report=args.report,
            log_file=args.log_file,
            http_logs=args.http_logs,
        )


def parse_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    value = str(value).strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    return None


def read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError("--config", f"file {path} does not exist")
    with open(path, "r") as config_file:
        data = safe_load(config_file) or {}
    if not isinstance(data, dict):
        raise ConfigError("--config", f"file {path} must contain a mapping")
    return data


def load_settings(args: Args, environ: Mapping[str, str] | None = None) -> Settings:
    environ = os.environ if environ is None else environ
    data: dict[str, Any] = {}
    if args.config:
        data = read_config_file(args.config)
    retention = data.pop("retention", None) or {}
    if not isinstance(retention, dict):
        raise ConfigError("--config", "retention must be a mapping")
    retention = dict(retention)

    for env_name, field in ENV_FIELDS.items():
        if env_name in environ:
            data[field] = environ[env_name]
    for env_name, field in RETENTION_ENV_FIELDS.items():
        if env_name in environ:
            retention[field] = environ[env_name]
    if args.dry_run:
        retention["dry_run"] = True

    try:
        settings = Settings.model_validate({**data, "retention": retention})
    except ValidationError as err:
        raise ConfigError("settings", f"invalid configuration: {err}") from err

    logging.info(f"Dry Run mode: {settings.retention.dry_run}")
    logging.info(f"Retention Period: {settings.retention.retention_days} days")
    logging.info(f"Tags to preserve: {settings.retention.preserve_pattern.pattern}")
    return settings
