"""Configuration loading utilities for ctrlpanel-installer."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Set

from dotenv import load_dotenv

from . import paths
from .models import InstallOptions

# Load .env file if it exists
load_dotenv()

_DEFAULT_CONFIG_PATH = Path("config/default_config.json")

# 环境变量 -> InstallDefaults 字段
_INSTALL_ENV_VARS = {
    "CTRLPANEL_DOMAIN": "domain",
    "CTRLPANEL_SSL_EMAIL": "ssl_email",
    "CTRLPANEL_DB_ENGINE": "db_engine",
    "CTRLPANEL_DB_HOST": "db_host",
    "CTRLPANEL_DB_PORT": "db_port",
    "CTRLPANEL_DB_NAME": "db_name",
    "CTRLPANEL_DB_USER": "db_user",
    "CTRLPANEL_DB_PASSWORD": "db_password",
    "CTRLPANEL_MYSQL_ROOT_PASSWORD": "mysql_root_password",
    "CTRLPANEL_REPO_URL": "repo_url",
}


@dataclass
class InstallDefaults:
    """Fallback values for every install prompt."""

    domain: str = "panel.localhost"
    ssl_email: Optional[str] = None     # None -> admin@<domain>
    db_engine: str = "mariadb"
    db_host: str = "localhost"
    db_port: int = 3306
    db_name: str = "ctrlpanel"
    db_user: str = "ctrluser"
    db_password: Optional[str] = None   # None -> generated
    mysql_root_password: Optional[str] = None  # None -> socket auth
    repo_url: str = paths.REPO_URL


@dataclass
class CertificateConfig:
    """Let's Encrypt issuance retry settings."""

    max_attempts: int = 3
    retry_delay: float = 10.0
    probe_timeout: float = 5.0


@dataclass
class TargetConfig:
    """Where the plan runs: the local host, or a remote host over SSH."""

    host: Optional[str] = None          # None -> local
    port: int = 22
    username: Optional[str] = None
    auth_method: Optional[str] = None
    password: Optional[str] = None
    key_path: Optional[str] = None


@dataclass
class InteractionConfig:
    """Configuration for operator interaction."""

    mode: str = "cli"  # "cli" | "auto"
    assume_yes: bool = False


@dataclass
class LoggingConfig:
    level: str = "INFO"
    log_dir: str = str(paths.LOGS_DIR)


@dataclass
class AppConfig:
    """Top-level configuration."""

    install: InstallDefaults = field(default_factory=InstallDefaults)
    certificate: CertificateConfig = field(default_factory=CertificateConfig)
    target: TargetConfig = field(default_factory=TargetConfig)
    interaction: InteractionConfig = field(default_factory=InteractionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    # install fields set by the config file or CTRLPANEL_* variables
    explicit_install: Set[str] = field(default_factory=set)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        sections = {
            "install": InstallDefaults,
            "certificate": CertificateConfig,
            "target": TargetConfig,
            "interaction": InteractionConfig,
            "logging": LoggingConfig,
        }
        if not isinstance(payload, dict):
            raise ValueError("Configuration file must contain a JSON object")
        unknown_sections = sorted(k for k in payload if not k.startswith("_") and k not in sections)
        if unknown_sections:
            raise ValueError(f"Unknown configuration section(s): {', '.join(unknown_sections)}")

        def section(name: str) -> Dict[str, Any]:
            data = payload.get(name, {}) or {}
            if not isinstance(data, dict):
                raise ValueError(f"Configuration section '{name}' must be an object")
            # 过滤掉以下划线开头的注释字段
            values = {k: v for k, v in data.items() if not k.startswith("_")}
            known = {f.name for f in fields(sections[name])}
            unknown = sorted(set(values) - known)
            if unknown:
                raise ValueError(f"Unknown key(s) in '{name}' section: {', '.join(unknown)}")
            return values

        install = section("install")
        return cls(
            install=InstallDefaults(**{**InstallDefaults().__dict__, **install}),
            certificate=CertificateConfig(
                **{**CertificateConfig().__dict__, **section("certificate")}
            ),
            target=TargetConfig(**{**TargetConfig().__dict__, **section("target")}),
            interaction=InteractionConfig(
                **{**InteractionConfig().__dict__, **section("interaction")}
            ),
            logging=LoggingConfig(**{**LoggingConfig().__dict__, **section("logging")}),
            explicit_install=set(install),
        )

    def install_options(self) -> InstallOptions:
        """The install values the operator set explicitly, everything else None."""
        settable = {f.name for f in fields(InstallOptions)}
        return InstallOptions(
            **{name: getattr(self.install, name) for name in self.explicit_install if name in settable}
        )


def _apply_env_overrides(config: AppConfig) -> None:
    for env_name, attr in _INSTALL_ENV_VARS.items():
        value = os.getenv(env_name)
        if value is None:
            continue
        if attr == "db_port":
            try:
                setattr(config.install, attr, int(value))
            except ValueError:
                raise ValueError(f"{env_name} must be a number, got {value!r}")
        else:
            setattr(config.install, attr, value)
        config.explicit_install.add(attr)

    # SSH target
    env_host = os.getenv("CTRLPANEL_SSH_HOST")
    if env_host:
        config.target.host = env_host

    env_port = os.getenv("CTRLPANEL_SSH_PORT")
    if env_port:
        config.target.port = int(env_port)

    env_username = os.getenv("CTRLPANEL_SSH_USERNAME")
    if env_username:
        config.target.username = env_username

    env_password = os.getenv("CTRLPANEL_SSH_PASSWORD")
    if env_password:
        config.target.password = env_password
        config.target.auth_method = "password"

    env_key_path = os.getenv("CTRLPANEL_SSH_KEY_PATH")
    if env_key_path:
        config.target.key_path = env_key_path
        config.target.auth_method = "key"

    env_log_level = os.getenv("CTRLPANEL_LOG_LEVEL")
    if env_log_level:
        config.logging.level = env_log_level


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default location.

    Environment variables (higher priority than the config file):
    - CTRLPANEL_DOMAIN, CTRLPANEL_SSL_EMAIL, CTRLPANEL_DB_ENGINE, CTRLPANEL_DB_HOST,
      CTRLPANEL_DB_PORT, CTRLPANEL_DB_NAME, CTRLPANEL_DB_USER, CTRLPANEL_DB_PASSWORD,
      CTRLPANEL_MYSQL_ROOT_PASSWORD, CTRLPANEL_REPO_URL: install defaults
    - CTRLPANEL_SSH_HOST / _PORT / _USERNAME / _PASSWORD / _KEY_PATH: remote target
    - CTRLPANEL_LOG_LEVEL: logging level

    An explicit ``path`` that does not exist is an error; a missing default
    file just means built-in defaults.
    """

    if path:
        candidate = Path(path)
        if not candidate.is_file():
            raise FileNotFoundError(f"Could not find configuration file: {candidate}")
    else:
        candidate = _DEFAULT_CONFIG_PATH

    if candidate.is_file():
        with candidate.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        config = AppConfig.from_dict(data)
    else:
        config = AppConfig()

    _apply_env_overrides(config)
    return config
