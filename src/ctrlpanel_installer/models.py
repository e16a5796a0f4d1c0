"""Install configuration and the managed footprint."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from . import paths
from .errors import FootprintViolation
from .utils.logging import mask

LOCAL_DB_HOSTS = ("localhost", "127.0.0.1", "::1")
LOCAL_DOMAINS = ("localhost", "panel.localhost", "127.0.0.1", "::1")


class DbEngine(str, Enum):
    """Database server flavour installed from the Ubuntu archive."""
    MARIADB = "mariadb"
    MYSQL = "mysql"

    @property
    def server_package(self) -> str:
        return "mariadb-server" if self is DbEngine.MARIADB else "mysql-server"

    @property
    def service_name(self) -> str:
        return "mariadb" if self is DbEngine.MARIADB else "mysql"

    @classmethod
    def parse(cls, value: str) -> "DbEngine":
        normalized = (value or "").strip().lower()
        for engine in cls:
            if engine.value == normalized:
                return engine
        raise ValueError(f"Unknown database engine: {value!r} (expected mariadb or mysql)")


@dataclass
class InstallOptions:
    """Non-interactive input; every unset field falls back to its default."""

    domain: Optional[str] = None
    ssl_email: Optional[str] = None
    db_engine: Optional[str] = None
    db_host: Optional[str] = None
    db_port: Optional[int] = None
    db_name: Optional[str] = None
    db_user: Optional[str] = None
    db_password: Optional[str] = None
    mysql_root_password: Optional[str] = None


@dataclass(frozen=True)
class InstallConfig:
    """Validated, immutable configuration for one install run."""

    domain: str
    admin_email: str
    db_engine: DbEngine
    db_host: str
    db_port: int
    db_name: str
    db_user: str
    db_password: str = field(repr=False)
    mysql_root_password: Optional[str] = field(default=None, repr=False)
    repo_url: str = paths.REPO_URL

    @property
    def app_url(self) -> str:
        return f"https://{self.domain}"

    @property
    def uses_socket_auth(self) -> bool:
        return not self.mysql_root_password

    @property
    def db_is_local(self) -> bool:
        return self.db_host in LOCAL_DB_HOSTS

    @property
    def db_user_host(self) -> str:
        """Host part of the application's database account."""
        return "localhost" if self.db_is_local else "%"

    @property
    def is_local_domain(self) -> bool:
        return self.domain in LOCAL_DOMAINS or self.domain.endswith(".localhost")

    @property
    def wants_certificate(self) -> bool:
        return bool(self.admin_email) and not self.is_local_domain

    def summary(self, reveal_password: bool = False) -> Dict[str, Any]:
        """Operator-facing view; the password is masked unless asked for."""
        return {
            "domain": self.domain,
            "ssl_email": self.admin_email or "(certificate disabled)",
            "db_engine": self.db_engine.value,
            "db_host": self.db_host,
            "db_port": self.db_port,
            "db_name": self.db_name,
            "db_user": self.db_user,
            "db_password": self.db_password if reveal_password else mask(self.db_password),
            "db_root_auth": "socket" if self.uses_socket_auth else "password",
        }


@dataclass(frozen=True)
class ManagedFootprint:
    """
    The host resources this installer may create or destroy.

    Teardown paths must ``claim`` every resource before removing it; anything
    outside the footprint (shared packages, other sites, other databases) is
    refused with FootprintViolation.
    """

    app_dir: str = str(paths.APP_DIR)
    site_name: str = paths.APP_NAME
    service_name: str = paths.APP_NAME
    schedule_id: str = paths.APP_NAME
    db_name: str = "ctrlpanel"
    db_user: str = "ctrluser"

    @classmethod
    def for_config(cls, config: InstallConfig) -> "ManagedFootprint":
        return cls(db_name=config.db_name, db_user=config.db_user)

    @property
    def cert_name(self) -> str:
        # 证书以站点名签发，因此同属受管范围
        return self.site_name

    def resources(self) -> FrozenSet[str]:
        return frozenset(
            {
                self.app_dir,
                self.site_name,
                self.service_name,
                self.schedule_id,
                self.db_name,
                self.db_user,
            }
        )

    def by_kind(self) -> Dict[str, str]:
        return {
            "directory": self.app_dir,
            "nginx site": self.site_name,
            "service": self.service_name,
            "schedule": self.schedule_id,
            "database": self.db_name,
            "database user": self.db_user,
            "certificate": self.cert_name,
        }

    def claim(self, resource: str, kind: Optional[str] = None) -> str:
        # 指定 kind 时只与该类资源比较，避免站点名冒充数据库名
        if kind is None:
            allowed = resource in self.resources()
        else:
            allowed = self.by_kind().get(kind) == resource
        if not allowed:
            raise FootprintViolation(resource, kind)
        return resource
