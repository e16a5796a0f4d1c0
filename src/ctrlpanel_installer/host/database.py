"""MySQL/MariaDB client wrapper.

The root password never appears on a command line: it is written to a 0600
``[client]`` defaults file that exists only for the duration of one call.
"""

from __future__ import annotations

import logging
import shlex
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional, TYPE_CHECKING, Union

from ..models import InstallConfig, LOCAL_DB_HOSTS

if TYPE_CHECKING:
    from ..local import LocalSession
    from ..ssh import SSHSession

logger = logging.getLogger(__name__)


class DbAuth(str, Enum):
    SOCKET = "socket"
    PASSWORD = "password"


def sql_literal(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def sql_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def _cnf_value(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_defaults_file(password: str, host: str, port: int) -> str:
    return (
        "[client]\n"
        "user=root\n"
        f"password={_cnf_value(password)}\n"
        f"host={host}\n"
        f"port={port}\n"
    )


@contextmanager
def scoped_credentials(
    session: Union["LocalSession", "SSHSession"],
    password: str,
    host: str,
    port: int = 3306,
) -> Iterator[str]:
    """Yield the path of a private defaults file; it is deleted on every exit path."""
    path = session.create_temp_file(render_defaults_file(password, host, port), mode=0o600)
    try:
        yield path
    finally:
        session.remove_file(path)


def create_database_sql(config: InstallConfig) -> str:
    db = sql_identifier(config.db_name)
    account = f"{sql_literal(config.db_user)}@{sql_literal(config.db_user_host)}"
    return (
        f"CREATE DATABASE IF NOT EXISTS {db} CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci; "
        f"CREATE USER IF NOT EXISTS {account} IDENTIFIED BY {sql_literal(config.db_password)}; "
        f"ALTER USER {account} IDENTIFIED BY {sql_literal(config.db_password)}; "
        f"GRANT ALL PRIVILEGES ON {db}.* TO {account}; "
        "FLUSH PRIVILEGES;"
    )


def drop_database_sql(db_name: str) -> str:
    return f"DROP DATABASE IF EXISTS {sql_identifier(db_name)};"


def drop_user_sql(db_user: str, user_host: str) -> str:
    return f"DROP USER IF EXISTS {sql_literal(db_user)}@{sql_literal(user_host)}; FLUSH PRIVILEGES;"


class MySQLClient:
    """Runs SQL as the database root account."""

    def __init__(self, session: Union["LocalSession", "SSHSession"], binary: str = "mysql") -> None:
        self.session = session
        self.binary = binary

    @staticmethod
    def auth_mode(root_password: Optional[str]) -> DbAuth:
        return DbAuth.PASSWORD if root_password else DbAuth.SOCKET

    def execute(
        self,
        sql: str,
        *,
        host: str = "localhost",
        port: int = 3306,
        root_password: Optional[str] = None,
        extra_args: str = "",
    ):
        statement = shlex.quote(sql)
        logger.debug(f"Running SQL as root via {self.auth_mode(root_password).value} auth")
        args = f" {extra_args}" if extra_args else ""
        if self.auth_mode(root_password) is DbAuth.SOCKET:
            host_arg = "" if host in LOCAL_DB_HOSTS else f" -h {shlex.quote(host)} -P {port}"
            return self.session.run(f"{self.binary} -u root{host_arg}{args} -e {statement}")

        assert root_password is not None
        with scoped_credentials(self.session, root_password, host, port) as cnf:
            return self.session.run(
                f"{self.binary} --defaults-file={shlex.quote(cnf)}{args} -e {statement}"
            )

    def database_exists(
        self,
        name: str,
        *,
        host: str = "localhost",
        port: int = 3306,
        root_password: Optional[str] = None,
    ) -> bool:
        result = self.execute(
            f"SELECT SCHEMA_NAME FROM information_schema.SCHEMATA WHERE SCHEMA_NAME = {sql_literal(name)};",
            host=host,
            port=port,
            root_password=root_password,
            extra_args="--batch --skip-column-names",
        )
        return result.ok and result.stdout.strip() == name

    def for_config(self, config: InstallConfig, sql: str):
        """Execute ``sql`` with the host and root credentials of ``config``."""
        return self.execute(
            sql,
            host=config.db_host,
            port=config.db_port,
            root_password=config.mysql_root_password,
        )
