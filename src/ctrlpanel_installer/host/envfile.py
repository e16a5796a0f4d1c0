"""The application's persisted environment file (.env)."""

from __future__ import annotations

import io
import re
from typing import Dict, Mapping, Optional, TYPE_CHECKING, Union

from dotenv import dotenv_values

from ..models import InstallConfig

if TYPE_CHECKING:
    from ..local import LocalSession
    from ..ssh import SSHSession

ENV_KEYS = (
    "APP_URL",
    "DB_CONNECTION",
    "DB_HOST",
    "DB_PORT",
    "DB_DATABASE",
    "DB_USERNAME",
    "DB_PASSWORD",
)

# .env.example 缺失时使用的最小模板
MINIMAL_TEMPLATE = """\
APP_NAME=CtrlPanel
APP_ENV=production
APP_KEY=
APP_DEBUG=false
APP_URL=

DB_CONNECTION=mysql
DB_HOST=
DB_PORT=3306
DB_DATABASE=
DB_USERNAME=
DB_PASSWORD=
"""

_ASSIGNMENT = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=")
_NEEDS_QUOTES = re.compile(r"[\s#\"'\\$`]")


def env_values_for(config: InstallConfig) -> Dict[str, str]:
    return {
        "APP_URL": config.app_url,
        "DB_CONNECTION": "mysql",
        "DB_HOST": config.db_host,
        "DB_PORT": str(config.db_port),
        "DB_DATABASE": config.db_name,
        "DB_USERNAME": config.db_user,
        "DB_PASSWORD": config.db_password,
    }


def format_value(value: str) -> str:
    if value and _NEEDS_QUOTES.search(value):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return value


def merge_env(text: str, values: Mapping[str, str]) -> str:
    """Replace ``KEY=...`` lines in place; keys not present are appended once."""
    lines = text.splitlines()
    seen = set()
    for index, line in enumerate(lines):
        match = _ASSIGNMENT.match(line)
        if match and match.group(1) in values:
            key = match.group(1)
            lines[index] = f"{key}={format_value(values[key])}"
            seen.add(key)

    missing = [key for key in values if key not in seen]
    if missing:
        if lines and lines[-1].strip():
            lines.append("")
        lines.extend(f"{key}={format_value(values[key])}" for key in missing)
    return "\n".join(lines) + "\n"


def parse_env(text: str) -> Dict[str, str]:
    return {key: value or "" for key, value in dotenv_values(stream=io.StringIO(text)).items()}


class EnvFile:
    """Reads and materializes ``<app_dir>/.env`` through a session."""

    def __init__(self, session: Union["LocalSession", "SSHSession"], path: str) -> None:
        self.session = session
        self.path = path

    @property
    def backup_path(self) -> str:
        return self.path + ".bak"

    @property
    def example_path(self) -> str:
        return self.path + ".example"

    def exists(self) -> bool:
        return self.session.exists(self.path)

    def read_text(self) -> Optional[str]:
        return self.session.read_text(self.path)

    def read(self) -> Dict[str, str]:
        text = self.read_text()
        if text is None:
            return {}
        return parse_env(text)

    def write(self, text: str) -> None:
        self.session.write_text(self.path, text, mode=0o640)
