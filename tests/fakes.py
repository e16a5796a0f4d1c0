"""In-memory stand-ins for a target host, shared by the test modules."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union

from ctrlpanel_installer.host import HostServices
from ctrlpanel_installer.host.probe import HostFacts
from ctrlpanel_installer.models import DbEngine, InstallConfig

APP_DIR = "/var/www/ctrlpanel"
FPM_SOCKET = "/run/php/php8.1-fpm.sock"
COMMIT_SHA = "0123456789abcdef0123456789abcdef01234567"

ENV_EXAMPLE = """\
APP_NAME=CtrlPanel
APP_ENV=production
APP_KEY=
APP_URL=http://localhost

DB_CONNECTION=mysql
DB_HOST=127.0.0.1
DB_PORT=3306
DB_DATABASE=controlpanel
DB_USERNAME=root
DB_PASSWORD=
"""


@dataclass
class FakeResult:
    command: str = ""
    stdout: str = ""
    stderr: str = ""
    exit_status: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


Responder = Callable[[str], FakeResult]


class _Rule:
    def __init__(self, fragment: str, response: Union[FakeResult, Responder], times: Optional[int]) -> None:
        self.fragment = fragment
        self.response = response
        self.remaining = times

    def matches(self, command: str) -> bool:
        return self.fragment in command and self.remaining != 0

    def respond(self, command: str) -> FakeResult:
        if self.remaining is not None:
            self.remaining -= 1
        if callable(self.response):
            return self.response(command)
        return FakeResult(command, self.response.stdout, self.response.stderr, self.response.exit_status)


class FakeSession:
    """Records commands; files live in a dict. Unmatched commands succeed silently."""

    target = "fake-host"

    def __init__(self, files: Optional[Dict[str, str]] = None) -> None:
        self.files: Dict[str, str] = dict(files or {})
        self.modes: Dict[str, int] = {}
        self.commands: List[str] = []
        self.envs: List[Optional[dict]] = []
        self.temp_files: List[str] = []
        self._rules: List[_Rule] = []
        self._temp_counter = 0

    # --- scripting -------------------------------------------------------

    def on(
        self,
        fragment: str,
        stdout: str = "",
        stderr: str = "",
        exit_status: int = 0,
        times: Optional[int] = None,
    ) -> "FakeSession":
        """Answer commands containing ``fragment``; later rules win."""
        self._rules.append(_Rule(fragment, FakeResult("", stdout, stderr, exit_status), times))
        return self

    def fail(self, fragment: str, stderr: str = "boom", times: Optional[int] = None) -> "FakeSession":
        return self.on(fragment, stderr=stderr, exit_status=1, times=times)

    def respond(self, fragment: str, responder: Responder) -> "FakeSession":
        self._rules.append(_Rule(fragment, responder, None))
        return self

    def ran(self, fragment: str) -> List[str]:
        return [c for c in self.commands if fragment in c]

    # --- session interface -----------------------------------------------

    def run(self, command: str, *, timeout=None, env=None, privileged: bool = True) -> FakeResult:
        self.commands.append(command)
        self.envs.append(env)
        for rule in reversed(self._rules):
            if rule.matches(command):
                return rule.respond(command)
        return FakeResult(command)

    def exists(self, path: str) -> bool:
        path = str(path).rstrip("/")
        prefix = path + "/"
        return path in self.files or any(name.startswith(prefix) for name in self.files)

    def read_text(self, path: str) -> Optional[str]:
        return self.files.get(str(path))

    def write_text(self, path: str, content: str, mode: int = 0o644) -> None:
        self.files[str(path)] = content
        self.modes[str(path)] = mode

    def create_temp_file(self, content: str, mode: int = 0o600) -> str:
        self._temp_counter += 1
        name = f"/tmp/ctrlpanel-fake{self._temp_counter}"
        self.files[name] = content
        self.modes[name] = mode
        self.temp_files.append(name)
        return name

    def remove_file(self, path: str) -> None:
        self.files.pop(str(path), None)

    def close(self) -> None:
        pass


def provisionable_session(
    files: Optional[Dict[str, str]] = None, session: Optional[FakeSession] = None
) -> FakeSession:
    """A session on which every install step succeeds."""
    session = session or FakeSession(files)

    def clone(command: str) -> FakeResult:
        session.files[f"{APP_DIR}/.git/HEAD"] = "ref: refs/heads/main\n"
        session.files[f"{APP_DIR}/.env.example"] = ENV_EXAMPLE
        return FakeResult(command)

    session.respond("git clone", clone)
    session.on("rev-parse HEAD", stdout=COMMIT_SHA)
    session.on("php -m", stdout="Core\nmysqli\nredis\n")
    session.on("for f in", stdout=FPM_SOCKET)
    return session


class StubProbe:
    def __init__(self, is_root: bool = True, os_id: str = "ubuntu", has_systemd: bool = True) -> None:
        self.facts = HostFacts(
            hostname="panel-host",
            os_id=os_id,
            os_release="Ubuntu 22.04.4 LTS" if os_id == "ubuntu" else os_id,
            is_root=is_root,
            has_systemd=has_systemd,
        )

    def collect(self, session) -> HostFacts:
        return self.facts


def make_host(session: FakeSession) -> HostServices:
    host = HostServices.for_session(session)
    host.php._sleep = lambda seconds: None
    return host


def make_config(**overrides) -> InstallConfig:
    values = dict(
        domain="panel.example.com",
        admin_email="admin@panel.example.com",
        db_engine=DbEngine.MYSQL,
        db_host="127.0.0.1",
        db_port=3306,
        db_name="ctrlpanel",
        db_user="ctrluser",
        db_password="s3cretPassw0rd",
        mysql_root_password=None,
    )
    values.update(overrides)
    return InstallConfig(**values)


FOOTPRINT_PATHS = (
    APP_DIR,
    "/etc/nginx/sites-available/ctrlpanel",
    "/etc/nginx/sites-enabled/ctrlpanel",
    "/etc/systemd/system/ctrlpanel.service",
    "/etc/cron.d/ctrlpanel",
)


def removed_paths(session: FakeSession) -> List[str]:
    """Every path passed to ``rm`` in the recorded commands."""
    paths = []
    for command in session.commands:
        for part in command.split("&&"):
            words = part.split()
            if words and words[0] == "rm":
                paths.extend(w for w in words[1:] if not w.startswith("-"))
    return paths


def assert_only_footprint_touched(
    session: FakeSession, db_name: str = "ctrlpanel", db_user: str = "ctrluser"
) -> None:
    """No shared package removed; every rm and DROP targets a managed resource."""
    for command in session.commands:
        for verb in ("apt-get remove", "apt-get purge", "apt-get autoremove"):
            assert verb not in command, command
        if "DROP DATABASE" in command:
            assert f"`{db_name}`" in command, command
        if "DROP USER" in command:
            assert db_user in command, command
    for path in removed_paths(session):
        assert path.startswith(FOOTPRINT_PATHS), path
