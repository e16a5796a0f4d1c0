"""systemd service registration and cron.d scheduling."""

from __future__ import annotations

import shlex
from typing import TYPE_CHECKING, Union

from .. import paths

if TYPE_CHECKING:
    from ..local import LocalSession
    from ..ssh import SSHSession

WORKER_UNIT_TEMPLATE = """\
[Unit]
Description=CtrlPanel queue worker
After=network.target {db_service}.service redis-server.service

[Service]
User={user}
Group={user}
Restart=always
RestartSec=5
WorkingDirectory={app_dir}
ExecStart=/usr/bin/php {app_dir}/artisan queue:work --sleep=3 --tries=3

[Install]
WantedBy=multi-user.target
"""

SCHEDULE_TEMPLATE = "* * * * * {user} /usr/bin/php {app_dir}/artisan schedule:run >> /dev/null 2>&1\n"


def render_worker_unit(app_dir: str, db_service: str, user: str = paths.WEB_USER) -> str:
    return WORKER_UNIT_TEMPLATE.format(app_dir=app_dir, db_service=db_service, user=user)


def render_schedule_entry(app_dir: str, user: str = paths.WEB_USER) -> str:
    return SCHEDULE_TEMPLATE.format(app_dir=app_dir, user=user)


class SystemdManager:
    def __init__(self, session: Union["LocalSession", "SSHSession"]) -> None:
        self.session = session

    def register_service(self, name: str, unit: str):
        self.session.write_text(str(paths.unit_file(name)), unit, mode=0o644)
        return self.session.run("systemctl daemon-reload")

    def enable(self, name: str, now: bool = True):
        flag = " --now" if now else ""
        return self.session.run(f"systemctl enable{flag} {shlex.quote(name)}")

    def disable(self, name: str, now: bool = True):
        flag = " --now" if now else ""
        return self.session.run(f"systemctl disable{flag} {shlex.quote(name)}")

    def start(self, name: str):
        return self.session.run(f"systemctl start {shlex.quote(name)}")

    def stop(self, name: str):
        return self.session.run(f"systemctl stop {shlex.quote(name)}")

    def restart(self, name: str):
        return self.session.run(f"systemctl restart {shlex.quote(name)}")

    def remove_service(self, name: str):
        return self.session.run(
            f"rm -f {shlex.quote(str(paths.unit_file(name)))} && systemctl daemon-reload"
        )


class CronScheduler:
    """One /etc/cron.d file per schedule identifier."""

    def __init__(self, session: Union["LocalSession", "SSHSession"]) -> None:
        self.session = session

    def install_schedule(self, schedule_id: str, entry: str) -> None:
        self.session.write_text(str(paths.cron_file(schedule_id)), entry, mode=0o644)

    def remove_schedule(self, schedule_id: str):
        return self.session.run(f"rm -f {shlex.quote(str(paths.cron_file(schedule_id)))}")
