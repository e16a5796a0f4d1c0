"""Ownership, permissions and removal inside the application directory."""

from __future__ import annotations

import shlex
from typing import TYPE_CHECKING, Union

from .. import paths

if TYPE_CHECKING:
    from ..local import LocalSession
    from ..ssh import SSHSession


class AppFiles:
    def __init__(self, session: Union["LocalSession", "SSHSession"]) -> None:
        self.session = session

    def exists(self, path: str) -> bool:
        return self.session.exists(path)

    def read(self, path: str):
        return self.session.read_text(path)

    def copy(self, source: str, target: str, overwrite: bool = True):
        flag = "-f" if overwrite else "-n"
        return self.session.run(f"cp {flag} {shlex.quote(source)} {shlex.quote(target)}")

    def remove(self, path: str):
        return self.session.run(f"rm -f {shlex.quote(path)}")

    def remove_tree(self, path: str):
        """Remove a directory tree; callers claim ``path`` from the footprint first."""
        if path in ("", "/"):
            raise ValueError("refusing to remove the filesystem root")
        return self.session.run(f"rm -rf --one-file-system {shlex.quote(path)}")

    def chown_tree(self, path: str, owner: str = paths.WEB_USER):
        return self.session.run(f"chown -R {owner}:{owner} {shlex.quote(path)}")

    def fix_permissions(self, app_dir: str, owner: str = paths.WEB_USER):
        """Files 644, directories 755, writable storage and bootstrap cache."""
        quoted = shlex.quote(app_dir)
        return self.session.run(
            f"chown -R {owner}:{owner} {quoted} && "
            f"find {quoted} -type f -exec chmod 644 {{}} + && "
            f"find {quoted} -type d -exec chmod 755 {{}} + && "
            f"chmod -R ug+rwx {quoted}/storage {quoted}/bootstrap/cache && "
            f"(test ! -f {quoted}/.env || chmod 640 {quoted}/.env)"
        )
