"""nginx site materialization and control."""

from __future__ import annotations

import shlex
from typing import TYPE_CHECKING, Union

from .. import paths

if TYPE_CHECKING:
    from ..local import LocalSession
    from ..ssh import SSHSession

SITE_TEMPLATE = """\
server {{
    listen 80;
    server_name {domain};

    root {app_dir}/public;
    index index.php index.html;

    access_log /var/log/nginx/{site_name}.access.log;
    error_log  /var/log/nginx/{site_name}.error.log;

    client_max_body_size 100m;
    client_body_timeout 120s;

    location / {{
        try_files $uri $uri/ /index.php?$query_string;
    }}

    location ~ \\.php$ {{
        include snippets/fastcgi-php.conf;
        fastcgi_pass unix:{fpm_socket};
        fastcgi_param SCRIPT_FILENAME $document_root$fastcgi_script_name;
        include fastcgi_params;
    }}

    location ~ /\\.ht {{
        deny all;
    }}
}}
"""


def render_site_config(domain: str, app_dir: str, fpm_socket: str, site_name: str) -> str:
    return SITE_TEMPLATE.format(
        domain=domain,
        app_dir=app_dir,
        fpm_socket=fpm_socket,
        site_name=site_name,
    )


class NginxController:
    def __init__(self, session: Union["LocalSession", "SSHSession"]) -> None:
        self.session = session

    def site_exists(self, site_name: str) -> bool:
        return self.session.exists(str(paths.site_available(site_name)))

    def write_site(self, site_name: str, body: str) -> None:
        """Overwrite the single site-definition file for ``site_name``."""
        self.session.write_text(str(paths.site_available(site_name)), body, mode=0o644)

    def enable_site(self, site_name: str):
        return self.session.run(
            f"ln -sfn {shlex.quote(str(paths.site_available(site_name)))} "
            f"{shlex.quote(str(paths.site_enabled(site_name)))}"
        )

    def remove_site(self, site_name: str):
        return self.session.run(
            f"rm -f {shlex.quote(str(paths.site_enabled(site_name)))} "
            f"{shlex.quote(str(paths.site_available(site_name)))}"
        )

    def validate_config(self):
        return self.session.run("nginx -t")

    def reload(self):
        return self.session.run("systemctl reload nginx")
