"""Fixed host locations owned by the installer.

Everything the installer creates on the target host lives under one of these
names; rollback and uninstall never touch anything else:
- /var/www/ctrlpanel                      # application checkout
- /etc/nginx/sites-available/ctrlpanel    # site definition (+ sites-enabled link)
- /etc/systemd/system/ctrlpanel.service   # queue worker
- /etc/cron.d/ctrlpanel                   # scheduler entry
"""

from pathlib import PurePosixPath

APP_NAME = "ctrlpanel"
REPO_URL = "https://github.com/Ctrlpanel-gg/panel.git"

APP_DIR = PurePosixPath("/var/www") / APP_NAME
WEB_USER = "www-data"

NGINX_SITES_AVAILABLE = PurePosixPath("/etc/nginx/sites-available")
NGINX_SITES_ENABLED = PurePosixPath("/etc/nginx/sites-enabled")
SYSTEMD_UNIT_DIR = PurePosixPath("/etc/systemd/system")
CRON_DIR = PurePosixPath("/etc/cron.d")

# php-fpm 在不同 Ubuntu 版本上的套接字位置
PHP_FPM_SOCKET_GLOBS = ("/run/php/php*-fpm.sock", "/var/run/php/php*-fpm.sock")

# 本地运行日志（操作者机器上）
LOGS_DIR = PurePosixPath("install_logs")


def env_file(app_dir: PurePosixPath = APP_DIR) -> PurePosixPath:
    """Path of the application's persisted environment file."""
    return app_dir / ".env"


def site_available(site_name: str) -> PurePosixPath:
    return NGINX_SITES_AVAILABLE / site_name


def site_enabled(site_name: str) -> PurePosixPath:
    return NGINX_SITES_ENABLED / site_name


def unit_file(service_name: str) -> PurePosixPath:
    return SYSTEMD_UNIT_DIR / f"{service_name}.service"


def cron_file(schedule_id: str) -> PurePosixPath:
    return CRON_DIR / schedule_id
