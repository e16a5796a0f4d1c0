"""Command-line interface for ctrlpanel-installer."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Optional

from .config import AppConfig, load_config
from .models import InstallOptions
from .orchestrator import EXIT_FAILURE, EXIT_SUCCESS
from .orchestrator.run_log import list_run_logs, load_run_log
from .utils.logging import get_logger
from .workflow import InstallerWorkflow, InstallRequest

logger = logging.getLogger(__name__)

STATUS_EMOJI = {
    "success": "✅",
    "completed": "✅",
    "failed": "❌",
    "rolled_back": "↩️",
    "partially_completed": "⚠️",
    "declined": "🚫",
    "running": "🔄",
}


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    # SSH 远程目标（不指定 --host 则在本机安装）
    parser.add_argument("--host", help="Provision a remote host over SSH instead of this machine")
    parser.add_argument("--port", type=int, default=None, help="SSH port")
    parser.add_argument("--user", help="SSH username (non-root users need sudo)")
    parser.add_argument(
        "--auth-method",
        choices=["password", "key"],
        help="SSH authentication method",
    )
    parser.add_argument("--password", help="SSH password", default=None)
    parser.add_argument("--key-path", help="Path to SSH private key", default=None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ctrlpanel-installer",
        description="Install CtrlPanel (nginx, PHP-FPM, MariaDB/MySQL, Redis, Let's Encrypt) on Ubuntu.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    install_parser = subparsers.add_parser("install", help="Install or re-converge CtrlPanel")
    install_parser.add_argument("--domain", help="Domain name (default: panel.localhost)")
    install_parser.add_argument("--ssl-email", help="Email for Let's Encrypt (default: admin@<domain>)")
    install_parser.add_argument(
        "--no-ssl", action="store_true", help="Do not request a certificate"
    )
    install_parser.add_argument("--db-engine", choices=["mariadb", "mysql"], help="Database engine")
    install_parser.add_argument("--db-host", help="Database host")
    install_parser.add_argument("--db-port", type=int, default=None, help="Database port")
    install_parser.add_argument("--db-name", help="Database name")
    install_parser.add_argument("--db-user", help="Database user")
    install_parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Do not prompt; unset values use defaults "
             "(passwords come from CTRLPANEL_DB_PASSWORD / CTRLPANEL_MYSQL_ROOT_PASSWORD)",
    )
    install_parser.add_argument(
        "--yes", "-y", action="store_true",
        help="Answer yes to every confirmation (implies --non-interactive)",
    )
    _add_target_arguments(install_parser)

    uninstall_parser = subparsers.add_parser(
        "uninstall", help="Remove the application, its site, service, schedule, database and certificate"
    )
    uninstall_parser.add_argument(
        "--yes", "-y", action="store_true", help="Do not ask for confirmation"
    )
    # 未指定时从已安装的 .env 读取
    uninstall_parser.add_argument("--domain", help="Domain the panel was installed for")
    uninstall_parser.add_argument("--db-host", help="Database host")
    uninstall_parser.add_argument("--db-name", help="Database to drop")
    uninstall_parser.add_argument("--db-user", help="Database user to drop")
    _add_target_arguments(uninstall_parser)

    # logs 子命令 - 查看安装日志
    logs_parser = subparsers.add_parser("logs", help="View install and uninstall run logs")
    logs_parser.add_argument(
        "--list", "-l", action="store_true", dest="list_logs",
        help="List all available logs"
    )
    logs_parser.add_argument(
        "--latest", action="store_true",
        help="Show the latest run log"
    )
    logs_parser.add_argument(
        "--file", "-f", type=str,
        help="Show a specific log file"
    )
    logs_parser.add_argument(
        "--summary", "-s", action="store_true",
        help="Show summary only (no step details)"
    )

    return parser


def _apply_target_overrides(args: argparse.Namespace, config: AppConfig) -> None:
    target = config.target
    if args.host:
        target.host = args.host
    if args.port:
        target.port = args.port
    if args.user:
        target.username = args.user
    if args.auth_method:
        target.auth_method = args.auth_method
    if args.password is not None:
        target.password = args.password
    if args.key_path is not None:
        target.key_path = args.key_path


def _install_options(args: argparse.Namespace) -> InstallOptions:
    return InstallOptions(
        domain=args.domain,
        ssl_email="" if args.no_ssl else args.ssl_email,
        db_engine=args.db_engine,
        db_host=args.db_host,
        db_port=args.db_port,
        db_name=args.db_name,
        db_user=args.db_user,
    )


def _uninstall_options(args: argparse.Namespace, config: AppConfig) -> InstallOptions:
    """Explicit values from the config file and environment, then the flags on top."""
    options = config.install_options()
    for name in ("domain", "db_host", "db_name", "db_user"):
        value = getattr(args, name)
        if value is not None:
            setattr(options, name, value)
    return options


def handle_logs_command(args: argparse.Namespace, config: AppConfig) -> int:
    """Handle the logs subcommand."""
    log_dir = Path(config.logging.log_dir)
    log_files = list_run_logs(log_dir)

    if not log_files:
        print("📁 No install logs found. Run an install first.")
        return EXIT_SUCCESS

    # 列出所有日志
    if args.list_logs:
        print(f"📁 Run logs in: {log_dir}\n")
        print(f"{'#':<4} {'Status':<24} {'Mode':<10} {'Target':<28} {'Time':<20} {'File'}")
        print("-" * 110)
        for i, log_file in enumerate(log_files, 1):
            try:
                data = load_run_log(log_file)
            except (OSError, ValueError):
                print(f"{i:<4} ❓ {'unreadable':<22} {'?':<10} {'?':<28} {'?':<20} {log_file.name}")
                continue
            status = data.get("status", "unknown")
            start_time = (data.get("start_time") or "")[:19].replace("T", " ")
            print(
                f"{i:<4} {STATUS_EMOJI.get(status, '❓')} {status:<22} {data.get('mode', '?'):<10} "
                f"{data.get('target', '?'):<28} {start_time:<20} {log_file.name}"
            )
        return EXIT_SUCCESS

    if args.file:
        target_file = Path(args.file)
        if not target_file.exists():
            # 尝试在 log_dir 中查找
            target_file = log_dir / args.file
        if not target_file.exists():
            print(f"❌ Log file not found: {args.file}")
            return EXIT_FAILURE
    else:
        # 默认显示最新的
        target_file = log_files[0]

    show_log_file(target_file, summary_only=args.summary)
    return EXIT_SUCCESS


def show_log_file(log_file: Path, summary_only: bool = False) -> None:
    """Display a run log file."""
    data = load_run_log(log_file)
    status = data.get("status", "unknown")
    config = data.get("config") or {}

    print(f"\n{'='*60}")
    print(f"📄 Run Log: {log_file.name}")
    print(f"{'='*60}")
    print(f"🛠️  Mode:       {data.get('mode', 'N/A')}")
    print(f"🌐 Domain:     {config.get('domain', 'N/A')}")
    print(f"🖥️  Target:     {data.get('target', 'N/A')}")
    print(f"⏰ Started:    {data.get('start_time', 'N/A')}")
    print(f"⏱️  Ended:      {data.get('end_time', 'N/A')}")
    print(f"{STATUS_EMOJI.get(status, '❓')} Status:     {status}")
    print(f"📊 Steps:      {len(data.get('steps', []))}")
    print(f"{'='*60}\n")

    if not summary_only:
        for step in data.get("steps", []):
            outcome = step.get("outcome", "?")
            icon = {"succeeded": "✅", "skipped": "⏭️", "failed": "❌"}.get(outcome, "•")
            if step.get("tolerated"):
                icon = "⚠️"
            attempts = step.get("attempts", 1)
            suffix = f" ({attempts} attempts)" if attempts and attempts > 1 else ""
            print(f"{icon} {step.get('step_id', '?')}: {outcome}{suffix}")
            if step.get("detail"):
                print(f"    📝 {step['detail']}")
        print()

    rollback = data.get("rollback")
    if rollback:
        print(f"↩️  Rolled back: {', '.join(rollback.get('undone', [])) or '(nothing)'}")
        for failure in rollback.get("failures", []):
            print(f"   ⚠️ {failure.get('step_id')}: {failure.get('detail')}")

    if data.get("summary"):
        print(json.dumps(data["summary"], indent=2, ensure_ascii=False))

    print(f"{'='*60}")
    print(f"📄 Full log: {log_file}")
    print(f"{'='*60}\n")


def dispatch_command(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"❌ {exc}")
        return EXIT_FAILURE

    get_logger(level=args.log_level or config.logging.level)

    if args.command == "logs":
        return handle_logs_command(args, config)

    _apply_target_overrides(args, config)
    if args.yes:
        config.interaction.assume_yes = True

    workflow = InstallerWorkflow(config)

    if args.command == "install":
        request = InstallRequest(
            options=_install_options(args),
            interactive=not (args.non_interactive or args.yes),
        )
        return workflow.run_install(request)

    if args.command == "uninstall":
        return workflow.run_uninstall(_uninstall_options(args, config))

    raise ValueError(f"Unsupported command: {args.command}")


def run_cli(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return dispatch_command(args)
