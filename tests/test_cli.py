"""Tests for argument parsing and command dispatch."""

import json

import pytest

from ctrlpanel_installer import cli, workflow
from ctrlpanel_installer.interaction import AutoResponseHandler
from ctrlpanel_installer.orchestrator import EXIT_DECLINED, EXIT_FAILURE, EXIT_SUCCESS
from ctrlpanel_installer.workflow import InstallerWorkflow

from fakes import FakeSession


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for name in ("CTRLPANEL_DOMAIN", "CTRLPANEL_DB_PASSWORD", "CTRLPANEL_SSH_HOST"):
        monkeypatch.delenv(name, raising=False)
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"logging": {"log_dir": str(tmp_path / "logs")}}), encoding="utf-8")
    return path


class TestParser:
    def test_install_flags(self):
        args = cli.build_parser().parse_args(
            ["install", "--domain", "panel.example.com", "--no-ssl", "--db-engine", "mysql", "-y"]
        )
        options = cli._install_options(args)

        assert args.yes
        assert options.domain == "panel.example.com"
        assert options.ssl_email == ""
        assert options.db_engine == "mysql"
        assert options.db_password is None

    def test_passwords_are_not_flags(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["install", "--db-password", "x"])

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestDispatch:
    def test_missing_config_file(self, tmp_path):
        assert cli.run_cli(["--config", str(tmp_path / "nope.json"), "logs"]) == EXIT_FAILURE

    def test_logs_without_runs(self, config_file, capsys):
        assert cli.run_cli(["--config", str(config_file), "logs", "--list"]) == EXIT_SUCCESS
        assert "No install logs found" in capsys.readouterr().out

    def test_logs_show_latest(self, config_file, tmp_path, capsys):
        log_dir = tmp_path / "logs"
        log_dir.mkdir()
        (log_dir / "install_ctrlpanel_20260101_000000.json").write_text(
            json.dumps(
                {
                    "mode": "install",
                    "status": "rolled_back",
                    "config": {"domain": "panel.example.com"},
                    "steps": [{"step_id": "dependencies", "outcome": "failed", "detail": "composer"}],
                    "rollback": {"undone": ["repository"], "failures": []},
                }
            ),
            encoding="utf-8",
        )

        assert cli.run_cli(["--config", str(config_file), "logs", "--latest"]) == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "panel.example.com" in out
        assert "Rolled back: repository" in out

    def test_logs_missing_file(self, config_file, tmp_path):
        (tmp_path / "logs").mkdir()
        (tmp_path / "logs" / "install_ctrlpanel_1.json").write_text("{}", encoding="utf-8")
        code = cli.run_cli(["--config", str(config_file), "logs", "--file", "missing.json"])
        assert code == EXIT_FAILURE

    def test_invalid_domain_fails_before_touching_host(self, config_file, monkeypatch):
        session = FakeSession()
        monkeypatch.setattr(InstallerWorkflow, "_open_session", lambda self: session)

        code = cli.run_cli(["--config", str(config_file), "install", "--yes", "--domain", "bad domain"])

        assert code == EXIT_FAILURE
        assert session.commands == []

    def test_exit_code_is_passed_through(self, config_file, monkeypatch):
        captured = {}

        def fake_run_install(self, request):
            captured["request"] = request
            captured["assume_yes"] = self.config.interaction.assume_yes
            return EXIT_DECLINED

        monkeypatch.setattr(InstallerWorkflow, "run_install", fake_run_install)

        code = cli.run_cli(["--config", str(config_file), "install", "--domain", "panel.example.com"])

        assert code == EXIT_DECLINED
        assert captured["request"].interactive
        assert captured["request"].options.domain == "panel.example.com"
        assert captured["assume_yes"] is False

    def test_uninstall_yes_skips_prompt(self, config_file, monkeypatch):
        seen = {}

        def fake_run_uninstall(self, options=None):
            seen["handler"] = type(self.interaction_handler).__name__
            return EXIT_SUCCESS

        monkeypatch.setattr(InstallerWorkflow, "run_uninstall", fake_run_uninstall)

        assert cli.run_cli(["--config", str(config_file), "uninstall", "--yes"]) == EXIT_SUCCESS
        assert seen["handler"] == "AutoResponseHandler"

    def test_interactive_prompts_default_to_flags(self, config_file, tmp_path, monkeypatch):
        # every prompt answered with Enter
        handler = AutoResponseHandler()
        monkeypatch.setattr(workflow, "CLIInteractionHandler", lambda: handler)
        monkeypatch.setattr(InstallerWorkflow, "_open_session", lambda self: FakeSession())

        cli.run_cli(
            ["--config", str(config_file), "install", "--domain", "panel.example.com", "--db-name", "panel_db"]
        )

        domain_prompt = next(r for r in handler.asked if r.key == "domain")
        assert domain_prompt.default == "panel.example.com"
        (log_file,) = (tmp_path / "logs").glob("install_ctrlpanel_*.json")
        logged = json.loads(log_file.read_text(encoding="utf-8"))["config"]
        assert logged["domain"] == "panel.example.com"
        assert logged["db_name"] == "panel_db"

    def test_unknown_config_key_is_an_error(self, tmp_path, capsys):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"install": {"domian": "panel.example.com"}}), encoding="utf-8")

        assert cli.run_cli(["--config", str(path), "logs"]) == EXIT_FAILURE
        assert "domian" in capsys.readouterr().out

    def test_uninstall_flags_override_config_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CTRLPANEL_DB_NAME", raising=False)
        monkeypatch.delenv("CTRLPANEL_DB_USER", raising=False)
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps({"install": {"db_name": "from_file", "db_user": "file_user"}}), encoding="utf-8"
        )
        seen = {}

        def fake_run_uninstall(self, options=None):
            seen["options"] = options
            return EXIT_SUCCESS

        monkeypatch.setattr(InstallerWorkflow, "run_uninstall", fake_run_uninstall)

        cli.run_cli(["--config", str(path), "uninstall", "--db-name", "from_flag"])

        options = seen["options"]
        assert options.db_name == "from_flag"
        assert options.db_user == "file_user"
        assert options.domain is None
