"""End-to-end install runs against an in-memory host."""

import json

import pytest

from ctrlpanel_installer.collector import NonInteractiveSource
from ctrlpanel_installer.interaction import AutoResponseHandler
from ctrlpanel_installer.models import InstallOptions
from ctrlpanel_installer.orchestrator import (
    EXIT_DECLINED,
    EXIT_FAILURE,
    EXIT_SUCCESS,
    InstallOrchestrator,
    RunState,
    STEP_IDS,
    StepOutcome,
)

from fakes import (
    APP_DIR,
    FakeSession,
    StubProbe,
    assert_only_footprint_touched,
    make_host,
    provisionable_session,
)

PASSWORD = "s3cretPassw0rd"


def _options(**overrides):
    values = dict(
        domain="panel.example.com",
        ssl_email="ops@example.com",
        db_engine="mysql",
        db_host="127.0.0.1",
        db_name="ctrlpanel",
        db_user="ctrluser",
        db_password=PASSWORD,
    )
    values.update(overrides)
    return InstallOptions(**values)


@pytest.fixture
def run_install(tmp_path):
    """Run one install and hand back (exit code, orchestrator, session, output lines)."""

    def _run(session=None, handler=None, probe=None, options=None):
        session = session or provisionable_session()
        output = []
        orchestrator = InstallOrchestrator(
            make_host(session),
            handler or AutoResponseHandler(),
            host_probe=probe or StubProbe(),
            log_dir=str(tmp_path / "logs"),
            output=output.append,
        )
        code = orchestrator.run(NonInteractiveSource(options or _options()))
        return code, orchestrator, session, output

    return _run


def _only_log(tmp_path):
    logs = list((tmp_path / "logs").glob("install_ctrlpanel_*.json"))
    assert len(logs) == 1
    return logs[0].read_text(encoding="utf-8")


class TestSuccessfulInstall:
    def test_fresh_host(self, run_install, tmp_path):
        code, orchestrator, session, output = run_install()

        assert code == EXIT_SUCCESS
        assert orchestrator.state is RunState.COMPLETED

        env = session.files[f"{APP_DIR}/.env"]
        assert "APP_URL=https://panel.example.com" in env
        assert "DB_DATABASE=ctrlpanel" in env
        assert "DB_USERNAME=ctrluser" in env

        assert session.ran("git clone")
        assert session.ran("migrate --force")
        assert "/etc/nginx/sites-available/ctrlpanel" in session.files
        assert "/etc/systemd/system/ctrlpanel.service" in session.files
        assert "/etc/cron.d/ctrlpanel" in session.files
        assert len(session.ran("certbot --nginx")) == 1

        text = _only_log(tmp_path)
        log = json.loads(text)
        assert log["status"] == "success"
        assert log["summary"]["total_steps"] == 12
        assert PASSWORD not in text

        assert any(PASSWORD in line for line in output)
        assert any("https://panel.example.com" in line for line in output)
        assert orchestrator.interaction_handler.notifications[-1][0] == "success"

    def test_rerun_converges(self, run_install, tmp_path):
        session = provisionable_session()
        first, _, _, _ = run_install(session=session)
        second, orchestrator, _, _ = run_install(session=session)

        assert first == second == EXIT_SUCCESS
        assert len(session.ran("git clone")) == 1
        assert len(session.ran("reset --hard origin/HEAD")) == 1
        assert session.files[f"{APP_DIR}/.env"].count("APP_URL=") == 1
        assert orchestrator.ledger.entries[2].result.recoverable is False

    def test_tolerated_failure_still_succeeds(self, run_install):
        session = provisionable_session().fail("ufw allow", stderr="ufw: command not found")
        code, orchestrator, _, output = run_install(session=session)

        assert code == EXIT_SUCCESS
        assert [e.step_id for e in orchestrator.ledger.tolerated_failures] == ["firewall"]
        assert any("firewall" in line for line in output)


class TestFailedInstall:
    def test_declined_rollback_stops_and_keeps_state(self, run_install, tmp_path):
        session = provisionable_session().fail("composer install", stderr="Your requirements could not be resolved")
        handler = AutoResponseHandler(responses={"rollback": "no"})

        code, orchestrator, session, _ = run_install(session=session, handler=handler)

        assert code == EXIT_FAILURE
        assert orchestrator.state is RunState.FAILED
        assert not session.ran("migrate")
        assert not session.ran("rm -rf")
        assert json.loads(_only_log(tmp_path))["status"] == "failed"

        entries = list(orchestrator.ledger)
        assert [e.step_id for e in entries] == list(STEP_IDS[: STEP_IDS.index("dependencies") + 1])
        assert all(e.result.outcome in (StepOutcome.SUCCEEDED, StepOutcome.SKIPPED) for e in entries[:-1])
        failed = entries[-1].result
        assert failed.outcome is StepOutcome.FAILED
        assert failed.fatal
        assert "could not be resolved" in failed.detail
        assert len([r for r in handler.asked if r.key == "rollback"]) == 1

    def test_accepted_rollback_removes_fresh_checkout(self, run_install, tmp_path):
        session = provisionable_session().fail("composer install")
        handler = AutoResponseHandler()

        code, orchestrator, session, _ = run_install(session=session, handler=handler)

        assert code == EXIT_FAILURE
        assert orchestrator.state is RunState.ROLLED_BACK
        assert session.ran("rm -rf") == [f"rm -rf --one-file-system {APP_DIR}"]
        log = json.loads(_only_log(tmp_path))
        assert log["status"] == "rolled_back"
        assert log["rollback"]["undone"] == ["repository"]
        assert [r.key for r in handler.asked].count("rollback") == 1
        assert_only_footprint_touched(session)

    def test_preexisting_checkout_is_not_removed(self, run_install):
        session = provisionable_session({f"{APP_DIR}/.git/HEAD": "ref: refs/heads/main\n"})
        session.fail("composer install")
        handler = AutoResponseHandler()

        code, orchestrator, session, _ = run_install(session=session, handler=handler)

        assert code == EXIT_FAILURE
        assert not session.ran("rm -rf")
        assert orchestrator.state is RunState.FAILED
        assert not [r for r in handler.asked if r.key == "rollback"]


class TerminalSession(FakeSession):
    """A local-style session that can hand the terminal to a command."""

    def __init__(self, exit_status: int = 0) -> None:
        super().__init__()
        self.attached: list = []
        self._attached_status = exit_status

    def run_attached(self, command: str) -> int:
        self.attached.append(command)
        return self._attached_status


class TerminalHandler(AutoResponseHandler):
    has_terminal = True


def _terminal_session(exit_status: int = 0) -> TerminalSession:
    return provisionable_session(session=TerminalSession(exit_status))


class TestAdminAccount:
    def test_offered_on_terminal_and_run_as_web_user(self, run_install):
        session = _terminal_session()
        handler = TerminalHandler()

        code, _, _, _ = run_install(session=session, handler=handler)

        assert code == EXIT_SUCCESS
        assert [r.key for r in handler.asked].count("create_admin") == 1
        assert len(session.attached) == 1
        assert "php artisan panel:admin" in session.attached[0]
        assert f"cd {APP_DIR}" in session.attached[0]
        assert "www-data" in session.attached[0]

    def test_declined_offer_runs_nothing(self, run_install):
        session = _terminal_session()
        handler = TerminalHandler(responses={"create_admin": "no"})

        code, _, _, _ = run_install(session=session, handler=handler)

        assert code == EXIT_SUCCESS
        assert session.attached == []

    def test_failure_keeps_install_successful(self, run_install):
        session = _terminal_session(exit_status=1)
        code, _, _, output = run_install(session=session, handler=TerminalHandler())

        assert code == EXIT_SUCCESS
        assert any("panel:admin" in line for line in output)

    def test_not_offered_without_terminal(self, run_install):
        session = _terminal_session()
        handler = AutoResponseHandler()

        run_install(session=session, handler=handler)

        assert "create_admin" not in [r.key for r in handler.asked]
        assert session.attached == []


class TestGuards:
    def test_not_root(self, run_install, tmp_path):
        code, orchestrator, session, _ = run_install(probe=StubProbe(is_root=False))

        assert code == EXIT_FAILURE
        assert session.commands == []
        assert json.loads(_only_log(tmp_path))["status"] == "failed"

    def test_non_ubuntu_only_warns(self, run_install):
        code, _, _, _ = run_install(probe=StubProbe(os_id="debian"))
        assert code == EXIT_SUCCESS

    def test_declined_confirmation(self, run_install, tmp_path):
        handler = AutoResponseHandler(responses={"proceed": "no"})
        code, orchestrator, session, _ = run_install(handler=handler)

        assert code == EXIT_DECLINED
        assert orchestrator.state is RunState.DECLINED
        assert session.commands == []

    def test_invalid_input_touches_nothing(self, run_install, tmp_path):
        code, _, session, _ = run_install(options=_options(domain="bad domain"))

        assert code == EXIT_FAILURE
        assert session.commands == []
        assert not (tmp_path / "logs").exists()
