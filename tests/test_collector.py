"""Tests for input collection and validation."""

import pytest

from ctrlpanel_installer.collector import (
    InputCollector,
    InteractiveSource,
    NonInteractiveSource,
    PASSWORD_ALPHABET,
    generate_password,
)
from ctrlpanel_installer.config import InstallDefaults
from ctrlpanel_installer.errors import ConfirmationDeclined, ValidationError
from ctrlpanel_installer.interaction import AutoResponseHandler, InputType, InteractionResponse
from ctrlpanel_installer.models import DbEngine, InstallOptions


class TestNonInteractiveCollection:
    def test_defaults_fill_unset_fields(self):
        config = InputCollector().collect(NonInteractiveSource(InstallOptions()))

        assert config.domain == "panel.localhost"
        assert config.admin_email == "admin@panel.localhost"
        assert config.db_engine is DbEngine.MARIADB
        assert config.db_host == "localhost"
        assert config.db_port == 3306
        assert config.db_name == "ctrlpanel"
        assert config.db_user == "ctrluser"
        assert config.mysql_root_password is None
        assert config.uses_socket_auth

    def test_blank_password_is_generated(self):
        config = InputCollector().collect(NonInteractiveSource(InstallOptions(db_password="")))

        assert len(config.db_password) == 20
        assert all(ch in PASSWORD_ALPHABET for ch in config.db_password)

    def test_explicit_values(self):
        options = InstallOptions(
            domain="panel.example.com",
            ssl_email="ops@example.com",
            db_engine="MySQL",
            db_host="127.0.0.1",
            db_port=3307,
            db_name="panel_db",
            db_user="panel_user",
            db_password="given",
            mysql_root_password="rootpw",
        )
        config = InputCollector().collect(NonInteractiveSource(options))

        assert config.db_engine is DbEngine.MYSQL
        assert config.db_port == 3307
        assert config.db_password == "given"
        assert not config.uses_socket_auth
        assert config.app_url == "https://panel.example.com"

    def test_empty_email_disables_certificate(self):
        options = InstallOptions(domain="panel.example.com", ssl_email="")
        config = InputCollector().collect(NonInteractiveSource(options))

        assert config.admin_email == ""
        assert not config.wants_certificate

    def test_config_defaults_are_used(self):
        defaults = InstallDefaults(domain="cp.example.org", db_password="from-config")
        config = InputCollector(defaults).collect(NonInteractiveSource())

        assert config.domain == "cp.example.org"
        assert config.admin_email == "admin@cp.example.org"
        assert config.db_password == "from-config"

    @pytest.mark.parametrize(
        "options, field",
        [
            (InstallOptions(domain="   "), "domain"),
            (InstallOptions(domain="bad domain"), "domain"),
            (InstallOptions(db_engine="postgres"), "db_engine"),
            (InstallOptions(db_port=0), "db_port"),
            (InstallOptions(db_port=70000), "db_port"),
            (InstallOptions(db_name="ctrl-panel"), "db_name"),
            (InstallOptions(db_user="x" * 65), "db_user"),
            (InstallOptions(ssl_email="not-an-email"), "ssl_email"),
        ],
    )
    def test_invalid_input_raises(self, options, field):
        with pytest.raises(ValidationError) as excinfo:
            InputCollector().collect(NonInteractiveSource(options))
        assert excinfo.value.field == field


class TestInteractiveCollection:
    def test_prompts_each_field_with_hidden_secrets(self):
        handler = AutoResponseHandler(
            responses={"domain": "panel.example.com", "db_engine": "mysql", "db_password": "typed"}
        )
        config = InputCollector().collect(InteractiveSource(handler))

        assert config.domain == "panel.example.com"
        assert config.admin_email == "admin@panel.example.com"
        assert config.db_engine is DbEngine.MYSQL
        assert config.db_password == "typed"

        secret_keys = {r.key for r in handler.asked if r.input_type is InputType.SECRET}
        assert secret_keys == {"db_password", "mysql_root_password"}

    def test_flag_values_become_prompt_defaults(self):
        handler = AutoResponseHandler()
        preset = InstallOptions(domain="panel.example.com", db_name="panel_db", ssl_email="")
        config = InputCollector().collect(InteractiveSource(handler, preset))

        assert config.domain == "panel.example.com"
        assert config.db_name == "panel_db"
        assert config.admin_email == ""
        assert config.db_user == "ctrluser"

    def test_none_disables_email(self):
        handler = AutoResponseHandler(responses={"ssl_email": "none"})
        config = InputCollector().collect(InteractiveSource(handler))
        assert config.admin_email == ""

    def test_cancelled_prompt_is_declined(self):
        class CancellingHandler(AutoResponseHandler):
            def ask(self, request):
                return InteractionResponse.cancelled_response()

        with pytest.raises(ConfirmationDeclined):
            InputCollector().collect(InteractiveSource(CancellingHandler()))


def test_generate_password_is_random():
    assert generate_password() != generate_password()
    assert len(generate_password(32)) == 32
