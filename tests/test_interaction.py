"""Tests for operator interaction module."""

import pytest
from ctrlpanel_installer.interaction import (
    InteractionRequest,
    InteractionResponse,
    InputType,
    QuestionCategory,
    AutoResponseHandler,
    CLIInteractionHandler,
)


class TestInteractionRequest:
    """Tests for InteractionRequest dataclass."""

    def test_format_prompt_choice(self):
        request = InteractionRequest(
            question="Database engine",
            options=["mariadb", "mysql"],
            input_type=InputType.CHOICE,
            default="mariadb",
        )

        prompt = request.format_prompt()
        assert "Database engine" in prompt
        assert "[1] mariadb (default)" in prompt
        assert "[2] mysql" in prompt

    def test_format_prompt_confirm(self):
        request = InteractionRequest(
            question="Continue?",
            input_type=InputType.CONFIRM,
            category=QuestionCategory.CONFIRMATION,
            context="Will remove things",
        )

        prompt = request.format_prompt()
        assert "⚠️" in prompt
        assert "Will remove things" in prompt

    def test_format_prompt_secret(self):
        request = InteractionRequest(question="Password", input_type=InputType.SECRET)
        assert "hidden" in request.format_prompt()


class TestInteractionResponse:
    """Tests for InteractionResponse dataclass."""

    def test_from_choice_valid(self):
        response = InteractionResponse.from_choice(2, ["mariadb", "mysql"])
        assert response.value == "mysql"
        assert response.selected_option == 2

    def test_from_choice_invalid(self):
        with pytest.raises(ValueError):
            InteractionResponse.from_choice(5, ["mariadb", "mysql"])

    def test_confirmed(self):
        assert InteractionResponse(value="yes").confirmed
        assert InteractionResponse(value="Y").confirmed
        assert not InteractionResponse(value="no").confirmed
        assert not InteractionResponse.cancelled_response().confirmed


class TestAutoResponseHandler:
    """Tests for AutoResponseHandler."""

    def test_confirms_by_default(self):
        handler = AutoResponseHandler()
        request = InteractionRequest(question="Proceed?", input_type=InputType.CONFIRM)
        assert handler.ask(request).confirmed

    def test_rejects_when_configured(self):
        handler = AutoResponseHandler(always_confirm=False)
        request = InteractionRequest(question="Proceed?", input_type=InputType.CONFIRM)
        assert not handler.ask(request).confirmed

    def test_key_response_wins(self):
        handler = AutoResponseHandler(responses={"rollback": "no"})
        request = InteractionRequest(
            question="Roll back?", input_type=InputType.CONFIRM, key="rollback"
        )
        assert handler.ask(request).value == "no"
        assert handler.asked == [request]

    def test_uses_default_for_text_and_choice(self):
        handler = AutoResponseHandler()
        text = InteractionRequest(question="Domain", default="panel.localhost")
        choice = InteractionRequest(
            question="Engine", input_type=InputType.CHOICE, options=["mariadb", "mysql"], default="mysql"
        )
        assert handler.ask(text).value == "panel.localhost"
        assert handler.ask(choice).value == "mysql"

    def test_notify_records(self):
        handler = AutoResponseHandler()
        handler.notify("done", "success")
        assert handler.notifications == [("success", "done")]


class TestCLIInteractionHandler:
    """Tests for CLIInteractionHandler."""

    def test_confirm_with_default(self, monkeypatch):
        monkeypatch.setattr("builtins.input", lambda prompt: "")
        handler = CLIInteractionHandler(use_rich=False)
        request = InteractionRequest(question="Proceed?", input_type=InputType.CONFIRM, default="y")
        assert handler.ask(request).confirmed

    def test_choice_by_number_and_name(self, monkeypatch):
        answers = iter(["7", "mysql"])
        monkeypatch.setattr("builtins.input", lambda prompt: next(answers))
        handler = CLIInteractionHandler(use_rich=False)
        request = InteractionRequest(
            question="Engine", input_type=InputType.CHOICE, options=["mariadb", "mysql"]
        )
        response = handler.ask(request)
        assert response.value == "mysql"
        assert response.selected_option == 2

    def test_secret_uses_getpass(self, monkeypatch):
        monkeypatch.setattr("getpass.getpass", lambda prompt: "hunter2")
        handler = CLIInteractionHandler(use_rich=False)
        response = handler.ask(InteractionRequest(question="Password", input_type=InputType.SECRET))
        assert response.value == "hunter2"

    def test_eof_cancels(self, monkeypatch):
        def raise_eof(prompt):
            raise EOFError

        monkeypatch.setattr("builtins.input", raise_eof)
        handler = CLIInteractionHandler(use_rich=False)
        response = handler.ask(InteractionRequest(question="Domain"))
        assert response.cancelled

    def test_only_cli_handler_has_terminal(self):
        assert CLIInteractionHandler(use_rich=False).has_terminal
        assert not AutoResponseHandler().has_terminal
