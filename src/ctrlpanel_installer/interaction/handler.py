"""Operator interaction: prompts, confirmations and notifications."""

from __future__ import annotations

import getpass
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class InputType(str, Enum):
    """Type of operator input expected."""
    CHOICE = "choice"       # 从 options 中选择
    TEXT = "text"           # 自由文本输入
    CONFIRM = "confirm"     # 是/否确认
    SECRET = "secret"       # 敏感信息（密码等），输入不回显


class QuestionCategory(str, Enum):
    """Category of questions for context."""
    SETTING = "setting"             # 安装参数（域名、数据库等）
    CONFIRMATION = "confirmation"   # 确认高风险操作
    ERROR_RECOVERY = "error_recovery"  # 失败后的回滚选择


@dataclass
class InteractionRequest:
    """A question put to the operator."""

    question: str
    input_type: InputType = InputType.TEXT
    options: List[str] = field(default_factory=list)
    category: QuestionCategory = QuestionCategory.SETTING
    context: Optional[str] = None               # 附加上下文信息
    default: Optional[str] = None
    key: Optional[str] = None                   # 机器可读标识，供自动应答匹配

    def format_prompt(self) -> str:
        """Format the request as a user-friendly prompt."""
        icons = {
            QuestionCategory.SETTING: "📝",
            QuestionCategory.CONFIRMATION: "⚠️",
            QuestionCategory.ERROR_RECOVERY: "🔧",
        }
        lines = [f"\n{icons.get(self.category, '❓')} {self.question}"]

        if self.context:
            lines.append(f"   ℹ️  {self.context}")

        if self.input_type == InputType.CHOICE and self.options:
            for i, option in enumerate(self.options, 1):
                default_marker = " (default)" if self.default == option else ""
                lines.append(f"   [{i}] {option}{default_marker}")
        elif self.input_type == InputType.SECRET:
            lines.append("   (input is hidden)")

        return "\n".join(lines)


@dataclass
class InteractionResponse:
    """Operator's answer to an interaction request."""

    value: str
    selected_option: Optional[int] = None   # 1-based
    cancelled: bool = False

    @property
    def confirmed(self) -> bool:
        return not self.cancelled and self.value.strip().lower() in ("y", "yes")

    @classmethod
    def from_choice(cls, option_index: int, options: List[str]) -> "InteractionResponse":
        """Create response from a choice selection."""
        if 1 <= option_index <= len(options):
            return cls(value=options[option_index - 1], selected_option=option_index)
        raise ValueError(f"Invalid option index: {option_index}")

    @classmethod
    def cancelled_response(cls) -> "InteractionResponse":
        return cls(value="", cancelled=True)


class UserInteractionHandler(ABC):
    """Abstract base class for operator interaction."""

    # True when a person at a terminal answers; such a handler can hand the
    # terminal over to an interactive command
    has_terminal = False

    @abstractmethod
    def ask(self, request: InteractionRequest) -> InteractionResponse:
        """Ask the operator; a cancelled prompt comes back with ``cancelled=True``."""

    @abstractmethod
    def notify(self, message: str, level: str = "info") -> None:
        """Show a message that needs no answer (info, warning, error, success)."""


class CLIInteractionHandler(UserInteractionHandler):
    """Command-line interaction handler."""

    has_terminal = True

    def __init__(self, use_rich: bool = True) -> None:
        self.use_rich = use_rich
        self._rich_console = None

        if use_rich:
            try:
                from rich.console import Console
                self._rich_console = Console()
            except ImportError:
                self.use_rich = False
                logger.debug("rich library not available, using basic CLI")

    def _print(self, text: str) -> None:
        if self._rich_console is not None:
            self._rich_console.print(text, highlight=False, markup=False)
        else:
            print(text)

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        """Present request and get operator input via CLI."""
        self._print(request.format_prompt())

        try:
            if request.input_type == InputType.CHOICE:
                return self._handle_choice(request)
            elif request.input_type == InputType.CONFIRM:
                return self._handle_confirm(request)
            elif request.input_type == InputType.SECRET:
                return self._handle_secret(request)
            else:  # TEXT
                return self._handle_text(request)
        except KeyboardInterrupt:
            self._print("\n   (cancelled)")
            return InteractionResponse.cancelled_response()
        except EOFError:
            return InteractionResponse.cancelled_response()

    def _handle_choice(self, request: InteractionRequest) -> InteractionResponse:
        default_idx = None
        if request.default in request.options:
            default_idx = request.options.index(request.default) + 1

        while True:
            prompt = "   Choose"
            if default_idx:
                prompt += f" [{default_idx}]"
            user_input = input(prompt + ": ").strip()

            if not user_input and default_idx:
                return InteractionResponse.from_choice(default_idx, request.options)
            # 也接受直接输入选项文本
            for i, option in enumerate(request.options, 1):
                if user_input.lower() == option.lower():
                    return InteractionResponse.from_choice(i, request.options)
            try:
                return InteractionResponse.from_choice(int(user_input), request.options)
            except ValueError:
                self._print(f"   ❌ Enter a number between 1 and {len(request.options)}")

    def _handle_confirm(self, request: InteractionRequest) -> InteractionResponse:
        default = (request.default or "n").lower()

        while True:
            user_input = input(f"   Proceed? [y/n] (default: {default}): ").strip().lower()
            if not user_input:
                user_input = default

            if user_input in ("y", "yes"):
                return InteractionResponse(value="yes")
            elif user_input in ("n", "no"):
                return InteractionResponse(value="no")
            self._print("   ❌ Please answer y or n")

    def _handle_text(self, request: InteractionRequest) -> InteractionResponse:
        prompt = "   Value"
        if request.default:
            prompt += f" [{request.default}]"
        user_input = input(prompt + ": ").strip()
        if not user_input and request.default:
            user_input = request.default
        return InteractionResponse(value=user_input)

    def _handle_secret(self, request: InteractionRequest) -> InteractionResponse:
        return InteractionResponse(value=getpass.getpass("   Value (hidden): "))

    def notify(self, message: str, level: str = "info") -> None:
        icons = {
            "info": "ℹ️",
            "warning": "⚠️",
            "error": "❌",
            "success": "✅",
        }
        self._print(f"\n{icons.get(level, '•')} {message}")


class AutoResponseHandler(UserInteractionHandler):
    """
    Automatic response handler for non-interactive mode and tests.

    Answers from ``responses`` (matched on the request key first, then on a
    keyword in the question), otherwise from the request default.
    Confirmations are answered with ``always_confirm``.
    """

    def __init__(
        self,
        responses: Optional[Dict[str, str]] = None,
        always_confirm: bool = True,
    ) -> None:
        self.responses = responses or {}
        self.always_confirm = always_confirm
        self.asked: List[InteractionRequest] = []
        self.notifications: List[tuple] = []

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        self.asked.append(request)
        logger.debug(f"Auto-responding to: {request.question[:60]}")

        if request.key and request.key in self.responses:
            return InteractionResponse(value=self.responses[request.key])
        for keyword, response in self.responses.items():
            if keyword.lower() in request.question.lower():
                return InteractionResponse(value=response)

        if request.input_type == InputType.CONFIRM:
            return InteractionResponse(value="yes" if self.always_confirm else "no")
        if request.input_type == InputType.CHOICE and request.options:
            if request.default in request.options:
                return InteractionResponse.from_choice(
                    request.options.index(request.default) + 1, request.options
                )
            return InteractionResponse.from_choice(1, request.options)
        return InteractionResponse(value=request.default or "")

    def notify(self, message: str, level: str = "info") -> None:
        self.notifications.append((level, message))
        logger.info(f"[{level}] {message}")
