"""Gathers and validates the install configuration."""

from __future__ import annotations

import logging
import re
import secrets
import string
from abc import ABC, abstractmethod
from typing import List, Optional, TYPE_CHECKING

from .config import InstallDefaults
from .errors import ConfirmationDeclined, ValidationError
from .interaction import InputType, InteractionRequest, QuestionCategory
from .models import DbEngine, InstallConfig, InstallOptions

if TYPE_CHECKING:
    from .interaction import UserInteractionHandler

logger = logging.getLogger(__name__)

PASSWORD_LENGTH = 20
PASSWORD_ALPHABET = string.ascii_letters + string.digits

_IDENTIFIER = re.compile(r"^[A-Za-z0-9_]{1,64}$")
_HOSTNAME = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9.-]*[A-Za-z0-9])?$")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# 交互模式下输入这些值表示不申请证书
_NO_EMAIL = ("none", "-")


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def validate_domain(value: Optional[str]) -> str:
    domain = (value or "").strip()
    if not domain:
        raise ValidationError("domain", "must not be empty")
    if not _HOSTNAME.match(domain):
        raise ValidationError("domain", f"{domain!r} is not a valid host name")
    return domain


def validate_email(value: str) -> str:
    if not _EMAIL.match(value):
        raise ValidationError("ssl_email", f"{value!r} is not a valid email address")
    return value


def validate_port(value) -> int:
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError("db_port", f"{value!r} is not a number")
    if not 1 <= port <= 65535:
        raise ValidationError("db_port", f"{port} is outside 1-65535")
    return port


def validate_identifier(field: str, value: Optional[str]) -> str:
    name = (value or "").strip()
    if not _IDENTIFIER.match(name):
        raise ValidationError(field, f"{name!r} must be 1-64 characters of letters, digits or _")
    return name


class InputSource(ABC):
    """Where raw answers come from."""

    @abstractmethod
    def get(
        self,
        field: str,
        prompt: str,
        default: Optional[str],
        secret: bool = False,
        options: Optional[List[str]] = None,
        hint: Optional[str] = None,
    ) -> Optional[str]:
        """Return the raw value for ``field``; None or "" means "use the default"."""


class NonInteractiveSource(InputSource):
    def __init__(self, options: Optional[InstallOptions] = None) -> None:
        self.options = options or InstallOptions()

    def get(self, field, prompt, default, secret=False, options=None, hint=None):
        value = getattr(self.options, field, None)
        if value is None:
            return default
        return str(value)


class InteractiveSource(InputSource):
    """Prompts the operator; secrets are read without echo.

    Values already given in ``preset`` (command-line flags) become the
    prompt defaults, so pressing Enter keeps them.
    """

    def __init__(self, handler: "UserInteractionHandler", preset: Optional[InstallOptions] = None) -> None:
        self.handler = handler
        self.preset = preset or InstallOptions()

    def get(self, field, prompt, default, secret=False, options=None, hint=None):
        given = getattr(self.preset, field, None)
        if given is not None:
            default = str(given)
        if secret:
            input_type = InputType.SECRET
        elif options:
            input_type = InputType.CHOICE
        else:
            input_type = InputType.TEXT

        request = InteractionRequest(
            question=prompt,
            input_type=input_type,
            options=list(options or []),
            category=QuestionCategory.SETTING,
            context=hint,
            default=default,
            key=field,
        )
        response = self.handler.ask(request)
        if response.cancelled:
            raise ConfirmationDeclined("Input cancelled by operator")
        return response.value.strip() or default


class InputCollector:
    """
    Build an InstallConfig from a source.

    Validation happens here, before anything touches the host. A blank
    application database password is replaced with a generated one.
    """

    def __init__(self, defaults: Optional[InstallDefaults] = None) -> None:
        self.defaults = defaults or InstallDefaults()

    def collect(self, source: InputSource) -> InstallConfig:
        d = self.defaults

        domain = validate_domain(source.get("domain", "Domain name for the panel", d.domain))

        email = source.get(
            "ssl_email",
            "Email for Let's Encrypt",
            d.ssl_email or f"admin@{domain}",
            hint="Enter 'none' to skip the certificate",
        )
        email = (email or "").strip()
        if email.lower() in _NO_EMAIL:
            email = ""
        if email:
            validate_email(email)

        engine_raw = source.get(
            "db_engine", "Database engine", d.db_engine, options=[e.value for e in DbEngine]
        )
        try:
            engine = DbEngine.parse(engine_raw)
        except ValueError as exc:
            raise ValidationError("db_engine", str(exc))

        db_host = (source.get("db_host", "Database host", d.db_host) or "").strip()
        if not db_host:
            raise ValidationError("db_host", "must not be empty")
        db_port = validate_port(source.get("db_port", "Database port", str(d.db_port)))
        db_name = validate_identifier("db_name", source.get("db_name", "Database name", d.db_name))
        db_user = validate_identifier("db_user", source.get("db_user", "Database user", d.db_user))

        db_password = source.get(
            "db_password",
            f"Password for database user '{db_user}'",
            d.db_password,
            secret=True,
            hint="Leave empty to generate one",
        )
        if not db_password:
            db_password = generate_password()
            logger.info("🔑 Generated a database password (shown in the final summary)")

        root_password = source.get(
            "mysql_root_password",
            "Database root password",
            d.mysql_root_password,
            secret=True,
            hint="Leave empty to use unix socket authentication",
        )

        return InstallConfig(
            domain=domain,
            admin_email=email,
            db_engine=engine,
            db_host=db_host,
            db_port=db_port,
            db_name=db_name,
            db_user=db_user,
            db_password=db_password,
            mysql_root_password=root_password or None,
            repo_url=d.repo_url,
        )
