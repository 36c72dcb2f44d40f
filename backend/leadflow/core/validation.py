"""
Provider Validation Module
Checks messaging, AI and storage settings before the app accepts leads
"""
import os
import re
import logging
from typing import Callable, List, Optional, Tuple
from dataclasses import dataclass

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
# Alphanumeric sender IDs are limited to 11 characters; numeric senders to 15 digits
SENDER_ID_PATTERN = re.compile(r"^(?=.*[A-Za-z])[A-Za-z0-9 ]{1,11}$|^\+?\d{8,15}$")


@dataclass
class ValidationResult:
    """Result of a configuration validation check."""
    provider: str
    setting: str
    is_valid: bool
    message: str
    warning: bool = False


@dataclass(frozen=True)
class SettingCheck:
    """One environment variable and the format it must have"""
    provider: str
    env_var: str
    description: str
    check: Optional[Callable[[str], bool]] = None
    hint: str = ""
    aliases: Tuple[str, ...] = ()

    def read(self) -> Optional[str]:
        for name in (self.env_var,) + self.aliases:
            value = os.getenv(name)
            if value:
                return value
        return None


def _is_port(value: str) -> bool:
    return value.isdigit() and 0 < int(value) < 65536


SMS_CHECKS = [
    SettingCheck("sms", "VONAGE_API_KEY", "Vonage SMS"),
    SettingCheck("sms", "VONAGE_API_SECRET", "Vonage SMS"),
    SettingCheck(
        "sms", "VONAGE_FROM_NUMBER", "Vonage SMS sender",
        check=lambda v: bool(SENDER_ID_PATTERN.match(v)),
        hint="up to 11 letters/digits or a phone number",
    ),
]

EMAIL_CHECKS = [
    SettingCheck("email", "SMTP_HOST", "SMTP email"),
    SettingCheck("email", "SMTP_USER", "SMTP email"),
    SettingCheck("email", "SMTP_PASSWORD", "SMTP email"),
    SettingCheck(
        "email", "SMTP_FROM_EMAIL", "SMTP email sender",
        check=lambda v: bool(EMAIL_PATTERN.match(v)),
        hint="an email address",
    ),
]

DATABASE_CHECKS = [
    SettingCheck(
        "database", "SUPABASE_URL", "Supabase database",
        check=lambda v: v.startswith("https://") or v.startswith("http://localhost"),
        hint="an https:// project URL",
    ),
    SettingCheck(
        "database", "SUPABASE_SERVICE_KEY", "Supabase database",
        aliases=("SUPABASE_SERVICE_ROLE_KEY",),
    ),
]

# Missing values here only degrade the service
OPTIONAL_CHECKS = [
    SettingCheck("extraction", "GROQ_API_KEY", "Groq AI extraction (heuristic fallback will be used)"),
    SettingCheck("email", "SMTP_PORT", "SMTP port (587 will be used)", check=_is_port, hint="a TCP port"),
]


class ProviderValidator:
    """
    Validates provider configurations at startup.

    SMS and email are required: without them no offer reaches a customer.
    The AI key is optional because intake falls back to keyword heuristics.
    Supabase is only required when it is the storage backend.
    """

    def __init__(self, strict: bool = False, storage_backend: str = "memory"):
        """
        Initialize validator.

        Args:
            strict: If True, missing optional settings are errors too
            storage_backend: "memory" or "supabase"
        """
        self.strict = strict
        self.storage_backend = storage_backend
        self.results: List[ValidationResult] = []

    def required_checks(self) -> List[SettingCheck]:
        checks = SMS_CHECKS + EMAIL_CHECKS
        if self.storage_backend == "supabase":
            checks = checks + DATABASE_CHECKS
        return checks

    def validate_all(self) -> Tuple[bool, List[ValidationResult]]:
        """
        Validate all provider configurations.

        Returns:
            Tuple of (all_valid, list of results)
        """
        self.results = []

        for item in self.required_checks():
            value = item.read()
            if not value:
                self._add(item, False, f"{item.description} requires {item.env_var} to be set")
            else:
                self._check_format(item, value)

        for item in OPTIONAL_CHECKS:
            value = item.read()
            if not value:
                self._add(
                    item, not self.strict, f"WARNING: {item.description} not configured", warning=True
                )
            else:
                self._check_format(item, value)

        all_valid = all(r.is_valid for r in self.results)
        return all_valid, self.results

    def _check_format(self, item: SettingCheck, value: str) -> None:
        if item.check is not None and not item.check(value):
            self._add(item, False, f"{item.env_var} must be {item.hint}")
        else:
            self._add(item, True, f"{item.description.split(' (')[0]} configured")

    def _add(self, item: SettingCheck, is_valid: bool, message: str, warning: bool = False) -> None:
        self.results.append(ValidationResult(
            provider=item.provider,
            setting=item.env_var,
            is_valid=is_valid,
            message=message,
            warning=warning
        ))

    def log_results(self):
        """Log all validation results."""
        for r in self.results:
            if not r.is_valid:
                logger.error(f"  ✗ [{r.provider}] {r.message}")
            elif r.warning:
                logger.warning(f"  ⚠ [{r.provider}] {r.message}")
            else:
                logger.info(f"  ✓ [{r.provider}] {r.message}")

    def get_error_summary(self) -> Optional[str]:
        """Get summary of errors for exception message."""
        errors = [r for r in self.results if not r.is_valid]
        if not errors:
            return None

        lines = ["Provider configuration errors:"]
        for r in errors:
            lines.append(f"  - {r.setting}: {r.message}")
        return "\n".join(lines)


def validate_providers_on_startup(strict: bool = False, storage_backend: str = "memory") -> None:
    """
    Validate all providers at startup.

    Raises:
        RuntimeError: If required configuration is missing or malformed
    """
    validator = ProviderValidator(strict=strict, storage_backend=storage_backend)
    all_valid, _ = validator.validate_all()
    validator.log_results()

    if not all_valid:
        raise RuntimeError(validator.get_error_summary())

    logger.info("All provider configurations validated successfully")
