"""
Input sanitization and shared-secret helpers.

Outbound chat text is checked before it reaches the gateway, and the shared
secret never appears in logs or in data handed to the presentation layer.
"""

import re
import secrets
import string

from .config import CONNECTION_CONFIG
from .core.logging_config import get_logger
from .gateway.errors import InputValidationError

logger = get_logger(__name__)

SECRET_PREFIX = "clawdbot-"
SECRET_ALPHABET = string.ascii_letters + string.digits

# Control characters other than tab/newline/carriage return
_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')


class InputSanitizer:
    """Sanitizes and validates text sent to the gateway"""

    MAX_LENGTHS = {
        'message': CONNECTION_CONFIG["max_message_length"],
        'target': 200,
    }

    @classmethod
    def sanitize_text(cls, text: str, input_type: str = 'message') -> str:
        """
        Sanitize text input.

        Args:
            text: Input text to sanitize
            input_type: Key into MAX_LENGTHS

        Returns:
            Sanitized text

        Raises:
            InputValidationError: If input fails validation
        """
        if not isinstance(text, str):
            raise InputValidationError(f"{input_type.capitalize()} must be a string")

        cleaned = _CONTROL_CHARS.sub('', text).strip()
        if cleaned != text.strip():
            logger.debug(f"Removed control characters from {input_type}")

        if not cleaned:
            raise InputValidationError(f"{input_type.capitalize()} cannot be empty")

        max_length = cls.MAX_LENGTHS.get(input_type, cls.MAX_LENGTHS['message'])
        if len(cleaned) > max_length:
            raise InputValidationError(f"{input_type.capitalize()} too long: {len(cleaned)} > {max_length}")

        return cleaned


def mask_secret(secret: str) -> str:
    """
    Mask a shared secret for safe logging.

    Returns:
        Masked version showing only first and last few characters
    """
    if not secret or not isinstance(secret, str):
        return ""
    if len(secret) < 12:
        return "***"
    return f"{secret[:4]}...{secret[-4:]}"


def generate_api_secret(length: int = 32) -> str:
    """Generate a new shared secret in the gateway's clawdbot-<random> format"""
    return SECRET_PREFIX + ''.join(secrets.choice(SECRET_ALPHABET) for _ in range(length))
