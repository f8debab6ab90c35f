"""Time-based one-time password generation for 2FA challenges."""

from __future__ import annotations

import binascii
import logging
import time
from typing import Callable, NamedTuple, Optional

import pyotp

from shortest.errors import InvalidSecretError

logger = logging.getLogger(__name__)

TOTP_DIGITS = 6
TOTP_PERIOD_SECONDS = 30


class TOTPCode(NamedTuple):
    code: str
    seconds_remaining: int


def normalize_secret(secret: Optional[str]) -> str:
    """Strip whitespace/dashes and upper-case a base32 secret.

    Authenticator setup pages often show the key in groups
    ("abcd efgh ijkl"), so the separators are not part of the secret.
    """
    if secret is None:
        raise InvalidSecretError("TOTP secret is required but was not provided")
    cleaned = "".join(secret.split()).replace("-", "").upper()
    if not cleaned:
        raise InvalidSecretError("TOTP secret is required but was empty")
    return cleaned


class TOTPGenerator:
    """Stateless TOTP code generator (RFC 6238, SHA-1, 6 digits, 30s steps).

    Every call recomputes from the clock; results are never cached, so two
    calls straddling a window boundary legitimately return different codes.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        period: int = TOTP_PERIOD_SECONDS,
        digits: int = TOTP_DIGITS,
    ):
        self.clock = clock
        self.period = period
        self.digits = digits

    def generate(self, secret: Optional[str]) -> TOTPCode:
        cleaned = normalize_secret(secret)
        totp = pyotp.TOTP(cleaned, digits=self.digits, interval=self.period)
        try:
            totp.byte_secret()
        except (binascii.Error, ValueError) as e:
            raise InvalidSecretError(f"TOTP secret is not valid base32: {e}") from e

        now = int(self.clock())
        code = totp.at(now)
        remaining = self.period - (now % self.period)
        logger.debug("Generated TOTP code (expires in %ds)", remaining)
        return TOTPCode(code=code, seconds_remaining=remaining)
