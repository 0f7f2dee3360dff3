"""The key record: one managed HOTP or TOTP credential."""

from __future__ import annotations

import enum
import random
import uuid
from dataclasses import dataclass, field, replace

from otpvault import base32
from otpvault.errors import ParsingError

DEFAULT_DIGITS = 6
DEFAULT_PERIOD = 30
DEFAULT_COUNTER = 0


class OTPType(str, enum.Enum):
    HOTP = "hotp"
    TOTP = "totp"

    @classmethod
    def parse(cls, value: str) -> "OTPType":
        try:
            return cls(value.lower())
        except ValueError:
            raise ParsingError(f"unsupported OTP type: {value!r}") from None


class Algorithm(str, enum.Enum):
    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"

    @property
    def digestmod(self) -> str:
        return self.value.lower()

    @classmethod
    def parse(cls, value: str) -> "Algorithm":
        try:
            return cls(value.upper())
        except ValueError:
            raise ParsingError(f"unsupported algorithm: {value!r}") from None


def random_color() -> tuple[int, int, int]:
    return (random.randrange(256), random.randrange(256), random.randrange(256))


@dataclass(eq=False)
class KeyRecord:
    """One credential.

    ``counter`` is the next value to consume for HOTP. For TOTP it only holds
    the seconds left in the current window and is never authoritative.
    Equality ignores ``id``, ``color`` and the TOTP display counter.
    """

    type: OTPType
    secret: str
    label: str
    algorithm: Algorithm = Algorithm.SHA1
    digits: int = DEFAULT_DIGITS
    period: int = DEFAULT_PERIOD
    counter: int = DEFAULT_COUNTER
    color: tuple[int, int, int] = field(default_factory=random_color)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        self.type = OTPType(self.type)
        self.algorithm = Algorithm(self.algorithm)
        self.secret = base32.normalize(self.secret)
        self.color = tuple(self.color)
        if not self.secret:
            raise ParsingError("secret must not be empty")
        if not self.label:
            raise ParsingError("label must not be empty")
        if self.digits <= 0:
            raise ParsingError(f"digits must be positive, got {self.digits}")
        if self.type is OTPType.TOTP and self.period <= 0:
            raise ParsingError(f"period must be positive, got {self.period}")
        if self.counter < 0:
            raise ParsingError(f"counter must not be negative, got {self.counter}")

    @property
    def is_hotp(self) -> bool:
        return self.type is OTPType.HOTP

    def _key(self) -> tuple:
        counter = self.counter if self.is_hotp else None
        return (self.type, self.secret, self.label, self.algorithm,
                self.digits, self.period, counter)

    def __eq__(self, other):
        if not isinstance(other, KeyRecord):
            return NotImplemented
        return self._key() == other._key()

    def copy(self, **changes) -> "KeyRecord":
        """Return a new record with ``changes`` applied and the same id."""
        return replace(self, **changes)
