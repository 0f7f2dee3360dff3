"""Exception types raised by the parsers, codecs and stores."""


class OTPError(ValueError):
    """Base class for every recoverable OTP vault error."""


class MalformedInput(OTPError):
    """Required data is structurally absent (no query, no secret)."""


class ParsingError(OTPError):
    """A field is present but its value cannot be used."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class DecodeError(OTPError):
    """A stored blob or export file is unreadable or corrupt."""


class InvalidSecretEncoding(OTPError):
    """The secret is not valid Base32."""


class StoreError(OTPError):
    """The secret store could not be read or written."""
