"""
Exception hierarchy for musicdecrypt.

Every failure the library raises derives from `MusicDecryptError`, so batch
callers can record a per-file failure and move on. Header mismatches
(`FormatMismatchError`) are swallowed by the registry; everything else
propagates.
"""


class MusicDecryptError(Exception):
    """Base class for all musicdecrypt failures."""


class FormatMismatchError(MusicDecryptError):
    """Raised by a support check when the stream header is not its format."""


class UnsupportedMetadataError(MusicDecryptError):
    """Raised when decrypted container metadata carries no usable format field."""


class UnsupportedAudioFormatError(MusicDecryptError):
    """Raised when the plaintext (or its metadata) names an unknown audio format."""


class KeyNotFoundError(MusicDecryptError):
    """Raised when a per-file key identifier is missing from the key table."""

    def __init__(self, key_id: str, message: str | None = None):
        self.key_id = key_id
        super().__init__(message or f"Decryption key not found: {key_id!r} (load a key database first)")


class InvalidKeyError(MusicDecryptError):
    """Raised when a wrapped ekey cannot be unwrapped into cipher key material."""


class OutOfRangeError(MusicDecryptError, ValueError):
    """Raised when a requested plaintext window falls outside the payload."""


class UnsupportedDatabaseError(MusicDecryptError):
    """Raised when the key database does not follow the expected page scheme."""


class DatabaseIntegrityError(UnsupportedDatabaseError):
    """Raised when page 1 of a key database fails its self-check after decryption."""


class NoMatchingDecrypterError(MusicDecryptError):
    """Raised by the registry when no registered decrypter accepts the stream."""


class StreamIOError(MusicDecryptError, OSError):
    """Raised when a stream is not readable/seekable/writable or ends early."""


class DecryptCancelledError(MusicDecryptError):
    """Raised between chunks when the caller's cancellation event is set."""


__all__ = [
    "DatabaseIntegrityError",
    "DecryptCancelledError",
    "FormatMismatchError",
    "InvalidKeyError",
    "KeyNotFoundError",
    "MusicDecryptError",
    "NoMatchingDecrypterError",
    "OutOfRangeError",
    "StreamIOError",
    "UnsupportedAudioFormatError",
    "UnsupportedDatabaseError",
    "UnsupportedMetadataError",
]
