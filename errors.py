"""
Exception hierarchy for Keychain Editor.

PreconditionError, CapabilityError (and its subclasses) and
FormatInconsistencyError abort a request. ReferenceDecodeError never leaves
the keychain package.
"""


class KeychainEditorError(Exception):
    """Base class for all Keychain Editor errors."""


class PreconditionError(KeychainEditorError):
    """Request inputs are missing or invalid; the operation never started."""


class CapabilityError(KeychainEditorError):
    """The irestore helper failed to decrypt, restore or encrypt."""


class HelperError(CapabilityError):
    """The helper could not be spawned or exited with an unexpected code."""

    def __init__(self, message: str, returncode: int | None = None):
        super().__init__(message)
        self.returncode = returncode


class BadPasswordError(CapabilityError):
    """The backup password was rejected."""


class HelperTimeoutError(CapabilityError):
    """The helper stopped responding."""


class FormatInconsistencyError(KeychainEditorError):
    """Container or plaintext dump is unreadable, or they disagree on which record classes exist."""


class ReferenceDecodeError(KeychainEditorError, ValueError):
    """A persistent reference is not valid base64."""
