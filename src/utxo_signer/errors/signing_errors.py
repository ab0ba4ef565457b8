"""SigningError — base exception class and categorised signing failures."""

from __future__ import annotations

import enum


class SigningErrorCode(enum.StrEnum):
    """Machine-readable error codes carried by every :class:`SigningError`."""

    SIGNING_ERROR = "signing-error"
    # Planning / building
    PLANNING_FAILED = "planning-failed"
    MISSING_INPUT_UTXOS = "missing-input-utxos"
    ZERO_AMOUNT_REQUESTED = "zero-amount-requested"
    DUST_AMOUNT_REQUESTED = "dust-amount-requested"
    NOT_ENOUGH_UTXOS = "not-enough-utxos"
    # Digest computation
    UNSUPPORTED_SCRIPT_TYPE = "unsupported-script-type"
    # Signature assembly
    MISSING_SIGNING_KEY = "missing-signing-key"
    MISSING_EXTERNAL_SIGNATURE = "missing-external-signature"
    SIGNATURE_MISMATCH = "signature-mismatch"
    # Delegated transaction class
    DELEGATED_SERVICE_FAILURE = "delegated-service-failure"


class SigningError(Exception):
    """Base error for all planning, building and signing operations.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code.
    """

    default_code = SigningErrorCode.SIGNING_ERROR

    def __init__(self, message: str, *, code: SigningErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class PlanningFailedError(SigningError):
    """The builder could not produce a valid plan or unsigned transaction."""

    default_code = SigningErrorCode.PLANNING_FAILED


class UnsupportedScriptTypeError(SigningError):
    """An owning script cannot be classified for digest computation."""

    default_code = SigningErrorCode.UNSUPPORTED_SCRIPT_TYPE


class MissingSigningKeyError(SigningError):
    """No key is available for an input that needs one."""

    default_code = SigningErrorCode.MISSING_SIGNING_KEY


class MissingExternalSignatureError(SigningError):
    """External mode lacks a supplied signature for some input."""

    default_code = SigningErrorCode.MISSING_EXTERNAL_SIGNATURE


class SignatureMismatchError(SigningError):
    """A supplied signature does not match its input's digest or script."""

    default_code = SigningErrorCode.SIGNATURE_MISMATCH


class DelegatedServiceError(SigningError):
    """The external signing service failed or returned an unusable response."""

    default_code = SigningErrorCode.DELEGATED_SERVICE_FAILURE
