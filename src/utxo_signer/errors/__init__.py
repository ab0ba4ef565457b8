"""Error hierarchy for planning, building and signing."""

from utxo_signer.errors.signing_errors import (
    DelegatedServiceError,
    MissingExternalSignatureError,
    MissingSigningKeyError,
    PlanningFailedError,
    SignatureMismatchError,
    SigningError,
    SigningErrorCode,
    UnsupportedScriptTypeError,
)

__all__ = [
    "DelegatedServiceError",
    "MissingExternalSignatureError",
    "MissingSigningKeyError",
    "PlanningFailedError",
    "SignatureMismatchError",
    "SigningError",
    "SigningErrorCode",
    "UnsupportedScriptTypeError",
]
