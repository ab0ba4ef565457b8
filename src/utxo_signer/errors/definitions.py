"""Predefined error instances for fixed-message failures."""

from __future__ import annotations

from utxo_signer.errors.signing_errors import (
    DelegatedServiceError,
    PlanningFailedError,
    SigningErrorCode,
)

# -- Planning --------------------------------------------------------------

ErrMissingInputUtxos = PlanningFailedError(
    "no input utxos provided", code=SigningErrorCode.MISSING_INPUT_UTXOS
)
ErrZeroAmountRequested = PlanningFailedError(
    "requested amount is zero", code=SigningErrorCode.ZERO_AMOUNT_REQUESTED
)
ErrDustAmountRequested = PlanningFailedError(
    "requested amount is below the dust threshold", code=SigningErrorCode.DUST_AMOUNT_REQUESTED
)
ErrNotEnoughUtxos = PlanningFailedError(
    "not enough funds to cover amount and fee", code=SigningErrorCode.NOT_ENOUGH_UTXOS
)

PLAN_ERRORS: dict[SigningErrorCode, PlanningFailedError] = {
    err.code: err
    for err in (
        ErrMissingInputUtxos,
        ErrZeroAmountRequested,
        ErrDustAmountRequested,
        ErrNotEnoughUtxos,
    )
}

# -- Delegated signing -----------------------------------------------------

ErrSigningServiceNotConfigured = DelegatedServiceError("no signing service configured")
ErrDelegationNotSupported = DelegatedServiceError(
    "delegated signing is not supported for this chain"
)
