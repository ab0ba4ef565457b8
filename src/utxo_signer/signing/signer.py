"""Transaction signer — the single entry point of the signing pipeline.

``TransactionSigner`` is parameterised by a (transaction model, builder)
pair, so one orchestration serves every chain variant:

    plan -> build -> SignatureBuilder(mode).sign

Requests flagged ``delegated`` bypass the local builder and signature
builder entirely and go through the external signing service instead.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Generic, TypeVar

from utxo_signer.bitcoin.transaction import Transaction
from utxo_signer.errors.definitions import (
    ErrDelegationNotSupported,
    ErrSigningServiceNotConfigured,
)
from utxo_signer.errors.signing_errors import SignatureMismatchError
from utxo_signer.signing.delegated import sign_delegated
from utxo_signer.signing.models import SigningMode
from utxo_signer.signing.signature_builder import SignatureBuilder

if TYPE_CHECKING:
    from utxo_signer.services.signing_service import SigningService
    from utxo_signer.signing.builder import TransactionBuilder
    from utxo_signer.signing.models import (
        HashPubkeyList,
        SignaturePubkeyList,
        SigningInput,
        TransactionPlan,
    )

logger = logging.getLogger(__name__)

TransactionT = TypeVar("TransactionT", bound=Transaction)


class TransactionSigner(Generic[TransactionT]):
    """Plans, builds and signs transactions of one chain variant.

    Usage::

        signer = TransactionSigner(Transaction, TransactionBuilder())
        tx = signer.sign(signing_input)
        raw = tx.serialize()
    """

    def __init__(
        self,
        transaction_cls: type[TransactionT],
        builder: TransactionBuilder,
        signing_service: SigningService | None = None,
    ) -> None:
        """Initialize the signer.

        Args:
            transaction_cls: Transaction model produced by this signer.
            builder: Chain builder used for planning and building.
            signing_service: External service for delegated requests.
        """
        self._transaction_cls = transaction_cls
        self._builder = builder
        self._signing_service = signing_service

    @property
    def transaction_cls(self) -> type[TransactionT]:
        return self._transaction_cls

    @property
    def builder(self) -> TransactionBuilder:
        return self._builder

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def plan(self, signing_input: SigningInput) -> TransactionPlan:
        """Compute the plan for *signing_input* (no validation beyond the builder's)."""
        return self._builder.plan(signing_input)

    def sign(
        self,
        signing_input: SigningInput,
        estimation_mode: bool = False,
        external_signatures: SignaturePubkeyList | None = None,
    ) -> TransactionT:
        """Produce a signed (or size-estimation) transaction.

        Args:
            signing_input: The signing request.
            estimation_mode: Use placeholder signatures; the result must not
                be broadcast.
            external_signatures: Caller-supplied (signature, public key)
                pairs, one per input in plan order.

        Raises:
            SigningError: Any planning, building, signing or delegation
                failure. No partial transaction is returned.
        """
        plan = self._resolve_plan(signing_input)

        if signing_input.delegated:
            return self._sign_delegated(signing_input, plan)

        mode = self._select_mode(estimation_mode, external_signatures)
        transaction = self._builder.build(plan, signing_input, self._transaction_cls)
        builder = SignatureBuilder(
            signing_input, plan, transaction, mode, external_signatures
        )
        return builder.sign()

    def pre_image_hashes(self, signing_input: SigningInput) -> HashPubkeyList:
        """Return the (digest, public key) pair every input must sign.

        No transaction is exposed; an external signer signs the digests and
        calls :meth:`sign` with the resulting signatures.
        """
        plan = self._resolve_plan(signing_input)
        transaction = self._builder.build(plan, signing_input, self._transaction_cls)
        builder = SignatureBuilder(signing_input, plan, transaction, SigningMode.HASH_ONLY)
        builder.sign()
        return builder.hashes_for_signing

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve_plan(self, signing_input: SigningInput) -> TransactionPlan:
        if signing_input.plan is not None:
            return signing_input.plan
        return self._builder.plan(signing_input)

    @staticmethod
    def _select_mode(
        estimation_mode: bool,
        external_signatures: SignaturePubkeyList | None,
    ) -> SigningMode:
        if estimation_mode and external_signatures is not None:
            msg = "external signatures cannot be combined with size estimation"
            raise SignatureMismatchError(msg)
        if estimation_mode:
            return SigningMode.SIZE_ESTIMATION_ONLY
        if external_signatures is not None:
            return SigningMode.EXTERNAL
        return SigningMode.NORMAL

    def _sign_delegated(
        self, signing_input: SigningInput, plan: TransactionPlan
    ) -> TransactionT:
        if not self._builder.supports_delegation:
            raise ErrDelegationNotSupported
        if self._signing_service is None:
            raise ErrSigningServiceNotConfigured
        return sign_delegated(signing_input, plan, self._signing_service, self._transaction_cls)
