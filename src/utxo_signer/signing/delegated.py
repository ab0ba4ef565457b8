"""Delegated transaction class — request/response messages and conversion.

Transactions of the delegated class are built and signed by an external
service. This module is the whole boundary between the signer and that
service:

1. :func:`build_request` turns a plan into a :class:`DelegatedSigningRequest`,
   recording per coin whether it is claimed via scriptSig (P2PKH) or witness
2. :func:`encode` / :func:`decode` convert messages to and from JSON bytes
3. :func:`reconstruct_transaction` rebuilds the native transaction, routing
   each input's claim payload using the flags recorded in step 1

:func:`sign_delegated` runs the sequence end to end.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

from pydantic import BaseModel, Field, ValidationError

from utxo_signer.bitcoin.script import ScriptType, classify_script
from utxo_signer.bitcoin.transaction import DEFAULT_SEQUENCE, OutPoint, Transaction, TxInput
from utxo_signer.errors.signing_errors import DelegatedServiceError, PlanningFailedError

if TYPE_CHECKING:
    from utxo_signer.services.signing_service import SigningService
    from utxo_signer.signing.models import SigningInput, TransactionPlan

logger = logging.getLogger(__name__)

TransactionT = TypeVar("TransactionT", bound=Transaction)

# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class OutPointMessage(BaseModel):
    """Previous-output reference; ``hash`` is hex in internal byte order."""

    hash: str = Field(pattern=r"^[0-9a-fA-F]{64}$")
    index: int = Field(ge=0)
    sequence: int = DEFAULT_SEQUENCE


class DelegatedUtxo(BaseModel):
    """One selected coin of a delegated signing request."""

    out_point: OutPointMessage
    amount: int
    script: str = ""  # owning script, hex
    claim_script: str = ""  # spending payload, hex
    use_script_sig: bool = False


class DelegatedOutput(BaseModel):
    value: int
    script: str = ""


class DelegatedSigningRequest(BaseModel):
    """Signing request sent to the external service."""

    utxos: list[DelegatedUtxo]
    amount: int
    fee: int
    change: int = 0
    byte_fee: int | None = None
    to_script: str = ""
    change_script: str = ""
    lock_time: int = 0
    hash_type: int = 1
    private_keys: list[str] = Field(default_factory=list)

    @property
    def script_sig_flags(self) -> list[bool]:
        """Per-input claim routing recorded at request time."""
        return [utxo.use_script_sig for utxo in self.utxos]


class DelegatedInput(BaseModel):
    previous_output: OutPointMessage
    script: str = ""  # claim payload, hex
    sequence: int = DEFAULT_SEQUENCE


class DelegatedTransaction(BaseModel):
    version: int
    lock_time: int = 0
    inputs: list[DelegatedInput] = Field(default_factory=list)
    outputs: list[DelegatedOutput] = Field(default_factory=list)


class DelegatedSigningResponse(BaseModel):
    """Service response: the signed transaction, or an error description."""

    transaction: DelegatedTransaction | None = None
    error: str = ""


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


def build_request(signing_input: SigningInput, plan: TransactionPlan) -> DelegatedSigningRequest:
    """Build the service request for the coins selected by *plan*.

    Raises:
        PlanningFailedError: If the plan carries an error or selects no coins.
    """
    if plan.error is not None:
        msg = f"cannot delegate a failed plan: {plan.error}"
        raise PlanningFailedError(msg, code=plan.error)
    if not plan.utxos:
        msg = "cannot delegate a plan without inputs"
        raise PlanningFailedError(msg)

    utxos = [
        DelegatedUtxo(
            out_point=OutPointMessage(
                hash=utxo.out_point.hash.hex(),
                index=utxo.out_point.index,
                sequence=utxo.sequence,
            ),
            amount=utxo.amount,
            script=utxo.script.hex(),
            claim_script=utxo.claim_script.hex(),
            use_script_sig=classify_script(utxo.script) == ScriptType.P2PKH,
        )
        for utxo in plan.utxos
    ]
    return DelegatedSigningRequest(
        utxos=utxos,
        amount=plan.amount,
        fee=plan.fee,
        change=plan.change,
        byte_fee=signing_input.byte_fee,
        to_script=signing_input.to_script.hex(),
        change_script=signing_input.change_script.hex(),
        lock_time=signing_input.lock_time,
        hash_type=signing_input.hash_type,
        private_keys=[key.hex() for key in signing_input.private_keys],
    )


def encode(message: BaseModel) -> bytes:
    """Serialise a message to JSON bytes."""
    return message.model_dump_json().encode("utf-8")


def decode(data: bytes) -> DelegatedSigningResponse:
    """Parse a service response.

    Raises:
        DelegatedServiceError: If the bytes are not a valid response message.
    """
    try:
        return DelegatedSigningResponse.model_validate_json(data)
    except ValidationError as exc:
        msg = f"unparsable signing service response: {exc.error_count()} errors"
        raise DelegatedServiceError(msg) from exc


def reconstruct_transaction(
    request: DelegatedSigningRequest,
    response: DelegatedSigningResponse,
    transaction_cls: type[TransactionT],
) -> TransactionT:
    """Rebuild the native transaction returned by the service.

    Version and lock time are copied verbatim. Each input's claim payload
    goes to scriptSig when the request flagged that coin as P2PKH, otherwise
    to a single-element witness stack.

    Raises:
        DelegatedServiceError: On a service error, or inputs that differ in
            count or order from the request.
    """
    if response.error or response.transaction is None:
        msg = f"signing service error: {response.error or 'no transaction returned'}"
        raise DelegatedServiceError(msg)

    message = response.transaction
    flags = request.script_sig_flags
    if len(message.inputs) != len(flags):
        msg = f"service returned {len(message.inputs)} inputs, expected {len(flags)}"
        raise DelegatedServiceError(msg)

    tx = transaction_cls(version=message.version, lock_time=message.lock_time)
    for index, (inp, utxo, use_script_sig) in enumerate(
        zip(message.inputs, request.utxos, flags, strict=True)
    ):
        ref = inp.previous_output
        if (ref.hash.lower(), ref.index) != (utxo.out_point.hash, utxo.out_point.index):
            msg = f"service input {index} does not spend the requested coin"
            raise DelegatedServiceError(msg)
        try:
            out_point = OutPoint(hash=bytes.fromhex(ref.hash), index=ref.index)
            claim = bytes.fromhex(inp.script)
        except ValueError as exc:
            msg = f"malformed service input {index}: {exc}"
            raise DelegatedServiceError(msg) from exc

        if use_script_sig:
            tx.inputs.append(TxInput(out_point, script_sig=claim, sequence=inp.sequence))
        else:
            tx.inputs.append(TxInput(out_point, sequence=inp.sequence, witness=[claim]))

    for index, out in enumerate(message.outputs):
        try:
            tx.add_output(out.value, bytes.fromhex(out.script))
        except ValueError as exc:
            msg = f"malformed service output {index}: {exc}"
            raise DelegatedServiceError(msg) from exc
    return tx


def sign_delegated(
    signing_input: SigningInput,
    plan: TransactionPlan,
    service: SigningService,
    transaction_cls: type[TransactionT],
) -> TransactionT:
    """Build the request, call *service* and reconstruct its transaction."""
    request = build_request(signing_input, plan)
    logger.info("Delegating signing of %d inputs to external service", len(request.utxos))
    response = decode(service.build_and_sign(encode(request)))
    tx = reconstruct_transaction(request, response, transaction_cls)
    logger.debug("Reconstructed delegated transaction %s", tx.txid())
    return tx
