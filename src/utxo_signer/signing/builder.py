"""Transaction builder — plan coin selection and build unsigned transactions.

The plan step selects coins and computes the fee; the build step turns a plan
into an unsigned transaction of the requested model type. Chain variants
subclass the builder and override the hooks that create the transaction
(extra header fields) or shape output scripts.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, ClassVar, TypeVar

from utxo_signer.bitcoin.script import ScriptType, classify_script, op_return_script
from utxo_signer.bitcoin.transaction import Transaction, encode_varint
from utxo_signer.config.settings import PlanningConfig
from utxo_signer.errors.definitions import PLAN_ERRORS, ErrMissingInputUtxos
from utxo_signer.errors.signing_errors import PlanningFailedError, SigningErrorCode
from utxo_signer.signing.models import SigningInput, TransactionPlan, UnspentTransaction

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

TransactionT = TypeVar("TransactionT", bound=Transaction)

# Estimated sizes (vbytes)
_SEGWIT_OVERHEAD = 1  # marker + flag, rounded up
_OUTPUT_OVERHEAD = 8  # value
_DEFAULT_INPUT_SIZE = 148
_INPUT_SIZES: dict[ScriptType, int] = {
    ScriptType.P2PK: 114,
    ScriptType.P2PKH: 148,
    ScriptType.P2SH: 91,  # assumes nested P2WPKH
    ScriptType.P2WPKH: 68,
    ScriptType.P2WSH: 104,
    ScriptType.P2TR: 58,
}
_WITNESS_SPENDS = frozenset(
    {ScriptType.P2SH, ScriptType.P2WPKH, ScriptType.P2WSH, ScriptType.P2TR}
)


def estimate_input_size(utxo: UnspentTransaction) -> int:
    """Estimated virtual size of the input spending *utxo*."""
    return _INPUT_SIZES.get(classify_script(utxo.script), _DEFAULT_INPUT_SIZE)


class TransactionBuilder:
    """Plans and builds unsigned transactions for the base chain.

    The plan process:
    1. Validate the request (coins present, amount above dust)
    2. Select coins largest-first until amount + fee is covered
    3. Compute change, folding dust change into the fee
    4. Return an immutable TransactionPlan (errors recorded, not raised)
    """

    # version + lock time + varint counts
    tx_overhead: ClassVar[int] = 10
    supports_delegation: ClassVar[bool] = True

    def __init__(self, config: PlanningConfig | None = None) -> None:
        self._config = config or PlanningConfig()

    @property
    def config(self) -> PlanningConfig:
        return self._config

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan(self, signing_input: SigningInput) -> TransactionPlan:
        """Select coins and compute amount, fee and change for *signing_input*."""
        plan = self._plan(signing_input)
        if plan.error is not None:
            logger.debug("Planning failed: %s", plan.error)
        else:
            logger.debug(
                "Planned %d of %d inputs: amount=%d fee=%d change=%d",
                len(plan.utxos),
                len(signing_input.utxos),
                plan.amount,
                plan.fee,
                plan.change,
            )
        return plan

    def _plan(self, signing_input: SigningInput) -> TransactionPlan:
        utxos = signing_input.utxos
        dust = self._config.dust_threshold

        def failed(code: SigningErrorCode) -> TransactionPlan:
            return self._make_plan(signing_input, error=code)

        if not utxos:
            return failed(SigningErrorCode.MISSING_INPUT_UTXOS)

        extra = signing_input.extra_outputs_amount

        if signing_input.use_max_amount:
            fee = self._fee(signing_input, utxos, with_change=False)
            amount = signing_input.total_available - extra - fee
            if amount < max(dust, 1):
                return failed(SigningErrorCode.NOT_ENOUGH_UTXOS)
            return self._make_plan(signing_input, amount=amount, fee=fee, utxos=utxos)

        if signing_input.amount <= 0:
            return failed(SigningErrorCode.ZERO_AMOUNT_REQUESTED)
        if signing_input.amount < dust:
            return failed(SigningErrorCode.DUST_AMOUNT_REQUESTED)

        target = signing_input.amount + extra
        # Largest first; ties keep input order so planning is deterministic.
        ranked = sorted(range(len(utxos)), key=lambda i: (-utxos[i].amount, i))
        chosen: list[int] = []
        selected: tuple[UnspentTransaction, ...] = ()
        fee = 0
        for idx in ranked:
            chosen.append(idx)
            selected = tuple(utxos[i] for i in sorted(chosen))
            fee = self._fee(signing_input, selected, with_change=True)
            if sum(u.amount for u in selected) >= target + fee:
                break
        else:
            return failed(SigningErrorCode.NOT_ENOUGH_UTXOS)

        change = sum(u.amount for u in selected) - target - fee
        if change < dust:
            fee += change
            change = 0

        return self._make_plan(
            signing_input,
            amount=signing_input.amount,
            fee=fee,
            change=change,
            utxos=selected,
        )

    def _make_plan(
        self,
        signing_input: SigningInput,
        *,
        amount: int = 0,
        fee: int = 0,
        change: int = 0,
        utxos: Sequence[UnspentTransaction] = (),
        error: SigningErrorCode | None = None,
    ) -> TransactionPlan:
        return TransactionPlan(
            amount=amount,
            available_amount=signing_input.total_available,
            fee=fee,
            change=change,
            utxos=tuple(utxos),
            branch_id=signing_input.branch_id,
            pre_block_hash=signing_input.pre_block_hash,
            pre_block_height=signing_input.pre_block_height,
            output_op_return=signing_input.output_op_return,
            error=error,
        )

    def _fee(
        self,
        signing_input: SigningInput,
        utxos: Sequence[UnspentTransaction],
        *,
        with_change: bool,
    ) -> int:
        if signing_input.fixed_fee is not None:
            return signing_input.fixed_fee
        byte_fee = signing_input.byte_fee
        if byte_fee is None:
            byte_fee = self._config.default_byte_fee
        return self.estimate_vsize(signing_input, utxos, with_change=with_change) * byte_fee

    def estimate_vsize(
        self,
        signing_input: SigningInput,
        utxos: Sequence[UnspentTransaction],
        *,
        with_change: bool,
    ) -> int:
        """Estimate the virtual size of a transaction spending *utxos*."""
        scripts = [signing_input.to_script]
        if with_change:
            scripts.append(signing_input.change_script)
        if signing_input.output_op_return:
            scripts.append(op_return_script(signing_input.output_op_return))
        scripts.extend(script for _, script in signing_input.extra_outputs)

        size = self.tx_overhead
        if any(classify_script(u.script) in _WITNESS_SPENDS for u in utxos):
            size += _SEGWIT_OVERHEAD
        size += sum(estimate_input_size(u) for u in utxos)
        size += sum(
            _OUTPUT_OVERHEAD + len(encode_varint(len(s))) + len(s) for s in scripts
        )
        return size

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def build(
        self,
        plan: TransactionPlan,
        signing_input: SigningInput,
        transaction_cls: type[TransactionT],
    ) -> TransactionT:
        """Build the unsigned transaction described by *plan*.

        Inputs follow ``plan.utxos`` order. Outputs are the recipient, change
        (if any), OP_RETURN data (if any) and extra outputs, in that order.

        Raises:
            PlanningFailedError: If the plan carries an error or is unusable.
        """
        if plan.error is not None:
            raise PLAN_ERRORS.get(plan.error, PlanningFailedError(str(plan.error), code=plan.error))
        if not plan.utxos:
            raise ErrMissingInputUtxos
        if not signing_input.to_script:
            msg = "missing recipient script"
            raise PlanningFailedError(msg)
        if plan.change > 0 and not signing_input.change_script:
            msg = "missing change script"
            raise PlanningFailedError(msg)

        tx = self._new_transaction(plan, signing_input, transaction_cls)
        for utxo in plan.utxos:
            tx.add_input(utxo.out_point, sequence=utxo.sequence)

        tx.add_output(plan.amount, self._output_script(signing_input.to_script, plan))
        if plan.change > 0:
            tx.add_output(plan.change, self._output_script(signing_input.change_script, plan))
        if plan.output_op_return:
            tx.add_output(0, op_return_script(plan.output_op_return))
        for amount, script in signing_input.extra_outputs:
            tx.add_output(amount, self._output_script(script, plan))

        logger.debug(
            "Built unsigned %s: %d inputs, %d outputs",
            transaction_cls.__name__,
            len(tx.inputs),
            len(tx.outputs),
        )
        return tx

    # ------------------------------------------------------------------
    # Variant hooks
    # ------------------------------------------------------------------

    def _new_transaction(
        self,
        plan: TransactionPlan,
        signing_input: SigningInput,
        transaction_cls: type[TransactionT],
    ) -> TransactionT:
        """Create an empty transaction carrying the variant's header fields."""
        return transaction_cls(
            version=transaction_cls.DEFAULT_VERSION,
            lock_time=signing_input.lock_time,
        )

    def _output_script(self, script: bytes, plan: TransactionPlan) -> bytes:
        """Shape an output script before it is added (identity by default)."""
        return script
