"""Zen (Horizen) transaction builder.

Zen uses the base transaction model but every P2PKH and P2SH output must
carry replay protection: ``<block hash> <block height> OP_CHECKBLOCKATHEIGHT``
appended to the locking script, referencing a recent block taken from the
plan.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from utxo_signer.bitcoin.script import (
    ScriptType,
    classify_script,
    replay_protection_suffix,
    with_replay_protection,
)
from utxo_signer.errors.signing_errors import PlanningFailedError
from utxo_signer.signing.builder import TransactionBuilder, TransactionT

if TYPE_CHECKING:
    from collections.abc import Sequence

    from utxo_signer.signing.models import SigningInput, TransactionPlan, UnspentTransaction


class ZenTransactionBuilder(TransactionBuilder):
    """Builder appending replay protection to P2PKH / P2SH outputs."""

    supports_delegation: ClassVar[bool] = False

    def estimate_vsize(
        self,
        signing_input: SigningInput,
        utxos: Sequence[UnspentTransaction],
        *,
        with_change: bool,
    ) -> int:
        size = super().estimate_vsize(signing_input, utxos, with_change=with_change)
        scripts = [signing_input.to_script]
        if with_change:
            scripts.append(signing_input.change_script)
        scripts.extend(script for _, script in signing_input.extra_outputs)
        suffix = len(
            replay_protection_suffix(bytes(32), signing_input.pre_block_height)
        )
        protected = sum(
            1 for s in scripts if classify_script(s) in (ScriptType.P2PKH, ScriptType.P2SH)
        )
        return size + protected * suffix

    def _new_transaction(
        self,
        plan: TransactionPlan,
        signing_input: SigningInput,
        transaction_cls: type[TransactionT],
    ) -> TransactionT:
        if len(plan.pre_block_hash) != 32:
            msg = "missing replay protection block hash"
            raise PlanningFailedError(msg)
        return super()._new_transaction(plan, signing_input, transaction_cls)

    def _output_script(self, script: bytes, plan: TransactionPlan) -> bytes:
        return with_replay_protection(script, plan.pre_block_hash, plan.pre_block_height)
