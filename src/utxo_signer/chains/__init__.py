"""Chain variants and the registry of signer instantiations.

Each supported chain is a (transaction model, builder) pair:

| Chain            | Transaction model           | Builder                           |
|------------------|-----------------------------|-----------------------------------|
| bitcoin          | Transaction                 | TransactionBuilder                |
| zcash            | ZcashTransaction            | ZcashTransactionBuilder           |
| zen              | Transaction                 | ZenTransactionBuilder             |
| groestlcoin      | GroestlcoinTransaction      | TransactionBuilder                |
| verge            | VergeTransaction            | VergeTransactionBuilder           |
| bitcoin_diamond  | BitcoinDiamondTransaction   | BitcoinDiamondTransactionBuilder  |
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

from utxo_signer.bitcoin.transaction import Transaction
from utxo_signer.chains.bitcoin_diamond import (
    BitcoinDiamondTransaction,
    BitcoinDiamondTransactionBuilder,
)
from utxo_signer.chains.groestlcoin import GroestlcoinTransaction
from utxo_signer.chains.verge import VergeTransaction, VergeTransactionBuilder
from utxo_signer.chains.zcash import ZcashTransaction, ZcashTransactionBuilder
from utxo_signer.chains.zen import ZenTransactionBuilder
from utxo_signer.signing.builder import TransactionBuilder
from utxo_signer.signing.signer import TransactionSigner

if TYPE_CHECKING:
    from utxo_signer.config.settings import AppConfig
    from utxo_signer.services.signing_service import SigningService


class Chain(enum.StrEnum):
    """Supported UTXO chains."""

    BITCOIN = "bitcoin"
    ZCASH = "zcash"
    ZEN = "zen"
    GROESTLCOIN = "groestlcoin"
    VERGE = "verge"
    BITCOIN_DIAMOND = "bitcoin_diamond"


_REGISTRY: dict[Chain, tuple[type[Transaction], type[TransactionBuilder]]] = {
    Chain.BITCOIN: (Transaction, TransactionBuilder),
    Chain.ZCASH: (ZcashTransaction, ZcashTransactionBuilder),
    Chain.ZEN: (Transaction, ZenTransactionBuilder),
    Chain.GROESTLCOIN: (GroestlcoinTransaction, TransactionBuilder),
    Chain.VERGE: (VergeTransaction, VergeTransactionBuilder),
    Chain.BITCOIN_DIAMOND: (BitcoinDiamondTransaction, BitcoinDiamondTransactionBuilder),
}


def make_signer(
    chain: Chain | str,
    *,
    config: AppConfig | None = None,
    signing_service: SigningService | None = None,
) -> TransactionSigner:
    """Create the signer for *chain*.

    Args:
        chain: Chain name or :class:`Chain` member.
        config: Application config (planning and log settings); defaults
            apply if omitted.
        signing_service: External service for delegated requests.

    Raises:
        ValueError: If *chain* is not a supported chain.
    """
    transaction_cls, builder_cls = _REGISTRY[Chain(chain)]
    if config is None:
        return TransactionSigner(transaction_cls, builder_cls(), signing_service)
    config.configure_logging()
    builder = builder_cls(config.planning)
    return TransactionSigner(transaction_cls, builder, signing_service)


__all__ = [
    "BitcoinDiamondTransaction",
    "BitcoinDiamondTransactionBuilder",
    "Chain",
    "GroestlcoinTransaction",
    "VergeTransaction",
    "VergeTransactionBuilder",
    "ZcashTransaction",
    "ZcashTransactionBuilder",
    "ZenTransactionBuilder",
    "make_signer",
]
