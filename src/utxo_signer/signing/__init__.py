"""Plan, build and sign pipeline."""

from utxo_signer.signing.builder import TransactionBuilder
from utxo_signer.signing.models import (
    HashPubkeyList,
    SignaturePubkeyList,
    SigningInput,
    SigningMode,
    TransactionPlan,
    UnspentTransaction,
)
from utxo_signer.signing.signature_builder import SignatureBuilder
from utxo_signer.signing.signer import TransactionSigner

__all__ = [
    "HashPubkeyList",
    "SignatureBuilder",
    "SignaturePubkeyList",
    "SigningInput",
    "SigningMode",
    "TransactionBuilder",
    "TransactionPlan",
    "TransactionSigner",
    "UnspentTransaction",
]
