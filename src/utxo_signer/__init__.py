"""utxo-signer — plan, build and sign UTXO transactions for Bitcoin and its derivatives."""

from utxo_signer.chains import Chain, make_signer
from utxo_signer.errors import SigningError
from utxo_signer.signing import SigningInput, TransactionSigner, UnspentTransaction

__version__ = "0.1.0"

__all__ = [
    "Chain",
    "SigningError",
    "SigningInput",
    "TransactionSigner",
    "UnspentTransaction",
    "__version__",
    "make_signer",
]
