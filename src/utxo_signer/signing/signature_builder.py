"""Signature builder — per-input digests, signatures and unlocking data.

Given an unsigned transaction and its plan, the builder computes the digest
each input must sign (legacy or BIP143, chosen from the owning script carried
on the plan), obtains a signature according to the signing mode, and
assembles the scriptSig or witness stack:

- ``NORMAL``: sign locally with the matching private key
- ``SIZE_ESTIMATION_ONLY``: maximum-size placeholders, no key material
- ``EXTERNAL``: caller-supplied (signature, public key) pairs, verified
- ``HASH_ONLY``: digests only, paired with the expected public key
"""

from __future__ import annotations

import copy
import dataclasses
import logging
from functools import cached_property
from typing import TYPE_CHECKING, Generic, TypeVar

from utxo_signer.bitcoin.keys import (
    COMPRESSED_PUBKEY_SIZE,
    MAX_SIGNATURE_SIZE,
    is_canonical_signature,
    public_key_hashes,
    sign_digest,
    verify_signature,
)
from utxo_signer.bitcoin.script import (
    ScriptType,
    classify_script,
    extract_pubkey,
    extract_pubkey_hash,
    extract_script_hash,
    p2pkh_lock_script,
    p2wpkh_lock_script,
    p2wpkh_lock_script_from_pubkey,
    push_data,
)
from utxo_signer.bitcoin.sighash import SignatureVersion
from utxo_signer.bitcoin.transaction import Transaction
from utxo_signer.errors.signing_errors import (
    MissingExternalSignatureError,
    MissingSigningKeyError,
    PlanningFailedError,
    SignatureMismatchError,
    UnsupportedScriptTypeError,
)
from utxo_signer.signing.models import (
    HashPubkeyList,
    SignaturePubkeyList,
    SigningInput,
    SigningMode,
    TransactionPlan,
    UnspentTransaction,
)
from utxo_signer.utils.crypto import hash160, sha256

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

TransactionT = TypeVar("TransactionT", bound=Transaction)

# Size estimation placeholders: a maximum-length signature (sighash byte
# included) and a compressed public key.
_PLACEHOLDER_SIGNATURE = bytes(MAX_SIGNATURE_SIZE)
_PLACEHOLDER_PUBKEY = bytes(COMPRESSED_PUBKEY_SIZE)
_PLACEHOLDER_REDEEM_SCRIPT = p2wpkh_lock_script(bytes(20))


@dataclasses.dataclass(frozen=True)
class _KeyTemplate:
    """A single-key spending condition: P2PK (key) or P2PKH (key hash)."""

    script_type: ScriptType
    pubkey: bytes | None = None
    pubkey_hash: bytes | None = None

    def matches(self, pubkey: bytes) -> bool:
        if self.pubkey is not None:
            return pubkey == self.pubkey
        return hash160(pubkey) == self.pubkey_hash


class SignatureBuilder(Generic[TransactionT]):
    """Computes digests and assembles unlocking data for every input.

    After :meth:`sign` returns, ``signatures`` and ``hashes_for_signing`` hold
    one entry per input, in plan order.
    """

    def __init__(
        self,
        signing_input: SigningInput,
        plan: TransactionPlan,
        transaction: TransactionT,
        mode: SigningMode = SigningMode.NORMAL,
        external_signatures: SignaturePubkeyList | None = None,
    ) -> None:
        self._input = signing_input
        self._plan = plan
        self._transaction = transaction
        self._mode = mode
        self._external = external_signatures
        self.signatures: SignaturePubkeyList = []
        self.hashes_for_signing: HashPubkeyList = []

    @property
    def mode(self) -> SigningMode:
        return self._mode

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def sign(self) -> TransactionT:
        """Sign every input and return the assembled transaction.

        The unsigned transaction passed in is left untouched. In
        ``HASH_ONLY`` mode the returned copy carries no unlocking data.

        Raises:
            PlanningFailedError: Transaction inputs disagree with the plan.
            UnsupportedScriptTypeError: An owning script cannot be signed.
            MissingSigningKeyError: No key for an input (NORMAL / HASH_ONLY).
            MissingExternalSignatureError: Too few supplied signatures.
            SignatureMismatchError: A supplied signature is inconsistent.
        """
        self._check_alignment()
        self.signatures = []
        self.hashes_for_signing = []

        signed = copy.deepcopy(self._transaction)
        for index, utxo in enumerate(self._plan.utxos):
            script_sig, witness = self._sign_input(index, utxo)
            if self._mode is SigningMode.HASH_ONLY:
                continue
            signed.inputs[index].script_sig = script_sig
            signed.inputs[index].witness = witness

        logger.debug(
            "Processed %d inputs in %s mode", len(self._plan.utxos), self._mode.value
        )
        return signed

    # ------------------------------------------------------------------
    # Per-input processing
    # ------------------------------------------------------------------

    def _check_alignment(self) -> None:
        utxos = self._plan.utxos
        inputs = self._transaction.inputs
        if len(inputs) != len(utxos):
            msg = f"transaction has {len(inputs)} inputs but plan has {len(utxos)}"
            raise PlanningFailedError(msg)
        for index, (inp, utxo) in enumerate(zip(inputs, utxos, strict=True)):
            if inp.previous_output != utxo.out_point:
                msg = f"input {index} does not spend the planned coin"
                raise PlanningFailedError(msg)

        if self._mode is SigningMode.EXTERNAL:
            supplied = len(self._external or [])
            if supplied < len(utxos):
                msg = f"{supplied} external signatures supplied for {len(utxos)} inputs"
                raise MissingExternalSignatureError(msg)
            if supplied > len(utxos):
                msg = f"{supplied} external signatures supplied for {len(utxos)} inputs"
                raise SignatureMismatchError(msg)

    def _sign_input(self, index: int, utxo: UnspentTransaction) -> tuple[bytes, list[bytes]]:
        """Return (scriptSig, witness) for the input spending *utxo*."""
        script = utxo.script
        script_type = classify_script(script)
        redeem_script = b""

        if script_type == ScriptType.P2SH:
            redeem_script = self._redeem_script(index, script)
            script = redeem_script
            script_type = classify_script(redeem_script)
            if script_type == ScriptType.P2SH:
                msg = f"input {index}: nested P2SH redeem script"
                raise UnsupportedScriptTypeError(msg)

        # Nested segwit carries only the redeem script push in scriptSig
        redeem_push = push_data(redeem_script) if redeem_script else b""

        if script_type == ScriptType.P2WPKH:
            self._require_witness(index)
            script_code = p2pkh_lock_script(extract_pubkey_hash(script))  # type: ignore[arg-type]
            template = self._template(script_code, index)
            witness = self._sign_template(
                template, index, utxo, script_code, SignatureVersion.WITNESS_V0
            )
            return redeem_push, witness

        if script_type == ScriptType.P2WSH:
            self._require_witness(index)
            witness_script = self._witness_script(index, script)
            template = self._template(witness_script, index)
            items = self._sign_template(
                template, index, utxo, witness_script, SignatureVersion.WITNESS_V0
            )
            return redeem_push, [*items, witness_script]

        if script_type in (ScriptType.P2PK, ScriptType.P2PKH):
            template = self._template(script, index)
            items = self._sign_template(template, index, utxo, script, SignatureVersion.BASE)
            script_sig = b"".join(push_data(item) for item in items)
            if redeem_script:
                script_sig += push_data(redeem_script)
            return script_sig, []

        msg = f"input {index}: unsupported script type {script_type.value}"
        raise UnsupportedScriptTypeError(msg)

    def _sign_template(
        self,
        template: _KeyTemplate,
        index: int,
        utxo: UnspentTransaction,
        script_code: bytes,
        version: SignatureVersion,
    ) -> list[bytes]:
        """Digest, sign and return the stack items for a single-key script."""
        digest = self._transaction.signature_hash(
            script_code, index, self._input.hash_type, utxo.amount, version
        )
        signature, pubkey = self._create_signature(template, index, digest)
        if self._mode is SigningMode.HASH_ONLY:
            return []
        if template.script_type == ScriptType.P2PK:
            return [signature]
        return [signature, pubkey]

    def _create_signature(
        self, template: _KeyTemplate, index: int, digest: bytes
    ) -> tuple[bytes, bytes]:
        """Return (signature with sighash byte, public key) for one input."""
        hash_byte = bytes([self._input.hash_type & 0xFF])

        if self._mode is SigningMode.SIZE_ESTIMATION_ONLY:
            pubkey = template.pubkey or _PLACEHOLDER_PUBKEY
            self.signatures.append((_PLACEHOLDER_SIGNATURE[:-1], pubkey))
            self.hashes_for_signing.append((digest, pubkey))
            return _PLACEHOLDER_SIGNATURE, pubkey

        if self._mode is SigningMode.HASH_ONLY:
            pubkey = self._public_key_for(template, index)
            self.hashes_for_signing.append((digest, pubkey))
            return b"", pubkey

        if self._mode is SigningMode.EXTERNAL:
            signature, pubkey = self._external[index]  # type: ignore[index]
            if not template.matches(pubkey):
                msg = f"input {index}: supplied public key does not match the owning script"
                raise SignatureMismatchError(msg)
            if not is_canonical_signature(signature):
                msg = f"input {index}: supplied signature is not canonical low-S DER"
                raise SignatureMismatchError(msg)
            if not verify_signature(pubkey, digest, signature):
                msg = f"input {index}: supplied signature does not verify against the digest"
                raise SignatureMismatchError(msg)
        else:
            privkey, pubkey = self._private_key_for(template, index)
            signature = sign_digest(privkey, digest)

        self.signatures.append((signature, pubkey))
        self.hashes_for_signing.append((digest, pubkey))
        return signature + hash_byte, pubkey

    # ------------------------------------------------------------------
    # Script resolution
    # ------------------------------------------------------------------

    def _require_witness(self, index: int) -> None:
        if not type(self._transaction).supports_witness:
            msg = (
                f"input {index}: witness scripts are not supported by "
                f"{type(self._transaction).__name__}"
            )
            raise UnsupportedScriptTypeError(msg)

    @staticmethod
    def _template(script: bytes, index: int) -> _KeyTemplate:
        script_type = classify_script(script)
        if script_type == ScriptType.P2PK:
            return _KeyTemplate(script_type, pubkey=extract_pubkey(script))
        if script_type == ScriptType.P2PKH:
            return _KeyTemplate(script_type, pubkey_hash=extract_pubkey_hash(script))
        msg = f"input {index}: unsupported inner script type {script_type.value}"
        raise UnsupportedScriptTypeError(msg)

    def _redeem_script(self, index: int, script: bytes) -> bytes:
        """Resolve the P2SH redeem script from ``scripts`` or known keys."""
        script_hash = extract_script_hash(script)
        if script_hash is None:  # pragma: no cover - classified as P2SH by caller
            msg = f"input {index}: not a P2SH script"
            raise UnsupportedScriptTypeError(msg)
        provided = self._input.scripts.get(script_hash.hex())
        if provided is not None:
            if hash160(provided) != script_hash:
                msg = f"input {index}: redeem script does not match script hash"
                raise UnsupportedScriptTypeError(msg)
            return provided
        # Nested P2WPKH can be reconstructed from the spending key.
        for pubkey in self._candidate_public_keys(index):
            candidate = p2wpkh_lock_script_from_pubkey(pubkey)
            if hash160(candidate) == script_hash:
                return candidate
        if self._mode is SigningMode.SIZE_ESTIMATION_ONLY:
            # Same size as any nested P2WPKH redeem script
            return _PLACEHOLDER_REDEEM_SCRIPT
        msg = f"input {index}: missing redeem script"
        raise UnsupportedScriptTypeError(msg)

    def _witness_script(self, index: int, script: bytes) -> bytes:
        program = extract_script_hash(script)
        if program is None:  # pragma: no cover - classified as P2WSH by caller
            msg = f"input {index}: not a P2WSH script"
            raise UnsupportedScriptTypeError(msg)
        provided = self._input.scripts.get(program.hex())
        if provided is None or sha256(provided) != program:
            msg = f"input {index}: missing witness script"
            raise UnsupportedScriptTypeError(msg)
        return provided

    def _candidate_public_keys(self, index: int) -> Iterator[bytes]:
        if self._mode is SigningMode.EXTERNAL and self._external:
            yield self._external[index][1]
        if self._mode in (SigningMode.NORMAL, SigningMode.HASH_ONLY):
            for _, pubkey in self._private_keys_by_hash.values():
                yield pubkey
        yield from self._input.public_keys

    # ------------------------------------------------------------------
    # Key lookup
    # ------------------------------------------------------------------

    @cached_property
    def _private_keys_by_hash(self) -> dict[bytes, tuple[bytes, bytes]]:
        """Hash160(pubkey) -> (private key, public key), both encodings."""
        index: dict[bytes, tuple[bytes, bytes]] = {}
        for privkey in self._input.private_keys:
            try:
                hashes = public_key_hashes(privkey)
            except ValueError as exc:
                msg = f"invalid private key: {exc}"
                raise MissingSigningKeyError(msg) from exc
            for key_hash, pubkey in hashes.items():
                index.setdefault(key_hash, (privkey, pubkey))
        return index

    def _private_key_for(self, template: _KeyTemplate, index: int) -> tuple[bytes, bytes]:
        key_hash = template.pubkey_hash
        if key_hash is None and template.pubkey is not None:
            key_hash = hash160(template.pubkey)
        entry = self._private_keys_by_hash.get(key_hash)  # type: ignore[arg-type]
        if entry is None:
            msg = f"input {index}: no private key for the owning script"
            raise MissingSigningKeyError(msg)
        return entry

    def _public_key_for(self, template: _KeyTemplate, index: int) -> bytes:
        if template.pubkey is not None:
            return template.pubkey
        entry = self._private_keys_by_hash.get(template.pubkey_hash)  # type: ignore[arg-type]
        if entry is not None:
            return entry[1]
        for pubkey in self._input.public_keys:
            if template.matches(pubkey):
                return pubkey
        msg = f"input {index}: no public key known for the owning script"
        raise MissingSigningKeyError(msg)
