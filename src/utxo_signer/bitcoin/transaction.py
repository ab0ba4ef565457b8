"""Transaction model — serialisation and signature digests for the base chain.

Provides the Bitcoin transaction model shared (and specialised) by every
supported chain variant:
- OutPoint / TxInput / TxOutput data classes
- Transaction class with legacy and segwit serialisation, txid, size/vsize
- Legacy (whole-transaction) and BIP143 (witness v0) signature digests
- VarInt encoding/decoding
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, ClassVar, Self

from utxo_signer.bitcoin.sighash import (
    SignatureVersion,
    is_anyone_can_pay,
    is_none,
    is_single,
)
from utxo_signer.utils.crypto import sha256d

# ---------------------------------------------------------------------------
# VarInt encoding / decoding
# ---------------------------------------------------------------------------


def encode_varint(n: int) -> bytes:
    """Encode an integer as a Bitcoin-style variable-length integer."""
    if n < 0xFD:
        return struct.pack("<B", n)
    if n <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", n)
    if n <= 0xFFFFFFFF:
        return b"\xfe" + struct.pack("<I", n)
    return b"\xff" + struct.pack("<Q", n)


def read_varint(stream: BytesIO) -> int:
    """Read a Bitcoin-style variable-length integer from a byte stream."""
    first = stream.read(1)
    if len(first) == 0:
        msg = "Unexpected end of stream reading varint"
        raise ValueError(msg)
    n = first[0]
    if n < 0xFD:
        return n
    if n == 0xFD:
        return struct.unpack("<H", _read_exact(stream, 2))[0]
    if n == 0xFE:
        return struct.unpack("<I", _read_exact(stream, 4))[0]
    return struct.unpack("<Q", _read_exact(stream, 8))[0]


def encode_var_bytes(data: bytes) -> bytes:
    """Length-prefix *data* with a varint."""
    return encode_varint(len(data)) + data


def read_var_bytes(stream: BytesIO) -> bytes:
    """Read a varint length-prefixed byte string."""
    return _read_exact(stream, read_varint(stream))


def _read_exact(stream: BytesIO, n: int) -> bytes:
    data = stream.read(n)
    if len(data) != n:
        msg = f"Unexpected end of stream (wanted {n} bytes, got {len(data)})"
        raise ValueError(msg)
    return data


# Default sequence: 0xFFFFFFFF (final, no RBF)
DEFAULT_SEQUENCE = 0xFFFFFFFF

# Digest returned for SIGHASH_SINGLE without a matching output (consensus quirk)
SIGHASH_SINGLE_BUG = (1).to_bytes(32, "little")

_SEGWIT_MARKER = b"\x00\x01"
_WITNESS_SCALE_FACTOR = 4


# ---------------------------------------------------------------------------
# OutPoint (txid + vout reference)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OutPoint:
    """Reference to a previous transaction output.

    Attributes:
        hash: 32-byte hash of the previous transaction (internal byte order).
        index: Index of the output in the previous transaction.
    """

    hash: bytes
    index: int

    def __post_init__(self) -> None:
        if len(self.hash) != 32:
            msg = f"OutPoint hash must be 32 bytes, got {len(self.hash)}"
            raise ValueError(msg)

    @property
    def txid(self) -> str:
        """Previous transaction ID in display (reversed) hex."""
        return self.hash[::-1].hex()

    @classmethod
    def from_txid(cls, txid: str, index: int) -> OutPoint:
        """Build an out point from a display-order txid hex string."""
        return cls(hash=bytes.fromhex(txid)[::-1], index=index)

    def serialize(self) -> bytes:
        return self.hash + struct.pack("<I", self.index)

    @classmethod
    def deserialize(cls, stream: BytesIO) -> OutPoint:
        prev_hash = _read_exact(stream, 32)
        index = struct.unpack("<I", _read_exact(stream, 4))[0]
        return cls(hash=prev_hash, index=index)


# ---------------------------------------------------------------------------
# TxInput
# ---------------------------------------------------------------------------


@dataclass
class TxInput:
    """A transaction input.

    Attributes:
        previous_output: The output being spent.
        script_sig: Unlocking script (scriptSig).
        sequence: Sequence number (default 0xFFFFFFFF).
        witness: Witness stack items (empty for legacy inputs).
    """

    previous_output: OutPoint
    script_sig: bytes = b""
    sequence: int = DEFAULT_SEQUENCE
    witness: list[bytes] = field(default_factory=list)

    def serialize(self) -> bytes:
        """Serialize the input to bytes (witness data is not included)."""
        result = self.previous_output.serialize()
        result += encode_var_bytes(self.script_sig)
        result += struct.pack("<I", self.sequence)
        return result

    def serialize_witness(self) -> bytes:
        """Serialize the witness stack (count followed by items)."""
        result = encode_varint(len(self.witness))
        for item in self.witness:
            result += encode_var_bytes(item)
        return result

    @classmethod
    def deserialize(cls, stream: BytesIO) -> TxInput:
        """Deserialize a transaction input from a byte stream."""
        previous_output = OutPoint.deserialize(stream)
        script_sig = read_var_bytes(stream)
        sequence = struct.unpack("<I", _read_exact(stream, 4))[0]
        return cls(previous_output=previous_output, script_sig=script_sig, sequence=sequence)


# ---------------------------------------------------------------------------
# TxOutput
# ---------------------------------------------------------------------------


@dataclass
class TxOutput:
    """A transaction output.

    Attributes:
        value: Output value in satoshis.
        script_pubkey: Locking script (scriptPubKey).
    """

    value: int
    script_pubkey: bytes

    def serialize(self) -> bytes:
        """Serialize the output to bytes."""
        return struct.pack("<q", self.value) + encode_var_bytes(self.script_pubkey)

    @classmethod
    def deserialize(cls, stream: BytesIO) -> TxOutput:
        """Deserialize a transaction output from a byte stream."""
        value = struct.unpack("<q", _read_exact(stream, 8))[0]
        script_pubkey = read_var_bytes(stream)
        return cls(value=value, script_pubkey=script_pubkey)


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------


@dataclass
class Transaction:
    """A Bitcoin transaction.

    Variants subclass this model and override the prefix encoding (extra
    header fields), the digest hash function, or the digest algorithm itself.

    Attributes:
        version: Transaction version.
        inputs: List of transaction inputs.
        outputs: List of transaction outputs.
        lock_time: Transaction lock time.
    """

    DEFAULT_VERSION: ClassVar[int] = 1
    supports_witness: ClassVar[bool] = True

    version: int = 1
    inputs: list[TxInput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    lock_time: int = 0

    # -- Hooks -------------------------------------------------------------

    @staticmethod
    def hash_function(data: bytes) -> bytes:
        """Hash used for digests and the txid."""
        return sha256d(data)

    def _encode_prefix(self) -> bytes:
        """Header fields preceding the input list."""
        return struct.pack("<i", self.version)

    @classmethod
    def _read_prefix(cls, stream: BytesIO) -> dict[str, Any]:
        """Inverse of :meth:`_encode_prefix`, returned as constructor kwargs."""
        return {"version": struct.unpack("<i", _read_exact(stream, 4))[0]}

    # -- Serialization -----------------------------------------------------

    def has_witness(self) -> bool:
        """True if any input carries witness data."""
        return any(inp.witness for inp in self.inputs)

    def serialize(self, *, include_witness: bool = True) -> bytes:
        """Serialize the transaction to raw bytes.

        The segwit marker and witness section are only written when
        *include_witness* is set and at least one input has witness data.
        """
        witness = include_witness and self.supports_witness and self.has_witness()
        result = self._encode_prefix()
        if witness:
            result += _SEGWIT_MARKER
        result += encode_varint(len(self.inputs))
        for inp in self.inputs:
            result += inp.serialize()
        result += encode_varint(len(self.outputs))
        for out in self.outputs:
            result += out.serialize()
        if witness:
            for inp in self.inputs:
                result += inp.serialize_witness()
        result += struct.pack("<I", self.lock_time)
        return result

    def to_hex(self) -> str:
        """Serialize to hex string."""
        return self.serialize().hex()

    @classmethod
    def deserialize(cls, stream: BytesIO) -> Self:
        """Deserialize a transaction (legacy or segwit) from a byte stream."""
        kwargs = cls._read_prefix(stream)
        n_inputs = read_varint(stream)
        witness = False
        if n_inputs == 0 and cls.supports_witness:
            flag = _read_exact(stream, 1)
            if flag != b"\x01":
                msg = f"Unexpected segwit flag: {flag.hex()}"
                raise ValueError(msg)
            witness = True
            n_inputs = read_varint(stream)
        inputs = [TxInput.deserialize(stream) for _ in range(n_inputs)]
        n_outputs = read_varint(stream)
        outputs = [TxOutput.deserialize(stream) for _ in range(n_outputs)]
        if witness:
            for inp in inputs:
                inp.witness = [read_var_bytes(stream) for _ in range(read_varint(stream))]
        lock_time = struct.unpack("<I", _read_exact(stream, 4))[0]
        return cls(inputs=inputs, outputs=outputs, lock_time=lock_time, **kwargs)

    @classmethod
    def from_hex(cls, hex_str: str) -> Self:
        """Deserialize a transaction from a hex string."""
        return cls.from_bytes(bytes.fromhex(hex_str))

    @classmethod
    def from_bytes(cls, data: bytes) -> Self:
        """Deserialize a transaction from raw bytes."""
        return cls.deserialize(BytesIO(data))

    def txid_bytes(self) -> bytes:
        """Transaction ID as 32 bytes (internal byte order, witness excluded)."""
        return self.hash_function(self.serialize(include_witness=False))

    def txid(self) -> str:
        """Compute the transaction ID (reversed hex, display byte order)."""
        return self.txid_bytes()[::-1].hex()

    @property
    def size(self) -> int:
        """Transaction size in bytes, witness included."""
        return len(self.serialize())

    @property
    def weight(self) -> int:
        """BIP141 weight: 3 x stripped size + total size."""
        stripped = len(self.serialize(include_witness=False))
        return stripped * (_WITNESS_SCALE_FACTOR - 1) + self.size

    @property
    def vsize(self) -> int:
        """Virtual size in vbytes (weight / 4, rounded up)."""
        return (self.weight + _WITNESS_SCALE_FACTOR - 1) // _WITNESS_SCALE_FACTOR

    def add_input(
        self,
        previous_output: OutPoint,
        script_sig: bytes = b"",
        sequence: int = DEFAULT_SEQUENCE,
    ) -> TxInput:
        """Add an input to the transaction.

        Returns:
            The newly created :class:`TxInput`.
        """
        inp = TxInput(previous_output=previous_output, script_sig=script_sig, sequence=sequence)
        self.inputs.append(inp)
        return inp

    def add_output(self, value: int, script_pubkey: bytes) -> TxOutput:
        """Add an output to the transaction.

        Returns:
            The newly created :class:`TxOutput`.
        """
        out = TxOutput(value=value, script_pubkey=script_pubkey)
        self.outputs.append(out)
        return out

    # -- Signature digests -------------------------------------------------

    def signature_hash(
        self,
        script_code: bytes,
        index: int,
        hash_type: int,
        amount: int,
        version: SignatureVersion,
    ) -> bytes:
        """Compute the 32-byte digest input *index* must sign.

        Args:
            script_code: Script committed for the input (owning, redeem or
                witness script; a P2PKH template for P2WPKH).
            index: Position of the input being signed.
            hash_type: Sighash flags.
            amount: Value of the coin being spent (witness digests only).
            version: Digest algorithm selected by the input's script type.
        """
        if not 0 <= index < len(self.inputs):
            msg = f"Input index {index} out of range ({len(self.inputs)} inputs)"
            raise IndexError(msg)
        if version == SignatureVersion.WITNESS_V0:
            return self.witness_v0_signature_hash(script_code, index, hash_type, amount)
        return self.legacy_signature_hash(script_code, index, hash_type)

    def legacy_signature_hash(self, script_code: bytes, index: int, hash_type: int) -> bytes:
        """Pre-segwit digest: the whole transaction with other scriptSigs blanked."""
        if is_single(hash_type) and index >= len(self.outputs):
            return SIGHASH_SINGLE_BUG

        anyone_can_pay = is_anyone_can_pay(hash_type)
        preimage = self._encode_prefix()

        preimage += encode_varint(1 if anyone_can_pay else len(self.inputs))
        for i, inp in enumerate(self.inputs):
            if anyone_can_pay and i != index:
                continue
            sequence = inp.sequence
            if i != index and (is_none(hash_type) or is_single(hash_type)):
                sequence = 0
            signed = TxInput(
                previous_output=inp.previous_output,
                script_sig=script_code if i == index else b"",
                sequence=sequence,
            )
            preimage += signed.serialize()

        if is_none(hash_type):
            preimage += encode_varint(0)
        elif is_single(hash_type):
            preimage += encode_varint(index + 1)
            for _ in range(index):
                preimage += TxOutput(value=-1, script_pubkey=b"").serialize()
            preimage += self.outputs[index].serialize()
        else:
            preimage += encode_varint(len(self.outputs))
            for out in self.outputs:
                preimage += out.serialize()

        preimage += struct.pack("<I", self.lock_time)
        preimage += struct.pack("<I", hash_type)
        return self.hash_function(preimage)

    def witness_v0_signature_hash(
        self,
        script_code: bytes,
        index: int,
        hash_type: int,
        amount: int,
    ) -> bytes:
        """BIP143 digest committing to the spent amount and hashed aggregates."""
        inp = self.inputs[index]
        preimage = self._encode_prefix()
        preimage += self._hash_prevouts(hash_type)
        preimage += self._hash_sequence(hash_type)
        preimage += inp.previous_output.serialize()
        preimage += encode_var_bytes(script_code)
        preimage += struct.pack("<q", amount)
        preimage += struct.pack("<I", inp.sequence)
        preimage += self._hash_outputs(hash_type, index)
        preimage += struct.pack("<I", self.lock_time)
        preimage += struct.pack("<I", hash_type)
        return self.hash_function(preimage)

    def _hash_prevouts(self, hash_type: int) -> bytes:
        if is_anyone_can_pay(hash_type):
            return bytes(32)
        data = b"".join(inp.previous_output.serialize() for inp in self.inputs)
        return self.hash_function(data)

    def _hash_sequence(self, hash_type: int) -> bytes:
        if is_anyone_can_pay(hash_type) or is_single(hash_type) or is_none(hash_type):
            return bytes(32)
        data = b"".join(struct.pack("<I", inp.sequence) for inp in self.inputs)
        return self.hash_function(data)

    def _hash_outputs(self, hash_type: int, index: int) -> bytes:
        if not is_single(hash_type) and not is_none(hash_type):
            return self.hash_function(b"".join(out.serialize() for out in self.outputs))
        if is_single(hash_type) and index < len(self.outputs):
            return self.hash_function(self.outputs[index].serialize())
        return bytes(32)
