"""Script building — standard templates, pushes, script classification.

Provides construction and parsing of the locking/unlocking scripts the signer
understands:
- P2PK, P2PKH, P2SH, P2WPKH, P2WSH lock scripts
- OP_RETURN (null data) scripts
- Replay-protected P2PKH / P2SH (``<hash> <height> OP_CHECKBLOCKATHEIGHT``)
- Script type classification and data extraction
"""

from __future__ import annotations

import enum
import struct

from utxo_signer.bitcoin.keys import is_public_key
from utxo_signer.utils.crypto import hash160, sha256

# ---------------------------------------------------------------------------
# Opcodes
# ---------------------------------------------------------------------------


class OpCode(int, enum.Enum):
    """Commonly used opcodes."""

    OP_0 = 0x00
    OP_FALSE = 0x00
    OP_PUSHDATA1 = 0x4C
    OP_PUSHDATA2 = 0x4D
    OP_PUSHDATA4 = 0x4E
    OP_1NEGATE = 0x4F
    OP_1 = 0x51
    OP_16 = 0x60
    OP_RETURN = 0x6A
    OP_DUP = 0x76
    OP_EQUAL = 0x87
    OP_EQUALVERIFY = 0x88
    OP_HASH160 = 0xA9
    OP_CHECKSIG = 0xAC
    OP_CHECKBLOCKATHEIGHT = 0xB4


# ---------------------------------------------------------------------------
# Script Type
# ---------------------------------------------------------------------------


class ScriptType(enum.StrEnum):
    """Known script types."""

    P2PK = "pubkey"
    P2PKH = "pubkeyhash"
    P2SH = "scripthash"
    P2WPKH = "witness_v0_keyhash"
    P2WSH = "witness_v0_scripthash"
    P2TR = "witness_v1_taproot"
    NULL_DATA = "nulldata"
    UNKNOWN = "unknown"

    @property
    def is_witness(self) -> bool:
        """True for native witness programs."""
        return self in (ScriptType.P2WPKH, ScriptType.P2WSH, ScriptType.P2TR)


# ---------------------------------------------------------------------------
# Data push helpers
# ---------------------------------------------------------------------------


def push_data(data: bytes) -> bytes:
    """Encode a data push operation using minimal encoding rules.

    Args:
        data: Arbitrary data bytes.

    Returns:
        The opcode(s) + data for a minimal push of *data*.
    """
    length = len(data)
    if length == 0:
        return bytes([OpCode.OP_0])
    if length <= 0x4B:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OpCode.OP_PUSHDATA1, length]) + data
    if length <= 0xFFFF:
        return bytes([OpCode.OP_PUSHDATA2]) + struct.pack("<H", length) + data
    return bytes([OpCode.OP_PUSHDATA4]) + struct.pack("<I", length) + data


def encode_script_number(n: int) -> bytes:
    """Encode an integer as a minimal little-endian script number."""
    if n == 0:
        return b""
    negative = n < 0
    value = abs(n)
    result = bytearray()
    while value:
        result.append(value & 0xFF)
        value >>= 8
    if result[-1] & 0x80:
        result.append(0x80 if negative else 0x00)
    elif negative:
        result[-1] |= 0x80
    return bytes(result)


def parse_pushes(script: bytes) -> list[bytes] | None:
    """Split a push-only script into its data items.

    Returns None if the script contains a non-push opcode or is truncated.
    """
    items: list[bytes] = []
    idx = 0
    while idx < len(script):
        op = script[idx]
        idx += 1
        if op == OpCode.OP_0:
            items.append(b"")
            continue
        if op <= 0x4B:
            length = op
        elif op == OpCode.OP_PUSHDATA1:
            if idx + 1 > len(script):
                return None
            length = script[idx]
            idx += 1
        elif op == OpCode.OP_PUSHDATA2:
            if idx + 2 > len(script):
                return None
            length = struct.unpack("<H", script[idx : idx + 2])[0]
            idx += 2
        elif op == OpCode.OP_PUSHDATA4:
            if idx + 4 > len(script):
                return None
            length = struct.unpack("<I", script[idx : idx + 4])[0]
            idx += 4
        else:
            return None
        if idx + length > len(script):
            return None
        items.append(script[idx : idx + length])
        idx += length
    return items


# ---------------------------------------------------------------------------
# Lock scripts
# ---------------------------------------------------------------------------


def p2pk_lock_script(pubkey: bytes) -> bytes:
    """Build a P2PK locking script: ``<pubkey> OP_CHECKSIG``."""
    if not is_public_key(pubkey):
        msg = f"Invalid public key length: {len(pubkey)}"
        raise ValueError(msg)
    return push_data(pubkey) + bytes([OpCode.OP_CHECKSIG])


def p2pkh_lock_script(pubkey_hash: bytes) -> bytes:
    """Build a P2PKH locking script (scriptPubKey).

    OP_DUP OP_HASH160 <20 bytes> OP_EQUALVERIFY OP_CHECKSIG

    Args:
        pubkey_hash: 20-byte RIPEMD160(SHA256(pubkey)).

    Returns:
        25-byte locking script.
    """
    if len(pubkey_hash) != 20:
        msg = f"pubkey_hash must be 20 bytes, got {len(pubkey_hash)}"
        raise ValueError(msg)
    return (
        bytes([OpCode.OP_DUP, OpCode.OP_HASH160])
        + push_data(pubkey_hash)
        + bytes([OpCode.OP_EQUALVERIFY, OpCode.OP_CHECKSIG])
    )


def p2pkh_lock_script_from_pubkey(pubkey: bytes) -> bytes:
    """Build a P2PKH locking script from a public key."""
    return p2pkh_lock_script(hash160(pubkey))


def p2sh_lock_script(script_hash: bytes) -> bytes:
    """Build a P2SH locking script: ``OP_HASH160 <20 bytes> OP_EQUAL``."""
    if len(script_hash) != 20:
        msg = f"script_hash must be 20 bytes, got {len(script_hash)}"
        raise ValueError(msg)
    return bytes([OpCode.OP_HASH160]) + push_data(script_hash) + bytes([OpCode.OP_EQUAL])


def p2sh_lock_script_from_redeem(redeem_script: bytes) -> bytes:
    """Build a P2SH locking script committing to *redeem_script*."""
    return p2sh_lock_script(hash160(redeem_script))


def p2wpkh_lock_script(pubkey_hash: bytes) -> bytes:
    """Build a version 0 witness key-hash program: ``OP_0 <20 bytes>``."""
    if len(pubkey_hash) != 20:
        msg = f"pubkey_hash must be 20 bytes, got {len(pubkey_hash)}"
        raise ValueError(msg)
    return bytes([OpCode.OP_0]) + push_data(pubkey_hash)


def p2wpkh_lock_script_from_pubkey(pubkey: bytes) -> bytes:
    """Build a P2WPKH program from a compressed public key."""
    return p2wpkh_lock_script(hash160(pubkey))


def p2wsh_lock_script(script_hash: bytes) -> bytes:
    """Build a version 0 witness script-hash program: ``OP_0 <32 bytes>``."""
    if len(script_hash) != 32:
        msg = f"script_hash must be 32 bytes, got {len(script_hash)}"
        raise ValueError(msg)
    return bytes([OpCode.OP_0]) + push_data(script_hash)


def p2wsh_lock_script_from_witness(witness_script: bytes) -> bytes:
    """Build a P2WSH program committing to *witness_script*."""
    return p2wsh_lock_script(sha256(witness_script))


def op_return_script(*data_items: bytes) -> bytes:
    """Build an OP_RETURN (null data) script.

    ``OP_RETURN <push data1> <push data2> ...``
    """
    script = bytes([OpCode.OP_RETURN])
    for item in data_items:
        script += push_data(item)
    return script


# ---------------------------------------------------------------------------
# Replay protection (OP_CHECKBLOCKATHEIGHT)
# ---------------------------------------------------------------------------


def replay_protection_suffix(block_hash: bytes, block_height: int) -> bytes:
    """Build ``<block hash> <block height> OP_CHECKBLOCKATHEIGHT``."""
    if len(block_hash) != 32:
        msg = f"block_hash must be 32 bytes, got {len(block_hash)}"
        raise ValueError(msg)
    return (
        push_data(block_hash)
        + push_data(encode_script_number(block_height))
        + bytes([OpCode.OP_CHECKBLOCKATHEIGHT])
    )


def with_replay_protection(script: bytes, block_hash: bytes, block_height: int) -> bytes:
    """Append the replay-protection suffix to a P2PKH or P2SH lock script."""
    script_type = classify_script(script)
    if script_type not in (ScriptType.P2PKH, ScriptType.P2SH) or _replay_suffix(script):
        return script
    return script + replay_protection_suffix(block_hash, block_height)


def _replay_suffix(script: bytes) -> bytes | None:
    """Return the replay-protection tail of a P2PKH/P2SH script, if present."""
    if _is_p2pkh_prefix(script):
        tail = script[25:]
    elif _is_p2sh_prefix(script):
        tail = script[23:]
    else:
        return None
    if not tail or tail[-1] != OpCode.OP_CHECKBLOCKATHEIGHT:
        return None
    pushes = parse_pushes(tail[:-1])
    if pushes is None or len(pushes) != 2 or len(pushes[0]) != 32 or len(pushes[1]) > 4:
        return None
    return tail


# ---------------------------------------------------------------------------
# Script type detection
# ---------------------------------------------------------------------------


def _is_p2pkh_prefix(script: bytes) -> bool:
    return (
        len(script) >= 25
        and script[0] == OpCode.OP_DUP
        and script[1] == OpCode.OP_HASH160
        and script[2] == 0x14  # push 20 bytes
        and script[23] == OpCode.OP_EQUALVERIFY
        and script[24] == OpCode.OP_CHECKSIG
    )


def _is_p2sh_prefix(script: bytes) -> bool:
    return (
        len(script) >= 23
        and script[0] == OpCode.OP_HASH160
        and script[1] == 0x14
        and script[22] == OpCode.OP_EQUAL
    )


def classify_script(script: bytes) -> ScriptType:
    """Classify a locking script.

    Recognises:
    - P2PKH: ``OP_DUP OP_HASH160 <20> OP_EQUALVERIFY OP_CHECKSIG`` (optionally
      followed by a replay-protection suffix)
    - P2SH: ``OP_HASH160 <20> OP_EQUAL`` (optionally replay protected)
    - P2WPKH / P2WSH: ``OP_0 <20|32>``
    - P2TR: ``OP_1 <32>``
    - P2PK: ``<33|65> OP_CHECKSIG``
    - NULL_DATA: ``OP_RETURN ...`` or ``OP_FALSE OP_RETURN ...``

    Returns:
        The detected :class:`ScriptType`.
    """
    if len(script) == 0:
        return ScriptType.UNKNOWN

    if _is_p2pkh_prefix(script) and (len(script) == 25 or _replay_suffix(script)):
        return ScriptType.P2PKH

    if _is_p2sh_prefix(script) and (len(script) == 23 or _replay_suffix(script)):
        return ScriptType.P2SH

    if len(script) == 22 and script[0] == OpCode.OP_0 and script[1] == 0x14:
        return ScriptType.P2WPKH
    if len(script) == 34 and script[0] == OpCode.OP_0 and script[1] == 0x20:
        return ScriptType.P2WSH
    if len(script) == 34 and script[0] == OpCode.OP_1 and script[1] == 0x20:
        return ScriptType.P2TR

    if script[0] == OpCode.OP_RETURN:
        return ScriptType.NULL_DATA
    if len(script) >= 2 and script[0] == OpCode.OP_FALSE and script[1] == OpCode.OP_RETURN:
        return ScriptType.NULL_DATA

    # P2PK (compressed or uncompressed)
    if len(script) == 35 and script[0] == 0x21 and script[34] == OpCode.OP_CHECKSIG:
        return ScriptType.P2PK
    if len(script) == 67 and script[0] == 0x41 and script[66] == OpCode.OP_CHECKSIG:
        return ScriptType.P2PK

    return ScriptType.UNKNOWN


def extract_pubkey_hash(script: bytes) -> bytes | None:
    """Extract the 20-byte key hash from a P2PKH or P2WPKH script."""
    script_type = classify_script(script)
    if script_type == ScriptType.P2PKH:
        return script[3:23]
    if script_type == ScriptType.P2WPKH:
        return script[2:22]
    return None


def extract_script_hash(script: bytes) -> bytes | None:
    """Extract the 20-byte (P2SH) or 32-byte (P2WSH) script hash."""
    script_type = classify_script(script)
    if script_type == ScriptType.P2SH:
        return script[2:22]
    if script_type == ScriptType.P2WSH:
        return script[2:34]
    return None


def extract_pubkey(script: bytes) -> bytes | None:
    """Extract the public key from a P2PK script."""
    if classify_script(script) != ScriptType.P2PK:
        return None
    return script[1:-1]
