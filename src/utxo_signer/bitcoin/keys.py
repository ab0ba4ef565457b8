"""secp256k1 key helpers — public key derivation, compression, ECDSA signing.

Thin layer over the ``ecdsa`` package:
- Compressed / uncompressed public key encoding
- Deterministic (RFC 6979) low-S ECDSA signing of 32-byte digests
- DER signature encoding and verification
"""

from __future__ import annotations

import hashlib

from ecdsa import (
    SECP256k1,
    BadDigestError,
    BadSignatureError,
    MalformedPointError,
    SigningKey,
    VerifyingKey,
)

from utxo_signer.utils.crypto import hash160

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_CURVE = SECP256k1

PRIVATE_KEY_SIZE = 32
COMPRESSED_PUBKEY_SIZE = 33
UNCOMPRESSED_PUBKEY_SIZE = 65

# Upper bound of a low-S DER signature (71 bytes) plus the sighash byte
MAX_SIGNATURE_SIZE = 72


# ---------------------------------------------------------------------------
# Public keys
# ---------------------------------------------------------------------------


def private_key_to_public_key(privkey_bytes: bytes, *, compressed: bool = True) -> bytes:
    """Derive the public key from a 32-byte private key.

    Args:
        privkey_bytes: 32-byte big-endian scalar.
        compressed: If True, return the 33-byte SEC compressed encoding.

    Returns:
        The public key bytes (33 compressed or 65 uncompressed).

    Raises:
        ValueError: If the private key is not a valid scalar.
    """
    if len(privkey_bytes) != PRIVATE_KEY_SIZE:
        msg = f"Invalid private key length: {len(privkey_bytes)}"
        raise ValueError(msg)
    try:
        sk = SigningKey.from_string(privkey_bytes, curve=_CURVE)
    except MalformedPointError as exc:
        msg = "Invalid private key scalar"
        raise ValueError(msg) from exc
    vk = sk.get_verifying_key()
    if compressed:
        return compress_public_key(vk.to_string())
    return b"\x04" + vk.to_string()


def compress_public_key(raw_pubkey: bytes) -> bytes:
    """Compress a 64-byte (or 65-byte with 0x04 prefix) raw public key to 33 bytes."""
    if len(raw_pubkey) == 65 and raw_pubkey[0] == 0x04:
        raw_pubkey = raw_pubkey[1:]
    if len(raw_pubkey) != 64:
        if len(raw_pubkey) == 33 and raw_pubkey[0] in (0x02, 0x03):
            return raw_pubkey  # Already compressed
        msg = f"Invalid raw public key length: {len(raw_pubkey)}"
        raise ValueError(msg)
    x = int.from_bytes(raw_pubkey[:32], "big")
    y = int.from_bytes(raw_pubkey[32:], "big")
    prefix = b"\x02" if y % 2 == 0 else b"\x03"
    return prefix + x.to_bytes(32, "big")


def decompress_public_key(compressed: bytes) -> bytes:
    """Decompress a 33-byte compressed public key to 65-byte uncompressed."""
    if len(compressed) != 33:
        msg = f"Invalid compressed key length: {len(compressed)}"
        raise ValueError(msg)
    prefix = compressed[0]
    if prefix not in (0x02, 0x03):
        msg = f"Invalid compressed key prefix: {prefix:#x}"
        raise ValueError(msg)
    x = int.from_bytes(compressed[1:], "big")
    p = _CURVE.curve.p()
    # y^2 = x^3 + 7  (mod p)  for secp256k1
    y_sq = (pow(x, 3, p) + 7) % p
    y = pow(y_sq, (p + 1) // 4, p)
    if (y % 2 == 0) != (prefix == 0x02):
        y = p - y
    return b"\x04" + x.to_bytes(32, "big") + y.to_bytes(32, "big")


def is_public_key(data: bytes) -> bool:
    """Check the SEC encoding shape of a public key (no curve check)."""
    if len(data) == COMPRESSED_PUBKEY_SIZE:
        return data[0] in (0x02, 0x03)
    if len(data) == UNCOMPRESSED_PUBKEY_SIZE:
        return data[0] == 0x04
    return False


def public_key_hashes(privkey_bytes: bytes) -> dict[bytes, bytes]:
    """Map Hash160 -> public key for both encodings of a private key."""
    result: dict[bytes, bytes] = {}
    for compressed in (True, False):
        pubkey = private_key_to_public_key(privkey_bytes, compressed=compressed)
        result[hash160(pubkey)] = pubkey
    return result


# ---------------------------------------------------------------------------
# ECDSA
# ---------------------------------------------------------------------------


def sign_digest(privkey_bytes: bytes, digest: bytes) -> bytes:
    """Sign a 32-byte digest, returning a low-S DER signature.

    Nonces are derived per RFC 6979, so the same key and digest always produce
    the same signature.
    """
    sk = SigningKey.from_string(privkey_bytes, curve=_CURVE, hashfunc=hashlib.sha256)
    return sk.sign_digest_deterministic(
        digest,
        hashfunc=hashlib.sha256,
        sigencode=_der_encode_low_s,
    )


def verify_signature(pubkey_bytes: bytes, digest: bytes, signature: bytes) -> bool:
    """Verify a DER-encoded signature against a public key and 32-byte digest."""
    try:
        if len(pubkey_bytes) == 33:
            raw_key = decompress_public_key(pubkey_bytes)[1:]
        elif len(pubkey_bytes) == 65:
            raw_key = pubkey_bytes[1:]
        else:
            raw_key = pubkey_bytes
        vk = VerifyingKey.from_string(raw_key, curve=_CURVE)
        return vk.verify_digest(signature, digest, sigdecode=_der_decode)
    except (BadSignatureError, BadDigestError, MalformedPointError, ValueError, IndexError):
        return False


def is_canonical_signature(signature: bytes) -> bool:
    """Check that *signature* is strict (BIP66) DER with a low S value."""
    order = _CURVE.order
    try:
        r, s = _der_decode(signature, order)
    except (ValueError, IndexError):
        return False
    if not (0 < r < order and 0 < s <= order // 2):
        return False
    # Re-encoding rejects trailing bytes, bad lengths and padded integers
    return _der_encode(r, s, order) == signature


def _der_encode_low_s(r: int, s: int, order: int) -> bytes:
    """Encode r, s as DER, replacing a high S with ``order - s``."""
    if s > order // 2:
        s = order - s
    return _der_encode(r, s, order)


def _der_encode(r: int, s: int, order: int) -> bytes:
    """Encode r, s as DER signature."""
    rb = _int_to_der_bytes(r)
    sb = _int_to_der_bytes(s)
    return b"\x30" + bytes([len(rb) + len(sb)]) + rb + sb


def _der_decode(signature: bytes, order: int) -> tuple[int, int]:
    """Decode DER signature to (r, s)."""
    if len(signature) < 8 or signature[0] != 0x30:
        msg = "Invalid DER signature"
        raise ValueError(msg)
    idx = 2  # skip 0x30 and length byte
    if signature[idx] != 0x02:
        msg = "Invalid DER signature (r marker)"
        raise ValueError(msg)
    idx += 1
    r_len = signature[idx]
    idx += 1
    r = int.from_bytes(signature[idx : idx + r_len], "big")
    idx += r_len
    if signature[idx] != 0x02:
        msg = "Invalid DER signature (s marker)"
        raise ValueError(msg)
    idx += 1
    s_len = signature[idx]
    idx += 1
    s = int.from_bytes(signature[idx : idx + s_len], "big")
    return r, s


def _int_to_der_bytes(n: int) -> bytes:
    """Encode an integer as a DER INTEGER TLV."""
    b = n.to_bytes((n.bit_length() + 7) // 8, "big")
    if b[0] & 0x80:
        b = b"\x00" + b
    return b"\x02" + bytes([len(b)]) + b
