"""Signature hash types and digest versions."""

from __future__ import annotations

import enum


class SigHashType(enum.IntFlag):
    """Signature hash flags appended to every signature."""

    ALL = 0x01
    NONE = 0x02
    SINGLE = 0x03
    ANYONECANPAY = 0x80


# Mask selecting the base type (ALL / NONE / SINGLE) from a hash type byte
BASE_TYPE_MASK = 0x1F


class SignatureVersion(enum.IntEnum):
    """Which digest algorithm an input is signed with."""

    BASE = 0  # legacy whole-transaction digest
    WITNESS_V0 = 1  # BIP143 digest over hashed aggregates


def base_type(hash_type: int) -> int:
    """Return the ALL / NONE / SINGLE part of *hash_type*."""
    return hash_type & BASE_TYPE_MASK


def is_anyone_can_pay(hash_type: int) -> bool:
    return bool(hash_type & SigHashType.ANYONECANPAY)


def is_single(hash_type: int) -> bool:
    return base_type(hash_type) == SigHashType.SINGLE


def is_none(hash_type: int) -> bool:
    return base_type(hash_type) == SigHashType.NONE
