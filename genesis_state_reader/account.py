from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Optional

import rlp
from rlp.sedes import Binary, big_endian_int

from .errors import DecodeError
from .hexutil import big_endian_to_int, normalize_hex

EMPTY_CODE_HASH = bytes.fromhex(
    "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
)
MAX_NONCE = 2**64 - 1


class StateAccount(rlp.Serializable):
    fields = [
        ("nonce", big_endian_int),
        ("balance", big_endian_int),
        ("storage_root", Binary.fixed_length(32)),
        ("code_hash", Binary.fixed_length(32)),
    ]


@dataclass
class AccountRecord:
    nonce: int
    balance: int
    storage_root: bytes
    code_hash: bytes
    code: Optional[bytes] = None
    storage: Dict[str, str] = field(default_factory=dict)

    @property
    def has_code(self) -> bool:
        return self.code_hash != EMPTY_CODE_HASH

    def with_storage(self, storage: Dict[str, str]) -> "AccountRecord":
        return replace(self, storage=dict(storage))

    def as_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "nonce": normalize_hex(self.nonce),
            "balance": normalize_hex(self.balance),
            "codeHash": normalize_hex(self.code_hash, pad_to=32),
            "storageRoot": normalize_hex(self.storage_root, pad_to=32),
        }
        if self.code:
            payload["code"] = normalize_hex(self.code)
        if self.storage:
            payload["storage"] = dict(self.storage)
        return payload


def decode_account(leaf: bytes) -> AccountRecord:
    """Decode an account trie leaf; any deviation from the schema is fatal."""
    try:
        fields = rlp.decode(leaf)
    except rlp.DecodingError as exc:
        raise DecodeError(f"malformed account record 0x{leaf.hex()}: {exc}") from exc
    if not isinstance(fields, list) or not all(isinstance(item, bytes) for item in fields):
        raise DecodeError(f"account record 0x{leaf.hex()} is not a flat RLP list")
    try:
        account = StateAccount.deserialize(fields)
    except rlp.DeserializationError as exc:
        raise DecodeError(f"malformed account record 0x{leaf.hex()}: {exc}") from exc
    if account.nonce > MAX_NONCE:
        raise DecodeError(f"account nonce {account.nonce} overflows 64 bits")
    return AccountRecord(
        nonce=account.nonce,
        balance=account.balance,
        storage_root=account.storage_root,
        code_hash=account.code_hash,
    )


def decode_storage_value(leaf: bytes) -> str:
    """Render a storage leaf as a hex quantity.

    Leaves that are not a canonical RLP integer are rendered as raw bytes.
    """
    try:
        value = rlp.decode(leaf)
    except rlp.DecodingError:
        return normalize_hex(leaf)
    if not isinstance(value, bytes) or value[:1] == b"\x00":
        return normalize_hex(leaf)
    return normalize_hex(big_endian_to_int(value))
