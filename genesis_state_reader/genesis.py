from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

import rlp
from eth_hash.auto import keccak

from .errors import DecodeError, NotFoundError
from .hexutil import big_endian_to_int, normalize_hex
from .rawdb import read_body_rlp, read_canonical_hash, read_header_rlp
from .store import KeyValueStore

GENESIS_NUMBER = 0

# go-ethereum header field positions
_PARENT_HASH = 0
_COINBASE = 2
_STATE_ROOT = 3
_DIFFICULTY = 7
_NUMBER = 8
_GAS_LIMIT = 9
_TIME = 11
_EXTRA = 12
_MIX_DIGEST = 13
_NONCE = 14
_BASE_FEE = 15
_MIN_FIELDS = 15


@dataclass(frozen=True)
class Header:
    parent_hash: bytes
    hash: bytes
    state_root: bytes
    nonce: int
    mix_digest: bytes
    timestamp: int
    coinbase: bytes
    gas_limit: int
    base_fee: Optional[int]
    extra_data: bytes
    difficulty: int
    number: int

    def as_dict(self) -> Dict[str, str]:
        return {
            "parentHash": normalize_hex(self.parent_hash, pad_to=32),
            "hash": normalize_hex(self.hash, pad_to=32),
            "stateRoot": normalize_hex(self.state_root, pad_to=32),
            "nonce": normalize_hex(self.nonce),
            "mixHash": normalize_hex(self.mix_digest, pad_to=32),
            "timestamp": normalize_hex(self.timestamp),
            "coinbase": normalize_hex(self.coinbase, pad_to=20),
            "gasLimit": normalize_hex(self.gas_limit),
            "baseFeePerGas": normalize_hex(self.base_fee or 0),
            "extraData": normalize_hex(self.extra_data),
            "difficulty": normalize_hex(self.difficulty),
            "number": normalize_hex(self.number),
        }


@dataclass(frozen=True)
class GenesisBlock:
    header: Header
    transactions: List[object]
    uncles: List[object]


def _fixed(field: object, size: int, name: str) -> bytes:
    if not isinstance(field, bytes) or len(field) != size:
        raise DecodeError(f"header field {name} must be {size} bytes")
    return field


def _bytes(field: object, name: str) -> bytes:
    if not isinstance(field, bytes):
        raise DecodeError(f"header field {name} must be a byte string")
    return field


def _quantity(field: object, name: str) -> int:
    field = _bytes(field, name)
    if field[:1] == b"\x00":
        raise DecodeError(f"header field {name} has leading zero bytes")
    return big_endian_to_int(field)


def decode_header(header_rlp: bytes) -> Header:
    try:
        fields = rlp.decode(header_rlp)
    except rlp.DecodingError as exc:
        raise DecodeError(f"header is not valid RLP: {exc}") from exc
    if not isinstance(fields, list) or len(fields) < _MIN_FIELDS:
        raise DecodeError("header must be an RLP list of at least 15 fields")

    base_fee: Optional[int] = None
    if len(fields) > _BASE_FEE:
        base_fee = _quantity(fields[_BASE_FEE], "baseFee")

    return Header(
        parent_hash=_fixed(fields[_PARENT_HASH], 32, "parentHash"),
        hash=keccak(header_rlp),
        state_root=_fixed(fields[_STATE_ROOT], 32, "root"),
        nonce=big_endian_to_int(_fixed(fields[_NONCE], 8, "nonce")),
        mix_digest=_fixed(fields[_MIX_DIGEST], 32, "mixDigest"),
        timestamp=_quantity(fields[_TIME], "time"),
        coinbase=_fixed(fields[_COINBASE], 20, "coinbase"),
        gas_limit=_quantity(fields[_GAS_LIMIT], "gasLimit"),
        base_fee=base_fee,
        extra_data=_bytes(fields[_EXTRA], "extra"),
        difficulty=_quantity(fields[_DIFFICULTY], "difficulty"),
        number=_quantity(fields[_NUMBER], "number"),
    )


def decode_body(body_rlp: bytes) -> List[List[object]]:
    try:
        body = rlp.decode(body_rlp)
    except rlp.DecodingError as exc:
        raise DecodeError(f"block body is not valid RLP: {exc}") from exc
    if not isinstance(body, list) or len(body) < 2 or not all(isinstance(part, list) for part in body[:2]):
        raise DecodeError("block body must be a list of transactions and uncles")
    return body


def locate_genesis(store: KeyValueStore) -> GenesisBlock:
    """Resolve the canonical block zero; every lookup failure is fatal."""
    genesis_hash = read_canonical_hash(store, GENESIS_NUMBER)
    if genesis_hash is None:
        raise NotFoundError("no canonical hash for block 0")

    header_rlp = read_header_rlp(store, GENESIS_NUMBER, genesis_hash)
    if header_rlp is None:
        raise NotFoundError(f"header for block 0 ({genesis_hash.hex()}) not found")

    body_rlp = read_body_rlp(store, GENESIS_NUMBER, genesis_hash)
    if body_rlp is None:
        raise NotFoundError(f"body for block 0 ({genesis_hash.hex()}) not found")

    header = decode_header(header_rlp)
    if header.hash != genesis_hash:
        raise DecodeError(
            f"header hash {header.hash.hex()} does not match canonical hash {genesis_hash.hex()}"
        )
    if header.number != GENESIS_NUMBER:
        raise DecodeError(f"canonical block 0 header carries number {header.number}")

    body = decode_body(body_rlp)
    return GenesisBlock(header=header, transactions=body[0], uncles=body[1])
