from __future__ import annotations

import struct
from typing import Optional

from .store import KeyValueStore


class GethKeys:
    # https://github.com/ethereum/go-ethereum/blob/master/core/rawdb/schema.go
    headerPrefix = b"h"
    headerHashSuffix = b"n"
    blockBodyPrefix = b"b"
    codePrefix = b"c"
    preimagePrefix = b"secure-key-"
    trieNodeAccountPrefix = b"A"
    trieNodeStoragePrefix = b"O"

    @staticmethod
    def _number(block_number: int) -> bytes:
        return struct.pack(">Q", block_number)

    @classmethod
    def canonical_hash(cls, block_number: int) -> bytes:
        return cls.headerPrefix + cls._number(block_number) + cls.headerHashSuffix

    @classmethod
    def block_header(cls, block_number: int, header_hash: bytes) -> bytes:
        return cls.headerPrefix + cls._number(block_number) + header_hash

    @classmethod
    def block_body(cls, block_number: int, header_hash: bytes) -> bytes:
        return cls.blockBodyPrefix + cls._number(block_number) + header_hash

    @classmethod
    def code(cls, code_hash: bytes) -> bytes:
        return cls.codePrefix + code_hash

    @classmethod
    def preimage(cls, hashed_key: bytes) -> bytes:
        return cls.preimagePrefix + hashed_key

    @classmethod
    def account_trie_node(cls, path: bytes) -> bytes:
        return cls.trieNodeAccountPrefix + path

    @classmethod
    def storage_trie_node(cls, account_hash: bytes, path: bytes) -> bytes:
        return cls.trieNodeStoragePrefix + account_hash + path


def read_canonical_hash(store: KeyValueStore, block_number: int) -> Optional[bytes]:
    value = store.get(GethKeys.canonical_hash(block_number))
    if value:
        return value
    return store.ancient("hashes", block_number) or None


def _read_ancient_if_canonical(store: KeyValueStore, kind: str, block_number: int, header_hash: bytes) -> Optional[bytes]:
    # the freezer only holds canonical data, keyed by number alone
    if store.ancient("hashes", block_number) != header_hash:
        return None
    return store.ancient(kind, block_number)


def read_header_rlp(store: KeyValueStore, block_number: int, header_hash: bytes) -> Optional[bytes]:
    value = store.get(GethKeys.block_header(block_number, header_hash))
    if value:
        return value
    return _read_ancient_if_canonical(store, "headers", block_number, header_hash)


def read_body_rlp(store: KeyValueStore, block_number: int, header_hash: bytes) -> Optional[bytes]:
    value = store.get(GethKeys.block_body(block_number, header_hash))
    if value:
        return value
    return _read_ancient_if_canonical(store, "bodies", block_number, header_hash)


def read_code(store: KeyValueStore, code_hash: bytes) -> Optional[bytes]:
    value = store.get(GethKeys.code(code_hash))
    if value:
        return value
    # legacy databases keyed contract code by its bare hash
    return store.get(code_hash) or None


def read_preimage(store: KeyValueStore, hashed_key: bytes) -> Optional[bytes]:
    return store.get(GethKeys.preimage(hashed_key)) or None
