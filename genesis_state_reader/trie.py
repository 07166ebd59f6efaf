from __future__ import annotations

from typing import Iterator, List, Optional, Protocol, Tuple

import rlp
from eth_hash.auto import keccak

from .errors import DecodeError, MissingTrieNodeError
from .rawdb import GethKeys
from .store import KeyValueStore

EMPTY_TRIE_HASH = bytes.fromhex(
    "56e81f171bcc55a6ff8345e692c0f86e5b48e01b996cadc001622fb5e363b421"
)
ZERO_HASH = bytes(32)

BRANCH_NODE_LENGTH = 17
SHORT_NODE_LENGTH = 2
HASHED_KEY_LENGTH = 32


class NodeResolver(Protocol):
    """Fetches an encoded trie node by its hash and nibble path."""

    scheme: str

    def __call__(self, node_hash: bytes, path: List[int]) -> Optional[bytes]: ...

    def for_storage(self, account_hash: bytes) -> "NodeResolver": ...


def is_empty_root(root: bytes) -> bool:
    return root == EMPTY_TRIE_HASH or root == ZERO_HASH


class HashNodeResolver:
    """Hash-based storage scheme: every node lives under its own keccak."""

    scheme = "hash"

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def __call__(self, node_hash: bytes, path: List[int]) -> Optional[bytes]:
        return self.store.get(node_hash)

    def for_storage(self, account_hash: bytes) -> "HashNodeResolver":
        return self


class PathNodeResolver:
    """Path-based storage scheme: nodes live under their nibble path
    (one byte per nibble), storage tries additionally under the owning
    account's hash.
    """

    scheme = "path"

    def __init__(self, store: KeyValueStore, owner: Optional[bytes] = None) -> None:
        self.store = store
        self.owner = owner

    def __call__(self, node_hash: bytes, path: List[int]) -> Optional[bytes]:
        if self.owner is None:
            return self.store.get(GethKeys.account_trie_node(bytes(path)))
        return self.store.get(GethKeys.storage_trie_node(self.owner, bytes(path)))

    def for_storage(self, account_hash: bytes) -> "PathNodeResolver":
        return PathNodeResolver(self.store, owner=account_hash)


def detect_node_resolver(store: KeyValueStore, root: bytes) -> NodeResolver:
    """Pick the node storage scheme that actually holds the account trie ``root``."""
    for resolver in (HashNodeResolver(store), PathNodeResolver(store)):
        blob = resolver(root, [])
        if blob is not None and keccak(blob) == root:
            return resolver
    raise MissingTrieNodeError(root, b"")


def _decode_hex_prefix(encoded: bytes) -> Tuple[List[int], bool]:
    if not encoded:
        raise DecodeError("empty hex-prefix path in short node")
    flags = encoded[0] >> 4
    if flags > 3:
        raise DecodeError(f"invalid hex-prefix flag {flags}")
    is_leaf = (flags & 0b10) != 0
    is_odd = (flags & 0b01) != 0

    nibbles: List[int] = []
    if is_odd:
        nibbles.append(encoded[0] & 0x0F)
    elif encoded[0] & 0x0F:
        raise DecodeError("non-zero padding nibble in even hex-prefix path")
    for byte in encoded[1:]:
        nibbles.append(byte >> 4)
        nibbles.append(byte & 0x0F)
    return nibbles, is_leaf


def _nibbles_to_bytes(nibbles: List[int]) -> bytes:
    if len(nibbles) % 2 != 0:
        raise DecodeError(f"leaf path of {len(nibbles)} nibbles is not a whole number of bytes")
    out = bytearray(len(nibbles) // 2)
    for i in range(0, len(nibbles), 2):
        out[i // 2] = (nibbles[i] << 4) | nibbles[i + 1]
    return bytes(out)


def _decode_node(blob: bytes) -> list:
    try:
        node = rlp.decode(blob)
    except rlp.DecodingError as exc:
        raise DecodeError(f"trie node is not valid RLP: {exc}") from exc
    if not isinstance(node, list):
        raise DecodeError("trie node must be an RLP list")
    return node


def iter_leaves(
    store: KeyValueStore,
    root: bytes,
    resolver: Optional[NodeResolver] = None,
    verify: bool = True,
    key_length: Optional[int] = HASHED_KEY_LENGTH,
) -> Iterator[Tuple[bytes, bytes]]:
    """Yield ``(key, value)`` for every non-empty leaf under ``root`` in
    ascending key order.

    ``resolver`` maps a node reference and its nibble path to the encoded
    node; it defaults to whichever scheme holds ``root``. Leaf keys must be
    ``key_length`` bytes long (``None`` accepts any whole-byte key). The
    generator is lazy: nodes are fetched only as the caller advances it.
    """
    if is_empty_root(root):
        return
    if resolver is None:
        resolver = detect_node_resolver(store, root)

    def load(node_hash: bytes, path: List[int]) -> list:
        blob = resolver(node_hash, path)
        if blob is None:
            raise MissingTrieNodeError(node_hash, bytes(path))
        if verify and keccak(blob) != node_hash:
            raise DecodeError(f"trie node at path {bytes(path).hex() or '<root>'} does not hash to {node_hash.hex()}")
        return _decode_node(blob)

    def child(ref: object, path: List[int]) -> Optional[list]:
        if isinstance(ref, list):
            # embedded node, shorter than a hash
            return ref or None
        if not ref:
            return None
        if len(ref) == 32:
            return load(ref, path)
        raise DecodeError(f"invalid child reference of {len(ref)} bytes")

    def leaf(path: List[int], value: object) -> Optional[Tuple[bytes, bytes]]:
        if not isinstance(value, bytes):
            raise DecodeError("leaf value must be a byte string")
        if not value:
            return None
        key = _nibbles_to_bytes(path)
        if key_length is not None and len(key) != key_length:
            raise DecodeError(f"leaf key 0x{key.hex()} is {len(key)} bytes, expected {key_length}")
        return key, value

    def walk(node: list, path: List[int]) -> Iterator[Tuple[bytes, bytes]]:
        if len(node) == BRANCH_NODE_LENGTH:
            entry = leaf(path, node[16])
            if entry is not None:
                yield entry
            for index, ref in enumerate(node[:16]):
                child_path = path + [index]
                child_node = child(ref, child_path)
                if child_node is not None:
                    yield from walk(child_node, child_path)
        elif len(node) == SHORT_NODE_LENGTH:
            if not isinstance(node[0], bytes):
                raise DecodeError("short node path must be a byte string")
            suffix, is_leaf = _decode_hex_prefix(node[0])
            new_path = path + suffix
            if is_leaf:
                entry = leaf(new_path, node[1])
                if entry is not None:
                    yield entry
            else:
                child_node = child(node[1], new_path)
                if child_node is None:
                    raise DecodeError("extension node without a child")
                yield from walk(child_node, new_path)
        else:
            raise DecodeError(f"trie node has {len(node)} items")

    yield from walk(load(root, []), [])
