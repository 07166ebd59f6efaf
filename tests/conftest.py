from typing import Dict, List, Optional

import pytest
import rlp
from eth_hash.auto import keccak
from trie import HexaryTrie

from genesis_state_reader.account import EMPTY_CODE_HASH
from genesis_state_reader.rawdb import GethKeys
from genesis_state_reader.store import MemoryStore
from genesis_state_reader.trie import EMPTY_TRIE_HASH


def address(value: int) -> bytes:
    return value.to_bytes(20, "big")


def slot(value: int) -> bytes:
    return value.to_bytes(32, "big")


def encode_header(state_root: bytes, *, number: int = 0, extra: bytes = b"", base_fee: Optional[int] = None) -> bytes:
    fields: List[object] = [
        bytes(32),  # parentHash
        keccak(rlp.encode([])),  # uncleHash
        bytes(20),  # coinbase
        state_root,
        EMPTY_TRIE_HASH,  # txHash
        EMPTY_TRIE_HASH,  # receiptHash
        bytes(256),  # bloom
        1,  # difficulty
        number,
        0x4000000000000,  # gasLimit
        0,  # gasUsed
        0x5F5E100,  # time
        extra,
        bytes(32),  # mixDigest
        (42).to_bytes(8, "big"),  # nonce
    ]
    if base_fee is not None:
        fields.append(base_fee)
    return rlp.encode(fields)


def write_genesis(store: MemoryStore, header_rlp: bytes) -> bytes:
    block_hash = keccak(header_rlp)
    store.put(GethKeys.canonical_hash(0), block_hash)
    store.put(GethKeys.block_header(0, block_hash), header_rlp)
    store.put(GethKeys.block_body(0, block_hash), rlp.encode([[], []]))
    return block_hash


def decode_hex_prefix(encoded: bytes):
    flags = encoded[0] >> 4
    nibbles = [encoded[0] & 0x0F] if flags & 1 else []
    for byte in encoded[1:]:
        nibbles.extend((byte >> 4, byte & 0x0F))
    return nibbles, bool(flags & 2)


def to_path_scheme(nodes: Dict[bytes, bytes], root: bytes, node_key) -> Dict[bytes, bytes]:
    """Re-key a hash-scheme trie by node path, the way path-based databases store it."""
    out: Dict[bytes, bytes] = {}

    def visit(blob: bytes, path: List[int]) -> None:
        out[node_key(bytes(path))] = blob
        node = rlp.decode(blob)
        children = []
        if len(node) == 17:
            children = [(ref, path + [index]) for index, ref in enumerate(node[:16])]
        else:
            nibbles, is_leaf = decode_hex_prefix(node[0])
            if not is_leaf:
                children = [(node[1], path + nibbles)]
        for ref, child_path in children:
            if isinstance(ref, bytes) and len(ref) == 32:
                visit(nodes[ref], child_path)

    visit(nodes[root], [])
    return out


class ChainBuilder:
    """Writes a genesis block and its secure state tries into a MemoryStore."""

    def __init__(self) -> None:
        self.accounts: Dict[bytes, dict] = {}
        self.nodes: Dict[bytes, bytes] = {}
        self.storage_roots: Dict[bytes, bytes] = {}

    def add_account(
        self,
        addr: bytes,
        *,
        nonce: int = 0,
        balance: int = 0,
        code: bytes = b"",
        storage: Optional[Dict[int, int]] = None,
        preimage: bool = True,
        slot_preimages: bool = True,
        hidden_slots: tuple = (),
    ) -> "ChainBuilder":
        self.accounts[addr] = {
            "nonce": nonce,
            "balance": balance,
            "code": code,
            "storage": storage or {},
            "preimage": preimage,
            "slot_preimages": slot_preimages,
            "hidden_slots": set(hidden_slots),
        }
        return self

    def build(self, *, path_scheme: bool = False, **header_kwargs) -> MemoryStore:
        store = MemoryStore()
        state = HexaryTrie(self.nodes)
        for addr, spec in self.accounts.items():
            hashed = keccak(addr)
            storage_root = EMPTY_TRIE_HASH
            if spec["storage"]:
                storage_trie = HexaryTrie(self.nodes)
                for key, value in spec["storage"].items():
                    storage_trie[keccak(slot(key))] = rlp.encode(value)
                    if spec["slot_preimages"] and key not in spec["hidden_slots"]:
                        store.put(GethKeys.preimage(keccak(slot(key))), slot(key))
                storage_root = storage_trie.root_hash
                self.storage_roots[hashed] = storage_root

            code_hash = EMPTY_CODE_HASH
            if spec["code"]:
                code_hash = keccak(spec["code"])
                store.put(GethKeys.code(code_hash), spec["code"])

            state[hashed] = rlp.encode([spec["nonce"], spec["balance"], storage_root, code_hash])
            if spec["preimage"]:
                store.put(GethKeys.preimage(hashed), addr)

        if path_scheme:
            for key, blob in to_path_scheme(self.nodes, state.root_hash, GethKeys.account_trie_node).items():
                store.put(key, blob)
            for hashed, storage_root in self.storage_roots.items():
                node_key = lambda path, owner=hashed: GethKeys.storage_trie_node(owner, path)
                for key, blob in to_path_scheme(self.nodes, storage_root, node_key).items():
                    store.put(key, blob)
        else:
            for node_hash, blob in self.nodes.items():
                store.put(node_hash, blob)

        root = state.root_hash if self.accounts else EMPTY_TRIE_HASH
        write_genesis(store, encode_header(root, **header_kwargs))
        return store


@pytest.fixture
def chain():
    return ChainBuilder()
