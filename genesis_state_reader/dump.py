from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .account import AccountRecord, decode_account, decode_storage_value
from .errors import PreimageMiss
from .genesis import GenesisBlock, Header
from .hexutil import normalize_hex
from .preimage import PreimageResolver
from .rawdb import read_code
from .store import KeyValueStore
from .trie import NodeResolver, detect_node_resolver, is_empty_root, iter_leaves


@dataclass(frozen=True)
class Dump:
    header: Header
    secure_alloc: Optional[Dict[str, AccountRecord]] = None
    alloc: Optional[Dict[str, AccountRecord]] = None

    def as_dict(self) -> Dict[str, object]:
        document: Dict[str, object] = {"header": self.header.as_dict()}
        if self.secure_alloc:
            document["secureAlloc"] = {key: account.as_dict() for key, account in self.secure_alloc.items()}
        if self.alloc:
            document["alloc"] = {address: account.as_dict() for address, account in self.alloc.items()}
        return document


def collect_storage(
    store: KeyValueStore,
    storage_root: bytes,
    node_resolver: NodeResolver,
    resolver: PreimageResolver,
    max_storage: int = 0,
    verify: bool = True,
) -> Tuple[Dict[str, str], Dict[str, str]]:
    """Return ``(secure, plain)`` storage maps for one account.

    Slots whose key has no preimage are left out of ``plain`` only.
    """
    secure: Dict[str, str] = {}
    plain: List[Tuple[bytes, str]] = []
    for slot_hash, leaf in iter_leaves(store, storage_root, node_resolver, verify):
        value = decode_storage_value(leaf)
        secure[normalize_hex(slot_hash, pad_to=32)] = value
        try:
            slot_key = resolver.resolve_slot(slot_hash)
        except PreimageMiss:
            pass
        else:
            plain.append((slot_key, value))
        if max_storage and len(secure) >= max_storage:
            break
    plain.sort()
    return secure, {normalize_hex(key, pad_to=32): value for key, value in plain}


def assemble_dump(
    store: KeyValueStore,
    genesis: GenesisBlock,
    *,
    dump_secure_alloc: bool = False,
    max_accounts: int = 0,
    max_storage: int = 0,
    resolver: Optional[PreimageResolver] = None,
    verify: bool = True,
    verbose: bool = False,
) -> Dump:
    header = genesis.header
    if not dump_secure_alloc:
        return Dump(header=header)
    if max_accounts < 0 or max_storage < 0:
        raise ValueError("account and storage limits must not be negative")
    if resolver is None:
        resolver = PreimageResolver(store)

    state_root = header.state_root
    if is_empty_root(state_root):
        if verbose:
            print("[info] genesis state root is the empty trie", file=sys.stderr)
        return Dump(header=header)

    node_resolver = detect_node_resolver(store, state_root)
    if verbose:
        print(
            f"[info] walking account trie {state_root.hex()} ({node_resolver.scheme} scheme)",
            file=sys.stderr,
        )
        if not resolver.has_preimages():
            print("[info] no preimages recorded; relying on candidate addresses", file=sys.stderr)

    secure_alloc: Dict[str, AccountRecord] = {}
    plain_accounts: Optional[List[Tuple[bytes, AccountRecord]]] = []
    unresolved = 0

    for hashed_key, leaf in iter_leaves(store, state_root, node_resolver, verify):
        account = decode_account(leaf)
        if account.has_code:
            account.code = read_code(store, account.code_hash)
            if account.code is None and verbose:
                print(
                    f"[warn] code {account.code_hash.hex()} missing for account {hashed_key.hex()}",
                    file=sys.stderr,
                )

        secure_storage, plain_storage = collect_storage(
            store,
            account.storage_root,
            node_resolver.for_storage(hashed_key),
            resolver,
            max_storage,
            verify,
        )
        secure_alloc[normalize_hex(hashed_key, pad_to=32)] = account.with_storage(secure_storage)

        try:
            address = resolver.resolve_address(hashed_key)
        except PreimageMiss:
            unresolved += 1
            # a partial address map is never emitted
            plain_accounts = None
        else:
            if plain_accounts is not None:
                plain_accounts.append((address, account.with_storage(plain_storage)))

        if max_accounts and len(secure_alloc) >= max_accounts:
            if verbose:
                print(f"[info] stopping after {max_accounts} accounts", file=sys.stderr)
            break

    alloc: Optional[Dict[str, AccountRecord]] = None
    if plain_accounts:
        plain_accounts.sort(key=lambda entry: entry[0])
        alloc = {normalize_hex(address, pad_to=20): account for address, account in plain_accounts}

    if verbose:
        print(
            f"[info] collected {len(secure_alloc)} accounts, {unresolved} without a recoverable address"
            + ("" if alloc else "; omitting alloc"),
            file=sys.stderr,
        )

    return Dump(header=header, secure_alloc=secure_alloc or None, alloc=alloc)
