from __future__ import annotations

from typing import Dict, Iterable, Iterator, Optional

from eth_hash.auto import keccak

from .errors import PreimageMiss
from .rawdb import GethKeys, read_preimage
from .store import KeyValueStore

ADDRESS_LENGTH = 20
SLOT_KEY_LENGTH = 32

# Addresses 0x01..0xff: precompiles plus the chain's reserved system
# accounts (e.g. ArbSys 0x64, ArbGasInfo 0x6c, ArbRetryableTx 0x6e).
DEFAULT_CANDIDATE_LIMIT = 0xFF


def low_integer_addresses(limit: int = DEFAULT_CANDIDATE_LIMIT) -> Iterator[bytes]:
    for value in range(1, limit + 1):
        yield value.to_bytes(ADDRESS_LENGTH, "big")


class PreimageResolver:
    """Recovers the plaintext behind hashed trie keys.

    Direct lookups consult the store's preimage table. Addresses missing from
    it can still be recovered when they belong to a small candidate space,
    through a ``keccak(candidate) -> candidate`` index built on first use.
    """

    def __init__(
        self,
        store: KeyValueStore,
        candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
        extra_candidates: Iterable[bytes] = (),
    ) -> None:
        self.store = store
        self.candidate_limit = candidate_limit
        self.extra_candidates = tuple(extra_candidates)
        for candidate in self.extra_candidates:
            if len(candidate) != ADDRESS_LENGTH:
                raise ValueError(f"candidate address 0x{candidate.hex()} is not {ADDRESS_LENGTH} bytes")
        self._reverse_index: Optional[Dict[bytes, bytes]] = None

    def lookup(self, hashed_key: bytes) -> bytes:
        preimage = read_preimage(self.store, hashed_key)
        if preimage is None or keccak(preimage) != hashed_key:
            raise PreimageMiss(hashed_key)
        return preimage

    def has_preimages(self) -> bool:
        for _ in self.store.iterate(GethKeys.preimagePrefix):
            return True
        return False

    @property
    def reverse_index(self) -> Dict[bytes, bytes]:
        if self._reverse_index is None:
            index: Dict[bytes, bytes] = {}
            for candidate in low_integer_addresses(self.candidate_limit):
                index[keccak(candidate)] = candidate
            for candidate in self.extra_candidates:
                index[keccak(candidate)] = candidate
            self._reverse_index = index
        return self._reverse_index

    def recover_address(self, hashed_key: bytes) -> bytes:
        address = self.reverse_index.get(hashed_key)
        if address is None:
            raise PreimageMiss(hashed_key)
        return address

    def resolve_address(self, hashed_key: bytes) -> bytes:
        try:
            preimage = self.lookup(hashed_key)
        except PreimageMiss:
            pass
        else:
            if len(preimage) == ADDRESS_LENGTH:
                return preimage
        return self.recover_address(hashed_key)

    def resolve_slot(self, hashed_key: bytes) -> bytes:
        preimage = self.lookup(hashed_key)
        if len(preimage) != SLOT_KEY_LENGTH:
            raise PreimageMiss(hashed_key)
        return preimage
