from __future__ import annotations


class GenesisDumpError(RuntimeError):
    """Base class for failures that abort the extraction."""


class StoreError(GenesisDumpError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"chain database {path}: {reason}")


class NotFoundError(GenesisDumpError):
    pass


class MissingTrieNodeError(NotFoundError):
    def __init__(self, node_ref: bytes, path: bytes) -> None:
        self.node_ref = node_ref
        self.path = path
        super().__init__(
            f"missing trie node {node_ref.hex()} (path {path.hex() or '<root>'})"
        )


class DecodeError(GenesisDumpError):
    pass


class PreimageMiss(LookupError):
    """A single hashed key has no recoverable plaintext. Never fatal."""

    def __init__(self, hashed_key: bytes) -> None:
        self.hashed_key = hashed_key
        super().__init__(f"no preimage for 0x{hashed_key.hex()}")
