from .dump import Dump, assemble_dump
from .genesis import GenesisBlock, Header, locate_genesis
from .preimage import PreimageResolver
from .store import KeyValueStore, MemoryStore, open_chaindata

__all__ = [
    "Dump",
    "GenesisBlock",
    "Header",
    "KeyValueStore",
    "MemoryStore",
    "PreimageResolver",
    "assemble_dump",
    "locate_genesis",
    "open_chaindata",
]
