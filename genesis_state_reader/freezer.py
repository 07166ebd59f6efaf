from __future__ import annotations

import os
import struct
from dataclasses import dataclass
from typing import BinaryIO, Dict, Optional

import snappy

from .errors import StoreError

INDEX_ENTRY_SIZE = 6

# table name -> snappy compressed
CHAIN_TABLES = {
    "hashes": False,
    "headers": True,
    "bodies": True,
}


@dataclass
class IndexEntry:
    filenum: int
    offset: int

    @classmethod
    def from_bytes(cls, data: bytes) -> "IndexEntry":
        if len(data) != INDEX_ENTRY_SIZE:
            raise ValueError(f"index entry must be {INDEX_ENTRY_SIZE} bytes, got {len(data)}")
        filenum, offset = struct.unpack(">HI", data)
        return cls(filenum, offset)


class FreezerTable:
    """One append-only table of geth's ancient store (e.g. ``headers``).

    The index file holds 6-byte ``(filenum, offset)`` entries; item ``n`` lies
    between entries ``n`` and ``n + 1``. The first entry records the tail: its
    offset is the number of items deleted from the front of the table.
    """

    def __init__(self, ancient_path: str, name: str, uses_compression: bool) -> None:
        self.ancient_path = ancient_path
        self.name = name
        self.uses_compression = uses_compression

        index_path = os.path.join(ancient_path, self.index_file_name)
        try:
            self._index_file: BinaryIO = open(index_path, "rb")
        except OSError as exc:
            raise StoreError(ancient_path, f"cannot open freezer index {self.index_file_name}: {exc}") from exc

        size = os.fstat(self._index_file.fileno()).st_size
        if size % INDEX_ENTRY_SIZE != 0:
            self._index_file.close()
            raise StoreError(ancient_path, f"freezer index {self.index_file_name} has a truncated entry")
        self._entries = size // INDEX_ENTRY_SIZE
        self._items_deleted = self._read_entry(0).offset if self._entries else 0
        self._data_files: Dict[int, BinaryIO] = {}

    @property
    def index_file_name(self) -> str:
        suffix = "cidx" if self.uses_compression else "ridx"
        return f"{self.name}.{suffix}"

    def data_file_name(self, number: int) -> str:
        suffix = "cdat" if self.uses_compression else "rdat"
        return f"{self.name}.{number:04d}.{suffix}"

    @property
    def items(self) -> int:
        """Total item count including deleted tail items."""
        if self._entries == 0:
            return 0
        return self._items_deleted + self._entries - 1

    def _read_entry(self, position: int) -> IndexEntry:
        self._index_file.seek(position * INDEX_ENTRY_SIZE)
        return IndexEntry.from_bytes(self._index_file.read(INDEX_ENTRY_SIZE))

    def _data_file(self, number: int) -> BinaryIO:
        if number not in self._data_files:
            path = os.path.join(self.ancient_path, self.data_file_name(number))
            try:
                self._data_files[number] = open(path, "rb")
            except OSError as exc:
                raise StoreError(self.ancient_path, f"cannot open freezer data file: {exc}") from exc
        return self._data_files[number]

    def get(self, number: int) -> Optional[bytes]:
        if number < self._items_deleted or number >= self.items:
            return None

        position = number - self._items_deleted
        start = self._read_entry(position)
        end = self._read_entry(position + 1)
        if position == 0 or start.filenum != end.filenum:
            # the tail marker carries no data offset; spanning items start the next file
            start = IndexEntry(end.filenum, 0)

        data_file = self._data_file(end.filenum)
        data_file.seek(start.offset)
        length = end.offset - start.offset
        data = data_file.read(length)
        if len(data) != length:
            raise StoreError(
                self.ancient_path,
                f"freezer table {self.name} item {number} is truncated",
            )

        if not self.uses_compression:
            return data
        try:
            return snappy.decompress(data)
        except Exception as exc:
            raise StoreError(
                self.ancient_path,
                f"freezer table {self.name} item {number} failed to decompress: {exc}",
            ) from exc

    def close(self) -> None:
        for data_file in self._data_files.values():
            data_file.close()
        self._data_files.clear()
        self._index_file.close()


class Freezer:
    """The chain freezer: hashes, headers and bodies by block number."""

    def __init__(self, ancient_path: str) -> None:
        self.ancient_path = ancient_path
        self._tables: Dict[str, FreezerTable] = {}
        try:
            for name, compressed in CHAIN_TABLES.items():
                self._tables[name] = FreezerTable(ancient_path, name, compressed)
        except StoreError:
            self.close()
            raise

    def get(self, kind: str, number: int) -> Optional[bytes]:
        table = self._tables.get(kind)
        if table is None:
            raise KeyError(f"unknown freezer table {kind!r}")
        return table.get(number)

    def close(self) -> None:
        for table in self._tables.values():
            table.close()
        self._tables.clear()


def find_ancient_path(db_path: str) -> Optional[str]:
    """Locate the chain freezer next to a key-value database, if any."""
    for candidate in (
        os.path.join(db_path, "ancient", "chain"),
        os.path.join(db_path, "ancient"),
    ):
        if os.path.isfile(os.path.join(candidate, "hashes.ridx")):
            return candidate
    return None
