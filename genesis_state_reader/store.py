from __future__ import annotations

import bisect
import glob
import os
from typing import Dict, Iterator, Mapping, Optional, Tuple

import plyvel
from rocksdict import AccessType, Options, Rdict

from .errors import StoreError
from .freezer import Freezer, find_ancient_path


class KeyValueStore:
    """Read-only, byte-keyed store with point lookups and ordered iteration."""

    path = "<memory>"

    def __init__(self, freezer: Optional[Freezer] = None) -> None:
        self.freezer = freezer

    def get(self, key: bytes) -> Optional[bytes]:
        raise NotImplementedError

    def iterate(self, prefix: bytes = b"") -> Iterator[Tuple[bytes, bytes]]:
        """Yield ``(key, value)`` pairs starting with ``prefix`` in ascending key order."""
        raise NotImplementedError

    def ancient(self, kind: str, number: int) -> Optional[bytes]:
        if self.freezer is None:
            return None
        return self.freezer.get(kind, number)

    def close(self) -> None:
        if self.freezer is not None:
            self.freezer.close()
            self.freezer = None

    def __enter__(self) -> "KeyValueStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class MemoryStore(KeyValueStore):
    def __init__(self, data: Optional[Mapping[bytes, bytes]] = None, freezer: Optional[Freezer] = None) -> None:
        super().__init__(freezer)
        self._data: Dict[bytes, bytes] = dict(data or {})
        self._keys = sorted(self._data)

    def put(self, key: bytes, value: bytes) -> None:
        if key not in self._data:
            bisect.insort(self._keys, key)
        self._data[key] = value

    def get(self, key: bytes) -> Optional[bytes]:
        return self._data.get(key)

    def iterate(self, prefix: bytes = b"") -> Iterator[Tuple[bytes, bytes]]:
        index = bisect.bisect_left(self._keys, prefix)
        while index < len(self._keys):
            key = self._keys[index]
            if not key.startswith(prefix):
                break
            yield key, self._data[key]
            index += 1

    def __len__(self) -> int:
        return len(self._data)


class LevelDBStore(KeyValueStore):
    """geth's ``geth/chaindata`` LevelDB database."""

    def __init__(self, path: str) -> None:
        try:
            self._db = plyvel.DB(path, create_if_missing=False, max_open_files=16)
        except (plyvel.Error, OSError) as exc:
            raise StoreError(path, f"cannot open LevelDB: {exc}") from exc
        self.path = path
        ancient_path = find_ancient_path(path)
        try:
            super().__init__(Freezer(ancient_path) if ancient_path else None)
        except StoreError:
            self._db.close()
            raise

    def get(self, key: bytes) -> Optional[bytes]:
        try:
            return self._db.get(key)
        except plyvel.Error as exc:
            raise StoreError(self.path, f"read failed for key {key.hex()}: {exc}") from exc

    def iterate(self, prefix: bytes = b"") -> Iterator[Tuple[bytes, bytes]]:
        iterator = self._db.iterator(prefix=prefix) if prefix else self._db.iterator()
        with iterator:
            for key, value in iterator:
                yield key, value

    def close(self) -> None:
        super().close()
        if not self._db.closed:
            self._db.close()


class RocksStore(KeyValueStore):
    """Nitro's ``nitro/l2chaindata`` database, opened read-only."""

    def __init__(self, path: str) -> None:
        try:
            self._db = Rdict(path, options=Options(raw_mode=True), access_type=AccessType.read_only())
        except Exception as exc:
            raise StoreError(path, f"cannot open database: {exc}") from exc
        self.path = path
        ancient_path = find_ancient_path(path)
        try:
            super().__init__(Freezer(ancient_path) if ancient_path else None)
        except StoreError:
            self._db.close()
            raise

    def get(self, key: bytes) -> Optional[bytes]:
        try:
            return self._db.get(key)
        except Exception as exc:
            raise StoreError(self.path, f"read failed for key {key.hex()}: {exc}") from exc

    def iterate(self, prefix: bytes = b"") -> Iterator[Tuple[bytes, bytes]]:
        iterator = self._db.iter()
        iterator.seek(prefix)
        while iterator.valid():
            key = iterator.key()
            if not key.startswith(prefix):
                break
            yield key, iterator.value()
            iterator.next()

    def close(self) -> None:
        super().close()
        self._db.close()


def _is_rocks_layout(path: str) -> bool:
    return bool(glob.glob(os.path.join(path, "OPTIONS-*")))


def detect_chaindata(base: str) -> Tuple[str, str]:
    """Return ``(engine, db_path)`` for a node data directory.

    ``engine`` is ``"rocks"`` or ``"leveldb"``.
    """
    nitro_path = os.path.join(base, "nitro", "l2chaindata")
    if os.path.isdir(nitro_path):
        if os.path.isfile(os.path.join(nitro_path, "CURRENT")) and not _is_rocks_layout(nitro_path):
            return "leveldb", nitro_path
        return "rocks", nitro_path

    geth_path = os.path.join(base, "geth", "chaindata")
    if os.path.isdir(geth_path):
        return "leveldb", geth_path

    if os.path.isfile(os.path.join(base, "CURRENT")):
        return ("rocks" if _is_rocks_layout(base) else "leveldb"), base

    raise StoreError(base, "no nitro/l2chaindata or geth/chaindata database found")


def open_chaindata(base: str) -> KeyValueStore:
    engine, db_path = detect_chaindata(base)
    if engine == "rocks":
        return RocksStore(db_path)
    return LevelDBStore(db_path)
