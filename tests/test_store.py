import plyvel
import pytest
from rocksdict import Options, Rdict

from genesis_state_reader.errors import StoreError
from genesis_state_reader.store import (
    LevelDBStore,
    MemoryStore,
    RocksStore,
    detect_chaindata,
    open_chaindata,
)

ENTRIES = {
    b"secure-key-\x02": b"two",
    b"secure-key-\x01": b"one",
    b"h\x00": b"header",
    b"secure-kez": b"outside",
}


def test_memory_store_prefix_iteration_is_ordered():
    store = MemoryStore(ENTRIES)
    store.put(b"secure-key-\x00", b"zero")

    assert list(store.iterate(b"secure-key-")) == [
        (b"secure-key-\x00", b"zero"),
        (b"secure-key-\x01", b"one"),
        (b"secure-key-\x02", b"two"),
    ]
    assert [k for k, _ in store.iterate()] == sorted(store._keys)
    assert store.get(b"missing") is None
    assert store.ancient("hashes", 0) is None


def test_detect_nitro_layout(tmp_path):
    (tmp_path / "nitro" / "l2chaindata").mkdir(parents=True)
    (tmp_path / "geth" / "chaindata").mkdir(parents=True)

    assert detect_chaindata(str(tmp_path)) == ("rocks", str(tmp_path / "nitro" / "l2chaindata"))


def test_detect_nitro_leveldb_engine(tmp_path):
    nitro = tmp_path / "nitro" / "l2chaindata"
    nitro.mkdir(parents=True)
    (nitro / "CURRENT").write_text("MANIFEST-000001\n")
    assert detect_chaindata(str(tmp_path)) == ("leveldb", str(nitro))

    (nitro / "OPTIONS-000007").write_text("")
    assert detect_chaindata(str(tmp_path)) == ("rocks", str(nitro))


def test_nitro_leveldb_store(tmp_path):
    path = tmp_path / "nitro" / "l2chaindata"
    path.mkdir(parents=True)
    db = plyvel.DB(str(path), create_if_missing=True)
    db.put(b"h\x00", b"header")
    db.close()

    with open_chaindata(str(tmp_path)) as store:
        assert isinstance(store, LevelDBStore)
        assert store.get(b"h\x00") == b"header"


def test_detect_geth_layout(tmp_path):
    (tmp_path / "geth" / "chaindata").mkdir(parents=True)

    assert detect_chaindata(str(tmp_path)) == ("leveldb", str(tmp_path / "geth" / "chaindata"))


def test_detect_bare_database_directory(tmp_path):
    (tmp_path / "CURRENT").write_text("MANIFEST-000001\n")
    assert detect_chaindata(str(tmp_path)) == ("leveldb", str(tmp_path))

    (tmp_path / "OPTIONS-000005").write_text("")
    assert detect_chaindata(str(tmp_path)) == ("rocks", str(tmp_path))


def test_detect_nothing(tmp_path):
    with pytest.raises(StoreError):
        detect_chaindata(str(tmp_path / "absent"))


def test_leveldb_store(tmp_path):
    path = tmp_path / "geth" / "chaindata"
    path.mkdir(parents=True)
    db = plyvel.DB(str(path), create_if_missing=True)
    for key, value in ENTRIES.items():
        db.put(key, value)
    db.close()

    with open_chaindata(str(tmp_path)) as store:
        assert isinstance(store, LevelDBStore)
        assert store.get(b"h\x00") == b"header"
        assert store.get(b"nope") is None
        assert [k for k, _ in store.iterate(b"secure-key-")] == [b"secure-key-\x01", b"secure-key-\x02"]
        assert store.freezer is None


def test_rocks_store(tmp_path):
    path = tmp_path / "nitro" / "l2chaindata"
    path.mkdir(parents=True)
    db = Rdict(str(path), options=Options(raw_mode=True))
    for key, value in ENTRIES.items():
        db[key] = value
    db.close()

    with open_chaindata(str(tmp_path)) as store:
        assert isinstance(store, RocksStore)
        assert store.get(b"h\x00") == b"header"
        assert store.get(b"nope") is None
        assert [k for k, _ in store.iterate(b"secure-key-")] == [b"secure-key-\x01", b"secure-key-\x02"]


def test_unopenable_leveldb(tmp_path):
    (tmp_path / "geth" / "chaindata").mkdir(parents=True)
    with pytest.raises(StoreError):
        open_chaindata(str(tmp_path))
