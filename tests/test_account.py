import pytest
import rlp

from genesis_state_reader.account import (
    EMPTY_CODE_HASH,
    AccountRecord,
    decode_account,
    decode_storage_value,
)
from genesis_state_reader.errors import DecodeError
from genesis_state_reader.trie import EMPTY_TRIE_HASH


def encode(nonce=0, balance=0, root=EMPTY_TRIE_HASH, code_hash=EMPTY_CODE_HASH):
    return rlp.encode([nonce, balance, root, code_hash])


def test_decode_account_fields():
    account = decode_account(encode(nonce=7, balance=10**21))

    assert account.nonce == 7
    assert account.balance == 10**21
    assert account.storage_root == EMPTY_TRIE_HASH
    assert account.code_hash == EMPTY_CODE_HASH
    assert not account.has_code


@pytest.mark.parametrize(
    "leaf",
    [
        b"",
        b"\xc0",
        rlp.encode([1, 2, EMPTY_TRIE_HASH]),
        rlp.encode([1, 2, EMPTY_TRIE_HASH, EMPTY_CODE_HASH, b"extra"]),
        rlp.encode([1, 2, EMPTY_TRIE_HASH[:31], EMPTY_CODE_HASH]),
        rlp.encode([b"\x00\x01", 2, EMPTY_TRIE_HASH, EMPTY_CODE_HASH]),
        encode(nonce=1)[:-1],
        encode(nonce=1) + b"\x00",
        rlp.encode(b"not a list"),
    ],
    ids=[
        "empty",
        "empty-list",
        "missing-field",
        "extra-field",
        "short-root",
        "non-minimal-nonce",
        "truncated",
        "trailing-bytes",
        "string",
    ],
)
def test_decode_account_rejects_malformed_leaves(leaf):
    with pytest.raises(DecodeError):
        decode_account(leaf)


def test_decode_account_rejects_nonce_overflow():
    with pytest.raises(DecodeError):
        decode_account(encode(nonce=2**64))


def test_storage_value_rendering():
    assert decode_storage_value(rlp.encode(1)) == "0x1"
    assert decode_storage_value(rlp.encode(0xDEADBEEF)) == "0xdeadbeef"
    # not an RLP integer: raw bytes come through untouched
    assert decode_storage_value(b"\xc2\x01\x02") == "0xc20102"


def test_as_dict_omits_empty_code_and_storage():
    record = AccountRecord(nonce=0, balance=255, storage_root=EMPTY_TRIE_HASH, code_hash=EMPTY_CODE_HASH)

    assert record.as_dict() == {
        "nonce": "0x0",
        "balance": "0xff",
        "codeHash": "0x" + EMPTY_CODE_HASH.hex(),
        "storageRoot": "0x" + EMPTY_TRIE_HASH.hex(),
    }


def test_with_storage_copies():
    record = AccountRecord(nonce=1, balance=2, storage_root=EMPTY_TRIE_HASH, code_hash=EMPTY_CODE_HASH, code=b"\x60\x00")
    storage = {"0x01": "0x2"}
    copy = record.with_storage(storage)
    storage["0x02"] = "0x3"

    assert copy.storage == {"0x01": "0x2"}
    assert record.storage == {}
    assert copy.as_dict()["code"] == "0x6000"
