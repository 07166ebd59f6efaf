from __future__ import annotations

import json
import sys
from typing import Optional

import redis
from eth_hash.auto import keccak

from .dump import Dump
from .hexutil import normalize_hex, parse_hex_bytes, strip_hex_prefix


class JsonSink:
    def __init__(self, path: Optional[str]):
        self._path = path

    def handle(self, dump: Dump) -> None:
        document = json.dumps(dump.as_dict(), indent=2)
        if self._path:
            with open(self._path, "w") as stream:
                stream.write(document)
                stream.write("\n")
        else:
            sys.stdout.write(document)
            sys.stdout.write("\n")
            sys.stdout.flush()


class RedisSink:
    """Mirror the dump into Redis, one hash per account keyed by hashed address."""

    def __init__(self, url: str, namespace: str, pipeline_size: int) -> None:
        if pipeline_size <= 0:
            raise ValueError("--redis-pipeline-size must be positive")
        self._namespace = namespace.rstrip(":")
        self._client = redis.Redis.from_url(url)
        self._pipeline_size = pipeline_size
        self._pipeline = (
            self._client.pipeline(transaction=False) if self._pipeline_size > 1 else None
        )
        self._pending = 0

    def _clear_namespace(self) -> None:
        patterns = [
            f"{self._namespace}:account:*",
            f"{self._namespace}:storage:*",
            f"{self._namespace}:code:*",
            f"{self._namespace}:address:*",
        ]
        for pattern in patterns:
            cursor = 0
            while True:
                cursor, keys = self._client.scan(cursor=cursor, match=pattern, count=1000)
                if keys:
                    self._client.delete(*keys)
                if cursor == 0:
                    break
        self._client.delete(f"{self._namespace}:header")

    def _queued(self) -> None:
        if self._pipeline is None:
            return
        self._pending += 1
        if self._pending >= self._pipeline_size:
            self._pipeline.execute()
            self._pending = 0

    def handle(self, dump: Dump) -> None:
        self._clear_namespace()
        target = self._pipeline if self._pipeline is not None else self._client

        for hashed_key, account in (dump.secure_alloc or {}).items():
            key_hex = strip_hex_prefix(hashed_key)
            target.hset(
                f"{self._namespace}:account:{key_hex}",
                mapping={
                    "nonce": str(account.nonce),
                    "balance": str(account.balance),
                    "code_hash": normalize_hex(account.code_hash, pad_to=32),
                    "storage_root": normalize_hex(account.storage_root, pad_to=32),
                },
            )
            if account.storage:
                target.hset(f"{self._namespace}:storage:{key_hex}", mapping=account.storage)
            if account.code:
                code_key = f"{self._namespace}:code:{account.code_hash.hex()}"
                target.set(code_key, normalize_hex(account.code))
            self._queued()

        for address in dump.alloc or {}:
            hashed_key = keccak(parse_hex_bytes(address, size=20))
            target.set(f"{self._namespace}:address:{strip_hex_prefix(address)}", hashed_key.hex())
            self._queued()

        target.hset(f"{self._namespace}:header", mapping=dump.header.as_dict())
        if self._pipeline is not None:
            self._pipeline.execute()
            self._pending = 0
