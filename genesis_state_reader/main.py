from __future__ import annotations

import argparse
import os
import sys
from typing import List, Optional

import redis

from .dump import assemble_dump
from .errors import GenesisDumpError
from .genesis import locate_genesis
from .hexutil import parse_hex_bytes
from .preimage import DEFAULT_CANDIDATE_LIMIT, PreimageResolver
from .sinks import JsonSink, RedisSink
from .store import open_chaindata

DEFAULT_CHAINDATA = os.path.join("~", ".arbitrum", "sepolia-rollup")


def _address(value: str) -> bytes:
    try:
        return parse_hex_bytes(value, size=20)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid address {value!r}: {exc}") from exc


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Dump the genesis (block 0) state of a chain database as JSON."
    )
    parser.add_argument(
        "--chaindata",
        default=DEFAULT_CHAINDATA,
        help=(
            "Node data root; nitro/l2chaindata or geth/chaindata is detected beneath it "
            "(default: ~/.arbitrum/sepolia-rollup)."
        ),
    )
    parser.add_argument(
        "--dump-secure-alloc",
        action="store_true",
        help="Walk the genesis state and dump accounts keyed by hashed address, plus plain addresses when all resolve.",
    )
    parser.add_argument(
        "--max-accounts",
        type=int,
        default=0,
        help="Limit the number of accounts to dump, lowest hashed keys first (0 = no limit).",
    )
    parser.add_argument(
        "--max-storage",
        type=int,
        default=0,
        help="Limit the number of storage slots per account (0 = no limit).",
    )
    parser.add_argument(
        "--candidate-limit",
        type=int,
        default=DEFAULT_CANDIDATE_LIMIT,
        help="Try addresses 0x01..N when an account hash has no stored preimage (default: 0xff).",
    )
    parser.add_argument(
        "--candidate-address",
        type=_address,
        action="append",
        default=[],
        help="Extra address to try when recovering account hashes (repeatable).",
    )
    parser.add_argument(
        "--output",
        help="Optional path to write the JSON document. Defaults to stdout.",
    )
    parser.add_argument(
        "--redis-url",
        help="Also export the dump to Redis (e.g. redis://localhost:6379/0).",
    )
    parser.add_argument(
        "--redis-namespace",
        default="genesis",
        help="Redis namespace/prefix for the exported state (default: genesis).",
    )
    parser.add_argument(
        "--redis-pipeline-size",
        type=int,
        default=1,
        help="Number of accounts to buffer before flushing Redis pipelines (default: 1).",
    )
    parser.add_argument(
        "--no-verify",
        action="store_true",
        help="Skip verifying that trie nodes hash to their references (faster but unsafe).",
    )
    parser.add_argument("--verbose", action="store_true", help="Emit progress information to stderr.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    if args.max_accounts < 0 or args.max_storage < 0:
        print("--max-accounts and --max-storage must not be negative.", file=sys.stderr)
        return 2

    if args.candidate_limit < 0:
        print("--candidate-limit must not be negative.", file=sys.stderr)
        return 2

    if args.redis_pipeline_size <= 0:
        print("--redis-pipeline-size must be positive.", file=sys.stderr)
        return 2

    chaindata = os.path.expanduser(args.chaindata)
    try:
        with open_chaindata(chaindata) as store:
            if args.verbose:
                print(f"[info] opened chain database {store.path}", file=sys.stderr)

            genesis = locate_genesis(store)
            if args.verbose:
                print(
                    f"[info] genesis block {genesis.header.hash.hex()} with state root {genesis.header.state_root.hex()}",
                    file=sys.stderr,
                )

            resolver = PreimageResolver(
                store,
                candidate_limit=args.candidate_limit,
                extra_candidates=args.candidate_address,
            )
            dump = assemble_dump(
                store,
                genesis,
                dump_secure_alloc=args.dump_secure_alloc,
                max_accounts=args.max_accounts,
                max_storage=args.max_storage,
                resolver=resolver,
                verify=not args.no_verify,
                verbose=args.verbose,
            )
    except GenesisDumpError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    # Redis first; the JSON document is written only after a successful export
    try:
        sinks: List[object] = []
        if args.redis_url:
            sinks.append(RedisSink(args.redis_url, args.redis_namespace, args.redis_pipeline_size))
        sinks.append(JsonSink(args.output))

        for sink in sinks:
            sink.handle(dump)
    except (redis.RedisError, OSError, ValueError) as exc:
        print(f"error: export failed: {exc}", file=sys.stderr)
        return 1

    if args.verbose:
        print(
            f"[info] emitted {len(dump.secure_alloc or {})} secure and {len(dump.alloc or {})} plain accounts",
            file=sys.stderr,
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
