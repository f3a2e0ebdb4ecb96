"""Command line management of the search token."""

from __future__ import annotations

import argparse
from collections.abc import Sequence

from minisearch_server.auth.hashing import hash_search_token
from minisearch_server.auth.search_token import get_search_token, regenerate_search_token


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="minisearch-token",
        description="Show, regenerate or hash the MiniSearch search token.",
    )
    parser.add_argument(
        "command",
        choices=["show", "regenerate", "hash"],
        help="show: print the token; regenerate: write a new one; hash: print a client token",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the token command and print its output."""
    args = parse_args(argv)
    if args.command == "regenerate":
        print(regenerate_search_token())
    elif args.command == "hash":
        print(hash_search_token(get_search_token()))
    else:
        print(get_search_token())
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
