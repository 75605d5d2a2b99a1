"""
Command-line front end: show, contexts, json, merge and reset over the store.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from .config import get_config
from .errors import KeyfreqError
from .reporting import SortOrder, contexts
from .render import render_json, render_text
from .session import KeyfreqSession


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="keyfreq", description="Per-context action counters")
    ap.add_argument("--store", help="store file (default: KEYFREQ_STORE_PATH or ~/.keyfreq)")
    ap.add_argument("-v", "--verbose", action="store_true")
    sub = ap.add_subparsers(dest="command", required=True)

    show = sub.add_parser("show", help="ranked action counts")
    show.add_argument("--context", help="only actions seen in this context")
    show.add_argument("--order", choices=[o.value for o in SortOrder], default=SortOrder.DESCENDING.value)
    show.add_argument(
        "--threshold", type=int, default=None,
        help="N > 0: counts above N; N < 0: counts below |N|",
    )

    sub.add_parser("contexts", help="list contexts present in the store")
    sub.add_parser("json", help="export the store as a JSON matrix")

    merge = sub.add_parser("merge", help="merge stores A and B into C")
    merge.add_argument("a")
    merge.add_argument("b")
    merge.add_argument("c")

    reset = sub.add_parser("reset", help="delete the store")
    reset.add_argument("--yes", action="store_true", help="confirm deletion")
    return ap


def _session(store: Optional[str]) -> KeyfreqSession:
    config = get_config()
    if store:
        config = config.model_copy(update={"store_path": store})
    return KeyfreqSession(config)


def run(args: argparse.Namespace) -> int:
    session = _session(args.store)

    if args.command == "show":
        ranked = session.ranked(args.context, SortOrder(args.order), args.threshold)
        sys.stdout.write(render_text(ranked))
    elif args.command == "contexts":
        for context in contexts(session.view()):
            print(context)
    elif args.command == "json":
        print(render_json(session.view()))
    elif args.command == "merge":
        session.merge_stores(args.a, args.b, args.c)
        print(f"merged {args.a} + {args.b} -> {args.c}")
    elif args.command == "reset":
        if not args.yes:
            print("refusing to delete the store without --yes", file=sys.stderr)
            return 1
        session.reset()
        print(f"deleted {session.engine.store_path}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    try:
        return run(args)
    except KeyfreqError as exc:
        print(f"keyfreq: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
