from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from typing import Dict, List, Optional, Sequence, Tuple

from structlog import get_logger

from .config import settings
from .errors import MediaTwinsError
from .obs.metrics import METRICS
from .scan.keep_set import KeepHooks
from .storage.record_store import RecordStore
from .storage.redis_cache import RedisCache
from .tools.clean_up_guid_twins import clean_up_guid_twins_tool
from .tools.clean_up_media_twins import clean_up_media_twins_tool
from .tools.clean_up_unreferenced import clean_up_unreferenced_tool

log = get_logger()

MAX_LISTED_IDS = 50


def split_positionals(values: Sequence[str]) -> Tuple[List[int], Dict[str, str]]:
    """Bare integers are post ids, `key=value` pairs are scan filters."""
    ids: List[int] = []
    filters: Dict[str, str] = {}
    for v in values:
        if "=" in v:
            k, _, val = v.partition("=")
            filters[k.strip()] = val.strip()
        elif v.isdigit():
            ids.append(int(v))
        else:
            raise ValueError(f"expected a post id or key=value, got {v!r}")
    return ids, filters


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("args", nargs="*", metavar="ID|KEY=VALUE",
                        help="post ids to limit the scan to, or filters such as post_type=product")
    common.add_argument("--dry-run", action="store_true", help="report the deletes without running them")
    common.add_argument("--db", default=None, help="database path (default: MEDIA_TWINS_DB_PATH)")
    common.add_argument("--page-size", type=int, default=None, help="posts per batch and per delete chunk")
    common.add_argument("--metrics", action="store_true", help="print counters after the run")

    ap = argparse.ArgumentParser(prog="media-twins", description="Remove duplicate media posts and their translation/meta rows.")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("clean-up-media-twins", parents=[common],
                       help="delete attachments whose title or name is the original's plus a -N suffix")
    p.add_argument("--start-offset", type=int, default=0)

    p = sub.add_parser("clean-up-unreferenced", parents=[common],
                       help="delete attachments that are not kept by id or referenced under a meta key")
    p.add_argument("--keep-id", type=int, action="append", default=[], dest="keep_ids")
    p.add_argument("--keep-key", action="append", default=[], dest="keep_keys")
    p.add_argument("--target-type", default=None)

    p = sub.add_parser("clean-up-guid-twins", parents=[common],
                       help="delete attachments sharing a guid with one referenced under --key")
    p.add_argument("--key", required=True)
    p.add_argument("--keep-id", type=int, action="append", default=[], dest="keep_ids")
    return ap


def format_summary(res: dict) -> str:
    lines = [f"Scanned: {res['scanned']}"]
    if "kept" in res:
        lines.append(f"Kept: {res['kept']}")
    purged = res["purged"]
    if len(purged) > MAX_LISTED_IDS:
        lines.append(f"Purged attachments: {len(purged)}")
    else:
        lines.append("Purged attachments: " + (", ".join(str(i) for i in purged) or "none"))
    for table, n in res["rows"].items():
        lines.append(f"Deleted: {n} from {table}")
    if res["dry_run"]:
        lines.extend(f"Dry-run: {s}" for s in res["statements"])
    if res.get("interrupted"):
        lines.append("Interrupted before the scan finished")
    return "\n".join(lines)


async def run(args: argparse.Namespace, ids: List[int], filters: Dict[str, str]) -> dict:
    page_size = args.page_size or settings.posts_per_page
    store = RecordStore(args.db or settings.db_path, table_prefix=settings.table_prefix,
                        log_queries=settings.log_queries)
    cache = RedisCache(settings.redis_url, namespace=settings.table_prefix, ttl=settings.guid_cache_ttl_sec)
    stop = asyncio.Event()
    hooks = KeepHooks()
    asyncio.get_running_loop().add_signal_handler(signal.SIGINT, stop.set)
    await store.initialize()
    await cache.initialize()
    log.info("startup", command=args.command, db=store.db_path, cache=cache.enabled, dry_run=args.dry_run)
    common = dict(
        store=store, ids=ids, filters=filters, dry_run=args.dry_run, page_size=page_size,
        concurrency=settings.delete_concurrency, stop=stop, cache=cache,
    )
    try:
        if args.command == "clean-up-media-twins":
            return await clean_up_media_twins_tool(
                post_type=settings.post_type, post_status=settings.post_status,
                start_offset=args.start_offset, **common,
            )
        if args.command == "clean-up-unreferenced":
            return await clean_up_unreferenced_tool(
                keep_ids=[*settings.keep_ids, *args.keep_ids],
                keep_keys=[*settings.keep_keys, *args.keep_keys],
                target_type=args.target_type or settings.post_type,
                target_status=settings.post_status,
                hooks=hooks,
                **common,
            )
        return await clean_up_guid_twins_tool(
            key=args.key, keep_ids=[*settings.keep_ids, *args.keep_ids], hooks=hooks, **common,
        )
    finally:
        await cache.close()
        await store.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        ids, filters = split_positionals(args.args)
    except ValueError as e:
        parser.error(str(e))
    try:
        res = asyncio.run(run(args, ids, filters))
    except MediaTwinsError as e:
        log.error("run_failed", command=args.command, err=str(e))
        return 1
    print(format_summary(res))
    if args.metrics:
        print(asyncio.run(METRICS.export_prom()), end="")
    return 0


if __name__ == "__main__":
    sys.exit(main())
