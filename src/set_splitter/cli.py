#!/usr/bin/env python3
from __future__ import annotations
import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import PipelineConfig, load_env, shopify_config_from_env
from .errors import SetSplitterError
from .pipeline import SetPipeline
from .provenance import ProvenanceTagger
from .shopify_client import CatalogClient
from .visibility import hide_components, show_components, visibility_status


log = logging.getLogger(__name__)


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(message)s")


def build_parser(parents: Optional[List[argparse.ArgumentParser]] = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="set-splitter",
        description="Split multi-piece set listings into hidden component entries and a bundle display.",
        parents=parents or [],
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for INFO, -vv for DEBUG")
    parser.add_argument("--store", default=None, help="Shop domain (defaults to SHOPIFY_STORE)")
    parser.add_argument("--token", default=None, help="Admin API token (defaults to SHOPIFY_ACCESS_TOKEN)")
    parser.add_argument("--api-version", default=None, help="Admin API version (defaults to SHOPIFY_API_VERSION)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("check", help="Show classification and proposed split; no changes")
    p.add_argument("entry_id")

    p = sub.add_parser("process", help="Split one set entry")
    p.add_argument("entry_id")
    p.add_argument("--dry-run", action="store_true", help="Plan only; print drafts without creating anything")
    p.add_argument("--no-rollback", action="store_true", help="Leave components in place on failure and record them")

    sub.add_parser("find", help="List unprocessed set entries")

    p = sub.add_parser("process-all", help="Split every unprocessed set entry")
    p.add_argument("--delay", type=float, default=None, help="Seconds to wait between entries")
    p.add_argument("--no-rollback", action="store_true")

    p = sub.add_parser("config", help="Print the persisted bundle configuration")
    p.add_argument("entry_id")

    p = sub.add_parser("refresh", help="Rebuild the variant sync map from current components")
    p.add_argument("entry_id")

    p = sub.add_parser("size", help="Show which component variants one size resolves to")
    p.add_argument("entry_id")
    p.add_argument("size")

    p = sub.add_parser("reconcile", help="Delete leftovers recorded by a failed run")
    p.add_argument("entry_id")

    for name, help_text in (("hide", "Hide components"), ("show", "Show components")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("entry_ids", nargs="+")

    p = sub.add_parser("visibility", help="Visibility of the components of a bundle entry")
    p.add_argument("entry_id")

    sub.add_parser("tags", help="Report tracking tags on entries owned by the splitter")
    return parser


def run(args: argparse.Namespace, client) -> dict:
    config = PipelineConfig.from_env()
    if getattr(args, "no_rollback", False):
        config.rollback_on_failure = False
    pipeline = SetPipeline(client, config)

    cmd = args.command
    if cmd == "check":
        return pipeline.check_entry(args.entry_id).to_dict()
    if cmd == "process":
        return pipeline.process_entry(args.entry_id, dry_run=args.dry_run or None).to_dict()
    if cmd == "find":
        try:
            entries = pipeline.find_all_unprocessed_sets()
        except SetSplitterError as e:
            return {"success": False, "error": str(e), "reason": e.reason}
        return {
            "success": True,
            "count": len(entries),
            "entries": [
                {"id": e.id, "title": e.title, "price": str(e.first_price) if e.first_price is not None else None}
                for e in entries
            ],
        }
    if cmd == "process-all":
        return pipeline.process_all_sets(args.delay).to_dict()
    if cmd == "config":
        return pipeline.get_bundle_config(args.entry_id).to_dict()
    if cmd == "refresh":
        return pipeline.refresh_variant_mapping(args.entry_id).to_dict()
    if cmd == "size":
        return pipeline.size_mapping(args.entry_id, args.size).to_dict()
    if cmd == "reconcile":
        return pipeline.reconcile_incomplete(args.entry_id).to_dict()
    if cmd == "hide":
        return hide_components(client, args.entry_ids)
    if cmd == "show":
        return show_components(client, args.entry_ids)
    if cmd == "visibility":
        return visibility_status(client, args.entry_id, config.namespace)
    if cmd == "tags":
        listed = client.list_entries()
        if not listed.success:
            return {"success": False, "error": listed.error}
        return {"success": True, "data": ProvenanceTagger(config.namespace).tagging_report(listed.data)}
    raise ValueError(f"Unknown command: {cmd}")


def main(argv: Optional[List[str]] = None, client=None) -> int:
    # Early parse to pick up --dotenv so env-driven defaults see it
    env_only = argparse.ArgumentParser(add_help=False)
    env_only.add_argument("--dotenv", default=None, help="Path to a .env file")
    early_args, _ = env_only.parse_known_args(argv)
    load_env(early_args.dotenv)

    args = build_parser([env_only]).parse_args(argv)
    configure_logging(args.verbose)

    if client is None:
        cfg = shopify_config_from_env(args.store, args.token, args.api_version)
        client = CatalogClient(cfg)

    result = run(args, client)
    print(json.dumps(result, indent=2, default=str))
    return 0 if result.get("success") else 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
