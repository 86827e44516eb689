#!/usr/bin/env python
"""Command-line entry point for orgnote."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from orgnote import __version__
from orgnote.config import config
from orgnote.exceptions import OrgnoteError
from orgnote.models.db_models import init_db
from orgnote.observability import configure_logging, metrics, timed_operation
from orgnote.services.orgnote_service import OrgnoteService
from orgnote.storage.node_repository import NodeRepository

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="orgnote", description="Index org-mode notes into SQLite"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--notes-dir",
        help="Directory containing note files",
        type=str,
        default=os.environ.get("ORGNOTE_NOTES_DIR"),
    )
    parser.add_argument(
        "--journal-dir",
        help="Directory containing journal files",
        type=str,
        default=os.environ.get("ORGNOTE_JOURNAL_DIR"),
    )
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("ORGNOTE_DATABASE_PATH"),
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=config.log_level.upper(),
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files",
        type=str,
        default=None,
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("sync", help="Sync one file (default: ORGNOTE_CURRENT_FILE)")
    p.add_argument("path", nargs="?")

    sub.add_parser("sync-all", help="Sync every note and journal file")
    sub.add_parser("rebuild", help="Drop the database and sync everything")

    p = sub.add_parser("delete", help="Delete a note file and purge its rows")
    p.add_argument("path")

    p = sub.add_parser("find", help="Print the file of a node, creating it if needed")
    p.add_argument("title")

    p = sub.add_parser("link", help="Insert a link to a node into a file")
    p.add_argument("target", help="Node ID or title")
    p.add_argument("--file", required=True)
    p.add_argument("--position", type=int, default=None)
    p.add_argument("--description", default=None)

    p = sub.add_parser("backlinks", help="List nodes linking to a node")
    p.add_argument("node_id")
    p.add_argument("--no-master", action="store_true", help="Skip child nodes")

    p = sub.add_parser("show", help="Show a node")
    p.add_argument("node_id")

    p = sub.add_parser("tags", help="List tags, or the nodes carrying any TAG")
    p.add_argument("tag", nargs="*")
    p.add_argument("--all", dest="match_all", action="store_true",
                   help="Only nodes carrying every TAG")

    p = sub.add_parser("search", help="List nodes whose title contains TEXT")
    p.add_argument("text")

    p = sub.add_parser("check", help="Report dangling links and unlinked nodes")
    p.add_argument("--cleanup-tags", action="store_true",
                   help="Also delete tags no node uses")

    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.notes_dir:
        config.notes_dir = Path(args.notes_dir)
    if args.journal_dir:
        config.journal_dir = Path(args.journal_dir)
    if args.database_path:
        config.database_path = Path(args.database_path)


def _save_metrics_on_exit():
    if metrics.save_metrics():
        logger.debug("Metrics saved to disk on exit")


def _describe(service: OrgnoteService, node_id: str) -> str:
    node = service.repository.get(node_id)
    return str(node) if node else f"<unknown> ({node_id})"


def run_command(args, service: OrgnoteService) -> int:
    """Run one subcommand; returns the process exit status."""
    with timed_operation(args.command) as op:
        if args.command == "sync":
            record_set = service.sync_file(args.path)
            op["nodes"] = len(record_set.records)
            print(f"{record_set.file}: {len(record_set.records)} nodes, "
                  f"{len(record_set.links)} links")
        elif args.command in ("sync-all", "rebuild"):
            report = service.rebuild() if args.command == "rebuild" else service.sync_all()
            op["succeeded"] = len(report.succeeded)
            op["failed"] = len(report.failed)
            print(f"synced {len(report.succeeded)} files, purged {len(report.purged)}")
            for path, reason in report.failed.items():
                print(f"FAILED {path}: {reason}", file=sys.stderr)
            return 0 if report.ok else 1
        elif args.command == "delete":
            removed = service.delete_file_and_purge(args.path)
            print(f"removed {removed} nodes")
        elif args.command == "find":
            print(service.find_or_create_node(args.title))
        elif args.command == "link":
            print(service.insert_link_to_node(
                args.target, args.file, args.position, args.description
            ))
        elif args.command == "backlinks":
            for link in service.backlinks(args.node_id, include_master=not args.no_master):
                print(f"{link.kind.value:6} {_describe(service, link.source)}")
        elif args.command == "show":
            node = service.get_node(args.node_id)
            print(f"{node.title}\n  id: {node.id}\n  file: {node.file}\n"
                  f"  level: {node.level}\n  master: {node.master}\n"
                  f"  tags: {' '.join(node.tags)}")
            print(f"  connections: {service.connection_count(node.id)}")
            for link in service.outgoing_links(node.id):
                print(f"  -> {link.kind.value:6} {_describe(service, link.dest)}")
        elif args.command == "tags":
            if args.tag:
                for node in service.nodes_with_tags(args.tag, match_all=args.match_all):
                    print(node)
            else:
                for name, count in service.tags_with_counts().items():
                    print(f"{count:5} {name}")
        elif args.command == "search":
            for node in service.search_titles(args.text):
                print(node)
        elif args.command == "check":
            dangling = service.dangling_links()
            for link in dangling:
                print(f"dangling {link.source} -> {link.dest}")
            orphans = service.orphaned_nodes()
            for node in orphans:
                print(f"unlinked {node}")
            op["dangling"] = len(dangling)
            op["unlinked"] = len(orphans)
            if args.cleanup_tags:
                print(f"removed {service.cleanup_tags()} unused tags")
    return 0


def main(argv=None) -> int:
    """Run the orgnote command line."""
    args = parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        configure_logging(log_dir=args.log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to console logging if the log directory is unusable
        logging.basicConfig(level=log_level)
        logger.warning(f"Failed to configure file logging: {e}")

    atexit.register(_save_metrics_on_exit)

    try:
        engine = init_db()
    except (OrgnoteError, SQLAlchemyError) as e:
        logger.error(f"Failed to initialize database: {e}")
        return 1

    service = OrgnoteService(repository=NodeRepository(engine=engine))
    try:
        return run_command(args, service)
    except OrgnoteError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
