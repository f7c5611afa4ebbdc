"""Command-line entry point for harvesting and citation analysis."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from pydantic import ValidationError

from harvester.checkpoint import CheckpointStore
from harvester.config import HarvestConfig, SelfCitationPolicy
from harvester.exceptions import CheckpointPersistError, ConfigurationError, HarvesterError
from harvester.parsing.references import parse_references, references_from_links
from harvester.providers.clients.links import HttpLinkValidator
from harvester.services.citation_graph_service import DEFAULT_MAX_PATH_DEPTH, CitationGraphService
from harvester.services.citation_linker_service import CitationLinkerService
from harvester.services.harvest_service import HarvestCoordinator
from harvester.storage.base import RecordStore
from harvester.storage.memory import InMemoryRecordStore
from harvester.storage.migrations import run_migrations
from harvester.storage.postgres import PostgresRecordStore

logger = logging.getLogger(__name__)


def _comma_list(value: str) -> List[str]:
    items = [item.strip() for item in value.split(",") if item.strip()]
    if not items:
        raise argparse.ArgumentTypeError("Expected a comma-separated list")
    return items


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="harvester", description="Multi-source literature harvester"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--checkpoint",
        type=Path,
        default=None,
        help="Checkpoint file (overrides HARVESTER_CHECKPOINT_PATH)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    harvest = subparsers.add_parser("harvest", help="Run or resume a harvest")
    harvest.add_argument(
        "--dry-run",
        action="store_true",
        help="Use an in-memory record store instead of PostgreSQL",
    )
    harvest.add_argument("--max-rounds", type=int, default=None, help="Safety cap on rounds")
    harvest.add_argument(
        "--delay", type=float, default=None, help="Seconds to sleep between rounds"
    )
    harvest.add_argument(
        "--sources",
        type=_comma_list,
        default=None,
        help="Comma-separated sources, e.g. crossref,pubmed,arxiv",
    )
    harvest.add_argument(
        "--validate-links",
        action="store_true",
        default=None,
        help="Resolve external URLs of accepted papers",
    )

    checkpoint = subparsers.add_parser("checkpoint", help="Inspect or delete the checkpoint")
    checkpoint.add_argument("action", choices=["show", "reset"])

    network = subparsers.add_parser("network", help="Citation network around a paper")
    network.add_argument("root", help="Paper id to start from")
    network.add_argument("--depth", type=int, default=1)

    paths = subparsers.add_parser("paths", help="Citation paths between two papers")
    paths.add_argument("from_id", metavar="FROM")
    paths.add_argument("to_id", metavar="TO")
    paths.add_argument("--max-depth", type=int, default=DEFAULT_MAX_PATH_DEPTH)

    similarity = subparsers.add_parser(
        "similarity", help="Jaccard similarity of two papers' citation neighbourhoods"
    )
    similarity.add_argument("first")
    similarity.add_argument("second")

    link = subparsers.add_parser("link", help="Record citations from bibliography entries")
    link.add_argument("paper_id")
    link.add_argument(
        "--reference",
        action="append",
        dest="references",
        default=[],
        help="Repeatable free-text bibliography entry",
    )
    link.add_argument(
        "--doi-link",
        action="append",
        dest="doi_links",
        default=[],
        help="Repeatable link containing a DOI",
    )
    link.add_argument(
        "--self-citation-policy",
        choices=[policy.value for policy in SelfCitationPolicy],
        default=None,
    )

    subparsers.add_parser("migrate", help="Apply pending SQL migrations")

    return parser


def _load_config(args: argparse.Namespace, **overrides: Any) -> HarvestConfig:
    if args.checkpoint is not None:
        overrides["checkpoint_path"] = args.checkpoint
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return HarvestConfig(**values)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc


@contextmanager
def _open_store(config: HarvestConfig, *, dry_run: bool = False) -> Iterator[RecordStore]:
    if dry_run:
        yield InMemoryRecordStore()
        return
    if not config.db_dsn:
        raise ConfigurationError("HARVESTER_DB_DSN must be set (or pass --dry-run)")
    with PostgresRecordStore(config.db_dsn, max_connections=config.store_workers) as store:
        yield store


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def _run_harvest(args: argparse.Namespace) -> int:
    config = _load_config(
        args,
        max_rounds=args.max_rounds,
        round_delay_s=args.delay,
        sources=args.sources,
        validate_links=args.validate_links,
    )
    with _open_store(config, dry_run=args.dry_run) as store:
        coordinator = HarvestCoordinator.from_config(config, store)
        previous = signal.signal(signal.SIGINT, lambda *_: coordinator.cancel())
        try:
            summary = coordinator.run()
        except CheckpointPersistError as exc:
            logger.error("Harvest aborted: %s", exc)
            _emit(coordinator.summary().as_dict())
            return 1
        finally:
            signal.signal(signal.SIGINT, previous)
    _emit(summary.as_dict())
    return 0


def _run_checkpoint(args: argparse.Namespace) -> int:
    config = _load_config(args)
    store = CheckpointStore(config.checkpoint_path)
    if args.action == "reset":
        _emit({"path": str(store.path), "deleted": store.reset()})
        return 0

    checkpoint = store.load()
    if checkpoint is None:
        _emit({"path": str(store.path), "exists": False})
        return 0
    payload = json.loads(checkpoint.to_json())
    # The fingerprint set can be very large; report its size instead.
    payload["processedFingerprints"] = len(checkpoint.processed_fingerprints)
    _emit(payload)
    return 0


def _run_network(args: argparse.Namespace) -> int:
    config = _load_config(args)
    with _open_store(config) as store:
        network = CitationGraphService(store).build_network(args.root, args.depth)
    _emit({paper_id: sorted(cited) for paper_id, cited in network.items()})
    return 0


def _run_paths(args: argparse.Namespace) -> int:
    config = _load_config(args)
    with _open_store(config) as store:
        paths = CitationGraphService(store).find_paths(
            args.from_id, args.to_id, max_depth=args.max_depth
        )
    _emit(paths)
    return 0


def _run_similarity(args: argparse.Namespace) -> int:
    config = _load_config(args)
    with _open_store(config) as store:
        score = CitationGraphService(store).similarity(args.first, args.second)
    _emit({"first": args.first, "second": args.second, "similarity": score})
    return 0


def _run_link(args: argparse.Namespace) -> int:
    config = _load_config(args, self_citation_policy=args.self_citation_policy)
    references = parse_references(args.references) + references_from_links(args.doi_links)
    link_validator = None
    if config.validate_links:
        link_validator = HttpLinkValidator(
            session=config.build_session(), timeout=config.request_timeout_s
        )
    with _open_store(config) as store:
        linker = CitationLinkerService(
            store, policy=config.self_citation_policy, link_validator=link_validator
        )
        result = linker.link_references(args.paper_id, references)
    _emit(
        {
            "paperId": result.paper_id,
            "title": result.title,
            "verified": len(result.verified),
            "unverified": len(result.unverified),
            "edgesAdded": result.edges_added,
            "citedByCount": result.cited_by_count,
        }
    )
    return 0


def _run_migrate(args: argparse.Namespace) -> int:
    config = _load_config(args)
    if not config.db_dsn:
        raise ConfigurationError("HARVESTER_DB_DSN must be set to run migrations")
    _emit({"applied": run_migrations(config.db_dsn)})
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    commands: Dict[str, Any] = {
        "harvest": _run_harvest,
        "checkpoint": _run_checkpoint,
        "network": _run_network,
        "paths": _run_paths,
        "similarity": _run_similarity,
        "link": _run_link,
        "migrate": _run_migrate,
    }

    handler = commands.get(args.command)
    if handler is None:
        parser.error("Unknown command")
        return 1

    try:
        return handler(args)
    except HarvesterError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
