"""
Sync entry point.

Loads configuration and the membership file, configures logging, and runs
one reconciliation of the group.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from .client import DirectoryClient
from .config import AppConfig, load_config
from .metrics import MetricsCollector
from .models import MembershipFile
from .source import load_membership_file
from .sync import GroupSync, RunReport


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog with the specified level and format."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            structlog.get_level_from_name(level)
        ),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sync group org memberships from a membership file"
    )
    parser.add_argument(
        "-c", "--config",
        default="gm-sync.yaml",
        help="Path to configuration file (default: gm-sync.yaml)",
    )
    parser.add_argument(
        "-m", "--membership-file",
        required=True,
        help="Path to the desired membership file (JSON or YAML)",
    )
    parser.add_argument("--group-id", help="Override directory.group_id")
    parser.add_argument("--dry-run", action="store_true", default=None,
                        help="Compute and log the diff without changing anything")
    parser.add_argument("--auto-provision", action="store_true", default=None,
                        help="Auto-provision users instead of inviting them")
    parser.add_argument("--invite-to-all-orgs", action="store_true", default=None,
                        help="Invite to every org even with an invite pending elsewhere")
    parser.add_argument("--no-add-new", dest="add_new", action="store_false", default=None,
                        help="Do not add or update memberships")
    parser.add_argument("--no-delete-missing", dest="delete_missing", action="store_false",
                        default=None, help="Do not remove memberships")
    return parser


def apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """CLI flags win over the config file."""
    sync_updates = {
        key: getattr(args, key)
        for key in ("dry_run", "auto_provision", "invite_to_all_orgs", "add_new", "delete_missing")
        if getattr(args, key, None) is not None
    }
    directory_updates = {"group_id": args.group_id} if args.group_id else {}
    return config.model_copy(update={
        "sync": config.sync.model_copy(update=sync_updates),
        "directory": config.directory.model_copy(update=directory_updates),
    })


async def run_sync(
    config: AppConfig, source: MembershipFile, metrics: MetricsCollector
) -> RunReport:
    directory = config.directory
    transport = config.transport
    async with DirectoryClient(
        directory.api_url,
        directory.rest_url,
        directory.api_token or "",
        max_retries=transport.max_retries,
        retry_base_seconds=transport.retry_base_seconds,
        burst_size=transport.burst_size,
        period_seconds=transport.period_seconds,
        request_timeout=directory.request_timeout_seconds,
        verify_tls=directory.verify_tls,
        user_agent_prefix=directory.user_agent_prefix,
    ) as client:
        sync = GroupSync(client, directory.group_id, source, config.sync, metrics)
        return await sync.run()


def run(argv: list[str] | None = None) -> None:
    """CLI entry point for the sync."""
    args = build_parser().parse_args(argv)

    try:
        config = apply_overrides(load_config(args.config), args)
        source = load_membership_file(args.membership_file)
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    except Exception as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    if not config.directory.group_id:
        print("Configuration error: directory.group_id is not set", file=sys.stderr)
        sys.exit(1)
    if not config.directory.api_token:
        print(
            f"Configuration error: {config.directory.api_token_env} is not set",
            file=sys.stderr,
        )
        sys.exit(1)

    configure_logging(config.logging.level, config.logging.format)
    log = structlog.get_logger()
    log.info(
        "sync.config_loaded",
        config_path=args.config,
        membership_file=args.membership_file,
        rows=len(source.members),
    )

    metrics = MetricsCollector()
    try:
        report = asyncio.run(run_sync(config, source, metrics))
    except KeyboardInterrupt:
        sys.exit(130)

    log.info("sync.summary", stage=report.stage.value, dispatched=report.dispatched)
    if config.metrics.textfile_path:
        metrics.write_textfile(config.metrics.textfile_path)


if __name__ == "__main__":
    run()
