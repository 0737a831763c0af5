"""
Command-line entry point.

Flow:
1. Load settings (config file + positional roots)
2. Open the cache and seed the selector with what it already knows
3. Start background discovery feeding new projects into the selector
4. Save the cache once, then hand over to tmux for the chosen project
"""

import argparse
import os
import sys
from pathlib import Path
from uuid import uuid4

from loguru import logger

from listprojects import __version__
from listprojects.cache import ProjectCache
from listprojects.channel import ItemChannel
from listprojects.config_loader import load_settings
from listprojects.errors import ErrorReport, ListProjectsError
from listprojects.logging_config import setup_logger, trace_id_var
from listprojects.pipeline import DiscoveryPipeline
from listprojects.selector import FzfSelector, Selector
from listprojects.session import TmuxClient, activate, inside_tmux_client


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="listprojects",
        description="Fuzzy-find git projects and open them in a tmux session.",
    )
    parser.add_argument(
        "roots",
        nargs="*",
        metavar="ROOT",
        help="Directories to scan (overrides root_dirs from the config file)",
    )
    parser.add_argument("-c", "--clear", action="store_true", help="Clear the project cache before running")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.toml")
    parser.add_argument("--cache-file", type=Path, default=None, help="Path to the project cache file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def run(
    args: argparse.Namespace,
    *,
    inside_client: bool,
    selector: Selector | None = None,
    client: TmuxClient | None = None,
) -> int:
    """
    Execute one launcher run.

    Returns:
        Process exit status (0 on selection or abort)

    Raises:
        ListProjectsError: Fatal, user-facing failures
    """
    main_trace_id = str(uuid4())
    trace_id_var.set(main_trace_id)
    report = ErrorReport()

    logger.info(
        "listprojects starting",
        operation="main",
        status="started",
        trace_id=main_trace_id,
        roots=args.roots,
        clear=args.clear
    )

    settings = load_settings(args.config, args.roots)
    cache = ProjectCache.open(clear=args.clear, path=args.cache_file)
    seed = cache.initial_items()

    discovery = settings.discovery
    channel = ItemChannel(capacity=discovery.channel_capacity)
    pipeline = DiscoveryPipeline(
        settings.roots,
        cache,
        channel,
        marker=discovery.marker,
        skip_names=discovery.skip_dirs,
        skip_suffixes=discovery.skip_suffixes,
        workers_per_root=discovery.workers_per_root,
    )

    if selector is None:
        selector = FzfSelector(
            command=settings.selector.command,
            height=settings.selector.height,
            header=settings.selector.header,
        )

    pipeline.start()
    try:
        selection = selector.select(seed, channel)
    finally:
        channel.close()
        finished = pipeline.wait(discovery.settle_time)
        report.collect_result(cache.save())
        logger.info(
            "Discovery state at exit",
            operation="main",
            status="discovery_complete" if finished else "discovery_abandoned",
            trace_id=main_trace_id,
            metrics={
                "seed_items": len(seed),
                "forwarded": pipeline.forwarded,
                "dropped": pipeline.dropped,
                "cached": len(cache),
            }
        )

    if selection.aborted:
        report.log_summary(main_trace_id)
        return 0

    client = client or TmuxClient()
    action = activate(selection.record, inside_client=inside_client, client=client)
    logger.info(
        "Session activated",
        operation="main",
        status="success",
        trace_id=main_trace_id,
        action=action.value,
        session_name=selection.record.session_name
    )
    report.log_summary(main_trace_id)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logger(verbose=args.verbose)

    try:
        return run(args, inside_client=inside_tmux_client(os.environ))
    except ListProjectsError as e:
        logger.error(
            "Fatal error",
            operation="main",
            status="failed",
            error=str(e),
            error_type=type(e).__name__
        )
        sys.stderr.write(f"listprojects: error: {e}\n")
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
