"""Server entry point — configuration, wiring, and the serve loop.

``main()`` resolves the configuration (defaults → JSON file → flags),
then builds the pieces in dependency order::

    Logger → StorageEngine → FileServer (→ optional HTTP console)

and serves until interrupted.  The helper functions (``build_parser``,
``config_from_args``, ``format_banner``) are pure and testable; ``main``
is the I/O entrypoint.
"""

from __future__ import annotations

import argparse
import sys
import threading
from collections.abc import Callable
from pathlib import Path

from py_fs.config import ConfigError, ServerConfig, load_config
from py_fs.fs.engine import StorageEngine
from py_fs.fs.errors import FileSystemError
from py_fs.logging import LogEntry, Logger, LogLevel
from py_fs.server.tcp import FileServer

_BANNER_WIDTH = 38
_EXIT_CONFIG_ERROR = 2
_EXIT_STARTUP_ERROR = 1


def build_parser() -> argparse.ArgumentParser:
    """Return the command-line parser.

    Every option defaults to ``None`` so that unset flags fall through
    to the config file and then to the built-in defaults.
    """
    parser = argparse.ArgumentParser(description="PyFS block-chain file server")
    parser.add_argument("--config", type=Path, help="JSON config file")
    parser.add_argument("--host", help="address to listen on")
    parser.add_argument("--port", type=int, help="TCP port (0 picks a free one)")
    parser.add_argument("--image", dest="image_path", type=Path, help="backing image file")
    parser.add_argument("--block-size", type=int, help="bytes per block")
    parser.add_argument("--max-files", type=int, help="file table capacity")
    parser.add_argument("--max-blocks", type=int, help="number of blocks")
    parser.add_argument(
        "--log-level",
        choices=[level.name for level in LogLevel],
        type=str.upper,
        help="minimum level printed to stderr",
    )
    parser.add_argument("--web-port", type=int, help="also serve the HTTP console on this port")
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Resolve a ``ServerConfig`` from parsed arguments.

    Raises:
        ConfigError: If the config file or any value is invalid.

    """
    return load_config(
        args.config,
        host=args.host,
        port=args.port,
        image_path=args.image_path,
        block_size=args.block_size,
        max_files=args.max_files,
        max_blocks=args.max_blocks,
        log_level=args.log_level,
    )


def format_banner(config: ServerConfig, address: tuple[str, int]) -> str:
    """Format the startup banner.

    Args:
        config: The resolved configuration.
        address: The (host, port) actually bound.

    Returns:
        A multi-line string suitable for printing to the console.

    """
    border = "=" * _BANNER_WIDTH
    header = f"\n  {border}\n            PyFS v0.1.0\n   A block-chain file server\n  {border}\n\n"
    lines = [
        f"Listening:     {address[0]}:{address[1]}",
        f"Image:         {config.image_path}",
        f"Block size:    {config.block_size} bytes",
        f"Max files:     {config.max_files}",
        f"Max blocks:    {config.max_blocks}",
        f"Total storage: {config.total_size} bytes",
    ]
    body = "\n".join(f"  {line}" for line in lines)
    return header + body + "\n\nServer ready. Press Ctrl+C to stop.\n"


def stderr_sink(min_level: LogLevel) -> Callable[[LogEntry], None]:
    """Return a log sink that prints entries at or above *min_level*."""

    def _sink(entry: LogEntry) -> None:
        if entry.level >= min_level:
            print(entry, file=sys.stderr)  # noqa: T201

    return _sink


def _start_web_console(engine: StorageEngine, logger: Logger, host: str, port: int) -> None:
    """Serve the Flask console on a daemon thread sharing *engine*."""
    from py_fs.web.app import create_app  # noqa: PLC0415

    app = create_app(engine, logger=logger)
    thread = threading.Thread(
        target=app.run,
        kwargs={"host": host, "port": port, "use_reloader": False},
        name="web-console",
        daemon=True,
    )
    thread.start()
    logger.log(LogLevel.INFO, f"HTTP console on {host}:{port}", source="main")


def main(argv: list[str] | None = None) -> int:
    """Run the file server until interrupted.

    This is the ``py-fs-server`` console entry point.

    Returns:
        The process exit status.

    """
    args = build_parser().parse_args(argv)
    try:
        config = config_from_args(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)  # noqa: T201
        return _EXIT_CONFIG_ERROR

    logger = Logger(sink=stderr_sink(config.log_level))
    try:
        engine = StorageEngine(config.image_path, config.geometry, logger=logger)
        server = FileServer(engine=engine, host=config.host, port=config.port, logger=logger)
        server.start()
    except (FileSystemError, OSError) as e:
        logger.log(LogLevel.ERROR, f"Cannot start server: {e}", source="main")
        return _EXIT_STARTUP_ERROR

    if args.web_port is not None:
        _start_web_console(engine, logger, config.host, args.web_port)

    print(format_banner(config, server.address))  # noqa: T201
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nInterrupted.")  # noqa: T201
    finally:
        server.shutdown()
    print("Server halted.")  # noqa: T201
    return 0
