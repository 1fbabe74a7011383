"""Bitbucket bridge CLI.

Runs the MCP server over stdio (default) or streamable HTTP.

Usage:
    bitbucket-bridge                                   # stdio, settings from env/.env
    bitbucket-bridge --transport http --port 3000      # streamable HTTP
    bitbucket-bridge --bitbucket-url https://git.example.com --default-workspace PROJ
"""

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from .__version__ import __version__
from .config import BridgeConfig
from .connectors.bitbucket.client import BitbucketClient
from .logging_config import configure_logging
from .server import create_server

logger = logging.getLogger("bitbucket_bridge.cli")

# CLI flag dest -> BridgeConfig field
_FLAG_FIELDS = {
    "bitbucket_url": "bitbucket_url",
    "bitbucket_token": "bitbucket_token",
    "default_workspace": "bitbucket_workspace",
    "insecure": "bitbucket_insecure",
    "timeout": "bitbucket_timeout",
    "max_retries": "bitbucket_max_retries",
    "retry_delay": "bitbucket_retry_delay",
    "log_level": "log_level",
    "log_format": "log_format",
    "transport": "mcp_transport",
    "port": "mcp_port",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bitbucket-bridge",
        description="MCP server for Bitbucket Cloud and Bitbucket Data Center",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Every flag overrides the matching environment variable:
  BITBUCKET_URL, BITBUCKET_TOKEN, BITBUCKET_WORKSPACE, BITBUCKET_INSECURE,
  BITBUCKET_TIMEOUT, BITBUCKET_MAX_RETRIES, BITBUCKET_RETRY_DELAY,
  LOG_LEVEL, LOG_FORMAT, MCP_TRANSPORT, MCP_PORT
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--bitbucket-url", metavar="URL", help="Bitbucket URL (Cloud or Data Center)")
    parser.add_argument(
        "--bitbucket-token",
        metavar="TOKEN",
        help="API token (prefer BITBUCKET_TOKEN; command lines are visible to other users)",
    )
    parser.add_argument(
        "--default-workspace",
        metavar="WORKSPACE",
        help="Default workspace (Cloud) or project key (Data Center)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        default=None,
        help="Skip TLS certificate verification",
    )
    parser.add_argument("--timeout", type=int, metavar="MS", help="Request timeout in milliseconds")
    parser.add_argument("--max-retries", type=int, metavar="N", help="Retries for transient failures")
    parser.add_argument("--retry-delay", type=int, metavar="MS", help="Base retry delay in milliseconds")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level",
    )
    parser.add_argument("--log-format", choices=["json", "text"], help="Log format")
    parser.add_argument("--transport", choices=["stdio", "http"], help="MCP transport")
    parser.add_argument("--port", type=int, help="HTTP port (only used with --transport http)")
    return parser


def load_config(args: argparse.Namespace) -> BridgeConfig:
    """Build settings from environment/.env with CLI flags taking precedence."""
    overrides = {
        field: getattr(args, dest)
        for dest, field in _FLAG_FIELDS.items()
        if getattr(args, dest, None) is not None
    }
    return BridgeConfig(**overrides)


async def serve(config: BridgeConfig) -> None:
    """Run the MCP server until the transport closes."""
    async with BitbucketClient(config.get_client_config(), config.get_dialect()) as client:
        mcp = create_server(
            client,
            config.get_default_workspace(),
            port=config.mcp_port,
        )
        if config.mcp_transport == "http":
            logger.info("server_starting", extra={"transport": "http", "port": config.mcp_port})
            await mcp.run_streamable_http_async()
        else:
            logger.info("server_starting", extra={"transport": "stdio"})
            await mcp.run_stdio_async()


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
    except ValidationError as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        return 1

    configure_logging(config.log_level, config.log_format)

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        print("\nServer interrupted by user", file=sys.stderr)
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
