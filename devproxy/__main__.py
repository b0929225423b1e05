"""
Run the development server.

    python -m devproxy --port 8080 --upstream-proxy http://proxy:8000 \
        --bypass-upstream-proxy-hosts lanhost1,lanhost2
"""

import argparse
import errno
import logging
import socket
import sys
from dataclasses import replace

import uvicorn

from devproxy import vars as settings
from devproxy.config import ProxyConfig, ServerConfig
from devproxy.factory import create_app
from devproxy.utils.exception_logging import format_exception_message

logger = logging.getLogger("uvicorn.error")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devproxy",
        description="Static file server with a passthrough proxy for local development",
    )
    parser.add_argument(
        "--port", type=int, default=settings.PORT, help="Port to listen on."
    )
    parser.add_argument(
        "--public",
        action="store_true",
        default=settings.PUBLIC,
        help="Run a public server that listens on all interfaces.",
    )
    parser.add_argument(
        "--root",
        default=settings.STATIC_ROOT,
        help="Directory to serve static files from (default: current directory).",
    )
    parser.add_argument(
        "--upstream-proxy",
        default=settings.UPSTREAM_PROXY,
        help='A standard proxy server that will be used to retrieve data. '
        'Specify a URL including port, e.g. "http://proxy:8000".',
    )
    parser.add_argument(
        "--bypass-upstream-proxy-hosts",
        default=settings.BYPASS_UPSTREAM_PROXY_HOSTS,
        help="A comma separated list of hosts that will bypass the specified "
        'upstream proxy, e.g. "lanhost1,lanhost2".',
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    return replace(
        ServerConfig.from_env(),
        static_root=args.root,
        port=args.port,
        public=args.public,
        proxy=ProxyConfig.build(args.upstream_proxy, args.bypass_upstream_proxy_hosts),
    )


def bind_socket(host: str, port: int) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    return sock


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config = config_from_args(args)

    uvicorn_config = uvicorn.Config(
        create_app(config),
        host=config.bind_host,
        port=config.port,
        log_level=settings.LOG_LEVEL,
    )

    try:
        sock = bind_socket(config.bind_host, config.port)
    except OSError as e:
        if e.errno == errno.EADDRINUSE:
            logger.error(
                f"Error: Port {config.port} is already in use, select a different port."
            )
            logger.error(f"Example: python -m devproxy --port {config.port + 1}")
        elif e.errno == errno.EACCES:
            logger.error(
                f"Error: This process does not have permission to listen on port {config.port}."
            )
            if config.port < 1024:
                logger.error("Try a port number higher than 1024.")
        logger.error(format_exception_message(e))
        return 1

    port = sock.getsockname()[1]
    mode = "publicly" if config.public else "locally"
    logger.info(
        f"Development server running {mode}.  Connect to http://localhost:{port}/"
    )
    uvicorn.Server(uvicorn_config).run(sockets=[sock])
    logger.info("Development server stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
