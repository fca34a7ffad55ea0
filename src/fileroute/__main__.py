"""
=============================================================================
FILEROUTE CLI
=============================================================================

    python -m fileroute serve                    # http://127.0.0.1:8000
    python -m fileroute serve --port 3000 --reload
    python -m fileroute --app-dir examples/app routes
    python -m fileroute migrate                  # create tables
    python -m fileroute seed                     # demo accounts

Settings come from the environment and `.env` (see fileroute.config);
command-line options override them.

=============================================================================
"""

import argparse
import logging
import sys

from . import __version__
from .app import Application
from .config import AppConfig
from .exceptions import ConfigurationError
from .log import setup_logging
from .routing.tree import RouteTree
from .storage import Database
from .users import UserRepository


logger = logging.getLogger("fileroute.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fileroute",
        description="File-based routing web framework",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m fileroute serve --reload        # Development server
  python -m fileroute --app-dir site routes # List routes of ./site
  python -m fileroute migrate               # Create database tables
        """,
    )
    parser.add_argument("--env-file", default=".env", help="Environment file to load (default: .env)")
    parser.add_argument("--app-dir", default=None, help="Route tree root (default: APP_DIR or ./app)")
    parser.add_argument(
        "--log-level", "-l",
        choices=["debug", "info", "warning", "error"],
        default=None,
        help="Logging level (default: LOG_LEVEL or info)",
    )
    parser.add_argument("--version", "-v", action="version", version=f"fileroute {__version__}")

    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the development server")
    serve.add_argument("--host", "-H", default=None, help="Host to bind to (default: HOST or 127.0.0.1)")
    serve.add_argument("--port", "-p", type=int, default=None, help="Port to listen on (default: PORT or 8000)")
    serve.add_argument("--reload", action="store_true", help="Rescan routes when files change")

    commands.add_parser("routes", help="Print the discovered routes")
    commands.add_parser("migrate", help="Apply database migrations")
    commands.add_parser("seed", help="Create the demo user accounts")

    return parser


def load_config(args: argparse.Namespace) -> AppConfig:
    config = AppConfig.from_env(env_file=args.env_file)
    if args.app_dir:
        config.app_dir = args.app_dir
    if args.log_level:
        config.log_level = args.log_level
    if getattr(args, "host", None):
        config.host = args.host
    if getattr(args, "port", None):
        config.port = args.port
    return config


def cmd_serve(config: AppConfig, args: argparse.Namespace) -> int:
    config.validate(require_secret=True)
    app = Application(config, reload=args.reload)
    app.run()
    return 0


def cmd_routes(config: AppConfig, args: argparse.Namespace) -> int:
    tree = RouteTree.scan(config.app_dir)
    for pattern, kind in tree.routes():
        print(f"{kind.value.upper():<5} {pattern}")
    return 0


def cmd_migrate(config: AppConfig, args: argparse.Namespace) -> int:
    db = Database(config.db_path)
    applied = db.migrate()
    print(f"Applied {len(applied)} migration(s)" + (f": {', '.join(applied)}" if applied else ""))
    return 0


def cmd_seed(config: AppConfig, args: argparse.Namespace) -> int:
    db = Database(config.db_path)
    db.migrate()
    created = UserRepository(db).seed()
    for email in created:
        print(f"Created {email} (password: password)")
    if not created:
        print("Demo accounts already exist")
    return 0


COMMANDS = {
    "serve": cmd_serve,
    "routes": cmd_routes,
    "migrate": cmd_migrate,
    "seed": cmd_seed,
}


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
        config.validate()
    except (ValueError, ConfigurationError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level, config.log_file)

    try:
        return COMMANDS[args.command](config, args)
    except (ValueError, ConfigurationError, FileNotFoundError) as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
