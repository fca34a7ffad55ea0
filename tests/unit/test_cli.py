"""
Unit tests for the command line interface.
"""

import logging

import pytest

from fileroute.__main__ import build_parser, main


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    """Keep the CLI away from the real environment and logger handlers."""
    for key in ("APP_DIR", "DB_PATH", "LOG_LEVEL", "LOG_FILE", "PORT", "RATE_LIMIT_BACKEND", "JWT_SECRET"):
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "cli.log"))

    logger = logging.getLogger("fileroute")
    level, handlers = logger.level, list(logger.handlers)
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)


class TestParser:

    def test_serve_options(self):
        """serve accepts a port and the reload flag."""
        args = build_parser().parse_args(["serve", "--port", "3000", "--reload"])

        assert args.command == "serve"
        assert args.port == 3000
        assert args.reload is True

    def test_command_is_required(self):
        """A command must be given."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:

    def test_routes(self, app_dir, capsys):
        """routes prints one line per route file."""
        assert main(["--env-file", "", "--app-dir", str(app_dir), "routes"]) == 0

        lines = capsys.readouterr().out.splitlines()
        assert "PAGE  /" in lines
        assert "PAGE  /blog/[slug]" in lines
        assert "API   /api/items" in lines

    def test_routes_missing_dir(self, tmp_path, capsys):
        """A missing application directory is a runtime error."""
        assert main(["--env-file", "", "--app-dir", str(tmp_path / "nope"), "routes"]) == 1
        assert "Application directory not found" in capsys.readouterr().err

    def test_migrate_and_seed(self, tmp_path, monkeypatch, capsys):
        """migrate applies the schema and seed runs only once."""
        monkeypatch.setenv("DB_PATH", str(tmp_path / "db" / "app.db"))

        assert main(["--env-file", "", "migrate"]) == 0
        assert "001_create_users_table" in capsys.readouterr().out

        assert main(["--env-file", "", "seed"]) == 0
        assert "Created admin@example.com" in capsys.readouterr().out

        assert main(["--env-file", "", "seed"]) == 0
        assert "already exist" in capsys.readouterr().out

    def test_bad_config(self, monkeypatch, capsys):
        """An invalid setting exits with status 2."""
        monkeypatch.setenv("PORT", "0")

        assert main(["--env-file", "", "routes"]) == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_serve_requires_secret(self, app_dir, capsys):
        """serve refuses to start without a JWT secret."""
        assert main(["--env-file", "", "--app-dir", str(app_dir), "serve"]) == 1
        assert "JWT_SECRET not configured" in capsys.readouterr().err
