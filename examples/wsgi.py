"""
WSGI entry point for the example application.

    cd examples && python wsgi.py
    # or: gunicorn --chdir examples wsgi:app
"""

from fileroute import AppConfig, Application
from fileroute.log import setup_logging


config = AppConfig.from_env(env_file=".env")
setup_logging(config.log_level, config.log_file)

app = Application(config)
app.rate_limit(5, 60, paths=["login", "register"], methods=["POST"])
app.require_auth(paths=["profile"])


if __name__ == "__main__":
    app.db.migrate()
    app.run()
