import os

server_mode = os.getenv("SERVER_MODE", "development")
"""The operational mode of the server."""

database_url = os.getenv("DATABASE_URL", "sqlite://db.sqlite3")
"""The tortoise database url."""

api_root = "/api/v1"
"""The base url for the api."""

grace_period = int(os.getenv("GRACE_PERIOD", 300))
"""Seconds an expired timer is tolerated before the sweeper ends it, to absorb client sync delay."""

sweep_interval = int(os.getenv("SWEEP_INTERVAL", 30))
"""Seconds between two expiry sweeps."""

actuator_url = os.getenv("ACTUATOR_URL")
"""The base url of the relay gateway. When unset, relay commands are only logged."""

actuator_timeout = float(os.getenv("ACTUATOR_TIMEOUT", 3))
"""Seconds a relay command may take before it is abandoned."""

sentry_dsn = os.getenv("SENTRY_DSN")
"""The sentry DSN for exception tracking."""
