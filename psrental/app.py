"""
App
-----
"""

import sentry_sdk
import uvloop
from aiohttp import web
from aiohttp_apispec import setup_aiohttp_apispec
from sentry_sdk.integrations.aiohttp import AioHttpIntegration

from psrental import logger
from psrental.config import (
    server_mode, api_root, database_url, grace_period, sweep_interval, actuator_url, actuator_timeout, sentry_dsn
)
from psrental.middleware import session_error_middleware
from psrental.service.actuator import ActuatorBridge, RelayGatewayActuator, DummyActuator
from psrental.service.background.expiry_sweeper import ExpirySweeper
from psrental.service.billing import DatabasePaymentLedger
from psrental.service.manager.session_manager import SessionManager
from psrental.signals import register_signals
from psrental.version import __version__, name
from psrental.views import register_views


def build_app(db_uri=None):
    """Sets up the app and installs uvloop."""
    app = web.Application(middlewares=[session_error_middleware])
    uvloop.install()

    app['session_manager'] = SessionManager(payments=DatabasePaymentLedger())
    app['expiry_sweeper'] = ExpirySweeper(app['session_manager'], grace=grace_period, interval=sweep_interval)
    app['database_uri'] = db_uri if db_uri is not None else database_url

    if actuator_url is not None:
        actuator = RelayGatewayActuator(actuator_url)
    else:
        logger.info("No relay gateway configured, relay commands will only be logged")
        actuator = DummyActuator()

    app['actuator_bridge'] = ActuatorBridge(app['session_manager'].hub, actuator, actuator_timeout)

    # set up the background tasks
    register_signals(app)

    # register views
    register_views(app, api_root)

    setup_aiohttp_apispec(app=app, title=name, version=__version__, url=f"{api_root}/docs")

    # set up sentry exception tracking
    if server_mode != "development" and sentry_dsn is not None:
        logger.info("Starting Sentry Logging")
        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[AioHttpIntegration()],
            environment=server_mode,
            release=f"{name}@{__version__}"
        )

    return app
