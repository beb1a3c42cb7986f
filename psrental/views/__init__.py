"""
.. autoclasstree:: psrental.views

This package contains the server API for the shop's devices and their sessions.

API Conventions
---------------

* Resources are nouns: a device, the session on a device, a session's activities
* Session commands are addressed through the device they run on
* JSON in and out, with snake_case keys
* Every response is a JSend envelope. A rejected command (no such device,
  timer already running, deposit too small...) answers with ``fail`` and
  a status code that says why.
"""

import aiohttp_cors
from aiohttp.abc import Application

from psrental import logger
from .devices import (
    DevicesView, DeviceView, DeviceSessionView, DeviceSessionTimeView, DeviceSessionEndView, DeviceDisconnectView
)
from .sessions import SessionsView, SessionView, SessionActivitiesView

views = [
    DevicesView, DeviceView, DeviceSessionView, DeviceSessionTimeView, DeviceSessionEndView, DeviceDisconnectView,
    SessionsView, SessionView, SessionActivitiesView,
]


def register_views(app: Application, base: str):
    """
    Registers all the API views onto the given router at a specific root url.

    :param app: The app to register the views to.
    :param base: The base URL.
    """
    cors = aiohttp_cors.setup(app, defaults={
        "*": aiohttp_cors.ResourceOptions(
            allow_credentials=True,
            expose_headers="*",
            allow_headers="*",
            allow_methods="*",
        )
    })

    for view in views:
        logger.info("Registered %s at %s", view.__name__, base + view.url)
        view.register_route(app, base)
        view.enable_cors(cors)
