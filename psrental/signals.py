"""
Signals
-------

Defines the startup and shutdown hooks of the server.

Each signal must accept the ``app`` argument.
"""

from aiohttp.abc import Application
from tortoise import Tortoise

from psrental import logger
from psrental.service.rebuildable import Rebuildable


async def initialize_database(app: Application):
    """Initializes and generates the schema for our database."""
    await Tortoise.init(
        db_url=app['database_uri'],
        modules={'models': ['psrental.models']}
    )
    await Tortoise.generate_schemas(safe=True)


async def rebuild_event_states(app: Application):
    """Reconciles the in-memory state of every service with the database."""
    for rebuildable in (x for x in app.values() if isinstance(x, Rebuildable)):
        await rebuildable._rebuild()


async def start_background_tasks(app: Application):
    """Starts the background tasks."""
    logger.info("Starting Background Tasks")
    app['expiry_sweeper'].start()


async def close_actuator(app: Application):
    """Waits for relay commands in flight and closes the actuator."""
    await app['actuator_bridge'].close()


async def stop_background_tasks(app: Application):
    """
    Stops the background tasks.

    The sweeper is not cancelled: it finishes the session it is ending, so
    that no transition is left half applied.
    """
    await app['expiry_sweeper'].stop()


async def close_database_connections(app: Application):
    """Closes the open database connections."""
    await Tortoise.close_connections()


def register_signals(app, init_database=True):
    """Registers all the signals at the appropriate hooks."""
    if init_database:
        app.on_startup.append(initialize_database)

    app.on_startup.append(rebuild_event_states)  # timers are reconciled
    app.on_startup.append(start_background_tasks)  # before the sweeper looks at them

    app.on_shutdown.append(stop_background_tasks)
    app.on_shutdown.append(close_actuator)

    app.on_cleanup.append(close_database_connections)
