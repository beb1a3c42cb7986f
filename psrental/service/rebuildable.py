"""
A base for services that keep state derived from the database.
Every rebuildable service attached to the app is reconciled
with the database when the server starts.
"""

from abc import ABC, abstractmethod


class Rebuildable(ABC):

    @abstractmethod
    async def _rebuild(self):
        """Brings the service back in line with what is persisted."""
