"""
Base
------------------------

The base view for the API. This view contains functionality
required in all other views.
"""

from typing import Any, Dict, Optional

from aiohttp.abc import Application
from aiohttp.web import View, AbstractRoute
from aiohttp_cors import CorsConfig, CorsViewMixin, ResourceOptions

from psrental.models import Device, Session
from psrental.service.ledger import ActivityLedger
from psrental.service.manager.session_manager import SessionManager


class ViewConfigurationError(Exception):
    """
    Raised if the view doesn't provide a URL.
    """


class BaseView(View, CorsViewMixin):
    """
    The base view that all other views extend. Gives every view
    access to the session manager and its activity ledger.
    """

    url: str
    name: Optional[str]
    route: AbstractRoute
    session_manager: SessionManager
    ledger: ActivityLedger

    cors_config = {
        "*": ResourceOptions(
            allow_credentials=True,
            expose_headers="*",
            allow_headers="*",
            allow_methods="*",
        )
    }

    @classmethod
    def register_route(cls, app: Application, base: Optional[str] = None):
        """
        Registers the view with the given router.

        :raises ViewConfigurationError: If the URL hasn't been set on the given view.
        """
        try:
            url = base + cls.url if base is not None else cls.url
        except AttributeError:
            raise ViewConfigurationError("No URL provided!")

        kwargs = {}
        name = getattr(cls, "name", None)
        if name is not None:
            kwargs["name"] = name

        cls.route = app.router.add_view(url, cls, **kwargs)
        cls.session_manager = app["session_manager"]
        cls.ledger = app["session_manager"].ledger

    def device_data(self, device: Device) -> Dict[str, Any]:
        """Serializes a device along with the state of its timer and its url."""
        return device.serialize(self.session_manager, self.request.app.router)

    def session_data(self, session: Session) -> Dict[str, Any]:
        return session.serialize(self.request.app.router)

    @classmethod
    def enable_cors(cls, cors: CorsConfig):
        """Enables CORS on the view."""
        try:
            cors.add(cls.route, webview=True)
        except AttributeError as error:
            raise ViewConfigurationError("No route assigned. Please register the route first.") from error
