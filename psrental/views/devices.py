"""
Device Related Views
-------------------------

Every session command goes through the device it runs on,
since a device holds at most one active session at a time.
"""

from http import HTTPStatus

from aiohttp_apispec import docs
from marshmallow.fields import Nested

from psrental.models import Device
from psrental.serializer import JSendStatus, JSendSchema
from psrental.serializer.decorators import returns, expects
from psrental.serializer.fields import Many
from psrental.serializer.misc import (
    SessionStartSchema, SessionCommandSchema, AddTimeSchema, EndSessionSchema, DisconnectSchema
)
from psrental.serializer.models import DeviceSchema, SessionSchema, ReceiptSchema, ActivitySchema
from psrental.service.access.devices import get_devices, get_device
from psrental.service.access.sessions import get_active_session
from psrental.views.base import BaseView
from psrental.views.decorators import match_getter

with_device = match_getter(get_device, "device", device_id=("id", str))


class DevicesView(BaseView):
    """
    Gets the devices, with the state of their timers.
    """
    url = "/devices"

    @docs(summary="Get All Devices")
    @returns(JSendSchema.of(devices=Many(DeviceSchema())))
    async def get(self):
        return {
            "status": JSendStatus.SUCCESS,
            "data": {"devices": [
                self.device_data(device)
                for device in await get_devices()
            ]}
        }


class DeviceView(BaseView):
    """
    Gets a single device.
    """
    url = "/devices/{id}"
    name = "device"

    @with_device
    @docs(summary="Get A Device")
    @returns(JSendSchema.of(device=DeviceSchema()))
    async def get(self, device: Device):
        return {
            "status": JSendStatus.SUCCESS,
            "data": {"device": self.device_data(device)}
        }


class DeviceSessionView(BaseView):
    """
    Gets, starts, pauses, resumes, or cancels the session on a device.
    """
    url = "/devices/{id}/session"

    @with_device
    @docs(summary="Get The Active Session Of A Device")
    @returns(
        no_session=(JSendSchema(), HTTPStatus.NOT_FOUND),
        session=JSendSchema.of(session=SessionSchema(), device=DeviceSchema())
    )
    async def get(self, device: Device):
        session = await get_active_session(device)
        if session is None:
            return "no_session", {
                "status": JSendStatus.FAIL,
                "data": {"message": "Device has no active session.", "device_id": device.id}
            }

        return "session", {
            "status": JSendStatus.SUCCESS,
            "data": {
                "session": self.session_data(session),
                "device": self.device_data(device)
            }
        }

    @with_device
    @docs(summary="Start A Session")
    @expects(SessionStartSchema())
    @returns(JSendSchema.of(session=SessionSchema(), device=DeviceSchema()), HTTPStatus.CREATED)
    async def post(self, device: Device):
        """
        Starts a session. Members pay up front from their deposit. Without a duration,
        the session is unlimited and is paid for at the end.
        """
        data = self.request["data"]
        session = await self.session_manager.start(
            device, data["duration"],
            member_id=data["member_id"], pin=data["pin"],
            shift_id=data.get("shift_id"), user_id=data.get("user_id"), method=data["method"]
        )

        return {
            "status": JSendStatus.SUCCESS,
            "data": {
                "session": self.session_data(session),
                "device": self.device_data(session.device)
            }
        }

    @with_device
    @docs(summary="Pause Or Resume A Session")
    @expects(SessionCommandSchema())
    @returns(JSendSchema.of(device=DeviceSchema()))
    async def patch(self, device: Device):
        if self.request["data"]["command"] == "stop":
            device = await self.session_manager.stop(device)
        else:
            device = await self.session_manager.resume(device)

        return {
            "status": JSendStatus.SUCCESS,
            "data": {"device": self.device_data(device)}
        }

    @with_device
    @docs(summary="Cancel A Session")
    @returns(JSendSchema.of(session=SessionSchema()))
    async def delete(self, device: Device):
        """Ends the session without charge, returning a member's deposit in full."""
        session = await self.session_manager.cancel(device, self.request.query.get("reason"))
        return {
            "status": JSendStatus.SUCCESS,
            "data": {"session": self.session_data(session)}
        }


class DeviceSessionTimeView(BaseView):
    """
    Extends the running session on a device.
    """
    url = "/devices/{id}/session/time"

    @with_device
    @docs(summary="Add Time To A Session")
    @expects(AddTimeSchema())
    @returns(JSendSchema.of(session=SessionSchema(), device=DeviceSchema()))
    async def post(self, device: Device):
        data = self.request["data"]
        session = await self.session_manager.add_time(
            device, data["minutes"], use_deposit=data["use_deposit"],
            shift_id=data.get("shift_id"), user_id=data.get("user_id"), method=data["method"]
        )
        device = await get_device(device.id)

        return {
            "status": JSendStatus.SUCCESS,
            "data": {
                "session": self.session_data(session),
                "device": self.device_data(device)
            }
        }


class DeviceSessionEndView(BaseView):
    """
    Ends and bills the session on a device.
    """
    url = "/devices/{id}/session/end"

    @with_device
    @docs(summary="End A Session")
    @expects(EndSessionSchema())
    @returns(JSendSchema.of(receipt=ReceiptSchema()))
    async def post(self, device: Device):
        data = self.request["data"]
        receipt = await self.session_manager.end(
            device, extra_cost=data["extra_cost"],
            shift_id=data.get("shift_id"), user_id=data.get("user_id"), method=data["method"]
        )

        return {
            "status": JSendStatus.SUCCESS,
            "data": {"receipt": {
                "session": self.session_data(receipt.session),
                "usage": receipt.usage,
                "refund": receipt.refund,
                "amount_due": receipt.amount_due,
            }}
        }


class DeviceDisconnectView(BaseView):
    """
    Records that the control channel of a device dropped.
    """
    url = "/devices/{id}/session/disconnect"

    @with_device
    @docs(summary="Record A Disconnect")
    @expects(DisconnectSchema())
    @returns(JSendSchema.of(activity=Nested(ActivitySchema(), allow_none=True)), HTTPStatus.CREATED)
    async def post(self, device: Device):
        data = self.request["data"]
        activity = await self.session_manager.mark_disconnected(device, data["reason"], data["source"])

        return {
            "status": JSendStatus.SUCCESS,
            "data": {"activity": activity.serialize() if activity is not None else None}
        }
