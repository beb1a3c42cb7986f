"""
Session Related Views
---------------------------

Read access to sessions and their activity ledger, and the
endpoint offline clients replay their activities into.

To start or end a session, go through the device.
"""

from http import HTTPStatus

from aiohttp_apispec import docs

from psrental.models import Session
from psrental.serializer import JSendSchema, JSendStatus
from psrental.serializer.decorators import returns, expects
from psrental.serializer.fields import Many
from psrental.serializer.misc import OfflineSyncSchema
from psrental.serializer.models import SessionSchema, ActivitySchema, SummarySchema, SyncResultSchema
from psrental.service.access.sessions import get_sessions, get_session
from psrental.views.base import BaseView
from psrental.views.decorators import match_getter

with_session = match_getter(get_session, "session", session_id="id")


class SessionsView(BaseView):
    """
    Gets a list of sessions, optionally filtered with ``?active=true`` or ``?member_id=``.
    """
    url = "/sessions"
    name = "sessions"

    @docs(summary="Get All Sessions")
    @returns(
        bad_filter=(JSendSchema(), HTTPStatus.BAD_REQUEST),
        sessions=JSendSchema.of(sessions=Many(SessionSchema(exclude=("activities",))))
    )
    async def get(self):
        active = self.request.query.get("active")
        member_id = self.request.query.get("member_id")

        if active is not None:
            active = active.lower() in ("true", "1", "yes")
        if member_id is not None:
            try:
                member_id = int(member_id)
            except ValueError:
                return "bad_filter", {
                    "status": JSendStatus.FAIL,
                    "data": {"message": "The member_id filter must be an integer.", "member_id": member_id}
                }

        return "sessions", {
            "status": JSendStatus.SUCCESS,
            "data": {"sessions": [
                self.session_data(session)
                for session in await get_sessions(active=active, member=member_id)
            ]}
        }


class SessionView(BaseView):
    """
    Gets a single session with its activities and a summary of them.
    """
    url = "/sessions/{id}"
    name = "session"

    @with_session
    @docs(summary="Get A Session")
    @returns(JSendSchema.of(session=SessionSchema(), summary=SummarySchema()))
    async def get(self, session: Session):
        data = self.session_data(session)
        data["activities"] = [activity.serialize() for activity in session.activities]

        return {
            "status": JSendStatus.SUCCESS,
            "data": {
                "session": data,
                "summary": await self.ledger.summarize(session)
            }
        }


class SessionActivitiesView(BaseView):
    """
    Gets the activity ledger of a session, or replays the activities of an offline client into it.
    """
    url = "/sessions/{id}/activities"
    name = "session_activities"

    @with_session
    @docs(summary="Get The Activities Of A Session")
    @returns(JSendSchema.of(activities=Many(ActivitySchema())))
    async def get(self, session: Session):
        return {
            "status": JSendStatus.SUCCESS,
            "data": {"activities": [activity.serialize() for activity in await self.ledger.read_all(session)]}
        }

    @with_session
    @docs(summary="Sync Offline Activities")
    @expects(OfflineSyncSchema())
    @returns(JSendSchema.of(results=Many(SyncResultSchema())))
    async def post(self, session: Session):
        """
        Appends activities performed while the client was offline, keeping their
        original timestamps. Each activity is accepted or rejected on its own.
        """
        results = await self.ledger.sync_offline(session, self.request["data"]["activities"])
        return {
            "status": JSendStatus.SUCCESS,
            "data": {"results": results}
        }
