from datetime import timedelta

from aiohttp.test_utils import TestClient

from psrental.models.util import ActivityType
from psrental.serializer import JSendSchema, JSendStatus
from psrental.serializer.fields import Many
from psrental.serializer.models import SessionSchema, SummarySchema, ActivitySchema, SyncResultSchema


class TestSessionsView:

    async def test_get_sessions(self, client: TestClient, device_factory, random_category, clock):
        """Assert that you can get a list of all sessions."""
        manager = client.app["session_manager"]
        first, second = await device_factory(random_category), await device_factory(random_category)
        await manager.start(first, 600)
        await manager.start(second, 600)
        clock.advance(60)
        await manager.end(second)

        response = await client.get('/api/v1/sessions')
        response_schema = JSendSchema.of(sessions=Many(SessionSchema()))
        response_data = response_schema.load(await response.json())

        assert response_data["status"] == JSendStatus.SUCCESS
        assert len(response_data["data"]["sessions"]) == 2
        session = response_data["data"]["sessions"][0]
        assert (await client.get(session["device_url"])).status != 404

        response = await client.get('/api/v1/sessions', params={"active": "true"})
        response_data = response_schema.load(await response.json())
        assert [session["device_id"] for session in response_data["data"]["sessions"]] == [first.id]

    async def test_filter_by_member(self, client: TestClient, device_factory, random_category, random_member):
        manager = client.app["session_manager"]
        await manager.start(await device_factory(random_category), 600, member_id=random_member.id)
        await manager.start(await device_factory(random_category), 600)

        response = await client.get('/api/v1/sessions', params={"member_id": str(random_member.id)})
        response_data = JSendSchema.of(sessions=Many(SessionSchema())).load(await response.json())

        assert len(response_data["data"]["sessions"]) == 1
        assert response_data["data"]["sessions"][0]["member_id"] == random_member.id

    async def test_bad_filter(self, client: TestClient):
        response = await client.get('/api/v1/sessions', params={"member_id": "me"})
        response_data = JSendSchema().load(await response.json())

        assert response.status == 400
        assert response_data["status"] == JSendStatus.FAIL


class TestSessionView:

    async def test_get_session(self, client: TestClient, random_device, random_member, clock):
        """Assert that a session comes with its activities and their summary."""
        manager = client.app["session_manager"]
        session = await manager.start(random_device, 1800, member_id=random_member.id)
        clock.advance(60)
        await manager.add_time(random_device, 30, use_deposit=True)
        await manager.stop(random_device)

        response = await client.get(f'/api/v1/sessions/{session.id}')
        response_data = JSendSchema.of(session=SessionSchema(), summary=SummarySchema()).load(await response.json())

        assert response_data["data"]["session"]["id"] == session.id
        assert [a["activity_type"] for a in response_data["data"]["session"]["activities"]] == [
            ActivityType.START, ActivityType.ADD_TIME, ActivityType.STOP
        ]
        summary = response_data["data"]["summary"]
        assert summary["total_activities"] == 3
        assert summary["total_added_cost"] == 5000
        assert summary["payment_methods"] == {"deposit": 1}
        assert summary["stop_resume_count"] == 1

    async def test_get_missing_session(self, client: TestClient):
        response = await client.get('/api/v1/sessions/404')
        assert response.status == 404

    async def test_get_malformed_id(self, client: TestClient):
        response = await client.get('/api/v1/sessions/first')
        response_data = JSendSchema().load(await response.json())

        assert response.status == 400
        assert response_data["data"]["errors"]


class TestSessionActivitiesView:

    async def test_get_activities(self, client: TestClient, random_device, clock):
        manager = client.app["session_manager"]
        session = await manager.start(random_device)
        clock.advance(30)
        await manager.stop(random_device)

        response = await client.get(f'/api/v1/sessions/{session.id}/activities')
        response_data = JSendSchema.of(activities=Many(ActivitySchema())).load(await response.json())

        assert [a["activity_type"] for a in response_data["data"]["activities"]] == [
            ActivityType.START, ActivityType.STOP
        ]

    async def test_sync_offline(self, client: TestClient, random_device, clock):
        """Assert that offline activities are replayed with their own timestamps, and are billed."""
        manager = client.app["session_manager"]
        session = await manager.start(random_device)
        clock.advance(1000)

        response = await client.post(f'/api/v1/sessions/{session.id}/activities', json={"activities": [
            {"activity_type": "stop", "timestamp": (session.start + timedelta(seconds=300)).isoformat()},
            {"activity_type": "resume", "timestamp": (session.start + timedelta(seconds=600)).isoformat()},
            {"activity_type": "end", "timestamp": (session.start + timedelta(seconds=900)).isoformat()},
        ]})
        response_data = JSendSchema.of(results=Many(SyncResultSchema())).load(await response.json())

        assert [result["success"] for result in response_data["data"]["results"]] == [True, True, False]

        receipt = await manager.end(random_device)
        assert receipt.usage == 700

    async def test_sync_into_ended_session(self, client: TestClient, random_device, clock):
        manager = client.app["session_manager"]
        session = await manager.start(random_device, 600)
        clock.advance(60)
        await manager.end(random_device)

        response = await client.post(f'/api/v1/sessions/{session.id}/activities', json={"activities": [
            {"activity_type": "stop", "timestamp": clock.now.isoformat()},
        ]})
        assert response.status == 409

    async def test_sync_malformed_activity(self, client: TestClient, random_device):
        session = await client.app["session_manager"].start(random_device)

        response = await client.post(f'/api/v1/sessions/{session.id}/activities', json={"activities": [
            {"activity_type": "teleport", "timestamp": "yesterday"},
        ]})
        assert response.status == 400

    async def test_sync_bad_payment_method(self, client: TestClient, random_device, clock):
        """Assert that a charge method is not accepted where a funding source is expected."""
        session = await client.app["session_manager"].start(random_device, 600)
        clock.advance(60)

        response = await client.post(f'/api/v1/sessions/{session.id}/activities', json={"activities": [
            {"activity_type": "stop", "timestamp": clock.now.isoformat()},
            {"activity_type": "add_time", "timestamp": clock.now.isoformat(),
             "params": {"duration_added": 300, "payment_method": "qris"}},
        ]})
        assert response.status == 400
        assert len(await client.app["session_manager"].ledger.read_all(session)) == 1
