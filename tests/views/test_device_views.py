from aiohttp.test_utils import TestClient
from marshmallow.fields import Nested

from psrental.models import Member
from psrental.models.util import TimerStatus, SessionStatus, PaymentType, ActivityType
from psrental.serializer import JSendSchema, JSendStatus
from psrental.serializer.fields import Many
from psrental.serializer.models import DeviceSchema, SessionSchema, ReceiptSchema, ActivitySchema


class TestDevicesView:

    async def test_get_devices(self, client: TestClient, device_factory, random_category):
        """Assert that you can get a list of all devices."""
        await device_factory(random_category)
        await device_factory(random_category)

        response = await client.get('/api/v1/devices')
        response_data = JSendSchema.of(devices=Many(DeviceSchema())).load(await response.json())

        assert response_data["status"] == JSendStatus.SUCCESS
        assert [device["id"] for device in response_data["data"]["devices"]] == ["ps-01", "ps-02"]
        assert all(device["timer_status"] is TimerStatus.IDLE for device in response_data["data"]["devices"])


class TestDeviceView:

    async def test_get_device(self, client: TestClient, random_device):
        response = await client.get(f'/api/v1/devices/{random_device.id}')
        response_data = JSendSchema.of(device=DeviceSchema()).load(await response.json())

        assert response_data["data"]["device"]["id"] == random_device.id
        assert response_data["data"]["device"]["relay_number"] == random_device.relay_number
        assert (await client.get(response_data["data"]["device"]["url"])).status == 200

    async def test_get_missing_device(self, client: TestClient):
        """Assert that an unknown device 404's with a JSend failure."""
        response = await client.get('/api/v1/devices/ps-99')
        response_data = JSendSchema().load(await response.json())

        assert response.status == 404
        assert response_data["status"] == JSendStatus.FAIL
        assert response_data["data"]["params"] == {"device_id": "ps-99"}


class TestDeviceSessionView:

    async def test_get_no_session(self, client: TestClient, random_device):
        response = await client.get(f'/api/v1/devices/{random_device.id}/session')
        response_data = JSendSchema().load(await response.json())

        assert response.status == 404
        assert response_data["status"] == JSendStatus.FAIL

    async def test_get_session(self, client: TestClient, random_device):
        session = await client.app["session_manager"].start(random_device, 3600)

        response = await client.get(f'/api/v1/devices/{random_device.id}/session')
        response_data = JSendSchema.of(session=SessionSchema(), device=DeviceSchema()).load(await response.json())

        assert response_data["data"]["session"]["id"] == session.id
        assert response_data["data"]["device"]["timer_status"] is TimerStatus.RUNNING
        assert response_data["data"]["device"]["remaining"] == 3600

    async def test_start_session(self, client: TestClient, random_device):
        """Assert that starting a session charges up front and runs the timer."""
        response = await client.post(f'/api/v1/devices/{random_device.id}/session', json={
            "duration": 3600, "shift_id": 1, "method": "QRIS"
        })
        response_data = JSendSchema.of(session=SessionSchema(), device=DeviceSchema()).load(await response.json())

        assert response.status == 201
        session = response_data["data"]["session"]
        assert session["cost"] == 10000
        assert session["payment_type"] is PaymentType.UPFRONT
        assert session["is_active"]
        assert response_data["data"]["device"]["timer_status"] is TimerStatus.RUNNING
        assert (await client.get(session["url"])).status == 200

    async def test_start_pay_at_end(self, client: TestClient, random_device):
        response = await client.post(f'/api/v1/devices/{random_device.id}/session', json={})
        response_data = JSendSchema.of(session=SessionSchema(), device=DeviceSchema()).load(await response.json())

        assert response.status == 201
        assert response_data["data"]["session"]["payment_type"] is PaymentType.END
        assert response_data["data"]["session"]["cost"] is None
        assert response_data["data"]["device"]["remaining"] is None

    async def test_start_member(self, client: TestClient, random_device, random_member, member_pin):
        response = await client.post(f'/api/v1/devices/{random_device.id}/session', json={
            "duration": 1800, "member_id": random_member.id, "pin": member_pin
        })

        assert response.status == 201
        assert (await Member.get(id=random_member.id)).deposit == 50000 - 5000

    async def test_start_twice(self, client: TestClient, random_device):
        await client.post(f'/api/v1/devices/{random_device.id}/session', json={"duration": 3600})
        response = await client.post(f'/api/v1/devices/{random_device.id}/session', json={"duration": 3600})
        response_data = JSendSchema().load(await response.json())

        assert response.status == 409
        assert response_data["status"] == JSendStatus.FAIL
        assert "session_id" in response_data["data"]

    async def test_start_insufficient_funds(self, client: TestClient, random_device, member_factory):
        """Assert that a short deposit answers 402 with the shortfall."""
        member = await member_factory(deposit=3000)

        response = await client.post(f'/api/v1/devices/{random_device.id}/session', json={
            "duration": 1800, "member_id": member.id
        })
        response_data = JSendSchema().load(await response.json())

        assert response.status == 402
        assert response_data["data"]["shortfall"] == 2000
        assert response_data["data"]["message"] == "Deposit is insufficient."

    async def test_start_wrong_pin(self, client: TestClient, random_device, random_member):
        response = await client.post(f'/api/v1/devices/{random_device.id}/session', json={
            "duration": 1800, "member_id": random_member.id, "pin": "0000"
        })
        assert response.status == 401

    async def test_start_missing_member(self, client: TestClient, random_device):
        response = await client.post(f'/api/v1/devices/{random_device.id}/session', json={
            "duration": 1800, "member_id": 404
        })
        assert response.status == 404

    async def test_start_invalid_body(self, client: TestClient, random_device):
        """Assert that a malformed body is rejected along with the expected schema."""
        response = await client.post(f'/api/v1/devices/{random_device.id}/session', json={"duration": 0})
        response_data = JSendSchema().load(await response.json())

        assert response.status == 400
        assert "duration" in response_data["data"]["errors"]
        assert "schema" in response_data["data"]

    async def test_start_member_without_duration(self, client: TestClient, random_device, random_member):
        response = await client.post(f'/api/v1/devices/{random_device.id}/session', json={
            "member_id": random_member.id
        })
        assert response.status == 400

    async def test_start_without_json(self, client: TestClient, random_device):
        response = await client.post(f'/api/v1/devices/{random_device.id}/session', data="duration=60")
        assert response.status == 400

    async def test_stop_and_resume(self, client: TestClient, random_device):
        await client.app["session_manager"].start(random_device, 3600)
        response_schema = JSendSchema.of(device=DeviceSchema())

        response = await client.patch(f'/api/v1/devices/{random_device.id}/session', json={"command": "stop"})
        response_data = response_schema.load(await response.json())
        assert response_data["data"]["device"]["timer_status"] is TimerStatus.PAUSED

        response = await client.patch(f'/api/v1/devices/{random_device.id}/session', json={"command": "resume"})
        response_data = response_schema.load(await response.json())
        assert response_data["data"]["device"]["timer_status"] is TimerStatus.RUNNING

    async def test_resume_running(self, client: TestClient, random_device):
        await client.app["session_manager"].start(random_device, 3600)
        response = await client.patch(f'/api/v1/devices/{random_device.id}/session', json={"command": "resume"})
        assert response.status == 409

    async def test_bad_command(self, client: TestClient, random_device):
        response = await client.patch(f'/api/v1/devices/{random_device.id}/session', json={"command": "reboot"})
        assert response.status == 400

    async def test_cancel(self, client: TestClient, random_device):
        await client.app["session_manager"].start(random_device, 3600)

        response = await client.delete(f'/api/v1/devices/{random_device.id}/session', params={"reason": "mistake"})
        response_data = JSendSchema.of(session=SessionSchema()).load(await response.json())

        assert response_data["data"]["session"]["status"] is SessionStatus.CANCELLED
        assert response_data["data"]["session"]["cost"] == 0

    async def test_cancel_without_session(self, client: TestClient, random_device):
        response = await client.delete(f'/api/v1/devices/{random_device.id}/session')
        assert response.status == 404


class TestDeviceSessionTimeView:

    async def test_add_time(self, client: TestClient, random_device, clock):
        await client.app["session_manager"].start(random_device, 300)
        clock.advance(100)

        response = await client.post(f'/api/v1/devices/{random_device.id}/session/time', json={"minutes": 2})
        response_data = JSendSchema.of(session=SessionSchema(), device=DeviceSchema()).load(await response.json())

        assert response_data["data"]["session"]["duration"] == 420
        assert response_data["data"]["session"]["cost"] == 1167
        assert response_data["data"]["device"]["remaining"] == 320

    async def test_add_time_from_empty_deposit(self, client: TestClient, random_device, member_factory):
        member = await member_factory(deposit=5000)
        await client.app["session_manager"].start(random_device, 1800, member_id=member.id)

        response = await client.post(f'/api/v1/devices/{random_device.id}/session/time', json={
            "minutes": 30, "use_deposit": True
        })
        assert response.status == 402

    async def test_add_time_to_unlimited(self, client: TestClient, random_device):
        await client.app["session_manager"].start(random_device)
        response = await client.post(f'/api/v1/devices/{random_device.id}/session/time', json={"minutes": 30})
        assert response.status == 400


class TestDeviceSessionEndView:

    async def test_end(self, client: TestClient, random_device, clock, payment_ledger):
        """Assert that ending bills the usage plus the products."""
        await client.app["session_manager"].start(random_device)
        clock.advance(1800)

        response = await client.post(f'/api/v1/devices/{random_device.id}/session/end', json={
            "extra_cost": 1500, "shift_id": 4
        })
        response_data = JSendSchema.of(receipt=ReceiptSchema()).load(await response.json())

        receipt = response_data["data"]["receipt"]
        assert receipt["usage"] == 1800
        assert receipt["amount_due"] == 6500
        assert receipt["session"]["status"] is SessionStatus.COMPLETED
        assert not receipt["session"]["is_active"]
        assert payment_ledger.payments[-1]["shift_id"] == 4

    async def test_end_member_refund(self, client: TestClient, random_device, random_member, clock):
        await client.app["session_manager"].start(random_device, 3600, member_id=random_member.id)
        clock.advance(1800)

        response = await client.post(f'/api/v1/devices/{random_device.id}/session/end', json={})
        response_data = JSendSchema.of(receipt=ReceiptSchema()).load(await response.json())

        assert response_data["data"]["receipt"]["refund"] == 5000
        assert (await Member.get(id=random_member.id)).deposit == 50000 - 5000

    async def test_end_without_session(self, client: TestClient, random_device):
        response = await client.post(f'/api/v1/devices/{random_device.id}/session/end', json={})
        response_data = JSendSchema().load(await response.json())

        assert response.status == 404
        assert response_data["data"]["device_id"] == random_device.id


class TestDeviceDisconnectView:

    async def test_disconnect(self, client: TestClient, random_device):
        await client.app["session_manager"].start(random_device)

        response = await client.post(f'/api/v1/devices/{random_device.id}/session/disconnect', json={
            "reason": "wifi", "source": "console"
        })
        response_schema = JSendSchema.of(activity=Nested(ActivitySchema(), allow_none=True))
        response_data = response_schema.load(await response.json())

        assert response.status == 201
        assert response_data["data"]["activity"]["activity_type"] is ActivityType.DISCONNECT
        assert response_data["data"]["activity"]["metadata"]["reason"] == "wifi"

    async def test_disconnect_idle_device(self, client: TestClient, random_device):
        response = await client.post(f'/api/v1/devices/{random_device.id}/session/disconnect', json={})
        assert response.status == 409
