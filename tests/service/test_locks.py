import asyncio

from psrental.service.locks import DeviceLocks


class TestDeviceLocks:

    async def test_hold(self):
        locks = DeviceLocks()

        async with locks.hold("ps-01"):
            assert locks.locked("ps-01")
            assert not locks.locked("ps-02")

        assert not locks.locked("ps-01")

    async def test_released_locks_are_dropped(self):
        """Assert that holding the lock of many ids does not keep a lock per id."""
        locks = DeviceLocks()

        for number in range(100):
            async with locks.hold(f"ps-{number:02}"):
                assert len(locks) == 1

        assert len(locks) == 0

    async def test_dropped_on_error(self):
        locks = DeviceLocks()

        try:
            async with locks.hold("ps-01"):
                raise KeyError("ps-01")
        except KeyError:
            pass

        assert len(locks) == 0

    async def test_transitions_do_not_interleave(self):
        locks = DeviceLocks()
        trace = []

        async def transition(name):
            async with locks.hold("ps-01"):
                trace.append(f"{name} in")
                await asyncio.sleep(0.01)
                trace.append(f"{name} out")

        await asyncio.gather(transition("a"), transition("b"), transition("c"))

        assert trace == ["a in", "a out", "b in", "b out", "c in", "c out"]
        assert len(locks) == 0

    async def test_other_devices_are_not_blocked(self):
        locks = DeviceLocks()

        async with locks.hold("ps-01"):
            await asyncio.wait_for(_hold_briefly(locks, "ps-02"), 1)
            assert len(locks) == 1

    async def test_lock_kept_while_waited_on(self):
        """Assert that a lock is not dropped while another transition is still waiting for it."""
        locks = DeviceLocks()
        entered = asyncio.Event()

        async def waiter():
            async with locks.hold("ps-01"):
                entered.set()

        async with locks.hold("ps-01"):
            task = asyncio.ensure_future(waiter())
            await asyncio.sleep(0)
            assert not entered.is_set()

        await asyncio.wait_for(task, 1)
        assert entered.is_set()
        assert len(locks) == 0


async def _hold_briefly(locks, device_id):
    async with locks.hold(device_id):
        await asyncio.sleep(0)
