import asyncio

from gatehouse.application.services.paywall_service import PaywallService
from gatehouse.services.paywall_poller import PaywallPoller


def test_poll_once_runs_in_worker_thread(paywall, register, lookup, users):
    user, _, _ = register()
    lookup.pay(user.paywall_address)

    assert asyncio.run(PaywallPoller(paywall).poll_once()) == 1
    assert users.get_by_id(user.id).paywall_tx_id == "tx-1"


def test_start_is_a_noop_without_interval(paywall):
    async def scenario() -> bool:
        poller = PaywallPoller(paywall, interval_seconds=0)
        await poller.start()
        running = poller.running
        await poller.stop()
        return running

    assert asyncio.run(scenario()) is False


def test_start_is_a_noop_when_paywall_disabled(users):
    async def scenario() -> bool:
        poller = PaywallPoller(PaywallService(users, None, None), interval_seconds=5)
        await poller.start()
        return poller.running

    assert asyncio.run(scenario()) is False


def test_background_loop_polls_until_stopped(paywall, register, lookup, users):
    user, _, _ = register()
    lookup.pay(user.paywall_address)

    async def scenario() -> None:
        poller = PaywallPoller(paywall, interval_seconds=3600)
        await poller.start()
        assert poller.running
        for _ in range(200):
            if lookup.calls:
                break
            await asyncio.sleep(0.01)
        await poller.stop()
        assert not poller.running

    asyncio.run(scenario())
    assert users.get_by_id(user.id).paywall_tx_id == "tx-1"


def test_loop_survives_failures(paywall, register, lookup):
    register()
    lookup.fail = True

    async def scenario() -> None:
        poller = PaywallPoller(paywall, interval_seconds=3600)
        await poller.start()
        for _ in range(200):
            if lookup.calls:
                break
            await asyncio.sleep(0.01)
        assert poller.running
        await poller.stop()

    asyncio.run(scenario())
