import asyncio

import pytest

from shortener.worker import sweep_expired_once, sweep_forever


def test_sweep_expired_once(service, clock):
    asyncio.run(service.create_short_url("https://example.com", "1", "short"))
    asyncio.run(service.create_short_url("https://example.com", "120", "long"))
    clock.advance(minutes=10)

    assert sweep_expired_once(service) == 1
    assert [r.short_code for r in service.get_shortened_urls()] == ["long"]
    assert sweep_expired_once(service) == 0


def test_sweep_forever_keeps_running_after_errors(service, monkeypatch, caplog):
    calls = []

    def flaky():
        calls.append(1)
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(service, "clear_expired_urls", flaky)

    async def scenario():
        task = asyncio.create_task(sweep_forever(service, 0))
        for _ in range(5):
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert len(calls) >= 2
    assert "Error during expiry sweep" in caplog.text


def test_sweep_from_second_service_keeps_fresh_writes(storage, make_service, clock):
    web = make_service()
    sweeper = make_service()
    asyncio.run(web.create_short_url("https://example.com", "60", "keepme"))

    assert sweep_expired_once(sweeper) == 0
    assert [r.short_code for r in make_service().get_shortened_urls()] == ["keepme"]


def test_sweep_without_expired_urls_does_not_write(service, storage):
    asyncio.run(service.create_short_url("https://example.com", "60", "live"))
    before = storage.get("shortened-urls")
    storage.data.clear()

    assert sweep_expired_once(service) == 0
    assert storage.data == {}
    assert before is not None
