import asyncio
import json

import httpx
import pytest

from gymscore.core import CompetitionState, Division, parse_csv_text
from gymscore.storage import (
    SheetBridge,
    SheetBridgeBusy,
    SheetBridgeError,
    SheetBridgeNotConfigured,
)

URL = "https://script.example.com/macros/s/abc/exec"


def _bridge(handler, **kwargs) -> SheetBridge:
    return SheetBridge(URL, transport=httpx.MockTransport(handler), **kwargs)


def _state(women_csv) -> CompetitionState:
    competitors, _ = parse_csv_text(women_csv, Division.WOMEN)
    return CompetitionState(competitionName="春季大会", competitors=competitors, version=4)


@pytest.mark.asyncio
async def test_save_posts_rows_in_sheet_column_order(women_csv):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "message": "ok"})

    message = await _bridge(handler).save(Division.WOMEN, _state(women_csv))

    assert message == "ok"
    assert seen["method"] == "POST"
    body = seen["body"]
    assert body["gender"] == "women"
    assert body["action"] == "save"
    assert body["newState"]["competitionName"] == "春季大会"
    assert body["newState"]["players"][2] == ["中級", "2組", "", "高橋 愛", 8.0, 8.5, 7.9, 8.2]


@pytest.mark.asyncio
async def test_load_follows_redirect_and_parses_players():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "script.example.com":
            assert request.url.params["gender"] == "men"
            return httpx.Response(302, headers={"Location": "https://content.example.com/echo"})
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": {
                    "competitionName": "秋季大会",
                    "players": [
                        {"name": "A", "playerClass": "上級", "playerGroup": "1組",
                         "scores": {"floor": 14.0, "hbar": 13.5}, "total": 0},
                    ],
                },
            },
        )

    state = await _bridge(handler).load(Division.MEN)

    assert state.competitionName == "秋季大会"
    assert state.competitors[0].id == "m-0"
    assert state.competitors[0].total == 27.5


@pytest.mark.asyncio
async def test_load_with_retry_backs_off_exponentially():
    calls = []
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(500)
        return httpx.Response(200, json={"success": True, "data": {"players": []}})

    bridge = _bridge(handler, retry_base=0.5, sleep=fake_sleep)
    state = await bridge.load_with_retry(Division.WOMEN)

    assert state.competitors == []
    assert len(calls) == 3
    assert delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_load_with_retry_gives_up_after_last_attempt():
    async def fake_sleep(delay):
        return None

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "message": "quota"})

    bridge = _bridge(handler, load_attempts=2, sleep=fake_sleep)
    with pytest.raises(SheetBridgeError) as excinfo:
        await bridge.load_with_retry(Division.WOMEN)
    assert "quota" in excinfo.value.message


@pytest.mark.asyncio
async def test_invalid_json_is_an_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>login</html>")

    with pytest.raises(SheetBridgeError, match="invalid JSON"):
        await _bridge(handler).archive(Division.MEN)


@pytest.mark.asyncio
async def test_archive_returns_bridge_message():
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content) == {"gender": "men", "action": "archive"}
        return httpx.Response(200, json={"success": True, "message": "archived sheet"})

    assert await _bridge(handler).archive(Division.MEN) == "archived sheet"


@pytest.mark.asyncio
async def test_calls_are_serialized_and_waiters_time_out():
    release = asyncio.Event()

    async def slow_handler(request: httpx.Request) -> httpx.Response:
        await release.wait()
        return httpx.Response(200, json={"success": True})

    bridge = _bridge(slow_handler, lock_timeout=0.05)
    first = asyncio.create_task(bridge.archive(Division.WOMEN))
    await asyncio.sleep(0.01)
    assert bridge.busy

    with pytest.raises(SheetBridgeBusy):
        await bridge.archive(Division.MEN)

    release.set()
    assert await first == "archived"
    assert not bridge.busy


@pytest.mark.asyncio
async def test_unconfigured_bridge_is_not_retried(offline_bridge):
    calls = []

    async def fake_sleep(delay):
        calls.append(delay)

    offline_bridge._sleep = fake_sleep
    assert not offline_bridge.configured
    with pytest.raises(SheetBridgeNotConfigured):
        await offline_bridge.load_with_retry(Division.WOMEN)
    assert calls == []
