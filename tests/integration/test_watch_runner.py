"""Integration tests for WatchRunner exit codes and JSON output."""

import json

import pytest

from dlwatch.cli.config import WatchConfiguration
from dlwatch.cli.runner import ExitCode, WatchRunner

pytestmark = pytest.mark.integration


def _configuration(**output):
    return WatchConfiguration(
        capture={
            "url": "https://example.com/",
            "wait_seconds": 0.1,
            "poll_interval": 0.05,
            "call_timeout_seconds": 1.0,
        },
        output=output,
    )


class TestWatchRunner:
    """Exit code mapping for complete runs."""

    @pytest.mark.asyncio
    async def test_success_when_events_observed(self, fake_session_factory):
        browser = fake_session_factory(pushes=[{"event": "page_view"}])
        runner = WatchRunner(_configuration(), browser_session=browser)

        code = await runner.run()

        assert code == ExitCode.SUCCESS
        assert runner.result.has_observed_events
        assert browser.close_calls == 1

    @pytest.mark.asyncio
    async def test_no_events_is_not_an_error(self, fake_session_factory):
        browser = fake_session_factory()
        runner = WatchRunner(_configuration(), browser_session=browser)

        code = await runner.run()

        assert code == ExitCode.SUCCESS
        assert code == 0
        assert runner.result.has_observed_events is False

    @pytest.mark.asyncio
    async def test_launch_error(self, fake_session_factory):
        browser = fake_session_factory(open_error=RuntimeError("Executable doesn't exist"))
        runner = WatchRunner(_configuration(), browser_session=browser)

        code = await runner.run()

        assert code == ExitCode.LAUNCH_ERROR
        assert runner.result is None
        assert browser.close_calls == 1

    @pytest.mark.asyncio
    async def test_runtime_error(self, fake_session_factory):
        browser = fake_session_factory(navigation_error=RuntimeError("net::ERR_CONNECTION_REFUSED"))

        code = await WatchRunner(_configuration(), browser_session=browser).run()

        assert code == ExitCode.RUNTIME_ERROR
        assert browser.close_calls == 1

    @pytest.mark.asyncio
    async def test_output_file_written(self, fake_session_factory, tmp_path):
        target = tmp_path / "out" / "events.json"
        browser = fake_session_factory(pushes=[{"event": "page_view"}])

        code = await WatchRunner(_configuration(output_file=target), browser_session=browser).run()

        assert code == ExitCode.SUCCESS
        data = json.loads(target.read_text(encoding="utf-8"))
        assert [item["source"] for item in data] == ["injected_push", "final_snapshot"]
        assert data[0]["payload"] == {"event": "page_view"}

    @pytest.mark.asyncio
    async def test_unwritable_output_is_runtime_error(self, fake_session_factory, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        browser = fake_session_factory(pushes=[{"event": "page_view"}])

        code = await WatchRunner(
            _configuration(output_file=blocker / "events.json"),
            browser_session=browser,
        ).run()

        assert code == ExitCode.RUNTIME_ERROR
