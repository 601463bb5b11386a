"""Tests for doccrawl.harvester module."""

from __future__ import annotations

import asyncio
import json
import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from doccrawl.harvester import PageHarvester

API_URL = "https://docs.example.com/api/documents.info?id=42"


def _response(url: str = API_URL, payload=None, error: Exception = None):
    if error is not None:
        return SimpleNamespace(url=url, json=AsyncMock(side_effect=error))
    return SimpleNamespace(url=url, json=AsyncMock(return_value=payload))


def _payload(document):
    return {"ok": True, "data": {"document": document}}


class FakePage:
    def __init__(self, url: str = "about:blank") -> None:
        self.url = url
        self.handlers = {}

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    def emit(self, event, value):
        for handler in self.handlers.get(event, []):
            handler(value)


class TestBuildRecord:
    def test_builds_record(self, store):
        harvester = PageHarvester(store)
        document = {"title": "Intro", "content": [{"text": "Hello"}, {"text": "World"}]}

        record = harvester.build_record(_payload(document), "https://docs.example.com/intro")

        assert record.title == "Intro"
        assert record.url == "https://docs.example.com/intro"
        assert record.text == "Hello\n\nWorld"

    def test_defaults_for_missing_title_and_text(self, store):
        record = PageHarvester(store).build_record(_payload({"id": 1}), None)
        assert record.to_dict() == {
            "title": "Untitled",
            "url": "No URL available",
            "text": "No content available",
        }

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            [],
            {},
            {"data": None},
            {"data": {}},
            {"data": {"document": None}},
            {"data": {"document": ""}},
            {"data": {"document": 0}},
        ],
    )
    def test_missing_document(self, store, caplog, payload):
        with caplog.at_level(logging.WARNING, logger="doccrawl.harvester"):
            record = PageHarvester(store).build_record(payload, "https://x.test/p")

        assert record is None
        assert "missing data.document for URL: https://x.test/p" in caplog.text

    @pytest.mark.parametrize("document", [{}, []])
    def test_empty_document_yields_default_record(self, store, caplog, document):
        with caplog.at_level(logging.WARNING, logger="doccrawl.harvester"):
            record = PageHarvester(store).build_record(
                {"data": {"document": document}}, "https://x.test/p"
            )

        assert record.to_dict() == {
            "title": "Untitled",
            "url": "https://x.test/p",
            "text": "No content available",
        }
        assert "missing data.document" not in caplog.text


class TestHandleResponse:
    @pytest.mark.asyncio
    async def test_stores_record(self, store):
        harvester = PageHarvester(store)
        response = _response(payload=_payload({"title": "T", "text": "Body"}))

        record = await harvester.handle_response(response, "https://docs.example.com/t")

        assert record.text == "Body"
        assert harvester.records_saved == 1
        [path] = store.list_files()
        assert json.loads(path.read_text(encoding="utf-8")) == {
            "title": "T",
            "url": "https://docs.example.com/t",
            "text": "Body",
        }

    @pytest.mark.asyncio
    async def test_non_matching_url_ignored(self, store):
        response = _response(url="https://docs.example.com/api/users.info", payload={})
        assert await PageHarvester(store).handle_response(response, "x") is None
        response.json.assert_not_called()

    @pytest.mark.asyncio
    async def test_custom_api_pattern(self, store):
        harvester = PageHarvester(store, api_pattern="/v2/page")
        response = _response(
            url="https://x.test/v2/page?id=1", payload=_payload({"text": "Custom"})
        )
        record = await harvester.handle_response(response, "https://x.test/1")
        assert record.text == "Custom"

    @pytest.mark.asyncio
    async def test_invalid_json_is_logged(self, store, caplog):
        harvester = PageHarvester(store)
        response = _response(error=json.JSONDecodeError("Expecting value", "<html>", 0))

        with caplog.at_level(logging.ERROR, logger="doccrawl.harvester"):
            record = await harvester.handle_response(response, "https://x.test/p")

        assert record is None
        assert store.list_files() == []
        assert f"Error processing response from {API_URL}" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_document_not_stored(self, store):
        harvester = PageHarvester(store)
        record = await harvester.handle_response(
            _response(payload={"data": {}}), "https://x.test/p"
        )
        assert record is None
        assert harvester.records_saved == 0
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_payload_logged_at_debug(self, store, caplog):
        harvester = PageHarvester(store)
        with caplog.at_level(logging.DEBUG, logger="doccrawl.harvester"):
            await harvester.handle_response(
                _response(payload=_payload({"text": "Debug me"})), "https://x.test/p"
            )
        assert "Full API response from" in caplog.text


class TestAttachAndDrain:
    @pytest.mark.asyncio
    async def test_drain_waits_for_pending_responses(self, store):
        harvester = PageHarvester(store)
        page = FakePage(url="https://docs.example.com/guide")
        harvester.attach(page, "https://docs.example.com/guide")

        page.emit("response", _response(payload=_payload({"text": "One"})))
        page.emit("response", _response(url="https://x.test/style.css", payload={}))
        page.emit("response", _response(payload=_payload({"text": "Two"})))
        await harvester.drain(page)

        assert harvester.records_saved == 2
        texts = sorted(
            json.loads(path.read_text(encoding="utf-8"))["text"]
            for path in store.list_files()
        )
        assert texts == ["One", "Two"]

    @pytest.mark.asyncio
    async def test_uses_requested_url_before_navigation(self, store):
        harvester = PageHarvester(store)
        page = FakePage(url="about:blank")
        harvester.attach(page, "https://docs.example.com/requested")

        page.emit("response", _response(payload=_payload({"text": "x"})))
        await harvester.drain(page)

        [path] = store.list_files()
        assert json.loads(path.read_text(encoding="utf-8"))["url"] == (
            "https://docs.example.com/requested"
        )

    @pytest.mark.asyncio
    async def test_uses_current_page_url(self, store):
        harvester = PageHarvester(store)
        page = FakePage(url="about:blank")
        harvester.attach(page, "https://docs.example.com/old")
        page.url = "https://docs.example.com/redirected"

        page.emit("response", _response(payload=_payload({"text": "x"})))
        await harvester.drain(page)

        [path] = store.list_files()
        assert json.loads(path.read_text(encoding="utf-8"))["url"] == (
            "https://docs.example.com/redirected"
        )

    @pytest.mark.asyncio
    async def test_drain_without_attach(self, store):
        await PageHarvester(store).drain(FakePage())

    @pytest.mark.asyncio
    async def test_drain_includes_late_responses(self, store):
        harvester = PageHarvester(store)
        page = FakePage(url="https://docs.example.com/p")
        harvester.attach(page, "https://docs.example.com/p")

        async def slow_json():
            # A response that arrives while the first one is being handled.
            page.emit("response", _response(payload=_payload({"text": "late"})))
            await asyncio.sleep(0)
            return _payload({"text": "first"})

        page.emit("response", SimpleNamespace(url=API_URL, json=slow_json))
        await harvester.drain(page)

        assert harvester.records_saved == 2


class FlakyStore:
    """Record store whose first push fails."""

    def __init__(self, store) -> None:
        self.store = store
        self.calls = 0

    def push(self, record):
        self.calls += 1
        if self.calls == 1:
            raise OSError("No space left on device")
        return self.store.push(record)


class TestFailureContainment:
    @pytest.mark.asyncio
    async def test_push_error_is_logged(self, store, caplog):
        harvester = PageHarvester(FlakyStore(store))

        with caplog.at_level(logging.ERROR, logger="doccrawl.harvester"):
            record = await harvester.handle_response(
                _response(payload=_payload({"text": "x"})), "https://x.test/p"
            )

        assert record is None
        assert harvester.records_saved == 0
        assert "No space left on device" in caplog.text

    @pytest.mark.asyncio
    async def test_push_error_on_one_of_two_responses(self, store, caplog):
        harvester = PageHarvester(FlakyStore(store))
        page = FakePage(url="https://docs.example.com/p")
        harvester.attach(page, "https://docs.example.com/p")

        page.emit("response", _response(payload=_payload({"text": "lost"})))
        page.emit("response", _response(payload=_payload({"text": "kept"})))
        with caplog.at_level(logging.ERROR, logger="doccrawl.harvester"):
            await harvester.drain(page)

        assert harvester.records_saved == 1
        [path] = store.list_files()
        assert json.loads(path.read_text(encoding="utf-8"))["text"] == "kept"
        assert "No space left on device" in caplog.text

    @pytest.mark.asyncio
    async def test_drain_waits_for_siblings_of_a_failed_task(
        self, store, caplog, monkeypatch
    ):
        harvester = PageHarvester(store)
        original = harvester.handle_response

        async def handle(response, page_url):
            if response.url.endswith("boom"):
                raise RuntimeError("handler crashed")
            await asyncio.sleep(0)
            return await original(response, page_url)

        monkeypatch.setattr(harvester, "handle_response", handle)
        page = FakePage(url="https://docs.example.com/p")
        harvester.attach(page, "https://docs.example.com/p")

        page.emit("response", _response(url=API_URL + "&boom", payload={}))
        page.emit("response", _response(payload=_payload({"text": "sibling"})))
        with caplog.at_level(logging.ERROR, logger="doccrawl.harvester"):
            await harvester.drain(page)

        assert harvester.records_saved == 1
        assert "handler crashed" in caplog.text
