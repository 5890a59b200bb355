from __future__ import annotations

import asyncio
import json
from pathlib import Path

import httpx
import pytest

from models.records import ArchiveSource
from storage.sources import DEFAULT_SOURCES, SourceFetcher, load_sources


def _archive(wifi_name: str, speed: float, time: str = "2025-11-22T12:23:00Z") -> bytes:
    payload = {
        "location": {"lat": 50.0755, "lng": 14.4378},
        "speed": speed,
        "time": time,
        "wifiName": wifi_name,
        "walletAddress": "0xabc",
    }
    return b"\x0a\xa1\x67version\x01" + json.dumps(payload).encode("utf-8") + b"\x00\xff"


def _source(name: str) -> ArchiveSource:
    return ArchiveSource(
        content_id=f"cid-{name}",
        retrieval_url=f"https://gateway.test/ipfs/{name}",
        label=f"{name}.json.car",
    )


def _handler(request: httpx.Request) -> httpx.Response:
    name = request.url.path.rsplit("/", 1)[-1]
    if name == "good-a":
        return httpx.Response(200, content=_archive("cafe", 42.5))
    if name == "good-b":
        return httpx.Response(200, content=_archive("airport", 12.0))
    if name == "missing":
        return httpx.Response(404, text="not found")
    if name == "garbage":
        return httpx.Response(200, content=b"\x00\x01 not an archive")
    if name == "no-time":
        return httpx.Response(200, content=_archive("cafe", 1.0, time="not-a-time"))
    if name == "slow":
        raise httpx.ConnectTimeout("timed out", request=request)
    return httpx.Response(500)


def test_fetch_all_isolates_failing_sources() -> None:
    names = ["good-a", "missing", "garbage", "slow", "no-time", "good-b"]
    fetcher = SourceFetcher(
        sources=[_source(name) for name in names],
        transport=httpx.MockTransport(_handler),
    )

    report = asyncio.run(fetcher.fetch_all())

    assert report.failures == 4
    assert {m.network_name: m.speed_mbps for m in report.measurements} == {
        "cafe": 42.5,
        "airport": 12.0,
    }


def test_fetch_all_sends_accept_header() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers["Accept"])
        return httpx.Response(200, content=_archive("cafe", 10.0))

    fetcher = SourceFetcher(sources=[_source("good-a")], transport=httpx.MockTransport(handler))

    report = asyncio.run(fetcher.fetch_all())

    assert len(report.measurements) == 1
    assert seen == ["application/octet-stream, application/json, */*"]


def test_fetch_all_with_no_sources_is_empty() -> None:
    fetcher = SourceFetcher(sources=[], transport=httpx.MockTransport(_handler))

    report = asyncio.run(fetcher.fetch_all())

    assert report.measurements == []
    assert report.failures == 0


def test_load_sources_reads_descriptor_file(tmp_path: Path) -> None:
    path = tmp_path / "sources.json"
    path.write_text(
        json.dumps(
            [
                {"contentId": "bafy1", "retrievalUrl": "https://a.test/1", "label": "one"},
                {"contentId": "bafy2", "retrievalUrl": "https://a.test/2"},
            ]
        )
    )

    sources = load_sources(path)

    assert sources == (
        ArchiveSource(content_id="bafy1", retrieval_url="https://a.test/1", label="one"),
        ArchiveSource(content_id="bafy2", retrieval_url="https://a.test/2", label="bafy2"),
    )


def test_load_sources_rejects_malformed_entries(tmp_path: Path) -> None:
    path = tmp_path / "sources.json"
    path.write_text(json.dumps([{"label": "no-id"}]))

    with pytest.raises(ValueError):
        load_sources(path)


def test_default_sources_are_distinct() -> None:
    assert len(DEFAULT_SOURCES) == 8
    assert len({source.content_id for source in DEFAULT_SOURCES}) == 8
    assert all(source.retrieval_url.startswith("https://") for source in DEFAULT_SOURCES)


def test_malformed_source_url_counts_as_failure() -> None:
    bad = ArchiveSource(
        content_id="cid-bad",
        retrieval_url="https://exa\x00mple.test/ipfs/bad",
        label="bad.json.car",
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=_archive("cafe", 10.0))

    fetcher = SourceFetcher(sources=[_source("good-a"), bad], transport=httpx.MockTransport(handler))

    report = asyncio.run(fetcher.fetch_all())

    assert report.failures == 1
    assert [m.network_name for m in report.measurements] == ["cafe"]
