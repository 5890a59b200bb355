from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Sequence

import httpx

from models.records import ArchiveSource, Measurement
from settings import get_settings
from storage.archive import extract_payload, measurement_from_payload

logger = logging.getLogger(__name__)

_GATEWAY = "https://calibnet.pspsps.io/ipfs"
_ACCEPT = "application/octet-stream, application/json, */*"


def _source(content_id: str, root_cid: str, filename: str) -> ArchiveSource:
    return ArchiveSource(
        content_id=content_id,
        retrieval_url=f"{_GATEWAY}/{root_cid}?filename={filename}",
        label=filename,
    )


DEFAULT_SOURCES: tuple[ArchiveSource, ...] = (
    _source(
        "bafkzcibcgycoukck6ugvecchmpkqgjfr2k7mxiuvobezu2odfwfdlbywp3a6yhq",
        "bafybeie3k3hqe445fxunrbzzrtesx6vyfdqj6g6vjhpknvi5tge4ofji2y",
        "airport-free-wifi-2025-11-22T12-25-00Z.json.car",
    ),
    _source(
        "bafkzcibcgycidokjd5rzveemqahiiarshrepynn3zcnjqiealwah57rc77ygoby",
        "bafybeiapjwpp5wyvogsu2redlzgzi6hl5tb2b3fg5glmsut7sgahcjsq6i",
        "airport-free-wifi-2025-11-22T14-30-00Z.json.car",
    ),
    _source(
        "bafkzcibchqceaowy6nzym37aigliyw7wzfwywv3unwatjqiu766qpfr4nmxkapa",
        "bafybeibj4zv6upqppltr2haxus667lvmxiicaxuqibulfiwdig4oylnqtm",
        "coffeeshop-wifi-2025-11-22T12-23-00Z.json.car",
    ),
    _source(
        "bafkzcibchqcj2zr2awpzmxkemxjg4dyditza5ez6gv3xnn6ihdhc5m5vywxmofy",
        "bafybeifwitmpyfdbacdncvwbuririyhwl4t7xyppa7z3y5l7eh7qhlvoiq",
        "coffeeshop-wifi-2025-11-22T13-15-00Z.json.car",
    ),
    _source(
        "bafkzcibchycn54fsn6idticgcnyxogiajmsxwtcgq5ufa4kryufic3hv4c6ksjy",
        "bafybeiag647lgvfroip2kz5keckez4yuo22spj6lbriguveme43guqqtwu",
        "library-public-2025-11-22T12-27-00Z.json.car",
    ),
    _source(
        "bafkzcibchyciom4qyy53impjcgulszzk4yw7vh4nidakh3nekahke5ekf7enuoy",
        "bafybeibjzqvmhyxir3qbqi5zvk2r7qghdnkd45pbceniu3o5ojhkuv24vu",
        "library-public-2025-11-22T15-45-00Z.json.car",
    ),
    _source(
        "bafkzcibciicjc5zaucsjckmxzgl2xwfg6em4m4y5na5eu25rn5uawbimdwrvujq",
        "bafybeie6yujbcxggkjpgqxjcjtg563yppandouez3tokc4leje7yk7a5cq",
        "sydney-cafe-2025-11-22T12-32-00Z.json.car",
    ),
    _source(
        "bafkzcibcgmca5hjn45gbkhhvfeaqalmse42ylxvumvtemabck5ohr723ooorcka",
        "bafybeihlr5ieepjy3jkz2j232ndxu4bvekwcozurkyqknbpmuz4rrsoxka",
        "tokyo-station-free-2025-11-22T12-30-00Z.json.car",
    ),
)


def load_sources(path: Path) -> tuple[ArchiveSource, ...]:
    """Read source descriptors from a JSON array of ``{contentId, retrievalUrl, label}``."""
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"Source list in {path} must be a JSON array.")

    sources: List[ArchiveSource] = []
    for index, entry in enumerate(raw):
        try:
            sources.append(
                ArchiveSource(
                    content_id=str(entry["contentId"]),
                    retrieval_url=str(entry["retrievalUrl"]),
                    label=str(entry.get("label") or entry["contentId"]),
                )
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValueError(f"Source entry {index} in {path} is malformed.") from exc
    return tuple(sources)


@dataclass
class FetchReport:
    """Measurements recovered from a batch of archive retrievals."""

    measurements: List[Measurement] = field(default_factory=list)
    failures: int = 0


class SourceFetcher:
    """Retrieves every configured archive concurrently and isolates per-source failures."""

    def __init__(
        self,
        sources: Sequence[ArchiveSource],
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.sources = tuple(sources)
        self.timeout = timeout
        self._transport = transport

    async def fetch_all(self) -> FetchReport:
        started = time.perf_counter()
        logger.info("Fetching %s archives", len(self.sources))
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,
            headers={"Accept": _ACCEPT},
        ) as client:
            results = await asyncio.gather(
                *(self._fetch_one(client, source) for source in self.sources)
            )

        report = FetchReport()
        for measurement in results:
            if measurement is None:
                report.failures += 1
            else:
                report.measurements.append(measurement)

        logger.info(
            "Fetched %s of %s archives",
            len(report.measurements),
            len(self.sources),
            extra={
                "failure_count": report.failures,
                "elapsed_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return report

    async def _fetch_one(
        self, client: httpx.AsyncClient, source: ArchiveSource
    ) -> Optional[Measurement]:
        context = {"content_id": source.content_id, "source": source.label}
        try:
            response = await client.get(source.retrieval_url)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning(
                "Archive retrieval failed",
                extra={**context, "reason": f"{type(exc).__name__}: {exc}"},
            )
            return None

        payload = extract_payload(response.content)
        if payload is None:
            logger.warning("Archive did not contain a measurement", extra=context)
            return None

        try:
            measurement = measurement_from_payload(payload)
        except ValueError as exc:
            logger.warning("Archive measurement is malformed", extra={**context, "reason": str(exc)})
            return None

        logger.debug("Parsed archive", extra=context)
        return measurement


@lru_cache
def build_default_fetcher() -> SourceFetcher:
    settings = get_settings()
    sources = (
        load_sources(Path(settings.sources_path)) if settings.sources_path else DEFAULT_SOURCES
    )
    return SourceFetcher(sources=sources, timeout=settings.fetch_timeout)
