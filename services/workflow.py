"""Client for the remote distributed workflow, driven through its command-line tool."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from app.schemas import NetworkStatistics
from models.errors import WorkflowError

logger = logging.getLogger(__name__)

_PRODUCTION_TARGET = "production-settings"


def _statistics_from_structured(value: Any) -> Optional[List[Any]]:
    if isinstance(value, list):
        return value
    if isinstance(value, dict) and isinstance(value.get("statistics"), list):
        return value["statistics"]
    return None


def _scan_for_statistics(output: str) -> List[Any]:
    # Compatibility path for tooling that only prints free-form logs.
    decoder = json.JSONDecoder()
    position = output.find("{")
    while position != -1:
        try:
            candidate, _ = decoder.raw_decode(output, position)
        except json.JSONDecodeError:
            candidate = None
        statistics = (
            candidate.get("statistics") if isinstance(candidate, dict) else None
        )
        if isinstance(statistics, list):
            return statistics
        position = output.find("{", position + 1)
    return []


def _validate_items(items: Sequence[Any]) -> List[NetworkStatistics]:
    statistics: List[NetworkStatistics] = []
    for item in items:
        try:
            statistics.append(NetworkStatistics.model_validate(item))
        except ValidationError as exc:
            logger.warning(
                "Dropping malformed statistics entry from workflow output",
                extra={"reason": f"{exc.error_count()} validation errors"},
            )
    return statistics


def parse_statistics_output(output: str) -> List[NetworkStatistics]:
    """Extract network statistics from workflow stdout.

    The first line that looks like JSON is treated as the structured result: a list
    is the statistics collection itself, an object contributes its ``statistics``
    field. Only when no such line decodes does the output get scanned for an
    embedded object carrying a ``statistics`` field.
    """
    for line in output.strip().splitlines():
        stripped = line.strip()
        if not stripped.startswith(("{", "[")):
            continue
        try:
            structured = json.loads(stripped)
        except json.JSONDecodeError:
            break
        items = _statistics_from_structured(structured)
        if items is not None:
            return _validate_items(items)
        break

    return _validate_items(_scan_for_statistics(output))


class WorkflowRunner:
    """Triggers or simulates the deployed aggregation workflow via its CLI."""

    def __init__(
        self,
        cli: str = "cre",
        workflow_dir: Path | str = Path("../chainlink/verifi-workflow"),
        workflow_name: str = "verifi-workflow",
        target: str = "staging-settings",
        timeout: float = 60.0,
    ) -> None:
        self.cli = cli
        self.workflow_dir = Path(workflow_dir)
        self.workflow_name = workflow_name
        self.target = target
        self.timeout = timeout

    @property
    def deployed_name(self) -> str:
        suffix = "production" if self.target == _PRODUCTION_TARGET else "staging"
        return f"{self.workflow_name}-{suffix}"

    def available(self) -> bool:
        return shutil.which(self.cli) is not None and self.workflow_dir.is_dir()

    async def trigger(self, payload: Dict[str, Any]) -> str:
        return await self._invoke(["workflow", "trigger", self.deployed_name], payload)

    async def simulate(self, payload: Dict[str, Any]) -> str:
        return await self._invoke(["workflow", "simulate", self.workflow_dir.name], payload)

    async def _invoke(self, arguments: List[str], payload: Dict[str, Any]) -> str:
        if not self.available():
            raise WorkflowError(
                f"Workflow tooling unavailable (cli={self.cli!r}, dir={str(self.workflow_dir)!r})."
            )

        with tempfile.NamedTemporaryFile(
            "w", suffix=".json", prefix="workflow-input-", delete=False, encoding="utf-8"
        ) as handle:
            json.dump(payload, handle, indent=2)
            input_path = Path(handle.name)

        try:
            return await self._execute([self.cli, *arguments, "--input", str(input_path)])
        finally:
            input_path.unlink(missing_ok=True)

    async def _execute(self, command: List[str]) -> str:
        env = {**os.environ, "CRE_TARGET": self.target}
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(self.workflow_dir.parent),
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise WorkflowError(f"Workflow command timed out after {self.timeout}s.") from exc

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise WorkflowError(
                f"Workflow command exited with status {process.returncode}: {detail or 'no output'}"
            )
        return stdout.decode("utf-8", errors="replace")
