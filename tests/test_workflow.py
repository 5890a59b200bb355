from __future__ import annotations

import asyncio
import json
import stat
import sys
from pathlib import Path

import pytest

from models.errors import WorkflowError
from services.workflow import WorkflowRunner, parse_statistics_output

_STAT = {
    "wifiName": "cafe",
    "totalMeasurements": 2,
    "averageSpeed": 15.004,
    "medianSpeed": 15,
    "minSpeed": 10,
    "maxSpeed": 20,
    "speedRange": 10,
    "locations": [{"lat": 1, "lon": 2}],
    "latestTimestamp": "2025-11-22T12:23:00.000Z",
}

posix_only = pytest.mark.skipif(sys.platform.startswith("win"), reason="requires a POSIX shell")


def test_parse_structured_object_line() -> None:
    output = "Workflow started\n" + json.dumps({"statistics": [_STAT]}) + "\nDone\n"

    (statistics,) = parse_statistics_output(output)

    assert statistics.network_name == "cafe"
    assert statistics.average_speed == 15.0
    assert statistics.unique_locations[0].lon == 2


def test_parse_structured_list_line() -> None:
    output = json.dumps([_STAT, dict(_STAT, wifiName="airport")])

    names = {item.network_name for item in parse_statistics_output(output)}

    assert names == {"cafe", "airport"}


def test_parse_scans_free_form_output_for_statistics_object() -> None:
    output = (
        "2025-11-22T12:00:00Z [USER LOG] Calculating statistics\n"
        "2025-11-22T12:00:01Z [SIMULATION] result: "
        + json.dumps({"statistics": [_STAT]})
        + " (took 12ms)\n"
    )

    (statistics,) = parse_statistics_output(output)

    assert statistics.network_name == "cafe"


def test_parse_drops_malformed_entries() -> None:
    output = json.dumps({"statistics": [_STAT, {"wifiName": "partial"}]})

    statistics = parse_statistics_output(output)

    assert [item.network_name for item in statistics] == ["cafe"]


@pytest.mark.parametrize("output", ["", "no json at all", '{"statistics": "nope"}', "{broken"])
def test_parse_without_statistics_is_empty(output: str) -> None:
    assert parse_statistics_output(output) == []


def _fake_cli(tmp_path: Path, script: str) -> Path:
    path = tmp_path / "fake-cre"
    path.write_text("#!/bin/sh\n" + script)
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return path


def _runner(tmp_path: Path, cli: Path | str, timeout: float = 10.0) -> WorkflowRunner:
    workflow_dir = tmp_path / "verifi-workflow"
    workflow_dir.mkdir(exist_ok=True)
    return WorkflowRunner(
        cli=str(cli),
        workflow_dir=workflow_dir,
        workflow_name="verifi-workflow",
        target="staging-settings",
        timeout=timeout,
    )


@posix_only
def test_trigger_passes_input_file_and_target(tmp_path: Path) -> None:
    record = tmp_path / "record.txt"
    cli = _fake_cli(
        tmp_path,
        f'echo "$@" > {record}\n'
        f'echo "$CRE_TARGET" >> {record}\n'
        f'cat "$5" >> {record}\n'
        'echo \'{"statistics": []}\'\n',
    )
    runner = _runner(tmp_path, cli)

    output = asyncio.run(runner.trigger({"dataPoints": [{"networkName": "cafe"}]}))

    lines = record.read_text().splitlines()
    arguments = lines[0].split()
    assert arguments[:3] == ["workflow", "trigger", "verifi-workflow-staging"]
    assert arguments[3] == "--input"
    assert not Path(arguments[4]).exists()
    assert lines[1] == "staging-settings"
    assert json.loads("\n".join(lines[2:])) == {"dataPoints": [{"networkName": "cafe"}]}
    assert json.loads(output) == {"statistics": []}


@posix_only
def test_simulate_uses_workflow_directory_name(tmp_path: Path) -> None:
    record = tmp_path / "record.txt"
    cli = _fake_cli(tmp_path, f'echo "$@" > {record}\n')
    runner = _runner(tmp_path, cli)

    asyncio.run(runner.simulate({"dataPoints": []}))

    assert record.read_text().split()[:3] == ["workflow", "simulate", "verifi-workflow"]


@posix_only
def test_non_zero_exit_raises_workflow_error(tmp_path: Path) -> None:
    cli = _fake_cli(tmp_path, 'echo "workflow not found" >&2\nexit 3\n')
    runner = _runner(tmp_path, cli)

    with pytest.raises(WorkflowError, match="status 3: workflow not found"):
        asyncio.run(runner.trigger({"dataPoints": []}))


@posix_only
def test_slow_command_times_out(tmp_path: Path) -> None:
    cli = _fake_cli(tmp_path, "exec sleep 5\n")
    runner = _runner(tmp_path, cli, timeout=0.2)

    with pytest.raises(WorkflowError, match="timed out"):
        asyncio.run(runner.trigger({"dataPoints": []}))


def test_missing_cli_is_unavailable(tmp_path: Path) -> None:
    runner = _runner(tmp_path, "definitely-not-an-installed-cli")

    assert runner.available() is False
    with pytest.raises(WorkflowError, match="unavailable"):
        asyncio.run(runner.trigger({"dataPoints": []}))


def test_deployed_name_follows_target() -> None:
    assert WorkflowRunner(target="production-settings").deployed_name == "verifi-workflow-production"
    assert WorkflowRunner(target="staging-settings").deployed_name == "verifi-workflow-staging"
