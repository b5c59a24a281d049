import json
import os
import sys
import textwrap

import pytest


# Ensure the repository root is on sys.path so tests can import local entrypoints
# like apps.server.app without requiring an editable install.
_REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)


# Stand-in for the `claude` executable. Replays a scenario file:
#   lines:     stdout lines (strings are written as-is, {"sleep": s} pauses,
#              {"stderr": text} writes one stderr line in sequence)
#   stderr:    lines written to stderr before stdout
#   linger:    seconds to sleep after the last line
#   exit_code: process exit status
# The argv it was started with is written to `argv_file`.
_FAKE_CLI = textwrap.dedent(
    """
    import json
    import os
    import sys
    import time

    with open(os.environ["FAKE_CLI_SCENARIO"], encoding="utf-8") as f:
        scenario = json.load(f)

    with open(scenario["argv_file"], "w", encoding="utf-8") as f:
        json.dump(sys.argv[1:], f)

    for line in scenario.get("stderr", []):
        sys.stderr.write(line + "\\n")
        sys.stderr.flush()

    for item in scenario.get("lines", []):
        if isinstance(item, dict) and "stderr" in item:
            sys.stderr.write(item["stderr"] + "\\n")
            sys.stderr.flush()
            continue
        if isinstance(item, dict):
            time.sleep(item["sleep"])
            continue
        sys.stdout.write(item + "\\n")
        sys.stdout.flush()

    time.sleep(scenario.get("linger", 0))
    sys.exit(scenario.get("exit_code", 0))
    """
)


class FakeCli:
    def __init__(self, tmp_path) -> None:
        self.script = tmp_path / "fake_claude.py"
        self.script.write_text(_FAKE_CLI, encoding="utf-8")
        self.scenario_file = tmp_path / "scenario.json"
        self.argv_file = tmp_path / "argv.json"

    def config(
        self,
        lines=(),
        *,
        exit_code: int = 0,
        stderr=(),
        linger: float = 0.0,
        inactivity_timeout_s: float = 30.0,
        line_limit_bytes: int = 16 * 1024 * 1024,
    ):
        from cligate.engine.supervisor import SupervisorConfig

        scenario = {
            "argv_file": str(self.argv_file),
            "lines": [_encode(item) for item in lines],
            "stderr": list(stderr),
            "linger": linger,
            "exit_code": exit_code,
        }
        self.scenario_file.write_text(json.dumps(scenario), encoding="utf-8")
        return SupervisorConfig(
            cli_command=(sys.executable, str(self.script)),
            inactivity_timeout_s=inactivity_timeout_s,
            line_limit_bytes=line_limit_bytes,
            env={"FAKE_CLI_SCENARIO": str(self.scenario_file)},
        )

    def argv(self) -> list[str]:
        return json.loads(self.argv_file.read_text(encoding="utf-8"))


def _encode(item):
    if isinstance(item, dict) and "sleep" not in item and "stderr" not in item:
        return json.dumps(item)
    return item


@pytest.fixture
def fake_cli(tmp_path) -> FakeCli:
    return FakeCli(tmp_path)


@pytest.fixture
def anyio_backend():
    return "asyncio"
