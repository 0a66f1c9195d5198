"""Shared pytest fixtures: a scriptable fake kopia, a notify command and config files."""

from __future__ import annotations

import stat
from pathlib import Path

import pytest
import yaml

from models.run import RunContext


FAKE_KOPIA = """#!/bin/sh
echo "$*" >> "$FAKE_KOPIA_CALLS"
if [ "$*" = "policy list" ]; then
    cat "$FAKE_KOPIA_POLICIES"
    exit "${FAKE_KOPIA_POLICY_EXIT:-0}"
fi
if [ -n "$FAKE_KOPIA_SLEEP" ]; then
    echo "sleeping: $*"
    exec sleep "$FAKE_KOPIA_SLEEP"
fi
echo "kopia stdout: $*"
echo "kopia stderr: $*" >&2
if [ -n "$FAKE_KOPIA_FAIL" ] && [ "$*" = "$FAKE_KOPIA_FAIL" ]; then
    exit 3
fi
exit 0
"""

FAKE_NOTIFY = """#!/bin/sh
out="$(dirname "$0")"
echo call >> "$out/notify.calls"
: > "$out/notify.args"
for arg in "$@"; do
    printf '%s\\n' "$arg" >> "$out/notify.args"
done
cat > "$out/notify.body"
exit "${FAKE_NOTIFY_EXIT:-0}"
"""


def write_script(path: Path, content: str) -> Path:
    path.write_text(content)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class FakeKopia:
    """Handle on the fake kopia executable and the files it reads and writes."""

    def __init__(self, root: Path):
        self.root = root
        self.executable = write_script(root / "kopia", FAKE_KOPIA)
        self.calls_file = root / "kopia.calls"
        self.policies_file = root / "policies.txt"
        self.env_file = root / "kopia-environment.env"
        self.policies_file.write_text("")
        self.env = {
            "FAKE_KOPIA_CALLS": str(self.calls_file),
            "FAKE_KOPIA_POLICIES": str(self.policies_file),
        }
        self.write_env()

    def set_policies(self, *lines: str):
        self.policies_file.write_text("".join(f"{line}\n" for line in lines))

    def fail_on(self, command: str):
        self.env["FAKE_KOPIA_FAIL"] = command
        self.write_env()

    def set(self, key: str, value: str):
        self.env[key] = value
        self.write_env()

    def write_env(self):
        self.env_file.write_text("".join(f'{k}="{v}"\n' for k, v in self.env.items()))

    @property
    def calls(self) -> list[str]:
        if not self.calls_file.exists():
            return []
        return self.calls_file.read_text().splitlines()


class FakeNotify:
    """Notify command that records its argv, stdin and number of calls."""

    def __init__(self, root: Path):
        root.mkdir(parents=True, exist_ok=True)
        self.root = root
        self.executable = write_script(root / "notify", FAKE_NOTIFY)

    @property
    def call_count(self) -> int:
        calls = self.root / "notify.calls"
        return len(calls.read_text().splitlines()) if calls.exists() else 0

    @property
    def args(self) -> list[str]:
        return (self.root / "notify.args").read_text().splitlines()

    @property
    def body(self) -> str:
        return (self.root / "notify.body").read_text()


@pytest.fixture
def fake_kopia(tmp_path):
    return FakeKopia(tmp_path)


@pytest.fixture
def fake_notify(tmp_path):
    return FakeNotify(tmp_path / "notify")


@pytest.fixture
def log_dir(tmp_path):
    path = tmp_path / "logs"
    path.mkdir()
    return path


@pytest.fixture
def write_config(tmp_path, fake_kopia, fake_notify, log_dir):
    """Factory writing kopia-wrapper.yaml wired to the fakes; keyword args override sections."""

    def _write(notify: dict | None = None, **overrides) -> Path:
        data = {
            "kopia": {
                "executable": str(fake_kopia.executable),
                "environment_file": str(fake_kopia.env_file),
            },
            "notify": {
                "policy": "always",
                "subject": "%STATUS% %HOSTLONG%",
                "command": f"{fake_notify.executable} -s '[X] %SUBJECT%' a@b.com",
            },
            "log_dir": str(log_dir),
        }
        if notify is not None:
            data["notify"].update(notify)
        data.update(overrides)
        path = tmp_path / "kopia-wrapper.yaml"
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


@pytest.fixture
def run_context():
    return RunContext()


@pytest.fixture(autouse=True)
def _no_config_env(monkeypatch):
    monkeypatch.delenv("KOPIA_WRAPPER_CONFIG", raising=False)
    monkeypatch.delenv("FAKE_NOTIFY_EXIT", raising=False)
