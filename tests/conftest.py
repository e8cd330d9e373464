"""Shared test fixtures."""

import os
import subprocess
from collections.abc import Callable

import pytest

import common
import gcc_environment as gcc
from download_source import all_lib_list


class command_recorder:
    """Replaces common.run_command, records commands and fails the ones matching fail_when."""

    def __init__(self) -> None:
        self.commands: list[str] = []
        self.fail_when: Callable[[str], bool] = lambda command: False
        self.stdout = ""

    def __call__(
        self, command: str, ignore_error: bool = False, capture: bool = False, echo: bool = True, dry_run: bool | None = None
    ) -> subprocess.CompletedProcess[str] | None:
        self.commands.append(command)
        if self.fail_when(command):
            if ignore_error:
                return None
            raise common.build_error(command, 2)
        return subprocess.CompletedProcess(command, 0, stdout=self.stdout, stderr="")

    def find(self, fragment: str) -> list[str]:
        return [command for command in self.commands if fragment in command]


@pytest.fixture(autouse=True)
def reset_global_switch():
    yield
    common.command_dry_run.set(False)
    common.command_output.set(False)


@pytest.fixture
def commands(monkeypatch: pytest.MonkeyPatch) -> command_recorder:
    recorder = command_recorder()
    monkeypatch.setattr(common, "run_command", recorder)
    return recorder


@pytest.fixture
def host(monkeypatch: pytest.MonkeyPatch) -> gcc.host_environment:
    env = gcc.host_environment("Linux", "x86_64")
    monkeypatch.setattr(env, "check", lambda: None)
    monkeypatch.setattr(env, "can_mount_tmpfs", lambda: False)
    return env


@pytest.fixture
def root(tmp_path) -> str:
    """A root directory with a CLooG tree and the toolchain configure script in place."""
    os.makedirs(os.path.join(all_lib_list.get_cloog_dir(str(tmp_path)), "isl"))
    os.makedirs(os.path.join(tmp_path, "build", "root"))
    return str(tmp_path)


@pytest.fixture
def make_sources(root: str) -> Callable[..., None]:
    """Creates empty cached archives for the given libs under the root."""

    def make(*libs: str) -> None:
        sources_dir = os.path.join(root, "sources")
        os.makedirs(sources_dir, exist_ok=True)
        for archive in all_lib_list.archive_list:
            if archive.lib in libs:
                open(archive.get_path(sources_dir), "w").close()

    return make
