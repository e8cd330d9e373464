import pytest

import common
import gcc_environment as gcc


def test_unsupported_platform_is_rejected() -> None:
    with pytest.raises(common.environment_error, match="Unsupported host platform"):
        gcc.host_environment("Windows", "AMD64")


def test_linux_host_triplet_and_make() -> None:
    host = gcc.host_environment("Linux", "x86_64")

    assert host.triplet == "x86_64-linux-gnu"
    assert host.make == "make"


def test_darwin_host_triplet_and_make() -> None:
    host = gcc.host_environment("Darwin", "arm64")

    assert host.triplet == "aarch64-apple-darwin"
    assert host.make == "gmake"
    assert host.can_mount_tmpfs() is False


def test_jobs_derive_from_cores_and_threads(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(gcc.psutil, "cpu_count", lambda logical=True: 8 if logical else 4)

    host = gcc.host_environment("Linux", "x86_64")

    assert (host.cores, host.threads, host.jobs) == (4, 8, 16)


def test_missing_tool_names_tool_and_install_method(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(gcc.shutil, "which", lambda name: None if name == "aria2c" else f"/usr/bin/{name}")

    with pytest.raises(common.environment_error, match='"aria2c".*apt install aria2'):
        gcc.host_environment("Linux", "x86_64").check_tools()


def test_darwin_requires_gnu_tools(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(gcc.shutil, "which", lambda name: None if name == "gsed" else f"/usr/local/bin/{name}")

    with pytest.raises(common.environment_error, match="brew install gnu-sed"):
        gcc.host_environment("Darwin", "x86_64").check_tools()


def test_all_tools_present(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(gcc.shutil, "which", lambda name: f"/usr/bin/{name}")

    gcc.host_environment("Darwin", "x86_64").check_tools()


@pytest.mark.parametrize("output", ["GNU Make 4.3\nBuilt for x86_64-pc-linux-gnu\n", "GNU Make 3.81\n"])
def test_gnu_make_version_accepted(commands, output: str) -> None:
    commands.stdout = output

    gcc.host_environment("Linux", "x86_64").check_make_version()

    assert commands.commands == ["make --version"]


@pytest.mark.parametrize(
    ("output", "message"),
    [("GNU Make 3.80\n", "too old"), ("bmake 20200710\n", "is not GNU Make")],
)
def test_unusable_make_is_rejected(commands, output: str, message: str) -> None:
    commands.stdout = output

    with pytest.raises(common.environment_error, match=message):
        gcc.host_environment("Darwin", "x86_64").check_make_version()


def test_failing_make_is_rejected(commands) -> None:
    commands.fail_when = lambda command: True

    with pytest.raises(common.environment_error, match="is not GNU Make"):
        gcc.host_environment("Linux", "x86_64").check_make_version()
