import os

import pytest

import common
import gcc_environment as gcc


@pytest.fixture
def ws(root: str, host: gcc.host_environment, monkeypatch: pytest.MonkeyPatch) -> gcc.workspace:
    monkeypatch.setattr(host, "can_mount_tmpfs", lambda: True)
    config = gcc.configure(arch="arm-android", home=root)
    config.check()
    return gcc.workspace(config, host)


def test_layout_derives_from_config(ws) -> None:
    assert ws.build_dir == os.path.join(ws.home, "out", "build")
    assert ws.install_dir == os.path.join(ws.home, "out", "arm-linux-androideabi-linaro-7.4-2019.01")
    assert ws.sysroot_dir == os.path.join(ws.home, "sysroot", "arch-arm")
    assert ws.sources_dir == os.path.join(ws.home, "sources")


def test_clean_recreates_output_tree(ws) -> None:
    os.makedirs(os.path.join(ws.build_dir, "toolchain"))
    stale = os.path.join(ws.build_dir, "toolchain", "config.log")
    open(stale, "w").close()

    ws.clean()

    assert os.listdir(ws.build_dir) == []
    assert os.path.isdir(ws.install_dir)
    assert os.path.isdir(ws.sources_dir)


def test_clean_reports_permission_problem(ws, monkeypatch: pytest.MonkeyPatch) -> None:
    os.makedirs(ws.build_dir)

    def deny(path, *args, **kwargs):
        raise PermissionError(13, "Permission denied", path)

    monkeypatch.setattr(common.shutil, "rmtree", deny)

    with pytest.raises(common.io_error, match="permissions"):
        ws.clean()


def test_mount_is_skipped_when_not_allowed(root, host, commands) -> None:
    config = gcc.configure(arch="arm", home=root)
    ws = gcc.workspace(config, host)

    with ws.scratch():
        pass

    assert ws.allow_tmpfs is False
    assert commands.commands == []


def test_no_tmpfs_flag_disables_mount(root, host, commands, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(host, "can_mount_tmpfs", lambda: True)
    ws = gcc.workspace(gcc.configure(arch="arm", no_tmpfs=True, home=root), host)

    ws.mount()

    assert ws.mounted is False
    assert commands.commands == []


def test_unmount_is_idempotent(ws, commands) -> None:
    ws.mount()
    ws.unmount()
    ws.unmount()

    assert len(commands.find("mount -t tmpfs")) == 1
    assert commands.find("umount") == [f"umount {ws.build_dir}"]
    assert ws.mounted is False


def test_scratch_unmounts_on_abort(ws, commands) -> None:
    with pytest.raises(common.user_abort):
        with ws.scratch():
            assert ws.mounted is True
            raise common.user_abort()

    assert ws.mounted is False
    assert commands.commands[-1] == f"umount {ws.build_dir}"


def test_failed_mount_raises_io_error(ws, commands) -> None:
    commands.fail_when = lambda command: command.startswith("mount")

    with pytest.raises(common.io_error, match="Failed to mount tmpfs"):
        ws.mount()

    assert ws.mounted is False
    ws.unmount()
    assert not commands.find("umount")
