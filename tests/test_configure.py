import argparse
import json
import os

import pytest

import common
import gcc_environment as gcc


@pytest.mark.parametrize(
    ("arch", "target", "arch_type"),
    [
        ("arm", "arm-eabi", "arm"),
        ("arm-android", "arm-linux-androideabi", "arm"),
        ("arm64", "aarch64-linux-android", "arm64"),
    ],
)
def test_arch_resolves_target_and_family(tmp_path, arch: str, target: str, arch_type: str) -> None:
    config = gcc.configure(arch=arch, home=str(tmp_path))
    config.check()

    assert config.target == target
    assert config.arch_type == arch_type


@pytest.mark.parametrize("arch", [None, "mips", "aarch64"])
def test_absent_or_invalid_arch_is_rejected(tmp_path, arch: str | None) -> None:
    config = gcc.configure(arch=arch, home=str(tmp_path))

    with pytest.raises(common.config_error, match="Absent or invalid arch specified!"):
        config.check()


def test_invalid_package_and_jobs_are_rejected(tmp_path) -> None:
    with pytest.raises(common.config_error, match="Invalid compression"):
        gcc.configure(arch="arm", package="bz2", home=str(tmp_path)).check()
    with pytest.raises(common.config_error, match="Invalid jobs"):
        gcc.configure(arch="arm", jobs=0, home=str(tmp_path)).check()


def test_missing_root_is_rejected(tmp_path) -> None:
    config = gcc.configure(arch="arm", home=str(tmp_path / "missing"))

    with pytest.raises(common.config_error, match="does not exist"):
        config.check()


def test_configure_is_frozen_after_check(tmp_path) -> None:
    config = gcc.configure(arch="arm64", home=str(tmp_path))
    config.verbose = True
    config.check()

    with pytest.raises(AttributeError):
        config.verbose = False
    assert config.verbose is True


def test_version_list_is_pinned() -> None:
    versions = gcc.configure(arch="arm").version_list

    assert versions["binutils"] == "2.32"
    assert versions["gcc"] == "linaro-7.4-2019.01"
    assert versions["isl"] == "0.21"


def test_export_then_import_keeps_explicit_values(tmp_path) -> None:
    settings = tmp_path / "settings.json"
    exported = gcc.configure(arch="arm64", package="xz", no_tmpfs=True, home=str(tmp_path))
    exported.check()
    exported.save_config(argparse.Namespace(export_file=str(settings)))

    data = json.loads(settings.read_text())
    assert data["arch"] == "arm64"
    assert "_frozen" not in data

    imported = gcc.configure(package="gz", home=str(tmp_path))
    imported.load_config(argparse.Namespace(import_file=str(settings)))
    imported.check()

    assert imported.arch == "arm64"
    assert imported.no_tmpfs is True
    assert imported.package == "gz"


def test_import_of_invalid_file_fails(tmp_path) -> None:
    settings = tmp_path / "settings.json"
    settings.write_text("[1, 2, 3]")
    config = gcc.configure(home=str(tmp_path))

    with pytest.raises(common.config_error, match="Invalid configure file"):
        config.load_config(argparse.Namespace(import_file=str(settings)))
    with pytest.raises(common.config_error, match="failed"):
        config.load_config(argparse.Namespace(import_file=os.path.join(tmp_path, "missing.json")))
