import os
import common
from download_source import *
from gcc_environment import workspace


def _exist_echo(lib: str) -> None:
    """包已存在时显示提示"""
    common.echo(f"[android-gcc] {lib} exists, skip download.")


def download_archive(archive: source_archive, sources_dir: str) -> None:
    """使用aria2c分段下载压缩包，支持断点续传

    Args:
        archive (source_archive): 要下载的压缩包
        sources_dir (str): 压缩包缓存目录
    """
    common.header(f"DOWNLOADING {archive.lib.upper()}")
    common.run_command(f"aria2c -c -x15 -d {sources_dir} -o {archive.file} {archive.url}")


def download(ws: workspace) -> None:
    """下载不存在的压缩包，不会重新下载已有的压缩包

    Args:
        ws (workspace): 工作目录
    """
    common.mkdir(ws.sources_dir, False)
    for archive in all_lib_list.archive_list:
        if os.path.exists(archive.get_path(ws.sources_dir)):
            _exist_echo(archive.file)
        else:
            download_archive(archive, ws.sources_dir)


def verify(ws: workspace) -> None:
    """检查所有本地源代码是否存在，不进行任何网络操作

    Args:
        ws (workspace): 工作目录

    Raises:
        missing_source_error: 缺少源代码时抛出异常，只报告第一个缺失的项
    """
    for archive in all_lib_list.archive_list:
        if not os.path.exists(archive.get_path(ws.sources_dir)):
            raise common.missing_source_error(archive.file)
    cloog_dir = all_lib_list.get_cloog_dir(ws.home)
    if not os.path.isdir(cloog_dir):
        raise common.missing_source_error(os.path.relpath(cloog_dir, ws.home))


def fetch(ws: workspace, no_update: bool) -> None:
    """获取源代码，禁用更新时只检查本地源代码是否完整

    Args:
        ws (workspace): 工作目录
        no_update (bool): 是否禁用更新
    """
    if no_update:
        verify(ws)
    else:
        download(ws)


def get_decompressor(archive_path: str) -> str:
    """根据扩展名选择解压程序

    Args:
        archive_path (str): 压缩包路径

    Raises:
        config_error: 不支持的扩展名
    """
    if archive_path.endswith(".gz"):
        return "pigz" if common.has_pigz() else "gzip"
    elif archive_path.endswith(".xz"):
        return "xz"
    raise common.config_error(f'Unknown archive format "{os.path.basename(archive_path)}".')


def extract(archive_path: str, dest: str) -> bool:
    """解压压缩包并去掉顶层目录，目标目录已存在时跳过

    Args:
        archive_path (str): 压缩包路径
        dest (str): 解压目标目录

    Raises:
        build_error: 解压失败，此时会删除不完整的目标目录

    Returns:
        bool: 是否进行了解压
    """
    if os.path.exists(dest):
        common.echo(f"{dest} already exists, skipping...")
        return False
    decompressor = get_decompressor(archive_path)
    common.mkdir(dest)
    try:
        common.run_command(f"tar --use-compress-program={decompressor} -xf {archive_path} -C {dest} --strip-components=1")
    except BaseException:
        # 包括中断在内，任何失败都不能留下不完整的目录
        common.remove_if_exists(dest)
        raise
    return True


def extract_all(ws: workspace) -> None:
    """解压所有压缩包到对应的源代码目录

    Args:
        ws (workspace): 工作目录
    """
    common.header("EXTRACTING DOWNLOADED TARBALLS")
    for archive in all_lib_list.archive_list:
        extract(archive.get_path(ws.sources_dir), archive.get_extract_dir(ws.home))


def update_repos(ws: workspace, no_update: bool) -> None:
    """更新CLooG的git子模块

    Args:
        ws (workspace): 工作目录
        no_update (bool): 是否禁用更新
    """
    if no_update:
        return
    cloog_dir = all_lib_list.get_cloog_dir(ws.home)
    if not os.path.isdir(cloog_dir):
        raise common.missing_source_error(cloog_dir, "CLooG directory does not exist!")
    common.header("UPDATING SOURCES")
    with common.chdir_guard(cloog_dir):
        common.run_command("./get_submodules.sh")


__all__ = [
    "download_archive",
    "download",
    "verify",
    "fetch",
    "get_decompressor",
    "extract",
    "extract_all",
    "update_repos",
]
