import enum
import os
import typing


class lib_version(enum.StrEnum):
    """各组件的固定版本"""

    binutils = "2.32"
    gcc = "linaro-7.4-2019.01"
    cloog = "current"
    gmp = "6.1.2"
    isl = "0.21"
    mpc = "1.1.0"
    mpfr = "4.0.2"


class source_archive:
    lib: str  # 包名
    version: lib_version  # 包版本
    file: str  # 下载后的文件名
    url: str  # 下载地址

    def __init__(self, lib: str, suffix: str, url_dir: str) -> None:
        self.lib = lib
        self.version = lib_version[lib]
        self.file = f"{lib}-{self.version}.tar.{suffix}"
        self.url = f"{url_dir}/{self.file}"

    def get_path(self, sources_dir: str) -> str:
        """获取下载后压缩包所在路径

        Args:
            sources_dir (str): 压缩包缓存目录
        """
        return os.path.join(sources_dir, self.file)

    def get_extract_dir(self, home: str) -> str:
        """获取解压后源代码树所在目录，如<home>/mpfr/mpfr-4.0.2

        Args:
            home (str): 源码树根目录
        """
        return os.path.join(home, self.lib, f"{self.lib}-{self.version}")


class host_tool:
    name: str  # 可执行文件名
    brew_package: str  # macOS下的Homebrew包名
    apt_package: str  # Linux下的apt包名

    def __init__(self, name: str, brew_package: str | None = None, apt_package: str | None = None) -> None:
        self.name = name
        self.brew_package = brew_package or name
        self.apt_package = apt_package or name

    def install_hint(self, platform: str) -> str:
        """获取安装该工具的提示

        Args:
            platform (str): 宿主平台，即platform.system()的返回值
        """
        return f"brew install {self.brew_package}" if platform == "Darwin" else f"apt install {self.apt_package}"


class all_lib_list:
    # 按下载顺序排列
    archive_list: typing.Final[tuple[source_archive, ...]] = (
        source_archive("mpfr", "xz", "https://www.mpfr.org/mpfr-current"),
        source_archive("gmp", "xz", "https://ftp.gnu.org/gnu/gmp"),
        source_archive("mpc", "gz", "https://ftp.gnu.org/gnu/mpc"),
    )
    # 所有平台都需要的工具
    common_tool_list: typing.Final[tuple[host_tool, ...]] = (
        host_tool("aria2c", "aria2", "aria2"),
        host_tool("git"),
        host_tool("tar"),
        host_tool("gzip"),
        host_tool("xz", "xz", "xz-utils"),
    )
    # macOS自带的BSD工具无法构建gcc，需要额外安装GNU版本
    darwin_tool_list: typing.Final[tuple[host_tool, ...]] = (
        host_tool("gmake", "make"),
        host_tool("gsed", "gnu-sed"),
        host_tool("bison"),
        host_tool("m4"),
    )
    linux_tool_list: typing.Final[tuple[host_tool, ...]] = (host_tool("make"),)

    @classmethod
    def get_tool_list(cls, platform: str) -> tuple[host_tool, ...]:
        """获取指定宿主平台需要的全部工具

        Args:
            platform (str): 宿主平台，即platform.system()的返回值
        """
        return (*cls.common_tool_list, *(cls.darwin_tool_list if platform == "Darwin" else cls.linux_tool_list))

    @staticmethod
    def get_cloog_dir(home: str) -> str:
        """获取CLooG源代码树所在目录

        Args:
            home (str): 源码树根目录
        """
        return os.path.join(home, "cloog", f"cloog-{lib_version.cloog}")


__all__ = [
    "lib_version",
    "source_archive",
    "host_tool",
    "all_lib_list",
]
