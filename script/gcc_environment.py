import os
import re
import glob
import time
import shutil
import platform
import psutil
import packaging.version as version
import common
from download_source import lib_version, all_lib_list


class arch_info:
    """目标架构对应的平台名称和架构类别"""

    target: str  # 目标平台名称
    arch_type: str  # 架构类别，用于选择sysroot

    def __init__(self, target: str, arch_type: str) -> None:
        self.target = target
        self.arch_type = arch_type


arch_list: dict[str, arch_info] = {
    "arm": arch_info("arm-eabi", "arm"),
    "arm-android": arch_info("arm-linux-androideabi", "arm"),
    "arm64": arch_info("aarch64-linux-android", "arm64"),
}

compression_list = ("gz", "xz")

# 宿主machine字段到gnu风格架构名的映射
machine_alias_list = {"arm64": "aarch64", "AMD64": "x86_64"}

minimum_make_version = "3.81"


class configure(common.basic_configure):
    arch: str | None  # 目标架构
    no_update: bool  # 是否跳过下载和更新
    no_tmpfs: bool  # 是否禁用tmpfs
    package: str | None  # 打包格式，None为不打包
    verbose: bool  # 是否显示全部输出
    jobs: int | None  # 并发数，None为根据cpu自动推导

    def __init__(
        self,
        arch: str | None = None,
        no_update: bool = False,
        no_tmpfs: bool = False,
        package: str | None = None,
        verbose: bool = False,
        jobs: int | None = None,
        home: str = os.getcwd(),
    ) -> None:
        super().__init__(home)
        self.arch = arch
        self.no_update = no_update
        self.no_tmpfs = no_tmpfs
        self.package = package
        self.verbose = verbose
        self.jobs = jobs

    def __setattr__(self, name: str, value) -> None:
        if self.__dict__.get("_frozen"):
            raise AttributeError(f'The configure is frozen, cannot set "{name}".')
        super().__setattr__(name, value)

    def check(self) -> None:
        """检查配置是否合法，检查通过后配置不可再修改"""
        common._check_home(self.home)
        if self.arch not in arch_list:
            raise common.config_error("Absent or invalid arch specified!")
        if self.package is not None and self.package not in compression_list:
            raise common.config_error(f'Invalid compression "{self.package}". Possible values: {", ".join(compression_list)}.')
        if self.jobs is not None and self.jobs < 1:
            raise common.config_error(f"Invalid jobs: {self.jobs}.")
        self._frozen = True

    @property
    def target(self) -> str:
        return arch_list[self.arch].target

    @property
    def arch_type(self) -> str:
        return arch_list[self.arch].arch_type

    @property
    def version_list(self) -> dict[str, str]:
        """各组件的固定版本"""
        return {lib.name: str(lib) for lib in lib_version}


class host_environment:
    platform: str  # 宿主平台，即platform.system()
    machine: str  # 宿主架构
    triplet: str  # 宿主平台名称
    cores: int  # 物理核心数
    threads: int  # 逻辑线程数
    jobs: int  # 根据cpu推导的并发数
    make: str  # make程序名

    def __init__(self, platform_name: str | None = None, machine: str | None = None) -> None:
        self.platform = platform_name or platform.system()
        if self.platform not in ("Linux", "Darwin"):
            raise common.environment_error(f'Unsupported host platform "{self.platform}". Only Linux and macOS are supported.')
        machine = machine or platform.machine()
        self.machine = machine_alias_list.get(machine, machine)
        self.triplet = f"{self.machine}-apple-darwin" if self.platform == "Darwin" else f"{self.machine}-linux-gnu"
        self.threads = psutil.cpu_count() or 1
        self.cores = psutil.cpu_count(logical=False) or self.threads
        self.jobs = max(1, self.cores * self.threads // 2)
        self.make = "gmake" if self.platform == "Darwin" else "make"

    def check_tools(self) -> None:
        """检查所需工具是否都在PATH中

        Raises:
            environment_error: 缺少工具时抛出异常
        """
        for tool in all_lib_list.get_tool_list(self.platform):
            if shutil.which(tool.name) is None:
                raise common.environment_error(
                    f'Cannot find "{tool.name}". Please install it with "{tool.install_hint(self.platform)}".'
                )

    def check_make_version(self) -> None:
        """检查make是否是足够新的GNU Make

        Raises:
            environment_error: make不是GNU Make或版本过旧时抛出异常
        """
        result = common.run_command(f"{self.make} --version", ignore_error=True, capture=True, echo=False, dry_run=False)
        match = re.search(r"GNU Make (\d+(?:\.\d+)*)", result.stdout if result else "")
        if not match:
            raise common.environment_error(f'"{self.make}" is not GNU Make.')
        if version.Version(match[1]) < version.Version(minimum_make_version):
            raise common.environment_error(f"GNU Make {match[1]} is too old, {minimum_make_version} or newer is required.")

    def check(self) -> None:
        self.check_tools()
        self.check_make_version()

    def can_mount_tmpfs(self) -> bool:
        """是否可以挂载tmpfs，macOS下不支持，Linux下需要root权限"""
        return self.platform != "Darwin" and os.geteuid() == 0


class workspace:
    home: str  # 源码树根目录
    out_dir: str  # 输出目录
    sources_dir: str  # 压缩包缓存目录
    build_dir: str  # 构建临时目录
    install_name: str  # 安装目录名
    install_dir: str  # 工具链安装目录
    sysroot_dir: str  # 目标平台sysroot
    toolchain_source_dir: str  # 工具链顶层configure所在目录
    patch_dir: str  # 补丁目录
    allow_tmpfs: bool  # 是否允许挂载tmpfs
    mounted: bool  # tmpfs是否已挂载

    def __init__(self, config: configure, host: host_environment) -> None:
        self.home = config.home
        self.out_dir = os.path.join(self.home, "out")
        self.sources_dir = os.path.join(self.home, "sources")
        self.build_dir = os.path.join(self.out_dir, "build")
        self.install_name = f"{config.target}-{lib_version.gcc}"
        self.install_dir = os.path.join(self.out_dir, self.install_name)
        self.sysroot_dir = os.path.join(self.home, "sysroot", f"arch-{config.arch_type}")
        self.toolchain_source_dir = os.path.join(self.home, "build", "root")
        self.patch_dir = os.path.join(self.home, "patches")
        self.allow_tmpfs = not config.no_tmpfs and host.can_mount_tmpfs()
        self.mounted = False

    def clean(self) -> None:
        """清理上次构建的临时目录并创建输出目录

        Raises:
            io_error: 无法删除临时目录时抛出异常
        """
        common.header("CLEANING UP")
        try:
            common.remove_if_exists(self.build_dir)
        except OSError as e:
            raise common.io_error(f"Failed to remove 'out/build': {e}. Please check if you have proper permissions.")
        if os.path.exists(self.build_dir) and not common.command_dry_run.get():
            raise common.io_error("Failed to remove 'out/build'. Please check if you have proper permissions.")
        for dir in (self.build_dir, self.install_dir, self.sources_dir):
            common.mkdir(dir, False)
        common.echo("Clean up successful!")

    def mount(self) -> None:
        """在构建临时目录上挂载tmpfs，不允许挂载时直接返回

        Raises:
            io_error: 挂载失败时抛出异常
        """
        if not self.allow_tmpfs or self.mounted:
            return
        size_MB = psutil.virtual_memory().total // 1048576 // 2
        try:
            common.run_command(f"mount -t tmpfs -o rw,exec,size={size_MB}M tmpfs {self.build_dir}")
        except common.build_error as e:
            raise common.io_error(f"Failed to mount tmpfs on {self.build_dir}: {e}")
        self.mounted = True

    def unmount(self) -> None:
        """卸载tmpfs，可重复调用"""
        if not self.mounted:
            return
        self.mounted = False
        if common.run_command(f"umount {self.build_dir}", ignore_error=True) is None and not common.command_dry_run.get():
            common.error(f"Failed to unmount tmpfs on {self.build_dir}, please unmount it manually.")

    def scratch(self) -> "tmpfs_guard":
        return tmpfs_guard(self)


class tmpfs_guard:
    """在进入时挂载tmpfs并在退出时卸载，包括异常和信号导致的退出"""

    ws: workspace

    def __init__(self, ws: workspace) -> None:
        self.ws = ws

    def __enter__(self) -> workspace:
        self.ws.mount()
        return self.ws

    def __exit__(self, *_) -> None:
        self.ws.unmount()


class package_artifact:
    path: str  # 压缩包路径
    size: int  # 压缩包大小

    def __init__(self, path: str, size: int) -> None:
        self.path = path
        self.size = size


class environment:
    config: configure  # 构建配置
    host: host_environment  # 宿主环境
    ws: workspace  # 工作目录
    jobs: int  # 并发数
    bin_dir: str  # 安装后可执行文件所在目录
    gcc_path: str  # 安装后gcc所在路径
    cloog_dir: str  # CLooG源代码树所在目录
    cloog_option: list[str]  # CLooG配置选项
    toolchain_option: list[str]  # 工具链配置选项

    def __init__(self, config: configure, host: host_environment, ws: workspace) -> None:
        self.config = config
        self.host = host
        self.ws = ws
        self.jobs = config.jobs or host.jobs
        self.bin_dir = os.path.join(ws.install_dir, "bin")
        self.gcc_path = os.path.join(self.bin_dir, f"{config.target}-gcc")
        self.cloog_dir = all_lib_list.get_cloog_dir(ws.home)
        self.cloog_option = [
            f"--prefix={os.path.join(ws.sysroot_dir, 'usr')}",
            "--with-isl=bundled",
            "--disable-shared",
        ]
        self.toolchain_option = [
            f"--host={host.triplet}",
            f"--build={host.triplet}",
            f"--target={config.target}",
            f"--with-pkgversion='{lib_version.gcc}'",
            *(f"--with-{lib}-version={version}" for lib, version in config.version_list.items()),
            "--disable-multilib",
            "--disable-werror",
            "--disable-option-checking",
            "--disable-docs",
            "--disable-shared",
            "--enable-threads",
            "--enable-ld=default",
            "--with-host-libstdcxx='-static-libstdc++ -Wl,-lstdc++ -lm'",
            f"--prefix={ws.install_dir}",
            f"--with-sysroot={ws.sysroot_dir}",
            f"--with-gxx-include-dir={os.path.join(ws.sysroot_dir, 'c++')}",
        ]

    def register_in_env(self) -> None:
        """注册安装路径到环境变量"""
        os.environ["PATH"] = f"{self.bin_dir}:{os.environ['PATH']}"

    def enter_build_dir(self, name: str) -> str:
        """创建干净的构建目录

        Args:
            name (str): 构建目录名，位于out/build下

        Returns:
            str: 构建目录
        """
        build_dir = os.path.join(self.ws.build_dir, name)
        common.mkdir(build_dir)
        return build_dir

    def configure(self, configure_path: str, *option: str) -> None:
        """在当前目录下运行configure

        Args:
            configure_path (str): configure脚本路径
            option (tuple[str, ...]): 配置选项
        """
        options = " ".join(("", *option))
        common.run_command(f"{configure_path}{options}")

    def make(self, *target: str) -> None:
        """在当前目录下运行make

        Args:
            target (tuple[str, ...]): 要编译的目标
        """
        targets = " ".join(("", *target))
        common.run_command(f"{self.host.make}{targets} -j {self.jobs}")

    def apply_patch(self, src_dir: str, lib: str) -> None:
        """应用patches/<lib>下的全部补丁，已应用的补丁会被跳过

        Args:
            src_dir (str): 源代码树
            lib (str): 补丁子目录名
        """
        for patch in sorted(glob.glob(os.path.join(self.ws.patch_dir, lib, "*.patch"))):
            if common.run_command(f"git -C {src_dir} apply --reverse --check {patch}", ignore_error=True, echo=False):
                common.echo(f"[android-gcc] Patch {os.path.basename(patch)} has been applied, skip.")
                continue
            common.run_command(f"git -C {src_dir} apply {patch}")

    def build_cloog(self) -> None:
        """编译安装graphite优化所需的CLooG和isl"""
        common.header("BUILDING CLOOG")
        if not os.path.isdir(self.cloog_dir):
            raise common.missing_source_error(self.cloog_dir, "CLooG directory does not exist!")
        common.run_command(f"git -C {os.path.join(self.cloog_dir, 'isl')} checkout isl-{lib_version.isl}")
        self.apply_patch(self.cloog_dir, "cloog")
        with common.chdir_guard(self.cloog_dir):
            common.run_command("./autogen.sh")
        with common.chdir_guard(self.enter_build_dir("cloog")):
            try:
                self.configure(os.path.join(self.cloog_dir, "configure"), *self.cloog_option)
                self.make()
                self.make("install")
            except common.build_error as e:
                raise common.build_error(e.command, e.returncode, "Error while building CLooG!") from e

    def build_toolchain(self) -> None:
        """编译安装工具链"""
        common.header("BUILDING TOOLCHAIN")
        with common.chdir_guard(self.enter_build_dir("toolchain")):
            try:
                self.configure(os.path.join(self.ws.toolchain_source_dir, "configure"), *self.toolchain_option)
                self.make()
                self.make("install")
            except common.build_error as e:
                raise common.build_error(e.command, e.returncode, "Error while building toolchain!") from e

    def build(self) -> None:
        """构建依赖库和工具链"""
        self.build_cloog()
        self.register_in_env()
        self.build_toolchain()

    def get_compress_command(self, compression: str, tar_name: str) -> str:
        """获取压缩命令

        Args:
            compression (str): 压缩格式
            tar_name (str): 要压缩的tar包
        """
        match compression:
            case "gz":
                program = "pigz" if common.has_pigz() else "gzip"
                return f"{program} -f9 {tar_name}"
            case "xz":
                memory_MB = psutil.virtual_memory().available // 1048576
                return f"xz -fe9 -T {self.host.cores} --memlimit={memory_MB}MiB {tar_name}"
            case _:
                raise common.config_error(f'Invalid compression "{compression}". Possible values: {", ".join(compression_list)}.')

    def package(self) -> package_artifact | None:
        """按配置压缩安装好的工具链

        Raises:
            config_error: 压缩格式不合法，此时不会创建任何文件
            build_error: 压缩失败，此时会删除不完整的压缩包

        Returns:
            package_artifact | None: 压缩包，未要求打包时返回None
        """
        compression = self.config.package
        if compression is None:
            return None
        tar_name = f"{self.ws.install_name}-{time.strftime('%Y%m%d', time.gmtime())}.tar"
        compress_command = self.get_compress_command(compression, tar_name)
        package_name = f"{tar_name}.{compression}"
        package_path = os.path.join(self.ws.out_dir, package_name)

        common.header("PACKAGING TOOLCHAIN")
        common.echo(f"Target file: {package_name}")
        with common.chdir_guard(self.ws.out_dir):
            try:
                common.run_command(f"tar --exclude=.DS_Store -cf {tar_name} {self.ws.install_name}")
                common.run_command(compress_command)
            except BaseException:
                for path in (tar_name, package_name):
                    common.remove_if_exists(os.path.join(self.ws.out_dir, path))
                raise
        size = os.path.getsize(package_path) if os.path.exists(package_path) else 0
        return package_artifact(package_path, size)

    def get_gcc_version(self) -> str | None:
        """获取新构建的gcc的版本信息

        Returns:
            str | None: gcc --version输出的第一行，gcc不存在时返回None
        """
        if not os.path.exists(self.gcc_path):
            return None
        result = common.run_command(f"{self.gcc_path} --version", ignore_error=True, capture=True, echo=False, dry_run=False)
        return result.stdout.splitlines()[0] if result and result.stdout else None


assert __name__ != "__main__", "Import this file instead of running it directly."
