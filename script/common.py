import functools
import os
import shutil
import json
import argparse
import inspect
import itertools
import subprocess
from collections.abc import Callable
from typing import ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")


class toolchain_error(RuntimeError):
    """构建流程中所有致命错误的基类，任何一个都会终止流程"""


class config_error(toolchain_error):
    """命令行参数或配置文件不合法"""


class environment_error(toolchain_error):
    """宿主环境缺少必要工具或宿主平台不受支持"""


class io_error(toolchain_error):
    """工作目录清理或tmpfs挂载失败"""


class missing_source_error(toolchain_error):
    """禁用更新时缺少本地缓存的源代码"""

    source: str  # 缺失的源代码包

    def __init__(self, source: str, message: str | None = None) -> None:
        self.source = source
        super().__init__(message or f'Cannot find "{source}". Run without --no-update to download it.')


class build_error(toolchain_error):
    """外部命令返回非零值"""

    command: str  # 执行失败的命令
    returncode: int  # 命令返回值

    def __init__(self, command: str, returncode: int, message: str | None = None) -> None:
        self.command = command
        self.returncode = returncode
        super().__init__(message or f'Command "{command}" failed with errno={returncode}.')


class user_abort(toolchain_error):
    """用户通过信号中止构建"""

    def __init__(self, message: str = "Manually aborted!") -> None:
        super().__init__(message)


class color:
    """终端转义序列"""

    bold = "\033[1m"
    red = "\033[01;31m"
    reset = "\033[0m"


class command_dry_run:
    """是否只显示命令而不实际执行"""

    _dry_run: bool = False

    @classmethod
    def get(cls) -> bool:
        return cls._dry_run

    @classmethod
    def set(cls, dry_run: bool) -> None:
        cls._dry_run = dry_run


class command_output:
    """是否显示外部命令输出和进度信息，不显示时丢弃这些输出，错误和最终报告总会显示"""

    _verbose: bool = False

    @classmethod
    def get(cls) -> bool:
        return cls._verbose

    @classmethod
    def set(cls, verbose: bool) -> None:
        cls._verbose = verbose

    @classmethod
    def sink(cls) -> int | None:
        """外部命令输出的去向

        Returns:
            int | None: 显示时为None，即继承当前终端，否则为subprocess.DEVNULL
        """
        return None if cls._verbose else subprocess.DEVNULL


def echo(message: str = "") -> None:
    """仅在显示进度信息时打印

    Args:
        message (str, optional): 要打印的信息. 默认为空行.
    """
    if command_output.get():
        print(message, flush=True)


def header(title: str, first_echo: bool = True, second_echo: bool = True, force: bool = False) -> None:
    """打印带边框的标题，用于提示当前步骤

    Args:
        title (str): 标题
        first_echo (bool, optional): 是否在标题前输出空行. 默认输出.
        second_echo (bool, optional): 是否在标题后输出空行. 默认输出.
        force (bool, optional): 是否忽略verbose设置强制输出. 默认不强制.
    """
    output = print if force else echo
    border = "=" * (len(title) + 8)
    if first_echo:
        output("")
    output(f"{color.red}{border}")
    output(f"==  {title}  ==")
    output(f"{border}{color.reset}")
    if second_echo:
        output("")


def error(message: str) -> None:
    """打印红色错误信息，不受verbose设置影响"""
    print()
    print(f"{color.red}{message}{color.reset}", flush=True)


def _support_dry_run(echo_fn: Callable[..., str | None] | None = None) -> Callable[[Callable[P, R]], Callable[P, R | None]]:
    """根据dry_run参数和command_dry_run中的全局状态确定是否只回显命令而不执行，若fn没有dry_run参数则只会使用全局状态

    Args:
        echo_fn (Callable[..., str | None] | None, optional): 回调函数，返回要显示的命令字符串或None，无回调或返回None时不显示命令，所有参数需要能在主函数的参数列表中找到，默认为无回调.
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R | None]:
        signature = inspect.signature(fn)

        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R | None:
            bound_args = signature.bind(*args, **kwargs)
            bound_args.apply_defaults()
            dry_run: bool | None = bound_args.arguments.get("dry_run")
            assert isinstance(dry_run, bool | None), f"The param dry_run must be a bool or None."
            skip = dry_run is None and command_dry_run.get() or bool(dry_run)
            if echo_fn:
                param_list: list = []
                for key in inspect.signature(echo_fn).parameters.keys():
                    assert (
                        key in bound_args.arguments
                    ), f"The param {key} of echo_fn is not in the param list of fn. Every param of echo_fn should be able to find in the param list of fn."
                    param_list.append(bound_args.arguments[key])
                message = echo_fn(*param_list)
                # dry run时命令总要显示
                if message is not None and skip:
                    print(message)
                elif message is not None:
                    echo(message)
            if skip:
                return
            return fn(*bound_args.args, **bound_args.kwargs)

        return wrapper

    return decorator


@_support_dry_run(lambda command, echo: f"[android-gcc] Run command: {command}" if echo else None)
def run_command(
    command: str, ignore_error: bool = False, capture: bool = False, echo: bool = True, dry_run: bool | None = None
) -> subprocess.CompletedProcess[str] | None:
    """运行指定命令, 若不忽略错误, 则在命令执行出错时抛出build_error, 反之打印错误码

    Args:
        command (str): 要运行的命令
        ignore_error (bool, optional): 是否忽略错误. 默认不忽略错误.
        capture (bool, optional): 是否捕获命令输出，默认为不捕获.
        echo (bool, optional): 是否回显信息，设置为False将不回显任何信息，包括错误提示，默认为回显.
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.

    Raises:
        build_error: 命令执行失败且ignore_error为False时抛出异常

    Returns:
        None | subprocess.CompletedProcess[str]: 在命令正常执行结束后返回执行结果，否则返回None
    """

    if capture:
        pipe = subprocess.PIPE  # capture为True，不论是否回显都需要捕获输出
    elif echo:
        pipe = command_output.sink()  # verbose时正常输出，否则丢弃输出
    else:
        pipe = subprocess.DEVNULL  # 不回显又不捕获输出则丢弃输出
    try:
        result = subprocess.run(command, stdout=pipe, stderr=pipe, shell=True, check=True, text=True)
    except subprocess.CalledProcessError as e:
        if not ignore_error:
            raise build_error(command, e.returncode)
        elif echo:
            print(f'Command "{command}" failed with errno={e.returncode}, but it is ignored.')
        return None
    return result


@_support_dry_run(lambda path: f"[android-gcc] Create directory {path}.")
def mkdir(path: str, remove_if_exist=True, dry_run: bool | None = None) -> None:
    """创建目录

    Args:
        path (str): 要创建的目录
        remove_if_exist (bool, optional): 是否先删除已存在的同名目录. 默认先删除已存在的同名目录.
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
    """
    if remove_if_exist and os.path.exists(path):
        shutil.rmtree(path)
    os.makedirs(path, exist_ok=True)


@_support_dry_run(lambda path: f"[android-gcc] Remove {path}.")
def remove(path: str, dry_run: bool | None = None) -> None:
    """删除指定路径

    Args:
        path (str): 要删除的路径
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
    """
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.remove(path)


@_support_dry_run(lambda path: f"[android-gcc] Remove {path} if path exists.")
def remove_if_exists(path: str, dry_run: bool | None = None) -> None:
    """如果指定路径存在则删除指定路径

    Args:
        path (str): 要删除的路径
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
    """
    if os.path.lexists(path):
        remove(path)


@_support_dry_run(lambda path: f"[android-gcc] Enter directory {path}.")
def chdir(path: str, dry_run: bool | None = None) -> str:
    """将工作目录设置为指定路径

    Args:
        path (str): 要进入的路径
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.

    Returns:
        str: 之前的工作目录
    """
    cwd = os.getcwd()
    os.chdir(path)
    return cwd


class chdir_guard:
    """在进入时切换到指定工作目录并在退出时回到原工作目录"""

    path: str
    cwd: str
    dry_run: bool | None

    def __init__(self, path: str, dry_run: bool | None = None) -> None:
        self.path = path
        self.dry_run = dry_run
        self.cwd = ""

    def __enter__(self) -> "chdir_guard":
        self.cwd = chdir(self.path, self.dry_run) or ""
        return self

    def __exit__(self, *_) -> None:
        if self.cwd:
            chdir(self.cwd, self.dry_run)


def has_pigz() -> bool:
    """是否可以用pigz代替gzip进行多线程压缩和解压"""
    return shutil.which("pigz") is not None


def format_size(size: int) -> str:
    """将字节数转化为类似du -h的可读格式

    Args:
        size (int): 字节数

    Returns:
        str: 如"512B"、"1.5M"
    """
    value = float(size)
    for unit in ("B", "K", "M", "G"):
        if value < 1024:
            return f"{value:.0f}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{value:.1f}T"


def _check_home(home: str) -> None:
    if not os.path.isdir(home):
        raise config_error(f'The root dir "{home}" does not exist.')


class basic_configure:
    home: str  # 源码树根目录

    def __init__(self, home: str = os.getcwd()) -> None:
        self.home = os.path.abspath(home)

    @staticmethod
    def add_argument(parser: argparse.ArgumentParser) -> None:
        """为argparse添加--root、--export、--import和--dry-run选项

        Args:
            parser (argparse.ArgumentParser): 命令行解析器
        """
        parser.add_argument(
            "--root", dest="home", type=str, help="The directory holding sources, patches and the output tree.", default=os.getcwd()
        )
        parser.add_argument("--export", dest="export_file", type=str, help="Export settings to specific file.")
        parser.add_argument("--import", dest="import_file", type=str, help="Import settings from specific file.")
        parser.add_argument(
            "--dry-run",
            dest="dry_run",
            action=argparse.BooleanOptionalAction,
            help="Preview the commands without actually executing them.",
            default=False,
        )

    @classmethod
    def parse_args(cls, args: argparse.Namespace):
        _check_home(args.home)
        command_dry_run.set(args.dry_run)
        args_list = vars(args)
        parma_list: list = []
        for parma in itertools.islice(inspect.signature(cls.__init__).parameters.keys(), 1, None):
            assert parma in args_list, f"The parma {parma} is not in args. Every parma except self should be able to find in args."
            parma_list.append(args_list[parma])
        return cls(*parma_list)

    def save_config(self, args: argparse.Namespace) -> None:
        """将配置保存到文件，使用json格式

        Args:
            args (argparse.Namespace): 用户输入参数

        Raises:
            io_error: 保存失败抛出异常
        """
        export_file: str | None = args.export_file
        if export_file:
            try:
                with open(export_file, "w") as file:
                    json.dump({key: value for key, value in vars(self).items() if not key.startswith("_")}, file, indent=4)
                echo(f'[android-gcc] Settings have been written to file "{export_file}"')
            except OSError as e:
                raise io_error(f"Export settings failed: {e}")

    def load_config(self, args: argparse.Namespace) -> None:
        """从配置文件中加载配置，然后合并加载的配置和用户输入的配置

        Args:
            args (argparse.Namespace): 用户输入参数

        Raises:
            config_error: 加载失败抛出异常
        """
        import_file: str | None = args.import_file
        if import_file:
            try:
                with open(import_file) as file:
                    import_config_list = json.load(file)
            except (OSError, ValueError) as e:
                raise config_error(f'Import file "{import_file}" failed: {e}')
            if not isinstance(import_config_list, dict):
                raise config_error(f'Invalid configure file "{import_file}".')
            current_config_list = vars(self)
            default_config_list = vars(type(self)())
            self.__dict__ = {
                # 若import_config中没有则使用default_config中的值，以便在配置类更新后原配置文件可以正确加载
                key: (import_config_list.get(key, default_config_list[key]) if value == default_config_list[key] else value)
                for key, value in current_config_list.items()
            }


assert __name__ != "__main__", "Import this file instead of running it directly."
