#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import os
import sys
import time
import signal
import argparse
import itertools
import common
import download
import gcc_environment as gcc


class argument_parser(argparse.ArgumentParser):
    """解析失败时抛出config_error而不是直接退出"""

    def error(self, message: str):
        raise common.config_error(message)


def format_time(seconds: float) -> str:
    """将耗时转化为可读字符串，省略值为0的前导单位

    Args:
        seconds (float): 耗时，单位为秒

    Returns:
        str: 如"1 HOUR, 1 MINUTE, AND 1 SECOND"
    """
    hours, rest = divmod(int(seconds), 3600)
    minutes, seconds = divmod(rest, 60)
    unit_list = (("HOUR", hours), ("MINUTE", minutes), ("SECOND", seconds))
    # 秒总会显示
    field_list = [*itertools.dropwhile(lambda x: x[1] == 0, unit_list[:-1]), unit_list[-1]]
    text_list = [f"{value} {unit}{'' if value == 1 else 'S'}" for unit, value in field_list]
    match len(text_list):
        case 1:
            return text_list[0]
        case 2:
            return " AND ".join(text_list)
        case _:
            return f"{', '.join(text_list[:-1])}, AND {text_list[-1]}"


def report(env: gcc.environment, artifact: gcc.package_artifact | None, duration: float) -> bool:
    """打印构建结果

    Args:
        env (gcc.environment): gcc环境
        artifact (gcc.package_artifact | None): 压缩包，未打包时为None
        duration (float): 构建耗时

    Returns:
        bool: 工具链是否构建成功
    """
    bold, reset = common.color.bold, common.color.reset
    dry_run = common.command_dry_run.get()
    if not dry_run and not os.path.exists(env.gcc_path):
        common.header("BUILD FAILED", force=True)
        print("\a", end="", flush=True)
        return False

    common.header("BUILD SUCCESSFUL", first_echo=common.command_output.get(), force=True)
    print(f"{bold}Script duration:{reset} {format_time(duration)}")
    if not dry_run:
        print(f"{bold}GCC version:{reset} {env.get_gcc_version()}")
    if artifact:
        print(f"{bold}File location:{reset} {artifact.path}")
        print(f"{bold}File size:{reset} {common.format_size(artifact.size)}")
    else:
        print(f"{bold}Toolchain location:{reset} {env.ws.install_dir}")
    print("\a", end="", flush=True)
    return True


def build(config: gcc.configure, host: gcc.host_environment | None = None) -> bool:
    """按顺序执行构建流程，任何一步失败都会抛出异常并终止流程

    Args:
        config (gcc.configure): 构建配置
        host (gcc.host_environment | None, optional): 宿主环境. 默认探测当前宿主.

    Returns:
        bool: 工具链是否构建成功
    """
    start = time.time()
    host = host or gcc.host_environment()
    host.check()
    ws = gcc.workspace(config, host)
    env = gcc.environment(config, host, ws)

    ws.clean()
    # 无论以何种方式退出都会卸载tmpfs
    with ws.scratch():
        download.fetch(ws, config.no_update)
        download.extract_all(ws)
        download.update_repos(ws, config.no_update)
        env.build()
    artifact = env.package()
    return report(env, artifact, time.time() - start)


def _abort_handler(signum: int, frame) -> None:
    raise common.user_abort()


def make_parser() -> argument_parser:
    default_config = gcc.configure()

    parser = argument_parser(
        prog="build_gcc.py",
        description="Build a gcc toolchain for Android ARM/ARM64 targets.",
        epilog="Example: build_gcc.py -a arm",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    gcc.configure.add_argument(parser)
    parser.add_argument(
        "-a",
        "--arch",
        type=str,
        help=f"The toolchain's target architecture. Possible values: {', '.join(gcc.arch_list)}.",
        default=default_config.arch,
    )
    parser.add_argument(
        "-nu",
        "--no-update",
        dest="no_update",
        action="store_true",
        help="Do not update the downloaded components before building (useful if you have slow internet).",
    )
    parser.add_argument(
        "-nt",
        "--no-tmpfs",
        dest="no_tmpfs",
        action="store_true",
        help="Do not mount a tmpfs on the build directory. Only Linux hosts with root privileges use tmpfs.",
    )
    parser.add_argument(
        "-p", "--package", type=str, choices=gcc.compression_list, help="Compresses toolchain after build.", default=default_config.package
    )
    parser.add_argument(
        "-V", "--verbose", action="store_true", help="Make script print all output, not just errors and the ending information."
    )
    parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        help="Number of concurrent jobs at build time. Derived from cpu cores and threads by default.",
        default=default_config.jobs,
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = make_parser()
    try:
        args = parser.parse_args(argv)
        current_config = gcc.configure.parse_args(args)
        current_config.load_config(args)
        current_config.check()
    except common.config_error as e:
        common.error(str(e))
        print()
        parser.print_help()
        return 1

    common.command_output.set(current_config.verbose)
    handler_list = {signum: signal.signal(signum, _abort_handler) for signum in (signal.SIGINT, signal.SIGTERM)}
    try:
        succeeded = build(current_config)
        current_config.save_config(args)
    except common.toolchain_error as e:
        common.error(str(e))
        return 1
    finally:
        for signum, handler in handler_list.items():
            signal.signal(signum, handler)
    return 0 if succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
