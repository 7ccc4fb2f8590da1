"""
运输流程状态机 - 命令行接口

加载流程描述文件，实例化并运行运输流程，输出流程经过的步骤与出口。

退出码:
    0: 流程结束（或 --check / --list-steps 成功）
    1: 加载、配置或运行错误
    2: 在 --max-ticks 次迭代内未结束
"""

import argparse
import sys
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from tpm.config import ConfigError, ConfigLoader
from tpm.exceptions import TPMError
from tpm.logger import configure_logger, get_logger
from tpm.orchestration.tracing import TransitionTracer
from tpm.orchestration.transport_process import TransportProcess, instantiate_process
from tpm.registries.step_registry import StepTypeRegistry, get_step_registry, load_step_plugins
from tpm.storage.process_store import load_process_data, save_process_data
from tpm.version import __version__


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NOT_FINISHED = 2


def parse_param(text: str) -> Tuple[str, Any]:
    """
    解析 NAME=VALUE 形式的订单参数

    值按YAML标量解析，因此 "10001010" 得到整数，"1.5" 得到浮点数。

    Args:
        text: 命令行参数文本

    Returns:
        (参数名, 参数值)

    Raises:
        ValueError: 格式不正确
    """
    name, sep, raw = text.partition("=")
    name = name.strip()
    if not sep or not name:
        raise ValueError(f"参数格式应为 NAME=VALUE: '{text}'")
    try:
        value = yaml.safe_load(raw) if raw.strip() else ""
    except yaml.YAMLError:
        value = raw
    return name, value


def format_step_types(registry: StepTypeRegistry) -> str:
    """格式化已注册的步骤类型列表"""
    lines = []
    for definition in registry.definitions():
        lines.append(definition.type_name)
        for param in definition.all_parameters:
            flags = ["可选" if param.is_optional else "必需"]
            if param.is_inferred_for_order:
                flags.append("订单参数")
            lines.append(f"    参数 {param.name}: {param.type.value} ({', '.join(flags)})")
        for exit_point in definition.exits:
            suffix = " (错误出口)" if exit_point.is_error else ""
            lines.append(f"    出口 {exit_point.name}{suffix}")
    return "\n".join(lines)


def format_summary(process: TransportProcess, tracer: TransitionTracer, ticks: int) -> str:
    """格式化运行摘要"""
    path = " -> ".join(str(step_id) for step_id in tracer.get_path()) or "-"
    exits = ", ".join(tracer.get_exits()) or "-"
    return "\n".join(
        [
            f"流程: {process.name or '<unnamed>'}",
            f"状态: {process.state.value}",
            f"迭代次数: {ticks}",
            f"步骤路径: {path}",
            f"出口: {exits}",
        ]
    )


def create_parser() -> argparse.ArgumentParser:
    """
    创建命令行参数解析器

    Returns:
        argparse.ArgumentParser: 参数解析器
    """
    parser = argparse.ArgumentParser(
        prog="tpm",
        description="运输流程状态机 - 命令行接口",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  # 运行流程
  python -m tpm.main deliver.yaml --param DeliverDestination=10001010

  # 仅检查流程描述
  python -m tpm.main deliver.yaml --check

  # 限制迭代次数并保存快照
  python -m tpm.main deliver.yaml --max-ticks 500 --snapshot snapshot.json

  # 查看已注册的步骤类型
  python -m tpm.main --list-steps
""",
    )

    parser.add_argument("process_file", nargs="?", help="流程描述文件 (.yaml/.yml/.json)")
    parser.add_argument("-c", "--config", default=None, help="配置文件路径")
    parser.add_argument(
        "-p",
        "--param",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="订单参数，可多次指定",
    )
    parser.add_argument("--tick-interval", type=float, default=None, help="迭代间隔（秒）")
    parser.add_argument("--max-ticks", type=int, default=None, help="最大迭代次数")
    parser.add_argument("--check", action="store_true", help="只实例化并检查，不运行")
    parser.add_argument("--list-steps", action="store_true", help="列出已注册的步骤类型")
    parser.add_argument("--snapshot", default=None, metavar="FILE", help="运行后保存流程快照")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="日志级别 (默认: 配置文件中的 system.log_level)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="显示详细输出")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser


def _parse_params(raw_params: Sequence[str]) -> Dict[str, Any]:
    params = {}
    for text in raw_params:
        name, value = parse_param(text)
        params[name] = value
    return params


def main(args: Optional[List[str]] = None) -> int:
    """
    主入口函数

    Args:
        args: 命令行参数（用于测试）

    Returns:
        int: 退出码
    """
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    try:
        config = ConfigLoader(parsed_args.config)
        config.validate()
    except ConfigError as e:
        print(f"配置错误: {e}", file=sys.stderr)
        return EXIT_ERROR

    level = "DEBUG" if parsed_args.verbose else (
        parsed_args.log_level or config.get("system.log_level")
    )
    configure_logger(level=level)
    logger = get_logger()

    try:
        registry = get_step_registry()
        load_step_plugins(registry, config.get("steps.plugins", []))
    except Exception as e:
        logger.error("Failed to load step plugins", context={"error": str(e)})
        print(f"插件加载失败: {e}", file=sys.stderr)
        return EXIT_ERROR

    if parsed_args.list_steps:
        print(format_step_types(registry))
        return EXIT_OK

    if not parsed_args.process_file:
        print("错误: 需要指定流程描述文件", file=sys.stderr)
        return EXIT_ERROR

    try:
        params = _parse_params(parsed_args.param)
    except ValueError as e:
        print(f"错误: {e}", file=sys.stderr)
        return EXIT_ERROR

    tracer = TransitionTracer()
    try:
        data = load_process_data(parsed_args.process_file)
        instantiation = instantiate_process(
            data,
            registry=registry,
            strict_required=config.get("loader.strict_required_parameters", False),
            tracer=tracer,
        )
    except TPMError as e:
        print(f"加载失败: {e.message}", file=sys.stderr)
        return EXIT_ERROR

    if not instantiation.ok:
        print(f"流程 '{data.name}' 有 {len(instantiation.errors)} 个加载错误:", file=sys.stderr)
        for error in instantiation.errors:
            print(f"  - [{type(error).__name__}] {error.message}", file=sys.stderr)
        return EXIT_ERROR

    process = instantiation.process
    for name, value in params.items():
        process.set_parameter(name, value)

    missing = process.missing_order_parameters()
    if missing:
        print(f"缺少订单参数: {', '.join(missing)}", file=sys.stderr)
        return EXIT_ERROR

    if parsed_args.check:
        print(
            f"流程 '{process.name}' 检查通过: {len(process.steps)} 个步骤, "
            f"{len(process.edges)} 条边"
        )
        return EXIT_OK

    max_ticks = (
        parsed_args.max_ticks
        if parsed_args.max_ticks is not None
        else config.get("engine.max_ticks")
    )
    tick_interval = (
        parsed_args.tick_interval
        if parsed_args.tick_interval is not None
        else config.get("engine.tick_interval")
    )

    try:
        ticks = process.run(max_ticks=max_ticks, tick_interval=tick_interval)
    except KeyboardInterrupt:
        print("\n已中断")
        return 130
    except TPMError as e:
        print(f"运行错误: {e.message}", file=sys.stderr)
        return EXIT_ERROR

    print(format_summary(process, tracer, ticks))
    if parsed_args.verbose:
        for record in tracer.records:
            print(f"  {record}")

    if parsed_args.snapshot:
        try:
            path = save_process_data(process.to_data(), parsed_args.snapshot)
        except TPMError as e:
            print(f"快照保存失败: {e.message}", file=sys.stderr)
            return EXIT_ERROR
        print(f"快照已保存: {path}")

    return EXIT_OK if process.is_finished else EXIT_NOT_FINISHED


if __name__ == "__main__":
    sys.exit(main())
