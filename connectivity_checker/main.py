#!/usr/bin/env python3
"""
NetworkPolicy 连通性验证器 - 主入口

加载测试用例，逐个在集群上施加扰动、探测连通性并与期望真值表比较
"""

import sys
import signal
import argparse
import logging
from typing import List, Optional, Tuple

from connectivity_checker.config import RunConfig
from connectivity_checker.core.interpreter import Interpreter
from connectivity_checker.core.inventory import ResourceInventory
from connectivity_checker.exceptions import ConnectivityCheckerError, RunCancelled
from connectivity_checker.interfaces import ResourceProvisioner, ProbeExecutor
from connectivity_checker.kube.mock import MockCluster, MockProbeExecutor
from connectivity_checker.models.data_models import ProbeMode
from connectivity_checker.reporting.printer import ResultPrinter
from connectivity_checker.source import YamlTestCaseSource, count_by_tag

EXIT_CANCELLED = 130


def setup_logging(level: str = "INFO", log_file: Optional[str] = None):
    """配置日志"""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=log_format,
        handlers=handlers
    )


def _csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(',') if item.strip()]


def _csv_int(value: str) -> List[int]:
    try:
        return [int(item) for item in _csv(value)]
    except ValueError:
        raise argparse.ArgumentTypeError(f"端口必须是整数: {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="connectivity-checker",
        description="NetworkPolicy 连通性验证器",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例用法:
  # 在 mock 集群上运行（不需要 Kubernetes）
  connectivity-checker --test-cases cases.yaml --mock

  # 只列出会执行的测试用例
  connectivity-checker --test-cases cases.yaml --include deny-all --dry-run

  # 在真实集群上并行探测
  connectivity-checker --test-cases cases.yaml --context kind-kind --batch-jobs
        """
    )

    parser.add_argument("--test-cases", dest="test_cases_file", help="测试用例 YAML 文件")
    parser.add_argument("--config", help="配置文件路径 (JSON/YAML)")

    parser.add_argument("--namespace", dest="namespaces", type=_csv,
                        help="被测命名空间，逗号分隔 (默认: x,y,z)")
    parser.add_argument("--pod", dest="pods", type=_csv, help="每个命名空间中的 Pod，逗号分隔 (默认: a,b,c)")
    parser.add_argument("--server-port", dest="ports", type=_csv_int, help="被测端口 (默认: 80,81)")
    parser.add_argument("--server-protocol", dest="protocols", type=_csv,
                        help="被测协议 (默认: TCP,UDP,SCTP)")

    parser.add_argument("--include", type=_csv, help="只执行带有这些标签之一的测试用例")
    parser.add_argument("--exclude", type=_csv, help="排除带有这些标签之一的测试用例")
    parser.add_argument("--destination-type", choices=[m.value for m in ProbeMode],
                        help="覆盖所有步骤的探测寻址方式")

    parser.add_argument("--retries", type=int, help="每次探测失败后的重试次数 (默认: 1)")
    parser.add_argument("--perturbation-wait-seconds", type=float,
                        help="扰动后等待策略生效的秒数 (默认: 5)")
    parser.add_argument("--batch-jobs", action="store_true", default=None, help="批量并行执行探测")
    parser.add_argument("--ignore-loopback", action="store_true", default=None,
                        help="忽略源与目标相同的单元格")

    parser.add_argument("--context", help="kubeconfig context")
    parser.add_argument("--mock", action="store_true", default=None, help="使用内存中的 mock 集群")
    parser.add_argument("--dry-run", action="store_true", default=None, help="只列出测试用例，不访问集群")
    parser.add_argument("--probe-backend", choices=["exec", "kubectl"],
                        help="探测方式: exec(Kubernetes API) 或 kubectl(命令行) (默认: exec)")
    parser.add_argument("--ssh-host", help="通过 SSH 在该主机上执行 kubectl")
    parser.add_argument("--ssh-user", help="SSH 用户名")
    parser.add_argument("--ssh-password", help="SSH 密码")

    parser.add_argument("--noisy", action="store_true", default=None, help="通过的步骤也打印真值表")
    parser.add_argument("--output", dest="output_file", help="JSON 报告输出路径")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="日志级别 (默认: INFO)")
    parser.add_argument("--log-file", help="日志文件路径")
    return parser


def load_run_config(args: argparse.Namespace) -> RunConfig:
    """配置文件为基础，命令行显式给出的参数覆盖它"""
    run_config = RunConfig.from_file(args.config) if args.config else RunConfig()
    overrides = {
        key: value for key, value in vars(args).items()
        if key != "config" and value is not None
    }
    return RunConfig(**{**run_config.to_dict(), **overrides})


def build_backend(run_config: RunConfig) -> Tuple[ResourceProvisioner, ProbeExecutor]:
    """根据配置创建资源接口与探测接口的实现"""
    logger = logging.getLogger(__name__)

    if run_config.mock:
        logger.info("使用 mock 集群")
        cluster = MockCluster.from_names(run_config.namespaces, run_config.pods)
        return cluster, MockProbeExecutor(cluster.identities)

    from connectivity_checker.kube.kubernetes_client import (
        KubernetesProvisioner,
        KubeExecProbeExecutor,
        load_kube_config,
        server_version
    )

    load_kube_config(run_config.context)
    version = server_version()
    logger.info(f"Kubernetes 版本: {version['git_version']}")

    provisioner = KubernetesProvisioner(run_config.namespaces, run_config.pods)
    if run_config.probe_backend == "kubectl":
        from connectivity_checker.kube.command_runner import CommandRunner
        from connectivity_checker.kube.kubectl_executor import KubectlProbeExecutor

        runner = CommandRunner(
            hostname=run_config.ssh_host,
            username=run_config.ssh_user,
            password=run_config.ssh_password
        )
        return provisioner, KubectlProbeExecutor(runner, context=run_config.context)
    return provisioner, KubeExecProbeExecutor()


def dry_run(run_config: RunConfig, probe_mode: Optional[ProbeMode]) -> int:
    """在名义上的资源清单上解析测试用例并列出，不访问集群"""
    logger = logging.getLogger(__name__)
    cluster = MockCluster.from_names(run_config.namespaces, run_config.pods)
    inventory = ResourceInventory(cluster.identities, run_config.port_protocols())
    source = YamlTestCaseSource(
        run_config.test_cases_file, inventory,
        include=run_config.include, exclude=run_config.exclude,
        probe_mode_override=probe_mode
    )
    test_cases = list(source)
    for index, test_case in enumerate(test_cases, 1):
        logger.info(f"  #{index} {test_case.description} "
                    f"({len(test_case.steps)} 个步骤, 标签: {', '.join(sorted(test_case.tags)) or '-'})")
    logger.info("按标签统计:")
    for tag, count in count_by_tag(test_cases).items():
        logger.info(f"  {tag}: {count}")
    logger.info(f"✓ dry run: 共 {len(test_cases)} 个测试用例")
    return 0


def run(run_config: RunConfig) -> int:
    """执行测试用例并返回退出码"""
    logger = logging.getLogger(__name__)
    probe_mode = ProbeMode.parse(run_config.destination_type) if run_config.destination_type else None

    if run_config.dry_run:
        return dry_run(run_config, probe_mode)

    provisioner, executor = build_backend(run_config)
    inventory = ResourceInventory.from_provisioner(provisioner, run_config.port_protocols())
    source = YamlTestCaseSource(
        run_config.test_cases_file, inventory,
        include=run_config.include, exclude=run_config.exclude,
        probe_mode_override=probe_mode
    )

    interpreter = Interpreter(provisioner, executor, inventory, run_config.interpreter_config())
    printer = ResultPrinter(
        noisy=run_config.noisy,
        ignore_loopback=run_config.ignore_loopback,
        output_file=run_config.output_file
    )

    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: interpreter.cancel())
    try:
        summary = interpreter.run(source, reporter=printer)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    logger.info(f"\n{printer.summary()}")
    printer.save()
    return summary.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    """主函数"""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        run_config = load_run_config(args)
    except ConnectivityCheckerError as e:
        parser.error(str(e))

    setup_logging(run_config.log_level, run_config.log_file)
    logger = logging.getLogger(__name__)

    if not run_config.test_cases_file:
        parser.error("必须通过 --test-cases 或配置文件指定测试用例文件")

    try:
        exit_code = run(run_config)
    except (RunCancelled, KeyboardInterrupt):
        logger.warning("⚠ 运行已取消")
        return EXIT_CANCELLED
    except ConnectivityCheckerError as e:
        logger.error(f"❌ 运行失败: {e}")
        return 1
    except Exception as e:
        logger.error(f"❌ 运行失败: {e}", exc_info=True)
        return 1

    if exit_code == 0:
        logger.info("✅ 全部测试用例通过")
    else:
        logger.error("❌ 存在未通过的测试用例")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
