"""
配置管理

InterpreterConfig 是一次运行内不可变的解释器配置，显式传入解释器构造函数；
RunConfig 是命令行层面的运行配置，可以从 JSON/YAML 文件加载。
"""

import os
import json
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field, asdict, fields

import yaml

from connectivity_checker.exceptions import ConfigurationError
from connectivity_checker.models.data_models import PortProtocol, Protocol

# 批量模式下每批并发的探测数，只作为调优参数，不暴露给命令行
DEFAULT_BATCH_SIZE = 25


@dataclass(frozen=True)
class InterpreterConfig:
    """解释器配置"""
    reset_cluster_before_test_case: bool = True
    verify_cluster_state_before_test_case: bool = True
    kube_probe_retries: int = 1
    perturbation_wait_seconds: float = 5
    batch_jobs: bool = False
    ignore_loopback: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE

    def __post_init__(self):
        if isinstance(self.kube_probe_retries, bool) or not isinstance(self.kube_probe_retries, int):
            raise ConfigurationError(f"kube_probe_retries 必须是整数: {self.kube_probe_retries!r}")
        if self.kube_probe_retries < 0:
            raise ConfigurationError(f"kube_probe_retries 不能为负数: {self.kube_probe_retries}")
        if (isinstance(self.perturbation_wait_seconds, bool)
                or not isinstance(self.perturbation_wait_seconds, (int, float))):
            raise ConfigurationError(f"perturbation_wait_seconds 必须是数字: {self.perturbation_wait_seconds!r}")
        if self.perturbation_wait_seconds < 0:
            raise ConfigurationError(f"perturbation_wait_seconds 不能为负数: {self.perturbation_wait_seconds}")
        if isinstance(self.batch_size, bool) or not isinstance(self.batch_size, int):
            raise ConfigurationError(f"batch_size 必须是整数: {self.batch_size!r}")
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size 至少为 1: {self.batch_size}")

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'InterpreterConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(config_dict) - known
        if unknown:
            raise ConfigurationError(f"未知的解释器配置项: {', '.join(sorted(unknown))}")
        return cls(**config_dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RunConfig:
    """命令行运行配置"""

    # 被测资源
    namespaces: List[str] = field(default_factory=lambda: ["x", "y", "z"])
    pods: List[str] = field(default_factory=lambda: ["a", "b", "c"])
    ports: List[int] = field(default_factory=lambda: [80, 81])
    protocols: List[str] = field(default_factory=lambda: ["TCP", "UDP", "SCTP"])

    # 测试用例
    test_cases_file: Optional[str] = None
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    destination_type: Optional[str] = None

    # 解释器
    retries: int = 1
    perturbation_wait_seconds: float = 5
    batch_jobs: bool = False
    ignore_loopback: bool = False

    # Kubernetes配置
    context: Optional[str] = None
    mock: bool = False
    dry_run: bool = False
    probe_backend: str = "exec"
    ssh_host: Optional[str] = None
    ssh_user: Optional[str] = None
    ssh_password: Optional[str] = None

    # 输出
    noisy: bool = False
    output_file: Optional[str] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        if self.probe_backend not in ("exec", "kubectl"):
            raise ConfigurationError(f"probe_backend 只能是 exec 或 kubectl: {self.probe_backend}")
        if self.test_cases_file and not os.path.isabs(self.test_cases_file):
            self.test_cases_file = os.path.abspath(self.test_cases_file)

    @classmethod
    def from_file(cls, config_file: str) -> 'RunConfig':
        """从 JSON 或 YAML 配置文件加载配置"""
        with open(config_file, 'r', encoding='utf-8') as f:
            if config_file.endswith(('.yaml', '.yml')):
                config_dict = yaml.safe_load(f) or {}
            else:
                config_dict = json.load(f)
        known = {f.name for f in fields(cls)}
        unknown = set(config_dict) - known
        if unknown:
            raise ConfigurationError(f"未知的配置项: {', '.join(sorted(unknown))}")
        return cls(**config_dict)

    def to_file(self, config_file: str):
        """保存配置到JSON文件"""
        with open(config_file, 'w', encoding='utf-8') as f:
            json.dump(asdict(self), f, indent=2, ensure_ascii=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def port_protocols(self) -> List[PortProtocol]:
        """端口 x 协议 的全部组合，按配置顺序"""
        return [
            PortProtocol(int(port), Protocol.parse(protocol))
            for port in self.ports
            for protocol in self.protocols
        ]

    def interpreter_config(self) -> InterpreterConfig:
        return InterpreterConfig(
            reset_cluster_before_test_case=True,
            verify_cluster_state_before_test_case=True,
            kube_probe_retries=self.retries,
            perturbation_wait_seconds=self.perturbation_wait_seconds,
            batch_jobs=self.batch_jobs,
            ignore_loopback=self.ignore_loopback,
        )
