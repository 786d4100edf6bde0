"""
外部协作者接口

核心只依赖这些抽象接口；真实集群实现与确定性的 mock 实现由调用方在构造解释器前选定。
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Any, Optional

from connectivity_checker.models.data_models import Identity, Protocol, ResourceRef
from connectivity_checker.models.test_case import TestCaseResult


class ResourceProvisioner(ABC):
    """
    集群资源操作接口

    所有方法在集群操作失败时抛出 ProvisioningError。
    """

    @abstractmethod
    def list_identities(self) -> List[Identity]:
        """列出被测 Pod（已解析 IP）"""

    @abstractmethod
    def apply_policy(self, policy: Dict[str, Any]):
        """创建或更新 NetworkPolicy"""

    @abstractmethod
    def delete_policy(self, namespace: str, name: str):
        """删除 NetworkPolicy"""

    @abstractmethod
    def relabel_resource(self, ref: ResourceRef, labels: Dict[str, str]):
        """将命名空间或 Pod 的标签替换为 labels"""

    @abstractmethod
    def read_policy(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        """读取 NetworkPolicy，不存在时返回 None"""

    @abstractmethod
    def list_policies(self, namespace: str) -> List[str]:
        """列出命名空间下所有 NetworkPolicy 的名称"""

    @abstractmethod
    def read_labels(self, ref: ResourceRef) -> Dict[str, str]:
        """读取命名空间或 Pod 当前的标签"""


class ProbeExecutor(ABC):
    """单次原始探测接口"""

    @abstractmethod
    def execute(self, source: Identity, destination_address: str, port: int, protocol: Protocol) -> bool:
        """
        从 source Pod 内向目标发起一次连接

        Returns:
            True 表示连接成功，False 表示明确的拒绝或超时

        Raises:
            ProbeExecutionError: 执行通道本身失败（可重试）
        """


class Reporter(ABC):
    """结果报告接口，按完成顺序接收每个测试用例结果"""

    @abstractmethod
    def report(self, result: TestCaseResult):
        """处理一个测试用例结果"""
