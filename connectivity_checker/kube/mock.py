"""
Mock 集群

确定性的内存实现，用于 --mock / --dry-run 以及单元测试：
- MockCluster 实现资源接口，记录所有调用，可注入失败或模拟准入 webhook 改写策略
- MockProbeExecutor 实现探测接口，可达性与瞬时失败都由函数决定
"""

import copy
import logging
import threading
from collections import Counter
from typing import Dict, List, Any, Optional, Callable, Iterable, Tuple

from connectivity_checker.exceptions import ProvisioningError, ProbeExecutionError
from connectivity_checker.interfaces import ResourceProvisioner, ProbeExecutor
from connectivity_checker.models.data_models import Identity, PortProtocol, Protocol, ResourceRef, ResourceKind

logger = logging.getLogger(__name__)

ReachabilityFunc = Callable[[Identity, Identity, PortProtocol], bool]


class MockCluster(ResourceProvisioner):
    """内存中的集群"""

    def __init__(self, identities: Iterable[Identity],
                 policy_mutator: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None):
        """
        Args:
            identities: 集群中的 Pod
            policy_mutator: 模拟服务端改写策略（例如准入 webhook），作用于写入的副本
        """
        self.identities = list(identities)
        self.policy_mutator = policy_mutator
        self.policies: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.labels: Dict[ResourceRef, Dict[str, str]] = {}
        self.calls: List[Tuple[str, str]] = []
        self._failures: Dict[str, Optional[str]] = {}

    @classmethod
    def from_names(cls, namespaces: Iterable[str], pods: Iterable[str]) -> 'MockCluster':
        """按 namespace x pod 生成带假 IP 的集群"""
        pods = list(pods)
        identities = []
        for ns_index, namespace in enumerate(namespaces):
            for pod_index, pod in enumerate(pods):
                identities.append(Identity(
                    namespace, pod,
                    ip=f"10.0.{ns_index}.{pod_index + 10}",
                    service_ip=f"10.96.{ns_index}.{pod_index + 10}"
                ))
        return cls(identities)

    def inject_failure(self, method: str, target: Optional[str] = None):
        """让 method（可选只针对 target）后续的调用抛出 ProvisioningError"""
        self._failures[method] = target

    def clear_failures(self):
        self._failures.clear()

    def _record(self, method: str, target: str):
        self.calls.append((method, target))
        if method in self._failures and self._failures[method] in (None, target):
            raise ProvisioningError(f"mock 注入的失败: {method} {target}")

    def calls_for(self, method: str) -> List[str]:
        return [target for m, target in self.calls if m == method]

    def list_identities(self) -> List[Identity]:
        self._record("list_identities", "")
        return list(self.identities)

    def apply_policy(self, policy: Dict[str, Any]):
        metadata = policy.get('metadata', {})
        key = (metadata.get('namespace'), metadata.get('name'))
        self._record("apply_policy", f"{key[0]}/{key[1]}")
        stored = copy.deepcopy(policy)
        if self.policy_mutator is not None:
            stored = self.policy_mutator(stored)
        self.policies[key] = stored

    def delete_policy(self, namespace: str, name: str):
        self._record("delete_policy", f"{namespace}/{name}")
        if (namespace, name) not in self.policies:
            raise ProvisioningError(f"NetworkPolicy {namespace}/{name} 不存在")
        del self.policies[(namespace, name)]

    def relabel_resource(self, ref: ResourceRef, labels: Dict[str, str]):
        self._record("relabel_resource", str(ref))
        if ref.kind == ResourceKind.NAMESPACE:
            known = any(i.namespace == ref.name for i in self.identities)
        else:
            known = any(i.namespace == ref.namespace and i.name == ref.name for i in self.identities)
        if not known:
            raise ProvisioningError(f"资源不存在: {ref}")
        self.labels[ref] = dict(labels)

    def read_policy(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        self._record("read_policy", f"{namespace}/{name}")
        policy = self.policies.get((namespace, name))
        return copy.deepcopy(policy) if policy is not None else None

    def list_policies(self, namespace: str) -> List[str]:
        self._record("list_policies", namespace)
        return sorted(name for ns, name in self.policies if ns == namespace)

    def read_labels(self, ref: ResourceRef) -> Dict[str, str]:
        self._record("read_labels", str(ref))
        return dict(self.labels.get(ref, {}))


class MockProbeExecutor(ProbeExecutor):
    """
    确定性的探测实现

    目标地址（Pod IP、Service IP 或 Service 域名）被解析回 Identity 后交给 reachable
    判断；transient 返回 True 时本次尝试抛出 ProbeExecutionError。
    """

    def __init__(self, identities: Iterable[Identity],
                 reachable: Optional[ReachabilityFunc] = None,
                 transient: Optional[ReachabilityFunc] = None):
        self.reachable = reachable or (lambda src, dst, pp: True)
        self.transient = transient or (lambda src, dst, pp: False)
        self.attempts: Counter = Counter()
        self._lock = threading.Lock()
        self._address_book: Dict[str, Identity] = {}
        for identity in identities:
            self._address_book[identity.ip] = identity
            self._address_book[identity.service_fqdn] = identity
            if identity.service_ip:
                self._address_book[identity.service_ip] = identity

    @property
    def total_attempts(self) -> int:
        with self._lock:
            return sum(self.attempts.values())

    def attempts_for(self, source: str, destination: str, port_protocol: PortProtocol) -> int:
        with self._lock:
            return self.attempts[(source, destination, str(port_protocol))]

    def execute(self, source: Identity, destination_address: str, port: int, protocol: Protocol) -> bool:
        destination = self._address_book.get(destination_address)
        if destination is None:
            raise ProbeExecutionError(f"mock 无法解析目标地址: {destination_address}")
        port_protocol = PortProtocol(port, protocol)
        with self._lock:
            self.attempts[(source.key, destination.key, str(port_protocol))] += 1
        if self.transient(source, destination, port_protocol):
            raise ProbeExecutionError(f"mock 注入的瞬时失败: {source} -> {destination} {port_protocol}")
        return bool(self.reachable(source, destination, port_protocol))
