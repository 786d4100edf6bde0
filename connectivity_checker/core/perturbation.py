"""
集群扰动

负责测试用例前的集群重置、单个扰动的应用、扰动后的收敛等待以及状态回读校验。
集群操作失败不在这一层重试，直接以 ProvisioningError 上抛。
"""

import logging
import threading
from typing import Dict, List, Any, Iterable, Optional

from connectivity_checker.config import InterpreterConfig
from connectivity_checker.exceptions import RunCancelled, VerificationError
from connectivity_checker.interfaces import ResourceProvisioner
from connectivity_checker.models.data_models import PerturbationType, Perturbation, ResourceRef

logger = logging.getLogger(__name__)

# apiserver 自动维护的标签，校验时忽略
SERVER_MANAGED_LABELS = frozenset({"kubernetes.io/metadata.name"})


def _prune(value: Any) -> Any:
    """去掉 None 和空集合，服务端序列化时常会补上这些字段"""
    if isinstance(value, dict):
        pruned = {k: _prune(v) for k, v in value.items()}
        return {k: v for k, v in pruned.items() if v not in (None, {}, [])}
    if isinstance(value, list):
        return [_prune(v) for v in value]
    return value


def _contains(applied: Any, observed: Any) -> bool:
    """
    applied 是否包含在 observed 中

    字典按键递归比较（服务端可以补充默认字段），列表按位置逐个比较且长度必须相等。
    """
    if isinstance(applied, dict):
        if not isinstance(observed, dict):
            return False
        return all(k in observed and _contains(v, observed[k]) for k, v in applied.items())
    if isinstance(applied, list):
        if not isinstance(observed, list) or len(applied) != len(observed):
            return False
        return all(_contains(a, o) for a, o in zip(applied, observed))
    return applied == observed


def policy_matches(applied: Dict[str, Any], observed: Optional[Dict[str, Any]]) -> bool:
    """回读的 NetworkPolicy 是否与写入的一致（只比较 spec）"""
    if observed is None:
        return False
    return _contains(_prune(applied.get('spec') or {}), _prune(observed.get('spec') or {}))


def labels_match(applied: Dict[str, str], observed: Dict[str, str]) -> bool:
    """除 apiserver 维护的标签外，回读的标签必须与写入的完全一致"""
    def user_labels(labels):
        return {k: v for k, v in labels.items() if k not in SERVER_MANAGED_LABELS}
    return user_labels(applied) == user_labels(observed)


class ClusterPerturbation:
    """集群扰动步骤"""

    def __init__(self, provisioner: ResourceProvisioner, config: InterpreterConfig,
                 cancel_event: Optional[threading.Event] = None):
        self.provisioner = provisioner
        self.config = config
        self.cancel_event = cancel_event or threading.Event()
        self._baseline_labels: Dict[ResourceRef, Dict[str, str]] = {}

    def reset(self, namespaces: Iterable[str], resources: Iterable[ResourceRef] = ()) -> List[str]:
        """
        删除被测命名空间下的所有 NetworkPolicy，并把 resources 的标签恢复到基线

        每个资源第一次重置时读到的标签即为基线，之后的重置把偏离基线的资源改回去。

        Returns:
            被删除的策略（namespace/name）
        """
        deleted = []
        for namespace in namespaces:
            for name in self.provisioner.list_policies(namespace):
                self.provisioner.delete_policy(namespace, name)
                deleted.append(f"{namespace}/{name}")
        restored = self._restore_labels(resources)
        logger.info(f"  ✓ 集群重置完成，删除 {len(deleted)} 个 NetworkPolicy，恢复 {len(restored)} 个资源的标签")
        return deleted

    def _restore_labels(self, resources: Iterable[ResourceRef]) -> List[ResourceRef]:
        restored = []
        for ref in resources:
            labels = self.provisioner.read_labels(ref)
            baseline = self._baseline_labels.setdefault(ref, labels)
            if not labels_match(baseline, labels):
                self.provisioner.relabel_resource(ref, dict(baseline))
                restored.append(ref)
        return restored

    def apply(self, perturbation: Perturbation):
        """通过资源接口应用扰动"""
        logger.info(f"应用扰动: {perturbation.describe()}")
        ptype = perturbation.perturbation_type
        if ptype in (PerturbationType.CREATE_POLICY, PerturbationType.UPDATE_POLICY):
            self.provisioner.apply_policy(perturbation.policy)
        elif ptype == PerturbationType.DELETE_POLICY:
            self.provisioner.delete_policy(perturbation.policy_namespace, perturbation.policy_name)
        elif ptype in (PerturbationType.SET_NAMESPACE_LABELS, PerturbationType.SET_POD_LABELS):
            self.provisioner.relabel_resource(perturbation.resource, perturbation.labels)
        else:
            raise ValueError(f"未知的扰动类型: {ptype}")

    def settle(self):
        """
        等待 CNI 收敛

        等待可被取消：取消信号到达时提前结束并抛出 RunCancelled。
        """
        seconds = self.config.perturbation_wait_seconds
        if seconds <= 0:
            return
        logger.info(f"等待 {seconds} 秒让网络策略生效")
        if self.cancel_event.wait(timeout=seconds):
            raise RunCancelled("等待策略生效期间收到取消请求")

    def verify(self, perturbation: Perturbation):
        """回读集群状态，与刚写入的内容比较，不一致时抛出 VerificationError"""
        ptype = perturbation.perturbation_type
        if ptype in (PerturbationType.CREATE_POLICY, PerturbationType.UPDATE_POLICY):
            observed = self.provisioner.read_policy(perturbation.policy_namespace, perturbation.policy_name)
            if observed is None:
                raise VerificationError(
                    f"NetworkPolicy {perturbation.policy_namespace}/{perturbation.policy_name} 应用后不存在"
                )
            if not policy_matches(perturbation.policy, observed):
                raise VerificationError(
                    f"NetworkPolicy {perturbation.policy_namespace}/{perturbation.policy_name} "
                    f"回读内容与写入不一致: {observed.get('spec')}"
                )
        elif ptype == PerturbationType.DELETE_POLICY:
            observed = self.provisioner.read_policy(perturbation.policy_namespace, perturbation.policy_name)
            if observed is not None:
                raise VerificationError(
                    f"NetworkPolicy {perturbation.policy_namespace}/{perturbation.policy_name} 删除后仍然存在"
                )
        else:
            labels = self.provisioner.read_labels(perturbation.resource)
            if not labels_match(perturbation.labels, labels):
                raise VerificationError(
                    f"{perturbation.resource} 的标签为 {labels}，期望 {perturbation.labels}"
                )
        logger.info(f"  ✓ 集群状态校验通过: {perturbation.describe()}")
