"""
连通性验证数据模型

定义探测身份、端口/协议、探测结果、集群扰动等基础数据结构
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional
from enum import Enum

from connectivity_checker.exceptions import ConfigurationError, TestCaseFormatError


class Protocol(Enum):
    """探测协议（封闭集合）"""
    TCP = "TCP"
    UDP = "UDP"
    SCTP = "SCTP"

    @classmethod
    def parse(cls, value: str) -> 'Protocol':
        """大小写不敏感地解析协议名"""
        if isinstance(value, Protocol):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ConfigurationError(
                f"不支持的协议: {value}，可选值: {', '.join(p.value for p in cls)}"
            )


class Outcome(Enum):
    """单元格结果"""
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"
    INDETERMINATE = "indeterminate"

    @classmethod
    def from_bool(cls, connected: bool) -> 'Outcome':
        return cls.REACHABLE if connected else cls.UNREACHABLE


class ProbeMode(Enum):
    """探测目标的寻址方式"""
    POD_IP = "pod-ip"
    SERVICE_IP = "service-ip"
    SERVICE_NAME = "service-name"

    @classmethod
    def parse(cls, value: str) -> 'ProbeMode':
        if isinstance(value, ProbeMode):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"不支持的探测模式: {value}，可选值: {', '.join(m.value for m in cls)}"
            )


class PerturbationType(Enum):
    """集群扰动类型"""
    CREATE_POLICY = "create-policy"
    UPDATE_POLICY = "update-policy"
    DELETE_POLICY = "delete-policy"
    SET_NAMESPACE_LABELS = "set-namespace-labels"
    SET_POD_LABELS = "set-pod-labels"


class ResourceKind(Enum):
    """可被重新打标签的资源类型"""
    NAMESPACE = "namespace"
    POD = "pod"


class InterpreterState(Enum):
    """解释器状态机的状态"""
    IDLE = "idle"
    RESETTING = "resetting"
    PERTURBING = "perturbing"
    SETTLING = "settling"
    VERIFYING = "verifying"
    PROBING = "probing"
    DIFFING = "diffing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PortProtocol:
    """被测的端口/协议组合"""
    port: int
    protocol: Protocol

    def __post_init__(self):
        if not isinstance(self.port, int) or isinstance(self.port, bool) or not 1 <= self.port <= 65535:
            raise ConfigurationError(f"端口超出范围 (1-65535): {self.port}")
        if not isinstance(self.protocol, Protocol):
            object.__setattr__(self, 'protocol', Protocol.parse(self.protocol))

    @classmethod
    def parse(cls, value: str) -> 'PortProtocol':
        """解析 "80/TCP" 形式的字符串"""
        port, _, protocol = str(value).partition('/')
        try:
            return cls(int(port), Protocol.parse(protocol or "TCP"))
        except ValueError:
            raise ConfigurationError(f"非法的端口/协议: {value}")

    def __str__(self) -> str:
        return f"{self.port}/{self.protocol.value}"


@dataclass(frozen=True)
class Identity:
    """
    被探测的 Pod 身份

    相等性只比较 (namespace, name)，IP 是资源准备完成后解析出的附加信息。
    """
    namespace: str
    name: str
    ip: str = field(default="", compare=False)
    service_ip: Optional[str] = field(default=None, compare=False)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def service_name(self) -> str:
        return f"s-{self.namespace}-{self.name}"

    @property
    def service_fqdn(self) -> str:
        return f"{self.service_name}.{self.namespace}.svc.cluster.local"

    def address(self, mode: ProbeMode) -> str:
        """按探测模式返回目标地址"""
        if mode == ProbeMode.SERVICE_NAME:
            return self.service_fqdn
        if mode == ProbeMode.SERVICE_IP:
            if not self.service_ip:
                raise ConfigurationError(f"{self.key} 没有可用的 Service IP")
            return self.service_ip
        return self.ip

    @classmethod
    def parse_key(cls, key: str) -> 'Identity':
        namespace, sep, name = str(key).partition('/')
        if not sep or not namespace or not name:
            raise TestCaseFormatError(f"非法的身份标识 (应为 namespace/pod): {key}")
        return cls(namespace, name)

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class ResourceRef:
    """重新打标签的资源引用；namespace 类型时 name 即命名空间名"""
    kind: ResourceKind
    name: str
    namespace: Optional[str] = None

    def __str__(self) -> str:
        if self.kind == ResourceKind.NAMESPACE:
            return f"namespace/{self.name}"
        return f"pod/{self.namespace}/{self.name}"


@dataclass
class Perturbation:
    """一次集群状态变更"""
    perturbation_type: PerturbationType
    policy: Optional[Dict[str, Any]] = None
    resource: Optional[ResourceRef] = None
    labels: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if self.perturbation_type in (PerturbationType.CREATE_POLICY, PerturbationType.UPDATE_POLICY,
                                      PerturbationType.DELETE_POLICY):
            if not self.policy:
                raise TestCaseFormatError(f"{self.perturbation_type.value} 需要 policy 字段")
            metadata = self.policy.get('metadata') or {}
            if not metadata.get('name') or not metadata.get('namespace'):
                raise TestCaseFormatError("policy.metadata 必须包含 name 和 namespace")
        else:
            expected_kind = (ResourceKind.NAMESPACE
                             if self.perturbation_type == PerturbationType.SET_NAMESPACE_LABELS
                             else ResourceKind.POD)
            if self.resource is None or self.resource.kind != expected_kind:
                raise TestCaseFormatError(
                    f"{self.perturbation_type.value} 需要 {expected_kind.value} 类型的 resource"
                )

    @property
    def policy_namespace(self) -> Optional[str]:
        return (self.policy or {}).get('metadata', {}).get('namespace')

    @property
    def policy_name(self) -> Optional[str]:
        return (self.policy or {}).get('metadata', {}).get('name')

    def describe(self) -> str:
        if self.policy is not None:
            return f"{self.perturbation_type.value} {self.policy_namespace}/{self.policy_name}"
        return f"{self.perturbation_type.value} {self.resource} {self.labels}"

    @classmethod
    def create_policy(cls, policy: Dict[str, Any]) -> 'Perturbation':
        return cls(PerturbationType.CREATE_POLICY, policy=policy)

    @classmethod
    def update_policy(cls, policy: Dict[str, Any]) -> 'Perturbation':
        return cls(PerturbationType.UPDATE_POLICY, policy=policy)

    @classmethod
    def delete_policy(cls, namespace: str, name: str) -> 'Perturbation':
        return cls(PerturbationType.DELETE_POLICY,
                   policy={'metadata': {'namespace': namespace, 'name': name}})

    @classmethod
    def set_namespace_labels(cls, namespace: str, labels: Dict[str, str]) -> 'Perturbation':
        return cls(PerturbationType.SET_NAMESPACE_LABELS,
                   resource=ResourceRef(ResourceKind.NAMESPACE, namespace),
                   labels=dict(labels))

    @classmethod
    def set_pod_labels(cls, namespace: str, pod: str, labels: Dict[str, str]) -> 'Perturbation':
        return cls(PerturbationType.SET_POD_LABELS,
                   resource=ResourceRef(ResourceKind.POD, pod, namespace),
                   labels=dict(labels))
