"""
基于官方 kubernetes 客户端的集群实现
"""

import logging
from typing import Dict, List, Any, Optional, Iterable

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.stream import stream
from websocket import WebSocketException

from connectivity_checker.exceptions import ProvisioningError, ProbeExecutionError
from connectivity_checker.interfaces import ResourceProvisioner, ProbeExecutor
from connectivity_checker.kube.agnhost import container_name, connect_command, interpret_exit
from connectivity_checker.models.data_models import Identity, Protocol, ResourceRef, ResourceKind

logger = logging.getLogger(__name__)


def load_kube_config(context: Optional[str] = None):
    """加载 kubeconfig，失败时回退到集群内 ServiceAccount 配置"""
    try:
        config.load_kube_config(context=context)
        logger.info(f"已从 kubeconfig 初始化 Kubernetes 客户端 (context={context or 'default'})")
    except config.ConfigException:
        if context:
            raise
        config.load_incluster_config()
        logger.info("已从集群内 ServiceAccount 初始化 Kubernetes 客户端")


def server_version(api_client: Optional[client.ApiClient] = None) -> Dict[str, Any]:
    info = client.VersionApi(api_client).get_code()
    return {"major": info.major, "minor": info.minor, "git_version": info.git_version}


def _to_dict(obj: Any) -> Dict[str, Any]:
    return client.ApiClient().sanitize_for_serialization(obj)


class KubernetesProvisioner(ResourceProvisioner):
    """通过 CoreV1Api / NetworkingV1Api 操作集群"""

    def __init__(
        self,
        namespaces: Iterable[str],
        pods: Iterable[str],
        core_api: Optional[client.CoreV1Api] = None,
        networking_api: Optional[client.NetworkingV1Api] = None
    ):
        """
        Args:
            namespaces: 被测命名空间
            pods: 每个命名空间中的被测 Pod 名
            core_api: 可注入的 CoreV1Api，默认使用已加载的配置创建
            networking_api: 可注入的 NetworkingV1Api
        """
        self.namespaces = list(namespaces)
        self.pods = list(pods)
        self.core_api = core_api or client.CoreV1Api()
        self.networking_api = networking_api or client.NetworkingV1Api()

    def list_identities(self) -> List[Identity]:
        identities = []
        for namespace in self.namespaces:
            try:
                pod_list = self.core_api.list_namespaced_pod(namespace)
            except ApiException as e:
                raise ProvisioningError(f"获取命名空间 {namespace} 的 Pod 失败: {e.reason}") from e
            by_name = {pod.metadata.name: pod for pod in pod_list.items}
            for name in self.pods:
                pod = by_name.get(name)
                if pod is None:
                    raise ProvisioningError(f"Pod {namespace}/{name} 不存在")
                if not pod.status or not pod.status.pod_ip:
                    raise ProvisioningError(f"Pod {namespace}/{name} 还没有分配 IP")
                identities.append(Identity(
                    namespace, name,
                    ip=pod.status.pod_ip,
                    service_ip=self._service_ip(namespace, name)
                ))
        return identities

    def _service_ip(self, namespace: str, pod: str) -> Optional[str]:
        service_name = f"s-{namespace}-{pod}"
        try:
            service = self.core_api.read_namespaced_service(service_name, namespace)
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"Service {namespace}/{service_name} 不存在")
                return None
            raise ProvisioningError(f"读取 Service {namespace}/{service_name} 失败: {e.reason}") from e
        return service.spec.cluster_ip

    def apply_policy(self, policy: Dict[str, Any]):
        namespace = policy['metadata']['namespace']
        name = policy['metadata']['name']
        try:
            self.networking_api.create_namespaced_network_policy(namespace, body=policy)
            logger.debug(f"已创建 NetworkPolicy {namespace}/{name}")
        except ApiException as e:
            if e.status != 409:
                raise ProvisioningError(f"创建 NetworkPolicy {namespace}/{name} 失败: {e.reason}") from e
            try:
                self.networking_api.replace_namespaced_network_policy(name, namespace, body=policy)
                logger.debug(f"已更新 NetworkPolicy {namespace}/{name}")
            except ApiException as e2:
                raise ProvisioningError(f"更新 NetworkPolicy {namespace}/{name} 失败: {e2.reason}") from e2

    def delete_policy(self, namespace: str, name: str):
        try:
            self.networking_api.delete_namespaced_network_policy(name, namespace)
        except ApiException as e:
            raise ProvisioningError(f"删除 NetworkPolicy {namespace}/{name} 失败: {e.reason}") from e

    def read_policy(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        try:
            policy = self.networking_api.read_namespaced_network_policy(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise ProvisioningError(f"读取 NetworkPolicy {namespace}/{name} 失败: {e.reason}") from e
        return _to_dict(policy)

    def list_policies(self, namespace: str) -> List[str]:
        try:
            policies = self.networking_api.list_namespaced_network_policy(namespace)
        except ApiException as e:
            raise ProvisioningError(f"列出命名空间 {namespace} 的 NetworkPolicy 失败: {e.reason}") from e
        return [item.metadata.name for item in policies.items]

    def _read_resource(self, ref: ResourceRef):
        if ref.kind == ResourceKind.NAMESPACE:
            return self.core_api.read_namespace(ref.name)
        return self.core_api.read_namespaced_pod(ref.name, ref.namespace)

    def relabel_resource(self, ref: ResourceRef, labels: Dict[str, str]):
        try:
            resource = self._read_resource(ref)
            resource.metadata.labels = dict(labels)
            if ref.kind == ResourceKind.NAMESPACE:
                self.core_api.replace_namespace(ref.name, resource)
            else:
                self.core_api.replace_namespaced_pod(ref.name, ref.namespace, resource)
        except ApiException as e:
            raise ProvisioningError(f"修改 {ref} 的标签失败: {e.reason}") from e

    def read_labels(self, ref: ResourceRef) -> Dict[str, str]:
        try:
            resource = self._read_resource(ref)
        except ApiException as e:
            raise ProvisioningError(f"读取 {ref} 失败: {e.reason}") from e
        return dict(resource.metadata.labels or {})


class KubeExecProbeExecutor(ProbeExecutor):
    """通过 exec 在源 Pod 中运行 agnhost connect"""

    def __init__(self, core_api: Optional[client.CoreV1Api] = None,
                 connect_timeout_seconds: int = 1, exec_timeout_seconds: int = 10):
        self.core_api = core_api or client.CoreV1Api()
        self.connect_timeout_seconds = connect_timeout_seconds
        self.exec_timeout_seconds = exec_timeout_seconds

    def execute(self, source: Identity, destination_address: str, port: int, protocol: Protocol) -> bool:
        command = connect_command(destination_address, port, protocol, self.connect_timeout_seconds)
        try:
            resp = stream(
                self.core_api.connect_get_namespaced_pod_exec,
                source.name,
                source.namespace,
                command=command,
                container=container_name(port, protocol),
                stderr=True,
                stdin=False,
                stdout=True,
                tty=False,
                _preload_content=False
            )
            try:
                resp.run_forever(timeout=self.exec_timeout_seconds)
                output = resp.read_stderr() + resp.read_stdout()
                returncode = resp.returncode
            finally:
                resp.close()
        except (ApiException, WebSocketException, OSError) as e:
            raise ProbeExecutionError(f"在 {source} 中执行 connect 失败: {e}") from e
        return interpret_exit(returncode, output)
