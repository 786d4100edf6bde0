"""
资源清单

一次运行内被测命名空间、Pod（含 IP）、端口和协议的只读快照。
"""

import logging
from typing import Dict, List, Iterable, Union

from connectivity_checker.interfaces import ResourceProvisioner
from connectivity_checker.models.data_models import Identity, PortProtocol, ResourceKind, ResourceRef

logger = logging.getLogger(__name__)


class ResourceInventory:
    """被测资源快照"""

    def __init__(self, identities: Iterable[Identity], port_protocols: Iterable[PortProtocol]):
        self._identities: List[Identity] = list(identities)
        self._port_protocols: List[PortProtocol] = list(port_protocols)
        self._by_key: Dict[str, Identity] = {i.key: i for i in self._identities}
        if len(self._by_key) != len(self._identities):
            raise ValueError("资源清单中存在重复的 Pod")

    @classmethod
    def from_provisioner(cls, provisioner: ResourceProvisioner,
                         port_protocols: Iterable[PortProtocol]) -> 'ResourceInventory':
        identities = provisioner.list_identities()
        inventory = cls(identities, port_protocols)
        logger.info(f"✓ 资源清单: {len(inventory.identities)} 个 Pod, "
                    f"{len(inventory.port_protocols)} 个端口/协议组合")
        for identity in inventory.identities:
            logger.debug(f"  {identity.key} ip={identity.ip} service_ip={identity.service_ip}")
        return inventory

    @property
    def identities(self) -> List[Identity]:
        return list(self._identities)

    @property
    def port_protocols(self) -> List[PortProtocol]:
        return list(self._port_protocols)

    @property
    def namespaces(self) -> List[str]:
        """按出现顺序去重的命名空间"""
        seen = []
        for identity in self._identities:
            if identity.namespace not in seen:
                seen.append(identity.namespace)
        return seen

    @property
    def label_refs(self) -> List[ResourceRef]:
        """被测命名空间和 Pod 的引用，重置时按这些资源恢复标签"""
        refs = [ResourceRef(ResourceKind.NAMESPACE, namespace) for namespace in self.namespaces]
        refs.extend(ResourceRef(ResourceKind.POD, i.name, i.namespace) for i in self._identities)
        return refs

    def get(self, identity: Union[Identity, str]) -> Identity:
        key = identity.key if isinstance(identity, Identity) else str(identity)
        try:
            return self._by_key[key]
        except KeyError:
            raise KeyError(f"资源清单中不存在 Pod: {key}")

    def __contains__(self, identity: Union[Identity, str]) -> bool:
        key = identity.key if isinstance(identity, Identity) else str(identity)
        return key in self._by_key
