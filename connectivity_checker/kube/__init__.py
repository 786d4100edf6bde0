"""集群协作者实现（真实集群与 mock）"""

from connectivity_checker.kube.mock import MockCluster, MockProbeExecutor

__all__ = [
    "MockCluster",
    "MockProbeExecutor"
]
