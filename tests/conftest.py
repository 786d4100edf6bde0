import pytest

from connectivity_checker.config import InterpreterConfig
from connectivity_checker.core.inventory import ResourceInventory
from connectivity_checker.kube.mock import MockCluster, MockProbeExecutor
from connectivity_checker.models.data_models import Identity, PortProtocol, Protocol
from connectivity_checker.models.truth_table import TruthTable


@pytest.fixture
def identities():
    return [
        Identity("x", "a", ip="10.0.0.10", service_ip="10.96.0.10"),
        Identity("y", "b", ip="10.0.1.11", service_ip="10.96.1.11"),
        Identity("z", "c", ip="10.0.2.12", service_ip="10.96.2.12"),
    ]


@pytest.fixture
def tcp80():
    return PortProtocol(80, Protocol.TCP)


@pytest.fixture
def port_protocols(tcp80):
    return [tcp80]


@pytest.fixture
def inventory(identities, port_protocols):
    return ResourceInventory(identities, port_protocols)


@pytest.fixture
def cluster(identities):
    return MockCluster(identities)


@pytest.fixture
def executor(identities):
    return MockProbeExecutor(identities)


@pytest.fixture
def fast_config():
    """不等待收敛的解释器配置"""
    return InterpreterConfig(perturbation_wait_seconds=0)


@pytest.fixture
def make_policy():
    def _make(namespace="y", name="deny-ingress", spec=None):
        return {
            "apiVersion": "networking.k8s.io/v1",
            "kind": "NetworkPolicy",
            "metadata": {"namespace": namespace, "name": name},
            "spec": spec if spec is not None else {
                "podSelector": {},
                "policyTypes": ["Ingress"],
            },
        }
    return _make


@pytest.fixture
def make_table(identities, port_protocols):
    """默认全部可达，denied 中的 (源, 目标) 对不可达"""
    def _make(denied=(), default=True):
        denied = {(src, dst) for src, dst in denied}
        return TruthTable.from_function(
            identities, port_protocols,
            lambda src, dst, pp: False if (src.key, dst.key) in denied else default
        )
    return _make
