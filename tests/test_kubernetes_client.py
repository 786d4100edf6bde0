from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.rest import ApiException

from connectivity_checker.config import InterpreterConfig
from connectivity_checker.core.perturbation import ClusterPerturbation
from connectivity_checker.exceptions import ProbeExecutionError, ProvisioningError
from connectivity_checker.kube.kubernetes_client import KubeExecProbeExecutor, KubernetesProvisioner
from connectivity_checker.models.data_models import Identity, Perturbation, Protocol, ResourceKind, ResourceRef


def _pod(name, ip):
    return SimpleNamespace(metadata=SimpleNamespace(name=name, labels={"pod": name}),
                           status=SimpleNamespace(pod_ip=ip))


@pytest.fixture
def core_api():
    api = MagicMock()
    api.list_namespaced_pod.side_effect = lambda namespace: SimpleNamespace(items=[
        _pod("a", f"10.0.{namespace}.1"), _pod("b", f"10.0.{namespace}.2"), _pod("other", "10.9.9.9")
    ])
    api.read_namespaced_service.side_effect = lambda name, namespace: SimpleNamespace(
        spec=SimpleNamespace(cluster_ip=f"10.96.{name}")
    )
    return api


@pytest.fixture
def networking_api():
    return MagicMock()


@pytest.fixture
def provisioner(core_api, networking_api):
    return KubernetesProvisioner(["x", "y"], ["a", "b"], core_api=core_api, networking_api=networking_api)


class TestKubernetesProvisioner:

    def test_list_identities(self, provisioner):
        identities = provisioner.list_identities()
        assert [i.key for i in identities] == ["x/a", "x/b", "y/a", "y/b"]
        assert identities[0].ip == "10.0.x.1"
        assert identities[0].service_ip == "10.96.s-x-a"

    def test_missing_service_has_no_service_ip(self, provisioner, core_api):
        core_api.read_namespaced_service.side_effect = ApiException(status=404, reason="Not Found")
        assert all(i.service_ip is None for i in provisioner.list_identities())

    def test_missing_pod(self, core_api, networking_api):
        provisioner = KubernetesProvisioner(["x"], ["c"], core_api=core_api, networking_api=networking_api)
        with pytest.raises(ProvisioningError):
            provisioner.list_identities()

    def test_pod_without_ip(self, provisioner, core_api):
        core_api.list_namespaced_pod.side_effect = lambda namespace: SimpleNamespace(items=[
            _pod("a", None), _pod("b", "10.0.0.2")
        ])
        with pytest.raises(ProvisioningError):
            provisioner.list_identities()

    def test_apply_policy_creates(self, provisioner, networking_api, make_policy):
        provisioner.apply_policy(make_policy())
        networking_api.create_namespaced_network_policy.assert_called_once()
        networking_api.replace_namespaced_network_policy.assert_not_called()

    def test_apply_existing_policy_replaces(self, provisioner, networking_api, make_policy):
        networking_api.create_namespaced_network_policy.side_effect = ApiException(status=409, reason="Conflict")
        policy = make_policy()
        provisioner.apply_policy(policy)
        networking_api.replace_namespaced_network_policy.assert_called_once_with("deny-ingress", "y", body=policy)

    def test_apply_failure_is_wrapped(self, provisioner, networking_api, make_policy):
        networking_api.create_namespaced_network_policy.side_effect = ApiException(status=403, reason="Forbidden")
        with pytest.raises(ProvisioningError) as exc_info:
            provisioner.apply_policy(make_policy())
        assert isinstance(exc_info.value.__cause__, ApiException)

    def test_read_missing_policy_is_none(self, provisioner, networking_api):
        networking_api.read_namespaced_network_policy.side_effect = ApiException(status=404, reason="Not Found")
        assert provisioner.read_policy("y", "p") is None

    def test_list_policies(self, provisioner, networking_api):
        networking_api.list_namespaced_network_policy.return_value = SimpleNamespace(items=[
            SimpleNamespace(metadata=SimpleNamespace(name="p1")),
            SimpleNamespace(metadata=SimpleNamespace(name="p2")),
        ])
        assert provisioner.list_policies("y") == ["p1", "p2"]

    def test_delete_failure_is_wrapped(self, provisioner, networking_api):
        networking_api.delete_namespaced_network_policy.side_effect = ApiException(status=404, reason="Not Found")
        with pytest.raises(ProvisioningError):
            provisioner.delete_policy("y", "p")

    def test_relabel_namespace(self, provisioner, core_api):
        namespace = SimpleNamespace(metadata=SimpleNamespace(labels={"ns": "x"}))
        core_api.read_namespace.return_value = namespace

        provisioner.relabel_resource(ResourceRef(ResourceKind.NAMESPACE, "x"), {"team": "blue"})

        core_api.replace_namespace.assert_called_once_with("x", namespace)
        assert namespace.metadata.labels == {"team": "blue"}

    def test_relabelled_namespace_verifies_despite_server_label(self, provisioner, core_api):
        namespace = SimpleNamespace(metadata=SimpleNamespace(labels={"ns": "y"}))
        core_api.read_namespace.return_value = namespace

        def replace(name, body):
            body.metadata.labels["kubernetes.io/metadata.name"] = name
        core_api.replace_namespace.side_effect = replace

        step = Perturbation.set_namespace_labels("y", {"ns": "y", "team": "blue"})
        perturbation = ClusterPerturbation(provisioner, InterpreterConfig(perturbation_wait_seconds=0))
        perturbation.apply(step)
        perturbation.verify(step)

        assert namespace.metadata.labels == {"ns": "y", "team": "blue", "kubernetes.io/metadata.name": "y"}

    def test_read_pod_labels(self, provisioner, core_api):
        core_api.read_namespaced_pod.return_value = _pod("a", "10.0.0.1")
        assert provisioner.read_labels(ResourceRef(ResourceKind.POD, "a", "x")) == {"pod": "a"}
        core_api.read_namespaced_pod.assert_called_once_with("a", "x")


class TestKubeExecProbeExecutor:

    @pytest.fixture
    def source(self):
        return Identity("x", "a", ip="10.0.0.1")

    @pytest.mark.parametrize("returncode,stderr,connected", [
        (0, "", True),
        (1, "TIMEOUT\n", False),
        (1, "REFUSED\n", False),
    ])
    def test_exit_status(self, source, returncode, stderr, connected):
        resp = MagicMock(returncode=returncode)
        resp.read_stderr.return_value = stderr
        resp.read_stdout.return_value = ""
        core_api = MagicMock()

        with patch("connectivity_checker.kube.kubernetes_client.stream", return_value=resp) as mock_stream:
            executor = KubeExecProbeExecutor(core_api=core_api)
            assert executor.execute(source, "10.0.1.2", 80, Protocol.TCP) is connected

        kwargs = mock_stream.call_args.kwargs
        assert kwargs["container"] == "cont-80-tcp"
        assert kwargs["command"] == ["/agnhost", "connect", "10.0.1.2:80", "--timeout=1s", "--protocol=tcp"]
        resp.close.assert_called_once()

    def test_unrecognised_failure_is_probe_error(self, source):
        resp = MagicMock(returncode=126)
        resp.read_stderr.return_value = "OCI runtime exec failed"
        resp.read_stdout.return_value = ""
        with patch("connectivity_checker.kube.kubernetes_client.stream", return_value=resp):
            with pytest.raises(ProbeExecutionError):
                KubeExecProbeExecutor(core_api=MagicMock()).execute(source, "10.0.1.2", 80, Protocol.TCP)

    def test_api_failure_is_probe_error(self, source):
        with patch("connectivity_checker.kube.kubernetes_client.stream",
                   side_effect=ApiException(status=500, reason="boom")):
            with pytest.raises(ProbeExecutionError):
                KubeExecProbeExecutor(core_api=MagicMock()).execute(source, "10.0.1.2", 80, Protocol.TCP)
