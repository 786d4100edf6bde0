import json

import pytest
import yaml

from connectivity_checker.config import InterpreterConfig, RunConfig, DEFAULT_BATCH_SIZE
from connectivity_checker.exceptions import ConfigurationError
from connectivity_checker.models.data_models import PortProtocol, Protocol


class TestInterpreterConfig:

    def test_defaults(self):
        config = InterpreterConfig()
        assert config.reset_cluster_before_test_case
        assert config.verify_cluster_state_before_test_case
        assert config.kube_probe_retries == 1
        assert config.perturbation_wait_seconds == 5
        assert not config.batch_jobs
        assert not config.ignore_loopback
        assert config.batch_size == DEFAULT_BATCH_SIZE

    @pytest.mark.parametrize("kwargs", [
        {"kube_probe_retries": -1},
        {"kube_probe_retries": 1.5},
        {"perturbation_wait_seconds": -1},
        {"perturbation_wait_seconds": "5"},
        {"batch_size": 0},
        {"batch_size": "25"},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigurationError):
            InterpreterConfig(**kwargs)

    def test_is_immutable(self):
        config = InterpreterConfig()
        with pytest.raises(AttributeError):
            config.kube_probe_retries = 3

    def test_from_dict_rejects_unknown_keys(self):
        assert InterpreterConfig.from_dict({"batch_jobs": True}).batch_jobs
        with pytest.raises(ConfigurationError):
            InterpreterConfig.from_dict({"batch_job": True})


class TestRunConfig:

    def test_port_protocols_cross_product(self):
        config = RunConfig(ports=[80, 81], protocols=["tcp", "UDP"])
        assert config.port_protocols() == [
            PortProtocol(80, Protocol.TCP), PortProtocol(80, Protocol.UDP),
            PortProtocol(81, Protocol.TCP), PortProtocol(81, Protocol.UDP),
        ]

    def test_invalid_protocol(self):
        with pytest.raises(ConfigurationError):
            RunConfig(protocols=["ICMP"]).port_protocols()

    def test_interpreter_config(self):
        config = RunConfig(retries=3, perturbation_wait_seconds=0, batch_jobs=True, ignore_loopback=True)
        interpreter_config = config.interpreter_config()
        assert interpreter_config.kube_probe_retries == 3
        assert interpreter_config.perturbation_wait_seconds == 0
        assert interpreter_config.batch_jobs
        assert interpreter_config.ignore_loopback

    def test_invalid_probe_backend(self):
        with pytest.raises(ConfigurationError):
            RunConfig(probe_backend="ssh")

    def test_from_yaml_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"namespaces": ["n1"], "retries": 2, "mock": True}))
        config = RunConfig.from_file(str(path))
        assert config.namespaces == ["n1"]
        assert config.retries == 2
        assert config.mock

    def test_json_round_trip(self, tmp_path):
        path = tmp_path / "config.json"
        RunConfig(pods=["p"], noisy=True).to_file(str(path))
        assert json.loads(path.read_text())["pods"] == ["p"]
        assert RunConfig.from_file(str(path)).noisy

    def test_unknown_key_in_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"namespace": "x"}))
        with pytest.raises(ConfigurationError):
            RunConfig.from_file(str(path))
