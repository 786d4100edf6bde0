import subprocess
from unittest.mock import MagicMock, patch

import pytest

from connectivity_checker.exceptions import ProbeExecutionError
from connectivity_checker.kube.agnhost import container_name, interpret_exit
from connectivity_checker.kube.command_runner import CommandResult, CommandRunner
from connectivity_checker.kube.kubectl_executor import KubectlProbeExecutor
from connectivity_checker.models.data_models import Identity, Protocol


class FakeRunner:

    def __init__(self, result=None, error=None):
        self.result = result or CommandResult(0, "", "")
        self.error = error
        self.commands = []

    def run(self, args):
        self.commands.append(args)
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def source():
    return Identity("x", "a", ip="10.0.0.1")


class TestAgnhost:

    def test_container_name(self):
        assert container_name(81, Protocol.SCTP) == "cont-81-sctp"

    def test_interpret_exit(self):
        assert interpret_exit(0, "") is True
        assert interpret_exit(1, "DNS: lookup failed") is False
        with pytest.raises(ProbeExecutionError):
            interpret_exit(None, "")
        with pytest.raises(ProbeExecutionError):
            interpret_exit(1, "error: unable to upgrade connection")


class TestKubectlProbeExecutor:

    def test_build_command(self, source):
        executor = KubectlProbeExecutor(FakeRunner(), context="kind-kind")
        assert executor.build_command(source, "s-y-b.y.svc.cluster.local", 80, Protocol.UDP) == [
            "kubectl", "--context=kind-kind", "exec", "a", "-n", "x", "-c", "cont-80-udp", "--",
            "/agnhost", "connect", "s-y-b.y.svc.cluster.local:80", "--timeout=1s", "--protocol=udp",
        ]

    def test_connected(self, source):
        runner = FakeRunner(CommandResult(0, "", ""))
        assert KubectlProbeExecutor(runner).execute(source, "10.0.1.2", 80, Protocol.TCP) is True
        assert runner.commands[0][:2] == ["kubectl", "exec"]

    def test_refused(self, source):
        runner = FakeRunner(CommandResult(1, "", "REFUSED"))
        assert KubectlProbeExecutor(runner).execute(source, "10.0.1.2", 80, Protocol.TCP) is False

    def test_runner_failure_is_probe_error(self, source):
        runner = FakeRunner(error=subprocess.TimeoutExpired("kubectl", 30))
        with pytest.raises(ProbeExecutionError):
            KubectlProbeExecutor(runner).execute(source, "10.0.1.2", 80, Protocol.TCP)


class TestCommandRunner:

    def test_local_execution(self):
        completed = subprocess.CompletedProcess(["kubectl"], 0, stdout="ok", stderr="")
        with patch("connectivity_checker.kube.command_runner.subprocess.run", return_value=completed) as run:
            result = CommandRunner().run(["kubectl", "version"])
        assert result == CommandResult(0, "ok", "")
        assert run.call_args.args[0] == ["kubectl", "version"]

    def test_ssh_execution_quotes_arguments(self):
        ssh = MagicMock()
        stdout = MagicMock()
        stdout.read.return_value = b"done"
        stdout.channel.recv_exit_status.return_value = 1
        stderr = MagicMock()
        stderr.read.return_value = b"TIMEOUT"
        ssh.exec_command.return_value = (MagicMock(), stdout, stderr)

        with patch("connectivity_checker.kube.command_runner.paramiko.SSHClient", return_value=ssh):
            runner = CommandRunner(hostname="jump", username="root", password="secret")
            result = runner.run(["kubectl", "exec", "a", "--", "echo", "two words"])

        assert runner.use_ssh
        assert result == CommandResult(1, "done", "TIMEOUT")
        assert ssh.exec_command.call_args.args[0] == "kubectl exec a -- echo 'two words'"
        ssh.close.assert_called_once()
