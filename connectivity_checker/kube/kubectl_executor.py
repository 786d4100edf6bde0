"""
基于 kubectl exec 的探测实现

适用于本机没有 kubeconfig、只能通过 SSH 登录跳板机执行 kubectl 的环境。
"""

import logging
import socket
import subprocess
from typing import List, Optional

import paramiko

from connectivity_checker.exceptions import ProbeExecutionError
from connectivity_checker.interfaces import ProbeExecutor
from connectivity_checker.kube.agnhost import container_name, connect_command, interpret_exit
from connectivity_checker.kube.command_runner import CommandRunner
from connectivity_checker.models.data_models import Identity, Protocol

logger = logging.getLogger(__name__)


class KubectlProbeExecutor(ProbeExecutor):
    """kubectl exec <pod> -c cont-<port>-<protocol> -- /agnhost connect ..."""

    def __init__(self, runner: CommandRunner, context: Optional[str] = None,
                 kubeconfig: Optional[str] = None, connect_timeout_seconds: int = 1):
        self.runner = runner
        self.context = context
        self.kubeconfig = kubeconfig
        self.connect_timeout_seconds = connect_timeout_seconds

    def build_command(self, source: Identity, destination_address: str, port: int,
                      protocol: Protocol) -> List[str]:
        args = ["kubectl"]
        if self.kubeconfig:
            args.append(f"--kubeconfig={self.kubeconfig}")
        if self.context:
            args.append(f"--context={self.context}")
        args += ["exec", source.name, "-n", source.namespace, "-c", container_name(port, protocol), "--"]
        args += connect_command(destination_address, port, protocol, self.connect_timeout_seconds)
        return args

    def execute(self, source: Identity, destination_address: str, port: int, protocol: Protocol) -> bool:
        args = self.build_command(source, destination_address, port, protocol)
        try:
            result = self.runner.run(args)
        except (OSError, subprocess.SubprocessError, paramiko.SSHException, socket.timeout) as e:
            raise ProbeExecutionError(f"执行 kubectl exec 失败: {e}") from e
        return interpret_exit(result.returncode, result.stderr + result.stdout)
