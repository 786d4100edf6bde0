"""
命令执行器

在本机或通过 SSH 在跳板机上执行 kubectl 等命令行命令，返回退出码和输出。
"""

import shlex
import logging
import subprocess
from dataclasses import dataclass
from typing import List, Optional

import paramiko

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    returncode: Optional[int]
    stdout: str
    stderr: str


class CommandRunner:
    """
    执行命令行命令：
    - 未配置 hostname 时直接本地执行
    - 否则通过 SSH 在远程主机（能访问集群的跳板机）上执行
    """

    def __init__(self, hostname=None, username=None, password=None, key_filename=None, port=22,
                 timeout: float = 30):
        self.hostname = hostname
        self.username = username
        self.password = password
        self.key_filename = key_filename
        self.port = port
        self.timeout = timeout

    @property
    def use_ssh(self) -> bool:
        return bool(self.hostname)

    def run(self, args: List[str]) -> CommandResult:
        if not self.use_ssh:
            result = subprocess.run(args, capture_output=True, text=True, timeout=self.timeout)
            return CommandResult(result.returncode, result.stdout, result.stderr)

        command = " ".join(shlex.quote(arg) for arg in args)
        ssh = paramiko.SSHClient()
        ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            ssh.connect(
                hostname=self.hostname,
                port=self.port,
                username=self.username,
                password=self.password,
                key_filename=self.key_filename,
                timeout=self.timeout
            )
            stdin, stdout, stderr = ssh.exec_command(command, timeout=self.timeout)
            output = stdout.read().decode()
            error = stderr.read().decode()
            returncode = stdout.channel.recv_exit_status()
        finally:
            ssh.close()
        return CommandResult(returncode, output, error)
