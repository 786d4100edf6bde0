"""
agnhost connect 探测命令

被测 Pod 的每个端口/协议由名为 cont-<port>-<protocol> 的 agnhost 容器提供服务，
探测时在源 Pod 的对应容器中执行 `/agnhost connect`。
"""

from typing import List, Optional

from connectivity_checker.exceptions import ProbeExecutionError
from connectivity_checker.models.data_models import Protocol

# agnhost connect 失败时输出到 stderr 的原因；这些都是策略层面的 "连不上"
UNREACHABLE_MARKERS = ("TIMEOUT", "REFUSED", "DNS")


def container_name(port: int, protocol: Protocol) -> str:
    return f"cont-{port}-{protocol.value.lower()}"


def connect_command(address: str, port: int, protocol: Protocol, timeout_seconds: int = 1) -> List[str]:
    return [
        "/agnhost", "connect", f"{address}:{port}",
        f"--timeout={timeout_seconds}s",
        f"--protocol={protocol.value.lower()}",
    ]


def interpret_exit(returncode: Optional[int], output: str) -> bool:
    """
    把一次 connect 的退出码解释为连通结果

    Returns:
        True 连接成功；False 明确的拒绝/超时

    Raises:
        ProbeExecutionError: 没有退出码或无法识别的失败
    """
    if returncode is None:
        raise ProbeExecutionError("exec 没有返回退出码")
    if returncode == 0:
        return True
    if any(marker in output for marker in UNREACHABLE_MARKERS):
        return False
    raise ProbeExecutionError(f"connect 异常退出 (code={returncode}): {output.strip()[:200]}")
