"""
探测执行器

在外部单次探测接口之上叠加重试与 INDETERMINATE 语义。
"""

import logging

from connectivity_checker.exceptions import ConfigurationError, ProbeExecutionError
from connectivity_checker.interfaces import ProbeExecutor
from connectivity_checker.models.data_models import Identity, PortProtocol, Outcome, ProbeMode

logger = logging.getLogger(__name__)


class ProbeRunner:
    """
    单个 (源, 目标, 端口/协议) 的探测

    只有执行通道失败（ProbeExecutionError）才会重试；明确的拒绝/超时本身就是
    UNREACHABLE 信号，不重试。重试之间没有退避等待。
    """

    def __init__(self, executor: ProbeExecutor, retries: int = 1):
        """
        Args:
            executor: 外部探测接口
            retries: 失败后的重试次数，总尝试次数为 retries + 1
        """
        if retries < 0:
            raise ConfigurationError(f"重试次数不能为负数: {retries}")
        self.executor = executor
        self.retries = retries

    def probe(self, source: Identity, destination: Identity, port_protocol: PortProtocol,
              mode: ProbeMode = ProbeMode.POD_IP) -> Outcome:
        address = destination.address(mode)
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                connected = self.executor.execute(source, address, port_protocol.port, port_protocol.protocol)
            except ProbeExecutionError as e:
                logger.debug(f"探测失败 {source} -> {destination}({address}) {port_protocol} "
                             f"[{attempt}/{attempts}]: {e}")
                continue
            outcome = Outcome.from_bool(connected)
            logger.debug(f"{source} -> {destination}({address}) {port_protocol}: {outcome.value}")
            return outcome

        logger.warning(f"{source} -> {destination} {port_protocol} 重试 {self.retries} 次后仍无法确定结果")
        return Outcome.INDETERMINATE
