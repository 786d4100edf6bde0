"""
批量调度器

把 (源, 目标, 端口/协议) 的全组合切分为固定大小的批次，批内并发、批间串行，
用来限制同一时刻打到 APIServer 上的 exec 请求数量。
"""

import logging
import threading
import concurrent.futures
from dataclasses import dataclass
from typing import List, Iterable, Iterator, Optional

from connectivity_checker.core.probe_runner import ProbeRunner
from connectivity_checker.exceptions import RunCancelled
from connectivity_checker.models.data_models import Identity, PortProtocol, ProbeMode
from connectivity_checker.models.truth_table import TruthTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeJob:
    """一个待执行的探测"""
    source: Identity
    destination: Identity
    port_protocol: PortProtocol
    mode: ProbeMode = ProbeMode.POD_IP


def build_jobs(sources: Iterable[Identity], destinations: Iterable[Identity],
               port_protocols: Iterable[PortProtocol], mode: ProbeMode = ProbeMode.POD_IP) -> List[ProbeJob]:
    destinations = list(destinations)
    port_protocols = list(port_protocols)
    return [
        ProbeJob(src, dst, pp, mode)
        for src in sources
        for dst in destinations
        for pp in port_protocols
    ]


def chunked(jobs: List[ProbeJob], size: int) -> Iterator[List[ProbeJob]]:
    for start in range(0, len(jobs), size):
        yield jobs[start:start + size]


class BatchScheduler:
    """探测调度器，批量模式或串行模式"""

    def __init__(self, runner: ProbeRunner, batch_mode: bool = False, batch_size: int = 25,
                 cancel_event: Optional[threading.Event] = None):
        """
        Args:
            runner: 单次探测执行器
            batch_mode: True 时批内并发执行
            batch_size: 每批探测数
            cancel_event: 取消信号，在每批开始前检查
        """
        if batch_size < 1:
            raise ValueError(f"batch_size 至少为 1: {batch_size}")
        self.runner = runner
        self.batch_mode = batch_mode
        self.batch_size = batch_size
        self.cancel_event = cancel_event or threading.Event()

    def _check_cancelled(self):
        if self.cancel_event.is_set():
            raise RunCancelled("探测过程中收到取消请求")

    def run(self, jobs: List[ProbeJob], observed: TruthTable) -> TruthTable:
        """
        执行所有探测并写入观测表

        Returns:
            写入完成的观测表（即传入的 observed）
        """
        if self.batch_mode:
            batches = list(chunked(jobs, self.batch_size))
            logger.info(f"批量模式: {len(jobs)} 个探测，分 {len(batches)} 批执行")
            for index, batch in enumerate(batches, 1):
                self._check_cancelled()
                self._run_batch(batch, observed)
                logger.debug(f"  ✓ 第 {index}/{len(batches)} 批完成")
        else:
            logger.info(f"串行模式: {len(jobs)} 个探测")
            for job in jobs:
                self._check_cancelled()
                outcome = self.runner.probe(job.source, job.destination, job.port_protocol, job.mode)
                observed.set(job.source, job.destination, job.port_protocol, outcome)
        return observed

    def _run_batch(self, batch: List[ProbeJob], observed: TruthTable):
        """批内并发，全部完成后才返回"""
        with concurrent.futures.ThreadPoolExecutor(max_workers=len(batch)) as executor:
            future_to_job = {
                executor.submit(self.runner.probe, job.source, job.destination, job.port_protocol, job.mode): job
                for job in batch
            }
            for future in concurrent.futures.as_completed(future_to_job):
                job = future_to_job[future]
                observed.set(job.source, job.destination, job.port_protocol, future.result())
