"""
测试用例解释器

对每个测试步骤驱动状态机：

    IDLE -> RESETTING -> PERTURBING -> SETTLING -> VERIFYING -> PROBING -> DIFFING -> DONE

RESETTING、PERTURBING、VERIFYING 中的集群错误转入 FAILED，并跳过该用例剩余的步骤
（后续步骤依赖之前的策略状态）。集群错误在用例边界被记录，运行继续；只有取消请求
会中断整个运行。
"""

import time
import logging
import threading
from typing import Iterable, Optional

from connectivity_checker.config import InterpreterConfig
from connectivity_checker.core.batch_scheduler import BatchScheduler, build_jobs
from connectivity_checker.core.inventory import ResourceInventory
from connectivity_checker.core.perturbation import ClusterPerturbation
from connectivity_checker.core.probe_runner import ProbeRunner
from connectivity_checker.exceptions import ConfigurationError, ProvisioningError, VerificationError, RunCancelled
from connectivity_checker.interfaces import ResourceProvisioner, ProbeExecutor, Reporter
from connectivity_checker.models.data_models import InterpreterState
from connectivity_checker.models.test_case import Step, TestCase, StepResult, TestCaseResult, RunSummary
from connectivity_checker.models.truth_table import TruthTable, diff

logger = logging.getLogger(__name__)


class Interpreter:
    """测试用例解释器"""

    def __init__(
        self,
        provisioner: ResourceProvisioner,
        executor: ProbeExecutor,
        inventory: ResourceInventory,
        config: InterpreterConfig,
        cancel_event: Optional[threading.Event] = None
    ):
        """
        初始化解释器

        Args:
            provisioner: 集群资源接口
            executor: 单次探测接口
            inventory: 被测资源快照
            config: 解释器配置（一次运行内不可变）
            cancel_event: 取消信号，可由外部共享
        """
        self.provisioner = provisioner
        self.inventory = inventory
        self.config = config
        self.cancel_event = cancel_event or threading.Event()

        self.perturbation = ClusterPerturbation(provisioner, config, self.cancel_event)
        self.scheduler = BatchScheduler(
            ProbeRunner(executor, config.kube_probe_retries),
            batch_mode=config.batch_jobs,
            batch_size=config.batch_size,
            cancel_event=self.cancel_event
        )

    def cancel(self):
        """请求取消，在下一次状态转换或批次边界生效"""
        self.cancel_event.set()

    def _check_cancelled(self):
        if self.cancel_event.is_set():
            raise RunCancelled("运行已被取消")

    def run(self, test_cases: Iterable[TestCase], reporter: Optional[Reporter] = None) -> RunSummary:
        """
        顺序执行所有测试用例

        每个结果在完成后立即交给 reporter，不在这里保留。

        Raises:
            RunCancelled: 运行被取消，当前用例的部分结果被丢弃
        """
        summary = RunSummary()
        for index, test_case in enumerate(test_cases, 1):
            self._check_cancelled()
            logger.info(f"开始执行测试用例 #{index}: {test_case.description}")
            result = self.execute_test_case(test_case)
            summary.record(result)
            if reporter is not None:
                reporter.report(result)
            logger.info(f"测试用例 #{index} 执行完成: {'通过' if result.passed else '失败'}")
        logger.info(f"✓ 共执行 {summary.total} 个测试用例: 通过 {summary.passed}, "
                    f"失败 {summary.failed}, 错误 {summary.errored}, 告警单元格 {summary.warnings}")
        return summary

    def execute_test_case(self, test_case: TestCase) -> TestCaseResult:
        """执行一个测试用例的所有步骤，遇到第一个 FAILED 即停止"""
        start_time = time.time()
        result = TestCaseResult(test_case=test_case)

        error = self._validate(test_case)
        if error:
            logger.error(f"测试用例 '{test_case.description}' 无法执行: {error}")
            result.error = error
            result.duration = time.time() - start_time
            return result

        for index, step in enumerate(test_case.steps):
            reset = index == 0 and self.config.reset_cluster_before_test_case
            step_result = self._execute_step(index, step, reset)
            result.step_results.append(step_result)
            if step_result.state == InterpreterState.FAILED:
                result.error = step_result.error
                skipped = len(test_case.steps) - index - 1
                logger.error(f"步骤 {index + 1} 失败，跳过剩余 {skipped} 个步骤: {step_result.error}")
                break

        result.duration = time.time() - start_time
        return result

    def _validate(self, test_case: TestCase) -> Optional[str]:
        """检查期望表是否完整、引用的 Pod 是否都在资源清单中，以及探测地址能否解析"""
        for index, step in enumerate(test_case.steps, 1):
            if not step.expected.is_complete():
                return f"步骤 {index} 的期望真值表不完整"
            missing = [i.key for i in step.expected.identities if i not in self.inventory]
            if missing:
                return f"步骤 {index} 引用了资源清单中不存在的 Pod: {', '.join(missing)}"
            for identity in step.expected.identities:
                try:
                    self.inventory.get(identity).address(step.probe_mode)
                except ConfigurationError as e:
                    return f"步骤 {index} 无法解析探测地址: {e}"
        return None

    def _execute_step(self, index: int, step: Step, reset: bool) -> StepResult:
        start_time = time.time()
        step_result = StepResult(step_index=index, step=step)

        def transition(state: InterpreterState):
            self._check_cancelled()
            step_result.state = state
            step_result.state_trace.append(state)
            logger.debug(f"步骤 {index + 1}: -> {state.value}")

        transition(InterpreterState.IDLE)
        try:
            if reset:
                transition(InterpreterState.RESETTING)
                self.perturbation.reset(self.inventory.namespaces, self.inventory.label_refs)

            transition(InterpreterState.PERTURBING)
            self.perturbation.apply(step.perturbation)

            transition(InterpreterState.SETTLING)
            self.perturbation.settle()

            if self.config.verify_cluster_state_before_test_case:
                transition(InterpreterState.VERIFYING)
                self.perturbation.verify(step.perturbation)
        except (ProvisioningError, VerificationError) as e:
            step_result.error = f"{type(e).__name__}: {e}"
            step_result.state = InterpreterState.FAILED
            step_result.state_trace.append(InterpreterState.FAILED)
            step_result.duration = time.time() - start_time
            return step_result

        transition(InterpreterState.PROBING)
        step_result.observed = self._probe(step)

        transition(InterpreterState.DIFFING)
        step_result.diff = diff(step.expected, step_result.observed, self.config.ignore_loopback)
        logger.info(f"  ✓ 步骤 {index + 1}: 比较 {step_result.diff.compared_cells} 个单元格, "
                    f"不一致 {len(step_result.diff.mismatches)}, 不确定 {len(step_result.diff.warnings)}")

        transition(InterpreterState.DONE)
        step_result.duration = time.time() - start_time
        return step_result

    def _probe(self, step: Step) -> TruthTable:
        """对期望表覆盖的 Pod x Pod x 端口/协议 全部探测一次"""
        identities = [self.inventory.get(identity) for identity in step.expected.identities]
        observed = TruthTable(identities, step.expected.port_protocols)
        jobs = build_jobs(identities, identities, step.expected.port_protocols, step.probe_mode)
        return self.scheduler.run(jobs, observed)
