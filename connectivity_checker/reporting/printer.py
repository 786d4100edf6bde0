"""
结果打印器

每个测试用例结束后立即输出结果；失败（或 noisy 模式）时打印期望/观测对比网格。
运行结束后输出汇总，并可选地把全部结果保存为 JSON 报告。
"""

import json
import logging
from datetime import datetime
from typing import Dict, List, Any, Optional

from connectivity_checker.interfaces import Reporter
from connectivity_checker.models.test_case import TestCaseResult, StepResult
from connectivity_checker.models.truth_table import render_comparison

logger = logging.getLogger(__name__)


class ResultPrinter(Reporter):
    """把测试结果写入日志的报告器"""

    def __init__(self, noisy: bool = False, ignore_loopback: bool = False,
                 output_file: Optional[str] = None):
        """
        初始化打印器

        Args:
            noisy: 为 True 时通过的步骤也打印对比网格
            ignore_loopback: 网格中把回环单元格标记为 I
            output_file: JSON 报告路径，为空则不保存
        """
        self.noisy = noisy
        self.ignore_loopback = ignore_loopback
        self.output_file = output_file
        self.passed = 0
        self.failed = 0
        self.errored = 0
        self.records: List[Dict[str, Any]] = []

    def report(self, result: TestCaseResult):
        index = self.passed + self.failed + self.errored + 1
        status = self._status(result)
        tags = ", ".join(sorted(result.test_case.tags)) or "-"
        logger.info(f"\n{'='*80}")
        logger.info(f"测试用例 #{index}: {result.test_case.description} [{status}]")
        logger.info(f"  标签: {tags}")
        logger.info(f"  耗时: {result.duration:.2f}s")

        if status == "ERROR":
            self.errored += 1
            logger.error(f"  ❌ {result.error}")
        elif status == "PASS":
            self.passed += 1
        else:
            self.failed += 1

        for step_result in result.step_results:
            self._print_step(step_result)

        if self.output_file:
            self.records.append(result.to_dict())

    @staticmethod
    def _status(result: TestCaseResult) -> str:
        if result.error is not None:
            return "ERROR"
        return "PASS" if result.passed else "FAIL"

    def _print_step(self, step_result: StepResult):
        perturbation = step_result.step.perturbation.describe()
        if step_result.error:
            logger.info(f"  步骤 {step_result.step_index + 1} ({perturbation}): "
                        f"{step_result.state.value}")
            return
        diff = step_result.diff
        logger.info(f"  步骤 {step_result.step_index + 1} ({perturbation}): "
                    f"不一致 {len(diff.mismatches)}, 不确定 {len(diff.warnings)}, "
                    f"忽略 {diff.ignored_cells}")
        for cell in diff.mismatches:
            logger.info(f"    X {cell}")
        for cell in diff.warnings:
            logger.warning(f"    ? {cell}")

        if not diff.passed or self.noisy:
            grid = render_comparison(step_result.step.expected, step_result.observed, self.ignore_loopback)
            logger.info(f"期望 vs 观测 (. 一致, X 不一致, ? 不确定, I 忽略):\n{grid}")
        if self.noisy:
            logger.info(f"观测真值表:\n{step_result.observed.render()}")

    def summary(self) -> str:
        total = self.passed + self.failed + self.errored
        lines = [
            f"{'='*80}",
            "运行汇总",
            f"  测试用例: {total}",
            f"  通过: {self.passed}",
            f"  失败: {self.failed}",
            f"  错误: {self.errored}",
            f"{'='*80}",
        ]
        return "\n".join(lines)

    def save(self) -> Optional[str]:
        """把收集的结果写入 JSON 报告"""
        if not self.output_file:
            return None
        report = {
            'generated_at': datetime.now().isoformat(),
            'passed': self.passed,
            'failed': self.failed,
            'errored': self.errored,
            'test_cases': self.records,
        }
        with open(self.output_file, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2, ensure_ascii=False)
        logger.info(f"✓ 报告已保存: {self.output_file}")
        return self.output_file
