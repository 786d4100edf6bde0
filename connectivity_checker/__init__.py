"""
NetworkPolicy 连通性验证模块

该模块负责：
1. 按测试用例对集群施加扰动（创建/更新/删除策略，修改标签）
2. 在所有 Pod 之间探测端口/协议的连通性
3. 将观测真值表与期望真值表比较并报告差异
"""

__version__ = "1.0.0"

from connectivity_checker.config import InterpreterConfig, RunConfig
from connectivity_checker.core.interpreter import Interpreter
from connectivity_checker.core.inventory import ResourceInventory
from connectivity_checker.models.data_models import Identity, PortProtocol, Outcome, Perturbation
from connectivity_checker.models.test_case import Step, TestCase, TestCaseResult, RunSummary
from connectivity_checker.models.truth_table import TruthTable

__all__ = [
    "InterpreterConfig",
    "RunConfig",
    "Interpreter",
    "ResourceInventory",
    "Identity",
    "PortProtocol",
    "Outcome",
    "Perturbation",
    "Step",
    "TestCase",
    "TestCaseResult",
    "RunSummary",
    "TruthTable"
]
