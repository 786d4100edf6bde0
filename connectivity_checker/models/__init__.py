"""数据模型模块"""

from connectivity_checker.models.data_models import (
    Protocol,
    Outcome,
    ProbeMode,
    PerturbationType,
    ResourceKind,
    InterpreterState,
    PortProtocol,
    Identity,
    ResourceRef,
    Perturbation
)
from connectivity_checker.models.truth_table import (
    TruthTable,
    TableDiff,
    DiffCell,
    diff,
    render_comparison
)
from connectivity_checker.models.test_case import (
    Step,
    TestCase,
    StepResult,
    TestCaseResult,
    RunSummary
)

__all__ = [
    "Protocol",
    "Outcome",
    "ProbeMode",
    "PerturbationType",
    "ResourceKind",
    "InterpreterState",
    "PortProtocol",
    "Identity",
    "ResourceRef",
    "Perturbation",
    "TruthTable",
    "TableDiff",
    "DiffCell",
    "diff",
    "render_comparison",
    "Step",
    "TestCase",
    "StepResult",
    "TestCaseResult",
    "RunSummary"
]
