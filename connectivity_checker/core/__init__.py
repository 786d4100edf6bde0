"""核心执行引擎"""

from connectivity_checker.core.inventory import ResourceInventory
from connectivity_checker.core.probe_runner import ProbeRunner
from connectivity_checker.core.batch_scheduler import BatchScheduler, ProbeJob
from connectivity_checker.core.perturbation import ClusterPerturbation
from connectivity_checker.core.interpreter import Interpreter

__all__ = [
    "ResourceInventory",
    "ProbeRunner",
    "BatchScheduler",
    "ProbeJob",
    "ClusterPerturbation",
    "Interpreter"
]
