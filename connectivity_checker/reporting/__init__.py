"""结果报告模块"""

from connectivity_checker.reporting.printer import ResultPrinter

__all__ = ["ResultPrinter"]
