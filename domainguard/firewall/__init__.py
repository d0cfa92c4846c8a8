"""Firewall rule compilation and execution."""

from domainguard.firewall.executor import (
    DryRunRuleExecutor,
    ExecutionResult,
    RuleExecutor,
    ShellRuleExecutor,
)
from domainguard.firewall.rules import RuleCompiler, RuleScript, count_removed

__all__ = [
    "DryRunRuleExecutor",
    "ExecutionResult",
    "RuleExecutor",
    "ShellRuleExecutor",
    "RuleCompiler",
    "RuleScript",
    "count_removed",
]
