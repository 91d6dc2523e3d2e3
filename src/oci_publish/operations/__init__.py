"""
Operations package - Application service layer between CLI and the publisher.

This package provides the Operations facade that orchestrates CLI commands,
centralizes error mapping, and handles output formatting while keeping
CLI commands thin and testable.
"""
from .facade import Operations, OpsConfig, PlanResult
from .mappers import exit_code_for, exit_code_for_result, run_and_exit

__all__ = ["Operations", "OpsConfig", "PlanResult", "exit_code_for", "exit_code_for_result",
           "run_and_exit"]
