"""Run orchestration for logref."""

from run.controller import RunController, run
from run.models import FileReport, Finding, Mode, RunResult

__all__ = ["FileReport", "Finding", "Mode", "RunController", "RunResult", "run"]
