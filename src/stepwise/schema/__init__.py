"""Immutable models of scenarios and run results.

Defines the structural contract of scenario documents (header, action
and assertion steps) and of execution verdicts (outcomes and results).
"""

from .results import Result, RunState, Status, StepOutcome
from .scenario import Scenario, ScenarioHeader
from .steps import ASSERT_KIND, ActionStep, AssertionStep, BaseStep, Step, StepAdapter

__all__ = (
    'ASSERT_KIND',
    'ActionStep',
    'AssertionStep',
    'BaseStep',
    'Result',
    'RunState',
    'Scenario',
    'ScenarioHeader',
    'Status',
    'Step',
    'StepAdapter',
    'StepOutcome',
)
