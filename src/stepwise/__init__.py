"""Scenario runner for YAML-based test definitions.

The `stepwise` package loads a scenario document, resolves `{{key}}`
references against layered properties, executes its steps one by one
and reports a Pass/Fail/Error verdict per step and for the whole run.

Key features:
- layered properties: properties files beneath values exported by steps;
- action steps dispatched to capabilities, extensible through plugins;
- assertion steps with a configurable set of comparison operators;
- a configurable continue/abort policy and cooperative cancellation;
- deterministic line-based reports.
"""

from stepwise.core import ScenarioRunner
from stepwise.properties import PropertySet
from stepwise.schema import Result, Status

__all__ = (
    'PropertySet',
    'Result',
    'ScenarioRunner',
    'Status',
)
