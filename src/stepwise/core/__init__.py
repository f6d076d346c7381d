"""Scenario execution engine.

It provides:
- the registry of capabilities and comparators with plugin discovery;
- the loader turning YAML streams into immutable scenarios;
- the executor turning one step into one outcome;
- the runner sequencing steps and assembling results.
"""

from .executor import StepExecutor
from .loader import ScenarioLoader, ScenarioYAMLLoader
from .registry import CapabilityRegistry
from .runner import ScenarioRunner

__all__ = (
    'CapabilityRegistry',
    'ScenarioLoader',
    'ScenarioRunner',
    'ScenarioYAMLLoader',
    'StepExecutor',
)
