"""Shared fixtures: registries, loaders, fake plugins and workspaces."""

from importlib.metadata import EntryPoint, EntryPoints
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
import yaml

from stepwise.core import CapabilityRegistry, ScenarioLoader, StepExecutor
from stepwise.core.registry import PLUGINS_GROUP
from stepwise.settings import RunnerSettings

if TYPE_CHECKING:
    from collections.abc import Callable

if TYPE_CHECKING:
    from pyfakefs.fake_filesystem import FakeFilesystem
    from pytest_mock import MockerFixture, MockType

if TYPE_CHECKING:
    from stepwise.extensions import Plugin

WORKSPACE = Path('/workspace')


@pytest.fixture
def loader() -> type[yaml.SafeLoader]:
    """Provide a fresh `SafeLoader` subclass so tests never share loader state."""
    class Loader(yaml.SafeLoader):
        pass

    return Loader


@pytest.fixture
def patch_entrypoints(mocker: 'MockerFixture') -> 'Callable[..., MockType]':
    """Provide a factory faking plugins of the `stepwise_plugins` group."""
    def patch(*plugins: 'Plugin | object', raises: Exception | None = None) -> 'MockType':
        """Make `entry_points()` return one fake entry point per plugin.

        Args:
            plugins: Objects to be returned by `EntryPoint.load()`.
            raises: Exception to raise when `EntryPoint.load()` is called.

        Returns:
            A mock patch object replacing `importlib.metadata.entry_points`.
        """
        entrypoints = []
        for plugin in plugins:
            ep = mocker.Mock(spec=EntryPoint)
            ep.group = PLUGINS_GROUP
            ep.name = 'tests'
            ep.value = 'tests.plugins:test'
            ep.load.return_value = plugin
            if raises is not None:
                ep.load.side_effect = raises
            entrypoints.append(ep)

        return mocker.patch(
            'importlib.metadata.entry_points',
            return_value=EntryPoints(entrypoints),
        )

    return patch


@pytest.fixture
def registry() -> CapabilityRegistry:
    """Provide a registry with builtin extensions only."""
    return CapabilityRegistry(load_plugins=False)


@pytest.fixture
def settings() -> RunnerSettings:
    """Provide runner settings with a short default timeout."""
    return RunnerSettings(default_timeout=2.0)


@pytest.fixture
def scenario_loader(registry: CapabilityRegistry,
                    loader: type[yaml.SafeLoader]) -> ScenarioLoader:
    """Provide a scenario loader bound to the builtin registry."""
    return ScenarioLoader(registry, loader=loader)


@pytest.fixture
def executor(registry: CapabilityRegistry, settings: RunnerSettings) -> StepExecutor:
    """Provide a step executor bound to the builtin registry."""
    return StepExecutor(registry, workspace=WORKSPACE, settings=settings)


@pytest.fixture
def workspace(fs: 'FakeFilesystem') -> 'Callable[..., Path]':
    """Provide a factory writing files into a fake workspace.

    Returns:
        Callable accepting a mapping of relative paths to file contents
        and returning the workspace root.
    """
    fs.create_dir(WORKSPACE)

    def write(files: dict[str, str] | None = None) -> Path:
        for name, content in (files or {}).items():
            fs.create_file(WORKSPACE / name, contents=content)

        # Rebuild under the patched `pathlib` so it compares equal to the
        # fake-filesystem paths produced by the code under test.
        return Path(WORKSPACE)

    return write
