"""Runtime settings of the scenario runner."""

from pydantic import Field, NonNegativeFloat, PositiveFloat
from pydantic_settings import SettingsConfigDict

from stepwise.models import SettingsModel


class RunnerSettings(SettingsModel):
    """Runner configuration resolved from `STEPWISE_*` environment variables.

    Explicit keyword arguments take precedence over the environment.
    """

    model_config = SettingsConfigDict(
        env_prefix='STEPWISE_',
    )

    default_timeout: PositiveFloat = Field(
        default=30.0,
        title='Default step timeout',
        description=(
            'Timeout in seconds applied to steps performing I/O when '
            'the step itself does not define one.'
        ),
    )

    timeout_grace: NonNegativeFloat = Field(
        default=1.0,
        title='Timeout grace period',
        description=(
            'Seconds a capability may keep running past its step timeout '
            'before the step is abandoned with a timeout Error.'
        ),
    )

    abort_on_error: bool = Field(
        default=True,
        title='Abort on error',
        description=(
            'Stop executing remaining steps after a step ends with an Error '
            'outcome. Later steps usually depend on the failed step exports.'
        ),
    )

    abort_on_failure: bool = Field(
        default=False,
        title='Abort on failure',
        description=(
            'Stop executing remaining steps after an assertion Fail. '
            'Disabled by default so that one run reports every failure.'
        ),
    )

    strict_plugins: bool = Field(
        default=False,
        title='Strict plugins mode',
        description=(
            'Raise on plugin loading issues instead of emitting warnings.'
        ),
    )

    local_properties: str = Field(
        default='local.properties',
        title='Workspace properties file',
        description=(
            'Name of the optional properties file read from the workspace '
            'root beneath explicitly supplied properties.'
        ),
    )
