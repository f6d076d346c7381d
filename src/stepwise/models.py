"""Base Pydantic models.

Scenario elements, outcomes and results are frozen so that a loaded
scenario can be executed any number of times, with any property set,
without being parsed again. Unknown fields are rejected so that a typo
in a document is an error instead of a silently ignored key.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchemaModel(BaseModel):
    """Immutable strict model, the base of every scenario element."""

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra='forbid',
        populate_by_name=True,
    )


class DescribedMixin(SchemaModel):
    """Optional human-readable title and description.

    Neither field affects execution; titles are shown in reports.
    """

    title: str | None = Field(
        default=None,
        title='Title',
        description='Short label shown in reports.',
    )

    description: str | None = Field(
        default=None,
        title='Description',
        description='Longer free-form explanation.',
    )


class SettingsModel(BaseSettings):
    """Immutable settings resolved from keyword arguments and the environment.

    Unknown environment variables are ignored.
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra='ignore',
    )
