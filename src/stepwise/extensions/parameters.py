"""Parameter declarations of capabilities.

Capabilities declare their parameters as a `Schema` of `Attribute`
objects. A schema compiles into Pydantic field definitions in two
flavours:

- a *loose* flavour, where every field accepts any raw value. The loader
  validates unsubstituted step parameters against it, so missing and
  unknown parameters are reported before anything runs;
- a *typed* flavour, used by the executor once placeholders have been
  substituted, to coerce and check the resolved values.
"""

from collections.abc import Iterable
from types import GenericAlias, UnionType
from typing import Annotated, Any, Self, TypeAliasType

from pydantic import AliasChoices, Field, RootModel, model_validator

from stepwise.models import DescribedMixin, SchemaModel
from stepwise.names import Variable
from stepwise.values import RuntimeValue, Value

type BaseType = type | GenericAlias | TypeAliasType | UnionType


class Attribute(DescribedMixin, SchemaModel):
    """One declared capability parameter."""

    base: BaseType = Field(
        default=RuntimeValue,
        title='Resolved type',
        description='Type the substituted value is coerced to. Any value by default.',
    )

    aliases: list[Variable] = Field(
        default_factory=list,
        title='Aliases',
        description='Other keys accepted for the parameter in step mappings.',
    )

    examples: list[Value] | None = Field(
        default=None,
        min_length=1,
        title='Examples',
        description='Sample values shown in listings.',
    )

    default: Value = Field(
        default=None,
        title='Default',
        description='Value used when an optional parameter is omitted.',
    )

    required: bool = Field(
        default=False,
        title='Required',
        description='Whether steps must give the parameter. Excludes a default.',
    )

    @model_validator(mode='after')
    def check_default_required(self) -> Self:
        """Reject required parameters that also declare a default.

        Raises:
            ValueError: If both `required` and `default` are set.
        """
        if self.required and self.default is not None:
            raise ValueError('a required parameter can not have a default value')

        return self

    def build(self, *, field_name: str | None = None,
              loose: bool = False) -> Any:  # noqa: ANN401
        """Build the annotated Pydantic type of the parameter.

        Args:
            field_name: Parameter name, accepted next to the aliases.
            loose: Accept any value whatever the resolved type is.

        Returns:
            `Annotated` type carrying the field definition.
        """
        names = [name for name in (field_name, *self.aliases) if name]
        validation_alias = AliasChoices(*names) if self.aliases else None

        field_type: BaseType = RuntimeValue
        if not loose and self.base is not RuntimeValue:
            field_type = self.base if self.required else self.base | None

        return Annotated[
            field_type, Field(
                default=... if self.required else self.default,
                validation_alias=validation_alias,
                title=self.title,
                description=self.description,
                examples=self.examples,
            ),
        ]


class Schema(RootModel[dict[Variable, Attribute]]):
    """Named parameters of a capability."""

    root: dict[Variable, Attribute] = Field(default_factory=dict)

    def build(self, exclude: Iterable[str] | None = None, *,
              loose: bool = False) -> dict[str, Any]:
        """Compile the parameters into `create_model` field definitions.

        Args:
            exclude: Names reserved by the generated model.
            loose: Build the loose flavour.

        Returns:
            Field definitions by parameter name.

        Raises:
            ValueError: If a name or alias is reserved or used twice.
        """
        taken = set(exclude or ())
        fields = {}

        for name, attribute in self.root.items():
            for key in (name, *attribute.aliases):
                if key in taken:
                    raise ValueError(f'parameter name `{key}` of `{name}` is used twice')
                taken.add(key)

            fields[name] = attribute.build(field_name=name, loose=loose)

        return fields


class ParametersMixin(SchemaModel):
    """Adds a parameter schema to an extension declaration."""

    parameters: Schema = Field(
        default_factory=Schema,
        title='Parameters',
        description='Parameters accepted by the extension.',
    )
