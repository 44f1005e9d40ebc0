"""SQL construction data models."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SqlFragment(BaseModel):
    """A SQL clause and the values bound to its placeholders.

    Attributes:
        text: Clause text, without a leading WHERE.
        values: Bound values in placeholder order.
    """

    text: str = Field(default="", description="Clause text")
    values: list[Any] = Field(default_factory=list, description="Bound values")

    def __bool__(self) -> bool:
        return bool(self.text)


class Statement(BaseModel):
    """A complete statement ready for the executor.

    Attributes:
        sql: Statement text with ``$n`` placeholders.
        values: Positional values for ``$1..$n``.
    """

    sql: str = Field(description="Statement text")
    values: list[Any] = Field(default_factory=list, description="Positional values")


class TemplateValidation(BaseModel):
    """Outcome of checking a caller-supplied SQL template.

    Attributes:
        valid: False when any error was found.
        errors: Blocking problems.
        warnings: Advisory problems.
        placeholders: Distinct ``$n`` placeholders in order of appearance.
    """

    valid: bool = Field(description="No blocking errors")
    errors: list[str] = Field(default_factory=list, description="Blocking errors")
    warnings: list[str] = Field(default_factory=list, description="Advisories")
    placeholders: list[str] = Field(default_factory=list, description="$n tokens")


class TemplateInfo(BaseModel):
    """Shallow description of a SQL template."""

    operation: Literal["select", "insert", "update", "delete", "unknown"]
    tables: list[str] = Field(default_factory=list)
    placeholder_count: int = 0


class SqlTemplateConfig(BaseModel):
    """Caller-supplied SQL replacing generated statements.

    Attributes:
        search_query: $1=embedding, $2=partition, $3=limit, $4=offset,
            $5=metadata filter.
        insert_query: $1..$6 = id, partition, external id, content,
            metadata, embedding (see ``build_custom_insert_query``).
        delete_query: $1=ids, or $1=partition and $2=external ids.
        get_query: $1=ids, or $1=partition and $2=external ids.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    search_query: str | None = None
    insert_query: str | None = None
    delete_query: str | None = None
    get_query: str | None = None

    def configured(self) -> dict[str, str]:
        """Templates that are set, keyed by field name."""
        return {name: text for name, text in self.model_dump().items() if text}
