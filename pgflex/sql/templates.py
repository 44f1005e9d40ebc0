"""SQL template engine.

Lets advanced configurations replace generated statements with their
own SQL. ``{{name}}`` tokens are filled with sanitized identifiers from
the schema; ``$n`` placeholders stay for the executor to bind. Nothing
here executes SQL.
"""

import json
import re
from collections.abc import Mapping
from typing import Any

from pgflex.exceptions import ErrorCode, TemplateError
from pgflex.logging_config import get_logger
from pgflex.schema.models import SchemaConfig
from pgflex.sql.distance import DistanceMetric, query_operator
from pgflex.sql.models import Statement, TemplateInfo, TemplateValidation

logger = get_logger(__name__)

DOLLAR_PLACEHOLDER = re.compile(r"\$(\d+)")
TEMPLATE_VARIABLE = re.compile(r"\{\{\w+\}\}")
STACKED_DESTRUCTIVE = re.compile(r";\s*(DROP|DELETE|TRUNCATE|ALTER)\b", re.IGNORECASE)
SQL_COMMENT = re.compile(r"/\*.*?\*/|--[^\n]*", re.DOTALL)
TABLE_REFERENCE = re.compile(r"(?:FROM|INTO|UPDATE)\s+([A-Za-z_][A-Za-z0-9_]*)", re.IGNORECASE)


def has_stacked_destructive(sql: str) -> bool:
    """True if a DROP, DELETE, TRUNCATE or ALTER follows a semicolon.

    Comments are blanked first so they cannot hide the keyword.
    """
    return STACKED_DESTRUCTIVE.search(SQL_COMMENT.sub(" ", sql)) is not None


DEFAULT_TEMPLATES: dict[str, str] = {
    "search": """
SELECT {{selectFields}},
       {{embeddingCol}} {{distanceOp}} $1::vector AS score
FROM {{tableName}}
WHERE {{partitionCol}} = $2
{{metadataFilter}}
ORDER BY score
LIMIT $3
OFFSET $4
""".strip(),
    "insert": """
INSERT INTO {{tableName}}
  ({{partitionCol}}, {{externalIdCol}}, {{contentCol}}, {{metadataCol}}, {{embeddingCol}})
VALUES ($1, $2, $3, $4, $5)
RETURNING {{idCol}}, {{externalIdCol}}, {{partitionCol}}, true AS inserted
""".strip(),
    "upsert_by_id": """
INSERT INTO {{tableName}}
  ({{idCol}}, {{partitionCol}}, {{externalIdCol}}, {{contentCol}}, {{metadataCol}}, {{embeddingCol}})
VALUES ($1, $2, $3, $4, $5, $6)
ON CONFLICT ({{idCol}})
DO UPDATE SET
  {{partitionCol}} = EXCLUDED.{{partitionCol}},
  {{externalIdCol}} = EXCLUDED.{{externalIdCol}},
  {{contentCol}} = EXCLUDED.{{contentCol}},
  {{metadataCol}} = EXCLUDED.{{metadataCol}},
  {{embeddingCol}} = EXCLUDED.{{embeddingCol}},
  {{updatedAtCol}} = NOW()
RETURNING {{idCol}}, {{externalIdCol}}, {{partitionCol}}, (xmax = 0) AS inserted
""".strip(),
    "upsert_by_external_id": """
INSERT INTO {{tableName}}
  ({{partitionCol}}, {{externalIdCol}}, {{contentCol}}, {{metadataCol}}, {{embeddingCol}})
VALUES ($1, $2, $3, $4, $5)
ON CONFLICT ({{partitionCol}}, {{externalIdCol}}) WHERE {{externalIdCol}} IS NOT NULL
DO UPDATE SET
  {{contentCol}} = EXCLUDED.{{contentCol}},
  {{metadataCol}} = EXCLUDED.{{metadataCol}},
  {{embeddingCol}} = EXCLUDED.{{embeddingCol}},
  {{updatedAtCol}} = NOW()
RETURNING {{idCol}}, {{externalIdCol}}, {{partitionCol}}, (xmax = 0) AS inserted
""".strip(),
    "delete_by_id": """
DELETE FROM {{tableName}}
WHERE {{idCol}} = ANY($1)
""".strip(),
    "delete_by_external_id": """
DELETE FROM {{tableName}}
WHERE {{partitionCol}} = $1 AND {{externalIdCol}} = ANY($2)
""".strip(),
    "get_by_id": """
SELECT {{selectFields}}, {{embeddingCol}}, {{createdAtCol}}, {{updatedAtCol}}
FROM {{tableName}}
WHERE {{idCol}} = ANY($1)
""".strip(),
    "get_by_external_id": """
SELECT {{selectFields}}, {{embeddingCol}}, {{createdAtCol}}, {{updatedAtCol}}
FROM {{tableName}}
WHERE {{partitionCol}} = $1 AND {{externalIdCol}} = ANY($2)
""".strip(),
}


def template_variables(
    schema: SchemaConfig,
    metric: DistanceMetric | str = DistanceMetric.COSINE,
    include_embedding: bool = False,
) -> dict[str, str]:
    """Identifier values for ``{{name}}`` tokens.

    Unconfigured optional columns are left out so their tokens stay
    visible to ``validate_template``.
    """
    cols = schema.columns
    variables = {
        "tableName": schema.table,
        "idCol": cols.id,
        "embeddingCol": cols.embedding,
        "contentCol": cols.content,
        "metadataCol": cols.metadata,
        "partitionCol": cols.partition,
        "externalIdCol": cols.external_id,
        "createdAtCol": cols.created_at,
        "updatedAtCol": cols.updated_at,
        "selectFields": schema.select_list(include_embedding),
        "distanceOp": query_operator(metric),
        "metadataFilter": "",
    }
    if cols.metadata:
        variables["metadataFilter"] = f"AND {cols.metadata} @> $5::jsonb"
    return {name: value for name, value in variables.items() if value is not None}


def substitute_template_vars(template: str, variables: Mapping[str, str]) -> str:
    """Replace each ``{{name}}`` whose name is in ``variables``."""
    result = template
    for name, value in variables.items():
        result = result.replace("{{" + name + "}}", value)
    return result


def validate_template(template: str) -> TemplateValidation:
    """Check a template for common mistakes.

    Errors: empty template; a ``;`` followed by DROP, DELETE, TRUNCATE
    or ALTER. Warnings: unresolved ``{{name}}`` tokens; ``$n``
    numbering that skips or does not start at 1. This is a guard
    against stacked destructive statements, not a SQL parser.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if not template.strip():
        return TemplateValidation(valid=False, errors=["Template cannot be empty"])

    placeholders = list(dict.fromkeys(f"${n}" for n in DOLLAR_PLACEHOLDER.findall(template)))

    variables = TEMPLATE_VARIABLE.findall(template)
    if variables:
        warnings.append(f"Template contains unsubstituted variables: {', '.join(variables)}")

    if has_stacked_destructive(template):
        errors.append("Template contains potentially dangerous SQL statements")

    numbers = sorted({int(p[1:]) for p in placeholders})
    if numbers != list(range(1, len(numbers) + 1)):
        warnings.append("Placeholder numbering may have gaps or not start at $1")

    return TemplateValidation(
        valid=not errors,
        errors=errors,
        warnings=warnings,
        placeholders=placeholders,
    )


def prepare_template(
    template: str,
    schema: SchemaConfig,
    metric: DistanceMetric | str = DistanceMetric.COSINE,
    include_embedding: bool = False,
) -> str:
    """Substitute schema identifiers and validate the result.

    Raises:
        TemplateError: If validation reports errors.
    """
    rendered = substitute_template_vars(
        template,
        template_variables(schema, metric, include_embedding),
    )
    validation = validate_template(rendered)

    if not validation.valid:
        code = (
            ErrorCode.TEMPLATE_DANGEROUS
            if has_stacked_destructive(rendered)
            else ErrorCode.TEMPLATE_ERROR
        )
        raise TemplateError(
            f"Invalid SQL template: {'; '.join(validation.errors)}",
            code=code,
            details={"errors": validation.errors, "template": rendered[:200]},
        )

    for warning in validation.warnings:
        logger.warning(warning, extra={"template": rendered[:200]})

    return rendered


def _has(template: str, n: int) -> bool:
    return re.search(rf"\${n}(?!\d)", template) is not None


def _bind(template: str, slots: Mapping[int, Any], minimum: int = 0) -> list[Any]:
    """Values for $1..$k by placeholder number, k being the highest used.

    Numbers the template skips are bound to None so later values keep
    their positions.
    """
    used = {int(n) for n in DOLLAR_PLACEHOLDER.findall(template)}
    highest = max(used, default=0)
    return [
        slots.get(n) if n in used or n <= minimum else None
        for n in range(1, max(highest, minimum) + 1)
    ]


def build_custom_search_query(
    template: str,
    embedding: list[float],
    partition: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
    metadata_filter: Mapping[str, Any] | None = None,
) -> Statement:
    """Bind search values to a template.

    $1 is always the embedding, $2 the partition, $3 the limit, $4 the
    offset and $5 the metadata filter. Numbers the template skips are
    bound to None.
    """
    slots = {
        1: json.dumps([float(v) for v in embedding]),
        2: partition,
        3: 10 if limit is None else limit,
        4: offset or 0,
        5: json.dumps(metadata_filter or {}),
    }
    return Statement(sql=template, values=_bind(template, slots, minimum=1))


def build_custom_insert_query(
    template: str,
    embedding: list[float],
    id: str | None = None,
    partition: str | None = None,
    external_id: str | None = None,
    content: str | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> Statement:
    """Bind insert values to a template.

    A six-placeholder template takes (id, partition, external id,
    content, metadata, embedding); a five-placeholder template takes
    (partition, external id, content, metadata, embedding), matching
    ``DEFAULT_TEMPLATES``. Numbers the template skips are bound to None.
    """
    metadata_json = json.dumps(dict(metadata or {}))
    embedding_json = json.dumps([float(v) for v in embedding])

    if _has(template, 6):
        layout = [id, partition, external_id, content, metadata_json, embedding_json]
    else:
        layout = [partition, external_id, content, metadata_json, embedding_json]

    slots = {n: value for n, value in enumerate(layout, start=1)}
    return Statement(sql=template, values=_bind(template, slots))


def build_custom_delete_query(
    template: str,
    ids: list[str] | None = None,
    partition: str | None = None,
    external_ids: list[str] | None = None,
) -> Statement:
    """Bind delete values: ``[ids]`` or ``[partition, external_ids]``."""
    if _has(template, 2):
        return Statement(sql=template, values=[partition, list(external_ids or [])])
    return Statement(sql=template, values=[list(ids or [])])


def build_custom_get_query(
    template: str,
    ids: list[str] | None = None,
    partition: str | None = None,
    external_ids: list[str] | None = None,
) -> Statement:
    """Bind get values: ``[ids]`` or ``[partition, external_ids]``."""
    return build_custom_delete_query(template, ids, partition, external_ids)


def parse_template(template: str) -> TemplateInfo:
    """Describe a template's statement kind, tables and placeholder count."""
    normalized = template.strip().upper()

    operation = "unknown"
    for keyword in ("SELECT", "INSERT", "UPDATE", "DELETE"):
        if normalized.startswith(keyword):
            operation = keyword.lower()
            break

    return TemplateInfo(
        operation=operation,
        tables=TABLE_REFERENCE.findall(template),
        placeholder_count=len(set(DOLLAR_PLACEHOLDER.findall(template))),
    )
