"""SQL construction for single-vector and multi-key template searches.

Trust boundary: the table name, the extra WHERE fragment and the full query
template are operator configuration and are written into the SQL text as-is.
The metadata filter and k of the single-vector path are always bound
parameters. Multi-key substitution is textual, so template tokens must never
be fed end-user filter values.
"""
import json
import logging
import math
import re
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from pydantic import ValidationError

from pgsearch.retrieval.base import EmbeddingProvider
from pgsearch.retrieval.exceptions import ConfigurationError, EmbeddingError
from pgsearch.retrieval.models import MultiKeyPayload

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 4
DEFAULT_TABLE_NAME = "documents"
DISTANCE_COLUMN = "_distance"

DISTANCE_OPERATORS = {
    "euclidean": "<->",
    "cosine": "<=>",
    "inner_product": "<#>",
}

TOKEN_PATTERN = re.compile(r"\[(.*?)\]")


class ColumnNames(NamedTuple):
    """Column layout of the vector table."""

    id: str = "id"
    content: str = "pageContent"
    metadata: str = "metadata"
    embedding: str = "embedding"


class BuiltQuery(NamedTuple):
    """SQL text plus the positional parameters to bind."""

    sql: str
    params: Tuple[Any, ...] = ()


def parse_top_k(value: Any, default: int = DEFAULT_TOP_K) -> int:
    """
    Parse a top-k value from configuration or request input.

    Args:
        value: int, float, numeric string, or None
        default: Value used when k is absent, unparsable or not positive

    Returns:
        Positive integer k
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        parsed = float(str(value).strip())
    except ValueError:
        return default
    if math.isnan(parsed) or math.isinf(parsed) or parsed < 1:
        return default
    return int(parsed)


def format_vector(vector: Sequence[float]) -> str:
    """Render a vector as the bracketed literal pgvector accepts: [v1,v2,...]."""
    return "[" + ",".join(repr(float(v)) for v in vector) + "]"


def normalize_metadata_filter(metadata_filter: Any) -> Dict[str, Any]:
    """Return the filter as a JSON object, substituting {} when absent or invalid."""
    if isinstance(metadata_filter, Mapping):
        return dict(metadata_filter)
    if isinstance(metadata_filter, str) and metadata_filter.strip():
        try:
            parsed = json.loads(metadata_filter)
        except json.JSONDecodeError:
            logger.warning("Ignoring metadata filter that is not valid JSON")
            return {}
        if isinstance(parsed, dict):
            return parsed
    return {}


class SingleVectorQueryBuilder:
    """Builds the parameterized nearest-neighbour query."""

    def __init__(
        self,
        table_name: Optional[str] = None,
        where_clause: Optional[str] = None,
        distance_strategy: str = "euclidean",
        columns: ColumnNames = ColumnNames(),
    ):
        """
        Initialize the builder.

        Args:
            table_name: Vector table (defaults to "documents")
            where_clause: Extra operator-authored predicate ANDed onto the filter
            distance_strategy: euclidean (<->), cosine (<=>) or inner_product (<#>)
            columns: Column layout of the table
        """
        if distance_strategy not in DISTANCE_OPERATORS:
            raise ConfigurationError(f"Unknown distance strategy: {distance_strategy}")
        self.table_name = table_name or DEFAULT_TABLE_NAME
        self.where_clause = (where_clause or "").strip()
        self.operator = DISTANCE_OPERATORS[distance_strategy]
        self.columns = columns

    def _extra_predicate(self) -> str:
        if not self.where_clause:
            return ""
        fragment = self.where_clause
        parts = fragment.split(None, 1)
        if len(parts) == 2 and parts[0].upper() == "AND":
            fragment = parts[1]
        # Always ANDed so the fragment can only narrow the containment filter
        return f"AND ({fragment})"

    def build(
        self,
        vector: Sequence[float],
        k: Any = None,
        metadata_filter: Any = None,
    ) -> BuiltQuery:
        """
        Build the similarity query.

        Args:
            vector: Query embedding
            k: Number of rows (defaults to 4 when absent or unparsable)
            metadata_filter: Metadata containment filter (defaults to {})

        Returns:
            SQL with $1 = vector literal, $2 = JSON filter, $3 = k
        """
        sql = (
            f'SELECT *, {self.columns.embedding} {self.operator} $1 AS "{DISTANCE_COLUMN}"\n'
            f"FROM {self.table_name}\n"
            f"WHERE {self.columns.metadata} @> $2\n"
            f"{self._extra_predicate()}\n"
            f'ORDER BY "{DISTANCE_COLUMN}" ASC\n'
            f"LIMIT $3;"
        )
        params = (
            format_vector(vector),
            json.dumps(normalize_metadata_filter(metadata_filter)),
            parse_top_k(k),
        )
        return BuiltQuery(sql, params)


def normalize_payload(payload: Any) -> MultiKeyPayload:
    """
    Normalize either multi-key payload shape into one canonical form.

    Accepts {"to_embed": {...}, "direct_filters": {...}} or a flat
    {name: text} mapping, as a mapping or a JSON string.

    Raises:
        ConfigurationError: On malformed JSON, wrong shapes, or a name present in both maps
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in the multi-key query: {e}") from e
    if not isinstance(payload, Mapping):
        raise ConfigurationError("Multi-key query must be a JSON object")

    if "to_embed" in payload or "direct_filters" in payload:
        data = {
            "to_embed": payload.get("to_embed") or {},
            "direct_filters": payload.get("direct_filters") or {},
        }
    else:
        data = {"to_embed": dict(payload), "direct_filters": {}}

    try:
        normalized = MultiKeyPayload.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid multi-key query: {e}") from e

    overlap = set(normalized.to_embed) & set(normalized.direct_filters)
    if overlap:
        raise ConfigurationError(
            f"Names present in both to_embed and direct_filters: {', '.join(sorted(overlap))}"
        )
    return normalized


def quote_literal(value: Any) -> str:
    """Render a direct filter value as a single-quoted SQL literal."""
    if value is None:
        raise ConfigurationError("Direct filter values cannot be null")
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, (dict, list)):
        text = json.dumps(value)
    else:
        text = str(value)
    return "'" + text.replace("'", "''") + "'"


class QueryTemplate:
    """Operator-authored SQL containing [name] tokens."""

    def __init__(self, text: str):
        if not text or not text.strip():
            raise ConfigurationError("Query template is empty")
        self.text = text
        self.tokens: List[str] = list(dict.fromkeys(TOKEN_PATTERN.findall(text)))

    def render(self, replacements: Dict[str, str]) -> str:
        """Replace every occurrence of each token in one pass."""
        missing = [name for name in self.tokens if name not in replacements]
        if missing:
            raise ConfigurationError(f"Unresolved template tokens: {', '.join(missing)}")
        return TOKEN_PATTERN.sub(lambda match: replacements[match.group(1)], self.text)

    def __repr__(self) -> str:
        return f"QueryTemplate(tokens={self.tokens!r})"


class TemplateQueryBuilder:
    """Resolves a multi-key payload against a query template."""

    def __init__(self, template: QueryTemplate | str):
        self.template = template if isinstance(template, QueryTemplate) else QueryTemplate(template)

    def check_tokens(self, payload: MultiKeyPayload) -> None:
        """Fail before any embedding work when a token has no source."""
        unresolved = [
            name
            for name in self.template.tokens
            if name not in payload.to_embed and name not in payload.direct_filters
        ]
        if unresolved:
            raise ConfigurationError(f"Unresolved template tokens: {', '.join(unresolved)}")

    async def embed(
        self,
        payload: MultiKeyPayload,
        embeddings: EmbeddingProvider,
    ) -> Dict[str, List[float]]:
        """Embed every to_embed text with one batched provider call."""
        keys = payload.embed_keys
        if not keys:
            return {}
        vectors = await embeddings.embed_documents([payload.to_embed[key] for key in keys])
        if len(vectors) != len(keys):
            raise EmbeddingError(
                f"Embedding provider returned {len(vectors)} vectors for {len(keys)} texts"
            )
        return dict(zip(keys, vectors))

    def render(
        self,
        embeddings_by_key: Dict[str, List[float]],
        direct_filters: Dict[str, Any],
    ) -> str:
        """Substitute vector literals and direct filter literals into the template."""
        replacements: Dict[str, str] = {}
        for name in self.template.tokens:
            if name in embeddings_by_key:
                replacements[name] = f"'{format_vector(embeddings_by_key[name])}'"
            elif name in direct_filters:
                replacements[name] = quote_literal(direct_filters[name])
        return self.template.render(replacements)

    async def build(self, payload: Any, embeddings: EmbeddingProvider) -> BuiltQuery:
        """
        Build the resolved multi-key statement.

        Args:
            payload: Multi-key query in either shape
            embeddings: Provider used for the single batched embedding call

        Returns:
            Fully resolved SQL with no bound parameters
        """
        normalized = normalize_payload(payload)
        self.check_tokens(normalized)
        embeddings_by_key = await self.embed(normalized, embeddings)
        return BuiltQuery(self.render(embeddings_by_key, normalized.direct_filters))
