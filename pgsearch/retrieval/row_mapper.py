"""Conversion of result rows into scored documents."""
import json
import logging
from typing import Any, Dict, Iterable, List, Mapping

from pgsearch.retrieval.models import MULTI_KEY_SCORE, Document, ScoredDocument
from pgsearch.retrieval.query_builder import DISTANCE_COLUMN, ColumnNames

logger = logging.getLogger(__name__)


class RowMapper:
    """Maps rows to ScoredDocument values, dropping malformed rows."""

    def __init__(self, columns: ColumnNames = ColumnNames()):
        self.columns = columns
        self._reserved = {
            columns.id,
            columns.content,
            columns.metadata,
            columns.embedding,
            DISTANCE_COLUMN,
        }

    def _metadata(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        raw = row.get(self.columns.metadata)
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                raw = None
        metadata: Dict[str, Any] = dict(raw) if isinstance(raw, Mapping) else {}
        for key, value in row.items():
            if key not in self._reserved:
                metadata.setdefault(key, value)
        return metadata

    def to_document(self, row: Mapping[str, Any]) -> Document:
        """Build a Document from every non-distance column of a row."""
        row_id = row.get(self.columns.id)
        return Document(
            id=str(row_id) if row_id is not None else None,
            page_content=row[self.columns.content],
            metadata=self._metadata(row),
        )

    def _is_complete(self, row: Mapping[str, Any]) -> bool:
        return row.get(self.columns.content) is not None and row.get(self.columns.id) is not None

    def map_scored(self, rows: Iterable[Mapping[str, Any]]) -> List[ScoredDocument]:
        """
        Map single-vector rows, keeping only rows with a distance and content.

        Args:
            rows: Result rows carrying the computed distance column

        Returns:
            Scored documents in row order
        """
        results = []
        dropped = 0
        for record in rows:
            row = dict(record)
            distance = row.get(DISTANCE_COLUMN)
            if distance is None or not self._is_complete(row):
                dropped += 1
                continue
            results.append(ScoredDocument(document=self.to_document(row), distance=float(distance)))
        if dropped:
            logger.debug(f"Dropped {dropped} rows without distance, content or id")
        return results

    def map_unscored(
        self,
        rows: Iterable[Mapping[str, Any]],
        score: float = MULTI_KEY_SCORE,
    ) -> List[ScoredDocument]:
        """Map template rows, giving every complete row the same sentinel score."""
        results = []
        for record in rows:
            row = dict(record)
            if not self._is_complete(row):
                continue
            results.append(ScoredDocument(document=self.to_document(row), distance=score))
        return results
