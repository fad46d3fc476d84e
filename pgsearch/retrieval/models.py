"""Document models returned by the retrieval engine."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Every multi-key result carries this score; the template path cannot compute a true distance.
MULTI_KEY_SCORE = 0.01


class Document(BaseModel):
    """A stored document as read back from the vector table."""

    id: Optional[str] = Field(None, description="Row id (None until assigned)")
    page_content: str = Field(..., description="Document text")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Document metadata")


class ScoredDocument(BaseModel):
    """A document paired with its distance to the query (lower is closer)."""

    document: Document
    distance: float

    model_config = ConfigDict(frozen=True)


class MultiKeyPayload(BaseModel):
    """Canonical multi-key query: texts to embed plus direct filter literals."""

    to_embed: Dict[str, str] = Field(default_factory=dict)
    direct_filters: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("to_embed", mode="before")
    @classmethod
    def check_texts(cls, value: Any) -> Any:
        if isinstance(value, dict):
            bad = [key for key, text in value.items() if not isinstance(text, str)]
            if bad:
                raise ValueError(f"to_embed values must be text, got non-text for: {', '.join(bad)}")
        return value

    @property
    def embed_keys(self) -> List[str]:
        return list(self.to_embed.keys())
