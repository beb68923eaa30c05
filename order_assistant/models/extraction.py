from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..intents import IntentType


class ExtractedItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    english_name: Optional[str] = None
    qty: Optional[int] = Field(default=None, ge=1)
    # Фрагмент исходного текста, из которого извлечена позиция (для x2 / 3 шт)
    source_text: Optional[str] = None

    @property
    def query(self) -> str:
        return self.english_name or self.name


class ExtractedProduct(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    english_name: Optional[str] = None

    @property
    def query(self) -> str:
        return self.english_name or self.name


class ExtractedCustomer(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    phone: Optional[str] = None


class ExtractedIntent(BaseModel):
    """Structured reading of a user message. Untrusted: never used for price or stock."""

    model_config = ConfigDict(extra="ignore")

    intent: IntentType = IntentType.UNKNOWN
    items: List[ExtractedItem] = Field(default_factory=list)
    products: List[ExtractedProduct] = Field(default_factory=list)
    customer: Optional[ExtractedCustomer] = None
    order_number: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @classmethod
    def unknown(cls) -> "ExtractedIntent":
        return cls(intent=IntentType.UNKNOWN, confidence=0.0)
