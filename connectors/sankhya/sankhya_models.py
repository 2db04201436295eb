"""Sankhya data models.

Converts the loadRecords field-indexed shape into named-field records, and
defines the result models returned by the connector.

Raw shape:
    {
        "metadata": {"fields": {"field": [{"name": "CODPROD"}, {"name": "DESCRPROD"}]}},
        "entity": [{"f0": {"$": "10"}, "f1": {"$": "PARAFUSO"}}, ...],
        "total": "1"
    }
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


Record = Dict[str, Any]

PRODUCT_ID_FIELD = "CODPROD"
ORDER_ID_FIELD = "NUNOTA"


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def field_names(entities: Dict[str, Any]) -> List[str]:
    """Ordered field names declared in the response metadata."""
    try:
        fields = entities["metadata"]["fields"]["field"]
    except (KeyError, TypeError):
        return []

    names = []
    for item in _as_list(fields):
        names.append(item.get("name") if isinstance(item, dict) else None)
    return names


def normalize_entities(entities: Optional[Dict[str, Any]], id_field: str = PRODUCT_ID_FIELD) -> List[Record]:
    """Map each positional row to a record keyed by field name.

    Slots without a value are skipped, so malformed rows yield partial records.
    `_id` is the row's `id_field` value when present, else its index, always
    as a string.
    """
    if not isinstance(entities, dict):
        return []

    names = field_names(entities)
    records = []

    for index, row in enumerate(_as_list(entities.get("entity"))):
        record: Record = {}
        if isinstance(row, dict):
            for position, name in enumerate(names):
                if name is None:
                    continue
                slot = row.get(f"f{position}")
                if isinstance(slot, dict) and slot.get("$") is not None:
                    record[name] = slot["$"]

        identity = record.get(id_field)
        record["_id"] = str(identity) if identity not in (None, "") else str(index)
        records.append(record)

    return records


def parse_number(value: Any) -> float:
    """Parse an ERP numeric string; missing or invalid values count as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if number != number:  # NaN
        return 0.0
    return number


def parse_total(entities: Dict[str, Any]) -> Optional[int]:
    """The `total` the ERP reports for a query, if any."""
    total = entities.get("total")
    if total in (None, ""):
        return None
    try:
        return int(float(total))
    except (TypeError, ValueError):
        return None


# =============================================================================
# Result Models
# =============================================================================

class SankhyaBaseModel(BaseModel):
    """Base model for connector results."""

    class Config:
        populate_by_name = True


class ProductPage(SankhyaBaseModel):
    """One page of the product listing.

    Stock and price are placeholders ("0") filled in by separate lookups.
    """
    products: List[Record] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = Field(50, alias="pageSize")
    total_pages: int = Field(0, alias="totalPages")


class StockSummary(SankhyaBaseModel):
    """Stock rows for one product plus their summed quantity."""
    rows: List[Record] = Field(default_factory=list, alias="estoques")
    total: int = 0
    total_stock: float = Field(0.0, alias="estoqueTotal")


class BatchProductInfo(SankhyaBaseModel):
    """Price and total stock for one product of a batch request."""
    price: float = Field(0.0, alias="preco")
    stock: float = Field(0.0, alias="estoque")
    error: bool = False
