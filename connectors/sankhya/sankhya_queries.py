"""loadRecords query builders.

Criteria values never enter the expression text: each clause uses a `?`
placeholder and the value travels in `criteria.parameter` with a Sankhya
type tag (I = integer, S = string, D = date).
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from connectors.sankhya.sankhya_client import SankhyaValidationError

PRODUCT_ENTITY = "Produto"
STOCK_ENTITY = "Estoque"
ORDER_ENTITY = "CabecalhoNota"
SELLER_ENTITY = "Vendedor"

PRODUCT_FIELDS = ["CODPROD", "DESCRPROD", "ATIVO", "LOCAL", "MARCA", "CARACTERISTICAS", "UNIDADE", "VLRCOMERC"]
STOCK_FIELDS = ["ESTOQUE", "CODPROD", "ATIVO", "CONTROLE", "CODLOCAL"]
ORDER_FIELDS = ["NUNOTA", "NUMNOTA", "CODPARC", "CODVEND", "DTNEG", "VLRNOTA", "TIPMOV", "STATUSNOTA"]
SELLER_FIELDS = ["CODVEND", "APELIDO", "CODGER", "ATIVO"]

PARAM_INTEGER = "I"
PARAM_STRING = "S"
PARAM_DATE = "D"

_CODE_RE = re.compile(r"^\d+$")


def parse_code(value: Any, name: str = "code") -> str:
    """Validate a numeric ERP code and return it as a string."""
    text = str(value).strip() if value is not None else ""
    if not _CODE_RE.match(text):
        raise SankhyaValidationError(f"Invalid {name}: {value!r} (expected a numeric code)")
    return str(int(text))


def parse_date(value: str, name: str = "date") -> str:
    """Convert an ISO date (YYYY-MM-DD) to the ERP format dd/mm/YYYY."""
    text = value.strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(text, fmt).strftime("%d/%m/%Y")
        except ValueError:
            continue
    raise SankhyaValidationError(f"Invalid {name}: {value!r} (expected YYYY-MM-DD)")


@dataclass
class Criteria:
    """Clauses joined with AND, plus their positional parameters."""
    clauses: List[str] = field(default_factory=list)
    parameters: List[Dict[str, str]] = field(default_factory=list)

    def add(self, clause: str, *values: str, param_type: str = PARAM_STRING) -> "Criteria":
        self.clauses.append(clause)
        for value in values:
            self.parameters.append({"$": value, "type": param_type})
        return self

    @property
    def expression(self) -> str:
        return " AND ".join(self.clauses)

    def __bool__(self) -> bool:
        return bool(self.clauses)

    def to_dict(self) -> Dict[str, Any]:
        criteria: Dict[str, Any] = {"expression": {"$": self.expression}}
        if self.parameters:
            criteria["parameter"] = self.parameters
        return criteria


def build_data_set(
    root_entity: str,
    fields: Sequence[str],
    criteria: Optional[Criteria] = None,
    offset: int = 0,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """Build the `dataSet` block of a loadRecords request."""
    data_set: Dict[str, Any] = {
        "rootEntity": root_entity,
        "includePresentationFields": "N",
        "offsetPage": str(offset),
        "entity": {
            "fieldset": {
                "list": ", ".join(fields),
            }
        },
    }
    if limit is not None:
        data_set["limit"] = str(limit)
    if criteria:
        data_set["criteria"] = criteria.to_dict()
    return data_set


def product_list_data_set(page: int, page_size: int, name_filter: str = "", code_filter: str = "") -> Dict[str, Any]:
    """Product page query: exact code and/or upper-cased description substring."""
    if page < 1:
        raise SankhyaValidationError(f"Invalid page: {page} (must be >= 1)")
    if page_size < 1:
        raise SankhyaValidationError(f"Invalid page size: {page_size} (must be >= 1)")

    criteria = Criteria()
    if code_filter and code_filter.strip():
        criteria.add("CODPROD = ?", parse_code(code_filter, "product code"), param_type=PARAM_INTEGER)
    if name_filter and name_filter.strip():
        criteria.add("DESCRPROD LIKE ?", f"%{name_filter.strip().upper()}%")

    return build_data_set(
        PRODUCT_ENTITY,
        PRODUCT_FIELDS,
        criteria,
        offset=(page - 1) * page_size,
        limit=page_size,
    )


def stock_data_set(product_code: str, local_filter: str = "") -> Dict[str, Any]:
    """Stock rows of one product, optionally narrowed by location code substring."""
    criteria = Criteria().add("CODPROD = ?", parse_code(product_code, "product code"), param_type=PARAM_INTEGER)
    if local_filter and local_filter.strip():
        criteria.add("CODLOCAL LIKE ?", f"%{local_filter.strip()}%")
    return build_data_set(STOCK_ENTITY, STOCK_FIELDS, criteria)


def order_data_set(
    seller_codes: Optional[Sequence[str]] = None,
    date_start: Optional[str] = None,
    date_end: Optional[str] = None,
) -> Dict[str, Any]:
    """Order headers filtered by seller(s) and an inclusive negotiation-date range.

    Absent filters are left out; with none the query returns every order.
    """
    criteria = Criteria()

    codes = [parse_code(code, "seller code") for code in (seller_codes or [])]
    if len(codes) == 1:
        criteria.add("CODVEND = ?", codes[0], param_type=PARAM_INTEGER)
    elif codes:
        placeholders = ", ".join("?" for _ in codes)
        criteria.add(f"CODVEND IN ({placeholders})", *codes, param_type=PARAM_INTEGER)

    if date_start and date_start.strip():
        criteria.add("DTNEG >= ?", parse_date(date_start, "start date"), param_type=PARAM_DATE)
    if date_end and date_end.strip():
        criteria.add("DTNEG <= ?", parse_date(date_end, "end date"), param_type=PARAM_DATE)

    return build_data_set(ORDER_ENTITY, ORDER_FIELDS, criteria)


def manager_sellers_data_set(manager_code: str) -> Dict[str, Any]:
    """Sellers reporting to one manager."""
    criteria = Criteria().add("CODGER = ?", parse_code(manager_code, "manager code"), param_type=PARAM_INTEGER)
    return build_data_set(SELLER_ENTITY, SELLER_FIELDS, criteria)
