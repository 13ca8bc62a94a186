#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Support-item content schema.

Apply content for a policy table is either typed directly or built from
structured "support items". One table (SUPPORT_ITEM_SCHEMAS) describes every
item category; normalize_support_items() renders items to content lines and
denormalize_content() parses content lines back to items. Creation, edit,
copy and batch flows all go through these two functions.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from config.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_RATE_RANGE = "해당군"
RATE_RANGES = (DEFAULT_RATE_RANGE, "이상", "미만")
ACQUIRE = "유치"
FREE_TEXT_MARKER = "📝"
COLUMN_SEPARATOR = " / "


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _field(item: Mapping[str, Any], name: str) -> Any:
    """Read a snake_case field, falling back to the legacy camelCase key."""
    if name in item:
        return item[name]
    return item.get(_camel(name))


def coerce_amount(amount: Any) -> Optional[int]:
    """Whole amount in won, or None when missing or not a number."""
    if amount in (None, "") or isinstance(amount, bool):
        return None
    try:
        return int(float(amount))
    except (TypeError, ValueError, OverflowError):
        return None


def format_amount(amount: Any, sign: str = "") -> str:
    """Multiples of 10,000 render as 'N만', anything else as '1,234원'."""
    value = int(float(amount))
    if value >= 10000 and value % 10000 == 0:
        return f"{sign}{value // 10000}만"
    return f"{sign}{value:,}원"


def parse_amount(text: str) -> int:
    text = text.strip().lstrip("+-")
    if text.endswith("만"):
        return int(text[:-1].replace(",", "")) * 10000
    return int(text.rstrip("원").replace(",", ""))


def _basic_columns(item: Mapping[str, Any]) -> List[str]:
    rate_grade = str(_field(item, "rate_grade"))
    rate_range = _field(item, "rate_range") or DEFAULT_RATE_RANGE
    rate_text = rate_grade if rate_range == DEFAULT_RATE_RANGE else f"{rate_grade} {rate_range}"
    return [
        str(_field(item, "model_type")),
        rate_text,
        str(_field(item, "activation_type")),
        format_amount(_field(item, "amount"), sign="+"),
    ]


def _basic_item(columns: Sequence[str]) -> Dict[str, Any]:
    model_type, rate_text, activation_type, amount = columns
    rate_grade, _, rate_range = rate_text.rpartition(" ")
    if not rate_grade or rate_range not in RATE_RANGES:
        rate_grade, rate_range = rate_text, DEFAULT_RATE_RANGE
    return {
        "model_type": model_type,
        "rate_grade": rate_grade,
        "rate_range": rate_range,
        "activation_type": activation_type,
        "amount": parse_amount(amount),
    }


def _additional_columns(item: Mapping[str, Any]) -> List[str]:
    acquisition = str(_field(item, "acquisition_type"))
    sign = "+" if acquisition == ACQUIRE else "-"
    return [
        str(_field(item, "additional_type")),
        acquisition,
        format_amount(_field(item, "amount"), sign=sign),
    ]


def _additional_item(columns: Sequence[str]) -> Dict[str, Any]:
    additional_type, acquisition, amount = columns
    return {
        "additional_type": additional_type,
        "acquisition_type": acquisition,
        "amount": parse_amount(amount),
    }


def _other_columns(item: Mapping[str, Any]) -> List[str]:
    return [
        str(_field(item, "policy_name")),
        str(_field(item, "content")),
        format_amount(_field(item, "amount")),
    ]


def _other_item(columns: Sequence[str]) -> Dict[str, Any]:
    policy_name, content, amount = columns
    return {"policy_name": policy_name, "content": content, "amount": parse_amount(amount)}


@dataclass(frozen=True)
class SupportItemSchema:
    """How one support-item category maps to a content line."""
    category: str
    marker: str
    required: Sequence[str]
    to_columns: Callable[[Mapping[str, Any]], List[str]]
    from_columns: Callable[[Sequence[str]], Dict[str, Any]]
    column_count: int

    def is_complete(self, item: Mapping[str, Any]) -> bool:
        """All required fields filled and a non-zero numeric amount."""
        if not coerce_amount(_field(item, "amount")):
            return False
        return all(_field(item, name) not in (None, "") for name in self.required)


SUPPORT_ITEM_SCHEMAS: Dict[str, SupportItemSchema] = {
    "basic": SupportItemSchema(
        category="basic",
        marker="💰",
        required=("model_type", "rate_grade", "activation_type", "amount"),
        to_columns=_basic_columns,
        from_columns=_basic_item,
        column_count=4,
    ),
    "additional": SupportItemSchema(
        category="additional",
        marker="💳",
        required=("additional_type", "acquisition_type", "amount"),
        to_columns=_additional_columns,
        from_columns=_additional_item,
        column_count=3,
    ),
    "other": SupportItemSchema(
        category="other",
        marker="📌",
        required=("policy_name", "content", "amount"),
        to_columns=_other_columns,
        from_columns=_other_item,
        column_count=3,
    ),
}

_SCHEMA_BY_MARKER = {schema.marker: schema for schema in SUPPORT_ITEM_SCHEMAS.values()}


def empty_support_items() -> Dict[str, Any]:
    items: Dict[str, Any] = {category: [] for category in SUPPORT_ITEM_SCHEMAS}
    items["free_text"] = ""
    return items


def normalize_support_items(support_items: Mapping[str, Any]) -> str:
    """
    Render structured support items as apply-content text.

    Incomplete items, including those with a zero or non-numeric amount,
    are skipped. Free text goes last.
    """
    lines = []
    for category, schema in SUPPORT_ITEM_SCHEMAS.items():
        for item in support_items.get(category) or []:
            if not schema.is_complete(item):
                amount = _field(item, "amount")
                if amount not in (None, "") and coerce_amount(amount) is None:
                    logger.warning(f"Skipping {category} item with unreadable amount {amount!r}")
                else:
                    logger.debug(f"Skipping incomplete {category} item: {item}")
                continue
            lines.append(f"{schema.marker} " + COLUMN_SEPARATOR.join(schema.to_columns(item)))

    free_text = (_field(support_items, "free_text") or "").strip()
    if free_text:
        lines.append(f"{FREE_TEXT_MARKER} {free_text}")
    return "\n".join(lines)


def denormalize_content(content: str) -> Dict[str, Any]:
    """
    Parse apply-content text back into support items.

    Lines that match no category are kept as free text.
    """
    items = empty_support_items()
    free_lines = []
    for raw in (content or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        marker, _, body = line.partition(" ")
        schema = _SCHEMA_BY_MARKER.get(marker)
        if schema is not None:
            columns = [c.strip() for c in body.split(COLUMN_SEPARATOR)]
            if len(columns) == schema.column_count:
                try:
                    items[schema.category].append(schema.from_columns(columns))
                    continue
                except ValueError:
                    logger.debug(f"Unparseable {schema.category} line kept as text: {line}")
        if marker == FREE_TEXT_MARKER:
            free_lines.append(body.strip())
        else:
            free_lines.append(line)
    items["free_text"] = "\n".join(free_lines)
    return items


def has_structured_items(support_items: Optional[Mapping[str, Any]]) -> bool:
    if not support_items:
        return False
    return any(
        schema.is_complete(item)
        for category, schema in SUPPORT_ITEM_SCHEMAS.items()
        for item in support_items.get(category) or []
    )


_MARKER_LINE = re.compile(
    r"^\s*(" + "|".join(re.escape(m) for m in _SCHEMA_BY_MARKER) + r")\s"
)


def infer_direct_input(record: Mapping[str, Any]) -> bool:
    """
    Legacy-compatibility shim: guess whether a record's content was typed directly.

    Records saved before the direct-input flag existed carry only content
    and, sometimes, structured items. This is a heuristic, not a contract:
    - an explicit flag always wins
    - complete structured items mean the content was generated
    - otherwise non-empty content with no category line is direct input
    Partially filled items count as absent.
    """
    flag = _field(record, "is_direct_input")
    if isinstance(flag, bool):
        return flag

    if has_structured_items(_field(record, "support_items")):
        return False

    content = (_field(record, "content") or _field(record, "policy_content") or "").strip()
    if not content:
        return False
    return not any(_MARKER_LINE.match(line) for line in content.splitlines())


def build_apply_content(record: Mapping[str, Any]) -> str:
    """Apply-content text for a record, whichever way it was authored."""
    content = (_field(record, "content") or _field(record, "policy_content") or "").strip()
    if infer_direct_input(record):
        return content
    support_items = _field(record, "support_items")
    if has_structured_items(support_items):
        return normalize_support_items(support_items)
    return content
