"""Turn whatever a backend workflow returned into one display string."""

import json
from typing import Any, Callable, Optional

MIN_FALLBACK_STRING_LENGTH = 10

Extractor = Callable[[dict], Optional[str]]


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _present(value: Any) -> bool:
    return value is not None and value != ""


def extract_first_result(body: dict) -> Optional[str]:
    """n8n structured output: {"results": [{"toolCallId": "...", "result": "..."}]}"""
    results = body.get("results")
    if not isinstance(results, list) or not results:
        return None
    first = results[0]
    if isinstance(first, dict) and _present(first.get("result")):
        return _stringify(first["result"])
    return None


def _field_extractor(field: str) -> Extractor:
    def extract(body: dict) -> Optional[str]:
        value = body.get(field)
        return _stringify(value) if _present(value) else None

    extract.__name__ = f"extract_{field}"
    return extract


def extract_long_string(body: dict) -> Optional[str]:
    for value in body.values():
        if isinstance(value, str) and len(value) > MIN_FALLBACK_STRING_LENGTH:
            return value
    return None


RESPONSE_EXTRACTORS: tuple[Extractor, ...] = (
    extract_first_result,
    _field_extractor("output"),
    _field_extractor("message"),
    _field_extractor("response"),
    extract_long_string,
)


def normalize_response(body: Any) -> str:
    if isinstance(body, str):
        return body

    if isinstance(body, dict):
        for extractor in RESPONSE_EXTRACTORS:
            text = extractor(body)
            if text is not None:
                return text

    return json.dumps(body, ensure_ascii=False)
