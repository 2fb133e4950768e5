"""Language detection and bilingual response shaping.

Stored bilingual fields look like ``{"en": "Phone", "ar": "هاتف"}``. When the
caller asked for a supported language (``Accept-Language``) each such field is
collapsed to a single string; when no supported language was requested the
whole record is returned and messages are sent in both languages.
"""
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .translations import CATALOGUES

SUPPORTED_LANGUAGES = ("en", "ar")
BILINGUAL = "bilingual"


def detect_language(accept_language: Optional[str]) -> Optional[str]:
    """Return the best supported language code, or None for bilingual mode."""
    if not accept_language:
        return None

    candidates: List[Tuple[float, int, str]] = []
    for position, part in enumerate(accept_language.split(",")):
        pieces = part.strip().split(";")
        code = pieces[0].strip().lower()
        if not code:
            continue
        quality = 1.0
        for param in pieces[1:]:
            name, _, value = param.strip().partition("=")
            if name.strip() == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 0.0
        candidates.append((quality, position, code.split("-")[0]))

    # highest quality first, header order breaks ties
    candidates.sort(key=lambda c: (-c[0], c[1]))
    for quality, _, code in candidates:
        if quality > 0 and code in SUPPORTED_LANGUAGES:
            return code
    return None


def is_bilingual_field(value: Any) -> bool:
    if not isinstance(value, Mapping) or not value:
        return False
    if not set(value.keys()) <= set(SUPPORTED_LANGUAGES):
        return False
    return all(v is None or isinstance(v, str) for v in value.values())


def pick_variant(field: Mapping[str, Optional[str]], language: str) -> Optional[str]:
    primary = field.get(language)
    if primary:
        return primary
    for other in SUPPORTED_LANGUAGES:
        if other != language and field.get(other):
            return field.get(other)
    return primary


def localize(data: Any, language: Optional[str]) -> Any:
    """Collapse bilingual fields in ``data`` to ``language``; pure, never mutates."""
    if language is None:
        return data
    if is_bilingual_field(data):
        return pick_variant(data, language)
    if isinstance(data, Mapping):
        return {key: localize(value, language) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        return [localize(item, language) for item in data]
    return data


class _KeepMissing(dict):
    def __missing__(self, key):
        return "{" + key + "}"


def _lookup(catalogue: Dict[str, Any], key: str) -> Optional[str]:
    value: Any = catalogue
    for part in key.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value if isinstance(value, str) else None


def _render(language: str, key: str, params: Dict[str, Any]) -> str:
    text = _lookup(CATALOGUES[language], key)
    if text is None:
        return key
    if params:
        return text.format_map(_KeepMissing(params))
    return text


def translate(key: str, language: Optional[str], **params) -> Union[str, Dict[str, str]]:
    if language is None:
        return {code: _render(code, key, params) for code in SUPPORTED_LANGUAGES}
    return _render(language, key, params)


def request_language(request: Request) -> Optional[str]:
    return getattr(request.state, "language", None)


def localized_response(
    request: Request,
    status_code: int,
    payload: Dict[str, Any],
    params: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    language = request_language(request)
    body = dict(payload)

    for field in ("message", "error"):
        if isinstance(body.get(field), str):
            body[field] = translate(body[field], language, **(params or {}))
    if isinstance(body.get("errors"), list):
        body["errors"] = [translate(e, language) if isinstance(e, str) else e for e in body["errors"]]
    if "data" in body:
        body["data"] = localize(jsonable_encoder(body["data"]), language)

    if language is None:
        body["language"] = BILINGUAL
        body["supported_languages"] = list(SUPPORTED_LANGUAGES)
    else:
        body["language"] = language

    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))
