"""Payload encoders for every negotiated response format.

The same logical payload renders differently per format:

- a single ``Result``: flat key/value listing (text), labeled table (HTML),
  structured object (JSON/YAML)
- a list of Results: line-per-key-path listing (text), index page (HTML),
  array (JSON/YAML)
- an ``HttpError``: ``{type: ERROR, code, message}``; text shows the
  message alone
- ``None``: the ``{type: OK, code: 200}`` acknowledgement
"""

import html
import json
import logging
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote

import yaml
from pydantic import BaseModel
from starlette.requests import Request
from starlette.responses import Response

from hostprobe.api.negotiation import (
    SUPPORTED_MEDIA_TYPES,
    TEXT_PLAIN,
    ContentFormat,
    format_for,
    negotiate_content_type,
)
from hostprobe.errors import EncodingError, HttpError
from hostprobe.probes.result import Result

logger = logging.getLogger(__name__)

_HTML_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
{body}
</body>
</html>
"""


def flatten(value: Any, prefix: str = "") -> Dict[str, str]:
    """Flatten nested mappings and sequences into dotted-path keys.

    Example:
        flatten({"a": {"b": 1}, "c": [2, 3]}) == {"a.b": "1", "c.0": "2", "c.1": "3"}
    """
    flat: Dict[str, str] = {}
    if isinstance(value, BaseModel):
        value = value.model_dump()
    if isinstance(value, Mapping):
        if not value and prefix:
            flat[prefix] = ""
        for key, child in value.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            flat.update(flatten(child, path))
    elif isinstance(value, (list, tuple)):
        if not value and prefix:
            flat[prefix] = ""
        for index, child in enumerate(value):
            path = f"{prefix}.{index}" if prefix else str(index)
            flat.update(flatten(child, path))
    else:
        flat[prefix] = _scalar_text(value)
    return flat


def _scalar_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render_flat(mapping: Mapping[str, str]) -> str:
    """Emit ``key<TAB>value`` lines in lexicographic key order."""
    return "".join(f"{key}\t{mapping[key]}\n" for key in sorted(mapping))


def to_document(payload: Any) -> Any:
    """Convert a payload into plain data for the structured encoders."""
    if payload is None:
        return {"type": "OK", "code": 200}
    if isinstance(payload, HttpError):
        return {"type": "ERROR", "code": payload.status, "message": payload.message}
    if isinstance(payload, Result):
        return payload.as_payload()
    if isinstance(payload, BaseModel):
        return payload.model_dump()
    if isinstance(payload, (list, tuple)):
        return [to_document(item) for item in payload]
    return payload


def _is_result_list(payload: Any) -> bool:
    return isinstance(payload, (list, tuple)) and all(
        isinstance(item, Result) for item in payload
    )


def encode_text(payload: Any) -> str:
    if payload is None:
        return "OK"
    if isinstance(payload, HttpError):
        return payload.message
    if isinstance(payload, str):
        return payload
    if isinstance(payload, Result):
        return render_flat(flatten(payload.as_payload()))
    if _is_result_list(payload):
        by_name = {
            result.name: {"summary": result.summary, "data": dict(result.data)}
            for result in payload
        }
        return render_flat(flatten(by_name))
    return render_flat(flatten(to_document(payload)))


def _html_table(rows: Mapping[str, str]) -> str:
    lines = ["<table>", "<tr><th>Key</th><th>Value</th></tr>"]
    for key in sorted(rows):
        lines.append(
            f"<tr><td>{html.escape(key)}</td><td>{html.escape(rows[key])}</td></tr>"
        )
    lines.append("</table>")
    return "\n".join(lines)


def encode_html(payload: Any) -> str:
    if payload is None:
        title, body = "OK", "<h1>OK</h1>\n<p>200</p>"
    elif isinstance(payload, HttpError):
        title = f"Error {payload.status}"
        body = f"<h1>{title}</h1>\n<p>{html.escape(payload.message)}</p>"
    elif isinstance(payload, str):
        title, body = "hostprobe", f"<pre>{html.escape(payload)}</pre>"
    elif isinstance(payload, Result):
        title = html.escape(payload.name)
        parts = [f"<h1>{title}</h1>"]
        if payload.summary:
            parts.append(f"<p>{html.escape(payload.summary)}</p>")
        parts.append(_html_table(payload.data))
        body = "\n".join(parts)
    elif _is_result_list(payload):
        title = "Probes"
        items: List[str] = []
        for result in sorted(payload, key=lambda r: r.name):
            name = html.escape(result.name)
            item = f'<li><a href="/{quote(result.name)}">{name}</a>'
            if result.summary:
                item += f" - {html.escape(result.summary)}"
            items.append(item + "</li>")
        body = "\n".join(["<h1>Probes</h1>", "<ul>", *items, "</ul>"])
    else:
        title = "hostprobe"
        body = _html_table(flatten(to_document(payload)))
    return _HTML_PAGE.format(title=title, body=body)


def encode_json(payload: Any, pretty: bool = False) -> str:
    document = to_document(payload)
    try:
        if pretty:
            return json.dumps(document, indent=2, ensure_ascii=False)
        return json.dumps(document, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise EncodingError(f"Error serializing to JSON: {exc}") from exc


def encode_yaml(payload: Any) -> str:
    document = to_document(payload)
    try:
        return yaml.safe_dump(
            document, sort_keys=False, default_flow_style=False, allow_unicode=True
        )
    except yaml.YAMLError as exc:
        raise EncodingError(f"Error serializing to YAML: {exc}") from exc


def encode(payload: Any, fmt: ContentFormat, pretty: bool = False) -> bytes:
    """Serialize a payload in the given format.

    Raises:
        EncodingError: If the payload cannot be represented in the format.
    """
    if fmt is ContentFormat.JSON:
        text = encode_json(payload, pretty=pretty)
    elif fmt is ContentFormat.YAML:
        text = encode_yaml(payload)
    elif fmt is ContentFormat.HTML:
        text = encode_html(payload)
    else:
        text = encode_text(payload)
    # Undecodable environment bytes surface as lone surrogates
    return text.encode("utf-8", errors="replace")


def is_pretty(request: Request) -> bool:
    """``pretty`` is on for any non-empty value other than ``false``."""
    value = request.query_params.get("pretty", "")
    return value != "" and value != "false"


def render_response(
    request: Request,
    payload: Any,
    status: int = 200,
    default_media_type: str = TEXT_PLAIN,
    headers: Optional[Dict[str, str]] = None,
) -> Response:
    """Negotiate the format for a request and render the payload.

    Encoding failures are downgraded to a 500 error rendered in the same
    format. The returned response's body length is the number of bytes
    written.
    """
    media_type = negotiate_content_type(
        request.headers.get("accept"), SUPPORTED_MEDIA_TYPES, default_media_type
    )
    fmt = format_for(media_type)
    pretty = is_pretty(request)
    try:
        body = encode(payload, fmt, pretty=pretty)
    except EncodingError as exc:
        logger.error(f"Encoding {fmt.value} response failed: {exc}")
        status = exc.status
        body = encode(exc, fmt, pretty=pretty)
    return Response(
        content=body, status_code=status, media_type=media_type, headers=headers
    )
