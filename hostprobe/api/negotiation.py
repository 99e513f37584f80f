"""Accept header negotiation."""

from enum import Enum
from typing import List, Optional, Sequence, Tuple

TEXT_PLAIN = "text/plain"
TEXT_HTML = "text/html"
APPLICATION_JSON = "application/json"
APPLICATION_YAML = "application/yaml"

# Order matters: the first entry wins when a wildcard matches everything.
SUPPORTED_MEDIA_TYPES: Tuple[str, ...] = (
    TEXT_PLAIN,
    TEXT_HTML,
    APPLICATION_JSON,
    APPLICATION_YAML,
    "application/x-yaml",
    "text/yaml",
    "text/x-yaml",
)


class ContentFormat(str, Enum):
    """Renderer families; several media types can share one."""

    TEXT = "text"
    HTML = "html"
    JSON = "json"
    YAML = "yaml"


def format_for(media_type: str) -> ContentFormat:
    """Map a negotiated media type onto its renderer."""
    if media_type == TEXT_HTML:
        return ContentFormat.HTML
    if "json" in media_type:
        return ContentFormat.JSON
    if "yaml" in media_type:
        return ContentFormat.YAML
    return ContentFormat.TEXT


def parse_accept(header: Optional[str]) -> List[Tuple[str, float]]:
    """Parse an Accept header into (media range, quality) pairs.

    Media ranges are lower-cased and stripped of parameters other than q.
    Malformed q values count as 0, which removes the range from play.
    """
    specs: List[Tuple[str, float]] = []
    if not header:
        return specs
    for part in header.split(","):
        fields = [f.strip() for f in part.split(";")]
        value = fields[0].lower()
        if not value:
            continue
        q = 1.0
        for param in fields[1:]:
            key, _, raw = param.partition("=")
            if key.strip().lower() != "q":
                continue
            try:
                q = float(raw.strip())
            except ValueError:
                q = 0.0
            q = min(max(q, 0.0), 1.0)
        specs.append((value, q))
    return specs


def negotiate_content_type(
    accept: Optional[str],
    offers: Sequence[str] = SUPPORTED_MEDIA_TYPES,
    default: str = TEXT_PLAIN,
) -> str:
    """Pick the best offer for an Accept header.

    For every offer the matching ranges are compared: a higher q wins, and
    at equal q an exact match beats ``type/*`` which beats ``*/*``. Earlier
    offers win remaining ties. Ranges with q=0 are ignored. Without any
    match the default is returned.
    """
    best_offer = default
    best_q = -1.0
    # 0 exact, 1 type wildcard, 2 full wildcard, 3 nothing matched yet
    best_wild = 3
    specs = parse_accept(accept)
    for offer in offers:
        for value, q in specs:
            if q == 0.0 or q < best_q:
                continue
            if value == "*/*":
                if q > best_q or best_wild > 2:
                    best_q, best_wild, best_offer = q, 2, offer
            elif value.endswith("/*"):
                if offer.startswith(value[:-1]) and (q > best_q or best_wild > 1):
                    best_q, best_wild, best_offer = q, 1, offer
            elif value == offer and (q > best_q or best_wild > 0):
                best_q, best_wild, best_offer = q, 0, offer
    return best_offer
