"""Helpers shared by the webhook normalizers."""

from datetime import UTC, datetime

from delivery.delivery.exceptions import UnrecognizedPayloadError


def parse_timestamp(value, provider: str) -> datetime:
    """Parse an ISO-8601 string or epoch seconds into an aware UTC datetime."""
    if value is None:
        return datetime.now(UTC)
    try:
        if isinstance(value, (int, float)):
            parsed = datetime.fromtimestamp(value, tz=UTC)
        elif isinstance(value, datetime):
            parsed = value
        else:
            parsed = datetime.fromisoformat(str(value))
    except (ValueError, OverflowError, OSError) as exc:
        raise UnrecognizedPayloadError(provider, f"Invalid timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def require(payload: dict, key: str, provider: str):
    if not isinstance(payload, dict) or payload.get(key) in (None, ""):
        raise UnrecognizedPayloadError(provider, f"Payload is missing '{key}'")
    return payload[key]


def coordinates(location: dict | None) -> tuple[float | None, float | None]:
    """Extract (lat, lng) from the ``{"lat": .., "lng": ..}`` shape providers use."""
    if not location:
        return None, None
    lat = location.get("lat", location.get("latitude"))
    lng = location.get("lng", location.get("longitude"))
    if lat is None or lng is None:
        return None, None
    return float(lat), float(lng)
