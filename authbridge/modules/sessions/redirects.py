from typing import Optional
from urllib.parse import parse_qs, unquote, urlencode, urlsplit


def safe_internal_path(candidate: Optional[str], fallback: str = "/dashboard") -> str:
    """Only internal paths that start with exactly one '/' survive; anything else becomes fallback."""
    if not candidate:
        return fallback
    path = unquote(candidate).strip()
    if not path.startswith("/") or path.startswith("//") or path.startswith("/\\"):
        return fallback
    return path


def get_validated_next(url: Optional[str], fallback: str = "/dashboard") -> str:
    """Post-login destination taken from the ``next`` query parameter of url."""
    if not url:
        return fallback
    values = parse_qs(urlsplit(url).query).get("next")
    return safe_internal_path(values[0] if values else None, fallback)


def login_redirect_location(login_path: str, next_path: Optional[str], fallback: str = "/dashboard") -> str:
    return f"{login_path}?{urlencode({'next': safe_internal_path(next_path, fallback)})}"
