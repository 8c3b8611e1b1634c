from __future__ import annotations


def build_allowed_origins(*, frontend_base_url: str, frontend_urls: str | None) -> list[str]:
    allowed: set[str] = {
        "http://localhost:3000",
        "http://localhost:3001",
        # Capacitor mobile shells.
        "capacitor://localhost",
        "http://localhost",
        "https://localhost",
    }

    if frontend_base_url:
        allowed.add(frontend_base_url.rstrip("/"))

    if frontend_urls:
        for origin in [s.strip().rstrip("/") for s in str(frontend_urls).split(",") if s.strip()]:
            allowed.add(origin)

    return sorted(allowed)


def build_allowed_origin_regex() -> str:
    """
    CORSMiddleware supports a single allow_origin_regex; we use it for local
    network dev servers (phones on the same LAN hitting a laptop).

    Only private IPv4 ranges are matched, any port.
    """
    return r"^https?://(10\.\d+\.\d+\.\d+|192\.168\.\d+\.\d+|172\.(1[6-9]|2\d|3[01])\.\d+\.\d+)(:\d+)?$"
