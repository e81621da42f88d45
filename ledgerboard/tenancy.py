"""Tenant resolution from the request host (<subdomain>.<root domain>)."""
from typing import Optional

from fastapi import Request

from ledgerboard.config import settings

LOCAL_HOSTS = ("localhost", "127.0.0.1")
IGNORED_SUBDOMAINS = {"www", "api"}


def extract_subdomain(host: Optional[str]) -> Optional[str]:
    """
    Tenant subdomain of a Host header value.

    acme.ledgerboard.local:8000 -> "acme"; localhost, bare domains, IP
    addresses and www return None.
    """
    if not host:
        return None
    hostname = host.split(":")[0].strip().lower()
    if hostname in LOCAL_HOSTS or hostname.startswith("192.168.") or hostname.replace(".", "").isdigit():
        return None
    parts = hostname.split(".")
    if len(parts) <= 2:
        return None
    subdomain = parts[0]
    if subdomain in IGNORED_SUBDOMAINS:
        return None
    return subdomain


def build_subdomain_url(subdomain: str, path: str = "") -> str:
    scheme = "https" if settings.environment == "production" else "http"
    port = "" if settings.environment == "production" else ":8000"
    return f"{scheme}://{subdomain}.{settings.root_domain}{port}{path}"


def get_request_subdomain(request: Request) -> Optional[str]:
    """Dependency: tenant subdomain of the inbound request, if any."""
    return extract_subdomain(request.headers.get("host"))
