"""Static table of LibreLinkUp regional API hosts."""

from __future__ import annotations

from typing import Dict

from services.errors import UnknownRegion

GLOBAL_REGION = "global"

REGION_HOSTS: Dict[str, str] = {
    GLOBAL_REGION: "https://api.libreview.io",
    "ae": "https://api-ae.libreview.io",
    "ap": "https://api-ap.libreview.io",
    "au": "https://api-au.libreview.io",
    "ca": "https://api-ca.libreview.io",
    "de": "https://api-de.libreview.io",
    "eu": "https://api-eu.libreview.io",
    "eu2": "https://api-eu2.libreview.io",
    "fr": "https://api-fr.libreview.io",
    "jp": "https://api-jp.libreview.io",
    "us": "https://api-us.libreview.io",
    "la": "https://api-la.libreview.io",
    "ru": "https://api.libreview.ru",
    "cn": "https://api-cn.myfreestyle.cn",
}


def host_for_region(region: str) -> str:
    """Return the base URL for a region code, case-insensitively."""
    host = REGION_HOSTS.get(region.strip().lower())
    if host is None:
        raise UnknownRegion(region, ", ".join(sorted(REGION_HOSTS)))
    return host
