"""Distinguished name helpers used to place offboarded accounts."""
from __future__ import annotations

import re
from typing import List, Pattern, Tuple

from ldap3.core.exceptions import LDAPInvalidDnError
from ldap3.utils.dn import parse_dn


class LocationPathError(ValueError):
    """Raised when an archival location cannot be derived from a DN."""


def archive_location(
    path: str,
    marker: str = "OU=Users",
    archive_prefix: str = "OU=NoLongerEmployed",
) -> str:
    """Return the archival container for an account located at ``path``.

    The path is split on ``marker`` and the part following it is kept
    verbatim, so ``CN=Jo,OU=Users,OU=Sales,DC=corp,DC=local`` maps to
    ``OU=NoLongerEmployed,OU=Users,OU=Sales,DC=corp,DC=local``.
    The marker has to occur exactly once as a whole component;
    ``OU=Users Canada`` does not count as ``OU=Users``.
    """

    if not path:
        raise LocationPathError("Cannot derive an archival location from an empty path.")

    matches = list(_marker_pattern(marker).finditer(path))
    if not matches:
        raise LocationPathError(f"'{path}' is not located below '{marker}'.")
    if len(matches) > 1:
        raise LocationPathError(
            f"'{path}' contains '{marker}' {len(matches)} times; the archival location is ambiguous."
        )
    return f"{archive_prefix},{marker}{path[matches[0].end():]}"


def _marker_pattern(marker: str) -> Pattern[str]:
    # Unescaped comma (or start) before, comma (or end) after.
    return re.compile(r"(?:^|(?<!\\),\s*)" + re.escape(marker) + r"(?=\s*(?:,|$))")


def _components(dn: str) -> List[Tuple[str, str, str]]:
    try:
        return parse_dn(dn, strip=True)
    except LDAPInvalidDnError as exc:
        raise LocationPathError(f"'{dn}' is not a valid distinguished name: {exc}") from exc


def _split_first_rdn(dn: str) -> Tuple[str, str]:
    rdn_parts: List[str] = []
    parent_parts: List[str] = []
    in_rdn = True
    for attribute, value, separator in _components(dn):
        text = f"{attribute}={value}"
        if in_rdn:
            rdn_parts.append(text + (separator if separator == "+" else ""))
            if separator != "+":
                in_rdn = False
        else:
            parent_parts.append(text + separator)
    return "".join(rdn_parts), "".join(parent_parts)


def relative_name(dn: str) -> str:
    """Return the leading RDN of ``dn`` (``CN=Jo Smith``)."""

    return _split_first_rdn(dn)[0]


def parent_location(dn: str) -> str:
    """Return the container holding ``dn``."""

    return _split_first_rdn(dn)[1]


def same_location(first: str, second: str) -> bool:
    """Compare two DNs the way the directory does (case-insensitively)."""

    def _normalize(value: str) -> str:
        return ",".join(f"{a}={v}".lower() for a, v, _ in _components(value)) if value else ""

    return _normalize(first) == _normalize(second)


__all__ = [
    "LocationPathError",
    "archive_location",
    "parent_location",
    "relative_name",
    "same_location",
]
