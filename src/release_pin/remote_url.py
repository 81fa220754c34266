"""
Remote URL parsing into repository owner and name.
"""

from __future__ import annotations

import logging
import re
from typing import List, Pattern, Tuple

from .models import RemoteUrlError


logger = logging.getLogger(__name__)


# Every pattern has exactly three groups: host, owner, name.
# Order matters: suffixed shapes are tried before their suffix-less variants.
REMOTE_URL_PATTERNS: List[Pattern[str]] = [
    # https://github.com/owner/name.git | https://github.com/owner/name.git/
    re.compile(r"^https?://(.+)/(.+)/(.+)\.git/?$"),
    # https://github.com/owner/name | https://github.com/owner/name/
    re.compile(r"^https?://(.+)/(.+)/([^/]+?)/?$"),
    # git@github.com:owner/name.git
    re.compile(r"^git@(.+):(.+)/(.+)\.git$"),
    # git@github.com:owner/name | git@github.com:owner/name/
    re.compile(r"^git@(.+):(.+)/([^/]+?)/?$"),
    # git://github.com/owner/name.git
    re.compile(r"^git:(.+)/(.+)/(.+)\.git$"),
    # git://github.com/owner/name | git://github.com/owner/name/
    re.compile(r"^git:(.+)/(.+)/([^/]+?)/?$"),
    # ssh://git@github.com/owner/name.git
    re.compile(r"^ssh://git@(.+)/(.+)/(.+)\.git$"),
]


def parse_remote_url(url: str) -> Tuple[str, str]:
    """Return ``(owner, name)`` for a remote URL.

    The first pattern that matches decides; later patterns are not consulted.

    Raises:
        RemoteUrlError: if the URL is empty or no pattern matches.
    """
    candidate = (url or "").strip()
    if not candidate:
        raise RemoteUrlError("Remote URL is empty")

    for pattern in REMOTE_URL_PATTERNS:
        match = pattern.match(candidate)
        if match:
            owner, name = match.group(2), match.group(3)
            logger.debug(f"Parsed remote URL {candidate} -> {owner}/{name}")
            return owner, name

    raise RemoteUrlError(f"No matching remote URL pattern for '{candidate}'")


def canonical_url(owner: str, name: str, host_url: str = "https://github.com") -> str:
    """Return the HTTPS web URL for a repository, whatever protocol its remote uses."""
    return f"{host_url.rstrip('/')}/{owner}/{name}"
