"""
Parsing of external reference strings.

Accepted forms:
- ``github:<owner>/<repo>#<number>``
- ``shortcut:<story id>``
- ``https://github.com/<owner>/<repo>/issues/<number>`` (or ``/pull/``)
- ``https://app.shortcut.com/<workspace>/story/<id>[/<slug>]``

URL forms normalize to the shorthand. Anything else is a ValidationError.
"""

from __future__ import annotations

import re

from beads_bridge.core.errors import ValidationError
from beads_bridge.core.refs.models import BackendKind, ExternalRef

_GITHUB_SHORTHAND = re.compile(
    r"^github:(?P<owner>[A-Za-z0-9][\w.-]*)/(?P<repo>[\w.-]+)#(?P<number>\d+)$",
    re.IGNORECASE,
)
_SHORTCUT_SHORTHAND = re.compile(r"^shortcut:(?P<id>\d+)$", re.IGNORECASE)
_GITHUB_URL = re.compile(
    r"^https?://(?:www\.)?github\.com/(?P<owner>[\w.-]+)/(?P<repo>[\w.-]+)"
    r"/(?:issues|pull)/(?P<number>\d+)/?(?:[?#].*)?$",
    re.IGNORECASE,
)
_SHORTCUT_URL = re.compile(
    r"^https?://app\.shortcut\.com/(?P<workspace>[\w.-]+)/story/(?P<id>\d+)(?:/[\w.%-]*)?/?$",
    re.IGNORECASE,
)


def parse_external_ref(text: str) -> ExternalRef:
    """
    Parse an external reference string.

    Args:
        text: Shorthand or URL form

    Returns:
        Canonical ExternalRef

    Raises:
        ValidationError: If the string matches no supported form

    Example:
        >>> str(parse_external_ref("https://github.com/acme/app/issues/5"))
        'github:acme/app#5'
    """
    value = (text or "").strip()

    for pattern in (_GITHUB_SHORTHAND, _GITHUB_URL):
        if match := pattern.match(value):
            return ExternalRef(
                backend=BackendKind.GITHUB,
                locator=f"{match['owner']}/{match['repo']}#{int(match['number'])}",
            )

    for pattern in (_SHORTCUT_SHORTHAND, _SHORTCUT_URL):
        if match := pattern.match(value):
            return ExternalRef(backend=BackendKind.SHORTCUT, locator=str(int(match["id"])))

    raise ValidationError(
        f"Invalid external reference format: '{text}'",
        external_ref=text,
    )


def is_valid_external_ref(text: str) -> bool:
    """Return True if `text` parses as an external reference."""
    try:
        parse_external_ref(text)
    except ValidationError:
        return False
    return True


def detect_backend(text: str) -> BackendKind | None:
    """Backend a reference string points at, or None if it doesn't parse."""
    try:
        return parse_external_ref(text).backend
    except ValidationError:
        return None
