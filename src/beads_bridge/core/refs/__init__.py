"""
External references: parsing and resolution.
"""

from beads_bridge.core.refs.models import BackendKind, ExternalRef
from beads_bridge.core.refs.parser import (
    detect_backend,
    is_valid_external_ref,
    parse_external_ref,
)
from beads_bridge.core.refs.resolver import ExternalRefResolver

__all__ = [
    "BackendKind",
    "ExternalRef",
    "ExternalRefResolver",
    "detect_backend",
    "is_valid_external_ref",
    "parse_external_ref",
]
