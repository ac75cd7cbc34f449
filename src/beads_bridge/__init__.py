"""
beads-bridge - sync beads dependency graphs to GitHub and Shortcut.

Detects changed beads items, resolves them to the external issues or
stories they belong to, and keeps a Mermaid dependency diagram and
progress narrative current on each of those entities.
"""

__version__ = "0.3.0"

# Re-export core models for convenience
from beads_bridge.core.config.models import BridgeConfig
from beads_bridge.core.refs.models import ExternalRef

__all__ = ["BridgeConfig", "ExternalRef", "__version__"]
