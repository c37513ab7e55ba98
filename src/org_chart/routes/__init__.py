"""Routes package for the org chart core."""

# Authentication is not handled here. Routes resolve an allow/deny decision
# from the configured AccessPolicy; deployments restrict who can reach the
# API at the network layer.

from .health import health_bp
from .hierarchy import hierarchy_bp

__all__ = ["health_bp", "hierarchy_bp"]
