"""
commatrix_mcp

Communication matrix tooling for Kubernetes and OpenShift clusters.

Core ideas
1. EndpointSlices, a static catalogue and custom entries build the declared matrix
2. ss output from every node builds the observed matrix
3. Diff and nftables rules are derived from FlowRecord only, never from the sources
"""

__version__ = "0.1.0"

__all__ = ["core", "cluster", "cli"]
