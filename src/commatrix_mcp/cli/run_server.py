from __future__ import annotations
import os

from commatrix_mcp.cluster import build_cluster_context
from commatrix_mcp.config import Settings
from commatrix_mcp.core.server import CommatrixMCPServer
from commatrix_mcp.logging_config import setup_logging


def main() -> None:
    """
    Start the MCP server against the cluster in KUBECONFIG.

    Example:
      export KUBECONFIG=~/.kube/config
      export COMMATRIX_LOG=DEBUG
      python -m commatrix_mcp.cli.run_server
    """
    setup_logging(os.environ.get("COMMATRIX_LOG", "INFO"))
    settings = Settings.from_env()

    server = CommatrixMCPServer(ctx=build_cluster_context(settings))
    server.run()


if __name__ == "__main__":
    main()
