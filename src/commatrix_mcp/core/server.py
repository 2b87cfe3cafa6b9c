from __future__ import annotations
import asyncio
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from .collaborators import ClusterContext
from .diff import build_matrix_diff
from .firewall import to_nftables
from .formats import FORMAT_CSV, encode, parse_format
from .matrix import build_declared_matrix
from .models import ComMatrix
from .observed import ObservedMatrixBuilder
from .static_entries import DEFAULT_CATALOGUE, StaticCatalogue


class CommatrixMCPServer:
    """
    MCP server exposing communication matrix operations as tools.

    Responsibilities:
      Build declared and observed matrices on demand
      Render diff and nftables rules from them
      Keep cluster access behind the ClusterContext collaborators
    """

    def __init__(self, ctx: ClusterContext, catalogue: StaticCatalogue = DEFAULT_CATALOGUE):
        self.ctx = ctx
        self.catalogue = catalogue
        self.mcp = FastMCP("commatrix_mcp")

        self._register_tools()

    def declared(
        self,
        env: str,
        deployment: str,
        custom_entries_path: Optional[str] = None,
        custom_entries_format: Optional[str] = None,
    ) -> ComMatrix:
        return build_declared_matrix(
            self.ctx.translator,
            env,
            deployment,
            custom_entries_path=custom_entries_path,
            custom_entries_format=custom_entries_format,
            catalogue=self.catalogue,
        )

    async def observed(self) -> ComMatrix:
        nodes = await asyncio.to_thread(self.ctx.nodes.list_nodes)
        return await ObservedMatrixBuilder(self.ctx.executor).build(nodes)

    def _register_tools(self) -> None:
        @self.mcp.tool()
        def static_entries(env: str = "baremetal", deployment: str = "mno") -> List[Dict[str, Any]]:
            return [r.to_dict() for r in self.catalogue.entries(env, deployment)]

        @self.mcp.tool()
        def list_nodes() -> List[Dict[str, str]]:
            return [{"name": n.name, "role": n.role} for n in self.ctx.nodes.list_nodes()]

        @self.mcp.tool()
        async def generate_matrix(
            env: str = "baremetal",
            deployment: str = "mno",
            output_format: str = FORMAT_CSV,
            custom_entries_path: Optional[str] = None,
            custom_entries_format: Optional[str] = None,
        ) -> str:
            fmt = parse_format(output_format)
            mat = await asyncio.to_thread(self.declared, env, deployment, custom_entries_path, custom_entries_format)
            self.ctx.log(f"declared matrix built with {len(mat)} entries")
            return encode(mat, fmt)

        @self.mcp.tool()
        async def observed_matrix(output_format: str = FORMAT_CSV) -> str:
            fmt = parse_format(output_format)
            mat = await self.observed()
            self.ctx.log(f"observed matrix built with {len(mat)} entries")
            return encode(mat, fmt)

        @self.mcp.tool()
        async def matrix_diff(
            env: str = "baremetal",
            deployment: str = "mno",
            custom_entries_path: Optional[str] = None,
            custom_entries_format: Optional[str] = None,
        ) -> str:
            declared = await asyncio.to_thread(self.declared, env, deployment, custom_entries_path, custom_entries_format)
            observed = await self.observed()
            return build_matrix_diff(declared, observed)

        @self.mcp.tool()
        async def nftables_rules(role: str = "master", env: str = "baremetal", deployment: str = "mno") -> str:
            mat = await asyncio.to_thread(self.declared, env, deployment)
            return to_nftables(mat, role)

    def run(self) -> None:
        self.mcp.run()
