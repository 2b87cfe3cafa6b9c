"""Batch CLI: write the communication matrix and everything derived from it."""
from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import sys
from typing import List, Optional

from commatrix_mcp.cluster import build_cluster_context
from commatrix_mcp.config import Settings
from commatrix_mcp.core.collaborators import ClusterContext
from commatrix_mcp.core.diff import build_matrix_diff
from commatrix_mcp.core.errors import CommatrixError, InvalidConfiguration
from commatrix_mcp.core.firewall import apply_firewall_rules, to_nftables
from commatrix_mcp.core.formats import encode, parse_format
from commatrix_mcp.core.matrix import build_declared_matrix
from commatrix_mcp.core.models import MASTER, WORKER
from commatrix_mcp.core.observed import ObservedMatrixBuilder
from commatrix_mcp.core.static_entries import DEFAULT_CATALOGUE, DEPLOYMENT_MNO, DEPLOYMENT_SNO
from commatrix_mcp.logging_config import setup_logging

log = logging.getLogger("commatrix_mcp.cli")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="commatrix", description="Generate the cluster communication matrix")
    p.add_argument("--destDir", dest="dest_dir", default="communication-matrix", help="Output files dir")
    p.add_argument("--format", default="csv", help="Desired format (json,yaml,csv)")
    p.add_argument("--env", default="baremetal", help="Cluster environment (baremetal/aws)")
    p.add_argument("--deployment", default="mno", help="Deployment type (mno/sno)")
    p.add_argument("--customEntriesPath", dest="custom_entries_path", default="", help="Add custom entries from a file to the matrix")
    p.add_argument(
        "--customEntriesFormat",
        dest="custom_entries_format",
        default="",
        help="Set the format of the custom entries file (json,yaml,csv)",
    )
    p.add_argument("--apply-firewall", action="store_true", help="Push the master nft rules to every master node")
    p.add_argument("--log", default="INFO", help="Log level")
    return p


def validate_args(args: argparse.Namespace) -> None:
    """
    Reject bad tokens before anything talks to the cluster.
    """
    parse_format(args.format)
    if args.env not in DEFAULT_CATALOGUE.environments():
        raise InvalidConfiguration(f"invalid cluster environment: {args.env}")
    if args.deployment not in (DEPLOYMENT_MNO, DEPLOYMENT_SNO):
        raise InvalidConfiguration(f"invalid deployment type: {args.deployment}")
    if args.custom_entries_path and not args.custom_entries_format:
        raise InvalidConfiguration("error, variable customEntriesFormat is not set")
    if args.custom_entries_format:
        parse_format(args.custom_entries_format)


def _write(dest_dir: str, name: str, content: str) -> str:
    path = os.path.join(dest_dir, name)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
    log.info("wrote %s", path)
    return path


def run(args: argparse.Namespace, ctx: ClusterContext) -> None:
    os.makedirs(args.dest_dir, exist_ok=True)

    mat = build_declared_matrix(
        ctx.translator,
        args.env,
        args.deployment,
        custom_entries_path=args.custom_entries_path or None,
        custom_entries_format=args.custom_entries_format or None,
    )
    _write(args.dest_dir, f"communication-matrix.{args.format}", encode(mat, args.format))

    nodes = ctx.nodes.list_nodes()
    builder = ObservedMatrixBuilder(ctx.executor)

    scope = getattr(ctx.executor, "debug_namespace", None)
    with scope() if scope else contextlib.nullcontext():
        observed = asyncio.run(builder.build(nodes))

        _write(args.dest_dir, "raw-ss-tcp", builder.raw_text(builder.raw_tcp))
        _write(args.dest_dir, "raw-ss-udp", builder.raw_text(builder.raw_udp))
        _write(args.dest_dir, f"ss-generated-matrix.{args.format}", encode(observed, args.format))
        _write(args.dest_dir, "matrix-diff-ss", build_matrix_diff(mat, observed))

        if args.apply_firewall:
            applied = asyncio.run(apply_firewall_rules(ctx.executor, nodes, mat, MASTER))
            log.info("firewall rules applied on %d master nodes", len(applied))

    for role in (MASTER, WORKER):
        if not mat.for_role(role):
            log.info("no %s entries in the matrix, skipping nft-file-%s", role, role)
            continue
        _write(args.dest_dir, f"nft-file-{role}", to_nftables(mat, role))


def main(argv: Optional[List[str]] = None, ctx: Optional[ClusterContext] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log)

    try:
        validate_args(args)
        settings = Settings.from_env()
        if ctx is None:
            ctx = build_cluster_context(settings)
        run(args, ctx)
    except CommatrixError as e:
        log.error("failed to create the communication matrix: %s", e)
        return e.exit_code
    except OSError as e:
        log.error("failed writing output: %s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
