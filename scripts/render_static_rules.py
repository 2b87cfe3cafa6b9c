import sys

from commatrix_mcp.core.dedupe import deduplicate
from commatrix_mcp.core.firewall import to_nftables
from commatrix_mcp.core.formats import to_csv
from commatrix_mcp.core.models import ComMatrix
from commatrix_mcp.core.static_entries import get_static_entries


def main():
    env = sys.argv[1] if len(sys.argv) > 1 else "baremetal"
    deployment = sys.argv[2] if len(sys.argv) > 2 else "mno"
    role = sys.argv[3] if len(sys.argv) > 3 else "master"

    # Static catalogue only, no cluster needed.
    mat = ComMatrix(deduplicate(get_static_entries(env, deployment)))

    sys.stdout.write(to_csv(mat))
    sys.stdout.write("\n")
    sys.stdout.write(to_nftables(mat, role))


if __name__ == "__main__":
    main()
