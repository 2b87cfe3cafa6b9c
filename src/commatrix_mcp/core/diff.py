from __future__ import annotations
from typing import List

from .models import CSV_HEADERS, ComMatrix

# rpc.statd binds a random port on every start, it never belongs in the diff.
DIFF_EXCEPTION_SERVICE = "rpc.statd"


def build_matrix_diff(mat1: ComMatrix, mat2: ComMatrix) -> str:
    """
    Line oriented diff of a declared matrix (mat1) against an observed one (mat2).

    Lines:
      "<record>"    declared and observed
      "+ <record>"  declared only
      "- <record>"  observed only, the drift worth looking at
    """
    lines: List[str] = [",".join(CSV_HEADERS)]

    for cd in mat1:
        if mat2.contains(cd):
            lines.append(str(cd))
            continue
        lines.append(f"+ {cd}")

    for cd in mat2:
        if cd.service == DIFF_EXCEPTION_SERVICE:
            continue
        if not mat1.contains(cd):
            lines.append(f"- {cd}")

    return "".join(line + "\n" for line in lines)
