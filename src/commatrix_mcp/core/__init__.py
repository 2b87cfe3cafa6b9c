"""
Core modules that must remain cluster neutral.

Keep Kubernetes API calls and debug pod handling out of this package,
they live behind the protocols in collaborators.
"""

from .models import FlowRecord, ComMatrix
from .store import FlowStore
from .matrix import build_declared_matrix
from .observed import ObservedMatrixBuilder
from .diff import build_matrix_diff

__all__ = ["FlowRecord", "ComMatrix", "FlowStore", "build_declared_matrix", "ObservedMatrixBuilder", "build_matrix_diff"]
