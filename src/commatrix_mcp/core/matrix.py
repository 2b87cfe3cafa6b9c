from __future__ import annotations
import logging
from typing import List, Optional

from .collaborators import EndpointTranslator
from .dedupe import deduplicate
from .errors import InvalidConfiguration, SourceUnavailable
from .formats import load_custom_entries
from .models import ComMatrix, FlowRecord
from .static_entries import DEFAULT_CATALOGUE, StaticCatalogue

log = logging.getLogger(__name__)


def build_declared_matrix(
    translator: EndpointTranslator,
    env: str,
    deployment: str,
    custom_entries_path: Optional[str] = None,
    custom_entries_format: Optional[str] = None,
    catalogue: StaticCatalogue = DEFAULT_CATALOGUE,
) -> ComMatrix:
    """
    Build the declared communication matrix.

    Sources, in precedence order:
      1. flows translated from EndpointSlices
      2. static catalogue for (env, deployment)
      3. custom entries file, when a path is given

    The first occurrence of an identity wins dedup, so a cluster derived
    record shadows a static one with the same identity.
    """
    res: List[FlowRecord] = []

    try:
        cluster_records = translator.translate()
    except Exception as e:
        raise SourceUnavailable(f"failed getting endpointslices: {e}") from e
    log.info("translated %d flows from endpointslices", len(cluster_records))
    res.extend(cluster_records)

    # InvalidEnvironment is an InvalidConfiguration, let it through as is.
    static_records = catalogue.entries(env, deployment)
    log.info("adding %d static entries for %s/%s", len(static_records), env, deployment)
    res.extend(static_records)

    if custom_entries_path:
        if not custom_entries_format:
            raise InvalidConfiguration("customEntriesFormat must be set when customEntriesPath is set")
        res.extend(load_custom_entries(custom_entries_path, custom_entries_format))

    cleaned = deduplicate(res)
    log.info("declared matrix has %d entries (%d before dedup)", len(cleaned), len(res))
    return ComMatrix(cleaned)
