from __future__ import annotations
import csv
import io
import json
import logging
from typing import Any, Dict, Iterable, List

import yaml

from .errors import DecodeError, FileAccessError, UnsupportedFormat
from .models import CSV_HEADERS, EGRESS, FIELD_KEYS, INGRESS, MASTER, TCP, UDP, WORKER, ComMatrix, FlowRecord

log = logging.getLogger(__name__)

FORMAT_JSON = "json"
FORMAT_YAML = "yaml"
FORMAT_CSV = "csv"

FORMATS = (FORMAT_JSON, FORMAT_YAML, FORMAT_CSV)

# Input key to attribute. Covers serialized keys, CSV headers and a few
# long forms operators tend to write.
_INPUT_KEYS: Dict[str, str] = {key: attr for attr, key in FIELD_KEYS}
_INPUT_KEYS.update({header: attr for header, (attr, _) in zip(CSV_HEADERS, FIELD_KEYS)})
_INPUT_KEYS.update(
    {
        "serviceName": "service",
        "podName": "pod",
        "containerName": "container",
        "node_role": "node_role",
    }
)

_TRUE = {"true", "yes", "1"}
_FALSE = {"false", "no", "0", ""}

# Accepted spellings, matched case insensitively, to the canonical value.
_CHOICES: Dict[str, Dict[str, str]] = {
    "direction": {v.lower(): v for v in (INGRESS, EGRESS)},
    "protocol": {v.lower(): v for v in (TCP, UDP)},
    "node_role": {v.lower(): v for v in (MASTER, WORKER)},
}


def parse_format(token: str) -> str:
    """
    Validate a format token. Match is case sensitive.
    """
    if token in FORMATS:
        return token
    raise UnsupportedFormat(f"failed to parse format: {token!r}. options are: (json/yaml/csv)")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"invalid boolean {value!r}")


def _to_port(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"invalid port {value!r}")
    if isinstance(value, int):
        port = value
    elif isinstance(value, str) and value.strip().isdigit():
        port = int(value.strip())
    else:
        raise ValueError(f"invalid port {value!r}")
    if not 1 <= port <= 65535:
        raise ValueError(f"port out of range: {port}")
    return port


def _to_choice(attr: str, value: Any) -> str:
    choice = _CHOICES[attr].get(str(value).strip().lower()) if value is not None else None
    if choice is None:
        raise ValueError(f"invalid {attr} {value!r}, options are: {sorted(_CHOICES[attr].values())}")
    return choice


def record_from_dict(d: Dict[str, Any]) -> FlowRecord:
    """
    Build a FlowRecord from one decoded object.

    Unknown keys are ignored, missing free text fields stay empty.
    direction, protocol and node role are required and normalised to their
    canonical spelling.
    Raises ValueError on a bad port, enum or optional value.
    """
    fields: Dict[str, Any] = {}
    for key, value in d.items():
        attr = _INPUT_KEYS.get(str(key).strip())
        if attr is None:
            continue
        fields[attr] = value

    if "port" not in fields:
        raise ValueError("missing port")

    port = _to_port(fields["port"])

    def text(attr: str) -> str:
        v = fields.get(attr)
        return "" if v is None else str(v)

    return FlowRecord(
        direction=_to_choice("direction", fields.get("direction")),
        protocol=_to_choice("protocol", fields.get("protocol")),
        port=port,
        namespace=text("namespace"),
        service=text("service"),
        pod=text("pod"),
        container=text("container"),
        node_role=_to_choice("node_role", fields.get("node_role")),
        optional=_to_bool(fields.get("optional", False)),
    )


def decode(raw: bytes, fmt: str) -> List[FlowRecord]:
    """
    Decode raw bytes into FlowRecord objects. All or nothing.
    """
    fmt = parse_format(fmt)
    try:
        text = raw.decode("utf-8-sig")
        if fmt == FORMAT_JSON:
            items = json.loads(text)
        elif fmt == FORMAT_YAML:
            items = yaml.safe_load(text)
            if items is None:
                items = []
        else:
            items = list(csv.DictReader(io.StringIO(text)))

        if not isinstance(items, list):
            raise ValueError("expected a list of entries")

        res: List[FlowRecord] = []
        for idx, item in enumerate(items):
            if not isinstance(item, dict):
                raise ValueError(f"entry {idx} is not an object")
            try:
                res.append(record_from_dict(item))
            except (TypeError, ValueError) as e:
                raise ValueError(f"entry {idx}: {e}") from e
        return res
    except (UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError, csv.Error, ValueError) as e:
        raise DecodeError(f"failed to unmarshal custom entries file: {e}") from e


def load_custom_entries(path: str, fmt: str) -> List[FlowRecord]:
    """
    Read an operator supplied entries file.

    The format token is checked before the file is touched.
    """
    fmt = parse_format(fmt)
    try:
        with open(path, "rb") as f:
            raw = f.read()
    except OSError as e:
        raise FileAccessError(f"failed to read file {path}: {e}") from e

    records = decode(raw, fmt)
    log.info("loaded %d custom entries from %s", len(records), path)
    return records


def to_json(records: Iterable[FlowRecord]) -> str:
    return json.dumps([r.to_dict() for r in records], indent=2) + "\n"


def to_yaml(records: Iterable[FlowRecord]) -> str:
    return yaml.safe_dump([r.to_dict() for r in records], sort_keys=False, default_flow_style=False)


def to_csv(records: Iterable[FlowRecord]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for r in records:
        writer.writerow(r.to_row())
    return buf.getvalue()


_ENCODERS = {
    FORMAT_JSON: to_json,
    FORMAT_YAML: to_yaml,
    FORMAT_CSV: to_csv,
}


def encode(matrix: ComMatrix, fmt: str) -> str:
    return _ENCODERS[parse_format(fmt)](matrix.records)
