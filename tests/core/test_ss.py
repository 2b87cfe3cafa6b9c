import json

import pytest

from commatrix_mcp.core.collaborators import Node
from commatrix_mcp.core.errors import RemoteExecutionError, SocketParseError
from commatrix_mcp.core.models import MASTER, TCP, UDP, WORKER
from commatrix_mcp.core.ss import (
    ContainerInfo,
    extract_pid,
    extract_port,
    extract_service_name,
    filter_entries,
    is_loopback_address,
    parse_crictl_ps,
    parse_line,
    parse_node_sockets,
    session_container_resolver,
    split_address,
    split_lines,
)
from tests.conftest import MASTER_TCP, MASTER_UDP, flow

SSHD = 'LISTEN 0 128 [::]:22 [::]:* users:(("sshd",pid=1234,fd=4))'


def test_filter_drops_loopback():
    lines = filter_entries(split_lines(MASTER_TCP))
    assert len(lines) == 3
    assert not any("127.0.0.1" in line for line in lines)

    udp = filter_entries(split_lines(MASTER_UDP))
    assert not any("chronyd" in line for line in udp)


def test_split_lines_skips_blank():
    assert split_lines("a\n\n  \nb\n") == ["a", "b"]


def test_extractors():
    assert extract_port(SSHD) == 22
    assert extract_service_name(SSHD) == "sshd"
    assert extract_pid(SSHD) == 1234
    assert extract_port("LISTEN 0 4096 *:10250 *:*") == 10250


def test_missing_users_column():
    line = "LISTEN 0 4096 0.0.0.0:6443 0.0.0.0:*"
    assert extract_service_name(line) == ""
    assert extract_pid(line) is None


def test_malformed_line_raises():
    with pytest.raises(ValueError):
        extract_port("garbage")


def test_parse_line_defaults():
    cd = parse_line(SSHD, TCP, MASTER)
    assert cd == flow(TCP, 22, MASTER, "sshd")
    assert cd.optional is False


def test_rpc_statd_service_name():
    line = 'UNCONN 0 0 0.0.0.0:42000 0.0.0.0:* users:(("rpc.statd",pid=900,fd=8))'
    assert parse_line(line, UDP, WORKER).service == "rpc.statd"


def test_node_records_udp_first_with_node_role():
    node = Node("w", {"node-role.kubernetes.io/worker": ""})
    out = parse_node_sockets(node, [SSHD], split_lines(MASTER_UDP)[:1])
    assert [(r.protocol, r.port, r.node_role) for r in out] == [(UDP, 111, WORKER), (TCP, 22, WORKER)]


def test_resolver_fills_owner():
    def resolver(pid):
        return ContainerInfo(namespace="ns", pod="p", container="c") if pid == 1234 else None

    cd = parse_line(SSHD, TCP, MASTER, resolver)
    assert (cd.namespace, cd.pod, cd.container) == ("ns", "p", "c")


CRICTL = json.dumps(
    {
        "containers": [
            {
                "id": "abc123",
                "labels": {
                    "io.kubernetes.container.name": "node-exporter",
                    "io.kubernetes.pod.name": "node-exporter-x7k",
                    "io.kubernetes.pod.namespace": "openshift-monitoring",
                },
            }
        ]
    }
)


def test_parse_crictl_ps():
    assert parse_crictl_ps(CRICTL) == ContainerInfo("openshift-monitoring", "node-exporter-x7k", "node-exporter")
    assert parse_crictl_ps('{"containers": []}') is None
    assert parse_crictl_ps("not json") is None


class ScriptedSession:
    def __init__(self, outputs):
        self.outputs = outputs
        self.calls = []

    def exec(self, command):
        self.calls.append(command)
        return self.outputs.get(command, "")


def test_session_resolver_uses_cgroup_and_crictl():
    session = ScriptedSession(
        {
            "cat /proc/4321/cgroup": "0::/kubepods.slice/kubepods-burstable.slice/crio-abc123.scope\n",
            "crictl ps -o json --id abc123": CRICTL,
        }
    )
    resolve = session_container_resolver(session)

    assert resolve(4321).container == "node-exporter"
    assert resolve(4321).pod == "node-exporter-x7k"
    # second lookup is cached
    assert session.calls.count("cat /proc/4321/cgroup") == 1


def test_session_resolver_host_process():
    session = ScriptedSession({"cat /proc/1/cgroup": "0::/init.scope\n"})
    assert session_container_resolver(session)(1) is None


def test_crictl_unexpected_shapes():
    assert parse_crictl_ps("[]") is None
    assert parse_crictl_ps('{"containers": "x"}') is None
    assert parse_crictl_ps('{"containers": [1]}') is None
    assert parse_crictl_ps('{"containers": [{"labels": []}]}') is None


class FailingSession:
    def __init__(self):
        self.calls = []

    def exec(self, command):
        self.calls.append(command)
        raise RemoteExecutionError(f"{command} failed")


def test_session_resolver_lookup_failure_is_unresolved():
    session = FailingSession()
    resolve = session_container_resolver(session)

    assert resolve(4321) is None
    assert resolve(4321) is None
    assert session.calls == ["cat /proc/4321/cgroup"]


@pytest.mark.parametrize(
    "local, expected",
    [
        ("0.0.0.0:111", ("0.0.0.0", "111")),
        ("[::]:22", ("::", "22")),
        ("[fd00::1]:6443", ("fd00::1", "6443")),
        ("127.0.0.53%lo:53", ("127.0.0.53", "53")),
        ("[fe80::1%eth0]:123", ("fe80::1", "123")),
        ("*:10250", ("*", "10250")),
    ],
)
def test_split_address(local, expected):
    assert split_address(local) == expected


@pytest.mark.parametrize(
    "host, loopback",
    [
        ("127.0.0.1", True),
        ("127.0.0.53", True),
        ("::1", True),
        ("::ffff:127.0.0.1", True),
        ("fd00::1", False),
        ("2001:db8::10", False),
        ("0.0.0.0", False),
        ("*", False),
    ],
)
def test_is_loopback_address(host, loopback):
    assert is_loopback_address(host) is loopback


def test_filter_keeps_ipv6_addresses_ending_in_one():
    lines = [
        'LISTEN 0 4096 [fd00::1]:6443 [::]:* users:(("kube-apiserver",pid=10,fd=3))',
        'LISTEN 0 128 [2001:db8::10]:22 [::]:* users:(("sshd",pid=11,fd=3))',
        'UNCONN 0 0 127.0.0.53%lo:53 0.0.0.0:* users:(("systemd-resolve",pid=12,fd=3))',
    ]
    assert filter_entries(lines) == lines[:2]


def test_unparseable_line_names_the_node():
    node = Node("master-0", {"node-role.kubernetes.io/master": ""})
    with pytest.raises(SocketParseError, match="master-0"):
        parse_node_sockets(node, ["LISTEN broken"], [])
