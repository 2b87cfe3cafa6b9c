import asyncio

import pytest

from commatrix_mcp.core.errors import RemoteExecutionError, SocketParseError
from commatrix_mcp.core.models import MASTER, TCP, UDP, WORKER
from commatrix_mcp.core.observed import ObservedMatrixBuilder
from tests.conftest import FakeExecutor, MASTER_TCP, flow


def test_build_merges_all_nodes(executor, master_node, worker_node):
    builder = ObservedMatrixBuilder(executor)
    m = asyncio.run(builder.build([master_node, worker_node]))

    assert m.contains(flow(TCP, 22, MASTER, "sshd"))
    assert m.contains(flow(UDP, 42000, MASTER, "rpc.statd"))
    assert m.contains(flow(TCP, 30000, WORKER, "mystery"))
    assert not any(r.port == 10248 for r in m)

    keys = [r.key() for r in m]
    assert len(keys) == len(set(keys))


def test_sessions_are_always_closed(executor, master_node, worker_node):
    builder = ObservedMatrixBuilder(executor)
    asyncio.run(builder.build([master_node, worker_node]))

    assert sorted(executor.opened) == ["master-0", "worker-0"]
    assert sorted(executor.closed) == ["master-0", "worker-0"]
    assert executor.commands["master-0"][:2] == ["ss -anpltH", "ss -anpluH"]


def test_raw_lines_are_kept_per_node(executor, master_node, worker_node):
    builder = ObservedMatrixBuilder(executor)
    asyncio.run(builder.build([master_node, worker_node]))

    assert len(builder.raw_tcp["master-0"]) == 3
    text = builder.raw_text(builder.raw_tcp)
    assert text.startswith("node: master-0\n")
    assert "node: worker-0\n" in text


def test_containers_resolved_inside_session(master_node):
    ex = FakeExecutor(
        outputs={
            "master-0": {
                "ss -anpltH": 'LISTEN 0 4096 *:9100 *:* users:(("node_exporter",pid=4321,fd=3))',
                "cat /proc/4321/cgroup": "0::/kubepods.slice/crio-abc123.scope",
                "crictl ps -o json --id abc123": '{"containers":[{"labels":{'
                '"io.kubernetes.pod.namespace":"openshift-monitoring",'
                '"io.kubernetes.pod.name":"node-exporter-1",'
                '"io.kubernetes.container.name":"node-exporter"}}]}',
            }
        }
    )
    m = asyncio.run(ObservedMatrixBuilder(ex).build([master_node]))

    (cd,) = list(m)
    assert (cd.namespace, cd.pod, cd.container) == ("openshift-monitoring", "node-exporter-1", "node-exporter")


def test_resolution_can_be_disabled(executor, master_node):
    asyncio.run(ObservedMatrixBuilder(executor, resolve_containers=False).build([master_node]))
    assert not any(c.startswith("cat /proc") for c in executor.commands["master-0"])


def test_one_node_failure_aborts_everything(master_node, worker_node):
    ex = FakeExecutor(
        outputs={"master-0": {"ss -anpltH": MASTER_TCP}},
        fail_on={"worker-0": "ss -anpluH"},
    )
    builder = ObservedMatrixBuilder(ex, resolve_containers=False)

    with pytest.raises(RemoteExecutionError):
        asyncio.run(builder.build([master_node, worker_node]))

    # the healthy node still ran to completion and cleaned up
    assert sorted(ex.closed) == ["master-0", "worker-0"]


def test_parse_failure_aborts(master_node):
    ex = FakeExecutor(outputs={"master-0": {"ss -anpltH": "LISTEN broken"}})
    with pytest.raises(SocketParseError, match="master-0"):
        asyncio.run(ObservedMatrixBuilder(ex).build([master_node]))
    assert ex.closed == ["master-0"]


def test_vanished_process_leaves_owner_empty(master_node):
    ex = FakeExecutor(
        outputs={"master-0": {"ss -anpltH": 'LISTEN 0 4096 *:9100 *:* users:(("node_exporter",pid=4321,fd=3))'}},
        fail_on={"master-0": "cat /proc/4321/cgroup"},
    )
    m = asyncio.run(ObservedMatrixBuilder(ex).build([master_node]))

    assert list(m) == [flow(TCP, 9100, MASTER, "node_exporter")]


def test_no_nodes_gives_empty_matrix():
    m = asyncio.run(ObservedMatrixBuilder(FakeExecutor()).build([]))
    assert len(m) == 0
