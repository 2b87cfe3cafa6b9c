import threading
from collections import defaultdict
from contextlib import contextmanager

import pytest

from commatrix_mcp.core.collaborators import ClusterContext, Node
from commatrix_mcp.core.errors import RemoteExecutionError
from commatrix_mcp.core.models import FlowRecord, INGRESS, MASTER, TCP, UDP, WORKER

MASTER_TCP = "\n".join(
    [
        'LISTEN 0 4096 0.0.0.0:111 0.0.0.0:* users:(("rpcbind",pid=1,fd=5),("systemd",pid=1,fd=82))',
        'LISTEN 0 128 [::]:22 [::]:* users:(("sshd",pid=1234,fd=4))',
        'LISTEN 0 4096 127.0.0.1:10248 0.0.0.0:* users:(("kubelet",pid=2000,fd=20))',
        'LISTEN 0 4096 *:10250 *:* users:(("kubelet",pid=2000,fd=21))',
    ]
)

MASTER_UDP = "\n".join(
    [
        'UNCONN 0 0 0.0.0.0:111 0.0.0.0:* users:(("rpcbind",pid=1,fd=6))',
        'UNCONN 0 0 0.0.0.0:42000 0.0.0.0:* users:(("rpc.statd",pid=900,fd=8))',
        'UNCONN 0 0 [::1]:323 [::]:* users:(("chronyd",pid=800,fd=6))',
    ]
)

WORKER_TCP = "\n".join(
    [
        'LISTEN 0 4096 *:10250 *:* users:(("kubelet",pid=2000,fd=21))',
        'LISTEN 0 4096 *:30000 *:* users:(("mystery",pid=3000,fd=3))',
    ]
)

WORKER_UDP = 'UNCONN 0 0 0.0.0.0:111 0.0.0.0:* users:(("rpcbind",pid=1,fd=6))\n'


def flow(protocol=TCP, port=22, role=MASTER, service="", namespace="", pod="", container="", optional=False):
    return FlowRecord(
        direction=INGRESS,
        protocol=protocol,
        port=port,
        namespace=namespace,
        service=service,
        pod=pod,
        container=container,
        node_role=role,
        optional=optional,
    )


class FakeSession:
    def __init__(self, executor, node):
        self.executor = executor
        self.node = node

    def exec(self, command):
        with self.executor.lock:
            self.executor.commands[self.node.name].append(command)
        fail = self.executor.fail_on.get(self.node.name)
        if fail and fail in command:
            raise RemoteExecutionError(f"{command} failed on {self.node.name}")
        return self.executor.outputs.get(self.node.name, {}).get(command, "")


class FakeExecutor:
    """
    RemoteExecutor returning scripted output per node and command.
    Unknown commands return an empty string.
    """

    def __init__(self, outputs=None, fail_on=None):
        self.outputs = outputs or {}
        self.fail_on = fail_on or {}
        self.commands = defaultdict(list)
        self.opened = []
        self.closed = []
        self.lock = threading.Lock()

    @contextmanager
    def session(self, node):
        with self.lock:
            self.opened.append(node.name)
        try:
            yield FakeSession(self, node)
        finally:
            with self.lock:
                self.closed.append(node.name)


class FakeTranslator:
    def __init__(self, records=None, error=None):
        self.records = records or []
        self.error = error

    def translate(self):
        if self.error is not None:
            raise self.error
        return list(self.records)


class FakeNodeLister:
    def __init__(self, nodes):
        self.nodes = nodes

    def list_nodes(self):
        return list(self.nodes)


@pytest.fixture
def master_node():
    return Node(name="master-0", labels={"node-role.kubernetes.io/master": ""})


@pytest.fixture
def worker_node():
    return Node(name="worker-0", labels={"node-role.kubernetes.io/worker": ""})


@pytest.fixture
def executor():
    return FakeExecutor(
        outputs={
            "master-0": {"ss -anpltH": MASTER_TCP, "ss -anpluH": MASTER_UDP},
            "worker-0": {"ss -anpltH": WORKER_TCP, "ss -anpluH": WORKER_UDP},
        }
    )


@pytest.fixture
def translator():
    return FakeTranslator(
        [flow(TCP, 6443, MASTER, "kubernetes", "default", "kube-apiserver-master-0", "kube-apiserver")]
    )


@pytest.fixture
def ctx(master_node, worker_node, executor, translator):
    def log(msg: str) -> None:
        pass

    return ClusterContext(
        nodes=FakeNodeLister([master_node, worker_node]),
        translator=translator,
        executor=executor,
        log=log,
    )


@pytest.fixture
def udp_flow():
    return flow(UDP, 53, WORKER, "dns-default", "openshift-dns")
