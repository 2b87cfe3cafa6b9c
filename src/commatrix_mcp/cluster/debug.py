"""
Remote execution through privileged debug pods.

Each session starts a pod pinned to the node with host network, host pid and
the node root filesystem mounted at /host. Commands run through
`chroot /host /bin/bash -c`. The pod is deleted when the session ends,
whether the work inside succeeded or not.
"""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from kubernetes import client
from kubernetes.client.exceptions import ApiException
from kubernetes.stream import stream

from commatrix_mcp.core.collaborators import Node
from commatrix_mcp.core.errors import RemoteExecutionError

log = logging.getLogger(__name__)


def debug_pod_manifest(node_name: str, namespace: str, image: str) -> client.V1Pod:
    name = f"commatrix-debug-{node_name.split('.')[0]}-{uuid.uuid4().hex[:6]}"
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels={"app": "commatrix-debug"}),
        spec=client.V1PodSpec(
            node_name=node_name,
            host_network=True,
            host_pid=True,
            restart_policy="Never",
            tolerations=[client.V1Toleration(operator="Exists")],
            containers=[
                client.V1Container(
                    name="debug",
                    image=image,
                    command=["/bin/sh", "-c", "sleep infinity"],
                    security_context=client.V1SecurityContext(privileged=True, run_as_user=0),
                    volume_mounts=[client.V1VolumeMount(name="host", mount_path="/host")],
                )
            ],
            volumes=[client.V1Volume(name="host", host_path=client.V1HostPathVolumeSource(path="/"))],
        ),
    )


class DebugPod:
    """
    One running debug pod on one node.
    """

    def __init__(self, core_api: Any, node: Node, namespace: str, image: str, retries: int = 3, interval: float = 5.0):
        self.core = core_api
        self.node = node
        self.namespace = namespace
        self.retries = max(1, int(retries))
        self.interval = float(interval)
        self.manifest = debug_pod_manifest(node.name, namespace, image)
        self.name = self.manifest.metadata.name

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    def create(self, timeout: float) -> None:
        try:
            self.core.create_namespaced_pod(self.namespace, self.manifest)
        except ApiException as e:
            raise RemoteExecutionError(f"failed creating debug pod on {self.node.name}: {e.reason}") from e

        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            pod = self.core.read_namespaced_pod(self.name, self.namespace)
            phase = pod.status.phase if pod.status else None
            if phase == "Running":
                return
            if phase in ("Failed", "Succeeded"):
                break
            time.sleep(1.0)

        raise RemoteExecutionError(f"debug pod {self} on {self.node.name} did not become ready")

    def _exec_once(self, command: str) -> str:
        resp = stream(
            self.core.connect_get_namespaced_pod_exec,
            self.name,
            self.namespace,
            command=["chroot", "/host", "/bin/bash", "-c", command],
            stderr=True,
            stdin=False,
            stdout=True,
            tty=False,
            _preload_content=False,
        )
        try:
            resp.run_forever()
            out = resp.read_stdout()
            err = resp.read_stderr()
            code = resp.returncode
        finally:
            resp.close()

        if code:
            raise RemoteExecutionError(f"{command!r} on {self.node.name} exited {code}: {err.strip()}")
        return out

    def exec(self, command: str) -> str:
        last: Exception = RemoteExecutionError(f"{command!r} was not run")
        for attempt in range(1, self.retries + 1):
            try:
                return self._exec_once(command)
            except (ApiException, RemoteExecutionError) as e:
                last = e
                log.warning("exec attempt %d/%d on %s failed: %s", attempt, self.retries, self.node.name, e)
                if attempt < self.retries:
                    time.sleep(self.interval)

        if isinstance(last, RemoteExecutionError):
            raise last
        raise RemoteExecutionError(f"{command!r} on {self.node.name} failed: {last}") from last

    def clean(self) -> None:
        self.core.delete_namespaced_pod(self.name, self.namespace, grace_period_seconds=0)


class DebugPodExecutor:
    """
    RemoteExecutor backed by debug pods.

    prepare() and cleanup() create and remove the debug namespace,
    debug_namespace() wraps both for a whole run.
    """

    def __init__(
        self,
        core_api: Any,
        namespace: str,
        image: str,
        retries: int = 3,
        interval: float = 5.0,
        pod_timeout: float = 120.0,
    ):
        self.core = core_api
        self.namespace = namespace
        self.image = image
        self.retries = retries
        self.interval = interval
        self.pod_timeout = pod_timeout

    def prepare(self) -> None:
        ns = client.V1Namespace(
            metadata=client.V1ObjectMeta(
                name=self.namespace,
                labels={
                    "pod-security.kubernetes.io/enforce": "privileged",
                    "openshift.io/run-level": "0",
                },
            )
        )
        try:
            self.core.create_namespace(ns)
        except ApiException as e:
            if e.status != 409:
                raise RemoteExecutionError(f"failed creating namespace {self.namespace}: {e.reason}") from e

    def cleanup(self) -> None:
        try:
            self.core.delete_namespace(self.namespace)
        except ApiException as e:
            if e.status != 404:
                raise RemoteExecutionError(f"failed deleting namespace {self.namespace}: {e.reason}") from e

    @contextmanager
    def debug_namespace(self) -> Iterator[None]:
        self.prepare()
        try:
            yield
        finally:
            self.cleanup()

    @contextmanager
    def session(self, node: Node) -> Iterator[DebugPod]:
        pod = DebugPod(self.core, node, self.namespace, self.image, self.retries, self.interval)
        try:
            pod.create(self.pod_timeout)
            yield pod
        finally:
            try:
                pod.clean()
            except ApiException as e:
                log.error("failed cleaning debug pod %s: %s", pod, e.reason)
