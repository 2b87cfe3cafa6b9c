from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Tuple

from .errors import InvalidConfiguration, InvalidEnvironment
from .models import INGRESS, MASTER, TCP, UDP, WORKER, FlowRecord

ENV_BAREMETAL = "baremetal"
ENV_AWS = "aws"

DEPLOYMENT_SNO = "sno"
DEPLOYMENT_MNO = "mno"

Table = Tuple[FlowRecord, ...]


def _entry(protocol: str, port: int, role: str, service: str, namespace: str = "", optional: bool = False) -> FlowRecord:
    return FlowRecord(
        direction=INGRESS,
        protocol=protocol,
        port=port,
        namespace=namespace,
        service=service,
        node_role=role,
        optional=optional,
    )


BAREMETAL_MASTER: Table = (
    _entry(TCP, 22623, MASTER, "machine-config-server", "openshift-machine-config-operator"),
    _entry(TCP, 22624, MASTER, "machine-config-server", "openshift-machine-config-operator"),
    _entry(TCP, 53, MASTER, "dns-default", "openshift-dns"),
    _entry(UDP, 53, MASTER, "dns-default", "openshift-dns"),
    _entry(TCP, 6385, MASTER, "ironic", "openshift-machine-api", optional=True),
    _entry(TCP, 6180, MASTER, "metal3-httpd", "openshift-machine-api", optional=True),
    _entry(TCP, 6183, MASTER, "metal3-httpd-tls", "openshift-machine-api", optional=True),
    _entry(UDP, 6081, MASTER, "ovn-kubernetes geneve"),
    _entry(TCP, 9444, MASTER, "haproxy", "openshift-kni-infra"),
    _entry(TCP, 9445, MASTER, "haproxy-monitor", "openshift-kni-infra"),
    _entry(TCP, 9454, MASTER, "keepalived", "openshift-kni-infra"),
    _entry(TCP, 18080, MASTER, "coredns", "openshift-kni-infra"),
)

BAREMETAL_WORKER: Table = (
    _entry(TCP, 53, WORKER, "dns-default", "openshift-dns"),
    _entry(UDP, 53, WORKER, "dns-default", "openshift-dns"),
    _entry(UDP, 6081, WORKER, "ovn-kubernetes geneve"),
    _entry(TCP, 18080, WORKER, "coredns", "openshift-kni-infra"),
    _entry(TCP, 9100, WORKER, "node-exporter", "openshift-monitoring"),
)

AWS_MASTER: Table = (
    _entry(TCP, 22623, MASTER, "machine-config-server", "openshift-machine-config-operator"),
    _entry(TCP, 22624, MASTER, "machine-config-server", "openshift-machine-config-operator"),
    _entry(UDP, 6081, MASTER, "ovn-kubernetes geneve"),
    _entry(TCP, 10258, MASTER, "aws-cloud-controller", "openshift-cloud-controller-manager"),
    _entry(TCP, 10300, MASTER, "aws-ebs-csi-driver-node", "openshift-cluster-csi-drivers"),
    _entry(TCP, 10304, MASTER, "aws-ebs-csi-driver-controller", "openshift-cluster-csi-drivers"),
)

AWS_WORKER: Table = (
    _entry(UDP, 6081, WORKER, "ovn-kubernetes geneve"),
    _entry(TCP, 10300, WORKER, "aws-ebs-csi-driver-node", "openshift-cluster-csi-drivers"),
)

GENERAL_MASTER: Table = (
    _entry(TCP, 10250, MASTER, "kubelet"),
    _entry(TCP, 9637, MASTER, "kube-rbac-proxy-crio", "openshift-machine-config-operator"),
    _entry(TCP, 10256, MASTER, "ovnkube", "openshift-ovn-kubernetes"),
    _entry(TCP, 9107, MASTER, "egressip-node-healthcheck", "openshift-ovn-kubernetes"),
    _entry(TCP, 9100, MASTER, "node-exporter", "openshift-monitoring"),
    _entry(TCP, 9537, MASTER, "crio-metrics"),
    _entry(TCP, 111, MASTER, "rpcbind", optional=True),
    _entry(UDP, 111, MASTER, "rpcbind", optional=True),
    _entry(TCP, 22, MASTER, "sshd", optional=True),
)

MNO_ONLY: Table = (
    _entry(TCP, 2379, MASTER, "etcd", "openshift-etcd"),
    _entry(TCP, 2380, MASTER, "etcd-peer", "openshift-etcd"),
    _entry(TCP, 9978, MASTER, "etcd-metrics", "openshift-etcd"),
    _entry(TCP, 6443, MASTER, "kube-apiserver", "openshift-kube-apiserver"),
)

GENERAL_WORKER: Table = (
    _entry(TCP, 10250, WORKER, "kubelet"),
    _entry(TCP, 9637, WORKER, "kube-rbac-proxy-crio", "openshift-machine-config-operator"),
    _entry(TCP, 10256, WORKER, "ovnkube", "openshift-ovn-kubernetes"),
    _entry(TCP, 9107, WORKER, "egressip-node-healthcheck", "openshift-ovn-kubernetes"),
    _entry(TCP, 9100, WORKER, "node-exporter", "openshift-monitoring"),
    _entry(TCP, 9537, WORKER, "crio-metrics"),
    _entry(TCP, 111, WORKER, "rpcbind", optional=True),
    _entry(UDP, 111, WORKER, "rpcbind", optional=True),
    _entry(TCP, 22, WORKER, "sshd", optional=True),
)


@dataclass(frozen=True)
class CatalogueTables:
    """
    Platform reserved flows, grouped the way the selection needs them.

    env_master, env_worker
      Tables keyed by environment token.

    general_master, general_worker
      Apply to every environment.

    mno_only
      Only present on multi node clusters.
    """

    env_master: Dict[str, Table]
    env_worker: Dict[str, Table]
    general_master: Table
    mno_only: Table
    general_worker: Table


DEFAULT_TABLES = CatalogueTables(
    env_master={ENV_BAREMETAL: BAREMETAL_MASTER, ENV_AWS: AWS_MASTER},
    env_worker={ENV_BAREMETAL: BAREMETAL_WORKER, ENV_AWS: AWS_WORKER},
    general_master=GENERAL_MASTER,
    mno_only=MNO_ONLY,
    general_worker=GENERAL_WORKER,
)


class StaticCatalogue:
    """
    Selects platform reserved flows by environment and deployment topology.
    """

    def __init__(self, tables: CatalogueTables = DEFAULT_TABLES):
        self.tables = tables

    def environments(self) -> List[str]:
        return sorted(self.tables.env_master.keys())

    def entries(self, env: str, deployment: str) -> List[FlowRecord]:
        if env not in self.tables.env_master:
            raise InvalidEnvironment(f"invalid value for cluster environment: {env!r}")
        if deployment not in (DEPLOYMENT_SNO, DEPLOYMENT_MNO):
            raise InvalidConfiguration(f"invalid deployment type: {deployment!r}")

        res: List[FlowRecord] = list(self.tables.env_master[env])

        if deployment == DEPLOYMENT_SNO:
            res.extend(self.tables.general_master)
            return res

        res.extend(self.tables.env_worker.get(env, ()))
        res.extend(self.tables.general_master)
        res.extend(self.tables.mno_only)
        res.extend(self.tables.general_worker)
        return res


DEFAULT_CATALOGUE = StaticCatalogue()


def get_static_entries(env: str, deployment: str) -> List[FlowRecord]:
    return DEFAULT_CATALOGUE.entries(env, deployment)
