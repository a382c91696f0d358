# -*- coding: utf-8 -*-
# hadoop_roles.py

"""Per-role field and render tables for the Hadoop exporter.

Each monitored daemon is described by a RoleSpec: which sources to fetch,
which beans and fields to pull out of each document, and the ordered list of
exposition lines to emit. Nothing here performs I/O.
"""

import re
from dataclasses import dataclass
from typing import Dict, Tuple

SOURCE_BEANS = "beans"
SOURCE_OBJECT = "object"


@dataclass(frozen=True)
class BeanSpec:
    selector: str
    record: str
    fields: Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class SourceSpec:
    name: str
    kind: str
    url_setting: str
    beans: Tuple[BeanSpec, ...]


@dataclass(frozen=True)
class MetricLine:
    name: str
    source: str
    labels: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class RoleSpec:
    key: str
    role: str
    title: str
    namespace: str
    sources: Tuple[SourceSpec, ...]
    render: Tuple[MetricLine, ...]
    default_jmx_url: str = ""
    default_rest_url: str = ""
    # socket file stem when it differs from the role key
    sock_name: str = ""

    @property
    def default_unix_sock(self) -> str:
        return f"/dev/shm/hadoop_{self.sock_name or self.key}_exporter.sock"

    def url_settings(self) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(s.url_setting for s in self.sources))


def role_slug(role: str) -> str:
    """ResourceManager -> resource_manager"""
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", role).lower()


def _typed(metric: str, source: str, kind: str) -> MetricLine:
    return MetricLine(metric, source, (("type", kind),))


_SLOTS = {
    "GcTimeMillisParNew": "gc_time_millis_par_new",
    "GcTimeMillisConcurrentMarkSweep": "gc_time_millis_cms",
    "GcCountParNew": "gc_count_par_new",
    "GcCountConcurrentMarkSweep": "gc_count_cms",
    "ThreadsWaiting": "threads_waiting",
}


def _jvm_bean(service: str, *extra: str) -> BeanSpec:
    fields = [
        ("gc_time_millis", "GcTimeMillis"),
        ("gc_count", "GcCount"),
        ("threads_blocked", "ThreadsBlocked"),
    ]
    fields.extend((_SLOTS[name], name) for name in extra)
    return BeanSpec(f"Hadoop:service={service},name=JvmMetrics", "jvm", tuple(fields))


MEMORY_BEAN = BeanSpec(
    "java.lang:type=Memory",
    "memory",
    (
        ("committed", "HeapMemoryUsage.committed"),
        ("init", "HeapMemoryUsage.init"),
        ("max", "HeapMemoryUsage.max"),
        ("used", "HeapMemoryUsage.used"),
    ),
)

HEAP_LINES = tuple(_typed("heap_memory", f"memory.{kind}", kind) for kind in ("committed", "init", "max", "used"))

# GC lines shared by the HDFS daemons, which all run with ParNew + CMS.
GC_LINES = (
    MetricLine("jvm_metrics_gc_time_total_millis", "jvm.gc_time_millis"),
    _typed("jvm_metrics_gc_time_millis", "jvm.gc_time_millis_par_new", "par_new"),
    _typed("jvm_metrics_gc_time_millis", "jvm.gc_time_millis_cms", "concurrent_mark_sweep"),
    MetricLine("jvm_metrics_gc_count_total", "jvm.gc_count"),
    _typed("jvm_metrics_gc_count", "jvm.gc_count_par_new", "par_new"),
    _typed("jvm_metrics_gc_count", "jvm.gc_count_cms", "concurrent_mark_sweep"),
    MetricLine("jvm_metrics_gc_threads_blocked", "jvm.threads_blocked"),
)

_HDFS_GC_FIELDS = (
    "GcTimeMillisParNew",
    "GcTimeMillisConcurrentMarkSweep",
    "GcCountParNew",
    "GcCountConcurrentMarkSweep",
)


def _slugged(names) -> Tuple[Tuple[str, str], ...]:
    return tuple((role_slug(name), name) for name in names)


# --- DataNode -----------------------------------------------------------------

_DATANODE_ACTIVITY = (
    "BytesWritten",
    "BytesRead",
    "BlocksWritten",
    "BlocksRead",
    "BlocksReplicated",
    "BlocksRemoved",
    "BlocksVerified",
    "BlockVerificationFailures",
    "ReadsFromLocalClient",
    "ReadsFromRemoteClient",
    "WritesFromLocalClient",
    "WritesFromRemoteClient",
    "BlocksGetLocalPathInfo",
    "FsyncCount",
    "VolumeFailures",
    "ReadBlockOpNumOps",
    "ReadBlockOpAvgTime",
    "WriteBlockOpNumOps",
    "WriteBlockOpAvgTime",
    "BlockChecksumOpNumOps",
    "BlockChecksumOpAvgTime",
    "CopyBlockOpNumOps",
    "CopyBlockOpAvgTime",
    "ReplaceBlockOpNumOps",
    "ReplaceBlockOpAvgTime",
    "HeartbeatsNumOps",
    "HeartbeatsAvgTime",
    "BlockReportsNumOps",
    "BlockReportsAvgTime",
    "PacketAckRoundTripTimeNanosNumOps",
    "PacketAckRoundTripTimeNanosAvgTime",
    "FlushNanosNumOps",
    "FlushNanosAvgTime",
    "FsyncNanosNumOps",
    "FsyncNanosAvgTime",
    "SendDataPacketBlockedOnNetworkNanosNumOps",
    "SendDataPacketBlockedOnNetworkNanosAvgTime",
    "SendDataPacketTransferNanosNumOps",
    "SendDataPacketTransferNanosAvgTime",
)

# Exposed names differ from the bean attribute slug in a few places.
_DATANODE_NAMES = {
    "packet_ack_round_trip_time_nanos_num_ops": "packet_ack_roundtrip_time_nanos_num_ops",
    "packet_ack_round_trip_time_nanos_avg_time": "packet_ack_roundtrip_time_nanos_avg_time",
    "send_data_packet_blocked_on_network_nanos_num_ops": "senddata_packet_blocked_on_network_nanos_num_ops",
    "send_data_packet_blocked_on_network_nanos_avg_time": "senddata_packet_blocked_on_network_nanos_avg_time",
    "send_data_packet_transfer_nanos_num_ops": "senddata_packet_transfer_nanos_num_ops",
    "send_data_packet_transfer_nanos_avg_time": "senddata_packet_transfer_nanos_avg_time",
}

_datanode_activity = _slugged(_DATANODE_ACTIVITY)

DATANODE = RoleSpec(
    key="datanode",
    role="DataNode",
    title="Data Node",
    namespace="hadoop",
    default_jmx_url="http://localhost:50075/jmx",
    sources=(
        SourceSpec(
            "jmx",
            SOURCE_BEANS,
            "jmx_url",
            (
                MEMORY_BEAN,
                BeanSpec(
                    "Hadoop:service=DataNode,name=DataNodeActivity-{hostname}-50010",
                    "activity",
                    _datanode_activity,
                ),
                _jvm_bean("DataNode", *(_HDFS_GC_FIELDS + ("ThreadsWaiting",))),
            ),
        ),
    ),
    render=HEAP_LINES
    + tuple(MetricLine(_DATANODE_NAMES.get(slot, slot), f"activity.{slot}") for slot, _ in _datanode_activity)
    + GC_LINES
    + (MetricLine("jvm_metrics_gc_threads_waiting", "jvm.threads_waiting"),),
)


# --- NameNode -----------------------------------------------------------------

_FS_NAMESYSTEM = BeanSpec(
    "Hadoop:service=NameNode,name=FSNamesystem",
    "fs",
    (
        ("missing_blocks", "MissingBlocks"),
        ("capacity_total_gb", "CapacityTotalGB"),
        ("capacity_used_gb", "CapacityUsedGB"),
        ("capacity_remaining_gb", "CapacityRemainingGB"),
        ("blocks_total", "BlocksTotal"),
        ("files_total", "FilesTotal"),
        ("corrupt_blocks", "CorruptBlocks"),
        ("excess_blocks", "ExcessBlocks"),
        ("total_load", "TotalLoad"),
        ("scheduled_replication_blocks", "ScheduledReplicationBlocks"),
        ("pending_replication_blocks", "PendingReplicationBlocks"),
    ),
)

_FS_NAMESYSTEM_STATE = BeanSpec(
    "Hadoop:service=NameNode,name=FSNamesystemState",
    "fs_state",
    _slugged(
        (
            "CapacityTotal",
            "CapacityUsed",
            "CapacityRemaining",
            "TotalLoad",
            "BlocksTotal",
            "FilesTotal",
            "PendingReplicationBlocks",
            "UnderReplicatedBlocks",
            "ScheduledReplicationBlocks",
            "NumLiveDataNodes",
            "NumDeadDataNodes",
        )
    ),
)

# (exposed name, bean attribute)
_NAMENODE_ACTIVITY = (
    ("create_file_ops", "CreateFileOps"),
    ("file_created", "FilesCreated"),
    ("files_appended", "FilesAppended"),
    ("get_block_locations", "GetBlockLocations"),
    ("files_renamed", "FilesRenamed"),
    ("get_listing_ops", "GetListingOps"),
    ("get_delete_file_ops", "DeleteFileOps"),
    ("get_files_deleted", "FilesDeleted"),
    ("file_info_ops", "FileInfoOps"),
    ("block_add_ops", "AddBlockOps"),
    ("get_additional_datanode_ops", "GetAdditionalDatanodeOps"),
    ("create_symlink_ops", "CreateSymlinkOps"),
    ("get_link_target_ops", "GetLinkTargetOps"),
    ("files_in_get_listing_ops", "FilesInGetListingOps"),
    ("storage_block_report_ops", "StorageBlockReportOps"),
    ("transactions_num_ops", "TransactionsNumOps"),
    ("transactions_avg_time", "TransactionsAvgTime"),
    ("syncs_num_ops", "SyncsNumOps"),
    ("syncs_avg_time", "SyncsAvgTime"),
    ("transactions_batched_in_sync", "TransactionsBatchedInSync"),
    ("block_report_num_ops", "BlockReportNumOps"),
    ("block_report_avg_time", "BlockReportAvgTime"),
    ("safemode_time", "SafeModeTime"),
    ("fs_image_load_time", "FsImageLoadTime"),
    ("get_edit_num_ops", "GetEditNumOps"),
    ("get_edit_avg_time", "GetEditAvgTime"),
    ("get_image_num_ops", "GetImageNumOps"),
    ("get_image_avg_time", "GetImageAvgTime"),
    ("put_image_num_ops", "PutImageNumOps"),
    ("put_image_avg_time", "PutImageAvgTime"),
)

NAMENODE = RoleSpec(
    key="namenode",
    role="NameNode",
    title="Name Node",
    namespace="hadoop_namenode",
    default_jmx_url="http://localhost:50070/jmx",
    sources=(
        SourceSpec(
            "jmx",
            SOURCE_BEANS,
            "jmx_url",
            (
                MEMORY_BEAN,
                _FS_NAMESYSTEM,
                _FS_NAMESYSTEM_STATE,
                BeanSpec("Hadoop:service=NameNode,name=NameNodeActivity", "activity", _NAMENODE_ACTIVITY),
                _jvm_bean("NameNode", *_HDFS_GC_FIELDS),
            ),
        ),
    ),
    render=HEAP_LINES
    + (
        _typed("fs_name_system_blocks", "fs.missing_blocks", "missing"),
        _typed("fs_name_system_blocks", "fs.blocks_total", "total"),
        _typed("fs_name_system_blocks", "fs.corrupt_blocks", "corrupt"),
        _typed("fs_name_system_blocks", "fs.excess_blocks", "excess"),
        _typed("fs_name_system_blocks", "fs.pending_replication_blocks", "pending_repl"),
        _typed("fs_name_system_blocks", "fs.scheduled_replication_blocks", "scheduled_repl"),
        _typed("fs_name_system_capacity", "fs.capacity_total_gb", "total"),
        _typed("fs_name_system_capacity", "fs.capacity_used_gb", "used"),
        _typed("fs_name_system_capacity", "fs.capacity_remaining_gb", "remaining"),
        MetricLine("fs_name_system_files_total", "fs.files_total"),
        MetricLine("fs_name_system_total_load", "fs.total_load"),
        _typed("fs_name_system_state_capacity", "fs_state.capacity_total", "total"),
        _typed("fs_name_system_state_capacity", "fs_state.capacity_used", "used"),
        _typed("fs_name_system_state_capacity", "fs_state.capacity_remaining", "remaining"),
        MetricLine("fs_name_system_state_total_load", "fs_state.total_load"),
        MetricLine("fs_name_system_state_blocks_total", "fs_state.blocks_total"),
        MetricLine("fs_name_system_state_files_total", "fs_state.files_total"),
        MetricLine("fs_name_system_state_pending_replication_blocks", "fs_state.pending_replication_blocks"),
        MetricLine("fs_name_system_state_under_replicated_blocks", "fs_state.under_replicated_blocks"),
        MetricLine("fs_name_system_state_scheduled_replication_blocks", "fs_state.scheduled_replication_blocks"),
        MetricLine("fs_name_system_state_num_live_datanodes", "fs_state.num_live_data_nodes"),
        MetricLine("fs_name_system_state_num_dead_datanodes", "fs_state.num_dead_data_nodes"),
    )
    + tuple(MetricLine(f"activity_{slot}", f"activity.{slot}") for slot, _ in _NAMENODE_ACTIVITY)
    + GC_LINES,
)


# --- ResourceManager ----------------------------------------------------------

_CLUSTER_METRICS = BeanSpec(
    "clusterMetrics",
    "cluster",
    _slugged(
        (
            "appsSubmitted",
            "appsCompleted",
            "appsPending",
            "appsRunning",
            "appsFailed",
            "appsKilled",
            "reservedMB",
            "availableMB",
            "allocatedMB",
            "containersAllocated",
            "containersReserved",
            "containersPending",
            "totalMB",
            "totalNodes",
            "lostNodes",
            "unhealthyNodes",
            "decommissionedNodes",
            "rebootedNodes",
            "activeNodes",
        )
    ),
)

RESOURCEMANAGER = RoleSpec(
    key="resourcemanager",
    role="ResourceManager",
    title="Resource Manager",
    namespace="hadoop",
    default_jmx_url="http://localhost:8088/jmx",
    default_rest_url="http://localhost:8088/ws/v1/cluster/metrics",
    sources=(
        SourceSpec("cluster_metrics", SOURCE_OBJECT, "rest_url", (_CLUSTER_METRICS,)),
        SourceSpec(
            "jmx",
            SOURCE_BEANS,
            "jmx_url",
            (MEMORY_BEAN, _jvm_bean("ResourceManager", "ThreadsWaiting")),
        ),
    ),
    render=(
        _typed("nodes", "cluster.active_nodes", "active"),
        _typed("nodes", "cluster.rebooted_nodes", "rebooted"),
        _typed("nodes", "cluster.decommissioned_nodes", "decommissioned"),
        _typed("nodes", "cluster.unhealthy_nodes", "unhealthy"),
        _typed("nodes", "cluster.lost_nodes", "lost"),
        _typed("nodes", "cluster.total_nodes", "total"),
        _typed("containers", "cluster.containers_allocated", "allocated"),
        _typed("containers", "cluster.containers_reserved", "reserved"),
        _typed("containers", "cluster.containers_pending", "pending"),
        _typed("apps", "cluster.apps_submitted", "submitted"),
        _typed("apps", "cluster.apps_completed", "completed"),
        _typed("apps", "cluster.apps_killed", "killed"),
        _typed("apps", "cluster.apps_failed", "failed"),
        _typed("apps", "cluster.apps_running", "running"),
        _typed("apps", "cluster.apps_pending", "pending"),
        _typed("space", "cluster.available_mb", "available"),
        _typed("space", "cluster.reserved_mb", "reserved"),
        _typed("space", "cluster.allocated_mb", "allocated"),
        _typed("space", "cluster.total_mb", "total"),
    )
    + HEAP_LINES
    + (
        MetricLine("jvm_metrics_gc_time_total_millis", "jvm.gc_time_millis"),
        MetricLine("jvm_metrics_gc_threads_blocked", "jvm.threads_blocked"),
        MetricLine("jvm_metrics_gc_count_total", "jvm.gc_count"),
        MetricLine("jvm_metrics_gc_threads_waiting", "jvm.threads_waiting"),
    ),
)


# --- SecondaryNameNode --------------------------------------------------------

SECONDARYNAMENODE = RoleSpec(
    key="secondarynamenode",
    role="SecondaryNameNode",
    title="Second Name Node",
    namespace="hadoop",
    default_jmx_url="http://localhost:50090/jmx",
    sock_name="secondnamenode",
    sources=(
        SourceSpec(
            "jmx",
            SOURCE_BEANS,
            "jmx_url",
            (MEMORY_BEAN, _jvm_bean("SecondaryNameNode", *(_HDFS_GC_FIELDS + ("ThreadsWaiting",)))),
        ),
    ),
    render=HEAP_LINES + GC_LINES + (MetricLine("jvm_metrics_gc_threads_waiting", "jvm.threads_waiting"),),
)


ROLES: Dict[str, RoleSpec] = {r.key: r for r in (DATANODE, NAMENODE, RESOURCEMANAGER, SECONDARYNAMENODE)}


def get_role(key: str) -> RoleSpec:
    try:
        return ROLES[key.strip().lower()]
    except KeyError:
        raise KeyError(f"Unknown role {key!r}; expected one of: {', '.join(sorted(ROLES))}") from None
