"""Remove unused S3 buckets, VPCs and RHMI/RHOAM resources from an AWS region."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

log = logging.getLogger(__name__)

MANAGED_VELERO_TAG_PREFIX = "velero.io/infrastructureName"
VELERO_S3_BUCKET_PREFIX = "managed-velero"
OSD_CLUSTER_TAG_PREFIX = "kubernetes.io/cluster/"
RHMI_RESOURCE_TAG_PREFIX = "integreatly.org/clusterID"

DEFAULT_BUCKET_REGION = "us-east-1"
POLL_INTERVAL = 30.0
POLL_TIMEOUT = 20 * 60.0
S3_DELETE_BATCH_SIZE = 1000


class ClusterReport(Protocol):
    """Result of a cluster-service deletion pass."""

    items: Sequence[Any]

    def all_items_complete(self) -> bool: ...


class ClusterService(Protocol):
    """Deletes every AWS resource tagged with a cluster id."""

    def delete_resources_for_cluster(
        self, cluster_id: str, tags: Mapping[str, str], dry_run: bool
    ) -> ClusterReport: ...


class BatchDeleter(Protocol):
    """Deletes many objects of one bucket at once."""

    def delete(self, bucket: str, keys: Sequence[str]) -> None: ...


@dataclass
class AwsResource:
    """An AWS resource with its tags and the cluster it belongs to."""

    id: str
    resource_type: str
    tags: dict[str, str] = field(default_factory=dict)
    cluster_tag: str = ""


def is_velero_bucket(bucket_name: str) -> bool:
    """Return True for buckets holding managed Velero backups."""
    return VELERO_S3_BUCKET_PREFIX in bucket_name


def extract_cluster_tag(tags: Mapping[str, str]) -> tuple[str, bool]:
    """Return the cluster a resource belongs to and whether it is an RHMI/RHOAM resource."""
    for key, value in tags.items():
        if OSD_CLUSTER_TAG_PREFIX in key:
            return key.replace(OSD_CLUSTER_TAG_PREFIX, "", 1), False
        if RHMI_RESOURCE_TAG_PREFIX in key:
            return value, True
        if MANAGED_VELERO_TAG_PREFIX in key:
            return value, False
    return "", False


def _tags_to_dict(tags: Iterable[Mapping[str, Any]] | None) -> dict[str, str]:
    return {tag.get("Key") or "": tag.get("Value") or "" for tag in tags or ()}


class AwsAccountCleanup:
    """Find and delete AWS resources left behind by deleted clusters."""

    def __init__(
        self,
        region: str,
        ec2: Any,
        s3: Any,
        s3_deleter: BatchDeleter | None = None,
        cluster_service: ClusterService | None = None,
        dry_run: bool = True,
    ) -> None:
        self.region = region
        self.ec2 = ec2
        self.s3 = s3
        self.s3_deleter = s3_deleter
        self.cluster_service = cluster_service
        self.dry_run = dry_run
        self.poll_interval = POLL_INTERVAL
        self.poll_timeout = POLL_TIMEOUT

        self.osd_resources: dict[str, list[AwsResource]] = {}
        self.rhmi_resources: dict[str, list[AwsResource]] = {}
        self.deleted_resources: list[AwsResource] = []
        self.s3_buckets: list[AwsResource] = []
        self.vpcs: list[AwsResource] = []

    def run(self) -> None:
        """Fetch resources, delete the unused ones and report what is kept."""
        if self.dry_run:
            log.info("DRY RUN (No AWS resources will be deleted)")

        self.fetch_ec2_instances()
        self.fetch_vpcs()
        self.fetch_s3_buckets()

        for tag, resources in self.rhmi_resources.items():
            if tag in self.osd_resources:
                self.osd_resources[tag].extend(resources)
            elif self.dry_run:
                log.info("Would use cluster-service to delete resources with a tag: %s", tag)
            else:
                self.cleanup_with_cluster_service(tag)
                self.deleted_resources.extend(resources)

        self.cleanup_unused_velero_s3_buckets()
        self.cleanup_vpcs()

        if self.osd_resources:
            log.info("Following OSD cluster resources won't be deleted")
            for resources in self.osd_resources.values():
                for resource in resources:
                    log.info(
                        "Resource type: %s, ID: %s, Cluster tag: %s",
                        resource.resource_type,
                        resource.id,
                        resource.cluster_tag,
                    )
        log.debug("Deleted resources: %s", self.deleted_resources)

    def _keep(self, resource: AwsResource) -> None:
        self.osd_resources.setdefault(resource.cluster_tag, []).append(resource)

    def fetch_ec2_instances(self) -> None:
        """Record the cluster of every instance that is not terminated."""
        log.debug("Fetching EC2 Instances")
        response = self.ec2.describe_instances() or {}
        for reservation in response.get("Reservations") or ():
            for instance in reservation.get("Instances") or ():
                state = (instance.get("State") or {}).get("Name")
                if state == "terminated":
                    continue
                tags = _tags_to_dict(instance.get("Tags"))
                cluster_tag, _ = extract_cluster_tag(tags)
                resource = AwsResource(
                    id=instance.get("InstanceId") or "",
                    resource_type="ec2Instance",
                    tags=tags,
                    cluster_tag=cluster_tag,
                )
                if cluster_tag:
                    self._keep(resource)

    def fetch_vpcs(self) -> None:
        """Collect the non-default VPCs, sorting out RHMI/RHOAM ones."""
        log.debug("Fetching VPCs")
        response = self.ec2.describe_vpcs() or {}
        for vpc in response.get("Vpcs") or ():
            if vpc.get("IsDefault"):
                continue
            tags = _tags_to_dict(vpc.get("Tags"))
            cluster_tag, has_rhmi_tag = extract_cluster_tag(tags)
            resource = AwsResource(
                id=vpc.get("VpcId") or "",
                resource_type="vpc",
                tags=tags,
                cluster_tag=cluster_tag,
            )
            if has_rhmi_tag:
                self.rhmi_resources.setdefault(cluster_tag, []).append(resource)
            else:
                self.vpcs.append(resource)

    def fetch_s3_buckets(self) -> None:
        """Collect the buckets of this region, sorting out RHMI/RHOAM ones."""
        log.debug("Fetching S3 Buckets")
        try:
            response = self.s3.list_buckets() or {}
        except Exception as err:
            raise RuntimeError(f"failed to list s3 buckets: {err}") from err

        for bucket in response.get("Buckets") or ():
            name = bucket.get("Name") or ""
            try:
                location = self.s3.get_bucket_location(Bucket=name) or {}
            except Exception as err:
                log.info("failed to get s3 bucket location (ignoring): %s", err)
                continue
            bucket_region = location.get("LocationConstraint") or DEFAULT_BUCKET_REGION
            if bucket_region != self.region:
                continue

            try:
                tagging = self.s3.get_bucket_tagging(Bucket=name) or {}
            except Exception as err:
                log.warning("failed to get s3 bucket tags: %s", err)
                continue

            tags = _tags_to_dict(tagging.get("TagSet"))
            cluster_tag, has_rhmi_tag = extract_cluster_tag(tags)
            resource = AwsResource(
                id=name, resource_type="s3", tags=tags, cluster_tag=cluster_tag
            )
            if has_rhmi_tag:
                self.rhmi_resources.setdefault(cluster_tag, []).append(resource)
            else:
                self.s3_buckets.append(resource)

    def cleanup_unused_velero_s3_buckets(self) -> None:
        """Delete Velero backup buckets whose cluster no longer runs."""
        log.debug("Deleting S3 Buckets")
        for bucket in self.s3_buckets:
            if not is_velero_bucket(bucket.id):
                continue
            if bucket.cluster_tag and bucket.cluster_tag not in self.osd_resources:
                if self.dry_run:
                    log.info(
                        "would delete a bucket '%s' (cluster tag '%s')",
                        bucket.id,
                        bucket.cluster_tag,
                    )
                    continue
                try:
                    self.remove_s3_bucket(bucket.id)
                except Exception as err:
                    log.warning(
                        "Failed to delete S3 bucket '%s' (cluster tag '%s'). "
                        "It might be already deleted",
                        bucket.id,
                        bucket.cluster_tag,
                    )
                    log.debug(err)
                else:
                    log.info(
                        "S3 bucket '%s' (cluster tag '%s') successfully deleted",
                        bucket.id,
                        bucket.cluster_tag,
                    )
                    self.deleted_resources.append(bucket)
            else:
                self._keep(bucket)

    def cleanup_vpcs(self) -> None:
        """Delete VPCs whose cluster no longer runs, and untagged VPCs."""
        log.debug("Deleting VPCs")
        for vpc in self.vpcs:
            unused = vpc.cluster_tag and vpc.cluster_tag not in self.osd_resources
            if unused or not vpc.tags:
                if self.dry_run:
                    log.info(
                        "would delete a vpc '%s' (cluster tag: '%s')", vpc.id, vpc.cluster_tag
                    )
                    continue
                try:
                    self.ec2.delete_vpc(VpcId=vpc.id)
                except Exception as err:
                    log.warning(
                        "Failed to delete VPC '%s' (cluster tag '%s'). It might be deleted "
                        "already or it still contains dependencies",
                        vpc.id,
                        vpc.cluster_tag,
                    )
                    log.debug(err)
                else:
                    log.info(
                        "VPC '%s' (cluster tag '%s') successfully deleted",
                        vpc.id,
                        vpc.cluster_tag,
                    )
                    self.deleted_resources.append(vpc)
            else:
                self._keep(vpc)

    def cleanup_with_cluster_service(self, tag: str) -> None:
        """Delete all resources of a cluster, polling until done or timed out."""
        if self.cluster_service is None:
            raise RuntimeError("no cluster service configured")
        log.info("About to clean up AWS resources for cluster tag '%s' with cluster-service", tag)
        deadline = time.monotonic() + self.poll_timeout
        while True:
            report = self.cluster_service.delete_resources_for_cluster(tag, {}, self.dry_run)
            for item in getattr(report, "items", ()) or ():
                log.debug(
                    "%s %s %s %s",
                    getattr(item, "name", ""),
                    getattr(item, "id", ""),
                    getattr(item, "action", ""),
                    getattr(item, "action_status", ""),
                )
            if report.all_items_complete():
                break
            if time.monotonic() + self.poll_interval > deadline:
                raise TimeoutError(
                    f"timed out waiting for AWS resources with cluster tag '{tag}' to be deleted"
                )
            log.info(
                "AWS resources with cluster tag '%s' are still being deleted. "
                "Retrying in %s seconds...",
                tag,
                self.poll_interval,
            )
            time.sleep(self.poll_interval)
        log.info("Finished cleaning up AWS resources for cluster tag '%s'", tag)

    def remove_s3_bucket(self, bucket_name: str) -> None:
        """Empty a bucket and delete it."""
        listing = self.s3.list_objects_v2(Bucket=bucket_name) or {}
        keys = [obj.get("Key") or "" for obj in listing.get("Contents") or ()]
        self.delete_objects(bucket_name, keys)
        self.s3.delete_bucket(Bucket=bucket_name)

    def delete_objects(self, bucket: str, keys: Sequence[str]) -> None:
        """Delete the given object keys from a bucket."""
        keys = list(keys)
        if not keys:
            log.debug("[%s] No objects to delete", bucket)
            return
        log.debug("[%s] Deleting %d objects", bucket, len(keys))
        if self.s3_deleter is not None:
            self.s3_deleter.delete(bucket, keys)
        else:
            for start in range(0, len(keys), S3_DELETE_BATCH_SIZE):
                chunk = keys[start:start + S3_DELETE_BATCH_SIZE]
                self.s3.delete_objects(
                    Bucket=bucket, Delete={"Objects": [{"Key": key} for key in chunk]}
                )
        log.debug("[%s] %d objects deleted", bucket, len(keys))