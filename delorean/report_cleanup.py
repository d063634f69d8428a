"""Move processed reports into the archive folder of their buckets."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from delorean.aws_cleanup import S3_DELETE_BATCH_SIZE, BatchDeleter

ARCHIVE_FOLDER_NAME = "archive"


@dataclass(frozen=True)
class ObjectTag:
    """A tag an object must carry to be archived."""

    key: str
    value: str


@dataclass
class CleanupConfig:
    """A bucket and the tags that mark its reports as processed."""

    bucket: str
    tags: list[ObjectTag] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CleanupConfig:
        tags = [
            ObjectTag(key=str(tag.get("key") or ""), value=str(tag.get("value") or ""))
            for tag in data.get("tags") or ()
        ]
        return cls(bucket=str(data.get("bucket") or ""), tags=tags)


@dataclass
class CleanupResult:
    """Keys of the objects moved to the archive folder."""

    moved_objects: list[str] = field(default_factory=list)


def has_tag(tag_set: Iterable[Mapping[str, Any]] | None, key: str, value: str) -> bool:
    """Return True if the tag set holds a tag with this key and value."""
    return any(
        tag.get("Key") == key and tag.get("Value") == value for tag in tag_set or ()
    )


def load_cleanup_configs(path: str | Path) -> list[CleanupConfig]:
    """Read the list of cleanup configurations from a YAML file."""
    with open(path, encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, Mapping):
        raise ValueError(f"unexpected content in {path}")
    return [CleanupConfig.from_dict(item) for item in data.get("configs") or ()]


class ReportCleanup:
    """Archive the reports whose tags show they have been processed."""

    def __init__(
        self,
        configs: Iterable[CleanupConfig],
        s3: Any,
        s3_deleter: BatchDeleter | None = None,
    ) -> None:
        self.configs = list(configs)
        self.s3 = s3
        self.s3_deleter = s3_deleter

    def run(self) -> list[CleanupResult]:
        """Clean up every configured bucket in parallel; raise the first failure."""
        results: list[CleanupResult] = []
        if self.configs:
            with ThreadPoolExecutor(max_workers=len(self.configs)) as pool:
                futures = [
                    pool.submit(self.cleanup_objects_for_bucket, config)
                    for config in self.configs
                ]
                results = [future.result() for future in futures]
        print("[All] Process completed")
        return results

    def cleanup_objects_for_bucket(self, config: CleanupConfig) -> CleanupResult:
        """Move the matching top-level objects of one bucket into the archive."""
        bucket = config.bucket
        print(f"[{bucket}] List objects in bucket")
        listing = self.s3.list_objects_v2(Bucket=bucket, Delimiter="/") or {}
        keys = [obj.get("Key") or "" for obj in listing.get("Contents") or ()]
        print(f"[{bucket}] Found {len(keys)} objects")

        to_copy = []
        for key in keys:
            try:
                matched = self.should_cleanup(bucket, key, config.tags)
            except Exception as err:
                print(f"[{bucket}] Skip object {key} due to error: {err}")
                continue
            if matched:
                print(f"[{bucket}] Object {key} has matched tags and will be moved")
                to_copy.append(key)
            else:
                print(f"[{bucket}] Skip object {key} as it doesn't have the required tags")

        copied = self.copy_objects(bucket, ARCHIVE_FOLDER_NAME, to_copy)
        self.delete_objects(bucket, copied)
        return CleanupResult(moved_objects=copied)

    def should_cleanup(self, bucket: str, key: str, tags: Iterable[ObjectTag]) -> bool:
        """Return True if the object carries every one of ``tags``."""
        print(f"[{bucket}] Listing tags for object {key}")
        response = self.s3.get_object_tagging(Bucket=bucket, Key=key) or {}
        tag_set = response.get("TagSet") or []
        return all(has_tag(tag_set, tag.key, tag.value) for tag in tags)

    def copy_objects(self, bucket: str, to_folder: str, keys: Sequence[str]) -> list[str]:
        """Copy objects into ``to_folder``; return the keys copied successfully."""
        copied: list[str] = []
        if not keys:
            print(f"[{bucket}] No objects to copy")
            return copied
        print(f"[{bucket}] Copying {len(keys)} objects to {to_folder}/")
        for key in keys:
            try:
                self.s3.copy_object(
                    Bucket=bucket,
                    Key=f"{to_folder}/{key}",
                    CopySource=f"{bucket}/{key}",
                )
            except Exception as err:
                print(f"[{bucket}] Failed to copy object {key} due to error: {err}")
            else:
                print(f"[{bucket}] Object {key} copied to {to_folder}/{key}")
                copied.append(key)
        print(f"[{bucket}] Copied {len(copied)} objects to {to_folder}")
        return copied

    def delete_objects(self, bucket: str, keys: Sequence[str]) -> None:
        """Delete the given keys from the bucket."""
        keys = list(keys)
        if not keys:
            print(f"[{bucket}] No objects to delete")
            return
        print(f"[{bucket}] Deleting {len(keys)} objects")
        if self.s3_deleter is not None:
            self.s3_deleter.delete(bucket, keys)
        else:
            for start in range(0, len(keys), S3_DELETE_BATCH_SIZE):
                chunk = keys[start:start + S3_DELETE_BATCH_SIZE]
                self.s3.delete_objects(
                    Bucket=bucket, Delete={"Objects": [{"Key": key} for key in chunk]}
                )
        print(f"[{bucket}] {len(keys)} objects deleted")