"""Compute the operator versions still supported, from the managed-tenants bundles."""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, replace
from pathlib import Path

import semver
import yaml

OLM_TYPE_RHMI = "integreatly-operator"
OLM_TYPE_RHOAM = "managed-api-service"

DEFAULT_MANAGED_TENANTS = "https://gitlab.cee.redhat.com/service/managed-tenants.git"


class SupportedVersionsError(Exception):
    """Raised when the supported versions cannot be determined."""


@dataclass(frozen=True)
class OlmPaths:
    """Locations, relative to the managed-tenants checkout, used for an OLM type."""

    bundle_folder: str = ""
    package_file_path: str = ""
    addon_image_set_dir_path: str = ""


def _parse_version(text: str) -> semver.Version:
    try:
        return semver.Version.parse(text)
    except (ValueError, TypeError) as err:
        raise SupportedVersionsError(f"invalid semantic version {text!r}: {err}") from err


def _load_yaml(path: str | Path) -> object:
    with open(path, encoding="utf-8") as handle:
        return yaml.safe_load(handle)


def _run(cmd: Sequence[str]) -> None:
    command = " ".join(cmd)
    try:
        subprocess.run(list(cmd), check=True, capture_output=True)
    except (subprocess.CalledProcessError, OSError) as err:
        raise SupportedVersionsError(f'Error when executing "{command}": {err}') from err


def get_olm_type_paths(olm_type: str) -> OlmPaths:
    """Return the managed-tenants paths for the given OLM type."""
    if olm_type == OLM_TYPE_RHOAM:
        return OlmPaths(
            bundle_folder="managed-api-service",
            addon_image_set_dir_path="addons/rhoams/addonimagesets/production",
        )
    if olm_type == OLM_TYPE_RHMI:
        return OlmPaths(
            bundle_folder="integreatly-operator",
            addon_image_set_dir_path="addons/integreatly-operator/addonimagesets/production",
        )
    raise SupportedVersionsError(
        "Unsupported OLM type, Please use --help to see supported types."
    )


def get_last_file_in_dir(dir_path: str | Path) -> str:
    """Return the path of the last entry in ``dir_path`` when sorted by name."""
    names = sorted(os.listdir(dir_path))
    if not names:
        raise SupportedVersionsError(f"no files found in directory {dir_path}")
    return os.path.join(dir_path, names[-1])


def extract_rhoam_csv(paths: OlmPaths, repo_dir: str | Path) -> OlmPaths:
    """Export the bundles of the latest production index image into ``repo_dir``.

    Returns the paths updated to point at the exported package file.
    """
    root = os.path.join(repo_dir, paths.addon_image_set_dir_path)
    latest_image_set = get_last_file_in_dir(root)
    data = _load_yaml(latest_image_set) or {}
    if not isinstance(data, Mapping):
        raise SupportedVersionsError(f"unexpected content in {latest_image_set}")
    index_image = data.get("indexImage") or ""
    _run(["opm", "index", "export", f"--index={index_image}", f"--download-folder={repo_dir}"])
    return replace(paths, package_file_path=f"{paths.bundle_folder}/package.yaml")


def trim_semver_versions(
    versions: Iterable[semver.Version], production_version: semver.Version
) -> list[semver.Version]:
    """Drop versions newer than the production major.minor stream."""
    result = [
        version
        for version in versions
        if version.major < production_version.major
        or (
            version.major == production_version.major
            and version.minor <= production_version.minor
        )
    ]
    if not result:
        raise SupportedVersionsError("All versions are newer that production")
    return result


def get_production_version(directory: str | Path, paths: OlmPaths) -> semver.Version:
    """Read the current CSV version of the first channel in the package file."""
    root = os.path.join(directory, paths.package_file_path)
    data = _load_yaml(root) or {}
    channels = data.get("channels") if isinstance(data, Mapping) else None
    if not channels:
        raise SupportedVersionsError(f"no channels found in {root}")
    current_csv = channels[0].get("currentCSV") or ""
    parts = current_csv.split(".v")
    if len(parts) < 2:
        raise SupportedVersionsError(f"no version found in current CSV {current_csv!r}")
    return _parse_version(parts[1])


def download_managed_tenants(url: str) -> str:
    """Clone the managed-tenants repository into a new temporary directory."""
    directory = tempfile.mkdtemp(prefix="managed-tenants")
    try:
        _run(["git", "clone", url, directory])
    except SupportedVersionsError:
        shutil.rmtree(directory, ignore_errors=True)
        raise
    return directory


def _walk_dirs(root: str) -> Iterator[str]:
    with os.scandir(root) as entries:
        ordered = sorted(entries, key=lambda entry: entry.name)
    for entry in ordered:
        if entry.is_dir():
            yield entry.name
            yield from _walk_dirs(entry.path)


def get_bundle_folders(directory: str | Path, bundle_path: str) -> list[str]:
    """Return the names of all directories below the bundle folder, in walk order."""
    root = os.path.join(directory, bundle_path)
    if not os.path.isdir(root):
        raise SupportedVersionsError(f"bundle folder {root} does not exist")
    return list(_walk_dirs(root))


def get_semver_values(bundles: Iterable[str]) -> list[semver.Version]:
    """Parse each bundle name as a semantic version."""
    return [_parse_version(bundle) for bundle in bundles]


def _last(items: list[int], count: int) -> list[int]:
    return items[len(items) - count:] if len(items) > count else items


def get_major_versions(versions: Iterable[semver.Version], supported_versions: int) -> list[int]:
    """Return the newest ``supported_versions`` major versions, ascending."""
    result = _last(sorted({version.major for version in versions}), supported_versions)
    if not result:
        raise SupportedVersionsError("Empty list being returned")
    return result


def get_minor_versions(
    versions: Iterable[semver.Version],
    major_versions: Iterable[int],
    supported_versions: int,
) -> dict[int, list[int]]:
    """Return, per supported major, its newest ``supported_versions`` minors."""
    majors = set(major_versions)
    result: dict[int, list[int]] = {}
    for version in versions:
        if version.major not in majors:
            continue
        minors = result.setdefault(version.major, [])
        if version.minor in minors:
            continue
        minors.append(version.minor)
        minors.sort()
        result[version.major] = _last(minors, supported_versions)
    if not result:
        raise SupportedVersionsError("Unexpected error trying to return an  empty map")
    return result


def get_patch_versions(
    versions: Iterable[semver.Version], supported_versions: Mapping[int, Sequence[int]]
) -> list[str]:
    """Return every version whose major and minor are supported, as strings."""
    result = [
        str(version)
        for version in versions
        if version.minor in supported_versions.get(version.major, ())
    ]
    if not result:
        raise SupportedVersionsError("Trying to return a empty patch list")
    return result


class SupportedVersions:
    """List the supported versions of an operator from managed-tenants."""

    def __init__(
        self,
        olm_type: str = OLM_TYPE_RHOAM,
        supported_major_versions: int = 1,
        supported_minor_versions: int = 3,
        managed_tenants: str = DEFAULT_MANAGED_TENANTS,
    ) -> None:
        self.olm_type = olm_type
        self.supported_major_versions = int(supported_major_versions)
        self.supported_minor_versions = int(supported_minor_versions)
        self.managed_tenants = managed_tenants

    def run(self) -> list[str]:
        """Print the supported versions comma separated and return them."""
        paths = get_olm_type_paths(self.olm_type)
        repo_dir = download_managed_tenants(self.managed_tenants)
        if self.olm_type == OLM_TYPE_RHOAM:
            paths = extract_rhoam_csv(paths, repo_dir)
        production_version = get_production_version(repo_dir, paths)
        bundles = get_bundle_folders(repo_dir, paths.bundle_folder)
        versions = trim_semver_versions(get_semver_values(bundles), production_version)
        majors = get_major_versions(versions, self.supported_major_versions)
        minors = get_minor_versions(versions, majors, self.supported_minor_versions)
        patches = get_patch_versions(versions, minors)
        print(",".join(patches))
        return patches