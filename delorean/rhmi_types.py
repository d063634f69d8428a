"""Update operator and product versions in an RHMI types source file."""

from __future__ import annotations

import re
from pathlib import Path

OPERATOR_VERSION_TYPE = "OperatorVersion"
PRODUCT_VERSION_TYPE = "Version"

_PRODUCT_NAMES = {
    "3scale": "3Scale",
    "amq-online": "AMQOnline",
    "amq-streams": "AMQStreams",
    "apicurito": "Apicurito",
    "codeready-workspaces": "CodeReadyWorkspaces",
    "fuse-online": "FuseOnline",
    "rhsso": "RHSSO",
    "rhssouser": "RHSSOUser",
}

_NUM = r"0|[1-9][0-9]*"
_SEMVER_RE = re.compile(
    rf"v(?P<major>{_NUM})"
    rf"(?:\.(?P<minor>{_NUM})"
    rf"(?:\.(?P<patch>{_NUM})"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.-]+))?"
    r")?)?"
)


class VersionUpdateError(Exception):
    """Raised when a version in the types file cannot be updated."""


def _parse_semver(text: str) -> tuple[int, int, int, str] | None:
    match = _SEMVER_RE.fullmatch(text)
    if match is None:
        return None
    pre = match["pre"] or ""
    if pre:
        for ident in pre.split("."):
            if not ident or (ident.isdigit() and len(ident) > 1 and ident.startswith("0")):
                return None
    build = match["build"]
    if build is not None and any(not ident for ident in build.split(".")):
        return None
    return (
        int(match["major"]),
        int(match["minor"] or 0),
        int(match["patch"] or 0),
        pre,
    )


def _compare_prerelease(x: str, y: str) -> int:
    if x == y:
        return 0
    if not x:
        return 1
    if not y:
        return -1
    xs, ys = x.split("."), y.split(".")
    for a, b in zip(xs, ys):
        if a == b:
            continue
        a_num, b_num = a.isdigit(), b.isdigit()
        if a_num and b_num:
            return -1 if int(a) < int(b) else 1
        if a_num:
            return -1
        if b_num:
            return 1
        return -1 if a < b else 1
    return -1 if len(xs) < len(ys) else 1


def _compare(a: tuple[int, int, int, str], b: tuple[int, int, int, str]) -> int:
    if a[:3] != b[:3]:
        return -1 if a[:3] < b[:3] else 1
    return _compare_prerelease(a[3], b[3])


def prepare_product_name(product: str) -> str:
    """Map a product's command-line name to its name in the types file."""
    return _PRODUCT_NAMES.get(product, product)


def parse_version(text: str, product: str, version: str, version_type: str) -> str | None:
    """Return ``text`` with the product's version raised to ``version``.

    Returns None when the versions are equal; raises VersionUpdateError when the
    current version is newer, either version is not valid semver, or the
    product's version line cannot be found.
    """
    version = version.replace('"', "").strip()

    found = re.search(version_type + product + r".*", text)
    if found is None:
        raise VersionUpdateError(f"no {version_type} found for product {product}")
    found_line = found.group(0)
    parts = found_line.split("=")
    if len(parts) < 2:
        raise VersionUpdateError(f"no value assigned in line: {found_line}")
    current = parts[1].replace('"', "").strip()

    current_version = "v" + current
    new_version = "v" + version
    print(f"current {version_type}: {current_version} Supplied version: {new_version}")

    current_parsed = _parse_semver(current_version)
    new_parsed = _parse_semver(new_version)
    if current_parsed is None or new_parsed is None:
        raise VersionUpdateError("one of the versions provided are invalid semver")

    order = _compare(current_parsed, new_parsed)
    if order < 0:
        replaced = found_line.replace(current, version, 1)
        return text.replace(found_line, replaced, 1)
    if order == 0:
        print(f"{version_type}s match or invalid, not updating types file")
        return None
    raise VersionUpdateError(
        f"current {version_type} {current_version} is greater than supplied version {new_version}"
    )


def set_version(
    filepath: str | Path,
    product: str,
    operator_version: str,
    product_version: str = "",
) -> None:
    """Raise the operator (and optionally product) version of a product in the file.

    Version conflicts are reported and leave the file untouched.
    """
    product = prepare_product_name(product)
    print(f"setting version of operator {product} to {operator_version}")
    path = Path(filepath)
    original = path.read_text()

    try:
        out = parse_version(original, product, operator_version, OPERATOR_VERSION_TYPE)
    except VersionUpdateError as err:
        print(f"error: {err} not writing to file")
        return

    if product_version:
        print(f"setting version of product {product} to {product_version}")
        try:
            out = parse_version(out or original, product, product_version, PRODUCT_VERSION_TYPE)
        except VersionUpdateError as err:
            print(f"error: {err} not writing to file")
            return

    if out:
        print(f"writing changes to rhmi_types file at {filepath}")
        path.write_text(out)