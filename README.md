# delorean

Library helpers for the release and pipeline chores around an operator
project:

- **OLM graph checks** (`delorean.olm_graph`) – verify that every
  ClusterServiceVersion in a directory replaces one that exists.
- **Types file version bumps** (`delorean.rhmi_types`) – raise the operator
  or product version of a product in a Go-style types file, refusing
  downgrades.
- **Merge blockers** (`delorean.merge_blocker`) – open or close a
  `tide/merge-blocker` issue that blocks merges into a branch.
- **Supported versions** (`delorean.supported_versions`) – work out which
  bundle versions are still supported, given how many major and minor
  streams to keep.
- **AWS account cleanup** (`delorean.aws_cleanup`) – find and remove S3
  buckets, VPCs and cluster resources left behind by clusters that no longer
  run.
- **Report cleanup** (`delorean.report_cleanup`) – move processed report
  objects in S3 buckets into an `archive/` folder.

## Installation

Install the package with pip into a Python 3.10 or newer environment. It
depends on `pyyaml` and `semver`; the `test` extra adds `pytest`.

## Usage

### Checking an OLM graph

```python
from delorean.olm_graph import CSVName, CSVNames, CheckOLMGraph, OLMGraphError

csvs = CSVNames([
    CSVName(name="operator.v1.0.1", replaces=""),
    CSVName(name="operator.v1.0.2", replaces="operator.v1.0.1"),
])
check = CheckOLMGraph("/tmp/manifests", {"product": csvs})
try:
    check.run()
except OLMGraphError as err:
    print("graph is broken:", err)
```

`check_graph_in_dir(dirname, csvs)` checks a single list. Every CSV after the
first must replace a CSV in the list; the Keycloak base versions
`keycloak-operator.v18.0.0` and `keycloak-operator.v9.0.3` are accepted as
graph roots. `CheckOLMGraph.run` checks every directory and raises
`OLMGraphError` if any of them is broken.

### Bumping a version in a types file

```python
from delorean.rhmi_types import set_version

# Raise the operator version of 3scale to 9.9.9 and its product version to 2.12.1.
set_version("rhmi_types.go", "3scale", "9.9.9", "2.12.1")
```

`set_version` looks for the line `OperatorVersion<Product> = "..."` (and
`Version<Product> = "..."` when a product version is given) and rewrites the
file only if a version was raised. If a supplied version is older than the
current one, or either is not valid semver, it prints the problem and leaves
the file untouched.

`prepare_product_name` maps short names such as `3scale`, `amq-online` or
`rhsso` to the names used in the file (`3Scale`, `AMQOnline`, `RHSSO`).
`parse_version(text, product, version, version_type)` does one substitution
on a string: it returns the new text, returns `None` when the versions are
equal, and raises `VersionUpdateError` when the current version is newer,
either version is invalid, or no matching line is found.

### Merge blockers

```python
from delorean.merge_blocker import IssuesService, RepoInfo, do_merge_blocker

issues = IssuesService(token="token")
repo = RepoInfo(owner="my-org", repo="my-operator")
do_merge_blocker(issues, repo, "master", delete=False)  # open
do_merge_blocker(issues, repo, "master", delete=True)   # close
```

`IssuesService` talks to the GitHub REST API (its `base_url` can be changed)
through `list_by_repo`, `create` and `edit`; any object with these three
methods can be passed instead. A blocker is an open issue labelled
`tide/merge-blocker` whose title contains `branch:<name>`.
`create_merge_blocker` returns the existing blocker if there is one;
`close_merge_blocker` raises `MergeBlockerError` when there is none.

### Supported versions

```python
from delorean.supported_versions import (
    get_major_versions, get_minor_versions, get_patch_versions, get_semver_values,
)

versions = get_semver_values(["1.4.0", "1.5.0", "1.6.0", "1.6.1", "1.7.0"])
majors = get_major_versions(versions, 1)          # [1]
minors = get_minor_versions(versions, majors, 3)  # {1: [5, 6, 7]}
print(get_patch_versions(versions, minors))       # ['1.5.0', '1.6.0', '1.6.1', '1.7.0']
```

`trim_semver_versions` drops versions newer than the production major.minor
stream, and `get_production_version` reads it from the `currentCSV` of the
first channel in a package file.

`SupportedVersions(olm_type, supported_major_versions,
supported_minor_versions, managed_tenants).run()` performs the whole
procedure: it clones the managed-tenants repository with `git`, and for the
`managed-api-service` OLM type exports the latest production index image
with `opm`, so both programs must be on `PATH`. It prints the versions comma
separated and returns them. Failures raise `SupportedVersionsError`.

### AWS account cleanup

```python
from delorean.aws_cleanup import AwsAccountCleanup

cleanup = AwsAccountCleanup(
    region="us-east-1",
    ec2=ec2_client,
    s3=s3_client,
    s3_deleter=None,
    cluster_service=cluster_service,
    dry_run=True,
)
cleanup.run()
print(cleanup.deleted_resources)
```

`ec2` and `s3` are client objects with the usual AWS method names
(`describe_instances`, `describe_vpcs`, `delete_vpc`, `list_buckets`,
`get_bucket_location`, `get_bucket_tagging`, `list_objects_v2`,
`delete_objects`, `delete_bucket`) returning dictionaries. An optional
`s3_deleter` with `delete(bucket, keys)` is used to empty buckets; without it
objects are deleted with `delete_objects` in batches of 1000. The
`cluster_service` must offer `delete_resources_for_cluster(cluster_id, tags,
dry_run)` returning a report with `all_items_complete()`; it is polled every
30 seconds for up to 20 minutes.

Resources tagged with a running cluster are kept. Velero backup buckets and
VPCs of clusters that no longer run, and untagged VPCs, are deleted;
resources tagged `integreatly.org/clusterID` for a cluster that no longer
runs are handed to the cluster service. With `dry_run=True` nothing is
deleted and the candidates are only logged through the `logging` module.

### Report cleanup

```python
from delorean.report_cleanup import ReportCleanup, load_cleanup_configs

configs = load_cleanup_configs("cleanup.yaml")
results = ReportCleanup(configs, s3_client, s3_deleter).run()
```

The configuration file looks like:

```yaml
configs:
  - bucket: reports
    tags:
      - key: processed
        value: "true"
```

Top-level objects carrying every configured tag are copied to `archive/` in
the same bucket and then deleted from their original place. Buckets are
processed in parallel, and `run` returns a `CleanupResult` per bucket listing
the moved keys.

## What the package does not do

- It has no command-line interface; everything is used from Python.
- It does not create AWS or GitHub clients from credentials or environment
  variables: the caller builds the EC2, S3, batch-delete and cluster-service
  clients, and supplies the token for `IssuesService`.
- It does not include a cluster-service implementation; the AWS cleanup only
  calls one that is passed in.