[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "delorean"
version = "0.1.0"
description = "Release and pipeline helpers for operator projects: OLM graph checks, types-file version bumps, merge blockers, supported versions and AWS/S3 cleanup"
requires-python = ">=3.10"
keywords = ["olm", "operator", "release", "semver", "aws", "s3", "cleanup"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Build Tools",
]
dependencies = [
    "pyyaml",
    "semver",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["delorean"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
