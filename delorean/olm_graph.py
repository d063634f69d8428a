"""Verify that the OLM upgrade graph of every manifest directory is unbroken."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

BASE_KEYCLOAK_V18 = "keycloak-operator.v18.0.0"
BASE_KEYCLOAK_V9 = "keycloak-operator.v9.0.3"

_GRAPH_ROOTS = frozenset({BASE_KEYCLOAK_V18, BASE_KEYCLOAK_V9})


@dataclass(frozen=True)
class CSVName:
    """Name of a ClusterServiceVersion and the CSV it replaces."""

    name: str
    replaces: str = ""


class CSVNames(list):
    """An ordered list of CSV names, oldest first."""

    def __init__(self, items: Iterable[CSVName] = ()) -> None:
        super().__init__(items)

    def contains(self, name: str) -> bool:
        """Return True if a CSV with the given name is in the list."""
        return any(csv.name == name for csv in self)


class OLMGraphError(Exception):
    """Raised when an OLM upgrade graph is broken."""


def check_graph_in_dir(dirname: str, csvs: CSVNames) -> None:
    """Check that every CSV but the first replaces a CSV present in ``csvs``."""
    if len(csvs) <= 1:
        print(f"[{dirname}] no graph to check")
        return
    for csv in reversed(csvs[1:]):
        if not csvs.contains(csv.replaces) and csv.name not in _GRAPH_ROOTS:
            print(
                f"[{dirname}] OLM graph is broken. CSV {csv.name} replaces "
                f"{csv.replaces}, which doesn't exist"
            )
            raise OLMGraphError(
                f"[{dirname}] invalid replaces field {csv.replaces} in CSV {csv.name}"
            )
    print(f"[{dirname}] OLM graph is complete")


class CheckOLMGraph:
    """Check the OLM graph of each product directory under a manifest directory."""

    def __init__(self, directory: str, csvs: Mapping[str, CSVNames]) -> None:
        self.directory = directory
        self.csvs = dict(csvs)

    def run(self) -> None:
        """Check every directory; raise OLMGraphError if any graph is broken."""
        failed = []
        for dirname, csvs in self.csvs.items():
            try:
                check_graph_in_dir(dirname, csvs)
            except OLMGraphError:
                failed.append(dirname)
        if failed:
            raise OLMGraphError(f"OLM graph check failed in {self.directory}")