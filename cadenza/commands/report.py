"""Printing helpers for show, why, why-not, search and audit."""

from typing import List, Optional

from ..auditor import Vulnerability
from ..models import LockFile, Manifest, PackageSummary

RULE = "━" * 40


def print_header(title: str) -> None:
    print(title)
    print(RULE)


def show_packages(manifest: Manifest, lock: Optional[LockFile] = None) -> None:
    """List the manifest's requirements, with installed versions when a lock exists."""
    locked = {}
    if lock is not None:
        locked = {p.name: p.version for p in lock.packages + lock.packages_dev}

    def line(name: str, constraint: str) -> str:
        if name in locked:
            return f"  • {name}: {constraint} (locked at {locked[name]})"
        return f"  • {name}: {constraint}"

    print_header("Installed Packages")
    print()
    print("Production Dependencies:")
    for name, constraint in manifest.require.items():
        print(line(name, constraint))

    if manifest.require_dev:
        print()
        print("Development Dependencies:")
        for name, constraint in manifest.require_dev.items():
            print(line(name, constraint))

    if lock is not None:
        transitive = len(locked) - len(set(locked) & set(manifest.all_dependencies()))
        print()
        print(f"Plus {transitive} transitive packages in composer.lock")


def print_dependency_chain(name: str, tree: str) -> None:
    print_header(f"Why is {name} installed?")
    print()
    print("Dependency chain:")
    print(tree, end="")


def print_conflicts(name: str, version: str, advisories: List[str]) -> None:
    print_header(f"Why can't {name}@{version} be installed?")

    if not advisories:
        print("✓ No conflicts! You can install this version.")
        return

    print()
    print("Things to check:")
    for advisory in advisories:
        print(f"  • {advisory}")

    print()
    print("To install:")
    print("  1. Update conflicting packages")
    print("  2. Or use a different version")


def print_search_results(results: List[PackageSummary]) -> None:
    if not results:
        print("No packages found")
        return
    width = max(len(r.name) for r in results)
    for result in results:
        print(f"{result.name.ljust(width)}  {result.description}")


def print_audit_report(vulnerabilities: List[Vulnerability]) -> None:
    print_header("Security Audit")

    if not vulnerabilities:
        print("✓ No vulnerabilities found!")
        return

    print(f"⚠ Found {len(vulnerabilities)} vulnerabilities:")
    print()
    for vuln in vulnerabilities:
        print(f"[{vuln.severity}] {vuln.package}@{vuln.version}")
        print(f"  CVE: {vuln.cve or 'n/a'}")
        print(f"  Description: {vuln.description}")
        print(f"  Fix: {vuln.fix}")
        print(f"  Source: {vuln.source}")
        print()
