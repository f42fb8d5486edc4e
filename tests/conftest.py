"""Shared fixtures: an in-memory registry standing in for Packagist."""

import pytest

from cadenza.errors import PackageNotFoundError
from cadenza.models import DistInfo, PackageInfo, SourceInfo, VersionRecord
from cadenza.constraints import find_latest_release
from cadenza.registry import normalize_package_name


class FakeRegistry:
    """Serves package metadata from a dict and records which names were fetched.

    Names are matched case-insensitively, as on Packagist.

    ``packages`` maps name -> version -> spec, where spec may hold ``require``,
    ``autoload``, ``url`` and ``source``. A ``url`` of None makes the version a
    virtual package with neither dist nor source; a ``source`` dict without a
    ``url`` publishes the version from its repository only.
    """

    def __init__(self, packages):
        self.packages = packages
        self.fetched = []
        self.closed = False

    def get_package(self, name):
        name = normalize_package_name(name)
        self.fetched.append(name)
        if name not in self.packages:
            raise PackageNotFoundError(name)

        versions = {}
        for version, spec in self.packages[name].items():
            default_url = None if "source" in spec else f"https://example.test/dist/{name}/{version}.zip"
            url = spec.get("url", default_url)
            versions[version] = VersionRecord(
                name=name,
                version=version,
                require=dict(spec.get("require", {})),
                autoload=spec.get("autoload"),
                dist=DistInfo(type="zip", url=url) if url else DistInfo(),
                source=SourceInfo(**spec.get("source", {})),
            )
        return PackageInfo(name=name, versions=versions, latest_stable=find_latest_release(versions))

    def get_version(self, name, version):
        info = self.get_package(name)
        if version not in info.versions:
            raise PackageNotFoundError(name, version)
        return info.versions[version]

    def search_packages(self, query):
        return []

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


@pytest.fixture
def make_registry():
    """Factory fixture building a FakeRegistry from a package table."""
    return FakeRegistry
