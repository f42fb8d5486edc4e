"""Client for the Packagist package registry."""

import logging
import threading
from typing import Any, Dict, List, Optional

import requests

from .config import Constants
from .constraints import find_latest_release
from .errors import PackageNotFoundError, RegistryError
from .models import UNSET, PackageInfo, PackageSummary, VersionRecord
from .ssl_config import create_session

logger = logging.getLogger(__name__)

MINIFIED_FORMAT = "composer/2.0"


def normalize_package_name(name: str) -> str:
    """Registry package names are case-insensitive and stored lower-case."""
    return name.strip().lower()


def expand_minified_versions(entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Expand Packagist's minified version list.

    In the minified metadata format each version only lists the keys that
    differ from the version before it, and a value of ``"__unset"`` removes an
    inherited key.
    """
    expanded: List[Dict[str, Any]] = []
    previous: Optional[Dict[str, Any]] = None

    for entry in entries:
        if previous is None:
            current = {k: v for k, v in entry.items() if v != UNSET}
        else:
            current = dict(previous)
            for key, value in entry.items():
                if value == UNSET:
                    current.pop(key, None)
                else:
                    current[key] = value
        expanded.append(current)
        previous = current

    return expanded


class PackagistClient:
    """Client for fetching package metadata from a Composer v2 repository.

    Package metadata is cached per name for the lifetime of the client. The
    cache is guarded by a lock so one client can serve several resolvers;
    two threads fetching the same uncached name may both hit the network, but
    the cache only ever holds complete entries.
    """

    def __init__(self, base_url: Optional[str] = None, session: Optional[requests.Session] = None,
                 timeout: int = Constants.REQUEST_TIMEOUT, search_url: str = Constants.SEARCH_URL):
        """Initialize the API client."""
        self.base_url = (base_url or Constants.REGISTRY_URL).rstrip("/")
        self.search_url = search_url
        self.timeout = timeout
        self.session = session if session is not None else create_session()
        self._cache: Dict[str, PackageInfo] = {}
        self._cache_lock = threading.Lock()

    def get_package(self, name: str) -> PackageInfo:
        """
        Get every published version of a package.

        Args:
            name: Package name in vendor/package form

        Returns:
            PackageInfo with all versions keyed by version string

        Raises:
            PackageNotFoundError: If the registry does not know the package
            RegistryError: If the request fails or the response is malformed
        """
        name = normalize_package_name(name)

        with self._cache_lock:
            cached = self._cache.get(name)
        if cached is not None:
            return cached

        url = f"{self.base_url}/p2/{name}.json"
        logger.debug(f"Fetching package metadata for {name}")
        logger.debug(f"  URL: {url}")

        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise RegistryError(f"failed to fetch package {name}: {e}") from e

        if response.status_code != 200:
            raise PackageNotFoundError(
                name, message=f"package not found: {name} (status: {response.status_code})"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise RegistryError(f"failed to parse response for {name}: {e}") from e

        entries = (payload.get("packages") or {}).get(name) if isinstance(payload, dict) else None
        if not entries:
            raise PackageNotFoundError(name, message=f"no versions found for package: {name}")

        if payload.get("minified") == MINIFIED_FORMAT:
            entries = expand_minified_versions(entries)

        info = self._build_package_info(name, entries)

        with self._cache_lock:
            self._cache[name] = info

        logger.debug(f"Fetched {len(info.versions)} versions of {name} (latest stable: {info.latest_stable})")
        return info

    def _build_package_info(self, name: str, entries: List[Dict[str, Any]]) -> PackageInfo:
        """Convert registry version entries into a PackageInfo."""
        versions: Dict[str, VersionRecord] = {}
        description = ""

        for entry in entries:
            record = VersionRecord.from_dict(name, entry)
            if not record.version:
                continue
            versions[record.version] = record
            if record.description and not description:
                description = record.description

        return PackageInfo(
            name=name,
            versions=versions,
            description=description,
            latest_stable=find_latest_release(versions.keys()),
        )

    def get_version(self, name: str, version: str) -> VersionRecord:
        """Get one version of a package.

        Raises:
            PackageNotFoundError: If the package or the version is unknown
        """
        info = self.get_package(name)
        record = info.versions.get(version)
        if record is None:
            raise PackageNotFoundError(info.name, version)
        return record

    def search_packages(self, query: str) -> List[PackageSummary]:
        """Search the registry by keyword."""
        try:
            response = self.session.get(self.search_url, params={"q": query}, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise RegistryError(f"search failed: {e}") from e
        except ValueError as e:
            raise RegistryError(f"failed to parse search results: {e}") from e

        return [
            PackageSummary(
                name=result.get("name", ""),
                description=result.get("description") or "",
                downloads=result.get("downloads") or 0,
                favers=result.get("favers") or 0,
            )
            for result in payload.get("results", [])
        ]

    def download_url(self, name: str, version: str) -> str:
        """
        Get a zip archive URL for a package version.

        Git sources on GitHub, Codeberg and GitLab are turned into their
        archive endpoints so that the downloader only has to deal with zips.

        Raises:
            PackageNotFoundError: If the version has neither dist nor source
        """
        url = self.get_version(name, version).download_url
        if url:
            return url

        raise PackageNotFoundError(name, version, message=f"no download URL found for {name}@{version}")

    def clear_cache(self) -> None:
        """Forget every cached package."""
        with self._cache_lock:
            self._cache.clear()

    def close(self):
        """Close the session and clean up resources."""
        self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
