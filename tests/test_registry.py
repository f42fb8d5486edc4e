"""Tests for the Packagist client."""

from unittest.mock import Mock, patch

import pytest
import requests

from cadenza.errors import PackageNotFoundError, RegistryError
from cadenza.registry import PackagistClient, expand_minified_versions, normalize_package_name


def make_response(payload=None, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


MONOLOG_PAYLOAD = {
    "minified": "composer/2.0",
    "packages": {
        "monolog/monolog": [
            {
                "name": "monolog/monolog",
                "version": "3.5.0",
                "description": "Sends your logs to files, sockets, inboxes, databases and various web services",
                "require": {"php": ">=8.1", "psr/log": "^2.0 || ^3.0"},
                "dist": {"type": "zip", "url": "https://api.github.com/repos/Seldaek/monolog/zipball/abc",
                         "reference": "abc", "shasum": ""},
                "autoload": {"psr-4": {"Monolog\\": "src/Monolog"}},
            },
            {
                "version": "3.4.0",
                "dist": {"type": "zip", "url": "https://api.github.com/repos/Seldaek/monolog/zipball/def",
                         "reference": "def", "shasum": ""},
            },
            {
                "version": "3.0.0-RC1",
                "require": "__unset",
            },
        ],
    },
}


class TestExpandMinified:
    """Expansion of the composer/2.0 minified format."""

    def test_entries_inherit_from_previous(self):
        expanded = expand_minified_versions(MONOLOG_PAYLOAD["packages"]["monolog/monolog"])

        assert [e["version"] for e in expanded] == ["3.5.0", "3.4.0", "3.0.0-RC1"]
        assert expanded[1]["require"] == {"php": ">=8.1", "psr/log": "^2.0 || ^3.0"}
        assert expanded[1]["dist"]["reference"] == "def"
        assert "require" not in expanded[2]
        assert expanded[2]["dist"]["reference"] == "def"

    def test_first_entry_drops_unset_keys(self):
        expanded = expand_minified_versions([{"version": "1.0.0", "require": "__unset"}])
        assert expanded == [{"version": "1.0.0"}]


class TestPackagistClient:
    """Metadata fetching with a mocked HTTP session."""

    @patch('cadenza.ssl_config.requests.Session')
    def test_get_package(self, mock_session_class):
        """Package metadata is fetched from the p2 endpoint and expanded."""
        mock_session = Mock()
        mock_session.get.return_value = make_response(MONOLOG_PAYLOAD)
        mock_session_class.return_value = mock_session

        client = PackagistClient("https://repo.example.test/")
        info = client.get_package("Monolog/Monolog")

        url = mock_session.get.call_args[0][0]
        assert url == "https://repo.example.test/p2/monolog/monolog.json"
        assert info.name == "monolog/monolog"
        assert set(info.versions) == {"3.5.0", "3.4.0", "3.0.0-RC1"}
        assert info.latest_stable == "3.5.0"
        assert info.description.startswith("Sends your logs")
        assert info.versions["3.4.0"].require == {"php": ">=8.1", "psr/log": "^2.0 || ^3.0"}
        assert info.versions["3.0.0-RC1"].require == {}

    def test_metadata_is_cached(self):
        """A second lookup of the same name does not hit the network."""
        session = Mock()
        session.get.return_value = make_response(MONOLOG_PAYLOAD)
        client = PackagistClient(session=session)

        client.get_package("monolog/monolog")
        client.get_version("monolog/monolog", "3.5.0")

        assert session.get.call_count == 1

        client.clear_cache()
        client.get_package("monolog/monolog")
        assert session.get.call_count == 2

    def test_not_found_status(self):
        session = Mock()
        session.get.return_value = make_response(status_code=404)
        client = PackagistClient(session=session)

        with pytest.raises(PackageNotFoundError, match="status: 404"):
            client.get_package("ghost/pkg")

    def test_empty_version_list(self):
        session = Mock()
        session.get.return_value = make_response({"packages": {"ghost/pkg": []}})
        client = PackagistClient(session=session)

        with pytest.raises(PackageNotFoundError, match="no versions found"):
            client.get_package("ghost/pkg")

    def test_network_failure(self):
        session = Mock()
        session.get.side_effect = requests.ConnectionError("connection refused")
        client = PackagistClient(session=session)

        with pytest.raises(RegistryError, match="failed to fetch package ghost/pkg"):
            client.get_package("ghost/pkg")

    def test_malformed_json(self):
        response = make_response()
        response.json.side_effect = ValueError("Expecting value")
        session = Mock()
        session.get.return_value = response
        client = PackagistClient(session=session)

        with pytest.raises(RegistryError, match="failed to parse response"):
            client.get_package("acme/lib")

    def test_unknown_version(self):
        session = Mock()
        session.get.return_value = make_response(MONOLOG_PAYLOAD)
        client = PackagistClient(session=session)

        with pytest.raises(PackageNotFoundError, match="version 9.9.9 not found for package monolog/monolog"):
            client.get_version("monolog/monolog", "9.9.9")

    def test_search(self):
        session = Mock()
        session.get.return_value = make_response({"results": [
            {"name": "monolog/monolog", "description": "Logging", "downloads": 10, "favers": 2},
            {"name": "acme/log", "description": None},
        ]})
        session.get.return_value.raise_for_status = Mock()
        client = PackagistClient(session=session, search_url="https://packagist.example.test/search.json")

        results = client.search_packages("log")

        assert session.get.call_args[1]["params"] == {"q": "log"}
        assert [r.name for r in results] == ["monolog/monolog", "acme/log"]
        assert results[1].description == ""

    def test_close(self):
        session = Mock()
        with PackagistClient(session=session):
            pass
        session.close.assert_called_once()


class TestDownloadUrl:
    """Archive URL selection for a package version."""

    def _client(self, dist=None, source=None):
        entry = {"version": "1.0.0"}
        if dist is not None:
            entry["dist"] = dist
        if source is not None:
            entry["source"] = source
        session = Mock()
        session.get.return_value = make_response({"packages": {"acme/lib": [entry]}})
        return PackagistClient(session=session)

    def test_dist_url_wins(self):
        client = self._client(dist={"type": "zip", "url": "https://cdn.example.test/lib.zip"},
                              source={"type": "git", "url": "https://github.com/acme/lib.git", "reference": "abc"})
        assert client.download_url("acme/lib", "1.0.0") == "https://cdn.example.test/lib.zip"

    def test_github_source_becomes_archive(self):
        client = self._client(source={"type": "git", "url": "https://github.com/acme/lib.git", "reference": "abc"})
        assert client.download_url("acme/lib", "1.0.0") == "https://github.com/acme/lib/archive/abc.zip"

    def test_gitlab_source_becomes_archive(self):
        client = self._client(source={"type": "git", "url": "https://gitlab.com/acme/lib.git", "reference": "abc"})
        assert client.download_url("acme/lib", "1.0.0") == "https://gitlab.com/acme/lib/-/archive/abc/archive.zip"

    def test_no_location(self):
        client = self._client()
        with pytest.raises(PackageNotFoundError, match="no download URL found for acme/lib@1.0.0"):
            client.download_url("acme/lib", "1.0.0")


def test_normalize_package_name():
    assert normalize_package_name("  Acme/Lib ") == "acme/lib"
