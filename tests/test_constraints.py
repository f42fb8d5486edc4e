"""Tests for version constraint matching and platform package detection."""

import pytest

from cadenza.constraints import (
    constraint_allows,
    find_latest_release,
    find_latest_stable,
    find_matching_version,
    normalize_constraint,
    normalize_version,
    parse_constraint,
    parse_version,
)
from cadenza.errors import ConstraintParseError, NoMatchingVersionError
from cadenza.platform import is_extension_requirement, is_platform_package, is_runtime_requirement


class TestNormalization:
    """Normalization of constraint and version strings."""

    def test_operator_spaces_are_removed(self):
        assert normalize_constraint(" ^1.9 || ^2.4 ") == "^1.9||^2.4"
        assert normalize_constraint(">= 1.0") == ">=1.0"

    def test_version_prefix_and_dev_suffix(self):
        assert normalize_version("v1.2.3") == "1.2.3"
        assert normalize_version("2.0.0-dev") == "2.0.0-alpha"
        assert normalize_version("1.0.0") == "1.0.0"

    def test_parse_version(self):
        assert str(parse_version("v1.2")) == "1.2.0"
        assert parse_version("dev-master") is None

    def test_empty_constraint_is_rejected(self):
        with pytest.raises(ConstraintParseError):
            parse_constraint("   ")


class TestConstraintAllows:
    """Constraint grammar coverage."""

    @pytest.mark.parametrize("constraint,version,expected", [
        ("^1.2", "1.9.0", True),
        ("^1.2", "2.0.0", False),
        ("~1.2.3", "1.2.9", True),
        ("~1.2.3", "1.3.0", False),
        (">=2.0", "3.1.0", True),
        ("1.0.*", "1.0.7", True),
        ("1.0.*", "1.1.0", False),
        ("^1.9 || ^2.4", "2.5.0", True),
        ("^1.9 || ^2.4", "2.0.0", False),
        (">=1.0,<2.0", "1.5.0", True),
        (">=1.0,<2.0", "2.0.0", False),
        ("*", "0.1.0", True),
    ])
    def test_constraint_forms(self, constraint, version, expected):
        assert constraint_allows(constraint, version) is expected

    def test_unparseable_version_is_not_allowed(self):
        assert constraint_allows("*", "dev-main") is False

    def test_malformed_constraint_raises(self):
        with pytest.raises(ConstraintParseError):
            constraint_allows("dev-main", "1.0.0")


class TestFindMatchingVersion:
    """Selection of the best version for a constraint."""

    def test_highest_match_wins(self):
        versions = ["1.0.0", "1.5.0", "2.0.0", "1.2.0"]
        assert find_matching_version(versions, "^1.0") == "1.5.0"

    def test_dev_versions_are_never_chosen(self):
        versions = ["1.0.0", "1.6.0-dev", "dev-master", "1.x-dev"]
        assert find_matching_version(versions, "^1.0") == "1.0.0"

    def test_version_string_is_returned_as_published(self):
        assert find_matching_version(["v1.0.0", "v1.1.0"], "^1.0") == "v1.1.0"

    def test_unparseable_constraint_uses_latest_stable(self):
        versions = ["1.0.0", "2.0.0", "dev-main"]
        assert find_matching_version(versions, "dev-main") == "2.0.0"

    def test_unparseable_constraint_without_versions(self):
        with pytest.raises(NoMatchingVersionError):
            find_matching_version([], "dev-main")

    def test_nothing_satisfies(self):
        with pytest.raises(NoMatchingVersionError, match=r"\^3.0"):
            find_matching_version(["1.0.0", "2.0.0"], "^3.0")


class TestLatestVersions:
    """Latest stable and latest release helpers."""

    def test_latest_stable(self):
        assert find_latest_stable(["1.0.0", "1.10.0", "1.9.0", "dev-main"]) == "1.10.0"

    def test_latest_stable_falls_back_to_any_version(self):
        assert find_latest_stable(["nightly"]) == "nightly"
        assert find_latest_stable([]) is None

    def test_latest_release_skips_prereleases(self):
        assert find_latest_release(["1.0.0", "2.0.0-beta1", "dev-main"]) == "1.0.0"

    def test_latest_release_with_only_prereleases(self):
        assert find_latest_release(["dev-main", "2.0.0-RC1"]) == "2.0.0-RC1"


class TestPlatformPackages:
    """Recognition of packages that are never downloaded."""

    @pytest.mark.parametrize("name", [
        "php", "php-64bit", "ext-json", "ext-mbstring", "lib-curl",
        "composer-plugin-api", "composer-runtime-api", "psr/log-implementation",
    ])
    def test_platform_names(self, name):
        assert is_platform_package(name)

    @pytest.mark.parametrize("name", [
        "monolog/monolog", "my-vendor/php-toolkit", "psr/log", "acme/ext-tools", "phpunit/phpunit",
    ])
    def test_regular_names(self, name):
        assert not is_platform_package(name)

    def test_runtime_and_extension_helpers(self):
        assert is_runtime_requirement("php")
        assert not is_runtime_requirement("php-64bit")
        assert is_extension_requirement("ext-intl")
        assert not is_extension_requirement("acme/ext-intl")
