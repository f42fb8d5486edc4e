"""Tests for composer.json reading, writing and validation."""

import json

import pytest

from cadenza.errors import ManifestError
from cadenza.manifest import (
    default_manifest,
    is_valid_constraint,
    is_valid_package_name,
    load_manifest,
    manifest_from_dict,
    manifest_to_dict,
    validate_manifest,
    write_manifest,
)
from cadenza.models import Manifest


class TestManifestIO:
    """Loading and writing composer.json."""

    def test_load(self, tmp_path):
        path = tmp_path / "composer.json"
        path.write_text(json.dumps({
            "name": "acme/app",
            "require": {"php": ">=8.1", "monolog/monolog": "^3.0"},
            "require-dev": {"phpunit/phpunit": "^10.0"},
            "autoload": {"psr-4": {"App\\": "src/"}},
            "scripts": {"test": "phpunit"},
            "prefer-stable": True,
        }))

        manifest = load_manifest(path)

        assert manifest.name == "acme/app"
        assert manifest.require == {"php": ">=8.1", "monolog/monolog": "^3.0"}
        assert manifest.require_dev == {"phpunit/phpunit": "^10.0"}
        assert manifest.autoload == {"psr-4": {"App\\": "src/"}}
        assert manifest.scripts == {"test": "phpunit"}
        assert manifest.prefer_stable is True
        assert manifest.all_dependencies() == {
            "php": ">=8.1", "monolog/monolog": "^3.0", "phpunit/phpunit": "^10.0",
        }

    def test_missing_file(self, tmp_path):
        with pytest.raises(ManifestError, match="failed to read"):
            load_manifest(tmp_path / "composer.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "composer.json"
        path.write_text("{not json")
        with pytest.raises(ManifestError, match="failed to parse"):
            load_manifest(path)

    def test_non_object_document(self):
        with pytest.raises(ManifestError):
            manifest_from_dict(["acme/app"])

    def test_unknown_keys_survive_rewrite(self, tmp_path):
        """Keys cadenza does not model keep their value and position."""
        path = tmp_path / "composer.json"
        path.write_text(json.dumps({
            "name": "acme/app",
            "authors": [{"name": "Jane Doe"}],
            "require": {"php": ">=8.1"},
        }))

        manifest = load_manifest(path)
        manifest.require["monolog/monolog"] = "^3.0"
        write_manifest(path, manifest)

        written = json.loads(path.read_text())
        assert list(written) == ["name", "authors", "require"]
        assert written["authors"] == [{"name": "Jane Doe"}]
        assert written["require"] == {"php": ">=8.1", "monolog/monolog": "^3.0"}
        assert path.read_text().endswith("}\n")
        assert '    "name": "acme/app"' in path.read_text()

    def test_emptied_fields_are_dropped(self):
        manifest = manifest_from_dict({"name": "acme/app", "require-dev": {"phpunit/phpunit": "^10.0"}})
        manifest.require_dev.clear()

        assert manifest_to_dict(manifest) == {"name": "acme/app"}

    def test_default_manifest(self):
        manifest = default_manifest()
        assert manifest.name == "vendor/project"
        assert manifest.require == {"php": "^8.1"}
        assert manifest.autoload == {"psr-4": {"App\\": "src/"}}
        assert validate_manifest(manifest).is_valid(strict=True)


class TestValidation:
    """Manifest validation rules."""

    @pytest.mark.parametrize("name,expected", [
        ("acme/app", True),
        ("acme", False),
        ("acme/app/extra", False),
        ("/app", False),
        ("acme/", False),
    ])
    def test_package_names(self, name, expected):
        assert is_valid_package_name(name) is expected

    @pytest.mark.parametrize("constraint", [
        "*", "1.0.0", "v1.2", "^1.2", "~1.2.3", ">=1.0", ">= 1.0 <2.0", ">=1.0,<2.0",
        "^1.9 || ^2.4", "1.0.*", "dev-main", "1.0.0 - 2.0.0", "^2.0@dev", "@dev", "2.0.0-beta1",
    ])
    def test_valid_constraints(self, constraint):
        assert is_valid_constraint(constraint)

    @pytest.mark.parametrize("constraint", ["", "   ", "latest", "^^1.0", "1.0 || foo"])
    def test_invalid_constraints(self, constraint):
        assert not is_valid_constraint(constraint)

    def test_missing_name_is_an_error(self):
        result = validate_manifest(Manifest(description="x", license="MIT", type="project"))
        assert result.errors == ["The 'name' property is required"]
        assert not result.is_valid()

    def test_bad_name(self):
        result = validate_manifest(Manifest(name="acme"))
        assert result.errors == [
            "The package name 'acme' is invalid. It should be in 'vendor/package' format."
        ]

    def test_recommended_fields_are_warnings(self):
        result = validate_manifest(Manifest(name="acme/app"))

        assert result.errors == []
        assert result.warnings == [
            "The 'description' property is recommended",
            "The 'license' property is recommended",
            "The 'type' property is recommended (e.g., 'library', 'project')",
        ]
        assert result.is_valid()
        assert not result.is_valid(strict=True)

    def test_constraint_errors(self):
        result = validate_manifest(Manifest(
            name="acme/app",
            require={"acme/lib": "latest"},
            require_dev={"acme/tool": "whatever"},
        ))

        assert "Invalid version constraint 'latest' for package 'acme/lib'" in result.errors
        assert "Invalid version constraint 'whatever' for package 'acme/tool' in require-dev" in result.errors

    def test_duplicate_requirement(self):
        result = validate_manifest(Manifest(
            name="acme/app",
            require={"acme/lib": "^1.0"},
            require_dev={"acme/lib": "^1.0"},
        ))
        assert result.errors == ["Package 'acme/lib' is listed in both 'require' and 'require-dev'"]

    def test_library_without_autoload(self):
        result = validate_manifest(Manifest(name="acme/lib", description="x", license="MIT", type="library"))
        assert result.warnings == ["A library should usually have an 'autoload' section"]

    def test_psr4_namespace_without_backslash(self):
        result = validate_manifest(Manifest(
            name="acme/lib", description="x", license="MIT", type="library",
            autoload={"psr-4": {"Acme": "src/"}},
        ))
        assert result.warnings == ["PSR-4 namespace 'Acme' should end with a backslash"]
