"""Tests for manifest script execution."""

import os
from unittest.mock import Mock, patch

import pytest

from cadenza.errors import ScriptError, ScriptLoopError
from cadenza.models import Manifest
from cadenza.scripts import CommandList, ScriptRunner, SingleCommand, parse_script


def ok():
    return Mock(returncode=0)


def failed():
    return Mock(returncode=2)


def shell_commands(mock_run):
    return [c[0][0][2] for c in mock_run.call_args_list]


class TestParseScript:
    """Raw scripts entries."""

    def test_string(self):
        assert parse_script("phpunit") == SingleCommand("phpunit")

    def test_list_skips_non_strings(self):
        assert parse_script(["a", 3, "b"]) == CommandList(["a", "b"])

    def test_other_values(self):
        assert parse_script(None) is None
        assert parse_script({"cmd": "x"}) is None


class TestScriptRunner:
    """Running scripts through the shell."""

    @patch('cadenza.scripts.subprocess.run')
    def test_single_command(self, mock_run, tmp_path, capsys):
        mock_run.return_value = ok()
        manifest = Manifest(scripts={"test": "phpunit --colors"})

        assert ScriptRunner(tmp_path).run("test", manifest)

        args, kwargs = mock_run.call_args
        assert args[0] == ["sh", "-c", "phpunit --colors"]
        assert kwargs["cwd"] == tmp_path
        assert "Executing script: test" in capsys.readouterr().out

    @patch('cadenza.scripts.subprocess.run')
    def test_vendor_bin_is_on_path(self, mock_run, tmp_path):
        mock_run.return_value = ok()
        ScriptRunner(tmp_path, vendor_dir="vendor").run("test", Manifest(scripts={"test": "phpunit"}))

        env = mock_run.call_args[1]["env"]
        assert env["PATH"].split(os.pathsep)[0] == str((tmp_path / "vendor" / "bin").resolve())

    @patch('cadenza.scripts.subprocess.run')
    def test_undefined_script(self, mock_run, tmp_path):
        assert not ScriptRunner(tmp_path).run("post-install-cmd", Manifest())
        mock_run.assert_not_called()

    @patch('cadenza.scripts.subprocess.run')
    def test_single_command_failure_raises(self, mock_run, tmp_path):
        mock_run.return_value = failed()
        with pytest.raises(ScriptError, match="failed with exit code 2"):
            ScriptRunner(tmp_path).run("test", Manifest(scripts={"test": "false"}))

    @patch('cadenza.scripts.subprocess.run')
    def test_list_continues_after_failure(self, mock_run, tmp_path):
        mock_run.side_effect = [failed(), ok()]
        manifest = Manifest(scripts={"check": ["lint", "phpunit"]})

        assert ScriptRunner(tmp_path).run("check", manifest)
        assert shell_commands(mock_run) == ["lint", "phpunit"]

    @patch('cadenza.scripts.subprocess.run')
    def test_script_references(self, mock_run, tmp_path):
        mock_run.return_value = ok()
        manifest = Manifest(scripts={
            "post-install-cmd": ["@lint", "@php bin/setup.php"],
            "lint": "phpcs src",
        })

        ScriptRunner(tmp_path).run("post-install-cmd", manifest)

        assert shell_commands(mock_run) == ["phpcs src", "php bin/setup.php"]

    @patch('cadenza.scripts.subprocess.run')
    def test_reference_loop(self, mock_run, tmp_path):
        manifest = Manifest(scripts={"a": ["@b"], "b": "@a"})

        with pytest.raises(ScriptLoopError, match="a -> b -> a"):
            ScriptRunner(tmp_path).run("a", manifest)
        mock_run.assert_not_called()

    @patch('cadenza.scripts.subprocess.run')
    def test_command_that_cannot_start(self, mock_run, tmp_path):
        mock_run.side_effect = OSError("no shell")
        with pytest.raises(ScriptError, match="could not start"):
            ScriptRunner(tmp_path).run("test", Manifest(scripts={"test": "phpunit"}))


class TestBuildCommand:
    """Translation of script commands into shell command lines."""

    def test_plain_command(self, tmp_path):
        assert ScriptRunner(tmp_path).build_command("  echo hi ") == "echo hi"

    def test_php_shortcut(self, tmp_path):
        runner = ScriptRunner(tmp_path)
        assert runner.build_command("@php") == "php"
        assert runner.build_command("@php artisan migrate") == "php artisan migrate"

    def test_phpunit_reference_is_not_the_php_shortcut(self, tmp_path):
        assert ScriptRunner(tmp_path).build_command("@phpunit") == "@phpunit"

    def test_class_call_requires_autoloader(self, tmp_path):
        with pytest.raises(ScriptError, match="vendor/autoload.php is missing"):
            ScriptRunner(tmp_path).build_command("App\\Installer::postInstall")

    def test_class_call(self, tmp_path):
        (tmp_path / "vendor").mkdir()
        (tmp_path / "vendor" / "autoload.php").write_text("<?php\n")

        command = ScriptRunner(tmp_path).build_command("App\\Installer::postInstall")

        assert command == "php -r 'require '\"'\"'vendor/autoload.php'\"'\"'; App\\Installer::postInstall();'"
