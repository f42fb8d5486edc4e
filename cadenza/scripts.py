"""Execution of manifest ``scripts`` (post-install-cmd, custom scripts, ...)."""

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from .config import Constants
from .errors import ScriptError, ScriptLoopError
from .models import Manifest

logger = logging.getLogger(__name__)

SCRIPT_REF_PREFIX = "@"
PHP_SHORTCUT = "@php"


@dataclass
class SingleCommand:
    """A script defined as one command string."""

    command: str


@dataclass
class CommandList:
    """A script defined as a list of commands, run in order."""

    commands: List[str] = field(default_factory=list)


Script = Union[SingleCommand, CommandList]


def parse_script(value) -> Optional[Script]:
    """Turn a raw ``scripts`` entry into a SingleCommand or CommandList.

    Returns None for values that are neither a string nor a list.
    """
    if isinstance(value, str):
        return SingleCommand(value)
    if isinstance(value, list):
        commands = []
        for item in value:
            if isinstance(item, str):
                commands.append(item)
            else:
                logger.warning(f"Ignoring non-string script command: {item!r}")
        return CommandList(commands)
    return None


class ScriptRunner:
    """Runs the scripts a manifest binds to an event name."""

    def __init__(self, working_dir: Union[str, Path] = ".", vendor_dir: str = Constants.VENDOR_DIR):
        self.working_dir = Path(working_dir)
        self.vendor_dir = vendor_dir
        self._running: List[str] = []

    def run(self, event: str, manifest: Manifest) -> bool:
        """
        Run the script registered for ``event``.

        Returns:
            False when the manifest defines no such script

        Raises:
            ScriptError: If a single-command script fails or scripts reference
                each other in a loop
        """
        script = parse_script(manifest.scripts.get(event)) if manifest.scripts else None
        if script is None:
            logger.debug(f"No script registered for {event}")
            return False

        if event in self._running:
            chain = " -> ".join(self._running + [event])
            raise ScriptLoopError(f"script reference loop: {chain}")

        print(f"Executing script: {event}")
        self._running.append(event)
        try:
            if isinstance(script, SingleCommand):
                self.execute_command(script.command, manifest)
            else:
                for command in script.commands:
                    try:
                        self.execute_command(command, manifest)
                    except ScriptLoopError:
                        raise
                    except ScriptError as e:
                        logger.warning(f"Script failed: {e}")
        finally:
            self._running.pop()

        return True

    def build_command(self, command: str) -> str:
        """Translate a script command into a shell command line.

        Raises:
            ScriptError: If a PHP class method is called before vendor/autoload.php exists
        """
        command = command.strip()

        if "::" in command and " " not in command:
            autoload_path = f"{self.vendor_dir}/autoload.php"
            if not (self.working_dir / autoload_path).exists():
                raise ScriptError(f"cannot call PHP class {command} because {autoload_path} is missing")
            logger.debug(f"Detected PHP class call: {command}")
            php_code = f"require '{autoload_path}'; {command}();"
            return f"php -r {shlex.quote(php_code)}"

        if command == PHP_SHORTCUT:
            return "php"
        if command.startswith(PHP_SHORTCUT + " "):
            return "php " + command[len(PHP_SHORTCUT) + 1:]

        return command

    def execute_command(self, command: str, manifest: Manifest) -> None:
        """Run one script command; ``@name`` runs another script instead.

        Raises:
            ScriptError: If the command exits with a non-zero status
        """
        command = command.strip()

        is_php_shortcut = command == PHP_SHORTCUT or command.startswith(PHP_SHORTCUT + " ")
        if command.startswith(SCRIPT_REF_PREFIX) and not is_php_shortcut:
            self.run(command[len(SCRIPT_REF_PREFIX):], manifest)
            return

        shell_command = self.build_command(command)
        logger.info(f"Running command: {shell_command}")

        env = self._environment()
        try:
            result = subprocess.run(["sh", "-c", shell_command], cwd=self.working_dir, env=env)
        except OSError as e:
            raise ScriptError(f"could not start '{command}': {e}") from e

        if result.returncode != 0:
            raise ScriptError(f"command '{command}' failed with exit code {result.returncode}")

    def _environment(self) -> dict:
        """Process environment with vendor/bin first on PATH."""
        vendor_bin = str((self.working_dir / self.vendor_dir / "bin").resolve())
        env = dict(os.environ)
        env["PATH"] = vendor_bin + os.pathsep + env.get("PATH", "")
        return env
