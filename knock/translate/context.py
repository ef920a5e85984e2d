"""Detection of the OS, shell and working directory embedded in prompts."""
from __future__ import annotations

import os
import platform
from dataclasses import dataclass
from pathlib import PurePath
from typing import Mapping, Optional

UNKNOWN_OS = "unknown os"
UNKNOWN_SHELL = "unknown shell"
UNKNOWN_DIRECTORY = "unknown directory"

_OS_NAMES = {
    "darwin": "macos",
    "linux": "linux",
    "windows": "windows",
}


@dataclass(frozen=True)
class ShellContext:
    """Snapshot of the environment a command will run in."""

    os: str
    shell: str
    cwd: str

    @classmethod
    def detect(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
    ) -> "ShellContext":
        """Inspect the running process; unknown values fall back to placeholders."""
        env = os.environ if environ is None else environ
        os_name = _detect_os()
        return cls(
            os=os_name,
            shell=_detect_shell(env, os_name),
            cwd=cwd if cwd is not None else _detect_cwd(),
        )

    def as_prompt_context(self) -> str:
        return (
            "<context>\n"
            f"os: {self.os}\n"
            f"shell: {self.shell}\n"
            f"cwd: {self.cwd}\n"
            "</context>"
        )


def _detect_os() -> str:
    system = platform.system().strip().lower()
    if not system:
        return UNKNOWN_OS
    return _OS_NAMES.get(system, system)


def _detect_shell(environ: Mapping[str, str], os_name: str) -> str:
    shell_path = (environ.get("SHELL") or "").strip()
    if shell_path:
        # $SHELL may be a Windows path under Git Bash or MSYS.
        name = PurePath(shell_path.replace("\\", "/")).name
        if name.lower().endswith(".exe"):
            name = name[:-4]
        if name:
            return name
    if os_name == "windows":
        return "powershell" if environ.get("PSModulePath") else "cmd"
    return UNKNOWN_SHELL


def _detect_cwd() -> str:
    try:
        return os.getcwd()
    except OSError:
        return UNKNOWN_DIRECTORY
