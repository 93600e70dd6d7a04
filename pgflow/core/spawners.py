"""
Spawn collaborators: turn (parent_dir, subdir, task, options) into a running
ProcessHandle.

- CommandSpawner: run an argv template inside parent_dir/subdir
- CargoSpawner: build a binary crate with cargo, then run the built executable
"""

from __future__ import annotations

import json
import logging
import os
import re
import shlex
import subprocess
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import BuildError
from .task import ProcessHandle, launch

logger = logging.getLogger(__name__)

OPTIONS_PLACEHOLDER = "{options}"
_PLACEHOLDER = re.compile(r"\{(parent_dir|subdir|task)\}")


class CommandSpawner:
    """Launch an argv template with ``cwd = parent_dir / subdir``.

    ``{parent_dir}``, ``{subdir}`` and ``{task}`` are substituted in every
    template item and any other braces are kept as written. An item that is
    exactly ``{options}`` expands to the task's options, one argv item each.
    """

    def __init__(self, command: Sequence[str], env: Optional[Dict[str, str]] = None):
        if not command:
            raise ValueError("command template must not be empty")
        self.command = list(command)
        self.env = dict(env or {})

    def build_argv(self, parent_dir: Path, subdir: str, task_id: str, options: Sequence[str]) -> List[str]:
        fields = {"parent_dir": str(parent_dir), "subdir": subdir, "task": task_id}
        argv: List[str] = []
        for item in self.command:
            if item == OPTIONS_PLACEHOLDER:
                argv.extend(options)
                continue
            argv.append(_PLACEHOLDER.sub(lambda m: fields[m.group(1)], item))
        return argv

    def __call__(self, parent_dir: Path, subdir: str, task_id: str, options: Sequence[str]) -> ProcessHandle:
        workdir = Path(parent_dir) / subdir
        if not workdir.is_dir():
            raise FileNotFoundError(f"task directory not found: {workdir}")
        argv = self.build_argv(Path(parent_dir), subdir, task_id, options)
        logger.info(f"Starting a process under {subdir}/: {' '.join(shlex.quote(a) for a in argv)}")
        return launch(argv, cwd=workdir, env=self.env)


class CargoSpawner:
    """Build binary crate ``task_id`` of ``parent_dir/subdir/Cargo.toml`` and run it.

    Options are passed to cargo as crate features. The build blocks; only the
    built binary runs as a group member.
    """

    def __init__(self, profile: str = "dev", cargo: Optional[str] = None, env: Optional[Dict[str, str]] = None):
        self.profile = profile
        self.cargo = cargo or os.environ.get("CARGO", "cargo")
        self.env = dict(env or {})

    def manifest_path(self, parent_dir: Path, subdir: str) -> Path:
        return Path(parent_dir) / subdir / "Cargo.toml"

    def build_command(self, manifest: Path, task_id: str, options: Sequence[str]) -> List[str]:
        cmd = [
            self.cargo, "build",
            "--manifest-path", str(manifest),
            "--bin", task_id,
            "--profile", self.profile,
            "--message-format=json",
        ]
        if options:
            cmd += ["--features", ",".join(options)]
        return cmd

    def build(self, parent_dir: Path, subdir: str, task_id: str, options: Sequence[str]) -> Path:
        manifest = self.manifest_path(parent_dir, subdir)
        if not manifest.exists():
            raise FileNotFoundError(f"manifest not found: {manifest}")
        cmd = self.build_command(manifest, task_id, options)
        logger.debug(f"cargo build: {' '.join(shlex.quote(c) for c in cmd)}")
        env = os.environ.copy()
        env.update(self.env)
        res = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            env=env,
        )
        label = f"{subdir}/{task_id}"
        if res.returncode != 0:
            stderr_txt = res.stderr.decode(errors="ignore").strip()
            raise BuildError(label, res.returncode, "\n".join(stderr_txt.splitlines()[-20:]))
        executable = find_executable(res.stdout.decode(errors="ignore").splitlines(), task_id)
        if executable is None:
            raise BuildError(label, res.returncode, f"no executable artifact named {task_id!r} in cargo output")
        return executable

    def __call__(self, parent_dir: Path, subdir: str, task_id: str, options: Sequence[str]) -> ProcessHandle:
        executable = self.build(parent_dir, subdir, task_id, options)
        logger.info(f"Starting a process under {subdir}/ binary crate {task_id}.")
        return launch([str(executable)], cwd=Path(parent_dir) / subdir, env=self.env)


def find_executable(messages: Iterable[str], bin_name: str) -> Optional[Path]:
    """Return the executable of binary target ``bin_name`` from cargo JSON messages."""
    found: Optional[Path] = None
    for line in messages:
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            msg = json.loads(line)
        except json.JSONDecodeError:
            continue
        if msg.get("reason") != "compiler-artifact":
            continue
        target = msg.get("target") or {}
        if target.get("name") != bin_name or "bin" not in (target.get("kind") or []):
            continue
        if msg.get("executable"):
            found = Path(msg["executable"])
    return found
