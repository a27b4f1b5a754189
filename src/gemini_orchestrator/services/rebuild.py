"""Rebuild the orchestrator executable and replace the running process.

Building only writes a new executable to disk. Replacing the process image is
a separate step run by the caller once the terminal has been restored:
``exec_image`` never returns on success.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shlex
import shutil
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

from ..cli.events import BuildComplete, BuildError, ReplaceImage
from ..config import BuildConfig, RelaunchConfig

logger = logging.getLogger(__name__)

_MODULE_ARGS = ("-m", "gemini_orchestrator")

RESTORE_FLAG = "--restore"


class OrchestratorError(Exception):
    pass


class RelaunchError(OrchestratorError):
    """The relaunch pipeline could not be started; the session keeps running."""


class SelfReplaceError(OrchestratorError):
    """The rebuilt executable could not replace this process."""


@dataclass(frozen=True)
class LaunchTarget:
    """How to start this program again: ``path`` followed by ``prefix_args``."""

    path: str
    prefix_args: tuple[str, ...] = ()

    @property
    def rebuildable(self) -> bool:
        # Running as ``python -m``: there is no program file of our own to overwrite.
        return not self.prefix_args


def resolve_executable(argv0: str | None = None, configured: str = "") -> LaunchTarget:
    """Locate the running program, falling back to the interpreter when it has no executable."""
    if configured:
        return LaunchTarget(os.path.abspath(os.path.expanduser(configured)))

    if argv0 is None:
        argv0 = sys.argv[0] if sys.argv else ""
    if argv0:
        candidate = argv0 if os.sep in argv0 else shutil.which(argv0)
        if (
            candidate
            and not candidate.endswith(".py")
            and os.path.isfile(candidate)
            and os.access(candidate, os.X_OK)
        ):
            return LaunchTarget(os.path.abspath(candidate))

    logger.debug("No executable for argv[0]=%r; relaunching through %s", argv0, sys.executable)
    return LaunchTarget(sys.executable, _MODULE_ARGS)


def build_directory(executable: str) -> Path:
    """Directory holding the real executable, following one level of symlink."""
    path = executable
    if os.path.islink(executable):
        target = os.readlink(executable)
        if not os.path.isabs(target):
            target = os.path.join(os.path.dirname(executable), target)
        path = os.path.normpath(target)
    return Path(path).parent


def render_build_command(template: Sequence[str], *, source: str, output: str) -> list[str]:
    values = {"{python}": sys.executable, "{source}": source, "{output}": output}
    rendered: list[str] = []
    for part in template:
        for placeholder, value in values.items():
            part = part.replace(placeholder, value)
        rendered.append(part)
    return rendered


async def run_rebuild(target: LaunchTarget, build: BuildConfig) -> BuildComplete | BuildError:
    """Run the build tool so that it overwrites ``target.path``.

    Returns a ``BuildComplete`` or ``BuildError`` event; never raises for
    build failures.
    """
    if not target.rebuildable:
        return BuildError(f"no executable to rebuild (running under {target.path})")

    workdir = build_directory(target.path)
    argv = render_build_command(build.command, source=build.source, output=target.path)
    logger.info("Rebuilding %s in %s: %s", target.path, workdir, shlex.join(argv))

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(workdir),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as e:
        logger.warning("Build tool %s could not be started: %s", argv[0], e)
        return BuildError(f"failed to start {argv[0]}: {e}")

    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=build.timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.warning("Build timed out after %ds", build.timeout)
        return BuildError(f"timed out after {build.timeout}s")
    except asyncio.CancelledError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        raise

    output = stdout.decode("utf-8", errors="replace").strip()
    if proc.returncode != 0:
        logger.warning("Build exited with %s", proc.returncode)
        detail = f"exit {proc.returncode}"
        if output:
            detail += f"\nOutput: {output}"
        return BuildError(detail)

    logger.info("Build finished: %s", target.path)
    return BuildComplete()


def relaunch_with(
    command: str,
    target: LaunchTarget,
    relaunch: RelaunchConfig,
    argv: Sequence[str] = (),
) -> ReplaceImage:
    """Shell pipeline that clears the screen, runs ``command`` and execs this program again.

    The restarted program gets ``--restore`` so it reloads the saved session.
    """
    args = [arg for arg in argv if arg != RESTORE_FLAG]
    restart = shlex.join([target.path, *target.prefix_args, *args, RESTORE_FLAG])
    script = f"clear\nreset\n{command}\nclear\nexec {restart}\n"
    return ReplaceImage(path=relaunch.shell, argv=(relaunch.shell, "-c", script), fatal=False)


def self_replace(target: LaunchTarget, argv: Sequence[str], environ: Mapping[str, str]) -> ReplaceImage:
    """Replace this process with the rebuilt executable, keeping arguments and environment."""
    return ReplaceImage(
        path=target.path,
        argv=(target.path, *target.prefix_args, *argv),
        env=dict(environ),
        fatal=True,
    )


def exec_image(image: ReplaceImage) -> NoReturn:
    sys.stdout.flush()
    sys.stderr.flush()
    logger.info("Replacing process with %s", image.path)
    try:
        if image.env is None:
            os.execvp(image.path, list(image.argv))
        else:
            os.execvpe(image.path, list(image.argv), image.env)
    except OSError as e:
        logger.error("exec %s failed: %s", image.path, e)
        if image.fatal:
            raise SelfReplaceError(f"failed to replace process with {image.path}: {e}") from e
        raise RelaunchError(f"failed to start {image.path}: {e}") from e
    raise AssertionError("exec returned")  # pragma: no cover
