"""Asset compression: external commands or built-in whitespace folding."""

import logging
import re
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Tuple

from sitebuilder.core.module_system import SiteBuildError

logger = logging.getLogger(__name__)

WHITESPACE_RE = re.compile(r"\s+")

# Exit status the shell uses when the command does not exist.
COMMAND_NOT_FOUND = 127


class CompressionError(SiteBuildError):
    """An external compressor failed and strict mode is on."""


@dataclass
class CommandResult:
    """Outcome of one external command run."""
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False


CommandRunner = Callable[[str, str, Optional[float]], CommandResult]


def run_command(command: str, text: str, timeout: Optional[float] = None) -> CommandResult:
    """Run a shell command with text on stdin and capture its output."""
    try:
        proc = subprocess.run(
            command,
            shell=True,
            input=text,
            capture_output=True,
            encoding="utf-8",
            errors="surrogateescape",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        stdout = e.stdout.decode("utf-8", "surrogateescape") if isinstance(e.stdout, bytes) else (e.stdout or "")
        return CommandResult(returncode=-1, stdout=stdout, timed_out=True)
    return CommandResult(returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)


class Compressor(ABC):
    """Turns combined JS or CSS into its compressed form."""

    @abstractmethod
    def compress(self, text: str) -> str:
        pass


class WhitespaceCompressor(Compressor):
    """Collapses every run of whitespace into a single space."""

    def compress(self, text: str) -> str:
        return WHITESPACE_RE.sub(" ", text)

    def __repr__(self):
        return "<WhitespaceCompressor>"


class CommandCompressor(Compressor):
    """
    Pipes text through an external command.

    The output is every line the command printed, right-stripped and joined
    without separators. A failed, missing or timed out command is logged and
    whatever it printed (usually nothing) is used; strict mode raises
    CompressionError instead.
    """

    def __init__(self, command: str, runner: CommandRunner = run_command,
                 timeout: Optional[float] = None, strict: bool = False):
        self.command = command
        self.runner = runner
        self.timeout = timeout
        self.strict = strict

    def compress(self, text: str) -> str:
        result = self.runner(self.command, text, self.timeout)

        problem = None
        if result.timed_out:
            problem = f"timed out after {self.timeout}s"
        elif result.returncode == COMMAND_NOT_FOUND:
            problem = "command not found"
        elif result.returncode != 0:
            problem = f"exited with status {result.returncode}"

        if problem:
            message = f"Compressor '{self.command}' {problem}"
            if result.stderr:
                message += f": {result.stderr.strip()}"
            if self.strict:
                raise CompressionError(message)
            logger.warning(message)

        return "".join(line.rstrip() for line in result.stdout.splitlines())

    def __repr__(self):
        return f"<CommandCompressor: {self.command}>"


def _is_set(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip() not in ("", "0")
    return bool(value)


def resolve_compressors(settings: Mapping[str, Any], timeout: Optional[float] = None,
                        strict: bool = False,
                        runner: CommandRunner = run_command) -> Tuple[Compressor, Compressor]:
    """
    Pick the JS and CSS compressors configured in settings.

    Args:
        settings: Site settings (js_compress / css_compress keys)
        timeout: Seconds before an external command is abandoned
        strict: Raise on external command failure instead of logging
        runner: Command runner used by external compressors

    Returns:
        (js_compressor, css_compressor)
    """
    def pick(key: str) -> Compressor:
        command = settings.get(key)
        if _is_set(command):
            return CommandCompressor(str(command).strip(), runner=runner, timeout=timeout, strict=strict)
        return WhitespaceCompressor()

    js_compressor, css_compressor = pick("js_compress"), pick("css_compress")
    logger.debug(f"Using {js_compressor!r} for JS and {css_compressor!r} for CSS")
    return js_compressor, css_compressor


@dataclass
class CompiledArtifact:
    """Compressed JS and CSS written for this build (None if not produced)."""
    js: Optional[str] = None
    css: Optional[str] = None
    js_path: Optional[Path] = None
    css_path: Optional[Path] = None


def escape_backslashes(js: str) -> str:
    return js.replace("\\", "\\\\")


def combine_includes(js: str, js_compressor: Compressor, css: str, css_compressor: Compressor,
                     js_path: Path, css_path: Path, js_lib_path: Path) -> CompiledArtifact:
    """
    Write the combined site.js and site.css files.

    CSS is written only if some module contributed any. JS likewise; its
    backslashes are doubled before compression and the third-party library
    is prepended uncompressed.

    Args:
        js: Concatenated module JS
        js_compressor: Compressor for JS
        css: Concatenated module CSS
        css_compressor: Compressor for CSS
        js_path: Output JS file
        css_path: Output CSS file
        js_lib_path: Third-party library prepended to the JS

    Returns:
        CompiledArtifact
    """
    artifact = CompiledArtifact()

    if css:
        artifact.css = css_compressor.compress(css)
        Path(css_path).write_text(artifact.css, encoding="utf-8", errors="surrogateescape")
        artifact.css_path = Path(css_path)
        logger.info(f"{Path(css_path).name} file created")

    if js:
        js_lib = Path(js_lib_path).read_text(encoding="utf-8", errors="surrogateescape")
        artifact.js = js_lib + js_compressor.compress(escape_backslashes(js))
        Path(js_path).write_text(artifact.js, encoding="utf-8", errors="surrogateescape")
        artifact.js_path = Path(js_path)
        logger.info(f"{Path(js_path).name} file created")

    return artifact
