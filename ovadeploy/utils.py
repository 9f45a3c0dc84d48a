"""Utility functions for ova-deployer."""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
import time
from pathlib import Path
from typing import List, Optional

try:
    import bcrypt  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("bcrypt is required but not installed") from exc

from ovadeploy.constants import _LOG_VERBOSE, PROGRESS_LINE_RE, TRUTHY
from ovadeploy.exceptions import DeployError

# Run log shared by log() and run_streaming(); set by open_run_log()
_RUN_LOG: Optional[Path] = None


def open_run_log(path: Optional[Path]) -> None:
    """Mirror every log() call and streamed subprocess line into ``path``."""
    global _RUN_LOG
    if path is None:
        _RUN_LOG = None
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    _RUN_LOG = path


def _append_run_log(level: str, message: str) -> None:
    if _RUN_LOG is None:
        return
    stamp = time.strftime("%Y-%m-%d %H:%M:%S")
    try:
        with open(_RUN_LOG, "a", encoding="utf-8") as f:
            f.write(f"{stamp} [{level}] {message}\n")
    except OSError:
        print(f"[WARN] Could not write run log {_RUN_LOG}", file=sys.stderr, flush=True)


def log(level: str, message: str) -> None:
    """Lightweight structured logging compatible with existing colour expectation."""
    _append_run_log(level, message)
    if level == "DEBUG" and not _LOG_VERBOSE:
        return
    colours = {
        "INFO": "\033[0;34m",
        "WARN": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "SUCCESS": "\033[0;32m",
        "DEBUG": "\033[0;90m",
    }
    colour = colours.get(level, "")
    reset = "\033[0m" if colour else ""
    print(f"{colour}[{level}]{reset} {message}", flush=True)


def strip_progress_lines(path: Path) -> int:
    """Drop transient progress lines from a persisted log. Returns the number removed."""
    if not path.exists():
        return 0
    lines = path.read_text(encoding="utf-8").splitlines(keepends=True)
    kept = [line for line in lines if not PROGRESS_LINE_RE.search(line.rstrip("\n"))]
    removed = len(lines) - len(kept)
    if removed:
        path.write_text("".join(kept), encoding="utf-8")
    return removed


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def get_env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.lower() in TRUTHY


def has_controlling_tty() -> bool:
    """Return True if both stdin and stdout are attached to a TTY."""
    for stream in (sys.stdin, sys.stdout):
        try:
            if not stream.isatty():
                return False
        except (AttributeError, ValueError):
            return False
    return True


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def purge_directory(path: Path) -> int:
    """Remove every entry below ``path`` but keep the directory itself."""
    if not path.exists():
        return 0
    removed = 0
    for entry in path.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        removed += 1
    return removed


def hash_password(password: str) -> str:
    """Generate a bcrypt hash for cloud-init."""
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())
    return hashed.decode("utf-8")


def record_output(*streams: Optional[str]) -> None:
    """Append captured subprocess output to the run log, one OUT line per non-blank line."""
    for stream in streams:
        for line in (stream or "").splitlines():
            if line.strip():
                _append_run_log("OUT", line)


def run(cmd: List[str], check: bool = True, display: Optional[List[str]] = None, **kwargs) -> subprocess.CompletedProcess:
    """Run command with logging."""
    log("DEBUG", f"Running: {' '.join(display or cmd)}")
    result = subprocess.run(cmd, check=check, text=True, **kwargs)
    return result


def run_streaming(cmd: List[str], display: Optional[List[str]] = None) -> int:
    """Run a command, echoing each output line to the console and the run log.

    ``display`` is what gets logged in place of ``cmd`` (e.g. with secrets masked).
    Returns the exit status; stderr is merged into stdout.
    """
    shown = " ".join(display or cmd)
    log("DEBUG", f"Running: {shown}")
    try:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
        )
    except FileNotFoundError as exc:
        raise DeployError(f"Command not found: {cmd[0]}") from exc

    assert proc.stdout is not None
    try:
        for line in proc.stdout:
            line = line.rstrip("\n")
            if not line.strip():
                continue
            print(line, flush=True)
            _append_run_log("OUT", line)
    except KeyboardInterrupt:
        proc.terminate()
        proc.wait()
        raise
    finally:
        proc.stdout.close()
    return proc.wait()
