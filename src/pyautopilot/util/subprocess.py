from __future__ import annotations
import subprocess
from dataclasses import dataclass
from typing import Sequence, Optional

@dataclass
class CmdResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

def run_cmd(cmd: Sequence[str], cwd: Optional[str] = None, timeout: Optional[int] = 120) -> CmdResult:
    p = subprocess.run(
        list(cmd),
        cwd=cwd,
        text=True,
        capture_output=True,
        timeout=timeout,
        shell=False,
    )
    return CmdResult(p.returncode, p.stdout, p.stderr)

def run_cmd_bytes(cmd: Sequence[str], timeout: Optional[int] = 120) -> tuple[int, bytes, str]:
    """Like run_cmd but keeps stdout binary (screencap output)."""
    p = subprocess.run(list(cmd), capture_output=True, timeout=timeout, shell=False)
    return p.returncode, p.stdout, p.stderr.decode("utf-8", errors="replace")

def adb_base(adb: str = "adb", serial: str | None = None) -> list[str]:
    base = [adb]
    if serial:
        base += ["-s", serial]
    return base
