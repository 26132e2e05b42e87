import subprocess
import time
from dataclasses import dataclass
from typing import List, Optional

MISSING_EXECUTABLE_CODE = 127


@dataclass(frozen=True)
class ToolResult:
    command: List[str]
    exit_code: Optional[int]
    output: str
    duration: float
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.exit_code == 0


class ToolRunner:
    """
    Runs an external command to completion and reports what happened.
    Never raises for tool failures; callers decide what a bad exit means.
    """

    def __init__(self, timeout: Optional[float] = 3600):
        self.timeout = timeout

    def run(self, command, timeout: Optional[float] = None) -> ToolResult:
        command = [str(part) for part in command]
        limit = timeout if timeout is not None else self.timeout
        print(f"[RENAMER] Running: {' '.join(command)}")
        started = time.monotonic()
        try:
            result = subprocess.run(
                command,
                shell=False,       # never True; keeps cross-platform safe
                text=True,
                errors="replace",
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=limit
            )
        except subprocess.TimeoutExpired:
            # subprocess.run kills the child before re-raising
            duration = time.monotonic() - started
            print(f"[RENAMER] Timed out after {duration:.1f}s: {command[0]}")
            return ToolResult(command, None, "", duration, timed_out=True)
        except OSError as e:
            duration = time.monotonic() - started
            print(f"[RENAMER] Could not start {command[0]}: {e}")
            return ToolResult(command, MISSING_EXECUTABLE_CODE, str(e), duration)

        duration = time.monotonic() - started
        print(f"[RENAMER] Exit code {result.returncode} after {duration:.1f}s")
        return ToolResult(command, result.returncode, result.stdout + result.stderr, duration)
