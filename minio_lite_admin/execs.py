import asyncio
import os
import re
import time
from typing import Any, Dict, Optional, Sequence

from prometheus_client import Counter, Histogram

ANSI_ESCAPE = re.compile(r"\x1B\[[0-?]*[ -/]*[@-~]")

# Flags whose following argument must never reach logs or metrics labels
SECRET_FLAGS = frozenset({"--secret-key", "--password"})

# Concurrency guard for subprocess calls
_SUBPROC_SEM = asyncio.Semaphore(int(os.environ.get("MAX_SUBPROC_CONCURRENCY", "16")))

CLI_CALLS = Counter(
    "lite_admin_cli_calls_total",
    "Total upstream CLI calls",
    labelnames=("tool", "exit_code"),
)
CLI_LATENCY = Histogram(
    "lite_admin_cli_latency_seconds",
    "Upstream CLI call latency in seconds",
    labelnames=("tool",),
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60),
)


def configure_concurrency(limit: int) -> None:
    global _SUBPROC_SEM
    _SUBPROC_SEM = asyncio.Semaphore(max(1, limit))


def _strip_ansi(s: str) -> str:
    return ANSI_ESCAPE.sub("", s)


def _truncate(s: str, limit: int = 8000) -> str:
    if len(s) <= limit:
        return s
    head = s[: limit // 2]
    tail = s[-limit // 2 :]
    return f"{head}\n...<truncated {len(s) - limit} bytes>...\n{tail}"


def mask_command(cmd: Sequence[str]) -> str:
    """Join a command for logging with secret flag values replaced."""
    out = []
    secret_next = False
    for part in cmd:
        if secret_next:
            out.append("********")
            secret_next = False
            continue
        if part in SECRET_FLAGS:
            secret_next = True
        elif "=" in part and part.split("=", 1)[0] in SECRET_FLAGS:
            part = part.split("=", 1)[0] + "=********"
        out.append(part)
    return " ".join(out)


def _build_env(env: Optional[Dict[str, str]]) -> Dict[str, str]:
    strict_env = os.environ.get("SAFE_SUBPROCESS_ENV", "").lower() in ("1", "true", "yes")
    if strict_env:
        proc_env: Dict[str, str] = {}
        # Whitelist essential vars
        for key in ("PATH", "HOME", "LANG", "LC_ALL", "MC_CONFIG_DIR"):
            if key in os.environ:
                proc_env[key] = os.environ[key]
    else:
        proc_env = os.environ.copy()
    if env:
        proc_env.update(env)
    return proc_env


async def run_cli(
    cmd: Sequence[str],
    *,
    timeout: int = 60,
    env: Optional[Dict[str, str]] = None,
    retries: int = 0,
    backoff_seconds: float = 0.5,
) -> Dict[str, Any]:
    """Run a CLI with timeouts, bounded concurrency and optional retries.

    Returns dict with: command (masked), exit_code, stdout, stderr.
    Cancelling the awaiting task kills the child process.
    """
    proc_env = _build_env(env)
    tool = os.path.basename(cmd[0]) if cmd else "unknown"
    masked = mask_command(cmd)

    attempt = 0
    last_result: Dict[str, Any] = {
        "command": masked,
        "exit_code": 1,
        "stdout": "",
        "stderr": "not executed",
    }

    while True:
        attempt += 1
        start = time.perf_counter()
        try:
            async with _SUBPROC_SEM:
                proc = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    env=proc_env,
                )
                try:
                    stdout_b, stderr_b = await asyncio.wait_for(
                        proc.communicate(),
                        timeout=timeout,
                    )
                    exit_code = proc.returncode
                except asyncio.TimeoutError:
                    proc.kill()
                    await proc.wait()
                    stdout_b, stderr_b = b"", f"Command timed out after {timeout}s".encode()
                    exit_code = 124
                except asyncio.CancelledError:
                    proc.kill()
                    await proc.wait()
                    raise

            last_result = {
                "command": masked,
                "exit_code": exit_code,
                "stdout": _strip_ansi(stdout_b.decode(errors="replace")),
                "stderr": _truncate(_strip_ansi(stderr_b.decode(errors="replace"))),
            }
        except FileNotFoundError as e:
            last_result = {
                "command": masked,
                "exit_code": 127,
                "stdout": "",
                "stderr": f"Executable not found: {e}",
            }
        except OSError as e:
            last_result = {
                "command": masked,
                "exit_code": 126,
                "stdout": "",
                "stderr": f"Cannot execute: {e}",
            }
        finally:
            CLI_LATENCY.labels(tool=tool).observe(max(0.0, time.perf_counter() - start))
        CLI_CALLS.labels(tool=tool, exit_code=str(last_result.get("exit_code"))).inc()

        # Retry policy: retry on non-zero exit except for 124 (timeout) and 126/127 (cannot run)
        if last_result.get("exit_code") in (0, 124, 126, 127) or attempt > retries:
            last_result["attempts"] = attempt
            return last_result
        await asyncio.sleep(backoff_seconds * attempt)
