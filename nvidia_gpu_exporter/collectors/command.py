"""nvidia-smi process execution helpers."""

from dataclasses import dataclass
import functools
import logging
import shlex
import subprocess
import threading
import time
from typing import Callable, List, Optional, Sequence


DEFAULT_NVIDIA_SMI_COMMAND = "nvidia-smi"
DEFAULT_COMMAND_TIMEOUT = 10.0

# Seconds between stop event checks while a command runs
STOP_POLL_INTERVAL = 0.1

# Exit code reported when the process could not be started or finished
UNKNOWN_EXIT_CODE = -1


@dataclass
class CommandResult:
    """Captured output of one nvidia-smi invocation."""

    command: List[str]
    exit_code: int
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    """Raised when nvidia-smi could not be run or its output is unusable."""

    def __init__(
        self,
        message: str,
        command: Sequence[str] = (),
        exit_code: int = UNKNOWN_EXIT_CODE,
        stdout: str = "",
        stderr: str = ""
    ):
        self.command = list(command)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"{message}: code: {exit_code} | command: {' '.join(self.command)} "
            f"| stdout: {stdout} | stderr: {stderr}"
        )


class CommandExitError(CommandError):
    """Raised when nvidia-smi ran but exited with a nonzero code."""


# Strategy used to execute a command line; tests swap it for a stub
CommandRunner = Callable[[List[str], Optional[float]], CommandResult]


def run_command(
    command: List[str],
    timeout: Optional[float] = DEFAULT_COMMAND_TIMEOUT,
    stop_event: Optional[threading.Event] = None
) -> CommandResult:
    """
    Execute a command and capture its output.

    Args:
        command: Command line as a list of arguments
        timeout: Seconds before the process is killed, None to wait forever
        stop_event: Once set, the running process is killed

    Returns:
        CommandResult: Exit code and decoded stdout/stderr

    Raises:
        CommandError: If the process cannot be started, times out or is cancelled
    """
    try:
        proc = subprocess.Popen(command, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except FileNotFoundError as e:
        raise CommandError(f"command not found: {e}", command=command) from e
    except PermissionError as e:
        raise CommandError(f"permission denied: {e}", command=command) from e
    except OSError as e:
        raise CommandError(f"failed to start command: {e}", command=command) from e

    deadline = None if timeout is None else time.monotonic() + timeout

    while True:
        wait = STOP_POLL_INTERVAL if stop_event is not None else None
        if deadline is not None:
            remaining = max(deadline - time.monotonic(), 0)
            wait = remaining if wait is None else min(wait, remaining)

        try:
            stdout, stderr = proc.communicate(timeout=wait)
            break
        except subprocess.TimeoutExpired:
            if deadline is not None and time.monotonic() >= deadline:
                reason = f"command timed out after {timeout}s"
            elif stop_event is not None and stop_event.is_set():
                reason = "command cancelled"
            else:
                continue

        proc.kill()
        stdout, stderr = proc.communicate()
        raise CommandError(reason, command=command, stdout=_decode(stdout), stderr=_decode(stderr))

    return CommandResult(
        command=list(command),
        exit_code=proc.returncode,
        stdout=_decode(stdout),
        stderr=_decode(stderr)
    )


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


class NvidiaSmi:
    """Builds and runs nvidia-smi command lines through a runner strategy."""

    def __init__(
        self,
        command: str = DEFAULT_NVIDIA_SMI_COMMAND,
        runner: Optional[CommandRunner] = None,
        timeout: Optional[float] = DEFAULT_COMMAND_TIMEOUT,
        logger: Optional[logging.Logger] = None,
        stop_event: Optional[threading.Event] = None
    ):
        """
        Initialize nvidia-smi wrapper.

        Args:
            command: Path or command for nvidia-smi, may contain extra words
                (e.g. "sudo nvidia-smi")
            runner: Command execution strategy, defaults to run_command
            timeout: Per-invocation timeout in seconds
            logger: Logger instance
            stop_event: Kills a running nvidia-smi when set (default runner only)
        """
        self.base_command = shlex.split(command)
        if not self.base_command:
            raise ValueError("nvidia-smi command must not be empty")

        self.runner = runner or functools.partial(run_command, stop_event=stop_event)
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def query_command(self, query_fields: Sequence[str]) -> List[str]:
        return self.base_command + [f"--query-gpu={','.join(query_fields)}", "--format=csv"]

    def help_command(self) -> List[str]:
        return self.base_command + ["--help-query-gpu"]

    def run(self, command: List[str]) -> CommandResult:
        """
        Run a command line and require a zero exit code.

        Raises:
            CommandError: If the process cannot be run
            CommandExitError: If the process exits nonzero
        """
        self.logger.debug(f"Executing command: {' '.join(command)}")

        result = self.runner(command, self.timeout)

        if result.exit_code != 0:
            raise CommandExitError(
                "command failed",
                command=command,
                exit_code=result.exit_code,
                stdout=result.stdout,
                stderr=result.stderr
            )

        self.logger.debug(f"Command completed successfully ({len(result.stdout)} bytes)")
        return result

    def query(self, query_fields: Sequence[str]) -> CommandResult:
        return self.run(self.query_command(query_fields))

    def help_query_gpu(self) -> CommandResult:
        return self.run(self.help_command())
