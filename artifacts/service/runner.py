"""
External process runner.

Runs an executable with an argument vector (never through a shell), bounded
by a timeout and by a cap on how much output is buffered per stream.
"""

import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300
DEFAULT_MAX_BUFFER = 10 * 1024 * 1024

# How often the wait loop checks the deadline and the buffer flags
POLL_INTERVAL = 0.1
READ_CHUNK_SIZE = 8192


@dataclass
class ProcessResult:
    """Outcome of a process that ran to completion with exit code 0"""

    args: List[str]
    returncode: int
    stdout: str
    stderr: str
    duration: float


class ProcessError(Exception):
    """Base class for process runner failures"""

    def __init__(self, message, args=None, stdout='', stderr=''):
        super().__init__(message)
        self.command = args or []
        self.stdout = stdout
        self.stderr = stderr


class ProcessTimeout(ProcessError):
    def __init__(self, timeout, **kwargs):
        super().__init__(f'Process timed out after {timeout} seconds', **kwargs)
        self.timeout = timeout


class ProcessBufferExceeded(ProcessError):
    def __init__(self, max_buffer, **kwargs):
        super().__init__(f'Process output exceeded {max_buffer} bytes', **kwargs)
        self.max_buffer = max_buffer


class ProcessFailed(ProcessError):
    def __init__(self, returncode, **kwargs):
        if returncode is None:
            message = 'Process could not be started'
        else:
            message = f'Process failed with code {returncode}'
        stderr = kwargs.get('stderr')
        if stderr:
            message = f'{message}: {_last_line(stderr)}'
        super().__init__(message, **kwargs)
        self.returncode = returncode


def _last_line(text):
    lines = [line for line in text.strip().splitlines() if line.strip()]
    return lines[-1] if lines else ''


class _StreamReader(threading.Thread):
    """Drains one pipe into memory, stopping once the cap is crossed"""

    def __init__(self, stream, max_buffer):
        super().__init__(daemon=True)
        self.stream = stream
        self.max_buffer = max_buffer
        self.chunks = []
        self.size = 0
        self.overflowed = threading.Event()

    def run(self):
        try:
            for chunk in iter(lambda: self.stream.read(READ_CHUNK_SIZE), b''):
                if self.size + len(chunk) > self.max_buffer:
                    self.overflowed.set()
                    break
                self.chunks.append(chunk)
                self.size += len(chunk)
        except (OSError, ValueError):
            # Pipe closed underneath us after the process was killed
            pass

    def text(self):
        return b''.join(self.chunks).decode('utf-8', errors='replace')


def _kill(process):
    """Terminate the process and anything it spawned"""
    try:
        if os.name == 'posix':
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except (ProcessLookupError, PermissionError):
        pass
    process.wait()


def run_process(
    executable,
    args=None,
    cwd=None,
    timeout=DEFAULT_TIMEOUT,
    max_buffer=DEFAULT_MAX_BUFFER,
):
    """
    Run an external process to completion or timeout.

    Args:
        executable: Path or name of the executable
        args: Argument list (not including the executable)
        cwd: Working directory for the process
        timeout: Seconds before the process is killed
        max_buffer: Maximum bytes captured per output stream

    Returns:
        ProcessResult

    Raises:
        ProcessTimeout: The process ran past the timeout and was killed
        ProcessBufferExceeded: The process wrote more than max_buffer bytes
        ProcessFailed: The process exited nonzero or could not be started
    """
    cmd = [str(executable)] + [str(a) for a in (args or [])]
    logger.debug('Running: %s', ' '.join(cmd))

    started = time.monotonic()
    try:
        process = subprocess.Popen(
            cmd,
            cwd=str(cwd) if cwd else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=(os.name == 'posix'),
        )
    except OSError as e:
        logger.warning('Could not start %s: %s', executable, e)
        raise ProcessFailed(None, args=cmd, stderr=str(e)) from e

    stdout_reader = _StreamReader(process.stdout, max_buffer)
    stderr_reader = _StreamReader(process.stderr, max_buffer)
    stdout_reader.start()
    stderr_reader.start()

    deadline = started + timeout
    failure = None
    while True:
        try:
            process.wait(timeout=POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            pass

        if stdout_reader.overflowed.is_set() or stderr_reader.overflowed.is_set():
            failure = 'buffer'
            _kill(process)
            break
        if time.monotonic() >= deadline:
            failure = 'timeout'
            _kill(process)
            break

    # Readers end on EOF; a grandchild still holding the pipe must not hang us
    stdout_reader.join(timeout=5)
    stderr_reader.join(timeout=5)
    process.stdout.close()
    process.stderr.close()

    duration = time.monotonic() - started
    stdout = stdout_reader.text()
    stderr = stderr_reader.text()
    captured = {'args': cmd, 'stdout': stdout, 'stderr': stderr}

    if failure is None and (stdout_reader.overflowed.is_set() or stderr_reader.overflowed.is_set()):
        failure = 'buffer'

    if failure == 'timeout':
        logger.warning('%s timed out after %ss', executable, timeout)
        raise ProcessTimeout(timeout, **captured)
    if failure == 'buffer':
        logger.warning('%s exceeded output buffer of %s bytes', executable, max_buffer)
        raise ProcessBufferExceeded(max_buffer, **captured)

    if process.returncode != 0:
        logger.warning('%s exited with code %s', executable, process.returncode)
        raise ProcessFailed(process.returncode, **captured)

    logger.debug('%s finished in %.1fs', executable, duration)
    return ProcessResult(
        args=cmd,
        returncode=process.returncode,
        stdout=stdout,
        stderr=stderr,
        duration=duration,
    )

