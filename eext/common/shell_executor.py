"""
Shell Executor Module - Runs external tools through a swappable backend

Three backends share one calling convention:
- OsExecutor runs the real process
- DryRunExecutor records what would run and renders an equivalent shell script
- MockedExecutor replays scripted responses and records calls for tests
"""

import os
import subprocess
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from eext.common.errors import CommandError

logger = logging.getLogger(__name__)


def shell_escape(args: Sequence[str]) -> str:
    """
    Render an argv list as a single shell-readable string.

    Tokens containing whitespace are wrapped in single quotes and embedded single
    quotes become \\'. Everything is joined with single spaces.
    """
    processed = []
    for arg in args:
        escaped = arg.replace("'", "\\'")
        if any(c.isspace() for c in arg):
            processed.append(f"'{escaped}'")
        else:
            processed.append(escaped)
    return " ".join(processed)


def _env_prefix(extra_env: Optional[Dict[str, str]]) -> str:
    """KEY='value' assignments ahead of the command, kept out of shell_escape"""
    if not extra_env:
        return ""
    return "".join(f"{key}='{value}' " for key, value in sorted(extra_env.items()))


class Executor:
    """Interface for running external commands"""

    def run(self, name: str, *args: str, extra_env: Optional[Dict[str, str]] = None) -> None:
        """Run a command in the current working directory, raising CommandError on failure"""
        self.run_in_dir("", name, *args, extra_env=extra_env)

    def run_in_dir(self, directory: str, name: str, *args: str,
                   extra_env: Optional[Dict[str, str]] = None) -> None:
        """Run a command in `directory` without changing the caller's working directory"""
        raise NotImplementedError

    def output(self, name: str, *args: str, extra_env: Optional[Dict[str, str]] = None) -> str:
        """Run a command and return its stdout; stderr is embedded in the raised error"""
        raise NotImplementedError


class OsExecutor(Executor):
    """Runs commands on the host via subprocess"""

    def __init__(self, suppress: bool = False, debug_mode: bool = False):
        self.suppress = suppress
        self.debug_mode = debug_mode

    def _env(self, extra_env: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        if not extra_env:
            return None
        env = os.environ.copy()
        env.update(extra_env)
        return env

    def run_in_dir(self, directory: str, name: str, *args: str,
                   extra_env: Optional[Dict[str, str]] = None) -> None:
        argv = [name, *args]
        if self.debug_mode:
            logger.debug(f"RUNNING COMMAND: {shell_escape(argv)} cwd={directory or '.'}")
        try:
            result = subprocess.run(
                argv,
                cwd=directory or None,
                stdout=subprocess.DEVNULL if self.suppress else None,
                env=self._env(extra_env),
                check=False,
            )
        except OSError as e:
            raise CommandError(shell_escape(argv), message=f"running `{shell_escape(argv)}` failed with '{e}'") from e
        if result.returncode != 0:
            raise CommandError(shell_escape(argv), result.returncode,
                               message=f"running `{shell_escape(argv)}` exited with exit-code {result.returncode}")

    def output(self, name: str, *args: str, extra_env: Optional[Dict[str, str]] = None) -> str:
        argv = [name, *args]
        if self.debug_mode:
            logger.debug(f"RUNNING COMMAND: {shell_escape(argv)}")
        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                env=self._env(extra_env),
                check=False,
            )
        except OSError as e:
            raise CommandError(shell_escape(argv), message=f"running `{shell_escape(argv)}` failed with '{e}'") from e
        if result.returncode != 0:
            raise CommandError(shell_escape(argv), result.returncode, result.stderr)
        return result.stdout


class DryRunExecutor(Executor):
    """Never runs anything; keeps a description and a shell script of every call"""

    PREAMBLE = "#!/usr/bin/env sh\n"

    def __init__(self):
        # human friendly description of each invocation
        self.invocations: List[str] = []
        # equivalent shell script lines
        self.shell_script: List[str] = []

    def run(self, name: str, *args: str, extra_env: Optional[Dict[str, str]] = None) -> None:
        escaped = _env_prefix(extra_env) + shell_escape([name, *args])
        message = f"Would execute: {escaped}"
        print(message, flush=True)
        self.invocations.append(message)
        self.shell_script.append(escaped)

    def run_in_dir(self, directory: str, name: str, *args: str,
                   extra_env: Optional[Dict[str, str]] = None) -> None:
        escaped = _env_prefix(extra_env) + shell_escape([name, *args])
        self.invocations.append(f"In the directory '{directory}', would execute: {escaped}")
        # `cd ''` would land in $HOME, so an empty dir stays where we are
        self.shell_script.append(f"(cd '{directory or '$PWD'}' && {escaped})")

    def output(self, name: str, *args: str, extra_env: Optional[Dict[str, str]] = None) -> str:
        self.run(name, *args, extra_env=extra_env)
        return ""

    def generate_shell_script(self) -> str:
        return "\n".join([self.PREAMBLE] + self.shell_script)

    def generate_description(self) -> str:
        return "\n".join(self.invocations)


@dataclass
class Response:
    """One scripted result for MockedExecutor"""
    return_code: int = 0
    output: str = ""
    error: Optional[Exception] = None


@dataclass
class RecordedCall:
    dir: str
    prog: str
    args: List[str]
    extra_env: Optional[Dict[str, str]] = field(default=None, compare=False)


class MockedExecutor(Executor):
    """
    Test double that yields pre-programmed responses in order.

    Running out of responses is a misuse of the double, so it raises
    RuntimeError rather than CommandError.
    """

    def __init__(self, responses: Optional[Sequence[Response]] = None):
        self.responses: List[Response] = list(responses or [])
        self.calls: List[RecordedCall] = []

    def _pop_response(self) -> Response:
        if not self.responses:
            raise RuntimeError("Misused MockedExecutor! No responses left to yield")
        return self.responses.pop(0)

    def _settle(self, call: RecordedCall) -> Response:
        self.calls.append(call)
        response = self._pop_response()
        if response.error is not None:
            raise response.error
        if response.return_code != 0:
            raise CommandError(shell_escape([call.prog, *call.args]), response.return_code, response.output)
        return response

    def run_in_dir(self, directory: str, name: str, *args: str,
                   extra_env: Optional[Dict[str, str]] = None) -> None:
        self._settle(RecordedCall(directory, name, list(args), extra_env))

    def output(self, name: str, *args: str, extra_env: Optional[Dict[str, str]] = None) -> str:
        return self._settle(RecordedCall("", name, list(args), extra_env)).output

    def has_call(self, call: RecordedCall) -> bool:
        return call in self.calls

    def has_exact_calls(self, calls: Sequence[RecordedCall]) -> bool:
        return list(calls) == self.calls
