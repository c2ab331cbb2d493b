"""
Error types shared by the rebuild pipeline
"""

from dataclasses import dataclass
from typing import Optional


class EextError(Exception):
    """Base class for every failure the tool reports to the user"""


class ConfigError(EextError):
    """Malformed manifest, bundle config, settings or template"""


class EnvironmentCheckError(ConfigError):
    """Aggregated result of the environment check"""

    def __init__(self, problems):
        self.problems = list(problems)
        super().__init__("Environment check failed:" + "".join(f"\n{p}" for p in self.problems))


class ResourceError(EextError):
    """Missing or unexpected files and directories"""


class VerificationError(EextError):
    """Signature, digest or revision verification failed"""


class CommandError(EextError):
    """An external tool exited unsuccessfully"""

    def __init__(self, command: str, returncode: Optional[int] = None, stderr: str = "",
                 message: Optional[str] = None):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr or ""
        if message is None:
            if returncode is None:
                message = f"running `{command}` failed"
            else:
                message = f"running `{command}` exited with exit-code {returncode}\nstderr:\n{self.stderr}"
        super().__init__(message)


@dataclass(frozen=True)
class PipelineIdentity:
    """Who is running: builder kind plus the package (and arch) it works on"""
    builder: str
    name: str

    def prefix(self, stage: str = "") -> str:
        if stage:
            return f"{self.builder}({self.name})-{stage}: "
        return f"{self.builder}({self.name}): "


class StageError(EextError):
    """A pipeline stage failed; wraps the underlying error with its context"""

    def __init__(self, identity: PipelineIdentity, stage: str, cause: Exception):
        self.identity = identity
        self.stage = stage
        self.cause = cause
        super().__init__(f"{identity.prefix(stage)}{cause}")
