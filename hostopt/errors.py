"""Exception hierarchy shared by every provisioning layer."""

from typing import List, Optional


class ProvisionError(Exception):
    """Base class for all provisioning failures."""


class CommandError(ProvisionError):
    """An external command exited with a non-zero status."""

    def __init__(
        self,
        argv: List[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout or ""
        self.stderr = stderr or ""
        detail = self.stderr.strip() or self.stdout.strip()
        message = f"Command failed ({returncode}): {' '.join(self.argv)}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class PackageLockTimeout(ProvisionError):
    """The package manager lock was still held when the wait timed out."""


class DownloadError(ProvisionError):
    """A download could not be completed within the retry budget."""


class ChecksumMismatch(DownloadError):
    def __init__(self, path: str, expected: str, actual: str) -> None:
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for {path}: expected {expected}, got {actual}"
        )


class TemplateError(ProvisionError):
    """A template references a placeholder with no substitution."""


class ConfigError(ProvisionError):
    """Invalid provisioning configuration."""


class StepSkipped(ProvisionError):
    """Raised by a step action that found nothing to do on this host."""


class RunAborted(ProvisionError):
    """A failure that must halt the whole run."""

    def __init__(self, message: str, step: Optional[str] = None) -> None:
        self.step = step
        super().__init__(message)
