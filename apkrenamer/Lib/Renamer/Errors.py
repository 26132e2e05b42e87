from typing import Optional


class RenamerError(Exception):
    """
    Base class for every failure the rename pipeline reports.
    `kind` is the name surfaced to callers in a failed PipelineResult.
    """

    @property
    def kind(self) -> str:
        return type(self).__name__


class ExternalToolFailure(RenamerError):
    def __init__(self, stage: str, exit_code: Optional[int], output: str = "", timed_out: bool = False):
        self.stage = stage
        self.exit_code = exit_code
        self.output = output
        self.timed_out = timed_out
        if timed_out:
            message = f"{stage} tool timed out and was killed"
        else:
            message = f"{stage} tool exited with code {exit_code}"
        tail = output.strip()[-2000:]
        if tail:
            message += f"\n{tail}"
        super().__init__(message)


class ManifestParseError(RenamerError):
    pass


class FileSystemError(RenamerError):
    pass


class ArchiveFormatError(RenamerError):
    pass


class AlreadyRenamedError(RenamerError):
    pass


class RunInProgressError(RenamerError):
    def __init__(self, base_name: str):
        self.base_name = base_name
        super().__init__(f"A rename run for '{base_name}' is already in progress")
