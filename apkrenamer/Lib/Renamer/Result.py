from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class Stage(str, Enum):
    UNPACK = "unpack"
    REWRITE = "rewrite"
    REPACK = "repack"
    SIGN = "sign"


@dataclass(frozen=True)
class ProgressEvent:
    job_id: str
    stage: Stage
    percent: Optional[int]  # None while a stage is running with no measurable progress
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "stage": self.stage.value,
            "percent": self.percent,
            "message": self.message,
        }


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass(frozen=True)
class PipelineResult:
    """
    Terminal outcome of one pipeline run. A success carries the final archive
    path; a failure carries the failing stage, the error kind and a message.
    """
    job_id: str
    base_name: str
    success: bool
    artifact_path: Optional[str] = None
    package_name: Optional[str] = None
    new_package_name: Optional[str] = None
    stage: Optional[Stage] = None
    kind: Optional[str] = None
    message: str = ""

    @classmethod
    def done(cls, job_id: str, base_name: str, artifact_path: str,
             package_name: str, new_package_name: str) -> "PipelineResult":
        return cls(
            job_id=job_id,
            base_name=base_name,
            success=True,
            artifact_path=artifact_path,
            package_name=package_name,
            new_package_name=new_package_name,
            message="APK renamed and signed successfully",
        )

    @classmethod
    def failed(cls, job_id: str, base_name: str, stage: Stage, kind: str, message: str) -> "PipelineResult":
        return cls(
            job_id=job_id,
            base_name=base_name,
            success=False,
            stage=stage,
            kind=kind,
            message=message,
        )

    def to_dict(self) -> dict:
        result = {
            "job_id": self.job_id,
            "base_name": self.base_name,
            "status": "success" if self.success else "failed",
            "message": self.message,
        }
        if self.success:
            result.update({
                "artifact_path": self.artifact_path,
                "package_name": self.package_name,
                "new_package_name": self.new_package_name,
            })
        else:
            result.update({
                "stage": self.stage.value if self.stage else None,
                "kind": self.kind,
                "error": self.message,
            })
        return result
