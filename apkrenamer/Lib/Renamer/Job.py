import uuid
from pathlib import Path
from typing import Optional


class Job:
    """
    One rename request: the source APK plus where to report the result.
    The APK itself is never modified by the pipeline.
    """
    def __init__(self, apk_path: str, callback_url: Optional[str] = None):
        self.job_id = str(uuid.uuid4())
        self.apk_path = Path(apk_path)
        self.callback_url = callback_url

    @property
    def base_name(self) -> str:
        return self.apk_path.stem

    @property
    def folder(self) -> Path:
        return self.apk_path.parent

    @property
    def obb_dir(self) -> Path:
        return self.folder / "obb"
