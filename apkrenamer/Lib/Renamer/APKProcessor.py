import os
import shutil
from threading import Lock, Thread
from typing import Callable, Dict, Optional

import requests

from apkrenamer.Lib.Renamer.APKSigner import APKSigner
from apkrenamer.Lib.Renamer.APKTool import APKTool
from apkrenamer.Lib.Renamer.AppPath import ALIGN_BUILTIN, AppPath
from apkrenamer.Lib.Renamer.Errors import (
    ExternalToolFailure,
    FileSystemError,
    RenamerError,
    RunInProgressError,
)
from apkrenamer.Lib.Renamer.Job import Job
from apkrenamer.Lib.Renamer.PackageRenamer import PackageRenamer
from apkrenamer.Lib.Renamer.Result import PipelineResult, ProgressCallback, ProgressEvent, Stage
from apkrenamer.Lib.Renamer.ToolRunner import ToolResult, ToolRunner
from apkrenamer.Lib.Renamer.ZipAlign import ZipAlign


class APKProcessor:
    """
    Runs unpack -> rewrite -> repack -> sign for one APK at a time per base name.

    Layout for an APK called <base>.apk:
        tmp/<base>/source              decompiled tree
        output/<base>/<base>.apk       unsigned rebuild (removed after signing)
        output/<base>/fixed/           signer scratch dir (removed after signing)
        output/<base>/<new pkg>.apk    final artifact
        output/<base>/obb/             renamed OBB files
    """

    def __init__(
        self,
        paths: AppPath,
        apktool: APKTool,
        signer: APKSigner,
        renamer: Optional[PackageRenamer] = None,
        aligner: Optional[ZipAlign] = None,
        on_complete: Optional[Callable[[PipelineResult], None]] = None,
        callback_timeout: float = 15,
        max_finished_jobs: int = 500,
    ):
        self.paths = paths
        self.apktool = apktool
        self.signer = signer
        self.renamer = renamer or PackageRenamer(paths.segment)
        self.aligner = aligner or ZipAlign()
        self.on_complete = on_complete
        self.callback_timeout = callback_timeout
        self.max_finished_jobs = max_finished_jobs

        self._lock = Lock()
        self._in_flight: Dict[str, str] = {}
        self._status: Dict[str, dict] = {}

        self.paths.tmp_dir.mkdir(parents=True, exist_ok=True)
        self.paths.output_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_paths(cls, paths: AppPath, runner: Optional[ToolRunner] = None, **kwargs) -> "APKProcessor":
        runner = runner or ToolRunner(timeout=paths.tool_timeout)
        apktool = APKTool(paths.apktool_path, runner, java_path=paths.java_path)
        signer = APKSigner(
            paths.signer_path,
            runner,
            java_path=paths.java_path,
            keystore_path=paths.keystore_path,
            key_alias=paths.key_alias,
            keystore_pass=paths.keystore_pass,
            key_pass=paths.key_pass,
        )
        return cls(paths, apktool, signer, **kwargs)

    def rename(self, job: Job, progress: Optional[ProgressCallback] = None) -> PipelineResult:
        self._claim(job)
        try:
            return self._run(job, progress)
        finally:
            self._release(job)

    def start_background_rename(self, job: Job, progress: Optional[ProgressCallback] = None) -> str:
        self._claim(job)
        Thread(target=self.rename_and_notify, args=(job, progress), daemon=True).start()
        return job.job_id

    def rename_and_notify(self, job: Job, progress: Optional[ProgressCallback] = None) -> PipelineResult:
        # the caller has already claimed the base name
        try:
            result = self._run(job, progress)
        finally:
            self._release(job)
        self._notify(job, result)
        return result

    def get_status(self, job_id: str) -> Optional[dict]:
        with self._lock:
            status = self._status.get(job_id)
            return dict(status) if status else None

    def is_running(self, base_name: str) -> bool:
        with self._lock:
            return base_name in self._in_flight

    def _claim(self, job: Job):
        with self._lock:
            if job.base_name in self._in_flight:
                raise RunInProgressError(job.base_name)
            self._in_flight[job.base_name] = job.job_id
            self._status[job.job_id] = {
                "job_id": job.job_id,
                "base_name": job.base_name,
                "status": "queued",
            }

    def _release(self, job: Job):
        with self._lock:
            if self._in_flight.get(job.base_name) == job.job_id:
                del self._in_flight[job.base_name]

    def _forget_finished(self):
        # caller holds the lock; oldest finished jobs go first
        finished = [job_id for job_id, status in self._status.items()
                    if status.get("status") not in ("queued", "running")]
        for job_id in finished[:max(0, len(finished) - self.max_finished_jobs)]:
            del self._status[job_id]

    def _run(self, job: Job, progress: Optional[ProgressCallback]) -> PipelineResult:
        base_name = job.base_name
        source_dir = self.paths.workspace_for(base_name) / "source"
        output_dir = self.paths.output_for(base_name)
        intermediate = output_dir / f"{base_name}.apk"
        fixed_dir = output_dir / "fixed"
        builtin_align = self.paths.align_mode == ALIGN_BUILTIN

        stage = Stage.UNPACK
        try:
            self._begin(job, stage, progress, "Unpacking APK...")
            if not job.apk_path.is_file():
                raise FileSystemError(f"APK not found: {job.apk_path}")
            self._clean(base_name)
            self._check(stage, self.apktool.decompile(job.apk_path, source_dir))
            self._finish(job, stage, progress)

            stage = Stage.REWRITE
            self._begin(job, stage, progress, "Replacing Package Name...")
            package, new_package = self.renamer.rewrite(source_dir)
            self.renamer.copy_obb(job.obb_dir, output_dir / "obb", package, new_package)
            self._finish(job, stage, progress, f"{package} -> {new_package}")

            stage = Stage.REPACK
            self._begin(job, stage, progress, "Packing APK...")
            self._check(stage, self.apktool.recompile(source_dir, intermediate))
            if not intermediate.is_file():
                raise FileSystemError(f"Recompiler reported success but wrote no archive at {intermediate}")
            if builtin_align:
                self.aligner.align(intermediate, intermediate)
            self._finish(job, stage, progress)

            stage = Stage.SIGN
            self._begin(job, stage, progress, "Signing APK...")
            self._check(stage, self.signer.sign(intermediate, fixed_dir, skip_zipalign=builtin_align))
            signed = APKSigner.find_signed(fixed_dir, base_name)
            if signed is None:
                raise FileSystemError(f"Signer reported success but no signed APK was found in {fixed_dir}")
            final_apk = output_dir / f"{new_package}.apk"
            os.replace(signed, final_apk)
            intermediate.unlink()
            shutil.rmtree(fixed_dir)
            self._finish(job, stage, progress, f"APK fixed and signed: {final_apk}")

            result = PipelineResult.done(job.job_id, base_name, str(final_apk), package, new_package)
        except RenamerError as e:
            result = PipelineResult.failed(job.job_id, base_name, stage, e.kind, str(e))
        except OSError as e:
            result = PipelineResult.failed(job.job_id, base_name, stage, FileSystemError.__name__, str(e))
        except Exception as e:
            result = PipelineResult.failed(job.job_id, base_name, stage, "InternalError", f"{type(e).__name__}: {e}")

        if result.success:
            print(f"[JOB {job.job_id}] Finished: {result.artifact_path}")
        else:
            print(f"[JOB {job.job_id}] Failed at {stage.value} ({result.kind}): {result.message}")
        with self._lock:
            self._status[job.job_id] = result.to_dict()
            self._forget_finished()
        return result

    def _clean(self, base_name: str):
        for directory in (self.paths.workspace_for(base_name), self.paths.output_for(base_name)):
            if directory.exists():
                print(f"[RENAMER] Removing leftover {directory}")
                shutil.rmtree(directory)

    @staticmethod
    def _check(stage: Stage, result: ToolResult):
        if not result.ok:
            raise ExternalToolFailure(stage.value, result.exit_code, result.output, result.timed_out)

    def _begin(self, job: Job, stage: Stage, progress: Optional[ProgressCallback], message: str):
        print(f"[JOB {job.job_id}] {message}")
        self._set_status(job, {"status": "running", "stage": stage.value, "message": message})
        self._emit(progress, ProgressEvent(job.job_id, stage, None, message))

    def _finish(self, job: Job, stage: Stage, progress: Optional[ProgressCallback], message: str = "Done"):
        print(f"[JOB {job.job_id}] {stage.value}: {message}")
        self._emit(progress, ProgressEvent(job.job_id, stage, 100, message))

    @staticmethod
    def _emit(progress: Optional[ProgressCallback], event: ProgressEvent):
        if progress is None:
            return
        try:
            progress(event)
        except Exception as e:
            print(f"[JOB {event.job_id}] Progress listener failed: {e}")

    def _set_status(self, job: Job, status: dict):
        with self._lock:
            current = self._status.setdefault(job.job_id, {"job_id": job.job_id, "base_name": job.base_name})
            current.update(status)

    def _notify(self, job: Job, result: PipelineResult):
        if self.on_complete:
            try:
                self.on_complete(result)
            except Exception as e:
                print(f"[JOB {job.job_id}] Completion listener failed: {e}")

        if job.callback_url:
            try:
                requests.post(job.callback_url, json=result.to_dict(), timeout=self.callback_timeout)
                print(f"[JOB {job.job_id}] Callback sent successfully to {job.callback_url}")
            except requests.RequestException as e:
                print(f"[JOB {job.job_id}] Callback failed: {e}")
