from flask import request, jsonify
import os
from pathlib import Path
from apkrenamer.Lib.Socket.emitter import emit, emit_progress
from apkrenamer.Lib.Renamer.Errors import ArchiveFormatError, RunInProgressError
from apkrenamer.Lib.Renamer.Job import Job
from apkrenamer.Lib.Renamer.ZipAlign import ZipAlign


class APKController:
    def __init__(self, processor):
        self.processor = processor

    def _authorized(self, data) -> bool:
        required_key = os.getenv("RENAMER_API_KEY")
        provided_key = data.get("api_key") or request.headers.get("X-API-Key")
        return not required_key or provided_key == required_key

    def rename_background(self):
        data = request.get_json(silent=True) or {}
        if not self._authorized(data):
            return jsonify({"status": "failed", "error": "Unauthorized"}), 401

        apk_path = data.get("apk_path")
        callback_url = data.get("callback_url")

        if not apk_path or not isinstance(apk_path, str):
            return jsonify({"status": "failed", "error": "apk_path is required"}), 400
        if not apk_path.lower().endswith(".apk"):
            return jsonify({"status": "failed", "error": "apk_path must point to an .apk file"}), 400
        if not os.path.isfile(apk_path):
            return jsonify({"status": "failed", "error": f"APK not found: {apk_path}"}), 400

        job = Job(apk_path=apk_path, callback_url=callback_url)
        try:
            job_id = self.processor.start_background_rename(job, progress=emit_progress)
        except RunInProgressError as e:
            return jsonify({"status": "failed", "error": str(e)}), 409

        response = {
            "status": "accepted",
            "job_id": job_id,
            "base_name": job.base_name,
            "message": "Rename started in background. Progress is reported over Socket.IO."
        }
        emit('rename_accepted', response)
        return jsonify(response), 202

    def job_status(self, job_id):
        status = self.processor.get_status(job_id)
        if status is None:
            return jsonify({"status": "failed", "error": "Unknown job"}), 404
        return jsonify(status), 200

    def align(self):
        data = request.get_json(silent=True) or {}
        if not self._authorized(data):
            return jsonify({"status": "failed", "error": "Unauthorized"}), 401

        input_path = data.get("input_path")
        output_path = data.get("output_path") or input_path
        alignment = data.get("alignment", 4)

        if not input_path or not isinstance(input_path, str):
            return jsonify({"status": "failed", "error": "input_path is required"}), 400
        if not isinstance(alignment, int) or isinstance(alignment, bool) or alignment < 1:
            return jsonify({"status": "failed", "error": "alignment must be a positive integer"}), 400

        aligner = ZipAlign(alignment)
        try:
            entries = aligner.align(Path(input_path), Path(output_path))
        except ArchiveFormatError as e:
            return jsonify({"status": "failed", "error": str(e)}), 422
        except OSError as e:
            return jsonify({"status": "failed", "error": f"Could not write {output_path}: {e}"}), 500

        return jsonify({
            "status": "success",
            "output_path": str(output_path),
            "entries": len(entries),
            "stored_entries": sum(1 for entry in entries if entry.is_stored),
        }), 200
