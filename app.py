import eventlet
eventlet.monkey_patch()
import os
import sys
from dotenv import load_dotenv
load_dotenv()

sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from flask import Flask
from apkrenamer.Controllers.APKController import APKController
from apkrenamer.Lib.Renamer.AppPath import AppPath
from apkrenamer.Lib.Renamer.APKProcessor import APKProcessor
from flask_socketio import SocketIO
from apkrenamer.Lib.Socket.emitter import init_socketio, emit_result

app = Flask(__name__)

socketio = SocketIO(app, cors_allowed_origins="*", async_mode="eventlet")
init_socketio(socketio)

# Config from env
paths = AppPath.from_env()
paths.ensure_dirs()

processor = APKProcessor.from_paths(
    paths,
    on_complete=emit_result,
    callback_timeout=float(os.getenv("RENAMER_CALLBACK_TIMEOUT", "15")),
    max_finished_jobs=int(os.getenv("RENAMER_MAX_FINISHED_JOBS", "500")),
)

apk_controller = APKController(processor)

@app.route("/", methods=["GET"])
def home():
    return "APK renamer - 1.0.0"

@app.route("/rename", methods=["POST"])
def rename():
    return apk_controller.rename_background()

@app.route("/jobs/<job_id>", methods=["GET"])
def job_status(job_id):
    return apk_controller.job_status(job_id)

@app.route("/align", methods=["POST"])
def align():
    return apk_controller.align()

if __name__ == "__main__":
    socketio.run(app, host=os.getenv("RENAMER_HOST", "0.0.0.0"), port=int(os.getenv("RENAMER_PORT", "8000")), debug=True)
