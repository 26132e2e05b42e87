from flask_socketio import SocketIO

from apkrenamer.Lib.Renamer.Result import PipelineResult, ProgressEvent

_socketio: SocketIO = None

def init_socketio(sio: SocketIO):
    global _socketio
    _socketio = sio

def emit(event: str, data: dict, namespace: str = None):
    if _socketio:
        _socketio.emit(event, data, namespace=namespace)
        print(f"[SOCKET.IO] Emitted '{event}': {data}")
    else:
        print("[SOCKET.IO] Warning: socketio not initialized")

def emit_progress(event: ProgressEvent):
    emit('rename_progress', event.to_dict())

def emit_result(result: PipelineResult):
    emit('rename_completed', result.to_dict())
