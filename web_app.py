"""Flask Web 接口 - 驾驶员困倦监测系统"""

import datetime
import threading
import time

import cv2
from flask import Flask, Response, jsonify, request

from main import DrowsinessMonitor
from models.data_models import AlertLevel

app = Flask(__name__)

_LEVEL_NAMES = {
    AlertLevel.NORMAL: "正常",
    AlertLevel.WARNING: "警告",
    AlertLevel.CRITICAL: "危险",
}


class WebMonitorSystem:
    """Web 版监测系统，支持 MJPEG 视频流推送、实时数据和事件日志 API。"""

    MAX_LOG_ENTRIES = 200

    def __init__(self, monitor=None, camera_index=0):
        self._camera_index = camera_index
        self._cap = None
        self._thread = None
        self._running = False
        self._lock = threading.Lock()
        self._latest_frame = None
        self._logs = []
        self._log_lock = threading.Lock()
        self._prev_state = None

        if monitor is None:
            monitor = DrowsinessMonitor(on_alert_actions=self._on_alert_actions)
        self.monitor = monitor
        self.monitor.dispatcher.subscribe(self._check_state_changes)

    def start(self):
        """启动摄像头和处理线程。"""
        if self._running:
            return True
        self._cap = cv2.VideoCapture(self._camera_index)
        if not self._cap.isOpened():
            self._add_log("danger", "无法打开摄像头")
            return False
        self._running = True
        self._add_log("info", "系统启动，摄像头已开启")
        self._thread = threading.Thread(target=self._process_loop, daemon=True)
        self._thread.start()
        return True

    def stop(self):
        """停止检测（警报设备保持可用，直到 shutdown）。"""
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
        if self._cap is not None and self._cap.isOpened():
            self._cap.release()
        self._cap = None
        self.monitor.reset()
        self._add_log("info", "系统已停止")

    def shutdown(self):
        self.stop()
        self.monitor.stop()

    def _process_loop(self):
        """后台处理循环。"""
        while self._running:
            if self._cap is None or not self._cap.isOpened():
                break
            ret, frame = self._cap.read()
            if not ret:
                continue

            self.monitor.process_frame(frame)

            _, jpeg = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, 80])
            with self._lock:
                self._latest_frame = jpeg.tobytes()

    def _add_log(self, level, message):
        """添加一条系统日志。level: info / warning / danger"""
        entry = {
            "time": datetime.datetime.now().strftime("%H:%M:%S"),
            "level": level,
            "message": message,
        }
        with self._log_lock:
            self._logs.append(entry)
            if len(self._logs) > self.MAX_LOG_ENTRIES:
                self._logs = self._logs[-self.MAX_LOG_ENTRIES:]

    def _check_state_changes(self, state):
        """比较前后两帧状态，记录人脸丢失/恢复和警报等级变化。"""
        prev = self._prev_state
        self._prev_state = state

        if prev is None:
            return

        if state.face_detected and not prev.face_detected:
            self._add_log("info", "检测到人脸")
        elif not state.face_detected and prev.face_detected:
            self._add_log("warning", "人脸丢失")

        if state.alert_level is not prev.alert_level:
            level_name = _LEVEL_NAMES[state.alert_level]
            if state.alert_level is AlertLevel.CRITICAL:
                self._add_log(
                    "danger",
                    f"⚠️ 困倦驾驶警告！连续闭眼 {state.consecutive_closed_frames} 帧",
                )
            elif state.alert_level is AlertLevel.WARNING:
                self._add_log("warning", f"进入{level_name}状态 (睁眼程度={state.eye_openness:.2f})")
            else:
                self._add_log("info", "困倦状态解除")

    def _on_alert_actions(self, level, actions):
        names = ", ".join(sorted(a.value for a in actions))
        self._add_log("danger" if level is AlertLevel.CRITICAL else "info", f"警报动作: {names}")

    def get_logs(self, since=0):
        """获取日志，since 为起始索引。"""
        with self._log_lock:
            return self._logs[since:], len(self._logs)

    def get_frame(self):
        with self._lock:
            return self._latest_frame

    def get_data(self):
        state = self.monitor.latest_state
        session = self.monitor.coordinator.session
        return {
            "face_detected": state.face_detected,
            "eye_openness": round(state.eye_openness, 4),
            "eyes_closed": state.eyes_closed,
            "consecutive_closed_frames": state.consecutive_closed_frames,
            "alert_level": state.alert_level.name,
            "status": _LEVEL_NAMES[state.alert_level],
            "is_drowsy": state.is_drowsy,
            "timestamp": state.timestamp_millis,
            "is_alerting": session.is_alerting,
            "alert_count": session.alert_count,
            "running": self._running,
        }


_system = None
_system_lock = threading.Lock()


def get_system():
    """首次访问时创建全局监测系统实例。"""
    global _system
    with _system_lock:
        if _system is None:
            _system = WebMonitorSystem()
        return _system


# ---- Flask 路由 ----

@app.route("/api/start", methods=["POST"])
def api_start():
    ok = get_system().start()
    return jsonify({"success": ok, "message": "摄像头启动成功" if ok else "无法打开摄像头"})


@app.route("/api/stop", methods=["POST"])
def api_stop():
    get_system().stop()
    return jsonify({"success": True, "message": "检测已停止"})


@app.route("/api/data")
def api_data():
    return jsonify(get_system().get_data())


def _json_object():
    """读取请求中的 JSON 对象，不是对象时返回 None。"""
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else None


@app.route("/api/config", methods=["POST"])
def api_config():
    data = _json_object()
    if data is None:
        return jsonify({"success": False, "message": "请求体必须是 JSON 对象"}), 400
    try:
        get_system().monitor.update_config(data)
    except (TypeError, ValueError) as e:
        return jsonify({"success": False, "message": f"配置无效: {e}"}), 400
    return jsonify({"success": True, "message": "配置已更新，闭眼计数已清零"})


@app.route("/api/logs")
def api_logs():
    since = request.args.get("since", 0, type=int)
    logs, total = get_system().get_logs(since)
    return jsonify({"logs": logs, "total": total})


@app.route("/api/sounds")
def api_sounds():
    monitor = get_system().monitor
    return jsonify({
        "sounds": monitor.sound_registry.names(),
        "selected": monitor.coordinator.alert_sound,
    })


@app.route("/api/sound", methods=["POST"])
def api_sound():
    system = get_system()
    data = _json_object()
    if data is None:
        return jsonify({"success": False, "message": "请求体必须是 JSON 对象"}), 400
    sound_id = data.get("sound", "")
    try:
        system.monitor.coordinator.set_alert_sound(sound_id)
    except KeyError:
        return jsonify({"success": False, "message": f"未注册的声音: {sound_id}"}), 404
    system._add_log("info", f"已选择警报声音: {sound_id}")
    return jsonify({"success": True, "sound": sound_id})


@app.route("/api/test_alert", methods=["POST"])
def api_test_alert():
    system = get_system()
    data = _json_object() or {}
    system.monitor.test_alert(duration_s=float(data.get("duration", 3.0)))
    system._add_log("info", "🧪 测试警报系统")
    return jsonify({"success": True, "message": "测试警报已触发"})


@app.route("/video_feed")
def video_feed():
    system = get_system()

    def generate():
        while True:
            frame = system.get_frame()
            if frame is not None:
                yield (b"--frame\r\nContent-Type: image/jpeg\r\n\r\n" + frame + b"\r\n")
            time.sleep(0.03)
    return Response(generate(), mimetype="multipart/x-mixed-replace; boundary=frame")


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=False, threaded=True)
