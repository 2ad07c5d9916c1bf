"""Flask Web 接口 - 疲劳驾驶检测系统"""

import datetime
import threading
import time

import cv2
from flask import Flask, Response, jsonify, request

from config import DEFAULTS, validate_config
from evaluators.drowsiness_pipeline import DrowsinessPipeline
from models.data_models import CycleStatus, Severity, neutral_affect
from models.errors import UpstreamModelFailure

app = Flask(__name__)


class WebDetectionSystem:
    """Web 版检测系统，后台线程按周期评估，提供实时数据、告警历史和系统日志。"""

    MAX_LOG_ENTRIES = 200

    def __init__(self, config=None, affect_provider=None, detector_factory=None):
        self.config = validate_config(dict(config or DEFAULTS))
        self.affect_provider = affect_provider or neutral_affect
        self._detector_factory = detector_factory
        self._cap = None
        self._thread = None
        self._running = False
        self._lock = threading.Lock()
        # 检测周期与流水线重建 / 重置互斥
        self._cycle_lock = threading.Lock()
        self._latest_frame = None
        self._latest_data = {
            "score": 0.0, "level": "alert", "status": CycleStatus.NO_FACE.value,
            "message": "", "metrics": None, "alert": None, "running": False,
        }
        self._alerts = []
        self._logs = []
        self._log_lock = threading.Lock()
        self._prev_status = None
        self.face_detector = None
        self.pipeline = DrowsinessPipeline.from_config(self.config)

    def _create_detector(self):
        if self._detector_factory is not None:
            return self._detector_factory()
        from detectors.face_detector import FaceDetector
        return FaceDetector()

    def start(self):
        """启动摄像头和处理线程。"""
        if self._running:
            return True
        try:
            self.face_detector = self._create_detector()
        except UpstreamModelFailure as e:
            result = self.pipeline.report_upstream_failure(e)
            self._publish(result)
            self._add_log("danger", result.message)
            return False
        self._cap = cv2.VideoCapture(self.config["camera_index"])
        if not self._cap.isOpened():
            self._add_log("danger", "无法打开摄像头")
            return False
        self._running = True
        self._add_log("info", "系统启动，摄像头已开启")
        policy_names = {"global": "全局冷却", "per_severity": "按等级冷却"}
        policy = self.config["cooldown_policy"]
        self._add_log("info", f"告警策略: {policy_names.get(policy, policy)}")
        self._thread = threading.Thread(target=self._process_loop, daemon=True)
        self._thread.start()
        return True

    def stop(self):
        """停止检测，丢弃历史缓冲并重置冷却状态。"""
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        with self._cycle_lock:
            if self._cap and self._cap.isOpened():
                self._cap.release()
            self._cap = None
            if self.face_detector is not None:
                self.face_detector.close()
                self.face_detector = None
            self.pipeline.reset()
        with self._lock:
            self._latest_data["running"] = False
        self._add_log("info", "系统已停止")

    def _process_loop(self):
        """后台处理循环：持续读取帧，每 evaluation_interval_ms 评估一次。"""
        interval = self.config["evaluation_interval_ms"] / 1000.0
        next_tick = time.monotonic()
        while self._running:
            if not self._cap or not self._cap.isOpened():
                break
            ret, frame = self._cap.read()
            if not ret:
                continue

            _, jpeg = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, 80])
            with self._lock:
                self._latest_frame = jpeg.tobytes()

            if time.monotonic() < next_tick:
                continue
            next_tick = time.monotonic() + interval
            self.run_cycle(frame)

    def run_cycle(self, frame, now=None):
        """对单帧执行一次检测周期并发布结果；检测器已关闭时返回 None。"""
        with self._cycle_lock:
            if self.face_detector is None:
                return None
            try:
                landmarks = self.face_detector.detect(frame)
            except UpstreamModelFailure as e:
                result = self.pipeline.report_upstream_failure(e, now=now)
            else:
                result = self.pipeline.process(landmarks, affect=self.affect_provider(), now=now)
            self._publish(result)
        return result

    def _publish(self, result):
        data = result.to_dict()
        data["running"] = self._running
        with self._lock:
            self._latest_data = data
            if result.alert is not None:
                self._alerts.insert(0, result.alert.to_dict())
                del self._alerts[self.config["max_alert_history"]:]
        self._check_state_changes(result)

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

    def _check_state_changes(self, result):
        """检测状态变化并记录日志。"""
        status = result.status
        if status != self._prev_status:
            if status == CycleStatus.NO_FACE:
                self._add_log("warning", "人脸丢失")
            elif status == CycleStatus.OK and self._prev_status in (None, CycleStatus.NO_FACE):
                self._add_log("info", "检测到人脸")
            elif status == CycleStatus.UPSTREAM_FAILURE:
                self._add_log("danger", result.message)
        self._prev_status = status

        if result.alert is not None:
            level = "danger" if result.alert.severity in (Severity.HIGH, Severity.CRITICAL) else "warning"
            self._add_log(level, f"[{result.alert.severity.value}] {result.alert.message}")

    def get_logs(self, since=0):
        """获取日志，since 为起始索引。"""
        with self._log_lock:
            return self._logs[since:], len(self._logs)

    def get_alerts(self):
        with self._lock:
            alerts = list(self._alerts)
        critical = sum(1 for a in alerts if a["severity"] == Severity.CRITICAL.value)
        return {"alerts": alerts, "total": len(alerts), "critical": critical}

    def clear_alerts(self):
        with self._lock:
            self._alerts = []

    def get_frame(self):
        with self._lock:
            return self._latest_frame

    def get_data(self):
        with self._lock:
            return dict(self._latest_data)

    def update_config(self, updates):
        """动态更新配置，流水线以冷启动状态重建。"""
        config = dict(self.config)
        for key in DEFAULTS:
            if key in updates and updates[key] is not None:
                config[key] = updates[key]
        validate_config(config)
        with self._cycle_lock:
            self.config = config
            self.pipeline = DrowsinessPipeline.from_config(config)
        self._add_log("info", "配置已更新，评分状态已重置")


# 全局检测系统实例
system = WebDetectionSystem()


# ---- Flask 路由 ----

@app.route("/api/start", methods=["POST"])
def api_start():
    ok = system.start()
    return jsonify({"success": ok, "message": "检测已启动" if ok else "启动失败"})


@app.route("/api/stop", methods=["POST"])
def api_stop():
    system.stop()
    return jsonify({"success": True, "message": "检测已停止"})


@app.route("/api/data")
def api_data():
    return jsonify(system.get_data())


@app.route("/api/alerts")
def api_alerts():
    return jsonify(system.get_alerts())


@app.route("/api/alerts/clear", methods=["POST"])
def api_alerts_clear():
    system.clear_alerts()
    return jsonify({"success": True, "message": "告警已清空"})


@app.route("/api/config", methods=["POST"])
def api_config():
    data = request.get_json(force=True)
    if not isinstance(data, dict):
        return jsonify({"success": False, "message": "配置内容应为对象"}), 400
    try:
        system.update_config(data)
    except ValueError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    return jsonify({"success": True, "message": "配置已更新"})


@app.route("/api/logs")
def api_logs():
    since = request.args.get("since", 0, type=int)
    logs, total = system.get_logs(since)
    return jsonify({"logs": logs, "total": total})


@app.route("/video_feed")
def video_feed():
    def generate():
        while True:
            frame = system.get_frame()
            if frame is not None:
                yield (b"--frame\r\nContent-Type: image/jpeg\r\n\r\n" + frame + b"\r\n")
            time.sleep(0.03)
    return Response(generate(), mimetype="multipart/x-mixed-replace; boundary=frame")


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=False, threaded=True)
