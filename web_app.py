"""Flask Web 接口 - 用眼健康监测系统"""

import logging
import threading
import time

import cv2
from flask import Flask, Response, jsonify, request

from advice.advice_provider import GeminiAdviceProvider
from alerts.voice_channel import EdgeSpeechEngine, VoiceChannel
from config import DEFAULTS
from detectors.dilation_estimator import estimate_brightness
from detectors.face_detector import FaceDetector
from monitoring.session import MonitoringSession

logger = logging.getLogger(__name__)

app = Flask(__name__)


class WebMonitorSystem:
    """Web 版监测系统，后台线程读取摄像头，提供 MJPEG 视频流和实时数据 API。"""

    def __init__(self, session=None, face_detector=None, capture_factory=cv2.VideoCapture):
        self.config = dict(DEFAULTS)
        self.session = session or MonitoringSession(
            config=self.config,
            voice=VoiceChannel(engine=EdgeSpeechEngine(), enabled=self.config["voice_enabled"]),
            advice_provider=GeminiAdviceProvider(),
        )
        self._face_detector = face_detector
        self._capture_factory = capture_factory
        self._cap = None
        self._running = False
        self._thread = None
        self._lock = threading.Lock()
        self._latest_frame = None

    @property
    def face_detector(self):
        if self._face_detector is None:
            self._face_detector = FaceDetector()
        return self._face_detector

    def start(self):
        """启动摄像头、处理线程和监测会话。"""
        if self._running:
            return True
        self._cap = self._capture_factory(self.session.config["camera_index"])
        if not self._cap.isOpened():
            # 摄像头不可用时不启动监测
            logger.error("无法打开摄像头")
            self._cap = None
            return False
        self._running = True
        self.session.start()
        self._thread = threading.Thread(target=self._process_loop, daemon=True)
        self._thread.start()
        return True

    def stop(self):
        """停止监测并释放摄像头。"""
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None
        self.session.stop()
        if self._cap is not None and self._cap.isOpened():
            self._cap.release()
        self._cap = None
        with self._lock:
            self._latest_frame = None

    def _process_loop(self):
        """后台处理循环。"""
        while self._running:
            if self._cap is None or not self._cap.isOpened():
                break
            ret, frame = self._cap.read()
            if not ret:
                continue

            landmarks = self.face_detector.detect(frame)
            self.session.process_frame(landmarks, estimate_brightness(frame))

            _, jpeg = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, 80])
            with self._lock:
                self._latest_frame = jpeg.tobytes()

    def get_frame(self):
        with self._lock:
            return self._latest_frame


# 全局监测系统实例
system = WebMonitorSystem()


# ---- Flask 路由 ----

@app.route("/api/start", methods=["POST"])
def api_start():
    ok = system.start()
    return jsonify({"success": ok, "message": "监测已开始" if ok else "无法打开摄像头"})


@app.route("/api/stop", methods=["POST"])
def api_stop():
    system.stop()
    return jsonify({"success": True, "message": "监测已停止"})


@app.route("/api/data")
def api_data():
    return jsonify(system.session.snapshot())


@app.route("/api/toasts")
def api_toasts():
    return jsonify({"toasts": [event.to_dict() for event in system.session.active_toasts()]})


@app.route("/api/calibrate", methods=["POST"])
def api_calibrate():
    data = request.get_json(silent=True) or {}
    result = system.session.calibrate(data.get("ipd_pixels"))
    return jsonify({
        "success": result.success,
        "message": result.message,
        "focal_length_px": result.focal_length_px,
    })


@app.route("/api/voice", methods=["POST"])
def api_voice():
    data = request.get_json(force=True)
    enabled = bool(data.get("enabled", True))
    system.session.set_voice_enabled(enabled)
    return jsonify({"success": True, "enabled": enabled})


@app.route("/api/config", methods=["POST"])
def api_config():
    data = request.get_json(force=True)
    system.session.update_config(data)
    return jsonify({"success": True, "message": "配置已更新"})


@app.route("/api/logs")
def api_logs():
    since = request.args.get("since", 0, type=int)
    logs, total = system.session.get_logs(since)
    return jsonify({"logs": logs, "total": total})


@app.route("/video_feed")
def video_feed():
    def generate():
        while True:
            frame = system.get_frame()
            if frame is not None:
                yield (b"--frame\r\nContent-Type: image/jpeg\r\n\r\n" + frame + b"\r\n")
            else:
                time.sleep(0.03)
    return Response(generate(), mimetype="multipart/x-mixed-replace; boundary=frame")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.run(host="0.0.0.0", port=5000, debug=False, threaded=True)
