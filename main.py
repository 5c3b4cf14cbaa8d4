"""用眼健康监测系统入口文件"""

import argparse
import logging
import sys

import cv2

from advice.advice_provider import GeminiAdviceProvider
from alerts.voice_channel import EdgeSpeechEngine, VoiceChannel
from config import load_config
from detectors.dilation_estimator import estimate_brightness
from detectors.face_detector import FaceDetector
from monitoring.session import MonitoringSession

logger = logging.getLogger(__name__)

WINDOW_NAME = "Eye Strain Monitor"


class MonitorApp:
    """摄像头采集主循环：逐帧检测关键点并交给监测会话处理"""

    def __init__(self, config_path=None, voice_enabled=None, preview=False):
        self.config = load_config(config_path)
        if voice_enabled is not None:
            self.config["voice_enabled"] = voice_enabled
        self.preview = preview
        self._cap = None

        self.face_detector = FaceDetector()
        voice = VoiceChannel(engine=EdgeSpeechEngine(), enabled=self.config["voice_enabled"])
        self.session = MonitoringSession(
            config=self.config,
            voice=voice,
            advice_provider=GeminiAdviceProvider(),
        )

    def run(self):
        """打开摄像头并启动监测循环。"""
        self._cap = cv2.VideoCapture(self.config["camera_index"])
        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config["frame_width"])
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config["frame_height"])

        if not self._cap.isOpened():
            logger.error("无法打开摄像头")
            sys.exit(1)

        self.session.start()
        try:
            self._main_loop()
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def _main_loop(self):
        last_advice = None
        while True:
            ret, frame = self._cap.read()
            if not ret:
                continue

            landmarks = self.face_detector.detect(frame)
            brightness = estimate_brightness(frame)
            for event in self.session.process_frame(landmarks, brightness):
                print(f"[{event.category.upper()}] {event.message}")

            advice = self.session.advice
            if advice != last_advice:
                print(f"建议: {advice}")
                last_advice = advice

            if self.preview:
                cv2.imshow(WINDOW_NAME, frame)
                # 按 q 退出
                if cv2.waitKey(1) & 0xFF == ord("q"):
                    break

    def stop(self):
        """结束会话，释放摄像头和人脸检测器。"""
        self.session.stop()
        if self._cap is not None and self._cap.isOpened():
            self._cap.release()
        if self.preview:
            cv2.destroyAllWindows()
        self.face_detector.close()


def main():
    parser = argparse.ArgumentParser(description="用眼健康监测系统")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON 配置文件路径",
    )
    parser.add_argument(
        "--no-voice",
        action="store_true",
        help="关闭语音提醒",
    )
    parser.add_argument(
        "--preview",
        action="store_true",
        help="显示摄像头预览窗口（按 q 退出）",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = MonitorApp(
        config_path=args.config,
        voice_enabled=False if args.no_voice else None,
        preview=args.preview,
    )
    app.run()


if __name__ == "__main__":
    main()
