"""人脸关键点检测模块，基于 MediaPipe FaceMesh"""

import logging
from typing import Optional

import cv2
import mediapipe as mp
import numpy as np

from models.data_models import LandmarkFrame, make_landmark_frame
from models.errors import UpstreamModelFailure

logger = logging.getLogger(__name__)


class FaceDetector:
    """使用 MediaPipe FaceMesh 检测人脸关键点，输出像素坐标的 LandmarkFrame"""

    def __init__(
        self,
        max_num_faces: int = 1,
        min_detection_confidence: float = 0.5,
        refine_landmarks: bool = True,
    ):
        """
        初始化 MediaPipe FaceMesh。

        Raises:
            UpstreamModelFailure: 模型无法初始化
        """
        try:
            self._face_mesh = mp.solutions.face_mesh.FaceMesh(
                max_num_faces=max_num_faces,
                min_detection_confidence=min_detection_confidence,
                min_tracking_confidence=0.5,
                refine_landmarks=refine_landmarks,
            )
        except (AttributeError, RuntimeError, OSError) as e:
            raise UpstreamModelFailure(f"FaceMesh 初始化失败: {e}") from e

    def detect(self, frame: np.ndarray) -> Optional[LandmarkFrame]:
        """
        检测单帧图像中的人脸关键点。

        Args:
            frame: BGR 格式的 OpenCV 图像帧

        Returns:
            LandmarkFrame（像素坐标 (x, y, z)）；未检测到人脸时返回 None

        Raises:
            UpstreamModelFailure: 推理过程出错
        """
        h, w = frame.shape[:2]

        # BGR -> RGB
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        rgb_frame.flags.writeable = False

        try:
            results = self._face_mesh.process(rgb_frame)
        except (RuntimeError, ValueError) as e:
            raise UpstreamModelFailure(f"FaceMesh 推理失败: {e}") from e

        if not results.multi_face_landmarks:
            return None

        face = results.multi_face_landmarks[0]

        # 将归一化坐标转换为像素坐标，z 与 x 同尺度
        return make_landmark_frame(
            (lm.x * w, lm.y * h, lm.z * w) for lm in face.landmark
        )

    def close(self):
        """释放 MediaPipe 资源"""
        self._face_mesh.close()
