"""眼睛状态分析模块，由人脸关键点计算 EAR 并生成逐帧观测值"""

import math
from typing import List, Optional, Tuple

from models.data_models import EyeObservation, FaceLandmarks

# 眼睛关键点缺失时的"基本睁眼"默认值
DEFAULT_OPENNESS = 0.3


class EyeOpennessEstimator:
    """以双眼平均 EAR 作为睁眼程度，输出 EyeObservation"""

    def calculate_ear(self, eye_points: List[Tuple[float, float]]) -> float:
        """
        计算单只眼睛的 EAR 值。

        公式: EAR = (|p2-p6| + |p3-p5|) / (2 * |p1-p4|)

        Args:
            eye_points: 6 个眼睛轮廓关键点 [(x,y), ...]

        Returns:
            EAR 值，分母为零时返回 0.0
        """
        p1, p2, p3, p4, p5, p6 = eye_points

        vertical_1 = math.dist(p2, p6)
        vertical_2 = math.dist(p3, p5)
        horizontal = math.dist(p1, p4)

        if horizontal == 0.0:
            return 0.0

        return (vertical_1 + vertical_2) / (2.0 * horizontal)

    def estimate(self, landmarks: FaceLandmarks) -> float:
        """双眼平均 EAR；任一只眼关键点不完整时返回默认值。"""
        if len(landmarks.left_eye) != 6 or len(landmarks.right_eye) != 6:
            return DEFAULT_OPENNESS

        left_ear = self.calculate_ear(landmarks.left_eye)
        right_ear = self.calculate_ear(landmarks.right_eye)
        return (left_ear + right_ear) / 2.0

    def observe(self, landmarks: Optional[FaceLandmarks], timestamp_millis: int) -> EyeObservation:
        """
        把一帧的检测结果转换为观测值。

        Args:
            landmarks: 人脸关键点，未检测到人脸时为 None
            timestamp_millis: 帧采集时间（毫秒）
        """
        if landmarks is None:
            return EyeObservation(face_detected=False, eye_openness=0.0, timestamp_millis=timestamp_millis)

        return EyeObservation(
            face_detected=True,
            eye_openness=self.estimate(landmarks),
            timestamp_millis=timestamp_millis,
        )
