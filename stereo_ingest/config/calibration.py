"""
calibration.py - 카메라 보정 정보

컬러/깊이 센서 내부 파라미터와 스테레오 기하 정보를 담습니다.
보정 파일 파싱은 외부 모듈의 책임이며, 여기서는 값 객체만 정의합니다.
"""

from dataclasses import dataclass
from typing import Dict, Any, Tuple


@dataclass(frozen=True)
class CameraIntrinsics:
    """핀홀 카메라 내부 파라미터"""
    width: int
    height: int
    fx: float
    fy: float
    cx: float
    cy: float

    def __post_init__(self):
        for name in ('width', 'height'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"Intrinsics {name} must be a positive integer, got {value!r}")

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height)"""
        return self.width, self.height

    @property
    def shape(self) -> Tuple[int, int]:
        """numpy 배열 형태 (height, width)"""
        return self.height, self.width

    def to_dict(self) -> Dict[str, Any]:
        return {
            'width': self.width,
            'height': self.height,
            'fx': self.fx,
            'fy': self.fy,
            'cx': self.cx,
            'cy': self.cy
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'CameraIntrinsics':
        return cls(
            width=int(d['width']),
            height=int(d['height']),
            fx=float(d['fx']),
            fy=float(d['fy']),
            cx=float(d['cx']),
            cy=float(d['cy'])
        )


@dataclass(frozen=True)
class RGBDCalibration:
    """컬러 센서 + 깊이 센서 내부 파라미터"""
    rgb: CameraIntrinsics
    depth: CameraIntrinsics

    def to_dict(self) -> Dict[str, Any]:
        return {'rgb': self.rgb.to_dict(), 'depth': self.depth.to_dict()}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'RGBDCalibration':
        rgb = CameraIntrinsics.from_dict(d['rgb'])
        # depth 항목이 없으면 컬러 센서와 동일하다고 가정
        depth = CameraIntrinsics.from_dict(d['depth']) if d.get('depth') else rgb
        return cls(rgb=rgb, depth=depth)


@dataclass(frozen=True)
class StereoCalibration:
    """스테레오 리그 정보 (disparity -> depth 변환용)"""
    baseline_m: float
    focal_length_px: float

    def __post_init__(self):
        if self.baseline_m <= 0:
            raise ValueError(f"Stereo baseline must be positive, got {self.baseline_m}")
        if self.focal_length_px <= 0:
            raise ValueError(f"Focal length must be positive, got {self.focal_length_px}")

    def to_dict(self) -> Dict[str, Any]:
        return {'baseline_m': self.baseline_m, 'focal_length_px': self.focal_length_px}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'StereoCalibration':
        return cls(
            baseline_m=float(d['baseline_m']),
            focal_length_px=float(d['focal_length_px'])
        )
