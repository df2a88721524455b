"""
config 모듈 - 데이터셋 레이아웃, 보정 정보, 세션 설정
"""

from .dataset_layout import (
    DatasetLayout,
    StreamSpec,
    kitti_odometry_layout,
    kitti_odometry_dispnet_layout,
    get_preset,
    PRESETS
)
from .calibration import CameraIntrinsics, RGBDCalibration, StereoCalibration
from .system_config import IngestConfig, DepthConfig, load_config

__all__ = [
    'DatasetLayout',
    'StreamSpec',
    'kitti_odometry_layout',
    'kitti_odometry_dispnet_layout',
    'get_preset',
    'PRESETS',
    'CameraIntrinsics',
    'RGBDCalibration',
    'StereoCalibration',
    'IngestConfig',
    'DepthConfig',
    'load_config',
]
