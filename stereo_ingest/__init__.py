"""
stereo_ingest - 스테레오/RGBD 데이터셋 프레임 입력 계층

주요 특징:
- 스테레오 그레이/컬러, 깊이, LIDAR, ground truth를 하나의 프레임 인덱스로 동기화
- 데이터셋 레이아웃 프리셋 (KITTI odometry, DispNet 변형)
- 사전 계산 깊이 / 스테레오 계산 깊이 전략 교체
- 프레임마다 버퍼를 재할당하지 않는 순차 리더

Version: 1.0
Author: stereo_ingest Team
"""

__version__ = "1.0.0"
__author__ = "stereo_ingest Team"

from .config.dataset_layout import (
    DatasetLayout,
    StreamSpec,
    kitti_odometry_layout,
    kitti_odometry_dispnet_layout,
    get_preset
)
from .config.calibration import CameraIntrinsics, RGBDCalibration, StereoCalibration
from .config.system_config import IngestConfig, load_config
from .frame_path import resolve_frame_path, format_frame_name
from .input.depth_provider import (
    DepthProvider,
    PrecomputedDepthProvider,
    StereoDepthProvider
)
from .input.stereo_reader import StereoFrameReader, build_reader

__all__ = [
    # Layout
    'DatasetLayout',
    'StreamSpec',
    'kitti_odometry_layout',
    'kitti_odometry_dispnet_layout',
    'get_preset',
    # Calibration
    'CameraIntrinsics',
    'RGBDCalibration',
    'StereoCalibration',
    # Config
    'IngestConfig',
    'load_config',
    # Input
    'resolve_frame_path',
    'format_frame_name',
    'DepthProvider',
    'PrecomputedDepthProvider',
    'StereoDepthProvider',
    'StereoFrameReader',
    'build_reader',
]
