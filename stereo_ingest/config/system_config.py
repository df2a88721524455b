"""
system_config.py - 세션 설정 관리

데이터셋 레이아웃, 보정 정보, 깊이 생성 방식을 YAML로 통합 관리합니다.

Version: 1.0
Author: stereo_ingest Team
"""

import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, Any, Optional
import logging

from .calibration import CameraIntrinsics, RGBDCalibration, StereoCalibration
from .dataset_layout import DatasetLayout, get_preset

logger = logging.getLogger(__name__)

DEPTH_MODES = ('precomputed', 'stereo')


def _default_calibration() -> RGBDCalibration:
    # KITTI odometry 00 (image_2) 기준
    rgb = CameraIntrinsics(width=1241, height=376, fx=718.856, fy=718.856, cx=607.1928, cy=185.2157)
    return RGBDCalibration(rgb=rgb, depth=rgb)


def _default_stereo() -> StereoCalibration:
    return StereoCalibration(baseline_m=0.537, focal_length_px=718.856)


@dataclass
class DepthConfig:
    """깊이 생성 설정"""
    mode: str = "precomputed"  # "precomputed" or "stereo"
    max_depth_m: float = 80.0
    integer_disparity_scale: float = 256.0

    # SGBM (mode == "stereo")
    num_disparities: int = 128
    block_size: int = 5

    def __post_init__(self):
        if self.mode not in DEPTH_MODES:
            raise ValueError(f"Unknown depth mode: {self.mode} (expected one of {DEPTH_MODES})")


@dataclass
class IngestConfig:
    """stereo_ingest 세션 전체 설정"""
    dataset_root: str = "."
    layout: DatasetLayout = field(default_factory=lambda: get_preset('kitti-odometry'))
    calibration: RGBDCalibration = field(default_factory=_default_calibration)
    stereo: StereoCalibration = field(default_factory=_default_stereo)
    depth: DepthConfig = field(default_factory=DepthConfig)

    frame_offset: int = 0
    log_level: str = "INFO"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'dataset_root': self.dataset_root,
            'layout': self.layout.to_dict(),
            'calibration': self.calibration.to_dict(),
            'stereo': self.stereo.to_dict(),
            'depth': self.depth.__dict__,
            'frame_offset': self.frame_offset,
            'log_level': self.log_level
        }

    def save(self, filepath: str):
        """설정을 YAML 파일로 저장"""
        with open(filepath, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

        logger.info(f"Config saved to {filepath}")

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'IngestConfig':
        """
        딕셔너리에서 설정 생성

        layout 항목은 'preset' 키로 기반 프리셋을 고르고 나머지를 덮어씁니다.
        """
        defaults = cls()
        layout_dict = d.get('layout') or {}
        if 'preset' not in layout_dict and 'dataset_name' not in layout_dict:
            layout = DatasetLayout.from_dict(layout_dict, base=defaults.layout)
        else:
            layout = DatasetLayout.from_dict(layout_dict)

        return cls(
            dataset_root=str(d.get('dataset_root', defaults.dataset_root)),
            layout=layout,
            calibration=(RGBDCalibration.from_dict(d['calibration'])
                         if d.get('calibration') else defaults.calibration),
            stereo=(StereoCalibration.from_dict(d['stereo'])
                    if d.get('stereo') else defaults.stereo),
            depth=DepthConfig(**(d.get('depth') or {})),
            frame_offset=int(d.get('frame_offset', 0)),
            log_level=d.get('log_level', 'INFO')
        )


def load_config(filepath: str) -> IngestConfig:
    """
    YAML 파일에서 설정 로드

    Args:
        filepath: 설정 파일 경로

    Returns:
        IngestConfig: 로드된 설정 (파일이 없으면 기본값)
    """
    path = Path(filepath)

    if not path.exists():
        logger.warning(f"Config file not found: {filepath}, using defaults")
        return IngestConfig()

    with open(path, 'r') as f:
        config_dict = yaml.safe_load(f)

    if config_dict is None:
        return IngestConfig()

    return IngestConfig.from_dict(config_dict)


def create_default_config(save_path: Optional[str] = None) -> IngestConfig:
    """
    기본 설정 생성

    Args:
        save_path: 저장 경로 (None이면 저장 안함)
    """
    config = IngestConfig()

    if save_path:
        config.save(save_path)

    return config
