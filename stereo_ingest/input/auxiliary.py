"""
보조 스트림 로더

LIDAR 스캔, ground truth 궤적, 세그멘테이션 경로를 처리합니다.
좌표 변환 등 기하 연산은 수행하지 않습니다.
"""

import numpy as np
import pandas as pd
from pathlib import Path
from typing import Optional, Union
import logging

logger = logging.getLogger(__name__)

# OxTS 패킷 필드 수 (lat, lon, alt, roll, pitch, yaw, ...)
OXTS_NUM_FIELDS = 30


def read_velodyne_scan(path: Union[str, Path]) -> np.ndarray:
    """
    Velodyne 바이너리 스캔 로드

    Args:
        path: .bin 파일 경로 (float32 x, y, z, reflectance 반복)

    Returns:
        (N, 4) float32 배열
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"LIDAR scan not found: {path}")

    scan = np.fromfile(path, dtype=np.float32)
    if scan.size % 4 != 0:
        raise IOError(f"Truncated LIDAR scan {path}: {scan.size} floats")
    return scan.reshape(-1, 4)


def load_pose_file(path: Union[str, Path]) -> np.ndarray:
    """
    단일 파일 ground truth 궤적 로드 (KITTI odometry 형식)

    각 행은 3x4 행렬을 행 우선으로 펼친 12개 값입니다.

    Returns:
        (N, 4, 4) 동차 변환 행렬
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Ground truth file not found: {path}")

    df = pd.read_csv(path, sep=r'\s+', header=None)
    if df.shape[1] != 12:
        raise ValueError(f"Expected 12 values per pose in {path}, got {df.shape[1]}")

    n = len(df)
    poses = np.tile(np.eye(4), (n, 1, 1))
    poses[:, :3, :] = df.to_numpy(dtype=np.float64).reshape(n, 3, 4)
    logger.info(f"Loaded {n} ground truth poses from {path}")
    return poses


def load_oxts_packets(folder: Union[str, Path]) -> np.ndarray:
    """
    프레임별 OxTS 덤프 폴더 로드 (변환 없이 원시 값)

    Returns:
        (N, 30) 배열, 파일명 순서
    """
    folder = Path(folder)
    if not folder.is_dir():
        raise FileNotFoundError(f"OxTS folder not found: {folder}")

    files = sorted(folder.glob('*.txt'))
    if len(files) == 0:
        raise ValueError(f"No OxTS packets found in {folder}")

    packets = []
    for f in files:
        values = np.loadtxt(f, dtype=np.float64, ndmin=1)
        if values.size != OXTS_NUM_FIELDS:
            raise ValueError(f"Expected {OXTS_NUM_FIELDS} OxTS fields in {f}, got {values.size}")
        packets.append(values)

    logger.info(f"Loaded {len(packets)} OxTS packets from {folder}")
    return np.stack(packets)


def segmentation_path_for(
    color_path: Union[str, Path],
    segmentation_root: Union[str, Path],
    extension: Optional[str] = None
) -> Path:
    """
    컬러 프레임 파일명에서 세그멘테이션 파일 경로 유도

    Args:
        color_path: 컬러 프레임 경로
        segmentation_root: 세그멘테이션 폴더
        extension: 확장자 교체 (None이면 컬러 파일명 그대로)
    """
    name = Path(color_path).name
    if extension is not None:
        name = Path(name).stem + extension
    return Path(segmentation_root) / name
