"""
depth_provider.py - 깊이맵 생성 전략

프레임 리더는 어떤 방식으로 깊이가 만들어지는지 알지 못합니다.
두 가지 구현을 제공합니다:
1. PrecomputedDepthProvider: 디스크에 저장된 depth/disparity 파일 디코딩
2. StereoDepthProvider: 스테레오 그레이 영상으로부터 SGBM으로 계산

깊이 버퍼는 uint16 (밀리미터) 형식입니다. 0은 무효 픽셀을 의미합니다.

Version: 1.0
Author: stereo_ingest Team
"""

import cv2
import numpy as np
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union
import logging

from ..config.calibration import StereoCalibration
from ..config.dataset_layout import DatasetLayout
from ..frame_path import resolve_frame_path

logger = logging.getLogger(__name__)

METERS_TO_MILLIMETERS = 1000.0
DEPTH_DTYPE = np.uint16
_DEPTH_MAX_RAW = np.iinfo(DEPTH_DTYPE).max


class DepthProviderError(IOError):
    """깊이 파일 누락, 디코딩 실패, 크기 불일치"""


def read_pfm(path: Union[str, Path]) -> np.ndarray:
    """
    PFM (Portable Float Map) 파일 로드

    Args:
        path: .pfm 파일 경로

    Returns:
        float32 배열 (H, W) 또는 (H, W, 3), 위쪽 행부터 정렬
    """
    with open(path, 'rb') as f:
        header = f.readline().strip()
        if header == b'PF':
            channels = 3
        elif header == b'Pf':
            channels = 1
        else:
            raise DepthProviderError(f"Not a PFM file: {path}")

        try:
            width, height = (int(v) for v in f.readline().split())
            scale = float(f.readline().strip())
        except ValueError as e:
            raise DepthProviderError(f"Malformed PFM header in {path}: {e}") from e

        # 음수 scale은 little endian
        endian = '<' if scale < 0 else '>'
        data = np.fromfile(f, dtype=endian + 'f4')

    expected = width * height * channels
    if data.size != expected:
        raise DepthProviderError(
            f"Truncated PFM file {path}: expected {expected} values, got {data.size}"
        )

    shape = (height, width, 3) if channels == 3 else (height, width)
    # PFM은 아래쪽 행부터 저장됨
    return np.ascontiguousarray(np.flipud(data.reshape(shape))).astype(np.float32)


def metric_to_depth_buffer(
    depth_m: np.ndarray,
    out: np.ndarray,
    max_depth_m: float
) -> np.ndarray:
    """미터 단위 깊이를 uint16 밀리미터 버퍼에 기록 (무효/범위 밖 값은 0)"""
    depth_m = np.asarray(depth_m, dtype=np.float32)
    invalid = ~np.isfinite(depth_m) | (depth_m <= 0.0) | (depth_m > max_depth_m)
    depth_mm = np.where(invalid, 0.0, depth_m) * METERS_TO_MILLIMETERS
    np.clip(np.rint(depth_mm), 0, _DEPTH_MAX_RAW, out=depth_mm)
    np.copyto(out, depth_mm, casting='unsafe')
    return out


def disparity_to_depth(
    disparity: np.ndarray,
    stereo: StereoCalibration,
    out: Optional[np.ndarray] = None,
    max_depth_m: float = 80.0
) -> np.ndarray:
    """
    시차맵 -> 깊이 버퍼 변환 (depth = f * B / disparity)

    Args:
        disparity: 픽셀 단위 시차 (H, W)
        stereo: 스테레오 보정 정보
        out: 결과를 기록할 uint16 버퍼 (None이면 새로 할당)
        max_depth_m: 최대 유효 거리 (m)

    Returns:
        uint16 밀리미터 깊이 버퍼
    """
    disparity = np.asarray(disparity, dtype=np.float32)
    if out is None:
        out = np.zeros(disparity.shape, dtype=DEPTH_DTYPE)

    valid = np.isfinite(disparity) & (disparity > 0.0)
    depth_m = np.zeros(disparity.shape, dtype=np.float32)
    depth_m[valid] = (stereo.focal_length_px * stereo.baseline_m) / disparity[valid]
    return metric_to_depth_buffer(depth_m, out, max_depth_m)


class DepthProvider(ABC):
    """
    깊이 생성 전략 인터페이스

    - produce(): 현재 프레임의 깊이를 생성 (계산 또는 사전 계산 파일)
    - decode(): 단일 depth/disparity 파일 디코딩
    """

    def __init__(
        self,
        stereo_calibration: StereoCalibration,
        max_depth_m: float = 80.0,
        integer_disparity_scale: float = 256.0
    ):
        """
        Args:
            stereo_calibration: 스테레오 보정 정보
            max_depth_m: 최대 유효 거리 (m)
            integer_disparity_scale: 정수형 disparity 파일의 스케일 (KITTI: 256)
        """
        self.stereo_calibration = stereo_calibration
        self.max_depth_m = max_depth_m
        self.integer_disparity_scale = integer_disparity_scale

    @abstractmethod
    def produce(
        self,
        left_gray: Optional[np.ndarray],
        right_gray: Optional[np.ndarray],
        frame_idx: int,
        out: Optional[np.ndarray] = None
    ) -> np.ndarray:
        """
        프레임의 깊이맵 생성

        Args:
            left_gray: 좌측 그레이 영상 (없으면 None)
            right_gray: 우측 그레이 영상 (없으면 None)
            frame_idx: 프레임 인덱스
            out: 결과 버퍼 (None이면 새로 할당)

        Returns:
            uint16 밀리미터 깊이 버퍼
        """

    def decode(
        self,
        path: Union[str, Path],
        out: Optional[np.ndarray] = None,
        is_depth: bool = True
    ) -> np.ndarray:
        """
        depth/disparity 파일 디코딩

        지원 형식: 16-bit PNG/PGM (OpenCV), PFM, NPY

        Args:
            path: 파일 경로
            out: 결과 버퍼 (None이면 새로 할당)
            is_depth: True면 파일 값이 깊이, False면 disparity

        Raises:
            DepthProviderError: 파일 누락, 디코딩 실패, 크기 불일치
        """
        path = Path(path)
        if not path.is_file():
            raise DepthProviderError(f"Depth file not found: {path}")

        raw = self._load_raw(path)
        if raw.ndim == 3:
            raw = raw[..., 0]

        if out is None:
            out = np.zeros(raw.shape, dtype=DEPTH_DTYPE)
        elif raw.shape != out.shape:
            raise DepthProviderError(
                f"Depth map {path} has shape {raw.shape}, expected {out.shape}"
            )

        if is_depth:
            if np.issubdtype(raw.dtype, np.integer):
                # 정수형 깊이 파일은 밀리미터 단위
                np.copyto(out, np.clip(raw, 0, _DEPTH_MAX_RAW), casting='unsafe')
                out[out > self.max_depth_m * METERS_TO_MILLIMETERS] = 0
            else:
                metric_to_depth_buffer(raw, out, self.max_depth_m)
        else:
            disparity = raw.astype(np.float32)
            if np.issubdtype(raw.dtype, np.integer):
                disparity /= self.integer_disparity_scale
            disparity_to_depth(disparity, self.stereo_calibration, out, self.max_depth_m)

        return out

    @staticmethod
    def _load_raw(path: Path) -> np.ndarray:
        suffix = path.suffix.lower()
        if suffix == '.pfm':
            return read_pfm(path)
        if suffix == '.npy':
            try:
                return np.load(path)
            except (ValueError, EOFError, OSError) as e:
                raise DepthProviderError(f"Failed to load depth array {path}: {e}") from e

        raw = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        if raw is None:
            raise DepthProviderError(f"Failed to decode depth file: {path}")
        return raw


class PrecomputedDepthProvider(DepthProvider):
    """
    디스크에 저장된 depth/disparity 사용

    스테레오 영상은 무시하고 레이아웃의 depth 스트림에서
    프레임 인덱스에 해당하는 파일을 읽습니다.
    """

    def __init__(
        self,
        dataset_root: Union[str, Path],
        layout: DatasetLayout,
        stereo_calibration: StereoCalibration,
        max_depth_m: float = 80.0,
        integer_disparity_scale: float = 256.0
    ):
        super().__init__(stereo_calibration, max_depth_m, integer_disparity_scale)
        if layout.depth is None:
            raise ValueError(
                f"Layout '{layout.dataset_name}' has no depth stream for precomputed depth"
            )
        self.dataset_root = Path(dataset_root)
        self.layout = layout

    def depth_path(self, frame_idx: int) -> Path:
        return resolve_frame_path(
            self.dataset_root,
            self.layout.depth.folder,
            self.layout.depth.fname_format,
            frame_idx
        )

    def produce(self, left_gray, right_gray, frame_idx, out=None):
        return self.decode(self.depth_path(frame_idx), out, is_depth=self.layout.read_depth)


class StereoDepthProvider(DepthProvider):
    """
    스테레오 그레이 영상으로부터 SGBM 기반 깊이 계산

    Example:
        >>> provider = StereoDepthProvider(StereoCalibration(0.54, 721.5))
        >>> depth = provider.produce(left, right, frame_idx=0)
    """

    def __init__(
        self,
        stereo_calibration: StereoCalibration,
        num_disparities: int = 128,
        block_size: int = 5,
        max_depth_m: float = 80.0,
        integer_disparity_scale: float = 256.0
    ):
        super().__init__(stereo_calibration, max_depth_m, integer_disparity_scale)
        if num_disparities <= 0 or num_disparities % 16 != 0:
            raise ValueError(f"num_disparities must be a positive multiple of 16, got {num_disparities}")
        if block_size < 1 or block_size % 2 == 0:
            raise ValueError(f"block_size must be a positive odd number, got {block_size}")

        self.num_disparities = num_disparities
        self.block_size = block_size
        self._matcher = cv2.StereoSGBM_create(
            minDisparity=0,
            numDisparities=num_disparities,
            blockSize=block_size,
            P1=8 * block_size * block_size,
            P2=32 * block_size * block_size,
            uniquenessRatio=10,
            speckleWindowSize=100,
            speckleRange=2,
            mode=cv2.STEREO_SGBM_MODE_SGBM_3WAY
        )

    def compute_disparity(self, left_gray: np.ndarray, right_gray: np.ndarray) -> np.ndarray:
        """픽셀 단위 float32 disparity 계산"""
        # SGBM 출력은 4비트 소수부를 가진 고정소수점
        disp = self._matcher.compute(left_gray, right_gray)
        return disp.astype(np.float32) / 16.0

    def produce(self, left_gray, right_gray, frame_idx, out=None):
        if left_gray is None or right_gray is None:
            raise ValueError("StereoDepthProvider requires both grayscale images")
        if left_gray.shape != right_gray.shape:
            raise DepthProviderError(
                f"Stereo pair shape mismatch: {left_gray.shape} vs {right_gray.shape}"
            )
        if out is not None and out.shape != left_gray.shape:
            raise DepthProviderError(
                f"Stereo input shape {left_gray.shape} does not match depth buffer {out.shape}"
            )

        disparity = self.compute_disparity(left_gray, right_gray)
        logger.debug(f"Frame {frame_idx}: computed disparity, "
                     f"{np.count_nonzero(disparity > 0)} valid pixels")
        return disparity_to_depth(disparity, self.stereo_calibration, out, self.max_depth_m)
