"""
stereo_reader.py - 버퍼 재사용 스테레오/RGBD 프레임 리더

스테레오 그레이, 스테레오 컬러, 깊이 스트림을 하나의 프레임 인덱스로
동기화하여 읽습니다. 버퍼는 생성 시 보정 정보로부터 크기가 정해지며
이후 내용만 덮어씁니다.

Version: 1.0
Author: stereo_ingest Team
"""

import cv2
import numpy as np
from pathlib import Path
from typing import Optional, Tuple, Dict, Iterator, Union
import logging

from ..config.calibration import RGBDCalibration, StereoCalibration
from ..config.dataset_layout import DatasetLayout, StreamSpec
from ..config.system_config import IngestConfig
from ..frame_path import resolve_frame_path
from .depth_provider import (
    DepthProvider, PrecomputedDepthProvider, StereoDepthProvider, DEPTH_DTYPE
)
from .auxiliary import (
    read_velodyne_scan, load_pose_file, load_oxts_packets, segmentation_path_for
)

logger = logging.getLogger(__name__)


class FrameReadError(IOError):
    """프레임 이미지 누락, 디코딩 실패, 크기 불일치"""


def _borrow(buf: Optional[np.ndarray]) -> Optional[np.ndarray]:
    """내부 버퍼의 읽기 전용 뷰 (다음 read_next_frame 전까지만 유효)"""
    if buf is None:
        return None
    view = buf.view()
    view.flags.writeable = False
    return view


class StereoFrameReader:
    """
    스테레오/RGBD 데이터셋 순차 리더

    사용법:
        reader = StereoFrameReader(root, kitti_odometry_layout(), provider,
                                   calibration, stereo_calibration)
        while reader.has_more_images():
            if not reader.read_next_frame():
                break
            rgb, depth = reader.get_cv_images()

    get_cv_images()/get_cv_stereo_gray()가 반환하는 배열은 내부 버퍼의 뷰이므로
    다음 read_next_frame() 호출 이후에는 내용이 바뀝니다. 보존하려면 copy()가 필요합니다.
    """

    def __init__(
        self,
        dataset_root: Union[str, Path],
        layout: DatasetLayout,
        depth_provider: Optional[DepthProvider],
        calibration: RGBDCalibration,
        stereo_calibration: StereoCalibration,
        frame_offset: int = 0
    ):
        """
        Args:
            dataset_root: 데이터셋(시퀀스) 루트 경로
            layout: 데이터셋 구조 기술자
            depth_provider: 깊이 생성 전략 (None이면 깊이를 읽지 않음)
            calibration: 컬러/깊이 센서 내부 파라미터
            stereo_calibration: 스테레오 리그 정보
            frame_offset: 시작 프레임 인덱스
        """
        if not layout.image_streams:
            raise ValueError(f"Layout '{layout.dataset_name}' has no enabled image streams")

        self.dataset_root = Path(dataset_root)
        self._layout = layout
        self._depth_provider = depth_provider
        self._calibration = calibration
        self._stereo_calibration = stereo_calibration
        self._frame_idx = int(frame_offset)

        self._rgb_shape = calibration.rgb.shape
        self._depth_shape = calibration.depth.shape

        self._buffers = self._allocate_buffers()

        if not self.dataset_root.exists():
            logger.warning(f"Dataset root does not exist: {self.dataset_root}")

        logger.info(f"StereoFrameReader initialized: {self.dataset_identifier}, "
                    f"streams={layout.enabled_streams()}, "
                    f"rgb={self.rgb_size}, depth={self.depth_size}, "
                    f"offset={self._frame_idx}")

    def _allocate_buffers(self) -> Dict[str, Optional[np.ndarray]]:
        """활성화된 스트림별 버퍼 할당"""
        h, w = self._rgb_shape
        layout = self._layout
        return {
            'left_gray': np.zeros((h, w), dtype=np.uint8) if layout.left_gray else None,
            'right_gray': np.zeros((h, w), dtype=np.uint8) if layout.right_gray else None,
            'left_color': np.zeros((h, w, 3), dtype=np.uint8) if layout.left_color else None,
            'right_color': np.zeros((h, w, 3), dtype=np.uint8) if layout.right_color else None,
            'depth': np.zeros(self._depth_shape, dtype=DEPTH_DTYPE),
        }

    # ------------------------------------------------------------------
    # 순차 읽기
    # ------------------------------------------------------------------

    def has_more_images(self) -> bool:
        """현재 인덱스의 그레이/컬러 이미지 파일이 모두 존재하는지 확인"""
        for spec in self._layout.image_streams.values():
            if not self._frame_path(spec, self._frame_idx).is_file():
                return False
        return True

    def read_next_frame(self) -> bool:
        """
        현재 인덱스의 모든 활성 스트림을 버퍼에 로드하고 인덱스를 증가

        Returns:
            성공 여부. 실패 시 인덱스는 그대로이며 버퍼 내용은 신뢰할 수 없습니다.
        """
        try:
            self._load_frame(self._frame_idx, self._buffers)
        except (IOError, cv2.error) as e:
            logger.warning(f"Failed to read frame {self._frame_idx}: {e}")
            return False

        logger.debug(f"Read frame {self._frame_idx}")
        self._frame_idx += 1
        return True

    def frames(self) -> Iterator[int]:
        """읽기에 성공한 프레임 인덱스를 차례로 반환"""
        while self.has_more_images():
            frame_idx = self._frame_idx
            if not self.read_next_frame():
                logger.warning(f"Stopping iteration at frame {frame_idx}")
                return
            yield frame_idx

    def _load_frame(self, frame_idx: int, buffers: Dict[str, Optional[np.ndarray]]) -> None:
        layout = self._layout

        # 1. 그레이 (스테레오 깊이 계산에 필요)
        for name in ('left_gray', 'right_gray'):
            spec = getattr(layout, name)
            if spec is not None:
                self._read_image(spec, frame_idx, buffers[name], cv2.IMREAD_GRAYSCALE)

        # 2. 컬러
        for name in ('left_color', 'right_color'):
            spec = getattr(layout, name)
            if spec is not None:
                self._read_image(spec, frame_idx, buffers[name], cv2.IMREAD_COLOR)

        # 3. 깊이
        if self._depth_provider is None:
            return
        # 깊이 출처(사전 계산 파일 또는 스테레오 계산)는 전략이 결정
        self._depth_provider.produce(
            buffers['left_gray'], buffers['right_gray'], frame_idx, buffers['depth']
        )

    def _read_image(
        self,
        spec: StreamSpec,
        frame_idx: int,
        out: np.ndarray,
        flags: int
    ) -> None:
        path = self._frame_path(spec, frame_idx)
        if not path.is_file():
            raise FrameReadError(f"Image not found: {path}")

        img = cv2.imread(str(path), flags)
        if img is None:
            raise FrameReadError(f"Failed to decode image: {path}")
        if img.shape != out.shape:
            raise FrameReadError(
                f"Image {path} has shape {img.shape}, expected {out.shape} from calibration"
            )
        np.copyto(out, img)

    def _frame_path(self, spec: StreamSpec, frame_idx: int) -> Path:
        return resolve_frame_path(self.dataset_root, spec.folder, spec.fname_format, frame_idx)

    # ------------------------------------------------------------------
    # 버퍼 접근
    # ------------------------------------------------------------------

    def get_cv_images(self) -> Tuple[Optional[np.ndarray], np.ndarray]:
        """(좌측 컬러, 깊이) 버퍼의 읽기 전용 뷰"""
        return _borrow(self._buffers['left_color']), _borrow(self._buffers['depth'])

    def get_cv_stereo_gray(self) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
        """(좌측 그레이, 우측 그레이) 버퍼의 읽기 전용 뷰"""
        return _borrow(self._buffers['left_gray']), _borrow(self._buffers['right_gray'])

    def get_cv_stereo_color(self) -> Tuple[Optional[np.ndarray], Optional[np.ndarray]]:
        """(좌측 컬러, 우측 컬러) 버퍼의 읽기 전용 뷰"""
        return _borrow(self._buffers['left_color']), _borrow(self._buffers['right_color'])

    def get_frame_cv_images(self, frame_idx: int) -> Tuple[Optional[np.ndarray], np.ndarray]:
        """
        임의 프레임의 (컬러, 깊이) 로드

        순차 커서와 내부 버퍼에는 영향을 주지 않으며, 새로 할당된 배열을 반환합니다.

        Raises:
            IOError: 프레임 로드 실패
        """
        scratch = self._allocate_buffers()
        try:
            self._load_frame(frame_idx, scratch)
        except cv2.error as e:
            raise FrameReadError(f"Failed to load frame {frame_idx}: {e}") from e
        return scratch['left_color'], scratch['depth']

    # ------------------------------------------------------------------
    # 보조 스트림
    # ------------------------------------------------------------------

    def lidar_path(self, frame_idx: int) -> Optional[Path]:
        if self._layout.velodyne is None:
            return None
        return self._frame_path(self._layout.velodyne, frame_idx)

    def read_lidar(self, frame_idx: int) -> np.ndarray:
        """프레임의 LIDAR 스캔 (N, 4)"""
        path = self.lidar_path(frame_idx)
        if path is None:
            raise ValueError(f"Layout '{self._layout.dataset_name}' has no LIDAR stream")
        return read_velodyne_scan(path)

    def segmentation_path(self, frame_idx: int) -> Optional[Path]:
        """좌측 컬러 프레임 파일명에서 유도한 세그멘테이션 경로"""
        layout = self._layout
        if layout.segmentation_folder is None or layout.left_color is None:
            return None
        color_path = self._frame_path(layout.left_color, frame_idx)
        return segmentation_path_for(color_path, self.dataset_root / layout.segmentation_folder)

    def ground_truth_path(self) -> Optional[Path]:
        if self._layout.odometry_fname is None:
            return None
        return self.dataset_root / self._layout.odometry_fname

    def load_ground_truth(self) -> np.ndarray:
        """
        ground truth 로드

        Returns:
            odometry_oxts=False: (N, 4, 4) 포즈
            odometry_oxts=True: (N, 30) 원시 OxTS 패킷
        """
        path = self.ground_truth_path()
        if path is None:
            raise ValueError(f"Layout '{self._layout.dataset_name}' has no odometry ground truth")
        if self._layout.odometry_oxts:
            return load_oxts_packets(path)
        return load_pose_file(path)

    # ------------------------------------------------------------------
    # 속성
    # ------------------------------------------------------------------

    @property
    def current_frame(self) -> int:
        """현재 프레임 인덱스 (offset 포함)"""
        return self._frame_idx

    @property
    def rgb_size(self) -> Tuple[int, int]:
        """(width, height)"""
        return self._calibration.rgb.size

    @property
    def depth_size(self) -> Tuple[int, int]:
        """(width, height)"""
        return self._calibration.depth.size

    @property
    def sequence_name(self) -> str:
        return self.dataset_root.name

    @property
    def dataset_identifier(self) -> str:
        return f"{self._layout.dataset_name}-{self.sequence_name}"

    @property
    def depth_provider(self) -> Optional[DepthProvider]:
        return self._depth_provider

    @depth_provider.setter
    def depth_provider(self, provider: Optional[DepthProvider]):
        logger.info(f"Depth provider switched to {type(provider).__name__}")
        self._depth_provider = provider

    @property
    def layout(self) -> DatasetLayout:
        return self._layout

    @property
    def calibration(self) -> RGBDCalibration:
        return self._calibration

    @property
    def stereo_calibration(self) -> StereoCalibration:
        return self._stereo_calibration


def build_depth_provider(config: IngestConfig) -> DepthProvider:
    """설정의 depth.mode에 맞는 깊이 생성 전략 생성"""
    depth = config.depth
    if depth.mode == 'stereo':
        return StereoDepthProvider(
            config.stereo,
            num_disparities=depth.num_disparities,
            block_size=depth.block_size,
            max_depth_m=depth.max_depth_m,
            integer_disparity_scale=depth.integer_disparity_scale
        )
    return PrecomputedDepthProvider(
        config.dataset_root,
        config.layout,
        config.stereo,
        max_depth_m=depth.max_depth_m,
        integer_disparity_scale=depth.integer_disparity_scale
    )


def build_reader(config: IngestConfig) -> StereoFrameReader:
    """설정으로부터 리더 생성"""
    return StereoFrameReader(
        config.dataset_root,
        config.layout,
        build_depth_provider(config),
        config.calibration,
        config.stereo,
        frame_offset=config.frame_offset
    )
