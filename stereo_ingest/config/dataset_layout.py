"""
dataset_layout.py - 데이터셋 폴더 구조 기술자

스트림별 폴더/파일명 템플릿과 활성화 여부를 정의합니다.
프리셋은 불변 값을 반환하는 팩토리 함수로 제공됩니다.

Version: 1.0
Author: stereo_ingest Team
"""

from dataclasses import dataclass, fields, replace, asdict
from typing import Dict, Any, Optional, List, Callable

from ..frame_path import validate_template


@dataclass(frozen=True)
class StreamSpec:
    """단일 스트림 위치 (폴더 + printf 스타일 파일명 템플릿)"""
    folder: str
    fname_format: str

    def __post_init__(self):
        if not self.folder:
            raise ValueError("StreamSpec.folder must not be empty")
        validate_template(self.fname_format)


# 이미지 스트림 (HasMoreImages 검사 대상)
IMAGE_STREAMS = ('left_gray', 'right_gray', 'left_color', 'right_color')
_STREAM_FIELDS = IMAGE_STREAMS + ('depth', 'velodyne')


@dataclass(frozen=True)
class DatasetLayout:
    """
    데이터셋 구조 기술자

    None인 스트림은 비활성화된 것으로 간주하며 절대 참조되지 않습니다.

    Example:
        >>> layout = kitti_odometry_layout()
        >>> variant = layout.derive(read_depth=False)
    """
    dataset_name: str
    left_gray: Optional[StreamSpec] = None
    right_gray: Optional[StreamSpec] = None
    left_color: Optional[StreamSpec] = None
    right_color: Optional[StreamSpec] = None
    itm_calibration_fname: Optional[str] = None

    # 사전 계산된 depth/disparity
    depth: Optional[StreamSpec] = None
    # True: 파일 값이 metric depth, False: 픽셀 단위 disparity
    read_depth: bool = False

    # 세그멘테이션 파일명은 컬러 프레임 파일명에서 유도됨
    segmentation_folder: Optional[str] = None

    # True: OxTS 프레임별 덤프 폴더, False: 단일 ground truth 파일
    odometry_oxts: bool = False
    odometry_fname: Optional[str] = None

    velodyne: Optional[StreamSpec] = None

    def derive(self, **overrides) -> 'DatasetLayout':
        """지정한 필드만 바꾼 복사본 생성"""
        return replace(self, **overrides)

    def differing_fields(self, other: 'DatasetLayout') -> List[str]:
        """값이 다른 필드 이름 목록"""
        return [
            f.name for f in fields(self)
            if getattr(self, f.name) != getattr(other, f.name)
        ]

    def enabled_streams(self) -> List[str]:
        return [name for name in _STREAM_FIELDS if getattr(self, name) is not None]

    @property
    def image_streams(self) -> Dict[str, StreamSpec]:
        """활성화된 그레이/컬러 이미지 스트림"""
        return {
            name: getattr(self, name)
            for name in IMAGE_STREAMS
            if getattr(self, name) is not None
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(
        cls,
        d: Dict[str, Any],
        base: Optional['DatasetLayout'] = None
    ) -> 'DatasetLayout':
        """
        딕셔너리에서 레이아웃 생성

        'preset' 키가 있으면 해당 프리셋을 기반으로 나머지 키를 덮어씁니다.
        빈 문자열은 None(비활성)으로 정규화합니다.

        Args:
            d: 레이아웃 딕셔너리
            base: 기반 레이아웃 (preset 키보다 우선순위 낮음)

        Returns:
            DatasetLayout
        """
        d = dict(d)
        preset = d.pop('preset', None)
        if preset is not None:
            base = get_preset(preset)

        overrides = {}
        for key, value in d.items():
            if key in _STREAM_FIELDS:
                value = _stream_from_value(value)
            elif key in ('segmentation_folder', 'odometry_fname', 'itm_calibration_fname'):
                value = value or None
            overrides[key] = value

        if base is not None:
            return base.derive(**overrides)
        return cls(**overrides)


def _stream_from_value(value) -> Optional[StreamSpec]:
    if value is None or value == '' or value == {}:
        return None
    if isinstance(value, StreamSpec):
        return value
    if isinstance(value, (list, tuple)):
        folder, fname_format = value
        return StreamSpec(folder, fname_format)
    return StreamSpec(folder=value['folder'], fname_format=value['fname_format'])


def kitti_odometry_layout() -> DatasetLayout:
    """KITTI odometry 기본 레이아웃"""
    return DatasetLayout(
        dataset_name='kitti-odometry',
        left_gray=StreamSpec('image_0', '%06d.png'),
        right_gray=StreamSpec('image_1', '%06d.png'),
        left_color=StreamSpec('image_2', '%06d.png'),
        right_color=StreamSpec('image_3', '%06d.png'),
        itm_calibration_fname='itm-calib.txt',
        depth=StreamSpec('precomputed-depth/Frames', '%04d.pgm'),
        read_depth=True,
        segmentation_folder='seg_image_2/mnc',
        odometry_oxts=False,
        odometry_fname='ground-truth-poses.txt',
        velodyne=StreamSpec('velodyne', '%06d.bin'),
    )


def kitti_odometry_dispnet_layout() -> DatasetLayout:
    """DispNet disparity(.pfm)를 사용하는 KITTI odometry 변형"""
    return kitti_odometry_layout().derive(
        depth=StreamSpec('precomputed-depth-dispnet', '%06d.pfm'),
        read_depth=False,
    )


PRESETS: Dict[str, Callable[[], DatasetLayout]] = {
    'kitti-odometry': kitti_odometry_layout,
    'kitti-odometry-dispnet': kitti_odometry_dispnet_layout,
}


def get_preset(name: str) -> DatasetLayout:
    """이름으로 프리셋 레이아웃 조회"""
    if name not in PRESETS:
        raise KeyError(f"Unknown dataset preset: {name} (available: {sorted(PRESETS)})")
    return PRESETS[name]()
