"""
input 모듈 - 프레임 입력 처리

스테레오/RGBD 데이터셋의 동기화된 순차 읽기와 깊이 생성 전략을 제공합니다.
"""

from .depth_provider import (
    DepthProvider,
    PrecomputedDepthProvider,
    StereoDepthProvider,
    DepthProviderError
)
from .stereo_reader import StereoFrameReader, FrameReadError, build_reader

__all__ = [
    'DepthProvider',
    'PrecomputedDepthProvider',
    'StereoDepthProvider',
    'DepthProviderError',
    'StereoFrameReader',
    'FrameReadError',
    'build_reader',
]
