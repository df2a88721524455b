"""
frame_path.py - 프레임 경로 생성

<root>/<folder>/<formatted_index> 형태의 파일 경로를 만듭니다.
파일명 템플릿은 printf 스타일(%06d.png 등)이며 zero-padding 규칙을 그대로 따릅니다.
"""

import re
from pathlib import Path
from typing import Union

# %% 를 제외한 변환 지정자
_CONVERSION_RE = re.compile(r'%(?!%)[-+ #0]*\d*(?:\.\d+)?([a-zA-Z])')
_INTEGER_CONVERSIONS = ('d', 'i', 'u')


def validate_template(template: str) -> None:
    """
    파일명 템플릿 검증

    정수 변환 지정자가 정확히 하나여야 합니다.

    Raises:
        ValueError: 잘못된 템플릿
    """
    conversions = _CONVERSION_RE.findall(template.replace('%%', ''))
    if len(conversions) != 1 or conversions[0] not in _INTEGER_CONVERSIONS:
        raise ValueError(
            f"Filename template must contain exactly one integer conversion: {template!r}"
        )
    try:
        template % 0
    except (TypeError, ValueError) as e:
        raise ValueError(f"Malformed filename template {template!r}: {e}") from e


def format_frame_name(template: str, frame_idx: int) -> str:
    """템플릿에 프레임 인덱스 대입 (예: '%06d.png', 12 -> '000012.png')"""
    return template % frame_idx


def resolve_frame_path(
    root: Union[str, Path],
    folder: str,
    template: str,
    frame_idx: int
) -> Path:
    """
    프레임 파일 경로 생성

    Args:
        root: 데이터셋 루트
        folder: 스트림 폴더 (루트 기준 상대 경로)
        template: printf 스타일 파일명 템플릿
        frame_idx: 프레임 인덱스

    Returns:
        Path: root/folder/formatted
    """
    return Path(root) / folder / format_frame_name(template, frame_idx)
