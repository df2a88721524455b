"""
stereo_ingest 패키지 설치 스크립트
"""

from setuptools import setup, find_packages

setup(
    name='stereo_ingest',
    version='1.0.0',
    description='스테레오/RGBD 데이터셋 동기화 프레임 입력 계층',
    author='stereo_ingest Team',
    packages=find_packages(include=['stereo_ingest', 'stereo_ingest.*']),
    python_requires='>=3.8',
    install_requires=[
        'numpy>=1.21.0',
        'pandas>=1.3.0',
        'opencv-python>=4.5.0',
        'pyyaml>=5.4.0',
    ],
    extras_require={
        'dev': [
            'pytest>=7.0.0',
            'pytest-cov>=3.0.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'stereo_ingest=stereo_ingest.main:main',
        ],
    },
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
    ],
)
