"""
스테레오 프레임 리더 테스트
"""

import os
import shutil
import tempfile

import cv2
import numpy as np
import pytest

from stereo_ingest.config.calibration import CameraIntrinsics, RGBDCalibration, StereoCalibration
from stereo_ingest.config.dataset_layout import StreamSpec, kitti_odometry_layout
from stereo_ingest.config.system_config import DepthConfig, IngestConfig
from stereo_ingest.input.depth_provider import (
    DepthProvider,
    PrecomputedDepthProvider,
    StereoDepthProvider
)
from stereo_ingest.input.stereo_reader import StereoFrameReader, build_reader

WIDTH, HEIGHT = 1242, 375
NUM_FRAMES = 5


def write_pfm(path, data: np.ndarray):
    h, w = data.shape
    with open(path, 'wb') as f:
        f.write(b'Pf\n')
        f.write(f'{w} {h}\n'.encode())
        f.write(b'-1.0\n')
        np.flipud(data).astype('<f4').tofile(f)


def write_frame(root, layout, idx, width=WIDTH, height=HEIGHT):
    """프레임 idx의 모든 이미지/깊이 파일 생성 (픽셀 값 = idx * 10)"""
    value = idx * 10
    gray = np.full((height, width), value, dtype=np.uint8)
    color = np.full((height, width, 3), value, dtype=np.uint8)
    depth = np.full((height, width), 1000 + idx, dtype=np.uint16)

    for name, img in (('left_gray', gray), ('right_gray', gray),
                      ('left_color', color), ('right_color', color),
                      ('depth', depth)):
        spec = getattr(layout, name)
        folder = os.path.join(root, spec.folder)
        os.makedirs(folder, exist_ok=True)
        cv2.imwrite(os.path.join(folder, spec.fname_format % idx), img)


@pytest.fixture
def calibration():
    intrinsics = CameraIntrinsics(width=WIDTH, height=HEIGHT, fx=721.5, fy=721.5, cx=609.6, cy=172.9)
    return RGBDCalibration(rgb=intrinsics, depth=intrinsics)


@pytest.fixture
def stereo():
    return StereoCalibration(baseline_m=0.54, focal_length_px=721.5)


@pytest.fixture
def layout():
    return kitti_odometry_layout()


@pytest.fixture
def dataset(layout):
    """5 프레임 KITTI odometry 형식 데이터셋 (시퀀스 이름 '00')"""
    with tempfile.TemporaryDirectory() as tmpdir:
        root = os.path.join(tmpdir, '00')
        for idx in range(NUM_FRAMES):
            write_frame(root, layout, idx)
        yield root


@pytest.fixture
def reader(dataset, layout, calibration, stereo):
    provider = PrecomputedDepthProvider(dataset, layout, stereo)
    return StereoFrameReader(dataset, layout, provider, calibration, stereo)


class TestSequentialRead:
    """순차 읽기 테스트"""

    def test_reads_all_frames_then_stops(self, reader):
        """5 프레임을 정확히 5번 읽고 인덱스 5에서 종료"""
        successes = 0
        while reader.has_more_images():
            assert reader.read_next_frame()
            successes += 1

        assert successes == NUM_FRAMES
        assert reader.current_frame == NUM_FRAMES
        assert not reader.has_more_images()

    def test_buffer_dimensions(self, reader):
        """모든 버퍼가 보정 정보의 해상도와 일치"""
        while reader.has_more_images():
            assert reader.read_next_frame()

            rgb, depth = reader.get_cv_images()
            left, right = reader.get_cv_stereo_gray()

            assert rgb.shape == (HEIGHT, WIDTH, 3)
            assert depth.shape == (HEIGHT, WIDTH)
            assert left.shape == (HEIGHT, WIDTH)
            assert right.shape == (HEIGHT, WIDTH)

        assert reader.rgb_size == (WIDTH, HEIGHT)
        assert reader.depth_size == (WIDTH, HEIGHT)

    def test_buffer_contents(self, reader):
        assert reader.read_next_frame()
        assert reader.read_next_frame()

        rgb, depth = reader.get_cv_images()
        left, right = reader.get_cv_stereo_gray()

        assert np.all(rgb == 10)
        assert np.all(left == 10)
        assert np.all(right == 10)
        assert np.all(depth == 1001)

    def test_frame_offset(self, dataset, layout, calibration, stereo):
        provider = PrecomputedDepthProvider(dataset, layout, stereo)
        reader = StereoFrameReader(dataset, layout, provider, calibration, stereo, frame_offset=2)

        assert reader.current_frame == 2
        for _ in range(3):
            assert reader.read_next_frame()
        assert reader.current_frame == 5

    def test_has_more_images_does_not_advance(self, reader):
        for _ in range(3):
            assert reader.has_more_images()
        assert reader.current_frame == 0

    def test_frames_generator(self, reader):
        assert list(reader.frames()) == [0, 1, 2, 3, 4]
        assert reader.current_frame == NUM_FRAMES


class TestReadFailure:
    """읽기 실패 시 인덱스 유지 테스트"""

    def test_missing_image_does_not_advance(self, dataset, reader):
        os.remove(os.path.join(dataset, 'image_1', '000003.png'))

        for _ in range(3):
            assert reader.read_next_frame()

        assert not reader.read_next_frame()
        assert reader.current_frame == 3
        # 재시도해도 같은 인덱스
        assert not reader.read_next_frame()
        assert reader.current_frame == 3
        assert not reader.has_more_images()

    def test_missing_depth_surfaces_on_read(self, dataset, reader):
        """선택 스트림(depth) 누락은 has_more_images가 아니라 read_next_frame에서 드러남"""
        os.remove(os.path.join(dataset, 'precomputed-depth/Frames', '0000.pgm'))

        assert reader.has_more_images()
        assert not reader.read_next_frame()
        assert reader.current_frame == 0

    def test_dimension_mismatch(self, dataset, reader):
        small = np.zeros((100, 200, 3), dtype=np.uint8)
        cv2.imwrite(os.path.join(dataset, 'image_2', '000000.png'), small)

        assert reader.has_more_images()
        assert not reader.read_next_frame()
        assert reader.current_frame == 0

    def test_retry_after_fix(self, dataset, layout, reader):
        path = os.path.join(dataset, 'image_0', '000000.png')
        os.remove(path)
        assert not reader.read_next_frame()

        write_frame(dataset, layout, 0)
        assert reader.read_next_frame()
        assert reader.current_frame == 1

    def test_frames_generator_stops_on_failure(self, dataset, reader):
        os.remove(os.path.join(dataset, 'precomputed-depth/Frames', '0002.pgm'))
        assert list(reader.frames()) == [0, 1]
        assert reader.current_frame == 2

    def test_empty_npy_depth_does_not_advance(self, dataset, layout, calibration, stereo):
        """비어 있는 .npy 깊이 파일은 예외 없이 False 반환"""
        variant = layout.derive(depth=StreamSpec('depth_npy', '%06d.npy'))
        folder = os.path.join(dataset, 'depth_npy')
        os.makedirs(folder)
        for idx in range(NUM_FRAMES):
            open(os.path.join(folder, '%06d.npy' % idx), 'wb').close()

        provider = PrecomputedDepthProvider(dataset, variant, stereo)
        reader = StereoFrameReader(dataset, variant, provider, calibration, stereo)

        assert not reader.read_next_frame()
        assert reader.current_frame == 0


class TestBorrowedBuffers:
    """버퍼 재사용 테스트"""

    def test_views_are_read_only(self, reader):
        assert reader.read_next_frame()
        rgb, depth = reader.get_cv_images()

        assert not rgb.flags.writeable
        assert not depth.flags.writeable
        with pytest.raises(ValueError):
            rgb[0, 0, 0] = 1

    def test_views_alias_reused_buffers(self, reader):
        """이전에 받은 뷰는 다음 읽기 후 새 내용을 보여줌"""
        assert reader.read_next_frame()
        rgb_first, depth_first = reader.get_cv_images()
        kept = rgb_first.copy()

        assert reader.read_next_frame()
        rgb_second, _ = reader.get_cv_images()

        assert np.shares_memory(rgb_first, rgb_second)
        assert np.all(rgb_first == 10)
        assert np.all(depth_first == 1001)
        assert np.all(kept == 0)


class TestRandomAccess:
    """임의 프레임 접근 테스트"""

    def test_returns_requested_frame(self, reader):
        rgb, depth = reader.get_frame_cv_images(3)

        assert rgb.shape == (HEIGHT, WIDTH, 3)
        assert np.all(rgb == 30)
        assert np.all(depth == 1003)

    def test_does_not_disturb_cursor(self, reader):
        assert reader.read_next_frame()
        rgb_view, depth_view = reader.get_cv_images()

        rgb, depth = reader.get_frame_cv_images(4)

        assert reader.current_frame == 1
        assert np.all(rgb_view == 0)
        assert np.all(depth_view == 1000)
        assert not np.shares_memory(rgb, rgb_view)
        assert rgb.flags.writeable

    def test_missing_frame_raises(self, reader):
        with pytest.raises(IOError):
            reader.get_frame_cv_images(NUM_FRAMES)

    def test_opencv_error_raises_io_error(self, dataset, layout, calibration, stereo):
        class FailingProvider(DepthProvider):
            def produce(self, left_gray, right_gray, frame_idx, out=None):
                raise cv2.error("matcher failed")

        reader = StereoFrameReader(dataset, layout, FailingProvider(stereo), calibration, stereo)

        with pytest.raises(IOError):
            reader.get_frame_cv_images(0)
        assert reader.current_frame == 0


class TestDepthProviderSwitch:
    """깊이 생성 전략 교체 테스트"""

    def test_swap_keeps_dimensions(self, dataset, calibration, stereo):
        layout = kitti_odometry_layout().derive(
            depth=StreamSpec('disparity', '%06d.pfm'),
            read_depth=False
        )
        os.makedirs(os.path.join(dataset, 'disparity'))
        for idx in range(NUM_FRAMES):
            write_pfm(os.path.join(dataset, 'disparity', '%06d.pfm' % idx),
                      np.full((HEIGHT, WIDTH), 20.0, dtype=np.float32))

        precomputed = PrecomputedDepthProvider(dataset, layout, stereo)
        reader = StereoFrameReader(dataset, layout, precomputed, calibration, stereo)

        assert reader.read_next_frame()
        _, depth = reader.get_cv_images()
        assert depth.shape == (HEIGHT, WIDTH)
        expected_mm = round(721.5 * 0.54 / 20.0 * 1000)
        assert abs(int(depth[0, 0]) - expected_mm) <= 1

        computed = StereoDepthProvider(stereo, num_disparities=16)
        reader.depth_provider = computed
        assert reader.depth_provider is computed

        assert reader.read_next_frame()
        _, depth = reader.get_cv_images()
        assert depth.shape == (HEIGHT, WIDTH)
        assert depth.dtype == np.uint16
        assert reader.current_frame == 2

    @pytest.mark.parametrize('read_depth', [True, False])
    def test_installed_provider_always_produces(self, dataset, layout, calibration, stereo, read_depth):
        """read_depth 값과 무관하게 설치된 전략의 produce 호출"""
        seen = []

        class RecordingProvider(DepthProvider):
            def produce(self, left_gray, right_gray, frame_idx, out=None):
                seen.append(frame_idx)
                out.fill(4321)
                return out

        reader = StereoFrameReader(
            dataset, layout.derive(read_depth=read_depth), RecordingProvider(stereo),
            calibration, stereo
        )

        assert reader.read_next_frame()
        assert reader.read_next_frame()
        assert seen == [0, 1]
        _, depth = reader.get_cv_images()
        assert np.all(depth == 4321)

    def test_stereo_mode_on_default_preset(self, dataset, calibration, stereo):
        """기본 프리셋(read_depth=True)에서도 stereo 모드는 SGBM 결과 사용"""
        config = IngestConfig(
            dataset_root=dataset,
            calibration=calibration,
            stereo=stereo,
            depth=DepthConfig(mode='stereo', num_disparities=16)
        )
        assert config.layout.read_depth

        reader = build_reader(config)
        assert isinstance(reader.depth_provider, StereoDepthProvider)

        calls = []
        original = reader.depth_provider.produce

        def counting_produce(left_gray, right_gray, frame_idx, out=None):
            calls.append(frame_idx)
            return original(left_gray, right_gray, frame_idx, out)

        reader.depth_provider.produce = counting_produce

        assert reader.read_next_frame()
        assert calls == [0]
        _, depth = reader.get_cv_images()
        # 사전 계산 파일 값(1000 mm)이 아니어야 함
        assert not np.all(depth == 1000)

    def test_produce_receives_fresh_gray(self, dataset, layout, calibration, stereo):
        seen = []

        class RecordingProvider(DepthProvider):
            def produce(self, left_gray, right_gray, frame_idx, out=None):
                seen.append((frame_idx, int(left_gray[0, 0]), int(right_gray[0, 0])))
                return out

        reader = StereoFrameReader(
            dataset, layout.derive(read_depth=False), RecordingProvider(stereo),
            calibration, stereo, frame_offset=2
        )
        assert reader.read_next_frame()
        assert seen == [(2, 20, 20)]


class TestLayoutVariants:
    """스트림 비활성화 테스트"""

    def test_disabled_stream_not_probed(self, dataset, layout, calibration, stereo):
        shutil.rmtree(os.path.join(dataset, 'image_3'))
        variant = layout.derive(right_color=None)

        provider = PrecomputedDepthProvider(dataset, variant, stereo)
        reader = StereoFrameReader(dataset, variant, provider, calibration, stereo)

        assert reader.has_more_images()
        assert reader.read_next_frame()
        left, right = reader.get_cv_stereo_color()
        assert left.shape == (HEIGHT, WIDTH, 3)
        assert right is None

    def test_no_image_streams_fails(self, dataset, layout, calibration, stereo):
        variant = layout.derive(left_gray=None, right_gray=None, left_color=None, right_color=None)
        with pytest.raises(ValueError):
            StereoFrameReader(dataset, variant, None, calibration, stereo)

    def test_without_depth_provider(self, dataset, layout, calibration, stereo):
        reader = StereoFrameReader(dataset, layout, None, calibration, stereo)
        assert reader.read_next_frame()
        _, depth = reader.get_cv_images()
        assert np.all(depth == 0)


class TestIdentifiers:
    """데이터셋 식별자 및 보조 스트림 경로 테스트"""

    def test_sequence_name(self, reader):
        assert reader.sequence_name == '00'
        assert reader.dataset_identifier == 'kitti-odometry-00'

    def test_trailing_separator(self, dataset, layout, calibration, stereo):
        reader = StereoFrameReader(dataset + os.sep, layout, None, calibration, stereo)
        assert reader.sequence_name == '00'

    def test_auxiliary_paths(self, dataset, reader):
        assert reader.lidar_path(7) == reader.dataset_root / 'velodyne' / '000007.bin'
        assert reader.segmentation_path(7) == reader.dataset_root / 'seg_image_2/mnc' / '000007.png'
        assert reader.ground_truth_path() == reader.dataset_root / 'ground-truth-poses.txt'

    def test_read_lidar(self, dataset, reader):
        os.makedirs(os.path.join(dataset, 'velodyne'))
        points = np.arange(20, dtype=np.float32)
        points.tofile(os.path.join(dataset, 'velodyne', '000001.bin'))

        scan = reader.read_lidar(1)
        assert scan.shape == (5, 4)
        np.testing.assert_array_equal(scan[1], [4, 5, 6, 7])

    def test_load_ground_truth(self, dataset, reader):
        with open(os.path.join(dataset, 'ground-truth-poses.txt'), 'w') as f:
            f.write('1 0 0 0 0 1 0 0 0 0 1 0\n')
            f.write('1 0 0 1.5 0 1 0 0 0 0 1 2.0\n')

        poses = reader.load_ground_truth()
        assert poses.shape == (2, 4, 4)
        np.testing.assert_allclose(poses[1, :3, 3], [1.5, 0.0, 2.0])

    def test_disabled_auxiliary_streams(self, dataset, layout, calibration, stereo):
        variant = layout.derive(velodyne=None, segmentation_folder=None, odometry_fname=None)
        reader = StereoFrameReader(dataset, variant, None, calibration, stereo)

        assert reader.lidar_path(0) is None
        assert reader.segmentation_path(0) is None
        assert reader.ground_truth_path() is None
        with pytest.raises(ValueError):
            reader.read_lidar(0)
        with pytest.raises(ValueError):
            reader.load_ground_truth()


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
