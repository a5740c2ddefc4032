"""Tests for render styles and the frame compositor."""

import math

import numpy as np
import pytest

from conftest import TEST_HEIGHT, TEST_WIDTH, make_sine
from waveframe.config import RenderConfig
from waveframe.core.signal import DecodedSignal
from waveframe.visualizers.colors import get_preset
from waveframe.visualizers.compositor import StyleCompositor
from waveframe.visualizers.styles import (
    STYLE_CONSTANTS,
    STYLE_RENDERERS,
    RenderStyle,
    pulse_radius,
    resample,
    sample_window,
    shape_amplitude,
)

BACKGROUND = (17, 24, 39, 255)


def _colors(frame) -> set:
    return {color for _, color in frame.getcolors(maxcolors=frame.width * frame.height)}


def _ramp_snapshot(n: int = 1024) -> np.ndarray:
    return (np.arange(n) * 255 // (n - 1)).astype(np.uint8)


class TestShaping:
    """Tests for amplitude shaping and resampling helpers."""

    def test_shape_endpoints(self):
        assert shape_amplitude(0.0, 720) == 0.0
        assert shape_amplitude(1.0, 720) == 720.0

    def test_shape_is_monotonic(self):
        values = np.linspace(0.0, 1.0, 101)
        shaped = [shape_amplitude(v, 540.0) for v in values]
        assert all(a <= b for a, b in zip(shaped, shaped[1:]))

    def test_shape_is_squared(self):
        assert shape_amplitude(0.5, 100.0) == pytest.approx(25.0)

    def test_shape_clips_out_of_range(self):
        assert shape_amplitude(-0.5, 100.0) == 0.0
        assert shape_amplitude(1.5, 100.0) == 100.0

    def test_resample_uses_floor_index(self):
        """Index i should map to floor(i / M * N)."""
        snapshot = np.arange(1024) % 256
        out = resample(snapshot, 360)
        for i in (0, 1, 179, 359):
            assert out[i] == snapshot[math.floor(i / 360 * 1024)]

    def test_resample_to_128(self):
        snapshot = np.arange(1024, dtype=np.int64)
        out = resample(snapshot, 128)
        assert len(out) == 128
        assert list(out[:3]) == [0, 8, 16]

    def test_sample_window_pads_with_silence(self):
        samples = np.ones(10, dtype=np.float32)
        window = sample_window(samples, -5, 20)
        assert window.tolist() == [0.0] * 5 + [1.0] * 10 + [0.0] * 5

    def test_sample_window_fully_outside(self):
        window = sample_window(np.ones(10, dtype=np.float32), 100, 8)
        assert not window.any()


class TestPulseRadius:
    """Tests for the bass-driven pulse radius."""

    def test_full_bass_reaches_maximum(self):
        """All-255 bass bins should give 10% + 50% of the height."""
        snapshot = np.zeros(1024, dtype=np.uint8)
        snapshot[:102] = 255
        assert pulse_radius(snapshot, 720) == pytest.approx(0.6 * 720)

    def test_silence_gives_base_radius(self):
        assert pulse_radius(np.zeros(1024, dtype=np.uint8), 720) == pytest.approx(72.0)

    def test_high_bins_are_ignored(self):
        snapshot = np.zeros(1024, dtype=np.uint8)
        snapshot[200:] = 255
        assert pulse_radius(snapshot, 720) == pytest.approx(72.0)


class TestCompositor:
    """Tests for background handling and style dispatch."""

    @pytest.fixture
    def snapshot(self):
        return _ramp_snapshot()

    def test_every_style_is_registered(self):
        assert set(STYLE_RENDERERS) == set(RenderStyle)

    @pytest.mark.parametrize("style", list(RenderStyle))
    def test_render_is_deterministic(self, compositor, mixed_decoded, snapshot, style):
        """Identical inputs should give byte-identical frames."""
        config = RenderConfig(style=style)
        a = compositor.render_frame(mixed_decoded, 0.75, snapshot, config)
        b = compositor.render_frame(mixed_decoded, 0.75, snapshot, config)
        assert a.size == (TEST_WIDTH, TEST_HEIGHT)
        assert a.tobytes() == b.tobytes()

    @pytest.mark.parametrize("style", [s for s in RenderStyle if s.uses_spectrum])
    def test_spectrum_styles_skip_without_snapshot(self, compositor, mixed_decoded, style):
        """Without a snapshot only the background is drawn."""
        frame = compositor.render_frame(mixed_decoded, 0.5, None, RenderConfig(style=style))
        assert _colors(frame) == {BACKGROUND}

    def test_transparent_background_is_cleared(self, compositor, mixed_decoded):
        config = RenderConfig(style=RenderStyle.EQUALIZER, transparent_background=True)
        frame = compositor.render_frame(mixed_decoded, 0.5, None, config)
        assert _colors(frame) == {(0, 0, 0, 0)}

    def test_reused_target_is_cleared(self, compositor, mixed_decoded, snapshot):
        """Rendering into a dirty buffer should not leak the previous frame."""
        target = compositor.new_frame()
        compositor.render(target, mixed_decoded, 0.5, snapshot, RenderConfig(style=RenderStyle.BOTTOM_BARS))
        compositor.render(target, mixed_decoded, 0.5, None, RenderConfig(style=RenderStyle.CIRCLE))
        assert _colors(target) == {BACKGROUND}

    def test_non_finite_position_renders(self, compositor, mixed_decoded):
        config = RenderConfig(style=RenderStyle.LINE)
        frame = compositor.render_frame(mixed_decoded, float("nan"), None, config)
        expected = compositor.render_frame(mixed_decoded, 0.0, None, config)
        assert frame.tobytes() == expected.tobytes()


class TestWaveformStyles:
    """Tests for Line, GradientLine and ReflectedLine."""

    @pytest.fixture
    def emerald(self):
        return get_preset("Emerald")

    def test_line_scenario(self, emerald):
        """A 2s 44.1kHz mono Line render is single-colored and moves with time."""
        sr = 44100
        signal = DecodedSignal.from_array(make_sine(2.0, sr), sr)
        compositor = StyleCompositor()
        config = RenderConfig(style=RenderStyle.LINE, color_preset=emerald)

        at_one = compositor.render_frame(signal, 1.0, None, config)
        at_zero = compositor.render_frame(signal, 0.0, None, config)

        assert _colors(at_one) == {BACKGROUND, (52, 211, 153, 255)}
        assert at_one.tobytes() != at_zero.tobytes()

    @pytest.mark.parametrize("position", [-3.0, 50.0])
    @pytest.mark.parametrize(
        "style", [RenderStyle.LINE, RenderStyle.GRADIENT_LINE, RenderStyle.REFLECTED_LINE]
    )
    def test_out_of_bounds_is_silence(self, compositor, sine_signal, emerald, style, position):
        """Windows outside the signal draw a flat line at the vertical center."""
        frame = compositor.render_frame(sine_signal, position, None, RenderConfig(style=style, color_preset=emerald))
        pixels = np.asarray(frame)
        drawn_rows = np.where((pixels[:, :, :3] != BACKGROUND[:3]).any(axis=(1, 2)))[0]
        assert len(drawn_rows) > 0
        assert drawn_rows.min() >= TEST_HEIGHT // 2 - 2
        assert drawn_rows.max() <= TEST_HEIGHT // 2 + 2

    def test_line_amplitude_bounds(self, compositor):
        """Full-scale samples map to at most +-25% of the height."""
        sr = 8000
        square = np.sign(make_sine(1.0, sr, 50.0)).astype(np.float32)
        signal = DecodedSignal.from_array(square, sr)
        frame = compositor.render_frame(signal, 0.5, None, RenderConfig(style=RenderStyle.LINE))
        pixels = np.asarray(frame)
        drawn_rows = np.where((pixels[:, :, :3] != BACKGROUND[:3]).any(axis=(1, 2)))[0]
        quarter = TEST_HEIGHT * STYLE_CONSTANTS.line_amplitude
        assert drawn_rows.min() >= TEST_HEIGHT / 2 - quarter - 2
        assert drawn_rows.max() <= TEST_HEIGHT / 2 + quarter + 2

    def test_reflection_adds_mirrored_stroke(self, compositor, sine_signal):
        plain = compositor.render_frame(sine_signal, 1.0, None, RenderConfig(style=RenderStyle.GRADIENT_LINE))
        reflected = compositor.render_frame(sine_signal, 1.0, None, RenderConfig(style=RenderStyle.REFLECTED_LINE))
        assert plain.tobytes() != reflected.tobytes()

    def test_gradient_line_uses_both_stops(self, compositor, sine_signal):
        frame = compositor.render_frame(sine_signal, 1.0, None, RenderConfig(style=RenderStyle.GRADIENT_LINE))
        pixels = np.asarray(frame)
        center = TEST_HEIGHT // 2
        band = pixels[center - TEST_HEIGHT // 4 - 2:center + TEST_HEIGHT // 4 + 2]
        left = band[:, :10][(band[:, :10, :3] != BACKGROUND[:3]).any(axis=2)]
        right = band[:, -10:][(band[:, -10:, :3] != BACKGROUND[:3]).any(axis=2)]
        # Synthwave runs pink (high red) to violet (high blue)
        assert left[:, 0].mean() > right[:, 0].mean()


class TestSpectrumStyles:
    """Tests for the bar, circle and pulse styles."""

    def test_silent_snapshot_draws_no_bars(self, compositor, mixed_decoded):
        zeros = np.zeros(1024, dtype=np.uint8)
        for style in (RenderStyle.EQUALIZER, RenderStyle.SYMMETRIC_BARS, RenderStyle.BOTTOM_BARS, RenderStyle.CIRCLE):
            frame = compositor.render_frame(mixed_decoded, 0.5, zeros, RenderConfig(style=style))
            assert _colors(frame) == {BACKGROUND}

    def test_bottom_bars_anchor_to_bottom(self, mixed_decoded):
        compositor = StyleCompositor(640, 360)
        snapshot = np.full(1024, 128, dtype=np.uint8)
        frame = compositor.render_frame(mixed_decoded, 0.5, snapshot, RenderConfig(style=RenderStyle.BOTTOM_BARS))
        pixels = np.asarray(frame)
        drawn = (pixels[:, :, :3] != BACKGROUND[:3]).any(axis=2)
        assert drawn[-1].any()
        assert not drawn[0].any()

    def test_symmetric_bars_are_centered(self, mixed_decoded):
        compositor = StyleCompositor(640, 360)
        snapshot = np.full(1024, 128, dtype=np.uint8)
        frame = compositor.render_frame(mixed_decoded, 0.5, snapshot, RenderConfig(style=RenderStyle.SYMMETRIC_BARS))
        pixels = np.asarray(frame)
        rows = np.where((pixels[:, :, :3] != BACKGROUND[:3]).any(axis=(1, 2)))[0]
        assert rows.min() > 0
        assert rows.max() < 359
        assert abs((rows.min() + rows.max()) / 2 - 180) <= 1

    def test_equalizer_uses_first_quarter_of_bins(self, mixed_decoded):
        """Energy above the first quarter of bins should not show up."""
        compositor = StyleCompositor(640, 360)
        snapshot = np.zeros(1024, dtype=np.uint8)
        snapshot[256:] = 255
        frame = compositor.render_frame(mixed_decoded, 0.5, snapshot, RenderConfig(style=RenderStyle.EQUALIZER))
        assert _colors(frame) == {BACKGROUND}

    def test_circle_ticks_start_at_inner_radius(self, compositor, mixed_decoded):
        snapshot = np.full(1024, 255, dtype=np.uint8)
        frame = compositor.render_frame(mixed_decoded, 0.5, snapshot, RenderConfig(style=RenderStyle.CIRCLE))
        pixels = np.asarray(frame)
        cx, cy = TEST_WIDTH // 2, TEST_HEIGHT // 2
        # Inside the inner radius nothing is drawn
        assert tuple(pixels[cy, cx]) == BACKGROUND
        assert tuple(pixels[cy, cx + int(TEST_HEIGHT * 0.25) + 5]) != BACKGROUND

    def test_pulse_scenario(self):
        """A full-bass snapshot gives the maximum radius, deterministically."""
        compositor = StyleCompositor()
        signal = DecodedSignal.from_array(np.zeros(4410, dtype=np.float32), 44100)
        snapshot = np.zeros(1024, dtype=np.uint8)
        snapshot[:102] = 255
        config = RenderConfig(style=RenderStyle.PULSE, color_preset=get_preset("Sky"))

        a = compositor.render_frame(signal, 0.05, snapshot, config)
        b = compositor.render_frame(signal, 0.05, snapshot, config)
        assert a.tobytes() == b.tobytes()

        radius = pulse_radius(snapshot, 720)
        assert radius == pytest.approx(432.0)
        pixels = np.asarray(a)
        # The fill covers the centre; the frame is too short to show the bottom edge
        assert tuple(pixels[360, 640]) != BACKGROUND
        assert tuple(pixels[360, 640 + int(radius) + 4]) == BACKGROUND
        assert tuple(pixels[360, 640 + int(radius) - 20]) != BACKGROUND
