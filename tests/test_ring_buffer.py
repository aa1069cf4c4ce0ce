import numpy as np
import pytest

from utils.ring_buffer import SampleBuffer, WaveformPoint, WaveformRingBuffer


def test_waveform_buffer_drops_oldest_when_full():
    buf = WaveformRingBuffer(leads=12, capacity=200)
    for i in range(201):
        buf.push(0, WaveformPoint(float(i), float(-i)))

    pts = buf.points(0)
    assert len(pts) == 200
    assert pts[0] == WaveformPoint(1.0, -1.0)
    assert pts[-1] == WaveformPoint(200.0, -200.0)
    assert buf.points(1) == []


def test_push_frame_fans_out_to_every_lead():
    buf = WaveformRingBuffer(leads=3, capacity=4)
    buf.push_frame(5.0, [1.0, 2.0, 3.0])
    assert [buf.points(i)[0].y for i in range(3)] == [1.0, 2.0, 3.0]
    assert all(buf.points(i)[0].x == 5.0 for i in range(3))

    buf.clear()
    assert all(buf.points(i) == [] for i in range(3))


@pytest.mark.parametrize("leads, capacity", [(0, 10), (12, 0), (-1, 5)])
def test_non_positive_sizes_rejected(leads, capacity):
    with pytest.raises(ValueError):
        WaveformRingBuffer(leads, capacity)


def test_sample_buffer_keeps_most_recent_values():
    buf = SampleBuffer(capacity=1500)
    for i in range(1600):
        buf.append(i)

    arr = buf.to_array()
    assert len(buf) == 1500
    assert arr[0] == 100.0
    assert arr[-1] == 1599.0
    assert arr.dtype == np.float64
