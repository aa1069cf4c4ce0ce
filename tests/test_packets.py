import struct

import pytest

from processing.packets import (
    FULL_PACKET_SIZE,
    HALF_PACKET_SIZE,
    FrameDecoder,
    PacketReassembler,
    encode_frame,
    split_frame,
)


def _half(key: int, fill: int) -> bytes:
    return bytes([key]) + bytes([fill]) * 12


def test_full_packet_returns_payload_without_index_byte():
    r = PacketReassembler()
    packet = bytes([7]) + bytes(range(24))
    assert r.submit(packet) == bytes(range(24))
    assert r.frames_completed == 1
    assert r.pending_count == 0


def test_two_halves_with_same_key_merge_in_arrival_order():
    r = PacketReassembler()
    assert r.submit(_half(5, 0xAA)) is None
    assert r.pending_keys() == (5,)

    payload = r.submit(_half(5, 0xBB))
    assert payload == bytes([0xAA]) * 12 + bytes([0xBB]) * 12
    assert r.pending_count == 0
    assert r.fragments_merged == 1


def test_interleaved_keys_are_kept_apart():
    r = PacketReassembler()
    assert r.submit(_half(1, 0x01)) is None
    assert r.submit(_half(2, 0x02)) is None
    assert r.submit(_half(2, 0x22)) == bytes([0x02]) * 12 + bytes([0x22]) * 12
    assert r.pending_keys() == (1,)
    assert r.submit(_half(1, 0x11)) == bytes([0x01]) * 12 + bytes([0x11]) * 12


@pytest.mark.parametrize("size", [0, 1, 12, 14, 24, 26, 40])
def test_other_lengths_are_dropped_without_touching_pending(size):
    r = PacketReassembler()
    r.submit(_half(3, 0x00))
    assert r.submit(bytes(size)) is None
    assert r.packets_dropped == 1
    assert r.pending_keys() == (3,)


def test_pending_fragments_never_expire_by_default(fake_clock):
    r = PacketReassembler(clock=fake_clock)
    r.submit(_half(9, 0x01))
    fake_clock.advance(3600)
    assert r.submit(_half(9, 0x02)) is not None
    assert r.fragments_expired == 0


def test_stale_fragment_is_expired_when_age_limit_set(fake_clock):
    r = PacketReassembler(max_pending_age_s=0.5, clock=fake_clock)
    r.submit(_half(9, 0x01))
    fake_clock.advance(1.0)

    # the old first half is gone, so this one becomes a new first half
    assert r.submit(_half(9, 0x02)) is None
    assert r.fragments_expired == 1
    assert r.pending_keys() == (9,)


def test_negative_age_limit_rejected():
    with pytest.raises(ValueError):
        PacketReassembler(max_pending_age_s=-1)


def test_decoder_reads_big_endian_signed_values():
    values = [0, 1, -1, 32767, -32768, 1000, -1000, 256, -256, 12, -12, 7]
    payload = struct.pack(">12h", *values)
    dec = FrameDecoder()

    first = dec.decode(payload)
    second = dec.decode(payload)

    assert first.leads == tuple(float(v) for v in values)
    assert first.sample_index == 0.0
    assert second.sample_index == 1.0


def test_decoder_rejects_wrong_payload_length():
    with pytest.raises(ValueError):
        FrameDecoder().decode(bytes(23))


def test_encode_and_split_produce_wire_sized_packets():
    packet = encode_frame(300, [100] * 12)
    assert len(packet) == FULL_PACKET_SIZE
    assert packet[0] == 300 & 0xFF

    first, second = split_frame(packet)
    assert len(first) == len(second) == HALF_PACKET_SIZE
    assert first[0] == second[0] == packet[0]


def test_encode_clips_to_int16_range():
    packet = encode_frame(0, [40000, -40000] + [0] * 10)
    assert struct.unpack(">2h", packet[1:5]) == (32767, -32768)
