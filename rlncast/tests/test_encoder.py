import random
from collections.abc import Iterator

import pytest

from rlncast.coding.encoder import Encoder, choose_piece_count, combine, split_payload
from rlncast.coding.params import CodingParams, frame_size, total_pieces
from rlncast.constants import FLAG_COMPRESSED, MAX_FRAME_BYTES_MIN
from rlncast.errors import ConfigError, EmptyPayloadError, PieceTooLargeError
from rlncast.tests import MID


def _enc(seed: int = 1, **params) -> Encoder:
    return Encoder(CodingParams(**params), rng=random.Random(seed))


def test_empty_payload_fails_before_any_piece():
    with pytest.raises(EmptyPayloadError):
        _enc().encode(b"")


def test_oversized_piece_fails_eagerly_with_sizing_details():
    enc = _enc(piece_count=2, max_frame_bytes=900)
    with pytest.raises(PieceTooLargeError) as ei:
        enc.encode(b"x" * 2000)
    err = ei.value
    assert err.frame_size == 26 + 2 + 1000
    assert err.ceiling == 900
    assert err.piece_count == 2
    # 26 + 3 + ceil(2000 / 3) = 696 fits
    assert err.suggested_k == 3
    assert err.details["suggested_k"] == 3


def test_produces_n_pieces_with_sequential_tags_and_one_message_id():
    pieces = list(_enc(piece_count=8, redundancy=1.5).encode(b"a" * 900))
    assert len(pieces) == 12
    assert [p.seq for p in pieces] == list(range(12))
    assert len({p.message_id for p in pieces}) == 1
    for p in pieces:
        assert p.piece_count == 8
        assert p.length == 900
        assert len(p.payload) == 113
        assert all(c != 0 for c in p.coefficients)


def test_pieces_are_produced_lazily_and_once():
    it = _enc(piece_count=4, redundancy=1.5).encode(b"hello world")
    assert isinstance(it, Iterator)
    first = next(it)
    assert first.seq == 0
    rest = list(it)
    assert [p.seq for p in rest] == [1, 2, 3, 4, 5]
    assert list(it) == []


def test_seeded_rng_is_deterministic():
    a = list(_enc(seed=42).encode(b"payload" * 20, message_id=MID))
    b = list(_enc(seed=42).encode(b"payload" * 20, message_id=MID))
    c = list(_enc(seed=43).encode(b"payload" * 20, message_id=MID))
    assert a == b
    assert a != c


def test_per_call_k_and_redundancy_override_profile():
    pieces = list(_enc(piece_count=8).encode(b"z" * 100, 4, 2.0))
    assert len(pieces) == 8
    assert all(p.piece_count == 4 for p in pieces)


@pytest.mark.parametrize(
    "k, r, n",
    [(8, 1.0, 8), (8, 1.1, 9), (8, 1.5, 12), (3, 1.5, 5), (16, 2.0, 32)],
)
def test_total_pieces_is_ceil_k_times_r(k, r, n):
    assert total_pieces(k, r) == n


def test_redundancy_below_one_is_rejected():
    with pytest.raises(ConfigError):
        CodingParams(redundancy=0.9)
    with pytest.raises(ConfigError):
        _enc().encode(b"abc", 4, 0.5)


def test_piece_count_below_two_is_rejected():
    with pytest.raises(ConfigError):
        CodingParams(piece_count=1)


def test_flags_and_message_id_are_carried():
    pieces = list(_enc().encode(b"q" * 50, message_id=MID, flags=FLAG_COMPRESSED))
    assert all(p.message_id == MID and p.compressed for p in pieces)
    with pytest.raises(ValueError):
        _enc().encode(b"q", message_id=b"\x00" * 4)


def test_fresh_message_id_per_call():
    enc = _enc()
    a = next(enc.encode(b"same"))
    b = next(enc.encode(b"same"))
    assert a.message_id != b.message_id
    assert len(a.message_id) == 16


def test_split_payload_zero_pads_last_piece():
    assert split_payload(b"abcde", 2) == [b"abc", b"de\x00"]
    assert split_payload(b"abcd", 2) == [b"ab", b"cd"]
    assert split_payload(b"a", 3) == [b"a", b"\x00", b"\x00"]


def test_unit_coefficient_vectors_give_source_pieces():
    sources = split_payload(b"0123456789", 3)
    for i in range(3):
        coeffs = [1 if j == i else 0 for j in range(3)]
        p = combine(sources, coeffs, message_id=MID, length=10, seq=i)
        assert p.payload == sources[i]
    with pytest.raises(ValueError):
        combine(sources, [1, 2], message_id=MID, length=10)


def test_choose_piece_count_raises_k_until_frames_fit():
    params = CodingParams(piece_count=2, max_frame_bytes=900)
    assert choose_piece_count(100, params) == 2
    k = choose_piece_count(2000, params)
    assert k == 3
    assert frame_size(2000, k) <= 900


def test_choose_piece_count_fails_when_nothing_fits():
    params = CodingParams(piece_count=2, max_frame_bytes=MAX_FRAME_BYTES_MIN)
    with pytest.raises(PieceTooLargeError) as ei:
        choose_piece_count(1_000_000, params)
    assert ei.value.suggested_k is None


def test_params_fit_and_derived_sizes():
    params = CodingParams(piece_count=8, max_frame_bytes=900)
    assert params.max_share_bytes == 900 - 26 - 8
    assert params.max_payload_bytes == 866 * 8
    assert params.fits(900)
    assert not params.fits(2000, 2)
    assert params.total_pieces == 12
