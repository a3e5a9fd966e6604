import itertools
import random

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from rlncast.coding.decoder import DecoderSession, IngestOutcome, SessionState
from rlncast.coding.encoder import Encoder
from rlncast.coding.params import CodingParams
from rlncast.coding.piece import CodedPiece
from rlncast.errors import InconsistentPieceError, SessionClosedError
from rlncast.tests import MID, derived_piece, vandermonde_pieces


def _session(piece: CodedPiece, **kw) -> DecoderSession:
    return DecoderSession.from_piece(piece, **kw)


def test_exactly_k_independent_pieces_complete_the_session():
    payload = b"The quick brown fox jumps over the lazy dog"
    pieces = vandermonde_pieces(payload, 5, 5)
    s = _session(pieces[0])
    outcomes = [s.ingest(p) for p in pieces]
    assert outcomes[:-1] == [IngestOutcome.INNOVATIVE] * 4
    assert outcomes[-1] is IngestOutcome.COMPLETED
    assert s.state is SessionState.COMPLETE
    assert s.rank == 5 and s.missing == 0
    assert s.payload == payload


def test_length_not_a_multiple_of_k_is_truncated_back():
    payload = bytes(range(10))
    pieces = vandermonde_pieces(payload, 3, 3)
    s = _session(pieces[0])
    for p in pieces:
        s.ingest(p)
    assert s.payload == payload
    assert len(s.payload) == 10


def test_every_permutation_decodes_identically():
    payload = b"order should not matter at all!"
    pieces = vandermonde_pieces(payload, 4, 4)
    results = set()
    for perm in itertools.permutations(pieces):
        s = _session(perm[0])
        for p in perm:
            s.ingest(p)
        results.add(s.payload)
    assert results == {payload}


def test_duplicate_piece_is_redundant_and_changes_nothing():
    pieces = vandermonde_pieces(b"x" * 40, 4, 4)
    s = _session(pieces[0])
    assert s.ingest(pieces[0]) is IngestOutcome.INNOVATIVE
    before = (s.rank, s.pivots, s.state)
    assert s.ingest(pieces[0]) is IngestOutcome.REDUNDANT
    assert (s.rank, s.pivots, s.state) == before


def test_linearly_derived_piece_is_redundant():
    pieces = vandermonde_pieces(b"derivable" * 5, 4, 4)
    s = _session(pieces[0])
    s.ingest(pieces[0])
    s.ingest(pieces[1])
    assert s.ingest(derived_piece(pieces[0], pieces[1])) is IngestOutcome.REDUNDANT
    assert s.rank == 2
    # the remaining two still complete it
    s.ingest(pieces[2])
    assert s.ingest(pieces[3]) is IngestOutcome.COMPLETED
    assert s.payload == b"derivable" * 5


def test_zero_coefficient_vector_is_redundant():
    p = vandermonde_pieces(b"abcdefgh", 4, 1)[0]
    zero = CodedPiece(
        message_id=p.message_id,
        piece_count=4,
        length=p.length,
        seq=50,
        coefficients=bytes(4),
        payload=bytes(len(p.payload)),
    )
    s = _session(p)
    assert s.ingest(zero) is IngestOutcome.REDUNDANT
    assert s.rank == 0


def test_pivot_is_first_nonzero_column_after_elimination():
    p = CodedPiece(
        message_id=MID,
        piece_count=4,
        length=8,
        seq=0,
        coefficients=bytes([0, 3, 0, 9]),
        payload=bytes(2),
    )
    s = _session(p)
    s.ingest(p)
    assert s.pivots == (1,)


def test_fewer_than_k_pieces_never_complete():
    payload = b"k minus one is not enough" * 3
    pieces = vandermonde_pieces(payload, 6, 12)
    s = _session(pieces[0])
    for p in pieces[:5]:
        assert s.ingest(p) is IngestOutcome.INNOVATIVE
    assert s.state is SessionState.COLLECTING
    assert s.missing == 1
    with pytest.raises(SessionClosedError):
        _ = s.payload


def test_inconsistent_piece_is_rejected_without_state_change():
    pieces = vandermonde_pieces(b"a" * 30, 3, 3)
    s = _session(pieces[0])
    s.ingest(pieces[0])
    other_len = vandermonde_pieces(b"a" * 31, 3, 3)[1]
    other_id = vandermonde_pieces(b"a" * 30, 3, 3, message_id=b"\xff" * 16)[1]
    other_flags = vandermonde_pieces(b"a" * 30, 3, 3, flags=1)[1]
    for bad in (other_len, other_id, other_flags):
        with pytest.raises(InconsistentPieceError):
            s.ingest(bad)
    assert s.rank == 1
    assert s.state is SessionState.COLLECTING


def test_ingest_after_completion_is_rejected():
    pieces = vandermonde_pieces(b"done", 2, 3)
    s = _session(pieces[0])
    s.ingest(pieces[0])
    s.ingest(pieces[1])
    assert s.state is SessionState.COMPLETE
    with pytest.raises(SessionClosedError):
        s.ingest(pieces[2])


def test_expiry_discards_rows_and_blocks_ingest():
    pieces = vandermonde_pieces(b"slowpoke" * 4, 4, 4)
    s = _session(pieces[0], created_at=100.0, timeout=30.0)
    s.ingest(pieces[0])
    s.ingest(pieces[1])
    assert s.check_expired(129.0) is False
    assert s.check_expired(130.0) is False  # strictly greater than the timeout
    assert s.check_expired(130.5) is True
    assert s.state is SessionState.EXPIRED
    assert s.rank == 0
    assert s.age(130.5) == pytest.approx(30.5)
    with pytest.raises(SessionClosedError):
        s.ingest(pieces[2])
    with pytest.raises(SessionClosedError):
        _ = s.payload


def test_complete_session_does_not_expire():
    pieces = vandermonde_pieces(b"fast", 2, 2)
    s = _session(pieces[0], created_at=0.0, timeout=1.0)
    s.ingest(pieces[0])
    s.ingest(pieces[1])
    assert s.check_expired(1000.0) is False
    assert s.state is SessionState.COMPLETE


def test_random_pieces_with_double_redundancy_decode():
    payload = bytes(random.Random(5).getrandbits(8) for _ in range(700))
    enc = Encoder(CodingParams(piece_count=16, redundancy=2.0), rng=random.Random(9))
    pieces = list(enc.encode(payload))
    s = _session(pieces[0])
    for p in pieces:
        if s.state is SessionState.COMPLETE:
            break
        s.ingest(p)
    assert s.state is SessionState.COMPLETE
    assert s.payload == payload


@settings(max_examples=60, deadline=None)
@given(
    payload=st.binary(min_size=1, max_size=300),
    k=st.integers(min_value=2, max_value=12),
    data=st.data(),
)
def test_round_trip_any_k_subset_any_order_with_duplicates(payload, k, data):
    n = k + data.draw(st.integers(min_value=0, max_value=8), label="extra")
    pieces = vandermonde_pieces(payload, k, n)
    chosen = data.draw(st.permutations(range(n)), label="order")[:k]
    dups = data.draw(st.lists(st.sampled_from(chosen), max_size=6), label="dups")
    stream = [pieces[i] for i in chosen]
    for j, i in enumerate(dups):
        stream.insert(min(len(stream) - 1, j), pieces[i])

    s = _session(stream[0])
    for p in stream:
        if s.state is SessionState.COMPLETE:
            break
        s.ingest(p)
    assert s.state is SessionState.COMPLETE
    assert s.payload == payload
