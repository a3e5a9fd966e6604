import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from rlncast.coding import gf256
from rlncast.errors import FieldDomainError

elems = st.integers(min_value=0, max_value=255)
nonzero = st.integers(min_value=1, max_value=255)


def _slow_mul(a: int, b: int) -> int:
    """Carry-less multiply reduced by 0x11D (reference, no tables)."""
    r = 0
    while b:
        if b & 1:
            r ^= a
        b >>= 1
        a <<= 1
        if a & 0x100:
            a ^= gf256.PRIMITIVE_POLY
    return r


def test_multiply_matches_reference_for_every_pair():
    for a in range(256):
        for b in range(256):
            assert gf256.multiply(a, b) == _slow_mul(a, b)


def test_generator_has_full_order():
    seen = {gf256.power(gf256.GENERATOR, i) for i in range(255)}
    assert len(seen) == 255
    assert 0 not in seen
    assert gf256.power(gf256.GENERATOR, 255) == 1


def test_inverse_of_every_nonzero_element():
    for a in range(1, 256):
        assert gf256.multiply(a, gf256.inverse(a)) == 1


def test_inverse_of_zero_is_a_domain_error():
    with pytest.raises(FieldDomainError):
        gf256.inverse(0)
    # also catchable as the builtin arithmetic error
    with pytest.raises(ZeroDivisionError):
        gf256.inverse(0)
    with pytest.raises(FieldDomainError):
        gf256.divide(7, 0)


def test_add_is_xor_and_self_inverse():
    assert gf256.add(0x53, 0xCA) == 0x99
    for a in range(256):
        assert gf256.add(a, a) == 0
        assert gf256.subtract(a, 0) == a


@settings(max_examples=200)
@given(elems, elems, elems)
def test_field_axioms(a, b, c):
    mul, add = gf256.multiply, gf256.add
    assert mul(a, b) == mul(b, a)
    assert mul(a, mul(b, c)) == mul(mul(a, b), c)
    assert mul(a, add(b, c)) == add(mul(a, b), mul(a, c))
    assert mul(a, 1) == a
    assert mul(a, 0) == 0


@given(elems, nonzero)
def test_divide_undoes_multiply(a, b):
    assert gf256.divide(gf256.multiply(a, b), b) == a


def test_mul_row_is_the_multiplication_table_row():
    row = gf256.mul_row(0x1D)
    assert len(row) == 256
    assert all(row[x] == gf256.multiply(0x1D, x) for x in range(256))


def test_scale_matches_scalar_multiply():
    buf = bytes(range(256))
    for c in (0, 1, 2, 0x8E, 255):
        assert gf256.scale(c, buf) == bytes(gf256.multiply(c, x) for x in buf)


def test_add_into_xors_and_checks_lengths():
    assert gf256.add_into(b"\x0f\xf0", b"\xff\xff") == b"\xf0\x0f"
    assert gf256.add_into(b"", b"") == b""
    # leading zero bytes survive the int round trip
    assert gf256.add_into(b"\x00\x00\x01", b"\x00\x00\x01") == b"\x00\x00\x00"
    with pytest.raises(ValueError):
        gf256.add_into(b"\x00", b"\x00\x00")


def test_axpy_and_dot():
    x = bytes([1, 2, 3, 4])
    y = bytes([9, 9, 9, 9])
    assert gf256.axpy(y, 0, x) == y
    assert gf256.axpy(y, 3, x) == bytes(gf256.add(yy, gf256.multiply(3, xx)) for xx, yy in zip(x, y))

    rows = [bytes([1, 0, 5]), bytes([0, 7, 5])]
    expected = bytes(
        gf256.add(gf256.multiply(2, r0), gf256.multiply(9, r1)) for r0, r1 in zip(rows[0], rows[1])
    )
    assert gf256.dot([2, 9], rows) == expected
    with pytest.raises(ValueError):
        gf256.dot([1], rows)


def test_first_nonzero_and_is_zero():
    assert gf256.first_nonzero(bytes([0, 0, 3, 1])) == 2
    assert gf256.first_nonzero(bytes(4)) == -1
    assert gf256.is_zero(bytes(8))
    assert not gf256.is_zero(b"\x00\x01")
