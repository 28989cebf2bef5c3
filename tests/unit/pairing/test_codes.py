from __future__ import annotations

from wp_agentic.pairing.codes import (
    USER_CODE_ALPHABET,
    generate_device_code,
    generate_user_code,
    hash_device_code,
    is_well_formed_user_code,
    normalize_user_code,
)


def test_user_code_shape() -> None:
    codes = {generate_user_code() for _ in range(200)}
    assert all(len(c) == 8 and set(c) <= set(USER_CODE_ALPHABET) for c in codes)
    assert len(codes) > 190
    assert not set("01IO") & set(USER_CODE_ALPHABET)


def test_device_code_is_long_and_unique() -> None:
    first, second = generate_device_code(), generate_device_code()
    assert first != second
    assert len(first) >= 32


def test_normalize_user_code() -> None:
    assert normalize_user_code("  ab3d-e9f2 ") == "AB3DE9F2"
    assert is_well_formed_user_code("AB3DE9F2")
    assert not is_well_formed_user_code("AB3DE9F0")


def test_device_code_hash_is_stable() -> None:
    assert hash_device_code("abc") == hash_device_code("abc")
    assert hash_device_code("abc") != hash_device_code("abd")
