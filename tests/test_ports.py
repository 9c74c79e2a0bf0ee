import pytest

from hlsbridge.engine.ports import PortPair, PortPool
from hlsbridge.exceptions import PortPoolExhaustedError


def test_pairs_are_even_odd_and_start_aligned() -> None:
    pool = PortPool(40001, 40010)

    pair = pool.allocate_pair()

    assert pair == PortPair(40002, 40003)
    assert pool.capacity == 4


def test_pool_exhaustion_and_release() -> None:
    pool = PortPool(40000, 40006)
    pairs = [pool.allocate_pair() for _ in range(3)]

    assert [pair.rtp for pair in pairs] == [40000, 40002, 40004]
    with pytest.raises(PortPoolExhaustedError):
        pool.allocate_pair()

    pool.release(pairs[1])
    assert pool.allocate_pair() == PortPair(40002, 40003)


def test_released_pair_is_not_reused_immediately() -> None:
    pool = PortPool(40000, 40010)
    first = pool.allocate_pair()
    pool.release(first)

    assert pool.allocate_pair() == PortPair(40002, 40003)
    assert [pair.rtp for pair in pool.in_use()] == [40002]


def test_release_of_unknown_pair_is_ignored() -> None:
    pool = PortPool(40000, 40010)

    pool.release(None)
    pool.release(PortPair(50000, 50001))

    assert pool.in_use() == []


def test_range_without_a_pair_is_rejected() -> None:
    with pytest.raises(ValueError):
        PortPool(40001, 40002)
