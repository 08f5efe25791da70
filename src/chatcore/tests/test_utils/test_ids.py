import re

import pytest

from chatcore.utils.ids import (
    CROCKFORD_ALPHABET,
    IDGenerator,
    decode_ulid_timestamp,
    encode_ulid,
)

ULID_RE = re.compile(rf"^[{CROCKFORD_ALPHABET}]{{26}}$")


class FrozenClock:
    def __init__(self, ms: int):
        self.ms = ms

    def __call__(self) -> int:
        return self.ms


class TestIDGenerator:

    def test_new_has_prefix_and_ulid_body(self):
        value = IDGenerator().new("msg")

        prefix, _, body = value.partition("_")
        assert prefix == "msg"
        assert ULID_RE.match(body)

    def test_ids_sort_in_creation_order_within_same_millisecond(self):
        """
        Behavior:
            - Generate many ids while the clock does not move.

        Importance:
            - Message ids break ties between equal timestamps, so they must keep
              creation order even when generated in the same millisecond.
        """
        gen = IDGenerator(clock=FrozenClock(1_700_000_000_000))
        ids = [gen.new("msg") for _ in range(500)]

        assert ids == sorted(ids)
        assert len(set(ids)) == len(ids)

    def test_ids_stay_monotonic_when_clock_goes_back(self):
        clock = FrozenClock(1_700_000_000_500)
        gen = IDGenerator(clock=clock)
        first = gen.new("conv")
        clock.ms -= 400
        second = gen.new("conv")

        assert second > first

    def test_timestamp_is_encoded(self):
        gen = IDGenerator(clock=FrozenClock(1_700_000_000_123))
        body = gen.new("user").split("_", 1)[1]

        assert decode_ulid_timestamp(body) == 1_700_000_000_123

    def test_later_millisecond_sorts_after(self):
        clock = FrozenClock(1_000)
        gen = IDGenerator(clock=clock)
        early = gen.new("msg")
        clock.ms = 1_001
        assert gen.new("msg") > early


@pytest.mark.parametrize("ms", [0, 1, 2**48 - 1])
def test_encode_ulid_length(ms):
    assert len(encode_ulid(ms, 0)) == 26
