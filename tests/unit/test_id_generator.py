"""Tests for pm_common.id_generator."""

from src.pm_common.id_generator import generate_id


class TestGenerateId:
    def test_prefixed(self) -> None:
        result = generate_id("trd")
        assert isinstance(result, str)
        assert result.startswith("trd_")
        assert len(result) == len("trd_") + 20

    def test_unique_ids(self) -> None:
        ids = {generate_id("pay") for _ in range(1000)}
        assert len(ids) == 1000
