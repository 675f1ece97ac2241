"""
Tests for maci.contracts.vk_registry.

Covers:
- 역할별 등록 / 조회 / 미등록 조회
- 한 번만 쓰기 (기존 키 보존)
- 일괄 등록의 원자성 (하나라도 있으면 아무것도 쓰지 않음)
- 파라미터 검증, TinyDB 파일 영속성
"""

import pytest

from maci.contracts.storage import open_db
from maci.contracts.vk_registry import VkRegistry, vk_key, validate_vk_params
from maci.domain import Mode
from maci.errors import VkAlreadySetError, VkNotSetError, InvalidVkParamsError, RegistryError
from maci.packing import gen_poll_vk_sig, gen_process_vk_sig, gen_tally_vk_sig


STD, ISTD, MTD, VOTD, BATCH = 10, 1, 2, 2, 25


@pytest.fixture
def registry():
    return VkRegistry()


class TestSingleSlot:
    def test_set_and_get(self, registry, dummy_vk):
        sig = gen_process_vk_sig(STD, VOTD, BATCH)
        registry.set_process_vk(sig, Mode.QV, dummy_vk)
        assert registry.is_process_vk_set(sig, Mode.QV)
        assert registry.get_process_vk_by_sig(sig, Mode.QV) == dummy_vk

    def test_modes_are_separate_slots(self, registry, dummy_vk):
        sig = gen_tally_vk_sig(STD, ISTD, VOTD)
        registry.set_tally_vk(sig, Mode.QV, dummy_vk)
        assert not registry.is_tally_vk_set(sig, Mode.NON_QV)
        with pytest.raises(VkNotSetError):
            registry.get_tally_vk_by_sig(sig, Mode.NON_QV)

    def test_write_once(self, registry, dummy_vk, other_vk):
        """두 번째 쓰기는 실패하고 첫 키가 남는다."""
        sig = gen_poll_vk_sig(STD, VOTD)
        registry.set_poll_vk(sig, Mode.QV, dummy_vk)
        with pytest.raises(VkAlreadySetError):
            registry.set_poll_vk(sig, Mode.QV, other_vk)
        assert registry.get_poll_vk_by_sig(sig) == dummy_vk

    def test_get_unset(self, registry):
        with pytest.raises(VkNotSetError):
            registry.get_process_vk(STD, VOTD, BATCH, Mode.QV)

    def test_unknown_kind(self, registry):
        with pytest.raises(ValueError):
            registry.is_set("deactivate", 1, Mode.QV)

    def test_key_format(self):
        assert vk_key("tally", 77, Mode.NON_QV) == "tally.1.77"


class TestSetVerifyingKeys:
    def test_registers_three_roles(self, registry, dummy_vk, other_vk):
        registry.set_verifying_keys(STD, ISTD, MTD, VOTD, BATCH, Mode.QV,
                                    dummy_vk, other_vk, dummy_vk)
        assert registry.get_poll_vk(STD, VOTD) == dummy_vk
        assert registry.get_process_vk(STD, VOTD, BATCH, Mode.QV) == other_vk
        assert registry.get_tally_vk(STD, ISTD, VOTD, Mode.QV) == dummy_vk

    def test_batch_both_modes(self, registry, dummy_vk, other_vk):
        registry.set_verifying_keys_batch(STD, ISTD, MTD, VOTD, BATCH, [Mode.QV, Mode.NON_QV],
                                          dummy_vk, [dummy_vk, other_vk], [other_vk, dummy_vk])
        assert registry.get_process_vk(STD, VOTD, BATCH, Mode.NON_QV) == other_vk
        assert registry.get_tally_vk(STD, ISTD, VOTD, Mode.NON_QV) == dummy_vk

    def test_atomic_on_conflict(self, registry, dummy_vk, other_vk):
        """NON_QV 처리 슬롯이 이미 있으면 QV 슬롯도 쓰지 않는다."""
        registry.set_process_vk(gen_process_vk_sig(STD, VOTD, BATCH), Mode.NON_QV, other_vk)
        with pytest.raises(VkAlreadySetError):
            registry.set_verifying_keys_batch(STD, ISTD, MTD, VOTD, BATCH,
                                              [Mode.QV, Mode.NON_QV], dummy_vk,
                                              [dummy_vk, dummy_vk], [dummy_vk, dummy_vk])
        assert not registry.is_poll_vk_set(gen_poll_vk_sig(STD, VOTD), Mode.QV)
        assert not registry.is_process_vk_set(gen_process_vk_sig(STD, VOTD, BATCH), Mode.QV)
        assert registry.get_process_vk(STD, VOTD, BATCH, Mode.NON_QV) == other_vk

    def test_mode_count_mismatch(self, registry, dummy_vk):
        with pytest.raises(InvalidVkParamsError):
            registry.set_verifying_keys_batch(STD, ISTD, MTD, VOTD, BATCH, [Mode.QV],
                                              dummy_vk, [dummy_vk, dummy_vk], [dummy_vk])

    def test_duplicate_modes(self, registry, dummy_vk):
        with pytest.raises(InvalidVkParamsError):
            registry.set_verifying_keys_batch(STD, ISTD, MTD, VOTD, BATCH, [Mode.QV, Mode.QV],
                                              dummy_vk, [dummy_vk] * 2, [dummy_vk] * 2)


class TestValidateParams:
    @pytest.mark.parametrize("params", [
        (0, 1, 2, 2, 25),
        (10, 11, 2, 2, 25),
        (10, 1, 2, 2, 26),
        (10, 1, 2, 2, 1 << 64),
        (10, 1, "2", 2, 25),
    ])
    def test_rejected(self, params):
        with pytest.raises(InvalidVkParamsError):
            validate_vk_params(*params)

    def test_registry_error_family(self):
        with pytest.raises(RegistryError):
            validate_vk_params(0, 1, 2, 2, 25)


class TestPersistence:
    def test_reopen_file_db(self, tmp_path, dummy_vk, other_vk):
        path = tmp_path / "vks.json"
        first = VkRegistry(open_db(path))
        first.set_verifying_keys(STD, ISTD, MTD, VOTD, BATCH, Mode.QV,
                                 dummy_vk, other_vk, dummy_vk)
        first.db.close()

        second = VkRegistry(open_db(path))
        assert second.get_process_vk(STD, VOTD, BATCH, Mode.QV) == other_vk
        with pytest.raises(VkAlreadySetError):
            second.set_verifying_keys(STD, ISTD, MTD, VOTD, BATCH, Mode.QV,
                                      dummy_vk, dummy_vk, dummy_vk)
