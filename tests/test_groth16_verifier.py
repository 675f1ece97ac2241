"""
Tests for maci.crypto.groth16 and maci.contracts.verifier.

Covers:
- 트랩도어 셋업으로 만든 증명의 페어링 검증 (유효 / 입력 변조 / C 변조)
- 입력 개수 불일치, 필드 범위 밖 입력, 곡선 밖 증명 (페어링 전 거부)
- G2 부분군 밖의 트위스트 점 B 거부
- 8개 정수 증명 인코딩
- Verifier 공개 입력 순서, Groth16Oracle / MockOracle
"""

import pytest
from py_ecc import bn128

from maci.contracts.verifier import Verifier, Groth16Oracle, MockOracle, check_public_inputs
from maci.crypto.field import FQ, G1, SNARK_FIELD_SIZE, ec_mul
from maci.crypto.groth16 import Proof, verify, is_well_formed, compute_vk_x
from maci.errors import InvalidPublicInputError


TALLY_INPUTS = [11, 22, 33, 44]


@pytest.fixture(scope="module")
def tally_vk(trapdoor):
    return trapdoor.vk(4)


@pytest.fixture(scope="module")
def tally_proof(trapdoor):
    return trapdoor.prove(TALLY_INPUTS)


def fq2_sqrt(a):
    """p ≡ 3 (mod 4) 인 FQ2 제곱근. 없으면 None."""
    p = bn128.field_modulus
    minus_one = bn128.FQ2([-1, 0])
    a1 = a ** ((p - 3) // 4)
    alpha = a1 * a1 * a
    if alpha ** p * alpha == minus_one:
        return None
    x0 = a1 * a
    if alpha == minus_one:
        return bn128.FQ2([0, 1]) * x0
    return (alpha + bn128.FQ2.one()) ** ((p - 1) // 2) * x0


def twist_point_outside_subgroup():
    """x = k + i 를 차례로 시도해 트위스트 곡선 위의 점을 찾는다.

    트위스트의 여인수가 크므로 이렇게 찾은 점은 G2 부분군에 속하지 않는다.
    """
    for k in range(1, 100):
        x = bn128.FQ2([k, 1])
        rhs = x ** 3 + bn128.b2
        y = fq2_sqrt(rhs)
        if y is not None and y * y == rhs:
            return (x, y)
    raise AssertionError("트위스트 곡선 위의 점을 찾지 못했습니다")


# ─────────────────────────────────────────────────────────────────────
# Groth16 페어링 검증
# ─────────────────────────────────────────────────────────────────────

class TestVerify:
    def test_valid_proof(self, tally_vk, tally_proof):
        assert verify(tally_vk, TALLY_INPUTS, tally_proof) is True

    def test_tampered_input_rejected(self, tally_vk, tally_proof):
        """공개 입력 하나만 바뀌어도 검증 실패"""
        assert verify(tally_vk, [11, 22, 33, 45], tally_proof) is False

    def test_tampered_proof_c_rejected(self, tally_vk, tally_proof):
        fake = Proof(tally_proof.a, tally_proof.b, ec_mul(G1, 12345))
        assert verify(tally_vk, TALLY_INPUTS, fake) is False

    def test_input_count_mismatch(self, tally_vk, tally_proof):
        assert verify(tally_vk, TALLY_INPUTS[:3], tally_proof) is False

    def test_input_out_of_field(self, tally_vk, tally_proof):
        assert verify(tally_vk, [SNARK_FIELD_SIZE, 22, 33, 44], tally_proof) is False

    def test_off_curve_proof(self, tally_vk, tally_proof):
        bad = Proof((FQ(1), FQ(1)), tally_proof.b, tally_proof.c)
        assert not is_well_formed(bad)
        assert verify(tally_vk, TALLY_INPUTS, bad) is False

    def test_twist_point_outside_subgroup(self, tally_vk, tally_proof):
        """곡선 위에 있지만 위수 r 부분군 밖인 B 는 페어링 전에 거부된다."""
        b = twist_point_outside_subgroup()
        assert bn128.is_on_curve(b, bn128.b2)
        assert bn128.multiply(b, bn128.curve_order) is not None
        bad = Proof(tally_proof.a, b, tally_proof.c)
        assert not is_well_formed(bad)
        assert verify(tally_vk, TALLY_INPUTS, bad) is False

    def test_valid_proof_in_subgroup(self, tally_proof):
        assert is_well_formed(tally_proof)

    def test_vk_x(self, trapdoor, tally_vk):
        """vk_x = (w₀ + Σ xᵢ·wᵢ₊₁)·G1"""
        expected = trapdoor.ic_scalar(0) + trapdoor.ic_scalar(1) * 2
        assert compute_vk_x(trapdoor.vk(1), [2]) == ec_mul(G1, expected)
        assert tally_vk.num_inputs == 4


class TestProofEncoding:
    def test_uint_list_round_trip(self, tally_proof):
        values = tally_proof.as_uint_list()
        assert len(values) == 8
        assert Proof.from_uint_list(values) == tally_proof

    def test_g2_imaginary_first(self, tally_proof):
        values = tally_proof.as_uint_list()
        assert values[2] == int(tally_proof.b[0].coeffs[1])
        assert values[3] == int(tally_proof.b[0].coeffs[0])

    def test_wrong_length(self):
        with pytest.raises(ValueError):
            Proof.from_uint_list([0] * 7)


# ─────────────────────────────────────────────────────────────────────
# Verifier 어댑터
# ─────────────────────────────────────────────────────────────────────

class TestVerifier:
    def test_groth16_oracle_accepts_uint_list(self, tally_vk, tally_proof):
        verifier = Verifier(Groth16Oracle())
        assert verifier.verify_tally(tally_vk, 11, 22, 33, 44, tally_proof.as_uint_list())

    def test_groth16_oracle_malformed_list(self, tally_vk):
        assert Groth16Oracle().verify(tally_vk, TALLY_INPUTS, [1, 2, 3]) is False

    def test_groth16_oracle_zero_proof(self, tally_vk):
        """모두 0인 증명은 곡선 밖이므로 페어링 없이 거부된다."""
        assert Verifier(Groth16Oracle()).verify(tally_vk, TALLY_INPUTS, [0] * 8) is False

    def test_process_input_order(self, tally_vk):
        oracle = MockOracle()
        Verifier(oracle).verify_process(tally_vk, 1, 2, 3, 4, 5, [0] * 8)
        assert oracle.calls == [[1, 2, 3, 4, 5]]

    def test_tally_input_order(self, tally_vk):
        oracle = MockOracle()
        Verifier(oracle).verify_tally(tally_vk, 1, 2, 3, 4, [0] * 8)
        assert oracle.calls == [[1, 2, 3, 4]]

    def test_public_input_out_of_field(self, tally_vk):
        with pytest.raises(InvalidPublicInputError):
            Verifier(MockOracle()).verify_tally(tally_vk, SNARK_FIELD_SIZE, 2, 3, 4, [0] * 8)

    def test_check_public_inputs(self):
        assert check_public_inputs(["5", 6]) == [5, 6]
        with pytest.raises(InvalidPublicInputError):
            check_public_inputs([-1])
