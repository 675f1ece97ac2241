"""
Groth16 검증 (bn128)
=====================

검증키와 증명을 받아 페어링 등식을 확인한다.

    e(A, B) == e(α, β) · e(vk_x, γ) · e(C, δ)

    vk_x = IC₀ + Σ inputᵢ · IC_{i+1}

증명 바이트열은 8개의 uint 리스트로 주고받는다.

    [A.x, A.y, B.x.c1, B.x.c0, B.y.c1, B.y.c0, C.x, C.y]

(G2 좌표는 EVM 프리컴파일 관례대로 허수부가 먼저 온다.)
"""

from py_ecc import bn128

from maci.crypto.field import FQ, SNARK_FIELD_SIZE, ec_mul, ec_add, ec_pairing


class VerifyingKey:
    """Groth16 검증키.

    속성:
        alpha1: α·G1
        beta2: β·G2
        gamma2: γ·G2
        delta2: δ·G2
        ic: 공개 입력 계수 [IC₀, IC₁, ...] (G1)
    """

    def __init__(self, alpha1, beta2, gamma2, delta2, ic):
        self.alpha1 = alpha1
        self.beta2 = beta2
        self.gamma2 = gamma2
        self.delta2 = delta2
        self.ic = list(ic)

    @property
    def num_inputs(self):
        return len(self.ic) - 1

    def __eq__(self, other):
        return (
            isinstance(other, VerifyingKey)
            and self.alpha1 == other.alpha1
            and self.beta2 == other.beta2
            and self.gamma2 == other.gamma2
            and self.delta2 == other.delta2
            and self.ic == other.ic
        )

    def __repr__(self):
        return f"VerifyingKey(num_inputs={self.num_inputs})"


class Proof:
    def __init__(self, a, b, c):
        self.a = a
        self.b = b
        self.c = c

    def as_uint_list(self):
        return [
            int(self.a[0]), int(self.a[1]),
            int(self.b[0].coeffs[1]), int(self.b[0].coeffs[0]),
            int(self.b[1].coeffs[1]), int(self.b[1].coeffs[0]),
            int(self.c[0]), int(self.c[1]),
        ]

    @classmethod
    def from_uint_list(cls, values):
        if len(values) != 8:
            raise ValueError(f"증명은 8개의 정수여야 합니다: {len(values)}")
        v = [int(x) for x in values]
        a = (FQ(v[0]), FQ(v[1]))
        b = (bn128.FQ2([v[3], v[2]]), bn128.FQ2([v[5], v[4]]))
        c = (FQ(v[6]), FQ(v[7]))
        return cls(a, b, c)

    def __eq__(self, other):
        return isinstance(other, Proof) and self.as_uint_list() == other.as_uint_list()

    def __repr__(self):
        return f"Proof({self.as_uint_list()})"


def is_well_formed(proof):
    """증명 점들이 각각 G1/G2 곡선 위에 있고 B 가 위수 r 부분군에 속하는지.

    G1 은 여인수가 1 이라 곡선 검사로 충분하다. G2 트위스트는 여인수가 커서
    곡선 위의 점이라도 r·B 가 무한원점인지 따로 확인한다.
    """
    try:
        return (
            bn128.is_on_curve(proof.a, bn128.b)
            and bn128.is_on_curve(proof.b, bn128.b2)
            and bn128.is_on_curve(proof.c, bn128.b)
            and bn128.multiply(proof.b, bn128.curve_order) is None
        )
    except (TypeError, AttributeError):
        return False


def compute_vk_x(vk, inputs):
    vk_x = vk.ic[0]
    for i, x in enumerate(inputs):
        vk_x = ec_add(vk_x, ec_mul(vk.ic[i + 1], int(x)))
    return vk_x


def lhs(proof):
    return ec_pairing(proof.b, proof.a)


def rhs(vk, inputs, proof):
    result = ec_pairing(vk.beta2, vk.alpha1)
    result = result * ec_pairing(vk.gamma2, compute_vk_x(vk, inputs))
    return result * ec_pairing(vk.delta2, proof.c)


def verify(vk, inputs, proof):
    """Groth16 증명을 검증한다.

    입력 개수가 맞지 않거나, 입력이 스칼라 필드를 벗어나거나,
    증명 점이 곡선 밖에 있으면 False.
    """
    if len(inputs) != vk.num_inputs:
        return False
    if any(not 0 <= int(x) < SNARK_FIELD_SIZE for x in inputs):
        return False
    if not is_well_formed(proof):
        return False
    return lhs(proof) == rhs(vk, inputs, proof)
