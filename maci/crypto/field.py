"""
기반 모듈: 유한체(Finite Field) 및 타원곡선 연산
==================================================

투표 프로토콜 전체에서 사용되는 기본 대수적 도구를 정의한다.

**스칼라 필드 FR**:
  bn128 타원곡선의 스칼라 필드. 해시 출력, 커밋먼트, 증명의 공개 입력은
  모두 이 필드의 원소이다.
  - 위수 r ≈ 2^254 (SNARK_FIELD_SIZE)

**베이스 필드 FQ**:
  bn128 곡선 좌표가 속하는 필드. 사용자 공개키 (x, y)와 메시지 암호문 원소는
  이 필드 위에서 표현된다.
  - 위수 q ≈ 2^254, q > r

**타원곡선 연산**:
  ECDH 키 합의, Schnorr 서명, Groth16 검증을 위한 G1, G2 그룹 연산 및 페어링.

사용 예시:
    >>> from maci.crypto.field import FR, G1, ec_mul
    >>> a = FR(3) * FR(7)     # FR(21)
    >>> P = ec_mul(G1, 5)     # 5·G1
"""

from py_ecc.fields import bn128_FQ as FQ
from py_ecc import bn128


# ─────────────────────────────────────────────────────────────────────
# 유한체
# ─────────────────────────────────────────────────────────────────────

class FR(FQ):
    """bn128 스칼라 필드 위의 유한체 원소.

    py_ecc의 FQ 클래스를 상속하여 +, -, *, /, ** 필드 연산을 제공한다.

    예시:
        >>> FR(1) / FR(3)   # 3의 모듈러 역원
    """
    field_modulus = bn128.curve_order


# 스칼라 필드 위수 (증명 공개 입력의 상한)
SNARK_FIELD_SIZE = bn128.curve_order

# 베이스 필드 위수 (곡선 좌표, 암호문 원소의 상한)
BASE_FIELD_SIZE = bn128.field_modulus


# ─────────────────────────────────────────────────────────────────────
# 타원곡선 상수 및 연산
# ─────────────────────────────────────────────────────────────────────

G1 = bn128.G1
G2 = bn128.G2

# 곡선 방정식 y² = x³ + B 의 상수
CURVE_B = 3


def ec_mul(point, scalar):
    """타원곡선 스칼라 곱셈: scalar · point.

    Args:
        point: G1 또는 G2 위의 점
        scalar: 정수 또는 FR 원소

    Returns:
        scalar · point (같은 그룹의 점). 결과가 무한원점이면 None.
    """
    if isinstance(scalar, FR):
        scalar = int(scalar)
    return bn128.multiply(point, scalar % SNARK_FIELD_SIZE)


def ec_add(p1, p2):
    """타원곡선 점 덧셈: p1 + p2."""
    return bn128.add(p1, p2)


def ec_pairing(g2_point, g1_point):
    """쌍선형 페어링 e(G1, G2) → GT.

    주의:
        py_ecc.bn128.pairing의 인자 순서는 (G2, G1)이다.
    """
    return bn128.pairing(g2_point, g1_point)


def is_on_g1(point):
    """점이 G1 곡선 위에 있는지 확인한다 (무한원점은 False)."""
    if point is None:
        return False
    return bn128.is_on_curve(point, bn128.b)


def g1_from_ints(x, y):
    """정수 좌표 쌍으로 G1 점을 만든다."""
    return (FQ(x), FQ(y))


def sqrt_fq(value):
    """베이스 필드 제곱근. q ≡ 3 (mod 4)이므로 a^((q+1)/4)로 계산한다.

    Returns:
        FQ 또는 None (제곱잉여가 아닐 때)
    """
    if not isinstance(value, FQ):
        value = FQ(value)
    root = value ** ((BASE_FIELD_SIZE + 1) // 4)
    if root * root != value:
        return None
    return root
