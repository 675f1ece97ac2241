"""
키, ECDH, 서명, 암호화
=======================

사용자와 코디네이터의 키 쌍, 그리고 메시지 기밀성/인증에 필요한 연산을 정의한다.
모든 연산은 bn128 G1 그룹 위에서 수행된다.

**키 쌍**:
  개인키 sk ∈ [1, r),  공개키 PK = sk·G1

**ECDH 공유 키**:
  사용자는 메시지마다 임시 키 쌍 (esk, EPK)를 만들고
  공유 키 S = esk·CPK = csk·EPK 로 명령을 암호화한다.
  코디네이터는 자신의 개인키와 메시지에 첨부된 EPK로 같은 S를 복원한다.

**스트림 암호화**:
  kᵢ = hash_n([S.x, S.y, nonce, i])
  cᵢ = (pᵢ + kᵢ) mod q
  마지막 원소는 인증 태그 hash_n([S.x, S.y, nonce, p₀, ..., p_{n-1}]).
  태그가 맞지 않으면 복호화는 DecryptionError를 던진다.

**Schnorr 서명**:
  k = hash_n([sk, m]),  R = k·G1
  e = hash_n([R.x, R.y, PK.x, PK.y, m])
  s = k + e·sk  (mod r)
  검증: s·G1 == R + e·PK

사용 예시:
    >>> kp = Keypair()
    >>> sig = kp.priv_key.sign(1234)
    >>> kp.pub_key.verify(1234, sig)  # True
"""

import hashlib
import secrets

from maci.crypto.field import (
    FQ, G1, SNARK_FIELD_SIZE, BASE_FIELD_SIZE, CURVE_B,
    ec_mul, ec_add, is_on_g1, g1_from_ints, sqrt_fq,
)
from maci.crypto.hashing import hash_n, hash2
from maci.errors import DecryptionError


# ─────────────────────────────────────────────────────────────────────
# 키
# ─────────────────────────────────────────────────────────────────────

class PrivKey:
    """개인키: [1, r) 범위의 스칼라."""

    def __init__(self, raw=None):
        if raw is None:
            raw = secrets.randbelow(SNARK_FIELD_SIZE - 1) + 1
        raw = int(raw)
        if not 0 < raw < SNARK_FIELD_SIZE:
            raise ValueError("개인키는 [1, r) 범위여야 합니다")
        self.raw = raw

    def pub_key(self):
        return PubKey(ec_mul(G1, self.raw))

    def sign(self, message_hash):
        """메시지 해시에 대한 결정론적 Schnorr 서명을 만든다.

        Args:
            message_hash: 서명할 값 (스칼라 필드 정수)

        Returns:
            Signature
        """
        pub = self.pub_key()
        k = hash_n([self.raw, message_hash]) or 1
        r_point = ec_mul(G1, k)
        rx, ry = int(r_point[0]), int(r_point[1])
        e = hash_n([rx, ry, *pub.as_ints(), message_hash])
        s = (k + e * self.raw) % SNARK_FIELD_SIZE
        return Signature(rx, ry, s)

    def __eq__(self, other):
        return isinstance(other, PrivKey) and self.raw == other.raw

    def __hash__(self):
        return hash(("PrivKey", self.raw))

    def __repr__(self):
        return "PrivKey(***)"


class PubKey:
    """공개키: G1 위의 점 (x, y)."""

    def __init__(self, point):
        if isinstance(point, (list, tuple)) and not isinstance(point[0], FQ):
            point = g1_from_ints(int(point[0]), int(point[1]))
        self.point = point

    @property
    def x(self):
        return int(self.point[0])

    @property
    def y(self):
        return int(self.point[1])

    def as_ints(self):
        return [self.x, self.y]

    def hash(self):
        return hash2(self.as_ints())

    def is_valid(self):
        return is_on_g1(self.point)

    def verify(self, message_hash, signature):
        """Schnorr 서명을 검증한다. 형식이 잘못된 서명도 False로 처리한다."""
        if not isinstance(signature, Signature) or not signature.is_well_formed():
            return False
        if not self.is_valid():
            return False
        r_point = signature.r_point()
        e = hash_n([signature.rx, signature.ry, self.x, self.y, message_hash])
        lhs = ec_mul(G1, signature.s)
        rhs = ec_add(r_point, ec_mul(self.point, e))
        return lhs == rhs

    def __eq__(self, other):
        return isinstance(other, PubKey) and self.as_ints() == other.as_ints()

    def __hash__(self):
        return hash(("PubKey", self.x, self.y))

    def __repr__(self):
        return f"PubKey({self.x}, {self.y})"


class Keypair:
    def __init__(self, priv_key=None):
        self.priv_key = priv_key if priv_key is not None else PrivKey()
        self.pub_key = self.priv_key.pub_key()

    def __eq__(self, other):
        return isinstance(other, Keypair) and self.priv_key == other.priv_key

    def __hash__(self):
        return hash(self.priv_key)


class Signature:
    """Schnorr 서명 (R.x, R.y, s)."""

    def __init__(self, rx, ry, s):
        self.rx = int(rx)
        self.ry = int(ry)
        self.s = int(s)

    def r_point(self):
        return g1_from_ints(self.rx, self.ry)

    def is_well_formed(self):
        if not (0 <= self.rx < BASE_FIELD_SIZE and 0 <= self.ry < BASE_FIELD_SIZE):
            return False
        if not 0 <= self.s < SNARK_FIELD_SIZE:
            return False
        return is_on_g1(self.r_point())

    def as_ints(self):
        return [self.rx, self.ry, self.s]

    def __eq__(self, other):
        return isinstance(other, Signature) and self.as_ints() == other.as_ints()

    def __repr__(self):
        return f"Signature({self.rx}, {self.ry}, {self.s})"


# ─────────────────────────────────────────────────────────────────────
# ECDH 및 암호화
# ─────────────────────────────────────────────────────────────────────

def gen_ecdh_shared_key(priv_key, pub_key):
    """ECDH 공유 키 S = sk·PK 를 계산한다.

    Raises:
        DecryptionError: 공개키가 곡선 위의 점이 아닐 때
    """
    if not pub_key.is_valid():
        raise DecryptionError("ECDH 공개키가 G1 위의 점이 아닙니다")
    return ec_mul(pub_key.point, priv_key.raw)


def _keystream(shared_key, nonce, length):
    sx, sy = int(shared_key[0]), int(shared_key[1])
    return [hash_n([sx, sy, nonce, i]) for i in range(length)]


def _auth_tag(shared_key, nonce, plaintext):
    sx, sy = int(shared_key[0]), int(shared_key[1])
    return hash_n([sx, sy, nonce, *plaintext])


def encrypt(plaintext, shared_key, nonce=0):
    """베이스 필드 원소 리스트를 암호화한다.

    Args:
        plaintext: [0, q) 범위 정수 리스트
        shared_key: ECDH 공유 키 (G1 점)
        nonce: 키 스트림 도메인 분리용 정수

    Returns:
        list[int]: 길이 len(plaintext) + 1 의 암호문 (마지막은 인증 태그)
    """
    plaintext = [int(p) for p in plaintext]
    for p in plaintext:
        if not 0 <= p < BASE_FIELD_SIZE:
            raise ValueError("평문 원소는 베이스 필드 범위여야 합니다")
    stream = _keystream(shared_key, nonce, len(plaintext))
    ciphertext = [(p + k) % BASE_FIELD_SIZE for p, k in zip(plaintext, stream)]
    ciphertext.append(_auth_tag(shared_key, nonce, plaintext))
    return ciphertext


def decrypt(ciphertext, shared_key, length, nonce=0):
    """암호문을 복호화하고 인증 태그를 확인한다.

    Raises:
        DecryptionError: 길이가 맞지 않거나 태그가 일치하지 않을 때
    """
    ciphertext = [int(c) for c in ciphertext]
    if len(ciphertext) != length + 1:
        raise DecryptionError(f"암호문 길이는 {length + 1}이어야 합니다: {len(ciphertext)}")
    stream = _keystream(shared_key, nonce, length)
    plaintext = [(c - k) % BASE_FIELD_SIZE for c, k in zip(ciphertext[:length], stream)]
    if _auth_tag(shared_key, nonce, plaintext) != ciphertext[length]:
        raise DecryptionError("인증 태그가 일치하지 않습니다")
    return plaintext


# ─────────────────────────────────────────────────────────────────────
# 해시 → G1
# ─────────────────────────────────────────────────────────────────────

def hash_to_g1(seed):
    """시드 바이트열로부터 이산로그를 아무도 모르는 G1 점을 만든다.

    try-and-increment: x = SHA256(seed ‖ ctr) mod q 를 늘려가며
    x³ + 3 이 제곱잉여가 되는 첫 x를 찾고, 두 제곱근 중 작은 y를 택한다.
    """
    counter = 0
    while True:
        digest = hashlib.sha256(seed + counter.to_bytes(4, "big")).digest()
        x = FQ(int.from_bytes(digest, "big") % BASE_FIELD_SIZE)
        y = sqrt_fq(x ** 3 + FQ(CURVE_B))
        if y is not None:
            y_int = min(int(y), BASE_FIELD_SIZE - int(y))
            return (x, FQ(y_int))
        counter += 1
