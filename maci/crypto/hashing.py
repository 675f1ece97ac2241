"""
SNARK 필드 해시 함수군
=======================

커밋먼트, 머클 트리 노드, 메시지 리프에 사용되는 해시 함수를 정의한다.

**구성**:
  입력 원소를 각각 32바이트 빅엔디안으로 직렬화하고 도메인 레이블과 입력
  개수를 앞에 붙여 SHA-256으로 해싱한 뒤, 결과를 스칼라 필드 r로 축소한다.

      hash_n([x₀, ..., x_{k-1}]) = SHA256(label ‖ k ‖ x₀ ‖ ... ‖ x_{k-1}) mod r

  - 입력 개수를 포함하므로 hash2(a, b)와 hash3(a, b, 0)은 서로 다르다.
  - 출력은 항상 [0, r) 구간이므로 증명의 공개 입력으로 바로 사용할 수 있다.

**용도별 래퍼**:
  hash2     : 투표 옵션 루트와 nonce 결합, 키 해시
  hash3     : 상태·투표지 커밋먼트 (sbCommitment)
  hash4     : 상태 리프, 명령 서명 대상
  hash5     : 5진 머클 트리 노드

**공개 입력 해시 (sha256_hash)**:
  필드 축소만 하는 순수 SHA-256 변형. 레이블 없이 입력을 이어 붙인다.

사용 예시:
    >>> from maci.crypto.hashing import hash3
    >>> sb = hash3([state_root, ballot_root, salt])
"""

import hashlib
import secrets

from maci.crypto.field import SNARK_FIELD_SIZE


HASH_LABEL = b"maci.hash.v1"


def _to_bytes(value):
    value = int(value)
    if value < 0 or value >= 1 << 256:
        raise ValueError(f"해시 입력은 256비트 음이 아닌 정수여야 합니다: {value}")
    return value.to_bytes(32, "big")


def hash_n(elements):
    """임의 개수의 정수 원소를 하나의 스칼라 필드 원소로 해싱한다.

    Args:
        elements: 정수(또는 FR/FQ) 원소의 시퀀스

    Returns:
        int: [0, SNARK_FIELD_SIZE) 범위의 해시 값
    """
    elements = list(elements)
    state = bytearray(HASH_LABEL)
    state.extend(len(elements).to_bytes(4, "big"))
    for e in elements:
        state.extend(_to_bytes(e))
    h = hashlib.sha256(bytes(state)).digest()
    return int.from_bytes(h, "big") % SNARK_FIELD_SIZE


def _hash_fixed(elements, n):
    elements = list(elements)
    if len(elements) != n:
        raise ValueError(f"입력 원소는 정확히 {n}개여야 합니다: {len(elements)}")
    return hash_n(elements)


def hash2(elements):
    return _hash_fixed(elements, 2)


def hash3(elements):
    return _hash_fixed(elements, 3)


def hash4(elements):
    return _hash_fixed(elements, 4)


def hash5(elements):
    return _hash_fixed(elements, 5)


def hash_left_right(left, right):
    return hash2([left, right])


def sha256_hash(elements):
    """입력을 이어 붙여 SHA-256 후 스칼라 필드로 축소한다."""
    data = b"".join(_to_bytes(e) for e in elements)
    return int.from_bytes(hashlib.sha256(data).digest(), "big") % SNARK_FIELD_SIZE


def gen_random_salt():
    """커밋먼트 블라인딩용 무작위 솔트 (0이 아닌 스칼라 필드 원소)."""
    return secrets.randbelow(SNARK_FIELD_SIZE - 1) + 1
