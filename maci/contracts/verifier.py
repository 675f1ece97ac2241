"""
증명 검증 어댑터
=================

공개 입력을 회로가 기대하는 고정 순서로 조립해 오라클에 넘긴다.
암호 연산은 오라클이 담당한다.

    처리 : [packed_vals, current_sb_commitment, new_sb_commitment,
            coord_pub_key_hash, message_root]
    집계 : [packed_vals, sb_commitment, current_tally_commitment,
            new_tally_commitment]
"""

import logging

from maci.crypto import groth16
from maci.crypto.field import SNARK_FIELD_SIZE
from maci.errors import InvalidPublicInputError


logger = logging.getLogger(__name__)


class Groth16Oracle:
    """bn128 페어링 검사."""

    def verify(self, vk, inputs, proof):
        if not isinstance(proof, groth16.Proof):
            try:
                proof = groth16.Proof.from_uint_list(proof)
            except (TypeError, ValueError):
                return False
        return groth16.verify(vk, inputs, proof)


class MockOracle:
    """테스트 모드: 항상 통과. 호출 기록을 남긴다."""

    def __init__(self):
        self.calls = []

    def verify(self, vk, inputs, proof):
        self.calls.append(list(inputs))
        return True


def check_public_inputs(inputs):
    checked = []
    for i, value in enumerate(inputs):
        value = int(value)
        if not 0 <= value < SNARK_FIELD_SIZE:
            raise InvalidPublicInputError(f"공개 입력 {i}이(가) 스칼라 필드를 벗어납니다")
        checked.append(value)
    return checked


class Verifier:
    def __init__(self, oracle):
        self.oracle = oracle

    def verify(self, vk, inputs, proof):
        inputs = check_public_inputs(inputs)
        result = bool(self.oracle.verify(vk, inputs, proof))
        logger.debug("proof verification with %d inputs: %s", len(inputs), result)
        return result

    def verify_process(self, vk, packed_vals, current_sb_commitment, new_sb_commitment,
                       coord_pub_key_hash, message_root, proof):
        inputs = [packed_vals, current_sb_commitment, new_sb_commitment,
                  coord_pub_key_hash, message_root]
        return self.verify(vk, inputs, proof)

    def verify_tally(self, vk, packed_vals, sb_commitment, current_tally_commitment,
                     new_tally_commitment, proof):
        inputs = [packed_vals, sb_commitment, current_tally_commitment, new_tally_commitment]
        return self.verify(vk, inputs, proof)
