"""
Tally 컨트랙트
===============

처리가 끝난 폴의 투표지를 배치 단위로 집계한 증명을 검증하고
tally_commitment 를 전진시킨다. 집계 결과는 머클 경로로 공개 검증한다.

  배치 크기  : 5^int_state_tree_depth
  공개 입력  : [packed_vals, sb_commitment, current_tally_commitment, new_tally_commitment]
  첫 배치의 이전 커밋먼트는 0
  packed_vals 는 필수이며 다음 집계 배치의 값과 같아야 한다
"""

import logging
import threading

from maci.core.tallying import (
    tally_batch_size,
    combine_tally_commitment,
    path_indices_for,
)
from maci.crypto.hashing import hash_left_right
from maci.domain import Mode, TREE_ARITY
from maci.errors import (
    ProcessingNotCompleteError,
    TallyCompleteError,
    BatchOutOfOrderError,
    TallyCommitmentMismatchError,
    InvalidProofError,
)
from maci.packing import pack_tally_votes_small_vals
from maci.trees import MerkleTree


logger = logging.getLogger(__name__)


class Tally:
    def __init__(self, poll, message_processor, vk_registry, verifier):
        self.poll = poll
        self.message_processor = message_processor
        self.vk_registry = vk_registry
        self.verifier = verifier
        self.tally_commitment = 0
        self.tally_batch_num = 0
        self._lock = threading.Lock()

    @property
    def batch_size(self):
        return tally_batch_size(self.poll.tree_depths.int_state_tree_depth)

    def is_tallied(self):
        if not self.message_processor.processing_complete:
            return False
        return self.tally_batch_num * self.batch_size >= self.poll.num_sign_ups

    def gen_tally_votes_packed_vals(self, batch_start_index, num_sign_ups):
        return pack_tally_votes_small_vals(batch_start_index, self.batch_size, num_sign_ups)

    def next_packed_vals(self):
        if self.poll.num_sign_ups is None:
            return None
        return self.gen_tally_votes_packed_vals(self.tally_batch_num * self.batch_size,
                                                self.poll.num_sign_ups)

    def tally_votes(self, new_tally_commitment, proof, packed_vals,
                    current_tally_commitment=None):
        """다음 집계 배치의 증명을 검증하고 새 집계 커밋먼트를 저장한다."""
        with self._lock:
            poll = self.poll
            if not self.message_processor.processing_complete:
                raise ProcessingNotCompleteError(f"폴 {poll.poll_id}의 메시지 처리가 끝나지 않았습니다")
            if self.is_tallied():
                raise TallyCompleteError(f"폴 {poll.poll_id}의 집계가 끝났습니다")

            batch_start = self.tally_batch_num * self.batch_size
            expected_packed = self.gen_tally_votes_packed_vals(batch_start, poll.num_sign_ups)
            if packed_vals is None or int(packed_vals) != expected_packed:
                raise BatchOutOfOrderError(f"다음 집계 배치는 {batch_start}에서 시작합니다")
            if (current_tally_commitment is not None
                    and int(current_tally_commitment) != self.tally_commitment):
                raise TallyCommitmentMismatchError("이전 tally_commitment가 일치하지 않습니다")

            vk = self.vk_registry.get_tally_vk(
                poll.state_tree_depth, poll.tree_depths.int_state_tree_depth,
                poll.tree_depths.vote_option_tree_depth, poll.mode,
            )
            if not self.verifier.verify_tally(
                vk, expected_packed, self.message_processor.sb_commitment,
                self.tally_commitment, new_tally_commitment, proof,
            ):
                raise InvalidProofError(f"집계 배치 {batch_start} 증명이 유효하지 않습니다")

            self.tally_commitment = int(new_tally_commitment)
            self.tally_batch_num += 1
            poll.save()
            logger.info("poll %d tally batch at %d accepted", poll.poll_id, batch_start)
            return {
                "batch_start_index": batch_start,
                "tally_commitment": self.tally_commitment,
                "tally_complete": self.is_tallied(),
            }

    # ─── 결과 검증 ───

    def _root_from_path(self, index, leaf, path_elements):
        depth = self.poll.tree_depths.vote_option_tree_depth
        if not 0 <= index < TREE_ARITY ** depth:
            return None
        if len(path_elements) != depth:
            return None
        if any(len(level) != TREE_ARITY - 1 for level in path_elements):
            return None
        return MerkleTree.compute_root_from_path(
            leaf, [[int(v) for v in level] for level in path_elements],
            path_indices_for(index, depth),
        )

    def verify_tally_result(self, vote_option_index, tally_result, tally_result_proof,
                            tally_result_salt, spent_voice_credits_hash,
                            per_vo_spent_voice_credits_hash=0):
        """투표 옵션 하나의 득표가 저장된 집계 커밋먼트에 포함되는지 확인한다."""
        root = self._root_from_path(vote_option_index, tally_result, tally_result_proof)
        if root is None:
            return False
        results_commitment = hash_left_right(root, tally_result_salt)
        computed = combine_tally_commitment(
            self.poll.mode, results_commitment, spent_voice_credits_hash,
            per_vo_spent_voice_credits_hash,
        )
        return computed == self.tally_commitment

    def verify_spent_voice_credits(self, total_spent, total_spent_salt, results_commitment,
                                   per_vo_spent_voice_credits_hash=0):
        spent_commitment = hash_left_right(total_spent, total_spent_salt)
        computed = combine_tally_commitment(
            self.poll.mode, results_commitment, spent_commitment,
            per_vo_spent_voice_credits_hash,
        )
        return computed == self.tally_commitment

    def verify_per_vo_spent_voice_credits(self, vote_option_index, spent, spent_proof,
                                          spent_salt, results_commitment,
                                          spent_voice_credits_hash):
        """투표 옵션별 보이스 크레딧 사용량 (QV 전용). NON_QV 폴에서는 항상 False."""
        if self.poll.mode is not Mode.QV:
            return False
        root = self._root_from_path(vote_option_index, spent, spent_proof)
        if root is None:
            return False
        per_vo_commitment = hash_left_right(root, spent_salt)
        computed = combine_tally_commitment(
            Mode.QV, results_commitment, spent_voice_credits_hash, per_vo_commitment
        )
        return computed == self.tally_commitment

    def as_record(self):
        return {
            "tally_commitment": str(self.tally_commitment),
            "tally_batch_num": self.tally_batch_num,
            "tally_complete": self.is_tallied(),
        }
