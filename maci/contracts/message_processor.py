"""
MessageProcessor 컨트랙트
==========================

코디네이터가 제출한 배치 처리 증명을 검증하고 sb_commitment 를 전진시킨다.

**검사 순서** (하나라도 실패하면 상태 변경 없음):
  1. processing_complete         → ProcessingCompleteError
  2. 투표 마감                   → VotingPeriodNotOverError
  3. 상태 큐 병합                → StateAqNotMergedError
  4. 메시지 큐 병합              → MessageAqNotMergedError
  5. packed 값 (필수) == 커서 배치 → BatchOutOfOrderError
  6. 선언된 이전 커밋먼트         → SbCommitmentMismatchError
  7. 처리 검증키 조회            → VkNotSetError
  8. 증명 검증                   → InvalidProofError

**커서**:
  첫 배치 시작 = num_messages - (num_messages % batch_size or batch_size)
  성공할 때마다 batch_size 만큼 감소하고,
  처리한 배치 수 × batch_size ≥ num_messages 이면 processing_complete.
"""

import logging
import threading

from maci.core.processing import initial_batch_index, batch_end_index
from maci.errors import (
    ProcessingCompleteError,
    StateAqNotMergedError,
    MessageAqNotMergedError,
    BatchOutOfOrderError,
    SbCommitmentMismatchError,
    InvalidProofError,
)
from maci.packing import pack_process_message_small_vals


logger = logging.getLogger(__name__)


class MessageProcessor:
    def __init__(self, poll, vk_registry, verifier):
        self.poll = poll
        self.vk_registry = vk_registry
        self.verifier = verifier
        self.sb_commitment = None
        self.num_batches_processed = 0
        self.current_message_batch_index = None
        self.processing_complete = False
        self._lock = threading.Lock()

    def expected_batch_start(self):
        if self.current_message_batch_index is None:
            return initial_batch_index(self.poll.num_messages, self.poll.message_batch_size)
        return self.current_message_batch_index

    def current_commitment(self):
        """다음 배치가 이어받아야 하는 커밋먼트."""
        if self.sb_commitment is not None:
            return self.sb_commitment
        return self.poll.current_sb_commitment

    def gen_process_messages_packed_vals(self, current_message_batch_index, num_sign_ups):
        """주어진 배치 시작 인덱스에 대한 packed 값 (클라이언트 검증용)."""
        batch_end = batch_end_index(current_message_batch_index, self.poll.message_batch_size,
                                    self.poll.num_messages)
        return pack_process_message_small_vals(
            self.poll.max_values.max_vote_options, num_sign_ups,
            current_message_batch_index, batch_end,
        )

    def next_packed_vals(self):
        """커서가 가리키는 다음 배치의 packed 값. 상태 큐 병합 전이나 처리 완료 후에는 None."""
        if self.poll.num_sign_ups is None or self.processing_complete:
            return None
        return self.gen_process_messages_packed_vals(self.expected_batch_start(),
                                                     self.poll.num_sign_ups)

    def process_messages(self, new_sb_commitment, proof, packed_vals,
                         current_sb_commitment=None):
        """다음 배치의 처리 증명을 검증하고 새 커밋먼트를 저장한다.

        Args:
            new_sb_commitment: 배치 재생 결과 커밋먼트
            proof: 오라클이 받는 증명 (Groth16 Proof 또는 8개 정수)
            packed_vals: 증명이 전제한 packed 값 (항상 커서 배치와 비교)
            current_sb_commitment: 증명이 전제한 이전 커밋먼트 (주면 저장값과 비교)

        Returns:
            dict: 처리한 배치 범위와 새 커밋먼트
        """
        with self._lock:
            poll = self.poll
            if self.processing_complete:
                raise ProcessingCompleteError(f"폴 {poll.poll_id}의 메시지 처리가 끝났습니다")
            poll.require_after_deadline()
            if not poll.state_aq_merged:
                raise StateAqNotMergedError(f"폴 {poll.poll_id}의 상태 큐가 병합되지 않았습니다")
            if not poll.message_aq_merged:
                raise MessageAqNotMergedError(f"폴 {poll.poll_id}의 메시지 큐가 병합되지 않았습니다")

            batch_start = self.expected_batch_start()
            batch_end = batch_end_index(batch_start, poll.message_batch_size, poll.num_messages)
            expected_packed = self.gen_process_messages_packed_vals(batch_start, poll.num_sign_ups)
            if packed_vals is None or int(packed_vals) != expected_packed:
                raise BatchOutOfOrderError(
                    f"다음 배치는 [{batch_start}, {batch_end}) 입니다"
                )

            current = self.current_commitment()
            if current_sb_commitment is not None and int(current_sb_commitment) != current:
                raise SbCommitmentMismatchError("이전 sb_commitment가 일치하지 않습니다")

            vk = self.vk_registry.get_process_vk(
                poll.state_tree_depth, poll.tree_depths.vote_option_tree_depth,
                poll.message_batch_size, poll.mode,
            )
            if not self.verifier.verify_process(
                vk, expected_packed, current, new_sb_commitment,
                poll.coordinator_pub_key_hash, poll.merged_message_root, proof,
            ):
                raise InvalidProofError(f"배치 [{batch_start}, {batch_end}) 처리 증명이 유효하지 않습니다")

            self.sb_commitment = int(new_sb_commitment)
            self.num_batches_processed += 1
            self.current_message_batch_index = batch_start - poll.message_batch_size
            if self.num_batches_processed * poll.message_batch_size >= poll.num_messages:
                self.processing_complete = True
            poll.save()

            logger.info("poll %d batch [%d, %d) accepted%s", poll.poll_id, batch_start,
                        batch_end, ", processing complete" if self.processing_complete else "")
            return {
                "batch_start_index": batch_start,
                "batch_end_index": batch_end,
                "sb_commitment": self.sb_commitment,
                "processing_complete": self.processing_complete,
            }

    def as_record(self):
        return {
            "sb_commitment": None if self.sb_commitment is None else str(self.sb_commitment),
            "num_batches_processed": self.num_batches_processed,
            "current_message_batch_index": self.current_message_batch_index,
            "processing_complete": self.processing_complete,
        }
