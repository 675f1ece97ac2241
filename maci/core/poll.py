"""
오프체인 폴 (코디네이터 측)
============================

온체인 Poll 컨트랙트와 같은 메시지 로그를 보관하고,
배치 재생 함수로 처리/집계 회로 입력을 배치 단위로 만든다.

**처리 흐름**:
  snapshot()          : 등록부 상태 리프를 고정하고 빈 투표지를 만든다
                        초기 sb_commitment = hash3([state_root, empty_ballot_root, 0])
  process_messages()  : 커서 위치의 배치를 재생하고 회로 입력을 반환한다
                        (마지막 배치 → 첫 배치 순)
  tally_votes()       : 처리 완료 후 투표지를 순방향 배치로 집계한다

두 단계 모두 prepare_* 로 입력만 만들고 apply_* 로 반영할 수 있다.
코디네이터는 온체인 제출이 받아들여진 뒤에만 apply_* 를 부른다.

회로 입력의 커밋먼트와 packed 값은 MessageProcessor / Tally 컨트랙트가
기대하는 값과 정확히 같다.
"""

import logging

from maci.acc_queue import AccQueue
from maci.core.processing import (
    process_batch,
    gen_state_root,
    empty_ballot_root,
    gen_sb_commitment,
    initial_batch_index,
    batch_end_index,
)
from maci.core.tallying import (
    tally_batch,
    tally_batch_size,
    empty_tally,
    gen_vote_option_root,
    gen_vote_option_proof,
    gen_results_commitment,
    gen_spent_commitment,
    gen_per_vo_spent_commitment,
)
from maci.crypto.hashing import gen_random_salt
from maci.domain import (
    Ballot, Mode, TREE_ARITY, NOTHING_UP_MY_SLEEVE, PAD_KEY,
    check_message, placeholder_message,
)
from maci.errors import (
    BatchOutOfOrderError,
    ProcessingCompleteError,
    ProcessingNotCompleteError,
    TallyCompleteError,
)
from maci.packing import pack_process_message_small_vals, pack_tally_votes_small_vals


logger = logging.getLogger(__name__)


class Poll:
    def __init__(self, poll_id, poll_end_timestamp, coordinator_keypair, tree_depths,
                 message_batch_size, max_values, maci_state, mode=Mode.QV):
        self.poll_id = poll_id
        self.poll_end_timestamp = poll_end_timestamp
        self.coordinator_keypair = coordinator_keypair
        self.tree_depths = tree_depths
        self.message_batch_size = message_batch_size
        self.max_values = max_values
        self.maci_state = maci_state
        self.mode = Mode(mode)

        self.messages = []
        self.enc_pub_keys = []
        self.message_aq = AccQueue(tree_depths.message_tree_sub_depth, TREE_ARITY,
                                   NOTHING_UP_MY_SLEEVE, capacity=max_values.max_messages)

        # 스냅샷 이후 상태
        self.state_leaves = None
        self.ballots = None
        self.sb_commitment = None
        self.sb_salt = 0
        self.current_message_batch_index = None
        self.num_batches_processed = 0

        # 집계 상태
        self.results, self.total_spent, self.per_vo_spent = empty_tally(
            tree_depths.vote_option_tree_depth
        )
        self.tally_salts = None
        self.tally_commitment = 0
        self.num_tally_batches = 0

        self.publish_message(placeholder_message(), PAD_KEY)

    # ─── 속성 ───

    @property
    def state_tree_depth(self):
        return self.maci_state.state_tree_depth

    @property
    def num_messages(self):
        return len(self.messages)

    @property
    def num_sign_ups(self):
        if self.state_leaves is None:
            return self.maci_state.num_sign_ups
        return len(self.state_leaves)

    @property
    def processing_complete(self):
        return self.num_batches_processed * self.message_batch_size >= self.num_messages

    def has_unprocessed_messages(self):
        return not self.processing_complete

    def has_untallied_ballots(self):
        batch_size = tally_batch_size(self.tree_depths.int_state_tree_depth)
        return self.num_tally_batches * batch_size < self.num_sign_ups

    # ─── 게시 ───

    def publish_message(self, message, enc_pub_key):
        check_message(message, enc_pub_key)
        self.message_aq.enqueue(message.hash(enc_pub_key))
        self.messages.append(message)
        self.enc_pub_keys.append(enc_pub_key)
        return len(self.messages) - 1

    def message_root(self):
        """메시지 트리 전체 깊이의 루트. 게시용 큐는 닫지 않는다."""
        aq = self.message_aq.copy()
        aq.merge_sub_roots(0)
        return aq.merge(self.tree_depths.message_tree_depth)

    # ─── 처리 ───

    def snapshot(self):
        """등록부 상태 리프를 고정한다. 두 번째 호출부터는 아무것도 하지 않는다."""
        if self.state_leaves is not None:
            return
        self.state_leaves = list(self.maci_state.state_leaves)
        blank = Ballot.blank(self.tree_depths.vote_option_tree_depth)
        self.ballots = [blank] * len(self.state_leaves)
        state_root = gen_state_root(self.state_leaves, self.state_tree_depth)
        ballot_root = empty_ballot_root(self.state_tree_depth,
                                        self.tree_depths.vote_option_tree_depth)
        self.sb_salt = 0
        self.sb_commitment = gen_sb_commitment(state_root, ballot_root, 0)
        logger.info("poll %d snapshot: %d state leaves", self.poll_id, len(self.state_leaves))

    def expected_batch_start(self):
        if self.current_message_batch_index is None:
            return initial_batch_index(self.num_messages, self.message_batch_size)
        return self.current_message_batch_index

    def prepare_process_messages(self, salt=None):
        """다음 메시지 배치를 재생해 (회로 입력, 배치 결과)를 만든다.

        폴의 처리 상태는 바꾸지 않는다. 온체인 제출이 받아들여진 뒤
        apply_process_messages 로 반영한다.

        Raises:
            ProcessingCompleteError: 모든 배치를 처리한 뒤 호출할 때
        """
        if self.processing_complete:
            raise ProcessingCompleteError(f"폴 {self.poll_id}의 메시지 처리가 끝났습니다")
        self.snapshot()

        batch_start = self.expected_batch_start()
        batch_end = batch_end_index(batch_start, self.message_batch_size, self.num_messages)
        new_salt = salt if salt is not None else gen_random_salt()

        result = process_batch(
            self.state_leaves, self.ballots, self.messages, self.enc_pub_keys,
            self.coordinator_keypair.priv_key, batch_start, batch_end, self.poll_id,
            self.max_values.max_vote_options, self.state_tree_depth,
            self.tree_depths.vote_option_tree_depth, self.mode, new_salt,
        )

        circuit_inputs = {
            "poll_id": self.poll_id,
            "batch_start_index": batch_start,
            "batch_end_index": batch_end,
            "packed_vals": pack_process_message_small_vals(
                self.max_values.max_vote_options, self.num_sign_ups, batch_start, batch_end
            ),
            "message_root": self.message_root(),
            "coord_pub_key_hash": self.coordinator_keypair.pub_key.hash(),
            "current_sb_commitment": self.sb_commitment,
            "current_sb_salt": self.sb_salt,
            "new_state_root": result.state_root,
            "new_ballot_root": result.ballot_root,
            "new_sb_commitment": result.new_sb_commitment,
            "new_sb_salt": new_salt,
            "messages": [m.as_ints() for m in self.messages[batch_start:batch_end]],
            "enc_pub_keys": [k.as_ints() for k in self.enc_pub_keys[batch_start:batch_end]],
            "outcomes": result.outcomes,
        }
        return circuit_inputs, result

    def apply_process_messages(self, circuit_inputs, result):
        """prepare_process_messages 결과를 폴 상태에 반영하고 커서를 넘긴다.

        Raises:
            BatchOutOfOrderError: 입력이 현재 커서나 커밋먼트에서 만든 것이 아닐 때
        """
        batch_start = circuit_inputs["batch_start_index"]
        if (self.processing_complete
                or batch_start != self.expected_batch_start()
                or circuit_inputs["current_sb_commitment"] != self.sb_commitment):
            raise BatchOutOfOrderError(
                f"폴 {self.poll_id}: 배치 {batch_start} 입력이 현재 처리 상태와 맞지 않습니다"
            )
        self.state_leaves = result.state_leaves
        self.ballots = result.ballots
        self.sb_commitment = result.new_sb_commitment
        self.sb_salt = circuit_inputs["new_sb_salt"]
        self.num_batches_processed += 1
        self.current_message_batch_index = batch_start - self.message_batch_size
        logger.info("poll %d processed batch [%d, %d)", self.poll_id, batch_start,
                    circuit_inputs["batch_end_index"])

    def process_messages(self, salt=None):
        """다음 메시지 배치를 재생해 바로 반영하고 회로 입력 dict를 반환한다."""
        circuit_inputs, result = self.prepare_process_messages(salt)
        self.apply_process_messages(circuit_inputs, result)
        return circuit_inputs

    # ─── 집계 ───

    def prepare_tally_votes(self, salts=None):
        """다음 투표지 배치를 집계해 (회로 입력, 집계 결과)를 만든다. 폴 상태는 그대로다.

        Raises:
            ProcessingNotCompleteError: 메시지 처리가 끝나지 않았을 때
            TallyCompleteError: 모든 투표지를 집계한 뒤 호출할 때
        """
        if not self.processing_complete:
            raise ProcessingNotCompleteError(f"폴 {self.poll_id}의 메시지 처리가 끝나지 않았습니다")
        if not self.has_untallied_ballots():
            raise TallyCompleteError(f"폴 {self.poll_id}의 집계가 끝났습니다")
        self.snapshot()

        batch_size = tally_batch_size(self.tree_depths.int_state_tree_depth)
        batch_start = self.num_tally_batches * batch_size
        result = tally_batch(
            self.ballots, batch_start, batch_size, self.results, self.total_spent,
            self.per_vo_spent, self.tree_depths.vote_option_tree_depth, self.mode, salts,
        )

        circuit_inputs = {
            "poll_id": self.poll_id,
            "batch_start_index": batch_start,
            "packed_vals": pack_tally_votes_small_vals(batch_start, batch_size, self.num_sign_ups),
            "sb_commitment": self.sb_commitment,
            "sb_salt": self.sb_salt,
            "current_tally_commitment": self.tally_commitment,
            "new_tally_commitment": result.commitment,
            "new_results": list(result.results),
            "new_total_spent": result.total_spent,
            "new_per_vo_spent": list(result.per_vo_spent),
            "salts": dict(result.salts),
        }
        return circuit_inputs, result

    def apply_tally_votes(self, circuit_inputs, result):
        batch_size = tally_batch_size(self.tree_depths.int_state_tree_depth)
        batch_start = circuit_inputs["batch_start_index"]
        if (batch_start != self.num_tally_batches * batch_size
                or circuit_inputs["current_tally_commitment"] != self.tally_commitment):
            raise BatchOutOfOrderError(
                f"폴 {self.poll_id}: 집계 배치 {batch_start} 입력이 현재 집계 상태와 맞지 않습니다"
            )
        self.results = result.results
        self.total_spent = result.total_spent
        self.per_vo_spent = result.per_vo_spent
        self.tally_salts = result.salts
        self.tally_commitment = result.commitment
        self.num_tally_batches += 1
        logger.info("poll %d tallied batch starting at %d", self.poll_id, batch_start)

    def tally_votes(self, salts=None):
        """다음 투표지 배치를 집계해 바로 반영하고 회로 입력 dict를 반환한다."""
        circuit_inputs, result = self.prepare_tally_votes(salts)
        self.apply_tally_votes(circuit_inputs, result)
        return circuit_inputs

    # ─── 집계 결과 증명 ───

    def _tally_parts(self):
        votd = self.tree_depths.vote_option_tree_depth
        results_commitment = gen_results_commitment(self.results, self.tally_salts["results"], votd)
        spent_commitment = gen_spent_commitment(self.total_spent, self.tally_salts["spent"])
        per_vo_commitment = 0
        if self.mode is Mode.QV:
            per_vo_commitment = gen_per_vo_spent_commitment(
                self.per_vo_spent, self.tally_salts["per_vo_spent"], votd
            )
        return results_commitment, spent_commitment, per_vo_commitment

    def gen_tally_result_proof(self, vote_option_index):
        """투표 옵션 하나의 집계 결과를 Tally.verify_tally_result 로 확인할 수 있는 인자."""
        _, spent_commitment, per_vo_commitment = self._tally_parts()
        return {
            "vote_option_index": vote_option_index,
            "tally_result": self.results[vote_option_index],
            "tally_result_proof": gen_vote_option_proof(
                self.results, vote_option_index, self.tree_depths.vote_option_tree_depth
            ),
            "tally_result_salt": self.tally_salts["results"],
            "spent_voice_credits_hash": spent_commitment,
            "per_vo_spent_voice_credits_hash": per_vo_commitment,
        }

    def gen_spent_voice_credits_proof(self):
        results_commitment, _, per_vo_commitment = self._tally_parts()
        return {
            "total_spent": self.total_spent,
            "total_spent_salt": self.tally_salts["spent"],
            "results_commitment": results_commitment,
            "per_vo_spent_voice_credits_hash": per_vo_commitment,
        }

    def gen_per_vo_spent_proof(self, vote_option_index):
        results_commitment, spent_commitment, _ = self._tally_parts()
        return {
            "vote_option_index": vote_option_index,
            "spent": self.per_vo_spent[vote_option_index],
            "spent_proof": gen_vote_option_proof(
                self.per_vo_spent, vote_option_index, self.tree_depths.vote_option_tree_depth
            ),
            "spent_salt": self.tally_salts["per_vo_spent"],
            "results_commitment": results_commitment,
            "spent_voice_credits_hash": spent_commitment,
        }

    def results_root(self):
        return gen_vote_option_root(self.results, self.tree_depths.vote_option_tree_depth)
