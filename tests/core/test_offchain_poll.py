"""
Tests for maci.core.poll / maci.core.maci_state (코디네이터 측 오프체인 상태).

Covers:
- 등록부 인덱스와 폴 ID
- 자리표시 메시지, message_root 가 게시 큐를 닫지 않음
- 스냅샷 초기 커밋먼트, 배치 처리 순서와 커밋먼트 연쇄
- 집계 결과와 결과 증명
- 단계 오류 (처리 완료 후 처리, 처리 전 집계, 집계 완료 후 집계)
- prepare_* 는 상태를 바꾸지 않고 apply_* 는 현재 커서의 입력만 받음
"""

import pytest

from conftest import (
    MAX_VALUES, TREE_DEPTHS, MESSAGE_BATCH_SIZE, START_TIME, DURATION, STATE_TREE_DEPTH,
)
from maci.core.maci_state import MaciState
from maci.core.processing import gen_state_root, empty_ballot_root, gen_sb_commitment
from maci.core.tallying import combine_tally_commitment
from maci.crypto.hashing import hash_left_right
from maci.domain import Mode, StateLeaf
from maci.errors import (
    BatchOutOfOrderError,
    TooManySignUpsError,
    PollNotFoundError,
    ProcessingCompleteError,
    ProcessingNotCompleteError,
    TallyCompleteError,
)
from maci.trees import MerkleTree
from maci.core.tallying import path_indices_for


@pytest.fixture
def state(users):
    maci_state = MaciState(STATE_TREE_DEPTH)
    for user in users[:3]:
        maci_state.sign_up(user.pub_key, 100, START_TIME)
    return maci_state


def deploy(maci_state, coordinator, mode=Mode.QV):
    poll_id = maci_state.deploy_poll(START_TIME + DURATION, MAX_VALUES, TREE_DEPTHS,
                                     MESSAGE_BATCH_SIZE, coordinator, mode)
    return maci_state.get_poll(poll_id)


def publish(poll, vote):
    message, enc_pub_key = vote
    return poll.publish_message(message, enc_pub_key)


def run_to_end(poll):
    while poll.has_unprocessed_messages():
        poll.process_messages()
    while poll.has_untallied_ballots():
        poll.tally_votes()


class TestMaciState:
    def test_indices_start_after_blank_leaf(self, users):
        maci_state = MaciState(STATE_TREE_DEPTH)
        assert maci_state.sign_up(users[0].pub_key, 100, 1) == 1
        assert maci_state.sign_up(users[1].pub_key, 100, 1) == 2
        assert maci_state.num_sign_ups == 3

    def test_too_many_sign_ups(self, users):
        maci_state = MaciState(1)
        for _ in range(4):
            maci_state.sign_up(users[0].pub_key, 1, 1)
        with pytest.raises(TooManySignUpsError):
            maci_state.sign_up(users[0].pub_key, 1, 1)

    def test_poll_ids(self, state, coordinator):
        assert deploy(state, coordinator).poll_id == 0
        assert deploy(state, coordinator).poll_id == 1

    def test_unknown_poll(self, state):
        with pytest.raises(PollNotFoundError):
            state.get_poll(5)


class TestPublish:
    def test_placeholder_is_message_zero(self, state, coordinator):
        poll = deploy(state, coordinator)
        assert poll.num_messages == 1

    def test_message_root_does_not_close_queue(self, state, coordinator, users, vote_factory):
        poll = deploy(state, coordinator)
        root_before = poll.message_root()
        publish(poll, vote_factory(users[0], 1, 0, 1, 1))
        assert poll.message_root() != root_before

    def test_message_root_matches_tree(self, state, coordinator, users, vote_factory):
        poll = deploy(state, coordinator)
        publish(poll, vote_factory(users[0], 1, 0, 1, 1))
        tree = MerkleTree(TREE_DEPTHS.message_tree_depth, poll.message_aq.zero_value, 5)
        tree.insert_many(m.hash(k) for m, k in zip(poll.messages, poll.enc_pub_keys))
        assert poll.message_root() == tree.root


class TestProcessing:
    def test_snapshot_commitment(self, state, coordinator):
        poll = deploy(state, coordinator)
        poll.snapshot()
        expected = gen_sb_commitment(
            gen_state_root(state.state_leaves, STATE_TREE_DEPTH),
            empty_ballot_root(STATE_TREE_DEPTH, TREE_DEPTHS.vote_option_tree_depth), 0,
        )
        assert poll.sb_commitment == expected

    def test_snapshot_freezes_leaves(self, state, coordinator, users):
        poll = deploy(state, coordinator)
        poll.snapshot()
        state.sign_up(users[3].pub_key, 100, START_TIME)
        poll.snapshot()
        assert poll.num_sign_ups == 4

    def test_batches_run_last_to_first(self, state, coordinator, users, vote_factory):
        poll = deploy(state, coordinator)
        for nonce in range(1, 7):
            publish(poll, vote_factory(users[0], 1, 0, 1, nonce))
        assert poll.num_messages == 7
        first = poll.process_messages(salt=5)
        second = poll.process_messages(salt=6)
        assert (first["batch_start_index"], first["batch_end_index"]) == (5, 7)
        assert (second["batch_start_index"], second["batch_end_index"]) == (0, 5)
        assert second["current_sb_commitment"] == first["new_sb_commitment"]
        assert second["current_sb_salt"] == 5
        assert poll.processing_complete

    def test_circuit_inputs(self, state, coordinator, users, vote_factory):
        poll = deploy(state, coordinator)
        publish(poll, vote_factory(users[0], 1, 0, 1, 1))
        inputs = poll.process_messages(salt=5)
        assert inputs["coord_pub_key_hash"] == coordinator.pub_key.hash()
        assert inputs["message_root"] == poll.message_root()
        assert len(inputs["messages"]) == len(inputs["enc_pub_keys"]) == 2
        assert inputs["outcomes"] == {1: "ok", 0: "decryption_failed"}

    def test_processing_complete_error(self, state, coordinator):
        poll = deploy(state, coordinator)
        poll.process_messages()
        with pytest.raises(ProcessingCompleteError):
            poll.process_messages()

    def test_prepare_does_not_mutate(self, state, coordinator, users, vote_factory):
        poll = deploy(state, coordinator)
        publish(poll, vote_factory(users[0], 1, 0, 1, 1))
        poll.snapshot()
        initial = poll.sb_commitment
        first, _ = poll.prepare_process_messages(salt=5)
        again, result = poll.prepare_process_messages(salt=5)
        assert first["new_sb_commitment"] == again["new_sb_commitment"]
        assert poll.sb_commitment == initial
        assert poll.num_batches_processed == 0
        assert poll.current_message_batch_index is None

        poll.apply_process_messages(again, result)
        assert poll.sb_commitment == again["new_sb_commitment"]
        assert poll.sb_salt == 5
        assert poll.processing_complete

    def test_stale_inputs_rejected(self, state, coordinator, users, vote_factory):
        """이미 반영한 배치 입력을 다시 반영하면 순서 오류이다."""
        poll = deploy(state, coordinator)
        for nonce in range(1, 7):
            publish(poll, vote_factory(users[0], 1, 0, 1, nonce))
        inputs, result = poll.prepare_process_messages(salt=5)
        poll.apply_process_messages(inputs, result)
        with pytest.raises(BatchOutOfOrderError):
            poll.apply_process_messages(inputs, result)
        assert poll.num_batches_processed == 1
        assert poll.sb_commitment == inputs["new_sb_commitment"]


class TestTally:
    @pytest.fixture
    def voted(self, state, coordinator, users, vote_factory):
        def _voted(mode):
            poll = deploy(state, coordinator, mode)
            publish(poll, vote_factory(users[0], 1, 0, 9, 1))
            publish(poll, vote_factory(users[1], 2, 1, 5, 1))
            publish(poll, vote_factory(users[2], 3, 0, 3, 1))
            run_to_end(poll)
            return poll
        return _voted

    def test_qv_results(self, voted):
        poll = voted(Mode.QV)
        assert poll.results == [12, 5, 0, 0, 0]
        assert poll.total_spent == 115
        assert poll.per_vo_spent == [90, 25, 0, 0, 0]
        assert poll.state_leaves[1].voice_credit_balance == 19

    def test_non_qv_results(self, voted):
        poll = voted(Mode.NON_QV)
        assert poll.results == [12, 5, 0, 0, 0]
        assert poll.total_spent == 17

    def test_tally_before_processing(self, state, coordinator):
        poll = deploy(state, coordinator)
        with pytest.raises(ProcessingNotCompleteError):
            poll.tally_votes()

    def test_prepare_tally_does_not_mutate(self, state, coordinator):
        poll = deploy(state, coordinator)
        poll.process_messages()
        inputs, result = poll.prepare_tally_votes()
        assert poll.num_tally_batches == 0
        assert poll.tally_commitment == 0
        assert poll.tally_salts is None
        poll.apply_tally_votes(inputs, result)
        assert poll.tally_commitment == inputs["new_tally_commitment"]
        with pytest.raises(BatchOutOfOrderError):
            poll.apply_tally_votes(inputs, result)

    def test_tally_complete(self, voted):
        poll = voted(Mode.QV)
        with pytest.raises(TallyCompleteError):
            poll.tally_votes()

    def test_tally_result_proof(self, voted):
        """결과 증명으로 집계 커밋먼트를 다시 만들 수 있다."""
        poll = voted(Mode.QV)
        proof = poll.gen_tally_result_proof(0)
        root = MerkleTree.compute_root_from_path(
            proof["tally_result"], proof["tally_result_proof"],
            path_indices_for(0, TREE_DEPTHS.vote_option_tree_depth),
        )
        assert root == poll.results_root()
        commitment = combine_tally_commitment(
            Mode.QV, hash_left_right(root, proof["tally_result_salt"]),
            proof["spent_voice_credits_hash"], proof["per_vo_spent_voice_credits_hash"],
        )
        assert commitment == poll.tally_commitment

    def test_spent_proof(self, voted):
        poll = voted(Mode.NON_QV)
        proof = poll.gen_spent_voice_credits_proof()
        assert proof["per_vo_spent_voice_credits_hash"] == 0
        commitment = combine_tally_commitment(
            Mode.NON_QV, proof["results_commitment"],
            hash_left_right(proof["total_spent"], proof["total_spent_salt"]),
        )
        assert commitment == poll.tally_commitment

    def test_blank_leaf_unchanged(self, voted):
        poll = voted(Mode.QV)
        assert poll.state_leaves[0] == StateLeaf.blank()
