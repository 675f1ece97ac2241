"""
배치 재생 함수 (Batch Replay Function)
========================================

메시지 한 배치를 현재 상태 리프/투표지 집합에 재생하여 새 커밋먼트를 만든다.
오프체인 코디네이터(회로 입력 생성)와 온체인 검증 경로가 같은 함수를 공유한다.

**순수 함수**: 입력 리스트를 변경하지 않고 새 리스트를 반환한다.
StateLeaf와 Ballot은 불변 객체이므로 바뀌지 않은 원소는 참조를 공유한다.

**재생 순서**: batch_end - 1 → batch_start (역순)

**메시지별 검사** (하나라도 실패하면 no-op, 다음 메시지로 계속):
  1. ECDH 복호화 및 인증 태그
  2. 평문 → PCommand 디코딩
  3. state_index < len(state_leaves)
  4. 서명 검증 (현재 리프의 공개키)
  5. 새 공개키가 곡선 위의 점
  6. vote_option_index < max_vote_options
  7. poll_id 일치
  8. nonce == ballot.nonce + 1
  9. 모드별 새 잔액 ≥ 0

**커밋먼트**:
  sb_commitment = hash3([state_root, ballot_root, salt])

사용 예시:
    >>> result = process_batch(leaves, ballots, messages, enc_keys, coord_priv,
    ...                        0, len(messages), poll_id=0, max_vote_options=25,
    ...                        state_tree_depth=2, vote_option_tree_depth=2,
    ...                        mode=Mode.QV, new_salt=1234)
    >>> result.new_sb_commitment
"""

import logging

from maci.crypto.hashing import hash3
from maci.crypto.keys import gen_ecdh_shared_key
from maci.domain import Ballot, Mode, PCommand, StateLeaf, TREE_ARITY
from maci.errors import DecryptionError, EncodingError
from maci.trees import MerkleTree


logger = logging.getLogger(__name__)


# 메시지 처리 결과 사유
OK = "ok"
DECRYPTION_FAILED = "decryption_failed"
INVALID_COMMAND = "invalid_command"
INVALID_STATE_INDEX = "invalid_state_index"
INVALID_SIGNATURE = "invalid_signature"
INVALID_NEW_PUB_KEY = "invalid_new_pub_key"
INVALID_VOTE_OPTION = "invalid_vote_option"
INVALID_POLL_ID = "invalid_poll_id"
INVALID_NONCE = "invalid_nonce"
INSUFFICIENT_VOICE_CREDITS = "insufficient_voice_credits"


class BatchResult:
    """배치 재생 결과.

    속성:
        state_leaves: 새 상태 리프 리스트
        ballots: 새 투표지 리스트
        state_root: 새 상태 트리 루트
        ballot_root: 새 투표지 트리 루트
        new_sb_commitment: hash3([state_root, ballot_root, salt])
        salt: 커밋먼트 블라인딩 솔트
        outcomes: {메시지 인덱스: 사유}. 처리 순서(역순)대로 삽입된다.
    """

    def __init__(self, state_leaves, ballots, state_root, ballot_root,
                 new_sb_commitment, salt, outcomes):
        self.state_leaves = state_leaves
        self.ballots = ballots
        self.state_root = state_root
        self.ballot_root = ballot_root
        self.new_sb_commitment = new_sb_commitment
        self.salt = salt
        self.outcomes = outcomes

    @property
    def num_valid(self):
        return sum(1 for reason in self.outcomes.values() if reason == OK)


# ─────────────────────────────────────────────────────────────────────
# 트리 루트
# ─────────────────────────────────────────────────────────────────────

def blank_state_leaf_hash():
    return StateLeaf.blank().hash()


def gen_state_root(state_leaves, state_tree_depth):
    tree = MerkleTree(state_tree_depth, blank_state_leaf_hash(), TREE_ARITY)
    tree.insert_many(leaf.hash() for leaf in state_leaves)
    return tree.root


def gen_ballot_root(ballots, state_tree_depth, vote_option_tree_depth):
    zero = Ballot.blank(vote_option_tree_depth).hash()
    tree = MerkleTree(state_tree_depth, zero, TREE_ARITY)
    tree.insert_many(ballot.hash() for ballot in ballots)
    return tree.root


def empty_ballot_root(state_tree_depth, vote_option_tree_depth):
    """빈 투표지로만 이루어진 투표지 트리 루트."""
    return gen_ballot_root([], state_tree_depth, vote_option_tree_depth)


def gen_sb_commitment(state_root, ballot_root, salt):
    return hash3([state_root, ballot_root, salt])


# ─────────────────────────────────────────────────────────────────────
# 배치 커서
# ─────────────────────────────────────────────────────────────────────

def initial_batch_index(num_messages, batch_size):
    """첫 배치(가장 마지막 배치)의 시작 인덱스."""
    if num_messages == 0:
        return 0
    remainder = num_messages % batch_size
    return num_messages - (remainder if remainder else batch_size)


def batch_end_index(batch_start, batch_size, num_messages):
    return min(batch_start + batch_size, num_messages)


def num_batches(num_messages, batch_size):
    return -(-num_messages // batch_size)


# ─────────────────────────────────────────────────────────────────────
# 메시지 한 개
# ─────────────────────────────────────────────────────────────────────

def apply_message(state_leaves, ballots, message, enc_pub_key, coordinator_priv_key,
                  poll_id, max_vote_options, mode):
    """메시지 한 개를 검사하고 적용한다.

    Returns:
        (reason, state_index, new_leaf, new_ballot). 무효이면 state_index 이후는 None.
    """
    try:
        shared_key = gen_ecdh_shared_key(coordinator_priv_key, enc_pub_key)
        command = PCommand.decrypt(message, shared_key)
    except DecryptionError:
        return DECRYPTION_FAILED, None, None, None
    except (EncodingError, ValueError):
        return INVALID_COMMAND, None, None, None

    index = command.state_index
    if index >= len(state_leaves):
        return INVALID_STATE_INDEX, None, None, None

    leaf = state_leaves[index]
    ballot = ballots[index]

    if not command.verify_signature(leaf.pub_key):
        return INVALID_SIGNATURE, None, None, None
    if not command.new_pub_key.is_valid():
        return INVALID_NEW_PUB_KEY, None, None, None
    if command.vote_option_index >= max_vote_options:
        return INVALID_VOTE_OPTION, None, None, None
    if command.poll_id != poll_id:
        return INVALID_POLL_ID, None, None, None
    if command.nonce != ballot.nonce + 1:
        return INVALID_NONCE, None, None, None

    prev_weight = ballot.votes[command.vote_option_index]
    balance = mode.new_balance(leaf.voice_credit_balance, prev_weight, command.new_vote_weight)
    if balance < 0:
        return INSUFFICIENT_VOICE_CREDITS, None, None, None

    new_leaf = leaf.replace(pub_key=command.new_pub_key, voice_credit_balance=balance)
    new_ballot = ballot.with_vote(command.vote_option_index, command.new_vote_weight)
    return OK, index, new_leaf, new_ballot


# ─────────────────────────────────────────────────────────────────────
# 배치
# ─────────────────────────────────────────────────────────────────────

def process_batch(state_leaves, ballots, messages, enc_pub_keys, coordinator_priv_key,
                  batch_start, batch_end, poll_id, max_vote_options,
                  state_tree_depth, vote_option_tree_depth, mode, new_salt):
    """[batch_start, batch_end) 메시지를 역순으로 재생한다.

    Args:
        state_leaves: 폴 스냅샷 상태 리프 (인덱스 0은 빈 리프)
        ballots: state_leaves와 같은 길이의 투표지 리스트
        messages, enc_pub_keys: 폴 전체 메시지 로그와 임시 공개키
        coordinator_priv_key: 코디네이터 PrivKey
        mode: Mode.QV 또는 Mode.NON_QV

    Returns:
        BatchResult

    Raises:
        ValueError: 배치 범위나 입력 길이가 맞지 않을 때 (호출자 오류)
    """
    if len(state_leaves) != len(ballots):
        raise ValueError("state_leaves와 ballots의 길이가 다릅니다")
    if len(messages) != len(enc_pub_keys):
        raise ValueError("messages와 enc_pub_keys의 길이가 다릅니다")
    if not 0 <= batch_start <= batch_end <= len(messages):
        raise ValueError(f"잘못된 배치 범위: [{batch_start}, {batch_end})")
    mode = Mode(mode)

    new_leaves = list(state_leaves)
    new_ballots = list(ballots)
    outcomes = {}

    for i in range(batch_end - 1, batch_start - 1, -1):
        reason, index, leaf, ballot = apply_message(
            new_leaves, new_ballots, messages[i], enc_pub_keys[i],
            coordinator_priv_key, poll_id, max_vote_options, mode,
        )
        outcomes[i] = reason
        if reason == OK:
            new_leaves[index] = leaf
            new_ballots[index] = ballot
        else:
            logger.debug("message %d skipped: %s", i, reason)

    state_root = gen_state_root(new_leaves, state_tree_depth)
    ballot_root = gen_ballot_root(new_ballots, state_tree_depth, vote_option_tree_depth)
    commitment = gen_sb_commitment(state_root, ballot_root, new_salt)

    logger.info("replayed messages [%d, %d): %d valid", batch_start, batch_end,
                sum(1 for r in outcomes.values() if r == OK))
    return BatchResult(new_leaves, new_ballots, state_root, ballot_root,
                       commitment, new_salt, outcomes)
