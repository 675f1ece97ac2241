"""
Maci 컨트랙트: 사용자 등록부 + 폴 팩토리
=========================================

sign_up 은 상태 리프를 등록부에 추가하고 (인덱스 0은 빈 리프),
deploy_poll 은 Poll / MessageProcessor / Tally 를 한 세트로 만든다.
"""

import logging

from maci.contracts.clock import Clock
from maci.contracts.message_processor import MessageProcessor
from maci.contracts.poll import Poll
from maci.contracts.storage import RecordStore, open_db
from maci.contracts.tally import Tally
from maci.domain import StateLeaf, Mode, TREE_ARITY
from maci.errors import TooManySignUpsError, PollNotFoundError, InvalidPollParamsError


logger = logging.getLogger(__name__)


class Maci:
    def __init__(self, state_tree_depth, vk_registry, verifier, clock=None, db=None):
        self.state_tree_depth = state_tree_depth
        self.vk_registry = vk_registry
        self.verifier = verifier
        self.clock = clock if clock is not None else Clock()
        self.db = db if db is not None else open_db()
        self.store = RecordStore(self.db.table("polls"))
        self.state_leaves = [StateLeaf.blank()]
        self.polls = {}

    @property
    def num_sign_ups(self):
        return len(self.state_leaves)

    def sign_up(self, pub_key, initial_voice_credit_balance):
        """사용자를 등록하고 상태 인덱스를 반환한다.

        Raises:
            TooManySignUpsError: 상태 트리가 가득 찼을 때
        """
        if not pub_key.is_valid():
            raise ValueError("공개키가 G1 위의 점이 아닙니다")
        if int(initial_voice_credit_balance) < 0:
            raise ValueError("보이스 크레딧 잔액은 음수일 수 없습니다")
        if len(self.state_leaves) >= TREE_ARITY ** self.state_tree_depth:
            raise TooManySignUpsError("상태 트리가 가득 찼습니다")
        leaf = StateLeaf(pub_key, initial_voice_credit_balance, self.clock.now())
        self.state_leaves.append(leaf)
        index = len(self.state_leaves) - 1
        logger.info("sign up: state index %d", index)
        return index

    def deploy_poll(self, duration, max_values, tree_depths, coordinator_pub_key,
                    mode=Mode.QV, message_batch_size=None):
        """폴을 배포하고 폴 ID를 반환한다. 배치 크기 기본값은 5^message_tree_sub_depth."""
        if message_batch_size is None:
            message_batch_size = TREE_ARITY ** tree_depths.message_tree_sub_depth
        validate_poll_params(duration, max_values, tree_depths, message_batch_size,
                             self.state_tree_depth)
        if not coordinator_pub_key.is_valid():
            raise InvalidPollParamsError("코디네이터 공개키가 G1 위의 점이 아닙니다")

        poll_id = len(self.polls)
        poll = Poll(poll_id, self, duration, max_values, tree_depths, coordinator_pub_key,
                    Mode(mode), message_batch_size, self.clock, self.store)
        processor = MessageProcessor(poll, self.vk_registry, self.verifier)
        poll.message_processor = processor
        poll.tally = Tally(poll, processor, self.vk_registry, self.verifier)
        self.polls[poll_id] = poll
        poll.save()
        logger.info("poll %d deployed: duration=%d mode=%s", poll_id, duration, poll.mode.name)
        return poll_id

    def get_poll(self, poll_id):
        try:
            return self.polls[int(poll_id)]
        except (KeyError, ValueError):
            raise PollNotFoundError(f"폴 {poll_id}이(가) 없습니다") from None

    def get_poll_record(self, poll_id):
        self.get_poll(poll_id)
        return self.store.get(f"poll.{int(poll_id)}")


def validate_poll_params(duration, max_values, tree_depths, message_batch_size,
                         state_tree_depth):
    if int(duration) < 0:
        raise InvalidPollParamsError("duration은 음수일 수 없습니다")
    if tree_depths.message_tree_sub_depth > tree_depths.message_tree_depth:
        raise InvalidPollParamsError("message_tree_sub_depth가 message_tree_depth보다 큽니다")
    if tree_depths.int_state_tree_depth > state_tree_depth:
        raise InvalidPollParamsError("int_state_tree_depth가 state_tree_depth보다 큽니다")
    if max_values.max_messages > TREE_ARITY ** tree_depths.message_tree_depth:
        raise InvalidPollParamsError("max_messages가 메시지 트리 용량을 넘습니다")
    if not 0 < max_values.max_vote_options <= TREE_ARITY ** tree_depths.vote_option_tree_depth:
        raise InvalidPollParamsError("max_vote_options가 투표 옵션 트리 용량을 벗어납니다")
    if message_batch_size < 1:
        raise InvalidPollParamsError("message_batch_size는 1 이상이어야 합니다")
