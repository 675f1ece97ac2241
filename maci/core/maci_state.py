"""
오프체인 등록부 미러
=====================

코디네이터가 보관하는 사용자 등록부와 폴 목록.
온체인 Maci 컨트랙트와 같은 순서로 sign_up / deploy_poll 을 호출하면
같은 상태 인덱스와 폴 ID가 나온다.
"""

import logging

from maci.core.poll import Poll
from maci.domain import StateLeaf, Mode, TREE_ARITY
from maci.errors import TooManySignUpsError, PollNotFoundError


logger = logging.getLogger(__name__)


class MaciState:
    """사용자 상태 리프와 폴을 보관한다.

    state_leaves[0]은 빈 리프이며, num_sign_ups 는 빈 리프를 포함한 리프 수이다.
    """

    def __init__(self, state_tree_depth):
        self.state_tree_depth = state_tree_depth
        self.state_leaves = [StateLeaf.blank()]
        self.polls = {}

    @property
    def num_sign_ups(self):
        return len(self.state_leaves)

    def sign_up(self, pub_key, voice_credit_balance, timestamp):
        """사용자를 등록하고 상태 인덱스를 반환한다."""
        if len(self.state_leaves) >= TREE_ARITY ** self.state_tree_depth:
            raise TooManySignUpsError("상태 트리가 가득 찼습니다")
        self.state_leaves.append(StateLeaf(pub_key, voice_credit_balance, timestamp))
        index = len(self.state_leaves) - 1
        logger.debug("signed up state index %d", index)
        return index

    def deploy_poll(self, poll_end_timestamp, max_values, tree_depths,
                    message_batch_size, coordinator_keypair, mode=Mode.QV):
        """폴을 만들고 자리표시 메시지를 게시한 뒤 폴 ID를 반환한다."""
        poll_id = len(self.polls)
        poll = Poll(poll_id, poll_end_timestamp, coordinator_keypair, tree_depths,
                    message_batch_size, max_values, self, Mode(mode))
        self.polls[poll_id] = poll
        return poll_id

    def get_poll(self, poll_id):
        try:
            return self.polls[poll_id]
        except KeyError:
            raise PollNotFoundError(f"폴 {poll_id}이(가) 없습니다") from None
