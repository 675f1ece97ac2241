"""
Poll 컨트랙트 (정산 계층)
==========================

폴 하나의 메시지 누산 큐, 상태 누산 큐 스냅샷, 단계 판정을 담당한다.

**단계**:

    VOTING ──(마감)──▶ DEADLINE ──(병합 시작)──▶ MERGING ──(두 큐 병합)──▶ PROCESSING
                                                                        │
                        TALLY_COMPLETE ◀──(모든 투표지 집계)── TALLY_PENDING ◀─(처리 완료)

  단계는 저장하지 않고 시계와 플래그로부터 계산한다.

**상태 스냅샷 (copy-on-freeze)**:
  merge_maci_state_aq_sub_roots 첫 호출에서 등록부 리프 목록을 복사하고
  num_sign_ups 를 고정한다. 이후 등록은 이 폴에 영향을 주지 않는다.
  상태 큐 병합이 끝나면 초기 sb_commitment = hash3([state_root, empty_ballot_root, 0]).
"""

import logging
import threading
from enum import Enum

from maci.acc_queue import AccQueue
from maci.core.processing import empty_ballot_root, gen_sb_commitment, blank_state_leaf_hash
from maci.domain import (
    TREE_ARITY, NOTHING_UP_MY_SLEEVE, PAD_KEY, Mode,
    check_message, placeholder_message,
)
from maci.errors import (
    VotingPeriodOverError,
    VotingPeriodNotOverError,
    AccQueueNotReadyError,
)


logger = logging.getLogger(__name__)

# 상태 누산 큐 서브트리 깊이
STATE_TREE_SUB_DEPTH = 2


class PollPhase(Enum):
    VOTING = "voting"
    DEADLINE = "deadline"
    MERGING = "merging"
    PROCESSING = "processing"
    TALLY_PENDING = "tally_pending"
    TALLY_COMPLETE = "tally_complete"


class Poll:
    def __init__(self, poll_id, maci, duration, max_values, tree_depths,
                 coordinator_pub_key, mode, message_batch_size, clock, store=None):
        self.poll_id = poll_id
        self.maci = maci
        self.duration = int(duration)
        self.max_values = max_values
        self.tree_depths = tree_depths
        self.coordinator_pub_key = coordinator_pub_key
        self.mode = Mode(mode)
        self.message_batch_size = message_batch_size
        self.clock = clock
        self.store = store
        self.deploy_time = clock.now()

        self.message_aq = AccQueue(tree_depths.message_tree_sub_depth, TREE_ARITY,
                                   NOTHING_UP_MY_SLEEVE, capacity=max_values.max_messages)
        self.num_messages = 0
        self.message_aq_merged = False
        self.merged_message_root = None

        self.state_aq = None
        self.num_sign_ups = None
        self.state_aq_merged = False
        self.merged_state_root = None
        self.current_sb_commitment = None

        # Maci.deploy_poll 이 연결한다
        self.message_processor = None
        self.tally = None

        # 게시와 병합을 직렬화한다
        self._lock = threading.Lock()
        self._enqueue_message(placeholder_message(), PAD_KEY)

    # ─── 속성 ───

    @property
    def state_tree_depth(self):
        return self.maci.state_tree_depth

    @property
    def deadline(self):
        return self.deploy_time + self.duration

    def is_after_deadline(self):
        return self.clock.now() >= self.deadline

    @property
    def coordinator_pub_key_hash(self):
        return self.coordinator_pub_key.hash()

    @property
    def phase(self):
        if not self.is_after_deadline():
            return PollPhase.VOTING
        if not (self.state_aq_merged and self.message_aq_merged):
            if self.state_aq is None and not self.message_aq.closed:
                return PollPhase.DEADLINE
            return PollPhase.MERGING
        if self.message_processor is None or not self.message_processor.processing_complete:
            return PollPhase.PROCESSING
        if self.tally is None or not self.tally.is_tallied():
            return PollPhase.TALLY_PENDING
        return PollPhase.TALLY_COMPLETE

    def require_after_deadline(self):
        if not self.is_after_deadline():
            raise VotingPeriodNotOverError(f"폴 {self.poll_id}의 투표 기간이 끝나지 않았습니다")

    # ─── 게시 ───

    def publish_message(self, message, enc_pub_key):
        """투표 기간 중 메시지를 게시하고 메시지 인덱스를 반환한다.

        Raises:
            VotingPeriodOverError: 마감 이후
            InvalidMessageError: 데이터 형식 오류
            AccQueueFullError: max_messages 초과
        """
        with self._lock:
            if self.is_after_deadline():
                raise VotingPeriodOverError(f"폴 {self.poll_id}의 투표 기간이 끝났습니다")
            check_message(message, enc_pub_key)
            index = self._enqueue_message(message, enc_pub_key)
        logger.debug("poll %d message %d published", self.poll_id, index)
        return index

    def _enqueue_message(self, message, enc_pub_key):
        self.message_aq.enqueue(message.hash(enc_pub_key))
        self.num_messages += 1
        self.save()
        return self.num_messages - 1

    # ─── 상태 큐 병합 ───

    def _snapshot_state(self):
        leaves = list(self.maci.state_leaves)
        sub_depth = min(STATE_TREE_SUB_DEPTH, self.state_tree_depth)
        aq = AccQueue(sub_depth, TREE_ARITY, blank_state_leaf_hash())
        for leaf in leaves:
            aq.enqueue(leaf.hash())
        self.state_aq = aq
        self.num_sign_ups = len(leaves)
        logger.info("poll %d froze %d state leaves", self.poll_id, self.num_sign_ups)

    def merge_maci_state_aq_sub_roots(self, limit=0):
        self.require_after_deadline()
        with self._lock:
            if self.state_aq is None:
                self._snapshot_state()
            done = self.state_aq.merge_sub_roots(limit)
            self.save()
            return done

    def merge_maci_state_aq(self):
        self.require_after_deadline()
        with self._lock:
            if self.state_aq_merged:
                return self.merged_state_root
            if self.state_aq is None:
                raise AccQueueNotReadyError("상태 큐 서브루트 병합이 시작되지 않았습니다")
            root = self.state_aq.merge(self.state_tree_depth)
            ballot_root = empty_ballot_root(self.state_tree_depth,
                                            self.tree_depths.vote_option_tree_depth)
            self.merged_state_root = root
            self.current_sb_commitment = gen_sb_commitment(root, ballot_root, 0)
            self.state_aq_merged = True
            self.save()
            logger.info("poll %d state aq merged", self.poll_id)
            return root

    # ─── 메시지 큐 병합 ───

    def merge_message_aq_sub_roots(self, limit=0):
        self.require_after_deadline()
        with self._lock:
            done = self.message_aq.merge_sub_roots(limit)
            self.save()
            return done

    def merge_message_aq(self):
        self.require_after_deadline()
        with self._lock:
            if self.message_aq_merged:
                return self.merged_message_root
            root = self.message_aq.merge(self.tree_depths.message_tree_depth)
            self.merged_message_root = root
            self.message_aq_merged = True
            self.save()
            logger.info("poll %d message aq merged (%d messages)", self.poll_id, self.num_messages)
            return root

    # ─── 레코드 ───

    def as_record(self):
        def opt(value):
            return None if value is None else str(value)

        record = {
            "poll_id": self.poll_id,
            "phase": self.phase.value,
            "deploy_time": self.deploy_time,
            "duration": self.duration,
            "mode": self.mode.name,
            "coordinator_pub_key": [str(v) for v in self.coordinator_pub_key.as_ints()],
            "tree_depths": self.tree_depths.as_dict(),
            "max_values": self.max_values.as_dict(),
            "message_batch_size": self.message_batch_size,
            "num_messages": self.num_messages,
            "num_sign_ups": self.num_sign_ups,
            "state_aq_merged": self.state_aq_merged,
            "message_aq_merged": self.message_aq_merged,
            "merged_state_root": opt(self.merged_state_root),
            "merged_message_root": opt(self.merged_message_root),
            "current_sb_commitment": opt(self.current_sb_commitment),
        }
        if self.message_processor is not None:
            record.update(self.message_processor.as_record())
        if self.tally is not None:
            record.update(self.tally.as_record())
        return record

    def save(self):
        if self.store is not None:
            self.store.set(f"poll.{self.poll_id}", self.as_record())
