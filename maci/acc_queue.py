"""
누산 큐 (Accumulator Queue, AccQueue)
======================================

리프를 하나씩 받아 고정 아리티의 서브트리로 묶고, 투표 마감 후
서브트리 루트들을 병합하여 메인 루트를 확정하는 증분 머클 누산기.

**구조 (레벨 버퍼 아레나)**:
  - levels[l]   : 레벨 l 에서 아직 가득 차지 않은 노드 버퍼 (길이 = 아리티)
  - indices[l]  : 버퍼에 채워진 개수
  - sub_roots   : 완성된 서브트리 (높이 sub_depth)의 루트 리스트
  부모 해시는 자식 버퍼가 가득 찰 때 계산되어 한 레벨 위로 올라간다.
  부모-자식 포인터는 저장하지 않는다.

**수명 주기**:
  1. enqueue(leaf)              : 레벨 0 버퍼에 추가, 가득 차면 위로 연쇄 해싱
  2. merge_sub_roots(limit)     : 서브트리 루트를 작은 서브루트 트리(SRT)에 최대 limit개 삽입
                                  (0 = 무제한). 첫 호출에서 큐가 닫힌다.
                                  모든 서브루트가 들어가면 SRT 루트가 확정된다.
  3. merge(depth)               : SRT 루트를 빈 서브트리로 패딩하여 깊이 depth의 메인 루트 확정
  4. get_main_root(depth)       : 병합된 루트 조회. 병합 전 조회는 오류

**불변식**:
  병합된 메인 루트는 같은 깊이/아리티/영값을 갖는 완전 머클 트리에
  같은 리프를 넣었을 때의 루트와 같다.

    서브루트 s₀ s₁ s₂ (sub_depth=1, 아리티 5, depth=3)

          root(3) = H(srt, z₂, z₂, z₂, z₂)
             │
          srt(2) = H(s₀, s₁, s₂, z₁, z₁)
          /  |  \\
        s₀  s₁  s₂             ← 레벨 1 (서브트리 루트)

사용 예시:
    >>> aq = AccQueue(sub_depth=2, hash_length=5, zero_value=0)
    >>> aq.enqueue(123)
    0
    >>> aq.merge_sub_roots(0)
    True
    >>> root = aq.merge(3)
    >>> root == aq.get_main_root(3)
    True
"""

import logging

from maci.errors import (
    AccQueueClosedError,
    AccQueueFullError,
    AccQueueNotReadyError,
    AccQueueNotMergedError,
    DepthTooSmallError,
)
from maci.trees import calc_zeros, hash_children


logger = logging.getLogger(__name__)


class AccQueue:
    """증분 머클 누산 큐.

    속성:
        sub_depth: 서브트리 높이
        hash_length: 아리티 (2 또는 5)
        zero_value: 빈 리프 값
        num_leaves: 지금까지 넣은 리프 수 (fill 패딩 포함)
        sub_roots: 완성된 서브트리 루트
        sub_trees_merged: SRT 루트가 확정되었는지
        main_roots: {depth: root}
        closed: enqueue가 거부되는 상태인지
    """

    def __init__(self, sub_depth, hash_length, zero_value, capacity=None):
        if hash_length not in (2, 5):
            raise ValueError(f"hash_length는 2 또는 5여야 합니다: {hash_length}")
        if sub_depth < 0:
            raise ValueError(f"sub_depth는 0 이상이어야 합니다: {sub_depth}")
        self.sub_depth = sub_depth
        self.hash_length = hash_length
        self.zero_value = int(zero_value)
        self.capacity = capacity
        self.zeros = calc_zeros(sub_depth, zero_value, hash_length)

        # 서브트리 아레나
        self.levels = [[0] * hash_length for _ in range(sub_depth)]
        self.indices = [0] * sub_depth
        self.sub_roots = []
        self.num_leaves = 0
        self.closed = False

        # 서브루트 병합 상태
        self.srt_height = None
        self.srt_levels = []
        self.srt_indices = []
        self.next_sub_root_index = 0
        self.sub_trees_merged = False
        self.small_srt_root = None

        self.main_roots = {}

    # ─── 기본 속성 ───

    @property
    def sub_tree_capacity(self):
        return self.hash_length ** self.sub_depth

    @property
    def num_sub_roots(self):
        return len(self.sub_roots)

    def get_zero(self, level):
        while len(self.zeros) <= level:
            self.zeros.append(hash_children([self.zeros[-1]] * self.hash_length))
        return self.zeros[level]

    def get_sub_root(self, index):
        return self.sub_roots[index]

    # ─── 삽입 ───

    def close(self):
        self.closed = True

    def enqueue(self, leaf):
        """리프를 추가하고 리프 인덱스를 반환한다.

        Raises:
            AccQueueClosedError: 큐가 닫힌 뒤 호출할 때
            AccQueueFullError: capacity를 넘을 때
        """
        if self.closed:
            raise AccQueueClosedError("닫힌 AccQueue에는 리프를 추가할 수 없습니다")
        if self.capacity is not None and self.num_leaves >= self.capacity:
            raise AccQueueFullError(f"AccQueue 용량 {self.capacity}을 초과했습니다")
        leaf_index = self.num_leaves
        self._enqueue(int(leaf), 0)
        self.num_leaves += 1
        return leaf_index

    def _enqueue(self, leaf, level):
        if level == self.sub_depth:
            self.sub_roots.append(leaf)
            return
        buf = self.levels[level]
        buf[self.indices[level]] = leaf
        self.indices[level] += 1
        if self.indices[level] == self.hash_length:
            hashed = hash_children(buf)
            self.levels[level] = [0] * self.hash_length
            self.indices[level] = 0
            self._enqueue(hashed, level + 1)

    def insert_sub_tree(self, sub_root):
        """완성된 서브트리 루트를 통째로 추가한다. 현재 서브트리는 비어 있어야 한다."""
        if self.closed:
            raise AccQueueClosedError("닫힌 AccQueue에는 서브트리를 추가할 수 없습니다")
        if self.num_leaves % self.sub_tree_capacity != 0:
            raise ValueError("현재 서브트리가 비어 있지 않습니다")
        if self.capacity is not None and self.num_leaves + self.sub_tree_capacity > self.capacity:
            raise AccQueueFullError(f"AccQueue 용량 {self.capacity}을 초과했습니다")
        self.sub_roots.append(int(sub_root))
        self.num_leaves += self.sub_tree_capacity

    def fill(self):
        """현재 서브트리의 빈 자리를 영값으로 채우고 서브루트를 저장한다."""
        if self.num_leaves % self.sub_tree_capacity == 0:
            self.sub_roots.append(self.get_zero(self.sub_depth))
        else:
            # 아래 레벨부터 남은 칸을 채우면 위 레벨로 연쇄되어 서브루트가 나온다
            for level in range(self.sub_depth):
                zero = self.get_zero(level)
                while self.indices[level] != 0:
                    self._enqueue(zero, level)
        self.num_leaves = len(self.sub_roots) * self.sub_tree_capacity

    # ─── 병합 ───

    def calc_srt_height(self):
        """서브루트를 모두 담는 최소 SRT 높이 (서브루트가 1개면 0)."""
        count = len(self.sub_roots)
        if count <= 1:
            return 0
        height = 1
        while self.hash_length ** height < count:
            height += 1
        return height

    def merge_sub_roots(self, limit=0):
        """서브루트를 SRT에 최대 limit개 삽입한다 (0 = 전부).

        모든 서브루트가 삽입되면 나머지 자리를 빈 서브트리로 채워
        SRT 루트를 확정한다. 이미 확정되었으면 아무 일도 하지 않는다.

        Returns:
            bool: 서브루트 병합이 끝났는지
        """
        if self.sub_trees_merged:
            return True

        if self.srt_height is None:
            self.closed = True
            if self.num_leaves == 0 or self.num_leaves % self.sub_tree_capacity != 0:
                self.fill()
            self.srt_height = self.calc_srt_height()
            self.srt_levels = [[0] * self.hash_length for _ in range(self.srt_height + 1)]
            self.srt_indices = [0] * (self.srt_height + 1)
            logger.debug("closing acc queue: leaves=%d sub_roots=%d srt_height=%d",
                         self.num_leaves, len(self.sub_roots), self.srt_height)

        if self.srt_height == 0:
            self.small_srt_root = self.sub_roots[0]
            self.sub_trees_merged = True
            return True

        ops = 0
        while self.next_sub_root_index < len(self.sub_roots):
            if limit and ops == limit:
                return False
            self._queue_sub_root(self.sub_roots[self.next_sub_root_index], 0)
            self.next_sub_root_index += 1
            ops += 1

        zero = self.get_zero(self.sub_depth)
        for _ in range(len(self.sub_roots), self.hash_length ** self.srt_height):
            self._queue_sub_root(zero, 0)

        self.small_srt_root = self.srt_levels[self.srt_height][0]
        self.sub_trees_merged = True
        return True

    def _queue_sub_root(self, leaf, level):
        buf = self.srt_levels[level]
        buf[self.srt_indices[level]] = leaf
        self.srt_indices[level] += 1
        if level == self.srt_height:
            return
        if self.srt_indices[level] == self.hash_length:
            hashed = hash_children(buf)
            self.srt_levels[level] = [0] * self.hash_length
            self.srt_indices[level] = 0
            self._queue_sub_root(hashed, level + 1)

    def merge(self, depth):
        """SRT 루트를 깊이 depth의 메인 루트로 확장한다.

        Raises:
            AccQueueNotReadyError: merge_sub_roots가 끝나지 않았을 때
            DepthTooSmallError: depth < sub_depth + SRT 높이
        """
        if not self.sub_trees_merged:
            raise AccQueueNotReadyError("서브루트 병합이 끝나지 않았습니다")
        if depth in self.main_roots:
            return self.main_roots[depth]
        base = self.sub_depth + self.srt_height
        if depth < base:
            raise DepthTooSmallError(f"깊이 {depth}는 최소 깊이 {base}보다 작습니다")

        root = self.small_srt_root
        for level in range(base, depth):
            root = hash_children([root] + [self.get_zero(level)] * (self.hash_length - 1))
        self.main_roots[depth] = root
        logger.debug("acc queue merged at depth %d", depth)
        return root

    def has_root(self, depth):
        return depth in self.main_roots

    def get_main_root(self, depth):
        if depth not in self.main_roots:
            raise AccQueueNotMergedError(f"깊이 {depth}의 메인 루트가 아직 병합되지 않았습니다")
        return self.main_roots[depth]

    def get_root(self):
        """가장 최근에 병합된 메인 루트."""
        if not self.main_roots:
            raise AccQueueNotMergedError("AccQueue가 아직 병합되지 않았습니다")
        return self.main_roots[max(self.main_roots)]

    def get_small_srt_root(self):
        if not self.sub_trees_merged:
            raise AccQueueNotReadyError("서브루트 병합이 끝나지 않았습니다")
        return self.small_srt_root

    def copy(self):
        """현재 상태의 독립 복사본 (스냅샷)."""
        aq = AccQueue(self.sub_depth, self.hash_length, self.zero_value, self.capacity)
        aq.zeros = list(self.zeros)
        aq.levels = [list(buf) for buf in self.levels]
        aq.indices = list(self.indices)
        aq.sub_roots = list(self.sub_roots)
        aq.num_leaves = self.num_leaves
        aq.closed = self.closed
        aq.srt_height = self.srt_height
        aq.srt_levels = [list(buf) for buf in self.srt_levels]
        aq.srt_indices = list(self.srt_indices)
        aq.next_sub_root_index = self.next_sub_root_index
        aq.sub_trees_merged = self.sub_trees_merged
        aq.small_srt_root = self.small_srt_root
        aq.main_roots = dict(self.main_roots)
        return aq
