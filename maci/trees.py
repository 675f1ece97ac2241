"""
증분 머클 트리 (Incremental Merkle Tree)
==========================================

고정 깊이, 임의 아리티(2 또는 5)의 머클 트리.
상태 트리, 투표지 트리, 투표 옵션 트리, 집계 결과 트리에 사용된다.

**저장 구조**:
  레벨별 노드 버퍼 levels[l]에 채워진 노드만 보관한다.
  채워지지 않은 위치는 zeros[l]로 간주한다.

      zeros[0]   = zero_value
      zeros[l+1] = H(zeros[l], ..., zeros[l])   (아리티 개)

  부모는 자식 인덱스로부터 재계산되며, 부모-자식 포인터는 저장하지 않는다.
  따라서 깊이 d, 리프 n개 트리의 메모리는 O(n)이고 갱신은 O(d)이다.

**경로 증명**:
  각 레벨에서 형제 노드 (아리티-1개)와 위치 인덱스를 기록한다.

사용 예시:
    >>> tree = MerkleTree(depth=2, zero_value=0, arity=5)
    >>> tree.insert(42)
    0
    >>> proof = tree.gen_proof(0)
    >>> MerkleTree.verify_proof(proof, arity=5)
    True
"""

from maci.crypto.hashing import hash_n


def hash_children(children):
    return hash_n(children)


def calc_zeros(depth, zero_value, arity):
    """레벨별 빈 서브트리 루트 [zeros[0], ..., zeros[depth]]."""
    zeros = [int(zero_value)]
    for _ in range(depth):
        zeros.append(hash_children([zeros[-1]] * arity))
    return zeros


class MerkleTree:
    """희소 증분 머클 트리.

    속성:
        depth: 트리 깊이
        arity: 노드당 자식 수
        zeros: 레벨별 빈 노드 값
        levels: 레벨별 채워진 노드 리스트
        next_index: 다음 삽입 위치
    """

    def __init__(self, depth, zero_value, arity=5):
        if depth < 0:
            raise ValueError(f"트리 깊이는 0 이상이어야 합니다: {depth}")
        if arity < 2:
            raise ValueError(f"아리티는 2 이상이어야 합니다: {arity}")
        self.depth = depth
        self.arity = arity
        self.zero_value = int(zero_value)
        self.zeros = calc_zeros(depth, zero_value, arity)
        self.levels = [[] for _ in range(depth + 1)]
        self.next_index = 0

    @property
    def capacity(self):
        return self.arity ** self.depth

    @property
    def root(self):
        top = self.levels[self.depth]
        return top[0] if top else self.zeros[self.depth]

    @property
    def leaves(self):
        return list(self.levels[0][:self.next_index])

    def _node(self, level, index):
        buf = self.levels[level]
        return buf[index] if index < len(buf) else self.zeros[level]

    def _set_node(self, level, index, value):
        buf = self.levels[level]
        while len(buf) <= index:
            buf.append(self.zeros[level])
        buf[index] = value

    def _recompute_path(self, index):
        for level in range(self.depth):
            parent = index // self.arity
            start = parent * self.arity
            children = [self._node(level, start + j) for j in range(self.arity)]
            self._set_node(level + 1, parent, hash_children(children))
            index = parent

    def insert(self, leaf):
        """다음 위치에 리프를 삽입하고 인덱스를 반환한다."""
        if self.next_index >= self.capacity:
            raise ValueError("머클 트리가 가득 찼습니다")
        index = self.next_index
        self._set_node(0, index, int(leaf))
        self._recompute_path(index)
        self.next_index += 1
        return index

    def insert_many(self, leaves):
        for leaf in leaves:
            self.insert(leaf)

    def update(self, index, leaf):
        """이미 삽입된 위치의 리프를 교체한다."""
        if not 0 <= index < self.next_index:
            raise IndexError(f"삽입되지 않은 리프 인덱스: {index}")
        self._set_node(0, index, int(leaf))
        self._recompute_path(index)

    def get_leaf(self, index):
        if not 0 <= index < self.next_index:
            raise IndexError(f"삽입되지 않은 리프 인덱스: {index}")
        return self.levels[0][index]

    def gen_proof(self, index):
        """index 리프의 머클 경로를 생성한다.

        Returns:
            dict: {"leaf", "path_elements", "path_indices", "root"}
                  path_elements[l]은 레벨 l의 형제 노드 리스트 (아리티-1개)
        """
        leaf = self.get_leaf(index)
        path_elements = []
        path_indices = []
        for level in range(self.depth):
            position = index % self.arity
            start = index - position
            siblings = [self._node(level, start + j) for j in range(self.arity) if j != position]
            path_elements.append(siblings)
            path_indices.append(position)
            index //= self.arity
        return {
            "leaf": leaf,
            "path_elements": path_elements,
            "path_indices": path_indices,
            "root": self.root,
        }

    @staticmethod
    def compute_root_from_path(leaf, path_elements, path_indices):
        node = int(leaf)
        for siblings, position in zip(path_elements, path_indices):
            children = list(siblings)
            children.insert(position, node)
            node = hash_children(children)
        return node

    @staticmethod
    def verify_proof(proof, arity=None):
        path_elements = proof["path_elements"]
        path_indices = proof["path_indices"]
        if len(path_elements) != len(path_indices):
            return False
        for siblings, position in zip(path_elements, path_indices):
            width = len(siblings) + 1
            if arity is not None and width != arity:
                return False
            if not 0 <= position < width:
                return False
        computed = MerkleTree.compute_root_from_path(proof["leaf"], path_elements, path_indices)
        return computed == int(proof["root"])

    def copy(self):
        tree = MerkleTree.__new__(MerkleTree)
        tree.depth = self.depth
        tree.arity = self.arity
        tree.zero_value = self.zero_value
        tree.zeros = list(self.zeros)
        tree.levels = [list(buf) for buf in self.levels]
        tree.next_index = self.next_index
        return tree
