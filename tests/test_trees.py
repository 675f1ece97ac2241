"""
Tests for maci.trees.MerkleTree.

Covers:
- 빈 트리 루트 = zeros[depth]
- 삽입 / 갱신 후 루트와 경로 증명
- 5진 / 2진 아리티
- 용량 초과, 인덱스 오류, copy 독립성
"""

import pytest

from maci.trees import MerkleTree, calc_zeros, hash_children


class TestZeros:
    def test_calc_zeros(self):
        zeros = calc_zeros(2, 7, 5)
        assert zeros[0] == 7
        assert zeros[1] == hash_children([7] * 5)
        assert zeros[2] == hash_children([zeros[1]] * 5)

    def test_empty_root(self):
        tree = MerkleTree(3, 0, 5)
        assert tree.root == calc_zeros(3, 0, 5)[3]


class TestInsert:
    def test_root_of_single_level(self):
        tree = MerkleTree(1, 0, 5)
        tree.insert_many([1, 2, 3])
        assert tree.root == hash_children([1, 2, 3, 0, 0])

    def test_root_of_two_levels(self):
        tree = MerkleTree(2, 0, 5)
        tree.insert_many(range(1, 8))
        left = hash_children([1, 2, 3, 4, 5])
        right = hash_children([6, 7, 0, 0, 0])
        zero1 = hash_children([0] * 5)
        assert tree.root == hash_children([left, right, zero1, zero1, zero1])

    def test_returns_index(self):
        tree = MerkleTree(2, 0, 5)
        assert tree.insert(10) == 0
        assert tree.insert(11) == 1
        assert tree.leaves == [10, 11]

    def test_full(self):
        tree = MerkleTree(1, 0, 2)
        tree.insert_many([1, 2])
        with pytest.raises(ValueError):
            tree.insert(3)

    def test_binary_arity(self):
        tree = MerkleTree(2, 0, 2)
        tree.insert_many([1, 2, 3])
        assert tree.root == hash_children([hash_children([1, 2]), hash_children([3, 0])])

    def test_invalid_params(self):
        with pytest.raises(ValueError):
            MerkleTree(-1, 0)
        with pytest.raises(ValueError):
            MerkleTree(2, 0, arity=1)


class TestUpdate:
    def test_update_matches_fresh_tree(self):
        tree = MerkleTree(2, 0, 5)
        tree.insert_many([1, 2, 3])
        tree.update(1, 99)
        fresh = MerkleTree(2, 0, 5)
        fresh.insert_many([1, 99, 3])
        assert tree.root == fresh.root

    def test_update_unset_index(self):
        tree = MerkleTree(2, 0, 5)
        tree.insert(1)
        with pytest.raises(IndexError):
            tree.update(1, 5)


class TestProof:
    @pytest.fixture
    def tree(self):
        tree = MerkleTree(2, 0, 5)
        tree.insert_many(range(100, 112))
        return tree

    def test_every_leaf_verifies(self, tree):
        for i in range(tree.next_index):
            proof = tree.gen_proof(i)
            assert proof["leaf"] == 100 + i
            assert MerkleTree.verify_proof(proof, arity=5)

    def test_siblings_per_level(self, tree):
        proof = tree.gen_proof(7)
        assert [len(level) for level in proof["path_elements"]] == [4, 4]
        assert proof["path_indices"] == [2, 1]

    def test_wrong_leaf_rejected(self, tree):
        proof = tree.gen_proof(3)
        proof["leaf"] = 1
        assert not MerkleTree.verify_proof(proof)

    def test_wrong_arity_rejected(self, tree):
        assert not MerkleTree.verify_proof(tree.gen_proof(3), arity=2)

    def test_compute_root_from_path(self, tree):
        proof = tree.gen_proof(11)
        root = MerkleTree.compute_root_from_path(111, proof["path_elements"], proof["path_indices"])
        assert root == tree.root

    def test_unset_leaf(self, tree):
        with pytest.raises(IndexError):
            tree.gen_proof(20)


class TestCopy:
    def test_copy_is_independent(self):
        tree = MerkleTree(2, 0, 5)
        tree.insert_many([1, 2])
        clone = tree.copy()
        clone.insert(3)
        assert tree.next_index == 2
        assert tree.root != clone.root
