"""
집계 (Tally)
=============

처리가 끝난 투표지를 5^int_state_tree_depth 개씩 순방향으로 집계한다.

**집계 값**:
  results[i]       = Σ votes[i]               (투표 옵션별 득표)
  total_spent      = Σ cost(votes[i])         (모드별 비용: QV w², NON_QV w)
  per_vo_spent[i]  = Σ votes[i]²              (QV 전용)

**커밋먼트**:
  results_commitment = hash_left_right(results_root, results_salt)
  spent_commitment   = hash_left_right(total_spent, spent_salt)
  per_vo_commitment  = hash_left_right(per_vo_spent_root, per_vo_salt)

  QV     : tally_commitment = hash3([results_commitment, spent_commitment, per_vo_commitment])
  NON_QV : tally_commitment = hash_left_right(results_commitment, spent_commitment)

results_root, per_vo_spent_root 는 깊이 vote_option_tree_depth, 영값 0 인 5진 트리 루트.
첫 배치의 이전 커밋먼트는 0이다.
"""

import logging

from maci.crypto.hashing import hash3, hash_left_right, gen_random_salt
from maci.domain import Mode, TREE_ARITY
from maci.trees import MerkleTree


logger = logging.getLogger(__name__)


def tally_batch_size(int_state_tree_depth):
    return TREE_ARITY ** int_state_tree_depth


def gen_vote_option_root(values, vote_option_tree_depth):
    tree = MerkleTree(vote_option_tree_depth, 0, TREE_ARITY)
    tree.insert_many(values)
    return tree.root


def gen_results_commitment(results, salt, vote_option_tree_depth):
    return hash_left_right(gen_vote_option_root(results, vote_option_tree_depth), salt)


def gen_spent_commitment(total_spent, salt):
    return hash_left_right(total_spent, salt)


def gen_per_vo_spent_commitment(per_vo_spent, salt, vote_option_tree_depth):
    return hash_left_right(gen_vote_option_root(per_vo_spent, vote_option_tree_depth), salt)


def combine_tally_commitment(mode, results_commitment, spent_commitment,
                             per_vo_commitment=None):
    if Mode(mode) is Mode.QV:
        return hash3([results_commitment, spent_commitment, per_vo_commitment])
    return hash_left_right(results_commitment, spent_commitment)


class TallyResult:
    """집계 배치까지의 누적 결과와 커밋먼트.

    속성:
        results, per_vo_spent: 투표 옵션별 누적 값
        total_spent: 누적 보이스 크레딧 사용량
        salts: {"results", "spent", "per_vo_spent"}
        commitment: 새 집계 커밋먼트
    """

    def __init__(self, results, total_spent, per_vo_spent, salts, commitment):
        self.results = results
        self.total_spent = total_spent
        self.per_vo_spent = per_vo_spent
        self.salts = salts
        self.commitment = commitment

    def as_dict(self):
        return {
            "results": [str(v) for v in self.results],
            "total_spent": str(self.total_spent),
            "per_vo_spent": [str(v) for v in self.per_vo_spent],
            "salts": {k: str(v) for k, v in self.salts.items()},
            "commitment": str(self.commitment),
        }


def gen_tally_commitment(results, total_spent, per_vo_spent, salts,
                         vote_option_tree_depth, mode):
    results_commitment = gen_results_commitment(results, salts["results"], vote_option_tree_depth)
    spent_commitment = gen_spent_commitment(total_spent, salts["spent"])
    per_vo_commitment = None
    if Mode(mode) is Mode.QV:
        per_vo_commitment = gen_per_vo_spent_commitment(
            per_vo_spent, salts["per_vo_spent"], vote_option_tree_depth
        )
    return combine_tally_commitment(mode, results_commitment, spent_commitment, per_vo_commitment)


def tally_batch(ballots, batch_start, batch_size, prev_results, prev_total_spent,
                prev_per_vo_spent, vote_option_tree_depth, mode, salts=None):
    """ballots[batch_start : batch_start + batch_size] 를 누적 집계한다.

    Args:
        ballots: 처리 완료된 투표지 리스트 (인덱스 0 포함)
        prev_*: 이전 배치까지의 누적 값 (첫 배치는 0)
        salts: 새 커밋먼트용 솔트. None이면 무작위로 생성한다.

    Returns:
        TallyResult
    """
    mode = Mode(mode)
    results = list(prev_results)
    per_vo_spent = list(prev_per_vo_spent)
    total_spent = int(prev_total_spent)

    for ballot in ballots[batch_start:batch_start + batch_size]:
        for i, weight in enumerate(ballot.votes):
            if weight == 0:
                continue
            results[i] += weight
            total_spent += mode.vote_cost(weight)
            if mode is Mode.QV:
                per_vo_spent[i] += weight * weight

    if salts is None:
        salts = {
            "results": gen_random_salt(),
            "spent": gen_random_salt(),
            "per_vo_spent": gen_random_salt(),
        }
    commitment = gen_tally_commitment(results, total_spent, per_vo_spent, salts,
                                      vote_option_tree_depth, mode)
    logger.info("tallied ballots [%d, %d)", batch_start,
                min(batch_start + batch_size, len(ballots)))
    return TallyResult(results, total_spent, per_vo_spent, salts, commitment)


def empty_tally(vote_option_tree_depth):
    size = TREE_ARITY ** vote_option_tree_depth
    return [0] * size, 0, [0] * size


def gen_vote_option_proof(values, index, vote_option_tree_depth):
    """투표 옵션 트리에서 index 값의 머클 경로 (path_elements 만)."""
    tree = MerkleTree(vote_option_tree_depth, 0, TREE_ARITY)
    tree.insert_many(values)
    return tree.gen_proof(index)["path_elements"]


def path_indices_for(index, depth):
    indices = []
    for _ in range(depth):
        indices.append(index % TREE_ARITY)
        index //= TREE_ARITY
    return indices
