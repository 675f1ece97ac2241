"""
코디네이터 파이프라인
======================

온체인 폴 하나에 대해 병합 → 처리 → 집계를 끝까지 진행한다.

  1. merge()   : 상태/메시지 큐 서브루트를 merge_limit 개씩 병합한 뒤 루트 확정,
                 오프체인 폴 스냅샷
  2. process() : 오프체인 배치 재생 → prover → MessageProcessor.process_messages
  3. tally()   : 오프체인 집계 → prover → Tally.tally_votes

오프체인 폴은 온체인 제출이 받아들여진 배치만 반영한다. 제출이 실패하면
두 쪽 모두 그 배치 앞에 머무르므로 run() 을 다시 불러 이어서 진행할 수 있다.

prover 는 (kind, circuit_inputs) → proof 를 돌려주는 호출 가능 객체이다.
kind 는 "process" 또는 "tally".

여러 폴은 서로 독립이므로 run_coordinators 로 스레드 풀에서 동시에 진행할 수 있다.
폴 하나의 배치는 항상 순서대로 제출된다.
"""

import logging
from concurrent.futures import ThreadPoolExecutor


logger = logging.getLogger(__name__)


def zero_proof(kind, circuit_inputs):
    """테스트 모드 오라클용 빈 증명."""
    return [0] * 8


class Coordinator:
    def __init__(self, maci, maci_state, poll_id, prover=zero_proof, merge_limit=0):
        self.maci = maci
        self.maci_state = maci_state
        self.poll_id = poll_id
        self.prover = prover
        self.merge_limit = merge_limit

    @property
    def poll(self):
        return self.maci.get_poll(self.poll_id)

    @property
    def local_poll(self):
        return self.maci_state.get_poll(self.poll_id)

    def merge(self):
        poll = self.poll
        while not poll.merge_maci_state_aq_sub_roots(self.merge_limit):
            pass
        poll.merge_maci_state_aq()
        while not poll.merge_message_aq_sub_roots(self.merge_limit):
            pass
        poll.merge_message_aq()
        self.local_poll.snapshot()
        logger.info("poll %d accumulators merged", self.poll_id)

    def process(self):
        local = self.local_poll
        processor = self.poll.message_processor
        while local.has_unprocessed_messages():
            inputs, result = local.prepare_process_messages()
            proof = self.prover("process", inputs)
            processor.process_messages(
                inputs["new_sb_commitment"], proof, inputs["packed_vals"],
                current_sb_commitment=inputs["current_sb_commitment"],
            )
            local.apply_process_messages(inputs, result)
        return processor.sb_commitment

    def tally(self):
        local = self.local_poll
        tally = self.poll.tally
        while local.has_untallied_ballots():
            inputs, result = local.prepare_tally_votes()
            proof = self.prover("tally", inputs)
            tally.tally_votes(
                inputs["new_tally_commitment"], proof, inputs["packed_vals"],
                current_tally_commitment=inputs["current_tally_commitment"],
            )
            local.apply_tally_votes(inputs, result)
        return tally.tally_commitment

    def run(self):
        self.merge()
        sb_commitment = self.process()
        tally_commitment = self.tally()
        return {
            "poll_id": self.poll_id,
            "sb_commitment": sb_commitment,
            "tally_commitment": tally_commitment,
            "results": list(self.local_poll.results),
            "total_spent": self.local_poll.total_spent,
        }


def run_coordinators(coordinators, max_workers=None):
    """여러 폴의 파이프라인을 동시에 실행하고 입력 순서대로 결과를 반환한다.

    한 폴에서 예외가 나면 그 예외가 그대로 전파된다.
    """
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [executor.submit(c.run) for c in coordinators]
        return [f.result() for f in futures]
