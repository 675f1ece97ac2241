"""
검증키 레지스트리
==================

회로 구성 시그니처와 투표 모드로 검증키를 찾는 한 번만 쓸 수 있는 저장소.

**키 구성**: (kind, mode, signature)
  kind      : "poll" / "process" / "tally"
  signature : maci.packing.gen_*_vk_sig 값

**규칙**:
  - 생성 시 비어 있고 초기화(reset) 연산은 없다.
  - 이미 있는 슬롯에 쓰면 VkAlreadySetError, 기존 키는 그대로 남는다.
  - 없는 슬롯을 읽으면 VkNotSetError.
  - set_verifying_keys 는 모든 대상 슬롯을 먼저 확인한 뒤에만 쓴다.

사용 예시:
    >>> registry = VkRegistry()
    >>> registry.set_verifying_keys(10, 1, 2, 2, 25, Mode.QV, poll_vk, process_vk, tally_vk)
    >>> registry.get_process_vk(10, 2, 25, Mode.QV)
"""

import logging
import threading

from maci.contracts.storage import RecordStore, open_db
from maci.domain import Mode, TREE_ARITY
from maci.errors import VkAlreadySetError, VkNotSetError, InvalidVkParamsError
from maci.packing import (
    VK_SIG_FIELD_BITS,
    gen_poll_vk_sig,
    gen_process_vk_sig,
    gen_tally_vk_sig,
)
from maci.serializers import serialize_vk, deserialize_vk


logger = logging.getLogger(__name__)

VK_KINDS = ("poll", "process", "tally")


def vk_key(kind, signature, mode):
    if kind not in VK_KINDS:
        raise ValueError(f"알 수 없는 검증키 종류: {kind}")
    return f"{kind}.{int(Mode(mode))}.{int(signature)}"


class VkRegistry:
    def __init__(self, db=None):
        self.db = db if db is not None else open_db()
        self.store = RecordStore(self.db.table("vks"))
        self._lock = threading.RLock()

    # ─── 범용 ───

    def is_set(self, kind, signature, mode):
        return self.store.contains(vk_key(kind, signature, mode))

    def set(self, kind, signature, mode, vk):
        key = vk_key(kind, signature, mode)
        with self._lock:
            if self.store.contains(key):
                raise VkAlreadySetError(f"검증키가 이미 등록되어 있습니다: {key}")
            self.store.set(key, serialize_vk(vk))
        logger.info("verifying key registered: %s", key)

    def get(self, kind, signature, mode):
        key = vk_key(kind, signature, mode)
        data = self.store.get(key)
        if data is None:
            raise VkNotSetError(f"검증키가 등록되지 않았습니다: {key}")
        return deserialize_vk(data)

    # ─── 역할별 ───

    def set_poll_vk(self, signature, mode, vk):
        self.set("poll", signature, mode, vk)

    def set_process_vk(self, signature, mode, vk):
        self.set("process", signature, mode, vk)

    def set_tally_vk(self, signature, mode, vk):
        self.set("tally", signature, mode, vk)

    def is_poll_vk_set(self, signature, mode=Mode.QV):
        return self.is_set("poll", signature, mode)

    def is_process_vk_set(self, signature, mode):
        return self.is_set("process", signature, mode)

    def is_tally_vk_set(self, signature, mode):
        return self.is_set("tally", signature, mode)

    def get_poll_vk_by_sig(self, signature, mode=Mode.QV):
        return self.get("poll", signature, mode)

    def get_process_vk_by_sig(self, signature, mode):
        return self.get("process", signature, mode)

    def get_tally_vk_by_sig(self, signature, mode):
        return self.get("tally", signature, mode)

    def get_poll_vk(self, state_tree_depth, vote_option_tree_depth, mode=Mode.QV):
        return self.get("poll", gen_poll_vk_sig(state_tree_depth, vote_option_tree_depth), mode)

    def get_process_vk(self, state_tree_depth, vote_option_tree_depth, message_batch_size, mode):
        sig = gen_process_vk_sig(state_tree_depth, vote_option_tree_depth, message_batch_size)
        return self.get("process", sig, mode)

    def get_tally_vk(self, state_tree_depth, int_state_tree_depth, vote_option_tree_depth, mode):
        sig = gen_tally_vk_sig(state_tree_depth, int_state_tree_depth, vote_option_tree_depth)
        return self.get("tally", sig, mode)

    # ─── 일괄 등록 ───

    def set_verifying_keys(self, state_tree_depth, int_state_tree_depth, message_tree_depth,
                           vote_option_tree_depth, message_batch_size, mode,
                           poll_vk, process_vk, tally_vk):
        """한 회로 구성의 poll / process / tally 검증키를 한꺼번에 등록한다.

        Raises:
            InvalidVkParamsError: 깊이나 배치 크기가 잘못되었을 때
            VkAlreadySetError: 대상 슬롯 중 하나라도 이미 등록되어 있을 때 (아무것도 쓰지 않음)
        """
        self.set_verifying_keys_batch(
            state_tree_depth, int_state_tree_depth, message_tree_depth,
            vote_option_tree_depth, message_batch_size, [mode],
            poll_vk, [process_vk], [tally_vk],
        )

    def set_verifying_keys_batch(self, state_tree_depth, int_state_tree_depth,
                                 message_tree_depth, vote_option_tree_depth,
                                 message_batch_size, modes, poll_vk, process_vks, tally_vks):
        """여러 모드의 검증키를 한꺼번에 등록한다. poll 검증키는 모드마다 같은 키를 쓴다."""
        validate_vk_params(state_tree_depth, int_state_tree_depth, message_tree_depth,
                           vote_option_tree_depth, message_batch_size)
        modes = [Mode(m) for m in modes]
        if not modes:
            raise InvalidVkParamsError("모드가 하나 이상 필요합니다")
        if len(set(modes)) != len(modes):
            raise InvalidVkParamsError("모드가 중복되었습니다")
        if not len(modes) == len(process_vks) == len(tally_vks):
            raise InvalidVkParamsError("모드와 검증키 개수가 맞지 않습니다")

        poll_sig = gen_poll_vk_sig(state_tree_depth, vote_option_tree_depth)
        process_sig = gen_process_vk_sig(state_tree_depth, vote_option_tree_depth,
                                         message_batch_size)
        tally_sig = gen_tally_vk_sig(state_tree_depth, int_state_tree_depth,
                                     vote_option_tree_depth)

        writes = []
        for mode, process_vk, tally_vk in zip(modes, process_vks, tally_vks):
            writes.append(("poll", poll_sig, mode, poll_vk))
            writes.append(("process", process_sig, mode, process_vk))
            writes.append(("tally", tally_sig, mode, tally_vk))

        with self._lock:
            for kind, sig, mode, _ in writes:
                if self.is_set(kind, sig, mode):
                    raise VkAlreadySetError(
                        f"검증키가 이미 등록되어 있습니다: {vk_key(kind, sig, mode)}"
                    )
            for kind, sig, mode, vk in writes:
                self.set(kind, sig, mode, vk)


def validate_vk_params(state_tree_depth, int_state_tree_depth, message_tree_depth,
                       vote_option_tree_depth, message_batch_size):
    values = {
        "state_tree_depth": state_tree_depth,
        "int_state_tree_depth": int_state_tree_depth,
        "message_tree_depth": message_tree_depth,
        "vote_option_tree_depth": vote_option_tree_depth,
        "message_batch_size": message_batch_size,
    }
    for name, value in values.items():
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidVkParamsError(f"{name}은(는) 정수여야 합니다: {value!r}")
        if value < 1:
            raise InvalidVkParamsError(f"{name}은(는) 1 이상이어야 합니다: {value}")
        if value >= 1 << VK_SIG_FIELD_BITS:
            raise InvalidVkParamsError(f"{name}이(가) {VK_SIG_FIELD_BITS}비트를 넘습니다")
    if int_state_tree_depth > state_tree_depth:
        raise InvalidVkParamsError("int_state_tree_depth는 state_tree_depth 이하여야 합니다")
    if message_batch_size > TREE_ARITY ** message_tree_depth:
        raise InvalidVkParamsError("message_batch_size가 메시지 트리 용량을 넘습니다")
