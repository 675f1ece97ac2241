"""
Packed-Value 코덱 및 검증키 시그니처
=====================================

배치/회로 파라미터를 하나의 스칼라로 압축하여 증명의 공개 입력에 묶는다.

**처리(process) 패킹** (필드 순서는 회로 입력 레이아웃과 고정 계약):

    packed = max_vote_options
           + (num_sign_ups      << 50)
           + (batch_start_index << 100)
           + (batch_end_index   << 150)

**집계(tally) 패킹**:

    packed = batch_start_index / batch_size
           + (num_sign_ups << 50)

각 필드는 50비트이다. 범위를 벗어난 값은 잘라내지 않고 인코딩 전에
FieldOverflowError로 거부한다.

**검증키 시그니처**:

    poll    = (state_tree_depth << 64) + vote_option_tree_depth
    process = (batch_size << 128) + (state_tree_depth << 64) + vote_option_tree_depth
    tally   = (state_tree_depth << 128) + (int_state_tree_depth << 64) + vote_option_tree_depth

사용 예시:
    >>> packed = pack_process_message_small_vals(25, 3, 0, 5)
    >>> unpack_process_message_small_vals(packed)
    {'max_vote_options': 25, 'num_sign_ups': 3, 'batch_start_index': 0, 'batch_end_index': 5}
"""

from maci.errors import FieldOverflowError


PACKED_FIELD_BITS = 50

VK_SIG_FIELD_BITS = 64


# ─────────────────────────────────────────────────────────────────────
# 범용 패킹
# ─────────────────────────────────────────────────────────────────────

def check_field_width(name, value, bits):
    """값이 [0, 2^bits) 범위인지 확인한다.

    Raises:
        FieldOverflowError: 음수이거나 폭을 넘을 때
    """
    if isinstance(value, bool) or int(value) != value:
        raise FieldOverflowError(f"{name}은(는) 정수여야 합니다: {value!r}")
    value = int(value)
    if value < 0 or value >= 1 << bits:
        raise FieldOverflowError(f"{name}={value} 이(가) {bits}비트 폭을 벗어납니다")
    return value


def pack_values(values, bits):
    """값 리스트를 하위 슬롯부터 bits 폭으로 이어 붙인다."""
    checked = [check_field_width(f"field[{i}]", v, bits) for i, v in enumerate(values)]
    packed = 0
    for i, v in enumerate(checked):
        packed += v << (i * bits)
    return packed


def unpack_values(packed, count, bits):
    """pack_values의 역연산.

    Raises:
        FieldOverflowError: packed가 count·bits 비트를 넘을 때
    """
    packed = check_field_width("packed", packed, count * bits)
    mask = (1 << bits) - 1
    return [(packed >> (i * bits)) & mask for i in range(count)]


# ─────────────────────────────────────────────────────────────────────
# 처리 / 집계 패킹
# ─────────────────────────────────────────────────────────────────────

PROCESS_FIELDS = ("max_vote_options", "num_sign_ups", "batch_start_index", "batch_end_index")

TALLY_FIELDS = ("batch_num", "num_sign_ups")


def pack_process_message_small_vals(max_vote_options, num_sign_ups,
                                    batch_start_index, batch_end_index):
    values = [max_vote_options, num_sign_ups, batch_start_index, batch_end_index]
    for name, value in zip(PROCESS_FIELDS, values):
        check_field_width(name, value, PACKED_FIELD_BITS)
    return pack_values(values, PACKED_FIELD_BITS)


def unpack_process_message_small_vals(packed):
    return dict(zip(PROCESS_FIELDS, unpack_values(packed, 4, PACKED_FIELD_BITS)))


def pack_tally_votes_small_vals(batch_start_index, batch_size, num_sign_ups):
    batch_start_index = check_field_width("batch_start_index", batch_start_index, PACKED_FIELD_BITS)
    batch_size = check_field_width("batch_size", batch_size, PACKED_FIELD_BITS)
    if batch_size == 0 or batch_start_index % batch_size != 0:
        raise FieldOverflowError("batch_start_index는 batch_size의 배수여야 합니다")
    batch_num = batch_start_index // batch_size
    check_field_width("num_sign_ups", num_sign_ups, PACKED_FIELD_BITS)
    return pack_values([batch_num, num_sign_ups], PACKED_FIELD_BITS)


def unpack_tally_votes_small_vals(packed):
    return dict(zip(TALLY_FIELDS, unpack_values(packed, 2, PACKED_FIELD_BITS)))


# ─────────────────────────────────────────────────────────────────────
# 검증키 시그니처
# ─────────────────────────────────────────────────────────────────────

def gen_poll_vk_sig(state_tree_depth, vote_option_tree_depth):
    return pack_values([vote_option_tree_depth, state_tree_depth], VK_SIG_FIELD_BITS)


def gen_process_vk_sig(state_tree_depth, vote_option_tree_depth, batch_size):
    return pack_values([vote_option_tree_depth, state_tree_depth, batch_size], VK_SIG_FIELD_BITS)


def gen_tally_vk_sig(state_tree_depth, int_state_tree_depth, vote_option_tree_depth):
    return pack_values(
        [vote_option_tree_depth, int_state_tree_depth, state_tree_depth], VK_SIG_FIELD_BITS
    )
