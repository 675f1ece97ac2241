"""
MACI Flask Blueprint: 정산 계층 JSON 엔드포인트
=================================================

  POST /maci/signup                                   사용자 등록
  POST /maci/polls                                    폴 배포
  GET  /maci/polls/<id>                               폴 레코드
  POST /maci/polls/<id>/messages                      메시지 게시
  POST /maci/polls/<id>/merge/state-sub-roots         상태 큐 서브루트 병합
  POST /maci/polls/<id>/merge/state                   상태 큐 병합
  POST /maci/polls/<id>/merge/message-sub-roots       메시지 큐 서브루트 병합
  POST /maci/polls/<id>/merge/message                 메시지 큐 병합
  POST /maci/polls/<id>/process                       배치 처리 증명 제출
  POST /maci/polls/<id>/tally                         집계 증명 제출
  GET  /maci/polls/<id>/packed-vals                   다음 배치 packed 값
  POST /maci/packed-vals                              packed 값 계산 (순수 헬퍼)
  POST /maci/vks                                      검증키 일괄 등록
  GET  /maci/vks/<kind>/<mode>/<signature>            검증키 조회

처리 / 집계 제출에는 packed_vals 가 필수다.
실패 응답은 {"error": <종류>, "category": <분류>, "message": ...} 이다.
"""

import logging
import re

from flask import Blueprint, jsonify, request

from maci.domain import Mode, TreeDepths, MaxValues
from maci.errors import (
    MaciError,
    PhaseError,
    OrderingError,
    RegistryError,
    VkAlreadySetError,
    VkNotSetError,
    ProofError,
    InvalidPublicInputError,
    EncodingError,
    AccQueueError,
    DepthTooSmallError,
    InvalidMessageError,
    InvalidPollParamsError,
    TooManySignUpsError,
    PollNotFoundError,
)
from maci.packing import pack_process_message_small_vals, unpack_process_message_small_vals
from maci.serializers import (
    deserialize_int,
    deserialize_pub_key,
    deserialize_message,
    deserialize_vk,
    serialize_vk,
)


logger = logging.getLogger(__name__)

maci_bp = Blueprint('maci', __name__, url_prefix='/maci')

# Maci 인스턴스는 app.py에서 주입
MACI = None


def init_maci_bp(maci):
    """app.py에서 Maci 컨트랙트를 주입받는다."""
    global MACI
    MACI = maci


# ─── 오류 응답 ───

ERROR_STATUS = (
    (PollNotFoundError, 404),
    (VkNotSetError, 404),
    (VkAlreadySetError, 409),
    (InvalidPublicInputError, 400),
    (DepthTooSmallError, 400),
    (InvalidMessageError, 400),
    (InvalidPollParamsError, 400),
    (EncodingError, 400),
    (RegistryError, 400),
    (ProofError, 422),
    (PhaseError, 409),
    (OrderingError, 409),
    (AccQueueError, 409),
    (TooManySignUpsError, 409),
)

ERROR_CATEGORIES = (
    (PhaseError, "phase"),
    (OrderingError, "ordering"),
    (RegistryError, "registry"),
    (ProofError, "proof"),
    (EncodingError, "encoding"),
    (AccQueueError, "accumulator"),
)


def error_kind(exc):
    """StateAqNotMergedError → state_aq_not_merged"""
    name = type(exc).__name__
    if name.endswith("Error"):
        name = name[:-len("Error")]
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def error_status(exc):
    for cls, status in ERROR_STATUS:
        if isinstance(exc, cls):
            return status
    return 400


def error_category(exc):
    for cls, category in ERROR_CATEGORIES:
        if isinstance(exc, cls):
            return category
    return "request"


@maci_bp.errorhandler(MaciError)
def handle_maci_error(exc):
    status = error_status(exc)
    logger.warning("%s: %s", type(exc).__name__, exc)
    return jsonify({
        "error": error_kind(exc),
        "category": error_category(exc),
        "message": str(exc),
    }), status


@maci_bp.errorhandler(ValueError)
@maci_bp.errorhandler(KeyError)
@maci_bp.errorhandler(TypeError)
def handle_bad_request(exc):
    return jsonify({
        "error": "bad_request",
        "category": "request",
        "message": str(exc),
    }), 400


# ─── 요청 파싱 ───

def _body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("JSON 객체 본문이 필요합니다")
    return data


def parse_mode(value):
    if isinstance(value, str):
        return Mode[value.upper()]
    return Mode(int(value))


def parse_tree_depths(data):
    return TreeDepths(
        int(data["int_state_tree_depth"]),
        int(data["message_tree_sub_depth"]),
        int(data["message_tree_depth"]),
        int(data["vote_option_tree_depth"]),
    )


def parse_max_values(data):
    return MaxValues(int(data["max_messages"]), int(data["max_vote_options"]))


def _optional_int(data, key):
    value = data.get(key)
    return None if value is None else deserialize_int(value)


# ─── 등록 / 배포 ───

@maci_bp.route("/signup", methods=["POST"])
def signup():
    data = _body()
    index = MACI.sign_up(deserialize_pub_key(data["pub_key"]),
                         deserialize_int(data["voice_credit_balance"]))
    return jsonify({"state_index": index})


@maci_bp.route("/polls", methods=["POST"])
def deploy_poll():
    data = _body()
    batch_size = data.get("message_batch_size")
    poll_id = MACI.deploy_poll(
        int(data["duration"]),
        parse_max_values(data["max_values"]),
        parse_tree_depths(data["tree_depths"]),
        deserialize_pub_key(data["coordinator_pub_key"]),
        mode=parse_mode(data.get("mode", "QV")),
        message_batch_size=None if batch_size is None else int(batch_size),
    )
    return jsonify({"poll_id": poll_id}), 201


@maci_bp.route("/polls/<int:poll_id>")
def poll_record(poll_id):
    return jsonify(MACI.get_poll(poll_id).as_record())


# ─── 게시 / 병합 ───

@maci_bp.route("/polls/<int:poll_id>/messages", methods=["POST"])
def publish_message(poll_id):
    data = _body()
    poll = MACI.get_poll(poll_id)
    index = poll.publish_message(deserialize_message(data["message"]),
                                 deserialize_pub_key(data["enc_pub_key"]))
    return jsonify({"message_index": index})


@maci_bp.route("/polls/<int:poll_id>/merge/state-sub-roots", methods=["POST"])
def merge_state_sub_roots(poll_id):
    limit = int((request.get_json(silent=True) or {}).get("limit", 0))
    done = MACI.get_poll(poll_id).merge_maci_state_aq_sub_roots(limit)
    return jsonify({"done": done})


@maci_bp.route("/polls/<int:poll_id>/merge/state", methods=["POST"])
def merge_state(poll_id):
    root = MACI.get_poll(poll_id).merge_maci_state_aq()
    return jsonify({"root": str(root)})


@maci_bp.route("/polls/<int:poll_id>/merge/message-sub-roots", methods=["POST"])
def merge_message_sub_roots(poll_id):
    limit = int((request.get_json(silent=True) or {}).get("limit", 0))
    done = MACI.get_poll(poll_id).merge_message_aq_sub_roots(limit)
    return jsonify({"done": done})


@maci_bp.route("/polls/<int:poll_id>/merge/message", methods=["POST"])
def merge_message(poll_id):
    root = MACI.get_poll(poll_id).merge_message_aq()
    return jsonify({"root": str(root)})


# ─── 처리 / 집계 ───

@maci_bp.route("/polls/<int:poll_id>/process", methods=["POST"])
def process_messages(poll_id):
    data = _body()
    processor = MACI.get_poll(poll_id).message_processor
    result = processor.process_messages(
        deserialize_int(data["new_sb_commitment"]),
        [deserialize_int(v) for v in data["proof"]],
        deserialize_int(data["packed_vals"]),
        current_sb_commitment=_optional_int(data, "current_sb_commitment"),
    )
    result["sb_commitment"] = str(result["sb_commitment"])
    return jsonify(result)


@maci_bp.route("/polls/<int:poll_id>/tally", methods=["POST"])
def tally_votes(poll_id):
    data = _body()
    tally = MACI.get_poll(poll_id).tally
    result = tally.tally_votes(
        deserialize_int(data["new_tally_commitment"]),
        [deserialize_int(v) for v in data["proof"]],
        deserialize_int(data["packed_vals"]),
        current_tally_commitment=_optional_int(data, "current_tally_commitment"),
    )
    result["tally_commitment"] = str(result["tally_commitment"])
    return jsonify(result)


@maci_bp.route("/polls/<int:poll_id>/packed-vals")
def next_packed_vals(poll_id):
    poll = MACI.get_poll(poll_id)
    processor = poll.message_processor
    batch_start = request.args.get("batch_start", type=int)
    if batch_start is None:
        batch_start = processor.expected_batch_start()
    num_sign_ups = request.args.get("num_sign_ups", type=int)
    if num_sign_ups is None:
        num_sign_ups = poll.num_sign_ups if poll.num_sign_ups is not None else MACI.num_sign_ups
    packed = processor.gen_process_messages_packed_vals(batch_start, num_sign_ups)
    return jsonify({"packed_vals": str(packed), **unpack_process_message_small_vals(packed)})


@maci_bp.route("/packed-vals", methods=["POST"])
def compute_packed_vals():
    data = _body()
    packed = pack_process_message_small_vals(
        deserialize_int(data["max_vote_options"]),
        deserialize_int(data["num_sign_ups"]),
        deserialize_int(data["batch_start_index"]),
        deserialize_int(data["batch_end_index"]),
    )
    return jsonify({"packed_vals": str(packed)})


# ─── 검증키 ───

@maci_bp.route("/vks", methods=["POST"])
def set_verifying_keys():
    data = _body()
    MACI.vk_registry.set_verifying_keys(
        int(data["state_tree_depth"]),
        int(data["int_state_tree_depth"]),
        int(data["message_tree_depth"]),
        int(data["vote_option_tree_depth"]),
        int(data["message_batch_size"]),
        parse_mode(data.get("mode", "QV")),
        deserialize_vk(data["poll_vk"]),
        deserialize_vk(data["process_vk"]),
        deserialize_vk(data["tally_vk"]),
    )
    return jsonify({"ok": True}), 201


@maci_bp.route("/vks/<kind>/<mode>/<int:signature>")
def get_verifying_key(kind, mode, signature):
    vk = MACI.vk_registry.get(kind, signature, parse_mode(mode))
    return jsonify(serialize_vk(vk))
