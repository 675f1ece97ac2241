"""
직렬화/역직렬화 헬퍼
=====================

TinyDB와 JSON 응답에 저장 가능한 형태로 프로토콜 객체를 변환한다.
큰 정수는 모두 10진 문자열로 표현한다.
FR, G1, G2, PubKey, VerifyingKey, Proof, Message, StateLeaf, Ballot.
"""

from py_ecc import bn128

from maci.crypto.field import FQ, FR
from maci.crypto.groth16 import VerifyingKey, Proof
from maci.crypto.keys import PubKey
from maci.domain import Message, StateLeaf, Ballot


# ─── 정수 / FR ───

def serialize_int(val):
    """int / FR → str(int)"""
    return str(int(val))


def deserialize_int(s):
    """str / int → int (음수 거부)"""
    value = int(s)
    if value < 0:
        raise ValueError(f"음수는 허용되지 않습니다: {s}")
    return value


def deserialize_fr(s):
    """str(int) → FR"""
    return FR(int(s))


def serialize_int_list(lst):
    return [serialize_int(v) for v in lst]


def deserialize_int_list(data):
    return [deserialize_int(s) for s in data]


# ─── G1 point ───

def serialize_g1(point):
    """G1 point → [str, str] or None"""
    if point is None:
        return None
    return [serialize_int(point[0]), serialize_int(point[1])]


def deserialize_g1(data):
    """[str, str] or None → G1 point"""
    if data is None:
        return None
    return (FQ(int(data[0])), FQ(int(data[1])))


# ─── G2 point ───

def serialize_g2(point):
    """G2 point → [[str,str],[str,str]] or None"""
    if point is None:
        return None
    return [
        [str(int(point[0].coeffs[0])), str(int(point[0].coeffs[1]))],
        [str(int(point[1].coeffs[0])), str(int(point[1].coeffs[1]))]
    ]


def deserialize_g2(data):
    """[[str,str],[str,str]] or None → G2 point"""
    if data is None:
        return None
    return (
        bn128.FQ2([int(data[0][0]), int(data[0][1])]),
        bn128.FQ2([int(data[1][0]), int(data[1][1])])
    )


# ─── 키 ───

def serialize_pub_key(pub_key):
    return [str(pub_key.x), str(pub_key.y)]


def deserialize_pub_key(data):
    return PubKey((int(data[0]), int(data[1])))


# ─── Groth16 ───

def serialize_vk(vk):
    """VerifyingKey → dict"""
    return {
        "alpha1": serialize_g1(vk.alpha1),
        "beta2": serialize_g2(vk.beta2),
        "gamma2": serialize_g2(vk.gamma2),
        "delta2": serialize_g2(vk.delta2),
        "ic": [serialize_g1(p) for p in vk.ic],
    }


def deserialize_vk(data):
    """dict → VerifyingKey"""
    return VerifyingKey(
        deserialize_g1(data["alpha1"]),
        deserialize_g2(data["beta2"]),
        deserialize_g2(data["gamma2"]),
        deserialize_g2(data["delta2"]),
        [deserialize_g1(p) for p in data["ic"]],
    )


def serialize_proof(proof):
    """Proof → list[str] (8개)"""
    return serialize_int_list(proof.as_uint_list())


def deserialize_proof(data):
    """list[str] (8개) → Proof"""
    return Proof.from_uint_list(deserialize_int_list(data))


# ─── 도메인 ───

def serialize_message(message):
    return {"msg_type": message.msg_type, "data": serialize_int_list(message.data)}


def deserialize_message(data):
    return Message(int(data["msg_type"]), deserialize_int_list(data["data"]))


def serialize_state_leaf(leaf):
    return {
        "pub_key": serialize_pub_key(leaf.pub_key),
        "voice_credit_balance": str(leaf.voice_credit_balance),
        "timestamp": leaf.timestamp,
    }


def deserialize_state_leaf(data):
    return StateLeaf(
        deserialize_pub_key(data["pub_key"]),
        int(data["voice_credit_balance"]),
        int(data["timestamp"]),
    )


def serialize_ballot(ballot):
    return {"nonce": ballot.nonce, "votes": serialize_int_list(ballot.votes)}


def deserialize_ballot(data):
    return Ballot(deserialize_int_list(data["votes"]), int(data["nonce"]))


# ─── 표시용 축약 ───

def int_short(val, n=10):
    s = str(int(val))
    if len(s) <= 2 * n:
        return s
    return f"{s[:n]}...{s[-n:]}"
