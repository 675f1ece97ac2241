"""
도메인 객체
============

프로토콜 전반에서 주고받는 값 객체를 정의한다.

**StateLeaf**  : 등록 사용자 (공개키, 보이스 크레딧 잔액, 등록 시각)
**Ballot**     : 사용자별 투표지 (nonce, 투표 옵션별 가중치)
**Message**    : 게시된 암호문 (msg_type, data[10])
**PCommand**   : 복호화된 투표 명령 (상태 인덱스, 새 공개키, 투표 옵션, 가중치, nonce, 폴 ID, 솔트, 서명)

**Mode**:
  QV / NON_QV 두 가지 닫힌 변형. 잔액 갱신 규칙과 검증키 테이블을 선택한다.

    | 모드   | 비용 cost(w) |
    |--------|--------------|
    | QV     | w²           |
    | NON_QV | w            |

**명령 패킹** (50비트 슬롯):
    packed = state_index
           + (vote_option_index << 50)
           + (new_vote_weight   << 100)
           + (nonce             << 150)
           + (poll_id           << 200)

사용 예시:
    >>> cmd = PCommand(1, kp.pub_key, 0, 9, 1, 0)
    >>> cmd.sign(kp.priv_key)
    >>> msg = cmd.encrypt(shared_key)
"""

from enum import IntEnum

from maci.crypto.field import BASE_FIELD_SIZE
from maci.crypto.hashing import hash_n, hash2, hash4, gen_random_salt
from maci.crypto.keys import PubKey, Signature, encrypt, decrypt, hash_to_g1
from maci.errors import InvalidMessageError
from maci.packing import pack_values, unpack_values, PACKED_FIELD_BITS
from maci.trees import MerkleTree


# 모든 5진 트리의 아리티
TREE_ARITY = 5

# 메시지 암호문 길이 (평문 9 슬롯 + 인증 태그 1)
MESSAGE_DATA_LENGTH = 10
COMMAND_PLAINTEXT_LENGTH = MESSAGE_DATA_LENGTH - 1

# 투표 메시지 타입
MESSAGE_TYPE_VOTE = 1

# keccak256("Maci") mod r. 폴 배포 시 첫 메시지로 게시되는 자리표시 값
NOTHING_UP_MY_SLEEVE = (
    8370432830353022751713833565135785980866757267633941821328460903436894336785
)

# 이산로그를 아무도 모르는 패딩 공개키
PAD_KEY = PubKey(hash_to_g1(b"maci.pad_key"))


class Mode(IntEnum):
    QV = 0
    NON_QV = 1

    def vote_cost(self, weight):
        """가중치 w에 대한 보이스 크레딧 비용."""
        weight = int(weight)
        if self is Mode.QV:
            return weight * weight
        return weight

    def new_balance(self, balance, prev_weight, new_weight):
        """이전 투표를 환불하고 새 투표 비용을 차감한 잔액 (음수 가능)."""
        return int(balance) + self.vote_cost(prev_weight) - self.vote_cost(new_weight)


class TreeDepths:
    """회로 구성 깊이.

    속성:
        int_state_tree_depth: 집계 배치 크기 5^d 를 결정
        message_tree_sub_depth: 메시지 AccQueue 서브트리 깊이
        message_tree_depth: 메시지 트리 전체 깊이
        vote_option_tree_depth: 투표 옵션 트리 깊이
    """

    def __init__(self, int_state_tree_depth, message_tree_sub_depth,
                 message_tree_depth, vote_option_tree_depth):
        self.int_state_tree_depth = int(int_state_tree_depth)
        self.message_tree_sub_depth = int(message_tree_sub_depth)
        self.message_tree_depth = int(message_tree_depth)
        self.vote_option_tree_depth = int(vote_option_tree_depth)

    def as_dict(self):
        return {
            "int_state_tree_depth": self.int_state_tree_depth,
            "message_tree_sub_depth": self.message_tree_sub_depth,
            "message_tree_depth": self.message_tree_depth,
            "vote_option_tree_depth": self.vote_option_tree_depth,
        }

    def __eq__(self, other):
        return isinstance(other, TreeDepths) and self.as_dict() == other.as_dict()


class MaxValues:
    def __init__(self, max_messages, max_vote_options):
        self.max_messages = int(max_messages)
        self.max_vote_options = int(max_vote_options)

    def as_dict(self):
        return {"max_messages": self.max_messages, "max_vote_options": self.max_vote_options}

    def __eq__(self, other):
        return isinstance(other, MaxValues) and self.as_dict() == other.as_dict()


# ─────────────────────────────────────────────────────────────────────
# StateLeaf
# ─────────────────────────────────────────────────────────────────────

class StateLeaf:
    """등록 사용자 상태 리프 (불변).

    해시: hash4([PK.x, PK.y, balance, timestamp])
    """

    __slots__ = ("pub_key", "voice_credit_balance", "timestamp")

    def __init__(self, pub_key, voice_credit_balance, timestamp):
        object.__setattr__(self, "pub_key", pub_key)
        object.__setattr__(self, "voice_credit_balance", int(voice_credit_balance))
        object.__setattr__(self, "timestamp", int(timestamp))

    def __setattr__(self, name, value):
        raise AttributeError("StateLeaf는 불변 객체입니다")

    @classmethod
    def blank(cls):
        return cls(PAD_KEY, 0, 0)

    def hash(self):
        return hash4([*self.pub_key.as_ints(), self.voice_credit_balance, self.timestamp])

    def replace(self, pub_key=None, voice_credit_balance=None):
        return StateLeaf(
            pub_key if pub_key is not None else self.pub_key,
            voice_credit_balance if voice_credit_balance is not None else self.voice_credit_balance,
            self.timestamp,
        )

    def __eq__(self, other):
        return (
            isinstance(other, StateLeaf)
            and self.pub_key == other.pub_key
            and self.voice_credit_balance == other.voice_credit_balance
            and self.timestamp == other.timestamp
        )

    def __hash__(self):
        return hash((self.pub_key, self.voice_credit_balance, self.timestamp))

    def __repr__(self):
        return f"StateLeaf({self.pub_key!r}, {self.voice_credit_balance}, {self.timestamp})"


# ─────────────────────────────────────────────────────────────────────
# Ballot
# ─────────────────────────────────────────────────────────────────────

class Ballot:
    """사용자별 투표지 (불변).

    votes 길이는 5^vote_option_tree_depth 이다.
    해시: hash2([nonce, vote_option_root])
    """

    def __init__(self, votes, nonce=0, vote_option_tree_depth=None):
        self.votes = tuple(int(v) for v in votes)
        self.nonce = int(nonce)
        if vote_option_tree_depth is None:
            vote_option_tree_depth = _depth_for(len(self.votes))
        self.vote_option_tree_depth = vote_option_tree_depth

    @classmethod
    def blank(cls, vote_option_tree_depth):
        return cls([0] * TREE_ARITY ** vote_option_tree_depth, 0, vote_option_tree_depth)

    def vote_option_root(self):
        tree = MerkleTree(self.vote_option_tree_depth, 0, TREE_ARITY)
        tree.insert_many(self.votes)
        return tree.root

    def hash(self):
        return hash2([self.nonce, self.vote_option_root()])

    def with_vote(self, vote_option_index, weight):
        votes = list(self.votes)
        votes[vote_option_index] = int(weight)
        return Ballot(votes, self.nonce + 1, self.vote_option_tree_depth)

    def __eq__(self, other):
        return isinstance(other, Ballot) and self.votes == other.votes and self.nonce == other.nonce

    def __hash__(self):
        return hash((self.votes, self.nonce))

    def __repr__(self):
        return f"Ballot(nonce={self.nonce}, votes={list(self.votes)})"


def _depth_for(length):
    depth = 0
    while TREE_ARITY ** depth < length:
        depth += 1
    if TREE_ARITY ** depth != length:
        raise ValueError(f"투표 수는 {TREE_ARITY}의 거듭제곱이어야 합니다: {length}")
    return depth


# ─────────────────────────────────────────────────────────────────────
# Message
# ─────────────────────────────────────────────────────────────────────

class Message:
    """게시된 메시지 (불변). data 원소는 베이스 필드 정수."""

    def __init__(self, msg_type, data):
        self.msg_type = int(msg_type)
        self.data = tuple(int(d) for d in data)

    def is_well_formed(self):
        if len(self.data) != MESSAGE_DATA_LENGTH:
            return False
        return all(0 <= d < BASE_FIELD_SIZE for d in self.data)

    def hash(self, enc_pub_key):
        """메시지 리프 해시: hash_n([msg_type, *data, EPK.x, EPK.y])."""
        return hash_n([self.msg_type, *self.data, *enc_pub_key.as_ints()])

    def as_ints(self):
        return [self.msg_type, *self.data]

    def __eq__(self, other):
        return isinstance(other, Message) and self.as_ints() == other.as_ints()

    def __hash__(self):
        return hash(tuple(self.as_ints()))

    def __repr__(self):
        return f"Message({self.msg_type}, {list(self.data)})"


def check_message(message, enc_pub_key):
    """게시 가능한 메시지인지 확인한다.

    Raises:
        InvalidMessageError: 데이터 길이/범위가 틀리거나 임시 공개키가 곡선 밖일 때
    """
    if not isinstance(message, Message) or not message.is_well_formed():
        raise InvalidMessageError(
            f"메시지 데이터는 베이스 필드 정수 {MESSAGE_DATA_LENGTH}개여야 합니다"
        )
    if message.msg_type != MESSAGE_TYPE_VOTE:
        raise InvalidMessageError(f"지원하지 않는 메시지 타입: {message.msg_type}")
    if not isinstance(enc_pub_key, PubKey) or not enc_pub_key.is_valid():
        raise InvalidMessageError("임시 공개키가 G1 위의 점이 아닙니다")


def placeholder_message():
    """폴 배포 시 메시지 큐를 비우지 않기 위해 게시되는 자리표시 메시지."""
    data = [NOTHING_UP_MY_SLEEVE] + [0] * (MESSAGE_DATA_LENGTH - 1)
    return Message(MESSAGE_TYPE_VOTE, data)


# ─────────────────────────────────────────────────────────────────────
# PCommand
# ─────────────────────────────────────────────────────────────────────

class PCommand:
    """투표 명령.

    state_index 사용자의 투표지를 갱신하고 상태 리프의 공개키를
    new_pub_key 로 교체한다 (키 변경은 이전 메시지를 무효화하는 반매수 장치).
    """

    def __init__(self, state_index, new_pub_key, vote_option_index,
                 new_vote_weight, nonce, poll_id, salt=None, signature=None):
        self.state_index = int(state_index)
        self.new_pub_key = new_pub_key
        self.vote_option_index = int(vote_option_index)
        self.new_vote_weight = int(new_vote_weight)
        self.nonce = int(nonce)
        self.poll_id = int(poll_id)
        self.salt = int(salt) if salt is not None else gen_random_salt()
        self.signature = signature

    def packed(self):
        return pack_values(
            [self.state_index, self.vote_option_index, self.new_vote_weight,
             self.nonce, self.poll_id],
            PACKED_FIELD_BITS,
        )

    def hash(self):
        """서명 대상 해시: hash4([packed, newPK.x, newPK.y, salt])."""
        return hash4([self.packed(), *self.new_pub_key.as_ints(), self.salt])

    def sign(self, priv_key):
        self.signature = priv_key.sign(self.hash())
        return self.signature

    def verify_signature(self, pub_key):
        if self.signature is None:
            return False
        return pub_key.verify(self.hash(), self.signature)

    def to_plaintext(self):
        if self.signature is None:
            raise ValueError("서명되지 않은 명령은 암호화할 수 없습니다")
        fields = [self.packed(), *self.new_pub_key.as_ints(), self.salt,
                  *self.signature.as_ints()]
        return fields + [0] * (COMMAND_PLAINTEXT_LENGTH - len(fields))

    @classmethod
    def from_plaintext(cls, plaintext):
        """평문을 명령으로 복원한다. 패딩이 0이 아니면 ValueError."""
        if len(plaintext) != COMMAND_PLAINTEXT_LENGTH:
            raise ValueError("평문 길이가 맞지 않습니다")
        if any(p != 0 for p in plaintext[7:]):
            raise ValueError("평문 패딩이 0이 아닙니다")
        state_index, vote_option_index, weight, nonce, poll_id = unpack_values(
            plaintext[0], 5, PACKED_FIELD_BITS
        )
        new_pub_key = PubKey((plaintext[1], plaintext[2]))
        signature = Signature(plaintext[4], plaintext[5], plaintext[6])
        return cls(state_index, new_pub_key, vote_option_index, weight,
                   nonce, poll_id, plaintext[3], signature)

    def encrypt(self, shared_key):
        """서명된 명령을 메시지로 암호화한다."""
        return Message(MESSAGE_TYPE_VOTE, encrypt(self.to_plaintext(), shared_key))

    @classmethod
    def decrypt(cls, message, shared_key):
        """메시지를 복호화한다.

        Raises:
            DecryptionError: 태그 불일치
            ValueError: 평문 형식 오류
        """
        plaintext = decrypt(message.data, shared_key, COMMAND_PLAINTEXT_LENGTH)
        return cls.from_plaintext(plaintext)

    def __eq__(self, other):
        return (
            isinstance(other, PCommand)
            and self.packed() == other.packed()
            and self.new_pub_key == other.new_pub_key
            and self.salt == other.salt
            and self.signature == other.signature
        )

    def __repr__(self):
        return (f"PCommand(state_index={self.state_index}, vote_option_index="
                f"{self.vote_option_index}, weight={self.new_vote_weight}, nonce={self.nonce})")
