import sys
import os
import pytest

# 프로젝트 루트를 sys.path에 추가
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from maci.crypto.field import FR, G1, G2, ec_mul
from maci.crypto.groth16 import VerifyingKey, Proof
from maci.crypto.keys import Keypair, PrivKey, gen_ecdh_shared_key
from maci.contracts.clock import Clock
from maci.contracts.maci import Maci
from maci.contracts.verifier import Verifier, MockOracle
from maci.contracts.vk_registry import VkRegistry
from maci.core.maci_state import MaciState
from maci.domain import TreeDepths, MaxValues, PCommand, Mode
from maci.packing import gen_process_vk_sig


# ── 테스트 상수 ──
STATE_TREE_DEPTH = 2
TREE_DEPTHS = TreeDepths(
    int_state_tree_depth=1,
    message_tree_sub_depth=1,
    message_tree_depth=2,
    vote_option_tree_depth=1,
)
MAX_VALUES = MaxValues(max_messages=25, max_vote_options=5)
MESSAGE_BATCH_SIZE = 5
DURATION = 100
START_TIME = 1_700_000_000
INITIAL_VOICE_CREDITS = 100

# Groth16 트랩도어 (시뮬레이션 증명용)
TOXIC_ALPHA = 3926
TOXIC_BETA = 3604
TOXIC_GAMMA = 2971
TOXIC_DELTA = 1357
TOXIC_X_VAL = 3721

PROVER_R = 4106
PROVER_S = 4565


class TrapdoorGroth16:
    """트랩도어를 아는 셋업: 임의 공개 입력에 대해 유효한 증명을 만든다.

    IC_i = w_i·G1 (w_i = x + i) 이므로 vk_x = X·G1, X = w_0 + Σ input_i·w_{i+1}.
    A = r·G1, B = s·G2 로 두면 C = (r·s − α·β − X·γ)/δ ·G1 이 등식을 만족한다.
    """

    def __init__(self, alpha=TOXIC_ALPHA, beta=TOXIC_BETA, gamma=TOXIC_GAMMA,
                 delta=TOXIC_DELTA, x_val=TOXIC_X_VAL):
        self.alpha = FR(alpha)
        self.beta = FR(beta)
        self.gamma = FR(gamma)
        self.delta = FR(delta)
        self.x_val = FR(x_val)

    def ic_scalar(self, i):
        return self.x_val + FR(i)

    def vk(self, num_inputs):
        return VerifyingKey(
            ec_mul(G1, self.alpha),
            ec_mul(G2, self.beta),
            ec_mul(G2, self.gamma),
            ec_mul(G2, self.delta),
            [ec_mul(G1, self.ic_scalar(i)) for i in range(num_inputs + 1)],
        )

    def prove(self, inputs, r=PROVER_R, s=PROVER_S):
        x = self.ic_scalar(0)
        for i, value in enumerate(inputs):
            x = x + FR(value) * self.ic_scalar(i + 1)
        r, s = FR(r), FR(s)
        c = (r * s - self.alpha * self.beta - x * self.gamma) / self.delta
        return Proof(ec_mul(G1, r), ec_mul(G2, s), ec_mul(G1, c))


@pytest.fixture(scope="session")
def trapdoor():
    return TrapdoorGroth16()


@pytest.fixture(scope="session")
def dummy_vk():
    """직렬화/레지스트리 테스트용 (검증에는 쓰지 않음)."""
    return VerifyingKey(
        ec_mul(G1, 11), ec_mul(G2, 12), ec_mul(G2, 13), ec_mul(G2, 14),
        [ec_mul(G1, 15 + i) for i in range(6)],
    )


@pytest.fixture(scope="session")
def other_vk():
    return VerifyingKey(
        ec_mul(G1, 21), ec_mul(G2, 22), ec_mul(G2, 23), ec_mul(G2, 24),
        [ec_mul(G1, 25 + i) for i in range(6)],
    )


@pytest.fixture(scope="session")
def coordinator():
    return Keypair(PrivKey(0xC0FFEE))


@pytest.fixture(scope="session")
def users():
    return [Keypair(PrivKey(1000 + i)) for i in range(4)]


@pytest.fixture
def vote_factory(coordinator):
    """서명·암호화된 투표 메시지 (message, enc_pub_key) 를 만든다."""

    def make(user, state_index, vote_option_index, weight, nonce, poll_id=0,
             new_pub_key=None, signer=None, coordinator_pub_key=None, salt=None):
        ephemeral = Keypair()
        target = coordinator_pub_key if coordinator_pub_key is not None else coordinator.pub_key
        shared_key = gen_ecdh_shared_key(ephemeral.priv_key, target)
        command = PCommand(
            state_index,
            new_pub_key if new_pub_key is not None else user.pub_key,
            vote_option_index, weight, nonce, poll_id, salt=salt,
        )
        command.sign((signer or user).priv_key)
        return command.encrypt(shared_key), ephemeral.pub_key

    return make


@pytest.fixture
def clock():
    return Clock(START_TIME)


@pytest.fixture
def vk_registry(dummy_vk):
    registry = VkRegistry()
    registry.set_verifying_keys_batch(
        STATE_TREE_DEPTH, TREE_DEPTHS.int_state_tree_depth, TREE_DEPTHS.message_tree_depth,
        TREE_DEPTHS.vote_option_tree_depth, MESSAGE_BATCH_SIZE, [Mode.QV, Mode.NON_QV],
        dummy_vk, [dummy_vk, dummy_vk], [dummy_vk, dummy_vk],
    )
    return registry


@pytest.fixture
def mock_oracle():
    return MockOracle()


@pytest.fixture
def maci(vk_registry, mock_oracle, clock):
    return Maci(STATE_TREE_DEPTH, vk_registry, Verifier(mock_oracle), clock=clock)


@pytest.fixture
def maci_state():
    return MaciState(STATE_TREE_DEPTH)


@pytest.fixture
def deploy(maci, maci_state, coordinator):
    """온체인 / 오프체인에 같은 폴을 배포하고 폴 ID를 반환한다."""

    def _deploy(mode=Mode.QV, duration=DURATION):
        poll_id = maci.deploy_poll(duration, MAX_VALUES, TREE_DEPTHS, coordinator.pub_key,
                                   mode=mode, message_batch_size=MESSAGE_BATCH_SIZE)
        local_id = maci_state.deploy_poll(START_TIME + duration, MAX_VALUES, TREE_DEPTHS,
                                          MESSAGE_BATCH_SIZE, coordinator, mode)
        assert poll_id == local_id
        return poll_id

    return _deploy


@pytest.fixture
def sign_up(maci, maci_state, clock):
    """온체인 / 오프체인 등록부에 같은 사용자를 등록한다."""

    def _sign_up(keypair, balance=INITIAL_VOICE_CREDITS):
        index = maci.sign_up(keypair.pub_key, balance)
        local_index = maci_state.sign_up(keypair.pub_key, balance, clock.now())
        assert index == local_index
        return index

    return _sign_up


@pytest.fixture
def process_vk_sig():
    return gen_process_vk_sig(STATE_TREE_DEPTH, TREE_DEPTHS.vote_option_tree_depth,
                              MESSAGE_BATCH_SIZE)
