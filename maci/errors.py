"""
오류 분류
=========

정산 계층과 누산기의 실패는 모두 전용 하위 클래스로 발생한다.
호출자는 메시지를 파싱하지 않고 범주 (단계 / 순서 / 레지스트리 / 증명 / 인코딩 / 누산기)로
구분할 수 있다.
"""


class MaciError(Exception):
    """모든 프로토콜 오류의 기반 클래스."""


# ─── 단계 위반 ───

class PhaseError(MaciError):
    pass


class VotingPeriodOverError(PhaseError):
    pass


class VotingPeriodNotOverError(PhaseError):
    pass


class StateAqNotMergedError(PhaseError):
    pass


class MessageAqNotMergedError(PhaseError):
    pass


class ProcessingCompleteError(PhaseError):
    pass


class ProcessingNotCompleteError(PhaseError):
    pass


class TallyCompleteError(PhaseError):
    pass


# ─── 순서 위반 ───

class OrderingError(MaciError):
    pass


class BatchOutOfOrderError(OrderingError):
    pass


class SbCommitmentMismatchError(OrderingError):
    pass


class TallyCommitmentMismatchError(OrderingError):
    pass


# ─── 검증키 레지스트리 ───

class RegistryError(MaciError):
    pass


class VkAlreadySetError(RegistryError):
    pass


class VkNotSetError(RegistryError):
    pass


class InvalidVkParamsError(RegistryError, ValueError):
    pass


# ─── 증명 ───

class ProofError(MaciError):
    pass


class InvalidProofError(ProofError):
    pass


class InvalidPublicInputError(ProofError, ValueError):
    pass


# ─── 인코딩 ───

class EncodingError(MaciError, ValueError):
    pass


class FieldOverflowError(EncodingError):
    pass


# ─── 누산기 ───

class AccQueueError(MaciError):
    pass


class AccQueueClosedError(AccQueueError):
    pass


class AccQueueFullError(AccQueueError):
    pass


class AccQueueNotReadyError(AccQueueError):
    pass


class AccQueueNotMergedError(AccQueueError):
    pass


class DepthTooSmallError(AccQueueError, ValueError):
    pass


# ─── 게시 / 등록 ───

class InvalidMessageError(MaciError, ValueError):
    pass


class TooManySignUpsError(MaciError):
    pass


class PollNotFoundError(MaciError, KeyError):
    pass


# ─── 오프체인 전용 ───

class DecryptionError(MaciError, ValueError):
    """암호문 인증 실패. 배치 재생 밖으로 전파되지 않는다."""


class InvalidPollParamsError(MaciError, ValueError):
    pass
