import time


class Clock:
    """정산 계층의 시계. 테스트에서는 고정 시각에서 시작해 travel()로 넘긴다."""

    def __init__(self, start=None):
        self._fixed = start
        self._offset = 0

    def now(self):
        base = int(time.time()) if self._fixed is None else int(self._fixed)
        return base + self._offset

    def travel(self, seconds):
        self._offset += int(seconds)
        return self.now()
