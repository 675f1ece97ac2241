"""
TinyDB 레코드 저장소
=====================

정산 계층의 영속 레이아웃.

    polls 테이블 : {"type": "poll.<id>", "data": {...}}   폴별 병합 루트, 커서, 커밋먼트, 플래그
    vks 테이블   : {"type": "<kind>.<mode>.<signature>", "data": {...}}

기본은 메모리 DB이며 경로를 주면 JSON 파일 DB를 연다.
TinyDB는 스레드 안전하지 않으므로 모든 접근을 하나의 잠금으로 직렬화한다.
"""

import threading

from tinydb import TinyDB, Query
from tinydb.storages import MemoryStorage


DATA = Query()

_DB_LOCK = threading.RLock()


def open_db(path=None):
    if path is None:
        return TinyDB(storage=MemoryStorage)
    return TinyDB(str(path))


class RecordStore:
    """type 키로 upsert/조회하는 테이블 래퍼."""

    def __init__(self, table):
        self.table = table

    def get(self, key):
        with _DB_LOCK:
            result = self.table.search(DATA.type == key)
        if not result:
            return None
        return result[0].get("data")

    def set(self, key, data):
        with _DB_LOCK:
            self.table.upsert({"type": key, "data": data}, DATA.type == key)

    def contains(self, key):
        with _DB_LOCK:
            return self.table.contains(DATA.type == key)

