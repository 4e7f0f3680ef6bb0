"""Repositories for crises, escalation records and crisis rules.

Detection and lifecycle code depend only on the abstract interfaces so
the in-memory stores can be swapped for a durable backend.

Stored entities are copied on the way in and out; callers mutate their
copy and persist it with save(), as they would against a database.
Lookups on the detection path only copy the crises they return.
"""
import copy
from abc import ABC, abstractmethod
from datetime import datetime
from threading import Lock
from typing import Dict, List, Optional, Set

from mentionguard.shared.models import Crisis, CrisisRule, EscalationRecord


def _snapshot(entity):
    return copy.deepcopy(entity)


class CrisisRepository(ABC):

    @abstractmethod
    def get(self, crisis_id: str) -> Optional[Crisis]:
        pass

    @abstractmethod
    def save(self, crisis: Crisis) -> Crisis:
        pass

    @abstractmethod
    def list_all(self) -> List[Crisis]:
        pass

    @abstractmethod
    def list_active(self) -> List[Crisis]:
        pass

    @abstractmethod
    def find_active_in_bucket(self, bucket_key: datetime) -> List[Crisis]:
        """Active crises detected in the given bucket, newest first."""
        pass

    @abstractmethod
    def most_recent_active(self) -> Optional[Crisis]:
        pass


class EscalationRepository(ABC):

    @abstractmethod
    def add(self, record: EscalationRecord) -> EscalationRecord:
        pass

    @abstractmethod
    def list_for_crisis(self, crisis_id: str) -> List[EscalationRecord]:
        pass


class RuleRepository(ABC):

    @abstractmethod
    def get(self, rule_id: str) -> Optional[CrisisRule]:
        pass

    @abstractmethod
    def save(self, rule: CrisisRule) -> CrisisRule:
        pass

    @abstractmethod
    def list_all(self) -> List[CrisisRule]:
        pass


class InMemoryCrisisRepository(CrisisRepository):

    """Dict-backed store with active crisis ids indexed by bucket key."""

    def __init__(self):
        self._crises: Dict[str, Crisis] = {}
        self._active_by_bucket: Dict[datetime, Set[str]] = {}
        self._lock = Lock()

    def _index(self, crisis: Crisis) -> None:
        self._active_by_bucket.setdefault(crisis.bucket_key, set()).add(crisis.id)

    def _unindex(self, crisis: Crisis) -> None:
        ids = self._active_by_bucket.get(crisis.bucket_key)
        if ids is None:
            return
        ids.discard(crisis.id)
        if not ids:
            del self._active_by_bucket[crisis.bucket_key]

    def get(self, crisis_id: str) -> Optional[Crisis]:
        with self._lock:
            crisis = self._crises.get(crisis_id)
            return _snapshot(crisis) if crisis else None

    def save(self, crisis: Crisis) -> Crisis:
        stored = _snapshot(crisis)
        with self._lock:
            previous = self._crises.get(stored.id)
            if previous is not None:
                self._unindex(previous)
            self._crises[stored.id] = stored
            if stored.is_active:
                self._index(stored)
        return crisis

    def list_all(self) -> List[Crisis]:
        with self._lock:
            return [_snapshot(c) for c in self._crises.values()]

    def list_active(self) -> List[Crisis]:
        with self._lock:
            return [
                _snapshot(self._crises[crisis_id])
                for ids in self._active_by_bucket.values()
                for crisis_id in ids
            ]

    def find_active_in_bucket(self, bucket_key: datetime) -> List[Crisis]:
        with self._lock:
            matches = [
                _snapshot(self._crises[crisis_id])
                for crisis_id in self._active_by_bucket.get(bucket_key, ())
            ]
        return sorted(matches, key=lambda c: c.detected_at, reverse=True)

    def most_recent_active(self) -> Optional[Crisis]:
        with self._lock:
            active = [
                self._crises[crisis_id]
                for ids in self._active_by_bucket.values()
                for crisis_id in ids
            ]
            if not active:
                return None
            return _snapshot(max(active, key=lambda c: c.detected_at))


class InMemoryEscalationRepository(EscalationRepository):
    """Append-only escalation log."""

    def __init__(self):
        self._records: List[EscalationRecord] = []
        self._lock = Lock()

    def add(self, record: EscalationRecord) -> EscalationRecord:
        with self._lock:
            self._records.append(record)
        return record

    def list_for_crisis(self, crisis_id: str) -> List[EscalationRecord]:
        with self._lock:
            return [r for r in self._records if r.crisis_id == crisis_id]

    def list_all(self) -> List[EscalationRecord]:
        with self._lock:
            return list(self._records)


class InMemoryRuleRepository(RuleRepository):

    def __init__(self):
        self._rules: Dict[str, CrisisRule] = {}
        self._lock = Lock()

    def get(self, rule_id: str) -> Optional[CrisisRule]:
        with self._lock:
            rule = self._rules.get(rule_id)
            return _snapshot(rule) if rule else None

    def save(self, rule: CrisisRule) -> CrisisRule:
        with self._lock:
            self._rules[rule.id] = _snapshot(rule)
        return rule

    def list_all(self) -> List[CrisisRule]:
        with self._lock:
            return [_snapshot(r) for r in self._rules.values()]
