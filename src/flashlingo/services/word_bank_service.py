"""In-memory word bank backed by the scoped store."""
import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from flashlingo.errors import StoreCorruptionError
from flashlingo.models.card_models import WordRecord
from flashlingo.services import review_scheduler
from flashlingo.services.storage_service import LearnerScope, StorageService

logger = logging.getLogger(__name__)


def _decode_bank(data) -> List[WordRecord]:
    if not isinstance(data, list):
        raise StoreCorruptionError(f"Word bank must be a list, got {type(data).__name__}")
    return [WordRecord.from_dict(item) for item in data]


def _encode_bank(records: List[WordRecord]) -> list:
    return [record.to_dict() for record in records]


class WordRecordStore:
    """Word records of one scope, keyed by id.

    The in-memory mapping is authoritative during a session; every upsert
    also writes the whole bank back to storage.
    """

    def __init__(self, storage: StorageService, scope: LearnerScope):
        self.storage = storage
        self.scope = scope
        records = storage.load(scope.word_bank_key, [], decode=_decode_bank)
        self._records: Dict[str, WordRecord] = {record.id: record for record in records}
        logger.debug(f"Loaded {len(self._records)} words for {scope.prefix}")

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: str) -> bool:
        return record_id in self._records

    def get(self, record_id: str) -> Optional[WordRecord]:
        return self._records.get(record_id)

    def records(self) -> List[WordRecord]:
        return list(self._records.values())

    def upsert(self, record: WordRecord) -> bool:
        """Insert or replace a record by id. Returns True for an insert."""
        inserted = record.id not in self._records
        self._records[record.id] = record
        self._persist()
        return inserted

    def _persist(self) -> None:
        try:
            self.storage.save(self.scope.word_bank_key, self.records(), encode=_encode_bank)
        except SQLAlchemyError as e:
            logger.error(f"Error saving word bank for {self.scope.prefix}: {e}")
            self.storage.db.rollback()

    def known_words(self) -> Set[str]:
        """Texts of every word in the bank."""
        return {record.word for record in self._records.values()}

    def select_due(self, now: datetime) -> Optional[WordRecord]:
        return review_scheduler.select_due(self._records.values(), now)

    def search(self, term: str = "") -> List[WordRecord]:
        """Records whose word or translation contains ``term``."""
        term = term.strip().lower()
        if not term:
            return self.records()
        return [
            record for record in self._records.values()
            if term in record.word.lower() or term in record.translation.lower()
        ]

    def group_by_srs_level(self, term: str = "") -> Dict[int, List[WordRecord]]:
        """Matching records grouped by SRS level, soonest review first."""
        groups = defaultdict(list)
        for record in self.search(term):
            groups[record.srs_level].append(record)
        return {
            level: sorted(groups[level], key=lambda record: record.next_review)
            for level in sorted(groups)
        }
