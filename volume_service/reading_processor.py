# File: tank_volume_engine/volume_service/reading_processor.py
import logging
import threading
import time
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from config import settings
from core.exceptions import PersistenceError, ReadingValidationError, VolumeEngineError
from core.models import SensorReadingPayload, parse_reading
from data import database
from volume_service.history_recorder import HistoryRecorder, RecordingResult

logger = logging.getLogger(__name__)

# Conflicts another writer can cause; the whole reading is retried
RETRYABLE_ERRORS = (StaleDataError, IntegrityError, OperationalError)


@dataclass
class BatchResult:
    processed: List[RecordingResult] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.processed) + len(self.skipped) + len(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": [result.to_dict() for result in self.processed],
            "skipped": self.skipped,
            "failed": self.failed,
        }


class ReadingProcessor:
    """
    Runs batches of readings through the HistoryRecorder.

    Tanks are processed in parallel; readings of one tank are processed one
    at a time in timestamp order, each in its own transaction.
    """

    def __init__(self, recorder: Optional[HistoryRecorder] = None,
                 max_workers: Optional[int] = None,
                 max_retries: Optional[int] = None,
                 retry_delay_seconds: float = 0.05):
        self.recorder = recorder or HistoryRecorder()
        self.max_workers = max_workers or settings.PROCESSING_WORKERS
        self.max_retries = max_retries if max_retries is not None else settings.PERSISTENCE_MAX_RETRIES
        self.retry_delay_seconds = retry_delay_seconds
        self._tank_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, tank_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._tank_locks.get(tank_id)
            if lock is None:
                lock = self._tank_locks[tank_id] = threading.Lock()
            return lock

    def process_reading(self, reading: Union[Dict[str, Any], SensorReadingPayload]) -> Optional[RecordingResult]:
        """
        Records a single reading under its tank's lock, retrying on write conflicts.

        Raises:
            ReadingValidationError: the reading is malformed.
            PersistenceError: the store kept failing after all retries.
        """
        payload = parse_reading(reading)
        with self._lock_for(payload.tank_id):
            return self._record_with_retry(payload)

    def _record_with_retry(self, payload: SensorReadingPayload) -> Optional[RecordingResult]:
        attempt = 0
        while True:
            attempt += 1
            try:
                with database.session_scope() as db:
                    return self.recorder.record_reading(db, payload)
            except RETRYABLE_ERRORS as e:
                if attempt > self.max_retries:
                    logger.error(f"Tank {payload.tank_id}: giving up on reading at {payload.timestamp.isoformat()} "
                                 f"after {attempt} attempts: {e}", exc_info=True)
                    raise PersistenceError(f"Could not persist reading for tank {payload.tank_id}: {e}") from e
                logger.warning(f"Tank {payload.tank_id}: write conflict on attempt {attempt} ({type(e).__name__}); retrying.")
                time.sleep(self.retry_delay_seconds * attempt)

    def process_batch(self, readings: Iterable[Union[Dict[str, Any], SensorReadingPayload]]) -> BatchResult:
        """Processes readings for many tanks. A bad reading never stops the rest of the batch."""
        batch = BatchResult()
        by_tank: Dict[str, List[SensorReadingPayload]] = defaultdict(list)

        for index, reading in enumerate(readings):
            try:
                payload = parse_reading(reading)
            except ReadingValidationError as e:
                logger.warning(f"Skipping malformed reading #{index}: {e}")
                batch.failed.append({"index": index, "error": str(e), "field": e.field})
                continue
            by_tank[payload.tank_id].append(payload)

        if not by_tank:
            return batch

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="TankWorker") as executor:
            futures = {
                executor.submit(self._process_tank, tank_id, payloads): tank_id
                for tank_id, payloads in by_tank.items()
            }
            for future in as_completed(futures):
                processed, skipped, failed = future.result()
                batch.processed.extend(processed)
                batch.skipped.extend(skipped)
                batch.failed.extend(failed)

        logger.info(f"Batch done: {len(batch.processed)} processed, {len(batch.skipped)} skipped, {len(batch.failed)} failed.")
        return batch

    def _process_tank(self, tank_id: str, payloads: List[SensorReadingPayload]) -> Tuple[list, list, list]:
        processed, skipped, failed = [], [], []
        payloads = sorted(payloads, key=lambda p: p.timestamp)
        with self._lock_for(tank_id):
            for payload in payloads:
                reading_ref = {"tank_id": tank_id, "device_id": payload.device_id,
                               "timestamp": payload.timestamp.isoformat()}
                try:
                    result = self._record_with_retry(payload)
                except ReadingValidationError as e:
                    logger.warning(f"Tank {tank_id}: reading at {payload.timestamp.isoformat()} rejected: {e}")
                    failed.append({**reading_ref, "error": str(e), "field": e.field})
                    continue
                except VolumeEngineError as e:
                    logger.error(f"Tank {tank_id}: reading at {payload.timestamp.isoformat()} failed: {e}")
                    failed.append({**reading_ref, "error": str(e)})
                    continue
                except Exception as e:
                    logger.error(f"Tank {tank_id}: unexpected error on reading at {payload.timestamp.isoformat()}: {e}",
                                 exc_info=True)
                    failed.append({**reading_ref, "error": f"{type(e).__name__}: {e}"})
                    continue
                if result is None:
                    skipped.append({**reading_ref, "reason": "unknown tank or device"})
                else:
                    processed.append(result)
        return processed, skipped, failed
