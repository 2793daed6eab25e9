"""
Job definition storage
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from models.job import EtlJob


class JobRepository(ABC):
    """
    Configuration storage collaborator.

    The engine only needs these operations; how definitions are persisted
    is up to the implementation.
    """

    @abstractmethod
    def load_all(self) -> List[EtlJob]:
        pass

    @abstractmethod
    def save_all(self, jobs: Iterable[EtlJob]):
        pass

    def get(self, job_id: str) -> Optional[EtlJob]:
        for job in self.load_all():
            if job.id == job_id:
                return job
        return None

    def save(self, job: EtlJob):
        jobs = [existing for existing in self.load_all() if existing.id != job.id]
        jobs.append(job)
        self.save_all(jobs)

    def delete(self, job_id: str) -> bool:
        jobs = self.load_all()
        remaining = [job for job in jobs if job.id != job_id]
        if len(remaining) == len(jobs):
            return False
        self.save_all(remaining)
        return True


class InMemoryJobRepository(JobRepository):
    def __init__(self, jobs: Optional[Iterable[EtlJob]] = None):
        self._jobs: Dict[str, EtlJob] = {}
        self._lock = threading.Lock()
        for job in jobs or ():
            self._jobs[job.id] = job

    def load_all(self) -> List[EtlJob]:
        with self._lock:
            return list(self._jobs.values())

    def save_all(self, jobs: Iterable[EtlJob]):
        with self._lock:
            self._jobs = {job.id: job for job in jobs}

    def get(self, job_id: str) -> Optional[EtlJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def save(self, job: EtlJob):
        with self._lock:
            self._jobs[job.id] = job

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None
