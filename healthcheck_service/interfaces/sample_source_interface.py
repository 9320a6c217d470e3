# ================================
# FILE: healthcheck_service/interfaces/sample_source_interface.py
# ================================

from abc import ABC, abstractmethod

from healthcheck_service.models.system_snapshot import SystemSnapshot


class ISampleSource(ABC):
    """Interface for OS resource samplers"""

    @abstractmethod
    def sample(self) -> SystemSnapshot:
        """Take a fresh CPU/memory reading.

        May block for tens of milliseconds; never call it on the request
        path. Raises StaleSample when the OS query fails.
        """
        pass
