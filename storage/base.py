from abc import ABC, abstractmethod
from typing import List, Mapping, Optional

from storage.records import UserRecord, SwapRequestRecord


class UserRepository(ABC):

    @abstractmethod
    def get(self, user_id: str) -> Optional[UserRecord]:
        ...

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    @abstractmethod
    def list(self) -> List[UserRecord]:
        ...

    @abstractmethod
    def insert(self, record: UserRecord) -> bool:
        """Store a new user. Returns False (and stores nothing) if the id or email is taken."""

    @abstractmethod
    def upsert(self, record: UserRecord) -> UserRecord:
        ...

    @abstractmethod
    def cas_update(self, user_id: str, expected: Mapping, changes: Mapping) -> Optional[UserRecord]:
        """
        Apply ``changes`` only if every field in ``expected`` still holds its
        expected value. Returns the updated record, or None on mismatch/missing.
        """


class SwapRequestRepository(ABC):

    @abstractmethod
    def get(self, request_id: str) -> Optional[SwapRequestRecord]:
        ...

    @abstractmethod
    def list(self, from_user_id: str = None, to_user_id: str = None,
             status: str = None) -> List[SwapRequestRecord]:
        ...

    @abstractmethod
    def insert_pending(self, record: SwapRequestRecord) -> bool:
        """
        Store a pending request unless the same (from, to) pair already has one.
        Check and insert happen as one step.
        """

    @abstractmethod
    def upsert(self, record: SwapRequestRecord) -> SwapRequestRecord:
        ...

    @abstractmethod
    def cas_update(self, request_id: str, expected: Mapping, changes: Mapping) -> Optional[SwapRequestRecord]:
        ...

    @abstractmethod
    def delete(self, request_id: str, expected: Mapping = None) -> bool:
        ...


def matches(record, expected: Mapping) -> bool:
    return all(getattr(record, field) == value for field, value in (expected or {}).items())
