"""
Outcome records for replication, reconciliation and folder organization.

Batch operations never raise for a single account or file; failures are
recorded here and returned to the admin.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SyncStatus(Enum):
    """Overall status of one account's part in a batch operation."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


class ReplicationStatus(Enum):
    """Outcome of replicating one file to one target account."""
    REPLICATED = "replicated"
    SKIPPED_INACTIVE = "skipped-inactive"
    SKIPPED_TOKEN_EXPIRED = "skipped-token-expired"
    FAILED = "failed"


@dataclass
class TargetOutcome:
    """Result of pushing a file to one account."""
    account_id: str
    email: str
    status: ReplicationStatus
    remote_file_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "email": self.email,
            "status": self.status.value,
            "remote_file_id": self.remote_file_id,
            "error": self.error,
        }


@dataclass
class ReplicationReport:
    """Joined outcome of one replication job."""
    file_record_id: str
    file_name: str
    source_account_id: str
    outcomes: List[TargetOutcome] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    def count(self, status: ReplicationStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def replicated(self) -> int:
        return self.count(ReplicationStatus.REPLICATED)

    @property
    def failed(self) -> int:
        return self.count(ReplicationStatus.FAILED) + self.count(ReplicationStatus.SKIPPED_TOKEN_EXPIRED)

    def summary(self) -> str:
        return (
            f"{self.file_name}: {self.replicated}/{len(self.outcomes)} replicated, "
            f"{self.failed} failed, {self.count(ReplicationStatus.SKIPPED_INACTIVE)} inactive"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_record_id": self.file_record_id,
            "file_name": self.file_name,
            "source_account_id": self.source_account_id,
            "replicated": self.replicated,
            "failed": self.failed,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class ReconcileTargetResult:
    """What reconciliation did on one target account."""
    account_id: str
    email: str
    status: SyncStatus = SyncStatus.SUCCESS
    folders_created: int = 0
    moved: int = 0
    uploaded: int = 0
    already_present: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def reconciled(self) -> int:
        """Files whose placement changed during this run."""
        return self.moved + self.uploaded

    def finish(self) -> None:
        if self.status == SyncStatus.SKIPPED:
            return
        if self.failed and not (self.reconciled or self.already_present):
            self.status = SyncStatus.FAILED
        elif self.failed:
            self.status = SyncStatus.PARTIAL
        else:
            self.status = SyncStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "email": self.email,
            "status": self.status.value,
            "folders_created": self.folders_created,
            "moved": self.moved,
            "uploaded": self.uploaded,
            "already_present": self.already_present,
            "reconciled": self.reconciled,
            "failed": self.failed,
            "errors": self.errors[:10],
        }


@dataclass
class ReconcileReport:
    """Result of a whole reconciliation run."""
    default_account_id: str
    file_count: int = 0
    targets: List[ReconcileTargetResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def total_reconciled(self) -> int:
        return sum(target.reconciled for target in self.targets)

    @property
    def total_failed(self) -> int:
        return sum(target.failed for target in self.targets)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "default_account_id": self.default_account_id,
            "file_count": self.file_count,
            "total_reconciled": self.total_reconciled,
            "total_failed": self.total_failed,
            "targets": [target.to_dict() for target in self.targets],
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class OrganizeResult:
    """Folder organization result for one account."""
    account_id: str
    email: str
    status: SyncStatus = SyncStatus.SUCCESS
    folders_created: int = 0
    moved: int = 0
    already_organized: int = 0
    missing: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "email": self.email,
            "status": self.status.value,
            "folders_created": self.folders_created,
            "moved": self.moved,
            "already_organized": self.already_organized,
            "missing": self.missing,
            "errors": self.errors[:10],
        }
