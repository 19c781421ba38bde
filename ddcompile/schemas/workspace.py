"""
WorkspaceRecord schema - tracks one compile attempt.

A WorkspaceRecord is created when a build allocates its workspace and is
persisted as status.json inside it. It is updated as artifacts are
written and when the build completes or aborts.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


RUNNING = "running"
COMPLETED = "completed"
ABORTED = "aborted"


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass
class WorkspaceRecord:
    """
    A record of one build workspace.

    Attributes:
        key: Timestamp-derived workspace key (directory name)
        status: 'running', 'completed' or 'aborted'
        started_at: When the workspace was allocated
        ended_at: When the build finished (None while running)
        artifacts: Persisted file names, in the order they were written
        error: Error message of the failure that aborted the build
        exit_status: Exit status of the build once finished
    """
    key: str
    status: str = RUNNING
    started_at: datetime = field(default_factory=_utcnow)
    ended_at: Optional[datetime] = None
    artifacts: list[str] = field(default_factory=list)
    error: Optional[str] = None
    exit_status: Optional[int] = None

    def finish(self, status: str, exit_status: int, error: Optional[str] = None) -> None:
        """Mark the record finished."""
        self.status = status
        self.exit_status = exit_status
        self.error = error
        self.ended_at = _utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result = {
            "key": self.key,
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "artifacts": list(self.artifacts),
        }
        if self.ended_at:
            result["ended_at"] = self.ended_at.isoformat()
        if self.error:
            result["error"] = self.error
        if self.exit_status is not None:
            result["exit_status"] = self.exit_status
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkspaceRecord":
        """Deserialize from dictionary."""
        ended_at = None
        if data.get("ended_at"):
            ended_at = datetime.fromisoformat(data["ended_at"])
        return cls(
            key=data["key"],
            status=data.get("status", RUNNING),
            started_at=datetime.fromisoformat(data["started_at"]),
            ended_at=ended_at,
            artifacts=list(data.get("artifacts", [])),
            error=data.get("error"),
            exit_status=data.get("exit_status"),
        )
