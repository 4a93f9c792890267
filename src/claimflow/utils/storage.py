"""Storage utilities for uploads and their processed claims."""

import json
import shutil
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from claimflow.errors import UploadNotFoundError
from claimflow.models.claims import ClaimRecord
from claimflow.models.upload import UploadSession

SESSION_FILE = "session.json"
CLAIMS_FILE = "claims.jsonl"
VALIDATION_FILE = "validation.json"
RAW_PREFIX = "original"


class UploadStorage:
    """Handles storage of uploaded files, session state and stored claims."""

    def __init__(self, base_path: Path) -> None:
        """Initialize storage with base path."""
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _upload_path(self, file_id: str) -> Path:
        """Get path for an upload directory."""
        # Sanitize file_id to prevent path traversal
        safe_id = Path(file_id).name
        if not file_id or safe_id != file_id or ".." in file_id:
            raise ValueError(f"Invalid file_id: {file_id}")
        return self.base_path / safe_id

    def upload_exists(self, file_id: str) -> bool:
        """Check if an upload exists."""
        try:
            return (self._upload_path(file_id) / SESSION_FILE).exists()
        except ValueError:
            return False

    def create_upload(self, session: UploadSession, content: bytes) -> Path:
        """Create the upload directory, store the raw file and the session."""
        upload_path = self._upload_path(session.file_id)
        upload_path.mkdir(parents=True, exist_ok=True)

        safe_filename = Path(session.filename).name
        ext = safe_filename.rsplit(".", 1)[-1] if "." in safe_filename else "csv"
        (upload_path / f"{RAW_PREFIX}.{ext}").write_bytes(content)

        self.save_session(session)
        return upload_path

    def get_content(self, file_id: str) -> bytes:
        """Read back the raw uploaded file."""
        upload_path = self._upload_path(file_id)
        for path in upload_path.glob(f"{RAW_PREFIX}.*"):
            return path.read_bytes()
        raise UploadNotFoundError(f"Upload {file_id} not found", context={"file_id": file_id})

    def save_session(self, session: UploadSession) -> None:
        path = self._upload_path(session.file_id) / SESSION_FILE
        path.write_text(session.model_dump_json(indent=2))

    def get_session(self, file_id: str) -> UploadSession:
        """Load an upload session, raising UploadNotFoundError if absent."""
        if not self.upload_exists(file_id):
            raise UploadNotFoundError(f"Upload {file_id} not found", context={"file_id": file_id})
        path = self._upload_path(file_id) / SESSION_FILE
        return UploadSession.model_validate_json(path.read_text())

    def list_sessions(self) -> list[UploadSession]:
        sessions = []
        for session_file in self.base_path.glob(f"*/{SESSION_FILE}"):
            sessions.append(UploadSession.model_validate_json(session_file.read_text()))
        return sorted(sessions, key=lambda s: s.created_at)

    def append_claims(self, file_id: str, claims: Iterable[ClaimRecord]) -> int:
        """Append claims as JSON lines; returns how many were written."""
        path = self._upload_path(file_id) / CLAIMS_FILE
        count = 0
        with path.open("a", encoding="utf-8") as f:
            for claim in claims:
                f.write(json.dumps(claim.to_json_dict()) + "\n")
                count += 1
        return count

    def clear_claims(self, file_id: str) -> None:
        (self._upload_path(file_id) / CLAIMS_FILE).unlink(missing_ok=True)

    def load_claims(self, file_id: str, limit: int | None = None) -> list[ClaimRecord]:
        path = self._upload_path(file_id) / CLAIMS_FILE
        if not path.exists():
            return []

        claims = []
        with path.open(encoding="utf-8") as f:
            for line in f:
                if limit is not None and len(claims) >= limit:
                    break
                if line.strip():
                    claims.append(ClaimRecord.model_validate_json(line))
        return claims

    def store_report(self, file_id: str, report: dict[str, Any]) -> Path:
        """Store the validation report of an upload."""
        path = self._upload_path(file_id) / VALIDATION_FILE
        path.write_text(json.dumps(report, indent=2, default=str))
        return path

    def get_report(self, file_id: str) -> dict[str, Any] | None:
        path = self._upload_path(file_id) / VALIDATION_FILE
        if not path.exists():
            return None
        return json.loads(path.read_text())

    def delete_upload(self, file_id: str) -> bool:
        """Delete an upload and all its contents."""
        upload_path = self._upload_path(file_id)
        if upload_path.exists():
            shutil.rmtree(upload_path)
            return True
        return False
