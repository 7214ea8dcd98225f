"""
Legacy JSON mirror of current status: {"members": [{name, activity, state, timestamp}]}.

Write-through cache of the store; the store is authoritative and the mirror may
lag. Read paths fall back to it when the store is unavailable.
"""
import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from app.core.errors import MirrorError
from app.db.schemas import StatusSnapshot

logger = logging.getLogger("board.mirror")


class StatusMirror:
    def __init__(self, path: str | Path):
        self.path = Path(path)

    def read(self) -> StatusSnapshot:
        """Load the mirror; an absent file is an empty snapshot."""
        if not self.path.exists():
            return StatusSnapshot(members=[])
        try:
            raw = self.path.read_text(encoding="utf-8")
            return StatusSnapshot.model_validate(json.loads(raw))
        except (OSError, json.JSONDecodeError, PydanticValidationError) as exc:
            logger.warning("mirror read failed (%s): %s", self.path, exc)
            raise MirrorError(f"Failed to read mirror {self.path}") from exc

    def write(self, snapshot: StatusSnapshot) -> None:
        """Replace the mirror atomically (temp file + rename in the same directory)."""
        payload = json.dumps(
            snapshot.model_dump(mode="json"), ensure_ascii=False, indent=2
        )
        directory = self.path.parent if str(self.path.parent) else Path(".")
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            logger.warning("mirror write failed (%s): %s", self.path, exc)
            raise MirrorError(f"Failed to write mirror {self.path}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
        logger.debug("mirror written: %d members", len(snapshot.members))
