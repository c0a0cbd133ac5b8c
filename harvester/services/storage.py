from pathlib import Path
import hashlib
import json
import logging
import os
import tempfile
from typing import Any, Mapping

from harvester.providers.base import PriceSample
from harvester.schemas import CursorState

logger = logging.getLogger(__name__)


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
            tmp_file.write(text)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class ResultStoreError(Exception):
    pass


def history_key(name: str) -> str:
    return hashlib.sha1(name.encode("utf-8")).hexdigest()


class CheckpointStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> int:
        if not self.path.exists():
            return 0
        data = json.loads(self.path.read_text(encoding="utf-8"))
        return CursorState.model_validate(data).last_index

    def save(self, cursor: int) -> None:
        state = CursorState(last_index=cursor)
        _atomic_write(self.path, json.dumps(state.model_dump(by_alias=True)))


class ResultStore:
    """Summary document plus one raw history file per item."""

    def __init__(self, prices_dir: Path, history_dir: Path, filename: str = "latest.json") -> None:
        self.prices_path = Path(prices_dir) / filename
        self.history_dir = Path(history_dir)

    def load(self) -> dict[str, Any]:
        if not self.prices_path.exists():
            return {}
        try:
            data = json.loads(self.prices_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ResultStoreError(f"cannot read {self.prices_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ResultStoreError(f"{self.prices_path} does not hold a JSON object")
        return data

    @staticmethod
    def merge(existing: Mapping[str, Any], incoming: Mapping[str, Any]) -> dict[str, Any]:
        merged = {**existing, **incoming}
        return {key: merged[key] for key in sorted(merged)}

    def save(self, prices: Mapping[str, Any]) -> None:
        ordered = {key: prices[key] for key in sorted(prices)}
        _atomic_write(self.prices_path, json.dumps(ordered, indent=4))

    @property
    def recovery_path(self) -> Path:
        return self.prices_path.with_name(f"{self.prices_path.stem}.recovered.json")

    def merge_and_save(self, incoming: Mapping[str, Any]) -> dict[str, Any]:
        try:
            existing = self.load()
        except ResultStoreError:
            # the unreadable document is left untouched
            _atomic_write(self.recovery_path, json.dumps({key: incoming[key] for key in sorted(incoming)}, indent=4))
            logger.error("saved %s summaries to %s", len(incoming), self.recovery_path)
            raise
        merged = self.merge(existing, incoming)
        self.save(merged)
        return merged

    def history_path(self, name: str) -> Path:
        return self.history_dir / f"{history_key(name)}.json"

    def save_raw_series(self, name: str, series: list[PriceSample]) -> Path:
        path = self.history_path(name)
        _atomic_write(path, json.dumps([sample.to_record() for sample in series]))
        return path
