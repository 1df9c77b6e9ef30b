from __future__ import annotations

"""File-per-episode persistence for captured training data.

Each episode lives in ``training_data_ep{number:06d}_{HHMMSS}_{session}.jsonl``:
the first line is a header object, every following line one experience. The
header alone answers count queries so statistics never parse experiences.
"""

from datetime import datetime, timezone
import json
import logging
import math
from pathlib import Path
import re
from typing import Any, Dict, Iterator, List, Optional, Tuple

from game_trainer.core.data_model import Episode, Experience
from game_trainer.core.errors import EmptyEpisode, IOFailure, ParseFailure
from game_trainer.logging_config.helpers import LogConstantMixin
from game_trainer.logging_config.log_constants import (
    LOG_STORAGE_CLEARED,
    LOG_STORAGE_EPISODE_PARSE_SKIPPED,
    LOG_STORAGE_EPISODE_SAVED,
    LOG_STORAGE_EPISODE_SAVE_FAILED,
    LOG_STORAGE_EXPORT_COMPLETED,
    LOG_STORAGE_EXPORT_FAILED,
    LOG_STORAGE_HEADER_UNREADABLE,
    LOG_STORAGE_PRUNED,
)
from game_trainer.storage.atomic import atomic_write_text

EPISODE_FORMAT = "episode/v1"
CONSOLIDATED_FILENAME = "consolidated_training_data.json"
EPISODE_FILE_PATTERN = re.compile(r"^training_data_ep(\d{6,})_(\d{6})_([A-Za-z0-9_\-]+)\.jsonl$")


def episode_filename(episode: Episode) -> str:
    return (
        f"training_data_ep{episode.episode_number:06d}_"
        f"{episode.end_time.strftime('%H%M%S')}_{episode.session_id or 'nosession'}.jsonl"
    )


def _parse_time(raw: Any) -> datetime:
    value = datetime.fromisoformat(str(raw))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _header_for(episode: Episode) -> Dict[str, Any]:
    return {
        "format": EPISODE_FORMAT,
        "episode_number": episode.episode_number,
        "session_id": episode.session_id,
        "experiences_count": episode.length,
        "total_reward": episode.total_reward,
        "start_time": episode.start_time.isoformat(),
        "end_time": episode.end_time.isoformat(),
    }


def _episode_to_dict(episode: Episode) -> Dict[str, Any]:
    payload = _header_for(episode)
    payload.pop("format")
    payload["experiences"] = [exp.to_dict() for exp in episode.experiences]
    return payload


class EpisodePersistence(LogConstantMixin):
    """Read/write episode files under a single storage root."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    def episode_files(self) -> List[Path]:
        """Recognized episode files in sorted filename order."""

        if not self.root.is_dir():
            return []
        return sorted(
            path
            for path in self.root.iterdir()
            if path.is_file() and EPISODE_FILE_PATTERN.match(path.name)
        )

    @property
    def consolidated_path(self) -> Path:
        return self.root / CONSOLIDATED_FILENAME

    # ------------------------------------------------------------------
    def save_episode(self, episode: Episode) -> Path:
        """Persist ``episode`` as a new file and return its path.

        Raises ``EmptyEpisode`` for an episode without experiences and
        ``IOFailure`` when the root cannot be written. Nothing is retried.
        """

        if not episode.experiences:
            raise EmptyEpisode(f"Episode {episode.episode_number} has no experiences")

        path = self.root / episode_filename(episode)
        lines = [json.dumps(_header_for(episode))]
        lines.extend(json.dumps(exp.to_dict()) for exp in episode.experiences)
        try:
            atomic_write_text(path, "\n".join(lines) + "\n")
        except OSError as exc:
            self.log_constant(
                LOG_STORAGE_EPISODE_SAVE_FAILED,
                message=str(exc),
                extra={"path": str(path), "session_id": episode.session_id},
                exc_info=exc,
            )
            raise IOFailure(f"Could not write episode file {path}: {exc}") from exc

        self.log_constant(
            LOG_STORAGE_EPISODE_SAVED,
            extra={
                "path": str(path),
                "session_id": episode.session_id,
                "episode_number": episode.episode_number,
                "experiences": episode.length,
            },
        )
        return path

    # ------------------------------------------------------------------
    def load_episode(self, path: Path) -> Episode:
        """Load one episode file; malformed content raises ``ParseFailure``."""

        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as handle:
                raw_lines = [line for line in handle if line.strip()]
        except UnicodeDecodeError as exc:
            raise ParseFailure(f"Episode file is not valid UTF-8: {exc}", path=path) from exc
        except OSError as exc:
            raise IOFailure(f"Could not read episode file {path}: {exc}") from exc
        if not raw_lines:
            raise ParseFailure("Episode file is empty", path=path)

        try:
            header = json.loads(raw_lines[0])
            records = [json.loads(line) for line in raw_lines[1:]]
        except json.JSONDecodeError as exc:
            raise ParseFailure(f"Invalid JSON in episode file: {exc}", path=path) from exc
        if not isinstance(header, dict) or header.get("format") != EPISODE_FORMAT:
            raise ParseFailure("Missing or unsupported episode header", path=path)

        parsed: List[Experience] = []
        for record in records:
            if not isinstance(record, dict):
                raise ParseFailure("Experience line is not a JSON object", path=path)
            parsed.append(Experience.from_dict(record))
        experiences = tuple(parsed)
        if not experiences:
            raise ParseFailure("Episode file holds no experiences", path=path)

        try:
            expected_count = int(header["experiences_count"])
            stored_total = float(header["total_reward"])
            episode = Episode(
                episode_number=int(header["episode_number"]),
                experiences=experiences,
                total_reward=sum(e.reward for e in experiences),
                start_time=_parse_time(header["start_time"]),
                end_time=_parse_time(header["end_time"]),
                session_id=str(header.get("session_id", "")),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ParseFailure(f"Malformed episode header: {exc}", path=path) from exc

        if expected_count != len(experiences):
            raise ParseFailure(
                f"Header declares {expected_count} experiences, file holds {len(experiences)}",
                path=path,
            )
        if not math.isclose(stored_total, episode.total_reward, rel_tol=1e-9, abs_tol=1e-9):
            raise ParseFailure(
                f"Stored total_reward {stored_total} disagrees with experiences ({episode.total_reward})",
                path=path,
            )
        return episode

    def load_all_episodes(self) -> Iterator[Episode]:
        """Yield every readable episode in sorted filename order.

        Unreadable files are logged and skipped. The generator is lazy, so each
        call starts a fresh directory scan.
        """

        for path in self.episode_files():
            try:
                yield self.load_episode(path)
            except (ParseFailure, IOFailure) as exc:
                self.log_constant(
                    LOG_STORAGE_EPISODE_PARSE_SKIPPED,
                    message=str(exc),
                    extra={"path": str(path)},
                )

    # ------------------------------------------------------------------
    def _read_header(self, path: Path) -> Optional[Dict[str, Any]]:
        try:
            with path.open("r", encoding="utf-8") as handle:
                header = json.loads(handle.readline())
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            self.log_constant(LOG_STORAGE_HEADER_UNREADABLE, message=str(exc), extra={"path": str(path)})
            return None
        if not isinstance(header, dict) or header.get("format") != EPISODE_FORMAT:
            self.log_constant(LOG_STORAGE_HEADER_UNREADABLE, extra={"path": str(path)})
            return None
        return header

    def get_data_stats(self) -> Tuple[int, int]:
        """Return ``(episode_count, total_experience_count)`` from header lines only."""

        episodes = 0
        experiences = 0
        for path in self.episode_files():
            header = self._read_header(path)
            if header is None:
                continue
            try:
                count = int(header["experiences_count"])
            except (KeyError, TypeError, ValueError):
                self.log_constant(LOG_STORAGE_HEADER_UNREADABLE, extra={"path": str(path)})
                continue
            episodes += 1
            experiences += count
        return episodes, experiences

    # ------------------------------------------------------------------
    def export_for_training(self, path: Optional[Path] = None) -> Path:
        """Write the consolidated dataset, overwriting any previous export."""

        target = Path(path) if path is not None else self.consolidated_path
        episodes = [_episode_to_dict(ep) for ep in self.load_all_episodes()]
        payload = {
            "export_date": datetime.now(timezone.utc).isoformat(),
            "total_episodes": len(episodes),
            "total_experiences": sum(len(ep["experiences"]) for ep in episodes),
            "episodes": episodes,
        }
        try:
            atomic_write_text(target, json.dumps(payload, indent=2))
        except OSError as exc:
            self.log_constant(LOG_STORAGE_EXPORT_FAILED, message=str(exc), extra={"path": str(target)}, exc_info=exc)
            raise IOFailure(f"Could not write consolidated dataset {target}: {exc}") from exc

        self.log_constant(
            LOG_STORAGE_EXPORT_COMPLETED,
            extra={
                "path": str(target),
                "episodes": payload["total_episodes"],
                "experiences": payload["total_experiences"],
            },
        )
        return target

    # ------------------------------------------------------------------
    def clear_all_data(self) -> int:
        """Delete all episode files and the consolidated dataset.

        Safe to call repeatedly; returns the number of files removed.
        """

        removed = 0
        targets = self.episode_files()
        if self.consolidated_path.is_file():
            targets.append(self.consolidated_path)
        for path in targets:
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise IOFailure(f"Could not delete {path}: {exc}") from exc
            removed += 1
        self.log_constant(LOG_STORAGE_CLEARED, extra={"root": str(self.root), "removed": removed})
        return removed

    def prune(self, keep_recent: int) -> int:
        """Delete all but the ``keep_recent`` newest episode files."""

        if keep_recent < 0:
            raise ValueError("keep_recent must be >= 0")
        existing = sorted(
            self.episode_files(),
            key=lambda path: (path.stat().st_mtime, path.name),
            reverse=True,
        )
        removed = 0
        for path in existing[keep_recent:]:
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise IOFailure(f"Could not delete {path}: {exc}") from exc
            removed += 1
        if removed:
            self.log_constant(
                LOG_STORAGE_PRUNED,
                extra={"root": str(self.root), "removed": removed, "kept": min(keep_recent, len(existing))},
            )
        return removed


__all__ = [
    "EpisodePersistence",
    "EPISODE_FORMAT",
    "CONSOLIDATED_FILENAME",
    "EPISODE_FILE_PATTERN",
    "episode_filename",
]
