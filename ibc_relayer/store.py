"""
Durable store for the relayer config document.

The whole document is the unit of persistence: every change goes through
``ConfigStore.mutate``, which reads, applies and writes the document under a
single lock. Writes go to a temporary file that replaces the target, so a
crash mid-write leaves the previous document in place.
"""

import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, Optional

import structlog
import yaml
from pydantic import ValidationError

from .errors import ConfigFolderFailed, ConfigReadFailed, ConfigWriteFailed
from .models import CONFIG_VERSION, RelayerConfig

logger = structlog.get_logger()

Mutation = Callable[[RelayerConfig], Optional[RelayerConfig]]


class ConfigStore:
    """
    File-backed store for ``RelayerConfig``.

    One instance owns one document. Relay loops, the linker and the registry
    share the instance, and the lock serializes their read-modify-write
    cycles at whole-document granularity.
    """

    def __init__(self, config_path: Path):
        """
        Initialize the store, creating the config folder if needed.

        Args:
            config_path: Location of the YAML document.
        """
        self.config_path = Path(config_path)
        self._lock = threading.RLock()
        self._ensure_folder()

    def _ensure_folder(self) -> None:
        folder = self.config_path.parent
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigFolderFailed(str(folder), e) from e

    def load(self) -> RelayerConfig:
        """
        Read the current document.

        Creates and persists an empty document on first use.
        """
        with self._lock:
            if not self.config_path.exists():
                config = RelayerConfig()
                self._write(config)
                logger.info("config_created", path=str(self.config_path))
                return config
            return self._read()

    def mutate(self, fn: Mutation) -> RelayerConfig:
        """
        Apply ``fn`` to the current document and persist the result.

        ``fn`` receives a private copy and may either modify it in place and
        return None, or return a replacement document. Exceptions raised by
        ``fn`` abort the mutation without touching the file.
        """
        with self._lock:
            current = self.load()
            draft = current.model_copy(deep=True)
            result = fn(draft)
            updated = draft if result is None else result
            self._write(updated)
            return updated

    def _read(self) -> RelayerConfig:
        path = str(self.config_path)
        try:
            text = self.config_path.read_text(encoding="utf-8")
            data = yaml.safe_load(text)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigReadFailed(path, str(e)) from e

        if data is None:
            return RelayerConfig()
        if not isinstance(data, dict):
            raise ConfigReadFailed(path, "document root must be a mapping")
        if data and str(data.get("version")) != CONFIG_VERSION:
            raise ConfigReadFailed(
                path,
                f"your relayer setup is outdated. remove {path} and configure relayer again",
            )

        data["version"] = CONFIG_VERSION
        try:
            return RelayerConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigReadFailed(path, str(e)) from e

    def _write(self, config: RelayerConfig) -> None:
        path = str(self.config_path)
        tmp_path: Optional[str] = None
        try:
            payload = yaml.safe_dump(config.to_document(), sort_keys=False)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.config_path.parent,
                prefix=".config-",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_path = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, self.config_path)
        except (OSError, yaml.YAMLError) as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise ConfigWriteFailed(path, e) from e

        logger.debug("config_written", path=path, paths=len(config.paths))
