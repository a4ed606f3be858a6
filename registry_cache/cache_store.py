# registry_cache/cache_store.py

import json
import os
import shutil
import threading
import time
import uuid
from typing import Callable, Dict, Optional

from registry_cache.logger import get_logger

logger = get_logger(__name__)

INDEX_FILENAME = "index.json"
FILES_DIRNAME = "files"


class CacheEntry:
    """
    Запись кеша.
    Attributes:
        path: путь к локальному файлу с последним успешно скачанным содержимым.
        timestamp: время (clock()) последнего обновления записи.
    """
    __slots__ = ("path", "timestamp")

    def __init__(self, path: str, timestamp: float):
        self.path = path
        self.timestamp = timestamp

    def __repr__(self):
        return f"CacheEntry({self.path!r}, ts={self.timestamp:.2f})"


def _key(method: str, url: str) -> str:
    return f"{method.upper()} {url}"


class CacheStore:
    """
    Долговременное отображение (method, url) -> локальный путь.

    Файлы содержимого лежат в ``<path>/files``, само отображение –
    в ``<path>/index.json`` и переживает перезапуск процесса.
    Запись становится видимой для lookup() только после возврата complete().
    """

    def __init__(self, path: str, clock: Callable[[], float] = time.time):
        self.path = os.path.abspath(path)
        self.files_dir = os.path.join(self.path, FILES_DIRNAME)
        self._index_path = os.path.join(self.path, INDEX_FILENAME)
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: Dict[str, CacheEntry] = {}

        os.makedirs(self.files_dir, exist_ok=True)
        self._load()

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------------- #
    #                               Слоты и записи                              #
    # ------------------------------------------------------------------------- #
    def filename(self) -> str:
        """
        Выделить новый уникальный слот. Файл не создаётся и ни с каким ключом
        не связывается.
        """
        return os.path.join(self.files_dir, uuid.uuid4().hex)

    def complete(self, url: str, method: str, path: str) -> None:
        """
        Связать ключ (method, url) с уже полностью записанным ``path``.

        Прежний слот ключа не удаляется: путь к нему мог уже уйти читателю.
        Такие слоты освобождает только clear().
        """
        path = os.path.abspath(path)
        if not os.path.isfile(path):
            raise FileNotFoundError(f"cannot register {url}: {path} does not exist")

        key = _key(method, url)
        with self._lock:
            previous = self._entries.get(key)
            self._entries[key] = CacheEntry(path, self._clock())
            try:
                self._save()
            except OSError:
                if previous is None:
                    del self._entries[key]
                else:
                    self._entries[key] = previous
                raise

        logger.debug(f"cache complete {method} {url} -> {path}")

    def store(self, url: str, method: str, data: bytes) -> str:
        """
        Материализовать содержимое в новом слоте и зарегистрировать его.
        """
        path = self.filename()
        try:
            with open(path, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            self.complete(url, method, path)
        except Exception:
            # недописанный слот никому не принадлежит
            self._unlink(path)
            raise
        return path

    def entry(self, url: str, method: str = "GET") -> Optional[CacheEntry]:
        key = _key(method, url)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not os.path.isfile(entry.path):
                # запись без файла – всё равно что её нет
                logger.warning(f"cache entry {key} points to missing {entry.path}, dropping it")
                del self._entries[key]
                self._save()
                return None
            return entry

    def lookup(self, url: str, method: str = "GET") -> Optional[str]:
        entry = self.entry(url, method)
        return entry.path if entry else None

    def clear(self) -> None:
        """
        Удалить все записи и их файлы.
        """
        with self._lock:
            self._entries.clear()
            shutil.rmtree(self.files_dir, ignore_errors=True)
            os.makedirs(self.files_dir, exist_ok=True)
            self._save()
        logger.info(f"cache at {self.path} cleared")

    # ------------------------------------------------------------------------- #
    #                               Персистентность                             #
    # ------------------------------------------------------------------------- #
    def _load(self) -> None:
        if not os.path.exists(self._index_path):
            return
        try:
            with open(self._index_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            entries = {
                key: CacheEntry(item["path"], float(item["timestamp"]))
                for key, item in raw.items()
            }
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            aside = f"{self._index_path}.corrupt-{uuid.uuid4().hex}"
            os.replace(self._index_path, aside)
            logger.warning(f"unreadable cache index {self._index_path} ({exc}), moved to {aside}, starting empty")
            return
        self._entries.update(entries)
        logger.info(f"loaded {len(self._entries)} cache entries from {self._index_path}")

    def _save(self) -> None:
        payload = {
            key: {"path": entry.path, "timestamp": entry.timestamp}
            for key, entry in self._entries.items()
        }
        tmp_path = f"{self._index_path}.{uuid.uuid4().hex}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._index_path)
        except OSError:
            self._unlink(tmp_path)
            raise

    @staticmethod
    def _unlink(path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
