# Standard library imports
import copy
import json
import logging
import os
import typing

# Third-party imports
import cachetools

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 10


class SnapshotStorage:
    """A place a snapshot (a flat JSON object) can be loaded from and saved to."""

    def load(self) -> typing.Dict:
        raise NotImplementedError

    def save(self, data: typing.Dict) -> None:
        raise NotImplementedError


class JsonFileHandler(SnapshotStorage):
    """
    Persist a snapshot as a pretty-printed UTF-8 JSON file.

    Writes go to `<file_path>.tmp` first and are moved into place with
    os.replace, so readers never observe a half-written file. Reads are
    served from a TTL cache keyed by file path.
    """

    def __init__(
        self,
        file_path: str,
        cache: typing.Optional[cachetools.TTLCache] = None,
        default_data: typing.Optional[typing.Dict] = None,
    ):
        self.file_path = file_path
        self.cache = cache if cache is not None else cachetools.TTLCache(maxsize=8, ttl=DEFAULT_CACHE_TTL)
        self.default_data = default_data if default_data is not None else {}

    def read(self) -> typing.Dict:
        if self.file_path in self.cache:
            return self.cache[self.file_path]

        if not (os.path.exists(self.file_path) and os.path.getsize(self.file_path) > 0):
            logger.info("[+] %s not found, initializing with default data.", self.file_path)
            self.initialize()

        try:
            with open(self.file_path, "r", encoding="utf-8") as file:
                data = json.load(file)
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning("[!] Failed to parse %s (%s); starting fresh.", self.file_path, e)
            data = copy.deepcopy(self.default_data)
        else:
            if not isinstance(data, dict):
                logger.warning("[!] %s does not hold a JSON object; starting fresh.", self.file_path)
                data = copy.deepcopy(self.default_data)

        self.cache[self.file_path] = data
        return data

    def write(self, data: typing.Dict) -> None:
        directory = os.path.dirname(self.file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        temp_file = f"{self.file_path}.tmp"
        payload = json.dumps(data, indent=2, ensure_ascii=False)
        with open(temp_file, "w", encoding="utf-8") as file:
            file.write(payload)
            file.flush()
            os.fsync(file.fileno())
        os.replace(temp_file, self.file_path)
        self.cache[self.file_path] = data

    def initialize(self) -> None:
        if not (os.path.exists(self.file_path) and os.path.getsize(self.file_path) > 0):
            self.write(copy.deepcopy(self.default_data))

    def load(self) -> typing.Dict:
        return copy.deepcopy(self.read())

    def save(self, data: typing.Dict) -> None:
        self.write(copy.deepcopy(data))


class MemoryStorage(SnapshotStorage):
    """Keeps the snapshot in memory. Used by tests and throwaway ledgers."""

    def __init__(self, data: typing.Optional[typing.Dict] = None):
        self.data = copy.deepcopy(data) if data else {}
        self.saves = 0

    def load(self) -> typing.Dict:
        return copy.deepcopy(self.data)

    def save(self, data: typing.Dict) -> None:
        self.data = copy.deepcopy(data)
        self.saves += 1
