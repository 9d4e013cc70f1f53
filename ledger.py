# Standard library imports
import copy
import hmac
import logging
import random
import threading
import time
import typing

from errors import AuthFailed, Forbidden, NotFound, ValidationFailed
from json_file_handler import SnapshotStorage
from tracking_generator import (
    MAX_ATTEMPTS,
    generate_share_token,
    generate_tracking_code,
    is_valid_tracking_code,
)

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_TEXT = "Label created"


def now_ms() -> int:
    return int(time.time() * 1000)


def _clean_text(text) -> str:
    if text is None:
        return ""
    return str(text).strip()


class Ledger:
    """
    Shared tracking ledger: append-only update histories keyed by tracking
    code, plus the registry of share tokens that grant read access to them.

    Both snapshots are loaded once and kept in memory. Every mutation builds
    a new snapshot, saves it, and only then swaps it in, all while holding
    a single lock. A failed save leaves the ledger untouched.
    """

    def __init__(
        self,
        pin: str,
        records: SnapshotStorage,
        tokens: SnapshotStorage,
        location: typing.Optional[str] = None,
        clock: typing.Callable[[], int] = now_ms,
        rng: typing.Optional[random.Random] = None,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        if not pin:
            raise ValueError("a PIN is required")
        self._pin = pin.encode("utf-8")
        self._records_storage = records
        self._tokens_storage = tokens
        self.location = location or None
        self._clock = clock
        self._rng = rng
        self._max_attempts = max_attempts
        self._lock = threading.Lock()

        self._records = records.load()
        self._tokens = tokens.load()
        logger.info(
            "[+] Ledger loaded with %d record(s) and %d share token(s).",
            len(self._records),
            len(self._tokens),
        )

    def check_pin(self, pin) -> None:
        """Raise AuthFailed unless `pin` matches the configured secret."""
        if not isinstance(pin, str) or not hmac.compare_digest(pin.encode("utf-8"), self._pin):
            logger.warning("[!] Rejected request with invalid PIN.")
            raise AuthFailed()

    def _new_entry(self, text: str, previous: typing.Optional[typing.List[typing.Dict]] = None) -> typing.Dict:
        ts = self._clock()
        if previous:
            ts = max(ts, previous[-1].get("ts", ts))
        entry = {"ts": ts, "text": text}
        if self.location:
            entry["location"] = self.location
        return entry

    def _require_record(self, code, message: str = "Not found") -> typing.Dict:
        if not is_valid_tracking_code(code):
            raise ValidationFailed("Invalid code format")
        record = self._records.get(code)
        if record is None:
            raise NotFound(message)
        return record

    def create(self, pin, initial_text=None) -> typing.Tuple[str, typing.List[typing.Dict]]:
        """
        Create a new tracking record.

        Parameters:
        pin (str): The shared secret.
        initial_text (str, optional): Text of the first entry. Blank or missing text becomes "Label created".

        Returns:
        tuple: The new tracking code and its history.
        """
        self.check_pin(pin)
        text = _clean_text(initial_text) or DEFAULT_INITIAL_TEXT

        with self._lock:
            code = generate_tracking_code(self._records, rng=self._rng, max_attempts=self._max_attempts)
            records = dict(self._records)
            records[code] = {"updates": [self._new_entry(text)]}
            self._records_storage.save(records)
            self._records = records
            updates = copy.deepcopy(records[code]["updates"])

        logger.info("[+] Created tracking record %s.", code)
        return code, updates

    def append_update(self, pin, code, text) -> typing.List[typing.Dict]:
        """
        Append a status update to an existing record and return its full history.

        Checks run in order: PIN, code format, existence, then text.
        """
        self.check_pin(pin)
        if not is_valid_tracking_code(code):
            raise ValidationFailed("Invalid code format")

        with self._lock:
            record = self._require_record(code, "Code not found")
            text = _clean_text(text)
            if not text:
                raise ValidationFailed("Missing update text")

            updates = list(record.get("updates", []))
            updates.append(self._new_entry(text, updates))
            records = dict(self._records)
            records[code] = dict(record, updates=updates)
            self._records_storage.save(records)
            self._records = records
            result = copy.deepcopy(updates)

        logger.info("[+] Appended update #%d to %s.", len(result), code)
        return result

    def get_history(self, code) -> typing.List[typing.Dict]:
        with self._lock:
            record = self._require_record(code)
            return copy.deepcopy(record.get("updates", []))

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def issue_link(self, code) -> str:
        """
        Issue a new share token for `code`.

        Every call mints a distinct token; earlier tokens for the same code
        stay valid.

        Returns:
        str: The token.
        """
        with self._lock:
            self._require_record(code)
            token = generate_share_token(self._tokens, max_attempts=self._max_attempts)
            tokens = dict(self._tokens)
            tokens[token] = {"code": code, "ts": self._clock()}
            self._tokens_storage.save(tokens)
            self._tokens = tokens

        logger.info("[+] Issued share link for %s.", code)
        return token

    def redeem_link(self, code, token) -> typing.List[typing.Dict]:
        """
        Return the history of `code` if `token` was issued for exactly that code.

        Raises:
        ValidationFailed: If the code is malformed.
        Forbidden: If the token is unknown or bound to a different code.
        NotFound: If the token is valid but the record is missing.
        """
        if not is_valid_tracking_code(code):
            raise ValidationFailed("Invalid code format")

        with self._lock:
            entry = self._tokens.get(token) if isinstance(token, str) else None
            if not entry or entry.get("code") != code:
                logger.warning("[!] Rejected share link redemption for %s.", code)
                raise Forbidden()
            record = self._require_record(code)
            return copy.deepcopy(record.get("updates", []))
