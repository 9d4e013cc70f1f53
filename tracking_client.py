# Standard library imports
import argparse
import json
import logging
import os
import sys
import time
import typing

# Third-party imports
import requests

from tracking_generator import parse_share_path

logger = logging.getLogger(__name__)

# CONSTANTS
DEFAULT_BASE_URL = "http://localhost:3000"
MAX_RETRIES = 5
DELAY_SECONDS = 2
TIMEOUT_SECONDS = 10


class TrackingClientError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class TrackingClient:
    """Thin client for the tracking API."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        pin: typing.Optional[str] = None,
        session: typing.Optional[requests.Session] = None,
        max_retries: int = MAX_RETRIES,
        delay_seconds: float = DELAY_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self.pin = pin
        self.session = session or requests.Session()
        self.max_retries = max_retries
        self.delay_seconds = delay_seconds

    def _request(self, method: str, path: str, **kwargs) -> typing.Dict:
        """
        Send a request, retrying only on transport failures.

        HTTP error responses are not retried; they raise TrackingClientError
        with the server's error message.
        """
        url = f"{self.base_url}{path}"
        last_error = None
        for attempt in range(self.max_retries):
            try:
                response = self.session.request(method, url, timeout=TIMEOUT_SECONDS, **kwargs)
            except requests.RequestException as e:
                last_error = e
                logger.warning("[!] - Attempt %d: Error calling %s: %s", attempt + 1, url, e)
                if attempt + 1 < self.max_retries:
                    time.sleep(self.delay_seconds)
                continue

            try:
                payload = response.json()
            except ValueError:
                payload = {}
            if response.status_code != 200:
                message = payload.get("error") if isinstance(payload, dict) else None
                raise TrackingClientError(response.status_code, message or response.reason or "request failed")
            return payload

        raise TrackingClientError(0, f"giving up after {self.max_retries} attempts: {last_error}")

    def _require_pin(self) -> str:
        if not self.pin:
            raise TrackingClientError(403, "a PIN is required for this operation")
        return self.pin

    def health(self) -> bool:
        return bool(self._request("GET", "/health").get("ok"))

    def create(self, initial_text: typing.Optional[str] = None) -> typing.Dict:
        body = {"pin": self._require_pin()}
        if initial_text:
            body["initialText"] = initial_text
        return self._request("POST", "/api/create", json=body)

    def add_update(self, code: str, text: str) -> typing.Dict:
        return self._request("POST", "/api/add", json={"pin": self._require_pin(), "code": code, "text": text})

    def track(self, code: str) -> typing.Dict:
        return self._request("GET", f"/api/track/{code}")

    def share_link(self, code: str) -> typing.Dict:
        return self._request("GET", "/api/share-link", params={"code": code})

    def shared(self, code: str, token: str) -> typing.Dict:
        return self._request("GET", "/api/shared", params={"trackingcode": code, "token": token})

    def redeem_share_url(self, url: str) -> typing.Dict:
        code, token = parse_share_path(url)
        return self.shared(code, token)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tracking-client", description="Talk to a tracking API server.")
    parser.add_argument("--url", default=os.environ.get("TRACKING_URL", DEFAULT_BASE_URL))
    parser.add_argument("--pin", default=os.environ.get("PIN"))
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="create a tracking record")
    create.add_argument("text", nargs="?")

    add = sub.add_parser("add", help="append a status update")
    add.add_argument("code")
    add.add_argument("text")

    track = sub.add_parser("track", help="show a record's history")
    track.add_argument("code")

    share = sub.add_parser("share", help="issue a share link")
    share.add_argument("code")

    open_ = sub.add_parser("open", help="open a share link")
    open_.add_argument("link")
    return parser


def main(argv: typing.Optional[typing.List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    client = TrackingClient(args.url, pin=args.pin)

    try:
        if args.command == "create":
            result = client.create(args.text)
        elif args.command == "add":
            result = client.add_update(args.code, args.text)
        elif args.command == "track":
            result = client.track(args.code)
        elif args.command == "share":
            result = client.share_link(args.code)
        else:
            result = client.redeem_share_url(args.link)
    except (TrackingClientError, ValueError) as e:
        print(f"[!] {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
