# Standard library imports
import random
import re
import secrets
import typing
import urllib.parse

from errors import GenerationExhausted


# CONSTANTS
CODE_PREFIX = "CHM"
CODE_RE = re.compile(r"CHM-[0-9]{3}-[0-9]{8}")
MAX_ATTEMPTS = 10000
TOKEN_BYTES = 12
SHARE_PATH_PREFIX = "/?Tracking/tools/"

_system_random = random.SystemRandom()


def is_valid_tracking_code(value) -> bool:
    """
    Check whether a value is a well-formed tracking code.

    Parameters:
    value: The candidate value, usually taken straight from a request.

    Returns:
    bool: True only for strings of the exact form CHM-DDD-DDDDDDDD.
    """
    return isinstance(value, str) and CODE_RE.fullmatch(value) is not None


def format_tracking_code(part_a: int, part_b: int) -> str:
    return f"{CODE_PREFIX}-{part_a:03d}-{part_b:08d}"


def generate_tracking_code(
    existing: typing.Container[str],
    rng: typing.Optional[random.Random] = None,
    max_attempts: int = MAX_ATTEMPTS,
) -> str:
    """
    Generate a tracking code that is not already present in `existing`.

    Both numeric segments are drawn over their full width, so the 3-digit
    group may start with zero. A code already present in `existing` is
    redrawn, at most `max_attempts` times.

    Parameters:
    existing (Container[str]): Codes already in use.
    rng (Random, optional): Source of randomness. Defaults to a SystemRandom instance.
    max_attempts (int, optional): Retry budget. Defaults to 10,000.

    Returns:
    str: A fresh tracking code.

    Raises:
    GenerationExhausted: If every attempt produced a code already in use.
    """
    rng = rng or _system_random
    for _ in range(max_attempts):
        code = format_tracking_code(rng.randint(0, 999), rng.randint(0, 99999999))
        if code not in existing:
            return code
    raise GenerationExhausted("Could not generate unique code")


def generate_share_token(
    existing: typing.Container[str] = (),
    max_attempts: int = MAX_ATTEMPTS,
) -> str:
    """Return a fresh 24 hex character token drawn from the secrets module."""
    for _ in range(max_attempts):
        token = secrets.token_hex(TOKEN_BYTES)
        if token not in existing:
            return token
    raise GenerationExhausted("Could not generate unique token")


def build_share_path(code: str, token: str) -> str:
    """
    Build the relative share path understood by the tracking front end.

    The parameters follow a literal `?` and are joined with `/`, not `&`:
    /?Tracking/tools/trackingcode=<code>/token=<token>
    """
    return (
        f"{SHARE_PATH_PREFIX}trackingcode={urllib.parse.quote(code, safe='')}"
        f"/token={urllib.parse.quote(token, safe='')}"
    )


def parse_share_path(url: str) -> typing.Tuple[str, str]:
    """
    Extract the tracking code and token from a share URL.

    Accepts either the relative path returned as `url` or the absolute
    `fullUrl` form.

    Raises:
    ValueError: If the URL is not a share link or either value is missing.
    """
    if not isinstance(url, str) or "?" not in url:
        raise ValueError("not a share link")
    fragment = url.split("?", 1)[1]
    if not fragment.startswith(SHARE_PATH_PREFIX[2:]):
        raise ValueError("not a share link")

    values = {}
    for segment in fragment[len(SHARE_PATH_PREFIX) - 2:].split("/"):
        key, sep, value = segment.partition("=")
        if sep:
            values[key] = urllib.parse.unquote(value)

    code, token = values.get("trackingcode"), values.get("token")
    if not code or not token:
        raise ValueError("share link is missing trackingcode or token")
    return code, token
