"""
Meeting provisioning over the BigBlueButton API.

Every call is a GET signed with a SHA-1 checksum over
method + query string + shared secret. Responses are XML wrapped in
<response> with a <returncode> of SUCCESS or FAILED.
"""

import base64
import enum
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote
from xml.etree import ElementTree

import httpx

from backend.app.core.config import Settings

logger = logging.getLogger(__name__)

ID_NOT_UNIQUE = "idNotUnique"


class BbbError(Exception):
    """BBB answered with an HTTP error, a FAILED returncode or unparseable XML."""

    def __init__(self, message: str, message_key: Optional[str] = None):
        super().__init__(message)
        self.message_key = message_key


class ProvisionStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    ERROR = "ERROR"


@dataclass(frozen=True)
class ProvisionResult:
    status: ProvisionStatus
    error: Optional[str] = None


@dataclass(frozen=True)
class MeetingParams:
    name: str
    duration_minutes: Optional[int] = None
    logout_url: Optional[str] = None
    record: bool = False


def _encode(value: str) -> str:
    # RFC 3986 unreserved characters only
    return quote(value, safe="-_.~")


def build_query(params: Dict[str, Any]) -> str:
    """Deterministic query string: None dropped, keys sorted, booleans lowercased."""
    pairs = []
    for key in sorted(k for k, v in params.items() if v is not None):
        value = params[key]
        if isinstance(value, bool):
            value = "true" if value else "false"
        pairs.append(f"{_encode(key)}={_encode(str(value))}")
    return "&".join(pairs)


def normalize_base_url(base_url: str) -> str:
    url = base_url.strip().rstrip("/")
    if url.endswith("/api"):
        url = url[: -len("/api")]
    return url


def derive_meeting_passwords(meeting_id: str, salt: str) -> Dict[str, str]:
    """
    Deterministic per-meeting passwords, so retries re-create the same meeting.

    Returns:
        {"moderator": "m_...", "attendee": "a_..."}
    """
    def _derive(role: str) -> str:
        digest = hmac.new(salt.encode(), f"{role}:{meeting_id}".encode(), hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest).decode().rstrip("=")[:20]

    return {
        "moderator": f"m_{_derive('moderator')}",
        "attendee": f"a_{_derive('attendee')}",
    }


def parse_response(text: str) -> Dict[str, str]:
    """Flatten the <response> element into {tag: text}."""
    try:
        root = ElementTree.fromstring(text)
    except ElementTree.ParseError as exc:
        raise BbbError(f"Invalid XML from BBB: {exc}") from exc
    return {child.tag: (child.text or "").strip() for child in root}


class BbbClient:
    """Thin signed-GET client. Pass `transport` to stub the network in tests."""

    def __init__(
        self,
        base_url: str,
        shared_secret: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = normalize_base_url(base_url)
        self.shared_secret = shared_secret
        self.timeout = timeout
        self.transport = transport

    def checksum(self, method: str, query: str) -> str:
        return hashlib.sha1(f"{method}{query}{self.shared_secret}".encode()).hexdigest()

    def build_signed_url(self, method: str, params: Dict[str, Any]) -> str:
        query = build_query(params)
        checksum = self.checksum(method, query)
        qs = f"{query}&checksum={checksum}" if query else f"checksum={checksum}"
        return f"{self.base_url}/api/{method}?{qs}"

    async def call(self, method: str, params: Dict[str, Any]) -> Dict[str, str]:
        """
        Perform a signed API call.

        Raises:
            BbbError: On HTTP error status or a non-SUCCESS returncode
            httpx.HTTPError: On transport failures
        """
        url = self.build_signed_url(method, params)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(
                url,
                headers={"Accept": "application/xml,text/xml;q=0.9,*/*;q=0.1"},
                follow_redirects=False,
            )

        snippet = " ".join(response.text.split())[:280]
        if response.status_code >= 400:
            raise BbbError(f"BBB {method} http_error {response.status_code}: {snippet}")

        body = parse_response(response.text)
        if body.get("returncode") != "SUCCESS":
            key = body.get("messageKey")
            raise BbbError(
                f"BBB {method} failed ({key}): {body.get('message') or snippet}",
                message_key=key,
            )
        return body


class BbbMeetingProvisioner:
    """
    Creates one meeting per slot.

    "Meeting already exists" is a success: create is keyed on the meeting id
    and the passwords are derived from it, so the existing meeting is the
    same meeting.
    """

    def __init__(self, client: BbbClient, password_salt: str):
        self.client = client
        self.password_salt = password_salt

    async def create_meeting(self, meeting_id: str, params: MeetingParams) -> ProvisionResult:
        passwords = derive_meeting_passwords(meeting_id, self.password_salt)
        try:
            await self.client.call(
                "create",
                {
                    "meetingID": meeting_id,
                    "name": params.name[:120],
                    "record": params.record,
                    "duration": params.duration_minutes,
                    "moderatorPW": passwords["moderator"],
                    "attendeePW": passwords["attendee"],
                    "logoutURL": params.logout_url,
                },
            )
        except BbbError as exc:
            if exc.message_key == ID_NOT_UNIQUE or "not unique" in str(exc).lower():
                logger.info("Meeting %s already exists", meeting_id)
                return ProvisionResult(status=ProvisionStatus.ALREADY_EXISTS)
            raise

        logger.info("Meeting %s created", meeting_id)
        return ProvisionResult(status=ProvisionStatus.SUCCESS)

    def join_url(
        self,
        meeting_id: str,
        full_name: str,
        moderator: bool,
        logout_url: Optional[str] = None
    ) -> str:
        """Signed `join` URL. The role is carried by which derived password is sent."""
        passwords = derive_meeting_passwords(meeting_id, self.password_salt)
        return self.client.build_signed_url(
            "join",
            {
                "meetingID": meeting_id,
                "fullName": full_name[:120],
                "password": passwords["moderator" if moderator else "attendee"],
                "redirect": True,
                "logoutURL": logout_url,
            },
        )


def build_meeting_provisioner(config: Settings) -> Optional[BbbMeetingProvisioner]:
    """Provisioner from settings, or None when BBB is not configured."""
    if not config.bbb_base_url or not config.bbb_shared_secret:
        return None
    client = BbbClient(
        config.bbb_base_url,
        config.bbb_shared_secret,
        timeout=config.side_effect_timeout_seconds,
    )
    salt = (config.meeting_password_salt or "").strip() or config.bbb_shared_secret
    return BbbMeetingProvisioner(client, salt)
