import email
import email.message
import logging
from datetime import datetime
from email.header import decode_header
from email.utils import formataddr, getaddresses, parsedate_to_datetime
from typing import List, Optional, Tuple

from django.utils import timezone
from django.utils.html import linebreaks

from ..config import get_config
from ..exceptions import ParseError
from ..records import Attachment, NormalizedMessage
from ..channels.utils import encode_attachment

logger = logging.getLogger(__name__)


class MailParser:
    """
    Turns raw RFC 822 bytes into a ``NormalizedMessage``.

    Body preference: HTML part, then the plain-text part converted to HTML,
    then the raw plain text. Missing headers become empty strings and a missing
    or unreadable date becomes ``fallback_date`` (or the current time).
    """

    def parse(
        self,
        raw_message: bytes,
        account_id: str = "",
        fallback_date: Optional[datetime] = None,
    ) -> NormalizedMessage:
        """
        Parse one raw message.

        Raises:
            ParseError: If the input is not a readable RFC 822 message
        """
        if not isinstance(raw_message, (bytes, bytearray)) or not raw_message.strip():
            raise ParseError("Empty or non-binary message")

        try:
            email_message = email.message_from_bytes(bytes(raw_message))
            if not email_message.keys():
                raise ParseError("Message has no headers")

            received_at, estimated = self._parse_date(
                email_message.get("Date"), fallback_date
            )
            plain_body, html_body = self._extract_bodies(email_message)

            return NormalizedMessage(
                message_id=self._get_message_id(email_message),
                from_address=self._first_address(email_message.get("From", "")),
                to_address=self._first_address(email_message.get("To", "")),
                subject=self._decode_header(email_message.get("Subject", "")),
                body=self._choose_body(plain_body, html_body),
                received_at=received_at,
                account_id=account_id,
                attachments=self._extract_attachments(email_message),
                received_at_estimated=estimated,
            )
        except ParseError:
            raise
        except Exception as e:
            raise ParseError(f"Unreadable message: {e}") from e

    def _get_message_id(self, email_message: email.message.Message) -> str:
        """Message-ID header as sent, angle brackets included."""
        return self._decode_header(email_message.get("Message-ID", "")).strip()

    def _decode_header(self, header_value) -> str:
        """Decode email header that might be encoded."""
        if not header_value:
            return ""

        decoded_parts = []
        for part, encoding in decode_header(str(header_value)):
            if isinstance(part, bytes):
                try:
                    decoded_parts.append(part.decode(encoding or "utf-8", errors="replace"))
                except LookupError:
                    # Unknown charset
                    decoded_parts.append(part.decode("utf-8", errors="replace"))
            else:
                decoded_parts.append(part)

        return "".join(decoded_parts).strip()

    def _first_address(self, header_value) -> str:
        """Return the first address of an address header, display name kept."""
        decoded = self._decode_header(header_value)
        if not decoded:
            return ""

        for name, address in getaddresses([decoded]):
            if address:
                return formataddr((name, address)) if name else address
        return decoded

    def _parse_date(
        self, date_string, fallback_date: Optional[datetime]
    ) -> Tuple[datetime, bool]:
        """Parse the Date header; returns ``(datetime, estimated)``."""
        if date_string:
            try:
                parsed_date = parsedate_to_datetime(str(date_string))
                if timezone.is_naive(parsed_date):
                    parsed_date = timezone.make_aware(parsed_date)
                return parsed_date, False
            except (TypeError, ValueError, IndexError) as e:
                logger.warning(f"Error parsing date '{date_string}': {e}")

        if fallback_date is not None:
            return fallback_date, False
        return timezone.now(), True

    def _extract_bodies(
        self, email_message: email.message.Message
    ) -> Tuple[str, str]:
        """Return the first plain-text and first HTML body that are not attachments."""
        plain_body = ""
        html_body = ""

        for part in email_message.walk():
            if part.is_multipart() or self._is_attachment(part):
                continue

            content_type = part.get_content_type()
            if content_type == "text/plain" and not plain_body:
                plain_body = self._decode_part(part)
            elif content_type == "text/html" and not html_body:
                html_body = self._decode_part(part)

        return plain_body, html_body

    def _choose_body(self, plain_body: str, html_body: str) -> str:
        if html_body.strip():
            return html_body
        if plain_body.strip():
            return linebreaks(plain_body, autoescape=True)
        return plain_body

    def _decode_part(self, part: email.message.Message) -> str:
        """Decode the content of an email part."""
        content = part.get_payload(decode=True)
        if content is None:
            return ""

        charset = part.get_content_charset() or "utf-8"
        try:
            return content.decode(charset, errors="replace")
        except LookupError:
            # Fall back to UTF-8 if charset is unknown
            return content.decode("utf-8", errors="replace")

    def _is_attachment(self, part: email.message.Message) -> bool:
        disposition = (part.get("Content-Disposition") or "").lower()
        return "attachment" in disposition

    def _extract_attachments(
        self, email_message: email.message.Message
    ) -> List[Attachment]:
        """Collect attachment parts; content is dropped above the size limit."""
        attachments = []
        size_limit = get_config("ATTACHMENT_SIZE_LIMIT")

        for part in email_message.walk():
            if part.is_multipart() or not self._is_attachment(part):
                continue

            filename = self._decode_header(part.get_filename() or "")
            if not filename:
                subtype = part.get_content_subtype() or "bin"
                filename = f"attachment-{len(attachments) + 1}.{subtype}"

            content = part.get_payload(decode=True) or b""
            size = len(content)

            if size > size_limit:
                logger.warning(
                    f"Attachment {filename} exceeds size limit ({size} > {size_limit})"
                )
                attachments.append(
                    Attachment(
                        filename=filename,
                        content_type=part.get_content_type(),
                        size=size,
                        content=None,
                        truncated=True,
                    )
                )
                continue

            attachments.append(
                Attachment(
                    filename=filename,
                    content_type=part.get_content_type(),
                    size=size,
                    content=encode_attachment(content),
                )
            )

        return attachments
