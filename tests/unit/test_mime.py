"""Unit tests for body extraction from Gmail part trees."""

from mailsync.application.ports.email_source import MessageEnvelope
from mailsync.infrastructure.email.mime import decode_base64url, decode_envelope

from tests.conftest import b64url, gmail_message


def _envelope(payload: dict) -> MessageEnvelope:
    return MessageEnvelope.from_api({"id": "m1", "labelIds": ["INBOX"], "payload": payload})


class TestDecodeBase64Url:
    """Tests for the provider base64url variant."""

    def test_missing_padding_and_url_alphabet(self):
        """Test unpadded input using '-' and '_' decodes."""
        text = "subjects?>>> ~~~ ok"
        encoded = b64url(text)
        assert "=" not in encoded
        assert decode_base64url(encoded) == text

    def test_invalid_utf8_is_replaced(self):
        """Test invalid UTF-8 bytes become replacement characters instead of failing."""
        encoded = b64url(b"caf\xe9 ok")
        assert decode_base64url(encoded) == "caf� ok"

    def test_garbage_returns_empty(self):
        """Test undecodable input yields an empty string."""
        assert decode_base64url("a") == ""
        assert decode_base64url("") == ""


class TestDecodeEnvelope:
    """Tests for choosing the best text part."""

    def test_single_inline_html_body(self):
        """Test a top-level html body is decoded directly."""
        html = "<p>Hello</p>"
        result = decode_envelope(_envelope({"mimeType": "text/html", "body": {"data": b64url(html)}}))

        assert result.text == html
        assert result.is_html is True
        assert result.attachments == []

    def test_html_preferred_over_plain(self):
        """Test multipart/alternative picks the html part."""
        message = gmail_message("m1", body="plain version", html="<b>html version</b>")
        result = decode_envelope(MessageEnvelope.from_api(message))

        assert result.text == "<b>html version</b>"
        assert result.is_html is True

    def test_plain_used_when_no_html(self):
        """Test the first text/plain part is the fallback."""
        payload = {
            "mimeType": "multipart/alternative",
            "parts": [
                {"mimeType": "text/plain", "body": {"data": b64url("first plain")}},
                {"mimeType": "text/plain", "body": {"data": b64url("second plain")}},
            ],
        }
        result = decode_envelope(_envelope(payload))

        assert result.text == "first plain"
        assert result.is_html is False

    def test_nested_multipart_with_attachment(self):
        """Test nested parts are descended and attachments listed."""
        message = gmail_message(
            "m1",
            body="See attached.",
            html="<p>See attached.</p>",
            attachments=(("itinerary.pdf", "application/pdf", 2048),),
        )
        result = decode_envelope(MessageEnvelope.from_api(message))

        assert result.text == "<p>See attached.</p>"
        assert len(result.attachments) == 1
        attachment = result.attachments[0]
        assert attachment.filename == "itinerary.pdf"
        assert attachment.content_type == "application/pdf"
        assert attachment.size_bytes == 2048
        assert attachment.attachment_id == "att-itinerary.pdf"

    def test_text_attachment_never_used_as_body(self):
        """Test a text/plain part with a filename is an attachment only."""
        payload = {
            "mimeType": "multipart/mixed",
            "parts": [
                {"mimeType": "text/plain", "filename": "notes.txt", "body": {"data": b64url("attached notes"), "size": 14}},
                {"mimeType": "text/plain", "body": {"data": b64url("real body")}},
            ],
        }
        result = decode_envelope(_envelope(payload))

        assert result.text == "real body"
        assert [a.filename for a in result.attachments] == ["notes.txt"]

    def test_only_attachments(self):
        """Test attachments are reported even when no text exists."""
        payload = {
            "mimeType": "multipart/mixed",
            "parts": [{"mimeType": "image/jpeg", "filename": "passport.jpg", "body": {"attachmentId": "a1", "size": 10}}],
        }
        result = decode_envelope(_envelope(payload))

        assert result.text == ""
        assert result.is_html is False
        assert result.attachments[0].filename == "passport.jpg"
