"""Unit tests for content normalization."""

from mailsync.application.content.html import html_to_text
from mailsync.application.content.key_info import (
    classify_importance,
    extract_action_items,
    extract_contacts,
    extract_dates,
    summarize,
)
from mailsync.application.content.normalizer import ContentNormalizer
from mailsync.application.content.readability import reading_ease
from mailsync.application.content.sections import split_sections
from mailsync.domain.models import Importance


class TestHtmlToText:
    """Tests for HTML stripping."""

    def test_drops_head_script_and_decodes_entities(self):
        """Test non-content blocks vanish and entities decode once."""
        html = (
            "<html><head><style>p{color:red}</style></head><body>"
            "<p>Hello &amp;lt;team&amp;gt;</p><script>alert(1)</script>"
            "<p>Rates&nbsp;are &#36;120 &amp; up.</p></body></html>"
        )
        text = html_to_text(html)

        assert "alert" not in text
        assert "color" not in text
        assert "Hello &lt;team&gt;" in text
        assert "Rates are $120 & up." in text

    def test_line_breaks_become_newlines(self):
        """Test <br> and block tags map to newlines."""
        text = html_to_text("<div>First line<br>Second line</div><div>Third line</div>")
        assert text.split("\n") == ["First line", "Second line", "Third line"]


class TestSplitSections:
    """Tests for signature and quoted-content detection."""

    def test_salutation_signature(self):
        """Test a closing salutation starts the signature."""
        text = (
            "Hi Maria,\n\nPlease send the passport copies by Friday.\n\n"
            "Best regards,\nJohn Smith\nSunrise Travel"
        )
        body, signature, quoted = split_sections(text)

        assert body == "Hi Maria,\n\nPlease send the passport copies by Friday."
        assert signature == "Best regards,\nJohn Smith\nSunrise Travel"
        assert quoted is None

    def test_mobile_signature(self):
        """Test mobile client footers are excised."""
        body, signature, _ = split_sections("I will call the hotel tomorrow morning.\n\nSent from my iPhone")

        assert body == "I will call the hotel tomorrow morning."
        assert signature == "Sent from my iPhone"

    def test_dash_marker_signature(self):
        """Test the '--' delimiter line starts the signature."""
        body, signature, _ = split_sections("Booking confirmed for two adults.\n--\nJohn\n+1 555 123 4567")

        assert body == "Booking confirmed for two adults."
        assert signature.startswith("--")

    def test_structural_signature(self):
        """Test a name line followed by a title line is found without salutation."""
        text = (
            "Your itinerary for Lisbon is attached and the hotel is confirmed.\n\n"
            "Maria Lopez\nSenior Travel Consultant\nSunrise Tours LLC"
        )
        body, signature, _ = split_sections(text)

        assert body == "Your itinerary for Lisbon is attached and the hotel is confirmed."
        assert signature == "Maria Lopez\nSenior Travel Consultant\nSunrise Tours LLC"

    def test_wrapped_reply_attribution(self):
        """Test 'On ... wrote:' split over two lines is quoted, with the quoted signature."""
        text = (
            "Sounds good, see you then.\n\n"
            "On Mon, Mar 4, 2024 at 10:15 AM Jane Doe <jane@client.example>\nwrote:\n"
            "> Can we meet Tuesday?\n>\n> Thanks,\n> Jane"
        )
        body, signature, quoted = split_sections(text)

        assert body == "Sounds good, see you then."
        assert signature is None
        assert quoted.startswith("On Mon, Mar 4, 2024")
        assert "> Thanks," in quoted

    def test_forwarded_message(self):
        """Test a forwarded header block is quoted content."""
        text = (
            "FYI see below.\n\n---------- Forwarded message ---------\n"
            "From: Hotel Lisboa <res@hotel.example>\nSubject: Confirmation"
        )
        body, _, quoted = split_sections(text)

        assert body == "FYI see below."
        assert quoted.startswith("---------- Forwarded message")

    def test_early_thanks_keeps_request(self):
        """Test a stand-alone "Thanks!" above the request is not the signature."""
        text = (
            "Hi Maria,\nThanks!\nPlease book the Rome flight on 05/12/2025 and confirm ASAP.\n…\n\n"
            "Best regards,\nJohn Smith\nSunrise Travel"
        )
        body, signature, _ = split_sections(text)

        assert "Please book the Rome flight on 05/12/2025 and confirm ASAP." in body
        assert body.startswith("Hi Maria,\nThanks!")
        assert signature == "Best regards,\nJohn Smith\nSunrise Travel"

    def test_markers_only_searched_near_the_end(self):
        """Test salutation lines far above the closing lines stay in the body."""
        itinerary = "\n".join(f"Day {n}: transfer and guided tour" for n in range(1, 17))
        text = f"Cheers\n{itinerary}\n\nKind regards,\nAna"
        body, signature, _ = split_sections(text)

        assert body.startswith("Cheers\nDay 1:")
        assert "Day 16: transfer and guided tour" in body
        assert signature == "Kind regards,\nAna"

    def test_signature_before_quote(self):
        """Test a signature above the quote is kept apart from it."""
        text = "Confirmed for Tuesday.\n\nCheers,\nAna\n\n> Are we still on for Tuesday?"
        body, signature, quoted = split_sections(text)

        assert body == "Confirmed for Tuesday."
        assert signature == "Cheers,\nAna"
        assert quoted == "> Are we still on for Tuesday?"


class TestKeyInformation:
    """Tests for heuristic extraction."""

    def test_action_items_capped_at_three(self):
        """Test only the first three action phrases are kept."""
        text = (
            "Please confirm the dates. Can you send the invoice? "
            "Could you call the hotel? Would you book the car?"
        )
        assert extract_action_items(text) == [
            "Please confirm the dates.",
            "Can you send the invoice?",
            "Could you call the hotel?",
        ]

    def test_dates_ordered_by_position(self):
        """Test all three date formats are found in text order."""
        text = "Check-in on 2024-03-15, flight on 03/20/2024 and return on April 5, 2024."
        assert extract_dates(text) == ["2024-03-15", "03/20/2024", "April 5, 2024"]

    def test_contacts(self):
        """Test emails and phone numbers are collected."""
        text = "Write to Bookings@Hotel.example or call (555) 123-4567 or +1 555 987 6543."
        contacts = extract_contacts(text)

        assert "bookings@hotel.example" in contacts
        assert "(555) 123-4567" in contacts
        assert "+1 555 987 6543" in contacts

    def test_importance_tiers(self):
        """Test urgency keywords, low-priority phrasing, and the default."""
        assert classify_importance("Please handle this, it is urgent.") == Importance.HIGH
        assert classify_importance("This is not urgent, whenever you have time.") == Importance.LOW
        assert classify_importance("Not urgent, but the visa deadline is critical.") == Importance.HIGH
        assert classify_importance("The hotel confirmed the booking for May.") == Importance.MEDIUM

    def test_summary_first_sentence(self):
        """Test the summary is the first sentence and at most 200 chars."""
        assert summarize("The booking is confirmed. Payment follows.") == "The booking is confirmed."
        long_sentence = "word " * 100
        summary = summarize(long_sentence)
        assert len(summary) <= 200
        assert summary.endswith("...")


class TestReadability:
    """Tests for Flesch reading ease."""

    def test_simple_text_clamped(self):
        """Test very simple text clamps to 100."""
        assert reading_ease("The cat sat on the mat.") == 100.0

    def test_range_and_determinism(self):
        """Test scores stay in range and repeat exactly."""
        text = (
            "Notwithstanding the aforementioned considerations, the accommodation "
            "reservation necessitates comprehensive administrative verification."
        )
        score = reading_ease(text)
        assert 0.0 <= score <= 100.0
        assert reading_ease(text) == score

    def test_empty(self):
        """Test empty text scores zero."""
        assert reading_ease("") == 0.0


class TestContentNormalizer:
    """Tests for the full normalization pipeline."""

    def test_plain_text_pipeline(self):
        """Test body, signature, quote and signal come out together."""
        text = (
            "Hi Maria,\n\n\n\nPlease send the passport copies by 03/15/2024. It is urgent.\n\n"
            "Best regards,\nJohn Smith\njohn@client.example\n\n"
            "On Fri, Mar 1, 2024 at 9:00 AM Maria <maria@travel.example> wrote:\n> Documents needed."
        )
        result = ContentNormalizer().normalize(text)

        assert result.cleaned_body == "Hi Maria,\n\nPlease send the passport copies by 03/15/2024. It is urgent."
        assert result.signature.startswith("Best regards,")
        assert result.quoted_content.startswith("On Fri, Mar 1, 2024")
        info = result.key_information
        assert info.importance == Importance.HIGH
        assert info.important_dates == ["03/15/2024"]
        assert info.action_items == ["Please send the passport copies by 03/15/2024."]
        assert "john@client.example" in info.contacts
        assert info.summary == "Hi Maria, Please send the passport copies by 03/15/2024."
        assert 0.0 <= result.readability_score <= 100.0

    def test_early_thanks_keeps_signal(self):
        """Test key information still sees the request after an early "Thanks!"."""
        text = (
            "Hi Maria,\nThanks!\nPlease book the Rome flight on 05/12/2025 and confirm ASAP.\n…\n\n"
            "Best regards,\nJohn Smith\nSunrise Travel"
        )
        result = ContentNormalizer().normalize(text)

        assert "Please book the Rome flight" in result.cleaned_body
        assert result.key_information.important_dates == ["05/12/2025"]
        assert result.key_information.importance == Importance.HIGH

    def test_closing_signature_removed(self):
        """Test a closing salutation, name and title line leave the body."""
        result = ContentNormalizer().normalize(
            "Please confirm the Lisbon transfer for Friday.\n\nBest regards,\nJane Doe\nCEO, Acme Inc"
        )

        assert result.cleaned_body == "Please confirm the Lisbon transfer for Friday."
        assert "Jane Doe" in result.signature
        assert "Best regards" not in result.cleaned_body

    def test_html_input(self):
        """Test HTML bodies are analysed as plain text."""
        result = ContentNormalizer().normalize("<p>Your transfer is booked for 2024-05-01.</p>", is_html=True)

        assert result.plain_text == "Your transfer is booked for 2024-05-01."
        assert result.cleaned_body == "Your transfer is booked for 2024-05-01."
        assert result.key_information.important_dates == ["2024-05-01"]

    def test_short_input_returns_default(self):
        """Test inputs under the minimum length skip analysis."""
        result = ContentNormalizer().normalize("Ok thanks")

        assert result.cleaned_body == "Ok thanks"
        assert result.signature is None
        assert result.quoted_content is None
        assert result.readability_score == 0.0
        assert result.key_information.action_items == []

    def test_blank_line_runs_collapsed(self):
        """Test cleaned bodies have collapsed blank lines and trimmed edges."""
        result = ContentNormalizer().normalize("\n\n  Line one of the message.\n\n\n\n\nLine two of the message.   \n")
        assert result.cleaned_body == "Line one of the message.\n\nLine two of the message."

    def test_snippet_length(self):
        """Test snippets are flattened and about 150 chars."""
        result = ContentNormalizer().normalize("The itinerary is ready. " * 20)
        assert len(result.snippet) <= 153
        assert "\n" not in result.snippet

    def test_deterministic(self):
        """Test the same input produces the same result."""
        text = "Can you confirm the ferry times? Thanks,\nAna"
        assert ContentNormalizer().normalize(text) == ContentNormalizer().normalize(text)
