"""Tests for keyword classification of inbound vendor email."""

import pytest

from sourcing_engines.classification import (
    EmailCategory,
    classify_email,
    find_rfq_number,
    parse_sender,
)


class TestClassifyEmail:

    @pytest.mark.parametrize(
        "subject, body, category",
        [
            ("Quotation for RFQ-2025-0001", "", EmailCategory.QUOTATION),
            ("Re: your enquiry", "Please find our best quote below", EmailCategory.QUOTATION),
            ("Invoice 4471", "", EmailCategory.INVOICE),
            ("Purchase order acknowledgment", "", EmailCategory.PURCHASE_ORDER_ACK),
            ("Dispatch details", "Your goods left our warehouse", EmailCategory.DELIVERY_UPDATE),
            ("Payment received", "Thank you", EmailCategory.PAYMENT_CONFIRMATION),
            ("Hello", "Season's greetings", EmailCategory.GENERAL),
        ],
    )
    def test_categories(self, subject, body, category):
        assert classify_email(subject, body).category is category

    def test_first_rule_wins(self):
        result = classify_email("Quotation and invoice", "")
        assert result.category is EmailCategory.QUOTATION
        assert result.matched_rule == "quotation_keyword"

    def test_case_insensitive(self):
        assert classify_email("QUOTATION", "").category is EmailCategory.QUOTATION

    def test_general_has_low_confidence(self):
        assert classify_email("Hi", "").confidence < classify_email("Quote", "").confidence


class TestFindRFQNumber:

    def test_subject_before_body(self):
        assert find_rfq_number("Re: RFQ-2025-0007", "see also RFQ-2025-0001") == "RFQ-2025-0007"

    def test_body_when_subject_has_none(self):
        assert find_rfq_number("Our offer", "Regarding rfq-2025-0012, prices below") == "RFQ-2025-0012"

    def test_none_when_absent(self):
        assert find_rfq_number("Our offer", "no reference here") is None

    def test_requires_full_pattern(self):
        assert find_rfq_number("RFQ-25-1", "") is None


class TestParseSender:

    def test_named_address(self):
        assert parse_sender('"Acme Sales" <Sales@Acme.Example>') == ("Acme Sales", "sales@acme.example")

    def test_bare_address(self):
        assert parse_sender("  Sales@Acme.Example ") == (None, "sales@acme.example")

    def test_angle_only(self):
        assert parse_sender("<sales@acme.example>") == (None, "sales@acme.example")
