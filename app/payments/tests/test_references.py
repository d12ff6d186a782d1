"""
Tests for payment and transfer reference helpers.
"""

import re
import uuid

from payments.services.references import (
    extract_reference,
    generate_payment_reference,
    transfer_reference_for,
)

REFERENCE_RE = re.compile(r"^SALM-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}$")


class TestGeneratePaymentReference:
    def test_format(self):
        reference = generate_payment_reference(uuid.uuid4())

        assert REFERENCE_RE.match(reference)

    def test_embeds_product_id_tail(self):
        product_id = uuid.UUID("6f1c2d3e-0000-4000-8000-00000000f3a7")

        reference = generate_payment_reference(product_id)

        assert reference.split("-")[1] == "F3A7"

    def test_references_differ(self):
        product_id = uuid.uuid4()

        references = {generate_payment_reference(product_id) for _ in range(20)}

        assert len(references) == 20

    def test_prefix_from_settings(self, settings):
        settings.PAYMENT_REFERENCE_PREFIX = "MKT"

        assert generate_payment_reference(uuid.uuid4()).startswith("MKT-")


class TestExtractReference:
    def test_finds_reference_in_narration(self):
        assert extract_reference("TRF SALM-7F3A-K2QZ-9XBD FROM ADA OBI") == "SALM-7F3A-K2QZ-9XBD"

    def test_case_insensitive_and_normalised(self):
        assert extract_reference("payment for salm-7f3a-k2qz-9xbd") == "SALM-7F3A-K2QZ-9XBD"

    def test_first_text_with_a_reference_wins(self):
        found = extract_reference(None, "", "nothing here", "SALM-AAAA-BBBB-CCCC", "SALM-DDDD-EEEE-FFFF")

        assert found == "SALM-AAAA-BBBB-CCCC"

    def test_returns_none_without_reference(self):
        assert extract_reference("transfer from ada", None) is None

    def test_ignores_malformed_reference(self):
        assert extract_reference("SALM-7F3-K2QZ-9XBD") is None

    def test_respects_configured_prefix(self, settings):
        settings.PAYMENT_REFERENCE_PREFIX = "MKT"

        assert extract_reference("SALM-7F3A-K2QZ-9XBD") is None
        assert extract_reference("mkt-7f3a-k2qz-9xbd") == "MKT-7F3A-K2QZ-9XBD"


class TestTransferReference:
    def test_deterministic_per_transaction(self):
        transaction_id = uuid.uuid4()

        assert transfer_reference_for(transaction_id) == transfer_reference_for(str(transaction_id))
        assert transfer_reference_for(transaction_id) == f"payout-{transaction_id.hex}"

    def test_distinct_transactions_get_distinct_references(self):
        assert transfer_reference_for(uuid.uuid4()) != transfer_reference_for(uuid.uuid4())
