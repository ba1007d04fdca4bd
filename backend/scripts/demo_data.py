"""Deterministic demo documents, model catalog, and extraction schema."""

from __future__ import annotations

DEMO_OWNER = "demo@example.com"

DEMO_MODELS: list[dict[str, object]] = [
    {
        "identifier": "openai/gpt-4o-mini",
        "display_name": "GPT-4o mini",
        "supports_json_mode": True,
        "price_in": 0.00000015,
        "price_out": 0.0000006,
    },
    {
        "identifier": "anthropic/claude-3.5-haiku",
        "display_name": "Claude 3.5 Haiku",
        "supports_json_mode": False,
        "price_in": 0.0000008,
        "price_out": 0.000004,
    },
    {
        "identifier": "google/gemini-2.0-flash-001",
        "display_name": "Gemini 2.0 Flash",
        "supports_json_mode": True,
        "price_in": 0.0000001,
        "price_out": 0.0000004,
    },
    {
        "identifier": "meta-llama/llama-3.3-70b-instruct",
        "display_name": "Llama 3.3 70B Instruct",
        "supports_json_mode": False,
        "price_in": 0.00000012,
        "price_out": 0.0000003,
    },
]

DEMO_DOCUMENTS: list[tuple[str, str]] = [
    (
        "supply-agreement-acme.txt",
        "SUPPLY AGREEMENT. This Supply Agreement is entered into on March 1, 2024 between "
        "Acme Components Ltd (Supplier) and Northwind Traders Inc (Buyer). The agreement "
        "remains in force until February 28, 2027. Total contract value: USD 1,250,000.",
    ),
    (
        "services-contract-globex.txt",
        "MASTER SERVICES CONTRACT between Globex Corporation and Initech LLC, effective "
        "15 January 2025. Initech shall provide maintenance services. Fees are invoiced "
        "monthly at EUR 18,000. Either party may terminate with 90 days notice.",
    ),
    (
        "nda-umbrella.txt",
        "MUTUAL NON-DISCLOSURE AGREEMENT dated 2023-09-12 between Umbrella Health GmbH and "
        "Stark Analytics Inc. Confidentiality obligations survive for five years.",
    ),
]

DEMO_SYSTEM_PROMPT = (
    "You extract structured contract data. Respond with JSON only. "
    "Use null for any field that the document does not state."
)

DEMO_USER_PROMPT = (
    "Extract the contract name, both parties, the start and end dates as YYYY-MM-DD, "
    "and the total contract value as a number."
)

DEMO_SCHEMA: dict[str, object] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["contract_name", "parties", "start_date", "end_date", "total_value"],
    "properties": {
        "contract_name": {"type": "string"},
        "parties": {
            "type": "object",
            "required": ["supplier_name", "buyer_name"],
            "properties": {
                "supplier_name": {"type": "string"},
                "buyer_name": {"type": "string"},
            },
        },
        "start_date": {"type": "string", "format": "date"},
        "end_date": {"type": "string", "format": "date"},
        "total_value": {"type": "number"},
    },
}
