"""Prompt templates and output schemas for extraction, transcription and the agent."""

EXTRACTION_TOOL_NAME = "record_grocery_items"

EXTRACTION_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "items": {
            "type": "array",
            "description": "Parsed grocery items, in the order they appear",
            "items": {
                "type": "object",
                "properties": {
                    "name": {
                        "type": "string",
                        "description": "Item name (standardized, e.g. 'Milk', 'Bread')",
                    },
                    "quantity": {"type": "number", "description": "Quantity of the item"},
                    "unit": {
                        "type": "string",
                        "description": "Unit of measurement (gallon, loaf, dozen, count, bag, etc.)",
                    },
                    "action": {
                        "type": "string",
                        "enum": ["add", "subtract", "set"],
                        "description": "'add' for purchases, 'subtract' for consumption, 'set' for exact inventory",
                    },
                    "category": {
                        "type": "string",
                        "description": "dairy, produce, meat, pantry, frozen, beverages, snacks, bakery, or uncategorized",
                    },
                    "location": {
                        "type": "string",
                        "description": "Storage location (pantry, fridge, freezer) if mentioned",
                    },
                    "brand": {"type": "string", "description": "Brand name if mentioned"},
                    "notes": {"type": "string", "description": "Additional notes"},
                    "expirationDate": {
                        "type": "string",
                        "description": "ISO 8601 expiry or best-before date if provided",
                    },
                    "confidence": {
                        "type": "number",
                        "description": "Confidence from 0 to 1 for this item",
                    },
                },
                "required": ["name", "quantity", "unit", "action", "confidence"],
            },
        },
        "overallConfidence": {
            "type": "number",
            "description": "Overall confidence in the parsing from 0 to 1",
        },
        "needsReview": {
            "type": "boolean",
            "description": "Whether items need human review before applying",
        },
    },
    "required": ["items", "overallConfidence", "needsReview"],
}

TEXT_EXTRACTION_SYSTEM_PROMPT = """You are an expert grocery inventory assistant. Parse natural language text about grocery shopping, cooking, or food consumption into structured inventory updates.

Actions:
- "add" for purchases: "bought milk", "picked up bread", "got some eggs"
- "subtract" for consumption: "used 2 eggs", "ate the last banana", "finished the milk"
- "set" for exact inventory: "have 3 apples left", "only 1 loaf remaining"

Quantities default to 1 if not specified. Pick sensible units:
- Milk -> gallon, Bread -> loaf, Eggs -> dozen, Bananas -> count, Ground meat -> pound

Categories:
- dairy: milk, cheese, yogurt, eggs, butter
- produce: fruits, vegetables, herbs
- meat: chicken, beef, pork, fish, deli meat
- pantry: canned goods, pasta, rice, oils, spices
- frozen: frozen vegetables, ice cream, frozen meals
- beverages: coffee, tea, juice, soda, water
- snacks: chips, cookies, crackers, nuts
- bakery: bread, bagels, muffins, pastries

Capture brand names and storage locations (fridge, freezer, pantry) when mentioned. When the text mentions an expiry or best-before date, record it as ISO 8601 (YYYY-MM-DD).

Confidence scoring:
- 0.9-1.0: unambiguous
- 0.7-0.89: mostly clear, minor assumptions
- 0.5-0.69: ambiguous, needs review
- below 0.5: unclear

Set needsReview to true if:
- overall confidence is below 0.7
- any quantity, unit or item name is ambiguous
- the text mixes buying and consuming

Examples:
- "bought 2 gallons of milk and a loaf of bread" -> add 2 Milk (gallon), add 1 Bread (loaf)
- "used 3 eggs for breakfast" -> subtract 3 Eggs (count)
- "we're out of coffee" -> set 0 Coffee (bag)

Be conservative about confidence when things are unclear."""

RECEIPT_IMAGE_PROMPT = """Extract all grocery items from this receipt image.

For each item provide the cleaned product name, the quantity purchased (default 1), the unit, action "add", the grocery category, the brand if visible, a storage location if clearly stated, an ISO 8601 expirationDate if printed, and your confidence (0.0 to 1.0).

Do not include tax lines, totals, store information, payment information, discounts or coupons. If you can't read something clearly, still include it with lower confidence."""

LIST_IMAGE_PROMPT = """Extract all items from this handwritten or printed grocery list image.

For each item provide the cleaned item name, the quantity if written (default 1), the unit, action "add", the grocery category, any location or notes written next to it, an ISO 8601 expirationDate if mentioned, and your confidence (0.0 to 1.0).

Include every visible item, even if the handwriting is unclear (use lower confidence)."""

RECEIPT_TRANSCRIPTION_PROMPT = """Transcribe the purchased items on this receipt as plain text, one item per line, in the form "<quantity> <unit> <item name>".

Expand abbreviations and remove SKU codes. Skip tax, totals, store details, payment lines and coupons. Return only the lines, no other text."""

LIST_TRANSCRIPTION_PROMPT = """Transcribe this grocery list as plain text, one item per line, keeping any quantities, units and notes that are written.

Return only the lines, no other text."""

AGENT_SYSTEM_PROMPT = """You are a grocery ingestion agent that keeps a household pantry inventory up to date.

Work in this order:
1. Call fetch_user_context if existing inventory would help you resolve names, units or quantities.
2. Call parse_grocery_text on the user's text to get structured items.
3. Summarize what you are about to change.
4. Call apply_inventory_updates with the parsed items, unless the parse needs review. If it needs review, do not apply anything and explain what the user should confirm.

Never invent items that are not in the text. Finish with a short summary of what changed."""


def get_image_prompt(image_type: str) -> str:
    """Extraction prompt for a receipt or grocery list photo."""
    return RECEIPT_IMAGE_PROMPT if image_type == "receipt" else LIST_IMAGE_PROMPT


def get_transcription_prompt(image_type: str) -> str:
    """Transcription prompt for a receipt or grocery list photo."""
    return RECEIPT_TRANSCRIPTION_PROMPT if image_type == "receipt" else LIST_TRANSCRIPTION_PROMPT


def get_agent_prompt(text: str, metadata: dict | None = None) -> str:
    """User turn for an ingestion run."""
    source = (metadata or {}).get("source")
    header = f"Source: {source}\n\n" if source else ""
    return f"""{header}Update my inventory from this text:

{text}"""
