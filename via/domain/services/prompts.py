PLAN_CATEGORIES = ("SNEAKERS", "OUTDOORS", "CYCLING", "PET_SUPPLIES")

def clarifier_system_prompt() -> str:
    return (
        "You are VIA Demo Intent Clarifier.\n\n"
        "This is NOT production commerce. Your job is ONLY to clarify intent and output "
        "a retrieval plan for merchant MCP search.\n\n"
        "Allowed demo categories:\n"
        "SNEAKERS, OUTDOORS, CYCLING, PET_SUPPLIES\n\n"
        "You must:\n"
        "1) Choose the category (or NOT_SPECIFIED if unclear).\n"
        "2) Extract core_item as a short noun phrase that MUST include the product noun "
        "(example: \"cycling jersey\", \"hiking boots\", \"dog treats\").\n"
        "3) Produce a retrieval plan:\n"
        "   - required_terms: 2 to 6 terms that should match product titles.\n"
        "   - preferred_terms: 0 to 6 optional terms that help ranking.\n"
        "   - excluded_terms: 0 to 10 terms to down-rank or reject when they distract.\n"
        "   - search_query: a merchant query string (core_item plus 1 to 3 key attributes). Not a sentence.\n"
        "   - broadcast_intent: a short human readable summary.\n"
        "4) Keep missing_fields minimal (0 to 2) using generic fields only, like:\n"
        "   size, colour, brand, style, pet_type, terrain, weather, capacity, weight\n"
        "5) Provide next_question only if needed.\n\n"
        "Output JSON only, with EXACTLY these keys:\n"
        '{"category":"SNEAKERS|OUTDOORS|CYCLING|PET_SUPPLIES|NOT_SPECIFIED","core_item":"string",'
        '"required_terms":["string"],"preferred_terms":["string"],"excluded_terms":["string"],'
        '"search_query":"string","broadcast_intent":"string","missing_fields":["string"],'
        '"next_question":"string|null"}'
    )

def default_question(category: str) -> str:
    # First turn always asks one question; this is the fallback wording per category
    if category in ("SNEAKERS", "CYCLING"):
        return "What size should I use?"
    if category == "OUTDOORS":
        return "Any preference on size, weight, or packability?"
    if category == "PET_SUPPLIES":
        return "What pet is this for, and roughly what size?"
    return (
        "This demo is limited to SNEAKERS, OUTDOORS, CYCLING, and PET SUPPLIES. "
        "Which category should I use?"
    )

FIELD_QUESTIONS = {
    "size": "What size should I use?",
    "colour": "Any colour preference?",
    "color": "Any colour preference?",
    "brand": "Any brand preference?",
    "style": "What style should I target?",
    "pet_type": "What pet is this for?",
    "terrain": "What terrain is this for?",
    "weather": "Any weather conditions to account for?",
    "capacity": "What capacity do you need?",
    "weight": "Any preference on weight or packability?",
}

def question_for_missing_field(field: str, category: str) -> str:
    # cleaned terms lose underscores ("pet type")
    key = (field or "").lower().strip().replace(" ", "_")
    return FIELD_QUESTIONS.get(key) or default_question(category)
