def format_receipt_number(institution_code: str, year: int, sequence: int, width: int = 6) -> str:
    """GVS + 2026 + 42 -> GVS2026-000042."""
    if sequence < 1:
        raise ValueError("Receipt sequence starts at 1")
    return f"{institution_code.strip()}{year}-{str(sequence).zfill(width)}"
