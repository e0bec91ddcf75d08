import hashlib


def color_of(public_id: str) -> str:
    """public_id로부터 항상 같은 "#RRGGBB" 색상을 만듭니다. (R=bit 0-7, G=bit 8-15, B=bit 16-23)"""
    digest = hashlib.sha256(public_id.encode("utf-8")).digest()
    value = int.from_bytes(digest[:8], "little")
    red = value & 0xFF
    green = (value >> 8) & 0xFF
    blue = (value >> 16) & 0xFF
    return f"#{red:02X}{green:02X}{blue:02X}"
