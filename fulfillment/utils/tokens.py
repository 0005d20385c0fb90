# fulfillment/utils/tokens.py
import re
import secrets

# namespace -> (prefix, liczba bajtow losowych)
NAMESPACES = {
    "tracking": ("TSP", 8),
    "confirmation": ("", 32),
    "order": ("ORD", 6),
}

TRACKING_CODE_RE = re.compile(r"^TSP[0-9A-F]{16}$")


class TokenGenerator:
    """
    Jedno zrodlo nieprzewidywalnych identyfikatorow publicznych
    (kody sledzenia, tokeny potwierdzen). Unikalnosc w obrebie namespace
    gwarantuje dodatkowo unique constraint w bazie.
    """

    def generate(self, namespace: str) -> str:
        if namespace not in NAMESPACES:
            raise KeyError(f"Unknown token namespace: {namespace}")
        prefix, nbytes = NAMESPACES[namespace]
        token = secrets.token_hex(nbytes)
        # kody sledzenia wielkimi literami
        return f"{prefix}{token.upper()}" if prefix else token

    def tracking_code(self) -> str:
        return self.generate("tracking")

    def confirmation_token(self) -> str:
        return self.generate("confirmation")

    def order_number(self) -> str:
        return self.generate("order")
