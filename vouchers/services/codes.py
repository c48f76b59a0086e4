from __future__ import annotations

import re
import secrets
import string

ALPHABET = string.ascii_uppercase + string.digits  # 36 símbolos


class CodeGenerator:
    """
    Genera códigos PREFIJO-XXXX-XXXX-XXXX-XXXX.

    No garantiza unicidad por sí mismo: el servicio de ciclo de vida
    comprueba contra el store y reintenta (presupuesto acotado).
    """

    def __init__(self, prefix: str = "BABSY", segments: int = 4, segment_length: int = 4, separator: str = "-"):
        if segments < 1 or segment_length < 1:
            raise ValueError("segments and segment_length must be >= 1")
        self.prefix = prefix.strip().upper()
        self.segments = segments
        self.segment_length = segment_length
        self.separator = separator
        seg = f"[A-Z0-9]{{{segment_length}}}"
        sep = re.escape(separator)
        self._pattern = re.compile(
            "^" + re.escape(self.prefix) + (sep + seg) * segments + "$"
        )

    @property
    def space_size(self) -> int:
        return len(ALPHABET) ** (self.segments * self.segment_length)

    def generate(self) -> str:
        parts = [
            "".join(secrets.choice(ALPHABET) for _ in range(self.segment_length))
            for _ in range(self.segments)
        ]
        return self.separator.join([self.prefix, *parts])

    def normalize(self, code: str) -> str:
        return (code or "").strip().upper()

    def matches(self, code: str) -> bool:
        return bool(self._pattern.match(code or ""))
