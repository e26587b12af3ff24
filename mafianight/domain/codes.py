# mafianight/domain/codes.py
from __future__ import annotations

import random

CODE_MIN = 100000
CODE_MAX = 999999
MAX_CODE_ATTEMPTS = 5


def generate_code(rng: random.Random | None = None) -> str:
    """Uniform six-digit session code."""
    rng = rng or random.SystemRandom()
    return str(rng.randint(CODE_MIN, CODE_MAX))


def is_valid_code(code: str) -> bool:
    return len(code) == 6 and code.isdigit() and code[0] != "0"
