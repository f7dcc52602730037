"""Money helpers - amounts are stored as floats rounded to cents"""

CENT_TOLERANCE = 0.005


def round_money(value) -> float:
    return round(float(value or 0), 2)


def amounts_differ(a, b) -> bool:
    return abs(round_money(a) - round_money(b)) >= CENT_TOLERANCE
