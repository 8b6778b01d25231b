"""Integer arithmetic for money and odds.

All stakes, payouts and balances are int cents. Odds are int basis points of
the decimal multiplier (ODDS_SCALE = 10000, so 1.80 -> 18000). No float,
no Decimal.
"""

from collections.abc import Iterable

from config.settings import settings

ODDS_SCALE = 10_000
MIN_ODDS_BPS = ODDS_SCALE  # decimal odds 1.0


def is_valid_odds(odds_bps: int) -> bool:
    return odds_bps >= MIN_ODDS_BPS


def combine_odds(odds: Iterable[int]) -> int:
    """Multiply leg odds into one multi-bet price, rounding down once at the end.

    combined = floor(prod(odds_i) / SCALE^(n-1))
    """
    legs = list(odds)
    if not legs:
        raise ValueError("combine_odds needs at least one leg")
    product = 1
    for o in legs:
        product *= o
    return product // ODDS_SCALE ** (len(legs) - 1)


def calculate_payout(stake: int, odds_bps: int) -> int:
    """Potential winnings for a stake at the given odds (floor, house never overpays)."""
    return stake * odds_bps // ODDS_SCALE


def cents_to_display(cents: int, currency: str | None = None) -> str:
    """Convert cents to display string: 108000 -> 'KES 1,080.00', -1200 -> '-KES 12.00'."""
    code = currency or settings.CURRENCY
    if cents < 0:
        abs_cents = -cents
        return f"-{code} {abs_cents // 100:,}.{abs_cents % 100:02d}"
    return f"{code} {cents // 100:,}.{cents % 100:02d}"


def odds_to_display(odds_bps: int) -> str:
    """18000 -> '1.80'; extra precision is kept when present (18250 -> '1.825')."""
    whole, frac = divmod(odds_bps, ODDS_SCALE)
    frac_str = f"{frac:04d}".rstrip("0")
    if len(frac_str) < 2:
        frac_str = frac_str.ljust(2, "0")
    return f"{whole}.{frac_str}"


def cents_to_major(cents: int) -> str:
    """Gateway wire format: 10050 -> '100.50'."""
    sign = "-" if cents < 0 else ""
    abs_cents = abs(cents)
    return f"{sign}{abs_cents // 100}.{abs_cents % 100:02d}"


def major_to_cents(value: str | int | float) -> int:
    """Parse a gateway amount ('100.5', 100, 100.0) into cents without float math.

    Raises ValueError for anything that is not a plain decimal with at most
    two fractional digits.
    """
    raw = str(value).strip()
    negative = raw.startswith("-")
    whole, _, frac = raw.lstrip("+-").partition(".")
    frac = frac.rstrip("0") if len(frac) > 2 else frac
    if not whole.isdigit() or (frac and not frac.isdigit()) or len(frac) > 2:
        raise ValueError(f"Not a money amount: {value!r}")
    cents = int(whole) * 100 + int(frac.ljust(2, "0") or "0")
    return -cents if negative else cents
