"""
Transaction name normalization and category assignment.

Two rule tables live here, both as immutable snapshots that are handed to
whoever categorizes:

  Categorizer    – used by the sync pipeline: aggregator category list first,
                   then a short keyword fallback on the merchant/name.
  MerchantRules  – used for manually entered transactions: a long
                   PATTERN → Category table matched against the merchant.

"Editing" a table returns a new snapshot, so a worker categorizing a batch never
sees a half-applied change.
"""
import re
from dataclasses import dataclass, field


# ─── Name normalization ──────────────────────────────────────────────────────

_AFFIX_WORDS = r"(?:debit|credit|payment|transfer)"
_LEADING_AFFIX = re.compile(rf"^{_AFFIX_WORDS}\s+", re.IGNORECASE)
_TRAILING_AFFIX = re.compile(rf"\s+{_AFFIX_WORDS}$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def normalize_transaction_name(name: str | None) -> str:
    """Lowercase, drop a leading/trailing debit|credit|payment|transfer token, trim.

    Stripping repeats until nothing changes, so the result is a fixed point:
    "payment debit hydro" and "hydro" normalize to the same string.
    """
    if not name:
        return ""
    value = _WHITESPACE.sub(" ", name.lower()).strip()
    while True:
        stripped = _TRAILING_AFFIX.sub("", _LEADING_AFFIX.sub("", value)).strip()
        if stripped == value:
            return value
        value = stripped


def normalize_merchant_name(merchant: str | None) -> str:
    return normalize_transaction_name(merchant)


# ─── Sync categorizer ────────────────────────────────────────────────────────

# Aggregator primary category → our category
SOURCE_CATEGORY_MAP: tuple[tuple[str, str], ...] = (
    ("Food and Drink", "food"),
    ("Transportation", "transportation"),
    ("Shops", "shopping"),
    ("Entertainment", "entertainment"),
    ("Healthcare", "healthcare"),
    ("Travel", "travel"),
    ("Financial", "financial"),
    ("Recreation", "recreation"),
    ("Service", "services"),
    ("Tax", "taxes"),
)

# Order matters: first substring hit wins
KEYWORD_RULES: tuple[tuple[str, str], ...] = (
    ("grocery", "food"),
    ("food", "food"),
    ("gas", "transportation"),
    ("fuel", "transportation"),
    ("shell", "transportation"),
    ("amazon", "shopping"),
    ("store", "shopping"),
)

FALLBACK_CATEGORY = "other"


@dataclass(frozen=True)
class Categorizer:
    category_map: tuple[tuple[str, str], ...] = SOURCE_CATEGORY_MAP
    keyword_rules: tuple[tuple[str, str], ...] = KEYWORD_RULES
    _lookup: dict[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_lookup", dict(self.category_map))

    def categorize(self, source_categories: list[str] | None, merchant: str | None) -> str:
        if source_categories:
            return self._lookup.get(source_categories[0], FALLBACK_CATEGORY)

        haystack = (merchant or "").lower()
        for keyword, category in self.keyword_rules:
            if keyword.lower() in haystack:
                return category
        return FALLBACK_CATEGORY

    def with_rule(self, keyword: str, category: str) -> "Categorizer":
        """Return a snapshot with `keyword` appended (or re-pointed in place)."""
        keyword = keyword.lower()
        if any(k == keyword for k, _ in self.keyword_rules):
            rules = tuple((k, category if k == keyword else c) for k, c in self.keyword_rules)
        else:
            rules = self.keyword_rules + ((keyword, category),)
        return Categorizer(self.category_map, rules)

    def without_rule(self, keyword: str) -> "Categorizer":
        keyword = keyword.lower()
        return Categorizer(
            self.category_map,
            tuple((k, c) for k, c in self.keyword_rules if k != keyword),
        )


DEFAULT_CATEGORIZER = Categorizer()


# ─── Merchant rules (manual transactions) ────────────────────────────────────

MERCHANT_RULES: tuple[tuple[str, str], ...] = (
    # Transportation
    ("UBER", "Transportation"),
    ("LYFT", "Transportation"),
    ("TAXI", "Transportation"),
    ("GAS", "Transportation"),
    ("SHELL", "Transportation"),
    ("ESSO", "Transportation"),
    ("PETRO", "Transportation"),
    ("PARKING", "Transportation"),
    ("TTC", "Transportation"),
    ("GO TRANSIT", "Transportation"),
    ("VIA RAIL", "Transportation"),
    ("AIR CANADA", "Transportation"),
    ("WESTJET", "Transportation"),
    # Groceries
    ("SHOPPERS", "Groceries"),
    ("LOBLAWS", "Groceries"),
    ("METRO", "Groceries"),
    ("SOBEYS", "Groceries"),
    ("FRESHCO", "Groceries"),
    ("NO FRILLS", "Groceries"),
    ("SUPERSTORE", "Groceries"),
    ("COSTCO", "Groceries"),
    ("WALMART", "Groceries"),
    ("WHOLE FOODS", "Groceries"),
    ("FOOD BASICS", "Groceries"),
    ("FARM BOY", "Groceries"),
    # Entertainment
    ("NETFLIX", "Entertainment"),
    ("SPOTIFY", "Entertainment"),
    ("APPLE MUSIC", "Entertainment"),
    ("DISNEY", "Entertainment"),
    ("AMAZON PRIME", "Entertainment"),
    ("STEAM", "Entertainment"),
    ("PLAYSTATION", "Entertainment"),
    ("XBOX", "Entertainment"),
    ("NINTENDO", "Entertainment"),
    ("CINEPLEX", "Entertainment"),
    ("THEATRE", "Entertainment"),
    ("CONCERT", "Entertainment"),
    # Shopping
    ("AMAZON", "Shopping"),
    ("EBAY", "Shopping"),
    ("BEST BUY", "Shopping"),
    ("CANADIAN TIRE", "Shopping"),
    ("HOMEDEPOT", "Shopping"),
    ("IKEA", "Shopping"),
    ("APPLE STORE", "Shopping"),
    # Food & Dining
    ("MCDONALDS", "Food & Dining"),
    ("TIM HORTONS", "Food & Dining"),
    ("STARBUCKS", "Food & Dining"),
    ("SUBWAY", "Food & Dining"),
    ("PIZZA PIZZA", "Food & Dining"),
    ("DOMINOS", "Food & Dining"),
    ("KFC", "Food & Dining"),
    ("BURGER KING", "Food & Dining"),
    ("WENDYS", "Food & Dining"),
    # Healthcare
    ("PHARMACY", "Healthcare"),
    ("DOCTOR", "Healthcare"),
    ("DENTIST", "Healthcare"),
    ("HOSPITAL", "Healthcare"),
    ("CLINIC", "Healthcare"),
    ("MEDICAL", "Healthcare"),
    ("OPTICAL", "Healthcare"),
    # Utilities
    ("HYDRO", "Utilities"),
    ("ELECTRIC", "Utilities"),
    ("GAS COMPANY", "Utilities"),
    ("WATER", "Utilities"),
    ("INTERNET", "Utilities"),
    ("ROGERS", "Utilities"),
    ("BELL", "Utilities"),
    ("TELUS", "Utilities"),
    # Financial
    ("ATM", "Financial"),
    ("CREDIT CARD", "Financial"),
    ("LOAN", "Financial"),
    ("MORTGAGE", "Financial"),
    ("INSURANCE", "Financial"),
    ("PAYMENT", "Financial"),
    ("TRANSFER", "Financial"),
    # Education
    ("UNIVERSITY", "Education"),
    ("COLLEGE", "Education"),
    ("TUITION", "Education"),
    ("BOOKSTORE", "Education"),
    # Travel
    ("HOTEL", "Travel"),
    ("AIRBNB", "Travel"),
    ("EXPEDIA", "Travel"),
    ("CAR RENTAL", "Travel"),
    ("HERTZ", "Travel"),
    ("AVIS", "Travel"),
    # Government / shipping
    ("GOVERNMENT", "Government"),
    ("SERVICE CANADA", "Government"),
    ("CANADA POST", "Government"),
    ("FEDEX", "Government"),
)

UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class MerchantRules:
    rules: tuple[tuple[str, str], ...] = MERCHANT_RULES

    def categorize(self, merchant: str | None) -> str:
        if not merchant:
            return UNCATEGORIZED
        normalized = merchant.upper().strip()

        # Exact match beats an earlier substring hit ("GAS COMPANY" vs "GAS")
        for pattern, category in self.rules:
            if pattern == normalized:
                return category
        for pattern, category in self.rules:
            if pattern in normalized:
                return category
        return UNCATEGORIZED

    def with_rule(self, pattern: str, category: str) -> "MerchantRules":
        pattern = pattern.upper()
        if any(p == pattern for p, _ in self.rules):
            return MerchantRules(tuple((p, category if p == pattern else c) for p, c in self.rules))
        return MerchantRules(self.rules + ((pattern, category),))

    def without_rule(self, pattern: str) -> "MerchantRules":
        pattern = pattern.upper()
        return MerchantRules(tuple((p, c) for p, c in self.rules if p != pattern))

    def as_dict(self) -> dict[str, str]:
        return dict(self.rules)


DEFAULT_MERCHANT_RULES = MerchantRules()
