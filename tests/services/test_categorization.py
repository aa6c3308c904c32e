"""
Unit tests for categorization: pure functions, no DB.
"""
import pytest

from fintrack.services.categorization import (
    DEFAULT_CATEGORIZER,
    DEFAULT_MERCHANT_RULES,
    Categorizer,
    MerchantRules,
    normalize_merchant_name,
    normalize_transaction_name,
)


# ── normalize_transaction_name ───────────────────────────────────────────────

class TestNormalizeTransactionName:
    def test_lowercases_and_trims(self):
        assert normalize_transaction_name("  STARBUCKS #123  ") == "starbucks #123"

    def test_strips_leading_affix(self):
        assert normalize_transaction_name("DEBIT Tim Hortons") == "tim hortons"

    def test_strips_trailing_affix(self):
        assert normalize_transaction_name("Hydro One Payment") == "hydro one"

    def test_strips_stacked_affixes(self):
        assert normalize_transaction_name("payment debit hydro transfer") == "hydro"

    def test_collapses_whitespace(self):
        assert normalize_transaction_name("Whole   Foods\tMarket") == "whole foods market"

    def test_keeps_affix_inside_word(self):
        assert normalize_transaction_name("Creditview Dental") == "creditview dental"

    def test_lone_affix_is_kept(self):
        assert normalize_transaction_name("Transfer") == "transfer"

    def test_empty(self):
        assert normalize_transaction_name("") == ""
        assert normalize_transaction_name(None) == ""

    @pytest.mark.parametrize("name", [
        "DEBIT PAYMENT Amazon.ca",
        "credit  Refund  transfer",
        "  Payment  ",
        "Netflix",
    ])
    def test_idempotent(self, name):
        once = normalize_transaction_name(name)
        assert normalize_transaction_name(once) == once

    def test_merchant_name_uses_same_rules(self):
        assert normalize_merchant_name("TRANSFER Costco") == "costco"


# ── Categorizer ──────────────────────────────────────────────────────────────

class TestCategorizer:
    def test_source_category_mapped(self):
        assert DEFAULT_CATEGORIZER.categorize(["Food and Drink"], None) == "food"

    def test_only_first_source_category_used(self):
        assert DEFAULT_CATEGORIZER.categorize(["Travel", "Food and Drink"], None) == "travel"

    def test_unknown_source_category_is_other(self):
        assert DEFAULT_CATEGORIZER.categorize(["Bank Fees"], "Grocery Outlet") == "other"

    def test_keyword_fallback_when_no_categories(self):
        assert DEFAULT_CATEGORIZER.categorize(None, "Shell") == "transportation"
        assert DEFAULT_CATEGORIZER.categorize([], "Shell") == "transportation"

    def test_keyword_match_is_case_insensitive(self):
        assert DEFAULT_CATEGORIZER.categorize(None, "AMAZON MARKETPLACE") == "shopping"

    def test_first_keyword_wins(self):
        # "grocery" precedes "store" in the rule order
        assert DEFAULT_CATEGORIZER.categorize(None, "Grocery Store") == "food"

    def test_no_match_is_other(self):
        assert DEFAULT_CATEGORIZER.categorize(None, "Random Business") == "other"
        assert DEFAULT_CATEGORIZER.categorize(None, None) == "other"

    def test_with_rule_returns_new_snapshot(self):
        extended = DEFAULT_CATEGORIZER.with_rule("Netflix", "entertainment")
        assert extended.categorize(None, "NETFLIX.COM") == "entertainment"
        assert DEFAULT_CATEGORIZER.categorize(None, "NETFLIX.COM") == "other"

    def test_with_rule_repoints_existing_keyword(self):
        changed = DEFAULT_CATEGORIZER.with_rule("gas", "utilities")
        assert changed.categorize(None, "Enbridge Gas") == "utilities"
        assert len(changed.keyword_rules) == len(DEFAULT_CATEGORIZER.keyword_rules)

    def test_without_rule(self):
        reduced = DEFAULT_CATEGORIZER.without_rule("shell")
        assert reduced.categorize(None, "Shell") == "other"
        assert DEFAULT_CATEGORIZER.categorize(None, "Shell") == "transportation"

    def test_custom_category_map(self):
        categorizer = Categorizer(category_map=(("Payroll", "income"),), keyword_rules=())
        assert categorizer.categorize(["Payroll"], None) == "income"
        assert categorizer.categorize(None, "Grocery") == "other"


# ── MerchantRules ────────────────────────────────────────────────────────────

class TestMerchantRules:
    def test_substring_match(self):
        assert DEFAULT_MERCHANT_RULES.categorize("Uber Trip 1234") == "Transportation"

    def test_exact_match_beats_earlier_substring(self):
        assert DEFAULT_MERCHANT_RULES.categorize("gas company") == "Utilities"

    def test_first_substring_match_wins(self):
        # AMAZON PRIME is listed before AMAZON
        assert DEFAULT_MERCHANT_RULES.categorize("Amazon Prime Video") == "Entertainment"

    def test_unmatched_is_uncategorized(self):
        assert DEFAULT_MERCHANT_RULES.categorize("Corner Bakery") == "Uncategorized"
        assert DEFAULT_MERCHANT_RULES.categorize(None) == "Uncategorized"

    def test_with_and_without_rule(self):
        rules = DEFAULT_MERCHANT_RULES.with_rule("corner bakery", "Food & Dining")
        assert rules.categorize("Corner Bakery") == "Food & Dining"
        assert rules.without_rule("CORNER BAKERY").categorize("Corner Bakery") == "Uncategorized"
        assert "CORNER BAKERY" not in DEFAULT_MERCHANT_RULES.as_dict()

    def test_custom_table(self):
        rules = MerchantRules((("PHARMA", "Healthcare"),))
        assert rules.categorize("Pharmaprix") == "Healthcare"
