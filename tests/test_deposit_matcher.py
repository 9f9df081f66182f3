"""
Unit tests for the deposit-bonus matcher

© 2026 Finans Kontrol Ekibi
"""
import pytest
from datetime import datetime
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from matching.deposit_matcher import DepositBonusMatcher, find_deposit_for_bonus
from rules.special_logic import SpecialBonusLogic
from storage.record_store import RecordStore
from validation.models import Bonus, Deposit


def deposit(id_, day, customer="C1", amount=1000.0, hour=0):
    return Deposit(id=id_, customer_id=customer, amount=amount, deposit_date=datetime(2025, 1, day, hour))


def bonus(id_, day, name="VIP 5x", customer="C1", amount=200.0, hour=0):
    return Bonus(
        id=id_, customer_id=customer, bonus_name=name, amount=amount,
        acceptance_date=datetime(2025, 1, day, hour),
    )


class TestFindDepositForBonus:
    """Test suite for picking the funding deposit"""

    def test_latest_deposit_before_bonus(self):
        deposits = [deposit("d1", 1), deposit("d2", 3), deposit("d3", 6)]
        assert find_deposit_for_bonus(bonus("b1", 5), deposits).id == "d2"

    def test_same_time_is_not_before(self):
        deposits = [deposit("d1", 5)]
        assert find_deposit_for_bonus(bonus("b1", 5), deposits) is None

    def test_other_customers_ignored(self):
        deposits = [deposit("d1", 1, customer="C2")]
        assert find_deposit_for_bonus(bonus("b1", 5), deposits) is None

    def test_after_timing_picks_earliest_following(self):
        deposits = [deposit("d1", 1), deposit("d2", 7), deposit("d3", 9)]
        assert find_deposit_for_bonus(bonus("b1", 5), deposits, timing="after").id == "d2"

    def test_created_date_takes_precedence(self):
        b = bonus("b1", 5).model_copy(update={"created_date": datetime(2025, 1, 2)})
        deposits = [deposit("d1", 1), deposit("d2", 3)]
        assert find_deposit_for_bonus(b, deposits).id == "d1"

    def test_equal_dates_keep_first(self):
        deposits = [deposit("d1", 1, amount=100), deposit("d2", 1, amount=200)]
        assert find_deposit_for_bonus(bonus("b1", 5), deposits).id == "d1"


class TestDepositBonusMatcher:
    """Test suite for store-level matching"""

    def make_store(self):
        store = RecordStore()
        store.add_records("deposits", [deposit("d1", 1), deposit("d2", 8), deposit("d3", 2, customer="C2")])
        store.add_records("bonuses", [
            bonus("b1", 2),
            bonus("b2", 5, name="Tg ve Mobil app 500 DENEME Bonusu"),
            bonus("b3", 1, customer="C2"),
        ])
        return store

    def test_match_all_links_bonuses(self):
        store = self.make_store()
        matcher = DepositBonusMatcher(store)
        assert matcher.match_all() == 2
        assert store.get_bonus("b1").deposit_id == "d1"
        assert store.get_bonus("b2").deposit_id == "d1"
        assert store.get_bonus("b3").deposit_id is None

    def test_after_timing_special_bonus(self):
        store = self.make_store()
        logics = [SpecialBonusLogic(name="DENEME Bonusu", deposit_timing="after")]
        DepositBonusMatcher(store, logics).match_all()
        assert store.get_bonus("b1").deposit_id == "d1"
        assert store.get_bonus("b2").deposit_id == "d2"

    def test_matching_is_one_shot(self):
        store = self.make_store()
        matcher = DepositBonusMatcher(store)
        matcher.match_all()
        first = {b.id: b.deposit_id for b in store.bonuses()}

        # A newer deposit must not move existing links
        store.add_records("deposits", [deposit("d9", 1, hour=12)])
        assert matcher.match_all() == 0
        assert {b.id: b.deposit_id for b in store.bonuses()} == first

    def test_custom_matching_strategy(self):
        store = self.make_store()

        def largest(b, deposits):
            return max(deposits, key=lambda d: d.amount) if deposits else None

        store.add_records("deposits", [deposit("big", 20, amount=9000)])
        logics = [SpecialBonusLogic(name="VIP", matching_strategy=largest)]
        DepositBonusMatcher(store, logics).match_all()
        assert store.get_bonus("b1").deposit_id == "big"

    def test_strategy_returning_other_customer_rejected(self):
        store = self.make_store()
        foreign = store.get_deposit("d3")
        logics = [SpecialBonusLogic(name="VIP", matching_strategy=lambda b, ds: foreign)]
        DepositBonusMatcher(store, logics).match_all()
        assert store.get_bonus("b1").deposit_id is None

    def test_no_deposits(self):
        store = RecordStore()
        store.add_records("bonuses", [bonus("b1", 2)])
        assert DepositBonusMatcher(store).match_all() == 0
