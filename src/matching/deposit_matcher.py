"""Deposit-Bonus Matcher.

Links every unlinked bonus to the deposit that funded it:
    - default: the latest deposit strictly before the bonus date
    - "after" bonuses (trial bonuses): the earliest deposit strictly after it
Bonuses that already have a deposit_id are never revisited.
"""

import logging
from collections import defaultdict
from typing import Optional, Sequence

from rules.resolver import MatchPolicy
from rules.special_logic import SpecialBonusLogic, find_special_logic
from storage.record_store import RecordStore
from validation.models import Bonus, Deposit

logger = logging.getLogger(__name__)


def find_deposit_for_bonus(
    bonus: Bonus,
    deposits: Sequence[Deposit],
    timing: str = "before",
) -> Optional[Deposit]:
    """Closest deposit of the same customer on the required side of the bonus date.

    Args:
        bonus: Bonus to match.
        deposits: Candidate deposits ordered by date (any customer).
        timing: "before" picks the latest deposit before the bonus,
            "after" the earliest deposit after it.

    Returns:
        Matching deposit, or None.
    """
    bonus_date = bonus.effective_date
    best = None

    for deposit in deposits:
        if deposit.customer_id != bonus.customer_id:
            continue

        if timing == "after":
            if deposit.deposit_date > bonus_date:
                if best is None or deposit.deposit_date < best.deposit_date:
                    best = deposit
        else:
            if deposit.deposit_date < bonus_date:
                if best is None or deposit.deposit_date > best.deposit_date:
                    best = deposit

    return best


class DepositBonusMatcher:
    """Writes bonus -> deposit links into the record store."""

    def __init__(
        self,
        store: RecordStore,
        special_logics: Sequence[SpecialBonusLogic] = (),
        match_policy: MatchPolicy = "longest",
    ):
        self.store = store
        self.special_logics = list(special_logics)
        self.match_policy = match_policy

    def match_bonus(self, bonus: Bonus, deposits: Sequence[Deposit]) -> Optional[Deposit]:
        """Deposit for a single bonus, honouring its special logic."""
        logic = find_special_logic(bonus.bonus_name, self.special_logics, self.match_policy)

        if logic is not None and logic.matching_strategy is not None:
            deposit = logic.matching_strategy(bonus, deposits)
            if deposit is not None and deposit.customer_id != bonus.customer_id:
                logger.warning("Özel eşleştirme farklı müşteriye ait yatırım döndü: %s", deposit.id)
                return None
            return deposit

        timing = logic.deposit_timing if logic is not None else "before"
        return find_deposit_for_bonus(bonus, deposits, timing)

    def match_all(self) -> int:
        """Link all unlinked bonuses. Returns the number of links written."""
        bonuses = self.store.bonuses(unlinked_only=True)
        if not bonuses:
            return 0

        deposits = self.store.deposits()
        if not deposits:
            logger.info("Yatırım kaydı yok, %d bonus eşleştirilemedi", len(bonuses))
            return 0

        by_customer: dict[str, list[Deposit]] = defaultdict(list)
        for deposit in deposits:
            by_customer[deposit.customer_id].append(deposit)

        linked = 0
        for bonus in bonuses:
            deposit = self.match_bonus(bonus, by_customer.get(bonus.customer_id, []))
            if deposit is None:
                logger.debug("Bonus %s (%s) için yatırım bulunamadı", bonus.id, bonus.bonus_name)
                continue

            self.store.update_bonus_deposit(bonus.id, deposit.id)
            linked += 1
            logger.debug("Bonus %s -> Yatırım %s", bonus.id, deposit.id)

        logger.info("Bonus-yatırım eşleştirme: %d/%d bonus eşleşti", linked, len(bonuses))
        return linked
