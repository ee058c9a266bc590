"""
Модуль: Entitlement Gate
Описание: Формирование атомарного пакета для ledger (claimable по наличию
кошелька, события начислений), публикация событий после коммита и
ленивая переоценка кошелька в момент claim.
Автор: RevShare Payout Team
"""

from typing import Dict, List, Optional

from config.constants import EntitlementKind
from core.domain import (
    Period, RevenueSnapshot, ScoringResult, PayoutComputation, ReferralComputation,
    Profile, EntitlementEvent, LedgerBatch, ClaimTicket, PayoutRecord, PayoutHistoryPage
)
from core.exceptions import NotFoundError, ValidationError
from core.interfaces import Ledger, ProfileDirectory, EntitlementNotifier
from core.period_resolver import Clock, utc_now
from utils.converters import format_token_amount, to_decimal_string
from utils.logger import get_logger
from utils.validators import has_wallet, validate_transaction_hash

logger = get_logger("EntitlementGate")


class LoggingNotifier(EntitlementNotifier):
    """Нотификатор по умолчанию: только пишет события в лог"""

    def notify(self, events: List[EntitlementEvent]) -> None:
        for event in events:
            logger.info(
                f"📨 Entitlement {event.kind} for {event.user_id}: "
                f"{format_token_amount(event.amount)} (period #{event.period_id})"
            )


class EntitlementGate:
    """Гейт начислений между расчетом и ledger"""

    def __init__(self, ledger: Ledger, profiles: ProfileDirectory,
                 notifier: Optional[EntitlementNotifier] = None,
                 clock: Optional[Clock] = None):
        self.ledger = ledger
        self.profiles = profiles
        self.notifier = notifier or LoggingNotifier()
        self.clock = clock or utc_now

    def build_batch(self, period: Period, snapshot: RevenueSnapshot,
                    scoring: ScoringResult, payouts: PayoutComputation,
                    referrals: ReferralComputation,
                    profiles: Dict[str, Profile]) -> LedgerBatch:
        """
        Собрать пакет для Ledger.commit_period

        claimable = у владельца сейчас есть непустой кошелек. Одно событие на
        получателя выплаты и одно агрегированное событие на реферера.
        """
        counts_by_user = {s.user_id: s.counts for s in scoring.scores}
        events: List[EntitlementEvent] = []
        held = 0

        for payout in payouts.payouts:
            profile = profiles.get(payout.user_id)
            payout.claimable = has_wallet(profile.payout_wallet_address if profile else None)
            if payout.amount <= 0:
                continue
            if not payout.claimable:
                held += 1

            counts = counts_by_user.get(payout.user_id)
            events.append(EntitlementEvent(
                period_id=period.id,
                user_id=payout.user_id,
                kind=EntitlementKind.PAYOUT,
                amount=payout.amount,
                payload={
                    "period_name": period.name,
                    "score": str(payout.score),
                    "chain_share": to_decimal_string(payout.chain_share),
                    "platform_share": to_decimal_string(payout.platform_share),
                    "claimable": payout.claimable,
                    "counts": counts.to_dict() if counts else {},
                }
            ))

        referred_by_referrer: Dict[str, List[dict]] = {}
        for bonus in referrals.bonuses:
            referred_by_referrer.setdefault(bonus.referrer_id, []).append({
                "user_id": bonus.referred_user_id,
                "amount": to_decimal_string(bonus.amount),
            })

        for referrer_id, total in referrals.totals_by_referrer.items():
            events.append(EntitlementEvent(
                period_id=period.id,
                user_id=referrer_id,
                kind=EntitlementKind.REFERRAL_BONUS,
                amount=total,
                payload={
                    "period_name": period.name,
                    "referred_users": referred_by_referrer.get(referrer_id, []),
                }
            ))

        if held:
            logger.info(f"🔒 {held} payout(s) held until a payout wallet is registered")

        return LedgerBatch(
            period=period,
            snapshot=snapshot,
            scores=list(scoring.scores),
            payouts=list(payouts.payouts),
            bonuses=list(referrals.bonuses),
            events=events
        )

    def publish(self, events: List[EntitlementEvent]) -> Optional[str]:
        """
        Передать закоммиченные события нотификатору

        Returns:
            Optional[str]: текст предупреждения, если доставка не удалась
        """
        try:
            self.notifier.notify(events)
        except Exception as e:
            # События уже в outbox, доставку можно повторить
            message = f"Entitlement notification failed, {len(events)} event(s) remain in outbox: {e}"
            logger.error(f"❌ {message}")
            return message
        logger.info(f"📤 Published {len(events)} entitlement event(s)")
        return None

    def claim_payout(self, period_id: int, user_id: str) -> ClaimTicket:
        """
        Запрос на выплату: переоценить кошелек и выдать данные для перевода

        Сумма записи никогда не меняется, меняется только claimable.
        """
        record = self._get_payout(period_id, user_id)
        if record.claimed_at is not None:
            raise ValidationError(f"Payout for user {user_id} in period #{period_id} already claimed",
                                  period_id=period_id)
        if record.amount <= 0:
            raise ValidationError(f"Nothing to claim for user {user_id} in period #{period_id}",
                                  period_id=period_id)

        wallet = self._require_wallet(user_id)
        if not record.claimable:
            record = self.ledger.mark_payout_claimable(period_id, user_id)
            logger.info(f"🔓 Payout of {user_id} in period #{period_id} is now claimable")

        return ClaimTicket(
            user_id=user_id,
            kind=EntitlementKind.PAYOUT,
            amount=record.amount,
            wallet_address=wallet,
            period_id=period_id
        )

    def confirm_payout_claim(self, period_id: int, user_id: str, tx_hash: str) -> PayoutRecord:
        """Зафиксировать выполненный downstream перевод"""
        tx_hash = validate_transaction_hash(tx_hash)
        record = self.ledger.confirm_payout_claim(period_id, user_id, tx_hash, self.clock())
        logger.info(f"✅ Payout claim confirmed for {user_id} in period #{period_id}: {tx_hash}")
        return record

    def claim_referral_balance(self, user_id: str) -> ClaimTicket:
        """Запрос на выплату накопленного реферального баланса"""
        profile = self.profiles.get_profile(user_id)
        if profile is None:
            raise NotFoundError(f"Profile {user_id} not found")
        if profile.pending_referral_bonus <= 0:
            raise ValidationError(f"No pending referral bonus for user {user_id}")
        wallet = self._require_wallet(user_id, profile)
        return ClaimTicket(
            user_id=user_id,
            kind=EntitlementKind.REFERRAL_BONUS,
            amount=profile.pending_referral_bonus,
            wallet_address=wallet
        )

    def confirm_referral_claim(self, user_id: str, amount: int, tx_hash: str) -> int:
        """Списать выплаченный бонус с баланса, вернуть остаток"""
        validate_transaction_hash(tx_hash)
        remaining = self.ledger.settle_referral_balance(user_id, amount)
        logger.info(
            f"✅ Referral balance claim of {format_token_amount(amount)} confirmed for {user_id}, "
            f"remaining {format_token_amount(remaining)}"
        )
        return remaining

    def payout_history(self, user_id: str, limit: int = 10, offset: int = 0) -> PayoutHistoryPage:
        """История выплат пользователя постранично, новые периоды первыми"""
        if not user_id:
            raise ValidationError("User ID is required")
        entries = self.ledger.list_user_payouts(user_id, limit, offset)
        logger.debug(f"📜 Payout history for {user_id}: {len(entries)} entries (offset {offset})")
        return PayoutHistoryPage(entries=entries, limit=limit, offset=offset)

    def _get_payout(self, period_id: int, user_id: str) -> PayoutRecord:
        record = self.ledger.get_payout(period_id, user_id)
        if record is None:
            raise NotFoundError(f"No payout for user {user_id} in period #{period_id}",
                                period_id=period_id)
        return record

    def _require_wallet(self, user_id: str, profile: Optional[Profile] = None) -> str:
        profile = profile or self.profiles.get_profile(user_id)
        wallet = profile.payout_wallet_address if profile else None
        if not has_wallet(wallet):
            raise ValidationError(f"User {user_id} has no payout wallet address")
        return wallet.strip()


__all__ = ['EntitlementGate', 'LoggingNotifier']
