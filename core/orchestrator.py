"""
Модуль: Payout Orchestrator
Описание: Главный оркестратор расчета выплат за период.
Resolver -> {Scorer, ChainFeeCollector, PlatformFeeAggregator} параллельно ->
Pool Calculator -> Payout Calculator -> Referral Bonus Calculator -> Ledger.
Авторитетный режим прерывается на первой фатальной ошибке и снимает блокировку
периода; диагностический режим выполняет все шаги без блокировки и записи.
Зависимости: asyncio
Автор: RevShare Payout Team
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

from config.constants import PeriodStatus
from config.settings import PayoutSettings, get_settings
from core.domain import (
    ResolvedPeriod, ScoringResult, PlatformFeeResult, PoolBreakdown, PayoutComputation,
    ReferralComputation, RevenueSnapshot, Profile, PayoutRecord, StepResult, PipelineReport
)
from core.entitlement_gate import EntitlementGate
from core.exceptions import PayoutEngineError, ValidationError
from core.fee_collectors import ChainFeeCollector, PlatformFeeAggregator
from core.interaction_scorer import InteractionScorer, EligibilityFilter
from core.interfaces import (
    PeriodStore, ScoreSource, FeeSource, PlatformRevenueSource, ProfileDirectory,
    Ledger, EntitlementNotifier
)
from core.payout_calculator import PayoutCalculator
from core.period_resolver import PeriodResolver, Clock, utc_now
from core.pool_calculator import calculate_pools
from core.referral_calculator import ReferralBonusCalculator
from utils.converters import format_token_amount, format_duration
from utils.logger import get_payout_logger

payout_logger = get_payout_logger("Orchestrator")
logger = payout_logger.get_logger()

AUTHORITATIVE = "authoritative"
DIAGNOSTIC = "diagnostic"


class PayoutOrchestrator:
    """Оркестратор пайплайна выплат"""

    def __init__(self,
                 period_store: PeriodStore,
                 score_source: ScoreSource,
                 fee_source: FeeSource,
                 revenue_source: PlatformRevenueSource,
                 profile_directory: ProfileDirectory,
                 ledger: Ledger,
                 notifier: Optional[EntitlementNotifier] = None,
                 config: Optional[PayoutSettings] = None,
                 clock: Optional[Clock] = None,
                 eligibility_filter: Optional[EligibilityFilter] = None):
        self.config = config or get_settings()
        self.clock = clock or utc_now
        self.ledger = ledger
        self.profile_directory = profile_directory
        self.eligibility_filter = eligibility_filter

        self.resolver = PeriodResolver(period_store, self.clock)
        self.scorer = InteractionScorer(score_source, self.config)
        self.chain_collector = ChainFeeCollector(fee_source, self.config)
        self.platform_aggregator = PlatformFeeAggregator(revenue_source)
        self.payout_calculator = PayoutCalculator(self.config)
        self.referral_calculator = ReferralBonusCalculator(self.config)
        self.gate = EntitlementGate(ledger, profile_directory, notifier, self.clock)

    # ------------------------------------------------------------------
    # Авторитетный запуск
    # ------------------------------------------------------------------

    async def run(self, period_start=None, period_end=None) -> PipelineReport:
        """
        RunPayoutOrchestration: рассчитать и атомарно записать выплаты периода

        Args:
            period_start: Явное начало периода (по умолчанию - текущий период)
            period_end: Явный конец периода

        Returns:
            PipelineReport: отчет по шагам; committed=True только после записи ledger
        """
        report = PipelineReport(mode=AUTHORITATIVE)
        logger.info("🚀 Starting payout orchestration")

        validate = report.add_step(self._execute("validate_period", self._validate, period_start, period_end))
        if not validate.success:
            return self._finish(report)
        resolved: ResolvedPeriod = validate.data
        report.period = resolved.period
        self._add_period_warnings(report, resolved)

        lock = report.add_step(await asyncio.to_thread(
            self._execute, "acquire_period_lock",
            self.ledger.acquire_period_lock, resolved.period.id, self.clock()
        ))
        if not lock.success:
            return self._finish(report)
        previous_status: str = lock.data

        committed = False
        try:
            outputs = await self._compute(report, resolved, fail_fast=True)
            if outputs is None:
                return self._finish(report)

            commit = report.add_step(await asyncio.to_thread(
                self._execute, "commit_ledger", self._commit, resolved, outputs
            ))
            if not commit.success:
                return self._finish(report)
            committed = True
            report.committed = True
        finally:
            if not committed:
                await asyncio.to_thread(self._release_lock, resolved.period.id, previous_status)

        warning = self.gate.publish(commit.data["events"])
        if warning:
            report.warnings.append(warning)
        commit.data = commit.data["batch"]
        return self._finish(report)

    # ------------------------------------------------------------------
    # Диагностический режим
    # ------------------------------------------------------------------

    async def diagnose(self, period_start=None, period_end=None) -> PipelineReport:
        """
        Неразрушающий прогон всех шагов: без блокировки и без записи.
        Ошибки шагов попадают в отчет, следующие шаги получают best-effort входы.
        """
        report = PipelineReport(mode=DIAGNOSTIC)
        logger.info("🔬 Starting diagnostic payout dry run")

        validate = report.add_step(self._execute("validate_period", self._validate, period_start, period_end))
        if not validate.success:
            return self._finish(report)
        resolved: ResolvedPeriod = validate.data
        report.period = resolved.period
        self._add_period_warnings(report, resolved)

        await self._compute(report, resolved, fail_fast=False)
        report.warnings.append("Dry run: ledger not written, period lock not taken")
        return self._finish(report)

    # Отдельные диагностические операции

    def validate_period(self, period_start=None, period_end=None) -> StepResult:
        return self._execute("validate_period", self._validate, period_start, period_end)

    def compute_interaction_scores(self, period_start=None, period_end=None) -> StepResult:
        return self._single_step("compute_interaction_scores", period_start, period_end,
                                 lambda resolved: self.scorer.compute(resolved.period, self.eligibility_filter))

    def fetch_chain_fees(self, period_start=None, period_end=None, wallet: Optional[str] = None) -> StepResult:
        return self._single_step("fetch_chain_fees", period_start, period_end,
                                 lambda resolved: self.chain_collector.collect(
                                     resolved.period, wallet or resolved.creator_wallet_address))

    def compute_platform_fees(self, period_start=None, period_end=None) -> StepResult:
        return self._single_step("compute_platform_fees", period_start, period_end,
                                 lambda resolved: self.platform_aggregator.aggregate(resolved.period))

    def compute_user_payouts(self, period_start=None, period_end=None) -> StepResult:
        return self._diagnostic_step("compute_user_payouts", period_start, period_end)

    def compute_referral_bonuses(self, period_start=None, period_end=None) -> StepResult:
        return self._diagnostic_step("compute_referral_bonuses", period_start, period_end)

    def run_step(self, name: str, period_start=None, period_end=None) -> StepResult:
        """Запустить диагностическую операцию по имени"""
        operations: Dict[str, Callable[..., StepResult]] = {
            "validate_period": self.validate_period,
            "compute_interaction_scores": self.compute_interaction_scores,
            "fetch_chain_fees": self.fetch_chain_fees,
            "compute_platform_fees": self.compute_platform_fees,
            "compute_user_payouts": self.compute_user_payouts,
            "compute_referral_bonuses": self.compute_referral_bonuses,
        }
        if name not in operations:
            raise ValueError(f"Unknown diagnostic step: {name}")
        return operations[name](period_start, period_end)

    # ------------------------------------------------------------------
    # Общая часть пайплайна
    # ------------------------------------------------------------------

    async def _compute(self, report: PipelineReport, resolved: ResolvedPeriod,
                       fail_fast: bool) -> Optional[Dict[str, Any]]:
        period = resolved.period
        execute = self._execute if fail_fast else self._execute_captured

        scoring_step, chain_step, platform_step = await asyncio.gather(
            asyncio.to_thread(execute, "compute_interaction_scores",
                              self.scorer.compute, period, self.eligibility_filter),
            asyncio.to_thread(execute, "fetch_chain_fees",
                              self.chain_collector.collect, period, resolved.creator_wallet_address),
            asyncio.to_thread(execute, "compute_platform_fees",
                              self.platform_aggregator.aggregate, period),
        )
        for step in (scoring_step, chain_step, platform_step):
            report.add_step(step)
            if step.success:
                report.warnings.extend(getattr(step.data, "warnings", []))
        if fail_fast and report.failed_steps:
            return None

        scoring = scoring_step.data if scoring_step.success else ScoringResult()
        chain = chain_step.data if chain_step.success else None
        platform = platform_step.data if platform_step.success else PlatformFeeResult()
        chain_fees = chain.total_fees if chain else 0

        pool_step = report.add_step(execute("calculate_pools", calculate_pools,
                                             chain_fees, platform.total, config=self.config))
        if not pool_step.success:
            if fail_fast:
                return None
            pools = calculate_pools(0, 0, config=self.config)
        else:
            pools = pool_step.data
            payout_logger.log_pool_summary(
                period.name,
                format_token_amount(pools.chain_pool),
                format_token_amount(pools.platform_pool),
                format_token_amount(pools.total_pool)
            )

        payout_step = report.add_step(execute("compute_user_payouts",
                                               self.payout_calculator.compute, pools, scoring))
        if not payout_step.success and fail_fast:
            return None
        payouts = payout_step.data if payout_step.success else PayoutComputation(total_pool=pools.total_pool)
        if payout_step.success:
            report.warnings.extend(payouts.warnings)

        profiles: Dict[str, Profile] = {}
        referral_step = report.add_step(execute("compute_referral_bonuses",
                                                 self._compute_referrals, payouts.payouts, profiles))
        if not referral_step.success and fail_fast:
            return None
        referrals = referral_step.data if referral_step.success else ReferralComputation()
        if referral_step.success:
            report.warnings.extend(referrals.warnings)

        return {
            "scoring": scoring,
            "chain": chain,
            "platform": platform,
            "pools": pools,
            "payouts": payouts,
            "referrals": referrals,
            "profiles": profiles,
        }

    def _validate(self, period_start, period_end) -> ResolvedPeriod:
        resolved = self.resolver.resolve(period_start, period_end)
        if resolved.period.is_future:
            raise ValidationError(
                f"Period {resolved.period.name} has not started yet, cannot process future periods",
                period_id=resolved.period.id
            )
        return resolved

    def _compute_referrals(self, payouts: List[PayoutRecord],
                           profiles: Dict[str, Profile]) -> ReferralComputation:
        profiles.update(self.profile_directory.get_profiles([p.user_id for p in payouts]))
        referrer_ids = {p.referred_by for p in profiles.values() if p.referred_by}
        missing = [r for r in sorted(referrer_ids) if r not in profiles]
        if missing:
            profiles.update(self.profile_directory.get_profiles(missing))
        return self.referral_calculator.compute(payouts, profiles)

    def _commit(self, resolved: ResolvedPeriod, outputs: Dict[str, Any]) -> Dict[str, Any]:
        period = resolved.period
        pools: PoolBreakdown = outputs["pools"]
        payouts: PayoutComputation = outputs["payouts"]
        platform: PlatformFeeResult = outputs["platform"]
        chain = outputs["chain"]

        snapshot = RevenueSnapshot(
            period_id=period.id,
            creator_wallet_address=chain.wallet if chain else resolved.creator_wallet_address,
            status=PeriodStatus.CALCULATED,
            chain_fees=pools.chain_fees,
            platform_fees=pools.platform_fees,
            platform_breakdown=dict(platform.breakdown),
            chain_pool=pools.chain_pool,
            platform_pool=pools.platform_pool,
            total_pool=pools.total_pool,
            unassigned_sink=payouts.unassigned_sink,
            unassigned_amount=payouts.unassigned_amount,
        )
        batch = self.gate.build_batch(
            period, snapshot, outputs["scoring"], payouts, outputs["referrals"], outputs["profiles"]
        )
        events = self.ledger.commit_period(batch)
        return {"batch": batch, "events": events}

    def _release_lock(self, period_id: int, previous_status: str) -> None:
        try:
            self.ledger.release_period_lock(period_id, previous_status)
        except PayoutEngineError as e:
            payout_logger.log_error_with_context(e, {"period_id": period_id, "restore_status": previous_status})
            return
        logger.info(f"🔓 Period #{period_id} lock released, status restored to {previous_status}")

    def _single_step(self, name: str, period_start, period_end,
                     operation: Callable[[ResolvedPeriod], Any]) -> StepResult:
        validate = self.validate_period(period_start, period_end)
        if not validate.success:
            return StepResult.err(name, validate.error)
        return self._execute_captured(name, operation, validate.data)

    def _diagnostic_step(self, name: str, period_start, period_end) -> StepResult:
        report = asyncio.run(self.diagnose(period_start, period_end))
        step = report.get_step(name)
        if step is None:
            # Пайплайн остановился на валидации периода
            return StepResult.err(name, report.step_results[0].error)
        return step

    def _execute(self, name: str, func: Callable, *args, **kwargs) -> StepResult:
        """Выполнить шаг, доменные ошибки превращаются в StepResult.err"""
        started = time.time()
        try:
            data = func(*args, **kwargs)
        except PayoutEngineError as e:
            duration = time.time() - started
            payout_logger.log_error_with_context(e, {"step": name, "kind": e.kind})
            payout_logger.log_checkpoint(name, "FAILED", {"error": str(e), "duration": format_duration(duration)})
            return StepResult.err(name, e, duration)
        duration = time.time() - started
        payout_logger.log_checkpoint(name, "SUCCESS", {"duration": format_duration(duration)})
        return StepResult.ok(name, data, duration)

    def _execute_captured(self, name: str, func: Callable, *args, **kwargs) -> StepResult:
        """Диагностический вариант _execute: любая ошибка источника попадает в отчет"""
        started = time.time()
        try:
            return self._execute(name, func, *args, **kwargs)
        except Exception as e:
            duration = time.time() - started
            logger.exception(f"💥 Unexpected error in step {name}: {type(e).__name__}: {e}")
            payout_logger.log_checkpoint(name, "FAILED", {"error": str(e), "duration": format_duration(duration)})
            return StepResult.err(name, e, duration)

    def _add_period_warnings(self, report: PipelineReport, resolved: ResolvedPeriod) -> None:
        if resolved.period.is_current:
            message = f"Period {resolved.period.name} has not ended yet, results are provisional"
            logger.warning(f"⚠️ {message}")
            report.warnings.append(message)

    def _finish(self, report: PipelineReport) -> PipelineReport:
        status = "SUCCESS" if report.success else "FAILED"
        payout_logger.log_checkpoint(f"{report.mode} run", status, {
            "period": report.period.name if report.period else None,
            "committed": report.committed,
            "steps": len(report.step_results),
            "warnings": len(report.warnings),
            "errors": len(report.errors),
        })
        return report


def run_payout_orchestration(orchestrator: PayoutOrchestrator,
                             period_start=None, period_end=None,
                             dry_run: bool = False) -> PipelineReport:
    """Синхронная обертка для CLI и планировщика"""
    if dry_run:
        return asyncio.run(orchestrator.diagnose(period_start, period_end))
    return asyncio.run(orchestrator.run(period_start, period_end))
