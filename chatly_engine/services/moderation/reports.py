"""
User reports and the ban decisions derived from them.

Storage layout:
    reports/<reporter>_<reported>_<YYYYMMDD>   one document per accepted report
    report_index/<reported_user_id>            {"reports": [entry, ...]}

A reporter may report the same user at most once per UTC calendar day. The
duplicate check and the write run under one lock so two concurrent attempts
cannot both pass the check. The check reads the index fresh from the store, and
the report document is written create-only, so a writer sharing the store with
another engine instance cannot overwrite an accepted report.
"""

import asyncio
from datetime import date, datetime, timedelta

from chatly_engine.config import BanThresholds
from chatly_engine.errors import ConflictError, DuplicateReportError, InputValidationError
from chatly_engine.infrastructure.observability.logging import get_logger
from chatly_engine.infrastructure.providers import Clock, SystemClock
from chatly_engine.infrastructure.store.protocol import WriteOp
from chatly_engine.models.scoring import BanDecision, ReportRecord
from chatly_engine.services.gateway.cache_gateway import CacheGateway, document_key

from .ban_escalation import decide_ban

logger = get_logger(__name__)

REPORTS = "reports"
REPORT_INDEX = "report_index"


def report_id(reporter_id: str, reported_user_id: str, day_bucket: date) -> str:
    return f"{reporter_id}_{reported_user_id}_{day_bucket.strftime('%Y%m%d')}"


class ReportLedger:
    def __init__(
        self,
        gateway: CacheGateway,
        clock: Clock | None = None,
        thresholds: BanThresholds | None = None,
    ):
        self._gateway = gateway
        self._clock = clock or SystemClock()
        self._thresholds = thresholds or BanThresholds()
        self._lock = asyncio.Lock()

    async def record_report(
        self,
        reporter_id: str,
        reported_user_id: str,
        reason: str = "",
        message_id: str | None = None,
    ) -> ReportRecord:
        """
        Accept a report, or reject it if this reporter already reported the
        user today.

        Raises:
            InputValidationError: self-report
            DuplicateReportError: same reporter, target and day
        """
        if reporter_id == reported_user_id:
            raise InputValidationError("Users cannot report themselves")

        async with self._lock:
            now = self._clock.now()
            day_bucket = now.date()

            self._gateway.invalidate(document_key(REPORT_INDEX, reported_user_id))
            entries = await self._entries(reported_user_id)
            for entry in entries:
                if entry["reporter_id"] == reporter_id and entry["day"] == day_bucket.isoformat():
                    raise self._duplicate(reporter_id, reported_user_id, day_bucket)

            record = ReportRecord(
                reporter_id=reporter_id,
                reported_user_id=reported_user_id,
                day_bucket=day_bucket,
                reported_at=now,
                reason=reason,
                message_id=message_id,
            )
            entry = {
                "reporter_id": reporter_id,
                "day": day_bucket.isoformat(),
                "reported_at": now.isoformat(),
            }
            try:
                await self._gateway.write(
                    [
                        WriteOp(
                            "create",
                            REPORTS,
                            report_id(reporter_id, reported_user_id, day_bucket),
                            {
                                **entry,
                                "reported_user_id": reported_user_id,
                                "reason": reason,
                                "message_id": message_id,
                            },
                        ),
                        WriteOp(
                            "append",
                            REPORT_INDEX,
                            reported_user_id,
                            {"values": [entry]},
                            target_field="reports",
                        ),
                    ],
                    operation="record report",
                )
            except ConflictError as e:
                raise self._duplicate(reporter_id, reported_user_id, day_bucket) from e

        logger.info(
            "User report recorded",
            reporter_id=reporter_id,
            reported_user_id=reported_user_id,
            day=day_bucket.isoformat(),
        )
        return record

    async def count_reports(self, user_id: str) -> tuple[int, int]:
        """Reports received in the last 24 hours and the last 30 days."""
        now = self._clock.now()
        day_ago = now - timedelta(hours=24)
        month_ago = now - timedelta(days=30)

        last_24h = 0
        last_30d = 0
        for entry in await self._entries(user_id):
            reported_at = datetime.fromisoformat(entry["reported_at"])
            if reported_at > now:
                continue
            if reported_at > month_ago:
                last_30d += 1
            if reported_at > day_ago:
                last_24h += 1
        return last_24h, last_30d

    async def evaluate_ban(self, user_id: str) -> BanDecision:
        reports_24h, reports_30d = await self.count_reports(user_id)
        decision = decide_ban(reports_24h, reports_30d, self._thresholds)
        if decision.should_ban:
            logger.warning(
                "Ban threshold reached",
                user_id=user_id,
                reports_24h=reports_24h,
                reports_30d=reports_30d,
                permanent=decision.is_permanent,
                reason=decision.reason,
            )
        return decision

    @staticmethod
    def _duplicate(
        reporter_id: str, reported_user_id: str, day_bucket: date
    ) -> DuplicateReportError:
        logger.info(
            "Duplicate report rejected",
            reporter_id=reporter_id,
            reported_user_id=reported_user_id,
            day=day_bucket.isoformat(),
        )
        return DuplicateReportError(reporter_id, reported_user_id, day_bucket.strftime("%Y%m%d"))

    async def _entries(self, user_id: str) -> list[dict]:
        index = await self._gateway.fetch(document_key(REPORT_INDEX, user_id))
        return list((index or {}).get("reports", []))
