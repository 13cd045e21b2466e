"""Token usage, cost estimates and activity counters for the admin dashboard."""

from __future__ import annotations

import datetime
from typing import TYPE_CHECKING

from studybot.config import config
from studybot.models import AnalyticsStats, DashboardStats, MonthlyUsage, as_utc

if TYPE_CHECKING:
    from collections.abc import Sequence
    from typing import Any

    from .database import Database

logger = config.get_logger(__name__)


def month_start(moment: datetime.datetime, months_back: int = 0) -> datetime.datetime:
    """Return midnight on the first day of the month ``months_back`` before."""  # noqa: DOC201
    index = moment.year * 12 + (moment.month - 1) - months_back
    return moment.replace(
        year=index // 12,
        month=index % 12 + 1,
        day=1,
        hour=0,
        minute=0,
        second=0,
        microsecond=0,
    )


class AnalyticsService:
    """Aggregates over the conversation tables."""

    def __init__(
        self,
        database: Database,
        price_input: float | None = None,
        price_output: float | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            database: Initialised relational store.
            price_input: USD per prompt token. If None, uses
                config.TOKEN_PRICE_INPUT.
            price_output: USD per completion token. If None, uses
                config.TOKEN_PRICE_OUTPUT.
        """
        self.db = database
        self.price_input = (
            config.TOKEN_PRICE_INPUT if price_input is None else price_input
        )
        self.price_output = (
            config.TOKEN_PRICE_OUTPUT if price_output is None else price_output
        )

    def calculate_cost(self, tokens: int) -> float:
        """Estimate the cost of ``tokens``, assumed half input and half output.

        Returns:
            Cost in USD rounded to cents.
        """
        cost = tokens * 0.5 * self.price_input + tokens * 0.5 * self.price_output
        return round(cost, 2)

    def _scalar(self, sql: str, params: Sequence[Any] = ()) -> float:
        row = self.db.query_one(sql, params)
        return (row[0] or 0) if row else 0

    def _tokens_between(
        self,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
    ) -> int:
        clauses = ["tokens_used IS NOT NULL"]
        params: list[str] = []
        if start is not None:
            clauses.append("timestamp >= ?")
            params.append(start.isoformat())
        if end is not None:
            clauses.append("timestamp < ?")
            params.append(end.isoformat())
        return int(
            self._scalar(
                "SELECT COALESCE(SUM(tokens_used), 0) FROM conversation_messages "  # noqa: S608
                f"WHERE {' AND '.join(clauses)}",
                params,
            )
        )

    def get_stats(self, now: datetime.datetime | None = None) -> AnalyticsStats:
        """Compute the token and cost figures.

        Returns:
            Totals for all time, the last 24 hours, this month and last month.
        """
        now = as_utc(now)
        this_month = month_start(now)
        last_month = month_start(now, 1)

        month_tokens = self._tokens_between(this_month)
        last_month_tokens = self._tokens_between(last_month, this_month)
        avg_tokens = self._scalar(
            """
            SELECT COALESCE(AVG(session_tokens), 0) FROM (
                SELECT SUM(tokens_used) AS session_tokens
                FROM conversation_messages
                WHERE tokens_used IS NOT NULL
                GROUP BY session_id
            )
            """
        )

        return AnalyticsStats(
            total_tokens=self._tokens_between(),
            today_tokens=self._tokens_between(now - datetime.timedelta(hours=24)),
            month_tokens=month_tokens,
            last_month_tokens=last_month_tokens,
            avg_tokens_per_conversation=round(avg_tokens),
            estimated_monthly_cost=self.calculate_cost(month_tokens),
            last_month_cost=self.calculate_cost(last_month_tokens),
        )

    def get_monthly_usage(
        self,
        months: int = 6,
        now: datetime.datetime | None = None,
    ) -> list[MonthlyUsage]:
        """Aggregate usage per calendar month, newest first.

        Returns:
            One entry per month with activity, covering ``months`` months
            including the current one.
        """
        now = as_utc(now)
        start = month_start(now, max(0, months - 1)).isoformat()
        rows = self.db.query(
            """
            SELECT
                m.month,
                m.conversations,
                m.messages,
                m.tokens_used,
                COALESCE(f.positive, 0) AS positive_feedbacks,
                COALESCE(f.negative, 0) AS negative_feedbacks
            FROM (
                SELECT
                    substr(timestamp, 1, 7) AS month,
                    COUNT(DISTINCT session_id) AS conversations,
                    COUNT(*) AS messages,
                    COALESCE(SUM(tokens_used), 0) AS tokens_used
                FROM conversation_messages
                WHERE timestamp >= ?
                GROUP BY month
            ) AS m
            LEFT JOIN (
                SELECT
                    substr(timestamp, 1, 7) AS month,
                    SUM(type = 'positive') AS positive,
                    SUM(type = 'negative') AS negative
                FROM conversation_feedbacks
                WHERE timestamp >= ?
                GROUP BY month
            ) AS f ON f.month = m.month
            ORDER BY m.month DESC
            """,
            (start, start),
        )
        return [
            MonthlyUsage(
                month=row["month"],
                conversations=int(row["conversations"]),
                messages=int(row["messages"]),
                tokens_used=int(row["tokens_used"]),
                positive_feedbacks=int(row["positive_feedbacks"]),
                negative_feedbacks=int(row["negative_feedbacks"]),
                cost=self.calculate_cost(int(row["tokens_used"])),
            )
            for row in rows
        ]

    def get_dashboard_stats(self, now: datetime.datetime | None = None) -> DashboardStats:
        """Compute activity counters.

        "Today" is the last 24 hours and "yesterday" the 24 hours before.

        Returns:
            Conversation, message and feedback counts plus yesterday's peak hour.
        """
        now = as_utc(now)
        day_ago = (now - datetime.timedelta(hours=24)).isoformat()
        two_days_ago = (now - datetime.timedelta(hours=48)).isoformat()

        peak = self.db.query_one(
            """
            SELECT CAST(substr(timestamp, 12, 2) AS INTEGER) AS hour,
                   COUNT(DISTINCT session_id) AS sessions
            FROM conversation_messages
            WHERE timestamp >= ? AND timestamp < ?
            GROUP BY hour
            ORDER BY sessions DESC, hour ASC
            LIMIT 1
            """,
            (two_days_ago, day_ago),
        )
        peak_hour = None
        peak_count = 0
        if peak is not None and peak["hour"] is not None:
            peak_hour = f"{peak['hour']}h-{peak['hour'] + 1}h"
            peak_count = int(peak["sessions"])

        return DashboardStats(
            total_conversations=int(
                self._scalar("SELECT COUNT(*) FROM conversation_sessions")
            ),
            today_messages=int(
                self._scalar(
                    "SELECT COUNT(*) FROM conversation_messages WHERE timestamp >= ?",
                    (day_ago,),
                )
            ),
            today_feedbacks=int(
                self._scalar(
                    "SELECT COUNT(*) FROM conversation_feedbacks WHERE timestamp >= ?",
                    (day_ago,),
                )
            ),
            peak_hour_yesterday=peak_hour,
            peak_hour_count=peak_count,
        )
