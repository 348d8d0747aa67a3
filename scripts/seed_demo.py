#!/usr/bin/env python3
"""
SocialPulse Demo Seeder

Generates synthetic brand-monitoring posts and comments across the four
channels, drives one full sync run through every phase (ingest, classify,
aggregate, reconcile, alerts) and prints the resulting overview.

Usage:
    python scripts/seed_demo.py                          # 6 months into the configured DB
    python scripts/seed_demo.py --months 3 --seed 7
    python scripts/seed_demo.py --db-path :memory: --posts-per-day 12
"""

import argparse
import asyncio
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import structlog

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from socialpulse.config import get_settings
from socialpulse.engine import DashboardService, Reconciler, SocialAlertEvaluator
from socialpulse.models.enums import Channel, PhaseState, SyncPhase, TriggerType, UpsertStatus
from socialpulse.models.metrics import CommentInput, DashboardFilters, PostInput
from socialpulse.models.reconciliation import ChannelRowStats
from socialpulse.storage.duckdb_storage import DuckDBStorage
from socialpulse.utils.logging import configure_logging

logger = structlog.get_logger()


class DemoDataGenerator:
    """
    Synthetic posts with per-account reach and sentiment profiles.

    One account ("marca") is the brand itself; the rest are competitors and
    media. A short negative spike is injected into the last two weeks so the
    risk view and the alert phase have something to show.
    """

    ACCOUNTS = {
        "marca": {"channels": list(Channel), "reach": (8000, 60000), "negative": 0.12},
        "competidor_uno": {"channels": [Channel.FACEBOOK, Channel.INSTAGRAM], "reach": (5000, 40000), "negative": 0.2},
        "competidor_dos": {"channels": [Channel.TIKTOK, Channel.INSTAGRAM], "reach": (2000, 90000), "negative": 0.25},
        "medio_local": {"channels": [Channel.FACEBOOK, Channel.LINKEDIN], "reach": (1000, 15000), "negative": 0.3},
    }

    POST_TYPES = ["image", "video", "reel", "carousel", "text"]
    CAMPAIGNS = ["lanzamiento", "temporada_alta", None]
    STRATEGIES = ["awareness", "conversion", "comunidad"]
    TOPICS = ["servicio", "precio", "cobertura", "promociones"]
    PHRASES = [
        "Nueva promocion para clientes #oferta #hogar",
        "Conoce la cobertura ampliada en toda la ciudad #cobertura",
        "Reclamos por fallas del servicio durante el fin de semana",
        "Evento comunidad digital con premios #comunidad #sorteo",
        "Comparativo de precios planes moviles #precio",
    ]

    def __init__(self, seed: int, months: int, posts_per_day: int, now: datetime):
        self.random = random.Random(seed)
        self.months = months
        self.posts_per_day = posts_per_day
        self.now = now

    def sentiment(self, negative_rate: float, spike: bool) -> str:
        roll = self.random.random()
        negative = min(0.9, negative_rate * (3 if spike else 1))
        if roll < negative:
            return "negativo"
        if roll < negative + 0.45:
            return "positivo"
        if roll < 0.95:
            return "neutral"
        return "pendiente"

    def posts(self) -> list[PostInput]:
        start = self.now - timedelta(days=30 * self.months)
        total_days = (self.now - start).days
        posts = []
        for day in range(total_days):
            day_start = start + timedelta(days=day)
            spike = (self.now - day_start).days < 14
            for index in range(self.posts_per_day):
                account = self.random.choice(list(self.ACCOUNTS))
                profile = self.ACCOUNTS[account]
                channel = self.random.choice(profile["channels"])
                exposure = float(self.random.randint(*profile["reach"]))
                engagement = round(exposure * self.random.uniform(0.005, 0.08), 0)
                likes = round(engagement * 0.7)
                comments = round(engagement * 0.2)
                posts.append(
                    PostInput(
                        channel=channel,
                        account_name=account,
                        external_post_id=f"{channel.value}-{day:04d}-{index:03d}",
                        post_url=f"https://social.example/{channel.value}/{day}/{index}",
                        post_type=self.random.choice(self.POST_TYPES),
                        title=self.random.choice(self.PHRASES),
                        published_at=day_start + timedelta(minutes=self.random.randint(0, 1439)),
                        exposure=exposure,
                        engagement=engagement,
                        impressions=round(exposure * 1.3),
                        reach=exposure,
                        clicks=round(exposure * self.random.uniform(0.001, 0.02)),
                        likes=likes,
                        comments=comments,
                        shares=max(engagement - likes - comments, 0),
                        views=round(exposure * self.random.uniform(0.2, 0.9)),
                        source_score=round(self.random.uniform(0.3, 1.0), 2),
                        sentiment=self.sentiment(profile["negative"], spike),
                        campaign_key=self.random.choice(self.CAMPAIGNS),
                        strategy_keys=self.random.sample(self.STRATEGIES, k=self.random.randint(0, 2)),
                        topics=self.random.sample(self.TOPICS, k=self.random.randint(0, 2)),
                    )
                )
        return posts

    def comments(self, post_id: str, external_post_id: str) -> list[CommentInput]:
        return [
            CommentInput(
                post_id=post_id,
                external_comment_id=f"{external_post_id}-c{index}",
                author_name=f"usuario_{self.random.randint(1, 500)}",
                text=self.random.choice(self.PHRASES),
                sentiment=self.random.choice(["positivo", "negativo", "neutral"]),
                published_at=self.now - timedelta(hours=self.random.randint(1, 400)),
            )
            for index in range(self.random.randint(0, 3))
        ]


def source_stats(posts: list[PostInput]) -> list[ChannelRowStats]:
    stats: dict[Channel, ChannelRowStats] = {}
    for post in posts:
        current = stats.setdefault(post.channel, ChannelRowStats(channel=post.channel))
        current.rows += 1
        if current.min_date is None or post.published_at < current.min_date:
            current.min_date = post.published_at
        if current.max_date is None or post.published_at > current.max_date:
            current.max_date = post.published_at
    return list(stats.values())


async def run_pipeline(storage: DuckDBStorage, generator: DemoDataGenerator) -> None:
    """Drive one sync run through every phase and print the overview."""
    service = DashboardService(storage)
    await service.startup()
    tracker = service.runs
    run = tracker.start_run(trigger_type=TriggerType.MANUAL)

    tracker.update_phase(run.run_id, SyncPhase.INGEST, PhaseState.RUNNING)
    posts = generator.posts()
    created = 0
    comment_count = 0
    for post in posts:
        status, post_id = storage.upsert_post(post)
        created += status == UpsertStatus.CREATED
        for comment in generator.comments(post_id, post.external_post_id):
            storage.upsert_comment(comment)
            comment_count += 1
    tracker.update_phase(
        run.run_id,
        SyncPhase.INGEST,
        PhaseState.COMPLETED,
        details={"posts_created": created, "comments": comment_count},
        counters={
            "objects_discovered": 1,
            "objects_processed": 1,
            "rows_parsed": len(posts),
            "rows_persisted": len(posts),
        },
    )

    pending = sum(1 for post in posts if post.sentiment == "pendiente")
    tracker.update_phase(
        run.run_id,
        SyncPhase.CLASSIFY,
        PhaseState.SKIPPED,
        details={"reason": "sentiment supplied by provider"},
        counters={
            "rows_classified": len(posts) - pending,
            "rows_pending_classification": pending,
            "rows_unknown_sentiment": pending,
        },
    )
    tracker.update_phase(
        run.run_id, SyncPhase.AGGREGATE, PhaseState.COMPLETED, counters={"rows_aggregated": len(posts)}
    )

    tracker.update_phase(run.run_id, SyncPhase.RECONCILE, PhaseState.RUNNING)
    snapshots = Reconciler(storage).reconcile(run.run_id, source_stats(posts))
    tracker.update_phase(
        run.run_id,
        SyncPhase.RECONCILE,
        PhaseState.COMPLETED,
        details={"channels": [{"channel": s.channel.value, "status": s.status.value} for s in snapshots]},
    )

    tracker.update_phase(run.run_id, SyncPhase.ALERTS, PhaseState.RUNNING)
    decision = await SocialAlertEvaluator(service).evaluate()
    tracker.update_phase(run.run_id, SyncPhase.ALERTS, PhaseState.COMPLETED, details=decision.as_details())
    tracker.complete_run(run.run_id)

    overview = await service.overview(DashboardFilters(preset="90d"))
    print("\n" + "=" * 60)
    print("OVERVIEW (90d)")
    print("=" * 60)
    print(f"  Posts:              {overview.kpis.posts:>10}")
    print(f"  Exposure:           {overview.kpis.exposure_total:>10.0f}")
    print(f"  ER global:          {overview.kpis.er_global:>10.2f}%")
    print(f"  Sentimiento neto:   {overview.kpis.sentimiento_neto:>10.2f}")
    print(f"  Riesgo activo:      {overview.kpis.riesgo_activo:>10.2f}")
    print(f"  SHS:                {overview.kpis.shs:>10.2f}")
    print(f"  Focus account:      {overview.kpis.focus_account} ({overview.kpis.focus_sov:.2f}% SOV)")
    print(f"  Reconciliation:     {overview.reconciliation_status.value:>10}")
    print(f"  Alert triggered:    {str(decision.triggered):>10} {decision.reasons}")
    print("=" * 60)


def main():
    """Main entry point for the demo seeding script."""
    parser = argparse.ArgumentParser(description="Seed SocialPulse with synthetic social posts")
    parser.add_argument(
        "--db-path",
        type=str,
        default=None,
        help="DuckDB file path (default: DB_PATH setting)",
    )
    parser.add_argument(
        "--months",
        type=int,
        default=6,
        help="Months of history to generate (default: 6)",
    )
    parser.add_argument(
        "--posts-per-day",
        type=int,
        default=8,
        help="Posts generated per day (default: 8)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed for reproducibility (default: 42)",
    )

    args = parser.parse_args()

    configure_logging(level="info", fmt="console")

    settings = get_settings()
    storage = DuckDBStorage(db_path=args.db_path or settings.db_path)
    generator = DemoDataGenerator(
        seed=args.seed,
        months=args.months,
        posts_per_day=args.posts_per_day,
        now=datetime.now(timezone.utc),
    )

    logger.info(
        "demo_seeder_started",
        db_path=storage.db_path,
        months=args.months,
        posts_per_day=args.posts_per_day,
        seed=args.seed,
    )

    try:
        asyncio.run(run_pipeline(storage, generator))
        logger.info("demo_seeding_successful")
        print("\nSeeding completed successfully!\n")

    except Exception as e:
        logger.error("demo_seeding_failed", error=str(e), exc_info=True)
        print(f"\nSeeding failed: {e}\n")
        sys.exit(1)

    finally:
        storage.close()


if __name__ == "__main__":
    main()
