"""
SocialPulse: analytics and aggregation engine for a social brand-monitoring product.

Turns classified per-post metric rows into KPIs, gap-free trends, ranked
breakdowns and paginated listings, tracks ETL sync runs, and escalates risk
incidents.
"""

__version__ = "0.1.0"
