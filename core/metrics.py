"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

# Account metrics
signups_total = Counter("signups_total", "Total number of accounts created", ["gender"])

profiles_completed_total = Counter("profiles_completed_total", "Total number of profile completions")

# Search metrics
searches_total = Counter("searches_total", "Total number of candidate searches", ["grid"])

search_candidates = Histogram(
    "search_candidates", "Candidates remaining after filtering", buckets=(0, 1, 5, 10, 25, 50, 100, 250, 500)
)

ai_search_charges_total = Counter("ai_search_charges_total", "Total number of AI searches billed")

enrichment_fallbacks_total = Counter(
    "enrichment_fallbacks_total", "Narrative enrichment fallbacks by tier", ["tier"]
)

# Like & match metrics
likes_total = Counter("likes_total", "Total number of likes created", ["grid", "kind"])

likes_rejected_total = Counter("likes_rejected_total", "Total number of rejected likes", ["reason"])

matches_created_total = Counter("matches_created_total", "Total number of matches created")

unmatches_total = Counter("unmatches_total", "Total number of unmatches")

cooldowns_started_total = Counter("cooldowns_started_total", "Total number of cooldowns activated")

# Messaging
messages_sent_total = Counter("messages_sent_total", "Total number of messages sent")

# Credits
credits_debited_total = Counter("credits_debited_total", "Total credits debited", ["reason"])

credits_granted_total = Counter("credits_granted_total", "Total credits granted", ["reason"])

insufficient_credits_total = Counter(
    "insufficient_credits_total", "Total number of debits rejected for insufficient balance", ["reason"]
)

# Notifications
notifications_total = Counter("notifications_total", "Notification dispatch attempts", ["kind", "outcome"])

# Safety & Moderation metrics
reports_total = Counter("reports_total", "Total number of reports created", ["reason"])

reports_latency_seconds = Histogram("reports_latency_seconds", "Time to process report creation")

blocks_total = Counter("blocks_total", "Total number of user blocks executed")

blocks_latency_seconds = Histogram("blocks_latency_seconds", "Time to process block action from request to response")

moderation_actions_total = Counter("moderation_actions_total", "Admin moderation actions", ["action"])

# Response time metrics
api_request_duration = Histogram(
    "api_request_duration_seconds", "API request duration in seconds", ["method", "endpoint", "status"]
)
